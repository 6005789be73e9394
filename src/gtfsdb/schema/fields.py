"""
Codec de campos GTFS.

Converte células de texto delimitado em valores tipados (e de volta),
aplicando obrigatoriedade e limites. Campos opcionais malformados viram
sentinelas de valor ausente com um aviso registrado; campos obrigatórios
malformados rejeitam a linha inteira.
"""

import math
import re
from dataclasses import dataclass, field as dataclass_field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Mapping, Optional, Tuple
from urllib.parse import urlparse

from ..common.constants import DOUBLE_MISSING, INT_MISSING

TIME_PATTERN = re.compile(r"^(\d{1,3}):([0-5]\d):([0-5]\d)$")
COLOR_PATTERN = re.compile(r"^[0-9A-Fa-f]{6}$")
DATE_FORMAT = "%Y%m%d"
URL_SCHEMES = ("http", "https")


# =============================================================================
# Enums
# =============================================================================


class FieldKind(str, Enum):
    """Tipos de campo suportados pelo codec."""

    STRING = "string"
    INTEGER = "integer"
    DOUBLE = "double"
    TIME = "time"
    DATE = "date"
    URL = "url"
    COLOR = "color"


class LoadErrorType(str, Enum):
    """Tipos de erro de linha registrados durante a carga."""

    MISSING_FIELD = "MISSING_FIELD"
    MISSING_COLUMN = "MISSING_COLUMN"
    NUMBER_PARSING = "NUMBER_PARSING"
    NUMBER_TOO_SMALL = "NUMBER_TOO_SMALL"
    NUMBER_TOO_LARGE = "NUMBER_TOO_LARGE"
    TIME_FORMAT = "TIME_FORMAT"
    DATE_FORMAT = "DATE_FORMAT"
    URL_FORMAT = "URL_FORMAT"
    COLOR_FORMAT = "COLOR_FORMAT"
    REFERENTIAL_INTEGRITY = "REFERENTIAL_INTEGRITY"
    DUPLICATE_ID = "DUPLICATE_ID"
    DUPLICATE_KEY = "DUPLICATE_KEY"
    NO_AGENCY_IN_FEED = "NO_AGENCY_IN_FEED"


# =============================================================================
# Load Errors
# =============================================================================


@dataclass
class LoadError:
    """Erro (ou aviso) de qualidade de dados associado a uma linha do feed."""

    table: str
    line: int
    field: Optional[str]
    error_type: LoadErrorType
    bad_value: Optional[str] = None
    rejected: bool = True

    @property
    def message(self) -> str:
        """Mensagem legível do erro."""
        location = f"{self.table}:{self.line}"
        if self.field:
            location += f" ({self.field})"
        value = f" value={self.bad_value!r}" if self.bad_value is not None else ""
        outcome = "row rejected" if self.rejected else "value ignored"
        return f"{self.error_type.value} at {location}{value}, {outcome}"

    def to_dict(self) -> Dict[str, Any]:
        """Converte para dicionário."""
        return {
            "table": self.table,
            "line": self.line,
            "field": self.field,
            "error_type": self.error_type.value,
            "bad_value": self.bad_value,
            "rejected": self.rejected,
            "message": self.message,
        }


class RowRejected(Exception):
    """Sinaliza que a linha corrente deve ser descartada."""

    def __init__(self, error: LoadError):
        self.error = error
        super().__init__(error.message)


# =============================================================================
# Row Reader
# =============================================================================


class RowReader:
    """
    Leitor tipado de uma linha do feed.

    Cada método `get_*` lê uma coluna pelo nome. Valores ausentes em campos
    opcionais retornam a sentinela sem aviso; valores malformados em campos
    opcionais retornam a sentinela e registram um aviso em `warnings`.
    Qualquer problema em campo obrigatório lança `RowRejected`.
    """

    def __init__(self, table_name: str, line_number: int, row: Mapping[str, str]):
        self.table_name = table_name
        self.line_number = line_number
        self.row = row
        self.warnings: List[LoadError] = []

    def _raw(self, name: str) -> Optional[str]:
        value = self.row.get(name)
        if value is None:
            return None
        value = value.strip()
        return value or None

    def _missing(self, name: str, required: bool, missing_value: Any) -> Any:
        if required:
            raise RowRejected(
                LoadError(self.table_name, self.line_number, name, LoadErrorType.MISSING_FIELD)
            )
        return missing_value

    def _malformed(
        self,
        name: str,
        error_type: LoadErrorType,
        raw: str,
        required: bool,
        missing_value: Any,
    ) -> Any:
        error = LoadError(
            self.table_name, self.line_number, name, error_type, bad_value=raw, rejected=required
        )
        if required:
            raise RowRejected(error)
        self.warnings.append(error)
        return missing_value

    def get_string(self, name: str, required: bool = False) -> Optional[str]:
        raw = self._raw(name)
        if raw is None:
            return self._missing(name, required, None)
        return raw

    def get_int(
        self,
        name: str,
        required: bool = False,
        min_value: Optional[int] = None,
        max_value: Optional[int] = None,
        default: int = INT_MISSING,
    ) -> int:
        raw = self._raw(name)
        if raw is None:
            return self._missing(name, required, default)
        try:
            value = int(raw)
        except ValueError:
            return self._malformed(name, LoadErrorType.NUMBER_PARSING, raw, required, default)
        if min_value is not None and value < min_value:
            return self._malformed(name, LoadErrorType.NUMBER_TOO_SMALL, raw, required, default)
        if max_value is not None and value > max_value:
            return self._malformed(name, LoadErrorType.NUMBER_TOO_LARGE, raw, required, default)
        return value

    def get_double(
        self,
        name: str,
        required: bool = False,
        min_value: Optional[float] = None,
        max_value: Optional[float] = None,
    ) -> float:
        raw = self._raw(name)
        if raw is None:
            return self._missing(name, required, DOUBLE_MISSING)
        try:
            value = float(raw)
        except ValueError:
            return self._malformed(name, LoadErrorType.NUMBER_PARSING, raw, required, DOUBLE_MISSING)
        if not math.isfinite(value):
            return self._malformed(name, LoadErrorType.NUMBER_PARSING, raw, required, DOUBLE_MISSING)
        if min_value is not None and value < min_value:
            return self._malformed(name, LoadErrorType.NUMBER_TOO_SMALL, raw, required, DOUBLE_MISSING)
        if max_value is not None and value > max_value:
            return self._malformed(name, LoadErrorType.NUMBER_TOO_LARGE, raw, required, DOUBLE_MISSING)
        return value

    def get_time(self, name: str, required: bool = False) -> int:
        """Lê HH:MM:SS (horas podem passar de 23) em segundos desde o início do dia de serviço."""
        raw = self._raw(name)
        if raw is None:
            return self._missing(name, required, INT_MISSING)
        seconds = parse_time(raw)
        if seconds is None:
            return self._malformed(name, LoadErrorType.TIME_FORMAT, raw, required, INT_MISSING)
        return seconds

    def get_date(self, name: str, required: bool = False) -> Optional[str]:
        raw = self._raw(name)
        if raw is None:
            return self._missing(name, required, None)
        if len(raw) != 8 or not raw.isdigit():
            return self._malformed(name, LoadErrorType.DATE_FORMAT, raw, required, None)
        try:
            datetime.strptime(raw, DATE_FORMAT)
        except ValueError:
            return self._malformed(name, LoadErrorType.DATE_FORMAT, raw, required, None)
        return raw

    def get_url(self, name: str, required: bool = False) -> Optional[str]:
        raw = self._raw(name)
        if raw is None:
            return self._missing(name, required, None)
        parsed = urlparse(raw)
        if parsed.scheme.lower() not in URL_SCHEMES or not parsed.netloc:
            return self._malformed(name, LoadErrorType.URL_FORMAT, raw, required, None)
        return raw

    def get_color(self, name: str, required: bool = False) -> Optional[str]:
        raw = self._raw(name)
        if raw is None:
            return self._missing(name, required, None)
        if not COLOR_PATTERN.match(raw):
            return self._malformed(name, LoadErrorType.COLOR_FORMAT, raw, required, None)
        return raw.upper()


# =============================================================================
# Field Definition
# =============================================================================


@dataclass(frozen=True)
class Field:
    """
    Definição de uma coluna de tabela GTFS.

    Attributes:
        name: Nome da coluna (cabeçalho do arquivo e coluna SQL)
        kind: Tipo do codec
        required: Se a ausência/malformação rejeita a linha
        min_value: Limite inferior (numéricos)
        max_value: Limite superior (numéricos)
        references: Tabelas cujas chaves já vistas validam este valor
        editor_only: Coluna que existe somente em snapshots de edição
        default: Valor padrão da coluna de edição
    """

    name: str
    kind: FieldKind = FieldKind.STRING
    required: bool = False
    min_value: Optional[float] = None
    max_value: Optional[float] = None
    references: Tuple[str, ...] = dataclass_field(default_factory=tuple)
    editor_only: bool = False
    default: Any = None

    def decode(self, reader: RowReader) -> Any:
        """
        Lê o valor tipado desta coluna da linha corrente.

        Args:
            reader: Leitor da linha

        Returns:
            Valor decodificado (ou sentinela)

        Raises:
            RowRejected: Se o campo for obrigatório e inválido
        """
        if self.kind is FieldKind.INTEGER:
            return reader.get_int(self.name, self.required, self.min_value, self.max_value)
        if self.kind is FieldKind.DOUBLE:
            return reader.get_double(self.name, self.required, self.min_value, self.max_value)
        if self.kind is FieldKind.TIME:
            return reader.get_time(self.name, self.required)
        if self.kind is FieldKind.DATE:
            return reader.get_date(self.name, self.required)
        if self.kind is FieldKind.URL:
            return reader.get_url(self.name, self.required)
        if self.kind is FieldKind.COLOR:
            return reader.get_color(self.name, self.required)
        return reader.get_string(self.name, self.required)

    def format(self, value: Any) -> str:
        """Formata um valor armazenado como célula de texto do feed."""
        if value is None or is_missing(value):
            return ""
        if self.kind is FieldKind.TIME:
            return format_time(int(value))
        if self.kind is FieldKind.INTEGER:
            return str(int(value))
        if self.kind is FieldKind.DOUBLE:
            return repr(float(value))
        return str(value)


# =============================================================================
# Helpers
# =============================================================================


def is_missing(value: Any) -> bool:
    """Indica se o valor é uma sentinela de ausência."""
    if isinstance(value, bool):
        return False
    if isinstance(value, int):
        return value == INT_MISSING
    if isinstance(value, float):
        return not math.isfinite(value)
    return False


def parse_time(raw: str) -> Optional[int]:
    """
    Converte "H:MM:SS" em segundos.

    Args:
        raw: Texto do horário (ex: "25:10:00")

    Returns:
        Segundos desde o início do dia de serviço ou None se malformado
    """
    match = TIME_PATTERN.match(raw)
    if not match:
        return None
    hours, minutes, seconds = (int(part) for part in match.groups())
    return hours * 3600 + minutes * 60 + seconds


def format_time(seconds: int) -> str:
    """Formata segundos como HH:MM:SS (horas podem exceder 23)."""
    hours, remainder = divmod(seconds, 3600)
    minutes, secs = divmod(remainder, 60)
    return f"{hours:02d}:{minutes:02d}:{secs:02d}"
