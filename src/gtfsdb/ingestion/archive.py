"""
Leitura do arquivo zip GTFS.

Abre o zip do feed e expõe cada tabela como um leitor sequencial de
linhas (`TableReader`), sem extrair arquivos em disco nem materializar a
tabela em memória.
"""

import csv
import io
import zipfile
from pathlib import Path
from typing import Dict, Iterator, List, Tuple, Union

from ..common.constants import ARCHIVE_ENCODING, TABLE_FILE_EXTENSION
from ..common.exceptions import MalformedArchiveException, MissingRequiredTableException
from ..common.logging_config import get_logger
from ..schema.tables import SERVICE_TABLES, TABLES, TableDefinition

logger = get_logger(__name__)


class TableReader:
    """
    Leitor sequencial (forward-only) de uma tabela do zip.

    O cabeçalho é lido e validado na abertura. A iteração produz tuplas
    `(line_number, row)`, onde `line_number` é a linha no arquivo (o
    cabeçalho é a linha 1) e `row` mapeia coluna → célula.
    """

    def __init__(self, location: str, stream, table_name: str):
        self.location = location
        self.table_name = table_name
        self._stream = io.TextIOWrapper(stream, encoding=ARCHIVE_ENCODING, newline="")
        self._reader = csv.reader(self._stream)
        self.header = self._read_header()

    def _read_header(self) -> List[str]:
        try:
            raw_header = next(self._reader, None)
        except (csv.Error, UnicodeDecodeError, zipfile.BadZipFile) as e:
            raise MalformedArchiveException(self.location, f"Unreadable header: {e}")

        header = [name.strip() for name in raw_header or []]
        if not any(header):
            raise MalformedArchiveException(self.location, "Empty header row")

        duplicates = sorted({name for name in header if name and header.count(name) > 1})
        if duplicates:
            raise MalformedArchiveException(
                self.location, f"Duplicate columns in header: {', '.join(duplicates)}"
            )
        return header

    def __iter__(self) -> Iterator[Tuple[int, Dict[str, str]]]:
        width = len(self.header)
        record_number = 0
        try:
            for cells in self._reader:
                record_number += 1
                if not any(cell.strip() for cell in cells):
                    continue
                if len(cells) < width:
                    cells = cells + [""] * (width - len(cells))
                yield record_number + 1, dict(zip(self.header, cells))
        except (csv.Error, UnicodeDecodeError, zipfile.BadZipFile) as e:
            raise MalformedArchiveException(
                self.location, f"Unreadable row after line {record_number + 1}: {e}"
            )

    def close(self) -> None:
        self._stream.close()

    def __enter__(self) -> "TableReader":
        return self

    def __exit__(self, exc_type, exc_value, traceback) -> None:
        self.close()


class GTFSArchive:
    """
    Arquivo zip de um feed GTFS.

    Somente entradas na raiz do zip com nome `<tabela>.txt` são
    consideradas; demais entradas são ignoradas.

    Raises:
        MalformedArchiveException: Se o arquivo não for um zip legível
    """

    def __init__(self, path: Union[str, Path]):
        self.path = Path(path)
        try:
            self._zip = zipfile.ZipFile(self.path, "r")
        except (zipfile.BadZipFile, OSError) as e:
            raise MalformedArchiveException(str(self.path), f"Invalid zip: {e}")

        self._entries: Dict[str, zipfile.ZipInfo] = {}
        ignored = []
        for info in self._zip.infolist():
            name = info.filename
            if info.is_dir() or "/" in name or not name.endswith(TABLE_FILE_EXTENSION):
                ignored.append(name)
                continue
            self._entries[name[: -len(TABLE_FILE_EXTENSION)]] = info

        known = {definition.name for definition in TABLES}
        ignored.extend(f"{name}{TABLE_FILE_EXTENSION}" for name in self._entries if name not in known)
        if ignored:
            logger.debug(f"Ignoring archive entries: {', '.join(sorted(ignored))}")

    @property
    def table_names(self) -> List[str]:
        return sorted(self._entries)

    def has_table(self, table_name: str) -> bool:
        return table_name in self._entries

    def check_required_tables(self) -> None:
        """
        Verifica a presença das tabelas obrigatórias.

        Raises:
            MissingRequiredTableException: Na primeira tabela obrigatória ausente
        """
        for definition in TABLES:
            if definition.required and not self.has_table(definition.name):
                raise MissingRequiredTableException(definition.name, str(self.path))

        if not any(self.has_table(name) for name in SERVICE_TABLES):
            raise MissingRequiredTableException(" or ".join(SERVICE_TABLES), str(self.path))

    def open_table(self, definition: TableDefinition) -> TableReader:
        """
        Abre uma tabela para leitura sequencial.

        Raises:
            KeyError: Se a tabela não existir no zip
            MalformedArchiveException: Se o cabeçalho for inválido
        """
        info = self._entries[definition.name]
        location = f"{self.path.name}:{info.filename}"
        try:
            stream = self._zip.open(info, "r")
        except (zipfile.BadZipFile, OSError) as e:
            raise MalformedArchiveException(location, str(e))

        try:
            return TableReader(location, stream, definition.name)
        except Exception:
            stream.close()
            raise

    def close(self) -> None:
        self._zip.close()

    def __enter__(self) -> "GTFSArchive":
        return self

    def __exit__(self, exc_type, exc_value, traceback) -> None:
        self.close()
