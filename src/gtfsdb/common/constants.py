"""
Constantes do GTFS DB.

Define constantes usadas em todo o projeto, incluindo sentinelas de
valores ausentes, limites de identificadores, tamanhos de lote e nomes
de métricas.
"""

from enum import Enum
from typing import Final

# =============================================================================
# Missing-value Sentinels
# =============================================================================

# Valores reservados para campos numéricos opcionais ausentes/malformados.
# Colunas que compõem chaves guardam a sentinela (nunca NULL).
INT_MISSING: Final[int] = -2147483648
DOUBLE_MISSING: Final[float] = float("inf")

# =============================================================================
# Namespaces
# =============================================================================

# Identificador de schema: letra/underscore seguido de alfanuméricos (limite
# de 63 caracteres do PostgreSQL)
NAMESPACE_PATTERN: Final[str] = r"^[A-Za-z_][A-Za-z0-9_]{0,62}$"
NAMESPACE_ID_LENGTH: Final[int] = 5
NAMESPACE_ID_SUFFIX_LENGTH: Final[int] = 10
NAMESPACE_ID_MAX_ATTEMPTS: Final[int] = 10

# Separador usado para emular schemas em bancos sem suporte (SQLite)
NAMESPACE_TABLE_SEPARATOR: Final[str] = "__"

# Tabela global de registro de feeds
FEEDS_TABLE: Final[str] = "feeds"

# Coluna de chave substituta presente em todas as tabelas de namespace
ID_COLUMN: Final[str] = "id"

# =============================================================================
# Batch Sizes
# =============================================================================

DEFAULT_INSERT_BATCH_SIZE: Final[int] = 1000
DEFAULT_EXPORT_FETCH_SIZE: Final[int] = 1000

# =============================================================================
# Database
# =============================================================================

DEFAULT_DATABASE_URL: Final[str] = "postgresql+psycopg2://localhost/gtfs"
DEFAULT_POOL_SIZE: Final[int] = 4
DEFAULT_MAX_OVERFLOW: Final[int] = 296

# =============================================================================
# Archive Format
# =============================================================================

TABLE_FILE_EXTENSION: Final[str] = ".txt"
ARCHIVE_ENCODING: Final[str] = "utf-8-sig"
EXPORT_ENCODING: Final[str] = "utf-8"

# Timestamp fixo das entradas do zip exportado (exports reprodutíveis)
EXPORT_ZIP_DATE_TIME: Final[tuple] = (1980, 1, 1, 0, 0, 0)

# =============================================================================
# Metrics
# =============================================================================

METRIC_PREFIX: Final[str] = "gtfsdb"
METRIC_OPERATIONS: Final[str] = f"{METRIC_PREFIX}_operations_total"
METRIC_OPERATION_DURATION: Final[str] = f"{METRIC_PREFIX}_operation_duration_seconds"
METRIC_ROWS_LOADED: Final[str] = f"{METRIC_PREFIX}_rows_loaded_total"
METRIC_ROWS_REJECTED: Final[str] = f"{METRIC_PREFIX}_rows_rejected_total"
METRIC_VALIDATION_FINDINGS: Final[str] = f"{METRIC_PREFIX}_validation_findings_total"

# =============================================================================
# Enums
# =============================================================================


class Operation(str, Enum):
    """Operações do ciclo de vida de um namespace."""

    LOAD = "load"
    VALIDATE = "validate"
    SNAPSHOT = "snapshot"
    EXPORT = "export"
    DELETE = "delete"


class OperationStatus(str, Enum):
    """Status de execução de operações."""

    STARTED = "started"
    SUCCESS = "success"
    FAILED = "failed"
