"""
GTFS DB - Schema Module

Codec de campos e registro estático das tabelas GTFS.
"""

from .fields import Field, FieldKind, LoadError, LoadErrorType, RowReader, RowRejected
from .tables import EDITOR_TABLES, TABLES, KeyRole, TableDefinition, get_table

__all__ = [
    "Field",
    "FieldKind",
    "LoadError",
    "LoadErrorType",
    "RowReader",
    "RowRejected",
    "EDITOR_TABLES",
    "TABLES",
    "KeyRole",
    "TableDefinition",
    "get_table",
]
