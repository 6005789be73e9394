"""
GTFS DB

Ciclo de vida de feeds GTFS em namespaces SQL: carga, validação,
snapshot de edição, exportação e remoção.
"""

from .gtfs import create_data_source, delete, export, load, make_snapshot, validate

__version__ = "1.0.0"

__all__ = [
    "create_data_source",
    "delete",
    "export",
    "load",
    "make_snapshot",
    "validate",
]
