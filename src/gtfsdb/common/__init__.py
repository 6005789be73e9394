"""
GTFS DB - Common Module

Módulo comum contendo configurações, logging, exceções, métricas e
utilitários compartilhados por todas as operações.
"""

from .config import Config, get_config
from .logging_config import setup_logging, get_logger
from .exceptions import (
    GTFSStoreException,
    InvalidNamespaceException,
    NamespaceNotFoundException,
    MalformedArchiveException,
    MissingRequiredTableException,
    StorageException,
    StorageUnavailableException,
)

__all__ = [
    "Config",
    "get_config",
    "setup_logging",
    "get_logger",
    "GTFSStoreException",
    "InvalidNamespaceException",
    "NamespaceNotFoundException",
    "MalformedArchiveException",
    "MissingRequiredTableException",
    "StorageException",
    "StorageUnavailableException",
]
