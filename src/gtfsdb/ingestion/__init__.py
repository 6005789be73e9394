"""
GTFS DB - Ingestion Module

Leitura do zip GTFS e carga das tabelas em um namespace novo.
"""

from .archive import GTFSArchive, TableReader
from .feed_loader import FeedLoader, LoadResult, TableLoadResult

__all__ = [
    "GTFSArchive",
    "TableReader",
    "FeedLoader",
    "LoadResult",
    "TableLoadResult",
]
