"""
GTFS DB - Storage Module

Provedor de conexões e store de namespaces (schemas por feed + registro
global de feeds).
"""

from .connection import create_engine_from_url
from .namespace_store import FeedRecord, NamespaceStore, ensure_valid_namespace

__all__ = [
    "create_engine_from_url",
    "FeedRecord",
    "NamespaceStore",
    "ensure_valid_namespace",
]
