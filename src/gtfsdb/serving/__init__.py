"""
GTFS DB - Serving Module

Exportação de namespaces para o formato de distribuição GTFS.
"""

from .exporter import ExportResult, FeedExporter

__all__ = [
    "ExportResult",
    "FeedExporter",
]
