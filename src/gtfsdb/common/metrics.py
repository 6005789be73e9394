"""
Métricas Prometheus para o GTFS DB.

Define e gerencia métricas de execução das operações de namespace,
volume de linhas carregadas/rejeitadas e achados de validação.
"""

import time
from contextlib import contextmanager
from functools import wraps
from typing import Callable, Dict, Optional

from prometheus_client import (
    CollectorRegistry,
    Counter,
    Histogram,
    generate_latest,
)

from .constants import (
    METRIC_OPERATION_DURATION,
    METRIC_OPERATIONS,
    METRIC_ROWS_LOADED,
    METRIC_ROWS_REJECTED,
    METRIC_VALIDATION_FINDINGS,
    OperationStatus,
)

# Registry próprio (não polui o registry global do processo)
REGISTRY = CollectorRegistry()


# =============================================================================
# Operation Metrics
# =============================================================================

operations_total = Counter(
    METRIC_OPERATIONS,
    "Total de operações de namespace executadas",
    ["operation", "status"],
    registry=REGISTRY,
)

operation_duration_seconds = Histogram(
    METRIC_OPERATION_DURATION,
    "Duração das operações de namespace",
    ["operation"],
    buckets=[0.1, 0.5, 1, 5, 10, 30, 60, 120, 300, 600, 1800],
    registry=REGISTRY,
)


# =============================================================================
# Data Metrics
# =============================================================================

rows_loaded_total = Counter(
    METRIC_ROWS_LOADED,
    "Total de linhas aceitas na carga",
    ["table"],
    registry=REGISTRY,
)

rows_rejected_total = Counter(
    METRIC_ROWS_REJECTED,
    "Total de linhas rejeitadas na carga",
    ["table"],
    registry=REGISTRY,
)

validation_findings_total = Counter(
    METRIC_VALIDATION_FINDINGS,
    "Total de achados de validação",
    ["rule", "priority"],
    registry=REGISTRY,
)


# =============================================================================
# Helper Functions & Decorators
# =============================================================================


@contextmanager
def track_duration(metric: Histogram, labels: Optional[Dict[str, str]] = None):
    """
    Context manager para rastrear duração de operações.

    Usage:
        with track_duration(operation_duration_seconds, {"operation": "load"}):
            # ... código a ser medido
    """
    start_time = time.time()
    try:
        yield
    finally:
        duration = time.time() - start_time
        if labels:
            metric.labels(**labels).observe(duration)
        else:
            metric.observe(duration)


def track_operation(operation: str):
    """
    Decorator para rastrear execução de uma operação de namespace.

    Usage:
        @track_operation("load")
        def load(...):
            ...
    """

    def decorator(func: Callable) -> Callable:
        @wraps(func)
        def wrapper(*args, **kwargs):
            operations_total.labels(
                operation=operation, status=OperationStatus.STARTED.value
            ).inc()

            with track_duration(operation_duration_seconds, {"operation": operation}):
                try:
                    result = func(*args, **kwargs)
                except Exception:
                    operations_total.labels(
                        operation=operation, status=OperationStatus.FAILED.value
                    ).inc()
                    raise

            operations_total.labels(
                operation=operation, status=OperationStatus.SUCCESS.value
            ).inc()
            return result

        return wrapper

    return decorator


def record_table_load(table: str, accepted: int, rejected: int) -> None:
    """
    Atualiza contadores de linhas de uma tabela carregada.

    Args:
        table: Nome da tabela
        accepted: Linhas aceitas
        rejected: Linhas rejeitadas
    """
    rows_loaded_total.labels(table=table).inc(accepted)
    rows_rejected_total.labels(table=table).inc(rejected)


def get_metrics() -> bytes:
    """
    Retorna métricas em formato Prometheus.

    Returns:
        Métricas serializadas
    """
    return generate_latest(REGISTRY)
