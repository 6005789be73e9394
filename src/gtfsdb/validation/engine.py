"""
Motor de Validação.

Executa uma sequência ordenada de regras independentes sobre um
namespace carregado. Cada regra lê apenas as tabelas de que precisa e
produz zero ou mais `ValidationError`. A validação roda dentro de uma
transação sempre revertida: o namespace nunca é alterado.
"""

import time
from collections import Counter
from dataclasses import dataclass, field
from datetime import date, datetime, timedelta
from typing import Any, Dict, Iterable, Iterator, List, Optional, Sequence, Set

import sqlalchemy as sa
from sqlalchemy.engine import Connection, Engine
from sqlalchemy.exc import SQLAlchemyError

from ..common.constants import ID_COLUMN, Operation
from ..common.exceptions import TransactionFailedException
from ..common.logging_config import get_logger
from ..common.metrics import validation_findings_total
from ..common.utils import elapsed_since
from ..schema.fields import DATE_FORMAT
from ..storage.namespace_store import NamespaceStore, ensure_valid_namespace
from .errors import Priority, ValidationError

WEEKDAY_COLUMNS = ("monday", "tuesday", "wednesday", "thursday", "friday", "saturday", "sunday")

# calendar_dates.exception_type
SERVICE_ADDED = 1
SERVICE_REMOVED = 2


# =============================================================================
# Context
# =============================================================================


class ValidationContext:
    """
    Acesso somente-leitura às tabelas de um namespace.

    Mantém em cache a expansão das datas de serviço (`calendar` +
    `calendar_dates`), compartilhada entre as regras.
    """

    def __init__(self, conn: Connection, store: NamespaceStore, namespace: str, editor: bool):
        self.conn = conn
        self.store = store
        self.namespace = namespace
        self.editor = editor
        self._service_dates: Optional[Dict[str, Set[date]]] = None

    def table(self, name: str) -> sa.Table:
        return self.store.table(self.namespace, name, editor=self.editor)

    def rows(self, name: str, *columns: str) -> Iterator[Any]:
        """Itera linhas de uma tabela (colunas escolhidas) em ordem de id."""
        table = self.table(name)
        selected = [table.c[c] for c in columns] if columns else [table]
        statement = sa.select(*selected).order_by(table.c[ID_COLUMN])
        return iter(self.conn.execute(statement))

    def execute(self, statement) -> Iterator[Any]:
        return iter(self.conn.execute(statement))

    def service_dates(self) -> Dict[str, Set[date]]:
        """
        Datas ativas por service_id.

        Dias da semana marcados em `calendar` entre start_date e end_date,
        mais adições (tipo 1) e menos remoções (tipo 2) de `calendar_dates`.
        """
        if self._service_dates is not None:
            return self._service_dates

        dates: Dict[str, Set[date]] = {}
        calendar_columns = ("service_id", "start_date", "end_date") + WEEKDAY_COLUMNS
        for row in self.rows("calendar", *calendar_columns):
            active = dates.setdefault(row.service_id, set())
            weekdays = {i for i, name in enumerate(WEEKDAY_COLUMNS) if getattr(row, name) == 1}
            current = _parse_date(row.start_date)
            end = _parse_date(row.end_date)
            while current <= end:
                if current.weekday() in weekdays:
                    active.add(current)
                current += timedelta(days=1)

        for row in self.rows("calendar_dates", "service_id", "date", "exception_type"):
            active = dates.setdefault(row.service_id, set())
            day = _parse_date(row.date)
            if row.exception_type == SERVICE_ADDED:
                active.add(day)
            elif row.exception_type == SERVICE_REMOVED:
                active.discard(day)

        self._service_dates = dates
        return dates

    def services_share_date(self, service_a: str, service_b: str) -> bool:
        """Indica se dois serviços estão ativos em pelo menos uma mesma data."""
        dates = self.service_dates()
        return not dates.get(service_a, set()).isdisjoint(dates.get(service_b, set()))


def _parse_date(value: str) -> date:
    return datetime.strptime(value, DATE_FORMAT).date()


# =============================================================================
# Validator Base
# =============================================================================


class FeedValidator:
    """Regra de validação. Subclasses definem `name` e `validate`."""

    name: str = "feed_validator"

    def validate(self, context: ValidationContext) -> Iterable[ValidationError]:
        raise NotImplementedError


# =============================================================================
# Result
# =============================================================================


@dataclass
class ValidationResult:
    """Relatório de validação de um namespace."""

    namespace: str
    errors: List[ValidationError] = field(default_factory=list)
    validators_run: List[str] = field(default_factory=list)
    elapsed_seconds: float = 0.0

    @property
    def error_count(self) -> int:
        return len(self.errors)

    @property
    def error_counts_by_priority(self) -> Dict[str, int]:
        counts = Counter(error.priority.value for error in self.errors)
        return {priority.value: counts.get(priority.value, 0) for priority in Priority}

    def to_dict(self) -> Dict[str, Any]:
        return {
            "namespace": self.namespace,
            "error_count": self.error_count,
            "error_counts_by_priority": self.error_counts_by_priority,
            "validators_run": list(self.validators_run),
            "elapsed_seconds": self.elapsed_seconds,
            "errors": [error.to_dict() for error in self.errors],
        }


# =============================================================================
# Engine
# =============================================================================


class ValidationEngine:
    """Executa as regras de validação sobre um namespace."""

    def __init__(self, engine: Engine, validators: Optional[Sequence[FeedValidator]] = None):
        """
        Args:
            engine: Provedor de conexões
            validators: Regras a executar (padrão: `default_validators()`)
        """
        # Import tardio: validators importa este módulo
        from .validators import default_validators

        self.engine = engine
        self.validators = list(validators) if validators is not None else default_validators()
        self.store = NamespaceStore(engine)

    def validate(self, namespace: str) -> ValidationResult:
        """
        Valida um namespace.

        Raises:
            InvalidNamespaceException: Namespace malformado
            NamespaceNotFoundException: Namespace não registrado
            TransactionFailedException: Falha de leitura no banco
        """
        ensure_valid_namespace(namespace)
        logger = get_logger(
            self.__class__.__name__, namespace=namespace, operation=Operation.VALIDATE.value
        )
        start = time.monotonic()
        result = ValidationResult(namespace=namespace)

        try:
            with self.engine.connect() as conn:
                transaction = conn.begin()
                try:
                    record = self.store.require_namespace(conn, namespace)
                    context = ValidationContext(conn, self.store, namespace, record.is_editor)

                    for validator in self.validators:
                        findings = list(validator.validate(context))
                        for finding in findings:
                            validation_findings_total.labels(
                                rule=finding.error_type.value, priority=finding.priority.value
                            ).inc()
                        result.errors.extend(findings)
                        result.validators_run.append(validator.name)
                        logger.debug(f"Validator {validator.name} found {len(findings)} issues")
                finally:
                    transaction.rollback()
        except SQLAlchemyError as e:
            raise TransactionFailedException(Operation.VALIDATE.value, namespace, str(e)) from e

        result.elapsed_seconds = elapsed_since(start)
        logger.info(
            f"Validation of {namespace} found {result.error_count} issues "
            f"in {result.elapsed_seconds:.2f}s",
            extra={"by_priority": result.error_counts_by_priority},
        )
        return result
