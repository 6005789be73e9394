"""
Achados de validação.

Achados são dados: nunca são lançados como exceção, independentemente da
prioridade.
"""

import dataclasses
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, List, Optional


class Priority(str, Enum):
    """Severidade de um achado."""

    HIGH = "HIGH"
    MEDIUM = "MEDIUM"
    LOW = "LOW"
    UNKNOWN = "UNKNOWN"


class ValidationErrorType(str, Enum):
    """Códigos das regras de validação."""

    TRIP_OVERLAP_IN_BLOCK = "TRIP_OVERLAP_IN_BLOCK"
    ROUTE_SHORT_AND_LONG_NAME_MISSING = "ROUTE_SHORT_AND_LONG_NAME_MISSING"
    TRIP_WITHOUT_STOP_TIMES = "TRIP_WITHOUT_STOP_TIMES"


@dataclass
class ValidationError:
    """
    Achado de uma regra de validação.

    Attributes:
        error_type: Código da regra
        priority: Severidade
        table: Tabela da entidade afetada
        line: Linha (id) da entidade afetada
        field: Coluna envolvida
        affected_entity_id: Id da entidade afetada (ex: block_id)
        trip_ids: Viagens envolvidas
        route_id: Rota associada
        message: Mensagem legível
    """

    error_type: ValidationErrorType
    priority: Priority
    table: Optional[str] = None
    line: Optional[int] = None
    field: Optional[str] = None
    affected_entity_id: Optional[str] = None
    trip_ids: List[str] = dataclasses.field(default_factory=list)
    route_id: Optional[str] = None
    message: str = ""

    def to_dict(self) -> Dict[str, Any]:
        return {
            "error_type": self.error_type.value,
            "priority": self.priority.value,
            "table": self.table,
            "line": self.line,
            "field": self.field,
            "affected_entity_id": self.affected_entity_id,
            "trip_ids": list(self.trip_ids),
            "route_id": self.route_id,
            "message": self.message,
        }
