"""
GTFS DB - Validation Module

Motor de validação e regras sobre namespaces carregados.
"""

from .engine import FeedValidator, ValidationContext, ValidationEngine, ValidationResult
from .errors import Priority, ValidationError, ValidationErrorType
from .validators import (
    OverlappingTripsInBlockValidator,
    RouteNameValidator,
    TripWithoutStopTimesValidator,
    default_validators,
)

__all__ = [
    "FeedValidator",
    "ValidationContext",
    "ValidationEngine",
    "ValidationResult",
    "Priority",
    "ValidationError",
    "ValidationErrorType",
    "OverlappingTripsInBlockValidator",
    "RouteNameValidator",
    "TripWithoutStopTimesValidator",
    "default_validators",
]
