"""
Regras de Validação.

Cada regra é independente: não lê nem suprime achados de outras regras.
A ordem de execução afeta apenas a ordem do relatório.
"""

from collections import defaultdict
from dataclasses import dataclass
from typing import Dict, Iterator, List

import sqlalchemy as sa

from ..common.constants import ID_COLUMN
from .engine import FeedValidator, ValidationContext
from .errors import Priority, ValidationError, ValidationErrorType


# =============================================================================
# Block Overlap
# =============================================================================


@dataclass
class TripSpan:
    """Intervalo ativo de uma viagem, em segundos desde o início do dia."""

    trip_id: str
    route_id: str
    service_id: str
    line: int
    start: int
    end: int


class OverlappingTripsInBlockValidator(FeedValidator):
    """
    Viagens do mesmo bloco (mesmo veículo) não podem se sobrepor no tempo
    em nenhuma data em que ambas operam.

    Cada par sobreposto gera um achado HIGH com os dois trip_ids, o
    block_id e a rota.
    """

    name = "overlapping_trips_in_block"

    def validate(self, context: ValidationContext) -> Iterator[ValidationError]:
        spans = self._trip_spans(context)

        blocks: Dict[str, List[TripSpan]] = defaultdict(list)
        trips = context.table("trips")
        statement = (
            sa.select(
                trips.c[ID_COLUMN],
                trips.c.trip_id,
                trips.c.route_id,
                trips.c.service_id,
                trips.c.block_id,
            )
            .where(trips.c.block_id.isnot(None))
            .order_by(trips.c[ID_COLUMN])
        )
        for row in context.execute(statement):
            span = spans.get(row.trip_id)
            if span is None:
                continue
            blocks[row.block_id].append(
                TripSpan(row.trip_id, row.route_id, row.service_id, row[0], span[0], span[1])
            )

        for block_id in sorted(blocks):
            yield from self._check_block(context, block_id, blocks[block_id])

    def _trip_spans(self, context: ValidationContext) -> Dict[str, tuple]:
        """(início, fim) de cada viagem a partir de seus stop_times."""
        stop_times = context.table("stop_times")
        statement = sa.select(
            stop_times.c.trip_id,
            sa.func.min(stop_times.c.arrival_time),
            sa.func.max(stop_times.c.arrival_time),
            sa.func.min(stop_times.c.departure_time),
            sa.func.max(stop_times.c.departure_time),
        ).group_by(stop_times.c.trip_id)

        spans = {}
        for trip_id, min_arrival, max_arrival, min_departure, max_departure in context.execute(
            statement
        ):
            starts = [t for t in (min_arrival, min_departure) if t is not None]
            ends = [t for t in (max_arrival, max_departure) if t is not None]
            if starts and ends:
                spans[trip_id] = (min(starts), max(ends))
        return spans

    def _check_block(
        self, context: ValidationContext, block_id: str, spans: List[TripSpan]
    ) -> Iterator[ValidationError]:
        spans.sort(key=lambda s: (s.start, s.end, s.trip_id))
        for i, first in enumerate(spans):
            for second in spans[i + 1:]:
                # Ordenado por início: nenhuma viagem seguinte pode sobrepor
                if second.start >= first.end:
                    break
                if not context.services_share_date(first.service_id, second.service_id):
                    continue
                yield ValidationError(
                    error_type=ValidationErrorType.TRIP_OVERLAP_IN_BLOCK,
                    priority=Priority.HIGH,
                    table="trips",
                    line=first.line,
                    field="block_id",
                    affected_entity_id=block_id,
                    trip_ids=[first.trip_id, second.trip_id],
                    route_id=first.route_id,
                    message=(
                        f"Trip Ids {first.trip_id} & {second.trip_id} "
                        f"overlap and share block Id {block_id}"
                    ),
                )


# =============================================================================
# Routes
# =============================================================================


class RouteNameValidator(FeedValidator):
    """Rotas precisam de route_short_name ou route_long_name."""

    name = "route_name"

    def validate(self, context: ValidationContext) -> Iterator[ValidationError]:
        rows = context.rows("routes", ID_COLUMN, "route_id", "route_short_name", "route_long_name")
        for row in rows:
            if row.route_short_name or row.route_long_name:
                continue
            yield ValidationError(
                error_type=ValidationErrorType.ROUTE_SHORT_AND_LONG_NAME_MISSING,
                priority=Priority.MEDIUM,
                table="routes",
                line=row[0],
                field="route_short_name",
                affected_entity_id=row.route_id,
                route_id=row.route_id,
                message=f"Route {row.route_id} has neither a short nor a long name",
            )


# =============================================================================
# Trips
# =============================================================================


class TripWithoutStopTimesValidator(FeedValidator):
    """Toda viagem precisa de ao menos um stop_time."""

    name = "trip_without_stop_times"

    def validate(self, context: ValidationContext) -> Iterator[ValidationError]:
        trips = context.table("trips")
        stop_times = context.table("stop_times")
        has_stop_times = (
            sa.select(stop_times.c.trip_id)
            .where(stop_times.c.trip_id == trips.c.trip_id)
            .exists()
        )
        statement = (
            sa.select(trips.c[ID_COLUMN], trips.c.trip_id, trips.c.route_id)
            .where(~has_stop_times)
            .order_by(trips.c[ID_COLUMN])
        )
        for row in context.execute(statement):
            yield ValidationError(
                error_type=ValidationErrorType.TRIP_WITHOUT_STOP_TIMES,
                priority=Priority.MEDIUM,
                table="trips",
                line=row[0],
                field="trip_id",
                affected_entity_id=row.trip_id,
                trip_ids=[row.trip_id],
                route_id=row.route_id,
                message=f"Trip {row.trip_id} has no stop times",
            )


def default_validators() -> List[FeedValidator]:
    """Regras executadas por padrão, na ordem do relatório."""
    return [
        OverlappingTripsInBlockValidator(),
        RouteNameValidator(),
        TripWithoutStopTimesValidator(),
    ]
