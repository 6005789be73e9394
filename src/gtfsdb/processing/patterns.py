"""
Padrões de Viagem.

Um padrão agrupa as viagens de uma rota que visitam as mesmas paradas, na
mesma ordem e com os mesmos tipos de embarque/desembarque. Ao criar um
snapshot a partir de uma carga, os padrões são derivados de `trips` e
`stop_times` e gravados em `patterns`, `pattern_stops` e
`trips.pattern_id`.

Tempos padrão (deslocamento e permanência) e demais atributos de cada
parada do padrão vêm da primeira viagem encontrada.
"""

from dataclasses import dataclass, field
from itertools import groupby
from typing import Any, Dict, Iterable, List, Optional, Tuple

import sqlalchemy as sa
from sqlalchemy.engine import Connection

from ..common.config import get_config
from ..common.constants import Operation
from ..common.logging_config import get_logger
from ..schema.fields import is_missing
from ..schema.tables import PATTERN_STOPS, PATTERNS, TRIPS
from ..storage.namespace_store import NamespaceStore

# Colunas de stop_times repassadas sem alteração para pattern_stops
COPIED_STOP_COLUMNS = (
    "shape_dist_traveled",
    "pickup_type",
    "drop_off_type",
    "timepoint",
    "continuous_pickup",
    "continuous_drop_off",
    "location_id",
    "start_pickup_drop_off_window",
    "end_pickup_drop_off_window",
    "pickup_booking_rule_id",
    "drop_off_booking_rule_id",
    "mean_duration_factor",
    "mean_duration_offset",
    "safe_duration_factor",
    "safe_duration_offset",
)


@dataclass
class TripPattern:
    """Padrão descoberto e as viagens que o seguem."""

    pattern_id: str
    route_id: str
    direction_id: Optional[int]
    shape_id: Optional[str]
    stops: List[Any]
    trip_ids: List[str] = field(default_factory=list)

    @property
    def name(self) -> str:
        first = self.stops[0].stop_id or self.stops[0].location_id
        last = self.stops[-1].stop_id or self.stops[-1].location_id
        return (
            f"{len(self.stops)} stops from {first} to {last} "
            f"({len(self.trip_ids)} trips)"
        )


def pattern_key(route_id: str, stops: Iterable[Any]) -> Tuple[Any, ...]:
    """Chave que identifica um padrão: rota + sequência de paradas."""
    return (
        route_id,
        tuple((s.stop_id, s.location_id, s.pickup_type, s.drop_off_type) for s in stops),
    )


class PatternBuilder:
    """
    Deriva os padrões de viagem de um namespace de edição.

    Lê `stop_times` em fluxo, agrupado por viagem; apenas as paradas da
    primeira viagem de cada padrão ficam em memória.
    """

    def __init__(self, store: NamespaceStore, namespace: str, batch_size: Optional[int] = None):
        """
        Args:
            store: Store do namespace
            namespace: Namespace de edição já populado
            batch_size: Linhas por INSERT/UPDATE em lote
        """
        self.store = store
        self.namespace = namespace
        self.batch_size = batch_size or get_config().INSERT_BATCH_SIZE
        self.logger = get_logger(
            self.__class__.__name__, namespace=namespace, operation=Operation.SNAPSHOT.value
        )

    def build(self, conn: Connection) -> List[TripPattern]:
        """
        Descobre e grava os padrões.

        Viagens sem stop_times ficam sem padrão (`pattern_id` nulo).

        Returns:
            Padrões na ordem de descoberta (ids "1", "2", ...)
        """
        patterns = self.find_patterns(conn)
        self._insert_patterns(conn, patterns)
        self._assign_trips(conn, patterns)

        self.logger.info(
            f"Found {len(patterns)} trip patterns",
            extra={"trips": sum(len(p.trip_ids) for p in patterns)},
        )
        return patterns

    def find_patterns(self, conn: Connection) -> List[TripPattern]:
        trips_table = self.store.table(self.namespace, TRIPS, editor=True)
        trips = {
            row.trip_id: row
            for row in conn.execute(
                sa.select(
                    trips_table.c.trip_id,
                    trips_table.c.route_id,
                    trips_table.c.direction_id,
                    trips_table.c.shape_id,
                )
            )
        }

        stop_times = self.store.table(self.namespace, "stop_times", editor=True)
        statement = (
            sa.select(
                stop_times.c.trip_id,
                stop_times.c.stop_id,
                stop_times.c.arrival_time,
                stop_times.c.departure_time,
                *(stop_times.c[name] for name in COPIED_STOP_COLUMNS),
            )
            .order_by(stop_times.c.trip_id, stop_times.c.stop_sequence)
            .execution_options(yield_per=self.batch_size)
        )

        patterns: Dict[Tuple[Any, ...], TripPattern] = {}
        for trip_id, rows in groupby(conn.execute(statement), key=lambda row: row.trip_id):
            trip = trips.get(trip_id)
            if trip is None:
                continue
            stops = list(rows)
            key = pattern_key(trip.route_id, stops)
            pattern = patterns.get(key)
            if pattern is None:
                pattern = TripPattern(
                    pattern_id=str(len(patterns) + 1),
                    route_id=trip.route_id,
                    direction_id=trip.direction_id,
                    shape_id=trip.shape_id,
                    stops=stops,
                )
                patterns[key] = pattern
            pattern.trip_ids.append(trip_id)

        return list(patterns.values())

    def _insert_patterns(self, conn: Connection, patterns: List[TripPattern]) -> None:
        if not patterns:
            return

        conn.execute(
            sa.insert(self.store.table(self.namespace, PATTERNS, editor=True)),
            [
                {
                    "pattern_id": p.pattern_id,
                    "route_id": p.route_id,
                    "name": p.name,
                    "direction_id": p.direction_id,
                    "shape_id": p.shape_id,
                }
                for p in patterns
            ],
        )

        statement = sa.insert(self.store.table(self.namespace, PATTERN_STOPS, editor=True))
        batch: List[Dict[str, Any]] = []
        for pattern in patterns:
            batch.extend(pattern_stop_rows(pattern))
            if len(batch) >= self.batch_size:
                conn.execute(statement, batch)
                batch = []
        if batch:
            conn.execute(statement, batch)

    def _assign_trips(self, conn: Connection, patterns: List[TripPattern]) -> None:
        trips = self.store.table(self.namespace, TRIPS, editor=True)
        statement = (
            sa.update(trips)
            .where(trips.c.trip_id == sa.bindparam("b_trip_id"))
            .values(pattern_id=sa.bindparam("b_pattern_id"))
        )
        rows = [
            {"b_trip_id": trip_id, "b_pattern_id": pattern.pattern_id}
            for pattern in patterns
            for trip_id in pattern.trip_ids
        ]
        for start in range(0, len(rows), self.batch_size):
            conn.execute(statement, rows[start:start + self.batch_size])


def pattern_stop_rows(pattern: TripPattern) -> List[Dict[str, Any]]:
    """
    Linhas de pattern_stops de um padrão, com sequência a partir de 0.

    Deslocamento = chegada na parada - partida da anterior; permanência =
    partida - chegada. Ficam nulos quando algum horário falta.
    """
    rows = []
    previous_departure = None
    for sequence, stop in enumerate(pattern.stops):
        arrival = _known_time(stop.arrival_time)
        departure = _known_time(stop.departure_time)

        travel_time = None
        if sequence == 0:
            travel_time = 0
        elif arrival is not None and previous_departure is not None:
            travel_time = arrival - previous_departure

        dwell_time = None
        if arrival is not None and departure is not None:
            dwell_time = departure - arrival

        row = {
            "pattern_id": pattern.pattern_id,
            "stop_sequence": sequence,
            "stop_id": stop.stop_id,
            "default_travel_time": travel_time,
            "default_dwell_time": dwell_time,
        }
        row.update({name: getattr(stop, name) for name in COPIED_STOP_COLUMNS})
        rows.append(row)

        if departure is not None:
            previous_departure = departure
    return rows


def _known_time(value: Optional[int]) -> Optional[int]:
    if value is None or is_missing(value):
        return None
    return value
