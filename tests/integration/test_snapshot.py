"""
Testes de Integração - Snapshots de Edição
"""

import pytest
import sqlalchemy as sa
from sqlalchemy.exc import OperationalError

from gtfsdb import gtfs
from gtfsdb.common.exceptions import (
    InvalidNamespaceException,
    NamespaceNotFoundException,
    TransactionFailedException,
)
from gtfsdb.schema.tables import EDITOR_TABLES, TABLES, get_table
from gtfsdb.storage.namespace_store import NamespaceStore

from tests.conftest import csv_text, sample_feed_files, stop_times_rows


def column_names(engine, store, namespace, table_name):
    _, physical = store.physical_name(namespace, table_name)
    return {column["name"] for column in sa.inspect(engine).get_columns(physical)}


def fetch(engine, store, namespace, table_name, columns, editor):
    table = store.table(namespace, table_name, editor=editor)
    with engine.connect() as conn:
        return [
            tuple(row)
            for row in conn.execute(sa.select(*(table.c[c] for c in columns)).order_by(table.c.id))
        ]


@pytest.fixture
def loaded(engine, sample_feed):
    return gtfs.load(sample_feed, engine)


class TestSnapshot:
    """Testes para cópia de namespaces."""

    def test_row_counts_match_source(self, engine, loaded):
        snapshot = gtfs.make_snapshot(loaded.namespace, engine)

        assert snapshot.completed is True
        assert snapshot.source_namespace == loaded.namespace
        assert snapshot.namespace != loaded.namespace
        assert snapshot.tables["stop_times"] == 500
        assert snapshot.tables["routes"] == 3
        assert snapshot.tables["shapes"] == 0

    def test_columns_are_superset(self, engine, store, loaded):
        snapshot = gtfs.make_snapshot(loaded.namespace, engine)

        for definition in TABLES:
            source = column_names(engine, store, loaded.namespace, definition.name)
            copied = column_names(engine, store, snapshot.namespace, definition.name)
            assert source <= copied, definition.name

        assert "status" in column_names(engine, store, snapshot.namespace, "routes")
        assert "pattern_id" in column_names(engine, store, snapshot.namespace, "trips")

    def test_shared_values_preserved(self, engine, store, loaded):
        snapshot = gtfs.make_snapshot(loaded.namespace, engine)

        for name in ("stop_times", "routes", "stops", "calendar"):
            columns = get_table(name).column_names()
            source = fetch(engine, store, loaded.namespace, name, columns, editor=False)
            copied = fetch(engine, store, snapshot.namespace, name, columns, editor=True)
            assert source == copied, name

    def test_surrogate_ids_are_dense(self, engine, store, loaded):
        snapshot = gtfs.make_snapshot(loaded.namespace, engine)

        ids = [row[0] for row in fetch(engine, store, snapshot.namespace, "routes", ["id"], editor=True)]
        assert ids == [1, 2, 3]

    def test_editor_defaults(self, engine, store, loaded):
        snapshot = gtfs.make_snapshot(loaded.namespace, engine)

        rows = fetch(engine, store, snapshot.namespace, "routes", ["status", "publicly_visible"], editor=True)
        assert rows == [(0, 0)] * 3

    def test_registry_entry(self, engine, store, loaded):
        snapshot = gtfs.make_snapshot(loaded.namespace, engine)

        with engine.connect() as conn:
            record = store.get_feed(conn, snapshot.namespace)
        assert record.snapshot_of == loaded.namespace
        assert record.is_editor is True
        assert record.md5 == loaded.md5
        assert record.feed_version == "2024-01"

    def test_snapshot_of_snapshot_keeps_editor_values(self, engine, store, loaded):
        first = gtfs.make_snapshot(loaded.namespace, engine)

        routes = store.table(first.namespace, "routes", editor=True)
        with engine.begin() as conn:
            conn.execute(sa.update(routes).where(routes.c.route_id == "R2").values(status=2))

        second = gtfs.make_snapshot(first.namespace, engine)

        rows = fetch(engine, store, second.namespace, "routes", ["route_id", "status"], editor=True)
        assert rows == [("R1", 0), ("R2", 2), ("R3", 0)]

    def test_source_untouched(self, engine, store, loaded):
        columns = get_table("trips").column_names()
        before = fetch(engine, store, loaded.namespace, "trips", ["id"] + columns, editor=False)

        gtfs.make_snapshot(loaded.namespace, engine)

        assert fetch(engine, store, loaded.namespace, "trips", ["id"] + columns, editor=False) == before

    def test_unknown_source(self, engine, store):
        with pytest.raises(NamespaceNotFoundException):
            gtfs.make_snapshot("nothere", engine)
        assert store.list_physical_namespaces() == []

    def test_invalid_source(self, engine):
        with pytest.raises(InvalidNamespaceException):
            gtfs.make_snapshot("x; DROP SCHEMA public", engine)

    def test_failed_copy_leaves_nothing(self, engine, store, loaded, mocker):
        mocker.patch.object(
            NamespaceStore,
            "register_feed",
            side_effect=OperationalError("INSERT INTO feeds", {}, Exception("disk I/O error")),
        )
        with pytest.raises(TransactionFailedException):
            gtfs.make_snapshot(loaded.namespace, engine)
        mocker.stopall()

        assert store.list_physical_namespaces() == [loaded.namespace]
        assert [feed.namespace for feed in store.list_feeds()] == [loaded.namespace]


class TestTripPatterns:
    """Testes para os padrões de viagem gerados no snapshot."""

    def pattern_of(self, engine, store, namespace):
        rows = fetch(engine, store, namespace, "trips", ["trip_id", "pattern_id"], editor=True)
        return dict(rows)

    def test_one_pattern_per_route(self, engine, store, loaded):
        snapshot = gtfs.make_snapshot(loaded.namespace, engine)

        assert snapshot.tables["patterns"] == 3
        assert snapshot.tables["pattern_stops"] == 150
        rows = fetch(
            engine, store, snapshot.namespace, "patterns",
            ["pattern_id", "route_id", "direction_id", "name"], editor=True,
        )
        assert rows == [
            ("1", "R1", 0, "50 stops from S1 to S50 (4 trips)"),
            ("2", "R2", 1, "50 stops from S1 to S50 (3 trips)"),
            ("3", "R3", 0, "50 stops from S1 to S50 (3 trips)"),
        ]

    def test_trips_reference_their_pattern(self, engine, store, loaded):
        snapshot = gtfs.make_snapshot(loaded.namespace, engine)

        patterns = self.pattern_of(engine, store, snapshot.namespace)
        assert {trip for trip, pattern in patterns.items() if pattern == "1"} == {"T1", "T4", "T7", "T10"}
        assert {trip for trip, pattern in patterns.items() if pattern == "2"} == {"T2", "T5", "T8"}
        assert {trip for trip, pattern in patterns.items() if pattern == "3"} == {"T3", "T6", "T9"}

    def test_pattern_stop_defaults(self, engine, store, loaded):
        snapshot = gtfs.make_snapshot(loaded.namespace, engine)

        rows = fetch(
            engine, store, snapshot.namespace, "pattern_stops",
            ["pattern_id", "stop_sequence", "stop_id", "default_travel_time", "default_dwell_time"],
            editor=True,
        )
        first_pattern = [row for row in rows if row[0] == "1"]
        assert first_pattern[0] == ("1", 0, "S1", 0, 0)
        assert first_pattern[1] == ("1", 1, "S2", 60, 0)
        assert first_pattern[-1] == ("1", 49, "S50", 60, 0)

    def test_different_stop_sequence_is_new_pattern(self, engine, store, make_feed):
        files = sample_feed_files()
        files["trips.txt"] += "R1,WK,T11,Curta,0,\nR1,WK,T12,Vazia,0,\n"
        files["stop_times.txt"] += csv_text(stop_times_rows("T11", 5 * 3600, stop_count=10))
        loaded = gtfs.load(make_feed(files), engine)

        snapshot = gtfs.make_snapshot(loaded.namespace, engine)

        assert snapshot.tables["patterns"] == 4
        assert snapshot.tables["pattern_stops"] == 160
        patterns = self.pattern_of(engine, store, snapshot.namespace)
        assert patterns["T11"] == "2"
        assert patterns["T1"] == patterns["T10"] == "1"
        # Viagem sem stop_times fica sem padrão
        assert patterns["T12"] is None

    def test_snapshot_of_snapshot_copies_patterns(self, engine, store, loaded):
        first = gtfs.make_snapshot(loaded.namespace, engine)
        second = gtfs.make_snapshot(first.namespace, engine)

        assert second.tables["patterns"] == 3
        assert second.tables["pattern_stops"] == 150
        for name in ("patterns", "pattern_stops"):
            columns = get_table(name).column_names()
            assert fetch(engine, store, first.namespace, name, columns, editor=True) == fetch(
                engine, store, second.namespace, name, columns, editor=True
            ), name
        assert self.pattern_of(engine, store, second.namespace) == self.pattern_of(
            engine, store, first.namespace
        )

    def test_load_namespace_has_no_pattern_tables(self, engine, store, loaded):
        tables = set(sa.inspect(engine).get_table_names())

        for definition in EDITOR_TABLES:
            _, physical = store.physical_name(loaded.namespace, definition.name)
            assert physical not in tables

    def test_delete_drops_pattern_tables(self, engine, store, loaded):
        snapshot = gtfs.make_snapshot(loaded.namespace, engine)

        gtfs.delete(snapshot.namespace, engine)

        tables = set(sa.inspect(engine).get_table_names())
        assert not any(name.startswith(f"{snapshot.namespace}__") for name in tables)
