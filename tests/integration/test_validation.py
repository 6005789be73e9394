"""
Testes de Integração - Validação de Feeds
"""

import pytest
import sqlalchemy as sa

from gtfsdb import gtfs
from gtfsdb.common.exceptions import InvalidNamespaceException, NamespaceNotFoundException
from gtfsdb.validation import (
    FeedValidator,
    OverlappingTripsInBlockValidator,
    Priority,
    ValidationEngine,
    ValidationErrorType,
)

from tests.conftest import csv_text, sample_feed_files, stop_times_rows

TRIPS_HEADER = ["route_id", "service_id", "trip_id", "trip_headsign", "direction_id", "block_id"]
STOP_TIMES_HEADER = ["trip_id", "arrival_time", "departure_time", "stop_id", "stop_sequence"]
CALENDAR_HEADER = [
    "service_id", "monday", "tuesday", "wednesday", "thursday", "friday",
    "saturday", "sunday", "start_date", "end_date",
]


def two_trip_feed(second_service="WK", second_start=6 * 3600 + 30 * 60, calendar_dates=None):
    """T1 (06:00-06:49) e T2 no bloco B1."""
    files = {
        "trips.txt": csv_text(
            [
                TRIPS_HEADER,
                ["R1", "WK", "T1", "Centro", 0, "B1"],
                ["R2", second_service, "T2", "Bairro", 1, "B1"],
            ]
        ),
        "stop_times.txt": csv_text(
            [STOP_TIMES_HEADER]
            + stop_times_rows("T1", 6 * 3600)
            + stop_times_rows("T2", second_start)
        ),
        "calendar.txt": csv_text(
            [
                CALENDAR_HEADER,
                ["WK", 1, 1, 1, 1, 1, 0, 0, "20240101", "20241231"],
                ["WE", 0, 0, 0, 0, 0, 1, 1, "20240101", "20241231"],
            ]
        ),
    }
    if calendar_dates is not None:
        files["calendar_dates.txt"] = calendar_dates
    return files


def overlap_errors(result):
    return [e for e in result.errors if e.error_type is ValidationErrorType.TRIP_OVERLAP_IN_BLOCK]


class TestOverlappingTripsInBlock:
    """Testes para viagens sobrepostas no mesmo bloco."""

    def test_sample_feed_has_no_overlaps(self, engine, sample_feed):
        loaded = gtfs.load(sample_feed, engine)
        result = gtfs.validate(loaded.namespace, engine)

        assert result.errors == []
        assert "overlapping_trips_in_block" in result.validators_run

    def test_overlap_reported_once(self, engine, make_feed):
        loaded = gtfs.load(make_feed(two_trip_feed()), engine)
        result = gtfs.validate(loaded.namespace, engine)

        (error,) = overlap_errors(result)
        assert error.priority is Priority.HIGH
        assert error.trip_ids == ["T1", "T2"]
        assert error.affected_entity_id == "B1"
        assert error.route_id == "R1"
        assert error.table == "trips"
        assert error.line == 2
        assert error.message == "Trip Ids T1 & T2 overlap and share block Id B1"

    def test_back_to_back_trips_do_not_overlap(self, engine, make_feed):
        # T1 termina 06:49; T2 começa exatamente nesse instante
        loaded = gtfs.load(make_feed(two_trip_feed(second_start=6 * 3600 + 49 * 60)), engine)
        result = gtfs.validate(loaded.namespace, engine)

        assert overlap_errors(result) == []

    def test_disjoint_service_days_do_not_overlap(self, engine, make_feed):
        loaded = gtfs.load(make_feed(two_trip_feed(second_service="WE")), engine)
        result = gtfs.validate(loaded.namespace, engine)

        assert overlap_errors(result) == []

    def test_calendar_dates_addition_creates_shared_day(self, engine, make_feed):
        # 2024-01-02 é uma terça-feira
        calendar_dates = csv_text([["service_id", "date", "exception_type"], ["WE", "20240102", 1]])
        files = two_trip_feed(second_service="WE", calendar_dates=calendar_dates)
        loaded = gtfs.load(make_feed(files), engine)
        result = gtfs.validate(loaded.namespace, engine)

        assert len(overlap_errors(result)) == 1

    def test_calendar_dates_removal_clears_shared_day(self, engine, make_feed):
        calendar = csv_text(
            [
                CALENDAR_HEADER,
                ["WK", 1, 1, 1, 1, 1, 0, 0, "20240101", "20241231"],
                ["ONE", 0, 1, 0, 0, 0, 0, 0, "20240102", "20240102"],
            ]
        )
        calendar_dates = csv_text([["service_id", "date", "exception_type"], ["ONE", "20240102", 2]])
        files = two_trip_feed(second_service="ONE", calendar_dates=calendar_dates)
        files["calendar.txt"] = calendar
        loaded = gtfs.load(make_feed(files), engine)
        result = gtfs.validate(loaded.namespace, engine)

        assert overlap_errors(result) == []

    def test_runs_on_snapshots(self, engine, make_feed):
        loaded = gtfs.load(make_feed(two_trip_feed()), engine)
        snapshot = gtfs.make_snapshot(loaded.namespace, engine)

        result = ValidationEngine(engine, [OverlappingTripsInBlockValidator()]).validate(
            snapshot.namespace
        )

        assert len(result.errors) == 1
        assert result.validators_run == ["overlapping_trips_in_block"]


class TestOtherRules:
    """Testes para as demais regras padrão."""

    def test_route_without_names(self, engine, make_feed):
        routes = sample_feed_files()["routes.txt"] + "R4,A1,,,3,\n"
        loaded = gtfs.load(make_feed({"routes.txt": routes}), engine)
        result = gtfs.validate(loaded.namespace, engine)

        (error,) = result.errors
        assert error.error_type is ValidationErrorType.ROUTE_SHORT_AND_LONG_NAME_MISSING
        assert error.priority is Priority.MEDIUM
        assert error.route_id == "R4"
        assert error.line == 5

    def test_trip_without_stop_times(self, engine, make_feed):
        trips = sample_feed_files()["trips.txt"] + "R1,WK,T11,Extra,0,\n"
        loaded = gtfs.load(make_feed({"trips.txt": trips}), engine)
        result = gtfs.validate(loaded.namespace, engine)

        (error,) = result.errors
        assert error.error_type is ValidationErrorType.TRIP_WITHOUT_STOP_TIMES
        assert error.trip_ids == ["T11"]

    def test_counts_by_priority(self, engine, make_feed):
        files = two_trip_feed()
        files["routes.txt"] = sample_feed_files()["routes.txt"] + "R4,A1,,,3,\n"
        loaded = gtfs.load(make_feed(files), engine)
        result = gtfs.validate(loaded.namespace, engine)

        assert result.error_counts_by_priority == {"HIGH": 1, "MEDIUM": 1, "LOW": 0, "UNKNOWN": 0}
        assert result.to_dict()["error_count"] == 2


class TestValidationIsReadOnly:
    """A validação nunca altera o namespace."""

    def test_writes_are_rolled_back(self, engine, store, sample_feed):
        loaded = gtfs.load(sample_feed, engine)

        class DeletingValidator(FeedValidator):
            name = "deleting"

            def validate(self, context):
                context.conn.execute(sa.delete(context.table("stop_times")))
                return []

        ValidationEngine(engine, [DeletingValidator()]).validate(loaded.namespace)

        with engine.connect() as conn:
            assert store.count_rows(conn, store.table(loaded.namespace, "stop_times")) == 500

    def test_unknown_namespace(self, engine):
        with pytest.raises(NamespaceNotFoundException):
            gtfs.validate("nothere", engine)

    def test_invalid_namespace(self, engine):
        with pytest.raises(InvalidNamespaceException):
            gtfs.validate("1bad", engine)
