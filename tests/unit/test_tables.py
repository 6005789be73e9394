"""
Testes Unitários - Registro de Tabelas
"""

import pytest
import sqlalchemy as sa

from gtfsdb.common.constants import DOUBLE_MISSING, ID_COLUMN, INT_MISSING
from gtfsdb.schema.fields import RowReader
from gtfsdb.schema.tables import EDITOR_TABLES, SERVICE_TABLES, TABLES, KeyRole, get_table


class TestRegistry:
    """Testes para o catálogo de tabelas."""

    def test_load_order(self):
        names = [table.name for table in TABLES]
        assert names == [
            "agency",
            "calendar",
            "calendar_dates",
            "booking_rules",
            "locations",
            "fare_attributes",
            "stops",
            "routes",
            "shapes",
            "trips",
            "frequencies",
            "stop_times",
            "transfers",
            "fare_rules",
            "feed_info",
        ]

    def test_referenced_tables_load_first(self):
        position = {table.name: i for i, table in enumerate(TABLES)}
        for table in TABLES:
            for f in table.fields:
                for target in f.references:
                    assert position[target] < position[table.name], (table.name, f.name)

    def test_required_tables(self):
        required = {table.name for table in TABLES if table.required}
        assert required == {"agency", "stops", "routes", "trips", "stop_times"}
        assert SERVICE_TABLES == ("calendar", "calendar_dates")

    def test_editor_tables_outside_load_order(self):
        names = {table.name for table in EDITOR_TABLES}
        assert names == {"patterns", "pattern_stops"}
        assert names.isdisjoint(table.name for table in TABLES)
        assert get_table("pattern_stops").key_fields == ("pattern_id", "stop_sequence")

    def test_editor_only_columns_are_per_table(self):
        assert "wheelchair_accessible" in {f.name for f in get_table("routes").editor_columns()}
        assert "wheelchair_accessible" in get_table("trips").column_names()
        assert "wheelchair_accessible" not in {f.name for f in get_table("trips").editor_columns()}

    def test_unknown_table(self):
        with pytest.raises(KeyError):
            get_table("vehicles")

    def test_key_roles(self):
        assert get_table("trips").key_role is KeyRole.PRIMARY
        assert get_table("stop_times").key_role is KeyRole.COMPOUND
        assert get_table("stop_times").key_fields == ("trip_id", "stop_sequence")
        assert get_table("transfers").key_role is KeyRole.NONE
        assert get_table("transfers").id_field is None
        assert get_table("shapes").id_field == "shape_id"

    def test_column_names_unique_per_table(self):
        for table in TABLES:
            names = [f.name for f in table.fields]
            assert len(names) == len(set(names)), table.name


class TestColumns:
    """Testes para colunas de carga, edição e exportação."""

    def test_export_columns_exclude_editor_columns(self):
        routes = get_table("routes")
        exported = [f.name for f in routes.export_columns()]
        assert "status" not in exported
        assert "publicly_visible" not in exported
        assert ID_COLUMN not in exported
        assert exported[0] == "route_id"

    def test_editor_columns_superset(self):
        for table in TABLES:
            assert set(table.column_names()) <= set(table.column_names(editor=True))

    def test_flex_columns_present(self):
        names = get_table("stop_times").column_names()
        for column in (
            "location_id",
            "start_pickup_drop_off_window",
            "end_pickup_drop_off_window",
            "pickup_booking_rule_id",
            "drop_off_booking_rule_id",
            "mean_duration_factor",
            "safe_duration_offset",
        ):
            assert column in names

    def test_continuous_fields_decode_independently(self):
        routes = get_table("routes")
        row = {
            "route_id": "R1",
            "route_type": "3",
            "continuous_pickup": "1",
            "continuous_drop_off": "2",
        }
        record = routes.decode_row(RowReader("routes", 2, row))
        assert record["continuous_pickup"] == 1
        assert record["continuous_drop_off"] == 2
        assert record["route_sort_order"] == INT_MISSING


class TestSqlRows:
    """Testes para conversão em parâmetros de INSERT."""

    def test_sentinels_become_null(self):
        stops = get_table("stops")
        record = stops.decode_row(RowReader("stops", 3, {"stop_id": "S1"}))
        row = stops.to_sql_row(record, 3)
        assert row[ID_COLUMN] == 3
        assert row["stop_lat"] is None
        assert row["location_type"] is None
        assert row["stop_id"] == "S1"

    def test_key_columns_keep_values(self):
        stop_times = get_table("stop_times")
        record = {f.name: None for f in stop_times.columns()}
        record.update(trip_id="T1", stop_id="S1", stop_sequence=INT_MISSING, shape_dist_traveled=DOUBLE_MISSING)
        row = stop_times.to_sql_row(record, 2)
        assert row["stop_sequence"] == INT_MISSING
        assert row["shape_dist_traveled"] is None

    def test_row_has_every_load_column(self):
        trips = get_table("trips")
        record = {name: None for name in trips.column_names()}
        assert set(trips.to_sql_row(record, 1)) == {ID_COLUMN, *trips.column_names()}


class TestBuildTable:
    """Testes para geração das tabelas SQLAlchemy."""

    def test_load_table_has_plain_id_and_no_constraints(self):
        table = get_table("routes").build_table(sa.MetaData(), "routes")
        assert not table.c[ID_COLUMN].primary_key
        assert not table.c[ID_COLUMN].nullable
        assert "status" not in table.c
        assert not [c for c in table.constraints if isinstance(c, sa.UniqueConstraint)]

    def test_editor_table_has_surrogate_key_and_unique_natural_key(self):
        table = get_table("stop_times").build_table(sa.MetaData(), "stop_times", editor=True)
        assert table.c[ID_COLUMN].primary_key
        uniques = [c for c in table.constraints if isinstance(c, sa.UniqueConstraint)]
        assert len(uniques) == 1
        assert [c.name for c in uniques[0].columns] == ["trip_id", "stop_sequence"]

    def test_editor_columns_have_defaults(self):
        table = get_table("routes").build_table(sa.MetaData(), "routes", editor=True)
        assert table.c.status.server_default is not None
        assert table.c.publicly_visible.server_default is not None

    def test_required_columns_not_nullable(self):
        table = get_table("trips").build_table(sa.MetaData(), "trips")
        assert not table.c.trip_id.nullable
        assert table.c.block_id.nullable

    def test_schema_is_applied(self):
        table = get_table("agency").build_table(sa.MetaData(), "agency", schema="abc_def")
        assert table.schema == "abc_def"
