"""
Testes de Integração - Remoção de Namespaces
"""

import pytest
from sqlalchemy.exc import OperationalError

from gtfsdb import gtfs
from gtfsdb.common.exceptions import (
    InvalidNamespaceException,
    NamespaceNotFoundException,
    TransactionFailedException,
)
from gtfsdb.storage.namespace_store import NamespaceStore


@pytest.fixture
def loaded(engine, sample_feed):
    return gtfs.load(sample_feed, engine)


class TestDelete:
    """Testes para remoção de namespaces."""

    def test_removes_registry_and_tables(self, engine, store, loaded):
        gtfs.delete(loaded.namespace, engine)

        assert store.list_feeds() == []
        assert store.list_physical_namespaces() == []

    def test_deleted_namespace_is_unknown(self, engine, loaded, tmp_path):
        gtfs.delete(loaded.namespace, engine)

        with pytest.raises(NamespaceNotFoundException):
            gtfs.validate(loaded.namespace, engine)
        with pytest.raises(NamespaceNotFoundException):
            gtfs.export(loaded.namespace, tmp_path / "out.zip", engine)
        with pytest.raises(NamespaceNotFoundException):
            gtfs.delete(loaded.namespace, engine)

    def test_snapshot_survives_parent_deletion(self, engine, store, loaded, tmp_path):
        snapshot = gtfs.make_snapshot(loaded.namespace, engine)

        gtfs.delete(loaded.namespace, engine)

        assert store.list_physical_namespaces() == [snapshot.namespace]
        exported = gtfs.export(snapshot.namespace, tmp_path / "out.zip", engine, from_editor=True)
        assert exported.tables["stop_times"] == 500

    def test_other_namespaces_untouched(self, engine, store, sample_feed, loaded):
        other = gtfs.load(sample_feed, engine)

        gtfs.delete(loaded.namespace, engine)

        assert [feed.namespace for feed in store.list_feeds()] == [other.namespace]
        with engine.connect() as conn:
            table = store.table(other.namespace, "stop_times")
            assert store.count_rows(conn, table) == 500

    def test_invalid_namespace(self, engine, store, loaded):
        with pytest.raises(InvalidNamespaceException):
            gtfs.delete("public; --", engine)

        assert len(store.list_feeds()) == 1

    def test_unknown_namespace(self, engine):
        with pytest.raises(NamespaceNotFoundException):
            gtfs.delete("nothere", engine)

    def test_failure_keeps_namespace(self, engine, store, loaded, mocker):
        mocker.patch.object(
            NamespaceStore,
            "drop_schema",
            side_effect=OperationalError("DROP SCHEMA", {}, Exception("lock timeout")),
        )
        with pytest.raises(TransactionFailedException):
            gtfs.delete(loaded.namespace, engine)
        mocker.stopall()

        assert [feed.namespace for feed in store.list_feeds()] == [loaded.namespace]
        assert store.list_physical_namespaces() == [loaded.namespace]
