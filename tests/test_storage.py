"""Tests for mudwatch.storage."""

import time

import pytest

from mudwatch.models import ProtocolData, StatusSnapshot
from mudwatch.storage import Storage


@pytest.fixture()
def store():
    """Yield an in-memory Storage, closed afterwards."""
    s = Storage(":memory:")
    yield s
    s.close()


class TestSchema:
    """Schema creation."""

    def test_create_tables(self, store):
        """Opening Storage creates all three tables."""
        cursor = store._conn.execute(
            "SELECT name FROM sqlite_master WHERE type='table'"
        )
        tables = {row["name"] for row in cursor.fetchall()}
        assert {"targets", "snapshots", "events"} <= tables

    def test_file_database_creates_parent(self, tmp_path):
        """A database path in a missing directory is created."""
        path = tmp_path / "sub" / "mudwatch.db"
        with Storage(str(path)) as s:
            s.add_target("A", "a.example.org", 4000)
        assert path.exists()


class TestTargets:
    """Listing-store operations."""

    def test_add_and_list(self, store):
        """A new target starts offline with no failures or data."""
        tid = store.add_target("Test", "mud.example.org", 4000)
        targets = store.list_targets()
        assert len(targets) == 1
        t = targets[0]
        assert t.id == tid
        assert (t.name, t.host, t.port) == ("Test", "mud.example.org", 4000)
        assert t.is_online is False
        assert t.consecutive_failures == 0
        assert t.last_checked_at is None
        assert t.protocol_data is None

    def test_list_skips_missing_connection_info(self, store):
        """Targets without host or with a bad port are not listed."""
        store.add_target("Good", "a.example.org", 4000)
        store.add_target("NoHost", "", 4000)
        store.add_target("NullHost", None, 4000)
        store.add_target("ZeroPort", "b.example.org", 0)
        store.add_target("BigPort", "c.example.org", 70000)
        assert [t.name for t in store.list_targets()] == ["Good"]

    def test_update_status(self, store):
        """update_target_status overwrites durable state and data."""
        tid = store.add_target("Test", "mud.example.org", 4000)
        data = ProtocolData(
            game_name="Test", players=5, protocols=frozenset({"ANSI"}),
            variables={"NAME": ["Test"]}, received_at=123,
        )
        store.update_target_status(tid, True, 0, 1000, data)
        store.commit()

        t = store.get_target(tid)
        assert t.is_online is True
        assert t.consecutive_failures == 0
        assert t.last_checked_at == 1000
        assert t.protocol_data == data

    def test_update_clears_data(self, store):
        """Passing None removes stored protocol data."""
        tid = store.add_target("Test", "mud.example.org", 4000)
        store.update_target_status(tid, True, 0, 1000, ProtocolData(players=1))
        store.update_target_status(tid, True, 0, 1001, None)
        assert store.get_target(tid).protocol_data is None

    def test_find_target(self, store):
        """find_target matches on host and port."""
        tid = store.add_target("Test", "mud.example.org", 4000)
        assert store.find_target("mud.example.org", 4000).id == tid
        assert store.find_target("mud.example.org", 4001) is None

    def test_get_missing(self, store):
        """get_target returns None for an unknown id."""
        assert store.get_target(999) is None


class TestSnapshots:
    """History-store operations."""

    def test_append_and_query(self, store):
        """Snapshots come back oldest first, filtered by time."""
        store.append_snapshot(StatusSnapshot(1, 100, True, 5, 60))
        store.append_snapshot(StatusSnapshot(1, 200, False))
        store.append_snapshot(StatusSnapshot(1, 300, True, 7, 260))
        store.append_snapshot(StatusSnapshot(2, 250, True, 1))
        store.commit()

        snaps = store.query_snapshots(1, 150)
        assert [s.checked_at for s in snaps] == [200, 300]
        assert snaps[0].is_online is False
        assert snaps[0].player_count is None
        assert snaps[1] == StatusSnapshot(1, 300, True, 7, 260)

    def test_purge(self, store):
        """purge removes snapshots older than the retention window."""
        now = int(time.time())
        store.append_snapshot(StatusSnapshot(1, now - 40 * 86400, True))
        store.append_snapshot(StatusSnapshot(1, now - 86400, True))
        store.commit()

        assert store.purge(30) == 1
        assert len(store.query_snapshots(1, 0)) == 1


class TestEvents:
    """Event-notifier operations."""

    def test_record_transition(self, store):
        """Transitions are stored with a readable description."""
        tid = store.add_target("Akrios", "mud.example.org", 4000)
        store.record_transition(tid, False)
        store.record_transition(tid, True)
        store.commit()

        events = store.fetch_events(10)
        assert [e["went_online"] for e in events] == [1, 0]
        assert events[0]["description"] == "Akrios is back online"
        assert events[1]["description"] == "Akrios appears to be offline"

    def test_rollback_discards(self, store):
        """rollback() drops writes made since the last commit."""
        store.append_snapshot(StatusSnapshot(1, 100, True))
        store.rollback()
        assert store.query_snapshots(1, 0) == []
