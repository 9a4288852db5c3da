"""Tests for the Flask panel endpoints."""

import time

import pytest

from mudwatch.models import ProtocolData, StatusSnapshot
from mudwatch.panel import create_app
from mudwatch.storage import Storage


@pytest.fixture()
def sample_db(tmp_path):
    """Yield a database path with two targets, history and events."""
    path = str(tmp_path / "mudwatch.db")
    now = int(time.time())
    with Storage(path) as store:
        a = store.add_target("Akrios", "akrios.example.org", 4000)
        store.add_target("Quiet", "quiet.example.org", 23)
        store.update_target_status(
            a, True, 0, now,
            ProtocolData(game_name="Akrios", players=12,
                         protocols=frozenset({"ANSI", "MSP"})),
        )
        store.append_snapshot(StatusSnapshot(a, now - 3 * 86400, True, 50))
        store.append_snapshot(StatusSnapshot(a, now - 3600, True, 10))
        store.append_snapshot(StatusSnapshot(a, now - 1800, False))
        store.append_snapshot(StatusSnapshot(a, now - 600, True, 14))
        store.record_transition(a, False)
        store.record_transition(a, True)
        store.commit()
    yield path


@pytest.fixture()
def client(sample_db):
    """Yield a Flask test client backed by the sample database."""
    app = create_app(sample_db)
    app.config["TESTING"] = True
    with app.test_client() as c:
        yield c


class TestTargets:
    """Tests for GET /api/targets."""

    def test_lists_targets(self, client):
        """Every target is returned with its status and data."""
        resp = client.get("/api/targets")
        assert resp.status_code == 200
        data = resp.get_json()
        assert [t["name"] for t in data] == ["Akrios", "Quiet"]
        assert data[0]["is_online"] is True
        assert data[0]["protocol_data"]["players"] == 12
        assert data[0]["protocol_data"]["protocols"] == ["ANSI", "MSP"]
        assert data[1]["is_online"] is False
        assert data[1]["protocol_data"] is None


class TestHistory:
    """Tests for GET /api/targets/<id>/history."""

    def test_default_window(self, client):
        """The default 24-hour window excludes older snapshots."""
        resp = client.get("/api/targets/1/history")
        assert resp.status_code == 200
        body = resp.get_json()
        assert len(body["history"]) == 3
        assert [h["is_online"] for h in body["history"]] == [True, False, True]
        stats = body["stats"]
        assert stats["uptime_percentage"] == 66.67
        assert stats["average_players"] == 12
        assert stats["peak_players"] == 14

    def test_wider_window(self, client):
        """hours widens the window."""
        body = client.get("/api/targets/1/history?hours=168").get_json()
        assert len(body["history"]) == 4
        assert body["stats"]["peak_players"] == 50

    def test_no_history(self, client):
        """A target with no snapshots reports zero uptime."""
        body = client.get("/api/targets/2/history").get_json()
        assert body["history"] == []
        assert body["stats"]["uptime_percentage"] == 0.0
        assert body["stats"]["last_online"] is None

    def test_unknown_target(self, client):
        """An unknown id is 404."""
        assert client.get("/api/targets/99/history").status_code == 404

    @pytest.mark.parametrize("hours", ["0", "-5", "nan", "inf", "-inf"])
    def test_bad_hours(self, client, hours):
        """A non-positive or non-finite window is 400."""
        url = "/api/targets/1/history?hours=%s" % hours
        assert client.get(url).status_code == 400

    def test_huge_window(self, client):
        """A window reaching before the epoch returns all history."""
        body = client.get("/api/targets/1/history?hours=1e300").get_json()
        assert len(body["history"]) == 4


class TestEvents:
    """Tests for GET /api/events."""

    def test_newest_first(self, client):
        """Events come back newest first."""
        data = client.get("/api/events").get_json()
        assert [e["description"] for e in data] == [
            "Akrios is back online",
            "Akrios appears to be offline",
        ]
        assert data[0]["went_online"] is True

    def test_count(self, client):
        """count limits the result."""
        assert len(client.get("/api/events?count=1").get_json()) == 1

    def test_bad_count(self, client):
        """A non-positive count is 400."""
        assert client.get("/api/events?count=0").status_code == 400
