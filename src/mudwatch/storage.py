"""SQLite storage for targets, status history and transition events.

Three tables (schema embedded below):

- ``targets``: one row per polled server with its durable,
  hysteresis-protected state and last decoded MSSP data (JSON).
- ``snapshots``: append-only, one row per poll attempt.
- ``events``: human-readable online/offline transitions.

Timestamps are Unix epoch integers (seconds, UTC).

Example:
    >>> from mudwatch.storage import Storage
    >>> with Storage(":memory:") as store:
    ...     tid = store.add_target("Test MUD", "mud.example.org", 4000)
    ...     store.list_targets()[0].host
    'mud.example.org'
"""

import json
import logging
import sqlite3
import time
from pathlib import Path

from mudwatch.models import ProtocolData, StatusSnapshot, Target

log = logging.getLogger(__name__)

SCHEMA = """\
CREATE TABLE IF NOT EXISTS targets (
    id                   INTEGER PRIMARY KEY,
    name                 TEXT NOT NULL,
    host                 TEXT,
    port                 INTEGER,
    is_online            INTEGER NOT NULL DEFAULT 0,
    consecutive_failures INTEGER NOT NULL DEFAULT 0,
    last_checked_at      INTEGER,            -- Unix timestamp, NULL if never
    protocol_data        TEXT                -- JSON, NULL if none
);
CREATE TABLE IF NOT EXISTS snapshots (
    id           INTEGER PRIMARY KEY,
    target_id    INTEGER NOT NULL,
    checked_at   INTEGER NOT NULL,           -- Unix timestamp
    is_online    INTEGER NOT NULL,           -- raw result of this check
    player_count INTEGER,
    uptime       INTEGER                     -- seconds
);
CREATE INDEX IF NOT EXISTS idx_snapshots_target_ts
    ON snapshots (target_id, checked_at);
CREATE TABLE IF NOT EXISTS events (
    id          INTEGER PRIMARY KEY,
    target_id   INTEGER NOT NULL,
    ts          INTEGER NOT NULL,
    went_online INTEGER NOT NULL,
    description TEXT NOT NULL
);
"""

_TARGET_COLUMNS = """\
id, name, host, port, is_online, consecutive_failures, last_checked_at,
protocol_data"""

_LIST_TARGETS = """\
SELECT %s FROM targets
WHERE host IS NOT NULL AND host != '' AND port BETWEEN 1 AND 65535
ORDER BY id""" % _TARGET_COLUMNS

_GET_TARGET = "SELECT %s FROM targets WHERE id = ?" % _TARGET_COLUMNS

_UPDATE_TARGET = """\
UPDATE targets
SET is_online = ?, consecutive_failures = ?, last_checked_at = ?,
    protocol_data = ?
WHERE id = ?"""

_INSERT_SNAPSHOT = """\
INSERT INTO snapshots (target_id, checked_at, is_online, player_count, uptime)
VALUES (?, ?, ?, ?, ?)"""

_QUERY_SNAPSHOTS = """\
SELECT target_id, checked_at, is_online, player_count, uptime
FROM snapshots WHERE target_id = ? AND checked_at >= ?
ORDER BY checked_at, id"""

_INSERT_EVENT = """\
INSERT INTO events (target_id, ts, went_online, description)
VALUES (?, ?, ?, ?)"""

_FETCH_EVENTS = """\
SELECT id, target_id, ts, went_online, description
FROM events ORDER BY id DESC LIMIT ?"""


class Storage:
    """SQLite-backed listing store, history store and event notifier.

    Opens (or creates) the database at *db_path*, creates the tables
    if absent, and enables WAL journaling so the panel can read while
    the daemon writes.  Writes are not committed until ``commit()``.

    A connection belongs to the thread that opened it; the poller
    keeps all storage calls on its own thread.

    Args:
        db_path: Path to the SQLite database file, or ``":memory:"``.
    """

    def __init__(self, db_path: str):
        """Open the database and ensure the schema exists."""
        if db_path != ":memory:":
            Path(db_path).parent.mkdir(parents=True, exist_ok=True)
        self._conn = sqlite3.connect(db_path)
        self._conn.row_factory = sqlite3.Row
        self._conn.execute("PRAGMA journal_mode=WAL")
        self._conn.executescript(SCHEMA)
        self._conn.commit()

    # -- Listing store -------------------------------------------------------

    def add_target(self, name: str, host: str, port: int) -> int:
        """Insert a target (initially offline) and return its id."""
        cursor = self._conn.execute(
            "INSERT INTO targets (name, host, port) VALUES (?, ?, ?)",
            (name, host, port),
        )
        self._conn.commit()
        return cursor.lastrowid

    def find_target(self, host: str, port: int) -> Target | None:
        """Return the target polled at *host*:*port*, or None."""
        row = self._conn.execute(
            "SELECT %s FROM targets WHERE host = ? AND port = ?"
            % _TARGET_COLUMNS,
            (host, port),
        ).fetchone()
        return _row_to_target(row) if row else None

    def get_target(self, target_id: int) -> Target | None:
        """Return one target by id, or None."""
        row = self._conn.execute(_GET_TARGET, (target_id,)).fetchone()
        return _row_to_target(row) if row else None

    def list_targets(self) -> list[Target]:
        """Return every target with a usable host and port."""
        rows = self._conn.execute(_LIST_TARGETS).fetchall()
        return [_row_to_target(row) for row in rows]

    def update_target_status(
        self,
        target_id: int,
        is_online: bool,
        consecutive_failures: int,
        last_checked_at: int,
        protocol_data: ProtocolData | None,
    ) -> None:
        """Overwrite a target's durable status fields."""
        encoded = (
            json.dumps(protocol_data.to_dict())
            if protocol_data is not None else None
        )
        self._conn.execute(
            _UPDATE_TARGET,
            (int(is_online), consecutive_failures, last_checked_at,
             encoded, target_id),
        )

    # -- History store -------------------------------------------------------

    def append_snapshot(self, snapshot: StatusSnapshot) -> None:
        """Append one history row."""
        self._conn.execute(
            _INSERT_SNAPSHOT,
            (snapshot.target_id, snapshot.checked_at, int(snapshot.is_online),
             snapshot.player_count, snapshot.uptime),
        )

    def query_snapshots(self, target_id: int, since: int) -> list[StatusSnapshot]:
        """Return a target's snapshots at or after *since*, oldest first."""
        rows = self._conn.execute(
            _QUERY_SNAPSHOTS, (target_id, since)
        ).fetchall()
        return [
            StatusSnapshot(
                target_id=row["target_id"],
                checked_at=row["checked_at"],
                is_online=bool(row["is_online"]),
                player_count=row["player_count"],
                uptime=row["uptime"],
            )
            for row in rows
        ]

    def purge(self, days: int) -> int:
        """Delete snapshots older than *days* days.

        Returns the number of deleted rows.
        """
        cutoff = int(time.time()) - days * 86400
        cursor = self._conn.execute(
            "DELETE FROM snapshots WHERE checked_at < ?", (cutoff,)
        )
        deleted = cursor.rowcount
        self._conn.commit()
        if deleted > 0:
            log.info("purged %d snapshots older than %d days", deleted, days)
        return deleted

    # -- Event notifier ------------------------------------------------------

    def record_transition(self, target_id: int, went_online: bool) -> None:
        """Record a came-back-online or went-offline event."""
        row = self._conn.execute(
            "SELECT name FROM targets WHERE id = ?", (target_id,)
        ).fetchone()
        name = row["name"] if row else "target %d" % target_id
        if went_online:
            description = "%s is back online" % name
        else:
            description = "%s appears to be offline" % name
        self._conn.execute(
            _INSERT_EVENT,
            (target_id, int(time.time()), int(went_online), description),
        )
        log.info("%s", description)

    def fetch_events(self, count: int) -> list[dict]:
        """Return the newest *count* events, newest first."""
        cursor = self._conn.execute(_FETCH_EVENTS, (count,))
        return [dict(row) for row in cursor.fetchall()]

    # -- Connection ----------------------------------------------------------

    def commit(self) -> None:
        """Commit the current transaction."""
        self._conn.commit()

    def rollback(self) -> None:
        """Discard uncommitted writes."""
        self._conn.rollback()

    def __enter__(self) -> "Storage":
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.close()

    def close(self) -> None:
        """Close the database connection."""
        self._conn.close()


def _row_to_target(row: sqlite3.Row) -> Target:
    """Convert a ``targets`` row into a :class:`Target`."""
    data = None
    if row["protocol_data"]:
        data = ProtocolData.from_dict(json.loads(row["protocol_data"]))
    return Target(
        id=row["id"],
        name=row["name"],
        host=row["host"],
        port=row["port"],
        is_online=bool(row["is_online"]),
        consecutive_failures=row["consecutive_failures"],
        last_checked_at=row["last_checked_at"],
        protocol_data=data,
    )
