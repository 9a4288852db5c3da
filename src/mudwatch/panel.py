"""Read-only Flask JSON panel over the mudwatch database.

Example:
    $ MUDWATCH_DB=data/mudwatch.db flask --app mudwatch.panel run
    # Then GET http://localhost:5000/api/targets
"""

import json
import math
import os
import sqlite3
import time

from flask import Flask, g, jsonify, request

from mudwatch.models import StatusSnapshot
from mudwatch.stats import compute_stats

_DB_PATH = os.environ.get("MUDWATCH_DB", "data/mudwatch.db")


def create_app(db_path: str) -> Flask:
    """Create and configure the Flask application.

    Args:
        db_path: Path to the SQLite database written by the daemon.
    """
    app = Flask(__name__)
    app.config["MUDWATCH_DB"] = db_path

    def _get_db() -> sqlite3.Connection:
        """Return a per-request database connection."""
        if "db" not in g:
            g.db = sqlite3.connect(app.config["MUDWATCH_DB"])
            g.db.row_factory = sqlite3.Row
        return g.db

    @app.teardown_appcontext
    def _close_db(exc: BaseException | None) -> None:
        """Close the database connection at end of request."""
        db = g.pop("db", None)
        if db is not None:
            db.close()

    @app.route("/api/targets")
    def api_targets() -> tuple:
        """Return every target's current status.

        Response JSON:
            [{"id": 1, "name": "...", "is_online": true,
              "protocol_data": {...} | null, ...}, ...]
        """
        rows = _get_db().execute(
            "SELECT id, name, host, port, is_online, consecutive_failures,"
            " last_checked_at, protocol_data FROM targets ORDER BY id"
        ).fetchall()
        return jsonify([_target_json(r) for r in rows]), 200

    @app.route("/api/targets/<int:target_id>/history")
    def api_history(target_id: int) -> tuple:
        """Return a target's snapshots and stats for a trailing window.

        Query parameters:
            hours: Window in hours (default 24).

        Response JSON:
            {"history": [{"checked_at": ..., "is_online": ...,
              "player_count": ...}, ...],
             "stats": {"uptime_percentage": ..., ...}}
        """
        hours = request.args.get("hours", 24.0, type=float)
        if not math.isfinite(hours) or hours <= 0:
            return jsonify({"error": "hours must be positive"}), 400

        db = _get_db()
        target = db.execute(
            "SELECT id FROM targets WHERE id = ?", (target_id,)
        ).fetchone()
        if target is None:
            return jsonify({"error": "unknown target"}), 404

        since = max(0, int(time.time() - hours * 3600))
        rows = db.execute(
            "SELECT checked_at, is_online, player_count, uptime"
            " FROM snapshots WHERE target_id = ? AND checked_at >= ?"
            " ORDER BY checked_at, id",
            (target_id, since),
        ).fetchall()
        snapshots = [
            StatusSnapshot(
                target_id=target_id,
                checked_at=r["checked_at"],
                is_online=bool(r["is_online"]),
                player_count=r["player_count"],
                uptime=r["uptime"],
            )
            for r in rows
        ]
        stats = compute_stats(snapshots)
        return jsonify({
            "history": [
                {
                    "checked_at": s.checked_at,
                    "is_online": s.is_online,
                    "player_count": s.player_count,
                }
                for s in snapshots
            ],
            "stats": {
                "uptime_percentage": stats.uptime_percentage,
                "average_players": stats.average_players,
                "peak_players": stats.peak_players,
                "last_online": stats.last_online,
            },
        }), 200

    @app.route("/api/events")
    def api_events() -> tuple:
        """Return the newest transition events, newest first.

        Query parameters:
            count: Maximum events to return (default 50).
        """
        count = request.args.get("count", 50, type=int)
        if count <= 0:
            return jsonify({"error": "count must be positive"}), 400
        rows = _get_db().execute(
            "SELECT target_id, ts, went_online, description"
            " FROM events ORDER BY id DESC LIMIT ?",
            (count,),
        ).fetchall()
        return jsonify([
            {
                "target_id": r["target_id"],
                "ts": r["ts"],
                "went_online": bool(r["went_online"]),
                "description": r["description"],
            }
            for r in rows
        ]), 200

    return app


def _target_json(row: sqlite3.Row) -> dict:
    """Convert a ``targets`` row for the JSON response."""
    data = json.loads(row["protocol_data"]) if row["protocol_data"] else None
    return {
        "id": row["id"],
        "name": row["name"],
        "host": row["host"],
        "port": row["port"],
        "is_online": bool(row["is_online"]),
        "consecutive_failures": row["consecutive_failures"],
        "last_checked_at": row["last_checked_at"],
        "protocol_data": data,
    }


# Default app instance for `flask --app mudwatch.panel run`
app = create_app(_DB_PATH)
