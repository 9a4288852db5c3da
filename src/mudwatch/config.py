"""Configuration defaults and config-file loading.

Central place for tuneable parameters shared across modules.

Example:
    >>> from mudwatch.config import load_config
    >>> cfg = load_config("mudwatch.toml")
    >>> cfg["workers"]
    10
"""

import tomllib

from mudwatch.client import NO_PROTOCOL_CEILING
from mudwatch.reconciler import OFFLINE_THRESHOLD

# Per-probe timeout in seconds (connect plus reads).
PROBE_TIMEOUT = 10.0

# Probes in flight at once.
WORKERS = 10

# Snapshot retention, in days.
RETENTION_DAYS = 30


def load_config(path: str) -> dict:
    """Read a TOML config file and validate it.

    Required keys: ``db`` (str), ``interval`` (int seconds, > 0).

    Optional ``[poll]`` table: ``timeout`` (number), ``workers``
    (int), ``max_bytes`` (int), ``offline_threshold`` (int),
    ``batch_deadline`` (number).  Optional ``retention_days`` (int)
    and ``[[targets]]`` entries with ``name``, ``host``, ``port``.

    Returns:
        dict: Flat config with every optional key filled in
            (``batch_deadline`` may be None).

    Raises:
        ValueError: If any key is missing, mistyped or out of range.

    Example:
        >>> cfg = load_config("mudwatch.toml")
        >>> cfg["targets"][0]["port"]
        4000
    """
    with open(path, "rb") as f:
        raw = tomllib.load(f)

    _require_str(raw, "db")
    _require_int(raw, "interval")
    if raw["interval"] <= 0:
        raise ValueError("interval must be positive, got %d" % raw["interval"])

    poll = raw.get("poll", {})
    if not isinstance(poll, dict):
        raise ValueError("[poll] must be a table")

    result = {
        "db": raw["db"],
        "interval": raw["interval"],
        "timeout": _optional_number(poll, "timeout", PROBE_TIMEOUT, "poll."),
        "workers": _optional_int(poll, "workers", WORKERS, "poll."),
        "max_bytes": _optional_int(poll, "max_bytes", NO_PROTOCOL_CEILING, "poll."),
        "offline_threshold": _optional_int(
            poll, "offline_threshold", OFFLINE_THRESHOLD, "poll."
        ),
        "batch_deadline": _optional_number(
            poll, "batch_deadline", None, "poll."
        ),
        "retention_days": _optional_int(raw, "retention_days", RETENTION_DAYS),
        "targets": _require_targets(raw.get("targets", [])),
    }
    return result


def _require_targets(targets: object) -> list[dict]:
    """Validate ``[[targets]]`` entries: name (str), host (str), port (int)."""
    if not isinstance(targets, list):
        raise ValueError("targets must be an array of tables")
    result = []
    for i, entry in enumerate(targets):
        if not isinstance(entry, dict):
            raise ValueError("targets[%d] must be a table" % i)
        for key in ("name", "host"):
            if not isinstance(entry.get(key), str) or not entry[key]:
                raise ValueError("targets[%d].%s must be a non-empty str" % (i, key))
        port = entry.get("port")
        if not isinstance(port, int) or isinstance(port, bool):
            raise ValueError("targets[%d].port must be int" % i)
        if port < 1 or port > 65535:
            raise ValueError("targets[%d].port must be 1-65535, got %d" % (i, port))
        result.append({"name": entry["name"], "host": entry["host"], "port": port})
    return result


def _optional_int(raw: dict[str, object], key: str, default: int,
                  prefix: str = "") -> int:
    """Return positive int *key* from *raw*, or *default* if absent."""
    if key not in raw:
        return default
    value = raw[key]
    if not isinstance(value, int) or isinstance(value, bool):
        raise ValueError("%s%s must be int, got %s" % (prefix, key, type(value).__name__))
    if value < 1:
        raise ValueError("%s%s must be positive, got %d" % (prefix, key, value))
    return value


def _optional_number(raw: dict[str, object], key: str, default,
                     prefix: str = ""):
    """Return positive int-or-float *key* from *raw*, or *default*."""
    if key not in raw:
        return default
    value = raw[key]
    if not isinstance(value, (int, float)) or isinstance(value, bool):
        raise ValueError("%s%s must be a number, got %s" % (prefix, key, type(value).__name__))
    if value <= 0:
        raise ValueError("%s%s must be positive, got %s" % (prefix, key, value))
    return float(value)


def _require_str(raw: dict[str, object], key: str) -> None:
    """Validate that *key* exists in *raw* and is a str."""
    if key not in raw:
        raise ValueError("missing required key: %s" % key)
    if not isinstance(raw[key], str):
        raise ValueError("%s must be str, got %s" % (key, type(raw[key]).__name__))


def _require_int(raw: dict[str, object], key: str) -> None:
    """Validate that *key* exists in *raw* and is an int."""
    if key not in raw:
        raise ValueError("missing required key: %s" % key)
    if not isinstance(raw[key], int) or isinstance(raw[key], bool):
        raise ValueError("%s must be int, got %s" % (key, type(raw[key]).__name__))
