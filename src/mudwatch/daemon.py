"""Polling daemon -- runs a batch pass over all targets on a fixed cadence.

Foreground loop driven by a TOML config file.  Shuts down cleanly
on SIGINT or SIGTERM; a pass in progress finishes first.

Example:
    Run from the command line::

        mudwatch mudwatch.toml -v
        mudwatch mudwatch.toml --once
"""

import argparse
import logging
import signal
import sys
import threading

from mudwatch.config import load_config
from mudwatch.paths import resolve_config, resolve_db
from mudwatch.poller import Poller
from mudwatch.storage import Storage

log = logging.getLogger(__name__)

_shutdown = threading.Event()


def _on_signal(signum: int, frame) -> None:
    """Set the module-level shutdown event on SIGINT/SIGTERM."""
    _shutdown.set()


def seed_targets(storage, targets: list[dict]) -> int:
    """Add configured targets the listing store does not have yet.

    Matching is by host and port.  Returns the number added.
    """
    added = 0
    for entry in targets:
        if storage.find_target(entry["host"], entry["port"]) is None:
            storage.add_target(entry["name"], entry["host"], entry["port"])
            log.info(
                "added target %s (%s:%d)",
                entry["name"], entry["host"], entry["port"],
            )
            added += 1
    return added


def make_poller(cfg: dict, storage) -> Poller:
    """Build a :class:`Poller` from a loaded config."""
    return Poller(
        storage,
        workers=cfg["workers"],
        timeout=cfg["timeout"],
        max_bytes=cfg["max_bytes"],
        threshold=cfg["offline_threshold"],
        batch_deadline=cfg["batch_deadline"],
    )


def run(cfg: dict, poller, storage, shutdown: threading.Event) -> int:
    """Run batch passes until *shutdown* is set.

    After each pass, purges snapshots older than
    ``cfg["retention_days"]`` and sleeps ``cfg["interval"]`` seconds.
    An unexpected error in a pass is logged and the loop continues.
    Returns the number of completed passes.

    Example:
        >>> run({"interval": 300, "retention_days": 30}, poller, storage, ev)
        5
    """
    passes = 0

    while not shutdown.is_set():
        try:
            poller.run_once()
            storage.purge(cfg["retention_days"])
        except Exception:
            log.exception("poll pass failed")
        passes += 1
        shutdown.wait(cfg["interval"])

    return passes


def main(argv=None) -> int:
    """CLI entry point -- parse args, load config, run the daemon.

    Returns the process exit status.
    """
    _shutdown.clear()

    parser = argparse.ArgumentParser(description="mudwatch MSSP status poller")
    parser.add_argument("config", help="path to TOML config file")
    parser.add_argument(
        "--once", action="store_true", help="run a single pass and exit",
    )
    parser.add_argument(
        "-v", "--verbose", action="store_true", help="enable debug logging",
    )
    args = parser.parse_args(argv)

    level = logging.DEBUG if args.verbose else logging.INFO
    logging.basicConfig(
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
        level=level,
    )

    try:
        config_path = resolve_config(args.config)
        cfg = load_config(config_path)
    except (FileNotFoundError, ValueError) as exc:
        log.error("%s", exc)
        return 1
    cfg["db"] = resolve_db(config_path, cfg["db"])

    storage = Storage(cfg["db"])
    try:
        seed_targets(storage, cfg["targets"])
        poller = make_poller(cfg, storage)

        if args.once:
            summary = poller.run_once()
            storage.purge(cfg["retention_days"])
            return 0 if summary.errors == 0 else 2

        signal.signal(signal.SIGINT, _on_signal)
        signal.signal(signal.SIGTERM, _on_signal)
        log.info(
            "starting: db=%s interval=%ds workers=%d timeout=%.1fs",
            cfg["db"], cfg["interval"], cfg["workers"], cfg["timeout"],
        )
        run(cfg, poller, storage, _shutdown)
    finally:
        storage.close()
        log.info("shutting down")
    return 0


if __name__ == "__main__":
    sys.exit(main())
