"""Batch poll over every target in the listing store.

Probes run on a bounded thread pool; each finished probe is
reconciled and persisted on the calling thread, so storage is never
touched from a worker.  One target's failure never stops the batch.

Example:
    >>> from mudwatch.poller import Poller
    >>> poller = Poller(storage, workers=10, timeout=10)
    >>> summary = poller.run_once()
    >>> summary.online + summary.offline + summary.errors == summary.total
    True
"""

import logging
import math
import time
from concurrent.futures import ThreadPoolExecutor, as_completed
from dataclasses import dataclass

from mudwatch.client import NO_PROTOCOL_CEILING, probe
from mudwatch.models import Offline, OnlineWithData
from mudwatch.reconciler import OFFLINE_THRESHOLD, make_snapshot, reconcile

log = logging.getLogger(__name__)


@dataclass
class PollSummary:
    """Counts for one batch pass.

    ``online`` and ``offline`` count raw probe results; ``errors``
    counts targets whose probe raised, that missed the batch deadline,
    or whose results could not be stored.
    """

    online: int = 0
    offline: int = 0
    errors: int = 0
    duration: float = 0.0

    @property
    def total(self) -> int:
        return self.online + self.offline + self.errors


class Poller:
    """Polls every target once per ``run_once()`` call.

    Args:
        storage: Object with ``list_targets()``, ``append_snapshot()``,
            ``update_target_status()``, ``record_transition()``,
            ``commit()`` and ``rollback()``.
        probe_fn: ``probe(host, port, timeout, max_bytes)`` callable.
        workers: Maximum probes in flight at once.
        timeout: Per-probe timeout in seconds.
        max_bytes: No-protocol ceiling passed to the probe.
        threshold: Consecutive failures before a target goes offline.
        batch_deadline: Seconds allowed for a whole pass, or None to
            derive one from the target count.
        clock: Returns the current Unix time; used for timestamps.

    Example:
        >>> poller = Poller(storage, workers=4, timeout=5)
        >>> poller.run_once().total
        12
    """

    def __init__(self, storage, probe_fn=probe, workers: int = 10,
                 timeout: float = 10.0,
                 max_bytes: int = NO_PROTOCOL_CEILING,
                 threshold: int = OFFLINE_THRESHOLD,
                 batch_deadline: float | None = None,
                 clock=time.time):
        """Initialize the poller."""
        if workers < 1:
            raise ValueError("workers must be >= 1, got %d" % workers)
        self._storage = storage
        self._probe = probe_fn
        self._workers = workers
        self._timeout = timeout
        self._max_bytes = max_bytes
        self._threshold = threshold
        self._batch_deadline = batch_deadline
        self._clock = clock

    def deadline_for(self, count: int) -> float:
        """Return the pass deadline in seconds for *count* targets.

        Uses the configured ``batch_deadline`` when set; otherwise
        allows every wave of ``workers`` probes twice its timeout,
        plus one timeout of slack.
        """
        if self._batch_deadline is not None:
            return self._batch_deadline
        waves = math.ceil(count / self._workers)
        return waves * self._timeout * 2 + self._timeout

    def run_once(self) -> PollSummary:
        """Execute a single batch pass across all pollable targets.

        Every target listed at the start of the pass gets exactly one
        snapshot, whatever its outcome.  Nothing is retried; the next
        scheduled pass is the retry.

        Returns:
            PollSummary: Online/offline/error counts and duration.
        """
        started = time.monotonic()
        summary = PollSummary()
        targets = self._storage.list_targets()
        if not targets:
            log.info("no targets to poll")
            return summary

        deadline = self.deadline_for(len(targets))
        log.debug(
            "polling %d targets, workers=%d timeout=%.1fs deadline=%.0fs",
            len(targets), self._workers, self._timeout, deadline,
        )

        pool = ThreadPoolExecutor(
            max_workers=min(self._workers, len(targets)),
            thread_name_prefix="probe",
        )
        pending = {pool.submit(self._probe_target, t): t for t in targets}
        try:
            for future in as_completed(list(pending), timeout=deadline):
                target = pending.pop(future)
                outcome, raised = future.result()
                self._finish(target, outcome, raised, summary)
        except TimeoutError:
            log.warning(
                "batch deadline of %.0fs reached with %d probes unfinished",
                deadline, len(pending),
            )
            for future, target in pending.items():
                # Finished after the wait gave up; keep the real result.
                if future.done() and not future.cancelled():
                    outcome, raised = future.result()
                    self._finish(target, outcome, raised, summary)
                    continue
                future.cancel()
                self._finish(
                    target, Offline("batch deadline exceeded"), True, summary
                )
        finally:
            pool.shutdown(wait=False, cancel_futures=True)

        summary.duration = time.monotonic() - started
        log.info(
            "poll complete: online=%d offline=%d errors=%d total=%d "
            "duration=%.1fs",
            summary.online, summary.offline, summary.errors,
            summary.total, summary.duration,
        )
        return summary

    def record(self, target, outcome):
        """Reconcile one outcome and persist it.

        The snapshot is committed before the target's state so a
        failed state write never loses the history row, and a failed
        snapshot write leaves the durable state untouched.

        Returns:
            Decision: The reconciler's decision for this target.
        """
        now = int(self._clock())
        decision = reconcile(
            target.is_online, target.consecutive_failures, outcome,
            self._threshold,
        )

        self._storage.append_snapshot(make_snapshot(target.id, outcome, now))
        self._storage.commit()

        if isinstance(outcome, OnlineWithData):
            data = outcome.data
        elif outcome.is_online:
            data = None
        else:
            data = target.protocol_data

        self._storage.update_target_status(
            target.id, decision.is_online, decision.consecutive_failures,
            now, data,
        )
        if decision.transition is not None:
            self._storage.record_transition(target.id, decision.transition)
        self._storage.commit()
        return decision

    def _probe_target(self, target):
        """Worker body: probe one target, converting any exception.

        Returns:
            tuple: ``(outcome, raised)``.
        """
        try:
            outcome = self._probe(
                target.host, target.port, self._timeout, self._max_bytes
            )
        except Exception as exc:
            log.warning(
                "%s:%d: probe raised: %s", target.host, target.port, exc
            )
            return Offline("error: %s" % exc), True
        return outcome, False

    def _finish(self, target, outcome, raised, summary):
        """Persist one result and count it; storage errors are counted."""
        try:
            self.record(target, outcome)
        except Exception as exc:
            log.warning(
                "%s:%d: failed to store result: %s",
                target.host, target.port, exc,
            )
            self._storage.rollback()
            summary.errors += 1
            return

        if raised:
            summary.errors += 1
        elif outcome.is_online:
            summary.online += 1
        else:
            log.debug(
                "%s:%d: offline: %s", target.host, target.port, outcome.reason
            )
            summary.offline += 1
