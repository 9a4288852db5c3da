"""Hysteresis between raw probe outcomes and the public online flag.

A success promotes a target immediately; only a run of
``threshold`` consecutive failures demotes it.  Pure functions, no
I/O.

Example:
    >>> from mudwatch.models import Offline
    >>> from mudwatch.reconciler import reconcile
    >>> d = reconcile(True, 2, Offline("timeout"))
    >>> d.is_online, d.consecutive_failures, d.went_offline
    (False, 3, True)
"""

from dataclasses import dataclass

from mudwatch.models import OnlineWithData, StatusSnapshot

# Consecutive failed polls before a target is shown as offline.
OFFLINE_THRESHOLD = 3


@dataclass(frozen=True)
class Decision:
    """New durable state for one target after one poll."""

    is_online: bool
    consecutive_failures: int
    came_online: bool = False
    went_offline: bool = False

    @property
    def transition(self) -> bool | None:
        """True for a came-online edge, False for went-offline, else None."""
        if self.came_online:
            return True
        if self.went_offline:
            return False
        return None


def reconcile(prior_is_online: bool, prior_failures: int, outcome,
              threshold: int = OFFLINE_THRESHOLD) -> Decision:
    """Fold one outcome into a target's prior state.

    Args:
        prior_is_online: The target's stored (smoothed) flag.
        prior_failures: Its stored consecutive-failure count.
        outcome: The probe outcome for this poll.
        threshold: Failures needed to flip the flag to offline.

    Returns:
        Decision: New flag, counter, and which edge (if any) fired.

    Example:
        >>> from mudwatch.models import OnlineNoProtocol
        >>> reconcile(False, 7, OnlineNoProtocol())
        Decision(is_online=True, consecutive_failures=0, came_online=True, went_offline=False)
    """
    if outcome.is_online:
        return Decision(
            is_online=True,
            consecutive_failures=0,
            came_online=not prior_is_online,
        )

    failures = prior_failures + 1
    is_online = False if failures >= threshold else prior_is_online
    return Decision(
        is_online=is_online,
        consecutive_failures=failures,
        went_offline=prior_is_online and not is_online,
    )


def make_snapshot(target_id: int, outcome, checked_at: int) -> StatusSnapshot:
    """Build the history row for one poll from its raw outcome."""
    players = uptime = None
    if isinstance(outcome, OnlineWithData):
        players = outcome.data.players
        uptime = outcome.data.uptime
    return StatusSnapshot(
        target_id=target_id,
        checked_at=checked_at,
        is_online=outcome.is_online,
        player_count=players,
        uptime=uptime,
    )
