"""Uptime and population statistics over a target's snapshot history.

Example:
    >>> from mudwatch.models import StatusSnapshot
    >>> from mudwatch.stats import compute_stats
    >>> snaps = [StatusSnapshot(1, 100, True, 10), StatusSnapshot(1, 400, False)]
    >>> compute_stats(snaps).uptime_percentage
    50.0
"""

from dataclasses import dataclass

from mudwatch.models import StatusSnapshot


@dataclass(frozen=True)
class UptimeStats:
    """Aggregates over a window of snapshots.

    Player figures are None when no snapshot carried a player count.
    """

    uptime_percentage: float
    average_players: int | None
    peak_players: int | None
    last_online: int | None


def compute_stats(snapshots: list[StatusSnapshot]) -> UptimeStats:
    """Summarize *snapshots* (any order).

    Uptime is the share of raw online checks, as a percentage rounded
    to two places; an empty history reports 0.0.  The average player
    count is truncated to an int.
    """
    if not snapshots:
        return UptimeStats(0.0, None, None, None)

    online = [s for s in snapshots if s.is_online]
    uptime = round(len(online) / len(snapshots) * 100, 2)

    counts = [s.player_count for s in snapshots if s.player_count is not None]
    average = int(sum(counts) / len(counts)) if counts else None
    peak = max(counts) if counts else None

    last_online = max((s.checked_at for s in online), default=None)
    return UptimeStats(uptime, average, peak, last_online)
