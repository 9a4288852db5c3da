"""Value types shared by the client, reconciler, poller and storage.

A probe produces one of three outcome types; the reconciler and
storage only ever look at those, never at sockets.

Example:
    >>> from mudwatch.models import Offline, OnlineNoProtocol
    >>> Offline("timeout").is_online
    False
    >>> OnlineNoProtocol().is_online
    True
"""

import time
from dataclasses import asdict, dataclass, field


@dataclass(frozen=True)
class ProtocolData:
    """Server metadata decoded from one MSSP frame.

    Replaced wholesale on every successful poll.  Integer fields are
    None when absent or unparsable.  ``received_at`` is a Unix
    timestamp (seconds).
    """

    game_name: str | None = None
    codebase: str | None = None
    contact: str | None = None
    website: str | None = None
    language: str | None = None
    location: str | None = None
    family: str | None = None
    players: int | None = None
    max_players: int | None = None
    uptime: int | None = None
    protocols: frozenset[str] = frozenset()
    variables: dict[str, list[str]] = field(
        default_factory=dict, hash=False, compare=False
    )
    received_at: int = field(default_factory=lambda: int(time.time()))

    def to_dict(self) -> dict:
        """Return a JSON-serializable dict (protocols sorted)."""
        data = asdict(self)
        data["protocols"] = sorted(self.protocols)
        return data

    @classmethod
    def from_dict(cls, data: dict) -> "ProtocolData":
        """Rebuild from the output of ``to_dict()``; unknown keys are ignored."""
        known = {k: v for k, v in data.items() if k in cls.__dataclass_fields__}
        known["protocols"] = frozenset(known.get("protocols", ()))
        known["variables"] = dict(known.get("variables") or {})
        return cls(**known)


@dataclass
class Target:
    """One externally operated server, as held by the listing store."""

    id: int
    name: str
    host: str
    port: int
    is_online: bool = False
    consecutive_failures: int = 0
    last_checked_at: int | None = None
    protocol_data: ProtocolData | None = None


@dataclass(frozen=True)
class StatusSnapshot:
    """One history row per poll attempt.

    ``is_online`` is the raw result of that single check, not the
    smoothed flag stored on the target.
    """

    target_id: int
    checked_at: int
    is_online: bool
    player_count: int | None = None
    uptime: int | None = None


# -- Probe outcomes ----------------------------------------------------------


@dataclass(frozen=True)
class OnlineWithData:
    """Negotiation succeeded and a complete MSSP frame was decoded."""

    data: ProtocolData
    is_online = True


@dataclass(frozen=True)
class OnlineNoProtocol:
    """The server answered but never produced an MSSP frame."""

    is_online = True


@dataclass(frozen=True)
class Offline:
    """Connection refused, timed out, or failed before any data arrived."""

    reason: str
    is_online = False


Outcome = OnlineWithData | OnlineNoProtocol | Offline
