"""MSSP wire constants and the frame parser.

An MSSP response is a telnet sub-negotiation::

    IAC SB MSSP  VAR name VAL value [VAL value ...]  VAR ...  IAC SE

The client strips the outer markers; :func:`parse` decodes the
interior.  Parsing never fails -- garbage degrades to missing fields.

Example:
    >>> from mudwatch.mssp import parse
    >>> data = parse(bytes.fromhex('01 4e 41 4d 45 02 54 65 73 74'
    ...                            ' 01 50 4c 41 59 45 52 53 02 34 32'))
    >>> data.game_name, data.players
    ('Test', 42)
"""

import time

from mudwatch.models import ProtocolData

# -- Protocol constants ------------------------------------------------------

IAC = 0xFF
DO = 0xFD
SB = 0xFA
SE = 0xF0
MSSP = 0x46

MSSP_VAR = 0x01
MSSP_VAL = 0x02

# IAC DO MSSP
MSSP_REQUEST = bytes([IAC, DO, MSSP])
FRAME_START = bytes([IAC, SB, MSSP])
FRAME_END = bytes([IAC, SE])

# Capability variables reported as flags: present in ``protocols``
# only when the advertised value is truthy.
PROTOCOL_FLAGS = (
    "ANSI",
    "UTF-8",
    "MXP",
    "MCCP",
    "MSP",
    "SSL",
    "GMCP",
    "MSDP",
    "MCP",
    "PUEBLO",
    "VT100",
    "XTERM 256 COLORS",
    "XTERM TRUE COLORS",
)

_STRING_FIELDS = {
    "NAME": "game_name",
    "CODEBASE": "codebase",
    "CONTACT": "contact",
    "LANGUAGE": "language",
    "LOCATION": "location",
    "FAMILY": "family",
}

_INT_FIELDS = {
    "PLAYERS": "players",
    "MAX PLAYERS": "max_players",
    "MAXPLAYERS": "max_players",
    "UPTIME": "uptime",
}


# -- Decoding ----------------------------------------------------------------


def parse_variables(payload):
    """Split a sub-negotiation body into ``(name, value)`` observations.

    ``VAR`` starts a name that runs to the next ``VAR`` or ``VAL``;
    each ``VAL`` starts a value that runs to the next marker, so a
    name followed by several values yields one pair per value.
    Names are upper-cased.  Bytes outside the alternation are skipped.

    Args:
        payload: Interior bytes of an MSSP frame.

    Returns:
        list[tuple[str, str]]: Observations in wire order.

    Example:
        >>> parse_variables(b"\\x01PORT\\x024000\\x024001")
        [('PORT', '4000'), ('PORT', '4001')]
    """
    pairs = []
    name = None
    i = 0
    n = len(payload)

    while i < n:
        byte = payload[i]
        if byte == MSSP_VAR:
            end = _next_marker(payload, i + 1)
            name = _decode(payload[i + 1 : end]).upper()
            i = end
        elif byte == MSSP_VAL and name is not None:
            end = _next_marker(payload, i + 1)
            pairs.append((name, _decode(payload[i + 1 : end])))
            i = end
        else:
            i += 1

    return pairs


def parse(payload):
    """Decode an MSSP frame body into :class:`ProtocolData`.

    Scalar fields take the first observation of a repeated variable.
    ``PLAYERS``, ``MAX PLAYERS`` and ``UPTIME`` are integers; values
    that are non-numeric or negative are skipped.  ``WEBSITE``
    wins over ``WWW``.  A flag in :data:`PROTOCOL_FLAGS` is listed in
    ``protocols`` when any of its values is truthy.

    Args:
        payload: Interior bytes of an MSSP frame (may be empty).

    Returns:
        ProtocolData: Parsed data, ``received_at`` set to now.

    Example:
        >>> parse(b"").protocols
        frozenset()
        >>> sorted(parse(b"\\x01ANSI\\x021\\x01MSP\\x020").protocols)
        ['ANSI']
    """
    variables = {}
    for name, value in parse_variables(payload):
        variables.setdefault(name, []).append(value)

    fields = {}
    for key, attr in _STRING_FIELDS.items():
        value = _first(variables, key)
        if value is not None:
            fields[attr] = value

    for key, attr in _INT_FIELDS.items():
        if attr in fields:
            continue
        value = _first_int(variables.get(key, ()))
        if value is not None:
            fields[attr] = value

    website = _first(variables, "WEBSITE")
    if website is None:
        website = _first(variables, "WWW")
    if website is not None:
        fields["website"] = website

    protocols = frozenset(
        key for key in PROTOCOL_FLAGS
        if any(_truthy(v) for v in variables.get(key, ()))
    )

    return ProtocolData(
        protocols=protocols,
        variables=variables,
        received_at=int(time.time()),
        **fields,
    )


# -- Encoding ----------------------------------------------------------------


def encode_variables(pairs):
    """Build a sub-negotiation body from ``(name, value)`` pairs.

    A list or tuple value is emitted as repeated ``VAL`` entries.

    Example:
        >>> encode_variables([("NAME", "Test"), ("PLAYERS", 42)])
        b'\\x01NAME\\x02Test\\x01PLAYERS\\x0242'
    """
    out = bytearray()
    for name, value in pairs:
        out.append(MSSP_VAR)
        out += str(name).encode("utf-8")
        values = value if isinstance(value, (list, tuple)) else [value]
        for v in values:
            out.append(MSSP_VAL)
            out += str(v).encode("utf-8")
    return bytes(out)


def encode_frame(pairs):
    """Wrap :func:`encode_variables` output in ``IAC SB MSSP ... IAC SE``."""
    return FRAME_START + encode_variables(pairs) + FRAME_END


# -- Helpers -----------------------------------------------------------------


def _next_marker(payload, start):
    """Return the index of the next VAR/VAL byte at or after *start*."""
    i = start
    while i < len(payload) and payload[i] not in (MSSP_VAR, MSSP_VAL):
        i += 1
    return i


def _decode(raw):
    return bytes(raw).decode("utf-8", errors="replace").strip()


def _first(variables, key):
    """Return the first non-empty value of *key*, or None."""
    for value in variables.get(key, ()):
        if value:
            return value
    return None


def _first_int(values):
    """Return the first non-negative integer among *values*, or None."""
    for value in values:
        # Rejects "-1" (MSSP's "unknown"), "4_2" and non-ASCII digits.
        if value.isascii() and value.isdigit():
            return int(value)
    return None


def _truthy(value):
    if not value:
        return False
    try:
        return int(value) != 0
    except ValueError:
        return True
