"""MSSP probe over a plain TCP connection.

Connects, sends ``IAC DO MSSP``, and reads until an MSSP frame is
complete, the server proves it does not speak MSSP, or the probe
times out.  Network trouble never raises; it becomes an
:class:`~mudwatch.models.Offline` outcome.

Example:
    >>> from mudwatch.client import probe
    >>> outcome = probe("mud.example.org", 4000, timeout=10)
    >>> outcome.is_online
    True
"""

import logging
import socket
import time

from mudwatch.models import Offline, OnlineNoProtocol, OnlineWithData
from mudwatch.mssp import FRAME_END, FRAME_START, MSSP_REQUEST, parse

log = logging.getLogger(__name__)

# Bytes received without an MSSP frame start before we give up and
# call the server online-without-MSSP.
NO_PROTOCOL_CEILING = 1000

_RECV_SIZE = 4096


def find_frame(buffer):
    """Locate a complete MSSP frame in *buffer*.

    Searches the whole buffer each time, so a marker split across
    two reads is still found once both halves have arrived.

    Args:
        buffer: Bytes received so far.

    Returns:
        tuple: ``(start_found, body)`` -- *start_found* is True once
            ``IAC SB MSSP`` has been seen; *body* is the frame interior
            when ``IAC SE`` follows it, else None.

    Example:
        >>> find_frame(b"banner\\xff\\xfa\\x46\\x01A\\x02B\\xff\\xf0")
        (True, b'\\x01A\\x02B')
        >>> find_frame(b"\\xff\\xfa\\x46\\x01A")
        (True, None)
    """
    start = buffer.find(FRAME_START)
    if start < 0:
        return False, None
    body_start = start + len(FRAME_START)
    end = buffer.find(FRAME_END, body_start)
    if end < 0:
        return True, None
    return True, bytes(buffer[body_start:end])


def probe(host, port, timeout=10.0, max_bytes=NO_PROTOCOL_CEILING):
    """Query one server and return exactly one outcome.

    *timeout* bounds the whole probe (connect plus reads).  Once an
    MSSP frame has started, reading continues past *max_bytes* until
    it ends or time runs out.

    Outcomes:
        - ``OnlineWithData`` when a complete frame is decoded.
        - ``OnlineNoProtocol`` when *max_bytes* arrive with no frame
          start, or the server closes, stalls or errors after sending
          something.
        - ``Offline("timeout")`` / ``Offline("closed")`` /
          ``Offline(<error text>)`` when nothing was received.

    Args:
        host: Server hostname or IP address.
        port: TCP port (1-65535).
        timeout: Seconds allowed for the whole probe.
        max_bytes: No-protocol ceiling in bytes.

    Returns:
        OnlineWithData | OnlineNoProtocol | Offline

    Example:
        >>> probe("127.0.0.1", 1, timeout=1)
        Offline(reason='[Errno 111] Connection refused')
    """
    deadline = time.monotonic() + timeout
    try:
        sock = socket.create_connection((host, port), timeout=timeout)
    except socket.timeout:
        log.debug("%s:%d: connect timed out", host, port)
        return Offline("timeout")
    except OSError as exc:
        log.debug("%s:%d: connect failed: %s", host, port, exc)
        return Offline(_error_text(exc))

    with sock:
        return _exchange(sock, host, port, deadline, max_bytes)


def _exchange(sock, host, port, deadline, max_bytes):
    """Send the MSSP request and read until an outcome is decided."""
    buffer = bytearray()
    try:
        sock.sendall(MSSP_REQUEST)
        while True:
            remaining = deadline - time.monotonic()
            if remaining <= 0:
                raise socket.timeout("probe deadline reached")
            sock.settimeout(remaining)

            chunk = sock.recv(_RECV_SIZE)
            if not chunk:
                log.debug(
                    "%s:%d: closed after %d bytes", host, port, len(buffer)
                )
                if buffer:
                    return OnlineNoProtocol()
                return Offline("closed")

            buffer += chunk
            start_found, body = find_frame(buffer)
            if body is not None:
                data = parse(body)
                log.debug(
                    "%s:%d: MSSP frame, %d variables, players=%s",
                    host, port, len(data.variables), data.players,
                )
                return OnlineWithData(data)
            if not start_found and len(buffer) >= max_bytes:
                log.debug(
                    "%s:%d: %d bytes without MSSP", host, port, len(buffer)
                )
                return OnlineNoProtocol()
    except socket.timeout:
        if buffer:
            log.debug(
                "%s:%d: timed out after %d bytes, no MSSP frame",
                host, port, len(buffer),
            )
            return OnlineNoProtocol()
        log.debug("%s:%d: timed out waiting for data", host, port)
        return Offline("timeout")
    except OSError as exc:
        if buffer:
            log.debug("%s:%d: error after data: %s", host, port, exc)
            return OnlineNoProtocol()
        log.debug("%s:%d: socket error: %s", host, port, exc)
        return Offline(_error_text(exc))


def _error_text(exc):
    return str(exc) or exc.__class__.__name__
