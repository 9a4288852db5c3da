"""Shared pytest fixtures and fakes for mudwatch tests."""

import socket
import threading

import pytest

from mudwatch.mssp import encode_frame


def mssp_frame(*pairs) -> bytes:
    """Build a complete MSSP frame from ``(name, value)`` pairs."""
    return encode_frame(list(pairs))


class FakeProbe:
    """Test double for probe(): canned outcomes per host, records calls.

    *outcomes* maps ``host`` to a list of outcomes returned in order
    (the last one repeats), or to an exception instance to raise.
    """

    def __init__(self, outcomes: dict):
        """Initialize with canned outcomes."""
        self._outcomes = {
            k: v if isinstance(v, Exception) else list(v)
            for k, v in outcomes.items()
        }
        self.calls = []
        self._lock = threading.Lock()

    def __call__(self, host, port, timeout, max_bytes=1000):
        """Return the next outcome for *host*."""
        with self._lock:
            self.calls.append((host, port, timeout, max_bytes))
            canned = self._outcomes[host]
            if isinstance(canned, Exception):
                raise canned
            if len(canned) > 1:
                return canned.pop(0)
            return canned[0]


class ScriptedServer:
    """Loopback TCP server that runs *script(conn)* for one connection.

    The script runs in a background thread; the connection is closed
    when it returns.  ``received`` collects everything the client sent
    before the script finished reading.
    """

    def __init__(self, script):
        """Bind to a free port and start accepting."""
        self._script = script
        self._sock = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
        self._sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
        self._sock.bind(("127.0.0.1", 0))
        self._sock.listen(1)
        self.port = self._sock.getsockname()[1]
        self.done = threading.Event()
        self._thread = threading.Thread(target=self._serve, daemon=True)
        self._thread.start()

    def _serve(self) -> None:
        self._sock.settimeout(5.0)
        try:
            conn, _ = self._sock.accept()
        except OSError:
            return
        with conn:
            try:
                self._script(conn)
            except OSError:
                pass
        self.done.set()

    def close(self) -> None:
        """Stop the server."""
        self._sock.close()
        self._thread.join(timeout=5.0)


@pytest.fixture()
def scripted_server():
    """Yield a factory for :class:`ScriptedServer`; closes them all after."""
    servers = []

    def _make(script):
        server = ScriptedServer(script)
        servers.append(server)
        return server

    yield _make
    for server in servers:
        server.close()


def free_port() -> int:
    """Return a TCP port with nothing listening on it."""
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as s:
        s.bind(("127.0.0.1", 0))
        return s.getsockname()[1]
