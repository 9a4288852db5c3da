#!/usr/bin/env python3
"""Fake MUD server for exercising mudwatch by hand.

Listens on a TCP port and, per connection, behaves as one of:

- ``mssp``: sends a banner, waits for ``IAC DO MSSP`` and answers
  with an MSSP frame whose player count varies slightly.
- ``plain``: sends a long banner and never speaks MSSP.
- ``silent``: accepts and sends nothing.
- ``close``: accepts and closes immediately.

Usage:
    python simulator.py <port> [mode]

Example:
    python simulator.py 4000 mssp
"""

import random
import socket
import sys
import threading
import time

# Add parent src to path so we can import mudwatch
sys.path.insert(0, str(__import__("pathlib").Path(__file__).resolve().parents[1] / "src"))

from mudwatch.mssp import MSSP_REQUEST, encode_frame

_BANNER = b"Welcome to SimMUD!\r\nBy what name are you known? "
_MODES = ("mssp", "plain", "silent", "close")


def make_frame(started):
    """Build an MSSP frame with synthetic population data.

    Args:
        started: Unix time the simulator started, for UPTIME.

    Returns:
        bytes: Complete ``IAC SB MSSP ... IAC SE`` frame.
    """
    return encode_frame([
        ("NAME", "SimMUD"),
        ("PLAYERS", 12 + random.randint(-3, 3)),
        ("UPTIME", int(started)),
        ("CODEBASE", "Custom"),
        ("PORT", [4000, 4001]),
        ("ANSI", 1),
        ("UTF-8", 1),
        ("MSP", 0),
    ])


def handle(conn, mode, started):
    """Serve one client connection according to *mode*."""
    with conn:
        if mode == "close":
            return
        if mode == "silent":
            time.sleep(30)
            return
        if mode == "plain":
            conn.sendall(_BANNER * 40)
            time.sleep(5)
            return

        conn.sendall(_BANNER)
        conn.settimeout(10.0)
        received = b""
        while MSSP_REQUEST not in received:
            chunk = conn.recv(64)
            if not chunk:
                return
            received += chunk
        conn.sendall(make_frame(started))
        time.sleep(1)


def run(port, mode):
    """Accept connections forever, one thread per client."""
    started = time.time()
    server = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
    server.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
    server.bind(("127.0.0.1", port))
    server.listen(16)

    print("simulator: mode={} listening on {}".format(mode, port),
          flush=True)

    try:
        while True:
            conn, _ = server.accept()
            threading.Thread(
                target=handle, args=(conn, mode, started), daemon=True
            ).start()
    except KeyboardInterrupt:
        pass
    finally:
        server.close()


if __name__ == "__main__":
    if len(sys.argv) not in (2, 3) or (
        len(sys.argv) == 3 and sys.argv[2] not in _MODES
    ):
        print("usage: simulator.py <port> [{}]".format("|".join(_MODES)),
              file=sys.stderr)
        sys.exit(1)
    run(int(sys.argv[1]), sys.argv[2] if len(sys.argv) == 3 else "mssp")
