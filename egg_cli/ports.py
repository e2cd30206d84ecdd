"""Local TCP port probing.

The probe is a heuristic, not a reservation: a port reported free can be
taken by another process before the relay binds it. That window is
acceptable for one developer on one machine. Callers depend on the
``PortProber`` interface so a stricter allocator (bind-and-hold) can be
dropped in later without touching them.
"""

from __future__ import annotations

import errno
import socket
from typing import Protocol

from egg_cli.constants import PORT_MAX, PORT_MIN, get_probe_timeout
from egg_cli.errors import PortExhaustionError, ValidationError
from egg_cli.utils import log_debug

# Errors that mean "nothing is listening there".
_FREE_ERRNOS = {errno.ECONNREFUSED, errno.ETIMEDOUT, errno.EHOSTUNREACH, errno.ENETUNREACH}


def validate_port(port: int) -> int:
    """Return *port* unchanged if it is a valid TCP port number.

    Raises:
        ValidationError: If *port* is outside 1-65535.
    """
    if isinstance(port, bool) or not isinstance(port, int) or not PORT_MIN <= port <= PORT_MAX:
        raise ValidationError(f"Invalid port: {port!r} (must be {PORT_MIN}-{PORT_MAX})")
    return port


class PortProber(Protocol):
    """Answers "is this local port free?" and "which nearby port is free?"."""

    def check_available(self, port: int) -> bool:
        ...

    def find_available(self, start: int, max_attempts: int) -> int:
        ...


class TcpConnectProber:
    """Probe ports by attempting a TCP connect to localhost.

    A successful connect means something is listening, so the port is
    taken. A refused or timed-out connect means it is free.

    Args:
        host: Host to probe (default ``localhost``).
        timeout: Connect timeout in seconds (default 100 ms).
    """

    def __init__(self, host: str = "localhost", timeout: float | None = None) -> None:
        self.host = host
        self.timeout = timeout if timeout is not None else get_probe_timeout()

    def check_available(self, port: int) -> bool:
        """Return True if nothing accepts connections on *port*.

        Any connect error other than a clean refusal or timeout is
        ambiguous; it is logged and the port is treated as available.
        """
        validate_port(port)
        try:
            conn = socket.create_connection((self.host, port), timeout=self.timeout)
        except (ConnectionRefusedError, socket.timeout):
            return True
        except OSError as exc:
            if exc.errno not in _FREE_ERRNOS:
                log_debug(f"Ambiguous probe result for port {port} ({exc}); assuming available")
            return True
        conn.close()
        return False

    def find_available(self, start: int, max_attempts: int) -> int:
        """Return the first free port in ``[start, start + max_attempts - 1]``.

        The window is clamped to 65535.

        Raises:
            ValidationError: If *start* is not a valid port or *max_attempts* < 1.
            PortExhaustionError: If every port in the window is taken.
        """
        validate_port(start)
        if max_attempts < 1:
            raise ValidationError(f"max_attempts must be at least 1, got {max_attempts}")

        end = start + max_attempts - 1
        for port in range(start, min(end, PORT_MAX) + 1):
            if self.check_available(port):
                return port
        raise PortExhaustionError(start, end)

