"""Client for the symdex daemon.

Discovers the workspace daemon through the peer registry and exchanges
framed requests over its Unix socket. ``query`` never raises for
transport problems: with no reachable daemon it returns an empty list,
so callers such as build loggers keep working without symbol data.

Example:
    >>> from symdex.client import SymbolClient
    >>> with SymbolClient(Path(".")) as client:
    ...     for result in client.query("pkg/mod.py", line=12):
    ...         print(result.describe())
"""

from __future__ import annotations

import logging
import socket
from pathlib import Path
from types import TracebackType

from symdex.daemon.protocol import (
    SymbolQueryRequest,
    SymbolQueryResponse,
    decode_response,
    recv_frame,
    send_frame,
)
from symdex.daemon.registry import PeerDescriptor, PeerRegistry
from symdex.errors import DaemonUnavailableError, ProtocolError
from symdex.paths import registry_directory, socket_path
from symdex.query.models import QueryResult

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 1.0


class SymbolClient:
    """Blocking client for one workspace's daemon.

    The connection is opened lazily and reused across requests until
    close() (or the end of a ``with`` block).

    Attributes:
        root: Workspace root
        timeout: Connect and read timeout in seconds
        registry: Registry used for discovery
    """

    def __init__(
        self,
        root: Path,
        timeout: float = DEFAULT_TIMEOUT,
        registry: PeerRegistry | None = None,
    ) -> None:
        self.root = root.resolve()
        self.timeout = timeout
        self.registry = registry or PeerRegistry(registry_directory(self.root))
        self._sock: socket.socket | None = None
        self._descriptor: PeerDescriptor | None = None

    def __enter__(self) -> SymbolClient:
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: TracebackType | None,
    ) -> None:
        self.close()

    def discover(self) -> PeerDescriptor | None:
        """Find the live daemon for this workspace, if any."""
        return self.registry.find_live_peer()

    def ensure_running(self) -> PeerDescriptor:
        """Start a background daemon unless one is already running.

        Raises:
            DaemonUnavailableError: If the daemon does not come up
        """
        descriptor = self.discover()
        if descriptor is not None:
            return descriptor

        from symdex.daemon.lifecycle import DaemonLifecycle

        try:
            return DaemonLifecycle(self.root).start_background()
        except RuntimeError as e:
            raise DaemonUnavailableError(str(e), root=str(self.root)) from e

    def close(self) -> None:
        """Close the cached connection, if open."""
        if self._sock is not None:
            try:
                self._sock.close()
            except OSError:
                pass
        self._sock = None
        self._descriptor = None

    def _connect(self) -> socket.socket:
        if self._sock is not None:
            return self._sock

        descriptor = self.discover()
        if descriptor is None:
            raise DaemonUnavailableError("No daemon running", root=str(self.root))

        path = socket_path(descriptor.channel_name)
        sock = socket.socket(socket.AF_UNIX, socket.SOCK_STREAM)
        sock.settimeout(self.timeout)
        try:
            sock.connect(str(path))
        except OSError as e:
            sock.close()
            raise DaemonUnavailableError(
                f"Cannot connect to daemon PID {descriptor.process_id}: {e}",
                socket=str(path),
            ) from e

        self._sock = sock
        self._descriptor = descriptor
        return sock

    def request(self, request: SymbolQueryRequest) -> SymbolQueryResponse:
        """Send one request and wait for its response.

        Raises:
            DaemonUnavailableError: If the daemon cannot be reached or the
                exchange fails
        """
        sock = self._connect()
        try:
            send_frame(sock, request)
            payload = recv_frame(sock)
            if payload is None:
                raise ProtocolError("Daemon closed the connection")
            return decode_response(payload)
        except (OSError, ProtocolError) as e:
            self.close()
            raise DaemonUnavailableError(f"Daemon exchange failed: {e}") from e

    def query(self, file: str | Path, line: int, column: int = 0) -> list[QueryResult]:
        """Look up the symbols at a source position.

        Args:
            file: Source file path (relative paths are taken from the root)
            line: 1-based line
            column: 1-based column, or 0 for every identifier on the line

        Returns:
            Matching symbols; empty if no daemon is reachable
        """
        path = Path(file)
        if not path.is_absolute():
            path = self.root / path
        request = SymbolQueryRequest.symbols(str(path.resolve()), line, column)

        # One retry: the first daemon may have exited since discovery
        for attempt in range(2):
            try:
                response = self.request(request)
            except DaemonUnavailableError as e:
                logger.debug(f"Symbol query attempt {attempt + 1} failed: {e.message}")
                continue

            if response.error:
                logger.debug(f"Daemon reported error: {response.error}")
            return response.symbols

        return []

    def shutdown(self) -> bool:
        """Ask the daemon to stop.

        Returns:
            True if the daemon acknowledged the request
        """
        try:
            response = self.request(SymbolQueryRequest.shutdown())
        except DaemonUnavailableError as e:
            logger.debug(f"Shutdown request failed: {e.message}")
            return False
        finally:
            self.close()
        return response.error is None


__all__ = [
    "DEFAULT_TIMEOUT",
    "SymbolClient",
]
