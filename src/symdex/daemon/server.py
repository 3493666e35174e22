"""Local socket server for symbol queries.

Listens on a Unix domain socket derived from the daemon's channel name.
Each connection is served by its own task and may carry any number of
request/response exchanges (see ``symdex.daemon.protocol`` for framing).
"""

from __future__ import annotations

import asyncio
import logging
import os
from collections.abc import Callable
from pathlib import Path

from symdex.daemon.protocol import (
    KIND_SHUTDOWN,
    KIND_SYMBOLS,
    PROTOCOL_VERSION,
    SymbolQueryResponse,
    decode_request,
    read_frame,
    write_frame,
)
from symdex.errors import ProtocolError
from symdex.paths import socket_path
from symdex.query.models import QueryResult

logger = logging.getLogger(__name__)

# Listener retry backoff when the socket cannot be created
INITIAL_RETRY_DELAY = 0.5
MAX_RETRY_DELAY = 10.0

# Listener failures are logged on the first attempt and then every Nth
LOG_EVERY_N_FAILURES = 10

QueryHandler = Callable[[str, int, int], list[QueryResult]]


async def _wait_or_stop(delay: float, stop: asyncio.Event | None) -> bool:
    """Sleep for ``delay`` seconds; True if ``stop`` was set meanwhile."""
    if stop is None:
        await asyncio.sleep(delay)
        return False
    try:
        await asyncio.wait_for(stop.wait(), timeout=delay)
    except asyncio.TimeoutError:
        return False
    return True


class SymbolServer:
    """Serve framed symbol queries on a local channel.

    Attributes:
        channel_name: Channel this server listens on
        socket_path: Unix socket file for the channel
        requests_served: Number of successful symbol queries
    """

    def __init__(
        self,
        channel_name: str,
        query: QueryHandler,
        on_shutdown: Callable[[], None],
        on_activity: Callable[[], None] | None = None,
        drain_timeout: float = 5.0,
        path: Path | None = None,
    ) -> None:
        """Initialize the server.

        Args:
            channel_name: Channel name published in the peer descriptor
            query: Blocking query function (file, line, column), run in a thread
            on_shutdown: Called after a shutdown request has been answered
            on_activity: Called on every accepted connection and request
            drain_timeout: Seconds close() waits for in-flight requests
            path: Socket path override (default: derived from channel_name)
        """
        self.channel_name = channel_name
        self.socket_path = path or socket_path(channel_name)
        self.drain_timeout = drain_timeout
        self.requests_served = 0
        self._query = query
        self._on_shutdown = on_shutdown
        self._on_activity = on_activity or (lambda: None)
        self._server: asyncio.Server | None = None
        self._connections: set[asyncio.Task[None]] = set()
        self._busy: set[asyncio.Task[None]] = set()
        self._closing = False

    @property
    def is_serving(self) -> bool:
        return self._server is not None and self._server.is_serving()

    @property
    def connection_count(self) -> int:
        return len(self._connections)

    async def start(self, stop: asyncio.Event | None = None) -> bool:
        """Create the listener, retrying while the socket path is not permitted.

        Args:
            stop: Abandons the retries once set

        Returns:
            True once listening, False if ``stop`` was set first
        """
        delay = INITIAL_RETRY_DELAY
        failures = 0

        while True:
            if stop is not None and stop.is_set():
                return False
            try:
                self._remove_socket_file()
                self._server = await asyncio.start_unix_server(
                    self._handle_client, path=str(self.socket_path)
                )
                break
            except PermissionError as e:
                failures += 1
                if failures == 1 or failures % LOG_EVERY_N_FAILURES == 0:
                    logger.warning(
                        f"Cannot listen on {self.socket_path} "
                        f"(attempt {failures}, retrying in {delay:.1f}s): {e}"
                    )
                if await _wait_or_stop(delay, stop):
                    logger.info("Listener retries abandoned: shutdown requested")
                    return False
                delay = min(delay * 2, MAX_RETRY_DELAY)

        try:
            os.chmod(self.socket_path, 0o600)
        except OSError:
            pass
        logger.info(f"Listening on {self.socket_path}")
        return True

    async def close(self) -> None:
        """Stop accepting, drain in-flight requests, then drop connections."""
        if self._server is None:
            return

        self._closing = True
        self._server.close()
        current = asyncio.current_task()

        # Idle connections are waiting for a frame that would not be served
        for task in self._connections - self._busy:
            if task is not current:
                task.cancel()

        busy = {t for t in self._busy if t is not current}
        if busy:
            _, pending = await asyncio.wait(busy, timeout=self.drain_timeout)
            for task in pending:
                logger.warning("Cancelling connection that did not finish draining")
                task.cancel()

        others = [t for t in self._connections if t is not current]
        if others:
            await asyncio.gather(*others, return_exceptions=True)

        await self._server.wait_closed()
        self._server = None
        self._closing = False
        self._remove_socket_file()
        logger.info("Symbol server closed")

    def _remove_socket_file(self) -> None:
        try:
            self.socket_path.unlink(missing_ok=True)
        except OSError as e:
            logger.debug(f"Failed to remove socket {self.socket_path}: {e}")

    async def _handle_client(
        self,
        reader: asyncio.StreamReader,
        writer: asyncio.StreamWriter,
    ) -> None:
        task = asyncio.current_task()
        assert task is not None
        self._connections.add(task)
        self._on_activity()

        try:
            while True:
                try:
                    payload = await read_frame(reader)
                except ProtocolError as e:
                    logger.debug(f"Dropping connection: {e.message}")
                    break
                if payload is None:
                    break

                self._busy.add(task)
                try:
                    self._on_activity()
                    response, shutdown = await self._dispatch(payload)
                    await write_frame(writer, response)
                finally:
                    self._busy.discard(task)

                if shutdown:
                    self._on_shutdown()
                    break
                if self._closing:
                    break
        except ConnectionError as e:
            logger.debug(f"Client disconnected: {e}")
        finally:
            self._connections.discard(task)
            writer.close()
            try:
                await writer.wait_closed()
            except ConnectionError:
                pass

    async def _dispatch(self, payload: bytes) -> tuple[SymbolQueryResponse, bool]:
        """Answer one request.

        Returns:
            The response and whether the daemon should shut down afterwards
        """
        try:
            request = decode_request(payload)
        except ProtocolError as e:
            logger.debug(f"Rejecting malformed request: {e.message}")
            return SymbolQueryResponse.failure(f"Malformed request: {e.message}"), False

        if request.version != PROTOCOL_VERSION:
            logger.debug(f"Request protocol version {request.version} != {PROTOCOL_VERSION}")

        if request.kind == KIND_SHUTDOWN:
            logger.info("Shutdown requested by client")
            return SymbolQueryResponse(), True

        if request.kind != KIND_SYMBOLS:
            return SymbolQueryResponse.failure(f"Unknown request kind: {request.kind}"), False

        try:
            symbols = await asyncio.to_thread(
                self._query, request.file, request.line, request.column
            )
        except Exception as e:
            logger.error(f"Query failed for {request.file}:{request.line}: {e}")
            return SymbolQueryResponse.failure(f"Query failed: {e}"), False

        self.requests_served += 1
        return SymbolQueryResponse(symbols=symbols), False


__all__ = [
    "INITIAL_RETRY_DELAY",
    "LOG_EVERY_N_FAILURES",
    "MAX_RETRY_DELAY",
    "SymbolServer",
]
