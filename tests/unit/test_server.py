"""Tests for the Unix socket symbol server."""

from __future__ import annotations

import asyncio
import logging
import tempfile
import time
from collections.abc import Iterator
from pathlib import Path
from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from symdex.daemon.protocol import (
    HEADER,
    SymbolQueryRequest,
    SymbolQueryResponse,
    decode_response,
    read_frame,
    write_frame,
)
from symdex.daemon.server import LOG_EVERY_N_FAILURES, SymbolServer
from symdex.query.models import QueryResult

# =============================================================================
# Fixtures
# =============================================================================


@pytest.fixture
def sock_path() -> Iterator[Path]:
    """A short socket path (AF_UNIX paths are length limited)."""
    with tempfile.TemporaryDirectory(prefix="sx") as d:
        yield Path(d) / "s.sock"


def echo_query(file: str, line: int, column: int) -> list[QueryResult]:
    return [QueryResult(name=f"{Path(file).name}:{line}:{column}")]


class Recorder:
    """Collects server callbacks."""

    def __init__(self) -> None:
        self.shutdowns = 0
        self.activity = 0

    def on_shutdown(self) -> None:
        self.shutdowns += 1

    def on_activity(self) -> None:
        self.activity += 1


async def started_server(sock_path: Path, recorder: Recorder, query=echo_query, **kwargs) -> SymbolServer:
    server = SymbolServer(
        "stest000",
        query,
        on_shutdown=recorder.on_shutdown,
        on_activity=recorder.on_activity,
        path=sock_path,
        **kwargs,
    )
    await server.start()
    return server


async def ask(
    reader: asyncio.StreamReader,
    writer: asyncio.StreamWriter,
    request: SymbolQueryRequest,
) -> SymbolQueryResponse:
    await write_frame(writer, request)
    payload = await read_frame(reader)
    assert payload is not None
    return decode_response(payload)


# =============================================================================
# TestSymbolServer
# =============================================================================


class TestSymbolServer:
    """Tests for request handling over a real socket."""

    @pytest.mark.asyncio
    async def test_multiple_requests_per_connection(self, sock_path: Path) -> None:
        """One connection carries any number of exchanges."""
        recorder = Recorder()
        server = await started_server(sock_path, recorder)
        try:
            reader, writer = await asyncio.open_unix_connection(str(sock_path))
            first = await ask(reader, writer, SymbolQueryRequest.symbols("/w/a.py", 1, 2))
            second = await ask(reader, writer, SymbolQueryRequest.symbols("/w/b.py", 3))
            writer.close()

            assert [s.name for s in first.symbols] == ["a.py:1:2"]
            assert [s.name for s in second.symbols] == ["b.py:3:0"]
            assert server.requests_served == 2
            assert recorder.activity >= 3
        finally:
            await server.close()

    @pytest.mark.asyncio
    async def test_concurrent_connections(self, sock_path: Path) -> None:
        """Several clients are served at the same time."""
        server = await started_server(sock_path, Recorder())

        async def client(n: int) -> str:
            reader, writer = await asyncio.open_unix_connection(str(sock_path))
            try:
                response = await ask(reader, writer, SymbolQueryRequest.symbols(f"/w/{n}.py", n))
                return response.symbols[0].name
            finally:
                writer.close()

        try:
            names = await asyncio.gather(*(client(n) for n in range(1, 6)))
            assert names == [f"{n}.py:{n}:0" for n in range(1, 6)]
        finally:
            await server.close()

    @pytest.mark.asyncio
    async def test_unknown_kind_keeps_connection(self, sock_path: Path) -> None:
        """An unknown request kind gets an error and the connection stays usable."""
        server = await started_server(sock_path, Recorder())
        try:
            reader, writer = await asyncio.open_unix_connection(str(sock_path))
            bad = await ask(reader, writer, SymbolQueryRequest(kind="frobnicate"))
            good = await ask(reader, writer, SymbolQueryRequest.symbols("/w/a.py", 1))
            writer.close()

            assert bad.error == "Unknown request kind: frobnicate"
            assert bad.symbols == []
            assert good.error is None
        finally:
            await server.close()

    @pytest.mark.asyncio
    async def test_malformed_request(self, sock_path: Path) -> None:
        """A frame that is not a valid request gets an error response."""
        server = await started_server(sock_path, Recorder())
        try:
            reader, writer = await asyncio.open_unix_connection(str(sock_path))
            writer.write(HEADER.pack(4) + b"nope")
            await writer.drain()
            payload = await read_frame(reader)
            good = await ask(reader, writer, SymbolQueryRequest.symbols("/w/a.py", 1))
            writer.close()

            assert payload is not None
            assert decode_response(payload).error.startswith("Malformed request:")
            assert good.error is None
        finally:
            await server.close()

    @pytest.mark.asyncio
    async def test_query_failure_reported(self, sock_path: Path) -> None:
        """Exceptions from the query handler become error responses."""

        def failing(file: str, line: int, column: int) -> list[QueryResult]:
            raise ValueError("bad position")

        server = await started_server(sock_path, Recorder(), query=failing)
        try:
            reader, writer = await asyncio.open_unix_connection(str(sock_path))
            response = await ask(reader, writer, SymbolQueryRequest.symbols("/w/a.py", 1))
            writer.close()

            assert response.error == "Query failed: bad position"
            assert server.requests_served == 0
        finally:
            await server.close()

    @pytest.mark.asyncio
    async def test_shutdown_acknowledged_before_callback(self, sock_path: Path) -> None:
        """The shutdown response is written, then the callback runs and the connection ends."""
        recorder = Recorder()
        server = await started_server(sock_path, recorder)
        try:
            reader, writer = await asyncio.open_unix_connection(str(sock_path))
            response = await ask(reader, writer, SymbolQueryRequest.shutdown())

            assert response.error is None
            assert await read_frame(reader) is None
            assert recorder.shutdowns == 1
            writer.close()
        finally:
            await server.close()


# =============================================================================
# TestServerLifecycle
# =============================================================================


class TestServerLifecycle:
    """Tests for listener startup and shutdown."""

    @pytest.mark.asyncio
    async def test_socket_created_and_removed(self, sock_path: Path) -> None:
        """start() creates the socket file; close() removes it."""
        server = await started_server(sock_path, Recorder())
        assert sock_path.exists()
        assert server.is_serving

        await server.close()

        assert not sock_path.exists()
        assert not server.is_serving

    @pytest.mark.asyncio
    async def test_stale_socket_replaced(self, sock_path: Path) -> None:
        """A leftover file at the socket path does not block startup."""
        sock_path.write_text("stale")
        server = await started_server(sock_path, Recorder())
        try:
            assert server.is_serving
        finally:
            await server.close()

    @pytest.mark.asyncio
    async def test_close_cancels_idle_connections(self, sock_path: Path) -> None:
        """Connected clients with no request in flight do not delay close()."""
        server = await started_server(sock_path, Recorder(), drain_timeout=30)
        reader, writer = await asyncio.open_unix_connection(str(sock_path))
        while server.connection_count == 0:
            await asyncio.sleep(0.01)

        started = time.monotonic()
        await server.close()

        assert time.monotonic() - started < 5
        assert server.connection_count == 0
        writer.close()

    @pytest.mark.asyncio
    async def test_close_drains_in_flight_request(self, sock_path: Path) -> None:
        """A request being processed when close() starts still gets its answer."""

        def slow(file: str, line: int, column: int) -> list[QueryResult]:
            time.sleep(0.3)
            return echo_query(file, line, column)

        server = await started_server(sock_path, Recorder(), query=slow)
        reader, writer = await asyncio.open_unix_connection(str(sock_path))
        pending = asyncio.create_task(ask(reader, writer, SymbolQueryRequest.symbols("/w/a.py", 4)))
        while not server._busy:
            await asyncio.sleep(0.01)

        await server.close()
        response = await pending

        assert [s.name for s in response.symbols] == ["a.py:4:0"]
        writer.close()

    @pytest.mark.asyncio
    async def test_close_without_start(self) -> None:
        """Closing a server that never started is a no-op."""
        server = SymbolServer("sunused0", echo_query, on_shutdown=lambda: None)
        await server.close()

    @pytest.mark.asyncio
    async def test_permission_errors_retried_with_backoff(
        self, sock_path: Path, caplog: pytest.LogCaptureFixture
    ) -> None:
        """Listener creation retries with capped backoff and throttled logging."""
        failures = 12
        start_unix_server = AsyncMock(
            side_effect=[PermissionError("denied")] * failures + [MagicMock()]
        )
        sleep = AsyncMock()
        server = SymbolServer("sperm000", echo_query, on_shutdown=lambda: None, path=sock_path)

        with (
            patch("symdex.daemon.server.asyncio.start_unix_server", start_unix_server),
            patch("symdex.daemon.server.asyncio.sleep", sleep),
            caplog.at_level(logging.WARNING, logger="symdex.daemon.server"),
        ):
            await server.start()

        delays = [c.args[0] for c in sleep.await_args_list]
        assert delays[:6] == [0.5, 1.0, 2.0, 4.0, 8.0, 10.0]
        assert max(delays) == 10.0
        assert len(delays) == failures
        warnings = [r for r in caplog.records if "Cannot listen" in r.getMessage()]
        assert len(warnings) == 1 + failures // LOG_EVERY_N_FAILURES
