"""Wire protocol for the local daemon channel.

Every message, in either direction, is a 4-byte big-endian length prefix
followed by that many bytes of UTF-8 JSON:

    +----------------+---------------------------+
    | length (u32 BE)| JSON payload (UTF-8)      |
    +----------------+---------------------------+

Requests carry ``{version, kind, file, line, column}``; responses carry
``{symbols: [...], error?}``.
"""

from __future__ import annotations

import asyncio
import socket
import struct

from pydantic import Field, ValidationError

from symdex.errors import ProtocolError
from symdex.query.models import QueryResult, WireModel

PROTOCOL_VERSION = 1

# Request kinds understood by the daemon
KIND_SYMBOLS = "symbols"
KIND_SHUTDOWN = "shutdown"

HEADER = struct.Struct(">I")

# Maximum frame size: 10MB - prevents OOM from a misbehaving peer
MAX_FRAME_SIZE = 10 * 1024 * 1024


class SymbolQueryRequest(WireModel):
    """A request sent to the daemon.

    ``kind`` is deliberately a free string: unknown kinds must decode so
    the daemon can answer them with an error response.
    """

    version: int = PROTOCOL_VERSION
    kind: str = KIND_SYMBOLS
    file: str = ""
    line: int = 0
    column: int = 0

    @classmethod
    def symbols(cls, file: str, line: int, column: int = 0) -> SymbolQueryRequest:
        return cls(kind=KIND_SYMBOLS, file=file, line=line, column=column)

    @classmethod
    def shutdown(cls) -> SymbolQueryRequest:
        return cls(kind=KIND_SHUTDOWN)


class SymbolQueryResponse(WireModel):
    """The daemon's answer to one request."""

    symbols: list[QueryResult] = Field(default_factory=list)
    error: str | None = None

    @classmethod
    def failure(cls, message: str) -> SymbolQueryResponse:
        return cls(symbols=[], error=message)


# =============================================================================
# Encoding
# =============================================================================


def encode_payload(message: WireModel) -> bytes:
    """Serialize a message to its JSON payload (no length prefix)."""
    return message.model_dump_json(by_alias=True, exclude_none=True).encode("utf-8")


def encode_frame(message: WireModel) -> bytes:
    """Serialize a message to a complete length-prefixed frame."""
    payload = encode_payload(message)
    if len(payload) > MAX_FRAME_SIZE:
        raise ProtocolError(f"Frame too large: {len(payload)} bytes", size=len(payload))
    return HEADER.pack(len(payload)) + payload


def decode_request(payload: bytes) -> SymbolQueryRequest:
    """Parse a request payload.

    Raises:
        ProtocolError: If the payload is not a valid request object
    """
    try:
        return SymbolQueryRequest.model_validate_json(payload)
    except ValidationError as e:
        raise ProtocolError(f"Invalid request: {e.error_count()} validation error(s)") from e


def decode_response(payload: bytes) -> SymbolQueryResponse:
    """Parse a response payload.

    Raises:
        ProtocolError: If the payload is not a valid response object
    """
    try:
        return SymbolQueryResponse.model_validate_json(payload)
    except ValidationError as e:
        raise ProtocolError(f"Invalid response: {e.error_count()} validation error(s)") from e


def _check_length(length: int) -> None:
    if length > MAX_FRAME_SIZE:
        raise ProtocolError(f"Frame too large: {length} bytes", size=length)


# =============================================================================
# Async stream helpers (daemon side)
# =============================================================================


async def read_frame(reader: asyncio.StreamReader) -> bytes | None:
    """Read one frame payload.

    Returns:
        The payload, or None on a clean EOF before any header byte

    Raises:
        ProtocolError: On EOF mid-frame or an oversized length
    """
    try:
        header = await reader.readexactly(HEADER.size)
    except asyncio.IncompleteReadError as e:
        if not e.partial:
            return None
        raise ProtocolError("Connection closed inside frame header") from e

    (length,) = HEADER.unpack(header)
    _check_length(length)

    try:
        return await reader.readexactly(length)
    except asyncio.IncompleteReadError as e:
        raise ProtocolError(
            f"Connection closed after {len(e.partial)} of {length} payload bytes"
        ) from e


async def write_frame(writer: asyncio.StreamWriter, message: WireModel) -> None:
    """Write one message as a frame and flush it."""
    writer.write(encode_frame(message))
    await writer.drain()


# =============================================================================
# Blocking socket helpers (client side)
# =============================================================================


def _recv_exactly(sock: socket.socket, count: int) -> bytes:
    chunks: list[bytes] = []
    remaining = count
    while remaining:
        chunk = sock.recv(min(remaining, 65536))
        if not chunk:
            break
        chunks.append(chunk)
        remaining -= len(chunk)
    return b"".join(chunks)


def recv_frame(sock: socket.socket) -> bytes | None:
    """Blocking counterpart of read_frame."""
    header = _recv_exactly(sock, HEADER.size)
    if not header:
        return None
    if len(header) < HEADER.size:
        raise ProtocolError("Connection closed inside frame header")

    (length,) = HEADER.unpack(header)
    _check_length(length)

    payload = _recv_exactly(sock, length)
    if len(payload) < length:
        raise ProtocolError(f"Connection closed after {len(payload)} of {length} payload bytes")
    return payload


def send_frame(sock: socket.socket, message: WireModel) -> None:
    """Blocking counterpart of write_frame."""
    sock.sendall(encode_frame(message))


__all__ = [
    "HEADER",
    "KIND_SHUTDOWN",
    "KIND_SYMBOLS",
    "MAX_FRAME_SIZE",
    "PROTOCOL_VERSION",
    "SymbolQueryRequest",
    "SymbolQueryResponse",
    "decode_request",
    "decode_response",
    "encode_frame",
    "encode_payload",
    "read_frame",
    "recv_frame",
    "send_frame",
    "write_frame",
]
