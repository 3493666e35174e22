"""Error handling framework for symdex."""

from __future__ import annotations

from enum import IntEnum
from typing import Any


class ExitCode(IntEnum):
    """symdex CLI exit codes."""

    SUCCESS = 0
    CONFIG_ERROR = 1  # Configuration error (user fixable)
    PARTIAL_SUCCESS = 2  # Some files skipped
    FATAL_ERROR = 3  # Unexpected crash or unrecoverable I/O


class SymdexError(Exception):
    """Base exception for symdex errors."""

    exit_code: ExitCode = ExitCode.FATAL_ERROR

    def __init__(self, message: str, **context: Any) -> None:
        super().__init__(message)
        self.message = message
        self.context = context

    def to_dict(self) -> dict[str, Any]:
        """Convert error to dictionary for JSON output."""
        return {
            "error": self.__class__.__name__,
            "message": self.message,
            "exit_code": self.exit_code,
            **self.context,
        }


class ConfigError(SymdexError):
    """Configuration-related errors."""

    exit_code = ExitCode.CONFIG_ERROR


class RegistryError(SymdexError):
    """The peer registry could not be created or written.

    Fatal at daemon startup: a daemon that cannot register would run
    without being discoverable.
    """

    exit_code = ExitCode.FATAL_ERROR

    def __init__(self, message: str, path: str, **context: Any) -> None:
        super().__init__(message, path=path, **context)
        self.path = path


class ProtocolError(SymdexError):
    """Malformed frame or payload on the local channel."""

    exit_code = ExitCode.FATAL_ERROR


class DaemonUnavailableError(SymdexError):
    """No daemon could be reached (not running, refused, timed out)."""

    exit_code = ExitCode.PARTIAL_SUCCESS


class ParseError(SymdexError):
    """File parsing errors."""

    exit_code = ExitCode.PARTIAL_SUCCESS

    def __init__(self, message: str, file_path: str, line: int | None = None, **context: Any):
        super().__init__(message, file_path=file_path, line=line, **context)
        self.file_path = file_path
        self.line = line


__all__ = [
    "ConfigError",
    "DaemonUnavailableError",
    "ExitCode",
    "ParseError",
    "ProtocolError",
    "RegistryError",
    "SymdexError",
]
