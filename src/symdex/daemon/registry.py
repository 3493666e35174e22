"""Peer registry: on-disk descriptors for discovering a running daemon.

Each live daemon owns one small descriptor file named ``sym-<pid>.pid``
holding four lines:

    <pid>
    sym
    <server executable path>
    <channel name>

Readers prune descriptors whose process is gone, so discovery heals
itself without a separate cleanup pass.
"""

from __future__ import annotations

import logging
import os
from collections.abc import Callable, Iterator
from dataclasses import dataclass
from pathlib import Path

from symdex.errors import RegistryError

logger = logging.getLogger(__name__)

SERVER_TYPE = "sym"
FILE_PREFIX = "sym-"
FILE_SUFFIX = ".pid"


def pid_exists(pid: int) -> bool:
    """Check whether a process id refers to a live process.

    Signal 0 performs the existence and permission check without
    delivering anything.
    """
    if pid <= 0:
        return False
    try:
        os.kill(pid, 0)
    except ProcessLookupError:
        return False
    except PermissionError:
        # Exists, but owned by someone else
        return True
    except OSError:
        return False
    return True


@dataclass(frozen=True)
class PeerDescriptor:
    """A registered daemon instance.

    Attributes:
        process_id: PID of the daemon process
        server_path: Executable that runs the daemon
        channel_name: Local IPC endpoint identifier
        file_path: Descriptor file backing this record
    """

    process_id: int
    server_path: str
    channel_name: str
    file_path: Path

    @classmethod
    def read(cls, path: Path) -> PeerDescriptor | None:
        """Parse a descriptor file, returning None if it is malformed."""
        try:
            lines = path.read_text(encoding="utf-8").splitlines()
        except (OSError, UnicodeDecodeError):
            return None

        if len(lines) < 4:
            return None
        try:
            pid = int(lines[0].strip())
        except ValueError:
            return None
        if lines[1].strip() != SERVER_TYPE:
            return None

        server_path = lines[2].strip()
        channel_name = lines[3].strip()
        if not server_path or not channel_name:
            return None

        return cls(
            process_id=pid,
            server_path=server_path,
            channel_name=channel_name,
            file_path=path,
        )

    def write(self) -> None:
        """Write the descriptor with owner-only permissions."""
        content = f"{self.process_id}\n{SERVER_TYPE}\n{self.server_path}\n{self.channel_name}\n"
        fd = os.open(self.file_path, os.O_WRONLY | os.O_CREAT | os.O_TRUNC, 0o600)
        with os.fdopen(fd, "w", encoding="utf-8") as f:
            f.write(content)

    def delete(self) -> None:
        """Remove the descriptor file, ignoring errors."""
        try:
            self.file_path.unlink(missing_ok=True)
        except OSError as e:
            logger.debug(f"Failed to remove descriptor {self.file_path}: {e}")

    def to_dict(self) -> dict[str, object]:
        """Convert to dictionary for JSON serialization."""
        return {
            "pid": self.process_id,
            "server_path": self.server_path,
            "channel": self.channel_name,
            "pid_file": str(self.file_path),
        }


class PeerRegistry:
    """Read and write peer descriptors in one directory.

    Attributes:
        directory: Directory holding descriptor files
    """

    def __init__(
        self,
        directory: Path,
        is_alive: Callable[[int], bool] = pid_exists,
    ) -> None:
        """Initialize the registry.

        Args:
            directory: Descriptor directory (see symdex.paths.registry_directory)
            is_alive: Liveness check for a process id
        """
        self.directory = directory
        self._is_alive = is_alive

    def descriptor_path(self, process_id: int) -> Path:
        return self.directory / f"{FILE_PREFIX}{process_id}{FILE_SUFFIX}"

    def _scan(self, exclude_pid: int | None) -> Iterator[PeerDescriptor]:
        """Yield live descriptors, deleting stale ones along the way."""
        if not self.directory.is_dir():
            return

        try:
            candidates = sorted(self.directory.glob(f"{FILE_PREFIX}*"))
        except OSError as e:
            logger.debug(f"Cannot list registry {self.directory}: {e}")
            return

        for path in candidates:
            descriptor = PeerDescriptor.read(path)
            if descriptor is not None and descriptor.process_id == exclude_pid:
                continue
            if descriptor is not None and self._is_alive(descriptor.process_id):
                yield descriptor
                continue

            logger.debug(f"Removing stale descriptor: {path}")
            try:
                path.unlink(missing_ok=True)
            except OSError:
                pass

    def find_live_peer(self, exclude_pid: int | None = None) -> PeerDescriptor | None:
        """Find the first descriptor whose process is alive.

        Args:
            exclude_pid: Skip this process id (a daemon looking past itself)

        Returns:
            The live descriptor, or None if no daemon is running
        """
        return next(self._scan(exclude_pid), None)

    def live_peers(self, exclude_pid: int | None = None) -> list[PeerDescriptor]:
        """Return every live descriptor (normally zero or one)."""
        return list(self._scan(exclude_pid))

    def register(self, process_id: int, server_path: str, channel_name: str) -> PeerDescriptor:
        """Create the descriptor for a starting daemon.

        Raises:
            RegistryError: If the directory or file cannot be written
        """
        try:
            self.directory.mkdir(parents=True, exist_ok=True)
            descriptor = PeerDescriptor(
                process_id=process_id,
                server_path=server_path,
                channel_name=channel_name,
                file_path=self.descriptor_path(process_id),
            )
            descriptor.write()
        except OSError as e:
            raise RegistryError(
                f"Cannot write peer descriptor: {e}",
                path=str(self.directory),
            ) from e

        logger.info(f"Registered daemon PID {process_id} at {descriptor.file_path}")
        return descriptor

    def unregister(self, descriptor: PeerDescriptor) -> None:
        """Best-effort removal; the next discovery prunes leftovers anyway."""
        descriptor.delete()
        logger.debug(f"Unregistered daemon PID {descriptor.process_id}")


__all__ = [
    "FILE_PREFIX",
    "SERVER_TYPE",
    "PeerDescriptor",
    "PeerRegistry",
    "pid_exists",
]
