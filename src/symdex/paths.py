"""Centralized path definitions for symdex data files.

All workspace-local symdex files are stored in the .symdex/ directory:

    .symdex/
    ├── pids/           # Peer descriptors (sym-<pid>.pid)
    └── daemon.log      # Background daemon log

The configuration file (.symdex.toml) remains at the workspace root
since it's user-editable configuration.

The descriptor directory can be redirected with SYMDEX_PIDFILE_DIRECTORY,
which is useful for sandboxed or containerized test runs.
"""

from __future__ import annotations

import os
import tempfile
from pathlib import Path

# Directory containing all symdex data files
SYMDEX_DIR = ".symdex"

# Individual file/directory names within .symdex/
PIDS_DIR = "pids"
DAEMON_LOG_FILE = "daemon.log"

# Config file stays at workspace root (user-editable)
CONFIG_FILE = ".symdex.toml"

# Environment variable that redirects the descriptor directory
PIDFILE_DIRECTORY_ENV = "SYMDEX_PIDFILE_DIRECTORY"

# Socket file prefix; sockets live in the temp dir to stay under sun_path limits
SOCKET_PREFIX = "symdex-"


def get_symdex_dir(root: Path | str = ".") -> Path:
    """Get the .symdex directory path for a workspace root.

    Args:
        root: Workspace root directory (default: current directory)

    Returns:
        Path to the .symdex directory
    """
    return Path(root).resolve() / SYMDEX_DIR


def registry_directory(root: Path | str = ".") -> Path:
    """Resolve the peer descriptor directory.

    Args:
        root: Workspace root directory (default: current directory)

    Returns:
        $SYMDEX_PIDFILE_DIRECTORY if set, else .symdex/pids under the root
    """
    override = os.environ.get(PIDFILE_DIRECTORY_ENV)
    if override:
        return Path(override)
    return get_symdex_dir(root) / PIDS_DIR


def get_daemon_log_path(root: Path | str = ".") -> Path:
    """Get the background daemon log path.

    The log sits next to the descriptor directory so that redirected
    registries keep their logs out of the workspace as well.
    """
    return registry_directory(root).parent / DAEMON_LOG_FILE


def get_config_path(root: Path | str = ".") -> Path:
    """Get the workspace config file path (.symdex.toml)."""
    return Path(root).resolve() / CONFIG_FILE


def socket_path(channel_name: str) -> Path:
    """Map a channel name to its Unix domain socket path."""
    return Path(tempfile.gettempdir()) / f"{SOCKET_PREFIX}{channel_name}.sock"


__all__ = [
    "CONFIG_FILE",
    "DAEMON_LOG_FILE",
    "PIDFILE_DIRECTORY_ENV",
    "PIDS_DIR",
    "SYMDEX_DIR",
    "get_config_path",
    "get_daemon_log_path",
    "get_symdex_dir",
    "registry_directory",
    "socket_path",
]
