"""Configuration models for symdex.

Settings resolve in this order (highest priority first):

1. ``SYMDEX_*`` environment variables
2. The ``[daemon]`` table of ``.symdex.toml`` at the workspace root
3. Built-in defaults
"""

from __future__ import annotations

import tomllib
from pathlib import Path
from typing import Any

from pydantic import Field, ValidationError
from pydantic_settings import BaseSettings, SettingsConfigDict

from symdex.errors import ConfigError
from symdex.paths import get_config_path


class DaemonConfig(BaseSettings):
    """Configuration for the symbol index daemon.

    Attributes:
        idle_timeout_seconds: Shut down after this long without activity
            (zero or negative disables the idle timeout)
        idle_poll_seconds: How often the idle monitor checks the clock
        debounce_ms: Debounce delay in milliseconds for file changes
        connect_timeout: Client connect/read timeout in seconds
        drain_timeout: Seconds to wait for in-flight connections on shutdown
        name_match_fallback: Allow the degraded name-only resolution mode
    """

    model_config = SettingsConfigDict(
        env_prefix="SYMDEX_",
        extra="ignore",
    )

    idle_timeout_seconds: float = Field(
        default=300.0,
        description="Idle timeout in seconds (<= 0 never expires)",
    )
    idle_poll_seconds: float = Field(
        default=5.0,
        gt=0,
        description="Idle monitor poll interval in seconds",
    )
    debounce_ms: int = Field(
        default=100,
        ge=0,
        description="Debounce delay in milliseconds",
    )
    connect_timeout: float = Field(
        default=1.0,
        gt=0,
        description="Client connection timeout in seconds",
    )
    drain_timeout: float = Field(
        default=5.0,
        ge=0,
        description="Seconds to let in-flight connections finish on shutdown",
    )
    name_match_fallback: bool = Field(
        default=True,
        description="Resolve by bare name when provenance is unknown (approximate)",
    )

    @property
    def idle_timeout_enabled(self) -> bool:
        return self.idle_timeout_seconds > 0

    @classmethod
    def load(cls, root: Path | None = None, config_path: Path | None = None) -> DaemonConfig:
        """Load configuration from the workspace file and environment.

        Args:
            root: Workspace root holding .symdex.toml (default: cwd)
            config_path: Explicit config file, overriding the workspace file

        Raises:
            ConfigError: If the config file exists but is not valid TOML
        """
        path = config_path or get_config_path(root or Path.cwd())
        file_values: dict[str, Any] = {}

        if path.exists():
            try:
                with open(path, "rb") as f:
                    data = tomllib.load(f)
            except tomllib.TOMLDecodeError as e:
                raise ConfigError(f"Invalid config file: {e}", path=str(path)) from e
            file_values = dict(data.get("daemon", {}))

        try:
            return cls._from_file_values(file_values)
        except ValidationError as e:
            raise ConfigError(f"Invalid daemon settings: {e}", path=str(path)) from e

    @classmethod
    def _from_file_values(cls, file_values: dict[str, Any]) -> DaemonConfig:
        # Init kwargs outrank the environment in pydantic-settings, so merge
        # explicitly with env-provided fields on top.
        env_values = cls().model_dump(exclude_unset=True)
        return cls(**{**file_values, **env_values})


__all__ = ["DaemonConfig"]
