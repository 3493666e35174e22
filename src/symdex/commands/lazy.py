"""Lazy-loading Click group for fast CLI startup."""

from __future__ import annotations

import importlib
from typing import Any

import click


class LazyGroup(click.Group):
    """A Click group that lazily loads subcommands on first access.

    Command modules are imported only when the command is invoked, so
    ``symdex query`` does not pay for the daemon's imports.
    """

    def __init__(
        self,
        *args: Any,
        lazy_subcommands: dict[str, tuple[str, str]] | None = None,
        aliases: dict[str, str] | None = None,
        **kwargs: Any,
    ) -> None:
        """Initialize lazy group.

        Args:
            lazy_subcommands: Dict mapping command name to (module_path, attr_name)
                Example: {'query': ('symdex.commands.query', 'query')}
            aliases: Hidden alternative names mapped to a command name
                Example: {'discover': 'status'}
        """
        super().__init__(*args, **kwargs)
        self._lazy_subcommands: dict[str, tuple[str, str]] = lazy_subcommands or {}
        self._aliases: dict[str, str] = aliases or {}
        self._loaded_commands: dict[str, click.Command] = {}

    def list_commands(self, ctx: click.Context) -> list[str]:
        """List all available commands (lazy + already registered), without aliases."""
        base = super().list_commands(ctx)
        lazy = list(self._lazy_subcommands.keys())
        return sorted(set(base + lazy))

    def get_command(self, ctx: click.Context, cmd_name: str) -> click.Command | None:
        """Get command, loading lazily if needed."""
        cmd_name = self._aliases.get(cmd_name, cmd_name)

        # Check if already loaded
        if cmd_name in self._loaded_commands:
            return self._loaded_commands[cmd_name]

        # Check parent (already registered commands)
        cmd = super().get_command(ctx, cmd_name)
        if cmd is not None:
            return cmd

        # Lazy load
        if cmd_name in self._lazy_subcommands:
            module_path, attr_name = self._lazy_subcommands[cmd_name]
            try:
                module = importlib.import_module(module_path)
                loaded_cmd: click.Command = getattr(module, attr_name)
                self._loaded_commands[cmd_name] = loaded_cmd
                return loaded_cmd
            except (ImportError, AttributeError) as e:
                raise click.ClickException(f"Failed to load command '{cmd_name}': {e}") from None

        return None

    def resolve_command(
        self, ctx: click.Context, args: list[str]
    ) -> tuple[str | None, click.Command | None, list[str]]:
        # Report the canonical name when invoked through an alias
        _, cmd, rest = super().resolve_command(ctx, args)
        return (cmd.name if cmd is not None else None), cmd, rest


__all__ = ["LazyGroup"]
