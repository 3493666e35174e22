"""symdex CLI commands - subcommand implementations."""
