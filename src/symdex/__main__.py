"""Allow ``python -m symdex``."""

from symdex.cli import cli

if __name__ == "__main__":
    cli()
