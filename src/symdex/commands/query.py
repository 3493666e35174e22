"""symdex query command - Show the symbols at a source position."""

from __future__ import annotations

from pathlib import Path

import click


@click.command("query")
@click.argument("file", type=click.Path(dir_okay=False, path_type=Path))
@click.option("--line", "-l", type=click.IntRange(min=1), required=True, help="1-based line")
@click.option(
    "--column",
    "-c",
    type=int,
    default=0,
    help="1-based column (0 queries every identifier on the line)",
)
@click.option(
    "--root",
    type=click.Path(exists=True, file_okay=False, path_type=Path),
    default=".",
    help="Workspace root whose daemon answers the query (relative FILE paths start here)",
)
@click.option("--json", "as_json", is_flag=True, help="Output as JSON")
@click.option(
    "--start/--no-start",
    default=True,
    help="Start a background daemon if none is running",
)
def query(
    file: Path,
    line: int,
    column: int,
    root: Path,
    as_json: bool,
    start: bool,
) -> None:
    """Show the symbols at FILE:LINE[,COLUMN].

    A relative FILE is taken from the workspace root. Prints one line per
    symbol: its declaration site for workspace symbols, otherwise where it
    comes from.

    \b
    Examples:
        symdex query src/app/main.py --line 12
        symdex query src/app/main.py -l 12 -c 8 --json
    """
    import json as json_module

    from symdex.client import SymbolClient
    from symdex.errors import DaemonUnavailableError
    from symdex.logging import console, print_info, print_warning

    with SymbolClient(root) as client:
        if start:
            try:
                client.ensure_running()
            except DaemonUnavailableError as e:
                print_warning(f"Could not start daemon: {e.message}")

        results = client.query(file, line, column)

    if as_json:
        payload = [r.model_dump(mode="json", by_alias=True, exclude_none=True) for r in results]
        console.print_json(json_module.dumps(payload))
    elif not results:
        print_info("No symbols found")
    else:
        for result in results:
            # Plain text: paths may contain markup characters
            console.print(result.describe(), markup=False, highlight=False)


__all__ = ["query"]
