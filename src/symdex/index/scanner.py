"""Workspace source file enumeration."""

from __future__ import annotations

import os
from collections.abc import Iterator
from pathlib import Path

from symdex.paths import SYMDEX_DIR

# Indexed source file extensions
SOURCE_EXTENSIONS = {".py", ".pyi"}

# Build-output, tooling and environment directories never indexed or watched
SKIP_DIRECTORIES = {
    ".git",
    ".hg",
    ".svn",
    "__pycache__",
    ".venv",
    "venv",
    ".env",
    ".tox",
    ".nox",
    ".eggs",
    "build",
    "dist",
    "node_modules",
    "site-packages",
    ".pytest_cache",
    ".mypy_cache",
    ".ruff_cache",
    SYMDEX_DIR,
}


def is_skipped_directory(name: str) -> bool:
    """Check whether a directory name is excluded from indexing."""
    return name in SKIP_DIRECTORIES or name.endswith(".egg-info") or name.startswith(".")


def is_source_file(path: Path) -> bool:
    """Check whether a path has an indexed extension."""
    return path.suffix.lower() in SOURCE_EXTENSIONS


def is_indexable(path: Path, root: Path | None = None) -> bool:
    """Check extension and that no parent directory is excluded.

    Args:
        path: File path to check
        root: When given, only the parts below the root are checked
    """
    if not is_source_file(path):
        return False

    parts = path.parts
    if root is not None:
        try:
            parts = path.relative_to(root).parts
        except ValueError:
            pass

    return not any(is_skipped_directory(part) for part in parts[:-1])


def iter_source_files(root: Path) -> Iterator[Path]:
    """Yield indexable source files under root in a stable order."""
    root = root.resolve()
    for dirpath, dirnames, filenames in os.walk(root):
        dirnames[:] = sorted(d for d in dirnames if not is_skipped_directory(d))
        current = Path(dirpath)
        for filename in sorted(filenames):
            path = current / filename
            if is_source_file(path):
                yield path


__all__ = [
    "SKIP_DIRECTORIES",
    "SOURCE_EXTENSIONS",
    "is_indexable",
    "is_skipped_directory",
    "is_source_file",
    "iter_source_files",
]
