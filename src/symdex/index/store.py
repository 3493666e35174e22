"""Incrementally maintained in-memory source index.

Readers never see a half-applied update: every mutation builds a new
immutable ``IndexSnapshot`` and publishes it with a single reference swap.
Snapshot tables are persistent maps, so updating one file costs time in
proportion to that file, not to the workspace.
Mutations (initial rebuild, per-file upsert, per-file removal) are
serialized by one lock, so successive upserts of the same file apply in
call order.
"""

from __future__ import annotations

import logging
import threading
from collections.abc import Iterable, Iterator
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, TypeAlias

from immutables import Map, MapMutation

from symdex.errors import ParseError
from symdex.index.models import Declaration, SourceUnit
from symdex.index.parser import compute_revision, module_aliases, module_name_for, parse_source
from symdex.index.scanner import is_source_file, iter_source_files

logger = logging.getLogger(__name__)

DeclarationEntry = tuple[Path, Declaration]

# Declarations of one name, grouped by the file that declares them
PerFile: TypeAlias = "Map[Path, tuple[Declaration, ...]]"

_NO_DECLARATIONS: PerFile = Map()


@dataclass(frozen=True)
class IndexSnapshot:
    """Immutable aggregate of the indexed workspace.

    The tables are persistent maps: deriving a snapshot for one changed
    file re-keys only that file's entries and shares everything else with
    the previous snapshot.

    Attributes:
        root: Workspace root
        generation: Mutation counter at the time the snapshot was published
        units: Source units keyed by absolute path
        modules: Dotted module names mapped to file paths
        declarations: Declarations keyed by name, then by declaring file
    """

    root: Path
    generation: int = 0
    units: Map[Path, SourceUnit] = field(default_factory=Map)
    modules: Map[str, Path] = field(default_factory=Map)
    declarations: Map[str, PerFile] = field(default_factory=Map)

    def __len__(self) -> int:
        return len(self.units)

    def __contains__(self, path: object) -> bool:
        return path in self.units

    def __iter__(self) -> Iterator[SourceUnit]:
        return iter(self.units.values())

    def get(self, path: Path) -> SourceUnit | None:
        return self.units.get(path)

    def unit_for_module(self, module: str) -> SourceUnit | None:
        path = self.modules.get(module)
        return self.units.get(path) if path is not None else None

    def lookup(self, name: str) -> tuple[DeclarationEntry, ...]:
        """Every declaration of ``name``, ordered by file then position."""
        per_file = self.declarations.get(name, _NO_DECLARATIONS)
        return tuple(
            (path, decl) for path in sorted(per_file, key=str) for decl in per_file[path]
        )

    def with_unit(self, unit: SourceUnit, generation: int) -> IndexSnapshot:
        """Return a new snapshot with ``unit`` added or replaced."""
        with self.modules.mutate() as modules, self.declarations.mutate() as declarations:
            previous = self.units.get(unit.path)
            if previous is not None:
                _drop_contributions(previous, modules, declarations)

            for alias in module_aliases(unit.module_name):
                modules[alias] = unit.path

            for name, decls in _group_by_name(unit.declarations).items():
                per_file = declarations.get(name, _NO_DECLARATIONS)
                declarations[name] = per_file.set(unit.path, decls)

            return IndexSnapshot(
                root=self.root,
                generation=generation,
                units=self.units.set(unit.path, unit),
                modules=modules.finish(),
                declarations=declarations.finish(),
            )

    def without(self, path: Path, generation: int) -> IndexSnapshot:
        """Return a new snapshot with the unit at ``path`` removed."""
        unit = self.units.get(path)
        if unit is None:
            return self

        with self.modules.mutate() as modules, self.declarations.mutate() as declarations:
            _drop_contributions(unit, modules, declarations)
            return IndexSnapshot(
                root=self.root,
                generation=generation,
                units=self.units.delete(path),
                modules=modules.finish(),
                declarations=declarations.finish(),
            )


def _group_by_name(declarations: Iterable[Declaration]) -> dict[str, tuple[Declaration, ...]]:
    grouped: dict[str, list[Declaration]] = {}
    for decl in declarations:
        grouped.setdefault(decl.name, []).append(decl)
    return {
        name: tuple(sorted(decls, key=lambda d: (d.line, d.column)))
        for name, decls in grouped.items()
    }


def _drop_contributions(
    unit: SourceUnit,
    modules: MapMutation[str, Path],
    declarations: MapMutation[str, PerFile],
) -> None:
    """Remove one unit's module names and declaration entries."""
    for alias in module_aliases(unit.module_name):
        if modules.get(alias) == unit.path:
            del modules[alias]

    for name in {d.name for d in unit.declarations}:
        per_file = declarations.get(name)
        if per_file is None or unit.path not in per_file:
            continue
        remaining = per_file.delete(unit.path)
        if remaining:
            declarations[name] = remaining
        else:
            del declarations[name]


class SourceIndex:
    """The workspace index: owns source units and publishes snapshots.

    Attributes:
        root: Workspace root directory
    """

    def __init__(self, root: Path) -> None:
        self.root = root.resolve()
        self._write_lock = threading.Lock()
        self._publish_lock = threading.Lock()
        self._generation = 0
        self._snapshot = IndexSnapshot(root=self.root)

    def __len__(self) -> int:
        return len(self.snapshot())

    def __contains__(self, path: object) -> bool:
        if not isinstance(path, (str, Path)):
            return False
        return self.normalize(path) in self.snapshot()

    def normalize(self, path: str | Path) -> Path:
        """Absolute, resolved form of a path (relative paths join the root)."""
        p = Path(path)
        if not p.is_absolute():
            p = self.root / p
        return p.resolve()

    def is_under_root(self, path: Path) -> bool:
        return path == self.root or self.root in path.parents

    def snapshot(self) -> IndexSnapshot:
        """Capture the current aggregate for a consistent read."""
        with self._publish_lock:
            return self._snapshot

    def _publish(self, snapshot: IndexSnapshot) -> None:
        with self._publish_lock:
            self._snapshot = snapshot

    def _next_generation(self) -> int:
        self._generation += 1
        return self._generation

    def _read_and_parse(self, path: Path, current: SourceUnit | None) -> SourceUnit | None:
        """Parse ``path`` unless its content matches ``current``.

        Returns ``current`` unchanged when the revision is identical and
        None when the file cannot be read.
        """
        try:
            source = path.read_bytes()
        except OSError as e:
            logger.debug(f"Cannot read {path}: {e}")
            return None

        if current is not None and current.revision == compute_revision(source):
            return current
        return parse_source(path, source, module_name_for(path, self.root))

    def upsert(self, path: str | Path) -> SourceUnit | None:
        """Parse one file and add or replace its unit.

        A file that no longer exists (or cannot be read) is evicted instead,
        so a late upsert after a delete cannot resurrect it.

        Returns:
            The stored unit, or None if the file is not indexable
        """
        path = self.normalize(path)
        if not is_source_file(path):
            return None

        with self._write_lock:
            current = self._snapshot.get(path)
            try:
                unit = self._read_and_parse(path, current)
            except ParseError as e:
                logger.warning(f"Failed to parse {path}: {e.message}")
                return current

            if unit is None:
                self._evict(path)
                return None
            if unit is current:
                return current

            generation = self._next_generation()
            unit = unit.with_generation(generation)
            self._publish(self._snapshot.with_unit(unit, generation))

        logger.debug(
            f"Indexed {path} ({len(unit.declarations)} declarations, generation {generation})"
        )
        return unit

    def remove(self, path: str | Path) -> bool:
        """Evict one file's unit.

        Returns:
            True if a unit was removed
        """
        path = self.normalize(path)
        with self._write_lock:
            removed = self._evict(path)
        if removed:
            logger.debug(f"Removed {path} from index")
        return removed

    def _evict(self, path: Path) -> bool:
        """Remove a unit; caller holds the write lock."""
        if path not in self._snapshot:
            return False
        self._publish(self._snapshot.without(path, self._next_generation()))
        return True

    def load(self, path: str | Path) -> SourceUnit | None:
        """Parse a file without storing it (files outside the workspace)."""
        path = self.normalize(path)
        if not is_source_file(path):
            return None
        try:
            return self._read_and_parse(path, None)
        except ParseError as e:
            logger.warning(f"Failed to parse {path}: {e.message}")
            return None

    def rebuild_all(self) -> int:
        """Index every source file under the root.

        Performs one upsert per file, then prunes units whose files have
        disappeared. The index is never cleared, so units upserted by
        concurrent file events survive the rebuild.

        Returns:
            Number of indexed files after the rebuild
        """
        logger.info(f"Rebuilding symbol index for {self.root}")

        scanned = 0
        for path in iter_source_files(self.root):
            scanned += 1
            self.upsert(path)

        with self._write_lock:
            stale = [
                p for p in self._snapshot.units if self.is_under_root(p) and not p.exists()
            ]
            for p in stale:
                self._evict(p)

        count = len(self.snapshot())
        logger.info(f"Rebuilt symbol index with {count} files ({scanned} scanned)")
        return count

    def stats(self) -> dict[str, Any]:
        """Index statistics for status output."""
        snapshot = self.snapshot()
        return {
            "files": len(snapshot),
            "declarations": sum(len(u.declarations) for u in snapshot),
            "modules": len(snapshot.modules),
            "generation": snapshot.generation,
        }


__all__ = [
    "IndexSnapshot",
    "SourceIndex",
]
