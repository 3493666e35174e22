"""Tests for the incremental source index and its snapshots."""

from __future__ import annotations

import statistics
import threading
import time
from collections.abc import Callable
from pathlib import Path
from unittest.mock import patch

from symdex.errors import ParseError
from symdex.index.models import Declaration, DeclarationKind, SourceUnit
from symdex.index.scanner import is_indexable, iter_source_files
from symdex.index.store import IndexSnapshot, SourceIndex

# =============================================================================
# TestScanner
# =============================================================================


class TestScanner:
    """Tests for workspace enumeration."""

    def test_skips_environment_and_build_dirs(self, workspace: Path) -> None:
        """Only workspace sources are enumerated, in sorted order."""
        files = [p.relative_to(workspace).as_posix() for p in iter_source_files(workspace)]
        assert files == ["app.py", "pkg/__init__.py", "pkg/models.py"]

    def test_is_indexable(self, workspace: Path) -> None:
        """Extension and directory filters apply below the root only."""
        assert is_indexable(workspace / "app.py", workspace)
        assert is_indexable(workspace / "stubs" / "mod.pyi", workspace)
        assert not is_indexable(workspace / "README.txt", workspace)
        assert not is_indexable(workspace / ".venv" / "x.py", workspace)
        assert not is_indexable(workspace / "pkg" / "__pycache__" / "m.py", workspace)
        assert not is_indexable(workspace / "proj.egg-info" / "m.py", workspace)


# =============================================================================
# TestSourceIndex
# =============================================================================


class TestSourceIndex:
    """Tests for SourceIndex mutations."""

    def test_rebuild_indexes_workspace(self, workspace: Path) -> None:
        """rebuild_all indexes every source file and registers module names."""
        index = SourceIndex(workspace)

        assert index.rebuild_all() == 3
        snapshot = index.snapshot()
        assert set(snapshot.modules) == {"app", "pkg", "pkg.models"}
        assert workspace / "app.py" in index
        assert len(index) == 3

    def test_declaration_table_spans_files(self, index: SourceIndex, workspace: Path) -> None:
        """The declaration table is keyed by name across files."""
        entries = index.snapshot().lookup("Widget")
        assert [(p.name, d.line) for p, d in entries] == [("models.py", 5)]

    def test_upsert_unchanged_keeps_unit(self, index: SourceIndex, workspace: Path) -> None:
        """Re-upserting identical content keeps the same unit and generation."""
        generation = index.snapshot().generation
        before = index.snapshot().get(workspace / "app.py")
        after = index.upsert(workspace / "app.py")

        assert after is before
        assert index.snapshot().generation == generation

    def test_upsert_changed_replaces_unit(self, index: SourceIndex, workspace: Path) -> None:
        """Changed content produces a new unit with a higher generation."""
        path = workspace / "pkg" / "models.py"
        old = index.snapshot().get(path)

        path.write_text("def fresh():\n    pass\n")
        new = index.upsert(path)

        assert new is not None
        assert new.revision != old.revision
        assert new.generation > old.generation
        snapshot = index.snapshot()
        assert snapshot.lookup("Widget") == ()
        assert [p for p, _ in snapshot.lookup("fresh")] == [path]

    def test_upsert_missing_file_evicts(self, index: SourceIndex, workspace: Path) -> None:
        """Upserting a file that no longer exists removes it."""
        path = workspace / "app.py"
        path.unlink()

        assert index.upsert(path) is None
        assert path not in index
        assert "app" not in index.snapshot().modules

    def test_remove(self, index: SourceIndex, workspace: Path) -> None:
        """remove() evicts the unit, its module name and declarations."""
        path = workspace / "pkg" / "models.py"

        assert index.remove(path) is True
        assert index.remove(path) is False
        snapshot = index.snapshot()
        assert "pkg.models" not in snapshot.modules
        assert snapshot.lookup("make_widget") == ()

    def test_relative_paths_join_root(self, index: SourceIndex, workspace: Path) -> None:
        """Relative paths are resolved against the workspace root."""
        assert "app.py" in index
        assert index.upsert("app.py") is index.snapshot().get(workspace / "app.py")

    def test_non_source_files_ignored(self, index: SourceIndex, workspace: Path) -> None:
        """Files without a Python extension are never indexed."""
        assert index.upsert(workspace / "README.txt") is None
        assert len(index) == 3

    def test_rebuild_prunes_without_clearing(
        self,
        index: SourceIndex,
        workspace: Path,
        make_file: Callable[[Path, str, str], Path],
    ) -> None:
        """A second rebuild drops deleted files and keeps unchanged units."""
        kept = index.snapshot().get(workspace / "pkg" / "models.py")
        (workspace / "app.py").unlink()
        make_file(workspace, "extra.py", "VALUE = 1\n")

        assert index.rebuild_all() == 3
        snapshot = index.snapshot()
        assert workspace / "app.py" not in snapshot
        assert workspace / "extra.py" in snapshot
        assert snapshot.get(workspace / "pkg" / "models.py") is kept

    def test_load_outside_root_not_stored(
        self,
        index: SourceIndex,
        tmp_path: Path,
        make_file: Callable[[Path, str, str], Path],
    ) -> None:
        """load() parses external files without inserting them."""
        outside = make_file(tmp_path / "other", "tool.py", "def run():\n    pass\n")

        unit = index.load(outside)

        assert unit is not None
        assert unit.declarations_named("run")
        assert outside not in index

    def test_parse_failure_keeps_previous_unit(self, index: SourceIndex, workspace: Path) -> None:
        """A file that fails to parse keeps its last good unit."""
        path = workspace / "app.py"
        before = index.snapshot().get(path)
        path.write_text("x = 1\n")

        with patch(
            "symdex.index.store.parse_source",
            side_effect=ParseError("boom", file_path=str(path)),
        ):
            assert index.upsert(path) is before

        assert index.snapshot().get(path) is before

    def test_stats(self, index: SourceIndex) -> None:
        """stats() reports file and declaration counts."""
        stats = index.stats()
        assert stats["files"] == 3
        assert stats["declarations"] > 0
        assert stats["generation"] >= 3


# =============================================================================
# TestSnapshots
# =============================================================================


class TestSnapshots:
    """Tests for snapshot isolation."""

    def test_snapshot_unaffected_by_later_mutation(
        self, index: SourceIndex, workspace: Path
    ) -> None:
        """A captured snapshot never observes later updates."""
        captured = index.snapshot()
        index.remove(workspace / "app.py")

        assert workspace / "app.py" in captured
        assert workspace / "app.py" not in index.snapshot()

    def test_concurrent_readers_see_whole_units(
        self,
        index: SourceIndex,
        workspace: Path,
    ) -> None:
        """Readers racing with upserts only see complete, consistent snapshots."""
        path = workspace / "pkg" / "models.py"
        errors: list[str] = []
        stop = threading.Event()

        def reader() -> None:
            while not stop.is_set():
                snapshot = index.snapshot()
                unit = snapshot.get(path)
                if unit is None:
                    continue
                for name in {d.name for d in unit.declarations if d.is_top_level}:
                    if path not in [p for p, _ in snapshot.lookup(name)]:
                        errors.append(name)

        threads = [threading.Thread(target=reader) for _ in range(3)]
        for t in threads:
            t.start()
        try:
            for i in range(30):
                path.write_text(f"def f{i}():\n    pass\n")
                index.upsert(path)
        finally:
            stop.set()
            for t in threads:
                t.join()

        assert errors == []
        assert index.snapshot().get(path).declarations_named("f29")


# =============================================================================
# TestIncrementalCost
# =============================================================================


def synthetic_unit(root: Path, i: int, revision: str = "r0") -> SourceUnit:
    """A unit declaring names shared by every file plus one unique name."""
    decls = (
        Declaration("Service", DeclarationKind.CLASS, 1, 7),
        Declaration("__init__", DeclarationKind.METHOD, 2, 9, scope="Service", in_class=True),
        Declaration("self", DeclarationKind.PARAMETER, 2, 18, scope="Service.__init__"),
        Declaration("run", DeclarationKind.FUNCTION, 5, 5),
        Declaration(f"handler_{i}", DeclarationKind.FUNCTION, 8, 5),
    )
    return SourceUnit(
        path=root / f"mod_{i}.py",
        module_name=f"mod_{i}",
        revision=revision,
        line_count=10,
        declarations=decls,
    )


def snapshot_with(root: Path, count: int) -> IndexSnapshot:
    snapshot = IndexSnapshot(root=root)
    for i in range(count):
        snapshot = snapshot.with_unit(synthetic_unit(root, i), i + 1)
    return snapshot


def median_update_seconds(snapshot: IndexSnapshot, rounds: int = 101) -> float:
    timings = []
    for n in range(rounds):
        unit = synthetic_unit(snapshot.root, 0, revision=f"r{n + 1}")
        started = time.perf_counter()
        snapshot.with_unit(unit, snapshot.generation + 1)
        timings.append(time.perf_counter() - started)
    return statistics.median(timings)


class TestIncrementalCost:
    """Tests that single-file updates stay proportional to the file."""

    def test_default_snapshot_is_empty(self, tmp_path: Path) -> None:
        """A fresh snapshot has empty tables that are not shared mutably."""
        first = IndexSnapshot(root=tmp_path)
        second = first.with_unit(synthetic_unit(tmp_path, 1), 1)

        assert len(first) == 0
        assert first.lookup("run") == ()
        assert "mod_1" not in first.modules
        assert [p.name for p, _ in second.lookup("run")] == ["mod_1.py"]

    def test_upsert_shares_unrelated_entries(self, index: SourceIndex, workspace: Path) -> None:
        """Updating one file leaves other files' table entries untouched."""
        before = index.snapshot()
        (workspace / "app.py").write_text("def extra():\n    pass\n")
        index.upsert(workspace / "app.py")
        after = index.snapshot()

        models = workspace / "pkg" / "models.py"
        assert after.units[models] is before.units[models]
        assert after.declarations["make_widget"] is before.declarations["make_widget"]
        assert after.lookup("Widget") == before.lookup("Widget")

    def test_lookup_orders_by_file_then_position(self, tmp_path: Path) -> None:
        """Entries for a shared name come back sorted by path, then line."""
        snapshot = snapshot_with(tmp_path, 3)

        entries = snapshot.lookup("__init__")

        assert [p.name for p, _ in entries] == ["mod_0.py", "mod_1.py", "mod_2.py"]

    def test_update_cost_independent_of_index_size(self, tmp_path: Path) -> None:
        """Replacing one unit costs about the same in a small and a large index."""
        small = median_update_seconds(snapshot_with(tmp_path, 50))
        large = median_update_seconds(snapshot_with(tmp_path, 5000))

        assert large < small * 5 + 0.001
