"""Tests for query routing and classification."""

from __future__ import annotations

from collections.abc import Callable
from pathlib import Path

import pytest

from symdex.index.models import Reference, SourceUnit
from symdex.index.store import IndexSnapshot, SourceIndex
from symdex.query.models import (
    Classification,
    QueryResult,
    ResolvedSymbol,
    SymbolLocation,
    SymbolOrigin,
)
from symdex.query.provider import WorkspaceProvider
from symdex.query.router import QueryRouter, classify


@pytest.fixture
def router(index: SourceIndex) -> QueryRouter:
    return QueryRouter(index)


def by_name(results: list[QueryResult]) -> dict[str, QueryResult]:
    return {r.name: r for r in results}


# =============================================================================
# TestClassify
# =============================================================================


class TestClassify:
    """Tests for the classification rule."""

    def test_location_means_user_defined(self) -> None:
        """A symbol with a source location is user-defined regardless of origin."""
        symbol = ResolvedSymbol(
            name="f",
            kind="function",
            location=SymbolLocation(file="/w/a.py", line=1, column=5),
            origin=SymbolOrigin.PACKAGE,
        )
        assert classify(symbol) is Classification.USER_DEFINED

    @pytest.mark.parametrize(
        ("origin", "expected"),
        [
            (SymbolOrigin.PLATFORM, Classification.PLATFORM),
            (SymbolOrigin.PACKAGE, Classification.EXTERNAL_PACKAGE),
            (SymbolOrigin.UNRESOLVED, Classification.UNRESOLVED),
            (SymbolOrigin.SOURCE, Classification.UNRESOLVED),
        ],
    )
    def test_origin_without_location(self, origin: SymbolOrigin, expected: Classification) -> None:
        """Without a location the module origin decides."""
        assert classify(ResolvedSymbol(name="x", kind="unknown", origin=origin)) is expected

    def test_no_symbol(self) -> None:
        """A missing symbol is unresolved."""
        assert classify(None) is Classification.UNRESOLVED


# =============================================================================
# TestQueryRouter
# =============================================================================


class TestQueryRouter:
    """Tests for position queries against the sample workspace."""

    def test_whole_line_query(self, router: QueryRouter, workspace: Path) -> None:
        """Column 0 returns every identifier on the line, sorted by name."""
        results = router.query(workspace / "app.py", 7)

        assert [r.name for r in results] == [
            "dumps",
            "get",
            "json",
            "label",
            "print",
            "requests",
            "w",
        ]
        named = by_name(results)
        assert named["print"].classification is Classification.PLATFORM
        assert named["print"].containing_module == "builtins"
        assert named["json"].classification is Classification.PLATFORM
        assert named["dumps"].containing_module == "json"
        assert named["requests"].classification is Classification.EXTERNAL_PACKAGE
        assert named["get"].classification is Classification.EXTERNAL_PACKAGE
        assert named["get"].containing_module == "requests"
        assert named["label"].classification is Classification.USER_DEFINED
        assert named["w"].location.line == 6

    def test_single_column_query(self, router: QueryRouter, workspace: Path) -> None:
        """A column selects the identifier whose span covers it."""
        results = router.query(workspace / "app.py", 6, 8)

        assert len(results) == 1
        result = results[0]
        assert result.name == "make_widget"
        assert result.classification is Classification.USER_DEFINED
        assert result.describe() == f"- make_widget - {workspace / 'pkg' / 'models.py'}:15,5"

    def test_unresolved_name(self, router: QueryRouter, workspace: Path) -> None:
        """Unknown names come back unresolved rather than being dropped."""
        [result] = router.query(workspace / "app.py", 8)

        assert result.name == "mystery"
        assert result.classification is Classification.UNRESOLVED
        assert result.describe() == "- mystery - not found in codebase"

    def test_relative_path_accepted(self, router: QueryRouter) -> None:
        """File paths relative to the workspace root work."""
        assert [r.name for r in router.query("app.py", 6)] == ["make_widget", "w"]

    def test_column_without_identifier(self, router: QueryRouter, workspace: Path) -> None:
        """A column on whitespace or punctuation yields nothing."""
        assert router.query(workspace / "app.py", 6, 3) == []

    @pytest.mark.parametrize("line", [0, -1, 100])
    def test_line_out_of_range(self, router: QueryRouter, workspace: Path, line: int) -> None:
        """Lines outside the file return an empty list."""
        assert router.query(workspace / "app.py", line) == []

    def test_missing_file(self, router: QueryRouter, workspace: Path) -> None:
        """Unreadable files return an empty list."""
        assert router.query(workspace / "nope.py", 1) == []

    def test_duplicates_collapsed(
        self,
        router: QueryRouter,
        workspace: Path,
        make_file: Callable[[Path, str, str], Path],
    ) -> None:
        """Identical results from several identifiers are reported once."""
        path = make_file(workspace, "dup.py", "print(print)\n")

        results = router.query(path, 1)

        assert [r.name for r in results] == ["print"]

    def test_new_file_indexed_on_demand(
        self,
        router: QueryRouter,
        index: SourceIndex,
        workspace: Path,
        make_file: Callable[[Path, str, str], Path],
    ) -> None:
        """A workspace file not yet seen is indexed by the query."""
        path = make_file(workspace, "late.py", "from pkg.models import Widget\nWidget\n")

        [result] = router.query(path, 2)

        assert result.location.line == 5
        assert path in index

    def test_file_outside_workspace(
        self,
        router: QueryRouter,
        index: SourceIndex,
        tmp_path: Path,
        make_file: Callable[[Path, str, str], Path],
    ) -> None:
        """Files outside the root are parsed transiently and not indexed."""
        path = make_file(tmp_path / "outside", "script.py", "import os\nos.getcwd()\n")

        results = router.query(path, 2)

        assert {r.name for r in results} == {"os", "getcwd"}
        assert all(r.classification is Classification.PLATFORM for r in results)
        assert path not in index

    def test_provider_failure_skips_candidate(self, index: SourceIndex, workspace: Path) -> None:
        """A provider error for one identifier does not fail the whole query."""

        class FlakyProvider(WorkspaceProvider):
            def resolve(
                self,
                snapshot: IndexSnapshot,
                unit: SourceUnit,
                reference: Reference,
            ) -> list[ResolvedSymbol]:
                if reference.name == "w":
                    raise RuntimeError("boom")
                return super().resolve(snapshot, unit, reference)

        router = QueryRouter(index, FlakyProvider())

        assert [r.name for r in router.query(workspace / "app.py", 6)] == ["make_widget"]

    def test_queries_see_updates(self, router: QueryRouter, index: SourceIndex, workspace: Path) -> None:
        """After an upsert, queries answer from the new content."""
        path = workspace / "pkg" / "models.py"
        path.write_text("\n\ndef make_widget():\n    pass\n")
        index.upsert(path)

        [result] = router.query(workspace / "app.py", 6, 5)

        assert result.location.line == 3

    def test_rebuild_answers_every_file(
        self,
        workspace: Path,
        make_file: Callable[[Path, str, str], Path],
    ) -> None:
        """After rebuild_all, every file answers from the index without re-parsing."""
        for i in range(20):
            make_file(workspace, f"gen/mod_{i}.py", f"def gen_{i}():\n    pass\n\ngen_{i}()\n")
        index = SourceIndex(workspace)
        assert index.rebuild_all() == 23
        router = QueryRouter(index)
        generation = index.snapshot().generation

        for i in range(20):
            [result] = router.query(workspace / "gen" / f"mod_{i}.py", 4)
            assert result.name == f"gen_{i}"
            assert result.classification is Classification.USER_DEFINED
            assert (result.location.line, result.location.column) == (1, 5)

        assert index.snapshot().generation == generation

    def test_upsert_leaves_other_files_unaffected(
        self, router: QueryRouter, index: SourceIndex, workspace: Path
    ) -> None:
        """Changing one file does not alter answers for positions in other files."""
        models = workspace / "pkg" / "models.py"
        package = workspace / "pkg" / "__init__.py"
        before = {
            (path, line): router.query(path, line)
            for path, line in [(models, 12), (models, 16), (models, 19), (package, 1)]
        }

        (workspace / "app.py").write_text("from pkg.models import Widget\n\nWidget('x')\n")
        index.upsert(workspace / "app.py")

        after = {key: router.query(*key) for key in before}
        assert after == before
        assert all(before.values())
