"""Query routing: source position -> classified symbols."""

from __future__ import annotations

import logging
from collections.abc import Iterable
from pathlib import Path

from symdex.index.scanner import is_indexable
from symdex.index.store import SourceIndex
from symdex.query.models import Classification, QueryResult, ResolvedSymbol, SymbolOrigin
from symdex.query.provider import SemanticProvider, WorkspaceProvider

logger = logging.getLogger(__name__)


def classify(symbol: ResolvedSymbol | None) -> Classification:
    """Bucket a resolved symbol.

    Anything with a source location is user-defined; otherwise the origin
    of the containing module decides.
    """
    if symbol is None:
        return Classification.UNRESOLVED
    if symbol.location is not None:
        return Classification.USER_DEFINED
    if symbol.origin is SymbolOrigin.PLATFORM:
        return Classification.PLATFORM
    if symbol.origin is SymbolOrigin.PACKAGE:
        return Classification.EXTERNAL_PACKAGE
    return Classification.UNRESOLVED


def to_result(symbol: ResolvedSymbol) -> QueryResult:
    return QueryResult(
        name=symbol.name,
        kind=symbol.kind,
        location=symbol.location,
        classification=classify(symbol),
        containing_module=symbol.containing_module,
    )


def _sort_key(result: QueryResult) -> tuple:
    loc = result.location
    location_key = (1, loc.file, loc.line, loc.column) if loc else (0, "", 0, 0)
    return (
        result.name,
        result.classification.value,
        location_key,
        result.containing_module or "",
    )


def _dedup_sorted(results: Iterable[QueryResult]) -> list[QueryResult]:
    seen: set[tuple] = set()
    unique = []
    for result in results:
        loc = result.location
        identity = (
            result.name,
            result.kind,
            (loc.file, loc.line, loc.column) if loc else None,
            result.containing_module,
        )
        if identity not in seen:
            seen.add(identity)
            unique.append(result)
    return sorted(unique, key=_sort_key)


class QueryRouter:
    """Answer symbol queries against the current index snapshot.

    Attributes:
        index: The workspace SourceIndex
        provider: Semantic provider used for resolution
    """

    def __init__(self, index: SourceIndex, provider: SemanticProvider | None = None) -> None:
        self.index = index
        self.provider = provider or WorkspaceProvider()

    def query(self, file: str | Path, line: int, column: int = 0) -> list[QueryResult]:
        """Resolve the symbols at a source position.

        Args:
            file: Source file path, absolute or relative to the workspace root
            line: 1-based line
            column: 1-based column; 0 or less queries every identifier on the line

        Returns:
            Deduplicated, sorted results; empty when the file cannot be read
            or the position holds no identifier
        """
        path = self.index.normalize(file)
        snapshot = self.index.snapshot()
        unit = snapshot.get(path)

        if unit is None:
            if self.index.is_under_root(path) and is_indexable(path, self.index.root):
                unit = self.index.upsert(path)
                snapshot = self.index.snapshot()
            else:
                unit = self.index.load(path)

        if unit is None:
            logger.debug(f"No source unit for {path}")
            return []

        if line < 1 or line > unit.line_count:
            return []

        if column <= 0:
            candidates = unit.references_on_line(line)
        else:
            ref = unit.reference_at(line, column)
            candidates = (ref,) if ref is not None else ()

        results: list[QueryResult] = []
        for ref in candidates:
            try:
                symbols = self.provider.resolve(snapshot, unit, ref)
            except Exception as e:
                logger.warning(f"Failed to resolve {ref.name} at {path}:{ref.line}:{ref.column}: {e}")
                continue

            if not symbols:
                results.append(QueryResult(name=ref.name))
            else:
                results.extend(to_result(s) for s in symbols)

        return _dedup_sorted(results)


__all__ = [
    "QueryRouter",
    "classify",
    "to_result",
]
