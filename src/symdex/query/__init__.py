"""Symbol queries: resolution and classification."""

from symdex.query.models import (
    Classification,
    QueryResult,
    ResolvedSymbol,
    SymbolLocation,
    SymbolOrigin,
)
from symdex.query.provider import SemanticProvider, WorkspaceProvider
from symdex.query.router import QueryRouter, classify

__all__ = [
    "Classification",
    "QueryResult",
    "QueryRouter",
    "ResolvedSymbol",
    "SemanticProvider",
    "SymbolLocation",
    "SymbolOrigin",
    "WorkspaceProvider",
    "classify",
]
