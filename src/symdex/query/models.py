"""Symbol query result models.

``ResolvedSymbol`` is what a semantic provider hands back; ``QueryResult``
is the classified, wire-facing form returned to clients.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel


class Classification(str, Enum):
    """Bucket assigned to every query result."""

    USER_DEFINED = "UserDefined"
    PLATFORM = "Platform"
    EXTERNAL_PACKAGE = "ExternalPackage"
    UNRESOLVED = "Unresolved"


class SymbolOrigin(str, Enum):
    """Where a provider found the symbol's containing module."""

    SOURCE = "source"  # Declared in the workspace
    PLATFORM = "platform"  # Python standard library / builtins
    PACKAGE = "package"  # Third-party import
    UNRESOLVED = "unresolved"


class WireModel(BaseModel):
    """Base for JSON messages: camelCase keys, immutable instances."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        frozen=True,
    )


class SymbolLocation(WireModel):
    """An in-source position (1-based line and column)."""

    file: str
    line: int
    column: int


class QueryResult(WireModel):
    """One classified symbol returned for a query."""

    name: str
    kind: str = "unknown"
    location: SymbolLocation | None = None
    classification: Classification = Classification.UNRESOLVED
    containing_module: str | None = None

    def describe(self) -> str:
        """Render in the ``- name - file:line,column`` console format."""
        if self.location is not None:
            loc = self.location
            return f"- {self.name} - {loc.file}:{loc.line},{loc.column}"
        if self.containing_module:
            return f"- {self.name} - {self.classification.value} ({self.containing_module})"
        return f"- {self.name} - not found in codebase"


@dataclass(frozen=True)
class ResolvedSymbol:
    """A provider's answer for one reference.

    Attributes:
        name: Symbol name
        kind: Declaration kind, or 'module'/'builtin'/'unknown'
        location: Declaration site, when the symbol is in source
        containing_module: Dotted module the symbol comes from
        origin: Provenance of the containing module
        approximate: True when found by the degraded name-match mode
    """

    name: str
    kind: str
    location: SymbolLocation | None = None
    containing_module: str | None = None
    origin: SymbolOrigin = SymbolOrigin.UNRESOLVED
    approximate: bool = False


__all__ = [
    "Classification",
    "QueryResult",
    "ResolvedSymbol",
    "SymbolLocation",
    "SymbolOrigin",
    "WireModel",
]
