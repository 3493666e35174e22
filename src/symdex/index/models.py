"""Data models for indexed source units.

All records are frozen: a ``SourceUnit`` is replaced wholesale when its
file changes, never edited in place.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any


class DeclarationKind(str, Enum):
    """Closed set of declaration constructs extracted from source."""

    MODULE = "module"
    CLASS = "class"
    FUNCTION = "function"
    METHOD = "method"
    PARAMETER = "parameter"
    VARIABLE = "variable"
    ATTRIBUTE = "attribute"  # self.x = ... inside a method


class ReferenceRole(str, Enum):
    """How an identifier occurrence is used."""

    NAME = "name"  # bare name: foo
    ATTRIBUTE = "attribute"  # member access: obj.foo
    MODULE = "module"  # part of an import's module path


@dataclass(frozen=True)
class Declaration:
    """A named declaration in a source unit.

    Attributes:
        name: Declared identifier
        kind: Construct that declared it
        line: 1-based line of the identifier
        column: 1-based character column of the identifier
        scope: Dotted enclosing scope ('' for module level, 'Cls.method', ...)
        in_class: True when the immediate scope is a class body
    """

    name: str
    kind: DeclarationKind
    line: int
    column: int
    scope: str = ""
    in_class: bool = False

    @property
    def is_top_level(self) -> bool:
        return self.scope == ""

    def to_dict(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "kind": self.kind.value,
            "line": self.line,
            "column": self.column,
            "scope": self.scope,
        }


@dataclass(frozen=True)
class ImportBinding:
    """A name bound by an import statement.

    ``import a.b`` binds ``a`` to module ``a``; ``import a.b as x`` binds
    ``x`` to ``a.b``; ``from m import n as y`` binds ``y`` to ``n`` in ``m``.

    Attributes:
        local_name: Name bound in the importing module
        module: Dotted module path (without leading dots)
        imported_name: Name imported from the module (from-imports only)
        level: Number of leading dots for relative imports
        line: 1-based line of the import
    """

    local_name: str
    module: str
    imported_name: str | None = None
    level: int = 0
    line: int = 0


@dataclass(frozen=True)
class Reference:
    """One identifier occurrence that can be queried.

    Attributes:
        name: The identifier text
        line: 1-based line
        column: 1-based start column (characters)
        end_column: 1-based exclusive end column
        role: How the identifier is used
        qualifier: Dotted object path for attributes, or the module path up
            to and including this identifier for module references
        scope: Dotted enclosing scope of the occurrence
        class_scope: Scope of the nearest enclosing class, if any
        level: Relative import level for module references
    """

    name: str
    line: int
    column: int
    end_column: int
    role: ReferenceRole = ReferenceRole.NAME
    qualifier: str | None = None
    scope: str = ""
    class_scope: str | None = None
    level: int = 0

    def covers(self, column: int) -> bool:
        return self.column <= column < self.end_column


@dataclass(frozen=True)
class SourceUnit:
    """Parsed representation of one workspace file.

    Attributes:
        path: Absolute file path
        module_name: Dotted module name relative to the workspace root
        revision: Content hash of the parsed bytes
        generation: Index generation at which this unit was stored
        line_count: Number of lines in the file
        declarations: Extracted declarations, in source order
        imports: Import bindings, in source order
        references: Identifier occurrences, in source order
    """

    path: Path
    module_name: str
    revision: str
    generation: int = 0
    line_count: int = 0
    declarations: tuple[Declaration, ...] = ()
    imports: tuple[ImportBinding, ...] = ()
    references: tuple[Reference, ...] = ()
    _by_line: dict[int, tuple[Reference, ...]] = field(
        default_factory=dict, init=False, repr=False, compare=False
    )

    def __post_init__(self) -> None:
        grouped: dict[int, list[Reference]] = {}
        for ref in self.references:
            grouped.setdefault(ref.line, []).append(ref)
        object.__setattr__(self, "_by_line", {k: tuple(v) for k, v in grouped.items()})

    def references_on_line(self, line: int) -> tuple[Reference, ...]:
        return self._by_line.get(line, ())

    def reference_at(self, line: int, column: int) -> Reference | None:
        for ref in self.references_on_line(line):
            if ref.covers(column):
                return ref
        return None

    def declarations_named(self, name: str) -> list[Declaration]:
        return [d for d in self.declarations if d.name == name]

    def binding_for(self, local_name: str) -> ImportBinding | None:
        """Last import that binds ``local_name`` (later imports shadow)."""
        found = None
        for binding in self.imports:
            if binding.local_name == local_name:
                found = binding
        return found

    def with_generation(self, generation: int) -> SourceUnit:
        return SourceUnit(
            path=self.path,
            module_name=self.module_name,
            revision=self.revision,
            generation=generation,
            line_count=self.line_count,
            declarations=self.declarations,
            imports=self.imports,
            references=self.references,
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "path": str(self.path),
            "module": self.module_name,
            "revision": self.revision,
            "generation": self.generation,
            "lines": self.line_count,
            "declarations": [d.to_dict() for d in self.declarations],
        }


__all__ = [
    "Declaration",
    "DeclarationKind",
    "ImportBinding",
    "Reference",
    "ReferenceRole",
    "SourceUnit",
]
