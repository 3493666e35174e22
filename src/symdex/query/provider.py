"""Semantic providers: resolve a reference to the symbol(s) it denotes.

``WorkspaceProvider`` answers from the index alone. Resolution order for a
reference:

1. Identifiers inside an import's module path resolve to that module.
2. Attribute access (``obj.name``) resolves through ``self``/``cls``, an
   import binding or a class declared in the same file.
3. Bare names resolve to a visible declaration in the same file, then to an
   import binding, then to Python builtins.
4. Optionally, any workspace declaration with the same name (flagged
   ``approximate``).
"""

from __future__ import annotations

import builtins
import logging
import sys
from pathlib import Path
from typing import Protocol

from symdex.index.models import (
    Declaration,
    DeclarationKind,
    ImportBinding,
    Reference,
    ReferenceRole,
    SourceUnit,
)
from symdex.index.store import IndexSnapshot
from symdex.query.models import ResolvedSymbol, SymbolLocation, SymbolOrigin

logger = logging.getLogger(__name__)

# Re-exports followed before giving up (``from .impl import X`` in __init__)
MAX_REEXPORT_DEPTH = 5

PLATFORM_MODULES = frozenset(sys.stdlib_module_names) | {"builtins"}


class SemanticProvider(Protocol):
    """Anything that can resolve references against an index snapshot."""

    def resolve(
        self,
        snapshot: IndexSnapshot,
        unit: SourceUnit,
        reference: Reference,
    ) -> list[ResolvedSymbol]: ...


def is_platform_module(module: str) -> bool:
    """True for standard-library modules and builtins."""
    return module.split(".")[0] in PLATFORM_MODULES


def module_origin(snapshot: IndexSnapshot, module: str, relative: bool = False) -> SymbolOrigin:
    """Classify where a dotted module comes from."""
    if not relative and is_platform_module(module):
        return SymbolOrigin.PLATFORM
    if module in snapshot.modules:
        return SymbolOrigin.SOURCE
    if relative:
        return SymbolOrigin.UNRESOLVED
    return SymbolOrigin.PACKAGE


def absolute_module(unit: SourceUnit, module: str, level: int) -> str | None:
    """Resolve a possibly relative module path against the importing unit.

    Returns:
        The absolute dotted module, or None if the relative import climbs
        above the top-level package
    """
    if level == 0:
        return module

    package = unit.module_name.split(".") if unit.module_name else []
    if unit.path.name not in ("__init__.py", "__init__.pyi") and package:
        package.pop()

    climb = level - 1
    if climb and climb >= len(package):
        return None
    if climb:
        package = package[:-climb]

    if module:
        package.append(module)
    return ".".join(package)


def _join(*parts: str) -> str:
    return ".".join(p for p in parts if p)


def _location(path: Path, line: int, column: int) -> SymbolLocation:
    return SymbolLocation(file=str(path), line=line, column=column)


def _from_declaration(
    path: Path,
    module: str,
    decl: Declaration,
    approximate: bool = False,
) -> ResolvedSymbol:
    return ResolvedSymbol(
        name=decl.name,
        kind=decl.kind.value,
        location=_location(path, decl.line, decl.column),
        containing_module=module,
        origin=SymbolOrigin.SOURCE,
        approximate=approximate,
    )


def _is_visible(decl: Declaration, ref: Reference) -> bool:
    """Python scoping: enclosing function scopes are visible, class bodies are not."""
    if decl.scope == ref.scope:
        return True
    if decl.in_class:
        return False
    return decl.scope == "" or ref.scope.startswith(decl.scope + ".")


class WorkspaceProvider:
    """Resolve references using only the indexed workspace.

    Attributes:
        name_match_fallback: Match unresolved references to any workspace
            declaration of the same name
    """

    def __init__(self, name_match_fallback: bool = True) -> None:
        self.name_match_fallback = name_match_fallback

    def resolve(
        self,
        snapshot: IndexSnapshot,
        unit: SourceUnit,
        reference: Reference,
    ) -> list[ResolvedSymbol]:
        if reference.role is ReferenceRole.MODULE:
            return self._resolve_module_reference(snapshot, unit, reference)

        if reference.role is ReferenceRole.ATTRIBUTE:
            found = self._resolve_attribute(snapshot, unit, reference)
        else:
            found = self._resolve_name(snapshot, unit, reference)

        if not found and self.name_match_fallback:
            found = self._name_match(snapshot, reference)
            if found:
                logger.debug(
                    f"Approximate match for {reference.name} at "
                    f"{unit.path}:{reference.line} ({len(found)} candidates)"
                )
        return found

    # -- modules -------------------------------------------------------------

    def _module_symbol(
        self,
        snapshot: IndexSnapshot,
        name: str,
        module: str,
        relative: bool = False,
    ) -> ResolvedSymbol:
        origin = module_origin(snapshot, module, relative)
        location = None
        if origin is SymbolOrigin.SOURCE:
            location = _location(snapshot.modules[module], 1, 1)
        return ResolvedSymbol(
            name=name,
            kind="module",
            location=location,
            containing_module=module,
            origin=origin,
        )

    def _resolve_module_reference(
        self,
        snapshot: IndexSnapshot,
        unit: SourceUnit,
        ref: Reference,
    ) -> list[ResolvedSymbol]:
        module = absolute_module(unit, ref.qualifier or ref.name, ref.level)
        if module is None:
            return [ResolvedSymbol(name=ref.name, kind="module")]
        return [self._module_symbol(snapshot, ref.name, module, relative=ref.level > 0)]

    # -- bindings ------------------------------------------------------------

    def _resolve_binding(
        self,
        snapshot: IndexSnapshot,
        unit: SourceUnit,
        binding: ImportBinding,
        rest: list[str],
        name: str,
        depth: int = 0,
    ) -> list[ResolvedSymbol]:
        """Follow an import binding plus any attribute path after it."""
        base = absolute_module(unit, binding.module, binding.level)
        if base is None:
            return [ResolvedSymbol(name=name, kind="unknown")]

        remaining = ([binding.imported_name] if binding.imported_name else []) + rest
        module = base
        while remaining and _join(module, remaining[0]) in snapshot.modules:
            module = _join(module, remaining.pop(0))

        relative = binding.level > 0
        if not remaining:
            return [self._module_symbol(snapshot, name, module, relative)]

        target = snapshot.unit_for_module(module)
        if target is None:
            origin = module_origin(snapshot, module, relative)
            return [
                ResolvedSymbol(
                    name=name,
                    kind="unknown",
                    containing_module=_join(module, *remaining[:-1]),
                    origin=origin,
                )
            ]

        scope = ".".join(remaining[:-1])
        decls = [
            d for d in target.declarations if d.name == remaining[-1] and d.scope == scope
        ]
        if decls:
            return [_from_declaration(target.path, target.module_name, d) for d in decls]

        # The target module may itself import the name (package re-exports)
        reexport = target.binding_for(remaining[0])
        if reexport is not None and depth < MAX_REEXPORT_DEPTH:
            return self._resolve_binding(
                snapshot, target, reexport, remaining[1:], name, depth + 1
            )
        return []

    # -- attributes ----------------------------------------------------------

    def _resolve_attribute(
        self,
        snapshot: IndexSnapshot,
        unit: SourceUnit,
        ref: Reference,
    ) -> list[ResolvedSymbol]:
        if not ref.qualifier:
            return []

        parts = ref.qualifier.split(".")
        root, path = parts[0], parts[1:]

        if root in ("self", "cls") and ref.class_scope is not None:
            scope = _join(ref.class_scope, *path)
            return [
                _from_declaration(unit.path, unit.module_name, d)
                for d in unit.declarations
                if d.name == ref.name and d.scope == scope
            ]

        for decl in self._visible_declarations(unit, root, ref):
            if decl.kind is DeclarationKind.CLASS:
                scope = _join(decl.scope, root, *path)
                return [
                    _from_declaration(unit.path, unit.module_name, d)
                    for d in unit.declarations
                    if d.name == ref.name and d.scope == scope
                ]

        binding = unit.binding_for(root)
        if binding is not None:
            return self._resolve_binding(snapshot, unit, binding, path + [ref.name], ref.name)
        return []

    # -- names ---------------------------------------------------------------

    def _visible_declarations(
        self,
        unit: SourceUnit,
        name: str,
        ref: Reference,
    ) -> list[Declaration]:
        """Declarations of ``name`` visible at ``ref``, innermost scope only."""
        visible = [d for d in unit.declarations_named(name) if _is_visible(d, ref)]
        if not visible:
            return []

        innermost = max(len(d.scope) for d in visible)
        in_scope = [d for d in visible if len(d.scope) == innermost]
        # The binding in effect is the last one at or before the reference
        before = [d for d in in_scope if (d.line, d.column) <= (ref.line, ref.column)]
        return [before[-1]] if before else [in_scope[0]]

    def _resolve_name(
        self,
        snapshot: IndexSnapshot,
        unit: SourceUnit,
        ref: Reference,
    ) -> list[ResolvedSymbol]:
        local = self._visible_declarations(unit, ref.name, ref)
        if local:
            return [_from_declaration(unit.path, unit.module_name, d) for d in local]

        binding = unit.binding_for(ref.name)
        if binding is not None:
            return self._resolve_binding(snapshot, unit, binding, [], ref.name)

        if hasattr(builtins, ref.name):
            return [
                ResolvedSymbol(
                    name=ref.name,
                    kind="builtin",
                    containing_module="builtins",
                    origin=SymbolOrigin.PLATFORM,
                )
            ]
        return []

    # -- degraded mode -------------------------------------------------------

    def _name_match(self, snapshot: IndexSnapshot, ref: Reference) -> list[ResolvedSymbol]:
        found = []
        for path, decl in snapshot.lookup(ref.name):
            if ref.role is ReferenceRole.ATTRIBUTE:
                if not decl.in_class:
                    continue
            elif not (decl.is_top_level or decl.in_class):
                continue
            owner = snapshot.get(path)
            module = owner.module_name if owner is not None else ""
            found.append(_from_declaration(path, module, decl, approximate=True))
        return found


__all__ = [
    "PLATFORM_MODULES",
    "SemanticProvider",
    "WorkspaceProvider",
    "absolute_module",
    "is_platform_module",
    "module_origin",
]
