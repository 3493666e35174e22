"""Tree-sitter extraction of declarations, imports and references.

Turns one Python file into a ``SourceUnit``. Tree-sitter recovers from
syntax errors, so files that are mid-edit still yield whatever parses.
"""

from __future__ import annotations

import hashlib
import logging
from pathlib import Path

import tree_sitter_python as tspython
from tree_sitter import Language, Node, Parser

from symdex.errors import ParseError
from symdex.index.models import (
    Declaration,
    DeclarationKind,
    ImportBinding,
    Reference,
    ReferenceRole,
    SourceUnit,
)

logger = logging.getLogger(__name__)

_language: Language | None = None


def _get_language() -> Language:
    """Get or create the Tree-sitter Python language."""
    global _language
    if _language is None:
        _language = Language(tspython.language())
    return _language


def compute_revision(source: bytes) -> str:
    """Content hash used as a SourceUnit revision marker."""
    return f"sha256:{hashlib.sha256(source).hexdigest()[:16]}"


def module_name_for(path: Path, root: Path) -> str:
    """Dotted module name of ``path`` relative to ``root``.

    ``pkg/mod.py`` -> ``pkg.mod``; ``pkg/__init__.py`` -> ``pkg``.
    Files outside the root fall back to their stem.
    """
    try:
        rel = path.relative_to(root)
    except ValueError:
        return path.stem

    parts = list(rel.with_suffix("").parts)
    if parts and parts[-1] == "__init__":
        parts.pop()
    return ".".join(parts) or root.name


def module_aliases(module_name: str) -> list[str]:
    """Names a module is importable under (src/ layout strips the prefix)."""
    aliases = [module_name]
    if module_name.startswith("src."):
        aliases.append(module_name[len("src.") :])
    return aliases


def _join(scope: str, name: str) -> str:
    return f"{scope}.{name}" if scope else name


# Node types whose ``name`` field declares a symbol in the enclosing scope
_DEFINITION_KINDS: dict[str, DeclarationKind] = {
    "class_definition": DeclarationKind.CLASS,
    "function_definition": DeclarationKind.FUNCTION,
}

# Node types whose target(s) bind variables
_BINDING_FIELDS: dict[str, str] = {
    "assignment": "left",
    "for_statement": "left",
    "for_in_clause": "left",
    "named_expression": "name",
    "as_pattern": "alias",
}

_TARGET_CONTAINERS = {
    "pattern_list",
    "tuple_pattern",
    "list_pattern",
    "as_pattern_target",
    "list_splat_pattern",
    "parenthesized_expression",
}


class _Extractor:
    """Single-use walker over one syntax tree."""

    def __init__(self, source: bytes) -> None:
        self.source = source
        self.lines = source.split(b"\n")
        self.declarations: list[Declaration] = []
        self.imports: list[ImportBinding] = []
        self.references: list[Reference] = []

    # -- helpers -------------------------------------------------------------

    def _text(self, node: Node) -> str:
        return self.source[node.start_byte : node.end_byte].decode("utf-8", errors="replace")

    def _column(self, row: int, byte_col: int) -> int:
        """Convert a tree-sitter byte column into a 1-based character column."""
        line = self.lines[row] if row < len(self.lines) else b""
        return len(line[:byte_col].decode("utf-8", errors="replace")) + 1

    def _span(self, node: Node) -> tuple[int, int, int]:
        row, start = node.start_point
        _, end = node.end_point
        return row + 1, self._column(row, start), self._column(row, end)

    def _dotted(self, node: Node | None) -> str | None:
        """Dotted text for identifier/attribute chains, else None."""
        if node is None:
            return None
        if node.type == "identifier":
            return self._text(node)
        if node.type == "attribute":
            obj = self._dotted(node.child_by_field_name("object"))
            attr = node.child_by_field_name("attribute")
            if obj is not None and attr is not None:
                return f"{obj}.{self._text(attr)}"
        return None

    def _declare(
        self,
        node: Node,
        kind: DeclarationKind,
        scope: str,
        in_class: bool,
    ) -> None:
        line, column, _ = self._span(node)
        self.declarations.append(
            Declaration(
                name=self._text(node),
                kind=kind,
                line=line,
                column=column,
                scope=scope,
                in_class=in_class,
            )
        )

    def _reference(
        self,
        node: Node,
        scope: str,
        class_scope: str | None,
        role: ReferenceRole = ReferenceRole.NAME,
        qualifier: str | None = None,
        level: int = 0,
    ) -> None:
        line, column, end_column = self._span(node)
        self.references.append(
            Reference(
                name=self._text(node),
                line=line,
                column=column,
                end_column=end_column,
                role=role,
                qualifier=qualifier,
                scope=scope,
                class_scope=class_scope,
                level=level,
            )
        )

    # -- walk ----------------------------------------------------------------

    def visit(self, node: Node, scope: str, in_class: bool, class_scope: str | None) -> None:
        kind = node.type

        if kind in _DEFINITION_KINDS:
            self._visit_definition(node, scope, in_class, class_scope)
            return
        if kind == "import_statement":
            self._visit_import(node, scope, class_scope)
            return
        if kind == "import_from_statement":
            self._visit_import_from(node, scope, class_scope)
            return
        if kind == "attribute":
            self._visit_attribute(node, scope, class_scope)
            return
        if kind == "identifier":
            self._reference(node, scope, class_scope)
            return
        if kind == "keyword_argument":
            # The keyword itself names a parameter, not a symbol in scope
            value = node.child_by_field_name("value")
            if value is not None:
                self.visit(value, scope, in_class, class_scope)
            return

        field_name = _BINDING_FIELDS.get(kind)
        if field_name is not None:
            target = node.child_by_field_name(field_name)
            if target is not None:
                self._bind_targets(target, scope, in_class, class_scope)

        for child in node.children:
            self.visit(child, scope, in_class, class_scope)

    def _visit_definition(
        self,
        node: Node,
        scope: str,
        in_class: bool,
        class_scope: str | None,
    ) -> None:
        name_node = node.child_by_field_name("name")
        if name_node is None:
            return

        kind = _DEFINITION_KINDS[node.type]
        if kind is DeclarationKind.FUNCTION and in_class:
            kind = DeclarationKind.METHOD

        self._declare(name_node, kind, scope, in_class)
        self._reference(name_node, scope, class_scope)
        inner = _join(scope, self._text(name_node))

        if kind is DeclarationKind.CLASS:
            bases = node.child_by_field_name("superclasses")
            if bases is not None:
                self.visit(bases, scope, in_class, class_scope)
            body = node.child_by_field_name("body")
            if body is not None:
                self.visit(body, inner, True, inner)
            return

        params = node.child_by_field_name("parameters")
        if params is not None:
            for param in params.named_children:
                self._visit_parameter(param, scope, inner, in_class, class_scope)

        return_type = node.child_by_field_name("return_type")
        if return_type is not None:
            self.visit(return_type, scope, in_class, class_scope)

        body = node.child_by_field_name("body")
        if body is not None:
            self.visit(body, inner, False, class_scope)

    def _visit_parameter(
        self,
        param: Node,
        outer_scope: str,
        inner_scope: str,
        in_class: bool,
        class_scope: str | None,
    ) -> None:
        ident = _parameter_identifier(param)
        if ident is not None:
            self._declare(ident, DeclarationKind.PARAMETER, inner_scope, False)
            self._reference(ident, inner_scope, class_scope)

        # Annotations and defaults evaluate in the enclosing scope
        for field_name in ("type", "value"):
            child = param.child_by_field_name(field_name)
            if child is not None:
                self.visit(child, outer_scope, in_class, class_scope)

    def _bind_targets(
        self,
        target: Node,
        scope: str,
        in_class: bool,
        class_scope: str | None,
    ) -> None:
        """Record declarations for assignment-like targets (no references)."""
        if target.type == "identifier" or (
            target.type == "as_pattern_target" and not target.named_children
        ):
            self._declare(target, DeclarationKind.VARIABLE, scope, in_class)
        elif target.type == "attribute":
            obj = target.child_by_field_name("object")
            attr = target.child_by_field_name("attribute")
            if (
                obj is not None
                and attr is not None
                and class_scope is not None
                and self._text(obj) == "self"
            ):
                self._declare(attr, DeclarationKind.ATTRIBUTE, class_scope, True)
        elif target.type in _TARGET_CONTAINERS:
            for child in target.named_children:
                self._bind_targets(child, scope, in_class, class_scope)

    def _visit_attribute(self, node: Node, scope: str, class_scope: str | None) -> None:
        obj = node.child_by_field_name("object")
        attr = node.child_by_field_name("attribute")
        if obj is not None:
            self.visit(obj, scope, False, class_scope)
        if attr is not None:
            self._reference(
                attr,
                scope,
                class_scope,
                role=ReferenceRole.ATTRIBUTE,
                qualifier=self._dotted(obj),
            )

    def _module_references(
        self,
        dotted: Node,
        scope: str,
        class_scope: str | None,
        level: int = 0,
    ) -> None:
        """Reference each identifier of an import path as a module prefix."""
        parts: list[str] = []
        for ident in dotted.named_children:
            if ident.type != "identifier":
                continue
            parts.append(self._text(ident))
            self._reference(
                ident,
                scope,
                class_scope,
                role=ReferenceRole.MODULE,
                qualifier=".".join(parts),
                level=level,
            )

    def _visit_import(self, node: Node, scope: str, class_scope: str | None) -> None:
        line = node.start_point[0] + 1
        for name in node.children_by_field_name("name"):
            if name.type == "aliased_import":
                dotted = name.child_by_field_name("name")
                alias = name.child_by_field_name("alias")
                if dotted is None or alias is None:
                    continue
                module = self._text(dotted)
                self.imports.append(ImportBinding(self._text(alias), module, line=line))
                self._module_references(dotted, scope, class_scope)
                self._reference(alias, scope, class_scope)
            elif name.type == "dotted_name":
                module = self._text(name)
                top = module.split(".")[0]
                self.imports.append(ImportBinding(top, top, line=line))
                self._module_references(name, scope, class_scope)

    def _visit_import_from(self, node: Node, scope: str, class_scope: str | None) -> None:
        line = node.start_point[0] + 1
        module_node = node.child_by_field_name("module_name")
        module = ""
        level = 0

        if module_node is not None and module_node.type == "relative_import":
            for child in module_node.children:
                if child.type == "import_prefix":
                    level = len(self._text(child).strip())
                elif child.type == "dotted_name":
                    module = self._text(child)
                    self._module_references(child, scope, class_scope, level)
        elif module_node is not None:
            module = self._text(module_node)
            self._module_references(module_node, scope, class_scope)

        for name in node.children_by_field_name("name"):
            if name.type == "aliased_import":
                imported = name.child_by_field_name("name")
                alias = name.child_by_field_name("alias")
                if imported is None or alias is None:
                    continue
                self.imports.append(
                    ImportBinding(
                        self._text(alias),
                        module,
                        imported_name=self._text(imported),
                        level=level,
                        line=line,
                    )
                )
                self._reference(alias, scope, class_scope)
            elif name.type == "dotted_name":
                imported_name = self._text(name)
                self.imports.append(
                    ImportBinding(
                        imported_name,
                        module,
                        imported_name=imported_name,
                        level=level,
                        line=line,
                    )
                )
                for ident in name.named_children:
                    self._reference(ident, scope, class_scope)


def _parameter_identifier(node: Node) -> Node | None:
    """Find the identifier a parameter node declares."""
    if node.type == "identifier":
        return node
    if node.type in ("default_parameter", "typed_default_parameter"):
        return node.child_by_field_name("name")
    if node.type in ("typed_parameter", "list_splat_pattern", "dictionary_splat_pattern"):
        for child in node.named_children:
            if child.type in ("identifier", "list_splat_pattern", "dictionary_splat_pattern"):
                return _parameter_identifier(child)
    return None


def parse_source(path: Path, source: bytes, module_name: str) -> SourceUnit:
    """Parse Python source bytes into a SourceUnit.

    Args:
        path: Absolute path of the file
        source: Raw file content
        module_name: Dotted module name for the file

    Returns:
        A SourceUnit with generation 0 (the index assigns generations)

    Raises:
        ParseError: If tree-sitter or the extractor cannot process the file
    """
    parser = Parser(_get_language())
    try:
        tree = parser.parse(source)
        root = tree.root_node
        if root.has_error:
            logger.debug(f"Syntax errors in {path}; indexing recovered nodes")

        extractor = _Extractor(source)
        extractor.visit(root, "", False, None)
    except RecursionError as e:
        raise ParseError(f"Source nesting too deep: {e}", file_path=str(path)) from e
    except ValueError as e:
        raise ParseError(f"Cannot parse source: {e}", file_path=str(path)) from e

    return SourceUnit(
        path=path,
        module_name=module_name,
        revision=compute_revision(source),
        line_count=len(extractor.lines),
        declarations=tuple(extractor.declarations),
        imports=tuple(extractor.imports),
        references=tuple(extractor.references),
    )


__all__ = [
    "compute_revision",
    "module_aliases",
    "module_name_for",
    "parse_source",
]
