"""Workspace source index: parsing, enumeration and the in-memory store."""

from symdex.index.models import (
    Declaration,
    DeclarationKind,
    ImportBinding,
    Reference,
    ReferenceRole,
    SourceUnit,
)
from symdex.index.parser import parse_source
from symdex.index.scanner import iter_source_files
from symdex.index.store import IndexSnapshot, SourceIndex

__all__ = [
    "Declaration",
    "DeclarationKind",
    "ImportBinding",
    "IndexSnapshot",
    "Reference",
    "ReferenceRole",
    "SourceIndex",
    "SourceUnit",
    "iter_source_files",
    "parse_source",
]
