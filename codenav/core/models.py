#!/usr/bin/env python3
"""
Data models for navigation results.

This module contains the canonical, 1-based value objects returned by every
navigation operation. Wire-level (0-based) shapes live in codenav.lsp.models
and never reach this layer unconverted.
"""

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Tuple

UNKNOWN_KIND = "Unknown"
REFERENCE_KIND = "Reference"

ROLE_DEFINITION = "definition"
ROLE_REFERENCE = "reference"


@dataclass(frozen=True)
class Position:
    """Position in a document expressed as one-based line and character."""
    line: int
    character: int

    def to_dict(self) -> Dict[str, int]:
        return {"line": self.line, "character": self.character}


@dataclass(frozen=True)
class Range:
    """Range in a document expressed as start and end positions."""
    start: Position
    end: Position

    def contains(self, position: Position) -> bool:
        """True if position lies within the range, inclusive at both ends."""
        point = (position.line, position.character)
        return (self.start.line, self.start.character) <= point <= (self.end.line, self.end.character)

    @property
    def line_span(self) -> int:
        return self.end.line - self.start.line

    @property
    def character_span(self) -> int:
        return self.end.character - self.start.character

    def to_dict(self) -> Dict[str, Any]:
        return {"start": self.start.to_dict(), "end": self.end.to_dict()}


@dataclass(frozen=True)
class FoldingRange:
    """A collapsible block of lines, one-based and inclusive."""
    start_line: int
    end_line: int

    def contains_line(self, line: int) -> bool:
        return self.start_line <= line <= self.end_line

    @property
    def span(self) -> int:
        return self.end_line - self.start_line


@dataclass(frozen=True)
class SymbolInfo:
    """
    A declared symbol and, in tree form, its nested children.

    ``id`` addresses the identifier token (selection range start), while
    ``line`` is the first line of the whole declaration. Flattened entries
    carry ``children=None``.
    """
    id: str
    name: str
    kind: str
    line: int
    range: Range
    selection_range: Range
    children: Optional[Tuple["SymbolInfo", ...]] = ()

    def walk(self, depth: int = 0):
        """Yield (symbol, depth) pairs for this symbol and its descendants in pre-order."""
        yield self, depth
        for child in self.children or ():
            yield from child.walk(depth + 1)

    def to_dict(self) -> Dict[str, Any]:
        data = {
            "id": self.id,
            "name": self.name,
            "kind": self.kind,
            "line": self.line,
            "range": self.range.to_dict(),
            "selectionRange": self.selection_range.to_dict(),
        }
        if self.children is not None:
            data["children"] = [child.to_dict() for child in self.children]
        return data


@dataclass(frozen=True)
class LocationRef:
    """A single occurrence of a symbol, optionally tagged with its role."""
    id: str
    file_path: str
    line: int
    character: int
    kind: str
    preview: str = ""
    role: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        data = {
            "id": self.id,
            "filePath": self.file_path,
            "line": self.line,
            "character": self.character,
            "kind": self.kind,
            "preview": self.preview,
        }
        if self.role is not None:
            data["role"] = self.role
        return data


@dataclass(frozen=True)
class CodeContext:
    """A window of source text extracted around a symbol."""
    file_path: str
    start_line: int
    end_line: int
    code: str
    related_symbols: List[str] = field(default_factory=list)

    @property
    def range(self) -> Tuple[int, int]:
        return (self.start_line, self.end_line)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "filePath": self.file_path,
            "range": {"startLine": self.start_line, "endLine": self.end_line},
            "code": self.code,
            "relatedSymbols": list(self.related_symbols),
        }
