#!/usr/bin/env python3
"""
Data models for LSP responses.

This module contains dataclasses mirroring the wire shapes returned by a
language server. Coordinates here are zero-based, exactly as sent; they are
converted to the one-based domain model by codenav.lsp.mapper.

Symbol queries may be answered in two shapes (hierarchical DocumentSymbol[]
or flat SymbolInformation[]); decode_document_symbols() turns either into a
tagged DocumentSymbolResponse so callers never inspect raw dictionaries.
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Union

# Configure logging
logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class LspPosition:
    """Position in a document expressed as zero-based line and character offset."""
    line: int
    character: int

    @classmethod
    def from_dict(cls, data: Any) -> "LspPosition":
        if not isinstance(data, dict):
            return cls(line=0, character=0)
        return cls(line=int(data.get("line", 0)), character=int(data.get("character", 0)))


@dataclass(frozen=True)
class LspRange:
    """Range in a document expressed as start and end positions."""
    start: LspPosition
    end: LspPosition

    @classmethod
    def from_dict(cls, data: Any) -> "LspRange":
        if not isinstance(data, dict):
            origin = LspPosition(line=0, character=0)
            return cls(start=origin, end=origin)
        return cls(
            start=LspPosition.from_dict(data.get("start")),
            end=LspPosition.from_dict(data.get("end")),
        )


@dataclass(frozen=True)
class LspLocation:
    """Location in a document expressed as a URI and a range."""
    uri: str
    range: LspRange


@dataclass(frozen=True)
class LspDocumentSymbol:
    """Hierarchical symbol as returned by textDocument/documentSymbol."""
    name: str
    kind: int
    range: LspRange
    selection_range: LspRange
    children: List["LspDocumentSymbol"] = field(default_factory=list)
    detail: Optional[str] = None

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "LspDocumentSymbol":
        return cls(
            name=str(data.get("name", "")),
            kind=int(data.get("kind", 0) or 0),
            range=LspRange.from_dict(data.get("range")),
            selection_range=LspRange.from_dict(data.get("selectionRange", data.get("range"))),
            children=[cls.from_dict(c) for c in data.get("children") or [] if isinstance(c, dict)],
            detail=data.get("detail"),
        )


@dataclass(frozen=True)
class LspSymbolInformation:
    """Flat symbol carrying its own location (SymbolInformation / WorkspaceSymbol)."""
    name: str
    kind: int
    location: LspLocation
    container_name: Optional[str] = None

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "LspSymbolInformation":
        location = data.get("location") or {}
        # WorkspaceSymbol may omit the range and only carry a URI
        return cls(
            name=str(data.get("name", "")),
            kind=int(data.get("kind", 0) or 0),
            location=LspLocation(
                uri=str(location.get("uri", "")),
                range=LspRange.from_dict(location.get("range")),
            ),
            container_name=data.get("containerName"),
        )


@dataclass(frozen=True)
class LspFoldingRange:
    """Zero-based, inclusive line pair."""
    start_line: int
    end_line: int
    kind: Optional[str] = None


@dataclass(frozen=True)
class DocumentSymbolTree:
    """Hierarchical document-symbol response."""
    symbols: List[LspDocumentSymbol]


@dataclass(frozen=True)
class SymbolInformationList:
    """Flat, location-carrying symbol response."""
    symbols: List[LspSymbolInformation]


DocumentSymbolResponse = Union[DocumentSymbolTree, SymbolInformationList]


def decode_document_symbols(result: Any) -> DocumentSymbolResponse:
    """Decode a textDocument/documentSymbol result into one arm of the union."""
    items = [item for item in result or [] if isinstance(item, dict)]
    if not items:
        return DocumentSymbolTree(symbols=[])
    if "location" in items[0] and "selectionRange" not in items[0]:
        return SymbolInformationList(symbols=[LspSymbolInformation.from_dict(i) for i in items])
    return DocumentSymbolTree(symbols=[LspDocumentSymbol.from_dict(i) for i in items])


def decode_symbol_information(result: Any) -> List[LspSymbolInformation]:
    """Decode a workspace/symbol result."""
    return [
        LspSymbolInformation.from_dict(item)
        for item in result or []
        if isinstance(item, dict) and isinstance(item.get("location"), dict)
    ]


def decode_locations(result: Any) -> List[LspLocation]:
    """
    Decode Location | Location[] | LocationLink[] | null into plain locations.

    LocationLinks are reduced to their target URI and target selection range.
    """
    if result is None:
        return []
    if not isinstance(result, list):
        result = [result]

    locations = []
    for item in result:
        if not isinstance(item, dict):
            continue
        if "targetUri" in item:
            target_range = item.get("targetSelectionRange") or item.get("targetRange")
            locations.append(LspLocation(uri=str(item["targetUri"]), range=LspRange.from_dict(target_range)))
        elif "uri" in item:
            locations.append(LspLocation(uri=str(item["uri"]), range=LspRange.from_dict(item.get("range"))))
        else:
            logger.warning(f"Skipping unrecognized location shape: {sorted(item.keys())}")
    return locations


def decode_folding_ranges(result: Any) -> List[LspFoldingRange]:
    """Decode a textDocument/foldingRange result."""
    ranges = []
    for item in result or []:
        if not isinstance(item, dict) or "startLine" not in item or "endLine" not in item:
            continue
        ranges.append(LspFoldingRange(
            start_line=int(item["startLine"]),
            end_line=int(item["endLine"]),
            kind=item.get("kind"),
        ))
    return ranges
