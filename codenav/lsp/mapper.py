"""
Normalization of language server responses into the domain model.

The mapper is the only place where zero-based wire coordinates and file URIs
are seen. Everything it returns uses one-based coordinates and file paths
relative to the project root, so resolver code never deals with protocol
shapes.
"""

import logging
import os
from dataclasses import replace
from pathlib import Path
from typing import Dict, List, Sequence, Tuple
from urllib.parse import urlparse
from urllib.request import url2pathname

from codenav.core.models import (
    FoldingRange, LocationRef, Position, Range, SymbolInfo,
    REFERENCE_KIND, UNKNOWN_KIND,
)
from codenav.core.symbol_id import SymbolId
from codenav.lsp.models import (
    DocumentSymbolResponse, DocumentSymbolTree, SymbolInformationList,
    LspDocumentSymbol, LspFoldingRange, LspLocation, LspPosition, LspRange,
    LspSymbolInformation,
)

# Configure logging
logger = logging.getLogger(__name__)

# LSP SymbolKind codes (1-based, as defined by the protocol)
SYMBOL_KINDS = {
    1: "File",
    2: "Module",
    3: "Namespace",
    4: "Package",
    5: "Class",
    6: "Method",
    7: "Property",
    8: "Field",
    9: "Constructor",
    10: "Enum",
    11: "Interface",
    12: "Function",
    13: "Variable",
    14: "Constant",
    15: "String",
    16: "Number",
    17: "Boolean",
    18: "Array",
    19: "Object",
    20: "Key",
    21: "Null",
    22: "EnumMember",
    23: "Struct",
    24: "Event",
    25: "Operator",
    26: "TypeParameter",
}


def kind_name(code: int) -> str:
    """Name of an LSP SymbolKind code, or the Unknown sentinel."""
    return SYMBOL_KINDS.get(code, UNKNOWN_KIND)


class SymbolMapper:
    """Converts wire shapes to SymbolInfo / LocationRef / FoldingRange."""

    def __init__(self, root_path: str):
        self.root_path = os.path.abspath(root_path)
        # Servers sometimes report resolved symlinks (e.g. /private/var on macOS)
        self._roots = tuple(dict.fromkeys([self.root_path, os.path.realpath(self.root_path)]))

    # Paths and URIs

    def absolute_path(self, path: str) -> str:
        if os.path.isabs(path):
            return os.path.abspath(path)
        return os.path.abspath(os.path.join(self.root_path, path))

    def path_to_uri(self, path: str) -> str:
        return Path(self.absolute_path(path)).as_uri()

    def uri_to_path(self, uri: str) -> str:
        """Project-relative POSIX path for a file URI; paths outside the root stay absolute."""
        parsed = urlparse(uri)
        if parsed.scheme and parsed.scheme != "file":
            return uri
        path = url2pathname(parsed.path) if parsed.scheme else uri
        for root in self._roots:
            if path.startswith(root.rstrip(os.sep) + os.sep):
                return Path(os.path.relpath(path, root)).as_posix()
        return path

    # Coordinates

    @staticmethod
    def to_position(position: LspPosition) -> Position:
        return Position(line=position.line + 1, character=position.character + 1)

    def to_range(self, wire_range: LspRange) -> Range:
        start = self.to_position(wire_range.start)
        end = self.to_position(wire_range.end)
        if (end.line, end.character) < (start.line, start.character):
            # Keep start <= end even if a server sends an inverted range
            start, end = end, start
        return Range(start=start, end=end)

    @staticmethod
    def to_wire_position(line: int, character: int) -> Dict[str, int]:
        """Zero-based position parameters for an outgoing request."""
        return {"line": max(0, line - 1), "character": max(0, character - 1)}

    # Symbols

    def map_document_symbols(self, response: DocumentSymbolResponse, file_path: str) -> List[SymbolInfo]:
        """Normalize either document-symbol shape into a SymbolInfo tree."""
        if isinstance(response, DocumentSymbolTree):
            return [self.map_document_symbol(s, file_path) for s in response.symbols]
        if isinstance(response, SymbolInformationList):
            return self._nest_by_containment(
                [self.symbol_information_to_info(s) for s in response.symbols]
            )
        raise TypeError(f"Unsupported document symbol response: {type(response).__name__}")

    def map_document_symbol(self, symbol: LspDocumentSymbol, file_path: str) -> SymbolInfo:
        full_range = self.to_range(symbol.range)
        selection_range = self.to_range(symbol.selection_range)
        return SymbolInfo(
            id=SymbolId.from_position(file_path, selection_range.start).to_string(),
            name=symbol.name,
            kind=kind_name(symbol.kind),
            line=full_range.start.line,
            range=full_range,
            selection_range=selection_range,
            children=tuple(self.map_document_symbol(c, file_path) for c in symbol.children),
        )

    def symbol_information_to_info(self, symbol: LspSymbolInformation) -> SymbolInfo:
        file_path = self.uri_to_path(symbol.location.uri)
        location_range = self.to_range(symbol.location.range)
        return SymbolInfo(
            id=SymbolId.from_position(file_path, location_range.start).to_string(),
            name=symbol.name,
            kind=kind_name(symbol.kind),
            line=location_range.start.line,
            range=location_range,
            selection_range=location_range,
            children=(),
        )

    def map_symbol_information(self, symbol: LspSymbolInformation) -> LocationRef:
        """Workspace search hit; the symbol name doubles as the preview."""
        file_path = self.uri_to_path(symbol.location.uri)
        start = self.to_position(symbol.location.range.start)
        return LocationRef(
            id=SymbolId.from_position(file_path, start).to_string(),
            file_path=file_path,
            line=start.line,
            character=start.character,
            kind=kind_name(symbol.kind),
            preview=symbol.name,
        )

    def map_location(self, location: LspLocation) -> LocationRef:
        file_path = self.uri_to_path(location.uri)
        start = self.to_position(location.range.start)
        return LocationRef(
            id=SymbolId.from_position(file_path, start).to_string(),
            file_path=file_path,
            line=start.line,
            character=start.character,
            kind=REFERENCE_KIND,
        )

    def map_locations(self, locations: Sequence[LspLocation]) -> List[LocationRef]:
        return [self.map_location(location) for location in locations]

    @staticmethod
    def map_folding_range(folding_range: LspFoldingRange) -> FoldingRange:
        return FoldingRange(
            start_line=folding_range.start_line + 1,
            end_line=max(folding_range.start_line, folding_range.end_line) + 1,
        )

    def _nest_by_containment(self, symbols: List[SymbolInfo]) -> List[SymbolInfo]:
        """Rebuild a tree from flat symbols: a symbol whose range encloses another becomes its parent."""
        def sort_key(s: SymbolInfo) -> Tuple[int, int, int, int]:
            # Earlier start first; for equal starts the wider range first
            return (s.range.start.line, s.range.start.character, -s.range.end.line, -s.range.end.character)

        roots: List[list] = []
        stack: List[list] = []
        for symbol in sorted(symbols, key=sort_key):
            node = [symbol, []]
            while stack and not _encloses(stack[-1][0].range, symbol.range):
                stack.pop()
            (stack[-1][1] if stack else roots).append(node)
            stack.append(node)

        def freeze(node: list) -> SymbolInfo:
            return replace(node[0], children=tuple(freeze(child) for child in node[1]))

        return [freeze(node) for node in roots]


def _encloses(outer: Range, inner: Range) -> bool:
    return outer != inner and outer.contains(inner.start) and outer.contains(inner.end)
