"""
Navigation operations built on a language server session.

NavigationResolver exposes the four navigation operations:

- map_file: flattened symbol outline of one file
- search: project-wide symbol search by name
- find_symbol: definition plus references of the symbol at an id
- inspect: code block or surrounding lines at an id

All ids are ``"<relative path>:<line>:<character>"`` with 1-based
coordinates (see codenav.core.symbol_id).
"""

import logging
import os
import time
from dataclasses import replace
from typing import Callable, Dict, List, Optional, Sequence

from codenav.core.config import Settings
from codenav.core.exceptions import AmbiguousSymbolError, SymbolNotFoundError
from codenav.core.models import (
    CodeContext, LocationRef, Position, SymbolInfo,
    ROLE_DEFINITION, ROLE_REFERENCE, UNKNOWN_KIND,
)
from codenav.core.symbol_id import SymbolId
from codenav.lsp.session import create_session
from codenav.utils import files

# Configure logging
logger = logging.getLogger(__name__)

MODE_BLOCK = "block"
MODE_SURROUND = "surround"
INSPECT_MODES = (MODE_BLOCK, MODE_SURROUND)

# Lines shown on each side of the target line in surround mode
SURROUND_LINES = 5


def flatten_symbols(symbols: Sequence[SymbolInfo]) -> List[SymbolInfo]:
    """Pre-order flattening; every entry is returned with children=None."""
    result = []
    for root in symbols:
        for symbol, _depth in root.walk():
            result.append(replace(symbol, children=None))
    return result


def innermost_symbol(symbols: Sequence[SymbolInfo], position: Position) -> Optional[SymbolInfo]:
    """
    The smallest symbol whose declared range contains position.

    Size is compared as (line span, character span); on a tie the more deeply
    nested symbol wins, so a child is always preferred over its parent.
    """
    best = None
    best_key = None
    for root in symbols:
        for symbol, depth in root.walk():
            if not symbol.range.contains(position):
                continue
            key = (symbol.range.line_span, symbol.range.character_span, -depth)
            if best_key is None or key < best_key:
                best, best_key = symbol, key
    return best


class NavigationResolver:
    """Resolves navigation queries against an LspSession."""

    def __init__(
        self,
        session,
        settings: Optional[Settings] = None,
        reader: Callable[[str], files.FileContent] = files.read,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.session = session
        self.settings = settings or getattr(session, "settings", None) or Settings()
        self._read = reader
        self._sleep = sleep

    def close(self) -> None:
        self.session.shutdown()

    def __enter__(self) -> "NavigationResolver":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    def _absolute(self, path: str) -> str:
        if os.path.isabs(path):
            return path
        return os.path.join(self.session.root_path, path)

    # map

    def map_file(self, path: str) -> List[SymbolInfo]:
        """Flat, pre-ordered outline of a file's symbols."""
        logger.info(f"Mapping symbols of {path}")
        return flatten_symbols(self.session.document_symbols(path))

    # search

    def search(self, query: str) -> List[LocationRef]:
        """
        Workspace symbol search by name.

        An empty answer is retried exactly once after a short delay, because
        the server may still be loading the project. The second answer is
        returned as-is, possibly empty.
        """
        candidates = self.session.workspace_symbols(query)
        if not candidates:
            logger.info(f"No symbols for {query!r}; retrying in {self.settings.search_retry_delay}s")
            self._sleep(self.settings.search_retry_delay)
            candidates = self.session.workspace_symbols(query)
        logger.info(f"Search {query!r} returned {len(candidates)} candidates")
        return candidates

    def resolve_name(self, query: str, allow_ambiguous: bool = True) -> LocationRef:
        """
        Resolve a name to one location.

        Raises:
            SymbolNotFoundError: If the search finds nothing
            AmbiguousSymbolError: If allow_ambiguous is False and several
                candidates are equally plausible
        """
        candidates = self.search(query)
        if not candidates:
            raise SymbolNotFoundError(query)

        exact = [c for c in candidates if c.preview == query]
        plausible = exact or candidates
        if len(plausible) > 1 and not allow_ambiguous:
            raise AmbiguousSymbolError(query, plausible)
        return plausible[0]

    # find

    def find_symbol(self, symbol_id: str) -> List[LocationRef]:
        """
        Definition and references of the symbol at symbol_id.

        The id may point at a usage; the definition is resolved first. The
        result holds exactly one entry with role "definition"; all other
        entries have role "reference".

        Raises:
            InvalidIdError: If symbol_id is malformed
            SymbolNotFoundError: If neither the server nor the file's symbols
                know anything at that position
        """
        target = SymbolId.parse(symbol_id)

        definitions = self.session.definition(target.file_path, target.line, target.character)
        if definitions:
            first = definitions[0]
            point = SymbolId(first.file_path, first.line, first.character)
        else:
            point = target

        symbols = self.session.document_symbols(point.file_path)
        symbol = innermost_symbol(symbols, Position(point.line, point.character))

        if symbol is None and not definitions:
            raise SymbolNotFoundError(symbol_id)

        if symbol is not None:
            anchor = symbol.selection_range.start
            definition = LocationRef(
                id=symbol.id,
                file_path=point.file_path,
                line=anchor.line,
                character=anchor.character,
                kind=symbol.kind,
                preview=symbol.name,
                role=ROLE_DEFINITION,
            )
        else:
            logger.info(f"No symbol encloses {point}; using raw coordinates")
            definition = LocationRef(
                id=point.to_string(),
                file_path=point.file_path,
                line=point.line,
                character=point.character,
                kind=UNKNOWN_KIND,
                preview=self._line_preview(point.file_path, point.line, {}),
                role=ROLE_DEFINITION,
            )

        references = self.session.references(definition.file_path, definition.line, definition.character)
        return self._merge(definition, references)

    def _merge(self, definition: LocationRef, references: Sequence[LocationRef]) -> List[LocationRef]:
        previews: Dict[str, Optional[files.FileContent]] = {}
        merged = []
        found = False
        for ref in references:
            if ref.id == definition.id:
                if found:
                    continue
                found = True
                merged.append(replace(ref, kind=definition.kind, preview=definition.preview, role=ROLE_DEFINITION))
            else:
                preview = ref.preview or self._line_preview(ref.file_path, ref.line, previews)
                merged.append(replace(ref, preview=preview, role=ROLE_REFERENCE))

        if not found:
            logger.debug(f"Definition {definition.id} missing from references; prepending it")
            merged.insert(0, definition)
        return merged

    def _line_preview(self, path: str, line: int, cache: Dict[str, Optional[files.FileContent]]) -> str:
        """Trimmed source line, or '' if the file cannot be read."""
        if path not in cache:
            try:
                cache[path] = self._read(self._absolute(path))
            except (OSError, UnicodeError) as e:
                logger.debug(f"No preview for {path}: {e}")
                cache[path] = None
        content = cache[path]
        return content.line(line).strip() if content else ""

    # inspect

    def inspect(self, symbol_id: str, mode: str = MODE_SURROUND) -> CodeContext:
        """
        Extract code around the position of symbol_id.

        ``block`` returns the smallest folding range containing the line and
        falls back to ``surround``; ``surround`` returns 5 lines either side of
        the line, clamped to the file.

        Raises:
            InvalidIdError: If symbol_id is malformed
            ValueError: If mode is not one of INSPECT_MODES
        """
        if mode not in INSPECT_MODES:
            raise ValueError(f"Unsupported inspect mode: {mode!r} (expected one of {', '.join(INSPECT_MODES)})")

        target = SymbolId.parse(symbol_id)
        content = self._read(self._absolute(target.file_path))
        line_count = max(content.line_count, 1)
        line = min(target.line, line_count)

        start_line = end_line = None
        if mode == MODE_BLOCK:
            candidates = [r for r in self.session.folding_ranges(target.file_path) if r.contains_line(line)]
            if candidates:
                block = min(candidates, key=lambda r: r.span)
                start_line, end_line = block.start_line, min(block.end_line, line_count)
            else:
                logger.debug(f"No folding range contains {target}; falling back to surround")

        if start_line is None:
            start_line = max(1, line - SURROUND_LINES)
            end_line = min(line_count, line + SURROUND_LINES)

        code = "\n".join(content.lines[start_line - 1:end_line])
        return CodeContext(
            file_path=target.file_path,
            start_line=start_line,
            end_line=end_line,
            code=code,
            related_symbols=[],
        )


def create_navigator(root_path: str, settings: Optional[Settings] = None) -> NavigationResolver:
    """Start a session for root_path and return a resolver bound to it."""
    settings = settings or Settings.load(root_path)
    return NavigationResolver(create_session(root_path, settings=settings), settings=settings)
