"""
Canonical symbol identifiers.

A SymbolId addresses a single position in the project as
``"<relative file path>:<line>:<character>"`` with 1-based line and
character. Paths may themselves contain colons (e.g. ``C:/src/a.ts``), so
parsing always takes the last two fields as the coordinates.
"""

import re
from dataclasses import dataclass
from functools import total_ordering
from typing import Any, Iterable, List, Tuple, TypeVar

from codenav.core.exceptions import InvalidIdError

T = TypeVar("T")

_DIGITS = re.compile(r"[0-9]+")


@total_ordering
@dataclass(frozen=True)
class SymbolId:
    """Immutable (file_path, line, character) triple with a total order."""
    file_path: str
    line: int
    character: int

    @classmethod
    def parse(cls, value: str) -> "SymbolId":
        """
        Parse an id string.

        Raises:
            InvalidIdError: If there are fewer than three fields, the path is
                empty, or the line/character are not positive integers
        """
        if not isinstance(value, str):
            raise InvalidIdError(str(value))

        parts = value.split(":")
        if len(parts) < 3:
            raise InvalidIdError(value)

        line_str, char_str = parts[-2], parts[-1]
        if not (_DIGITS.fullmatch(line_str) and _DIGITS.fullmatch(char_str)):
            raise InvalidIdError(value, "Invalid line or character in ID")

        file_path = ":".join(parts[:-2])
        if not file_path:
            raise InvalidIdError(value, "Missing file path in ID")

        line, character = int(line_str), int(char_str)
        if line < 1 or character < 1:
            raise InvalidIdError(value, "Line and character are 1-based in ID")

        return cls(file_path, line, character)

    @classmethod
    def from_position(cls, file_path: str, position: Any) -> "SymbolId":
        """Build an id from anything carrying 1-based ``line``/``character``."""
        return cls(file_path, position.line, position.character)

    def to_string(self) -> str:
        return f"{self.file_path}:{self.line}:{self.character}"

    def __str__(self) -> str:
        return self.to_string()

    def _key(self) -> Tuple[str, int, int]:
        return (self.file_path, self.line, self.character)

    def compare_to(self, other: "SymbolId") -> int:
        """Return -1, 0 or 1 ordering by path, then line, then character."""
        mine, theirs = self._key(), other._key()
        if mine < theirs:
            return -1
        if mine > theirs:
            return 1
        return 0

    def equals(self, other: "SymbolId") -> bool:
        return self == other

    def __lt__(self, other: "SymbolId") -> bool:
        if not isinstance(other, SymbolId):
            return NotImplemented
        return self._key() < other._key()


def sort_by_id(items: Iterable[T]) -> List[T]:
    """
    Sort objects exposing an ``id`` string by SymbolId order.

    Items whose id does not parse keep their relative order at the end.
    """
    parsed = []
    unparsed = []
    for item in items:
        try:
            parsed.append((SymbolId.parse(getattr(item, "id")), item))
        except InvalidIdError:
            unparsed.append(item)
    parsed.sort(key=lambda pair: pair[0])
    return [item for _, item in parsed] + unparsed
