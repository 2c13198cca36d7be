"""
Core file system operations.

This module provides the line-addressable reader used to extract code
windows and reference previews:
- read: Read file contents, optionally restricted to a 1-indexed line range
"""

import logging
import os
from dataclasses import dataclass
from typing import List, Optional, Tuple

# Configure logging
logger = logging.getLogger(__name__)


@dataclass
class FileContent:
    """Structured representation of file content with metadata."""
    content: str  # The raw content of the selected lines
    lines: List[str]  # List of individual selected lines
    line_count: int  # Total number of lines in the file
    displayed_range: Tuple[int, int]  # The range of lines selected (0-indexed, end exclusive)

    def line(self, number: int) -> str:
        """Text of a 1-indexed line of the selection, or '' when out of range."""
        index = number - 1 - self.displayed_range[0]
        if 0 <= index < len(self.lines):
            return self.lines[index]
        return ""


def read(
    path: str,
    from_: Optional[int] = None,
    until: Optional[int] = None,
) -> FileContent:
    """
    Reads content from a single file at the specified path.

    Args:
        path: Path to the file to read
        from_: Optional start line number (1-indexed, inclusive)
        until: Optional end line number (1-indexed, inclusive)

    Returns:
        FileContent object containing the selected lines and metadata

    Raises:
        FileNotFoundError: If the file does not exist
        IsADirectoryError: If the path is a directory, not a file
        ValueError: If the line range parameters are invalid
    """
    logger.debug("Reading file '%s'", path)

    if not os.path.exists(path):
        logger.warning("File not found: %s", path)
        raise FileNotFoundError(f"File not found: {path}")

    if not os.path.isfile(path):
        logger.warning("Path is not a file: %s", path)
        raise IsADirectoryError(f"Path is not a file: {path}")

    with open(path, "r", encoding="utf-8", errors="replace", newline="") as f:
        content = f.read()

    # Split on "\n" only so a trailing "\r" stays part of its line
    all_lines = content.split("\n")
    total_lines = len(all_lines)

    start_line = 0 if from_ is None else from_ - 1
    end_line = total_lines if until is None else min(until, total_lines)

    if start_line < 0:
        raise ValueError(f"Line numbers are 1-indexed, got from_={from_}")
    if end_line < start_line:
        raise ValueError(f"Invalid line range: {from_}..{until}")

    lines = all_lines[start_line:end_line]
    return FileContent(
        content="\n".join(lines),
        lines=lines,
        line_count=total_lines,
        displayed_range=(start_line, end_line),
    )
