"""
Project file scanner.

Walks a project directory and returns the source files the language server
should open during warm-up. Nested ``.gitignore`` files are honoured: each
one applies to paths relative to its own directory, and a deeper ignore file
overrides the decisions of the ones above it.
"""

import logging
import os
from dataclasses import dataclass
from typing import Iterable, List, Optional, Sequence, Tuple

from pathspec import GitIgnoreSpec

from codenav.core.config import DEFAULT_SKIP_DIRS

# Configure logging
logger = logging.getLogger(__name__)

IGNORE_FILE_NAME = ".gitignore"


@dataclass(frozen=True)
class IgnoreRules:
    """Compiled patterns of one ignore file and the directory it governs."""
    base_dir: str  # Relative to the scan root, "" for the root itself
    spec: GitIgnoreSpec

    def check(self, rel_path: str, is_dir: bool) -> Optional[bool]:
        """True if ignored, False if re-included, None if no pattern applies."""
        if self.base_dir:
            prefix = self.base_dir + "/"
            if not rel_path.startswith(prefix):
                return None
            rel_path = rel_path[len(prefix):]
        if is_dir:
            rel_path += "/"
        return self.spec.check_file(rel_path).include


class ProjectFileScanner:
    """Lists project source files in a stable, sorted order."""

    def __init__(self, extensions: Sequence[str] = (".ts", ".tsx"),
                 skip_dirs: Iterable[str] = DEFAULT_SKIP_DIRS):
        self.extensions = tuple(ext.lower() for ext in extensions)
        self.skip_dirs = frozenset(skip_dirs)

    def scan(self, root_path: str) -> List[str]:
        """Return absolute paths of source files under root_path."""
        root_path = os.path.abspath(root_path)
        results: List[str] = []
        self._walk(root_path, "", (), results)
        logger.info(f"Scanned {root_path}: {len(results)} source files")
        return results

    def _walk(self, root_path: str, rel_dir: str, rules: Tuple[IgnoreRules, ...], results: List[str]) -> None:
        abs_dir = os.path.join(root_path, rel_dir) if rel_dir else root_path

        local_rules = self._load_rules(abs_dir, rel_dir)
        if local_rules is not None:
            rules = rules + (local_rules,)

        try:
            entries = sorted(os.scandir(abs_dir), key=lambda entry: entry.name)
        except OSError as e:
            logger.warning(f"Failed to read directory {abs_dir}: {e}")
            return

        for entry in entries:
            rel_path = f"{rel_dir}/{entry.name}" if rel_dir else entry.name
            try:
                is_dir = entry.is_dir()
            except OSError:
                continue

            if is_dir:
                if entry.name in self.skip_dirs or self._is_ignored(rel_path, True, rules):
                    continue
                self._walk(root_path, rel_path, rules, results)
            elif entry.name.lower().endswith(self.extensions):
                if not self._is_ignored(rel_path, False, rules):
                    results.append(entry.path)

    @staticmethod
    def _is_ignored(rel_path: str, is_dir: bool, rules: Tuple[IgnoreRules, ...]) -> bool:
        # The closest ignore file with an opinion wins
        for rule in reversed(rules):
            decision = rule.check(rel_path, is_dir)
            if decision is not None:
                return decision
        return False

    @staticmethod
    def _load_rules(abs_dir: str, rel_dir: str) -> Optional[IgnoreRules]:
        ignore_path = os.path.join(abs_dir, IGNORE_FILE_NAME)
        if not os.path.isfile(ignore_path):
            return None
        try:
            with open(ignore_path, "r", encoding="utf-8", errors="replace") as f:
                lines = f.read().splitlines()
        except OSError as e:
            logger.warning(f"Failed to read {ignore_path}: {e}")
            return None
        return IgnoreRules(base_dir=rel_dir, spec=GitIgnoreSpec.from_lines(lines))
