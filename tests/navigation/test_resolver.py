"""Tests for NavigationResolver against an in-memory session."""

import os
import shutil
import tempfile
import unittest
from dataclasses import dataclass, field
from typing import Dict, List, Optional

import pytest

from codenav.core.config import Settings
from codenav.core.exceptions import AmbiguousSymbolError, InvalidIdError, SymbolNotFoundError
from codenav.core.models import (
    FoldingRange, LocationRef, Position, Range, SymbolInfo, ROLE_DEFINITION, ROLE_REFERENCE,
)
from codenav.navigation.resolver import NavigationResolver, flatten_symbols, innermost_symbol


def symbol(path, name, kind, start, end, selection=None, children=()):
    selection = selection or start
    return SymbolInfo(
        id=f"{path}:{selection[0]}:{selection[1]}",
        name=name,
        kind=kind,
        line=start[0],
        range=Range(Position(*start), Position(*end)),
        selection_range=Range(Position(*selection), Position(selection[0], selection[1] + len(name))),
        children=tuple(children),
    )


def location(path, line, character, kind="Reference", preview=""):
    return LocationRef(id=f"{path}:{line}:{character}", file_path=path, line=line,
                       character=character, kind=kind, preview=preview)


@dataclass
class FakeSession:
    """Canned answers keyed the way the resolver asks for them."""
    root_path: str
    symbols: Dict[str, List[SymbolInfo]] = field(default_factory=dict)
    definitions: Dict[tuple, List[LocationRef]] = field(default_factory=dict)
    references_at: Dict[tuple, List[LocationRef]] = field(default_factory=dict)
    folds: Dict[str, List[FoldingRange]] = field(default_factory=dict)
    search_answers: List[List[LocationRef]] = field(default_factory=list)
    calls: List[tuple] = field(default_factory=list)
    shut_down: bool = False

    def document_symbols(self, path):
        self.calls.append(("document_symbols", path))
        return self.symbols.get(path, [])

    def workspace_symbols(self, query):
        self.calls.append(("workspace_symbols", query))
        return self.search_answers.pop(0) if self.search_answers else []

    def definition(self, path, line, character):
        self.calls.append(("definition", path, line, character))
        return self.definitions.get((path, line, character), [])

    def references(self, path, line, character, include_declaration=True):
        self.calls.append(("references", path, line, character))
        return self.references_at.get((path, line, character), [])

    def folding_ranges(self, path):
        self.calls.append(("folding_ranges", path))
        return self.folds.get(path, [])

    def shutdown(self):
        self.shut_down = True


SERVICE = "src/service.ts"
MAIN = "src/main.ts"

SERVICE_SOURCE = "\n".join([
    "import { db } from './db';",                        # 1
    "",                                                  # 2
    "export class UserService {",                        # 3
    "  private cache = new Map();",                      # 4
    "",                                                  # 5
    "  getUser(id: string) {",                           # 6
    "    return this.cache.get(id) ?? db.find(id);",     # 7
    "  }",                                               # 8
    "}",                                                 # 9
    "",                                                  # 10
])

MAIN_SOURCE = "\n".join([
    "import { UserService } from './service';",
    "const service = new UserService();",
    "   service.getUser('42');   ",
    "",
])


def service_tree():
    get_user = symbol(SERVICE, "getUser", "Method", (6, 3), (8, 4), selection=(6, 3))
    cache = symbol(SERVICE, "cache", "Property", (4, 3), (4, 30), selection=(4, 11))
    return [symbol(SERVICE, "UserService", "Class", (3, 1), (9, 2), selection=(3, 14),
                   children=[cache, get_user])]


class ResolverTestCase(unittest.TestCase):
    """Builds a project on disk so previews and inspect can read real files."""

    def setUp(self):
        self.temp_dir = tempfile.mkdtemp()
        os.makedirs(os.path.join(self.temp_dir, "src"))
        for rel, text in ((SERVICE, SERVICE_SOURCE), (MAIN, MAIN_SOURCE)):
            with open(os.path.join(self.temp_dir, rel), "w", encoding="utf-8") as f:
                f.write(text)

        self.session = FakeSession(root_path=self.temp_dir)
        self.session.symbols[SERVICE] = service_tree()
        self.sleeps: List[float] = []
        self.resolver = NavigationResolver(
            self.session,
            settings=Settings(search_retry_delay=1.0),
            sleep=self.sleeps.append,
        )

    def tearDown(self):
        if os.path.exists(self.temp_dir):
            shutil.rmtree(self.temp_dir)


class TestMapFile(ResolverTestCase):

    def test_pre_order_flattening(self):
        result = self.resolver.map_file(SERVICE)
        self.assertEqual([s.name for s in result], ["UserService", "cache", "getUser"])
        self.assertEqual([s.id for s in result], [
            "src/service.ts:3:14", "src/service.ts:4:11", "src/service.ts:6:3",
        ])
        self.assertTrue(all(s.children is None for s in result))
        self.assertNotIn("children", result[0].to_dict())

    def test_empty_file(self):
        self.assertEqual(self.resolver.map_file("src/empty.ts"), [])


class TestSearch(ResolverTestCase):

    def test_results_without_retry(self):
        hit = location(SERVICE, 3, 14, kind="Class", preview="UserService")
        self.session.search_answers = [[hit]]
        self.assertEqual(self.resolver.search("UserService"), [hit])
        self.assertEqual(self.sleeps, [])

    def test_empty_result_is_retried_exactly_once(self):
        hit = location(SERVICE, 3, 14, kind="Class", preview="UserService")
        self.session.search_answers = [[], [hit]]
        self.assertEqual(self.resolver.search("UserService"), [hit])
        self.assertEqual(self.sleeps, [1.0])

    def test_still_empty_after_retry(self):
        self.assertEqual(self.resolver.search("Nope"), [])
        self.assertEqual(self.sleeps, [1.0])
        self.assertEqual([c for c in self.session.calls if c[0] == "workspace_symbols"],
                         [("workspace_symbols", "Nope")] * 2)

    def test_resolve_name(self):
        exact = location(SERVICE, 3, 14, kind="Class", preview="UserService")
        fuzzy = location(MAIN, 1, 10, kind="Variable", preview="UserServiceImpl")
        self.session.search_answers = [[fuzzy, exact]]
        self.assertEqual(self.resolver.resolve_name("UserService", allow_ambiguous=False), exact)

    def test_resolve_name_not_found(self):
        with self.assertRaises(SymbolNotFoundError):
            self.resolver.resolve_name("Missing")

    def test_resolve_name_ambiguous(self):
        first = location(SERVICE, 3, 14, kind="Class", preview="User")
        second = location(MAIN, 2, 7, kind="Interface", preview="User")
        self.session.search_answers = [[first, second], [first, second]]

        with self.assertRaises(AmbiguousSymbolError) as ctx:
            self.resolver.resolve_name("User", allow_ambiguous=False)
        self.assertEqual(ctx.exception.candidates, [first, second])

        self.assertEqual(self.resolver.resolve_name("User"), first)


class TestFindSymbol(ResolverTestCase):

    def test_usage_resolves_to_definition_and_references(self):
        # Click on `getUser` in main.ts line 3
        self.session.definitions[(MAIN, 3, 12)] = [location(SERVICE, 6, 3)]
        self.session.references_at[(SERVICE, 6, 3)] = [
            location(SERVICE, 6, 3),
            location(MAIN, 3, 12),
        ]

        result = self.resolver.find_symbol("src/main.ts:3:12")

        definitions = [r for r in result if r.role == ROLE_DEFINITION]
        self.assertEqual(len(definitions), 1)
        self.assertEqual(definitions[0].id, "src/service.ts:6:3")
        self.assertEqual(definitions[0].kind, "Method")
        self.assertEqual(definitions[0].preview, "getUser")

        [reference] = [r for r in result if r.role == ROLE_REFERENCE]
        self.assertEqual(reference.id, "src/main.ts:3:12")
        self.assertEqual(reference.kind, "Reference")
        self.assertEqual(reference.preview, "service.getUser('42');")

    def test_child_preferred_over_parent(self):
        # Inside getUser's body, which is also inside UserService
        self.session.references_at[(SERVICE, 6, 3)] = []
        result = self.resolver.find_symbol("src/service.ts:7:12")
        self.assertEqual(result[0].id, "src/service.ts:6:3")
        self.assertEqual(result[0].kind, "Method")

    def test_definition_prepended_when_missing(self):
        self.session.references_at[(SERVICE, 3, 14)] = [location(MAIN, 2, 21)]
        result = self.resolver.find_symbol("src/service.ts:3:14")
        self.assertEqual([r.role for r in result], [ROLE_DEFINITION, ROLE_REFERENCE])
        self.assertEqual(result[0].preview, "UserService")
        self.assertEqual(result[1].preview, "const service = new UserService();")

    def test_duplicate_definitions_are_dropped(self):
        self.session.references_at[(SERVICE, 3, 14)] = [
            location(SERVICE, 3, 14),
            location(MAIN, 2, 21),
            location(SERVICE, 3, 14),
        ]
        result = self.resolver.find_symbol("src/service.ts:3:14")
        self.assertEqual([r.id for r in result], ["src/service.ts:3:14", "src/main.ts:2:21"])
        self.assertEqual(sum(1 for r in result if r.role == ROLE_DEFINITION), 1)

    def test_definition_outside_any_symbol(self):
        # Import line: the server knows a definition but no symbol encloses it
        self.session.definitions[(SERVICE, 1, 10)] = [location(SERVICE, 1, 10)]
        result = self.resolver.find_symbol("src/service.ts:1:10")
        self.assertEqual(len(result), 1)
        self.assertEqual(result[0].kind, "Unknown")
        self.assertEqual(result[0].role, ROLE_DEFINITION)
        self.assertEqual(result[0].id, "src/service.ts:1:10")

    def test_nothing_at_position(self):
        with self.assertRaises(SymbolNotFoundError):
            self.resolver.find_symbol("src/service.ts:1:10")

    def test_unreadable_reference_gets_empty_preview(self):
        self.session.references_at[(SERVICE, 3, 14)] = [location("src/gone.ts", 1, 1)]
        result = self.resolver.find_symbol("src/service.ts:3:14")
        self.assertEqual(result[1].preview, "")

    def test_invalid_id(self):
        with self.assertRaises(InvalidIdError):
            self.resolver.find_symbol("src/service.ts")
        self.assertEqual(self.session.calls, [])


@dataclass
class InspectCase:
    name: str
    symbol_id: str
    mode: str
    folds: List[FoldingRange]
    line_count: int
    expected: tuple
    expected_first_line: Optional[str] = None


INSPECT_CASES = [
    InspectCase("block picks smallest enclosing range", "src/big.ts:10:1", "block",
                [FoldingRange(1, 40), FoldingRange(5, 15), FoldingRange(8, 12), FoldingRange(20, 30)],
                50, (8, 12), "line 8"),
    InspectCase("block with one range", "src/big.ts:10:1", "block",
                [FoldingRange(5, 15)], 50, (5, 15), "line 5"),
    InspectCase("block falls back to surround", "src/big.ts:25:3", "block",
                [FoldingRange(5, 15)], 50, (20, 30), "line 20"),
    InspectCase("surround", "src/big.ts:25:3", "surround", [], 50, (20, 30), "line 20"),
    InspectCase("surround clamped at start", "src/big.ts:2:1", "surround", [], 50, (1, 7), "line 1"),
    InspectCase("surround clamped at end", "src/big.ts:48:1", "surround", [], 50, (43, 50), "line 43"),
]


@pytest.mark.parametrize("case", INSPECT_CASES, ids=[c.name for c in INSPECT_CASES])
def test_inspect(tmp_path, case: InspectCase):
    (tmp_path / "src").mkdir()
    (tmp_path / "src" / "big.ts").write_text(
        "\n".join(f"line {i}" for i in range(1, case.line_count + 1)), encoding="utf-8"
    )
    session = FakeSession(root_path=str(tmp_path), folds={"src/big.ts": case.folds})
    resolver = NavigationResolver(session, settings=Settings())

    context = resolver.inspect(case.symbol_id, mode=case.mode)

    assert context.range == case.expected
    assert context.file_path == "src/big.ts"
    assert context.related_symbols == []
    lines = context.code.split("\n")
    assert len(lines) == case.expected[1] - case.expected[0] + 1
    assert lines[0] == case.expected_first_line
    assert context.to_dict()["range"] == {"startLine": case.expected[0], "endLine": case.expected[1]}


def test_inspect_rejects_unknown_mode(tmp_path):
    resolver = NavigationResolver(FakeSession(root_path=str(tmp_path)), settings=Settings())
    with pytest.raises(ValueError, match="mode"):
        resolver.inspect("src/a.ts:1:1", mode="everything")


def test_inspect_missing_file(tmp_path):
    resolver = NavigationResolver(FakeSession(root_path=str(tmp_path)), settings=Settings())
    with pytest.raises(FileNotFoundError):
        resolver.inspect("src/missing.ts:1:1")


def test_innermost_symbol_helpers():
    tree = service_tree()
    assert innermost_symbol(tree, Position(4, 12)).name == "cache"
    assert innermost_symbol(tree, Position(9, 1)).name == "UserService"
    assert innermost_symbol(tree, Position(12, 1)) is None
    assert [s.name for s in flatten_symbols(tree)] == ["UserService", "cache", "getUser"]


def test_context_manager_shuts_session_down(tmp_path):
    session = FakeSession(root_path=str(tmp_path))
    with NavigationResolver(session, settings=Settings()):
        pass
    assert session.shut_down
