"""Tests for SymbolMapper: coordinate conversion, URIs and symbol normalization."""

import os
from pathlib import Path

import pytest

from codenav.core.models import FoldingRange, Position, Range
from codenav.lsp.mapper import SymbolMapper, kind_name
from codenav.lsp.models import (
    LspFoldingRange, LspLocation, LspPosition, LspRange, LspSymbolInformation,
    decode_document_symbols,
)


def wire_range(sl, sc, el, ec):
    return {"start": {"line": sl, "character": sc}, "end": {"line": el, "character": ec}}


@pytest.fixture
def root(tmp_path):
    return str(tmp_path)


@pytest.fixture
def mapper(root):
    return SymbolMapper(root)


def uri(root, rel):
    return Path(os.path.join(root, rel)).as_uri()


def test_positions_become_one_based(mapper):
    assert mapper.to_position(LspPosition(0, 0)) == Position(1, 1)
    assert mapper.to_position(LspPosition(9, 4)) == Position(10, 5)


def test_outgoing_positions_become_zero_based(mapper):
    assert mapper.to_wire_position(10, 5) == {"line": 9, "character": 4}
    assert mapper.to_wire_position(1, 1) == {"line": 0, "character": 0}


def test_inverted_range_is_normalized(mapper):
    inverted = LspRange(start=LspPosition(5, 2), end=LspPosition(3, 0))
    assert mapper.to_range(inverted) == Range(Position(4, 1), Position(6, 3))


def test_uri_round_trip_inside_root(mapper, root):
    assert mapper.path_to_uri("src/a.ts") == uri(root, "src/a.ts")
    assert mapper.uri_to_path(uri(root, "src/a.ts")) == "src/a.ts"


def test_uri_outside_root_stays_absolute(mapper, tmp_path):
    outside = os.path.join(os.path.dirname(str(tmp_path)), "elsewhere", "lib.d.ts")
    assert mapper.uri_to_path(Path(outside).as_uri()) == outside


def test_percent_encoded_uri(mapper, root):
    assert mapper.uri_to_path(uri(root, "my dir/a b.ts")) == "my dir/a b.ts"


def test_non_file_uri_is_returned_unchanged(mapper):
    assert mapper.uri_to_path("untitled:Untitled-1") == "untitled:Untitled-1"


def test_kind_names():
    assert kind_name(5) == "Class"
    assert kind_name(12) == "Function"
    assert kind_name(26) == "TypeParameter"
    assert kind_name(0) == "Unknown"
    assert kind_name(99) == "Unknown"


def test_hierarchical_symbols(mapper):
    response = decode_document_symbols([
        {
            "name": "UserService",
            "kind": 5,
            "range": wire_range(2, 0, 20, 1),
            "selectionRange": wire_range(2, 13, 2, 24),
            "children": [
                {
                    "name": "getUser",
                    "kind": 6,
                    "range": wire_range(4, 2, 8, 3),
                    "selectionRange": wire_range(4, 2, 4, 9),
                },
            ],
        },
    ])
    [service] = mapper.map_document_symbols(response, "src/service.ts")

    assert service.id == "src/service.ts:3:14"
    assert service.name == "UserService"
    assert service.kind == "Class"
    assert service.line == 3
    assert service.range == Range(Position(3, 1), Position(21, 2))

    [method] = service.children
    assert method.id == "src/service.ts:5:3"
    assert method.kind == "Method"
    assert method.line == 5
    assert method.children == ()


def test_flat_symbols_are_nested_by_containment(mapper, root):
    file_uri = uri(root, "src/flat.ts")
    response = decode_document_symbols([
        {"name": "inner", "kind": 12, "location": {"uri": file_uri, "range": wire_range(3, 2, 5, 3)}},
        {"name": "Outer", "kind": 5, "location": {"uri": file_uri, "range": wire_range(1, 0, 10, 1)}},
        {"name": "other", "kind": 13, "location": {"uri": file_uri, "range": wire_range(12, 0, 12, 20)}},
    ])
    roots = mapper.map_document_symbols(response, "src/flat.ts")

    assert [s.name for s in roots] == ["Outer", "other"]
    assert [c.name for c in roots[0].children] == ["inner"]
    assert roots[0].id == "src/flat.ts:2:1"
    assert roots[0].children[0].id == "src/flat.ts:4:3"
    assert roots[1].kind == "Variable"


def test_workspace_symbol_uses_name_as_preview(mapper, root):
    symbol = LspSymbolInformation(
        name="createUser",
        kind=12,
        location=LspLocation(uri=uri(root, "src/users.ts"), range=LspRange(LspPosition(6, 16), LspPosition(6, 26))),
    )
    ref = mapper.map_symbol_information(symbol)
    assert ref.id == "src/users.ts:7:17"
    assert ref.file_path == "src/users.ts"
    assert ref.kind == "Function"
    assert ref.preview == "createUser"
    assert ref.role is None


def test_locations_are_references(mapper, root):
    location = LspLocation(uri=uri(root, "a.ts"), range=LspRange(LspPosition(0, 4), LspPosition(0, 8)))
    [ref] = mapper.map_locations([location])
    assert ref.id == "a.ts:1:5"
    assert ref.kind == "Reference"
    assert ref.preview == ""


def test_folding_ranges_become_one_based(mapper):
    assert mapper.map_folding_range(LspFoldingRange(4, 14)) == FoldingRange(5, 15)
