"""
Display module for rendering navigation results in the terminal.

Human-readable output uses rich tables and panels; ``--json`` output is
emitted as plain JSON on stdout so it can be piped into other tools.
"""

import json
import logging
import os
from typing import Any, List, Sequence

from rich.console import Console
from rich.markup import escape
from rich.panel import Panel
from rich.syntax import Syntax
from rich.table import Table

from codenav.core.models import ROLE_DEFINITION, CodeContext, LocationRef, SymbolInfo
from codenav.core.symbol_id import sort_by_id

# Configure logging
logger = logging.getLogger(__name__)

# Initialize console with soft-wrapping and highlighting
console = Console(soft_wrap=True, highlight=True)
error_console = Console(stderr=True, highlight=False)

# Pygments lexers for the code panel of `inspect`
LEXERS = {
    ".ts": "typescript",
    ".tsx": "tsx",
    ".js": "javascript",
    ".jsx": "jsx",
    ".mjs": "javascript",
    ".cjs": "javascript",
    ".py": "python",
    ".go": "go",
    ".rs": "rust",
    ".java": "java",
}


def print_json(data: Any) -> None:
    """Write data as indented JSON to stdout."""
    print(json.dumps(data, indent=2))


def print_error(message: str) -> None:
    error_console.print(f"[bold red]Error:[/bold red] {escape(message)}")


def print_symbols(file_path: str, symbols: Sequence[SymbolInfo]) -> None:
    """Outline of a file: one row per symbol."""
    if not symbols:
        console.print(f"[yellow]No symbols found in {escape(file_path)}[/yellow]")
        return

    table = Table(title=f"Symbols in {escape(file_path)}", title_justify="left")
    table.add_column("Name", style="bold")
    table.add_column("Kind", style="cyan")
    table.add_column("Line", justify="right")
    table.add_column("ID", style="dim")
    for symbol in symbols:
        table.add_row(escape(symbol.name), symbol.kind, str(symbol.line), escape(symbol.id))
    console.print(table)


def print_locations(title: str, locations: Sequence[LocationRef]) -> None:
    """Search hits or definition/reference lists."""
    if not locations:
        console.print(f"[yellow]{escape(title)}: nothing found[/yellow]")
        return

    show_role = any(location.role for location in locations)
    table = Table(title=escape(title), title_justify="left")
    table.add_column("File")
    table.add_column("Line", justify="right")
    table.add_column("Kind", style="cyan")
    if show_role:
        table.add_column("Role", style="magenta")
    table.add_column("Preview")
    table.add_column("ID", style="dim")
    for location in locations:
        row: List[str] = [escape(location.file_path), str(location.line), location.kind]
        if show_role:
            row.append(location.role or "")
        row.extend([escape(location.preview), escape(location.id)])
        table.add_row(*row)
    console.print(table)


def definition_first(locations: Sequence[LocationRef]) -> List[LocationRef]:
    """Definition row on top, then the references grouped by file and line."""
    definitions = [location for location in locations if location.role == ROLE_DEFINITION]
    references = [location for location in locations if location.role != ROLE_DEFINITION]
    return definitions + sort_by_id(references)


def print_references(title: str, locations: Sequence[LocationRef]) -> None:
    print_locations(title, definition_first(locations))


def print_context(context: CodeContext) -> None:
    """Metadata table followed by the extracted code with line numbers."""
    meta = Table(show_header=False, box=None, padding=(0, 1))
    meta.add_column(style="bold")
    meta.add_column()
    meta.add_row("File", escape(context.file_path))
    meta.add_row("Lines", f"{context.start_line}-{context.end_line}")
    if context.related_symbols:
        meta.add_row("Related", ", ".join(context.related_symbols))
    console.print(meta)

    lexer = LEXERS.get(os.path.splitext(context.file_path)[1].lower(), "text")
    console.print(
        Panel(
            Syntax(context.code, lexer, line_numbers=True, start_line=context.start_line),
            title=f"[bold]{escape(context.file_path)}[/bold]",
            border_style="blue",
            padding=(0, 1),
            expand=True,
        ),
        soft_wrap=False,
    )
