"""
Command Line Interface module for codenav.

This module provides the ``codenav`` entry point: it parses command-line
arguments, starts a language server session for the project root, runs one
navigation operation and renders the result either as rich tables or as
JSON.
"""

import argparse
import logging
import os
import sys
from typing import List, Optional

# Logging is configured in codenav/__init__.py when imported
from codenav.apps import display
from codenav.core.config import Settings
from codenav.core.exceptions import CodeNavError, FatalError, SymbolNotFoundError
from codenav.navigation.resolver import INSPECT_MODES, MODE_SURROUND, NavigationResolver, create_navigator

# Configure logger for this module
logger = logging.getLogger(__name__)


class CLI:
    """
    Encapsulates the CLI application logic.

    This class is responsible for:
    - Parsing command-line arguments
    - Loading settings and starting the language server session
    - Dispatching to the requested navigation operation
    - Rendering the result and mapping failures to exit codes
    """

    @classmethod
    def start(cls, argv: Optional[List[str]] = None) -> None:
        """
        Start the CLI application.

        Exits with status 1 when the operation fails with a navigation error;
        argparse exits with status 2 on usage errors.
        """
        args = cls._parse_args(argv)
        root = os.path.abspath(args.root)

        navigator: Optional[NavigationResolver] = None
        try:
            settings = Settings.load(root)
            logger.info(f"Running '{args.subcommand}' in {root}")
            navigator = create_navigator(root, settings=settings)
            cls._run(navigator, args)

        except KeyboardInterrupt:
            logger.info("Interrupted by user")
            sys.exit(130)

        except (CodeNavError, FatalError, ValueError, OSError) as e:
            logger.error(f"{args.subcommand} failed: {e}")
            display.print_error(str(e))
            sys.exit(1)

        finally:
            if navigator is not None:
                navigator.close()

    @staticmethod
    def _run(navigator: NavigationResolver, args: argparse.Namespace) -> None:
        if args.subcommand == "map":
            symbols = navigator.map_file(args.file)
            if args.json:
                display.print_json([symbol.to_dict() for symbol in symbols])
            else:
                display.print_symbols(args.file, symbols)

        elif args.subcommand == "search":
            results = navigator.search(args.query)
            if not results:
                raise SymbolNotFoundError(args.query)
            if args.json:
                display.print_json([result.to_dict() for result in results])
            else:
                display.print_locations(f"Results for '{args.query}'", results)

        elif args.subcommand == "find":
            locations = navigator.find_symbol(args.id)
            if args.json:
                display.print_json([location.to_dict() for location in locations])
            else:
                display.print_references(f"Definition and references of {args.id}", locations)

        elif args.subcommand == "inspect":
            context = navigator.inspect(args.id, mode=args.mode)
            if args.json:
                display.print_json(context.to_dict())
            else:
                display.print_context(context)

    @staticmethod
    def _parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
        """
        Parse command-line arguments.

        Returns:
            Parsed argument namespace
        """
        parser = argparse.ArgumentParser(
            prog="codenav",
            description="codenav - semantic code navigation backed by a language server",
            formatter_class=argparse.ArgumentDefaultsHelpFormatter,
        )
        parser.add_argument("--root", "-r", default=os.getcwd(), help="Project root directory")
        parser.add_argument("--json", action="store_true", help="Print raw JSON instead of tables")

        subparsers = parser.add_subparsers(dest="subcommand", help="Operation to run", required=True)

        map_parser = subparsers.add_parser("map", help="List the symbols declared in a file")
        map_parser.add_argument("file", help="File path relative to the project root")

        search_parser = subparsers.add_parser("search", help="Search project symbols by name")
        search_parser.add_argument("query", help="Symbol name or fragment")

        find_parser = subparsers.add_parser("find", help="Show the definition and references of a symbol")
        find_parser.add_argument("id", help="Symbol id: <path>:<line>:<character>")

        inspect_parser = subparsers.add_parser("inspect", help="Show the code around a symbol")
        inspect_parser.add_argument("id", help="Symbol id: <path>:<line>:<character>")
        inspect_parser.add_argument(
            "--mode", "-m", choices=INSPECT_MODES, default=MODE_SURROUND,
            help="block: enclosing folding range; surround: 5 lines either side",
        )

        return parser.parse_args(argv)


def main() -> None:
    """
    Main entry point for the application.

    This function simply delegates to the CLI class to start the application.
    It's kept separate to facilitate testing and to provide a clean entry point.
    """
    CLI.start()


if __name__ == "__main__":
    main()
