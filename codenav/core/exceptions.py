"""
Core exceptions module.

This module defines the error taxonomy used throughout codenav. Navigation
operations either return a normalized result or raise one of these.
"""

from typing import Any, List, Optional


class FatalError(Exception):
    """
    A fatal error that should not be caught and turned into a degraded result.

    These errors represent unrecoverable conditions, such as a language server
    that cannot be launched at all, and are propagated up the call stack.
    """
    pass


class ServerStartError(FatalError):
    """The language server executable could not be located or launched."""
    pass


class CodeNavError(Exception):
    """Base class for navigation errors reported to callers."""
    pass


class InvalidIdError(CodeNavError, ValueError):
    """A symbol id string is not of the form '<path>:<line>:<character>'."""

    def __init__(self, value: str, reason: str = "Invalid ID format"):
        self.value = value
        super().__init__(f"{reason}: {value!r}")


class SymbolNotFoundError(CodeNavError):
    """A query or id resolved to nothing."""

    def __init__(self, query: str):
        self.query = query
        super().__init__(f"Symbol not found: {query}")


class AmbiguousSymbolError(CodeNavError):
    """A name search produced several equally plausible candidates."""

    def __init__(self, query: str, candidates: List[Any]):
        self.query = query
        self.candidates = list(candidates)
        super().__init__(
            f"Multiple symbols found for: {query} ({len(self.candidates)} candidates)"
        )


class SessionNotReadyError(CodeNavError):
    """An operation was attempted while the session is not in the READY state."""

    def __init__(self, state: Any, detail: Optional[str] = None):
        self.state = state
        state_name = getattr(state, "name", str(state))
        message = f"Language server session is not ready (state: {state_name})"
        if detail:
            message = f"{message}: {detail}"
        super().__init__(message)


class LspProtocolError(CodeNavError):
    """The language server answered a request with an error, or broke the protocol."""

    def __init__(self, message: str, code: Optional[int] = None, data: Any = None):
        self.code = code
        self.data = data
        if code is not None:
            message = f"{message} (code {code})"
        super().__init__(message)


class LspTimeoutError(LspProtocolError):
    """A request to the language server did not complete within its timeout."""
    pass


class ConnectionClosedError(LspProtocolError):
    """The connection to the language server is gone (disposed or the process exited)."""
    pass
