"""
Language Server Protocol (LSP) integration.

Provides the server process manager, the JSON-RPC connection, response
normalization and the session that ties them together.
"""

from codenav.lsp.mapper import SymbolMapper
from codenav.lsp.session import LspSession, SessionState, create_session

__all__ = [
    'LspSession',
    'SessionState',
    'SymbolMapper',
    'create_session',
]
