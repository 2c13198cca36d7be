"""
Language server session.

An LspSession owns one language server subprocess and one JSON-RPC
connection to it. It drives the server through the initialize handshake,
warms it up by opening the project's source files, waits (bounded) for the
server to report that its project model is built, and then answers
navigation queries with normalized, one-based results.

State machine::

    IDLE -> STARTING -> HANDSHAKE_SENT -> AWAITING_INDEX -> READY
         -> SHUTTING_DOWN -> STOPPED

An unexpected server exit moves the session straight to STOPPED; the next
query then fails with SessionNotReadyError.
"""

import enum
import logging
import os
import re
import threading
import time
from typing import Any, Callable, Dict, List, Optional, Set

from codenav.core.config import Settings
from codenav.core.exceptions import (
    CodeNavError, ConnectionClosedError, SessionNotReadyError,
)
from codenav.core.models import FoldingRange, LocationRef, SymbolInfo
from codenav.lsp.connection import JsonRpcConnection
from codenav.lsp.mapper import SymbolMapper
from codenav.lsp.models import (
    decode_document_symbols, decode_folding_ranges, decode_locations,
    decode_symbol_information,
)
from codenav.lsp.process import LspProcess
from codenav.utils.scanner import ProjectFileScanner

# Configure logging
logger = logging.getLogger(__name__)

CLIENT_NAME = "codenav"
CLIENT_VERSION = "0.1.0"

# window/logMessage and window/showMessage types mapped to logging levels
MESSAGE_LEVELS = {1: logging.ERROR, 2: logging.WARNING, 3: logging.INFO, 4: logging.DEBUG}


class SessionState(enum.Enum):
    IDLE = "idle"
    STARTING = "starting"
    HANDSHAKE_SENT = "handshake_sent"
    AWAITING_INDEX = "awaiting_index"
    READY = "ready"
    SHUTTING_DOWN = "shutting_down"
    STOPPED = "stopped"


class LspSession:
    """Lifecycle, readiness and queries for one language server."""

    def __init__(
        self,
        root_path: str,
        settings: Optional[Settings] = None,
        scanner: Optional[ProjectFileScanner] = None,
        process_factory: Callable[..., LspProcess] = LspProcess,
    ):
        self.root_path = os.path.abspath(root_path)
        self.settings = settings or Settings()
        self.scanner = scanner or ProjectFileScanner(self.settings.file_extensions, self.settings.skip_dirs)
        self.mapper = SymbolMapper(self.root_path)

        self._process_factory = process_factory
        self._process: Optional[LspProcess] = None
        self._connection: Optional[JsonRpcConnection] = None
        self._state = SessionState.IDLE
        self._server_capabilities: Dict[str, Any] = {}

        # Files already sent with didOpen, keyed by absolute path
        self._opened_files: Set[str] = set()
        # First publishDiagnostics per URI, for files opened with a wait
        self._pending_diagnostics: Dict[str, threading.Event] = {}

        # Project indexing progress
        self._index_title = re.compile(self.settings.index_title_pattern, re.IGNORECASE)
        self._index_token: Optional[Any] = None
        self._index_begun = threading.Event()
        self._index_done = threading.Event()

    @property
    def state(self) -> SessionState:
        return self._state

    @property
    def is_ready(self) -> bool:
        return self._state is SessionState.READY

    @property
    def server_capabilities(self) -> Dict[str, Any]:
        return dict(self._server_capabilities)

    @property
    def opened_files(self) -> Set[str]:
        return set(self._opened_files)

    def _set_state(self, state: SessionState) -> None:
        # STOPPED is terminal; a session is started at most once
        if self._state is SessionState.STOPPED:
            return
        if state is not self._state:
            logger.debug(f"Session state: {self._state.name} -> {state.name}")
            self._state = state

    # Lifecycle

    def start(self) -> None:
        """Start the server, complete the handshake, warm up and wait for indexing.

        Raises:
            ServerStartError: If the server cannot be located or launched
            SessionNotReadyError: If the session was already started
            LspProtocolError: If the initialize request fails
        """
        if self._state is not SessionState.IDLE:
            raise SessionNotReadyError(self._state, "session can only be started once")

        self._set_state(SessionState.STARTING)
        try:
            self._process = self._process_factory(self.settings.server_command, cwd=self.root_path)
            self._process.start()

            self._connection = JsonRpcConnection(self._process.stdout, self._process.stdin)
            self._register_handlers(self._connection)
            self._connection.listen()

            self._initialize()
            self._warm_up()
            self._await_index()
            self._probe_workspace()
        except BaseException:
            logger.error("Language server session failed to start")
            self._teardown()
            raise

        if self._state is SessionState.STOPPED or self._connection.is_closed:
            self._teardown()
            raise SessionNotReadyError(self._state, "language server exited during startup")

        self._set_state(SessionState.READY)
        logger.info(f"Language server session ready for {self.root_path}")

    def shutdown(self) -> None:
        """Stop the session; safe to call repeatedly or when never started."""
        if self._state is SessionState.SHUTTING_DOWN:
            return
        if self._state in (SessionState.IDLE, SessionState.STOPPED):
            # Release whatever a crashed server left behind
            self._teardown()
            return

        logger.info("Shutting down language server session")
        self._set_state(SessionState.SHUTTING_DOWN)

        connection = self._connection
        if connection is not None and not connection.is_closed:
            try:
                connection.send_request("shutdown", None, timeout=min(5.0, self.settings.request_timeout))
                connection.send_notification("exit", None)
            except CodeNavError as e:
                logger.warning(f"Language server did not shut down cleanly: {e}")

        self._teardown()
        logger.info("Language server session shut down")

    def _teardown(self) -> None:
        """Dispose the connection, then terminate the process."""
        if self._connection is not None:
            self._connection.dispose()
            self._connection = None
        if self._process is not None:
            self._process.stop()
            self._process = None
        for event in list(self._pending_diagnostics.values()):
            event.set()
        self._pending_diagnostics.clear()
        self._set_state(SessionState.STOPPED)

    def _on_connection_lost(self) -> None:
        if self._state in (SessionState.SHUTTING_DOWN, SessionState.STOPPED):
            return
        logger.error("Language server exited unexpectedly")
        self._set_state(SessionState.STOPPED)
        # Unblock any wait on readiness signals
        self._index_begun.set()
        self._index_done.set()
        for event in list(self._pending_diagnostics.values()):
            event.set()

    # Handshake and readiness

    def _initialize(self) -> None:
        root_uri = self.mapper.path_to_uri(self.root_path)
        symbol_kinds = {"valueSet": list(range(1, 27))}
        params = {
            "processId": os.getpid(),
            "clientInfo": {"name": CLIENT_NAME, "version": CLIENT_VERSION},
            "rootUri": root_uri,
            "rootPath": self.root_path,
            "workspaceFolders": [{"uri": root_uri, "name": os.path.basename(self.root_path) or "root"}],
            "capabilities": {
                "textDocument": {
                    "synchronization": {"dynamicRegistration": False, "didSave": False},
                    "definition": {"dynamicRegistration": False, "linkSupport": True},
                    "references": {"dynamicRegistration": False},
                    "documentSymbol": {
                        "dynamicRegistration": False,
                        "hierarchicalDocumentSymbolSupport": True,
                        "symbolKind": symbol_kinds,
                    },
                    "foldingRange": {"dynamicRegistration": False, "lineFoldingOnly": True},
                    "publishDiagnostics": {"relatedInformation": False},
                },
                "workspace": {
                    "symbol": {"dynamicRegistration": False, "symbolKind": symbol_kinds},
                    "workspaceFolders": True,
                    "configuration": True,
                },
                "window": {"workDoneProgress": True},
            },
        }

        logger.info("Initializing language server connection")
        self._set_state(SessionState.HANDSHAKE_SENT)
        result = self._connection.send_request(
            "initialize", params, timeout=max(self.settings.request_timeout, 30.0)
        ) or {}

        self._server_capabilities = result.get("capabilities") or {}
        capability_list = list(self._server_capabilities.keys())
        if capability_list:
            logger.info(f"Server capabilities received: {', '.join(capability_list)}")
        else:
            logger.warning("Server returned no capabilities")

        self._connection.send_notification("initialized", {})

    def _warm_up(self) -> None:
        """Open every project file so the server builds its project graph."""
        try:
            files = self.scanner.scan(self.root_path)
        except Exception as e:
            logger.warning(f"Project scan failed, skipping warm-up: {e}")
            return

        opened = 0
        for path in files:
            if self._state is SessionState.STOPPED:
                return
            try:
                if self.open_file(path, wait_for_diagnostics=False):
                    opened += 1
            except (OSError, CodeNavError) as e:
                logger.warning(f"Failed to open {path} during warm-up: {e}")
        logger.info(f"Warm-up opened {opened} of {len(files)} project files")

    def _await_index(self) -> None:
        """Wait for the server's project-initialization progress to finish, within bounds."""
        if self._state is SessionState.STOPPED:
            return
        self._set_state(SessionState.AWAITING_INDEX)

        if not self._index_begun.wait(self.settings.index_grace_period):
            logger.info("No project indexing progress reported; proceeding")
            return
        if self._state is SessionState.STOPPED:
            return

        logger.info(f"Waiting for project indexing to finish (token: {self._index_token})")
        started = time.time()
        if self._index_done.wait(self.settings.index_timeout):
            logger.info(f"Project indexing finished after {time.time() - started:.1f} seconds")
        else:
            logger.warning(
                f"Project indexing did not finish within {self.settings.index_timeout:.0f} seconds; "
                "answers may reflect a partially built project"
            )

    def _probe_workspace(self) -> None:
        """Best-effort workspace symbol query that nudges lazy servers into loading the project."""
        if self._state is SessionState.STOPPED:
            return
        try:
            self._connection.send_request("workspace/symbol", {"query": ""}, timeout=self.settings.request_timeout)
        except CodeNavError as e:
            logger.warning(f"Warm-up symbol probe failed: {e}")

    # Server messages

    def _register_handlers(self, connection: JsonRpcConnection) -> None:
        connection.on_notification("$/progress", self._handle_progress)
        connection.on_notification("textDocument/publishDiagnostics", self._handle_diagnostics)
        connection.on_notification("window/logMessage", self._handle_log_message)
        connection.on_notification("window/showMessage", self._handle_show_message)
        connection.on_request("window/workDoneProgress/create", self._handle_progress_create)
        connection.on_request("workspace/configuration", self._handle_configuration)
        connection.on_request("client/registerCapability", lambda params: None)
        connection.on_request("client/unregisterCapability", lambda params: None)
        connection.on_close(self._on_connection_lost)

    def _handle_progress_create(self, params: Any) -> None:
        token = (params or {}).get("token")
        logger.debug(f"Server created progress token: {token}")
        return None

    @staticmethod
    def _handle_configuration(params: Any) -> List[None]:
        return [None for _ in (params or {}).get("items", [])]

    def _handle_progress(self, params: Any) -> None:
        params = params or {}
        token = params.get("token")
        value = params.get("value") or {}
        kind = value.get("kind")
        title = value.get("title") or ""
        message = value.get("message") or ""
        percentage = value.get("percentage")
        percentage_str = f" ({percentage}%)" if percentage is not None else ""

        if kind == "begin":
            logger.info(f"[LSP Progress] Started: {title}")
            if self._index_token is None and self._index_title.search(title):
                self._index_token = token
                self._index_begun.set()
        elif kind == "report":
            logger.debug(f"[LSP Progress] {message or title}{percentage_str}")
        elif kind == "end":
            logger.info(f"[LSP Progress] Completed: {message or title or token}")
            if self._index_token is not None and token == self._index_token:
                self._index_done.set()

    def _handle_diagnostics(self, params: Any) -> None:
        uri = (params or {}).get("uri")
        event = self._pending_diagnostics.pop(uri, None)
        if event is not None:
            logger.debug(f"First diagnostics received for {uri}")
            event.set()

    @staticmethod
    def _handle_log_message(params: Any) -> None:
        params = params or {}
        level = MESSAGE_LEVELS.get(params.get("type", 3), logging.INFO)
        logger.log(level, f"[LSP Server] {params.get('message', '')}")

    @staticmethod
    def _handle_show_message(params: Any) -> None:
        params = params or {}
        level = MESSAGE_LEVELS.get(params.get("type", 3), logging.INFO)
        logger.log(level, f"[LSP Message] {params.get('message', '')}")

    # Documents

    def open_file(self, path: str, wait_for_diagnostics: Optional[bool] = None) -> bool:
        """Send textDocument/didOpen once per file per session.

        Args:
            path: File path, absolute or relative to the project root
            wait_for_diagnostics: Wait (bounded) for the first diagnostics of a newly
                opened file; defaults to the session setting

        Returns:
            True if the file was opened by this call, False if it was already open
        """
        if self._connection is None or self._state in (SessionState.SHUTTING_DOWN, SessionState.STOPPED):
            raise SessionNotReadyError(self._state)

        abs_path = self.mapper.absolute_path(path)
        if abs_path in self._opened_files:
            return False

        with open(abs_path, "r", encoding="utf-8", errors="replace") as f:
            text = f.read()

        if wait_for_diagnostics is None:
            wait_for_diagnostics = self.settings.wait_for_diagnostics

        uri = self.mapper.path_to_uri(abs_path)
        event = None
        if wait_for_diagnostics:
            event = threading.Event()
            self._pending_diagnostics[uri] = event

        self._opened_files.add(abs_path)
        try:
            self._connection.send_notification("textDocument/didOpen", {
                "textDocument": {
                    "uri": uri,
                    "languageId": self.settings.language_id(abs_path),
                    "version": 1,
                    "text": text,
                },
            })
        except ConnectionClosedError:
            self._opened_files.discard(abs_path)
            self._pending_diagnostics.pop(uri, None)
            raise

        if event is not None:
            if not event.wait(self.settings.diagnostics_timeout):
                logger.debug(f"No diagnostics for {uri} within {self.settings.diagnostics_timeout}s; proceeding")
            self._pending_diagnostics.pop(uri, None)
        return True

    # Queries

    def _require_ready(self) -> JsonRpcConnection:
        if self._state is SessionState.READY and (self._process is None or not self._process.is_running()):
            self._on_connection_lost()
        if self._state is not SessionState.READY or self._connection is None:
            raise SessionNotReadyError(self._state)
        return self._connection

    def _request(self, method: str, params: Dict[str, Any]) -> Any:
        connection = self._require_ready()
        try:
            return connection.send_request(method, params, timeout=self.settings.request_timeout)
        except ConnectionClosedError as e:
            self._on_connection_lost()
            raise SessionNotReadyError(self._state, str(e)) from e

    def _open_for_query(self, path: str) -> str:
        self._require_ready()
        try:
            self.open_file(path)
        except ConnectionClosedError as e:
            self._on_connection_lost()
            raise SessionNotReadyError(self._state, str(e)) from e
        return self.mapper.path_to_uri(path)

    def _position_params(self, path: str, line: int, character: int) -> Dict[str, Any]:
        return {
            "textDocument": {"uri": self._open_for_query(path)},
            "position": self.mapper.to_wire_position(line, character),
        }

    def document_symbols(self, path: str) -> List[SymbolInfo]:
        """Symbol tree of a file; ids use the path as given (relative to the root)."""
        uri = self._open_for_query(path)
        result = self._request("textDocument/documentSymbol", {"textDocument": {"uri": uri}})
        return self.mapper.map_document_symbols(decode_document_symbols(result), self._relative(path))

    def workspace_symbols(self, query: str) -> List[LocationRef]:
        result = self._request("workspace/symbol", {"query": query})
        return [self.mapper.map_symbol_information(s) for s in decode_symbol_information(result)]

    def references(self, path: str, line: int, character: int,
                   include_declaration: bool = True) -> List[LocationRef]:
        params = self._position_params(path, line, character)
        params["context"] = {"includeDeclaration": include_declaration}
        return self.mapper.map_locations(decode_locations(self._request("textDocument/references", params)))

    def definition(self, path: str, line: int, character: int) -> List[LocationRef]:
        params = self._position_params(path, line, character)
        return self.mapper.map_locations(decode_locations(self._request("textDocument/definition", params)))

    def folding_ranges(self, path: str) -> List[FoldingRange]:
        uri = self._open_for_query(path)
        result = self._request("textDocument/foldingRange", {"textDocument": {"uri": uri}})
        return [self.mapper.map_folding_range(r) for r in decode_folding_ranges(result)]

    def _relative(self, path: str) -> str:
        return self.mapper.uri_to_path(self.mapper.path_to_uri(path))


def create_session(root_path: str, settings: Optional[Settings] = None,
                   scanner: Optional[ProjectFileScanner] = None) -> LspSession:
    """Create and start a session for the project at root_path."""
    settings = settings or Settings.load(root_path)
    session = LspSession(root_path, settings=settings, scanner=scanner)
    session.start()
    return session
