"""
JSON-RPC connection over a pair of byte streams.

Frames messages with Content-Length headers, correlates responses with
outstanding requests by id, and dispatches server notifications and
server-to-client requests to registered handlers. A background reader thread
does all the reading; callers block on a per-request event with a timeout.
"""

import json
import logging
import threading
import time
from typing import Any, Callable, Dict, IO, List, Optional

from codenav.core.exceptions import ConnectionClosedError, LspProtocolError, LspTimeoutError

# Configure logging
logger = logging.getLogger(__name__)

# JSON-RPC error codes
METHOD_NOT_FOUND = -32601
INTERNAL_ERROR = -32603

NotificationHandler = Callable[[Any], None]
RequestHandler = Callable[[Any], Any]


class JsonRpcConnection:
    """Multiplexed request/response connection to a language server."""

    def __init__(self, reader: IO[bytes], writer: IO[bytes], name: str = "lsp"):
        self._reader = reader
        self._writer = writer
        self._name = name

        self._write_lock = threading.Lock()
        self._id_lock = threading.Lock()
        self._next_request_id = 1
        self._pending_requests: Dict[int, tuple] = {}

        self._notification_handlers: Dict[str, NotificationHandler] = {}
        self._request_handlers: Dict[str, RequestHandler] = {}
        self._close_callbacks: List[Callable[[], None]] = []

        self._reader_thread: Optional[threading.Thread] = None
        self._closed = False
        self._disposed = False

    @property
    def is_closed(self) -> bool:
        return self._closed

    def on_notification(self, method: str, handler: NotificationHandler) -> None:
        self._notification_handlers[method] = handler

    def on_request(self, method: str, handler: RequestHandler) -> None:
        self._request_handlers[method] = handler

    def on_close(self, callback: Callable[[], None]) -> None:
        """Register a callback for an unexpected end of stream (not called after dispose())."""
        self._close_callbacks.append(callback)

    def listen(self) -> None:
        """Launch background thread for message processing."""
        if self._reader_thread is not None:
            return
        self._reader_thread = threading.Thread(
            target=self._read_loop,
            daemon=True,
            name=f"{self._name}-reader-thread",
        )
        self._reader_thread.start()

    def dispose(self) -> None:
        """Stop using the connection and fail any outstanding requests.

        The underlying streams belong to the caller and are not closed here.
        """
        if self._disposed:
            return
        self._disposed = True
        self._closed = True
        self._fail_pending()

    def send_request(self, method: str, params: Any, timeout: float = 30.0) -> Any:
        """Send a request and wait for its result.

        Args:
            method: The LSP method to call
            params: Parameters for the request
            timeout: Maximum time to wait for the response in seconds

        Returns:
            The ``result`` member of the response (may be None)

        Raises:
            LspProtocolError: If the server answers with an error
            LspTimeoutError: If no response arrives within the timeout
            ConnectionClosedError: If the connection closes before a response arrives
        """
        if self._closed:
            raise ConnectionClosedError(f"Cannot send request {method}: connection closed")

        with self._id_lock:
            request_id = self._next_request_id
            self._next_request_id += 1

        response_event = threading.Event()
        response_container: List[Optional[Dict[str, Any]]] = [None]
        self._pending_requests[request_id] = (response_event, response_container)
        if self._closed:
            self._pending_requests.pop(request_id, None)
            raise ConnectionClosedError(f"Cannot send request {method}: connection closed")

        logger.debug(f"Sending request {request_id}: {method} (timeout: {timeout}s)")
        start_time = time.time()
        try:
            self._send_message({"jsonrpc": "2.0", "id": request_id, "method": method, "params": params})

            if not response_event.wait(timeout):
                elapsed = time.time() - start_time
                raise LspTimeoutError(f"{method} request (id={request_id}) timed out after {elapsed:.1f} seconds")
        finally:
            self._pending_requests.pop(request_id, None)

        response = response_container[0]
        if response is None:
            raise ConnectionClosedError(f"Connection closed while waiting for {method} (id={request_id})")

        if "error" in response:
            error = response.get("error") or {}
            raise LspProtocolError(
                f"{method} failed: {error.get('message', 'Unknown error')}",
                code=error.get("code"),
                data=error.get("data"),
            )
        return response.get("result")

    def send_notification(self, method: str, params: Any) -> None:
        """Send a notification without expecting a response."""
        if self._closed:
            raise ConnectionClosedError(f"Cannot send notification {method}: connection closed")
        self._send_message({"jsonrpc": "2.0", "method": method, "params": params})

    def _send_message(self, message: Dict[str, Any]) -> None:
        """Encode and write a message to the server."""
        content_bytes = json.dumps(message).encode("utf-8")
        header_bytes = f"Content-Length: {len(content_bytes)}\r\n\r\n".encode("ascii")

        with self._write_lock:
            try:
                self._writer.write(header_bytes + content_bytes)
                self._writer.flush()
            except (BrokenPipeError, ConnectionResetError, OSError, ValueError) as e:
                logger.error(f"Failed to write message to language server: {e}")
                raise ConnectionClosedError(f"Failed to write to language server: {e}") from e

    def _read_loop(self) -> None:
        """Thread function that reads messages from the server stream."""
        buffer = bytearray()
        read = getattr(self._reader, "read1", self._reader.read)
        try:
            while not self._disposed:
                try:
                    data = read(4096)
                except (OSError, ValueError) as e:
                    if not self._disposed:
                        logger.error(f"Error reading from language server: {e}")
                    break

                if not data:
                    logger.info("Language server closed its output stream")
                    break

                buffer.extend(data)
                buffer = self._process_buffer(buffer)
        finally:
            logger.debug("Reader thread exiting")
            unexpected = not self._disposed
            self._closed = True
            self._fail_pending()
            if unexpected:
                for callback in self._close_callbacks:
                    try:
                        callback()
                    except Exception as e:
                        logger.error(f"Error in connection close callback: {e}", exc_info=True)

    @staticmethod
    def _content_length(header: bytes) -> Optional[int]:
        for line in header.decode("ascii", errors="replace").splitlines():
            if line.lower().startswith("content-length:"):
                try:
                    return int(line.split(":", 1)[1].strip())
                except (ValueError, IndexError):
                    return None
        return None

    def _process_buffer(self, buffer: bytearray) -> bytearray:
        """
        Dispatch the complete messages at the front of the buffer.

        Consumed bytes are deleted from the buffer in place, once per message;
        an incomplete body is left untouched until enough data has arrived.
        """
        header_sep = b"\r\n\r\n"

        while True:
            header_end = buffer.find(header_sep)
            if header_end < 0:
                break
            body_start = header_end + len(header_sep)

            content_length = self._content_length(bytes(buffer[:header_end]))
            if content_length is None:
                logger.error("No valid Content-Length header found")
                # Skip this malformed header and try to resync
                del buffer[:body_start]
                continue

            if len(buffer) - body_start < content_length:
                # Incomplete message, wait for more data
                break

            content = bytes(buffer[body_start:body_start + content_length])
            del buffer[:body_start + content_length]

            try:
                message = json.loads(content.decode("utf-8"))
            except (UnicodeDecodeError, json.JSONDecodeError):
                logger.error(f"Invalid JSON in message content: {content[:100]!r}...")
                continue

            if isinstance(message, dict):
                self._handle_message(message)
            else:
                logger.warning(f"Ignoring non-object message: {type(message).__name__}")

        return buffer

    def _handle_message(self, message: Dict[str, Any]) -> None:
        """Route incoming messages to appropriate handlers."""
        if "method" not in message and "id" in message:
            request_id = message["id"]
            pending = self._pending_requests.get(request_id)
            if pending:
                logger.debug(f"Received response for request {request_id}")
                pending[1][0] = message
                pending[0].set()
            else:
                logger.warning(f"Received response for unknown request ID: {request_id}")

        elif "method" in message and "id" in message:
            self._handle_server_request(message)

        elif "method" in message:
            method = message["method"]
            handler = self._notification_handlers.get(method)
            if handler is None:
                logger.debug(f"Unhandled notification: {method}")
                return
            try:
                handler(message.get("params"))
            except Exception as e:
                logger.error(f"Error handling notification {method}: {e}", exc_info=True)

        else:
            logger.warning(f"Received unrecognized message format: {list(message.keys())}")

    def _handle_server_request(self, message: Dict[str, Any]) -> None:
        """Answer a request initiated by the server."""
        method = message["method"]
        request_id = message["id"]
        handler = self._request_handlers.get(method)

        if handler is None:
            logger.debug(f"Received server request (not implemented): {method}")
            reply = {"jsonrpc": "2.0", "id": request_id,
                     "error": {"code": METHOD_NOT_FOUND, "message": f"Method not found: {method}"}}
        else:
            try:
                reply = {"jsonrpc": "2.0", "id": request_id, "result": handler(message.get("params"))}
            except Exception as e:
                logger.error(f"Error handling server request {method}: {e}", exc_info=True)
                reply = {"jsonrpc": "2.0", "id": request_id,
                         "error": {"code": INTERNAL_ERROR, "message": str(e)}}

        try:
            self._send_message(reply)
        except ConnectionClosedError:
            logger.warning(f"Could not answer server request {method}: connection closed")

    def _fail_pending(self) -> None:
        """Wake every waiter; an empty container signals a closed connection."""
        for event, _container in list(self._pending_requests.values()):
            event.set()
