"""
Language server process manager.

Locates the language server executable, starts it with stdin/stdout pipes
for JSON-RPC, drains its stderr into the log and stops it again.
"""

import logging
import os
import shutil
import subprocess
import threading
import time
from typing import IO, Optional, Sequence

from codenav.core.exceptions import ServerStartError

# Configure logging
logger = logging.getLogger(__name__)


class LspProcess:
    """Owns one language server subprocess."""

    def __init__(self, command: Sequence[str], cwd: Optional[str] = None):
        if not command:
            raise ValueError("Language server command must not be empty")
        self.command = list(command)
        self.cwd = cwd
        self._process: Optional[subprocess.Popen] = None
        self._stderr_thread: Optional[threading.Thread] = None

    @property
    def pid(self) -> Optional[int]:
        return self._process.pid if self._process else None

    @property
    def stdin(self) -> IO[bytes]:
        if not self._process or not self._process.stdin:
            raise RuntimeError("Process not started")
        return self._process.stdin

    @property
    def stdout(self) -> IO[bytes]:
        if not self._process or not self._process.stdout:
            raise RuntimeError("Process not started")
        return self._process.stdout

    @property
    def returncode(self) -> Optional[int]:
        return self._process.poll() if self._process else None

    def is_running(self) -> bool:
        return self._process is not None and self._process.poll() is None

    def resolve_executable(self) -> str:
        """Absolute path of the server executable.

        Raises:
            ServerStartError: If the executable cannot be found
        """
        executable = self.command[0]
        resolved = shutil.which(executable)
        if resolved is None:
            raise ServerStartError(
                f"Language server executable not found: {executable}. "
                "Install it or set CODENAV_SERVER_COMMAND."
            )
        return resolved

    def start(self) -> None:
        """Start the language server process.

        Raises:
            ServerStartError: If the server cannot be located, launched, or exits immediately
        """
        if self.is_running():
            return

        executable = self.resolve_executable()

        env = os.environ.copy()
        env["PYTHONUNBUFFERED"] = "1"  # Python-based servers flush stdout promptly

        logger.info(f"Starting language server with command: {' '.join(self.command)}")
        try:
            process = subprocess.Popen(
                [executable] + self.command[1:],
                stdin=subprocess.PIPE,
                stdout=subprocess.PIPE,
                stderr=subprocess.PIPE,
                cwd=self.cwd,
                env=env,
                bufsize=-1,
            )
        except OSError as e:
            raise ServerStartError(f"Failed to start language server: {e}") from e

        if process.poll() is not None:
            stderr_data = process.stderr.read().decode("utf-8", errors="replace") if process.stderr else ""
            self._close_pipes(process)
            raise ServerStartError(
                f"Language server exited immediately (exit code: {process.returncode}): {stderr_data.strip()}"
            )

        self._process = process
        self._start_stderr_thread(process)
        logger.info(f"Language server process started successfully with PID {process.pid}")

    def _start_stderr_thread(self, process: subprocess.Popen) -> None:
        """Forward server stderr to the log so the pipe never fills up."""
        def drain():
            try:
                for raw_line in iter(process.stderr.readline, b""):
                    line = raw_line.decode("utf-8", errors="replace").rstrip()
                    if line:
                        logger.debug(f"[LSP Stderr] {line}")
            except (OSError, ValueError):
                # Pipe closed during shutdown
                pass

        self._stderr_thread = threading.Thread(target=drain, daemon=True, name="lsp-stderr-thread")
        self._stderr_thread.start()

    def stop(self) -> None:
        """Terminate the process; safe to call repeatedly or before start()."""
        process = self._process
        self._process = None
        if not process:
            return

        try:
            if process.poll() is None:
                process.terminate()

                # Give it a moment to terminate gracefully
                for _ in range(10):
                    if process.poll() is not None:
                        break
                    time.sleep(0.1)

                if process.poll() is None:
                    logger.warning("Process did not terminate gracefully, forcing kill")
                    process.kill()
                    try:
                        process.wait(timeout=1)
                    except subprocess.TimeoutExpired:
                        logger.error("Process failed to terminate even after kill signal")

            logger.info(f"Language server stopped (exit code: {process.returncode})")
        finally:
            # The drain thread holds the stderr buffer lock until EOF
            if self._stderr_thread:
                self._stderr_thread.join(timeout=1)
                self._stderr_thread = None
            self._close_pipes(process)

    @staticmethod
    def _close_pipes(process: subprocess.Popen) -> None:
        for pipe in (process.stdin, process.stdout, process.stderr):
            if pipe:
                try:
                    pipe.close()
                except OSError as e:
                    logger.debug(f"Error closing pipe: {e}")
