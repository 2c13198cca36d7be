"""
codenav - semantic code navigation on top of a language server.

This package starts an external language server, waits for it to build its
project model, and answers navigation queries (file maps, symbol search,
definitions/references and code extraction) with 1-based, stable ids.
"""

import logging
import logging.handlers
import os
import sys
from dotenv import load_dotenv

# Configure logger for this module
logger = logging.getLogger(__name__)

# Load environment variables from .env file if present
load_dotenv()

if "pytest" not in sys.modules:
    CODENAV_HOME = os.environ.get("CODENAV_HOME", os.path.expanduser("~/.codenav"))
else:
    CODENAV_HOME = "/tmp/.codenav"


def setup_logging() -> None:
    """
    Configure centralized logging for the entire application.

    This function sets up:
    - File logging for all messages in {CODENAV_HOME}/logs/stdout.log
    - File logging for warnings and above in {CODENAV_HOME}/logs/stderr.log
    - Console logging only if LOG_TO_CONSOLE=1 is set (disabled by default)
    """
    log_level_name = os.environ.get("LOG_LEVEL", "INFO").upper()
    log_level = getattr(logging, log_level_name, logging.INFO)

    log_dir = os.path.join(CODENAV_HOME, "logs")
    os.makedirs(log_dir, exist_ok=True)

    stdout_log_file = os.path.join(log_dir, "stdout.log")
    stderr_log_file = os.path.join(log_dir, "stderr.log")

    formatter = logging.Formatter(
        "%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )

    # Configure root logger and remove any existing handlers
    root_logger = logging.getLogger()
    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)

    root_logger.setLevel(log_level)

    stdout_handler = logging.handlers.RotatingFileHandler(
        stdout_log_file,
        maxBytes=10485760,  # 10MB
        backupCount=3,
    )
    stdout_handler.setFormatter(formatter)
    stdout_handler.setLevel(log_level)

    stderr_handler = logging.handlers.RotatingFileHandler(
        stderr_log_file,
        maxBytes=10485760,  # 10MB
        backupCount=3,
    )
    stderr_handler.setFormatter(formatter)
    stderr_handler.setLevel(logging.WARNING)

    root_logger.addHandler(stdout_handler)
    root_logger.addHandler(stderr_handler)

    if os.environ.get("LOG_TO_CONSOLE", "0") == "1":
        console_handler = logging.StreamHandler(sys.stderr)
        console_handler.setFormatter(formatter)
        console_handler.setLevel(log_level)
        root_logger.addHandler(console_handler)
        logger.debug("Console logging enabled")

    logger.debug("Logging configured successfully")
    logger.debug(f"Standard output logs will be saved to {stdout_log_file}")
    logger.debug(f"Standard error logs will be saved to {stderr_log_file}")


setup_logging()
