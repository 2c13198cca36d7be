"""
Runtime settings.

Settings are resolved in three layers: built-in defaults, an optional
``.codenav.yaml`` file in the project root, and ``CODENAV_*`` environment
variables (which may come from a ``.env`` file loaded at package import).
"""

import logging
import os
import re
import shlex
from dataclasses import dataclass, fields, replace
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional, Tuple

import yaml

# Configure logging
logger = logging.getLogger(__name__)

CONFIG_FILE_NAME = ".codenav.yaml"
ENV_PREFIX = "CODENAV_"

# Directories that are never part of a project, regardless of ignore files
DEFAULT_SKIP_DIRS = (
    ".git",
    "node_modules",
    "__pycache__",
    ".venv",
    "venv",
    "dist",
    "build",
)

# Language ids sent with textDocument/didOpen, keyed by file extension
LANGUAGE_IDS = {
    ".ts": "typescript",
    ".tsx": "typescriptreact",
    ".js": "javascript",
    ".jsx": "javascriptreact",
    ".mjs": "javascript",
    ".cjs": "javascript",
    ".py": "python",
    ".pyi": "python",
    ".go": "go",
    ".rs": "rust",
    ".java": "java",
    ".c": "c",
    ".h": "c",
    ".cpp": "cpp",
    ".hpp": "cpp",
}


@dataclass(frozen=True)
class Settings:
    """Tunable behaviour of the language server session and resolver."""
    server_command: Tuple[str, ...] = ("typescript-language-server", "--stdio")
    file_extensions: Tuple[str, ...] = (".ts", ".tsx", ".js", ".jsx")
    skip_dirs: Tuple[str, ...] = DEFAULT_SKIP_DIRS
    request_timeout: float = 30.0
    index_grace_period: float = 5.0
    index_timeout: float = 300.0
    diagnostics_timeout: float = 2.0
    search_retry_delay: float = 1.0
    wait_for_diagnostics: bool = True
    index_title_pattern: str = "initializ"

    @classmethod
    def load(cls, root_path: Optional[str] = None,
             environ: Optional[Mapping[str, str]] = None) -> "Settings":
        """Build settings from defaults, the project config file and the environment."""
        settings = cls()
        if root_path:
            config_path = Path(root_path) / CONFIG_FILE_NAME
            if config_path.is_file():
                settings = settings.merge(_read_config_file(config_path))
        env = os.environ if environ is None else environ
        return settings.merge(_read_environment(env))

    def merge(self, overrides: Mapping[str, Any]) -> "Settings":
        """Return a copy with the given raw values coerced and applied."""
        known = {f.name: f for f in fields(self)}
        changes = {}
        for key, raw in overrides.items():
            if key not in known:
                logger.warning(f"Ignoring unknown setting: {key}")
                continue
            changes[key] = _coerce(key, raw, getattr(self, key))
        return replace(self, **changes) if changes else self

    def language_id(self, path: str) -> str:
        """Language id for a file, falling back to plain text."""
        return LANGUAGE_IDS.get(os.path.splitext(path)[1].lower(), "plaintext")


def _read_config_file(path: Path) -> Dict[str, Any]:
    with open(path, "r", encoding="utf-8") as f:
        data = yaml.safe_load(f) or {}
    if not isinstance(data, dict):
        raise ValueError(f"{path} must contain a mapping of settings")
    logger.info(f"Loaded settings from {path}")
    return data


def _read_environment(environ: Mapping[str, str]) -> Dict[str, Any]:
    values = {}
    for f in fields(Settings):
        env_key = ENV_PREFIX + f.name.upper()
        if env_key in environ:
            values[f.name] = environ[env_key]
    return values


def _coerce(key: str, raw: Any, current: Any) -> Any:
    """Convert a raw config/env value to the type of the current setting."""
    try:
        if isinstance(current, bool):
            if isinstance(raw, bool):
                return raw
            text = str(raw).strip().lower()
            if text in ("1", "true", "yes", "on"):
                return True
            if text in ("0", "false", "no", "off"):
                return False
            raise ValueError(raw)
        if isinstance(current, float):
            value = float(raw)
            if value < 0:
                raise ValueError(raw)
            return value
        if isinstance(current, tuple):
            if isinstance(raw, str):
                items: List[str] = (
                    shlex.split(raw) if key == "server_command"
                    else [part.strip() for part in raw.split(",") if part.strip()]
                )
            else:
                items = [str(item) for item in raw]
            if not items:
                raise ValueError(raw)
            return tuple(items)
        if key == "index_title_pattern":
            re.compile(str(raw))
        return str(raw)
    except (TypeError, ValueError, re.error):
        raise ValueError(f"Invalid value for setting '{key}': {raw!r}") from None
