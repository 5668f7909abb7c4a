from __future__ import annotations

import logging
import os
from dataclasses import dataclass, replace
from functools import lru_cache
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv

logger = logging.getLogger(__name__)

DEFAULT_PERMISSIONS_PATH = "config/permissions.json"
DEFAULT_PIPE_PATH = "/tmp/file2link.pipe"
PIPE_PATH_ENV = "F2L_PIPE_PATH"


def _env_str(name: str, default: str) -> str:
    return (os.getenv(name) or "").strip() or default


def _env_bool(name: str, default: bool = False) -> bool:
    raw = (os.getenv(name) or "").strip().lower()
    if not raw:
        return default
    return raw in ("1", "true", "yes", "y", "on")


def _env_int(name: str, default: int) -> int:
    raw = (os.getenv(name) or "").strip()
    if not raw:
        return default
    try:
        return int(raw)
    except ValueError:
        logger.warning("Ignoring non-integer %s=%r, using %d", name, raw, default)
        return default


@dataclass(frozen=True)
class AppConfig:
    # Permissions
    permissions_path: str
    refresh_interval_seconds: int  # 0 disables periodic refresh
    bootstrap_permissions: bool
    bootstrap_allow_all: bool

    # Control channel
    pipe_path: str

    # HTTP
    server_host: str
    server_port: int
    domain: str
    shutdown_grace_seconds: int

    log_level: str

    def with_overrides(
        self,
        *,
        permissions_path: Optional[str] = None,
        pipe_path: Optional[str] = None,
        server_host: Optional[str] = None,
        server_port: Optional[int] = None,
        refresh_interval_seconds: Optional[int] = None,
    ) -> "AppConfig":
        """Return a copy with CLI flags applied on top of the env config."""
        changes = {
            "permissions_path": permissions_path,
            "pipe_path": pipe_path,
            "server_host": server_host,
            "server_port": server_port,
            "refresh_interval_seconds": refresh_interval_seconds,
        }
        return replace(self, **{k: v for k, v in changes.items() if v is not None})


def load_env(dotenv_path: str = ".env") -> bool:
    """
    Load variables from a `.env` file if present. Real environment variables win.

    Returns True when a file was loaded.
    """
    if Path(dotenv_path).exists():
        load_dotenv(dotenv_path, override=False)
        logger.info("Loaded environment variables from %s", dotenv_path)
        return True
    logger.debug("No %s file found, using process environment only", dotenv_path)
    return False


def _normalize_domain(raw: str) -> str:
    return raw if raw.endswith("/") else f"{raw}/"


@lru_cache(maxsize=1)
def load_app_config() -> AppConfig:
    """
    Load process configuration from environment variables.

    Recommended vars:
    - PERMISSIONS_PATH=config/permissions.json
    - PERMISSIONS_REFRESH_SECONDS=300 (0 disables)
    - PERMISSIONS_BOOTSTRAP=1
    - PERMISSIONS_BOOTSTRAP_ALLOW_ALL=0
    - F2L_PIPE_PATH=/tmp/file2link.pipe
    - SERVER_HOST=0.0.0.0
    - SERVER_PORT=8080
    - APP_DOMAIN=https://files.example.com/
    - SHUTDOWN_GRACE_SECONDS=10
    - LOG_LEVEL=info
    """
    port = _env_int("SERVER_PORT", 8080)
    if port <= 0 or port > 65535:
        logger.warning("SERVER_PORT=%d out of range, using 8080", port)
        port = 8080

    return AppConfig(
        permissions_path=_env_str("PERMISSIONS_PATH", DEFAULT_PERMISSIONS_PATH),
        refresh_interval_seconds=max(0, min(_env_int("PERMISSIONS_REFRESH_SECONDS", 0), 7 * 24 * 3600)),
        bootstrap_permissions=_env_bool("PERMISSIONS_BOOTSTRAP", True),
        bootstrap_allow_all=_env_bool("PERMISSIONS_BOOTSTRAP_ALLOW_ALL", False),
        pipe_path=_env_str(PIPE_PATH_ENV, DEFAULT_PIPE_PATH),
        server_host=_env_str("SERVER_HOST", "0.0.0.0"),
        server_port=port,
        domain=_normalize_domain(_env_str("APP_DOMAIN", f"http://localhost:{port}")),
        shutdown_grace_seconds=max(0, min(_env_int("SHUTDOWN_GRACE_SECONDS", 10), 300)),
        log_level=_env_str("LOG_LEVEL", "info").upper(),
    )


def configure_logging(level: str = "INFO") -> None:
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )
