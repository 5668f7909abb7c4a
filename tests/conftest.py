"""
Pytest config.

Tests import the local `file2link/` package and root `main.py`; pin the repo
root on sys.path so that works whether or not the project is pip-installed.
"""

from __future__ import annotations

import json
import sys
from pathlib import Path
from typing import Any, Callable

import pytest


def _ensure_repo_root_on_syspath() -> None:
    repo_root = Path(__file__).resolve().parents[1]
    repo_root_str = str(repo_root)
    if repo_root_str not in sys.path:
        sys.path.insert(0, repo_root_str)


_ensure_repo_root_on_syspath()


@pytest.fixture(autouse=True)
def _fresh_app_config() -> Any:
    """`load_app_config` is lru_cached; make every test see its own env."""
    from file2link.config import load_app_config

    load_app_config.cache_clear()
    yield
    load_app_config.cache_clear()


@pytest.fixture
def write_permissions(tmp_path: Path) -> Callable[[Any], Path]:
    """Write a permissions document (dict or raw string) and return its path."""
    path = tmp_path / "config" / "permissions.json"

    def _write(doc: Any) -> Path:
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(doc if isinstance(doc, str) else json.dumps(doc), encoding="utf-8")
        return path

    return _write


@pytest.fixture
def pipe_path(tmp_path: Path) -> str:
    return str(tmp_path / "f2l.pipe")
