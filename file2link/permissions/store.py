"""
In-memory holder of the active Policy.

Readers never lock: they read `self._snapshot` once (a single attribute load)
and evaluate against that immutable object, so a concurrent `replace` is seen
either entirely or not at all. Writers serialize on `_write_lock`; reloads
(read file + parse + replace) additionally serialize on `_reload_lock` so a
slow reload can never install an older parse over a newer one.
"""

from __future__ import annotations

import logging
import threading
import time
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable, Optional, Union

from file2link.errors import ConfigError
from file2link.permissions.parser import read_policy_file
from file2link.permissions.rules import Policy

logger = logging.getLogger(__name__)

PolicySource = Callable[[], Policy]


@dataclass(frozen=True)
class PolicySnapshot:
    policy: Policy
    generation: int
    loaded_at: float = field(default_factory=time.time)


@dataclass(frozen=True)
class ReloadResult:
    ok: bool
    generation: int
    trigger: str = "manual"
    error: Optional[str] = None


def file_source(path: Union[str, Path]) -> PolicySource:
    """Policy source that re-reads `path` on every call."""

    def _load() -> Policy:
        return read_policy_file(path)

    return _load


class PolicyStore:
    """
    Atomically swappable Policy holder.

    Starts with the deny-all policy at generation 0, so nothing is authorized
    until the first successful load.
    """

    def __init__(self, source: Optional[PolicySource] = None) -> None:
        self._source = source
        self._snapshot = PolicySnapshot(policy=Policy.deny_all(), generation=0)
        self._write_lock = threading.Lock()
        self._reload_lock = threading.Lock()

    @property
    def is_loaded(self) -> bool:
        return self._snapshot.generation > 0

    def snapshot(self) -> PolicySnapshot:
        return self._snapshot

    def current_generation(self) -> int:
        return self._snapshot.generation

    def authorize(self, chat_id: int, user_id: int) -> bool:
        snap = self._snapshot
        allowed = snap.policy.allows(int(chat_id), int(user_id))
        logger.debug(
            "Access %s for user %s in chat %s (generation=%d)",
            "granted" if allowed else "denied",
            user_id,
            chat_id,
            snap.generation,
        )
        return allowed

    is_authorized = authorize

    def replace(self, policy: Policy) -> int:
        """Install `policy` as current; returns the new generation."""
        with self._write_lock:
            generation = self._snapshot.generation + 1
            self._snapshot = PolicySnapshot(policy=policy, generation=generation)
        return generation

    def reload(self, source: Optional[PolicySource] = None, *, trigger: str = "manual") -> ReloadResult:
        """
        Load a fresh policy from `source` (or the store's default source) and install it.

        Never raises ConfigError: failures keep the previous snapshot and are
        logged and reported in the result.
        """
        src = source or self._source
        if src is None:
            raise RuntimeError("PolicyStore has no policy source configured")

        with self._reload_lock:
            try:
                policy = src()
            except ConfigError as e:
                generation = self.current_generation()
                logger.warning(
                    "Failed to load permissions (trigger=%s), keeping generation %d: %s",
                    trigger,
                    generation,
                    e,
                )
                return ReloadResult(ok=False, generation=generation, trigger=trigger, error=str(e))

            generation = self.replace(policy)

        logger.info(
            "Permissions updated successfully (trigger=%s, generation=%d, chats=%d)",
            trigger,
            generation,
            len(policy.per_chat),
        )
        return ReloadResult(ok=True, generation=generation, trigger=trigger)
