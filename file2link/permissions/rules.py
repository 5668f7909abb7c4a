from __future__ import annotations

from dataclasses import dataclass, field
from types import MappingProxyType
from typing import FrozenSet, Iterable, Mapping, Union

WILDCARD = "*"

INT64_MIN = -(2**63)
INT64_MAX = 2**63 - 1


@dataclass(frozen=True)
class Everyone:
    """Unrestricted rule: every user id is allowed."""

    def allows(self, user_id: int) -> bool:
        return True


@dataclass(frozen=True)
class Identifiers:
    """Finite allowlist of user ids."""

    ids: FrozenSet[int] = frozenset()

    @classmethod
    def of(cls, ids: Iterable[int]) -> "Identifiers":
        return cls(frozenset(ids))

    def allows(self, user_id: int) -> bool:
        return user_id in self.ids


AccessRule = Union[Everyone, Identifiers]

EVERYONE = Everyone()
NOBODY = Identifiers()


def _freeze(per_chat: Mapping[int, AccessRule]) -> Mapping[int, AccessRule]:
    return MappingProxyType(dict(per_chat))


@dataclass(frozen=True)
class Policy:
    """
    Normalized, immutable snapshot of the access rules.

    Shared across concurrent readers; never mutated after construction.
    """

    global_rule: AccessRule = NOBODY
    per_chat: Mapping[int, AccessRule] = field(default_factory=dict, hash=False)

    def __post_init__(self) -> None:
        if not isinstance(self.per_chat, MappingProxyType):
            object.__setattr__(self, "per_chat", _freeze(self.per_chat))

    @classmethod
    def deny_all(cls) -> "Policy":
        return cls(global_rule=NOBODY, per_chat={})

    def rule_for(self, chat_id: int) -> AccessRule:
        """Effective rule for a chat: its own entry, else the global one."""
        return self.per_chat.get(chat_id, self.global_rule)

    def allows(self, chat_id: int, user_id: int) -> bool:
        """
        Decide whether `user_id` may use the bot in `chat_id`.

        - A chat without an entry inherits the global rule.
        - A chat with an entry uses it; explicit global ids are still allowed
          there, but a global wildcard does not widen an explicit chat rule.
        """
        chat_rule = self.per_chat.get(chat_id)
        if chat_rule is None:
            return self.global_rule.allows(user_id)
        if chat_rule.allows(user_id):
            return True
        return isinstance(self.global_rule, Identifiers) and self.global_rule.allows(user_id)
