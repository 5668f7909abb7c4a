"""
Permissions document parser.

The on-disk format is deliberately loose so operators can write whatever is
convenient:

    {
      "allow_all": "*",                 # or 123, or "1, 2", or [1, "2"]
      "chats": {
        "-1001234567890": [111, "222"],
        "42": "333,444"
      }
    }

All of that flexibility ends here: `parse_policy` turns the document into a
`Policy` made only of `Everyone` / `Identifiers` rules, or raises a
`ConfigError` naming the chat key and token that could not be understood.
"""

from __future__ import annotations

import json
import logging
import re
from pathlib import Path
from typing import Any, Dict, List, Optional, Set, Union

from pydantic import BaseModel, ConfigDict, StrictInt, StrictStr, ValidationError

from file2link.errors import InvalidIdentifierError, MalformedPolicyError, PolicySourceError
from file2link.permissions.rules import (
    EVERYONE,
    INT64_MAX,
    INT64_MIN,
    WILDCARD,
    AccessRule,
    Everyone,
    Identifiers,
    Policy,
)

logger = logging.getLogger(__name__)

GLOBAL_KEY = "allow_all"

_INT_TOKEN = re.compile(r"\A[+-]?[0-9]+\Z")

RawRule = Union[StrictInt, StrictStr, List[Union[StrictInt, StrictStr]]]


class PolicyDocument(BaseModel):
    """Raw permissions document, before normalization."""

    model_config = ConfigDict(extra="ignore")

    allow_all: Optional[RawRule] = None
    chats: Dict[str, RawRule] = {}

    @classmethod
    def from_policy(cls, policy: Policy) -> "PolicyDocument":
        """Canonical document for a normalized policy (ids sorted, '*' for Everyone)."""
        return cls(
            allow_all=_rule_to_raw(policy.global_rule),
            chats={str(chat_id): _rule_to_raw(rule) for chat_id, rule in sorted(policy.per_chat.items())},
        )


def policy_to_document(policy: Policy) -> PolicyDocument:
    return PolicyDocument.from_policy(policy)


def _rule_to_raw(rule: AccessRule) -> Union[str, List[int]]:
    if isinstance(rule, Everyone):
        return WILDCARD
    return sorted(rule.ids)


def _parse_int(token: str, *, chat: str) -> int:
    if not _INT_TOKEN.match(token):
        raise InvalidIdentifierError(chat=chat, token=token)
    value = int(token)
    if value < INT64_MIN or value > INT64_MAX:
        raise InvalidIdentifierError(chat=chat, token=token)
    return value


def _split_tokens(raw: str) -> List[str]:
    return [t.strip() for t in raw.split(",") if t.strip()]


def parse_rule(value: Any, *, chat: str = GLOBAL_KEY) -> AccessRule:
    """
    Normalize one raw rule value.

    Accepted shapes: the wildcard string, a bare integer, a comma-joined
    string, or a list of integers / numeric strings. A wildcard anywhere makes
    the whole rule `Everyone`, even next to tokens that are not valid ids.
    """
    if value is None:
        return Identifiers()

    if isinstance(value, bool):
        raise InvalidIdentifierError(chat=chat, token=str(value))

    if isinstance(value, int):
        return Identifiers.of([_parse_int(str(value), chat=chat)])

    if isinstance(value, str):
        tokens = _split_tokens(value)
    elif isinstance(value, list):
        tokens = []
        for item in value:
            if isinstance(item, bool) or not isinstance(item, (int, str)):
                raise InvalidIdentifierError(chat=chat, token=str(item))
            if isinstance(item, int):
                tokens.append(str(item))
            else:
                tokens.extend(_split_tokens(item))
    else:
        raise MalformedPolicyError(
            "Rule must be a string, an integer or a list",
            {"chat": chat, "type": type(value).__name__},
        )

    if WILDCARD in tokens:
        return EVERYONE

    ids: Set[int] = set()
    for token in tokens:
        ids.add(_parse_int(token, chat=chat))
    return Identifiers.of(ids)


def _parse_chat_key(key: str) -> int:
    return _parse_int(key.strip(), chat=key)


def policy_from_document(doc: PolicyDocument) -> Policy:
    global_rule = parse_rule(doc.allow_all, chat=GLOBAL_KEY)
    per_chat: Dict[int, AccessRule] = {}
    for key, raw in doc.chats.items():
        chat_id = _parse_chat_key(key)
        if chat_id in per_chat:
            # "42" and " 42" normalize to the same chat.
            raise InvalidIdentifierError(chat=key, token=key)
        per_chat[chat_id] = parse_rule(raw, chat=key)
    return Policy(global_rule=global_rule, per_chat=per_chat)


def parse_policy(raw: Union[bytes, str]) -> Policy:
    """
    Parse a raw permissions document into a Policy.

    Raises:
        MalformedPolicyError: not JSON, not an object, or wrong field types.
        InvalidIdentifierError: a token or chat key is not an id or '*'.
    """
    if isinstance(raw, bytes):
        try:
            raw = raw.decode("utf-8")
        except UnicodeDecodeError as e:
            raise MalformedPolicyError("Permissions document is not valid UTF-8", {"error": str(e)}) from e

    try:
        data = json.loads(raw) if raw.strip() else None
    except json.JSONDecodeError as e:
        raise MalformedPolicyError("Permissions document is not valid JSON", {"error": e.msg, "line": e.lineno}) from e

    if not isinstance(data, dict):
        raise MalformedPolicyError("Permissions document must be a JSON object")

    try:
        doc = PolicyDocument.model_validate(data)
    except ValidationError as e:
        fields = sorted({".".join(str(p) for p in err["loc"][:2]) for err in e.errors()})
        raise MalformedPolicyError("Permissions document has invalid field types", {"fields": fields}) from e

    return policy_from_document(doc)


def read_policy_file(path: Union[str, Path]) -> Policy:
    """Read and parse the permissions file. Never returns a partial policy."""
    p = Path(path)
    try:
        raw = p.read_bytes()
    except OSError as e:
        raise PolicySourceError(str(p), e.strerror or str(e)) from e
    return parse_policy(raw)


def initial_document(*, allow_all: bool = False) -> PolicyDocument:
    return PolicyDocument(allow_all=WILDCARD if allow_all else [], chats={})


def write_policy_file(path: Union[str, Path], doc: PolicyDocument) -> None:
    p = Path(path)
    if p.parent and not p.parent.exists():
        p.parent.mkdir(parents=True, exist_ok=True)
        logger.debug("Created directory structure '%s'", p.parent)
    data = json.dumps(doc.model_dump(mode="json"), indent=2)
    p.write_text(data + "\n", encoding="utf-8")
    logger.debug("Permissions document saved to '%s'", p)


def ensure_policy_file(path: Union[str, Path], *, allow_all: bool = False) -> bool:
    """
    Create an initial permissions file if none exists.

    Returns True when a file was written.
    """
    p = Path(path)
    if p.exists():
        return False
    write_policy_file(p, initial_document(allow_all=allow_all))
    logger.info("Created initial permissions file at %s (allow_all=%s)", p, "*" if allow_all else "[]")
    return True
