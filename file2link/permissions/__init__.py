"""Chat/user permissions (file driven, hot-reloadable).

- `parser`: loose JSON document -> normalized `Policy`
- `rules`: `Everyone` / `Identifiers` rules and the immutable `Policy`
- `store`: lock-free reads, serialized reloads
"""

from file2link.permissions.parser import PolicyDocument, parse_policy, parse_rule, policy_to_document, read_policy_file
from file2link.permissions.rules import EVERYONE, AccessRule, Everyone, Identifiers, Policy
from file2link.permissions.store import PolicySnapshot, PolicyStore, ReloadResult, file_source

__all__ = [
    "AccessRule",
    "EVERYONE",
    "Everyone",
    "Identifiers",
    "Policy",
    "PolicyDocument",
    "PolicySnapshot",
    "PolicyStore",
    "ReloadResult",
    "file_source",
    "parse_policy",
    "parse_rule",
    "policy_to_document",
    "read_policy_file",
]
