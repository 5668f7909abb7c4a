"""
Exception hierarchy for the permission and control-plane core.

Everything raised here inherits from File2LinkError so callers at the process
boundary can catch one type.
"""

from __future__ import annotations

from typing import Any, Dict, Optional


class File2LinkError(Exception):
    """Base exception for all file2link errors."""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None) -> None:
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def __str__(self) -> str:
        if self.details:
            details_str = ", ".join(f"{k}={v}" for k, v in self.details.items())
            return f"{self.message} ({details_str})"
        return self.message


class ConfigError(File2LinkError):
    """The permissions document could not be turned into a Policy."""


class MalformedPolicyError(ConfigError):
    """Document is not JSON, not an object, or has wrong field types."""


class InvalidIdentifierError(ConfigError):
    """A rule token (or chat key) is neither an integer id nor the wildcard."""

    def __init__(self, chat: str, token: str) -> None:
        super().__init__("Invalid identifier in permissions", {"chat": chat, "token": repr(token)})
        self.chat = chat
        self.token = token


class PolicySourceError(ConfigError):
    """The permissions file could not be read."""

    def __init__(self, path: str, reason: str) -> None:
        super().__init__(f"Cannot read permissions file: {reason}", {"path": path})
        self.path = path


class ChannelError(File2LinkError):
    """Control pipe could not be created, opened, read or written."""

    def __init__(self, message: str, path: Optional[str] = None) -> None:
        super().__init__(message, {"path": path} if path else None)
        self.path = path


class UnknownCommandError(ChannelError):
    """A control line did not match any known command keyword."""

    def __init__(self, line: str) -> None:
        super().__init__(f"Unknown control command: {line!r}")
        self.line = line
