"""
Control pipe wire format.

One command per line, UTF-8, newline terminated, no payload:

    update-permissions\\n
    shutdown\\n

Writers should emit a line in a single write() no longer than PIPE_BUF so
concurrent clients never interleave.
"""

from __future__ import annotations

from enum import Enum
from typing import Dict, Optional, Tuple

from file2link.errors import UnknownCommandError

MAX_LINE_BYTES = 4096


class ControlCommand(str, Enum):
    RELOAD = "update-permissions"
    SHUTDOWN = "shutdown"


_KEYWORDS: Dict[str, ControlCommand] = {
    "update-permissions": ControlCommand.RELOAD,
    "update_permissions": ControlCommand.RELOAD,  # legacy CLI spelling
    "shutdown": ControlCommand.SHUTDOWN,
}


def encode_command(command: ControlCommand) -> bytes:
    return f"{command.value}\n".encode("utf-8")


def decode_command(line: bytes | str) -> ControlCommand:
    """Map one line (with or without its newline) to a command."""
    if isinstance(line, bytes):
        line = line.decode("utf-8", errors="replace")
    keyword = line.strip().lower()
    cmd = _KEYWORDS.get(keyword)
    if cmd is None:
        raise UnknownCommandError(line.strip())
    return cmd


def recover_command(line: bytes, boundary: int) -> Optional[Tuple[bytes, ControlCommand]]:
    """
    Salvage a command glued onto another writer's unterminated bytes.

    All writers share one byte stream, so a client that dies mid-line leaves
    bytes that prefix the next client's command. `boundary` is how many bytes
    of `line` were already buffered before the chunk that completed it; the
    line is split only there, and only if the rest is exactly one keyword.
    Returns (dropped_prefix, command).
    """
    if boundary <= 0 or boundary >= len(line):
        return None
    try:
        cmd = decode_command(line[boundary:])
    except UnknownCommandError:
        return None
    return line[:boundary], cmd
