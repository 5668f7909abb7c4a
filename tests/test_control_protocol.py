from __future__ import annotations

import pytest

from file2link.control.protocol import ControlCommand, decode_command, encode_command, recover_command
from file2link.errors import ChannelError, UnknownCommandError


def test_encode_is_one_newline_terminated_line() -> None:
    assert encode_command(ControlCommand.RELOAD) == b"update-permissions\n"
    assert encode_command(ControlCommand.SHUTDOWN) == b"shutdown\n"


@pytest.mark.parametrize(
    "line,expected",
    [
        (b"update-permissions\n", ControlCommand.RELOAD),
        ("update-permissions", ControlCommand.RELOAD),
        (b"update_permissions\n", ControlCommand.RELOAD),
        (b"  SHUTDOWN \r\n", ControlCommand.SHUTDOWN),
        ("shutdown", ControlCommand.SHUTDOWN),
    ],
)
def test_decode_known_keywords(line, expected) -> None:
    assert decode_command(line) is expected


@pytest.mark.parametrize("line", [b"", b"reload", b"shutdown now", "update permissions", b"\xff\xfe"])
def test_decode_unknown_lines(line) -> None:
    with pytest.raises(UnknownCommandError):
        decode_command(line)


def test_unknown_command_is_a_channel_error() -> None:
    assert issubclass(UnknownCommandError, ChannelError)


def test_recover_command_splits_only_at_chunk_boundary() -> None:
    assert recover_command(b"updashutdown", 4) == (b"upda", ControlCommand.SHUTDOWN)
    assert recover_command(b"xxupdate-permissions", 2) == (b"xx", ControlCommand.RELOAD)
    assert recover_command(b"xxupdate-permissions", 1) is None


@pytest.mark.parametrize(
    "line,boundary",
    [
        (b"status-before-shutdown", 0),
        (b"please-do-not-shutdown", 0),
        (b"xupdate-permissions", 0),
        (b"shutdown", 8),
        (b"garbage", 3),
    ],
)
def test_recover_command_needs_an_exact_keyword_after_the_boundary(line, boundary) -> None:
    assert recover_command(line, boundary) is None
