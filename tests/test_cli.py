from __future__ import annotations

import json
import os

import pytest

from file2link import cli
from file2link.control.fifo import ensure_fifo


def test_shutdown_is_written_to_the_pipe(pipe_path) -> None:
    ensure_fifo(pipe_path)
    rfd = os.open(pipe_path, os.O_RDONLY | os.O_NONBLOCK)
    try:
        assert cli.main(["--path", pipe_path, "shutdown"]) == 0
        assert os.read(rfd, 1024) == b"shutdown\n"
    finally:
        os.close(rfd)


def test_update_permissions_uses_env_pipe_path(monkeypatch, pipe_path) -> None:
    monkeypatch.setenv("F2L_PIPE_PATH", pipe_path)
    ensure_fifo(pipe_path)
    rfd = os.open(pipe_path, os.O_RDONLY | os.O_NONBLOCK)
    try:
        assert cli.main(["update-permissions"]) == 0
        assert os.read(rfd, 1024) == b"update-permissions\n"
    finally:
        os.close(rfd)


def test_no_server_listening_exits_nonzero(pipe_path, caplog) -> None:
    ensure_fifo(pipe_path)
    assert cli.main(["--path", pipe_path, "update-permissions"]) == 1
    assert "Failed to send command" in caplog.text


def test_missing_pipe_exits_nonzero(tmp_path) -> None:
    assert cli.main(["--path", str(tmp_path / "absent.pipe"), "shutdown"]) == 1


def test_unknown_subcommand_is_a_usage_error() -> None:
    with pytest.raises(SystemExit) as ei:
        cli.main(["reload"])
    assert ei.value.code == 2


def test_check_prints_normalized_rules(write_permissions, capsys) -> None:
    path = write_permissions({"allow_all": "3, 1,2", "chats": {"-100": ["*", "x"], "+7": ""}})
    assert cli.main(["check", "--config", str(path)]) == 0
    out = json.loads(capsys.readouterr().out)
    assert out == {"allow_all": [1, 2, 3], "chats": {"-100": "*", "7": []}}


def test_check_rejects_invalid_file(write_permissions, caplog) -> None:
    path = write_permissions({"allow_all": "12, abc"})
    assert cli.main(["check", "--config", str(path)]) == 1
    assert "Invalid permissions file" in caplog.text
