from __future__ import annotations

import asyncio
import os
import threading
from typing import Callable

import pytest

from file2link.config import load_app_config
from file2link.control.client import send_command
from file2link.control.protocol import ControlCommand
from file2link.errors import ChannelError
from file2link.runtime import ControlPlane


async def _wait_until(pred: Callable[[], bool], timeout: float = 3.0) -> None:
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while not pred():
        if loop.time() > deadline:
            raise AssertionError("condition not met in time")
        await asyncio.sleep(0.01)


@pytest.fixture
def app_config(monkeypatch, tmp_path, pipe_path):
    monkeypatch.setenv("PERMISSIONS_PATH", str(tmp_path / "config" / "permissions.json"))
    monkeypatch.setenv("F2L_PIPE_PATH", pipe_path)
    monkeypatch.delenv("PERMISSIONS_REFRESH_SECONDS", raising=False)
    monkeypatch.delenv("PERMISSIONS_BOOTSTRAP", raising=False)
    monkeypatch.delenv("PERMISSIONS_BOOTSTRAP_ALLOW_ALL", raising=False)
    return load_app_config()


def test_load_initial_bootstraps_deny_all_file(app_config) -> None:
    plane = ControlPlane(app_config)
    result = plane.load_initial()
    assert result.ok is True
    assert os.path.exists(app_config.permissions_path)
    assert plane.store.current_generation() == 1
    assert plane.is_authorized(1, 1) is False


def test_load_initial_with_broken_file_stays_fail_closed(app_config, write_permissions) -> None:
    write_permissions('{"allow_all": "*, "')
    plane = ControlPlane(app_config)
    result = plane.load_initial()
    assert result.ok is False
    assert plane.store.is_loaded is False
    assert plane.is_authorized(1, 1) is False


def test_request_reload_is_usable_from_the_chat_layer(app_config, write_permissions) -> None:
    write_permissions({"allow_all": [5]})
    plane = ControlPlane(app_config)
    plane.load_initial()
    write_permissions({"allow_all": "*"})
    result = plane.request_reload()
    assert result.ok is True
    assert result.trigger == "manual"
    assert plane.is_authorized(123, 456) is True


def test_enqueue_before_start_is_rejected(app_config) -> None:
    with pytest.raises(RuntimeError):
        ControlPlane(app_config).enqueue(ControlCommand.RELOAD)


@pytest.mark.asyncio
async def test_pipe_reload_and_shutdown(app_config, write_permissions, pipe_path) -> None:
    write_permissions({"allow_all": [1]})
    plane = ControlPlane(app_config)
    plane.load_initial()
    hook_calls = []
    plane.add_shutdown_hook(lambda: hook_calls.append("http"))

    await plane.start()
    try:
        write_permissions({"allow_all": [2], "chats": {"-100": "*"}})
        send_command(pipe_path, ControlCommand.RELOAD)
        await _wait_until(lambda: plane.store.current_generation() == 2)
        assert plane.is_authorized(0, 2) is True
        assert plane.is_authorized(-100, 999) is True
        assert plane.is_authorized(0, 1) is False

        send_command(pipe_path, ControlCommand.SHUTDOWN)
        await _wait_until(lambda: plane.stopping)
    finally:
        await asyncio.wait_for(plane.stop(), timeout=3.0)

    assert hook_calls == ["http"]
    assert not os.path.exists(pipe_path)
    with pytest.raises(ChannelError):
        send_command(pipe_path, ControlCommand.RELOAD)


@pytest.mark.asyncio
async def test_bad_reload_over_pipe_keeps_old_policy(app_config, write_permissions, pipe_path) -> None:
    write_permissions({"allow_all": [1]})
    plane = ControlPlane(app_config)
    plane.load_initial()
    await plane.start()
    try:
        write_permissions({"allow_all": ["one"]})
        send_command(pipe_path, ControlCommand.RELOAD)
        await asyncio.sleep(0.2)
        assert plane.store.current_generation() == 1
        assert plane.is_authorized(0, 1) is True
    finally:
        await asyncio.wait_for(plane.stop(), timeout=3.0)


@pytest.mark.asyncio
async def test_enqueue_from_another_thread(app_config, write_permissions) -> None:
    write_permissions({"allow_all": [1]})
    plane = ControlPlane(app_config)
    plane.load_initial()
    await plane.start()
    try:
        write_permissions({"allow_all": [3]})
        t = threading.Thread(target=plane.enqueue, args=(ControlCommand.RELOAD,))
        t.start()
        t.join(2.0)
        await _wait_until(lambda: plane.store.current_generation() == 2)
        assert plane.is_authorized(0, 3) is True

        plane.enqueue(ControlCommand.SHUTDOWN)
        await _wait_until(lambda: plane.stopping)
    finally:
        await asyncio.wait_for(plane.stop(), timeout=3.0)


@pytest.mark.asyncio
async def test_start_fails_when_pipe_path_is_unusable(monkeypatch, tmp_path) -> None:
    blocker = tmp_path / "not-a-fifo"
    blocker.write_text("", encoding="utf-8")
    monkeypatch.setenv("F2L_PIPE_PATH", str(blocker))
    monkeypatch.setenv("PERMISSIONS_PATH", str(tmp_path / "permissions.json"))
    plane = ControlPlane(load_app_config())
    with pytest.raises(ChannelError):
        await plane.start()


@pytest.mark.asyncio
async def test_scheduler_runs_inside_control_plane(app_config, write_permissions) -> None:
    write_permissions({"allow_all": [1]})
    plane = ControlPlane(app_config.with_overrides(refresh_interval_seconds=1))
    plane.scheduler.interval_seconds = 0.05
    plane.load_initial()
    await plane.start()
    try:
        write_permissions({"allow_all": [9]})
        await _wait_until(lambda: plane.is_authorized(0, 9))
    finally:
        await asyncio.wait_for(plane.stop(), timeout=3.0)
