from __future__ import annotations

from fastapi.testclient import TestClient

from file2link.api.server import create_app
from file2link.config import load_app_config
from file2link.runtime import ControlPlane


def _plane(monkeypatch, tmp_path) -> ControlPlane:
    monkeypatch.setenv("PERMISSIONS_PATH", str(tmp_path / "config" / "permissions.json"))
    monkeypatch.setenv("F2L_PIPE_PATH", str(tmp_path / "f2l.pipe"))
    return ControlPlane(load_app_config())


def test_root_reports_server_working(monkeypatch, tmp_path) -> None:
    client = TestClient(create_app(_plane(monkeypatch, tmp_path)))
    resp = client.get("/")
    assert resp.status_code == 200
    assert resp.text == "Server working"


def test_healthz_before_and_after_load(monkeypatch, tmp_path) -> None:
    plane = _plane(monkeypatch, tmp_path)
    client = TestClient(create_app(plane))

    body = client.get("/healthz").json()
    assert body == {"ok": True, "permissions_loaded": False, "permissions_generation": 0}

    plane.load_initial()
    body = client.get("/healthz").json()
    assert body == {"ok": True, "permissions_loaded": True, "permissions_generation": 1}
