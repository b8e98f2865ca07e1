from __future__ import annotations

import logging
from logging.handlers import RotatingFileHandler
from pathlib import Path

from fastapi.testclient import TestClient

import unireg.app as app_module
from conftest import FakeUpstream


def test_healthz_ok(client: TestClient) -> None:
    response = client.get("/healthz")
    assert response.status_code == 200
    assert response.json() == {"status": "ok"}


def test_landing_page_is_public(client: TestClient) -> None:
    response = client.get("/")
    assert response.status_code == 200
    assert "University Registration" in response.text
    assert "/ui/login" in response.text


class _CountingHandler(RotatingFileHandler):
    opened = 0

    def __init__(self, *args, **kwargs) -> None:
        type(self).opened += 1
        super().__init__(*args, **kwargs)


def test_restarts_do_not_open_extra_log_files(
    tmp_path: Path, monkeypatch, upstream: FakeUpstream
) -> None:
    monkeypatch.setenv("UNIREG_HOME", str(tmp_path))
    monkeypatch.setattr(app_module, "RotatingFileHandler", _CountingHandler)

    root = logging.getLogger()
    existing = _CountingHandler(tmp_path / "existing.log", encoding="utf-8")
    root.addHandler(existing)
    try:
        for _ in range(3):
            with TestClient(app_module.create_app(upstream_transport=upstream.transport())) as c:
                assert c.get("/healthz").status_code == 200
    finally:
        root.removeHandler(existing)
        existing.close()

    assert _CountingHandler.opened == 1
