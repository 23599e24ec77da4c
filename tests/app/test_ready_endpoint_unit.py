"""测试 /health 与 /ready 端点（不依赖真实对象存储）。"""

from __future__ import annotations

import logging

from fastapi.testclient import TestClient

from s3upload.common.config import get_settings
from s3upload.main import create_app


def test_health_is_always_ok() -> None:
    """/health 不检查任何依赖。"""
    client = TestClient(create_app())
    r = client.get("/health")
    assert r.status_code == 200
    assert r.json() == {"status": "ok"}


def test_ready_when_storage_configured(monkeypatch) -> None:
    """存储配置齐全时返回 ready。"""
    monkeypatch.setenv("S3_BUCKET", "test-bucket")
    monkeypatch.setenv("S3_ACCESS_KEY_ID", "k")
    monkeypatch.setenv("S3_SECRET_ACCESS_KEY", "s")
    get_settings.cache_clear()  # type: ignore[attr-defined]

    client = TestClient(create_app())
    r = client.get("/ready")
    assert r.status_code == 200
    assert r.json() == {"status": "ready"}


def test_ready_lists_missing_settings(monkeypatch) -> None:
    """缺少存储配置时返回 not_ready 并列出缺失项。"""
    monkeypatch.setenv("S3_BUCKET", "test-bucket")
    monkeypatch.setenv("S3_ACCESS_KEY_ID", "")
    monkeypatch.setenv("S3_SECRET_ACCESS_KEY", "")
    get_settings.cache_clear()  # type: ignore[attr-defined]

    client = TestClient(create_app())
    r = client.get("/ready")
    assert r.status_code == 200
    body = r.json()
    assert body["status"] == "not_ready"
    assert body["detail"]["missing_settings"] == [
        "S3_ACCESS_KEY_ID",
        "S3_SECRET_ACCESS_KEY",
    ]


def test_startup_logs_storage_target(monkeypatch, caplog) -> None:
    """启动时记录存储目标；配置不全时给出警告。"""
    monkeypatch.setenv("S3_BUCKET", "")
    get_settings.cache_clear()  # type: ignore[attr-defined]

    app = create_app()
    # startup 日志不向 root 传播，直接挂载 caplog 的 handler
    startup_logger = logging.getLogger("s3upload.startup")
    startup_logger.addHandler(caplog.handler)
    try:
        with TestClient(app):
            pass
    finally:
        startup_logger.removeHandler(caplog.handler)

    assert "storage_not_configured" in caplog.text
    assert "S3_BUCKET" in caplog.text
