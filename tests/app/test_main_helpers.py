"""测试 s3upload/main.py 中的辅助函数。"""

from __future__ import annotations

import logging

import pytest

from s3upload.common.config import Settings
from s3upload.common.logging import setup_logging
from s3upload.main import (
    _describe_storage_target,
    _normalize_detail,
    _resolve_error_code,
    create_app,
)


class TestNormalizeDetail:
    """测试 _normalize_detail 函数。"""

    def test_unwraps_message_and_extracts_error_code(self) -> None:
        """包含 message 和 error_code 的字典应该正确解包。"""
        detail, code = _normalize_detail({"message": "x", "error_code": "custom"})
        assert detail == "x"
        assert code == "custom"

    def test_strips_error_code_and_handles_empty(self) -> None:
        """只有 error_code 的字典应该返回 None detail。"""
        detail, code = _normalize_detail({"error_code": "custom"})
        assert detail is None
        assert code == "custom"

    def test_ignores_non_string_error_code(self) -> None:
        """非字符串的 error_code 应该被忽略。"""
        detail, code = _normalize_detail({"message": "x", "error_code": 123})
        assert detail == "x"
        assert code is None

    def test_returns_string_detail_as_is(self) -> None:
        """字符串 detail 应该原样返回。"""
        detail, code = _normalize_detail("simple error")
        assert detail == "simple error"
        assert code is None

    def test_preserves_dict_with_multiple_keys(self) -> None:
        """包含多个键的字典应该保留（去除 error_code 后）。"""
        detail, code = _normalize_detail(
            {
                "message": "x",
                "field": "avatar",
                "error_code": "upload_failed",
            }
        )
        assert detail == {"message": "x", "field": "avatar"}
        assert code == "upload_failed"


class TestResolveErrorCode:
    """测试 _resolve_error_code 函数。"""

    def test_returns_override_when_provided(self) -> None:
        assert _resolve_error_code(502, override="upload_failed") == "upload_failed"

    def test_returns_validation_error_for_422(self) -> None:
        assert _resolve_error_code(422) == "validation_error"

    def test_returns_mapped_code_for_known_status(self) -> None:
        assert _resolve_error_code(415) == "unsupported_media_type"
        assert _resolve_error_code(502) == "bad_gateway"
        assert _resolve_error_code(503) == "service_unavailable"

    def test_returns_unknown_error_for_unmapped_status(self) -> None:
        assert _resolve_error_code(418) == "unknown_error"


def test_describe_storage_target() -> None:
    """存储目标描述包含关键配置。"""
    settings = Settings(
        S3_ENDPOINT_URL="http://minio:9000",
        S3_BUCKET="uploads",
        UPLOAD_KEY_PREFIX="incoming",
    )
    target = _describe_storage_target(settings)
    assert "endpoint=http://minio:9000" in target
    assert "bucket=uploads" in target
    assert "key_prefix=incoming" in target
    assert "content_type=auto" in target


def test_describe_storage_target_defaults() -> None:
    target = _describe_storage_target(Settings())
    assert "endpoint=aws" in target
    assert "bucket=<unset>" in target


def test_log_level_comes_from_settings(monkeypatch) -> None:
    """LOG_LEVEL 决定根日志级别。"""
    monkeypatch.setenv("LOG_LEVEL", "debug")
    try:
        create_app()
        assert logging.getLogger().level == logging.DEBUG
    finally:
        setup_logging()


def test_rejects_unknown_log_level() -> None:
    with pytest.raises(ValueError, match="LOG_LEVEL"):
        Settings(LOG_LEVEL="chatty")
