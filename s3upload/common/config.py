from __future__ import annotations

import os
from dataclasses import dataclass, field
from functools import lru_cache
from pathlib import Path

ENV_FILE = Path(".env")

ADDRESSING_STYLES: tuple[str, ...] = ("path", "virtual")
SERVER_SIDE_ENCRYPTION_MODES: tuple[str, ...] = ("AES256", "aws:kms", "aws:kms:dsse")
LOG_LEVELS: tuple[str, ...] = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")


def _load_env_file() -> None:
    if not ENV_FILE.exists():
        return
    for raw_line in ENV_FILE.read_text(encoding="utf-8").splitlines():
        line = raw_line.strip()
        if not line or line.startswith("#") or "=" not in line:
            continue
        key, value = line.split("=", 1)
        key = key.strip()
        value = value.strip().strip('"').strip("'")
        if key and key not in os.environ:
            os.environ[key] = value


def _as_bool(value: str | None, default: bool) -> bool:
    if value is None:
        return default
    return value.lower() in {"1", "true", "t", "yes", "y", "on"}


def _as_list(value: str | None) -> list[str]:
    if not value:
        return []
    return [item.strip() for item in value.split(",") if item.strip()]


def _as_optional_int(value: str | None) -> int | None:
    if value is None or not value.strip():
        return None
    return int(value)


@dataclass
class Settings:
    S3_ENDPOINT_URL: str | None = None
    S3_REGION: str = "us-east-1"
    S3_ACCESS_KEY_ID: str | None = None
    S3_SECRET_ACCESS_KEY: str | None = None
    S3_USE_SSL: bool = True
    S3_ADDRESSING_STYLE: str = "path"
    S3_BUCKET: str | None = None
    UPLOAD_KEY_PREFIX: str = ""
    UPLOAD_ACL: str = "private"
    UPLOAD_CONTENT_TYPE: str = "auto"
    UPLOAD_STORAGE_CLASS: str = "STANDARD"
    UPLOAD_SERVER_SIDE_ENCRYPTION: str | None = None
    UPLOAD_SSE_KMS_KEY_ID: str | None = None
    UPLOAD_PART_SIZE_BYTES: int = 8 * 1024 * 1024
    UPLOAD_MAX_FILES: int | None = None
    LOG_LEVEL: str = "INFO"
    ENABLE_METRICS: bool = True
    API_KEY_ENABLED: bool = False
    API_KEY: str | None = None
    CORS_ENABLED: bool = False
    CORS_ORIGINS: list[str] = field(default_factory=list)

    def __post_init__(self) -> None:
        if self.S3_ADDRESSING_STYLE.strip().lower() not in ADDRESSING_STYLES:
            raise ValueError("S3_ADDRESSING_STYLE must be one of: path, virtual")
        if (
            self.UPLOAD_SERVER_SIDE_ENCRYPTION
            and self.UPLOAD_SERVER_SIDE_ENCRYPTION not in SERVER_SIDE_ENCRYPTION_MODES
        ):
            raise ValueError(
                "UPLOAD_SERVER_SIDE_ENCRYPTION must be one of: "
                + ", ".join(SERVER_SIDE_ENCRYPTION_MODES)
            )
        if self.UPLOAD_SSE_KMS_KEY_ID and not (
            self.UPLOAD_SERVER_SIDE_ENCRYPTION or ""
        ).startswith("aws:kms"):
            raise ValueError(
                "UPLOAD_SSE_KMS_KEY_ID requires UPLOAD_SERVER_SIDE_ENCRYPTION=aws:kms"
            )
        self.LOG_LEVEL = self.LOG_LEVEL.strip().upper()
        if self.LOG_LEVEL not in LOG_LEVELS:
            raise ValueError("LOG_LEVEL must be one of: " + ", ".join(LOG_LEVELS))
        if self.UPLOAD_MAX_FILES is not None and self.UPLOAD_MAX_FILES < 1:
            raise ValueError("UPLOAD_MAX_FILES must be a positive integer")

    @property
    def storage_configured(self) -> bool:
        return bool(
            self.S3_BUCKET and self.S3_ACCESS_KEY_ID and self.S3_SECRET_ACCESS_KEY
        )

    def missing_storage_settings(self) -> list[str]:
        missing: list[str] = []
        for name in ("S3_BUCKET", "S3_ACCESS_KEY_ID", "S3_SECRET_ACCESS_KEY"):
            if not getattr(self, name):
                missing.append(name)
        return missing

    @classmethod
    def from_environment(cls) -> "Settings":
        _load_env_file()
        return cls(
            S3_ENDPOINT_URL=os.environ.get("S3_ENDPOINT_URL") or None,
            S3_REGION=os.environ.get("S3_REGION", cls.S3_REGION),
            S3_ACCESS_KEY_ID=os.environ.get("S3_ACCESS_KEY_ID"),
            S3_SECRET_ACCESS_KEY=os.environ.get("S3_SECRET_ACCESS_KEY"),
            S3_USE_SSL=_as_bool(os.environ.get("S3_USE_SSL"), cls.S3_USE_SSL),
            S3_ADDRESSING_STYLE=os.environ.get(
                "S3_ADDRESSING_STYLE", cls.S3_ADDRESSING_STYLE
            ),
            S3_BUCKET=os.environ.get("S3_BUCKET"),
            UPLOAD_KEY_PREFIX=os.environ.get("UPLOAD_KEY_PREFIX", cls.UPLOAD_KEY_PREFIX),
            UPLOAD_ACL=os.environ.get("UPLOAD_ACL", cls.UPLOAD_ACL),
            UPLOAD_CONTENT_TYPE=os.environ.get(
                "UPLOAD_CONTENT_TYPE", cls.UPLOAD_CONTENT_TYPE
            ),
            UPLOAD_STORAGE_CLASS=os.environ.get(
                "UPLOAD_STORAGE_CLASS", cls.UPLOAD_STORAGE_CLASS
            ),
            UPLOAD_SERVER_SIDE_ENCRYPTION=os.environ.get(
                "UPLOAD_SERVER_SIDE_ENCRYPTION"
            )
            or None,
            UPLOAD_SSE_KMS_KEY_ID=os.environ.get("UPLOAD_SSE_KMS_KEY_ID") or None,
            UPLOAD_PART_SIZE_BYTES=int(
                os.environ.get("UPLOAD_PART_SIZE_BYTES", cls.UPLOAD_PART_SIZE_BYTES)
            ),
            UPLOAD_MAX_FILES=_as_optional_int(os.environ.get("UPLOAD_MAX_FILES")),
            LOG_LEVEL=os.environ.get("LOG_LEVEL", cls.LOG_LEVEL),
            ENABLE_METRICS=_as_bool(
                os.environ.get("ENABLE_METRICS"), cls.ENABLE_METRICS
            ),
            API_KEY_ENABLED=_as_bool(
                os.environ.get("API_KEY_ENABLED"), cls.API_KEY_ENABLED
            ),
            API_KEY=os.environ.get("API_KEY"),
            CORS_ENABLED=_as_bool(os.environ.get("CORS_ENABLED"), cls.CORS_ENABLED),
            CORS_ORIGINS=_as_list(os.environ.get("CORS_ORIGINS")),
        )


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return Settings.from_environment()
