from __future__ import annotations

import logging
from functools import lru_cache

from fastapi import Header, HTTPException

from s3upload.app.services.upload_service import (
    StorageBackendNotConfiguredError,
    UploadService,
)
from s3upload.common.config import get_settings

logger = logging.getLogger("http")


@lru_cache(maxsize=1)
def _cached_upload_service() -> UploadService:
    return UploadService(settings=get_settings())


def get_upload_service() -> UploadService:
    try:
        return _cached_upload_service()
    except StorageBackendNotConfiguredError as exc:
        logger.error("storage_not_configured error=%s", exc)
        raise HTTPException(
            status_code=503,
            detail={
                "message": str(exc),
                "error_code": "storage_not_configured",
            },
        ) from exc


def require_api_key(x_api_key: str | None = Header(default=None)) -> None:
    settings = get_settings()
    if settings.API_KEY_ENABLED:
        api_key_expected = getattr(settings, "API_KEY", None)
        if not x_api_key or (api_key_expected and x_api_key != api_key_expected):
            raise HTTPException(status_code=401, detail="Invalid API key")
