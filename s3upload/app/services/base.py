from __future__ import annotations

from s3upload.common.config import Settings, get_settings


class ServiceError(Exception):
    """Base class for application service level exceptions."""


class BaseService:
    """Provides guard rails and helpers shared by application services."""

    def __init__(self, settings: Settings | None = None):
        self._settings = settings or get_settings()

    @property
    def settings(self) -> Settings:
        return self._settings
