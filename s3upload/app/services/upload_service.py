"""Upload service for streaming multipart forms into object storage.

This module wires the storage engine to the application settings: bucket,
key layout, ACL, content-type policy and encryption all come from
configuration.
"""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import PurePosixPath
from typing import Any, AsyncIterable

from s3upload.app.services.base import BaseService, ServiceError
from s3upload.common.config import Settings
from s3upload.engine import AUTO_CONTENT_TYPE, S3Storage, UploadField
from s3upload.engine.multipart import MultipartReceiver, ReceivedForm
from s3upload.engine.resolvers import random_key
from s3upload.infra.storage.client import StorageClient
from s3upload.infra.storage.s3_client import S3StorageClient

# Extensions longer than this are dropped from generated keys
MAX_KEY_EXTENSION_LENGTH = 16


class StorageBackendNotConfiguredError(ServiceError):
    """Raised when the storage backend is not properly configured."""


class ObjectNotManagedError(ServiceError):
    """Raised when an object lives outside the configured bucket."""


@dataclass(frozen=True, slots=True)
class ObjectRef:
    """Address of a stored object."""

    bucket: str
    key: str


def _key_extension(originalname: str | None) -> str:
    suffix = PurePosixPath(originalname or "").suffix.lower()
    if len(suffix) > MAX_KEY_EXTENSION_LENGTH or not suffix[1:].isalnum():
        return ""
    return suffix


def build_storage_engine(settings: Settings, storage_client: StorageClient) -> S3Storage:
    """Build the storage engine the HTTP surface uses.

    Keys are ``<UPLOAD_KEY_PREFIX>/<random hex><extension>``; each object
    records the form field it came from in its metadata.
    """
    prefix = (settings.UPLOAD_KEY_PREFIX or "").strip("/")

    def object_key(_context: Any, field: UploadField) -> str:
        key = random_key() + _key_extension(field.originalname)
        return f"{prefix}/{key}" if prefix else key

    def object_metadata(_context: Any, field: UploadField) -> dict[str, str]:
        return {"fieldname": field.fieldname}

    content_type: Any = settings.UPLOAD_CONTENT_TYPE
    if not content_type or content_type.strip().lower() == "auto":
        content_type = AUTO_CONTENT_TYPE

    return S3Storage(
        storage_client,
        bucket=settings.S3_BUCKET,
        key=object_key,
        acl=settings.UPLOAD_ACL or None,
        content_type=content_type,
        metadata=object_metadata,
        storage_class=settings.UPLOAD_STORAGE_CLASS or None,
        server_side_encryption=settings.UPLOAD_SERVER_SIDE_ENCRYPTION,
        sse_kms_key_id=settings.UPLOAD_SSE_KMS_KEY_ID,
    )


class UploadService(BaseService):
    """Application service for receiving uploads and removing stored objects."""

    def __init__(
        self,
        *,
        storage_client: StorageClient | None = None,
        settings: Settings | None = None,
    ) -> None:
        super().__init__(settings)
        if not self._settings.S3_BUCKET:
            raise StorageBackendNotConfiguredError("S3_BUCKET is required")
        self._storage = storage_client or self._build_storage_client(self._settings)
        self._engine = build_storage_engine(self._settings, self._storage)

    @staticmethod
    def _build_storage_client(settings: Settings) -> StorageClient:
        """Build the S3 client, refusing incomplete credentials."""
        missing = settings.missing_storage_settings()
        if missing:
            raise StorageBackendNotConfiguredError(
                "Missing storage settings: " + ", ".join(missing)
            )
        return S3StorageClient(settings=settings)

    @property
    def engine(self) -> S3Storage:
        return self._engine

    async def receive(
        self,
        content_type: str | None,
        body: AsyncIterable[bytes],
        *,
        context: Any = None,
    ) -> ReceivedForm:
        """Stream a multipart body into storage.

        Raises:
            MultipartError: If the body is not an acceptable multipart form.
            FieldUploadError: If a file could not be stored; files stored
                earlier in the same request have been removed.
        """
        receiver = MultipartReceiver(
            self._engine, max_files=self._settings.UPLOAD_MAX_FILES
        )
        return await receiver.receive(content_type, body, context)

    async def remove(self, bucket: str, key: str, *, context: Any = None) -> None:
        """Delete a stored object.

        Raises:
            ObjectNotManagedError: If the object is outside the configured bucket.
            RemovalError: If storage refuses the deletion.
        """
        if bucket != self._settings.S3_BUCKET:
            raise ObjectNotManagedError(f"Bucket '{bucket}' is not managed here")
        await self._engine.remove_file(context, ObjectRef(bucket=bucket, key=key))
