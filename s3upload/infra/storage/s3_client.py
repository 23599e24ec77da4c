"""S3-compatible storage client implementation.

This module provides an S3-compatible storage client that works with
AWS S3, MinIO, and other S3-compatible object storage services.

Objects are streamed: at most one part is held in memory at a time. A body
that ends inside the first part is sent with a single ``PutObject``; anything
larger goes through a multipart upload, which is aborted if the body, the
service or the calling task fails.

Dependencies:
    - boto3
    - botocore
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any, AsyncIterable
from urllib.parse import quote

import anyio
from starlette.concurrency import run_in_threadpool

from s3upload.infra.storage.client import (
    ObjectAttributes,
    PutObjectResult,
    StorageError,
)

if TYPE_CHECKING:
    from s3upload.common.config import Settings

logger = logging.getLogger(__name__)

# S3 rejects non-final multipart parts smaller than 5 MiB
MIN_PART_SIZE = 5 * 1024 * 1024
DEFAULT_PART_SIZE = 8 * 1024 * 1024


class S3StorageClient:
    """S3-compatible object storage client.

    Supports AWS S3, MinIO, and other S3-compatible services.
    Uses boto3 for all storage operations; blocking calls run in the
    threadpool so the event loop keeps serving other uploads.
    """

    def __init__(self, *, settings: "Settings") -> None:
        """Initialize the S3 client with configuration from settings.

        Args:
            settings: Application settings containing S3 configuration.

        Raises:
            StorageError: If boto3 is not installed.
            ValueError: If the configured part size is below the S3 minimum.
        """
        self._settings = settings
        self._part_size = int(settings.UPLOAD_PART_SIZE_BYTES or DEFAULT_PART_SIZE)
        if self._part_size < MIN_PART_SIZE:
            raise ValueError(
                f"UPLOAD_PART_SIZE_BYTES must be at least {MIN_PART_SIZE} bytes"
            )
        self._client = self._build_client(settings)

    @staticmethod
    def _build_client(settings: "Settings") -> Any:
        """Create a boto3 S3 client from settings."""
        try:
            import boto3
            from botocore.config import Config
        except ImportError as exc:
            raise StorageError(
                "boto3 and botocore are required for S3 storage backend. "
                "Install with: pip install boto3"
            ) from exc

        addressing_style = (settings.S3_ADDRESSING_STYLE or "path").strip().lower()
        config = Config(s3={"addressing_style": addressing_style})

        return boto3.client(
            "s3",
            endpoint_url=settings.S3_ENDPOINT_URL,
            region_name=settings.S3_REGION,
            aws_access_key_id=settings.S3_ACCESS_KEY_ID,
            aws_secret_access_key=settings.S3_SECRET_ACCESS_KEY,
            use_ssl=bool(settings.S3_USE_SSL),
            config=config,
        )

    @property
    def part_size(self) -> int:
        return self._part_size

    async def put_object_stream(
        self,
        *,
        bucket: str,
        object_key: str,
        body: AsyncIterable[bytes],
        attributes: ObjectAttributes,
    ) -> PutObjectResult:
        """Upload a streamed object, switching to multipart past one part."""
        params = attributes.to_s3_params()
        buffer = bytearray()
        upload_id: str | None = None
        parts: list[dict[str, Any]] = []

        try:
            async for chunk in body:
                buffer.extend(chunk)
                while len(buffer) >= self._part_size:
                    if upload_id is None:
                        upload_id = await self._create_multipart_upload(
                            bucket, object_key, params
                        )
                    payload = bytes(buffer[: self._part_size])
                    del buffer[: self._part_size]
                    parts.append(
                        await self._upload_part(
                            bucket, object_key, upload_id, len(parts) + 1, payload
                        )
                    )

            if upload_id is None:
                return await self._put_object(bucket, object_key, bytes(buffer), params)

            if buffer:
                parts.append(
                    await self._upload_part(
                        bucket, object_key, upload_id, len(parts) + 1, bytes(buffer)
                    )
                )
            return await self._complete_multipart_upload(
                bucket, object_key, upload_id, parts
            )
        except BaseException:
            if upload_id is not None:
                await self._abort_multipart_upload(bucket, object_key, upload_id)
            raise

    async def delete_object(self, *, bucket: str, object_key: str) -> None:
        """Delete an object from storage."""
        try:
            await run_in_threadpool(
                self._client.delete_object, Bucket=bucket, Key=object_key
            )
        except Exception as exc:
            raise StorageError(f"Failed to delete object: {exc}") from exc

    async def _put_object(
        self, bucket: str, object_key: str, payload: bytes, params: dict[str, Any]
    ) -> PutObjectResult:
        try:
            response = await run_in_threadpool(
                self._client.put_object,
                Bucket=bucket,
                Key=object_key,
                Body=payload,
                **params,
            )
        except Exception as exc:
            raise StorageError(f"Failed to put object: {exc}") from exc

        return PutObjectResult(
            location=self._object_url(bucket, object_key),
            etag=response.get("ETag"),
            version_id=response.get("VersionId"),
        )

    async def _create_multipart_upload(
        self, bucket: str, object_key: str, params: dict[str, Any]
    ) -> str:
        try:
            response = await run_in_threadpool(
                self._client.create_multipart_upload,
                Bucket=bucket,
                Key=object_key,
                **params,
            )
        except Exception as exc:
            raise StorageError(f"Failed to create multipart upload: {exc}") from exc

        upload_id = response.get("UploadId")
        if not upload_id:
            raise StorageError("S3 response missing UploadId")
        return str(upload_id)

    async def _upload_part(
        self,
        bucket: str,
        object_key: str,
        upload_id: str,
        part_number: int,
        payload: bytes,
    ) -> dict[str, Any]:
        try:
            response = await run_in_threadpool(
                self._client.upload_part,
                Bucket=bucket,
                Key=object_key,
                UploadId=upload_id,
                PartNumber=part_number,
                Body=payload,
            )
        except Exception as exc:
            raise StorageError(f"Failed to upload part {part_number}: {exc}") from exc

        return {"ETag": response.get("ETag"), "PartNumber": part_number}

    async def _complete_multipart_upload(
        self,
        bucket: str,
        object_key: str,
        upload_id: str,
        parts: list[dict[str, Any]],
    ) -> PutObjectResult:
        try:
            response = await run_in_threadpool(
                self._client.complete_multipart_upload,
                Bucket=bucket,
                Key=object_key,
                UploadId=upload_id,
                MultipartUpload={"Parts": parts},
            )
        except Exception as exc:
            raise StorageError(f"Failed to complete multipart upload: {exc}") from exc

        return PutObjectResult(
            location=response.get("Location") or self._object_url(bucket, object_key),
            etag=response.get("ETag"),
            version_id=response.get("VersionId"),
        )

    async def _abort_multipart_upload(
        self, bucket: str, object_key: str, upload_id: str
    ) -> None:
        # The caller is already failing; a failed abort is logged, not raised,
        # so the original error reaches the caller.
        with anyio.CancelScope(shield=True):
            try:
                await run_in_threadpool(
                    self._client.abort_multipart_upload,
                    Bucket=bucket,
                    Key=object_key,
                    UploadId=upload_id,
                )
            except Exception as exc:
                logger.warning(
                    "multipart_abort_failed bucket=%s key=%s upload_id=%s error=%s",
                    bucket,
                    object_key,
                    upload_id,
                    exc,
                    extra={
                        "extra": {
                            "bucket": bucket,
                            "key": object_key,
                            "upload_id": upload_id,
                        }
                    },
                )
                return
        logger.info(
            "multipart_aborted bucket=%s key=%s upload_id=%s",
            bucket,
            object_key,
            upload_id,
        )

    def _object_url(self, bucket: str, object_key: str) -> str:
        """Build the object URL the way the client addresses it."""
        endpoint = str(self._client.meta.endpoint_url or "").rstrip("/")
        quoted_key = quote(object_key, safe="/")
        addressing_style = (self._settings.S3_ADDRESSING_STYLE or "path").strip().lower()
        if addressing_style == "virtual" and "://" in endpoint:
            scheme, host = endpoint.split("://", 1)
            return f"{scheme}://{bucket}.{host}/{quoted_key}"
        return f"{endpoint}/{bucket}/{quoted_key}"
