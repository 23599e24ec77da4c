"""The storage engine: streams one file field at a time into S3."""

from __future__ import annotations

import asyncio
import logging
import time
from functools import partial
from typing import Any, AsyncIterable, AsyncIterator

from s3upload.engine.content_type import resolve_content_type
from s3upload.engine.errors import FieldUploadError, RemovalError, UploadError
from s3upload.engine.options import StorageOptions
from s3upload.engine.resolvers import resolve_object_params, resolve_value
from s3upload.engine.streams import CountingStream
from s3upload.engine.transforms import run_transforms
from s3upload.engine.types import StoredFile, UploadField, UploadResult
from s3upload.infra.observability.metrics import REMOVALS, UPLOADED_BYTES, UPLOADS
from s3upload.infra.storage.client import ObjectAttributes, StorageError

logger = logging.getLogger(__name__)


class S3Storage:
    """Storage engine handed to a multipart host.

    Options are given as keyword arguments (see ``StorageOptions``); each one
    is a fixed value or a resolver ``(context, field)``. Invalid options raise
    ``TypeError`` here, never later.

    The host calls ``handle_file`` once per file field and ``remove_file`` to
    roll back a field that was stored before the request failed.
    """

    def __init__(self, s3: Any = None, **options: Any) -> None:
        self._options = StorageOptions(s3=s3, **options)

    @property
    def options(self) -> StorageOptions:
        return self._options

    async def handle_file(self, context: Any, field: UploadField) -> StoredFile:
        """Store one field and describe what was stored.

        Returns or raises exactly once. Cancellation of the calling task
        cancels the upload in flight.

        Raises:
            ResolutionError: A content-type, key or attribute resolver failed.
            TransformError: A transform could not be built or failed mid-stream.
            UploadError: The storage client failed.
        """
        started = time.perf_counter()
        logger.debug(
            "upload_started field=%s originalname=%s mimetype=%s",
            field.fieldname,
            field.originalname,
            field.mimetype,
        )
        try:
            stored = await self._store(context, field)
        except FieldUploadError as exc:
            UPLOADS.labels("failed").inc()
            logger.warning(
                "upload_failed field=%s error=%s",
                field.fieldname,
                exc,
                extra={
                    "extra": {
                        "field": field.fieldname,
                        "originalname": field.originalname,
                        "error_type": type(exc).__name__,
                    }
                },
            )
            raise
        except asyncio.CancelledError:
            UPLOADS.labels("cancelled").inc()
            logger.info("upload_cancelled field=%s", field.fieldname)
            raise

        UPLOADS.labels("stored").inc()
        for result in stored.objects():
            logger.info(
                "upload_stored field=%s bucket=%s key=%s size=%s duration_ms=%.3f",
                field.fieldname,
                result.bucket,
                result.key,
                result.size,
                round((time.perf_counter() - started) * 1000, 3),
                extra={
                    "extra": {
                        "field": field.fieldname,
                        "bucket": result.bucket,
                        "key": result.key,
                        "size": result.size,
                        "content_type": result.content_type,
                    }
                },
            )
        return stored

    async def _store(self, context: Any, field: UploadField) -> StoredFile:
        options = self._options
        content_type, stream = await resolve_content_type(
            options.content_type, context, field
        )
        params = await resolve_object_params(options, context, field)
        metadata = params["metadata"]
        attributes = ObjectAttributes(
            content_type=content_type,
            acl=params["acl"],
            metadata=dict(metadata) if metadata is not None else None,
            cache_control=params["cache_control"],
            content_disposition=params["content_disposition"],
            content_encoding=params["content_encoding"],
            storage_class=params["storage_class"],
            server_side_encryption=params["server_side_encryption"],
            sse_kms_key_id=params["sse_kms_key_id"],
        )
        upload = partial(self._upload, field, params["bucket"], attributes)

        transform = False
        if options.transforms_enabled:
            transform = bool(
                await resolve_value(
                    "should_transform", options.should_transform, context, field
                )
            )

        if not transform:
            result = await upload(params["key"], stream)
            return StoredFile.from_results(field, upload=result)

        original, transformed = await run_transforms(
            options.transforms,
            context,
            field,
            stream,
            upload,
            original_key=params["key"] if options.upload_original else None,
        )
        return StoredFile.from_results(field, upload=original, transforms=transformed)

    async def _upload(
        self,
        field: UploadField,
        bucket: str,
        attributes: ObjectAttributes,
        key: str,
        stream: AsyncIterable[bytes],
    ) -> UploadResult:
        body = CountingStream(_guard_body(stream, field, bucket, key))
        try:
            response = await self._options.s3.put_object_stream(
                bucket=bucket, object_key=key, body=body, attributes=attributes
            )
        except StorageError as exc:
            raise UploadError(bucket, key, str(exc), fieldname=field.fieldname) from exc

        UPLOADED_BYTES.inc(body.bytes_read)
        return UploadResult(
            bucket=bucket,
            key=key,
            size=body.bytes_read,
            content_type=attributes.content_type,
            acl=attributes.acl,
            metadata=attributes.metadata,
            cache_control=attributes.cache_control,
            content_disposition=attributes.content_disposition,
            content_encoding=attributes.content_encoding,
            storage_class=attributes.storage_class,
            server_side_encryption=attributes.server_side_encryption,
            sse_kms_key_id=attributes.sse_kms_key_id,
            location=response.location,
            etag=response.etag,
            version_id=response.version_id,
        )

    async def remove_file(self, context: Any, file: StoredFile | UploadResult) -> None:
        """Delete every object stored for ``file``.

        ``file`` is a ``StoredFile`` or any single object carrying ``bucket``
        and ``key``. All deletions are attempted; the first failure is raised
        afterwards.

        Raises:
            RemovalError: The storage client could not delete an object.
        """
        objects = file.objects() if isinstance(file, StoredFile) else [file]
        failure: RemovalError | None = None
        for result in objects:
            try:
                await self._options.s3.delete_object(
                    bucket=result.bucket, object_key=result.key
                )
            except StorageError as exc:
                REMOVALS.labels("failed").inc()
                logger.warning(
                    "upload_remove_failed bucket=%s key=%s error=%s",
                    result.bucket,
                    result.key,
                    exc,
                )
                if failure is None:
                    failure = RemovalError(result.bucket, result.key, str(exc))
                    failure.__cause__ = exc
                continue
            REMOVALS.labels("removed").inc()
            logger.info("upload_removed bucket=%s key=%s", result.bucket, result.key)
        if failure is not None:
            raise failure


async def _guard_body(
    stream: AsyncIterable[bytes], field: UploadField, bucket: str, key: str
) -> AsyncIterator[bytes]:
    try:
        async for chunk in stream:
            yield chunk
    except FieldUploadError:
        raise
    except Exception as exc:
        raise UploadError(
            bucket, key, f"Failed to read upload body: {exc}", fieldname=field.fieldname
        ) from exc
