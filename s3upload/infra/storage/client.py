"""Storage client protocol and data types.

This module defines the abstract interface the upload engine needs from an
object storage backend: a streaming put and a delete.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, AsyncIterable, Mapping, Protocol


class StorageError(RuntimeError):
    """Raised when object storage operations fail."""


@dataclass(frozen=True, slots=True)
class ObjectAttributes:
    """Per-object attributes sent along with a put request."""

    content_type: str
    acl: str | None = None
    metadata: Mapping[str, str] | None = None
    cache_control: str | None = None
    content_disposition: str | None = None
    content_encoding: str | None = None
    storage_class: str | None = None
    server_side_encryption: str | None = None
    sse_kms_key_id: str | None = None

    def to_s3_params(self) -> dict[str, Any]:
        """Map the attributes onto S3 request parameter names.

        Unset attributes are left out so that the service applies its own
        defaults.
        """
        params: dict[str, Any] = {"ContentType": self.content_type}
        if self.acl:
            params["ACL"] = self.acl
        if self.metadata:
            params["Metadata"] = dict(self.metadata)
        if self.cache_control:
            params["CacheControl"] = self.cache_control
        if self.content_disposition:
            params["ContentDisposition"] = self.content_disposition
        if self.content_encoding:
            params["ContentEncoding"] = self.content_encoding
        if self.storage_class:
            params["StorageClass"] = self.storage_class
        if self.server_side_encryption:
            params["ServerSideEncryption"] = self.server_side_encryption
        if self.sse_kms_key_id:
            params["SSEKMSKeyId"] = self.sse_kms_key_id
        return params


@dataclass(frozen=True, slots=True)
class PutObjectResult:
    """Response of a completed streaming put."""

    location: str | None
    etag: str | None
    version_id: str | None = None


class StorageClient(Protocol):
    """Protocol defining the interface for object storage backends.

    Implementations must provide all methods defined here.
    Currently supports S3-compatible storage services.
    """

    async def put_object_stream(
        self,
        *,
        bucket: str,
        object_key: str,
        body: AsyncIterable[bytes],
        attributes: ObjectAttributes,
    ) -> PutObjectResult:
        """Upload an object whose content arrives as a byte stream.

        Args:
            bucket: Target bucket name.
            object_key: Object key (path) in the bucket.
            body: Async iterable producing the object content. It is read
                exactly once, front to back.
            attributes: Content type, ACL, metadata and friends.

        Returns:
            PutObjectResult with the object's location, ETag and version id.

        Raises:
            StorageError: If the upload fails.
        """
        ...

    async def delete_object(self, *, bucket: str, object_key: str) -> None:
        """Delete an object from storage.

        Args:
            bucket: Target bucket name.
            object_key: Object key (path) to delete.

        Raises:
            StorageError: If the operation fails.
        """
        ...
