"""Errors raised by the upload engine.

Configuration problems are reported as ``TypeError`` at construction time;
everything that goes wrong while a field is being stored derives from
``FieldUploadError``.
"""

from __future__ import annotations


class FieldUploadError(Exception):
    """Raised when a single field could not be stored."""

    def __init__(self, message: str, *, fieldname: str | None = None) -> None:
        super().__init__(message)
        self.fieldname = fieldname


class ResolutionError(FieldUploadError):
    """Raised when a content-type, key or metadata resolver fails."""

    def __init__(self, option: str, message: str, *, fieldname: str | None = None) -> None:
        super().__init__(f"Failed to resolve '{option}': {message}", fieldname=fieldname)
        self.option = option


class TransformError(FieldUploadError):
    """Raised when a transform cannot be built or its stage fails mid-stream."""

    def __init__(
        self, transform_key: str, message: str, *, fieldname: str | None = None
    ) -> None:
        super().__init__(
            f"Transform '{transform_key}' failed: {message}", fieldname=fieldname
        )
        self.transform_key = transform_key


class UploadError(FieldUploadError):
    """Raised when the storage client rejects or fails an upload."""

    def __init__(
        self, bucket: str, key: str, message: str, *, fieldname: str | None = None
    ) -> None:
        super().__init__(
            f"Failed to upload '{key}' to bucket '{bucket}': {message}",
            fieldname=fieldname,
        )
        self.bucket = bucket
        self.key = key


class RemovalError(Exception):
    """Raised when a previously stored object cannot be deleted."""

    def __init__(self, bucket: str, key: str, message: str) -> None:
        super().__init__(f"Failed to remove '{key}' from bucket '{bucket}': {message}")
        self.bucket = bucket
        self.key = key
