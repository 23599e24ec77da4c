"""Object storage abstraction layer.

This module provides a protocol-based abstraction for object storage backends,
enabling support for S3, MinIO, and other S3-compatible services.
"""

from .client import (
    ObjectAttributes,
    PutObjectResult,
    StorageClient,
    StorageError,
)

__all__ = [
    "ObjectAttributes",
    "PutObjectResult",
    "StorageClient",
    "StorageError",
]
