from s3upload.engine.errors import (
    FieldUploadError,
    RemovalError,
    ResolutionError,
    TransformError,
    UploadError,
)
from s3upload.engine.options import AUTO_CONTENT_TYPE, StorageOptions
from s3upload.engine.storage import S3Storage
from s3upload.engine.types import StoredFile, TransformSpec, UploadField, UploadResult

__all__ = [
    "AUTO_CONTENT_TYPE",
    "FieldUploadError",
    "RemovalError",
    "ResolutionError",
    "S3Storage",
    "StorageOptions",
    "StoredFile",
    "TransformError",
    "TransformSpec",
    "UploadError",
    "UploadField",
    "UploadResult",
]
