from .base import BaseService, ServiceError
from .upload_service import (
    ObjectNotManagedError,
    ObjectRef,
    StorageBackendNotConfiguredError,
    UploadService,
    build_storage_engine,
)

__all__ = [
    "BaseService",
    "ServiceError",
    "ObjectNotManagedError",
    "ObjectRef",
    "StorageBackendNotConfiguredError",
    "UploadService",
    "build_storage_engine",
]
