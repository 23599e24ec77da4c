"""Engine configuration and its construction-time validation.

Every option is either a fixed value or a resolver ``(context, field)``
returning the value (directly or as an awaitable). Type problems surface as
``TypeError`` when the options are built, before any upload is attempted.
"""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field
from typing import Any, Callable

from s3upload.engine.types import TransformSpec


class _AutoContentType:
    """Sentinel asking the engine to sniff the content type from the stream."""

    _instance: "_AutoContentType | None" = None

    def __new__(cls) -> "_AutoContentType":
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __repr__(self) -> str:
        return "AUTO_CONTENT_TYPE"


AUTO_CONTENT_TYPE = _AutoContentType()

DEFAULT_ACL = "private"
DEFAULT_CONTENT_TYPE = "application/octet-stream"
DEFAULT_STORAGE_CLASS = "STANDARD"

# Options whose fixed form must be a string.
STRING_OPTIONS: tuple[str, ...] = (
    "acl",
    "cache_control",
    "content_disposition",
    "content_encoding",
    "server_side_encryption",
    "sse_kms_key_id",
    "storage_class",
)


def _is_fixed_or_resolver(value: Any, expected: type | tuple[type, ...]) -> bool:
    return callable(value) or isinstance(value, expected)


@dataclass(frozen=True)
class StorageOptions:
    s3: Any
    bucket: str | Callable[..., Any]
    key: str | Callable[..., Any] | None = None
    acl: str | Callable[..., Any] | None = DEFAULT_ACL
    content_type: Any = DEFAULT_CONTENT_TYPE
    metadata: Mapping[str, str] | Callable[..., Any] | None = None
    cache_control: str | Callable[..., Any] | None = None
    content_disposition: str | Callable[..., Any] | None = None
    content_encoding: str | Callable[..., Any] | None = None
    server_side_encryption: str | Callable[..., Any] | None = None
    sse_kms_key_id: str | Callable[..., Any] | None = None
    storage_class: str | Callable[..., Any] | None = DEFAULT_STORAGE_CLASS
    should_transform: bool | Callable[..., Any] = False
    transforms: tuple[TransformSpec, ...] = field(default_factory=tuple)
    upload_original: bool = False

    def __post_init__(self) -> None:
        if self.s3 is None:
            raise TypeError("Expected s3 to be a storage client")
        for method in ("put_object_stream", "delete_object"):
            if not callable(getattr(self.s3, method, None)):
                raise TypeError(f"Expected s3 to provide a {method}() method")

        if self.bucket is None:
            raise TypeError("bucket is required")
        if not _is_fixed_or_resolver(self.bucket, str):
            raise TypeError("Expected bucket to be a string or a function")

        if self.key is not None and not _is_fixed_or_resolver(self.key, str):
            raise TypeError("Expected key to be a string or a function")

        if self.content_type is not None and not (
            self.content_type is AUTO_CONTENT_TYPE
            or _is_fixed_or_resolver(self.content_type, str)
        ):
            raise TypeError(
                "Expected content_type to be a string, AUTO_CONTENT_TYPE or a function"
            )

        for name in STRING_OPTIONS:
            value = getattr(self, name)
            if value is not None and not _is_fixed_or_resolver(value, str):
                raise TypeError(f"Expected {name} to be a string or a function")

        if self.metadata is not None and not _is_fixed_or_resolver(
            self.metadata, Mapping
        ):
            raise TypeError("Expected metadata to be a mapping or a function")

        # bool is checked exactly: 0/1 and other truthy values are rejected
        if not (
            callable(self.should_transform) or type(self.should_transform) is bool
        ):
            raise TypeError("Expected should_transform to be a boolean or a function")
        if type(self.upload_original) is not bool:
            raise TypeError("Expected upload_original to be a boolean")

        object.__setattr__(self, "transforms", _coerce_transforms(self.transforms))

    @property
    def transforms_enabled(self) -> bool:
        return bool(self.transforms) and self.should_transform is not False


def _coerce_transforms(raw: Any) -> tuple[TransformSpec, ...]:
    if raw is None:
        return ()
    if isinstance(raw, (str, bytes)) or not isinstance(raw, Sequence):
        raise TypeError("Expected transforms to be a sequence")

    specs: list[TransformSpec] = []
    for index, item in enumerate(raw):
        if isinstance(item, Mapping):
            item = TransformSpec(key=item.get("key"), transform=item.get("transform"))
        if not isinstance(item, TransformSpec):
            raise TypeError(f"Expected transforms[{index}] to be a TransformSpec")
        if not _is_fixed_or_resolver(item.key, str):
            raise TypeError(
                f"Expected transforms[{index}].key to be a string or a function"
            )
        if not callable(item.transform):
            raise TypeError(f"Expected transforms[{index}].transform to be a function")
        specs.append(item)
    return tuple(specs)
