"""Value types exchanged between the host, the engine and its callers."""

from __future__ import annotations

from dataclasses import dataclass, fields
from typing import Any, AsyncIterable, AsyncIterator, Callable, Mapping

# A transform stage turns the incoming byte stream into the bytes to store.
Stage = Callable[[AsyncIterator[bytes]], AsyncIterable[bytes]]


@dataclass(slots=True)
class UploadField:
    """A file part handed over by the multipart host.

    ``stream`` yields the part's content and can be consumed once.
    """

    fieldname: str
    stream: AsyncIterable[bytes]
    originalname: str | None = None
    encoding: str | None = None
    mimetype: str | None = None


@dataclass(frozen=True, slots=True)
class TransformSpec:
    """A named transform stage.

    ``key`` is the object key for the transformed copy, either fixed or a
    resolver ``(context, field) -> str``. ``transform`` is a resolver
    ``(context, field) -> Stage``.
    """

    key: str | Callable[..., Any]
    transform: Callable[..., Any]


@dataclass(frozen=True, slots=True)
class UploadResult:
    """Everything known about one stored object."""

    bucket: str
    key: str
    size: int
    content_type: str
    acl: str | None = None
    metadata: Mapping[str, str] | None = None
    cache_control: str | None = None
    content_disposition: str | None = None
    content_encoding: str | None = None
    storage_class: str | None = None
    server_side_encryption: str | None = None
    sse_kms_key_id: str | None = None
    location: str | None = None
    etag: str | None = None
    version_id: str | None = None


_RESULT_FIELDS = tuple(f.name for f in fields(UploadResult))


@dataclass(frozen=True, slots=True)
class StoredFile:
    """Outcome of storing one field.

    Without transforms the stored object's attributes (``bucket``, ``key``,
    ``size``, ``etag``...) sit directly on the record. With transforms
    ``transforms`` lists one result per transform in configured order and the
    object attributes stay ``None``, unless the untransformed original was
    stored as well.
    """

    fieldname: str
    originalname: str | None = None
    encoding: str | None = None
    mimetype: str | None = None
    bucket: str | None = None
    key: str | None = None
    size: int | None = None
    content_type: str | None = None
    acl: str | None = None
    metadata: Mapping[str, str] | None = None
    cache_control: str | None = None
    content_disposition: str | None = None
    content_encoding: str | None = None
    storage_class: str | None = None
    server_side_encryption: str | None = None
    sse_kms_key_id: str | None = None
    location: str | None = None
    etag: str | None = None
    version_id: str | None = None
    transforms: tuple[UploadResult, ...] | None = None

    @classmethod
    def from_results(
        cls,
        field: UploadField,
        upload: UploadResult | None = None,
        transforms: tuple[UploadResult, ...] | None = None,
    ) -> StoredFile:
        values: dict[str, Any] = {}
        if upload is not None:
            values = {name: getattr(upload, name) for name in _RESULT_FIELDS}
        return cls(
            fieldname=field.fieldname,
            originalname=field.originalname,
            encoding=field.encoding,
            mimetype=field.mimetype,
            transforms=transforms,
            **values,
        )

    def result(self) -> UploadResult | None:
        """The object stored under the field's own key, if any."""
        if self.bucket is None or self.key is None:
            return None
        return UploadResult(**{name: getattr(self, name) for name in _RESULT_FIELDS})

    def objects(self) -> list[UploadResult]:
        """Every object stored for this field."""
        stored: list[UploadResult] = []
        own = self.result()
        if own is not None:
            stored.append(own)
        if self.transforms:
            stored.extend(self.transforms)
        return stored
