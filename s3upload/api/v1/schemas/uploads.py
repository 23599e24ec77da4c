"""Pydantic schemas for upload API endpoints."""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field


class UploadedObjectOut(BaseModel):
    """One object written to storage."""

    model_config = ConfigDict(from_attributes=True)

    bucket: str
    key: str
    size: int
    content_type: str
    acl: str | None = None
    metadata: dict[str, str] | None = None
    cache_control: str | None = None
    content_disposition: str | None = None
    content_encoding: str | None = None
    storage_class: str | None = None
    server_side_encryption: str | None = None
    sse_kms_key_id: str | None = None
    location: str | None = None
    etag: str | None = None
    version_id: str | None = None


class StoredFileOut(BaseModel):
    """A file field and the object(s) stored for it.

    Without transforms the stored object is described inline; with
    transforms each copy is listed under ``transforms``.
    """

    model_config = ConfigDict(from_attributes=True)

    fieldname: str
    originalname: str | None = None
    encoding: str | None = None
    mimetype: str | None = None
    bucket: str | None = None
    key: str | None = None
    size: int | None = None
    content_type: str | None = None
    acl: str | None = None
    metadata: dict[str, str] | None = None
    cache_control: str | None = None
    content_disposition: str | None = None
    content_encoding: str | None = None
    storage_class: str | None = None
    server_side_encryption: str | None = None
    sse_kms_key_id: str | None = None
    location: str | None = None
    etag: str | None = None
    version_id: str | None = None
    transforms: list[UploadedObjectOut] | None = None


class UploadFormOut(BaseModel):
    """Response body for a received multipart form."""

    fields: dict[str, str | list[str]] = Field(default_factory=dict)
    files: list[StoredFileOut] = Field(default_factory=list)
