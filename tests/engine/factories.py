"""Builders shared by the engine tests."""

from __future__ import annotations

from pathlib import Path
from typing import AsyncIterable, AsyncIterator, Iterable

from s3upload.engine.types import UploadField

FILES_DIR = Path(__file__).resolve().parent.parent / "files"


async def iter_chunks(chunks: Iterable[bytes]) -> AsyncIterator[bytes]:
    for chunk in chunks:
        yield chunk


async def failing_stream(chunks: Iterable[bytes], exc: Exception) -> AsyncIterator[bytes]:
    for chunk in chunks:
        yield chunk
    raise exc


async def collect(stream: AsyncIterable[bytes]) -> bytes:
    payload = bytearray()
    async for chunk in stream:
        payload.extend(chunk)
    return bytes(payload)


def make_field(
    data: bytes | list[bytes],
    *,
    fieldname: str = "image",
    originalname: str | None = None,
    mimetype: str | None = None,
    chunk_size: int | None = None,
) -> UploadField:
    if isinstance(data, bytes):
        if chunk_size:
            data = [data[i : i + chunk_size] for i in range(0, len(data), chunk_size)]
        else:
            data = [data]
    return UploadField(
        fieldname=fieldname,
        stream=iter_chunks(data),
        originalname=originalname,
        encoding="7bit",
        mimetype=mimetype,
    )


def file_field(name: str, **kwargs) -> UploadField:
    kwargs.setdefault("originalname", name)
    return make_field((FILES_DIR / name).read_bytes(), **kwargs)
