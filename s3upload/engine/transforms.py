"""Fan a field out through its transform stages into parallel uploads."""

from __future__ import annotations

import asyncio
import inspect
from typing import Any, AsyncIterable, AsyncIterator, Awaitable, Callable, Sequence

from s3upload.engine.errors import FieldUploadError, TransformError
from s3upload.engine.resolvers import resolve_value
from s3upload.engine.streams import ChunkChannel, pump
from s3upload.engine.types import Stage, TransformSpec, UploadField, UploadResult

Upload = Callable[[str, AsyncIterable[bytes]], Awaitable[UploadResult]]


async def _build_stage(
    spec: TransformSpec, key: str, context: Any, field: UploadField
) -> Stage:
    try:
        stage = spec.transform(context, field)
        if inspect.isawaitable(stage):
            stage = await stage
    except Exception as exc:
        raise TransformError(key, str(exc), fieldname=field.fieldname) from exc
    if not callable(stage):
        raise TransformError(
            key, "transform must produce a stream stage", fieldname=field.fieldname
        )
    return stage


async def _prepare(
    spec: TransformSpec, index: int, context: Any, field: UploadField
) -> tuple[str, Stage]:
    key = await resolve_value(f"transforms[{index}].key", spec.key, context, field)
    if not isinstance(key, str) or not key:
        raise TransformError(
            str(key), "transform key must be a non-empty string", fieldname=field.fieldname
        )
    return key, await _build_stage(spec, key, context, field)


async def _guard(
    stream: AsyncIterable[bytes], key: str, field: UploadField
) -> AsyncIterator[bytes]:
    try:
        async for chunk in stream:
            yield chunk
    except FieldUploadError:
        raise
    except Exception as exc:
        raise TransformError(key, str(exc), fieldname=field.fieldname) from exc


async def _run_branch(
    key: str, stage: Stage, channel: ChunkChannel, field: UploadField, upload: Upload
) -> UploadResult:
    try:
        try:
            staged = stage(channel.__aiter__())
        except Exception as exc:
            raise TransformError(key, str(exc), fieldname=field.fieldname) from exc
        return await upload(key, _guard(staged, key, field))
    finally:
        channel.close()


async def run_transforms(
    transforms: Sequence[TransformSpec],
    context: Any,
    field: UploadField,
    source: AsyncIterable[bytes],
    upload: Upload,
    *,
    original_key: str | None = None,
) -> tuple[UploadResult | None, tuple[UploadResult, ...]]:
    """Upload every transformed copy of ``source`` (and optionally the original).

    Keys and stages are resolved before any byte is read. All branches then
    run concurrently and the call returns only once every branch has settled;
    the first failure in configured order is raised. Branches that succeeded
    are left in place.

    Returns:
        The original's result (or None) and the transform results in
        configured order.
    """
    prepared = await asyncio.gather(
        *(_prepare(spec, index, context, field) for index, spec in enumerate(transforms)),
        return_exceptions=True,
    )
    for outcome in prepared:
        if isinstance(outcome, BaseException):
            raise outcome

    channels = [ChunkChannel() for _ in prepared]
    jobs = [
        _run_branch(key, stage, channel, field, upload)
        for (key, stage), channel in zip(prepared, channels)
    ]
    if original_key is not None:
        original_channel = ChunkChannel()
        channels.append(original_channel)
        jobs.append(_run_branch(original_key, _identity, original_channel, field, upload))

    pumping = asyncio.create_task(pump(source, channels))
    try:
        outcomes = await asyncio.gather(*jobs, return_exceptions=True)
    finally:
        for channel in channels:
            channel.close()
        if not pumping.done():
            pumping.cancel()
        await asyncio.wait({pumping})

    for outcome in outcomes:
        if isinstance(outcome, BaseException):
            raise outcome

    results: list[UploadResult] = list(outcomes)
    original = results.pop() if original_key is not None else None
    return original, tuple(results)


def _identity(stream: AsyncIterator[bytes]) -> AsyncIterator[bytes]:
    return stream
