"""Per-field resolution of the fixed-or-function options."""

from __future__ import annotations

import asyncio
import inspect
import secrets
from typing import Any

from s3upload.engine.errors import ResolutionError
from s3upload.engine.options import StorageOptions
from s3upload.engine.types import UploadField

# Options resolved for every object, in the order they are reported.
OBJECT_OPTIONS: tuple[str, ...] = (
    "bucket",
    "key",
    "acl",
    "metadata",
    "cache_control",
    "content_disposition",
    "content_encoding",
    "server_side_encryption",
    "sse_kms_key_id",
    "storage_class",
)


def random_key() -> str:
    """Default object key: 16 random bytes, hex encoded."""
    return secrets.token_hex(16)


async def call_resolver(option: str, resolver: Any, context: Any, field: UploadField) -> Any:
    """Invoke a resolver and await it if it returned an awaitable.

    Raises:
        ResolutionError: Whatever the resolver raised, tagged with the option.
    """
    try:
        value = resolver(context, field)
        if inspect.isawaitable(value):
            value = await value
    except Exception as exc:
        raise ResolutionError(option, str(exc), fieldname=field.fieldname) from exc
    return value


async def resolve_value(
    option: str, configured: Any, context: Any, field: UploadField
) -> Any:
    if callable(configured):
        return await call_resolver(option, configured, context, field)
    return configured


async def resolve_object_params(
    options: StorageOptions, context: Any, field: UploadField
) -> dict[str, Any]:
    """Resolve bucket, key and the object attributes concurrently.

    Every resolver must finish before the upload can start; the first failure
    is raised once all of them have settled.
    """
    configured = {name: getattr(options, name) for name in OBJECT_OPTIONS}
    if configured["key"] is None:
        configured["key"] = lambda _context, _field: random_key()

    outcomes = await asyncio.gather(
        *(
            resolve_value(name, value, context, field)
            for name, value in configured.items()
        ),
        return_exceptions=True,
    )
    for outcome in outcomes:
        if isinstance(outcome, BaseException):
            raise outcome

    resolved = dict(zip(configured, outcomes))
    _check_resolved(resolved, field)
    return resolved


def _check_resolved(resolved: dict[str, Any], field: UploadField) -> None:
    for name in ("bucket", "key"):
        if not isinstance(resolved[name], str) or not resolved[name]:
            raise ResolutionError(
                name, "resolver must produce a non-empty string", fieldname=field.fieldname
            )
    metadata = resolved["metadata"]
    if metadata is not None and not hasattr(metadata, "items"):
        raise ResolutionError(
            "metadata", "resolver must produce a mapping", fieldname=field.fieldname
        )
