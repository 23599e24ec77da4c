"""Content-type resolution: fixed, sniffed from the stream, or resolved.

Sniffing order for ``AUTO_CONTENT_TYPE``: binary signatures (``filetype``),
an SVG text check, the file extension, the type the client declared, and
finally ``application/octet-stream``.
"""

from __future__ import annotations

import logging
import mimetypes
import re
from typing import Any, AsyncIterable

import filetype

from s3upload.engine.errors import ResolutionError
from s3upload.engine.options import AUTO_CONTENT_TYPE, DEFAULT_CONTENT_TYPE
from s3upload.engine.resolvers import call_resolver
from s3upload.engine.streams import PeekableStream
from s3upload.engine.types import UploadField

logger = logging.getLogger(__name__)

# Enough for every signature filetype knows about.
SNIFF_SAMPLE_SIZE = 4100

SVG_MIME_TYPE = "image/svg+xml"

_SVG_ROOT = re.compile(rb"<svg[\s>/]", re.IGNORECASE)
_XML_PROLOGUE = re.compile(
    rb"^\s*(<\?xml[^>]*>\s*)?(<!--.*?-->\s*|<!DOCTYPE[^>\[]*(\[.*?\]\s*)?>\s*)*",
    re.DOTALL,
)


def _looks_like_svg(sample: bytes) -> bool:
    text = sample.removeprefix(b"\xef\xbb\xbf")
    prologue = _XML_PROLOGUE.match(text)
    rest = text[prologue.end():] if prologue else text
    return bool(_SVG_ROOT.match(rest))


def detect_content_type(sample: bytes, field: UploadField) -> str:
    """Pick a MIME type from a leading sample and the field descriptor."""
    kind = filetype.guess(sample) if sample else None
    if kind is not None:
        return kind.mime
    if _looks_like_svg(sample):
        return SVG_MIME_TYPE
    if field.originalname:
        guessed, _ = mimetypes.guess_type(field.originalname, strict=False)
        if guessed:
            return guessed
    return field.mimetype or DEFAULT_CONTENT_TYPE


async def resolve_content_type(
    configured: Any, context: Any, field: UploadField
) -> tuple[str, AsyncIterable[bytes]]:
    """Return the content type and the stream to upload from.

    The returned stream carries every byte of the field, including any bytes
    read while sniffing.
    """
    if configured is None:
        return DEFAULT_CONTENT_TYPE, field.stream

    if configured is AUTO_CONTENT_TYPE:
        stream = PeekableStream(field.stream)
        try:
            sample = await stream.peek(SNIFF_SAMPLE_SIZE)
            content_type = detect_content_type(sample, field)
        except Exception as exc:
            raise ResolutionError(
                "content_type", str(exc), fieldname=field.fieldname
            ) from exc
        logger.debug(
            "content_type_detected field=%s content_type=%s sample_bytes=%s",
            field.fieldname,
            content_type,
            len(sample),
        )
        return content_type, stream

    if not callable(configured):
        return configured, field.stream

    outcome = await call_resolver("content_type", configured, context, field)
    replacement = None
    if isinstance(outcome, tuple):
        if len(outcome) != 2:
            raise ResolutionError(
                "content_type",
                "resolver must return a MIME type or a (MIME type, stream) pair",
                fieldname=field.fieldname,
            )
        outcome, replacement = outcome
    if not isinstance(outcome, str) or not outcome:
        raise ResolutionError(
            "content_type",
            "resolver must produce a non-empty string",
            fieldname=field.fieldname,
        )
    return outcome, replacement if replacement is not None else field.stream
