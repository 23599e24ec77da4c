"""Streaming ``multipart/form-data`` receiver driving a storage engine.

The body is parsed incrementally with ``python_multipart``. Every file part is
handed to the engine as soon as its headers are complete and its bytes flow
through a bounded channel, so a file is never held in memory as a whole.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Any, AsyncIterable, Callable, Collection

import anyio
from python_multipart.exceptions import MultipartParseError
from python_multipart.multipart import MultipartParser, parse_options_header

from s3upload.engine.errors import RemovalError
from s3upload.engine.streams import ChunkChannel
from s3upload.engine.types import StoredFile, UploadField

logger = logging.getLogger(__name__)

DEFAULT_MAX_FIELD_SIZE = 1024 * 1024
DEFAULT_FILE_ENCODING = "7bit"
DEFAULT_FILE_MIMETYPE = "application/octet-stream"


class MultipartError(ValueError):
    """Raised when the request body is not an acceptable multipart form."""


@dataclass(slots=True)
class ReceivedForm:
    """Text fields and stored files of one multipart request.

    A text field sent more than once maps to the list of its values.
    """

    fields: dict[str, str | list[str]] = field(default_factory=dict)
    files: list[StoredFile] = field(default_factory=list)

    def add_field(self, name: str, value: str) -> None:
        current = self.fields.get(name)
        if current is None:
            self.fields[name] = value
        elif isinstance(current, list):
            current.append(value)
        else:
            self.fields[name] = [current, value]


@dataclass(slots=True)
class _Part:
    headers: dict[str, str] = field(default_factory=dict)
    name: str | None = None
    channel: ChunkChannel | None = None
    text: bytearray = field(default_factory=bytearray)


class _Events:
    """Collects parser callbacks so they can be replayed asynchronously."""

    def __init__(self) -> None:
        self.queue: list[tuple[str, bytes]] = []
        self.header_field = bytearray()
        self.header_value = bytearray()

    def callbacks(self) -> dict[str, Callable[..., None]]:
        def emit(name: str) -> Callable[[], None]:
            return lambda: self.queue.append((name, b""))

        def on_part_data(data: bytes, start: int, end: int) -> None:
            self.queue.append(("part_data", data[start:end]))

        def on_header_field(data: bytes, start: int, end: int) -> None:
            self.header_field.extend(data[start:end])

        def on_header_value(data: bytes, start: int, end: int) -> None:
            self.header_value.extend(data[start:end])

        def on_header_end() -> None:
            self.queue.append(
                (
                    "header",
                    bytes(self.header_field) + b"\x00" + bytes(self.header_value),
                )
            )
            self.header_field.clear()
            self.header_value.clear()

        return {
            "on_part_begin": emit("part_begin"),
            "on_part_data": on_part_data,
            "on_part_end": emit("part_end"),
            "on_header_field": on_header_field,
            "on_header_value": on_header_value,
            "on_header_end": on_header_end,
            "on_headers_finished": emit("headers_finished"),
            "on_end": emit("end"),
        }

    def drain(self) -> list[tuple[str, bytes]]:
        events, self.queue = self.queue, []
        return events


def _boundary_of(content_type: str | None) -> bytes:
    media_type, params = parse_options_header(content_type)
    if media_type != b"multipart/form-data":
        raise MultipartError("Expected a multipart/form-data body")
    boundary = params.get(b"boundary")
    if not boundary:
        raise MultipartError("Missing multipart boundary")
    return boundary


class MultipartReceiver:
    """Parses a multipart body and stores its file parts through ``storage``.

    Args:
        storage: Engine exposing ``handle_file`` and ``remove_file``.
        file_fields: Field names allowed to carry files; ``None`` allows any.
        max_files: Upper bound on file parts per request.
        max_field_size: Upper bound in bytes on a single text field.
    """

    def __init__(
        self,
        storage: Any,
        *,
        file_fields: Collection[str] | None = None,
        max_files: int | None = None,
        max_field_size: int = DEFAULT_MAX_FIELD_SIZE,
    ) -> None:
        self._storage = storage
        self._file_fields = frozenset(file_fields) if file_fields is not None else None
        self._max_files = max_files
        self._max_field_size = max_field_size

    async def receive(
        self,
        content_type: str | None,
        body: AsyncIterable[bytes],
        context: Any = None,
    ) -> ReceivedForm:
        """Consume ``body`` and return its text fields and stored files.

        On any failure, including cancellation, uploads in flight are
        cancelled, files already stored are removed, and the error is
        re-raised.

        Raises:
            MultipartError: The body is malformed or breaks a limit.
            FieldUploadError: The engine failed to store a file.
        """
        boundary = _boundary_of(content_type)
        events = _Events()
        parser = MultipartParser(boundary, events.callbacks())
        form = ReceivedForm()
        tasks: list[asyncio.Task[StoredFile]] = []
        part = _Part()
        ended = False

        try:
            async for chunk in body:
                try:
                    parser.write(chunk)
                except MultipartParseError as exc:
                    raise MultipartError(str(exc)) from exc

                for kind, data in events.drain():
                    if kind == "part_begin":
                        part = _Part()
                    elif kind == "header":
                        name, _, value = data.partition(b"\x00")
                        part.headers[name.decode("latin-1").lower()] = value.decode(
                            "latin-1"
                        )
                    elif kind == "headers_finished":
                        self._start_part(part, context, tasks)
                    elif kind == "part_data":
                        await self._feed(part, data)
                    elif kind == "part_end":
                        await self._end_part(part, form)
                    elif kind == "end":
                        ended = True
                _raise_failed(tasks)
                if ended:
                    break

            if not ended:
                raise MultipartError("Unexpected end of multipart body")
            form.files.extend(await asyncio.gather(*tasks))
        except BaseException:
            if part.channel is not None:
                part.channel.close()
            await self._abandon(context, tasks)
            raise

        logger.debug(
            "multipart_received fields=%s files=%s", len(form.fields), len(form.files)
        )
        return form

    def _start_part(
        self, part: _Part, context: Any, tasks: list[asyncio.Task[StoredFile]]
    ) -> None:
        disposition, params = parse_options_header(part.headers.get("content-disposition"))
        if disposition != b"form-data" or b"name" not in params:
            raise MultipartError("Part is missing a form-data Content-Disposition")
        part.name = params[b"name"].decode("utf-8", errors="replace")

        if b"filename" not in params:
            return

        if self._file_fields is not None and part.name not in self._file_fields:
            raise MultipartError(f"Unexpected file field '{part.name}'")
        if self._max_files is not None and len(tasks) >= self._max_files:
            raise MultipartError(f"Too many files; at most {self._max_files} allowed")

        part.channel = ChunkChannel()
        upload_field = UploadField(
            fieldname=part.name,
            stream=part.channel,
            originalname=params[b"filename"].decode("utf-8", errors="replace"),
            encoding=part.headers.get("content-transfer-encoding") or DEFAULT_FILE_ENCODING,
            mimetype=part.headers.get("content-type") or DEFAULT_FILE_MIMETYPE,
        )
        tasks.append(asyncio.create_task(self._store(context, upload_field, part.channel)))

    async def _store(
        self, context: Any, upload_field: UploadField, channel: ChunkChannel
    ) -> StoredFile:
        try:
            return await self._storage.handle_file(context, upload_field)
        finally:
            channel.close()

    async def _feed(self, part: _Part, data: bytes) -> None:
        if part.channel is not None:
            await part.channel.send(data)
            return
        part.text.extend(data)
        if len(part.text) > self._max_field_size:
            raise MultipartError(
                f"Field '{part.name}' exceeds {self._max_field_size} bytes"
            )

    async def _end_part(self, part: _Part, form: ReceivedForm) -> None:
        if part.channel is not None:
            await part.channel.finish()
            return
        if part.name is not None:
            form.add_field(part.name, part.text.decode("utf-8", errors="replace"))

    async def _abandon(self, context: Any, tasks: list[asyncio.Task[StoredFile]]) -> None:
        with anyio.CancelScope(shield=True):
            for task in tasks:
                task.cancel()
            outcomes = await asyncio.gather(*tasks, return_exceptions=True)
            for outcome in outcomes:
                if not isinstance(outcome, StoredFile):
                    continue
                try:
                    await self._storage.remove_file(context, outcome)
                except RemovalError as exc:
                    logger.warning(
                        "multipart_rollback_failed field=%s error=%s",
                        outcome.fieldname,
                        exc,
                    )


def _raise_failed(tasks: list[asyncio.Task[StoredFile]]) -> None:
    for task in tasks:
        if task.done() and not task.cancelled() and task.exception() is not None:
            raise task.exception()  # type: ignore[misc]
