"""Async byte-stream building blocks used by the engine and the host.

All of them pull from their source on demand, so the consumer at the end of
the chain (normally the storage client) sets the pace.
"""

from __future__ import annotations

import asyncio
from typing import AsyncIterable, AsyncIterator, Sequence

DEFAULT_CHANNEL_CHUNKS = 8

_EOF = object()


class _Failure:
    __slots__ = ("exc",)

    def __init__(self, exc: BaseException) -> None:
        self.exc = exc


class ChunkChannel:
    """Bounded single-producer/single-consumer queue of byte chunks.

    ``send`` blocks while the queue is full. Once the consumer calls
    ``close`` every buffered chunk is dropped and later sends are ignored,
    so a producer never waits on a consumer that has gone away.
    """

    def __init__(self, max_chunks: int = DEFAULT_CHANNEL_CHUNKS) -> None:
        self._queue: asyncio.Queue[object] = asyncio.Queue(maxsize=max_chunks)
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    async def send(self, chunk: bytes) -> None:
        if self._closed or not chunk:
            return
        await self._queue.put(chunk)

    async def finish(self) -> None:
        if not self._closed:
            await self._queue.put(_EOF)

    async def fail(self, exc: BaseException) -> None:
        if not self._closed:
            await self._queue.put(_Failure(exc))

    def close(self) -> None:
        self._closed = True
        while True:
            try:
                self._queue.get_nowait()
            except asyncio.QueueEmpty:
                break

    async def __aiter__(self) -> AsyncIterator[bytes]:
        try:
            while True:
                item = await self._queue.get()
                if item is _EOF:
                    return
                if isinstance(item, _Failure):
                    raise item.exc
                yield item  # type: ignore[misc]
        finally:
            self.close()


class PeekableStream:
    """Wraps a byte stream so a prefix can be inspected and then replayed."""

    def __init__(self, source: AsyncIterable[bytes]) -> None:
        self._source = source.__aiter__()
        self._prefix = bytearray()
        self._exhausted = False

    async def peek(self, size: int) -> bytes:
        """Return up to ``size`` leading bytes without consuming them."""
        while len(self._prefix) < size and not self._exhausted:
            try:
                chunk = await self._source.__anext__()
            except StopAsyncIteration:
                self._exhausted = True
                break
            self._prefix.extend(chunk)
        return bytes(self._prefix[:size])

    async def __aiter__(self) -> AsyncIterator[bytes]:
        if self._prefix:
            prefix = bytes(self._prefix)
            self._prefix.clear()
            yield prefix
        if self._exhausted:
            return
        async for chunk in self._source:
            yield chunk


class CountingStream:
    """Counts the bytes pulled through it."""

    def __init__(self, source: AsyncIterable[bytes]) -> None:
        self._source = source
        self.bytes_read = 0

    async def __aiter__(self) -> AsyncIterator[bytes]:
        async for chunk in self._source:
            self.bytes_read += len(chunk)
            yield chunk


async def pump(source: AsyncIterable[bytes], channels: Sequence[ChunkChannel]) -> None:
    """Copy ``source`` into every channel, at the pace of the slowest reader.

    A failure of the source is forwarded to every channel still open.
    Reading stops early once all channels are closed.
    """
    try:
        async for chunk in source:
            for channel in channels:
                await channel.send(chunk)
            if all(channel.closed for channel in channels):
                return
    except Exception as exc:
        for channel in channels:
            await channel.fail(exc)
        return
    for channel in channels:
        await channel.finish()
