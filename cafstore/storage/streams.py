"""
Byte streams with fan-out, and destination sinks.

Provides:
- ByteStream: single-producer, multi-consumer async byte stream
- BufferSink: in-memory destination for ``retrieve``
- ByteSink: protocol every retrieve destination satisfies
"""

from __future__ import annotations

import asyncio
import inspect
import logging
from typing import (
    Any, AsyncIterable, AsyncIterator, Callable, List, Optional,
    Protocol, Union, runtime_checkable,
)

from ..faults import StreamStateFault

logger = logging.getLogger("cafstore.storage.streams")

DEFAULT_CHUNK_SIZE = 64 * 1024

_EOF = object()


class _Failure:
    __slots__ = ("error",)

    def __init__(self, error: BaseException):
        self.error = error


# ============================================================================
# ByteStream
# ============================================================================

class StreamBranch:
    """
    One consumer of a :class:`ByteStream`.

    Iterating a branch starts the stream flowing. Closing a branch early
    detaches it; the other branches keep receiving.
    """

    def __init__(self, stream: ByteStream, maxsize: int):
        self._stream = stream
        self._queue: asyncio.Queue = asyncio.Queue(maxsize=maxsize)
        self._done = False
        self.closed = False

    def __aiter__(self) -> AsyncIterator[bytes]:
        return self

    async def __anext__(self) -> bytes:
        if self._done or self.closed:
            raise StopAsyncIteration
        self._stream._start()
        item = await self._queue.get()
        if item is _EOF:
            self._done = True
            raise StopAsyncIteration
        if isinstance(item, _Failure):
            self._done = True
            raise item.error
        return item

    async def read(self) -> bytes:
        """Consume the branch to the end and return every byte."""
        return b"".join([chunk async for chunk in self])

    def close(self) -> None:
        if self.closed:
            return
        self.closed = True
        # unblock a pump waiting on a full queue
        while not self._queue.empty():
            self._queue.get_nowait()
        self._stream._release()

    async def aclose(self) -> None:
        self.close()

    async def _put(self, item: Any) -> None:
        if not self.closed:
            await self._queue.put(item)


class ByteStream:
    """
    Async byte stream that can be observed by several consumers at once.

    The source is read exactly once by a pump task; every non-empty chunk
    is handed to each ``on_data`` observer and queued on every branch
    returned by :meth:`tee`. Consumers must attach before the stream
    starts flowing, so no consumer can miss bytes another one saw.

    Branch buffers are bounded (``max_buffered`` chunks): a branch that is
    neither read nor closed eventually holds the others back.

    Usage::

        stream = ByteStream(request.stream())
        stream.on_data(lambda chunk: metrics.add(len(chunk)))
        audit = stream.tee()
        result, copy = await asyncio.gather(
            adapter.store("a.txt", stream),
            audit.read(),
        )
    """

    def __init__(self, source: AsyncIterable[bytes], *, max_buffered: int = 64):
        if max_buffered < 1:
            raise ValueError("max_buffered must be at least 1")
        self._source = source
        self._max_buffered = max_buffered
        self._branches: List[StreamBranch] = []
        self._data_observers: List[Callable[[bytes], Any]] = []
        self._end_observers: List[Callable[[], Any]] = []
        self._pump_task: Optional[asyncio.Task] = None
        self.bytes_read = 0

    @classmethod
    def of(cls, source: Union[ByteStream, bytes, AsyncIterable[bytes]]) -> ByteStream:
        """Wrap ``source`` unless it already is a ByteStream."""
        if isinstance(source, ByteStream):
            return source
        if isinstance(source, (bytes, bytearray, memoryview)):
            return cls.from_bytes(bytes(source))
        if hasattr(source, "__aiter__"):
            return cls(source)
        raise TypeError(
            f"Expected bytes, an async iterable of bytes or a ByteStream, "
            f"got {type(source).__name__}"
        )

    @classmethod
    def from_bytes(cls, data: bytes, chunk_size: int = DEFAULT_CHUNK_SIZE) -> ByteStream:
        async def chunks() -> AsyncIterator[bytes]:
            for i in range(0, len(data), chunk_size):
                yield data[i:i + chunk_size]

        return cls(chunks())

    @property
    def flowing(self) -> bool:
        return self._pump_task is not None

    def tee(self) -> StreamBranch:
        """Attach a new consumer that receives every chunk."""
        self._ensure_idle("cannot attach a consumer after the stream started flowing")
        branch = StreamBranch(self, self._max_buffered)
        self._branches.append(branch)
        return branch

    def on_data(self, callback: Callable[[bytes], Any]) -> None:
        self._ensure_idle("cannot attach an observer after the stream started flowing")
        self._data_observers.append(callback)

    def on_end(self, callback: Callable[[], Any]) -> None:
        self._ensure_idle("cannot attach an observer after the stream started flowing")
        self._end_observers.append(callback)

    def _ensure_idle(self, reason: str) -> None:
        if self.flowing:
            raise StreamStateFault(reason)

    def _start(self) -> None:
        if self._pump_task is None:
            self._pump_task = asyncio.get_running_loop().create_task(self._pump())

    def _release(self) -> None:
        """Stop reading the source once no branch is left to receive it."""
        if self._pump_task is None or self._pump_task.done():
            return
        if all(branch.closed for branch in self._branches):
            logger.debug("All branches closed after %d bytes, releasing source", self.bytes_read)
            self._pump_task.cancel()

    async def _close_source(self) -> None:
        aclose = getattr(self._source, "aclose", None)
        if aclose is not None:
            await aclose()

    async def _pump(self) -> None:
        try:
            async for chunk in self._source:
                if not chunk:
                    continue
                chunk = bytes(chunk)
                self.bytes_read += len(chunk)
                for callback in self._data_observers:
                    callback(chunk)
                for branch in self._branches:
                    await branch._put(chunk)
            for callback in self._end_observers:
                callback()
        except asyncio.CancelledError:
            await self._close_source()
            raise
        except Exception as exc:
            logger.debug("Source stream failed after %d bytes: %r", self.bytes_read, exc)
            failure = _Failure(exc)
            for branch in self._branches:
                await branch._put(failure)
            return

        for branch in self._branches:
            await branch._put(_EOF)


# ============================================================================
# Sinks
# ============================================================================

@runtime_checkable
class ByteSink(Protocol):
    """
    Destination for ``retrieve``.

    ``write`` and ``close`` may be plain or coroutine functions. Objects
    exposing ``drain()`` (``asyncio.StreamWriter``) are drained after
    every write.
    """

    def write(self, data: bytes) -> Any:
        ...


async def _maybe_await(result: Any) -> Any:
    if inspect.isawaitable(result):
        return await result
    return result


async def write_to_sink(sink: ByteSink, data: bytes) -> None:
    await _maybe_await(sink.write(data))
    drain = getattr(sink, "drain", None)
    if drain is not None:
        await _maybe_await(drain())


async def close_sink(sink: ByteSink) -> None:
    close = getattr(sink, "close", None)
    if close is None:
        return
    await _maybe_await(close())
    wait_closed = getattr(sink, "wait_closed", None)
    if wait_closed is not None:
        await _maybe_await(wait_closed())


class BufferSink:
    """Collects retrieved bytes in memory."""

    def __init__(self) -> None:
        self._chunks: List[bytes] = []
        self.closed = False

    async def write(self, data: bytes) -> None:
        if self.closed:
            raise StreamStateFault("write to a closed sink")
        self._chunks.append(bytes(data))

    async def close(self) -> None:
        self.closed = True

    def getvalue(self) -> bytes:
        return b"".join(self._chunks)

    def __len__(self) -> int:
        return sum(len(chunk) for chunk in self._chunks)

    def __repr__(self) -> str:
        return f"BufferSink(size={len(self)}, closed={self.closed})"
