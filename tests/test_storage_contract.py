"""
Storage contract tests — run against every backend.
"""

import asyncio
from unittest.mock import AsyncMock

import pytest

from cafstore.faults import (
    BlobNotFoundFault,
    CopyFault,
    MoveFault,
    UnlinkFault,
)
from cafstore.storage import BaseStorageAdapter, BufferSink, ByteStream


async def chunks(*parts):
    for part in parts:
        yield part


async def read_blob(backend, key):
    sink = BufferSink()
    await backend.retrieve(key, sink)
    return sink.getvalue()


class TestRoundTrip:

    @pytest.mark.asyncio
    async def test_is_a_storage_adapter(self, backend):
        assert isinstance(backend, BaseStorageAdapter)

    @pytest.mark.asyncio
    async def test_hello_world_lifecycle(self, backend):
        await backend.store("a.txt", chunks(b"hello, ", b"world!"))
        assert await backend.exists("a.txt") is True
        assert await read_blob(backend, "a.txt") == b"hello, world!"
        await backend.unlink("a.txt")
        assert await backend.exists("a.txt") is False

    @pytest.mark.asyncio
    async def test_store_bytes(self, backend):
        result = await backend.store("blob.bin", b"\x00\x01\x02")
        assert result.key == "blob.bin"
        assert result.size == 3
        assert result.location
        assert await read_blob(backend, "blob.bin") == b"\x00\x01\x02"

    @pytest.mark.asyncio
    async def test_store_empty_blob(self, backend):
        result = await backend.store("empty", chunks())
        assert result.size == 0
        assert await backend.exists("empty") is True
        assert await read_blob(backend, "empty") == b""

    @pytest.mark.asyncio
    async def test_store_overwrites(self, backend):
        await backend.store("k", b"first")
        await backend.store("k", b"second")
        assert await read_blob(backend, "k") == b"second"

    @pytest.mark.asyncio
    async def test_nested_keys(self, backend):
        await backend.store("ab/cd/abcdef.txt", b"nested")
        assert await backend.exists("ab/cd/abcdef.txt")
        assert await read_blob(backend, "ab/cd/abcdef.txt") == b"nested"

    @pytest.mark.asyncio
    async def test_concurrent_stores(self, backend):
        keys = [f"tmp/{i}" for i in range(10)]
        await asyncio.gather(*(backend.store(k, k.encode()) for k in keys))
        for key in keys:
            assert await read_blob(backend, key) == key.encode()


class TestMissingKeys:

    @pytest.mark.asyncio
    async def test_exists_false(self, backend):
        assert await backend.exists("never-stored") is False

    @pytest.mark.asyncio
    async def test_retrieve_not_found(self, backend):
        sink = BufferSink()
        with pytest.raises(BlobNotFoundFault) as info:
            await backend.retrieve("never-stored", sink)
        assert info.value.code == "BLOB_NOT_FOUND"
        assert info.value.key == "never-stored"
        assert sink.getvalue() == b""

    @pytest.mark.asyncio
    async def test_unlink_is_idempotent(self, backend):
        await backend.unlink("never-stored")
        await backend.store("once", b"x")
        await backend.unlink("once")
        await backend.unlink("once")
        assert await backend.exists("once") is False


class TestRetrieveSinks:

    @pytest.mark.asyncio
    async def test_end_closes_sink(self, backend):
        await backend.store("k", b"data")
        sink = BufferSink()
        await backend.retrieve("k", sink)
        assert sink.closed

    @pytest.mark.asyncio
    async def test_end_false_keeps_sink_open(self, backend):
        await backend.store("k1", b"one,")
        await backend.store("k2", b"two")
        sink = BufferSink()
        await backend.retrieve("k1", sink, end=False)
        await backend.retrieve("k2", sink, end=False)
        assert not sink.closed
        assert sink.getvalue() == b"one,two"

    @pytest.mark.asyncio
    async def test_sync_sink(self, backend):
        import io

        await backend.store("k", b"plain file object")
        buffer = io.BytesIO()
        await backend.retrieve("k", buffer, end=False)
        assert buffer.getvalue() == b"plain file object"


class TestCopyAndMove:

    @pytest.mark.asyncio
    async def test_copy_keeps_source(self, backend):
        await backend.store("src", b"content")
        result = await backend.copy("src", "dst")
        assert result.key == "dst"
        assert await read_blob(backend, "src") == b"content"
        assert await read_blob(backend, "dst") == b"content"

    @pytest.mark.asyncio
    async def test_copy_missing_source(self, backend):
        with pytest.raises(CopyFault) as info:
            await backend.copy("missing", "dst")
        assert info.value.dest_key == "dst"
        assert await backend.exists("dst") is False

    @pytest.mark.asyncio
    async def test_move(self, backend):
        await backend.store("src", b"moving")
        await backend.move("src", "dst")
        assert await backend.exists("src") is False
        assert await read_blob(backend, "dst") == b"moving"

    @pytest.mark.asyncio
    async def test_move_copy_failure_leaves_source(self, backend):
        with pytest.raises(MoveFault) as info:
            await backend.move("missing", "dst")
        assert info.value.stage == "copy"
        assert info.value.metadata["duplicate_left"] is False
        assert isinstance(info.value.__cause__, CopyFault)
        assert await backend.exists("dst") is False

    @pytest.mark.asyncio
    async def test_move_delete_failure_leaves_duplicate(self, backend, monkeypatch):
        await backend.store("src", b"twice")
        monkeypatch.setattr(
            backend, "unlink", AsyncMock(side_effect=UnlinkFault("src")),
        )
        with pytest.raises(MoveFault) as info:
            await backend.move("src", "dst")

        assert info.value.stage == "delete"
        assert info.value.metadata["duplicate_left"] is True
        assert isinstance(info.value.__cause__, UnlinkFault)
        # no rollback: both copies remain
        assert await backend.exists("src") is True
        assert await backend.exists("dst") is True
        assert await read_blob(backend, "dst") == b"twice"


class TestSharedStreams:

    @pytest.mark.asyncio
    async def test_store_with_sibling_consumer(self, backend):
        stream = ByteStream(chunks(b"hello", b", ", b"world!"), max_buffered=1)
        observed = []
        stream.on_data(observed.append)
        audit = stream.tee()

        result, audited = await asyncio.gather(
            backend.store("shared.txt", stream),
            audit.read(),
        )

        assert result.size == 13
        assert audited == b"hello, world!"
        assert b"".join(observed) == b"hello, world!"
        assert await read_blob(backend, "shared.txt") == b"hello, world!"
