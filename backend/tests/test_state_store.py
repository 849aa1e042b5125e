"""Tests for the shared stores and the readers-writer lock."""

import asyncio

import pytest

from parsers.base import ConnectionState, ParsedConnection, Protocol
from schemas import ConnectionSchema
from services.state_store import AggregateStore, SnapshotStore
from utils.rwlock import ReadWriteLock


def conn(port: int) -> ParsedConnection:
    return ParsedConnection(Protocol.TCP, "10.0.0.1", port, "10.0.0.2", 80, ConnectionState.ESTABLISHED)


class TestReadWriteLock:
    @pytest.mark.asyncio
    async def test_readers_share(self):
        lock = ReadWriteLock()
        async with lock.read():
            async with lock.read():
                assert lock.readers == 2
        assert lock.readers == 0

    @pytest.mark.asyncio
    async def test_writer_waits_for_readers(self):
        lock = ReadWriteLock()
        order = []

        async def writer():
            async with lock.write():
                order.append("write")

        async with lock.read():
            task = asyncio.create_task(writer())
            await asyncio.sleep(0.01)
            assert order == []
            order.append("read-done")
        await task
        assert order == ["read-done", "write"]

    @pytest.mark.asyncio
    async def test_reader_waits_for_writer(self):
        lock = ReadWriteLock()
        order = []

        async def reader():
            async with lock.read():
                order.append("read")

        async with lock.write():
            assert lock.writing
            task = asyncio.create_task(reader())
            await asyncio.sleep(0.01)
            assert order == []
            order.append("write-done")
        await task
        assert order == ["write-done", "read"]
        assert not lock.writing

    @pytest.mark.asyncio
    async def test_reader_cancelled_during_release(self):
        store = SnapshotStore()
        lock = store._lock
        entered = asyncio.Event()
        leave = asyncio.Event()

        async def reader():
            async with lock.read():
                entered.set()
                await leave.wait()

        task = asyncio.create_task(reader())
        await entered.wait()
        # Keep the condition busy so the reader parks inside its release
        await lock._cond.acquire()
        leave.set()
        await asyncio.sleep(0.01)
        task.cancel()
        lock._cond.release()
        with pytest.raises(asyncio.CancelledError):
            await task

        assert lock.readers == 0
        assert await asyncio.wait_for(store.replace(()), timeout=1.0) == 1

    @pytest.mark.asyncio
    async def test_writer_cancelled_during_release(self):
        lock = ReadWriteLock()
        entered = asyncio.Event()
        leave = asyncio.Event()

        async def writer():
            async with lock.write():
                entered.set()
                await leave.wait()

        task = asyncio.create_task(writer())
        await entered.wait()
        await lock._cond.acquire()
        leave.set()
        await asyncio.sleep(0.01)
        task.cancel()
        lock._cond.release()
        with pytest.raises(asyncio.CancelledError):
            await task

        assert not lock.writing

        async def read_once():
            async with lock.read():
                return lock.readers

        assert await asyncio.wait_for(read_once(), timeout=1.0) == 1


class TestSnapshotStore:
    @pytest.mark.asyncio
    async def test_initially_empty(self):
        store = SnapshotStore()
        snapshot = await store.get()
        assert snapshot.value == ()
        assert snapshot.generation == 0
        assert snapshot.updated_at is None

    @pytest.mark.asyncio
    async def test_replace_bumps_generation(self):
        store = SnapshotStore()
        assert await store.replace_connections([conn(1)]) == 1
        assert await store.replace_connections([conn(1), conn(2)]) == 2
        snapshot = await store.get()
        assert snapshot.value == (conn(1), conn(2))
        assert snapshot.updated_at is not None

    @pytest.mark.asyncio
    async def test_reader_keeps_its_value_after_replace(self):
        store = SnapshotStore()
        await store.replace_connections([conn(1)])
        held = await store.get()
        await store.replace_connections([])
        assert held.value == (conn(1),)
        assert (await store.get()).value == ()

    @pytest.mark.asyncio
    async def test_concurrent_readers_see_whole_snapshots(self):
        store = SnapshotStore()
        first = [conn(p) for p in range(100)]
        second = [conn(p) for p in range(100, 150)]
        await store.replace_connections(first)

        async def read_many():
            seen = set()
            for _ in range(50):
                snapshot = await store.get()
                seen.add(len(snapshot.value))
                await asyncio.sleep(0)
            return seen

        async def write_many():
            for i in range(50):
                await store.replace_connections(second if i % 2 else first)
                await asyncio.sleep(0)

        results = await asyncio.gather(read_many(), read_many(), write_many())
        for seen in results[:2]:
            assert seen <= {100, 50}


class TestAggregateStore:
    @pytest.mark.asyncio
    async def test_replace_nodes_is_read_only(self):
        store = AggregateStore()
        schema = ConnectionSchema.model_validate(conn(1))
        nodes = {"node-a": (schema,)}
        await store.replace_nodes(nodes)
        nodes["node-b"] = ()

        value = (await store.get()).value
        assert list(value) == ["node-a"]
        with pytest.raises(TypeError):
            value["node-c"] = ()
