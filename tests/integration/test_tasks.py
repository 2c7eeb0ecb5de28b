"""Integration tests for asyncio tasks as continuations."""

import asyncio

import pytest
import pytest_asyncio

from ambient import (
    create_task,
    get_context_stack,
    get_current_object,
    install,
    uninstall,
    using,
)
from ambient.scheduler import ContextTaskFactory

from tests.utils import SimpleDisposableMockObject, SimpleMockObject


async def _settle(iterations: int = 5) -> None:
    for _ in range(iterations):
        await asyncio.sleep(0)


@pytest_asyncio.fixture
async def installed():
    loop = asyncio.get_running_loop()
    factory = install(loop)
    try:
        yield factory
    finally:
        uninstall(loop)


class TestCoroutineBlocks:
    @pytest.mark.integration
    @pytest.mark.asyncio
    async def test_coroutine_block_keeps_context_across_awaits(self):
        obj = SimpleDisposableMockObject()
        seen = []

        async def block():
            seen.append(get_current_object(SimpleDisposableMockObject))
            await asyncio.sleep(0)
            seen.append(get_current_object(SimpleDisposableMockObject))
            return "done"

        task = using([obj], block)

        assert isinstance(task, asyncio.Task)
        assert await task == "done"
        assert seen == [obj, obj]
        assert obj.dispose_count == 1

    @pytest.mark.integration
    @pytest.mark.asyncio
    async def test_coroutine_block_failure_disposes_and_propagates(self):
        obj = SimpleDisposableMockObject()

        async def block():
            raise KeyError("missing")

        task = using([obj], block)

        with pytest.raises(KeyError):
            await task
        assert obj.is_disposed

    @pytest.mark.integration
    @pytest.mark.asyncio
    async def test_promise_style_result_sees_context(self):
        async def lookup():
            return get_current_object(SimpleMockObject) is not None

        results = []

        async def block():
            results.append(await create_task(lookup()))

        await using([SimpleMockObject()], block)

        assert results == [True]


class TestCreateTask:
    @pytest.mark.integration
    @pytest.mark.asyncio
    async def test_child_task_keeps_parent_context_alive(self):
        obj = SimpleDisposableMockObject()
        release = asyncio.Event()
        seen = []

        async def child():
            await release.wait()
            seen.append((get_current_object(SimpleDisposableMockObject), obj.is_disposed))

        holder = {}

        def block():
            holder["task"] = create_task(child())

        using([obj], block)
        await _settle()

        assert not obj.is_disposed
        release.set()
        await holder["task"]

        assert seen == [(obj, False)]
        assert obj.dispose_count == 1

    @pytest.mark.integration
    @pytest.mark.asyncio
    async def test_task_cancelled_before_start_releases_context(self):
        obj = SimpleDisposableMockObject()

        async def never():
            raise AssertionError("should not run")

        stack = get_context_stack()
        stack.push_scope([obj])
        task = create_task(never())
        task.cancel()

        with pytest.raises(asyncio.CancelledError):
            await task
        await _settle()

        assert obj.dispose_count == 1
        assert stack.arena.live_count == 0

    @pytest.mark.integration
    @pytest.mark.asyncio
    async def test_task_cancelled_while_running_releases_context(self):
        obj = SimpleDisposableMockObject()
        started = asyncio.Event()

        async def forever():
            started.set()
            await asyncio.sleep(3600)

        get_context_stack().push_scope([obj])
        task = create_task(forever(), name="forever")
        await started.wait()

        assert task.get_name() == "forever"
        assert not obj.is_disposed

        task.cancel()
        with pytest.raises(asyncio.CancelledError):
            await task

        assert obj.dispose_count == 1


class TestInstalledTaskFactory:
    @pytest.mark.integration
    @pytest.mark.asyncio
    async def test_plain_asyncio_tasks_inherit_context(self, installed):
        obj = SimpleDisposableMockObject()
        seen = []

        async def worker(index):
            await asyncio.sleep(0)
            seen.append((index, get_current_object(SimpleDisposableMockObject)))

        async def block():
            await asyncio.gather(worker(1), worker(2))
            seen.append(("block", obj.is_disposed))

        await using([obj], block)
        await _settle()

        assert sorted(seen[:2]) == [(1, obj), (2, obj)]
        assert seen[2] == ("block", False)
        assert obj.dispose_count == 1

    @pytest.mark.integration
    @pytest.mark.asyncio
    async def test_create_task_does_not_double_wrap(self, installed):
        stack = get_context_stack()
        before = stack.arena.live_count

        task = create_task(asyncio.sleep(0))
        assert stack.arena.live_count == before + 1

        await task
        await _settle()
        assert stack.arena.live_count == before

    @pytest.mark.integration
    @pytest.mark.asyncio
    async def test_install_is_idempotent_and_uninstall_restores(self):
        loop = asyncio.get_running_loop()
        previous = loop.get_task_factory()

        factory = install(loop)
        try:
            assert isinstance(loop.get_task_factory(), ContextTaskFactory)
            assert install(loop) is factory
            assert factory.previous is previous
        finally:
            uninstall(loop)

        assert loop.get_task_factory() is previous
