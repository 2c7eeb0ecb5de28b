"""Integration tests for using()/get_current_object() on a running event loop."""

import asyncio

import pytest

from ambient import call_later, call_soon, get_context_stack, get_current_object, using

from tests.utils import SimpleDisposableMockObject, SimpleMockObject


async def _settle(iterations: int = 5) -> None:
    """Let callbacks queued with call_soon run to completion."""
    for _ in range(iterations):
        await asyncio.sleep(0)


class TestSingleScopeBlock:
    @pytest.mark.integration
    @pytest.mark.asyncio
    async def test_allows_retrieval_of_a_context_item(self):
        obj = SimpleDisposableMockObject()
        found = []

        using([obj], lambda: found.append(get_current_object(SimpleDisposableMockObject)))
        await _settle()

        assert found == [obj]

    @pytest.mark.integration
    @pytest.mark.asyncio
    async def test_continuation_is_deferred(self):
        calls = []

        using([SimpleMockObject()], lambda: calls.append(True))

        assert calls == []
        await _settle()
        assert calls == [True]

    @pytest.mark.integration
    @pytest.mark.asyncio
    async def test_passes_arguments_to_continuation(self):
        received = []

        using([], lambda a, b: received.append((a, b)), 1, "two")
        await _settle()

        assert received == [(1, "two")]

    @pytest.mark.integration
    @pytest.mark.asyncio
    async def test_context_is_not_visible_outside_the_block(self):
        using([SimpleMockObject()], lambda: None)

        assert get_current_object(SimpleMockObject) is None
        await _settle()
        assert get_current_object(SimpleMockObject) is None

    @pytest.mark.integration
    @pytest.mark.asyncio
    async def test_sibling_scope_does_not_see_context(self):
        seen = []

        using([SimpleMockObject()], lambda: None)
        using([], lambda: seen.append(get_current_object(SimpleMockObject)))
        await _settle()

        assert seen == [None]

    @pytest.mark.integration
    @pytest.mark.asyncio
    async def test_does_not_dispose_before_block_runs(self):
        obj = SimpleDisposableMockObject()
        during = []

        using([obj], lambda: during.append(obj.is_disposed))

        assert not obj.is_disposed
        await _settle()
        assert during == [False]

    @pytest.mark.integration
    @pytest.mark.asyncio
    async def test_disposes_when_block_goes_out_of_scope(self):
        obj = SimpleDisposableMockObject()

        using([obj], lambda: None)
        await _settle()

        assert obj.dispose_count == 1
        assert get_context_stack().arena.live_count == 0

    @pytest.mark.integration
    @pytest.mark.asyncio
    async def test_disposes_when_block_raises(self):
        loop = asyncio.get_running_loop()
        errors = []
        loop.set_exception_handler(lambda _, context: errors.append(context["exception"]))
        obj = SimpleDisposableMockObject()

        def fail():
            raise ValueError("block failed")

        try:
            using([obj], fail)
            await _settle()
        finally:
            loop.set_exception_handler(None)

        assert obj.is_disposed
        assert [type(e) for e in errors] == [ValueError]

    @pytest.mark.integration
    def test_without_running_loop_raises_and_pushes_nothing(self):
        with pytest.raises(RuntimeError):
            using([SimpleMockObject()], lambda: None)

        assert get_context_stack().pending_count == 0

    @pytest.mark.integration
    def test_explicit_loop_is_used_when_none_is_running(self):
        loop = asyncio.new_event_loop()
        seen = []
        try:
            obj = SimpleMockObject()
            using([obj], lambda: seen.append(get_current_object(SimpleMockObject)), loop=loop)
            loop.run_until_complete(asyncio.sleep(0))
        finally:
            loop.close()

        assert seen == [obj]


class TestMultipleScopeBlocks:
    @pytest.mark.integration
    @pytest.mark.asyncio
    async def test_retrieves_the_closest_context_item(self):
        outer, inner = SimpleDisposableMockObject(), SimpleDisposableMockObject()
        seen = []

        def inner_block():
            seen.append(get_current_object(SimpleDisposableMockObject))

        def outer_block():
            seen.append(get_current_object(SimpleDisposableMockObject))
            using([inner], inner_block)

        using([outer], outer_block)
        await _settle()

        assert seen == [outer, inner]

    @pytest.mark.integration
    @pytest.mark.asyncio
    async def test_walks_the_stack_to_retrieve_the_closest_item(self):
        disposable = SimpleDisposableMockObject()
        seen = []

        using(
            [disposable],
            lambda: using(
                [SimpleMockObject()],
                lambda: seen.append(get_current_object(SimpleDisposableMockObject)),
            ),
        )
        await _settle()

        assert seen == [disposable]

    @pytest.mark.integration
    @pytest.mark.asyncio
    async def test_disposes_only_when_all_blocks_go_out_of_scope(self):
        outer, inner = SimpleDisposableMockObject(), SimpleDisposableMockObject()
        observed = []

        def inner_block():
            observed.append((outer.is_disposed, inner.is_disposed))

        def outer_block():
            using([inner], inner_block)
            observed.append((outer.is_disposed, inner.is_disposed))

        using([outer], outer_block)
        await _settle()

        assert observed == [(False, False), (False, False)]
        assert outer.dispose_count == 1
        assert inner.dispose_count == 1

    @pytest.mark.integration
    @pytest.mark.asyncio
    async def test_interleaved_blocks_keep_their_own_context(self):
        first, second = SimpleMockObject(), SimpleMockObject()
        seen = []

        using([first], lambda: call_soon(lambda: seen.append(("first", get_current_object(SimpleMockObject)))))
        using([second], lambda: call_soon(lambda: seen.append(("second", get_current_object(SimpleMockObject)))))
        await _settle()

        assert sorted(seen, key=lambda item: item[0]) == [("first", first), ("second", second)]


class TestTimers:
    @pytest.mark.integration
    @pytest.mark.asyncio
    async def test_timer_callback_keeps_context_alive(self):
        obj = SimpleDisposableMockObject()
        fired = asyncio.Event()
        seen = []

        def on_timer():
            seen.append((get_current_object(SimpleDisposableMockObject), obj.is_disposed))
            fired.set()

        using([obj], lambda: call_later(0.01, on_timer))
        await _settle()

        assert not obj.is_disposed
        await asyncio.wait_for(fired.wait(), timeout=1)
        await _settle()

        assert seen == [(obj, False)]
        assert obj.dispose_count == 1


class TestSchedulingFailures:
    @pytest.mark.integration
    @pytest.mark.asyncio
    async def test_bad_coroutine_arguments_leave_no_pending_scope(self):
        secret = SimpleMockObject()
        seen = []

        async def block(required):
            pass

        with pytest.raises(TypeError):
            using([secret], block)

        assert get_context_stack().pending_count == 0

        call_soon(lambda: seen.append(get_current_object(SimpleMockObject)))
        await _settle()

        assert seen == [None]

    @pytest.mark.integration
    def test_closed_loop_releases_callback_context(self):
        loop = asyncio.new_event_loop()
        loop.close()
        obj = SimpleDisposableMockObject()
        stack = get_context_stack()

        with pytest.raises(RuntimeError):
            using([obj], lambda: None, loop=loop)

        assert stack.pending_count == 0
        assert stack.arena.live_count == 0
        assert obj.dispose_count == 1

    @pytest.mark.integration
    def test_closed_loop_releases_coroutine_context(self):
        loop = asyncio.new_event_loop()
        loop.close()
        obj = SimpleDisposableMockObject()
        stack = get_context_stack()

        async def block():
            raise AssertionError("should not run")

        with pytest.raises(RuntimeError):
            using([obj], block, loop=loop)

        assert stack.pending_count == 0
        assert stack.arena.live_count == 0
        assert obj.dispose_count == 1


class TestUnmanagedCallbacks:
    @pytest.mark.integration
    @pytest.mark.asyncio
    async def test_plain_loop_callback_loses_context_after_block_finishes(self):
        obj = SimpleDisposableMockObject()
        seen = []

        def block():
            loop = asyncio.get_running_loop()
            loop.call_soon(lambda: seen.append(get_current_object(SimpleDisposableMockObject)))

        using([obj], block)
        await _settle()

        assert seen == [None]
        assert obj.dispose_count == 1
