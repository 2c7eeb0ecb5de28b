"""
Ambient Scheduler - asyncio Host Adapter
========================================

This module drives the ContextStack hooks from asyncio scheduling primitives.
Every function here creates a Continuation at the moment work is queued and
runs the work inside it, so the create/before/after/error contract holds:

- call_soon() / call_later(): one continuation per callback.
- create_task(): one continuation per task. The task body enters it on its
  first step and completes or fails it when the body returns or raises.
- install(): sets a task factory on the loop so every task created there
  (asyncio.create_task, gather, TaskGroup, ...) becomes a continuation.

Each callback and task runs in its own copy of the contextvars context, so the
frame made active by before() is private to that unit of work.

Callbacks whose handle is cancelled before they run keep their frame chain
captured. Tasks cancelled before their first step are released from a done
callback. When the loop refuses the work (a closed loop, for instance) the
continuation is cancelled before the error propagates.

Work queued directly on asyncio (loop.call_soon, Future.add_done_callback, or
asyncio.create_task without install()) inherits the active frame through the
contextvars copy but holds no reference to it. Once the work that queued it
finishes, the frame is disposed and lookups there return None.
"""

import asyncio
import functools
from typing import Any, Callable, Coroutine, Optional, TypeVar

from .continuation import Continuation, ContinuationState
from .stack import ContextStack, get_context_stack

T = TypeVar("T")


def _resolve_loop(
    loop: Optional[asyncio.AbstractEventLoop],
) -> asyncio.AbstractEventLoop:
    return loop if loop is not None else asyncio.get_running_loop()


# ============================================================================
# CALLBACKS
# ============================================================================


def call_soon(
    callback: Callable[..., Any],
    *args: Any,
    loop: Optional[asyncio.AbstractEventLoop] = None,
    stack: Optional[ContextStack] = None,
) -> asyncio.Handle:
    """Schedule callback on the next loop iteration as a new continuation."""
    loop = _resolve_loop(loop)
    continuation = Continuation(stack)
    try:
        return loop.call_soon(continuation.run, callback, *args)
    except BaseException:
        continuation.cancel()
        raise


def call_later(
    delay: float,
    callback: Callable[..., Any],
    *args: Any,
    loop: Optional[asyncio.AbstractEventLoop] = None,
    stack: Optional[ContextStack] = None,
) -> asyncio.TimerHandle:
    """Schedule callback after delay seconds as a new continuation."""
    loop = _resolve_loop(loop)
    continuation = Continuation(stack)
    try:
        return loop.call_later(delay, continuation.run, callback, *args)
    except BaseException:
        continuation.cancel()
        raise


# ============================================================================
# TASKS
# ============================================================================


async def _run_in_continuation(
    continuation: Continuation, coro: Coroutine[Any, Any, T]
) -> T:
    continuation.enter()
    try:
        result = await coro
    except BaseException as exc:
        continuation.fail(exc)
        raise
    continuation.complete()
    return result


def _release_if_never_started(
    continuation: Continuation, coro: Coroutine[Any, Any, Any], task: asyncio.Task
) -> None:
    if continuation.state is ContinuationState.SCHEDULED:
        coro.close()
        continuation.cancel()


def _wrap(
    continuation: Continuation,
    coro: Coroutine[Any, Any, T],
    create: Callable[[Coroutine[Any, Any, T]], "asyncio.Task[T]"],
) -> "asyncio.Task[T]":
    wrapped = _run_in_continuation(continuation, coro)
    try:
        task = create(wrapped)
    except BaseException:
        wrapped.close()
        coro.close()
        continuation.cancel()
        raise

    task.add_done_callback(
        functools.partial(_release_if_never_started, continuation, coro)
    )
    return task


class ContextTaskFactory:
    """
    asyncio task factory turning every task into a continuation.

    Chains to the factory that was installed before it, if any.
    """

    def __init__(
        self,
        stack: Optional[ContextStack] = None,
        previous: Optional[Callable[..., asyncio.Task]] = None,
    ) -> None:
        self._stack = stack
        self.previous = previous

    @property
    def stack(self) -> ContextStack:
        return self._stack if self._stack is not None else get_context_stack()

    def __call__(
        self,
        loop: asyncio.AbstractEventLoop,
        coro: Coroutine[Any, Any, Any],
        **kwargs: Any,
    ) -> asyncio.Task:
        continuation = Continuation(self.stack)

        def create(wrapped: Coroutine[Any, Any, Any]) -> asyncio.Task:
            if self.previous is not None:
                return self.previous(loop, wrapped, **kwargs)
            return asyncio.Task(wrapped, loop=loop, **kwargs)

        return _wrap(continuation, coro, create)


def create_task(
    coro: Coroutine[Any, Any, T],
    *,
    name: Optional[str] = None,
    loop: Optional[asyncio.AbstractEventLoop] = None,
    stack: Optional[ContextStack] = None,
) -> "asyncio.Task[T]":
    """Run coro as a task that is a single continuation."""
    loop = _resolve_loop(loop)

    factory = loop.get_task_factory()
    if isinstance(factory, ContextTaskFactory) and (
        stack is None or factory.stack is stack
    ):
        return loop.create_task(coro, name=name)

    continuation = Continuation(stack)
    return _wrap(
        continuation, coro, lambda wrapped: loop.create_task(wrapped, name=name)
    )


def install(
    loop: Optional[asyncio.AbstractEventLoop] = None,
    stack: Optional[ContextStack] = None,
) -> ContextTaskFactory:
    """Make every task created on loop a continuation of the current context."""
    loop = _resolve_loop(loop)

    current = loop.get_task_factory()
    if isinstance(current, ContextTaskFactory):
        return current

    factory = ContextTaskFactory(stack, previous=current)
    loop.set_task_factory(factory)
    return factory


def uninstall(loop: Optional[asyncio.AbstractEventLoop] = None) -> None:
    """Restore the task factory that was active before install()."""
    loop = _resolve_loop(loop)

    current = loop.get_task_factory()
    if isinstance(current, ContextTaskFactory):
        loop.set_task_factory(current.previous)
