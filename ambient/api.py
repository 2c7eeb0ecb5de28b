"""
Ambient API - Public Entry Points
=================================

using() opens a scope, get_current_object() reads from it, and
bind_event_emitter() extends it to event listeners.

Example:
    ```python
    async def main():
        def handle():
            session = get_current_object(Session)
            ...

        using([Session()], handle)   # handle runs on the next loop iteration
    ```
"""

import asyncio
import inspect
from typing import Any, Callable, Iterable, Optional, Type, TypeVar, Union

from . import scheduler
from .binding import BoundEventEmitter
from .events import EventSource
from .stack import ContextStack, get_context_stack

T = TypeVar("T")


def using(
    context_items: Iterable[Any],
    continuation: Callable[..., Any],
    *args: Any,
    loop: Optional[asyncio.AbstractEventLoop] = None,
    stack: Optional[ContextStack] = None,
) -> Union[asyncio.Handle, asyncio.Task]:
    """
    Run continuation with context_items in scope.

    The continuation is deferred to the next loop iteration rather than called
    inline, so the pushed scope is consumed by the continuation created here.
    Coroutine functions are run as a task.

    Args:
        context_items: Objects to keep in scope, looked up by their type
        continuation: Function (or coroutine function) to run
        *args: Arguments passed to continuation
        loop: Event loop to schedule on (default: the running loop)
        stack: Engine to use (default: the process default)

    Returns:
        The asyncio Handle, or the Task for a coroutine function.
    """
    loop = loop if loop is not None else asyncio.get_running_loop()
    stack = stack if stack is not None else get_context_stack()

    coro = continuation(*args) if inspect.iscoroutinefunction(continuation) else None

    stack.push_scope(context_items)
    depth = stack.pending_count
    try:
        if coro is not None:
            return scheduler.create_task(coro, loop=loop, stack=stack)
        return scheduler.call_soon(continuation, *args, loop=loop, stack=stack)
    except BaseException:
        # The scope is still pending only if no continuation was created
        if stack.pending_count == depth:
            stack.pop_scope()
        if coro is not None:
            coro.close()
        raise


def get_current_object(
    object_type: Type[T], stack: Optional[ContextStack] = None
) -> Optional[T]:
    """Return the nearest object of object_type in scope, or None."""
    stack = stack if stack is not None else get_context_stack()
    return stack.find_context_object_from_scope(object_type)


def bind_event_emitter(
    emitter: EventSource, stack: Optional[ContextStack] = None
) -> BoundEventEmitter:
    """
    Wrap emitter so listeners keep the context active at registration.

    Binding the same emitter again returns the same wrapper while it is alive.
    Wrappers around one emitter always share their listeners.
    """
    if isinstance(emitter, BoundEventEmitter):
        return emitter
    return BoundEventEmitter.for_source(emitter, stack)
