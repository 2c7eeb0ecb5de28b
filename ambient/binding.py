"""
Ambient Binding - Listener Rebinding Adapter
============================================

BoundEventEmitter wraps an EventSource so that every listener registered
through it keeps the context that was active when it was registered.

- Registration captures the active frame chain (one reference per frame) and
  installs a dispatch wrapper on the underlying source.
- Dispatch makes the captured frame active for the duration of the listener
  and restores whatever was active before, so reentrant emission is safe.
- Removal releases the captured chain, disposing frames that reach zero.

Listener state is kept per source on the engine, so every wrapper around one
source sees the same registrations. A dispatch wrapper compares equal to the
listener it wraps, and the adapter follows the source's REMOVE_LISTENER event,
so removing the original listener directly on the source also releases it.

A listener's lifetime is therefore independent of the scope that registered
it: the scoped objects stay alive until the last listener holding them is
removed. Listeners left registered on a discarded emitter keep their frames
alive; there is no finalizer.
"""

import weakref
from typing import Any, Dict, Hashable, List, Optional

from .events import REMOVE_LISTENER, EventSource, Listener
from .frame import ContextFrame
from .stack import ContextStack, get_context_stack


class _Binding:
    __slots__ = ("event", "listener", "frame", "once", "released", "dispatch")

    def __init__(
        self,
        event: Hashable,
        listener: Listener,
        frame: Optional[ContextFrame],
        once: bool,
    ) -> None:
        self.event = event
        self.listener = listener
        self.frame = frame
        self.once = once
        self.released = False
        self.dispatch: Optional["_Dispatch"] = None


class _Dispatch:
    """Callable registered on the source in place of a bound listener."""

    __slots__ = ("owner", "binding")

    def __init__(self, owner: "_SourceBindings", binding: _Binding) -> None:
        self.owner = owner
        self.binding = binding

    def __call__(self, *args: Any, **kwargs: Any) -> Any:
        binding = self.binding
        try:
            with self.owner.stack.activate(binding.frame):
                return binding.listener(*args, **kwargs)
        finally:
            if binding.once:
                self.owner.unbind(binding)

    def __eq__(self, other: object) -> bool:
        if isinstance(other, _Dispatch):
            return self is other
        return self.binding.listener == other

    def __hash__(self) -> int:
        return hash(self.binding.listener)

    def __repr__(self) -> str:
        return f"_Dispatch({self.binding.listener!r})"


class _SourceBindings:
    """Bound listeners of one source, shared by every wrapper around it."""

    def __init__(self, stack: ContextStack) -> None:
        self.stack = stack
        self.table: Dict[Hashable, List[_Binding]] = {}
        self.wrapper: Optional["weakref.ref[BoundEventEmitter]"] = None

    def add(self, binding: _Binding) -> None:
        self.table.setdefault(binding.event, []).append(binding)

    def find(self, event: Hashable, listener: Listener) -> Optional[_Binding]:
        for binding in reversed(self.table.get(event, ())):
            if binding.listener == listener:
                return binding
        return None

    def unbind(self, binding: _Binding) -> None:
        if binding.released:
            return
        binding.released = True

        bindings = self.table.get(binding.event)
        if bindings is not None:
            for index, existing in enumerate(bindings):
                if existing is binding:
                    del bindings[index]
                    break
            if not bindings:
                del self.table[binding.event]

        self.stack.release_chain(binding.frame)

    def on_removed(self, event: Hashable, listener: Listener) -> None:
        if isinstance(listener, _Dispatch) and listener.owner is self:
            self.unbind(listener.binding)


def _source_bindings(stack: ContextStack, source: EventSource) -> _SourceBindings:
    try:
        state = stack.bound_sources.get(source)
    except TypeError:
        # Sources that cannot be weakly referenced get private state
        return _SourceBindings(stack)

    if state is None:
        state = _SourceBindings(stack)
        stack.bound_sources[source] = state
    return state


class BoundEventEmitter:
    """
    EventSource wrapper that binds listeners to the context active at
    registration time.

    Example:
        ```python
        emitter = bind_event_emitter(EventEmitter())

        def on_data(chunk):
            get_current_object(RequestLog).append(chunk)

        emitter.on("data", on_data)          # captures the current frame
        emitter.remove_listener("data", on_data)  # releases it
        ```
    """

    def __init__(self, source: EventSource, stack: Optional[ContextStack] = None):
        self._source = source
        self._stack = stack if stack is not None else get_context_stack()
        self._state = _source_bindings(self._stack, source)

    @classmethod
    def for_source(
        cls, source: EventSource, stack: Optional[ContextStack] = None
    ) -> "BoundEventEmitter":
        """Return the live wrapper around source, creating one if needed."""
        stack = stack if stack is not None else get_context_stack()
        state = _source_bindings(stack, source)

        wrapper = state.wrapper() if state.wrapper is not None else None
        if wrapper is None:
            wrapper = cls(source, stack)
            state.wrapper = weakref.ref(wrapper)
        return wrapper

    @property
    def source(self) -> EventSource:
        return self._source

    @property
    def stack(self) -> ContextStack:
        return self._stack

    # ========================================================================
    # REGISTRATION
    # ========================================================================

    def on(self, event: Hashable, listener: Listener) -> "BoundEventEmitter":
        self._source.on(event, self._bind(event, listener, once=False))
        return self

    add_listener = on

    def once(self, event: Hashable, listener: Listener) -> "BoundEventEmitter":
        """Register a listener whose captured context is released after it runs."""
        self._source.once(event, self._bind(event, listener, once=True))
        return self

    def _bind(self, event: Hashable, listener: Listener, once: bool) -> _Dispatch:
        hook = self._state.on_removed
        if hook not in self._source.listeners(REMOVE_LISTENER):
            self._source.on(REMOVE_LISTENER, hook)

        frame = self._stack.active_frame
        self._stack.capture(frame)

        binding = _Binding(event, listener, frame, once)
        binding.dispatch = _Dispatch(self._state, binding)
        self._state.add(binding)
        return binding.dispatch

    # ========================================================================
    # REMOVAL
    # ========================================================================

    def remove_listener(self, event: Hashable, listener: Listener) -> "BoundEventEmitter":
        binding = self._state.find(event, listener)
        if binding is None:
            return self

        self._source.remove_listener(event, binding.dispatch)
        self._state.unbind(binding)
        return self

    off = remove_listener

    def remove_all_listeners(
        self, event: Optional[Hashable] = None
    ) -> "BoundEventEmitter":
        events = list(self._state.table) if event is None else [event]
        for name in events:
            for binding in list(self._state.table.get(name, ())):
                self._state.unbind(binding)
        self._source.remove_all_listeners(event)
        return self

    # ========================================================================
    # DELEGATION
    # ========================================================================

    def emit(self, event: Hashable, *args: Any, **kwargs: Any) -> bool:
        return self._source.emit(event, *args, **kwargs)

    def listeners(self, event: Hashable) -> List[Listener]:
        return [
            l.binding.listener if isinstance(l, _Dispatch) else l
            for l in self._source.listeners(event)
        ]

    def listener_count(self, event: Hashable) -> int:
        return self._source.listener_count(event)

    def __repr__(self) -> str:
        bound = sum(len(b) for b in self._state.table.values())
        return f"BoundEventEmitter({self._source!r}, bound={bound})"
