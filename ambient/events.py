"""
Ambient Events - In-Process Event Source
========================================

This module provides the EventSource protocol that the listener rebinding
adapter wraps, and EventEmitter, a small implementation of it.

Listeners are kept per event in registration order. A listener may be
registered more than once; removal takes out the most recently added
registration. emit() iterates over a snapshot, so listeners can add or remove
listeners (including themselves) while an event is being dispatched.

Every removal made through remove_listener() or remove_all_listeners() is
announced on the REMOVE_LISTENER event with (event, listener), after the
listener is gone. Removing listeners of REMOVE_LISTENER itself is not announced.
"""

import threading
from typing import (
    Any,
    Callable,
    Dict,
    Hashable,
    List,
    Optional,
    Protocol,
    Tuple,
    runtime_checkable,
)

Listener = Callable[..., Any]

REMOVE_LISTENER = "remove_listener"


@runtime_checkable
class EventSource(Protocol):
    """Subscription interface shared by EventEmitter and BoundEventEmitter."""

    def on(self, event: Hashable, listener: Listener) -> "EventSource": ...

    def once(self, event: Hashable, listener: Listener) -> "EventSource": ...

    def remove_listener(self, event: Hashable, listener: Listener) -> "EventSource": ...

    def remove_all_listeners(
        self, event: Optional[Hashable] = None
    ) -> "EventSource": ...

    def emit(self, event: Hashable, *args: Any, **kwargs: Any) -> bool: ...

    def listeners(self, event: Hashable) -> List[Listener]: ...

    def listener_count(self, event: Hashable) -> int: ...


class _Registration:
    __slots__ = ("listener", "callback")

    def __init__(self, listener: Listener, callback: Listener) -> None:
        self.listener = listener
        self.callback = callback


class EventEmitter:
    """
    Named-event emitter.

    Example:
        ```python
        emitter = EventEmitter()
        emitter.on("data", lambda chunk: print(chunk))
        emitter.emit("data", b"...")   # True
        ```
    """

    def __init__(self) -> None:
        self._events: Dict[Hashable, List[_Registration]] = {}
        self._lock = threading.RLock()

    def on(self, event: Hashable, listener: Listener) -> "EventEmitter":
        self._add(event, _Registration(listener, listener))
        return self

    add_listener = on

    def once(self, event: Hashable, listener: Listener) -> "EventEmitter":
        """Register a listener that is removed before its first invocation."""
        registration = _Registration(listener, listener)

        def fire(*args: Any, **kwargs: Any) -> Any:
            self._discard(event, registration)
            return listener(*args, **kwargs)

        registration.callback = fire
        self._add(event, registration)
        return self

    def remove_listener(self, event: Hashable, listener: Listener) -> "EventEmitter":
        removed: List[_Registration] = []
        with self._lock:
            registrations = self._events.get(event)
            if not registrations:
                return self
            for index in range(len(registrations) - 1, -1, -1):
                if registrations[index].listener == listener:
                    removed.append(registrations.pop(index))
                    break
            if not registrations:
                del self._events[event]
            hooks = tuple(self._events.get(REMOVE_LISTENER, ()))

        self._announce_removed(hooks, [(event, r) for r in removed])
        return self

    off = remove_listener

    def remove_all_listeners(self, event: Optional[Hashable] = None) -> "EventEmitter":
        with self._lock:
            hooks = tuple(self._events.get(REMOVE_LISTENER, ()))
            if event is None:
                removed = [
                    (name, r) for name, regs in self._events.items() for r in regs
                ]
                self._events.clear()
            else:
                removed = [(event, r) for r in self._events.pop(event, ())]

        self._announce_removed(hooks, removed)
        return self

    def _announce_removed(
        self,
        hooks: Tuple[_Registration, ...],
        removed: List[Tuple[Hashable, _Registration]],
    ) -> None:
        for name, registration in removed:
            if name == REMOVE_LISTENER:
                continue
            for hook in hooks:
                hook.callback(name, registration.listener)

    def emit(self, event: Hashable, *args: Any, **kwargs: Any) -> bool:
        """
        Invoke every listener of event with the given arguments.

        Returns:
            True if the event had listeners.
        """
        with self._lock:
            snapshot = tuple(self._events.get(event, ()))

        for registration in snapshot:
            registration.callback(*args, **kwargs)

        return bool(snapshot)

    def listeners(self, event: Hashable) -> List[Listener]:
        with self._lock:
            return [r.listener for r in self._events.get(event, ())]

    def listener_count(self, event: Hashable) -> int:
        with self._lock:
            return len(self._events.get(event, ()))

    def event_names(self) -> List[Hashable]:
        with self._lock:
            return list(self._events)

    def _add(self, event: Hashable, registration: _Registration) -> None:
        with self._lock:
            self._events.setdefault(event, []).append(registration)

    def _discard(self, event: Hashable, registration: _Registration) -> None:
        with self._lock:
            registrations = self._events.get(event)
            if not registrations:
                return
            for index, existing in enumerate(registrations):
                if existing is registration:
                    del registrations[index]
                    break
            if not registrations:
                del self._events[event]
