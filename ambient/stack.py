"""
Ambient ContextStack - Continuation Lifecycle Engine
====================================================

This module provides the ContextStack, the engine that keeps scoped objects
alive across asynchronous continuations.

The host scheduler drives four hooks for every continuation:

1. create() - when work is queued. Pops the pending scope pushed by
   push_scope(), captures the active frame chain (one reference per frame up
   to the root) and returns a new frame whose parent is the active frame.
2. before(frame) - immediately before the continuation body runs. Makes the
   frame active.
3. after(frame) / error(frame, exc) - once the body returns or raises.
   Releases one reference per frame in the chain, disposes any frame whose
   count reaches zero, and restores the active frame to frame.parent.

Lookups walk from the active frame toward the root, so an inner scope shadows
an outer scope holding the same type.

The active frame lives in a ContextVar. Each asyncio task and callback runs
in its own copy of the context, so the active frame is scoped to the logical
task rather than shared across the process.
"""

import contextvars
import logging
import weakref
from contextlib import contextmanager
from typing import Any, Iterable, Iterator, List, Optional, Type, TypeVar

from .frame import ContextFrame, ScopeData
from .util.arena import FrameArena

T = TypeVar("T")


class ContextStack:
    """
    Manages a pending scope buffer and the active frame, and implements the
    capture/release protocol invoked at every continuation boundary.

    Example:
        ```python
        stack = ContextStack()
        stack.push_scope([session])

        frame = stack.create()       # scheduled
        stack.before(frame)          # running
        stack.find_context_object_from_scope(Session)  # -> session
        stack.after(frame)           # completed, session.dispose() called
        ```
    """

    def __init__(self, arena: Optional[FrameArena] = None) -> None:
        self._arena = arena if arena is not None else FrameArena()
        self._scope_stack: List[ScopeData] = []
        self._active: contextvars.ContextVar[Optional[ContextFrame]] = (
            contextvars.ContextVar(f"ambient_active_frame_{id(self):x}", default=None)
        )
        # Listener state of every event source bound on this engine
        self.bound_sources: "weakref.WeakKeyDictionary[Any, Any]" = (
            weakref.WeakKeyDictionary()
        )

    @property
    def arena(self) -> FrameArena:
        return self._arena

    @property
    def active_frame(self) -> Optional[ContextFrame]:
        return self._active.get()

    @property
    def pending_count(self) -> int:
        return len(self._scope_stack)

    # ========================================================================
    # SCOPE PUSHING
    # ========================================================================

    def push_scope(self, context_items: Iterable[Any]) -> None:
        """
        Push objects to be captured by the next scheduled continuation.

        Objects are keyed by their runtime type. When two objects share a type
        the later one wins.
        """
        scope: ScopeData = {}
        for item in context_items:
            scope[type(item)] = item
        self._scope_stack.append(scope)

    def pop_scope(self) -> Optional[ScopeData]:
        """Remove and return the most recently pushed scope, if any."""
        return self._scope_stack.pop() if self._scope_stack else None

    # ========================================================================
    # LIFECYCLE HOOKS
    # ========================================================================

    def create(self) -> ContextFrame:
        """Called when a continuation is scheduled. Returns its frame."""
        scope = self.pop_scope()
        parent = self._active.get()

        try:
            frame = ContextFrame(scope, parent, self._arena)
        except Exception:
            if scope is not None:
                self._scope_stack.append(scope)
            raise

        self.capture(parent)
        return frame

    def before(self, frame: ContextFrame) -> None:
        """Called immediately before the continuation body runs."""
        self._active.set(frame)

    def after(self, frame: ContextFrame) -> None:
        """Called after the continuation body has returned."""
        self._release(frame)

    def error(self, frame: ContextFrame, exc: BaseException) -> None:
        """Called after the continuation body has raised.

        Performs the same cleanup as after(). The exception is left for the
        host to propagate.
        """
        logging.debug(f"Releasing context frame after {type(exc).__name__}: {exc}")
        self._release(frame)

    def _release(self, frame: ContextFrame) -> None:
        self.release_chain(frame)
        self._active.set(frame.parent)

    # ========================================================================
    # CAPTURE / RELEASE WALKS
    # ========================================================================

    def capture(self, frame: Optional[ContextFrame]) -> None:
        """Add one reference to every frame from frame to the root."""
        if frame is None:
            return
        for current in frame.chain():
            current.add_ref()

    def release_chain(self, frame: Optional[ContextFrame]) -> None:
        """Release one reference from every frame from frame to the root.

        Frames whose count drops from 1 to 0 are disposed.
        """
        if frame is None:
            return
        for current in frame.chain():
            if current.release() == 1:
                self._dispose_frame(current)

    def _dispose_frame(self, frame: ContextFrame) -> None:
        # Shared ancestors can be reached by several release walks
        if not frame.mark_disposed():
            return

        objects = list(frame.data.values())
        frame._retire()

        if objects:
            logging.debug(
                f"Disposing context frame holding "
                f"{', '.join(type(obj).__name__ for obj in objects)}"
            )

        for obj in objects:
            self._dispose_object(obj)

    @staticmethod
    def _dispose_object(obj: Any) -> None:
        disposer = getattr(obj, "dispose", None)
        if disposer is None:
            disposer = getattr(obj, "close", None)
        if not callable(disposer):
            return

        try:
            disposer()
        except Exception as e:
            logging.error(f"Error disposing {type(obj).__name__}: {e}")

    # ========================================================================
    # LOOKUP
    # ========================================================================

    def find_context_object_from_scope(self, object_type: Type[T]) -> Optional[T]:
        """
        Find the nearest object of the given type in scope.

        Walks from the active frame toward the root and returns the first
        match, or None when no frame in the chain holds one.
        """
        frame = self._active.get()
        while frame is not None:
            if object_type in frame.data:
                return frame.data[object_type]
            frame = frame.parent
        return None

    @contextmanager
    def activate(self, frame: Optional[ContextFrame]) -> Iterator[None]:
        """Temporarily make frame active, restoring the previous frame on exit."""
        token = self._active.set(frame)
        try:
            yield
        finally:
            self._active.reset(token)

    # ========================================================================
    # ADMINISTRATION
    # ========================================================================

    def try_reset(self) -> bool:
        """
        Clear the pending scopes and the active frame.

        Returns:
            False, without changing anything, while a frame is active.
        """
        if self._active.get() is not None:
            logging.debug("ContextStack reset refused while a frame is active")
            return False

        self._active.set(None)
        self._scope_stack.clear()
        return True


_context_stack: Optional[ContextStack] = None


def get_context_stack() -> ContextStack:
    """
    Get or create the default ContextStack.

    Lazy singleton: created on first access, reused thereafter. Tests reset it
    via _reset_context_stack().
    """
    global _context_stack
    if _context_stack is None:
        _context_stack = ContextStack()
    return _context_stack


def _reset_context_stack() -> None:
    """Discard the default ContextStack (for testing)."""
    global _context_stack
    _context_stack = None
