"""
Ambient ContextFrame - Reference-Counted Scope Node
===================================================

A ContextFrame holds the objects pushed for one scope, a link to the enclosing
frame and a reference count. Frames form parent-linked chains that may share
ancestors: two listeners on one emitter and the original callback chain can
all descend from the same frame.

The reference count lives in a FrameArena slot. The frame itself never disposes
its data; the engine does that when it observes a release returning 1.
"""

from typing import Any, Dict, Iterator, Optional

from .util.arena import FrameArena

ScopeData = Dict[type, Any]

# Arena for frames created without an explicit one
_default_arena = FrameArena()


class ContextFrame:
    """
    A node in the context chain.

    Attributes:
        data (Dict[type, Any]): Objects held in scope, keyed by their type
        parent (ContextFrame): The enclosing frame, or None at the root
        ref_count (int): Outstanding references, 1 for a freshly created frame

    Example:
        ```python
        frame = ContextFrame({Session: session}, parent=None, arena=arena)
        frame.add_ref()   # 2
        frame.release()   # returns 2, count is now 1
        ```
    """

    __slots__ = ("_data", "_parent", "_arena", "_slot", "__weakref__")

    def __init__(
        self,
        data: Optional[ScopeData],
        parent: Optional["ContextFrame"],
        arena: Optional[FrameArena] = None,
    ) -> None:
        self._data: ScopeData = dict(data) if data else {}
        self._parent = parent
        self._arena = arena if arena is not None else _default_arena
        self._slot: Optional[int] = self._arena.allocate()

    @property
    def data(self) -> ScopeData:
        return self._data

    @property
    def parent(self) -> Optional["ContextFrame"]:
        return self._parent

    @property
    def ref_count(self) -> int:
        if self._slot is None:
            return 0
        return self._arena.ref_count(self._slot)

    @property
    def is_disposed(self) -> bool:
        if self._slot is None:
            return True
        return self._arena.is_disposed(self._slot)

    def add_ref(self) -> int:
        """Add a reference, returning the new count. Retired frames stay at 0."""
        if self._slot is None:
            return 0
        return self._arena.add_ref(self._slot)

    def release(self) -> int:
        """Release a reference, returning the count before the decrement."""
        if self._slot is None:
            return 0
        return self._arena.release(self._slot)

    def mark_disposed(self) -> bool:
        """Flag the frame as disposed. True only for the first call."""
        if self._slot is None:
            return False
        return self._arena.test_and_set_disposed(self._slot)

    def chain(self) -> Iterator["ContextFrame"]:
        """Iterate from this frame to the root."""
        frame: Optional[ContextFrame] = self
        while frame is not None:
            yield frame
            frame = frame._parent

    def _retire(self) -> None:
        """Drop the data and hand the slot back to the arena."""
        self._data = {}
        if self._slot is not None:
            self._arena.free(self._slot)
            self._slot = None

    def __contains__(self, object_type: type) -> bool:
        return object_type in self._data

    def __repr__(self) -> str:
        names = ", ".join(t.__name__ for t in self._data)
        return f"ContextFrame([{names}], ref_count={self.ref_count})"
