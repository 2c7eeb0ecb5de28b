"""
Ambient Continuation - Lifecycle State Machine
==============================================

A Continuation wraps one scheduled unit of work and drives the ContextStack
hooks in order:

    SCHEDULED --enter()--> RUNNING --complete()--> COMPLETED
                                   --fail(exc)---> FAILED
    SCHEDULED --cancel()--> FAILED

Construction calls create(), so the frame chain is captured at the moment the
work is queued. Hooks invoked out of order raise ContinuationStateError.
"""

from enum import Enum
from typing import Any, Callable, Optional

from .exceptions import ContinuationStateError
from .frame import ContextFrame
from .stack import ContextStack, get_context_stack


class ContinuationState(Enum):
    SCHEDULED = "scheduled"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"


class Continuation:
    """A scheduled unit of work holding a reference to its context frame."""

    __slots__ = ("_stack", "_frame", "_state")

    def __init__(self, stack: Optional[ContextStack] = None) -> None:
        self._stack = stack if stack is not None else get_context_stack()
        self._frame: ContextFrame = self._stack.create()
        self._state = ContinuationState.SCHEDULED

    @property
    def frame(self) -> ContextFrame:
        return self._frame

    @property
    def state(self) -> ContinuationState:
        return self._state

    @property
    def stack(self) -> ContextStack:
        return self._stack

    def enter(self) -> None:
        self._transition(ContinuationState.SCHEDULED, ContinuationState.RUNNING)
        self._stack.before(self._frame)

    def complete(self) -> None:
        self._transition(ContinuationState.RUNNING, ContinuationState.COMPLETED)
        self._stack.after(self._frame)

    def fail(self, exc: BaseException) -> None:
        self._transition(ContinuationState.RUNNING, ContinuationState.FAILED)
        self._stack.error(self._frame, exc)

    def cancel(self) -> None:
        """Drop a continuation that will never run.

        Releases the captured chain without touching the active frame.
        """
        self._transition(ContinuationState.SCHEDULED, ContinuationState.FAILED)
        self._stack.release_chain(self._frame)

    def run(self, func: Callable[..., Any], *args: Any, **kwargs: Any) -> Any:
        """Run func as the body of this continuation.

        Exceptions raised by func propagate unchanged after cleanup.
        """
        self.enter()
        try:
            result = func(*args, **kwargs)
        except BaseException as exc:
            self.fail(exc)
            raise
        self.complete()
        return result

    def _transition(
        self, expected: ContinuationState, target: ContinuationState
    ) -> None:
        if self._state is not expected:
            raise ContinuationStateError(
                f"Cannot move continuation to {target.value}: "
                f"state is {self._state.value}, expected {expected.value}"
            )
        self._state = target

    def __repr__(self) -> str:
        return f"Continuation({self._state.value}, {self._frame!r})"
