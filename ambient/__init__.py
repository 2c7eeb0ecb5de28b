"""
Ambient - Scoped Context Across Asynchronous Continuations
==========================================================

Attach objects to a unit of work and retrieve them by type from any callback,
task or event listener that continues it, without passing them through every
call in between. Scoped objects are disposed once the last continuation that
could observe them has finished.
"""

__version__ = "0.1.0"

from .api import bind_event_emitter, get_current_object, using
from .binding import BoundEventEmitter
from .continuation import Continuation, ContinuationState
from .events import REMOVE_LISTENER, EventEmitter, EventSource
from .exceptions import AmbientError, ContinuationStateError
from .frame import ContextFrame
from .scheduler import call_later, call_soon, create_task, install, uninstall
from .stack import ContextStack, _reset_context_stack, get_context_stack
from .util.arena import FrameArena

__all__ = [
    # Public wrappers
    "using",
    "get_current_object",
    "bind_event_emitter",
    # Engine
    "ContextStack",
    "ContextFrame",
    "FrameArena",
    "get_context_stack",
    # Continuations and the asyncio host adapter
    "Continuation",
    "ContinuationState",
    "call_soon",
    "call_later",
    "create_task",
    "install",
    "uninstall",
    # Events
    "EventEmitter",
    "EventSource",
    "REMOVE_LISTENER",
    "BoundEventEmitter",
    # Exceptions
    "AmbientError",
    "ContinuationStateError",
    # Testing utilities (internal use)
    "_reset_context_stack",
]
