"""
Shared pytest fixtures and configuration for Ambient tests.
"""

import pytest

from ambient import ContextStack, EventEmitter, FrameArena
from ambient.stack import _reset_context_stack


@pytest.fixture(autouse=True)
def reset_context_stack():
    """Reset the default ContextStack before each test to prevent state leakage."""
    _reset_context_stack()
    yield
    _reset_context_stack()


@pytest.fixture
def arena():
    """Provide a small FrameArena so growth paths are exercised."""
    return FrameArena(initial_capacity=4, max_frames=1024)


@pytest.fixture
def stack(arena):
    """Provide a fresh ContextStack for tests that drive the hooks directly."""
    context_stack = ContextStack(arena)
    assert context_stack.try_reset(), "ContextStack could not be reset."
    return context_stack


@pytest.fixture
def emitter():
    return EventEmitter()
