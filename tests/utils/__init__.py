"""
Test utilities for Ambient.
"""

from .mock_objects import (
    ClosableMockObject,
    FailingDisposableMockObject,
    SimpleDisposableMockObject,
    SimpleMockObject,
)

__all__ = [
    "SimpleMockObject",
    "SimpleDisposableMockObject",
    "ClosableMockObject",
    "FailingDisposableMockObject",
]
