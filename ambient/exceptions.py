"""
Ambient Exceptions
==================

Lookups for absent types never raise; they return None. The exceptions below
cover misuse of the continuation lifecycle.
"""


class AmbientError(Exception):
    """Base class for errors raised by the ambient package."""

    pass


class ContinuationStateError(AmbientError):
    """Raised when a continuation lifecycle hook is invoked out of order."""

    pass
