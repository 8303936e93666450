"""
services/errors.py

Engine exceptions. The HTTP layer maps them to status codes.
"""


class StoreError(RuntimeError):
    """A remote store read or write failed."""


class QuizNotFoundError(LookupError):
    """The requested practice set does not exist."""


class LoadFailureError(RuntimeError):
    """Set content or attempt could not be loaded. Terminal for the view, not retried."""


class FinalizeError(RuntimeError):
    """The submit write failed after all retries; the attempt is back in progress."""
