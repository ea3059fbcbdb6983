"""
QuotePro exceptions.
Everything raised by the quotepro services derives from QuoteProError.
"""

from __future__ import annotations


class QuoteProError(Exception):
    """Base exception for the QuotePro core."""
    pass


class ValidationError(QuoteProError):
    """A required field is missing or invalid at commit time."""

    def __init__(self, message: str, errors: list[str] | None = None):
        super().__init__(message)
        self.errors = list(errors or [])


class InvalidTransition(QuoteProError):
    """A status change that is not an edge of the lifecycle."""

    def __init__(self, entity: str, src: str, dst: str):
        super().__init__(f"{entity}: transition {src} -> {dst} not allowed")
        self.entity = entity
        self.src = src
        self.dst = dst


class PreconditionFailed(QuoteProError):
    """Operation invoked on an entity in the wrong state."""
    pass


class NotFound(QuoteProError):
    pass


class NumberingError(QuoteProError):
    pass


class NumberingExhausted(NumberingError):
    """The sequence reached its upper bound; numbers never wrap."""
    pass


class NumberingConflict(NumberingError):
    """The counter moved between read and advance."""
    pass


class PersistenceError(QuoteProError):
    """Failure from the storage layer."""
    pass


class RenderingError(QuoteProError):
    """Template rendering or PDF conversion failed."""
    pass
