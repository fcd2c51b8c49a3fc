from __future__ import annotations


class AppError(Exception):
    """Base application error."""

    def __init__(self, detail: str = "") -> None:
        self.detail = detail
        super().__init__(detail)


class NotFoundError(AppError):
    pass


class ForbiddenError(AppError):
    pass


class ValidationError(AppError):
    pass


class StoreUnavailableError(AppError):
    """The message store could not be reached or answered with a server error."""


class PersistenceError(StoreUnavailableError):
    """A write to the message store failed. The caller may retry it."""


class TransportError(AppError):
    """The realtime channel is unavailable. Never fatal: persistence is unaffected."""
