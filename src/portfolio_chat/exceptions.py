from __future__ import annotations


class PortfolioChatError(Exception):
    status_code = 500


class InvalidRequestError(PortfolioChatError):
    status_code = 400


class RateLimitExceededError(PortfolioChatError):
    status_code = 429

    def __init__(self, identifier: str, limit: int):
        super().__init__("Too many requests")
        self.identifier = identifier
        self.limit = limit


class NotFoundError(PortfolioChatError):
    status_code = 404


class PayloadTooLargeError(PortfolioChatError):
    status_code = 413


class StorageError(PortfolioChatError):
    """Raised by a session store backend that cannot serve an operation."""


class OrchestrationError(PortfolioChatError):
    """Unrecoverable failure while handling a request.

    ``debug`` carries ids, sizes and counts only (never prompt text or secrets) so
    it can be returned to the caller.
    """

    def __init__(self, message: str, *, debug: dict | None = None):
        super().__init__(message)
        self.debug = dict(debug or {})


class ExplanationError(OrchestrationError):
    """The file fetch or the model call behind a code explanation failed."""
