"""
Custom exception classes for the application.
HTTP-facing errors derive from ``HTTPException``; messaging errors are plain
exceptions that never reach a client.
"""

from fastapi import HTTPException, status


class ProductServiceError(HTTPException):
    """Base exception for catalog errors surfaced over HTTP."""

    def __init__(
        self, detail: str, status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR
    ):
        super().__init__(status_code=status_code, detail=detail)


class ProductNotFoundError(ProductServiceError):
    """Raised when a product does not exist or has been soft-deleted."""

    def __init__(self, product_id: int):
        self.product_id = product_id
        super().__init__(detail="Product not found", status_code=status.HTTP_404_NOT_FOUND)


class CategoryNotFoundError(ProductServiceError):
    """Raised when a product references a category that does not exist."""

    def __init__(self, category_id: int):
        self.category_id = category_id
        super().__init__(
            detail="Invalid category ID", status_code=status.HTTP_400_BAD_REQUEST
        )


class PersistenceError(ProductServiceError):
    """Raised when a storage write fails and has been rolled back."""

    def __init__(self, operation: str):
        self.operation = operation
        super().__init__(
            detail=f"Failed to {operation}",
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        )


class InvalidTokenError(Exception):
    """Raised when a JWT cannot be validated."""

    pass


class MessagingError(Exception):
    """Base class for event distribution errors."""

    pass


class MessagingUnavailableError(MessagingError):
    """Raised when the broker connection or topology cannot be set up."""

    pass


class EventDecodeError(MessagingError):
    """Raised when a message body is not a valid event envelope."""

    pass


class UnknownEventKindError(EventDecodeError):
    """Raised when an envelope is well-formed but its kind is not recognised."""

    def __init__(self, event_kind: str, event_id: str | None = None):
        self.event_kind = event_kind
        self.event_id = event_id
        super().__init__(f"Unknown event kind: {event_kind}")
