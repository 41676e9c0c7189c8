from __future__ import annotations

from enum import Enum


class ValidationErrorKind(str, Enum):
    INVALID_SERVICE_NAME = "INVALID_SERVICE_NAME"
    INVALID_PRICE = "INVALID_PRICE"
    INVALID_USER_ID = "INVALID_USER_ID"
    INVALID_DATE_RANGE = "INVALID_DATE_RANGE"


_VALIDATION_MESSAGES: dict[ValidationErrorKind, str] = {
    ValidationErrorKind.INVALID_SERVICE_NAME: "service name cannot be empty",
    ValidationErrorKind.INVALID_PRICE: "price must be a positive integer",
    ValidationErrorKind.INVALID_USER_ID: "invalid user id",
    ValidationErrorKind.INVALID_DATE_RANGE: "end date of the period cannot be earlier than the start date",
}


class SubscriptionError(Exception):
    """Base class for subscription domain failures."""


class SubscriptionValidationError(SubscriptionError):
    """Raised when input or a merged row breaks a subscription invariant."""

    def __init__(self, kind: ValidationErrorKind) -> None:
        self.kind = kind
        super().__init__(_VALIDATION_MESSAGES[kind])


class SubscriptionNotFoundError(SubscriptionError):
    def __init__(self, subscription_id: int) -> None:
        self.subscription_id = subscription_id
        super().__init__("subscription not found")


class SubscriptionOperationError(SubscriptionError):
    """Storage failure wrapped with the name of the operation that hit it.

    The original exception is kept as ``__cause__``.
    """

    def __init__(self, operation: str) -> None:
        self.operation = operation
        super().__init__(f"{operation} failed")


class StorageError(Exception):
    """Any persistence failure other than a missing row."""

    def __init__(self, operation: str, detail: str) -> None:
        self.operation = operation
        super().__init__(f"{operation} subscription error: {detail}")


class RecordNotFoundError(Exception):
    """No row matched the id given to get_by_id/update/delete."""

    def __init__(self, subscription_id: int) -> None:
        self.subscription_id = subscription_id
        super().__init__(f"subscription {subscription_id} does not exist")
