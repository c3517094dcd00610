"""Domain exception hierarchy for structured error responses."""

from __future__ import annotations


class AppException(Exception):
    """Base exception for all domain errors.

    Subclasses set ``code`` and ``status_code`` at the class level; callers
    provide ``message`` and an optional ``details`` list.
    """

    code: str = "APP_ERROR"
    status_code: int = 500

    def __init__(self, message: str, details: list[dict] | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.details = details or []


class NotFoundException(AppException):
    code = "NOT_FOUND"
    status_code = 404


class ConflictException(AppException):
    code = "CONFLICT"
    status_code = 409


class ForbiddenException(AppException):
    code = "FORBIDDEN"
    status_code = 403


class UnauthorizedException(AppException):
    code = "UNAUTHORIZED"
    status_code = 401


class BusinessRuleException(AppException):
    code = "BUSINESS_RULE_VIOLATION"
    status_code = 422


# ---------------------------------------------------------------------------
# Order lifecycle
# ---------------------------------------------------------------------------


class InvalidTransitionException(BusinessRuleException):
    """Role/sequence gate rejected the transition."""

    code = "INVALID_TRANSITION"

    def __init__(
        self,
        message: str,
        details: list[dict] | None = None,
        backwards: bool = False,
    ) -> None:
        super().__init__(message, details)
        self.backwards = backwards


class PaymentRequiredException(BusinessRuleException):
    code = "PAYMENT_REQUIRED"


class ReasonRequiredException(BusinessRuleException):
    code = "REASON_REQUIRED"


class OrderNotReadyException(BusinessRuleException):
    code = "ORDER_NOT_READY"


class TransitionConflictException(ConflictException):
    """The order's status changed between read and write. Reload and retry."""

    code = "TRANSITION_CONFLICT"


class NotificationFailedException(AppException):
    """Best-effort notification could not be delivered."""

    code = "NOTIFICATION_FAILED"
    status_code = 502
