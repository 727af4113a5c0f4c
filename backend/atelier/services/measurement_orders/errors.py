"""
Measurement order error taxonomy.

Every error carries a human-readable message plus keyword context for
structured logging. Validation errors additionally carry the full list of
violations found so callers can correct every problem in one round trip.
"""

from typing import Any, List, Optional, Sequence

INVALID_SUBMISSION_MESSAGE = "The measurement order submission is invalid"


class MeasurementOrderError(Exception):
    """Base exception for measurement order errors."""

    def __init__(self, message: str, **context: Any):
        super().__init__(message)
        self.message = message
        self.context = context


class ValidationError(MeasurementOrderError):
    """Raised when intake input is malformed or incomplete."""

    def __init__(
        self,
        message: str,
        violations: Optional[List[str]] = None,
        **context: Any,
    ):
        super().__init__(message, **context)
        self.violations = list(violations) if violations else [message]


class IncompleteProfileError(ValidationError):
    """Raised when an account lacks the personal details needed to order."""

    pass


class IncompleteMeasurementsError(ValidationError):
    """Raised when a template line is missing required measurements."""

    pass


class InvalidStatusTransitionError(ValidationError):
    """Raised when staff request a status move the transition table forbids."""

    def __init__(self, message: str, current_status: Any, target_status: Any, **context: Any):
        super().__init__(message, **context)
        self.current_status = current_status
        self.target_status = target_status


class NotFoundError(MeasurementOrderError):
    """Raised when a referenced order, template, account or reference is missing."""

    pass


class ConflictError(MeasurementOrderError):
    """Raised when the requested change conflicts with the order's current state."""

    pass


class PriceFinalError(ConflictError):
    """Raised when a price change is attempted on a paid order."""

    pass


class OrderReplacedError(ConflictError):
    """Raised when an operation targets an order superseded by a replacement."""

    pass


class AccountExistsError(MeasurementOrderError):
    """Raised when a guest asks for an account with an already registered email."""

    pass


class DependencyDegraded(MeasurementOrderError):
    """Raised by collaborators that are unreachable; callers fall back and log."""

    def __init__(self, message: str, dependency: str, **context: Any):
        super().__init__(message, **context)
        self.dependency = dependency


class OrderPersistenceError(MeasurementOrderError):
    """Raised when the order store rejects or fails an operation."""

    pass


class OrderNumberExhaustedError(OrderPersistenceError):
    """Raised when no unique order number could be generated."""

    pass


def merge_validation_errors(errors: Sequence[ValidationError]) -> ValidationError:
    """
    Combine the failures of independent intake checks into one error.

    A single failure is returned as is, keeping its specific type.
    """
    if len(errors) == 1:
        return errors[0]
    violations = [violation for error in errors for violation in error.violations]
    return ValidationError(INVALID_SUBMISSION_MESSAGE, violations=violations)
