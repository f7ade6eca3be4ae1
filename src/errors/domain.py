"""Typed domain exceptions for API error mapping.

Services raise these; the API layer maps each type to an HTTP status
and the CLI prints them. Pool and ingestion failures also carry their
registry code so clients can branch on it.

Usage:
    # In service layer
    raise NoAvailableTrackingNumberError(TrackingClass.EG, order_id)

    # In route handler
    try:
        result = engine.assign_tracking(order_id)
    except NoAvailableTrackingNumberError as e:
        raise HTTPException(status_code=409, detail={"code": e.code, "message": str(e)})
"""

from src.errors.formatter import TrackPoolError


class DomainError(Exception):
    """Base exception for all domain errors."""

    code: str | None = None

    def __init__(self, message: str) -> None:
        super().__init__(message)


class NotFoundError(DomainError):
    """Resource was not found. Maps to HTTP 404."""

    def __init__(self, resource_type: str, identifier: str) -> None:
        super().__init__(f"{resource_type} '{identifier}' not found")
        self.resource_type = resource_type
        self.identifier = identifier


class ConflictError(DomainError):
    """Resource conflict (e.g., already assigned). Maps to HTTP 409."""

    def __init__(self, message: str, code: str | None = None) -> None:
        super().__init__(message)
        self.code = code


class ValidationError(DomainError):
    """Validation failure. Maps to HTTP 400."""

    def __init__(self, message: str, code: str | None = None) -> None:
        super().__init__(message)
        self.code = code

    @classmethod
    def from_code(cls, code: str, **kwargs: object) -> "ValidationError":
        """Build from a registry code, formatting its message template."""
        return cls(TrackPoolError.from_code(code, **kwargs).message, code=code)


class NoAvailableTrackingNumberError(DomainError):
    """The pool for a weight class has no claimable entry. Maps to HTTP 409.

    The order is left untouched; an operator must import more numbers
    and re-trigger assignment.
    """

    code = "E-3001"

    def __init__(self, tracking_class: str, order_id: str | None = None) -> None:
        tracking_class = getattr(tracking_class, "value", tracking_class)
        super().__init__(
            TrackPoolError.from_code(
                self.code, tracking_class=tracking_class, order_id=order_id or "-"
            ).message
        )
        self.tracking_class = tracking_class
        self.order_id = order_id


class ClaimContentionError(DomainError):
    """Every claim attempt lost the race to a concurrent claim. Maps to HTTP 503."""

    code = "E-3002"

    def __init__(self, tracking_class: str, attempts: int) -> None:
        tracking_class = getattr(tracking_class, "value", tracking_class)
        super().__init__(
            TrackPoolError.from_code(
                self.code, tracking_class=tracking_class, attempts=attempts
            ).message
        )
        self.tracking_class = tracking_class
        self.attempts = attempts


class IngestionAbortedError(DomainError):
    """An upload failed mid-way and was rolled back. Maps to HTTP 500.

    Attributes:
        reason: The underlying error message.
        batch_id: UploadBatch row recording the rollback.
        log_file: Upload log written for the failed attempt.
    """

    code = "E-4001"

    def __init__(
        self,
        reason: str,
        batch_id: str | None = None,
        log_file: str | None = None,
    ) -> None:
        super().__init__(TrackPoolError.from_code(self.code, reason=reason).message)
        self.reason = reason
        self.batch_id = batch_id
        self.log_file = log_file
