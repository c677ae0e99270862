"""Typed domain exceptions for the status engine.

These exceptions give callers (CLI commands, HTTP handlers living elsewhere)
stronger contract guarantees than string-based error message matching.
Each carries a registry code in E-XXXX format.

Usage:
    # In service layer
    raise NotFoundError("Shipment", shipment_id)

    # In a caller
    try:
        service.override(shipment_id, "sailed", reason, actor)
    except ValidationError as e:
        report(e.code, str(e))
"""

from shipstatus.errors.registry import format_error_message, get_error


class DomainError(Exception):
    """Base exception for all domain errors."""

    code: str = "E-4001"

    def __init__(self, message: str) -> None:
        super().__init__(message)

    @property
    def remediation(self) -> str:
        """Suggested fix from the error registry."""
        error_def = get_error(self.code)
        return error_def.remediation if error_def else ""

    @property
    def is_retryable(self) -> bool:
        """Whether the operation can be retried without user action."""
        error_def = get_error(self.code)
        return bool(error_def and error_def.is_retryable)


class NotFoundError(DomainError):
    """Shipment missing or soft-deleted."""

    code = "E-1001"

    def __init__(self, resource_type: str, identifier: str) -> None:
        super().__init__(
            format_error_message(
                self.code, resource_type=resource_type, identifier=identifier
            )
        )
        self.resource_type = resource_type
        self.identifier = identifier


class ValidationError(DomainError):
    """Input rejected before any write."""

    code = "E-2001"

    def __init__(self, message: str, code: str | None = None) -> None:
        super().__init__(message)
        if code is not None:
            self.code = code


class ConflictError(DomainError):
    """Operation not allowed in the shipment's current state."""


class AlreadyConfirmedError(ConflictError):
    """Warehouse receipt was already confirmed (one-shot event)."""

    code = "E-3001"

    def __init__(self, shipment_id: str) -> None:
        super().__init__(format_error_message(self.code, shipment_id=shipment_id))
        self.shipment_id = shipment_id


class NoActiveOverrideError(ConflictError):
    """Clear requested but no manual override is active."""

    code = "E-3002"

    def __init__(self, shipment_id: str) -> None:
        super().__init__(format_error_message(self.code, shipment_id=shipment_id))
        self.shipment_id = shipment_id


class PersistenceError(DomainError):
    """Transaction failed and was rolled back in full."""

    code = "E-4001"

    def __init__(self, shipment_id: str, details: str) -> None:
        super().__init__(
            format_error_message(self.code, shipment_id=shipment_id, details=details)
        )
        self.shipment_id = shipment_id
        self.details = details
