"""Error code registry with E-XXXX format codes.

This module defines the error code system for the status engine, organizing
errors into categories:
- E-1xxx: Lookup errors (missing or deleted shipments)
- E-2xxx: Validation errors (rejected before any write)
- E-3xxx: State precondition errors (operation not allowed in current state)
- E-4xxx: System/internal errors

Each error includes a code, title, message template, and remediation steps.
"""

from dataclasses import dataclass
from enum import Enum


class ErrorCategory(str, Enum):
    """Categories for error codes."""

    LOOKUP = "lookup"  # E-1xxx
    VALIDATION = "validation"  # E-2xxx
    STATE = "state"  # E-3xxx
    SYSTEM = "system"  # E-4xxx


@dataclass
class ErrorCode:
    """Definition of an error code with metadata.

    Attributes:
        code: Error code in E-XXXX format.
        category: Error category for grouping.
        title: Short title for display.
        message_template: Message with {placeholders} for context.
        remediation: Action user should take to resolve.
        is_retryable: Whether the operation can be retried without user action.
    """

    code: str
    category: ErrorCategory
    title: str
    message_template: str
    remediation: str
    is_retryable: bool = False


ERROR_REGISTRY: dict[str, ErrorCode] = {
    # Lookup errors (E-1xxx)
    "E-1001": ErrorCode(
        code="E-1001",
        category=ErrorCategory.LOOKUP,
        title="Shipment Not Found",
        message_template="{resource_type} '{identifier}' not found",
        remediation="Check the shipment ID. Deleted shipments are not managed by the status engine.",
    ),
    # Validation errors (E-2xxx)
    "E-2001": ErrorCode(
        code="E-2001",
        category=ErrorCategory.VALIDATION,
        title="Override Reason Too Short",
        message_template="Override reason must be at least {min_length} characters.",
        remediation="Explain why the status is being overridden, then retry.",
    ),
    "E-2002": ErrorCode(
        code="E-2002",
        category=ErrorCategory.VALIDATION,
        title="Invalid Status",
        message_template="Invalid status '{value}'. Must be one of: {allowed}.",
        remediation="Use one of the listed status values.",
    ),
    # State errors (E-3xxx)
    "E-3001": ErrorCode(
        code="E-3001",
        category=ErrorCategory.STATE,
        title="Receipt Already Confirmed",
        message_template="Warehouse receipt has already been confirmed for shipment '{shipment_id}'.",
        remediation="Warehouse confirmation is a one-time event. Use a manual override to correct the status.",
    ),
    "E-3002": ErrorCode(
        code="E-3002",
        category=ErrorCategory.STATE,
        title="No Active Override",
        message_template="Shipment '{shipment_id}' does not have a manual override to clear.",
        remediation="Nothing to do: the status is already managed automatically.",
    ),
    # System errors (E-4xxx)
    "E-4001": ErrorCode(
        code="E-4001",
        category=ErrorCategory.SYSTEM,
        title="Database Error",
        message_template="Status update for shipment '{shipment_id}' failed and was rolled back: {details}",
        remediation="This is a system error. Retry the operation. Contact support if issue persists.",
        is_retryable=True,
    ),
}


def get_error(code: str) -> ErrorCode | None:
    """Get error definition by code.

    Args:
        code: Error code in E-XXXX format.

    Returns:
        ErrorCode if found, None otherwise.
    """
    return ERROR_REGISTRY.get(code)


def get_errors_by_category(category: ErrorCategory) -> list[ErrorCode]:
    """Get all errors in a category.

    Args:
        category: The error category to filter by.

    Returns:
        List of ErrorCode objects in that category.
    """
    return [e for e in ERROR_REGISTRY.values() if e.category == category]


def format_error_message(code: str, **context: object) -> str:
    """Render a registry message template with context values.

    Falls back to the raw template when placeholders are missing, and to a
    generic message for unknown codes.
    """
    error_def = get_error(code)
    if error_def is None:
        return f"Unknown error: {code}"
    try:
        return error_def.message_template.format(**context)
    except KeyError:
        return error_def.message_template
