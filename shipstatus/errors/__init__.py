"""Error handling framework for the status engine.

This package provides:
- Error code registry with E-XXXX format codes
- Typed domain exceptions raised by the status services

Error categories:
- E-1xxx: Lookup errors
- E-2xxx: Validation errors
- E-3xxx: State precondition errors
- E-4xxx: System/internal errors
"""

from shipstatus.errors.domain import (
    AlreadyConfirmedError,
    ConflictError,
    DomainError,
    NoActiveOverrideError,
    NotFoundError,
    PersistenceError,
    ValidationError,
)
from shipstatus.errors.registry import (
    ERROR_REGISTRY,
    ErrorCategory,
    ErrorCode,
    format_error_message,
    get_error,
    get_errors_by_category,
)

__all__ = [
    # Registry
    "ErrorCode",
    "ErrorCategory",
    "ERROR_REGISTRY",
    "get_error",
    "get_errors_by_category",
    "format_error_message",
    # Domain exceptions
    "DomainError",
    "NotFoundError",
    "ValidationError",
    "ConflictError",
    "AlreadyConfirmedError",
    "NoActiveOverrideError",
    "PersistenceError",
]
