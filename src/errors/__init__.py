"""Error handling framework for StoreCommand.

This package provides:
- Error code registry with E-XXXX format codes
- Typed domain exceptions raised by services and the execution engine
- Error formatting for API envelopes and logs

Error categories:
- E-1xxx: Command interpretation errors
- E-2xxx: Plan validation and gating errors
- E-3xxx: Commerce platform API errors
- E-4xxx: System/configuration errors
- E-5xxx: Platform connection errors
"""

from src.errors.domain import (
    ClarificationPendingError,
    CommandStateError,
    ConfigurationError,
    ConfirmationRequiredError,
    DependencyNotSatisfiedError,
    DomainError,
    InterpretationError,
    LLMResponseParseError,
    NoConnectedPlatformError,
    NotFoundError,
    PlatformAPIError,
    UndoNotAvailableError,
    UnsupportedActionError,
    UnsupportedPlatformError,
    ValidationError,
)
from src.errors.formatter import (
    StoreCommandError,
    format_error,
    format_error_summary,
)
from src.errors.registry import (
    ERROR_REGISTRY,
    ErrorCategory,
    ErrorCode,
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
    # Domain exceptions
    "DomainError",
    "NotFoundError",
    "ValidationError",
    "InterpretationError",
    "LLMResponseParseError",
    "ClarificationPendingError",
    "ConfirmationRequiredError",
    "UnsupportedActionError",
    "DependencyNotSatisfiedError",
    "CommandStateError",
    "UndoNotAvailableError",
    "PlatformAPIError",
    "NoConnectedPlatformError",
    "UnsupportedPlatformError",
    "ConfigurationError",
    # Formatter
    "StoreCommandError",
    "format_error",
    "format_error_summary",
]
