"""Error code registry with E-XXXX format codes.

The leading digit of a code names its category:
- E-1xxx: Command interpretation errors
- E-2xxx: Plan validation and gating errors
- E-3xxx: Commerce platform API errors
- E-4xxx: System/configuration errors
- E-5xxx: Platform connection errors

Each error carries a title, a message template with {placeholders}, and
the remediation shown to the user.
"""

from dataclasses import dataclass, field
from enum import Enum


class ErrorCategory(str, Enum):
    """Categories for error codes."""

    INTERPRETATION = "interpretation"  # E-1xxx
    VALIDATION = "validation"  # E-2xxx
    PLATFORM_API = "platform_api"  # E-3xxx
    SYSTEM = "system"  # E-4xxx
    CONNECTION = "connection"  # E-5xxx


_CATEGORY_BY_DIGIT = {
    "1": ErrorCategory.INTERPRETATION,
    "2": ErrorCategory.VALIDATION,
    "3": ErrorCategory.PLATFORM_API,
    "4": ErrorCategory.SYSTEM,
    "5": ErrorCategory.CONNECTION,
}


@dataclass(frozen=True)
class ErrorCode:
    """Definition of an error code.

    Attributes:
        code: Error code in E-XXXX format.
        title: Short title for display.
        message_template: Message with {placeholders} for context.
        remediation: Action the user should take.
        is_retryable: Whether retrying without user action can succeed.
        category: Derived from the code's leading digit.
    """

    code: str
    title: str
    message_template: str
    remediation: str
    is_retryable: bool = False
    category: ErrorCategory = field(init=False)

    def __post_init__(self) -> None:
        object.__setattr__(self, "category", _CATEGORY_BY_DIGIT[self.code[2]])


_DEFINITIONS = (
    ErrorCode(
        "E-1001",
        "Command Not Understood",
        "Unable to interpret command: {reason}",
        "Rephrase the command with an explicit action, amount and target, "
        "e.g. 'increase price by 10% for all products'.",
    ),
    ErrorCode(
        "E-1002",
        "Unreadable Model Response",
        "The language model returned no usable JSON: {reason}",
        "Retry the command. If it keeps failing, simplify it.",
        is_retryable=True,
    ),
    ErrorCode(
        "E-1003",
        "Clarification Pending",
        "Command {command_id} is waiting for a clarification answer.",
        "Answer the clarification question before executing.",
    ),
    ErrorCode(
        "E-2001",
        "Invalid Action Plan",
        "{reason}",
        "Fix the action parameters and resubmit.",
    ),
    ErrorCode(
        "E-2002",
        "Confirmation Required",
        "This {risk_level} risk command must be confirmed before execution.",
        "Review the warnings and resubmit with confirmed=true.",
    ),
    ErrorCode(
        "E-2003",
        "Unsupported Action",
        "Action type '{action_type}' cannot be executed automatically.",
        "Perform this change manually in the platform admin.",
    ),
    ErrorCode(
        "E-2004",
        "Dependency Not Satisfied",
        "{reason}",
        "Check the earlier step's result and adjust its filters.",
    ),
    ErrorCode(
        "E-2005",
        "Command State Conflict",
        "{reason}",
        "Create a new command instead of modifying a finished one.",
    ),
    ErrorCode(
        "E-2006",
        "Undo Not Available",
        "{reason}",
        "Only executed, non-preview commands with change history can be undone.",
    ),
    ErrorCode(
        "E-3001",
        "Platform API Error",
        "{platform} API error ({status}): {body}",
        "Check the platform response and retry the affected items.",
    ),
    ErrorCode(
        "E-3002",
        "Platform Authorization Failed",
        "{platform} rejected the stored credentials ({status}).",
        "Reconnect the store to refresh its access token.",
    ),
    ErrorCode(
        "E-3003",
        "Platform Rate Limited",
        "{platform} rate limit reached ({status}).",
        "Wait a moment and retry, or lower the batch size.",
        is_retryable=True,
    ),
    ErrorCode(
        "E-3004",
        "Platform Unreachable",
        "Could not reach {platform}: {body}",
        "Check network connectivity and the store URL.",
        is_retryable=True,
    ),
    ErrorCode(
        "E-4001",
        "Configuration Error",
        "{reason}",
        "Set the missing configuration value and restart.",
    ),
    ErrorCode(
        "E-4002",
        "Internal Error",
        "Unexpected error: {reason}",
        "Retry the request. If it persists, check the server logs.",
    ),
    ErrorCode(
        "E-5001",
        "No Connected Platform",
        "None of the requested platforms are connected and active.",
        "Connect a store or select an active platform.",
    ),
    ErrorCode(
        "E-5002",
        "Unsupported Platform",
        "Platform '{platform_type}' does not support this operation.",
        "Run the command against a Shopify or WooCommerce store.",
    ),
)

ERROR_REGISTRY: dict[str, ErrorCode] = {e.code: e for e in _DEFINITIONS}


def get_error(code: str) -> ErrorCode | None:
    """Look up an error definition; None for unknown codes."""
    return ERROR_REGISTRY.get(code)


def get_errors_by_category(category: ErrorCategory) -> list[ErrorCode]:
    """Get all errors in a category."""
    return [e for e in _DEFINITIONS if e.category == category]
