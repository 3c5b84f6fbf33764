"""Error formatting utilities.

This module provides:
- StoreCommandError, the structured error payload built from registry codes
- Conversion of domain exceptions into API error envelopes
- Text formatting for logs and automation run summaries
"""

from collections import Counter
from dataclasses import dataclass, field

from src.errors.domain import DomainError, InterpretationError, PlatformAPIError
from src.errors.registry import ErrorCode, get_error
from src.utils.redaction import redact_text

_FALLBACK_REMEDIATION = "Contact support."


class _KeepMissing(dict):
    """format_map mapping that leaves unknown placeholders in place."""

    def __missing__(self, key: str) -> str:
        return "{" + key + "}"


@dataclass
class StoreCommandError(Exception):
    """Application error with code, message, and context.

    Attributes:
        code: Error code in E-XXXX format.
        message: Human-readable error message.
        remediation: Action user should take to resolve.
        title: Short display title from the registry.
        is_retryable: Whether the operation can be retried without user action.
        details: Additional context dictionary.
    """

    code: str
    message: str
    remediation: str
    title: str = ""
    is_retryable: bool = False
    details: dict = field(default_factory=dict)

    def __str__(self) -> str:
        return f"{self.code}: {self.message}"

    @classmethod
    def _build(
        cls, code: str, message: str, definition: ErrorCode | None, details: dict
    ) -> "StoreCommandError":
        if definition is None:
            return cls(code=code, message=message, remediation=_FALLBACK_REMEDIATION, details=details)
        return cls(
            code=code,
            message=message,
            remediation=definition.remediation,
            title=definition.title,
            is_retryable=definition.is_retryable,
            details=details,
        )

    @classmethod
    def from_code(
        cls, code: str, details: dict | None = None, **context: object
    ) -> "StoreCommandError":
        """Create an error from a registry code, filling the message template.

        Placeholders without a matching context value stay as written.
        Unknown codes produce an "Unknown error" message.
        """
        definition = get_error(code)
        if definition is None:
            message = f"Unknown error: {code}"
        else:
            message = definition.message_template.format_map(_KeepMissing(context))
        return cls._build(code, message, definition, details or {})

    @classmethod
    def from_exception(cls, exc: Exception) -> "StoreCommandError":
        """Build a structured error from any raised exception.

        Domain errors keep their own message and registry code. Anything
        else becomes E-4002 with the exception text redacted.
        """
        if not isinstance(exc, DomainError):
            return cls.from_code("E-4002", reason=redact_text(str(exc)))

        details: dict = {}
        if isinstance(exc, PlatformAPIError):
            details = {
                "platform": exc.platform,
                "status_code": exc.status_code,
                "body": redact_text(exc.body),
            }
        elif isinstance(exc, InterpretationError) and exc.suggestions:
            details = {"suggestions": exc.suggestions}

        return cls._build(
            exc.error_code, redact_text(exc.message), get_error(exc.error_code), details
        )

    def to_envelope(self) -> dict:
        """Render the failure half of the API response envelope."""
        envelope = {
            "success": False,
            "error": self.message,
            "error_code": self.code,
            "title": self.title,
            "remediation": self.remediation,
        }
        if self.details:
            envelope["details"] = self.details
        return envelope


def format_error(error: StoreCommandError, include_remediation: bool = True) -> str:
    """One line per error, plus an indented remediation line when requested."""
    text = str(error)
    if include_remediation:
        text += f"\n  Action: {error.remediation}"
    return text


def format_error_summary(
    errors: list[StoreCommandError], include_remediation: bool = True
) -> str:
    """Format a list of errors, collapsing identical code and message pairs.

    Args:
        errors: Errors in the order they occurred.
        include_remediation: Whether to include remediation lines.

    Returns:
        A single formatted error when all are identical, otherwise a
        numbered list with repeat counts.
    """
    if not errors:
        return "No errors."

    counts = Counter((e.code, e.message) for e in errors)
    first_seen = {(e.code, e.message): e for e in reversed(errors)}
    if len(counts) == 1:
        return format_error(errors[0], include_remediation)

    lines = [f"{len(counts)} error type(s) found:\n"]
    for i, (key, count) in enumerate(counts.items(), 1):
        suffix = f" (x{count})" if count > 1 else ""
        lines.append(f"{i}. {format_error(first_seen[key], include_remediation)}{suffix}")
        lines.append("")
    return "\n".join(lines)
