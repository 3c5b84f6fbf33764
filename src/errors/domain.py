"""Typed domain exceptions for API error mapping.

These exceptions provide stronger API contract guarantees than
string-based error message matching. Each carries an E-XXXX code from
the registry so the API layer can render a consistent envelope.

Usage:
    # In service layer
    raise NotFoundError("Command", command_id)

    # In route handler (or the app-wide exception handler)
    except NotFoundError as e:
        return JSONResponse(status_code=404, content=StoreCommandError.from_exception(e).to_envelope())
"""

from typing import Any


class DomainError(Exception):
    """Base exception for all domain errors."""

    error_code = "E-4002"

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class NotFoundError(DomainError):
    """Resource was not found. Maps to HTTP 404."""

    def __init__(self, resource_type: str, identifier: str) -> None:
        super().__init__(f"{resource_type} '{identifier}' not found")
        self.resource_type = resource_type
        self.identifier = identifier


class ValidationError(DomainError):
    """Validation failure. Maps to HTTP 400."""

    error_code = "E-2001"


class InterpretationError(DomainError):
    """Neither the language model nor the pattern fallback produced a plan.

    Attributes:
        original_command: The command text that failed to interpret.
        suggestions: Example phrasings that the fallback understands.
    """

    error_code = "E-1001"

    def __init__(
        self,
        message: str,
        original_command: str = "",
        suggestions: list[str] | None = None,
    ) -> None:
        super().__init__(message)
        self.original_command = original_command
        self.suggestions = suggestions or []


class LLMResponseParseError(InterpretationError):
    """Model output contained no parseable JSON object."""

    error_code = "E-1002"

    def __init__(self, message: str, raw_text: str = "") -> None:
        super().__init__(message)
        self.raw_text = raw_text


class ClarificationPendingError(DomainError):
    """Execution attempted on a command still awaiting clarification."""

    error_code = "E-1003"

    def __init__(self, command_id: str) -> None:
        super().__init__(f"Command '{command_id}' is awaiting clarification")
        self.command_id = command_id


class ConfirmationRequiredError(DomainError):
    """MEDIUM/HIGH risk plan submitted without confirmation."""

    error_code = "E-2002"

    def __init__(self, risk_level: str, warnings: str | None = None) -> None:
        super().__init__(
            f"{risk_level} risk command requires confirmation"
            + (f": {warnings}" if warnings else "")
        )
        self.risk_level = risk_level
        self.warnings = warnings


class UnsupportedActionError(DomainError):
    """Action type has no automatic handler."""

    error_code = "E-2003"

    def __init__(self, action_type: str) -> None:
        super().__init__(
            f"Action '{action_type}' requires manual review and was not executed"
        )
        self.action_type = action_type


class DependencyNotSatisfiedError(DomainError):
    """A step's depends_on_step produced nothing usable."""

    error_code = "E-2004"

    def __init__(self, step_number: int, depends_on_step: int, reason: str) -> None:
        super().__init__(
            f"Step {step_number} skipped: step {depends_on_step} {reason}"
        )
        self.step_number = step_number
        self.depends_on_step = depends_on_step


class CommandStateError(DomainError):
    """Mutation attempted on a command in a terminal state. Maps to HTTP 409."""

    error_code = "E-2005"


class UndoNotAvailableError(DomainError):
    """Command has nothing that can be reverted."""

    error_code = "E-2006"


class PlatformAPIError(DomainError):
    """Non-2xx response or transport failure from a commerce platform.

    The raw response body is kept verbatim so that callers can surface
    the platform's own explanation.

    Attributes:
        platform: Platform type or display name.
        status_code: HTTP status, or None for transport failures.
        body: Raw response body text.
    """

    def __init__(
        self, platform: str, status_code: int | None, body: str
    ) -> None:
        if status_code is None:
            message = f"{platform} request failed: {body}"
        else:
            message = f"{platform} API error ({status_code}): {body}"
        super().__init__(message)
        self.platform = platform
        self.status_code = status_code
        self.body = body

    @property
    def error_code(self) -> str:  # type: ignore[override]
        if self.status_code is None:
            return "E-3004"
        if self.status_code in (401, 403):
            return "E-3002"
        if self.status_code == 429:
            return "E-3003"
        return "E-3001"

    @property
    def is_auth_error(self) -> bool:
        return self.status_code in (401, 403)


class NoConnectedPlatformError(DomainError):
    """No requested platform is connected, active and owned by the user."""

    error_code = "E-5001"

    def __init__(self, platform_targets: list[Any] | None = None) -> None:
        super().__init__("No connected platform matches the requested targets")
        self.platform_targets = platform_targets or []


class UnsupportedPlatformError(DomainError):
    """Platform type lacks a catalog client for this operation."""

    error_code = "E-5002"

    def __init__(self, platform_type: str) -> None:
        super().__init__(f"Platform '{platform_type}' is not supported for this operation")
        self.platform_type = platform_type


class ConfigurationError(DomainError):
    """Required configuration (API key, encryption key) is missing. Maps to 503."""

    error_code = "E-4001"
