"""Tests for StoreCommandError envelopes and text summaries."""

from src.errors import (
    InterpretationError,
    NotFoundError,
    PlatformAPIError,
    StoreCommandError,
    format_error,
    format_error_summary,
)


class TestFromException:
    """Tests for StoreCommandError.from_exception()."""

    def test_domain_error_keeps_message_and_code(self):
        envelope = StoreCommandError.from_exception(NotFoundError("Command", "c1")).to_envelope()
        assert envelope["success"] is False
        assert envelope["error"] == "Command 'c1' not found"
        assert envelope["error_code"] == "E-4002"
        assert "details" not in envelope

    def test_platform_error_carries_redacted_body(self):
        exc = PlatformAPIError("Shopify", 401, '{"access_token": "shpat_abc123"}')
        error = StoreCommandError.from_exception(exc)
        assert error.code == "E-3002"
        assert error.details["status_code"] == 401
        assert "shpat_abc123" not in error.details["body"]
        assert "shpat_abc123" not in error.message

    def test_interpretation_suggestions_in_details(self):
        exc = InterpretationError("nope", suggestions=["increase price by 10% for all products"])
        assert StoreCommandError.from_exception(exc).details == {
            "suggestions": ["increase price by 10% for all products"]
        }

    def test_unexpected_exception_is_internal_error(self):
        error = StoreCommandError.from_exception(RuntimeError("token=abc123 leaked"))
        assert error.code == "E-4002"
        assert "abc123" not in error.message


class TestFromCode:
    """Tests for StoreCommandError.from_code()."""

    def test_template_substitution(self):
        error = StoreCommandError.from_code("E-1001", reason="empty command")
        assert error.message == "Unable to interpret command: empty command"
        assert error.title == "Command Not Understood"

    def test_unknown_code(self):
        error = StoreCommandError.from_code("E-9999")
        assert error.message == "Unknown error: E-9999"


class TestFormatting:
    """Tests for text formatting."""

    def _error(self, code="E-3001", message="Shopify API error (500): oops"):
        return StoreCommandError(code=code, message=message, remediation="Retry later.")

    def test_format_error_with_remediation(self):
        assert format_error(self._error()) == (
            "E-3001: Shopify API error (500): oops\n  Action: Retry later."
        )

    def test_summary_collapses_duplicates(self):
        summary = format_error_summary(
            [self._error(), self._error(), self._error("E-2004", "Step 2 skipped")],
            include_remediation=False,
        )
        assert "2 error type(s) found" in summary
        assert "E-3001: Shopify API error (500): oops (x2)" in summary
        assert "Action:" not in summary

    def test_empty_summary(self):
        assert format_error_summary([]) == "No errors."
