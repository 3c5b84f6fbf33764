"""Tests for secret redaction utility."""

from src.utils.redaction import redact_for_logging, redact_text, sanitize_error_message


class TestRedactForLogging:

    def test_redacts_platform_credentials(self):
        data = {"consumer_key": "ck_1", "consumer_secret": "cs_1", "shop_name": "Garden"}
        result = redact_for_logging(data)
        assert result["consumer_key"] == "***REDACTED***"
        assert result["consumer_secret"] == "***REDACTED***"
        assert result["shop_name"] == "Garden"

    def test_container_keys_are_redacted_whole(self):
        result = redact_for_logging({"headers": {"Accept": "application/json"}})
        assert result["headers"] == "***REDACTED***"

    def test_handles_nested_dict_and_lists(self):
        data = {
            "outer": {"access_token": "tok123", "name": "Store"},
            "errors": [{"api_key": "leaked", "field": "x"}, "plain"],
        }
        result = redact_for_logging(data)
        assert result["outer"] == {"access_token": "***REDACTED***", "name": "Store"}
        assert result["errors"] == [{"api_key": "***REDACTED***", "field": "x"}, "plain"]

    def test_input_is_not_mutated(self):
        data = {"access_token": "tok"}
        redact_for_logging(data)
        assert data == {"access_token": "tok"}


class TestRedactText:

    def test_shopify_token_header(self):
        text = "request failed: X-Shopify-Access-Token: shpat_abc123"
        assert "shpat_abc123" not in redact_text(text)

    def test_bare_shopify_token(self):
        assert redact_text("token shpat_abc123 rejected") == "token ***REDACTED*** rejected"

    def test_bearer_header(self):
        assert "t0ken" not in redact_text("Authorization: Bearer t0ken")

    def test_json_credentials(self):
        body = '{"consumer_secret": "cs_live_1", "code": "woocommerce_rest_cannot_view"}'
        result = redact_text(body)
        assert "cs_live_1" not in result
        assert "woocommerce_rest_cannot_view" in result


class TestSanitizeErrorMessage:

    def test_none_passes_through(self):
        assert sanitize_error_message(None) is None

    def test_truncates(self):
        result = sanitize_error_message("x" * 50, max_length=20)
        assert len(result) == 20
        assert result.endswith("...")

    def test_redacts_before_truncating(self):
        assert sanitize_error_message("password=hunter2 failed") == "***REDACTED*** failed"
