"""Configuration for the NL engine.

Environment Variables:
    ANTHROPIC_MODEL: Claude model used for interpretation and schedule
        recommendations. Defaults to "claude-sonnet-4-20250514".
    ANTHROPIC_API_KEY: Required for LLM interpretation. Without it the
        interpreter runs on the pattern fallback only.
"""

import os

DEFAULT_MODEL = "claude-sonnet-4-20250514"


def get_model(configured: str | None = None) -> str:
    """Get the Claude model to use.

    Args:
        configured: Model from the YAML config, which wins over the env var.

    Returns:
        Claude model identifier string.
    """
    if configured:
        return configured
    return os.environ.get("ANTHROPIC_MODEL", DEFAULT_MODEL)


def get_api_key() -> str | None:
    """Return the Anthropic API key, or None when unset or blank."""
    key = os.environ.get("ANTHROPIC_API_KEY", "").strip()
    return key or None
