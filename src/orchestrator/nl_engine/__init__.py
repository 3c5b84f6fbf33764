"""Natural language engine for interpreting commerce commands.

Provides the LLM-backed CommandInterpreter, the deterministic pattern
fallback, JSON extraction from model replies, and risk scoring.
"""

from src.orchestrator.nl_engine.fallback import fallback_interpret
from src.orchestrator.nl_engine.interpreter import (
    CommandInterpreter,
    normalize_interpretation,
)
from src.orchestrator.nl_engine.llm_client import AnthropicLLMClient, LLMClient
from src.orchestrator.nl_engine.response_parser import extract_json_object
from src.orchestrator.nl_engine.risk import apply_risk, score

__all__ = [
    "CommandInterpreter",
    "normalize_interpretation",
    "fallback_interpret",
    "AnthropicLLMClient",
    "LLMClient",
    "extract_json_object",
    "apply_risk",
    "score",
]
