"""Deterministic pattern interpreter used when the LLM is unavailable.

Covers the highest-frequency intents: percentage and fixed-amount price
changes, setting inventory, and adding inventory. A matched command whose
products cannot be determined becomes a clarification request instead of
a guess. Unmatched commands return None.
"""

import logging
import re
from typing import Any

from src.orchestrator.models.action import (
    UpdateInventoryAction,
    UpdateInventoryParams,
    UpdatePriceAction,
    UpdatePriceParams,
)
from src.orchestrator.models.interpretation import (
    ClarificationQuestion,
    ClarificationRequest,
    EstimatedImpact,
    Interpretation,
)
from src.orchestrator.nl_engine.risk import apply_risk

logger = logging.getLogger(__name__)

FALLBACK_CONFIDENCE = 0.9

_NUMBER = r"(\d+(?:\.\d+)?)"

_PRICE_PERCENT = re.compile(
    r"\b(increase|raise|decrease|lower|reduce|cut)\b.*?\bprices?\b.*?\bby\s+"
    + _NUMBER
    + r"\s*(?:%|percent\b)",
    re.IGNORECASE,
)
_PRICE_FIXED = re.compile(
    r"\b(increase|raise|decrease|lower|reduce|cut)\b.*?\bprices?\b.*?\bby\s+\$\s*"
    + _NUMBER,
    re.IGNORECASE,
)
_SET_INVENTORY = re.compile(
    r"\bset\b.*?\b(?:inventory|stock)\b(?:\s+levels?)?\s+(?:to|at)\s+(\d+)\b",
    re.IGNORECASE,
)
_ADD_INVENTORY = re.compile(
    r"\badd\s+(\d+)\s+(?:units?\s+)?(?:(?:to|of)\s+)?(?:the\s+)?(?:inventory|stock)\b",
    re.IGNORECASE,
)

_ALL_TARGET = re.compile(r"\b(all|every|everything)\b", re.IGNORECASE)
_NAMED_TARGET = re.compile(
    r"\bfor\s+(?:the\s+)?(?:product\s+)?[\"']?(?P<name>[^\"']+?)[\"']?\s*[.!]?\s*$",
    re.IGNORECASE,
)

_DECREASE_WORDS = {"decrease", "lower", "reduce", "cut"}

EXAMPLE_COMMANDS = [
    "increase all prices by 10%",
    "decrease price by $5 for product Blue Mug",
    "set inventory to 50 for product ABC",
    "add 20 to inventory for all products",
]


def _resolve_target(text: str, context: dict[str, Any]) -> dict[str, Any] | None:
    """Work out which products a matched command targets.

    Returns selection kwargs, or None when the target is unknown.
    """
    answer = str(context.get("user_answer") or "")
    for candidate in (text, answer):
        if not candidate:
            continue
        named = _NAMED_TARGET.search(candidate)
        if named and not _ALL_TARGET.search(named.group("name")):
            return {"scope": "selected", "product_title": named.group("name").strip()}
        if _ALL_TARGET.search(candidate):
            return {"scope": "all"}

    selected = context.get("selected_product_ids") or []
    if selected:
        return {"scope": "selected", "product_ids": [str(p) for p in selected]}
    return None


def _clarification(text: str, confidence: float) -> Interpretation:
    return Interpretation(
        actions=[],
        confidence_score=confidence,
        clarification_needed=ClarificationRequest(
            reason="The command does not say which products to change",
            questions=[
                ClarificationQuestion(
                    question="Which products should this apply to?",
                    type="choice",
                    options=["All products", "Selected products", "Products matching a filter"],
                )
            ],
            suggestions=[f"{text.rstrip('.')} for all products"],
        ),
        source="fallback",
    )


def _impact(target: dict[str, Any], context: dict[str, Any], description: str) -> EstimatedImpact:
    if target.get("scope") == "all":
        estimate = context.get("product_count")
    elif target.get("product_ids"):
        estimate = len(target["product_ids"])
    else:
        estimate = None
    return EstimatedImpact(
        description=description,
        affected_items_estimate=estimate if isinstance(estimate, int) else None,
        reversible=True,
    )


def fallback_interpret(
    command_text: str, context: dict[str, Any] | None = None
) -> Interpretation | None:
    """Interpret a command with fixed patterns.

    Args:
        command_text: Raw command text.
        context: Optional interpretation context (selected_product_ids,
            product_count, user_answer).

    Returns:
        A single-action Interpretation at confidence 0.9, a clarification
        Interpretation when the target is unknown, or None when no
        pattern matches.
    """
    context = context or {}
    text = command_text.strip()

    action_kind: str | None = None
    change: dict[str, Any] = {}
    description = ""

    match = _PRICE_PERCENT.search(text)
    if match:
        direction = "decrease" if match.group(1).lower() in _DECREASE_WORDS else "increase"
        value = float(match.group(2))
        action_kind = "price"
        change = {"direction": direction, "value_type": "percentage", "value": value}
        description = f"{direction.capitalize()} prices by {value:g}%"
    elif (match := _PRICE_FIXED.search(text)):
        direction = "decrease" if match.group(1).lower() in _DECREASE_WORDS else "increase"
        value = float(match.group(2))
        action_kind = "price"
        change = {"direction": direction, "value_type": "fixed", "value": value}
        description = f"{direction.capitalize()} prices by ${value:g}"
    elif (match := _SET_INVENTORY.search(text)):
        quantity = int(match.group(1))
        action_kind = "inventory"
        change = {"available": quantity, "mode": "set"}
        description = f"Set inventory to {quantity}"
    elif (match := _ADD_INVENTORY.search(text)):
        quantity = int(match.group(1))
        action_kind = "inventory"
        change = {"available": quantity, "mode": "adjust"}
        description = f"Add {quantity} units to inventory"

    if action_kind is None:
        logger.info("No fallback pattern matched command")
        return None

    target = _resolve_target(text, context)
    if target is None:
        logger.info("Fallback matched %s but target is unknown", action_kind)
        return apply_risk(_clarification(text, FALLBACK_CONFIDENCE))

    if action_kind == "price":
        action = UpdatePriceAction(
            description=description,
            parameters=UpdatePriceParams(**change, **target),
        )
    else:
        action = UpdateInventoryAction(
            description=description,
            parameters=UpdateInventoryParams(**change, **target),
        )

    interpretation = Interpretation(
        actions=[action],
        confidence_score=FALLBACK_CONFIDENCE,
        estimated_impact=_impact(target, context, description),
        source="fallback",
    )
    return apply_risk(interpretation)
