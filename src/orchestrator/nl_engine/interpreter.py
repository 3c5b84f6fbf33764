"""LLM-backed command interpreter.

Turns free-text commerce commands into a validated, risk-scored
Interpretation. The language model is asked for JSON; the reply is
extracted, normalized into typed actions, and checked. Any failure along
that path falls back to the deterministic pattern interpreter. If the
fallback cannot match either, the caller gets an error instead of a
guessed action.

Example:
    interpreter = CommandInterpreter(AnthropicLLMClient())
    interpretation = await interpreter.interpret(
        "increase all prices by 10%", ["shopify"], {"product_count": 120}
    )
"""

import json
import logging
from collections.abc import Callable
from typing import Any

from pydantic import ValidationError as PydanticValidationError

from src.config import LLMSettings
from src.errors import ConfigurationError, InterpretationError
from src.orchestrator.models.action import ACTION_TYPES, parse_action
from src.orchestrator.models.interpretation import Interpretation
from src.orchestrator.nl_engine.fallback import EXAMPLE_COMMANDS, fallback_interpret
from src.orchestrator.nl_engine.llm_client import LLMClient
from src.orchestrator.nl_engine.response_parser import extract_json_object
from src.orchestrator.nl_engine.risk import apply_risk

logger = logging.getLogger(__name__)

FallbackInterpreter = Callable[[str, dict[str, Any] | None], Interpretation | None]

SYSTEM_PROMPT = """You are the command interpreter for a multi-store e-commerce \
management system. Convert the merchant's command into a JSON action plan.

Reply with ONE JSON object and nothing else, using this schema:
{{
  "actions": [
    {{
      "type": one of {action_types},
      "description": "short human summary",
      "parameters": {{ ...type-specific, see below... }},
      "requires_confirmation": boolean,
      "step_number": 1-based integer,
      "depends_on_step": integer or null
    }}
  ],
  "confidence_score": number between 0 and 1,
  "warnings": [string],
  "estimated_impact": {{
    "description": string,
    "affected_items_estimate": integer or null,
    "risk_level": "LOW" | "MEDIUM" | "HIGH",
    "reversible": boolean
  }},
  "clarification_needed": null or {{
    "reason": string,
    "questions": [{{"question": string, "type": "choice"|"text"|"number"|"confirm", "options": [string]}}],
    "suggestions": [string]
  }},
  "preview_recommended": boolean
}}

Product selection keys (usable by every product action):
  "scope": "all" | "selected" | "filtered",
  "product_ids": [string], "product_title": string,
  "filters": [{{"field": string, "operator": "equals"|"not_equals"|"contains"|\
"not_contains"|"greater_than"|"less_than"|"greater_than_or_equal"|\
"less_than_or_equal", "value": any, "logic": "AND"|"OR"}}]

Parameters per type:
  get_products: selection keys, "limit"
  update_price: selection keys, "direction": "increase"|"decrease"|"set", \
"value_type": "percentage"|"fixed", "value": number
  update_inventory: selection keys, "available": integer, "mode": "set"|"adjust", \
optional "inventory_item_id" and "location_id"
  update_listing: selection keys plus any of "title", "description", "tags", \
"status", "product_type", "vendor"
  update_products: selection keys, "updates": {{field: value}}
  update_seo: selection keys, "seo_title", "seo_description"
  apply_discount: selection keys, "value_type": "percentage"|"fixed_amount", \
"value": number, optional "title", "code", "starts_at", "ends_at"
  bulk_operation: "items": [{{"product_id", "variant_id", "price", "available", "updates"}}]
  conditional_update: selection keys, "condition": [filters], "then_action": \
{{"type", "parameters"}}, "else_action": {{"type", "parameters"}} or null
  custom_command: "instruction", "details"

Rules:
- Split multi-step commands into ordered actions. When a step needs products \
found by an earlier step, set depends_on_step and omit the selection keys.
- If the command does not say which products to change, or a filter is unclear, \
return "actions": [] and fill clarification_needed. Never guess the target of a \
write operation.
- Be conservative with price decreases, store-wide changes and large inventory \
changes; mark them requires_confirmation.
- Set estimated_impact.reversible to false for anything that cannot be undone.

Examples:
"increase all prices by 10%" ->
{{"actions": [{{"type": "update_price", "description": "Increase all prices by 10%", \
"parameters": {{"scope": "all", "direction": "increase", "value_type": "percentage", \
"value": 10}}, "requires_confirmation": true, "step_number": 1, "depends_on_step": null}}], \
"confidence_score": 0.95, "warnings": [], "clarification_needed": null}}

"set inventory to 50 for product ABC" ->
{{"actions": [{{"type": "update_inventory", "description": "Set ABC inventory to 50", \
"parameters": {{"scope": "selected", "product_title": "ABC", "available": 50, \
"mode": "set"}}, "requires_confirmation": false, "step_number": 1, \
"depends_on_step": null}}], "confidence_score": 0.92, "warnings": [], \
"clarification_needed": null}}

"find products tagged clearance and cut their price by 15%" ->
{{"actions": [{{"type": "get_products", "description": "Find clearance products", \
"parameters": {{"filters": [{{"field": "tags", "operator": "contains", \
"value": "clearance"}}]}}, "step_number": 1, "depends_on_step": null}}, \
{{"type": "update_price", "description": "Reduce their price by 15%", \
"parameters": {{"direction": "decrease", "value_type": "percentage", "value": 15}}, \
"requires_confirmation": true, "step_number": 2, "depends_on_step": 1}}], \
"confidence_score": 0.9, "warnings": [], "clarification_needed": null}}

"lower the price" ->
{{"actions": [], "confidence_score": 0.8, "clarification_needed": {{"reason": \
"Amount and products are missing", "questions": [{{"question": "By how much?", \
"type": "text", "options": []}}, {{"question": "Which products?", "type": "choice", \
"options": ["All products", "Selected products"]}}], "suggestions": \
["lower all prices by 10%"]}}}}
"""

# Single-action reply format: {"action", "operation": {"type", "value", "field"},
# "filters": {...}, "targeting": {"scope", "productIds"}, "confidence"}
_LEGACY_PRICE_OPERATIONS = {
    "increase_percent": ("increase", "percentage"),
    "decrease_percent": ("decrease", "percentage"),
    "increase_amount": ("increase", "fixed"),
    "decrease_amount": ("decrease", "fixed"),
    "set_fixed": ("set", "fixed"),
    "set": ("set", "fixed"),
    "increase": ("increase", "percentage"),
    "decrease": ("decrease", "percentage"),
}
_LEGACY_LISTING_FIELDS = {"title", "description", "tags", "status", "product_type", "vendor"}


def build_system_prompt() -> str:
    """System prompt enumerating the action types and reply schema."""
    return SYSTEM_PROMPT.format(action_types=" | ".join(f'"{t}"' for t in ACTION_TYPES))


def build_user_message(
    command_text: str,
    platform_targets: list[str] | None,
    context: dict[str, Any] | None,
) -> str:
    """Serialize the command and its context into the user turn."""
    context = context or {}
    lines = [f'Interpret this command: "{command_text}"']

    if platform_targets:
        lines.append(f"Target platforms: {', '.join(platform_targets)}")
    if context.get("product_count") is not None:
        lines.append(f"The store has {context['product_count']} products.")
    selected = context.get("selected_product_ids") or []
    if selected:
        lines.append(
            f"The user has selected {len(selected)} specific products: "
            f"{json.dumps([str(s) for s in selected[:50]])}"
        )
    if context.get("filters"):
        lines.append(f"Active filters: {json.dumps(context['filters'], default=str)}")
    if context.get("previous_question"):
        lines.append(f"You previously asked: {context['previous_question']}")
    if context.get("user_answer"):
        lines.append(f"The user answered: {context['user_answer']}")

    return "\n".join(lines)


def _legacy_filters(filters: Any) -> list[dict[str, Any]]:
    """Convert the single-action filter object into filter conditions."""
    if isinstance(filters, list):
        return filters
    if not isinstance(filters, dict):
        return []
    conditions: list[dict[str, Any]] = []
    if filters.get("category"):
        conditions.append(
            {"field": "product_type", "operator": "equals", "value": filters["category"]}
        )
    price_range = filters.get("priceRange") or {}
    if price_range.get("min") is not None:
        conditions.append(
            {"field": "variants.0.price", "operator": "greater_than_or_equal",
             "value": price_range["min"]}
        )
    if price_range.get("max") is not None:
        conditions.append(
            {"field": "variants.0.price", "operator": "less_than_or_equal",
             "value": price_range["max"]}
        )
    for tag in filters.get("tags") or []:
        conditions.append({"field": "tags", "operator": "contains", "value": tag})
    inventory = filters.get("inventory") or {}
    if inventory.get("min") is not None:
        conditions.append(
            {"field": "variants.0.inventory_quantity",
             "operator": "greater_than_or_equal", "value": inventory["min"]}
        )
    if inventory.get("max") is not None:
        conditions.append(
            {"field": "variants.0.inventory_quantity",
             "operator": "less_than_or_equal", "value": inventory["max"]}
        )
    return conditions


def _legacy_action(raw: dict[str, Any]) -> dict[str, Any]:
    """Translate the single-action reply format into an action payload.

    Raises:
        InterpretationError: If the operation is missing or untranslatable.
    """
    operation = raw.get("operation")
    if not isinstance(operation, dict):
        raise InterpretationError("Interpretation is missing 'operation'")

    op_type = str(operation.get("type") or "")
    value = operation.get("value")
    targeting = raw.get("targeting") or {}
    selection: dict[str, Any] = {
        "scope": targeting.get("scope"),
        "product_ids": targeting.get("productIds") or targeting.get("product_ids") or [],
        "filters": _legacy_filters(raw.get("filters")),
    }
    if selection["scope"] == "filtered" and not selection["filters"] and raw.get("product_title"):
        selection["product_title"] = raw["product_title"]

    action_name = raw.get("action")
    if action_name == "update_price":
        if op_type not in _LEGACY_PRICE_OPERATIONS:
            raise InterpretationError(f"Unsupported price operation '{op_type}'")
        direction, value_type = _LEGACY_PRICE_OPERATIONS[op_type]
        if operation.get("unit") == "%":
            value_type = "percentage"
        parameters = {**selection, "direction": direction,
                      "value_type": value_type, "value": value}
    elif action_name == "update_inventory":
        if value is None:
            raise InterpretationError("Inventory operation is missing a value")
        if op_type == "set":
            parameters = {**selection, "available": value, "mode": "set"}
        elif op_type in ("add", "subtract"):
            delta = int(value) if op_type == "add" else -int(value)
            parameters = {**selection, "available": delta, "mode": "adjust"}
        else:
            raise InterpretationError(f"Unsupported inventory operation '{op_type}'")
    elif action_name == "update_listing":
        field_name = operation.get("field")
        if field_name not in _LEGACY_LISTING_FIELDS or value is None:
            raise InterpretationError("Listing operation needs a field and a value")
        parameters = {**selection, field_name: value}
    else:
        raise InterpretationError(f"Unsupported action '{action_name}'")

    return {
        "type": action_name,
        "description": raw.get("description") or "",
        "parameters": parameters,
        "step_number": 1,
    }


def _normalize_clarification(raw: Any) -> dict[str, Any] | None:
    if not raw:
        return None
    if isinstance(raw, str):
        return {"reason": raw, "questions": [{"question": raw}]}
    questions = []
    for q in raw.get("questions") or []:
        questions.append({"question": q} if isinstance(q, str) else q)
    return {
        "reason": raw.get("reason") or "More information is needed",
        "questions": questions,
        "suggestions": raw.get("suggestions") or [],
    }


def normalize_interpretation(
    raw: dict[str, Any], min_confidence: float = 0.5
) -> Interpretation:
    """Validate a decoded model reply into an Interpretation (without risk).

    Accepts both the multi-step reply (``actions``, ``confidence_score``)
    and the single-action reply (``action``, ``operation``, ``confidence``).

    Args:
        raw: Decoded JSON object from the model.
        min_confidence: Replies below this confidence are rejected.

    Returns:
        Validated Interpretation.

    Raises:
        InterpretationError: On missing fields, low confidence, or invalid actions.
    """
    confidence = raw.get("confidence_score", raw.get("confidence"))
    if confidence is None:
        raise InterpretationError("Interpretation is missing a confidence score")
    try:
        confidence = float(confidence)
    except (TypeError, ValueError) as e:
        raise InterpretationError(f"Invalid confidence score: {confidence!r}") from e
    if confidence < min_confidence:
        raise InterpretationError(
            f"Confidence {confidence:.2f} is below the {min_confidence:.2f} threshold"
        )

    clarification = _normalize_clarification(raw.get("clarification_needed"))

    if clarification is not None:
        if raw.get("actions"):
            logger.warning("Dropping %d action(s) from a clarification reply",
                           len(raw["actions"]))
        action_payloads: list[dict[str, Any]] = []
    elif isinstance(raw.get("actions"), list):
        action_payloads = []
        for index, payload in enumerate(raw["actions"], start=1):
            if not isinstance(payload, dict) or "type" not in payload:
                raise InterpretationError(f"Action {index} is missing 'type'")
            if "parameters" not in payload:
                raise InterpretationError(f"Action {index} is missing 'parameters'")
            payload = dict(payload)
            if payload.get("step_number") is None:
                payload["step_number"] = index
            action_payloads.append(payload)
        if not action_payloads:
            raise InterpretationError("Interpretation has no actions")
    elif raw.get("action"):
        action_payloads = [_legacy_action(raw)]
    else:
        raise InterpretationError("Interpretation is missing 'action' or 'actions'")

    try:
        actions = [parse_action(p) for p in action_payloads]
        return Interpretation(
            actions=actions,
            confidence_score=confidence,
            warnings=[str(w) for w in raw.get("warnings") or []],
            clarification_needed=clarification,
            estimated_impact=raw.get("estimated_impact"),
            preview_recommended=bool(raw.get("preview_recommended", False)),
            source="llm",
        )
    except PydanticValidationError as e:
        raise InterpretationError(f"Invalid action plan: {e}") from e


class CommandInterpreter:
    """Interprets commands with an LLM, falling back to fixed patterns.

    Args:
        llm_client: Completion client; None runs on the fallback only.
        settings: LLM settings (min_confidence).
        fallback: Pattern interpreter, replaceable in tests.
    """

    def __init__(
        self,
        llm_client: LLMClient | None,
        settings: LLMSettings | None = None,
        fallback: FallbackInterpreter = fallback_interpret,
    ) -> None:
        self._llm = llm_client
        self._settings = settings or LLMSettings()
        self._fallback = fallback

    async def _interpret_with_llm(
        self,
        command_text: str,
        platform_targets: list[str] | None,
        context: dict[str, Any] | None,
    ) -> Interpretation:
        if self._llm is None:
            raise ConfigurationError(
                "AI interpretation unavailable: configure ANTHROPIC_API_KEY"
            )
        reply = await self._llm.complete(
            build_system_prompt(),
            [{"role": "user", "content": build_user_message(
                command_text, platform_targets, context
            )}],
        )
        raw = extract_json_object(reply)
        return normalize_interpretation(raw, self._settings.min_confidence)

    async def interpret(
        self,
        command_text: str,
        platform_targets: list[str] | None = None,
        context: dict[str, Any] | None = None,
    ) -> Interpretation:
        """Interpret a command into a risk-scored plan.

        Args:
            command_text: Raw command text.
            platform_targets: Platforms the command will run against.
            context: Product count, selected product ids, active filters,
                previous clarification question and answer.

        Returns:
            Risk-scored Interpretation (possibly a clarification request).

        Raises:
            ConfigurationError: LLM is unconfigured and the fallback cannot match.
            InterpretationError: Neither interpreter produced a plan.
        """
        if not command_text or not command_text.strip():
            raise InterpretationError(
                "Command text is empty",
                original_command=command_text or "",
                suggestions=EXAMPLE_COMMANDS,
            )

        try:
            interpretation = await self._interpret_with_llm(
                command_text, platform_targets, context
            )
            interpretation = apply_risk(interpretation)
            logger.info(
                "Interpreted command via LLM: %d action(s), risk %s, confidence %.2f",
                len(interpretation.actions),
                interpretation.risk_level,
                interpretation.confidence_score,
            )
            return interpretation
        except Exception as e:
            cause = e
            logger.warning("LLM interpretation failed, trying fallback: %s", e)

        fallback = self._fallback(command_text, context)
        if fallback is not None:
            logger.info("Using fallback interpretation (risk %s)", fallback.risk_level)
            return fallback

        if isinstance(cause, ConfigurationError):
            raise cause
        raise InterpretationError(
            f"Unable to interpret command: {cause}",
            original_command=command_text,
            suggestions=EXAMPLE_COMMANDS,
        ) from cause
