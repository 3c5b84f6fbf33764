"""Risk scoring for interpreted action plans.

Scoring is additive over named risk factors. Each write action is scored
on its own (price direction, magnitude, targeting scope, inventory
volume); the plan takes its riskiest action and adds the confidence
factor once. Every triggered factor yields a warning so callers can show
why a plan was bucketed the way it was.
"""

import logging

from src.orchestrator.models.action import (
    Action,
    ApplyDiscountAction,
    BulkOperationAction,
    ConditionalUpdateAction,
    InventoryBranch,
    PriceBranch,
    ProductSelection,
    UpdateInventoryAction,
    UpdatePriceAction,
)
from src.orchestrator.models.interpretation import Interpretation, RiskAssessment

logger = logging.getLogger(__name__)

# Factor weights
PRICE_DECREASE_POINTS = 2
LARGE_MAGNITUDE_POINTS = 2
MODERATE_MAGNITUDE_POINTS = 1
SCOPE_POINTS = {"all": 2, "filtered": 1, "selected": 0}
LARGE_INVENTORY_POINTS = 1
LOW_CONFIDENCE_POINTS = 1

# Factor thresholds
LARGE_MAGNITUDE = 20
MODERATE_MAGNITUDE = 10
LARGE_INVENTORY_UNITS = 100
LOW_CONFIDENCE = 0.8

# Bucket thresholds
HIGH_RISK_SCORE = 4
MEDIUM_RISK_SCORE = 2

WARN_ALL_PRODUCTS = "This will affect ALL products"
WARN_FILTERED_PRODUCTS = "This will affect every product matching the filters"
WARN_PRICE_DECREASE = "Price decreases may impact profit margins"
WARN_LOW_CONFIDENCE = "AI interpretation has lower confidence - please review carefully"


def _format_magnitude(value: float, percentage: bool) -> str:
    return f"{value:g}%" if percentage else f"{value:g}"


def _magnitude_points(
    value: float, percentage: bool, warnings: list[str]
) -> int:
    if value > LARGE_MAGNITUDE:
        warnings.append(f"Large price change ({_format_magnitude(value, percentage)})")
        return LARGE_MAGNITUDE_POINTS
    if value >= MODERATE_MAGNITUDE:
        warnings.append(f"Moderate price change ({_format_magnitude(value, percentage)})")
        return MODERATE_MAGNITUDE_POINTS
    return 0


def _inventory_points(units: int, warnings: list[str]) -> int:
    if abs(units) > LARGE_INVENTORY_UNITS:
        warnings.append(f"Large inventory change ({abs(units)} units)")
        return LARGE_INVENTORY_POINTS
    return 0


def _scope_points(scope: str | None, warnings: list[str]) -> int:
    if scope == "all":
        warnings.append(WARN_ALL_PRODUCTS)
    elif scope == "filtered":
        warnings.append(WARN_FILTERED_PRODUCTS)
    return SCOPE_POINTS.get(scope or "selected", 0)


def _resolve_scope(action: Action, by_step: dict[int, Action]) -> str | None:
    """Scope of an action, inheriting through depends_on_step when untargeted."""
    params = getattr(action, "parameters", None)
    if isinstance(params, ProductSelection) and params.has_target:
        return params.effective_scope
    if action.depends_on_step is not None:
        parent = by_step.get(action.depends_on_step)
        if parent is not None and parent is not action:
            return _resolve_scope(parent, by_step) or "filtered"
        return "filtered"
    return None


def _score_action(
    action: Action, by_step: dict[int, Action]
) -> tuple[int, list[str]]:
    """Score one action. Read-only and manual actions score zero."""
    warnings: list[str] = []
    points = 0

    if isinstance(action, UpdatePriceAction):
        params = action.parameters
        if params.direction == "decrease":
            warnings.append(WARN_PRICE_DECREASE)
            points += PRICE_DECREASE_POINTS
        if params.direction != "set":
            points += _magnitude_points(
                params.value, params.value_type == "percentage", warnings
            )
        points += _scope_points(_resolve_scope(action, by_step), warnings)

    elif isinstance(action, ApplyDiscountAction):
        params = action.parameters
        warnings.append(WARN_PRICE_DECREASE)
        points += PRICE_DECREASE_POINTS
        points += _magnitude_points(
            params.value, params.value_type == "percentage", warnings
        )
        # An unrestricted discount applies store-wide
        scope = _resolve_scope(action, by_step) or "all"
        points += _scope_points(scope, warnings)

    elif isinstance(action, UpdateInventoryAction):
        points += _inventory_points(action.parameters.available, warnings)
        points += _scope_points(_resolve_scope(action, by_step), warnings)

    elif isinstance(action, BulkOperationAction):
        largest = max(
            (item.available or 0 for item in action.parameters.items), default=0
        )
        points += _inventory_points(largest, warnings)

    elif isinstance(action, ConditionalUpdateAction):
        params = action.parameters
        points += _scope_points(params.effective_scope or "filtered", warnings)
        for branch in (params.then_action, params.else_action):
            if isinstance(branch, PriceBranch):
                change = branch.parameters
                if change.direction == "decrease":
                    warnings.append(WARN_PRICE_DECREASE)
                    points += PRICE_DECREASE_POINTS
                if change.direction != "set":
                    points += _magnitude_points(
                        change.value, change.value_type == "percentage", warnings
                    )
            elif isinstance(branch, InventoryBranch):
                points += _inventory_points(branch.parameters.available, warnings)

    elif action.type in ("update_listing", "update_products", "update_seo"):
        points += _scope_points(_resolve_scope(action, by_step), warnings)

    return points, warnings


def _bucket(total: int) -> str:
    if total >= HIGH_RISK_SCORE:
        return "HIGH"
    if total >= MEDIUM_RISK_SCORE:
        return "MEDIUM"
    return "LOW"


def score(interpretation: Interpretation) -> RiskAssessment:
    """Score an interpretation.

    Args:
        interpretation: Plan to score.

    Returns:
        RiskAssessment with bucket, total and per-factor warnings.
    """
    by_step = {a.step_number: a for a in interpretation.actions}
    best = 0
    warnings: list[str] = []
    for action in interpretation.ordered_actions():
        points, action_warnings = _score_action(action, by_step)
        best = max(best, points)
        for warning in action_warnings:
            if warning not in warnings:
                warnings.append(warning)

    total = best
    if interpretation.confidence_score < LOW_CONFIDENCE:
        total += LOW_CONFIDENCE_POINTS
        warnings.append(WARN_LOW_CONFIDENCE)

    return RiskAssessment(risk_level=_bucket(total), score=total, warnings=warnings)


def apply_risk(interpretation: Interpretation) -> Interpretation:
    """Return a copy of the interpretation with risk and gating fields set."""
    assessment = score(interpretation)
    merged = list(interpretation.warnings)
    for warning in assessment.warnings:
        if warning not in merged:
            merged.append(warning)

    requires_confirmation = assessment.risk_level in ("MEDIUM", "HIGH") or any(
        a.requires_confirmation for a in interpretation.actions
    )
    logger.debug(
        "Risk score %d (%s) for %d action(s)",
        assessment.score, assessment.risk_level, len(interpretation.actions),
    )
    return interpretation.model_copy(
        update={
            "risk_level": assessment.risk_level,
            "risk_warning": assessment.warning_text,
            "warnings": merged,
            "requires_confirmation": requires_confirmation,
            "preview_recommended": interpretation.preview_recommended
            or not interpretation.is_reversible,
        }
    )


def requires_confirmation(interpretation: Interpretation) -> bool:
    """MEDIUM and HIGH plans must be explicitly confirmed before execution."""
    return interpretation.requires_confirmation or interpretation.risk_level in (
        "MEDIUM",
        "HIGH",
    )


def default_preview(interpretation: Interpretation) -> bool:
    """Irreversible plans default to a dry run."""
    return interpretation.preview_recommended or not interpretation.is_reversible
