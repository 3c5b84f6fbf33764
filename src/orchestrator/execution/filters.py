"""Product filtering over normalized catalog products.

Conditions are evaluated left to right: the first condition seeds the
result and each following condition combines with it using its own
``logic`` (AND/OR). Dotted fields walk nested dicts; a numeric segment
indexes a list, and any other segment applied to a list fans out over its
elements, so ``variants.price`` matches when any variant matches.
"""

from typing import Any

from src.orchestrator.models.action import FilterCondition

_MISSING = object()


def resolve_field(product: dict[str, Any], path: str) -> Any:
    """Resolve a dotted field path against a product dict.

    Returns a list when the path fans out over a list, _MISSING when the
    path does not exist.
    """
    current: Any = product
    for part in path.split("."):
        if isinstance(current, list):
            if part.isdigit():
                index = int(part)
                current = current[index] if index < len(current) else _MISSING
            else:
                current = [
                    item.get(part, _MISSING) for item in current if isinstance(item, dict)
                ]
                current = [v for v in current if v is not _MISSING]
        elif isinstance(current, dict):
            current = current.get(part, _MISSING)
        else:
            return _MISSING
        if current is _MISSING:
            return _MISSING
    return current


def _as_number(value: Any) -> float | None:
    if isinstance(value, bool):
        return None
    try:
        return float(value)
    except (TypeError, ValueError):
        return None


def _compare_scalar(field_value: Any, operator: str, value: Any) -> bool:
    if operator in ("contains", "not_contains"):
        text = ("" if field_value is None else str(field_value)).lower()
        found = str(value).lower() in text
        return found if operator == "contains" else not found

    if operator in ("equals", "not_equals"):
        left, right = _as_number(field_value), _as_number(value)
        if left is not None and right is not None:
            equal = left == right
        else:
            equal = str(field_value).lower() == str(value).lower()
        return equal if operator == "equals" else not equal

    left, right = _as_number(field_value), _as_number(value)
    if left is None or right is None:
        return False
    if operator == "greater_than":
        return left > right
    if operator == "less_than":
        return left < right
    if operator == "greater_than_or_equal":
        return left >= right
    if operator == "less_than_or_equal":
        return left <= right
    return False


def condition_met(product: dict[str, Any], condition: FilterCondition) -> bool:
    """Evaluate one condition against one product."""
    field_value = resolve_field(product, condition.field)
    if field_value is _MISSING:
        return condition.operator in ("not_equals", "not_contains")

    if isinstance(field_value, list):
        if condition.operator in ("not_equals", "not_contains"):
            return all(
                _compare_scalar(v, condition.operator, condition.value) for v in field_value
            )
        return any(
            _compare_scalar(v, condition.operator, condition.value) for v in field_value
        )
    return _compare_scalar(field_value, condition.operator, condition.value)


def matches(product: dict[str, Any], conditions: list[FilterCondition]) -> bool:
    """Whether a product satisfies a condition list."""
    if not conditions:
        return True
    result = condition_met(product, conditions[0])
    for condition in conditions[1:]:
        met = condition_met(product, condition)
        result = (result or met) if condition.logic == "OR" else (result and met)
    return result


def apply_filters(
    products: list[dict[str, Any]], conditions: list[FilterCondition]
) -> list[dict[str, Any]]:
    """Return the products that satisfy the conditions, in input order."""
    if not conditions:
        return list(products)
    return [p for p in products if matches(p, conditions)]
