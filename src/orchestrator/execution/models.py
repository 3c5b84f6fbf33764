"""Data models for plan execution.

Defines dataclasses for per-(platform, action) execution results,
per-item outcomes inside bulk handlers, change snapshots recorded for
undo, and the folding of results into a command's terminal status.
"""

from dataclasses import asdict, dataclass, field
from typing import Any

from src.db.models import CommandStatus


@dataclass
class ItemOutcome:
    """Outcome of one item (product, variant, inventory level) in a bulk handler."""

    resource_id: str
    """Product, variant or inventory item identifier."""

    success: bool
    """Whether the platform accepted the change."""

    label: str = ""
    """Human-readable name, usually the product title."""

    before: Any = None
    """Value before the change, when known."""

    after: Any = None
    """Value after the change (or the simulated value in preview mode)."""

    error: str | None = None
    """Platform error text when the item failed."""

    error_code: str | None = None
    """E-XXXX code of the item failure."""


@dataclass
class ChangeSnapshot:
    """State captured around a write so the change can be reverted."""

    before_state: Any = None
    """Resource state prior to the change."""

    after_state: Any = None
    """Resource state after the change."""

    affected_resources: list[dict[str, Any]] = field(default_factory=list)
    """Resources touched, as {"type", "id"} dicts."""

    can_undo: bool = True
    """Whether undo knows how to revert this change."""


@dataclass
class HandlerOutput:
    """What a handler returns to the engine.

    ``product_ids`` feeds later steps that declare depends_on_step.
    """

    result: dict[str, Any]
    """Handler-specific payload (counts, per-item breakdown, previews)."""

    items: list[ItemOutcome] = field(default_factory=list)
    """Per-item outcomes for handlers that touch many resources."""

    product_ids: list[str] = field(default_factory=list)
    """Products this step resolved or changed."""

    snapshot: ChangeSnapshot | None = None
    """Undo information for executed (non-preview) writes."""

    @property
    def failed_items(self) -> list[ItemOutcome]:
        return [item for item in self.items if not item.success]

    @property
    def succeeded(self) -> bool:
        """False when any item failed, even if others succeeded."""
        return not self.failed_items


@dataclass
class ExecutionResult:
    """Outcome of one action on one platform.

    A failed result carries ``error``; a result whose items partly failed
    carries both ``result`` (with the per-item breakdown) and ``error``.
    """

    platform_id: str
    """Platform record id."""

    platform: str
    """Platform display name (shop name)."""

    platform_type: str
    """shopify, woocommerce, etsy or faire."""

    action_type: str
    """Action kind that was run."""

    step_number: int
    """Step within the plan."""

    success: bool
    """Whether the action fully succeeded."""

    result: dict[str, Any] | None = None
    """Handler payload, present on success and on partial item failure."""

    error: str | None = None
    """Error message including platform status and raw body where relevant."""

    error_code: str | None = None
    """E-XXXX code for the error, if any."""

    skipped: bool = False
    """True when the action never ran because its dependency was unusable."""

    preview_mode: bool = False
    """True for dry runs."""

    snapshot: ChangeSnapshot | None = None
    """Undo information, omitted from API payloads."""

    def to_dict(self) -> dict[str, Any]:
        data = asdict(self)
        data.pop("snapshot", None)
        return data


def fold_status(results: list[ExecutionResult]) -> CommandStatus:
    """Fold per-(platform, action) results into a command's terminal status.

    Args:
        results: Results of one execution.

    Returns:
        completed when every result succeeded, failed when none did,
        partially_completed otherwise.

    Raises:
        ValueError: If results is empty.
    """
    if not results:
        raise ValueError("Cannot fold an empty result list")
    successes = sum(1 for r in results if r.success)
    if successes == len(results):
        return CommandStatus.completed
    if successes == 0:
        return CommandStatus.failed
    return CommandStatus.partially_completed


def summarize(results: list[ExecutionResult]) -> dict[str, int]:
    """Counts for API payloads and automation run records."""
    return {
        "total": len(results),
        "succeeded": sum(1 for r in results if r.success),
        "failed": sum(1 for r in results if not r.success and not r.skipped),
        "skipped": sum(1 for r in results if r.skipped),
    }
