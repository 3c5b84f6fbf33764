"""Plan execution against connected commerce platforms."""

from src.orchestrator.execution.engine import (
    ExecutionEngine,
    ExecutionReport,
    PlatformDirectory,
)
from src.orchestrator.execution.filters import apply_filters, condition_met, matches
from src.orchestrator.execution.models import (
    ChangeSnapshot,
    ExecutionResult,
    HandlerOutput,
    ItemOutcome,
    fold_status,
    summarize,
)
from src.orchestrator.execution.rate_limit import RateLimitedBatcher

__all__ = [
    "ExecutionEngine",
    "ExecutionReport",
    "PlatformDirectory",
    "ExecutionResult",
    "ChangeSnapshot",
    "HandlerOutput",
    "ItemOutcome",
    "fold_status",
    "summarize",
    "apply_filters",
    "condition_met",
    "matches",
    "RateLimitedBatcher",
]
