"""Execution engine: runs an action plan against connected platforms.

For every resolved platform the engine walks the plan in step order,
resolves ``depends_on_step`` from that platform's own earlier outcome,
and dispatches each action to its handler. Every (platform, action) pair
yields exactly one ExecutionResult; errors, expected or not, are caught
per action so one failure never stops the others. A targeted platform
whose credentials cannot be loaded gets a failed result per action while
the rest run. Nothing is retried here.

Example:
    engine = ExecutionEngine(adapter, PlatformService(db), settings.execution)
    report = await engine.execute(user_id, actions, ["shopify"])
    report.status  # completed | failed | partially_completed
"""

import asyncio
import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import Protocol

from src.config import ExecutionSettings
from src.db.models import CommandStatus
from src.errors import (
    DependencyNotSatisfiedError,
    DomainError,
    NoConnectedPlatformError,
    StoreCommandError,
    UnsupportedActionError,
)
from src.orchestrator.execution.handlers import HANDLERS, HandlerContext
from src.orchestrator.execution.models import (
    ExecutionResult,
    HandlerOutput,
    fold_status,
    summarize,
)
from src.orchestrator.execution.rate_limit import RateLimitedBatcher
from src.orchestrator.models.action import Action
from src.services.catalog import get_catalog
from src.services.platform_adapter import PlatformAdapter
from src.services.platform_service import (
    PlatformConnection,
    ResolvedConnections,
    UnusablePlatform,
)

logger = logging.getLogger(__name__)


class PlatformDirectory(Protocol):
    """Resolves a user's platform targets to decrypted connections."""

    def resolve_connections(
        self, user_id: str, platform_targets: list[str] | None
    ) -> ResolvedConnections:
        ...


@dataclass
class ExecutionReport:
    """Outcome of one engine invocation."""

    results: list[ExecutionResult]
    """One entry per (platform, action) pair."""

    status: CommandStatus
    """Folded terminal status."""

    preview_mode: bool = False
    """Whether this was a dry run."""

    @property
    def summary(self) -> dict[str, int]:
        return summarize(self.results)

    def to_dict(self) -> dict:
        return {
            "status": self.status.value,
            "preview_mode": self.preview_mode,
            "summary": self.summary,
            "results": [r.to_dict() for r in self.results],
        }


class ExecutionEngine:
    """Executes typed action plans.

    Args:
        adapter: Authenticated HTTP access to platforms.
        platform_directory: User-scoped platform resolution (PlatformService).
        settings: Batch size, inter-batch delay, page limit, parallelism.
        sleep: Awaitable sleep used between batches, injectable for tests.
    """

    def __init__(
        self,
        adapter: PlatformAdapter,
        platform_directory: PlatformDirectory,
        settings: ExecutionSettings | None = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self._adapter = adapter
        self._directory = platform_directory
        self._settings = settings or ExecutionSettings()
        self._sleep = sleep

    async def execute(
        self,
        user_id: str,
        actions: list[Action],
        platform_targets: list[str] | None,
        preview_mode: bool = False,
    ) -> ExecutionReport:
        """Run every action on every resolved platform.

        Raises:
            NoConnectedPlatformError: If no target resolves to a connected,
                active platform owned by the user. Nothing is executed.
        """
        resolved = self._directory.resolve_connections(user_id, platform_targets)
        if resolved.empty:
            raise NoConnectedPlatformError(platform_targets)
        connections = resolved.connections

        ordered = sorted(actions, key=lambda a: a.step_number)
        logger.info(
            "Executing %d actions on %d platforms for user %s (preview=%s)",
            len(ordered), len(connections), user_id, preview_mode,
        )

        if self._settings.parallel_platforms and len(connections) > 1:
            per_platform = await asyncio.gather(
                *(self._run_platform(c, ordered, preview_mode) for c in connections)
            )
        else:
            per_platform = [
                await self._run_platform(c, ordered, preview_mode) for c in connections
            ]
        per_platform.extend(
            _unusable_results(platform, ordered, preview_mode) for platform in resolved.unusable
        )

        results = [result for platform_results in per_platform for result in platform_results]
        status = fold_status(results)
        logger.info("Execution finished with status %s: %s", status.value, summarize(results))
        return ExecutionReport(results=results, status=status, preview_mode=preview_mode)

    async def _run_platform(
        self,
        connection: PlatformConnection,
        actions: list[Action],
        preview_mode: bool,
    ) -> list[ExecutionResult]:
        """Run the plan on one platform, strictly in step order."""
        outputs: dict[int, HandlerOutput | None] = {}
        results: list[ExecutionResult] = []
        batcher = RateLimitedBatcher(
            batch_size=self._settings.batch_size,
            delay_seconds=self._settings.batch_delay_seconds,
            sleep=self._sleep,
        )

        for action in actions:
            result = ExecutionResult(
                platform_id=connection.id,
                platform=connection.display_name,
                platform_type=connection.platform_type,
                action_type=action.type,
                step_number=action.step_number,
                success=False,
                preview_mode=preview_mode,
            )
            results.append(result)
            outputs[action.step_number] = None

            dependency_ids = None
            if action.depends_on_step is not None:
                reason = self._dependency_problem(outputs, action.depends_on_step)
                if reason is not None:
                    err = DependencyNotSatisfiedError(
                        action.step_number, action.depends_on_step, reason
                    )
                    logger.info("%s on %s", err.message, connection.display_name)
                    result.skipped = True
                    result.error = err.message
                    result.error_code = err.error_code
                    continue
                dependency_ids = outputs[action.depends_on_step].product_ids  # type: ignore[union-attr]

            try:
                output = await self._dispatch(
                    connection, action, batcher, preview_mode, dependency_ids
                )
            except DomainError as e:
                logger.warning(
                    "Step %d (%s) failed on %s: %s",
                    action.step_number, action.type, connection.display_name, e.message,
                )
                result.error = e.message
                result.error_code = e.error_code
                continue
            except Exception as e:
                logger.exception(
                    "Unexpected error in step %d (%s) on %s",
                    action.step_number, action.type, connection.display_name,
                )
                error = StoreCommandError.from_exception(e)
                result.error = error.message
                result.error_code = error.code
                continue

            result.result = output.result
            result.snapshot = output.snapshot
            if output.succeeded:
                result.success = True
                outputs[action.step_number] = output
            else:
                failed = output.failed_items
                result.error = (
                    f"{len(failed)} of {len(output.items)} items failed: {failed[0].error}"
                )
                result.error_code = _first_item_error_code(output)
                logger.warning(
                    "Step %d (%s) partially failed on %s: %s",
                    action.step_number, action.type, connection.display_name, result.error,
                )
        return results

    @staticmethod
    def _dependency_problem(
        outputs: dict[int, HandlerOutput | None], depends_on_step: int
    ) -> str | None:
        if depends_on_step not in outputs:
            return "was not run"
        output = outputs[depends_on_step]
        if output is None:
            return "did not succeed"
        if not output.product_ids:
            return "found no products"
        return None

    async def _dispatch(
        self,
        connection: PlatformConnection,
        action: Action,
        batcher: RateLimitedBatcher,
        preview_mode: bool,
        dependency_ids: list[str] | None,
    ) -> HandlerOutput:
        handler = HANDLERS.get(action.type)
        if handler is None:
            raise UnsupportedActionError(action.type)
        ctx = HandlerContext(
            catalog=get_catalog(connection, self._adapter),
            batcher=batcher,
            preview_mode=preview_mode,
            page_limit=self._settings.products_page_limit,
            dependency_ids=dependency_ids,
        )
        return await handler(action, ctx)


def _first_item_error_code(output: HandlerOutput) -> str:
    for item in output.failed_items:
        if item.error_code:
            return item.error_code
    return "E-4002"


def _unusable_results(
    platform: UnusablePlatform, actions: list[Action], preview_mode: bool
) -> list[ExecutionResult]:
    """One failed result per action for a platform that could not be loaded."""
    logger.warning("Not executing on %s: %s", platform.display_name, platform.error.message)
    return [
        ExecutionResult(
            platform_id=platform.id,
            platform=platform.display_name,
            platform_type=platform.platform_type,
            action_type=action.type,
            step_number=action.step_number,
            success=False,
            preview_mode=preview_mode,
            error=platform.error.message,
            error_code=platform.error.error_code,
        )
        for action in actions
    ]
