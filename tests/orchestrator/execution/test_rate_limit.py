"""Tests for RateLimitedBatcher."""

import pytest

from src.errors import PlatformAPIError
from src.orchestrator.execution.rate_limit import RateLimitedBatcher


class _SleepRecorder:
    def __init__(self) -> None:
        self.calls: list[float] = []

    async def __call__(self, seconds: float) -> None:
        self.calls.append(seconds)


class TestRateLimitedBatcher:
    """Tests for throttled per-item calls."""

    def test_batches_split_items(self):
        batcher = RateLimitedBatcher(batch_size=2)
        assert [list(b) for b in batcher.batches([1, 2, 3, 4, 5])] == [[1, 2], [3, 4], [5]]

    @pytest.mark.parametrize("kwargs", [{"batch_size": 0}, {"delay_seconds": -1}])
    def test_rejects_bad_settings(self, kwargs):
        with pytest.raises(ValueError):
            RateLimitedBatcher(**kwargs)

    @pytest.mark.asyncio
    async def test_sleeps_between_batches_only(self):
        sleep = _SleepRecorder()
        batcher = RateLimitedBatcher(batch_size=2, delay_seconds=0.25, sleep=sleep)

        async def double(x: int) -> int:
            return x * 2

        outcomes = await batcher.run([1, 2, 3, 4, 5], double)

        assert [result for _, result, _ in outcomes] == [2, 4, 6, 8, 10]
        assert sleep.calls == [0.25, 0.25]

    @pytest.mark.asyncio
    async def test_item_failures_are_returned_not_raised(self):
        batcher = RateLimitedBatcher(batch_size=10, delay_seconds=0, sleep=_SleepRecorder())

        async def call(x: int) -> int:
            if x == 2:
                raise PlatformAPIError("Shopify", 422, '{"errors":{"price":["is invalid"]}}')
            return x

        outcomes = await batcher.run([1, 2, 3], call)

        assert [item for item, _, _ in outcomes] == [1, 2, 3]
        _, result, error = outcomes[1]
        assert result is None
        assert error.status_code == 422
        assert outcomes[2][1] == 3

    @pytest.mark.asyncio
    async def test_unexpected_errors_are_returned_per_item(self):
        batcher = RateLimitedBatcher(delay_seconds=0, sleep=_SleepRecorder())

        async def call(x: int) -> int:
            if x == 1:
                raise KeyError("id")
            return x

        outcomes = await batcher.run([1, 2], call)

        assert isinstance(outcomes[0][2], KeyError)
        assert outcomes[1] == (2, 2, None)
