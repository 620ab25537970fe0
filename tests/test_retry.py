from __future__ import annotations

import asyncio

import pytest

from activities.execute import execute_task
from models.schemas import ErrorKind, TaskExecutionResult, TaskName
from utils.errors import RetryableTaskError
from utils.files import read_json
from utils.retry import RetrySettings, retry_async


class FakeSleep:
    def __init__(self):
        self.delays: list[float] = []

    async def __call__(self, delay: float) -> None:
        self.delays.append(delay)


def test_retries_until_success():
    sleep = FakeSleep()
    attempts: list[int] = []

    async def flaky(attempt: int) -> str:
        attempts.append(attempt)
        if attempt < 3:
            raise RetryableTaskError("rate limited", ErrorKind.RATE_LIMIT)
        return "done"

    assert asyncio.run(retry_async(flaky, sleep=sleep)) == "done"
    assert attempts == [1, 2, 3]
    assert sleep.delays == [10, 20]


def test_gives_up_after_max_attempts():
    sleep = FakeSleep()
    attempts: list[int] = []

    async def always(attempt: int):
        attempts.append(attempt)
        raise RetryableTaskError("ECONNREFUSED", ErrorKind.TARGET_UNREACHABLE)

    with pytest.raises(RetryableTaskError):
        asyncio.run(retry_async(always, RetrySettings(max_attempts=3), sleep=sleep))
    assert attempts == [1, 2, 3]
    assert len(sleep.delays) == 2


def test_other_errors_are_not_retried():
    attempts: list[int] = []

    async def broken(attempt: int):
        attempts.append(attempt)
        raise KeyError("registry")

    with pytest.raises(KeyError):
        asyncio.run(retry_async(broken, sleep=FakeSleep()))
    assert attempts == [1]


def test_backoff_is_capped():
    settings = RetrySettings(initial_interval=10, backoff=2.0, max_interval=15)
    assert settings.delay_for(1) == 10
    assert settings.delay_for(2) == 15
    assert settings.delay_for(5) == 15


def test_lost_attempts_are_counted_in_metrics(make_task_input, checkpoints, session_dir):
    """Two timed-out attempts, then a success: the final metrics show attempt 3."""
    calls = {"n": 0}

    def times_out_twice(task_input):
        calls["n"] += 1
        if calls["n"] < 3:
            raise TimeoutError("heartbeat timed out")
        return TaskExecutionResult(cost=0.1)

    async def main():
        return await retry_async(
            lambda attempt: execute_task(
                make_task_input(TaskName.RECON), times_out_twice,
                heartbeat=lambda *a: None, attempt=attempt,
                checkpoints=checkpoints, validator=lambda task, out: ["f1"],
            ),
            sleep=FakeSleep(),
        )

    outcome = asyncio.run(main())
    assert outcome.success is True
    assert outcome.metrics.attempts == 3
    assert read_json(session_dir / "session.json")["tasks"]["recon"]["attempts"] == 3
    assert [c for c, _ in checkpoints.calls].count("rollback") == 2
