#!/usr/bin/env python3
"""
Tests for the action executor: retry bound, backoff, permanent errors and
the last-failed-action slot.
"""

import asyncio

import pytest

from config import Config
from core.resilience import (
    ActionExecutor,
    FailedAction,
    LastFailedActionSlot,
    RetryPolicy,
    execute_with_retry,
)
from core.types import ActionResult, BackendError
from error_handler import ErrorKind, KIND_MESSAGES


class ScriptedOperation:
    """Returns (or raises) the scripted outcomes in order, repeating the last"""

    def __init__(self, *outcomes):
        self.outcomes = list(outcomes)
        self.calls = 0

    async def __call__(self) -> ActionResult:
        outcome = self.outcomes[min(self.calls, len(self.outcomes) - 1)]
        self.calls += 1
        if isinstance(outcome, BaseException):
            raise outcome
        if isinstance(outcome, str):
            return ActionResult.failure(outcome)
        return outcome


OK = ActionResult(success=True, action_id="a-1", message="done")


async def test_always_retryable_failure_uses_every_attempt(executor, sleep):
    """Always-transient failure: max_retries + 1 attempts, then failure"""
    operation = ScriptedOperation("network timeout")
    report = await executor.run(operation, operation_kind="archive", resource_id="msg-1")

    assert operation.calls == 3
    assert report.attempts == 3
    assert report.result.success is False
    assert report.result.message == KIND_MESSAGES[ErrorKind.NETWORK]
    assert report.error_kind == ErrorKind.NETWORK


@pytest.mark.parametrize("max_retries", [0, 1, 4])
async def test_retry_bound_follows_policy(sleep, max_retries):
    executor = ActionExecutor(policy=RetryPolicy(max_retries=max_retries, base_delay_ms=10), sleep=sleep)
    operation = ScriptedOperation("503 service unavailable")
    result = await executor.execute(operation)

    assert operation.calls == max_retries + 1
    assert result.success is False


async def test_permanent_failure_is_not_retried(executor, sleep):
    operation = ScriptedOperation("403 forbidden")
    report = await executor.run(operation, operation_kind="archive", resource_id="msg-1")

    assert operation.calls == 1
    assert sleep.calls == []
    assert report.result.message == "You don't have permission to perform this action."
    assert report.failed_action.error_kind == ErrorKind.FORBIDDEN


async def test_succeeds_on_third_attempt(executor, sleep):
    """Two network timeouts then success"""
    operation = ScriptedOperation("network timeout", "network timeout", OK)
    report = await executor.run(operation, operation_kind="archive", resource_id="msg-1")

    assert report.result is OK
    assert report.attempts == 3
    assert report.failed_action is None


async def test_exponential_backoff(executor, sleep):
    operation = ScriptedOperation("429 too many requests")
    await executor.run(operation, operation_kind="archive")

    assert sleep.calls == [1.0, 2.0]
    assert sleep.total_ms == executor.policy.max_total_wait_ms


def test_policy_delays():
    policy = RetryPolicy(max_retries=3, base_delay_ms=500)
    assert [policy.delay_ms(n) for n in range(3)] == [500, 1000, 2000]
    assert policy.max_total_wait_ms == 3500


async def test_raised_backend_error_is_classified(executor):
    operation = ScriptedOperation(BackendError("Email not found", status=404))
    report = await executor.run(operation, operation_kind="archive", resource_id="msg-9")

    assert operation.calls == 1
    assert report.result.success is False
    assert report.result.message == "This email could not be found. It may have been deleted."


async def test_raised_network_errors_are_retried(executor):
    operation = ScriptedOperation(ConnectionError("reset by peer"), asyncio.TimeoutError(), OK)
    report = await executor.run(operation)

    assert report.result.success is True
    assert report.attempts == 3


async def test_unexpected_exception_propagates(executor):
    operation = ScriptedOperation(KeyError("bug"))
    with pytest.raises(KeyError):
        await executor.run(operation)


async def test_failed_action_carries_replay_values(executor):
    operation = ScriptedOperation("403")
    report = await executor.run(
        operation,
        operation_kind="to_task",
        resource_id="msg-3",
        options={'due_date': '2026-01-01'},
    )

    failed = report.failed_action
    assert failed.operation_kind == "to_task"
    assert failed.resource_id == "msg-3"
    assert failed.options == {'due_date': '2026-01-01'}
    assert failed.message == report.result.message


async def test_on_retry_callback(sleep):
    seen = []
    executor = ActionExecutor(
        policy=RetryPolicy(max_retries=2, base_delay_ms=100),
        sleep=sleep,
        on_retry=lambda context, delay: seen.append((context.attempt, delay, context.last_error_kind)),
    )
    await executor.run(ScriptedOperation("network down", OK))

    assert seen == [(0, 100, ErrorKind.NETWORK)]


async def test_concurrent_chains_do_not_share_state(executor):
    """Independent actions each get their own retry budget"""
    failing = ScriptedOperation("network timeout")
    flaky = ScriptedOperation("network timeout", OK)

    first, second = await asyncio.gather(
        executor.run(failing, resource_id="a"),
        executor.run(flaky, resource_id="b"),
    )

    assert failing.calls == 3
    assert flaky.calls == 2
    assert first.result.success is False
    assert second.result.success is True


async def test_execute_with_retry_helper(sleep):
    operation = ScriptedOperation("timeout", OK)
    result = await execute_with_retry(operation, RetryPolicy(max_retries=1, base_delay_ms=5), sleep=sleep)

    assert result.success is True
    assert sleep.calls == [0.005]


def test_last_failed_slot_last_write_wins():
    slot = LastFailedActionSlot()
    assert slot.take() is None

    slot.record(FailedAction(operation_kind="archive", resource_id="a"))
    slot.record(FailedAction(operation_kind="mark_read", resource_id="b"))
    assert slot.current.resource_id == "b"

    taken = slot.take()
    assert taken.operation_kind == "mark_read"
    assert slot.current is None


def test_failed_result_requires_message():
    with pytest.raises(ValueError):
        ActionResult(success=False)


def test_policy_from_config(monkeypatch):
    monkeypatch.setattr(Config, 'MAX_RETRIES', 4)
    monkeypatch.setattr(Config, 'BASE_DELAY_MS', 250)

    policy = RetryPolicy.from_config()

    assert (policy.max_retries, policy.base_delay_ms) == (4, 250)
    assert policy.max_total_wait_ms == 250 * 15
