"""
Action Execution with Retry

Runs one remote action and normalizes its outcome:
- Transient failures (network, rate limit, 5xx) are retried with
  exponential backoff, up to a fixed bound
- Permanent failures stop on the first attempt
- Every terminal failure becomes a friendly message plus a FailedAction
  value that a feature hook can replay on request

The executor keeps no state between calls. Each call chain gets its own
RetryContext, so concurrent actions on different resources never interfere.

Version: 3.0
"""

import asyncio
import time
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Dict, List, Mapping, Optional

from config import Config
from core.types import ActionResult, BackendError
from error_handler import Classification, ErrorClassifier, ErrorKind
from logger import get_logger

logger = get_logger(__name__)

Operation = Callable[[], Awaitable[ActionResult]]
SleepFn = Callable[[float], Awaitable[Any]]

# Raised failures that are classified like returned ones. Anything else is a
# programming error and propagates to the call site.
EXPECTED_ERRORS = (BackendError, OSError, asyncio.TimeoutError)


@dataclass(frozen=True)
class RetryPolicy:
    """How many times to retry and how long to wait in between"""
    max_retries: int = 2
    base_delay_ms: float = 1000

    @classmethod
    def from_config(cls) -> 'RetryPolicy':
        return cls(max_retries=Config.MAX_RETRIES, base_delay_ms=Config.BASE_DELAY_MS)

    def delay_ms(self, attempt: int) -> float:
        """Backoff before retry number attempt + 1 (attempt is 0-indexed)"""
        return self.base_delay_ms * (2 ** attempt)

    @property
    def max_total_wait_ms(self) -> float:
        return self.base_delay_ms * (2 ** self.max_retries - 1)


@dataclass
class RetryAttempt:
    """Records a single failed attempt"""
    attempt_number: int
    timestamp: float
    error: str
    kind: ErrorKind
    delay_ms: float = 0.0


@dataclass
class RetryContext:
    """Per-call-chain retry state. Never shared between calls."""
    operation_kind: str
    resource_id: str
    attempt: int = 0
    last_error_kind: Optional[ErrorKind] = None
    history: List[RetryAttempt] = field(default_factory=list)


@dataclass(frozen=True)
class FailedAction:
    """Everything needed to repeat a call that failed terminally"""
    operation_kind: str
    resource_id: str
    options: Mapping[str, Any] = field(default_factory=dict)
    message: str = ""
    error_kind: ErrorKind = ErrorKind.UNKNOWN
    failed_at: float = field(default_factory=time.time)


@dataclass(frozen=True)
class ExecutionReport:
    """Result of one executor call chain"""
    result: ActionResult
    attempts: int
    failed_action: Optional[FailedAction] = None

    @property
    def error_kind(self) -> Optional[ErrorKind]:
        return self.failed_action.error_kind if self.failed_action else None


class LastFailedActionSlot:
    """
    Holds the replay value of the most recent terminal failure.

    Last write wins: when several actions fail concurrently only the one
    that failed last can be retried. A new attempt of any action clears it.
    """

    def __init__(self):
        self._failed: Optional[FailedAction] = None

    @property
    def current(self) -> Optional[FailedAction]:
        return self._failed

    def record(self, failed: FailedAction):
        if self._failed is not None:
            logger.debug(
                f"Replacing pending retry of {self._failed.operation_kind}:{self._failed.resource_id} "
                f"with {failed.operation_kind}:{failed.resource_id}"
            )
        self._failed = failed

    def clear(self):
        self._failed = None

    def take(self) -> Optional[FailedAction]:
        """Return and clear the pending failure"""
        failed, self._failed = self._failed, None
        return failed


class ActionExecutor:
    """
    Executes actions with classification and bounded retry.

    Features:
    - Exponential backoff: base_delay_ms * 2^attempt
    - Strictly sequential attempts (each one fully awaited)
    - Friendly message on terminal failure, never a raw error
    - Optional retry callback for progress feedback
    """

    def __init__(
        self,
        policy: Optional[RetryPolicy] = None,
        sleep: Optional[SleepFn] = None,
        on_retry: Optional[Callable[[RetryContext, float], None]] = None
    ):
        """
        Args:
            policy: Default retry policy (defaults to Config values)
            sleep: Coroutine used to wait, in seconds (defaults to asyncio.sleep)
            on_retry: Called with the context and delay before each retry
        """
        self.policy = policy or RetryPolicy.from_config()
        self._sleep = sleep or asyncio.sleep
        self.on_retry = on_retry

    @staticmethod
    def _classify_exception(error: BaseException) -> Classification:
        if isinstance(error, BackendError) and error.status is not None:
            return ErrorClassifier.classify_status(error.status, error.message)
        if isinstance(error, (asyncio.TimeoutError, TimeoutError)):
            return ErrorClassifier.classify(f"timeout: {error}")
        if isinstance(error, ConnectionError):
            return ErrorClassifier.classify(f"connection error: {error}")
        return ErrorClassifier.classify(str(error) or type(error).__name__)

    async def run(
        self,
        operation: Operation,
        operation_kind: str = "",
        resource_id: str = "",
        options: Optional[Dict[str, Any]] = None,
        policy: Optional[RetryPolicy] = None
    ) -> ExecutionReport:
        """
        Execute an operation with retry and return the full report.

        Args:
            operation: Zero-argument coroutine function performing one attempt
            operation_kind: Name of the operation, selects the friendly message
            resource_id: Resource the operation acts on (for replay and logs)
            options: Extra arguments needed to replay the call
            policy: Overrides the executor's default policy for this call

        Returns:
            ExecutionReport with the normalized result, attempt count and,
            on failure, the replay value
        """
        policy = policy or self.policy
        context = RetryContext(operation_kind=operation_kind, resource_id=resource_id)

        while True:
            result: Optional[ActionResult] = None
            try:
                result = await operation()
            except EXPECTED_ERRORS as e:
                classification = self._classify_exception(e)
            else:
                if result.success:
                    if context.attempt > 0:
                        logger.info(
                            f"{operation_kind or 'action'} {resource_id} succeeded "
                            f"after {context.attempt + 1} attempts"
                        )
                    return ExecutionReport(result=result, attempts=context.attempt + 1)
                classification = ErrorClassifier.classify(result.message)

            context.last_error_kind = classification.kind

            if classification.retryable and context.attempt < policy.max_retries:
                delay = policy.delay_ms(context.attempt)
                context.history.append(RetryAttempt(
                    attempt_number=context.attempt + 1,
                    timestamp=time.time(),
                    error=classification.technical_details,
                    kind=classification.kind,
                    delay_ms=delay
                ))
                logger.info(
                    f"{operation_kind or 'action'} {resource_id} failed "
                    f"({classification.kind.value}), retrying in {delay:.0f}ms "
                    f"[{context.attempt + 1}/{policy.max_retries}]"
                )
                if self.on_retry:
                    self.on_retry(context, delay)

                await self._sleep(delay / 1000)
                context.attempt += 1
                continue

            message = classification.friendly_message(operation_kind)
            logger.warning(
                f"{operation_kind or 'action'} {resource_id} failed after "
                f"{context.attempt + 1} attempt(s): {classification.kind.value} "
                f"({classification.technical_details})"
            )
            failed = FailedAction(
                operation_kind=operation_kind,
                resource_id=resource_id,
                options=dict(options or {}),
                message=message,
                error_kind=classification.kind,
            )
            return ExecutionReport(
                result=ActionResult.failure(message, action_id=result.action_id if result else ""),
                attempts=context.attempt + 1,
                failed_action=failed,
            )

    async def execute(self, operation: Operation, policy: Optional[RetryPolicy] = None) -> ActionResult:
        """Execute an operation with retry and return only the result"""
        report = await self.run(operation, policy=policy)
        return report.result


async def execute_with_retry(
    operation: Operation,
    policy: Optional[RetryPolicy] = None,
    operation_kind: str = "",
    sleep: Optional[SleepFn] = None
) -> ActionResult:
    """One-shot helper for callers that don't keep an executor around"""
    executor = ActionExecutor(policy=policy, sleep=sleep)
    report = await executor.run(operation, operation_kind=operation_kind)
    return report.result
