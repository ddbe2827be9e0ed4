"""
Base class for feature-level action hooks.

A hook ties the pieces together for one feature:
1. apply the optimistic override
2. run the backend call through the ActionExecutor (serialized per resource)
3. commit the override on success, roll it back otherwise
4. keep error / last_action state for the UI and remember the last failure
   so retry_last_failed_action() can replay it

Duplicate requests for the same (resource, operation) while one is in
flight join the running call instead of sending a second mutation.
"""

import asyncio
import uuid
from abc import ABC, abstractmethod
from typing import Any, Awaitable, Callable, Dict, Optional, Tuple

from core.locks import KeyedLocks
from core.optimistic import OptimisticStateManager
from core.resilience import ActionExecutor, ExecutionReport, FailedAction, LastFailedActionSlot, RetryPolicy
from core.types import ActionResult
from error_handler import ErrorKind, friendly_message
from logger import get_logger

logger = get_logger(__name__)


class ActionHook(ABC):
    """Shared state machine of email and task action hooks"""

    def __init__(
        self,
        executor: Optional[ActionExecutor] = None,
        optimistic: Optional[OptimisticStateManager] = None,
        policy: Optional[RetryPolicy] = None
    ):
        self.executor = executor or ActionExecutor(policy=policy)
        self.optimistic = optimistic or OptimisticStateManager()
        self.error: Optional[str] = None
        self.last_action: Optional[ActionResult] = None
        self.last_failed = LastFailedActionSlot()
        self._locks = KeyedLocks()
        self._in_flight: Dict[Tuple[str, str], asyncio.Task] = {}

    @property
    def is_loading(self) -> bool:
        return bool(self._in_flight)

    def clear_error(self):
        self.error = None

    def clear_state(self):
        self.last_action = None
        self.error = None

    def _on_start(self, resource_id: str, operation_kind: str):
        """Called before the call is issued"""

    def _on_finish(self, resource_id: str, operation_kind: str):
        """Called after the call settled, whatever the outcome"""

    async def perform(
        self,
        operation_kind: str,
        resource_id: str,
        call: Callable[[], Awaitable[ActionResult]],
        optimistic_field: Optional[str] = None,
        options: Optional[Dict[str, Any]] = None,
        coalesce: bool = True
    ) -> ActionResult:
        """
        Run one action with optimistic state, retry and error bookkeeping.

        Args:
            operation_kind: Operation name (selects messages and replay)
            resource_id: Resource the action targets
            call: One backend attempt
            optimistic_field: Field to set optimistically, if any
            options: Extra arguments kept for replay
            coalesce: Join an identical in-flight call instead of starting another
        """
        key = (resource_id, operation_kind) if coalesce else (resource_id, uuid.uuid4().hex)
        running = self._in_flight.get(key)
        if running is not None:
            logger.debug(f"Joining in-flight {operation_kind} on {resource_id}")
            return await running

        task = asyncio.ensure_future(
            self._run(operation_kind, resource_id, call, optimistic_field, options)
        )
        self._in_flight[key] = task
        try:
            return await task
        finally:
            if self._in_flight.get(key) is task:
                del self._in_flight[key]

    async def _run(
        self,
        operation_kind: str,
        resource_id: str,
        call: Callable[[], Awaitable[ActionResult]],
        optimistic_field: Optional[str],
        options: Optional[Dict[str, Any]]
    ) -> ActionResult:
        self.last_failed.clear()
        if optimistic_field:
            self.optimistic.apply(resource_id, optimistic_field, True)
        self._on_start(resource_id, operation_kind)

        committed = False
        try:
            try:
                async with self._locks.hold(resource_id):
                    report = await self.executor.run(
                        call,
                        operation_kind=operation_kind,
                        resource_id=resource_id,
                        options=options,
                    )
            except Exception as e:
                # Programming errors never reach the user as raw text
                logger.error(f"Unexpected error in {operation_kind} {resource_id}: {e}", exc_info=True)
                message = friendly_message(ErrorKind.UNKNOWN, operation_kind)
                report = ExecutionReport(
                    result=ActionResult.failure(message),
                    attempts=1,
                    failed_action=FailedAction(
                        operation_kind=operation_kind,
                        resource_id=resource_id,
                        options=dict(options or {}),
                        message=message,
                        error_kind=ErrorKind.UNKNOWN,
                    ),
                )

            result = report.result
            self.last_action = result
            if result.success:
                if optimistic_field:
                    self.optimistic.commit(resource_id, optimistic_field)
                    committed = True
                self.error = None
            else:
                self.error = result.message
                if report.failed_action is not None:
                    self.last_failed.record(report.failed_action)
            return result
        finally:
            if optimistic_field and not committed:
                self.optimistic.rollback(resource_id, optimistic_field)
            self._on_finish(resource_id, operation_kind)

    async def retry_last_failed_action(self) -> Optional[ActionResult]:
        """Replay the most recent failed action, or None if there is none"""
        failed = self.last_failed.take()
        if failed is None:
            return None
        logger.info(f"Retrying {failed.operation_kind} on {failed.resource_id}")
        return await self.replay(failed)

    @abstractmethod
    async def replay(self, failed: FailedAction) -> Optional[ActionResult]:
        """Re-issue a failed action through the hook's public method"""
