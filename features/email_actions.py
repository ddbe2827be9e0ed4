"""
Email actions: archive, mark as read, convert to task.

Tracks a loading flag per email and per action so several emails can be
acted on at once, shows archive / read state optimistically, and retries
transient failures before reporting a friendly error.
"""

from dataclasses import dataclass, replace, asdict
from typing import Any, Dict, Mapping, Optional

from connectors.backend_client import BackendClient
from core.optimistic import OptimisticStateManager
from core.resilience import ActionExecutor, FailedAction, RetryPolicy
from core.types import ActionResult
from features.base import ActionHook

ARCHIVE = "archive"
MARK_READ = "mark_read"
TO_TASK = "to_task"

# Optimistic fields
ARCHIVED = "archived"
MARKED_READ = "marked_read"


@dataclass(frozen=True)
class ConvertToTaskOptions:
    """Options for converting an email to a task"""
    task_list_id: Optional[str] = None
    due_date: Optional[str] = None
    additional_notes: Optional[str] = None

    def to_body(self) -> Dict[str, str]:
        return {k: v for k, v in asdict(self).items() if v is not None}

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> 'ConvertToTaskOptions':
        return cls(
            task_list_id=data.get('task_list_id'),
            due_date=data.get('due_date'),
            additional_notes=data.get('additional_notes'),
        )


@dataclass(frozen=True)
class EmailActionLoadingState:
    archive: bool = False
    mark_read: bool = False
    to_task: bool = False

    @property
    def any(self) -> bool:
        return self.archive or self.mark_read or self.to_task


async def archive_email(backend: BackendClient, email_id: str) -> ActionResult:
    """Archive an email (remove from inbox)"""
    response = await backend.post(f"/actions/emails/{email_id}/archive")
    return ActionResult.from_response(response, "Failed to archive email")


async def mark_email_as_read(backend: BackendClient, email_id: str) -> ActionResult:
    response = await backend.post(f"/actions/emails/{email_id}/mark-read")
    return ActionResult.from_response(response, "Failed to mark email as read")


async def convert_email_to_task(
    backend: BackendClient,
    email_id: str,
    options: Optional[ConvertToTaskOptions] = None
) -> ActionResult:
    body = options.to_body() if options else {}
    response = await backend.post(f"/actions/emails/{email_id}/to-task", body)
    return ActionResult.from_response(response, "Failed to convert email to task")


class EmailActions(ActionHook):
    """
    Email action hook with per-email loading states.

    Usage:
        actions = EmailActions(backend)
        result = await actions.archive_email("msg-1")
        if not result.success:
            show_toast(actions.error, retry=actions.retry_last_failed_action)
    """

    def __init__(
        self,
        backend: BackendClient,
        executor: Optional[ActionExecutor] = None,
        optimistic: Optional[OptimisticStateManager] = None,
        policy: Optional[RetryPolicy] = None
    ):
        super().__init__(executor=executor, optimistic=optimistic, policy=policy)
        self.backend = backend
        self.loading_states: Mapping[str, EmailActionLoadingState] = {}

    def loading_state(self, email_id: str) -> EmailActionLoadingState:
        return self.loading_states.get(email_id, EmailActionLoadingState())

    def _set_loading(self, email_id: str, operation_kind: str, is_loading: bool):
        states = dict(self.loading_states)
        states[email_id] = replace(self.loading_state(email_id), **{operation_kind: is_loading})
        self.loading_states = states

    def _on_start(self, resource_id: str, operation_kind: str):
        self._set_loading(resource_id, operation_kind, True)

    def _on_finish(self, resource_id: str, operation_kind: str):
        self._set_loading(resource_id, operation_kind, False)

    def clear_loading_state(self, email_id: str):
        states = dict(self.loading_states)
        states.pop(email_id, None)
        self.loading_states = states

    async def archive_email(self, email_id: str) -> ActionResult:
        return await self.perform(
            ARCHIVE,
            email_id,
            lambda: archive_email(self.backend, email_id),
            optimistic_field=ARCHIVED,
        )

    async def mark_as_read(self, email_id: str) -> ActionResult:
        return await self.perform(
            MARK_READ,
            email_id,
            lambda: mark_email_as_read(self.backend, email_id),
            optimistic_field=MARKED_READ,
        )

    async def convert_to_task(
        self,
        email_id: str,
        options: Optional[ConvertToTaskOptions] = None
    ) -> ActionResult:
        return await self.perform(
            TO_TASK,
            email_id,
            lambda: convert_email_to_task(self.backend, email_id, options),
            options=asdict(options) if options else None,
        )

    async def replay(self, failed: FailedAction) -> Optional[ActionResult]:
        if failed.operation_kind == ARCHIVE:
            return await self.archive_email(failed.resource_id)
        if failed.operation_kind == MARK_READ:
            return await self.mark_as_read(failed.resource_id)
        if failed.operation_kind == TO_TASK:
            options = ConvertToTaskOptions.from_dict(failed.options) if failed.options else None
            return await self.convert_to_task(failed.resource_id, options)
        return None

    def is_archived(self, email_id: str, authoritative: bool = False) -> bool:
        return self.optimistic.resolve(email_id, ARCHIVED, authoritative)

    def is_read(self, email_id: str, authoritative: bool = False) -> bool:
        return self.optimistic.resolve(email_id, MARKED_READ, authoritative)
