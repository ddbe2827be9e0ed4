"""
Task actions: create, complete, update, delete.

Completion and deletion are shown optimistically and rolled back if the
backend rejects them.
"""

from dataclasses import dataclass, asdict
from typing import Any, Dict, Mapping, Optional
from urllib.parse import quote

from connectors.backend_client import BackendClient
from core.optimistic import OptimisticStateManager
from core.resilience import ActionExecutor, FailedAction, RetryPolicy
from core.types import ActionResult
from features.base import ActionHook

CREATE_TASK = "create_task"
COMPLETE_TASK = "complete_task"
UPDATE_TASK = "update_task"
DELETE_TASK = "delete_task"

# Optimistic fields
COMPLETED = "completed"
DELETED = "deleted"


@dataclass(frozen=True)
class TaskInput:
    """Fields for creating or updating a task"""
    title: Optional[str] = None
    notes: Optional[str] = None
    due_date: Optional[str] = None
    task_list_id: Optional[str] = None

    def to_body(self) -> Dict[str, str]:
        return {k: v for k, v in asdict(self).items() if v is not None}

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> 'TaskInput':
        return cls(
            title=data.get('title'),
            notes=data.get('notes'),
            due_date=data.get('due_date'),
            task_list_id=data.get('task_list_id'),
        )


def _with_list(path: str, list_id: Optional[str]) -> str:
    return f"{path}?list_id={quote(list_id)}" if list_id else path


async def create_task(backend: BackendClient, task: TaskInput) -> ActionResult:
    response = await backend.post("/actions/tasks", task.to_body())
    return ActionResult.from_response(response, "Failed to create task")


async def update_task(backend: BackendClient, task_id: str, updates: TaskInput) -> ActionResult:
    response = await backend.patch(f"/actions/tasks/{task_id}", updates.to_body())
    return ActionResult.from_response(response, "Failed to update task")


async def complete_task(backend: BackendClient, task_id: str, list_id: Optional[str] = None) -> ActionResult:
    response = await backend.post(_with_list(f"/actions/tasks/{task_id}/complete", list_id), {})
    return ActionResult.from_response(response, "Failed to complete task")


async def delete_task(backend: BackendClient, task_id: str, list_id: Optional[str] = None) -> ActionResult:
    response = await backend.delete(_with_list(f"/actions/tasks/{task_id}", list_id))
    if response.ok and not response.data:
        return ActionResult(success=True, message="Task deleted")
    return ActionResult.from_response(response, "Failed to delete task")


class TaskActions(ActionHook):
    """Task action hook"""

    def __init__(
        self,
        backend: BackendClient,
        executor: Optional[ActionExecutor] = None,
        optimistic: Optional[OptimisticStateManager] = None,
        policy: Optional[RetryPolicy] = None
    ):
        super().__init__(executor=executor, optimistic=optimistic, policy=policy)
        self.backend = backend

    async def create_task(self, task: TaskInput) -> ActionResult:
        # Creates have no id yet and must never be merged with another create
        return await self.perform(
            CREATE_TASK,
            "",
            lambda: create_task(self.backend, task),
            options={'task': asdict(task)},
            coalesce=False,
        )

    async def complete_task(self, task_id: str, list_id: Optional[str] = None) -> ActionResult:
        return await self.perform(
            COMPLETE_TASK,
            task_id,
            lambda: complete_task(self.backend, task_id, list_id),
            optimistic_field=COMPLETED,
            options={'list_id': list_id},
        )

    async def update_task(self, task_id: str, updates: TaskInput) -> ActionResult:
        return await self.perform(
            UPDATE_TASK,
            task_id,
            lambda: update_task(self.backend, task_id, updates),
            options={'updates': asdict(updates)},
            coalesce=False,
        )

    async def delete_task(self, task_id: str, list_id: Optional[str] = None) -> ActionResult:
        return await self.perform(
            DELETE_TASK,
            task_id,
            lambda: delete_task(self.backend, task_id, list_id),
            optimistic_field=DELETED,
            options={'list_id': list_id},
        )

    async def replay(self, failed: FailedAction) -> Optional[ActionResult]:
        options = failed.options
        if failed.operation_kind == CREATE_TASK:
            return await self.create_task(TaskInput.from_dict(options.get('task', {})))
        if failed.operation_kind == COMPLETE_TASK:
            return await self.complete_task(failed.resource_id, options.get('list_id'))
        if failed.operation_kind == UPDATE_TASK:
            return await self.update_task(failed.resource_id, TaskInput.from_dict(options.get('updates', {})))
        if failed.operation_kind == DELETE_TASK:
            return await self.delete_task(failed.resource_id, options.get('list_id'))
        return None

    def is_completed(self, task_id: str, authoritative: bool = False) -> bool:
        return self.optimistic.resolve(task_id, COMPLETED, authoritative)

    def is_deleted(self, task_id: str, authoritative: bool = False) -> bool:
        return self.optimistic.resolve(task_id, DELETED, authoritative)
