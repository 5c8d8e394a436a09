from __future__ import annotations

import logging
import time
from collections import Counter
from typing import Any

from taskflow_api.cache import BoundedTTLCache
from taskflow_api.errors import InvalidStateError
from taskflow_api.schemas import (
    TERMINAL_TASK_STATUSES,
    ActiveExecutionsResult,
    ActiveExecutionsSummary,
    BootstrapContext,
    BootstrapResult,
    ExecutionUpdate,
    StepProgressCreate,
    StepProgressStatus,
    TaskRead,
    WorkflowBootstrapRequest,
    WorkflowExecutionDetail,
    WorkflowExecutionRead,
)
from taskflow_api.store import InMemoryStore

logger = logging.getLogger(__name__)


class WorkflowExecutionService:
    def __init__(
        self,
        store: InMemoryStore,
        *,
        coordinator_role: str,
        cache: BoundedTTLCache[WorkflowExecutionDetail] | None = None,
    ) -> None:
        self._store = store
        self._coordinator_role = coordinator_role
        self._cache = cache if cache is not None else BoundedTTLCache(max_entries=256, ttl_seconds=300)

    async def bootstrap(self, request: WorkflowBootstrapRequest) -> BootstrapResult:
        started = time.perf_counter()
        async with self._store.atomic():
            task = await self._store.create_task(request.task, current_role=self._coordinator_role)
            role_steps = await self._store.list_steps(role_name=self._coordinator_role)
            all_steps = await self._store.list_steps()
            execution = await self._store.create_execution(
                task_id=task.id,
                current_role=self._coordinator_role,
                current_step_id=role_steps[0].id if role_steps else None,
                execution_mode=request.execution_mode,
                total_steps=len(all_steps),
            )

        detail = WorkflowExecutionDetail(**execution.model_dump(), task=task)
        self._cache.set(execution.id, detail)
        logger.info("bootstrapped task %s with execution %s", task.id, execution.id)
        return BootstrapResult(
            task=task,
            workflow_execution=detail,
            context=BootstrapContext(
                bootstrap_duration_ms=round((time.perf_counter() - started) * 1000),
                initial_role=self._coordinator_role,
                execution_mode=request.execution_mode,
            ),
        )

    async def get_active_executions(self) -> ActiveExecutionsResult:
        executions = await self._store.list_executions(active_only=True)
        by_role = Counter(execution.current_role for execution in executions)
        average = round(sum(item.progress_percentage for item in executions) / len(executions)) if executions else 0
        return ActiveExecutionsResult(
            executions=executions,
            summary=ActiveExecutionsSummary(total_active=len(executions), by_role=dict(by_role), average_progress=average),
        )

    async def get_execution(self, execution_id: str) -> WorkflowExecutionDetail:
        cached = self._cache.get(execution_id)
        if cached is not None:
            return cached

        execution = await self._store.get_execution(execution_id)
        task = await self._store.get_task(execution.task_id)
        detail = WorkflowExecutionDetail(**execution.model_dump(), task=task)
        self._cache.set(execution_id, detail)
        return detail

    async def update_execution(self, execution_id: str, update: ExecutionUpdate) -> WorkflowExecutionRead:
        async with self._store.atomic():
            execution = await self._store.get_execution(execution_id)
            if execution.completed_at is not None:
                raise InvalidStateError(
                    f"workflow execution '{execution_id}' is already completed",
                    operation="update_execution",
                )
            current_role = None
            if update.current_step_id is not None:
                step = await self._store.get_step(update.current_step_id)
                current_role = step.role_name
            updated = await self._store.update_execution(
                execution_id,
                current_role=current_role,
                current_step_id=update.current_step_id,
                steps_completed=update.steps_completed,
                total_steps=update.total_steps,
            )
        self._cache.invalidate(execution_id)
        return updated

    async def complete_execution(self, execution_id: str) -> WorkflowExecutionRead:
        async with self._store.atomic():
            execution = await self._store.get_execution(execution_id)
            if execution.completed_at is not None:
                raise InvalidStateError(
                    f"workflow execution '{execution_id}' is already completed",
                    operation="complete_execution",
                )
            updated = await self._store.update_execution(execution_id, completed=True)
        self._cache.invalidate(execution_id)
        logger.info("workflow execution %s completed", execution_id)
        return updated

    async def record_step_progress(self, task_id: int, step_id: str, payload: StepProgressCreate) -> dict[str, Any]:
        async with self._store.atomic():
            task = await self._store.get_task(task_id)
            step = await self._store.get_step(step_id)
            progress = await self._store.record_step_progress(
                task_id=task_id,
                step_id=step_id,
                role_name=payload.role_name or step.role_name,
                status=payload.status,
                result=payload.result,
            )
            completed = sum(
                1
                for entry in await self._store.list_step_progress(task_id=task_id)
                if entry.status == StepProgressStatus.COMPLETED
            )
            for execution in await self._store.list_executions(active_only=True, task_id=task_id):
                await self._store.update_execution(
                    execution.id,
                    current_step_id=step_id,
                    current_role=step.role_name,
                    steps_completed=completed,
                )
                self._cache.invalidate(execution.id)

        return {
            "id": progress.id,
            "status": progress.status.value,
            "step_id": step_id,
            "role_name": progress.role_name,
            "task_status": task.status.value,
            "steps_completed": completed,
            "result": payload.result,
        }

    async def sync_task(self, task: TaskRead) -> None:
        """Keep the active executions of a task on its owning role."""
        finished = task.status in TERMINAL_TASK_STATUSES
        for execution in await self._store.list_executions(active_only=True, task_id=task.id):
            await self._store.update_execution(execution.id, current_role=task.current_role, completed=finished)
            self._cache.invalidate(execution.id)
