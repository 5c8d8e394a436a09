from __future__ import annotations

import logging
from datetime import datetime, timezone

from taskflow_api.errors import NotFoundError, ValidationError
from taskflow_api.schemas import (
    BatchStatus,
    NextSubtaskResult,
    SubtaskBatchCreate,
    SubtaskBatchResult,
    SubtaskRead,
    TaskStatus,
)
from taskflow_api.store import InMemoryStore
from taskflow_api.workflow_validation import validate_subtask_dag

logger = logging.getLogger(__name__)

DEPENDENCY_GATED_STATUSES = (TaskStatus.IN_PROGRESS, TaskStatus.COMPLETED)


class SubtaskService:
    """Batches of subtasks and the dependency rule between them.

    A subtask moves to in-progress or completed only once every subtask it
    depends on is completed. Dependency edges are fixed at creation time.
    """

    def __init__(self, store: InMemoryStore) -> None:
        self._store = store

    async def create_subtasks(self, task_id: int, batch: SubtaskBatchCreate) -> SubtaskBatchResult:
        operation = "create_subtasks"
        async with self._store.atomic():
            await self._require_task(task_id, operation=operation)
            existing = await self._store.list_subtasks(task_id=task_id)
            existing_by_name = {subtask.name: subtask for subtask in existing}

            clashes = [subtask.name for subtask in batch.subtasks if subtask.name in existing_by_name]
            if clashes:
                raise ValidationError(
                    f"subtask names already exist for task {task_id}: {', '.join(clashes)}",
                    operation=operation,
                )
            try:
                validate_subtask_dag(batch.subtasks, existing_names=set(existing_by_name))
            except ValueError as exc:
                raise ValidationError(str(exc), operation=operation) from exc

            next_sequence = max((subtask.sequence_number for subtask in existing), default=0) + 1
            created: dict[str, SubtaskRead] = {}
            for item in batch.subtasks:
                sequence_number = item.sequence_number if item.sequence_number is not None else next_sequence
                next_sequence = max(next_sequence, sequence_number) + 1
                created[item.name] = await self._store.create_subtask(
                    task_id=task_id,
                    name=item.name,
                    description=item.description,
                    sequence_number=sequence_number,
                    batch_id=batch.batch_id,
                    batch_title=batch.batch_title,
                )

            for item in batch.subtasks:
                for dependency in item.dependencies:
                    target = created.get(dependency) or existing_by_name[dependency]
                    await self._store.create_subtask_dependency(
                        subtask_id=created[item.name].id,
                        depends_on_subtask_id=target.id,
                    )

            subtasks = await self._store.list_subtasks(task_id=task_id, batch_id=batch.batch_id)

        logger.info("created %s subtasks in batch %s for task %s", len(created), batch.batch_id, task_id)
        return SubtaskBatchResult(
            task_id=task_id,
            batch_id=batch.batch_id,
            batch_title=batch.batch_title,
            count=len(created),
            subtasks=subtasks,
        )

    async def update_subtask_status(self, subtask_id: int, status: TaskStatus) -> SubtaskRead:
        async with self._store.atomic():
            subtask = await self._store.get_subtask(subtask_id)
            if status in DEPENDENCY_GATED_STATUSES:
                dependencies = await self._store.list_subtask_dependencies(subtask_id=subtask_id)
                incomplete = [dep.name for dep in dependencies if dep.status != TaskStatus.COMPLETED]
                if incomplete:
                    raise ValidationError(
                        f"Cannot transition to '{status.value}' - incomplete dependencies: {', '.join(incomplete)}",
                        operation="update_subtask",
                    )

            now = _utc_now()
            updated = await self._store.update_subtask(
                subtask_id,
                status=status,
                started_at=now if status == TaskStatus.IN_PROGRESS and subtask.started_at is None else None,
                completed_at=now if status == TaskStatus.COMPLETED else None,
            )
        return updated

    async def update_batch(self, task_id: int, batch_id: str, status: TaskStatus) -> BatchStatus:
        async with self._store.atomic():
            subtasks = await self._store.list_subtasks(task_id=task_id, batch_id=batch_id)
            if not subtasks:
                raise NotFoundError(f"batch '{batch_id}' not found for task {task_id}", operation="update_batch")
            if status in DEPENDENCY_GATED_STATUSES:
                await self._check_batch_dependencies(subtasks, batch_id, status)

            now = _utc_now()
            for subtask in subtasks:
                await self._store.update_subtask(
                    subtask.id,
                    status=status,
                    started_at=now if status == TaskStatus.IN_PROGRESS and subtask.started_at is None else None,
                    completed_at=now if status == TaskStatus.COMPLETED else None,
                )

        logger.info("batch %s of task %s set to %s", batch_id, task_id, status.value)
        return await self.get_batch_status(task_id, batch_id)

    async def _check_batch_dependencies(self, subtasks: list[SubtaskRead], batch_id: str, status: TaskStatus) -> None:
        # In-batch dependencies count as satisfied only for a completed update.
        batch_ids = {subtask.id for subtask in subtasks}
        incomplete: list[str] = []
        for subtask in subtasks:
            for dependency in await self._store.list_subtask_dependencies(subtask_id=subtask.id):
                if dependency.status == TaskStatus.COMPLETED:
                    continue
                if dependency.id in batch_ids and status == TaskStatus.COMPLETED:
                    continue
                if dependency.name not in incomplete:
                    incomplete.append(dependency.name)
        if incomplete:
            raise ValidationError(
                f"Cannot transition batch '{batch_id}' to '{status.value}' - incomplete dependencies: {', '.join(incomplete)}",
                operation="update_batch",
            )

    async def get_next_subtask(self, task_id: int) -> NextSubtaskResult:
        await self._require_task(task_id, operation="get_next_subtask")
        candidates = await self._store.list_subtasks(
            task_id=task_id,
            statuses=[TaskStatus.NOT_STARTED, TaskStatus.IN_PROGRESS],
        )
        for candidate in candidates:
            dependencies = await self._store.list_subtask_dependencies(subtask_id=candidate.id)
            if all(dependency.status == TaskStatus.COMPLETED for dependency in dependencies):
                return NextSubtaskResult(
                    task_id=task_id,
                    next_subtask=candidate,
                    message=f"Next subtask: {candidate.name}",
                )

        if candidates:
            message = "Remaining subtasks are blocked by incomplete dependencies"
        else:
            message = "No remaining subtasks"
        return NextSubtaskResult(task_id=task_id, message=message)

    async def get_batch_status(self, task_id: int, batch_id: str) -> BatchStatus:
        subtasks = await self._store.list_subtasks(task_id=task_id, batch_id=batch_id)
        if not subtasks:
            raise NotFoundError(f"batch '{batch_id}' not found for task {task_id}", operation="get_batch")
        completed = sum(1 for subtask in subtasks if subtask.status == TaskStatus.COMPLETED)
        return BatchStatus(
            task_id=task_id,
            batch_id=batch_id,
            total=len(subtasks),
            completed=completed,
            in_progress=sum(1 for subtask in subtasks if subtask.status == TaskStatus.IN_PROGRESS),
            is_complete=completed == len(subtasks),
        )

    async def _require_task(self, task_id: int, *, operation: str) -> None:
        try:
            await self._store.get_task(task_id)
        except NotFoundError as exc:
            raise NotFoundError(str(exc), operation=operation) from exc


def _utc_now() -> str:
    return datetime.now(timezone.utc).isoformat()
