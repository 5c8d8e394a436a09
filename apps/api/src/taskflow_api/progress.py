from __future__ import annotations

import asyncio
import logging

from taskflow_api.errors import NotFoundError
from taskflow_api.schemas import ProgressMetrics, StepProgressRead, StepProgressStatus, TaskStatus
from taskflow_api.store import InMemoryStore

logger = logging.getLogger(__name__)

MINUTES_PER_PERCENT = 2

ROLE_MILESTONES: dict[str, str] = {
    "boomerang": "Task Analysis Complete",
    "researcher": "Research Findings Ready",
    "architect": "Implementation Plan Ready",
    "senior-developer": "Implementation Complete",
    "code-review": "Quality Review Complete",
}


class ProgressCalculator:
    def __init__(self, store: InMemoryStore) -> None:
        self._store = store

    async def calculate(self, task_id: int, current_role: str, step_id: str | None = None) -> ProgressMetrics:
        """Progress of a task for its current role; zeroed when data cannot be read."""
        try:
            await self._store.get_task(task_id)
            role_steps, all_steps, progress, subtasks = await asyncio.gather(
                self._store.list_steps(role_name=current_role),
                self._store.list_steps(),
                self._store.list_step_progress(task_id=task_id),
                self._store.list_subtasks(task_id=task_id),
            )
        except NotFoundError:
            logger.warning("task %s not found while calculating progress", task_id)
            return ProgressMetrics()
        except Exception:
            logger.warning("progress calculation failed for task %s", task_id, exc_info=True)
            return ProgressMetrics()

        role_step_ids = {step.id for step in role_steps}
        role_entries = [entry for entry in progress if entry.step_id in role_step_ids]
        role_progress = _weighted_percent(role_entries, len(role_steps))

        return ProgressMetrics(
            current_step_progress=_current_step_progress(step_id, progress),
            role_progress=role_progress,
            overall_progress=_weighted_percent(progress, len(all_steps)),
            completed_steps=sum(1 for entry in role_entries if entry.status == StepProgressStatus.COMPLETED),
            total_steps=len(role_steps),
            completed_subtasks=sum(1 for subtask in subtasks if subtask.status == TaskStatus.COMPLETED),
            total_subtasks=len(subtasks),
            estimated_time_remaining=estimate_time_remaining(role_progress),
            next_milestone=ROLE_MILESTONES.get(current_role),
        )


def _current_step_progress(step_id: str | None, progress: list[StepProgressRead]) -> int:
    if not step_id:
        return 0
    entry = next((item for item in progress if item.step_id == step_id), None)
    if entry is None:
        return 0
    if entry.status == StepProgressStatus.COMPLETED:
        return 100
    if entry.status == StepProgressStatus.IN_PROGRESS:
        return 50
    return 0


def _weighted_percent(entries: list[StepProgressRead], total: int) -> int:
    if total <= 0:
        return 0
    completed = sum(1 for entry in entries if entry.status == StepProgressStatus.COMPLETED)
    in_progress = sum(1 for entry in entries if entry.status == StepProgressStatus.IN_PROGRESS)
    return min(100, round((completed + in_progress * 0.5) / total * 100))


def estimate_time_remaining(role_progress: int) -> str | None:
    if role_progress >= 100:
        return None
    minutes = (100 - role_progress) * MINUTES_PER_PERCENT
    if minutes < 60:
        return f"{minutes} minutes"
    hours = round(minutes / 60)
    return f"{hours} hour{'s' if hours > 1 else ''}"
