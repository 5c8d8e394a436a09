from __future__ import annotations

import asyncio
import copy
import json
import logging
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, AsyncIterator

from taskflow_api.errors import NotFoundError, ValidationError
from taskflow_api.schemas import (
    ActionType,
    CompletionData,
    CompletionReportRead,
    DelegationRecordRead,
    ExecutionMode,
    StepActionRead,
    StepProgressRead,
    StepProgressStatus,
    SubtaskDependencyRead,
    SubtaskRead,
    TaskCreate,
    TaskDescriptionRead,
    TaskRead,
    TaskStatus,
    WorkflowExecutionRead,
    WorkflowRoleCreate,
    WorkflowRoleRead,
    WorkflowStepCreate,
    WorkflowStepRead,
    WorkflowTransitionRead,
)

logger = logging.getLogger(__name__)

_UNSET: Any = object()


@dataclass
class _RoleRecord:
    name: str
    display_name: str
    description: str
    sequence_number: int


@dataclass
class _StepActionRecord:
    id: int
    step_id: str
    name: str
    action_type: str
    action_data: dict[str, Any]
    sequence_order: int


@dataclass
class _TaskRecord:
    id: int
    name: str
    current_role: str
    priority: str
    dependencies: list[str]
    created_at: str
    updated_at: str
    status: str = TaskStatus.NOT_STARTED.value
    redelegation_count: int = 0
    git_branch: str | None = None
    completion_date: str | None = None


@dataclass
class _TaskDescriptionRecord:
    task_id: int
    description: str
    business_requirements: str
    technical_requirements: str
    acceptance_criteria: list[str]


@dataclass
class _DelegationRecord:
    id: int
    task_id: int
    from_role: str
    to_role: str
    message: str
    created_at: str


@dataclass
class _TransitionRecord:
    id: int
    task_id: int
    from_role: str
    to_role: str
    reason: str
    created_at: str


@dataclass
class _CompletionReportRecord:
    id: int
    task_id: int
    summary: str
    files_modified: list[str]
    acceptance_criteria_verification: dict[str, Any]
    delegation_summary: str
    created_at: str


@dataclass
class _StepProgressRecord:
    id: int
    task_id: int
    step_id: str
    role_name: str
    status: str
    created_at: str
    result: dict[str, Any] = field(default_factory=dict)


@dataclass
class _SubtaskRecord:
    id: int
    task_id: int
    name: str
    description: str
    sequence_number: int
    batch_id: str
    batch_title: str
    status: str = TaskStatus.NOT_STARTED.value
    started_at: str | None = None
    completed_at: str | None = None


@dataclass
class _ExecutionRecord:
    id: str
    task_id: int
    current_role: str
    current_step_id: str | None
    execution_mode: str
    steps_completed: int
    total_steps: int
    created_at: str
    completed_at: str | None = None


class InMemoryStore:
    """Reference implementation of the workflow store.

    Reads and writes are coroutines so callers suspend only at store call
    boundaries. ``atomic()`` groups several writes into one unit: either all
    of them are kept or the store is rolled back to its state before the unit.
    """

    def __init__(self, state_file: str | None = None) -> None:
        self._state_file = Path(state_file).expanduser() if state_file else None
        self._atomic_lock = asyncio.Lock()
        self._atomic_depth = 0
        self._atomic_owner: asyncio.Task[Any] | None = None
        self._roles: dict[str, _RoleRecord] = {}
        self._steps: dict[str, WorkflowStepRead] = {}
        self._step_actions: dict[int, _StepActionRecord] = {}
        self._tasks: dict[int, _TaskRecord] = {}
        self._descriptions: dict[int, _TaskDescriptionRecord] = {}
        self._delegations: list[_DelegationRecord] = []
        self._transitions: list[_TransitionRecord] = []
        self._completion_reports: list[_CompletionReportRecord] = []
        self._step_progress: list[_StepProgressRecord] = []
        self._subtasks: dict[int, _SubtaskRecord] = {}
        self._subtask_dependencies: list[tuple[int, int]] = []
        self._executions: dict[str, _ExecutionRecord] = {}
        self._step_action_seq = 1
        self._task_seq = 1
        self._delegation_seq = 1
        self._transition_seq = 1
        self._completion_report_seq = 1
        self._step_progress_seq = 1
        self._subtask_seq = 1
        self._execution_seq = 1
        self._load_state()

    @asynccontextmanager
    async def atomic(self) -> AsyncIterator["InMemoryStore"]:
        if self._atomic_owner is not None and self._atomic_owner is asyncio.current_task():
            # Nested unit joins the enclosing one.
            yield self
            return

        async with self._atomic_lock:
            saved = copy.deepcopy(self._state_attributes())
            self._atomic_owner = asyncio.current_task()
            self._atomic_depth += 1
            try:
                yield self
            except BaseException:
                for name, value in saved.items():
                    setattr(self, name, value)
                logger.warning("store atomic unit rolled back")
                raise
            finally:
                self._atomic_depth -= 1
                self._atomic_owner = None
            self._persist_state()

    # Workflow configuration

    async def create_role(self, role: WorkflowRoleCreate) -> WorkflowRoleRead:
        record = _RoleRecord(
            name=role.name,
            display_name=role.display_name,
            description=role.description,
            sequence_number=role.sequence_number,
        )
        self._roles[role.name] = record
        self._persist_state()
        return self._to_role_read(record)

    async def get_role(self, name: str) -> WorkflowRoleRead:
        record = self._roles.get(name)
        if record is None:
            raise NotFoundError(f"workflow role '{name}' not found")
        return self._to_role_read(record)

    async def list_roles(self) -> list[WorkflowRoleRead]:
        records = sorted(self._roles.values(), key=lambda record: (record.sequence_number, record.name))
        return [self._to_role_read(record) for record in records]

    async def create_step(self, step: WorkflowStepCreate) -> WorkflowStepRead:
        if step.role_name not in self._roles:
            raise NotFoundError(f"workflow role '{step.role_name}' not found")

        read = WorkflowStepRead(**step.model_dump(exclude={"actions"}))
        if not read.display_name:
            read.display_name = read.name
        self._steps[read.id] = read
        for stale_id in [action_id for action_id, action in self._step_actions.items() if action.step_id == read.id]:
            del self._step_actions[stale_id]
        for index, action in enumerate(step.actions):
            action_id = self._step_action_seq
            self._step_action_seq += 1
            self._step_actions[action_id] = _StepActionRecord(
                id=action_id,
                step_id=read.id,
                name=action.name,
                action_type=action.action_type.value,
                action_data=action.action_data,
                sequence_order=action.sequence_order or index + 1,
            )
        self._persist_state()
        return read

    async def get_step(self, step_id: str) -> WorkflowStepRead:
        step = self._steps.get(step_id)
        if step is None:
            raise NotFoundError(f"workflow step '{step_id}' not found")
        return step

    async def list_steps(self, *, role_name: str | None = None, step_id: str | None = None) -> list[WorkflowStepRead]:
        steps = [
            step
            for step in self._steps.values()
            if (role_name is None or step.role_name == role_name) and (step_id is None or step.id == step_id)
        ]
        return sorted(steps, key=lambda step: (step.sequence_number, step.id))

    async def list_step_actions(
        self,
        *,
        step_id: str | None = None,
        role_name: str | None = None,
        action_type: ActionType | None = None,
    ) -> list[StepActionRead]:
        actions: list[_StepActionRecord] = []
        for record in self._step_actions.values():
            if step_id is not None and record.step_id != step_id:
                continue
            if role_name is not None:
                step = self._steps.get(record.step_id)
                if step is None or step.role_name != role_name:
                    continue
            if action_type is not None and record.action_type != action_type.value:
                continue
            actions.append(record)
        actions.sort(key=lambda record: (record.step_id, record.sequence_order, record.id))
        return [self._to_step_action_read(record) for record in actions]

    # Tasks

    async def create_task(self, task: TaskCreate, *, current_role: str) -> TaskRead:
        if current_role not in self._roles:
            raise NotFoundError(f"workflow role '{current_role}' not found")

        task_id = self._task_seq
        self._task_seq += 1
        now = self._utc_now()
        record = _TaskRecord(
            id=task_id,
            name=task.name,
            current_role=current_role,
            priority=task.priority.value,
            dependencies=task.dependencies,
            git_branch=task.git_branch,
            created_at=now,
            updated_at=now,
        )
        self._tasks[task_id] = record
        self._descriptions[task_id] = _TaskDescriptionRecord(
            task_id=task_id,
            description=task.description,
            business_requirements=task.business_requirements,
            technical_requirements=task.technical_requirements,
            acceptance_criteria=task.acceptance_criteria,
        )
        self._persist_state()
        return self._to_task_read(record)

    async def get_task(self, task_id: int) -> TaskRead:
        record = self._tasks.get(task_id)
        if record is None:
            raise NotFoundError(f"task {task_id} not found")
        return self._to_task_read(record)

    async def get_task_description(self, task_id: int) -> TaskDescriptionRead:
        record = self._descriptions.get(task_id)
        if record is None:
            raise NotFoundError(f"description for task {task_id} not found")
        return TaskDescriptionRead(**record.__dict__)

    async def list_tasks(
        self,
        *,
        status: TaskStatus | None = None,
        current_role: str | None = None,
    ) -> list[TaskRead]:
        return [
            self._to_task_read(record)
            for record in self._tasks.values()
            if (status is None or record.status == status.value)
            and (current_role is None or record.current_role == current_role)
        ]

    async def update_task(
        self,
        task_id: int,
        *,
        status: TaskStatus | None = None,
        current_role: str | None = None,
        completion_date: str | None = _UNSET,
        increment_redelegation: bool = False,
    ) -> TaskRead:
        record = self._tasks.get(task_id)
        if record is None:
            raise NotFoundError(f"task {task_id} not found")
        if current_role is not None and current_role not in self._roles:
            raise NotFoundError(f"workflow role '{current_role}' not found")

        if status is not None:
            record.status = status.value
        if current_role is not None:
            record.current_role = current_role
        if completion_date is not _UNSET:
            record.completion_date = completion_date
        if increment_redelegation:
            record.redelegation_count += 1
        record.updated_at = self._utc_now()
        self._persist_state()
        return self._to_task_read(record)

    # Audit logs

    async def create_delegation(self, *, task_id: int, from_role: str, to_role: str, message: str) -> DelegationRecordRead:
        if task_id not in self._tasks:
            raise NotFoundError(f"task {task_id} not found")
        record = _DelegationRecord(
            id=self._delegation_seq,
            task_id=task_id,
            from_role=from_role,
            to_role=to_role,
            message=message,
            created_at=self._utc_now(),
        )
        self._delegation_seq += 1
        self._delegations.append(record)
        self._persist_state()
        return DelegationRecordRead(**record.__dict__)

    async def list_delegations(self, *, task_id: int | None = None) -> list[DelegationRecordRead]:
        return [
            DelegationRecordRead(**record.__dict__)
            for record in self._delegations
            if task_id is None or record.task_id == task_id
        ]

    async def create_transition(self, *, task_id: int, from_role: str, to_role: str, reason: str) -> WorkflowTransitionRead:
        if task_id not in self._tasks:
            raise NotFoundError(f"task {task_id} not found")
        record = _TransitionRecord(
            id=self._transition_seq,
            task_id=task_id,
            from_role=from_role,
            to_role=to_role,
            reason=reason,
            created_at=self._utc_now(),
        )
        self._transition_seq += 1
        self._transitions.append(record)
        self._persist_state()
        return WorkflowTransitionRead(**record.__dict__)

    async def list_transitions(self, *, task_id: int | None = None) -> list[WorkflowTransitionRead]:
        return [
            WorkflowTransitionRead(**record.__dict__)
            for record in self._transitions
            if task_id is None or record.task_id == task_id
        ]

    async def create_completion_report(self, *, task_id: int, data: CompletionData) -> CompletionReportRead:
        if task_id not in self._tasks:
            raise NotFoundError(f"task {task_id} not found")
        record = _CompletionReportRecord(
            id=self._completion_report_seq,
            task_id=task_id,
            summary=data.summary,
            files_modified=list(data.files_modified),
            acceptance_criteria_verification={
                key: value.model_dump(mode="json") for key, value in data.acceptance_criteria_verification.items()
            },
            delegation_summary=data.delegation_summary,
            created_at=self._utc_now(),
        )
        self._completion_report_seq += 1
        self._completion_reports.append(record)
        self._persist_state()
        return CompletionReportRead(**record.__dict__)

    async def list_completion_reports(self, *, task_id: int) -> list[CompletionReportRead]:
        return [
            CompletionReportRead(**record.__dict__)
            for record in self._completion_reports
            if record.task_id == task_id
        ]

    # Step progress

    async def record_step_progress(
        self,
        *,
        task_id: int,
        step_id: str,
        role_name: str,
        status: StepProgressStatus,
        result: dict[str, Any] | None = None,
    ) -> StepProgressRead:
        if task_id not in self._tasks:
            raise NotFoundError(f"task {task_id} not found")
        if step_id not in self._steps:
            raise NotFoundError(f"workflow step '{step_id}' not found")

        existing = next(
            (record for record in self._step_progress if record.task_id == task_id and record.step_id == step_id),
            None,
        )
        if existing is None:
            existing = _StepProgressRecord(
                id=self._step_progress_seq,
                task_id=task_id,
                step_id=step_id,
                role_name=role_name,
                status=status.value,
                created_at=self._utc_now(),
                result=result or {},
            )
            self._step_progress_seq += 1
            self._step_progress.append(existing)
        else:
            existing.status = status.value
            existing.role_name = role_name
            if result:
                existing.result = result
        self._persist_state()
        return self._to_step_progress_read(existing)

    async def list_step_progress(self, *, task_id: int, role_name: str | None = None) -> list[StepProgressRead]:
        return [
            self._to_step_progress_read(record)
            for record in self._step_progress
            if record.task_id == task_id and (role_name is None or record.role_name == role_name)
        ]

    # Subtasks

    async def create_subtask(
        self,
        *,
        task_id: int,
        name: str,
        description: str,
        sequence_number: int,
        batch_id: str,
        batch_title: str,
    ) -> SubtaskRead:
        if task_id not in self._tasks:
            raise NotFoundError(f"task {task_id} not found")
        subtask_id = self._subtask_seq
        self._subtask_seq += 1
        record = _SubtaskRecord(
            id=subtask_id,
            task_id=task_id,
            name=name,
            description=description,
            sequence_number=sequence_number,
            batch_id=batch_id,
            batch_title=batch_title,
        )
        self._subtasks[subtask_id] = record
        self._persist_state()
        return self._to_subtask_read(record)

    async def create_subtask_dependency(self, *, subtask_id: int, depends_on_subtask_id: int) -> SubtaskDependencyRead:
        if subtask_id not in self._subtasks:
            raise NotFoundError(f"subtask {subtask_id} not found")
        if depends_on_subtask_id not in self._subtasks:
            raise NotFoundError(f"subtask {depends_on_subtask_id} not found")
        if subtask_id == depends_on_subtask_id:
            raise ValidationError("subtask cannot depend on itself")
        edge = (subtask_id, depends_on_subtask_id)
        if edge not in self._subtask_dependencies:
            self._subtask_dependencies.append(edge)
            self._persist_state()
        return SubtaskDependencyRead(subtask_id=subtask_id, depends_on_subtask_id=depends_on_subtask_id)

    async def list_subtask_dependencies(self, *, subtask_id: int) -> list[SubtaskRead]:
        return [
            self._to_subtask_read(self._subtasks[depends_on])
            for dependent, depends_on in self._subtask_dependencies
            if dependent == subtask_id and depends_on in self._subtasks
        ]

    async def get_subtask(self, subtask_id: int) -> SubtaskRead:
        record = self._subtasks.get(subtask_id)
        if record is None:
            raise NotFoundError(f"subtask {subtask_id} not found")
        return self._to_subtask_read(record)

    async def list_subtasks(
        self,
        *,
        task_id: int,
        batch_id: str | None = None,
        statuses: list[TaskStatus] | None = None,
    ) -> list[SubtaskRead]:
        allowed = {status.value for status in statuses} if statuses else None
        records = [
            record
            for record in self._subtasks.values()
            if record.task_id == task_id
            and (batch_id is None or record.batch_id == batch_id)
            and (allowed is None or record.status in allowed)
        ]
        records.sort(key=lambda record: (record.batch_id, record.sequence_number, record.id))
        return [self._to_subtask_read(record) for record in records]

    async def update_subtask(
        self,
        subtask_id: int,
        *,
        status: TaskStatus,
        started_at: str | None = None,
        completed_at: str | None = None,
    ) -> SubtaskRead:
        record = self._subtasks.get(subtask_id)
        if record is None:
            raise NotFoundError(f"subtask {subtask_id} not found")
        record.status = status.value
        if started_at is not None:
            record.started_at = started_at
        if completed_at is not None:
            record.completed_at = completed_at
        self._persist_state()
        return self._to_subtask_read(record)

    # Workflow executions

    async def create_execution(
        self,
        *,
        task_id: int,
        current_role: str,
        current_step_id: str | None,
        execution_mode: ExecutionMode,
        total_steps: int,
    ) -> WorkflowExecutionRead:
        if task_id not in self._tasks:
            raise NotFoundError(f"task {task_id} not found")
        execution_id = f"exec-{self._execution_seq}"
        self._execution_seq += 1
        record = _ExecutionRecord(
            id=execution_id,
            task_id=task_id,
            current_role=current_role,
            current_step_id=current_step_id,
            execution_mode=execution_mode.value,
            steps_completed=0,
            total_steps=total_steps,
            created_at=self._utc_now(),
        )
        self._executions[execution_id] = record
        self._persist_state()
        return self._to_execution_read(record)

    async def get_execution(self, execution_id: str) -> WorkflowExecutionRead:
        record = self._executions.get(execution_id)
        if record is None:
            raise NotFoundError(f"workflow execution '{execution_id}' not found")
        return self._to_execution_read(record)

    async def list_executions(self, *, active_only: bool = False, task_id: int | None = None) -> list[WorkflowExecutionRead]:
        return [
            self._to_execution_read(record)
            for record in self._executions.values()
            if (not active_only or record.completed_at is None) and (task_id is None or record.task_id == task_id)
        ]

    async def update_execution(
        self,
        execution_id: str,
        *,
        current_role: str | None = None,
        current_step_id: str | None = None,
        steps_completed: int | None = None,
        total_steps: int | None = None,
        completed: bool = False,
    ) -> WorkflowExecutionRead:
        record = self._executions.get(execution_id)
        if record is None:
            raise NotFoundError(f"workflow execution '{execution_id}' not found")
        if current_role is not None:
            record.current_role = current_role
        if current_step_id is not None:
            record.current_step_id = current_step_id
        if total_steps is not None:
            record.total_steps = total_steps
        if steps_completed is not None:
            record.steps_completed = steps_completed
        if completed:
            record.completed_at = self._utc_now()
            record.steps_completed = max(record.steps_completed, record.total_steps)
        self._persist_state()
        return self._to_execution_read(record)

    # Persistence

    def _state_attributes(self) -> dict[str, Any]:
        return {
            "_roles": self._roles,
            "_steps": self._steps,
            "_step_actions": self._step_actions,
            "_tasks": self._tasks,
            "_descriptions": self._descriptions,
            "_delegations": self._delegations,
            "_transitions": self._transitions,
            "_completion_reports": self._completion_reports,
            "_step_progress": self._step_progress,
            "_subtasks": self._subtasks,
            "_subtask_dependencies": self._subtask_dependencies,
            "_executions": self._executions,
            "_step_action_seq": self._step_action_seq,
            "_task_seq": self._task_seq,
            "_delegation_seq": self._delegation_seq,
            "_transition_seq": self._transition_seq,
            "_completion_report_seq": self._completion_report_seq,
            "_step_progress_seq": self._step_progress_seq,
            "_subtask_seq": self._subtask_seq,
            "_execution_seq": self._execution_seq,
        }

    def _persist_state(self) -> None:
        if self._state_file is None or self._atomic_depth > 0:
            return

        snapshot = self._snapshot()
        self._state_file.parent.mkdir(parents=True, exist_ok=True)
        tmp_file = self._state_file.with_name(f"{self._state_file.name}.tmp")
        tmp_file.write_text(json.dumps(snapshot, ensure_ascii=True, sort_keys=True), encoding="utf-8")
        tmp_file.replace(self._state_file)

    def _load_state(self) -> None:
        if self._state_file is None or not self._state_file.exists():
            return

        raw = self._state_file.read_text(encoding="utf-8")
        data = json.loads(raw)
        self._roles = {str(key): _RoleRecord(**value) for key, value in data.get("roles", {}).items()}
        self._steps = {str(key): WorkflowStepRead(**value) for key, value in data.get("steps", {}).items()}
        self._step_actions = {
            int(key): _StepActionRecord(**value)
            for key, value in data.get("step_actions", {}).items()
        }
        self._tasks = {int(key): _TaskRecord(**value) for key, value in data.get("tasks", {}).items()}
        self._descriptions = {
            int(key): _TaskDescriptionRecord(**value)
            for key, value in data.get("descriptions", {}).items()
        }
        self._delegations = [_DelegationRecord(**value) for value in data.get("delegations", [])]
        self._transitions = [_TransitionRecord(**value) for value in data.get("transitions", [])]
        self._completion_reports = [
            _CompletionReportRecord(**value) for value in data.get("completion_reports", [])
        ]
        self._step_progress = [_StepProgressRecord(**value) for value in data.get("step_progress", [])]
        self._subtasks = {int(key): _SubtaskRecord(**value) for key, value in data.get("subtasks", {}).items()}
        self._subtask_dependencies = [
            (int(edge[0]), int(edge[1])) for edge in data.get("subtask_dependencies", [])
        ]
        self._executions = {str(key): _ExecutionRecord(**value) for key, value in data.get("executions", {}).items()}

        sequences = data.get("sequences", {})
        self._step_action_seq = int(sequences.get("step_action_seq", 1))
        self._task_seq = int(sequences.get("task_seq", 1))
        self._delegation_seq = int(sequences.get("delegation_seq", 1))
        self._transition_seq = int(sequences.get("transition_seq", 1))
        self._completion_report_seq = int(sequences.get("completion_report_seq", 1))
        self._step_progress_seq = int(sequences.get("step_progress_seq", 1))
        self._subtask_seq = int(sequences.get("subtask_seq", 1))
        self._execution_seq = int(sequences.get("execution_seq", 1))

    def _snapshot(self) -> dict[str, Any]:
        return {
            "roles": {key: value.__dict__ for key, value in self._roles.items()},
            "steps": {key: value.model_dump(mode="json") for key, value in self._steps.items()},
            "step_actions": {str(key): value.__dict__ for key, value in self._step_actions.items()},
            "tasks": {str(key): value.__dict__ for key, value in self._tasks.items()},
            "descriptions": {str(key): value.__dict__ for key, value in self._descriptions.items()},
            "delegations": [value.__dict__ for value in self._delegations],
            "transitions": [value.__dict__ for value in self._transitions],
            "completion_reports": [value.__dict__ for value in self._completion_reports],
            "step_progress": [value.__dict__ for value in self._step_progress],
            "subtasks": {str(key): value.__dict__ for key, value in self._subtasks.items()},
            "subtask_dependencies": [list(edge) for edge in self._subtask_dependencies],
            "executions": {key: value.__dict__ for key, value in self._executions.items()},
            "sequences": {
                "step_action_seq": self._step_action_seq,
                "task_seq": self._task_seq,
                "delegation_seq": self._delegation_seq,
                "transition_seq": self._transition_seq,
                "completion_report_seq": self._completion_report_seq,
                "step_progress_seq": self._step_progress_seq,
                "subtask_seq": self._subtask_seq,
                "execution_seq": self._execution_seq,
            },
        }

    @staticmethod
    def _to_role_read(record: _RoleRecord) -> WorkflowRoleRead:
        return WorkflowRoleRead(
            name=record.name,
            display_name=record.display_name,
            description=record.description,
            sequence_number=record.sequence_number,
        )

    @staticmethod
    def _to_step_action_read(record: _StepActionRecord) -> StepActionRead:
        return StepActionRead(
            id=record.id,
            step_id=record.step_id,
            name=record.name,
            action_type=record.action_type,
            action_data=copy.deepcopy(record.action_data),
            sequence_order=record.sequence_order,
        )

    @staticmethod
    def _to_task_read(record: _TaskRecord) -> TaskRead:
        return TaskRead(
            id=record.id,
            name=record.name,
            status=record.status,
            current_role=record.current_role,
            priority=record.priority,
            dependencies=list(record.dependencies),
            redelegation_count=record.redelegation_count,
            git_branch=record.git_branch,
            created_at=record.created_at,
            updated_at=record.updated_at,
            completion_date=record.completion_date,
        )

    @staticmethod
    def _to_step_progress_read(record: _StepProgressRecord) -> StepProgressRead:
        return StepProgressRead(
            id=record.id,
            task_id=record.task_id,
            step_id=record.step_id,
            role_name=record.role_name,
            status=record.status,
            created_at=record.created_at,
        )

    def _to_subtask_read(self, record: _SubtaskRecord) -> SubtaskRead:
        dependency_names = [
            self._subtasks[depends_on].name
            for dependent, depends_on in self._subtask_dependencies
            if dependent == record.id and depends_on in self._subtasks
        ]
        return SubtaskRead(
            id=record.id,
            task_id=record.task_id,
            name=record.name,
            description=record.description,
            sequence_number=record.sequence_number,
            batch_id=record.batch_id,
            batch_title=record.batch_title,
            status=record.status,
            dependencies=dependency_names,
            started_at=record.started_at,
            completed_at=record.completed_at,
        )

    @staticmethod
    def _to_execution_read(record: _ExecutionRecord) -> WorkflowExecutionRead:
        progress = 0
        if record.total_steps > 0:
            progress = min(100, round(record.steps_completed / record.total_steps * 100))
        elif record.completed_at is not None:
            progress = 100
        return WorkflowExecutionRead(
            id=record.id,
            task_id=record.task_id,
            current_role=record.current_role,
            current_step_id=record.current_step_id,
            execution_mode=record.execution_mode,
            steps_completed=record.steps_completed,
            total_steps=record.total_steps,
            progress_percentage=progress,
            created_at=record.created_at,
            completed_at=record.completed_at,
        )

    @staticmethod
    def _utc_now() -> str:
        return datetime.now(timezone.utc).isoformat()
