from __future__ import annotations

import logging

from taskflow_api.schemas import (
    RuleEnforcement,
    StepProgressStatus,
    WorkflowAction,
    WorkflowGuidance,
    WorkflowStepRead,
)
from taskflow_api.security import redact_payload
from taskflow_api.store import InMemoryStore

logger = logging.getLogger(__name__)


class WorkflowGuidanceResolver:
    def __init__(self, store: InMemoryStore) -> None:
        self._store = store

    async def resolve(
        self,
        task_id: int,
        *,
        role_name: str | None = None,
        step_id: str | None = None,
        project_path: str | None = None,
    ) -> WorkflowGuidance:
        task = await self._store.get_task(task_id)
        role = await self._store.get_role(role_name or task.current_role)
        step = await self._current_step(task_id, role.name, step_id)

        next_actions: list[WorkflowAction] = []
        if step is not None:
            for action in await self._store.list_step_actions(step_id=step.id):
                next_actions.append(
                    WorkflowAction(
                        name=action.name,
                        action_type=action.action_type,
                        action_data=redact_payload(action.action_data),
                        sequence_order=action.sequence_order,
                    )
                )

        return WorkflowGuidance(
            task_id=task_id,
            current_role=role,
            current_step=step,
            next_actions=next_actions,
            quality_reminders=_quality_reminders(step),
            rule_enforcement=_rule_enforcement(step),
            project_path=project_path,
        )

    async def _current_step(self, task_id: int, role_name: str, step_id: str | None) -> WorkflowStepRead | None:
        if step_id:
            return await self._store.get_step(step_id)

        steps = await self._store.list_steps(role_name=role_name)
        if not steps:
            logger.warning("role %s has no configured steps", role_name)
            return None

        done = {
            entry.step_id
            for entry in await self._store.list_step_progress(task_id=task_id)
            if entry.status in (StepProgressStatus.COMPLETED, StepProgressStatus.SKIPPED)
        }
        for step in steps:
            if step.id not in done:
                return step
        return steps[0]


def _quality_reminders(step: WorkflowStepRead | None) -> list[str]:
    if step is None or step.quality_checklist is None:
        return []
    reminders: list[str] = []
    for item in [*step.quality_checklist.items, *step.quality_checklist.quality_gates]:
        if item not in reminders:
            reminders.append(item)
    return reminders


def _rule_enforcement(step: WorkflowStepRead | None) -> RuleEnforcement:
    if step is None:
        return RuleEnforcement()
    required: list[str] = []
    anti_patterns: list[str] = []
    if step.pattern_enforcement is not None:
        required = list(step.pattern_enforcement.required_patterns)
        anti_patterns = [rule.name for rule in step.pattern_enforcement.anti_patterns]
    if step.context_validation is not None:
        anti_patterns.extend(
            check for check in step.context_validation.anti_pattern_checks if check not in anti_patterns
        )
    return RuleEnforcement(required_patterns=required, anti_patterns=anti_patterns)
