"""Assembly of the five envelope shapes returned to the calling agent.

The guidance envelope fans out to the required-input extractor, progress
calculator, validation context builder and action guidance generator
concurrently. A failed sub-result is replaced by an explicit empty default so
the envelope always carries every field.
"""

from __future__ import annotations

import asyncio
import logging
from datetime import datetime, timezone
from typing import Any

from taskflow_api.action_guidance import FALLBACK_GUIDANCE, ActionGuidanceGenerator
from taskflow_api.config import DEFAULT_ENVELOPE_VERSION
from taskflow_api.guidance import WorkflowGuidanceResolver
from taskflow_api.progress import ProgressCalculator
from taskflow_api.required_inputs import ESSENTIAL_INPUTS, RequiredInputExtractor
from taskflow_api.schemas import (
    ActionGuidanceResult,
    ActiveExecutionsResult,
    BootstrapEnvelope,
    BootstrapMetadata,
    BootstrapResult,
    EnvelopeResponse,
    ExecutionEnvelope,
    ExecutionMetadata,
    GuidanceEnvelope,
    GuidanceMetadata,
    ProgressMetrics,
    RoleTransitionResult,
    TransitionEnvelope,
    TransitionMetadata,
    ValidationContext,
    WorkflowExecutionEnvelope,
    WorkflowExecutionMetadata,
    WorkflowExecutionRead,
    WorkflowGuidance,
)
from taskflow_api.security import redact_payload
from taskflow_api.validation_context import ValidationContextBuilder

logger = logging.getLogger(__name__)

NO_GUIDANCE = "No guidance available"

GET_ACTIVE_EXECUTIONS = "get_active_executions"
GET_EXECUTION = "get_execution"

# Keys of the nested execution that repeat the top-level task reference.
_BOOTSTRAP_DUPLICATE_KEYS = ("task", "task_id")


class EnvelopeBuilder:
    def __init__(
        self,
        *,
        resolver: WorkflowGuidanceResolver,
        extractor: RequiredInputExtractor,
        progress: ProgressCalculator,
        validation: ValidationContextBuilder,
        action_guidance: ActionGuidanceGenerator,
        version: str = DEFAULT_ENVELOPE_VERSION,
    ) -> None:
        self._resolver = resolver
        self._extractor = extractor
        self._progress = progress
        self._validation = validation
        self._action_guidance = action_guidance
        self.version = version

    async def build_guidance(
        self,
        task_id: int,
        *,
        role_name: str | None = None,
        step_id: str | None = None,
        project_path: str | None = None,
    ) -> GuidanceEnvelope:
        guidance = await self._resolver.resolve(
            task_id, role_name=role_name, step_id=step_id, project_path=project_path
        )
        effective_step_id = step_id or (guidance.current_step.id if guidance.current_step else None)
        role = guidance.current_role.name

        inputs, progress, validation, action = await asyncio.gather(
            self._required_inputs(guidance),
            self._progress.calculate(task_id, role, effective_step_id),
            self._validation.build(role, effective_step_id, task_id),
            self._action_guidance.generate(guidance, effective_step_id),
            return_exceptions=True,
        )

        if isinstance(inputs, BaseException):
            logger.warning("required input extraction failed for task %s: %s", task_id, inputs)
            inputs = list(ESSENTIAL_INPUTS)
        if isinstance(progress, BaseException):
            logger.warning("progress enrichment failed for task %s: %s", task_id, progress)
            progress = ProgressMetrics()
        if isinstance(validation, BaseException):
            logger.warning("validation enrichment failed for task %s: %s", task_id, validation)
            validation = ValidationContext()

        return GuidanceEnvelope(
            timestamp=_utc_now(),
            workflow_guidance=guidance,
            required_inputs=inputs,
            action_guidance=_guidance_text(action, task_id),
            progress_metrics=progress,
            validation_context=validation,
            metadata=GuidanceMetadata(
                task_id=task_id,
                step_id=effective_step_id,
                role_name=role,
                step_name=guidance.current_step.name if guidance.current_step else "Unknown",
                version=self.version,
            ),
        )

    def build_execution(
        self,
        execution_result: dict[str, Any],
        *,
        task_id: int,
        step_id: str | None = None,
    ) -> ExecutionEnvelope:
        execution_id = execution_result.get("id")
        return ExecutionEnvelope(
            timestamp=_utc_now(),
            execution_result=redact_payload(execution_result),
            metadata=ExecutionMetadata(
                task_id=task_id,
                step_id=step_id,
                execution_id=str(execution_id) if execution_id is not None else None,
                status=str(execution_result.get("status") or "unknown"),
                version=self.version,
            ),
        )

    def build_transition(self, result: RoleTransitionResult) -> TransitionEnvelope:
        return TransitionEnvelope(
            timestamp=_utc_now(),
            transition_result=result,
            metadata=TransitionMetadata(
                task_id=result.task.id,
                from_role=result.transition.from_role,
                to_role=result.transition.to_role,
                transition_id=result.transition.id,
                version=self.version,
            ),
        )

    def build_bootstrap(self, result: BootstrapResult, *, project_path: str) -> BootstrapEnvelope:
        cleaned = result.model_dump(mode="json")
        execution = cleaned.get("workflow_execution") or {}
        cleaned["workflow_execution"] = {
            key: value for key, value in execution.items() if key not in _BOOTSTRAP_DUPLICATE_KEYS
        }
        return BootstrapEnvelope(
            timestamp=_utc_now(),
            bootstrap_result=cleaned,
            metadata=BootstrapMetadata(
                task_id=result.task.id,
                execution_id=result.workflow_execution.id,
                project_path=project_path,
                initial_role=result.context.initial_role,
                version=self.version,
            ),
        )

    def build_workflow_execution(
        self,
        operation: str,
        result: ActiveExecutionsResult | WorkflowExecutionRead,
    ) -> WorkflowExecutionEnvelope:
        task_id: int | None = None

        if operation == GET_ACTIVE_EXECUTIONS and isinstance(result, ActiveExecutionsResult):
            executions = result.executions
            execution_data: dict[str, Any] = {
                "execution_ids": [execution.id for execution in executions],
                "current_roles": [execution.current_role for execution in executions],
                "status": "active" if executions else "no_active_executions",
                "executions_summary": result.summary.model_dump(mode="json"),
                "progress": {"total_active_executions": len(executions)},
            }
        elif operation == GET_EXECUTION and isinstance(result, WorkflowExecutionRead):
            task_id = result.task_id
            execution_data = {
                "execution_id": result.id,
                "current_role": result.current_role,
                "status": "completed" if result.completed_at else "active",
                "execution": result.model_dump(mode="json"),
                "progress": {
                    "current_step_progress": result.progress_percentage,
                    "steps_completed": result.steps_completed,
                    "total_steps": result.total_steps,
                    "execution_mode": result.execution_mode.value,
                },
            }
        elif isinstance(result, WorkflowExecutionRead):
            task_id = result.task_id
            execution_data = {
                "execution_id": result.id,
                "current_role": result.current_role,
                "status": "completed" if result.completed_at else "active",
                "active_steps": [result.current_step_id] if result.current_step_id else [],
                "progress": ProgressMetrics().model_dump(
                    include={"current_step_progress", "role_progress", "overall_progress", "completed_steps", "total_steps"}
                ),
            }
        else:
            raise TypeError(f"unsupported result for workflow execution operation '{operation}'")

        return WorkflowExecutionEnvelope(
            timestamp=_utc_now(),
            execution_data=execution_data,
            metadata=WorkflowExecutionMetadata(
                task_id=task_id,
                execution_id=execution_data.get("execution_id"),
                current_role=execution_data.get("current_role"),
                operation=operation,
                version=self.version,
            ),
        )

    async def _required_inputs(self, guidance: WorkflowGuidance) -> list[str]:
        return self._extractor.extract_for_actions(guidance.next_actions)


def wrap_envelope(envelope: Any, *, version: str = DEFAULT_ENVELOPE_VERSION) -> EnvelopeResponse:
    return EnvelopeResponse(version=version, envelope=envelope, success=True, timestamp=_utc_now())


def _guidance_text(result: ActionGuidanceResult | BaseException, task_id: int) -> str:
    if isinstance(result, BaseException):
        logger.warning("action guidance failed for task %s: %s", task_id, result)
        return FALLBACK_GUIDANCE
    if not result.success:
        logger.warning("action guidance unavailable for task %s: %s", task_id, result.error)
        return FALLBACK_GUIDANCE
    return result.guidance or NO_GUIDANCE


def _utc_now() -> str:
    return datetime.now(timezone.utc).isoformat()
