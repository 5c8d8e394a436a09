from __future__ import annotations

import logging
import re
from typing import Any

from taskflow_api.required_inputs import RequiredInputExtractor
from taskflow_api.schemas import ActionGuidanceResult, ActionType, WorkflowAction, WorkflowGuidance, WorkflowStepRead
from taskflow_api.store import InMemoryStore

logger = logging.getLogger(__name__)

FALLBACK_GUIDANCE = "Failed to generate action guidance"

GENERIC_ACTION_TEMPLATES: dict[ActionType, str] = {
    ActionType.SERVICE_CALL: (
        "**Execute Service Operation**\n"
        "- Validate parameters against the operation contract\n"
        "- Call the service with the required inputs\n"
        "- Handle responses and errors explicitly"
    ),
    ActionType.VALIDATION: (
        "**Perform Validation Check**\n"
        "- Validate against the specified criteria\n"
        "- Record results with evidence\n"
        "- Follow the failure actions when a check fails"
    ),
    ActionType.ANALYSIS: (
        "**Conduct Evidence-Based Analysis**\n"
        "- Gather evidence from the codebase and requirements\n"
        "- Apply the step methodology\n"
        "- Report data-driven conclusions"
    ),
    ActionType.DECISION: (
        "**Make Strategic Decision**\n"
        "- Evaluate options against the decision criteria\n"
        "- State the rationale for the chosen option"
    ),
    ActionType.FILE_OPERATION: (
        "**Execute File Operation**\n"
        "- Verify paths before writing\n"
        "- Validate the result of the operation"
    ),
    ActionType.COMMAND: (
        "**Execute System Command**\n"
        "- Check parameters and working directory\n"
        "- Capture output and exit code"
    ),
    ActionType.DELEGATION: (
        "**Execute Role Delegation**\n"
        "- Prepare the handoff context for the receiving role\n"
        "- Delegate through the workflow operations"
    ),
    ActionType.REPORTING: (
        "**Report Progress**\n"
        "- Summarize completed work and open items\n"
        "- Reference the evidence collected"
    ),
}

ROLE_CONTEXTS: dict[str, tuple[str, ...]] = {
    "boomerang": (
        "Coordinate task intake and delivery",
        "Verify the current state before delegating",
        "Keep requirements and acceptance criteria explicit",
    ),
    "researcher": (
        "Investigate with credible and recent sources",
        "Close the knowledge gaps raised during analysis",
        "Document methodology and limitations",
    ),
    "architect": (
        "Produce an implementation plan with quality constraints",
        "Record design decisions and trade-offs",
        "Split the work into ordered subtask batches",
    ),
    "senior-developer": (
        "Implement subtasks in dependency order",
        "Cover changes with unit and integration tests",
        "Handle errors and log failures",
    ),
    "code-review": (
        "Review the implementation against acceptance criteria",
        "Check test coverage and conventions",
        "Document findings before approval",
    ),
}

_TEMPLATE_RE = re.compile(r"\{\{\s*([A-Za-z_][\w.]*)\s*\}\}")


class ActionGuidanceGenerator:
    def __init__(self, store: InMemoryStore, *, extractor: RequiredInputExtractor | None = None) -> None:
        self._store = store
        self._extractor = extractor or RequiredInputExtractor()

    async def generate(self, guidance: WorkflowGuidance, step_id: str | None) -> ActionGuidanceResult:
        try:
            action = guidance.next_actions[0] if guidance.next_actions else None
            if action is None:
                return ActionGuidanceResult(
                    success=True,
                    guidance=self._fallback_guidance(guidance),
                    action_type="fallback",
                )

            step = await self._step_for(guidance, step_id)
            values = {
                "task_id": guidance.task_id,
                "role": guidance.current_role.name,
                "step_id": step.id if step else step_id,
                "project_path": guidance.project_path,
                "action": action.model_dump(mode="json"),
            }
            sections = [
                self._action_template(action, step, values),
                _role_context(guidance.current_role.name),
                _required_inputs_section(self._extractor.extract_for_actions([action])),
                _project_context(guidance.project_path),
            ]
            return ActionGuidanceResult(
                success=True,
                guidance="\n\n".join(section for section in sections if section),
                action_type=action.action_type.value,
            )
        except Exception as exc:
            logger.warning("action guidance generation failed for task %s", guidance.task_id, exc_info=True)
            return ActionGuidanceResult(success=False, error=str(exc) or exc.__class__.__name__)

    async def _step_for(self, guidance: WorkflowGuidance, step_id: str | None) -> WorkflowStepRead | None:
        if step_id and (guidance.current_step is None or guidance.current_step.id != step_id):
            return await self._store.get_step(step_id)
        return guidance.current_step

    def _action_template(
        self,
        action: WorkflowAction,
        step: WorkflowStepRead | None,
        values: dict[str, Any],
    ) -> str:
        sections = [f"**Execute {action.action_type.value} Action: {action.name}**"]

        if step is not None and step.behavioral_context is not None:
            context = step.behavioral_context
            if context.approach:
                sections.append(f"**Approach:** {context.approach}")
            if context.principles:
                sections.append("**Principles:**\n" + _bullets(context.principles))
            if context.methodology:
                sections.append(f"**Methodology:** {context.methodology}")

        if step is not None and step.approach_guidance is not None:
            if step.approach_guidance.step_by_step:
                numbered = "\n".join(
                    f"{index}. {item}" for index, item in enumerate(step.approach_guidance.step_by_step, start=1)
                )
                sections.append(f"**Step-by-Step Approach:**\n{numbered}")
            if step.approach_guidance.protocol:
                sections.append("**Protocol:**\n" + _bullets(step.approach_guidance.protocol))

        if step is not None and step.quality_checklist is not None and step.quality_checklist.items:
            sections.append("**Quality Checklist:**\n" + _bullets(step.quality_checklist.items))

        data = action.action_data or {}
        for key, label in (
            ("required_context", "Required Context"),
            ("expected_outcome", "Expected Outcome"),
            ("validation_criteria", "Validation Criteria"),
        ):
            value = data.get(key)
            if isinstance(value, str) and value:
                sections.append(f"**{label}:** {interpolate(value, values)}")

        if len(sections) == 1:
            return GENERIC_ACTION_TEMPLATES.get(
                action.action_type,
                f"Execute {action.action_type.value} according to specifications.",
            )
        return "\n\n".join(sections)

    @staticmethod
    def _fallback_guidance(guidance: WorkflowGuidance) -> str:
        sections = [f"**Current Role: {guidance.current_role.name}**"]
        step = guidance.current_step
        if step is not None:
            sections.append(f"**Current Step: {step.name}**")
            if step.description:
                sections.append(f"**Description:** {step.description}")
        sections.append(
            "**Status:** No specific actions available. Check the workflow state or transition to the next role."
        )
        sections.append(_role_context(guidance.current_role.name))
        return "\n\n".join(sections)


def interpolate(template: str, values: dict[str, Any]) -> str:
    """Replace ``{{dotted.path}}`` markers with values; unknown markers stay."""

    def replace(match: re.Match[str]) -> str:
        current: Any = values
        for key in match.group(1).split("."):
            if isinstance(current, dict) and key in current:
                current = current[key]
            else:
                return match.group(0)
        return match.group(0) if current is None else str(current)

    return _TEMPLATE_RE.sub(replace, template)


def _bullets(items: list[str]) -> str:
    return "\n".join(f"- {item}" for item in items)


def _role_context(role_name: str) -> str:
    items = ROLE_CONTEXTS.get(role_name)
    if items is None:
        return f"**{role_name} Role:**\nExecute tasks according to role responsibilities and quality standards."
    return f"**{role_name} Role:**\n" + _bullets(list(items))


def _required_inputs_section(required_inputs: list[str]) -> str:
    if not required_inputs:
        return ""
    return "**Required Inputs:**\n" + _bullets(required_inputs)


def _project_context(project_path: str | None) -> str:
    lines = [
        "- Follow the conventions already used in the codebase",
        "- Use the project's own test framework and coverage targets",
    ]
    if project_path:
        lines.insert(0, f"- Project path: {project_path}")
    return "**Project Context:**\n" + "\n".join(lines)
