from __future__ import annotations

import logging

from taskflow_api.schemas import (
    ActionType,
    AntiPatternRule,
    ApproachGuidance,
    BehavioralContext,
    ContextValidation,
    PatternEnforcement,
    QualityChecklist,
    StepActionCreate,
    WorkflowRoleCreate,
    WorkflowStepCreate,
)
from taskflow_api.store import InMemoryStore

logger = logging.getLogger(__name__)

DEFAULT_ROLES: tuple[WorkflowRoleCreate, ...] = (
    WorkflowRoleCreate(
        name="boomerang",
        display_name="Boomerang",
        description="Coordinates intake, delegation and final delivery",
        sequence_number=1,
    ),
    WorkflowRoleCreate(
        name="researcher",
        display_name="Researcher",
        description="Investigates open technical questions",
        sequence_number=2,
    ),
    WorkflowRoleCreate(
        name="architect",
        display_name="Architect",
        description="Designs the implementation plan and subtask batches",
        sequence_number=3,
    ),
    WorkflowRoleCreate(
        name="senior-developer",
        display_name="Senior Developer",
        description="Implements subtasks batch by batch",
        sequence_number=4,
    ),
    WorkflowRoleCreate(
        name="code-review",
        display_name="Code Review",
        description="Reviews the implementation against acceptance criteria",
        sequence_number=5,
    ),
)

DEFAULT_STEPS: tuple[WorkflowStepCreate, ...] = (
    WorkflowStepCreate(
        id="boomerang-intake",
        role_name="boomerang",
        name="Task Intake",
        description="Capture requirements and create the task record",
        sequence_number=1,
        estimated_time="10 minutes",
        behavioral_context=BehavioralContext(
            principles=["Verify the current state before planning", "Make requirements measurable"],
            approach="Functional verification first, then requirements capture",
        ),
        approach_guidance=ApproachGuidance(
            step_by_step=[
                "Read the request and the relevant code",
                "Write acceptance criteria",
                "Create the task with its description and analysis",
            ],
        ),
        quality_checklist=QualityChecklist(
            items=["Acceptance criteria are specific", "Business value is stated"],
            quality_gates=["Task record created with description"],
        ),
        actions=[
            StepActionCreate(
                name="create_task",
                action_type=ActionType.SERVICE_CALL,
                action_data={"service_name": "TaskOperations", "operation": "create"},
                sequence_order=1,
            ),
        ],
    ),
    WorkflowStepCreate(
        id="boomerang-delegate",
        role_name="boomerang",
        name="Delegate To Architect",
        description="Hand the analysed task to the architect",
        sequence_number=2,
        actions=[
            StepActionCreate(
                name="delegate_to_architect",
                action_type=ActionType.SERVICE_CALL,
                action_data={
                    "service_name": "WorkflowOperations",
                    "operation": "delegate",
                    "message": "Plan task {{taskName}}",
                },
                sequence_order=1,
            ),
        ],
    ),
    WorkflowStepCreate(
        id="researcher-investigation",
        role_name="researcher",
        name="Investigation",
        description="Research the open questions raised during intake",
        sequence_number=1,
        behavioral_context=BehavioralContext(
            principles=["Cite sources", "Separate facts from assumptions"],
            methodology="Question, evidence, conclusion",
        ),
        quality_checklist=QualityChecklist(items=["Every conclusion has evidence"]),
        actions=[
            StepActionCreate(
                name="investigate",
                action_type=ActionType.ANALYSIS,
                action_data={"expected_outcome": "Research findings for task {{task_id}}"},
                sequence_order=1,
            ),
            StepActionCreate(
                name="record_research",
                action_type=ActionType.SERVICE_CALL,
                action_data={"service_name": "ResearchOperations", "operation": "create_research"},
                sequence_order=2,
            ),
        ],
    ),
    WorkflowStepCreate(
        id="architect-planning",
        role_name="architect",
        name="Implementation Planning",
        description="Create the implementation plan and subtask batches",
        sequence_number=1,
        behavioral_context=BehavioralContext(
            principles=["Prefer the simplest design that meets the requirements"],
            methodology="Plan, batch, sequence",
        ),
        approach_guidance=ApproachGuidance(
            step_by_step=["Write the plan", "Split it into batches", "Declare subtask dependencies"],
            protocol=["Every subtask names its dependencies"],
        ),
        quality_checklist=QualityChecklist(
            items=["Batches are independently testable"],
            quality_gates=["Dependency graph is acyclic"],
        ),
        pattern_enforcement=PatternEnforcement(
            required_patterns=["Layered architecture"],
            anti_patterns=[
                AntiPatternRule(
                    name="big-bang-batch",
                    description="One batch containing the whole implementation",
                    indicators=["Single batch with many subtasks"],
                    consequences=["No incremental review"],
                    remediation=["Split the work into ordered batches"],
                ),
            ],
        ),
        actions=[
            StepActionCreate(
                name="create_plan",
                action_type=ActionType.SERVICE_CALL,
                action_data={"service_name": "PlanningOperations", "operation": "create_plan"},
                sequence_order=1,
            ),
            StepActionCreate(
                name="create_subtasks",
                action_type=ActionType.SERVICE_CALL,
                action_data={"service_name": "PlanningOperations", "operation": "create_subtasks"},
                sequence_order=2,
            ),
            StepActionCreate(
                name="validate_plan",
                action_type=ActionType.VALIDATION,
                action_data={
                    "criteria": ["Every acceptance criterion maps to a subtask"],
                    "expected_outcome": "Plan covers all acceptance criteria",
                },
                sequence_order=3,
            ),
        ],
    ),
    WorkflowStepCreate(
        id="senior-developer-implementation",
        role_name="senior-developer",
        name="Subtask Implementation",
        description="Implement the next available subtask",
        sequence_number=1,
        behavioral_context=BehavioralContext(
            principles=["Follow SOLID principles", "Test every change"],
        ),
        approach_guidance=ApproachGuidance(
            step_by_step=["Fetch the next subtask", "Implement it with tests", "Mark it completed"],
        ),
        quality_checklist=QualityChecklist(
            items=["Tests cover the change", "No unrelated edits"],
            quality_gates=["Test suite passes"],
        ),
        context_validation=ContextValidation(anti_pattern_checks=["hardcoded-secrets"]),
        actions=[
            StepActionCreate(
                name="get_next_subtask",
                action_type=ActionType.SERVICE_CALL,
                action_data={"service_name": "IndividualSubtaskOperations", "operation": "get_next_subtask"},
                sequence_order=1,
            ),
            StepActionCreate(
                name="run_tests",
                action_type=ActionType.COMMAND,
                action_data={"expected_outcome": "All tests pass in {{project_path}}"},
                sequence_order=2,
            ),
        ],
    ),
    WorkflowStepCreate(
        id="code-review-review",
        role_name="code-review",
        name="Implementation Review",
        description="Review the implementation and record the verdict",
        sequence_number=1,
        quality_checklist=QualityChecklist(items=["Acceptance criteria verified with evidence"]),
        actions=[
            StepActionCreate(
                name="verify_acceptance_criteria",
                action_type=ActionType.VALIDATION,
                action_data={
                    "criteria": ["Each acceptance criterion has evidence"],
                    "failure_actions": ["Escalate to senior-developer with findings"],
                },
                sequence_order=1,
            ),
            StepActionCreate(
                name="create_review",
                action_type=ActionType.SERVICE_CALL,
                action_data={"service_name": "ReviewOperations", "operation": "create_review"},
                sequence_order=2,
            ),
        ],
    ),
)


async def seed_defaults(store: InMemoryStore) -> bool:
    """Load the default roles and steps into an empty store."""
    if await store.list_roles():
        return False
    async with store.atomic():
        for role in DEFAULT_ROLES:
            await store.create_role(role)
        for step in DEFAULT_STEPS:
            await store.create_step(step)
    logger.info("seeded %s workflow roles and %s steps", len(DEFAULT_ROLES), len(DEFAULT_STEPS))
    return True
