from __future__ import annotations

from enum import Enum
from typing import Annotated, Any, Literal, Union

from pydantic import BaseModel, Field, model_validator


class TaskStatus(str, Enum):
    NOT_STARTED = "not-started"
    IN_PROGRESS = "in-progress"
    NEEDS_REVIEW = "needs-review"
    COMPLETED = "completed"
    NEEDS_CHANGES = "needs-changes"
    PAUSED = "paused"
    CANCELLED = "cancelled"


TERMINAL_TASK_STATUSES = (TaskStatus.COMPLETED, TaskStatus.CANCELLED)


class Priority(str, Enum):
    LOW = "Low"
    MEDIUM = "Medium"
    HIGH = "High"
    CRITICAL = "Critical"


class ActionType(str, Enum):
    SERVICE_CALL = "service-call"
    VALIDATION = "validation"
    ANALYSIS = "analysis"
    DECISION = "decision"
    FILE_OPERATION = "file-operation"
    COMMAND = "command"
    DELEGATION = "delegation"
    REPORTING = "reporting"


class StepProgressStatus(str, Enum):
    NOT_STARTED = "not-started"
    IN_PROGRESS = "in-progress"
    COMPLETED = "completed"
    FAILED = "failed"
    SKIPPED = "skipped"


class ExecutionMode(str, Enum):
    GUIDED = "GUIDED"
    AUTOMATED = "AUTOMATED"
    HYBRID = "HYBRID"


class CompletionPolicy(str, Enum):
    COORDINATOR_RESET = "coordinator-reset"
    HONOR_CALLER = "honor-caller"


class EscalationSeverity(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


class VerificationStatus(str, Enum):
    PASSED = "passed"
    FAILED = "failed"
    PARTIAL = "partial"
    NOT_TESTED = "not-tested"


class RoleOperation(str, Enum):
    DELEGATE = "delegate"
    COMPLETE = "complete"
    ESCALATE = "escalate"
    TRANSITION = "transition"


# Workflow configuration


class WorkflowRoleCreate(BaseModel):
    name: str = Field(min_length=1)
    display_name: str = ""
    description: str = ""
    sequence_number: int = 0

    @model_validator(mode="after")
    def normalize_fields(self) -> "WorkflowRoleCreate":
        self.name = self.name.strip()
        if not self.display_name:
            self.display_name = self.name.replace("-", " ").title()
        return self


class WorkflowRoleRead(BaseModel):
    name: str
    display_name: str
    description: str = ""
    sequence_number: int = 0


class BehavioralContext(BaseModel):
    principles: list[str] = Field(default_factory=list)
    methodology: str | None = None
    approach: str | None = None


class ApproachGuidance(BaseModel):
    step_by_step: list[str] = Field(default_factory=list)
    protocol: list[str] = Field(default_factory=list)


class QualityChecklist(BaseModel):
    items: list[str] = Field(default_factory=list)
    quality_gates: list[str] = Field(default_factory=list)


class AntiPatternRule(BaseModel):
    name: str = Field(min_length=1)
    description: str = "Anti-pattern to avoid"
    indicators: list[str] = Field(default_factory=list)
    consequences: list[str] = Field(default_factory=list)
    remediation: list[str] = Field(default_factory=list)


class PatternEnforcement(BaseModel):
    required_patterns: list[str] = Field(default_factory=list)
    anti_patterns: list[AntiPatternRule] = Field(default_factory=list)


class ContextValidation(BaseModel):
    anti_pattern_checks: list[str] = Field(default_factory=list)


class StepActionCreate(BaseModel):
    name: str = Field(min_length=1)
    action_type: ActionType
    action_data: dict[str, Any] = Field(default_factory=dict)
    sequence_order: int = 0


class StepActionRead(BaseModel):
    id: int
    step_id: str
    name: str
    action_type: ActionType
    action_data: dict[str, Any] = Field(default_factory=dict)
    sequence_order: int = 0


class WorkflowStepCreate(BaseModel):
    id: str = Field(min_length=1)
    role_name: str = Field(min_length=1)
    name: str = Field(min_length=1)
    display_name: str = ""
    description: str = ""
    sequence_number: int = 0
    step_type: str = "ACTION"
    estimated_time: str | None = None
    behavioral_context: BehavioralContext | None = None
    approach_guidance: ApproachGuidance | None = None
    quality_checklist: QualityChecklist | None = None
    pattern_enforcement: PatternEnforcement | None = None
    context_validation: ContextValidation | None = None
    actions: list[StepActionCreate] = Field(default_factory=list)


class WorkflowStepRead(BaseModel):
    id: str
    role_name: str
    name: str
    display_name: str = ""
    description: str = ""
    sequence_number: int = 0
    step_type: str = "ACTION"
    estimated_time: str | None = None
    behavioral_context: BehavioralContext | None = None
    approach_guidance: ApproachGuidance | None = None
    quality_checklist: QualityChecklist | None = None
    pattern_enforcement: PatternEnforcement | None = None
    context_validation: ContextValidation | None = None


# Tasks and audit logs


class TaskCreate(BaseModel):
    name: str = Field(min_length=1)
    priority: Priority = Priority.MEDIUM
    dependencies: list[str] = Field(default_factory=list)
    git_branch: str | None = None
    description: str = ""
    business_requirements: str = ""
    technical_requirements: str = ""
    acceptance_criteria: list[str] = Field(default_factory=list)

    @model_validator(mode="after")
    def normalize_fields(self) -> "TaskCreate":
        self.name = self.name.strip()
        self.dependencies = _normalize_string_list(self.dependencies)
        self.acceptance_criteria = _normalize_string_list(self.acceptance_criteria)
        return self


class TaskRead(BaseModel):
    id: int
    name: str
    status: TaskStatus = TaskStatus.NOT_STARTED
    current_role: str
    priority: Priority = Priority.MEDIUM
    dependencies: list[str] = Field(default_factory=list)
    redelegation_count: int = 0
    git_branch: str | None = None
    created_at: str
    updated_at: str
    completion_date: str | None = None


class TaskDescriptionRead(BaseModel):
    task_id: int
    description: str = ""
    business_requirements: str = ""
    technical_requirements: str = ""
    acceptance_criteria: list[str] = Field(default_factory=list)


class DelegationRecordRead(BaseModel):
    id: int
    task_id: int
    from_role: str
    to_role: str
    message: str = ""
    created_at: str


class WorkflowTransitionRead(BaseModel):
    id: int
    task_id: int
    from_role: str
    to_role: str
    reason: str
    created_at: str


class AcceptanceCriteriaVerification(BaseModel):
    criteria_description: str | None = None
    verification_status: VerificationStatus | None = None
    verification_method: str | None = None
    evidence: str | None = None
    notes: str | None = None


class CompletionReportRead(BaseModel):
    id: int
    task_id: int
    summary: str
    files_modified: list[str] = Field(default_factory=list)
    acceptance_criteria_verification: dict[str, AcceptanceCriteriaVerification] = Field(default_factory=dict)
    delegation_summary: str = ""
    created_at: str


class RoleHistory(BaseModel):
    task_id: int
    current_role: str
    delegations: list[DelegationRecordRead] = Field(default_factory=list)
    transitions: list[WorkflowTransitionRead] = Field(default_factory=list)


# Role operation requests


class DelegateRequest(BaseModel):
    from_role: str = Field(min_length=1)
    to_role: str = Field(min_length=1)
    message: str = ""
    new_status: TaskStatus | None = None


class CompletionData(BaseModel):
    summary: str = Field(min_length=1)
    files_modified: list[str] = Field(default_factory=list)
    acceptance_criteria_verification: dict[str, AcceptanceCriteriaVerification] = Field(default_factory=dict)
    delegation_summary: str = ""

    @model_validator(mode="after")
    def normalize_fields(self) -> "CompletionData":
        self.summary = self.summary.strip()
        if not self.summary:
            raise ValueError("completion summary must not be blank")
        self.files_modified = _normalize_string_list(self.files_modified)
        return self


class CompleteRequest(BaseModel):
    from_role: str = Field(min_length=1)
    completion_data: CompletionData
    to_role: str | None = None
    new_status: TaskStatus | None = None


class EscalationData(BaseModel):
    reason: str = Field(min_length=1)
    severity: EscalationSeverity | None = None
    blockers: list[str] = Field(default_factory=list)

    @model_validator(mode="after")
    def normalize_fields(self) -> "EscalationData":
        self.reason = self.reason.strip()
        if not self.reason:
            raise ValueError("escalation reason must not be blank")
        self.blockers = _normalize_string_list(self.blockers)
        return self


class EscalateRequest(BaseModel):
    from_role: str = Field(min_length=1)
    to_role: str = Field(min_length=1)
    escalation_data: EscalationData
    new_status: TaskStatus | None = None


class TransitionRequest(BaseModel):
    from_role: str = Field(min_length=1)
    new_status: TaskStatus
    to_role: str | None = None
    message: str | None = None


class RoleTransitionResult(BaseModel):
    operation: RoleOperation
    task: TaskRead
    transition: WorkflowTransitionRead
    delegation: DelegationRecordRead | None = None
    completion_report: CompletionReportRead | None = None


# Step progress, subtasks, executions


class StepProgressCreate(BaseModel):
    status: StepProgressStatus
    role_name: str | None = None
    result: dict[str, Any] = Field(default_factory=dict)


class StepProgressRead(BaseModel):
    id: int
    task_id: int
    step_id: str
    role_name: str
    status: StepProgressStatus
    created_at: str


class SubtaskCreate(BaseModel):
    name: str = Field(min_length=1)
    description: str = ""
    sequence_number: int | None = None
    dependencies: list[str] = Field(default_factory=list)

    @model_validator(mode="after")
    def normalize_fields(self) -> "SubtaskCreate":
        self.name = self.name.strip()
        self.dependencies = _normalize_string_list(self.dependencies)
        return self


class SubtaskBatchCreate(BaseModel):
    batch_id: str = Field(min_length=1)
    batch_title: str = "Untitled Batch"
    subtasks: list[SubtaskCreate] = Field(min_length=1)


class SubtaskRead(BaseModel):
    id: int
    task_id: int
    name: str
    description: str = ""
    sequence_number: int
    batch_id: str
    batch_title: str
    status: TaskStatus = TaskStatus.NOT_STARTED
    dependencies: list[str] = Field(default_factory=list)
    started_at: str | None = None
    completed_at: str | None = None


class SubtaskDependencyRead(BaseModel):
    subtask_id: int
    depends_on_subtask_id: int


class SubtaskStatusUpdate(BaseModel):
    status: TaskStatus


class BatchStatusUpdate(BaseModel):
    status: TaskStatus


class SubtaskBatchResult(BaseModel):
    task_id: int
    batch_id: str
    batch_title: str
    count: int
    subtasks: list[SubtaskRead] = Field(default_factory=list)


class BatchStatus(BaseModel):
    task_id: int
    batch_id: str
    total: int
    completed: int
    in_progress: int
    is_complete: bool


class NextSubtaskResult(BaseModel):
    task_id: int
    next_subtask: SubtaskRead | None = None
    message: str


class WorkflowExecutionRead(BaseModel):
    id: str
    task_id: int
    current_role: str
    current_step_id: str | None = None
    execution_mode: ExecutionMode = ExecutionMode.GUIDED
    steps_completed: int = 0
    total_steps: int = 0
    progress_percentage: int = 0
    created_at: str
    completed_at: str | None = None


class WorkflowExecutionDetail(WorkflowExecutionRead):
    task: TaskRead | None = None


class ExecutionUpdate(BaseModel):
    current_step_id: str | None = None
    steps_completed: int | None = Field(default=None, ge=0)
    total_steps: int | None = Field(default=None, ge=0)


class ActiveExecutionsSummary(BaseModel):
    total_active: int
    by_role: dict[str, int] = Field(default_factory=dict)
    average_progress: int = 0


class ActiveExecutionsResult(BaseModel):
    executions: list[WorkflowExecutionRead] = Field(default_factory=list)
    summary: ActiveExecutionsSummary


class WorkflowBootstrapRequest(BaseModel):
    task: TaskCreate
    project_path: str = Field(min_length=1)
    execution_mode: ExecutionMode = ExecutionMode.GUIDED


class BootstrapContext(BaseModel):
    bootstrap_duration_ms: int = 0
    initial_role: str
    execution_mode: ExecutionMode = ExecutionMode.GUIDED


class BootstrapResult(BaseModel):
    task: TaskRead
    workflow_execution: WorkflowExecutionDetail
    context: BootstrapContext


# Guidance building blocks


class WorkflowAction(BaseModel):
    name: str
    action_type: ActionType
    action_data: dict[str, Any] = Field(default_factory=dict)
    sequence_order: int = 0


class RuleEnforcement(BaseModel):
    required_patterns: list[str] = Field(default_factory=list)
    anti_patterns: list[str] = Field(default_factory=list)


class WorkflowGuidance(BaseModel):
    task_id: int
    current_role: WorkflowRoleRead
    current_step: WorkflowStepRead | None = None
    next_actions: list[WorkflowAction] = Field(default_factory=list)
    quality_reminders: list[str] = Field(default_factory=list)
    rule_enforcement: RuleEnforcement = Field(default_factory=RuleEnforcement)
    project_path: str | None = None


class ParameterDetail(BaseModel):
    type: str
    description: str
    required: bool
    default: Any = None


class InputExtraction(BaseModel):
    service_name: str
    operation: str | None = None
    required: list[str] = Field(default_factory=list)
    optional: list[str] = Field(default_factory=list)
    details: dict[str, ParameterDetail] = Field(default_factory=dict)
    schema_found: bool = True
    extraction_method: str


class ProgressMetrics(BaseModel):
    current_step_progress: int = 0
    role_progress: int = 0
    overall_progress: int = 0
    completed_steps: int = 0
    total_steps: int = 0
    completed_subtasks: int = 0
    total_subtasks: int = 0
    estimated_time_remaining: str | None = None
    next_milestone: str | None = None


class QualityPattern(BaseModel):
    id: str
    name: str
    description: str
    category: str
    requirements: list[str] = Field(default_factory=list)
    examples: list[str] = Field(default_factory=list)
    priority: str = "MEDIUM"


class ValidationCheck(BaseModel):
    id: str
    name: str
    description: str
    check_type: str = "AUTOMATED"
    criteria: list[str] = Field(default_factory=list)
    expected_outcome: str
    failure_actions: list[str] = Field(default_factory=list)


class AntiPattern(BaseModel):
    id: str
    name: str
    description: str
    category: str
    indicators: list[str] = Field(default_factory=list)
    consequences: list[str] = Field(default_factory=list)
    remediation: list[str] = Field(default_factory=list)


class ValidationContext(BaseModel):
    quality_patterns: list[QualityPattern] = Field(default_factory=list)
    validation_checks: list[ValidationCheck] = Field(default_factory=list)
    anti_patterns: list[AntiPattern] = Field(default_factory=list)
    role_standards: list[str] = Field(default_factory=list)
    step_criteria: list[str] = Field(default_factory=list)
    project_standards: list[str] = Field(default_factory=list)


class ActionGuidanceResult(BaseModel):
    success: bool
    guidance: str | None = None
    error: str | None = None
    action_type: str | None = None


# Envelopes


class GuidanceMetadata(BaseModel):
    task_id: int
    step_id: str | None = None
    role_name: str
    step_name: str
    generated_by: str = "EnvelopeBuilder"
    version: str


class GuidanceEnvelope(BaseModel):
    type: Literal["guidance"] = "guidance"
    timestamp: str
    workflow_guidance: WorkflowGuidance
    required_inputs: list[str] = Field(default_factory=list)
    action_guidance: str
    progress_metrics: ProgressMetrics
    validation_context: ValidationContext
    metadata: GuidanceMetadata


class ExecutionMetadata(BaseModel):
    task_id: int
    step_id: str | None = None
    execution_id: str | None = None
    status: str
    generated_by: str = "EnvelopeBuilder"
    version: str


class ExecutionEnvelope(BaseModel):
    type: Literal["execution"] = "execution"
    timestamp: str
    execution_result: dict[str, Any] = Field(default_factory=dict)
    metadata: ExecutionMetadata


class TransitionMetadata(BaseModel):
    task_id: int
    from_role: str
    to_role: str
    transition_id: int | None = None
    generated_by: str = "EnvelopeBuilder"
    version: str


class TransitionEnvelope(BaseModel):
    type: Literal["transition"] = "transition"
    timestamp: str
    transition_result: RoleTransitionResult
    metadata: TransitionMetadata


class BootstrapMetadata(BaseModel):
    task_id: int
    execution_id: str | None = None
    project_path: str
    initial_role: str
    generated_by: str = "EnvelopeBuilder"
    version: str


class BootstrapEnvelope(BaseModel):
    type: Literal["bootstrap"] = "bootstrap"
    timestamp: str
    bootstrap_result: dict[str, Any] = Field(default_factory=dict)
    metadata: BootstrapMetadata


class WorkflowExecutionMetadata(BaseModel):
    task_id: int | None = None
    execution_id: str | None = None
    current_role: str | None = None
    operation: str
    generated_by: str = "EnvelopeBuilder"
    version: str


class WorkflowExecutionEnvelope(BaseModel):
    type: Literal["workflow-execution"] = "workflow-execution"
    timestamp: str
    execution_data: dict[str, Any] = Field(default_factory=dict)
    metadata: WorkflowExecutionMetadata


Envelope = Annotated[
    Union[GuidanceEnvelope, ExecutionEnvelope, TransitionEnvelope, BootstrapEnvelope, WorkflowExecutionEnvelope],
    Field(discriminator="type"),
]


class EnvelopeResponse(BaseModel):
    version: str
    envelope: Envelope
    success: bool = True
    timestamp: str


def _normalize_string_list(values: list[str]) -> list[str]:
    normalized: list[str] = []
    for value in values:
        trimmed = value.strip()
        if not trimmed:
            continue
        if trimmed in normalized:
            continue
        normalized.append(trimmed)
    return normalized
