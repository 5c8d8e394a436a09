"""Declared parameter contracts of the downstream operation services.

Each contract model is the superset of the fields accepted by every
operation of one service. ``OPERATION_FIELDS`` narrows that superset to the
fields a single operation actually uses, and ``OPERATION_EXTRAS`` lists
nested inputs an operation needs on top of its top-level fields.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field

from taskflow_api.schemas import (
    AcceptanceCriteriaVerification,
    EscalationSeverity,
    Priority,
    TaskStatus,
)


class _Contract(BaseModel):
    model_config = ConfigDict(populate_by_name=True)


class TaskDataInput(_Contract):
    name: str | None = None
    status: TaskStatus | None = None
    priority: Priority | None = None
    dependencies: list[str] | None = None
    git_branch: str | None = Field(default=None, alias="gitBranch")


class TaskDescriptionInput(_Contract):
    description: str | None = None
    business_requirements: str | None = Field(default=None, alias="businessRequirements")
    technical_requirements: str | None = Field(default=None, alias="technicalRequirements")
    acceptance_criteria: list[str] | None = Field(default=None, alias="acceptanceCriteria")


class CodebaseAnalysisInput(_Contract):
    architecture_findings: str | None = Field(default=None, alias="architectureFindings")
    problems_identified: list[str] | None = Field(default=None, alias="problemsIdentified")
    integration_points: list[str] | None = Field(default=None, alias="integrationPoints")
    files_covered: list[str] | None = Field(default=None, alias="filesCovered")
    technology_stack: list[str] | None = Field(default=None, alias="technologyStack")
    analyzed_by: str | None = Field(default=None, alias="analyzedBy")


class TaskOperations(_Contract):
    operation: Literal["create", "update", "get", "list"]
    id: int | None = None
    slug: str | None = None
    task_data: TaskDataInput | None = Field(default=None, alias="taskData")
    description: TaskDescriptionInput | None = None
    codebase_analysis: CodebaseAnalysisInput | None = Field(default=None, alias="codebaseAnalysis")
    filters: dict[str, Any] | None = None
    include_description: bool = Field(default=False, alias="includeDescription")
    include_analysis: bool = Field(default=False, alias="includeAnalysis")


class BatchDataInput(_Contract):
    batch_id: str = Field(alias="batchId")
    batch_title: str | None = Field(default=None, alias="batchTitle")
    subtasks: list[dict[str, Any]] = Field(default_factory=list)


class PlanDataInput(_Contract):
    overview: str | None = None
    approach: str | None = None
    technical_decisions: list[str] | None = Field(default=None, alias="technicalDecisions")
    files_to_modify: list[str] | None = Field(default=None, alias="filesToModify")


class PlanningOperations(_Contract):
    operation: Literal["create_plan", "update_plan", "get_plan", "create_subtasks", "update_batch", "get_batch"]
    task_id: int = Field(alias="taskId")
    plan_data: PlanDataInput | None = Field(default=None, alias="planData")
    batch_id: str | None = Field(default=None, alias="batchId")
    batch_data: BatchDataInput | None = Field(default=None, alias="batchData")
    new_status: TaskStatus | None = Field(default=None, alias="newStatus")
    include_batches: bool = Field(default=True, alias="includeBatches")


class SubtaskOperations(_Contract):
    operation: Literal["create_subtask", "update_subtask", "get_subtask", "get_next_subtask"]
    task_id: int = Field(alias="taskId")
    subtask_id: int | None = Field(default=None, alias="subtaskId")
    subtask_data: dict[str, Any] | None = Field(default=None, alias="subtaskData")
    status: TaskStatus | None = None


class ResearchOperations(_Contract):
    operation: Literal["create_research", "update_research", "get_research", "add_comment", "get_comments"]
    task_id: int | None = Field(default=None, alias="taskId")
    research_id: int | None = Field(default=None, alias="researchId")
    research_data: dict[str, Any] | None = Field(default=None, alias="researchData")
    comment_data: dict[str, Any] | None = Field(default=None, alias="commentData")


class ReviewOperations(_Contract):
    operation: Literal["create_review", "update_review", "get_review", "create_completion", "get_completion"]
    task_id: int | None = Field(default=None, alias="taskId")
    review_id: int | None = Field(default=None, alias="reviewId")
    review_data: dict[str, Any] | None = Field(default=None, alias="reviewData")
    completion_data: dict[str, Any] | None = Field(default=None, alias="completionData")


class CompletionDataInput(_Contract):
    summary: str
    files_modified: list[str] | None = Field(default=None, alias="filesModified")
    acceptance_criteria_verification: dict[str, AcceptanceCriteriaVerification] | None = Field(
        default=None, alias="acceptanceCriteriaVerification"
    )


class EscalationDataInput(_Contract):
    reason: str
    severity: EscalationSeverity | None = None
    blockers: list[str] | None = None


class WorkflowOperations(_Contract):
    operation: Literal["delegate", "complete", "escalate", "transition"]
    task_id: int = Field(alias="taskId")
    from_role: str = Field(alias="fromRole")
    to_role: str | None = Field(default=None, alias="toRole")
    message: str | None = None
    completion_data: CompletionDataInput | None = Field(default=None, alias="completionData")
    escalation_data: EscalationDataInput | None = Field(default=None, alias="escalationData")
    new_status: TaskStatus | None = Field(default=None, alias="newStatus")


SERVICE_CONTRACTS: dict[str, type[BaseModel]] = {
    "TaskOperations": TaskOperations,
    "PlanningOperations": PlanningOperations,
    "SubtaskOperations": SubtaskOperations,
    "IndividualSubtaskOperations": SubtaskOperations,
    "ResearchOperations": ResearchOperations,
    "ReviewOperations": ReviewOperations,
    "WorkflowOperations": WorkflowOperations,
}


@dataclass(frozen=True)
class OperationFields:
    required: tuple[str, ...]
    optional: tuple[str, ...] = ()


OPERATION_FIELDS: dict[str, dict[str, OperationFields]] = {
    "TaskOperations": {
        "create": OperationFields(("operation", "taskData", "description", "codebaseAnalysis")),
        "update": OperationFields(("operation", "id", "taskData"), ("description",)),
        "get": OperationFields(("operation", "id"), ("slug", "includeDescription", "includeAnalysis")),
        "list": OperationFields(("operation",), ("filters",)),
    },
    "PlanningOperations": {
        "create_plan": OperationFields(("operation", "taskId", "planData")),
        "update_plan": OperationFields(("operation", "taskId", "planData")),
        "get_plan": OperationFields(("operation", "taskId"), ("includeBatches",)),
        "create_subtasks": OperationFields(("operation", "taskId", "batchData")),
        "update_batch": OperationFields(("operation", "taskId", "batchId"), ("newStatus", "batchData")),
        "get_batch": OperationFields(("operation", "taskId", "batchId")),
    },
    "SubtaskOperations": {
        "create_subtask": OperationFields(("operation", "taskId", "subtaskData")),
        "update_subtask": OperationFields(("operation", "taskId", "subtaskId"), ("status", "subtaskData")),
        "get_subtask": OperationFields(("operation", "taskId", "subtaskId")),
        "get_next_subtask": OperationFields(("operation", "taskId"), ("status",)),
    },
    "ResearchOperations": {
        "create_research": OperationFields(("operation", "taskId", "researchData")),
        "update_research": OperationFields(("operation", "researchId", "researchData")),
        "get_research": OperationFields(("operation",), ("researchId", "taskId")),
        "add_comment": OperationFields(("operation", "researchId", "commentData")),
        "get_comments": OperationFields(("operation", "researchId")),
    },
    "ReviewOperations": {
        "create_review": OperationFields(("operation", "taskId", "reviewData")),
        "update_review": OperationFields(("operation", "reviewId", "reviewData")),
        "get_review": OperationFields(("operation",), ("reviewId", "taskId")),
        "create_completion": OperationFields(("operation", "taskId", "completionData")),
        "get_completion": OperationFields(("operation", "taskId")),
    },
    "WorkflowOperations": {
        "delegate": OperationFields(("operation", "taskId", "fromRole", "toRole"), ("message", "newStatus")),
        "complete": OperationFields(("operation", "taskId", "fromRole", "completionData")),
        "escalate": OperationFields(("operation", "taskId", "fromRole", "toRole", "escalationData"), ("newStatus",)),
        "transition": OperationFields(("operation", "taskId", "fromRole", "newStatus"), ("toRole", "message")),
    },
}
OPERATION_FIELDS["IndividualSubtaskOperations"] = OPERATION_FIELDS["SubtaskOperations"]

OPERATION_EXTRAS: dict[tuple[str, str], tuple[str, ...]] = {
    ("TaskOperations", "create"): ("businessRequirements", "technicalRequirements", "acceptanceCriteria"),
    ("PlanningOperations", "create_subtasks"): ("batchId", "batchTitle"),
    ("WorkflowOperations", "complete"): ("summary",),
    ("WorkflowOperations", "escalate"): ("reason",),
}

FALLBACK_PARAMETERS: tuple[str, ...] = ("operation", "executionData")

FIELD_DESCRIPTIONS: dict[str, str] = {
    "operation": "The operation to perform on the service",
    "taskId": "Unique identifier for the task",
    "id": "Unique identifier for the resource",
    "taskData": "Task data object containing task details",
    "planData": "Planning data object with plan specifications",
    "batchData": "Batch of subtasks with their dependencies",
    "researchData": "Research data object with research parameters",
    "reviewData": "Review data object with review criteria",
    "subtaskData": "Subtask data object with subtask details",
    "description": "Detailed description of the operation or resource",
    "codebaseAnalysis": "Analysis data for codebase understanding",
    "includeDescription": "Whether to include description in response",
    "includeAnalysis": "Whether to include analysis data in response",
    "includeBatches": "Whether to include batch data in response",
    "fromRole": "Role currently owning the task",
    "toRole": "Role receiving the task",
    "message": "Message or instructions for the operation",
    "filters": "Filter criteria for list operations",
    "completionData": "Completion summary and acceptance criteria verification",
    "escalationData": "Escalation reason, severity and blockers",
    "newStatus": "Status the task or batch moves to",
}


def describe_field(name: str, type_name: str | None = None) -> str:
    base = FIELD_DESCRIPTIONS.get(name, f"{name} parameter")
    return f"{base} ({type_name})" if type_name else base
