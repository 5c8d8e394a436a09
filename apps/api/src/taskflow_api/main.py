from __future__ import annotations

import logging

from fastapi import Depends, FastAPI, HTTPException
from fastapi.middleware.cors import CORSMiddleware

from taskflow_api.action_guidance import ActionGuidanceGenerator
from taskflow_api.cache import BoundedTTLCache
from taskflow_api.config import load_settings
from taskflow_api.envelopes import GET_ACTIVE_EXECUTIONS, GET_EXECUTION, EnvelopeBuilder, wrap_envelope
from taskflow_api.errors import (
    InvalidOwnershipError,
    InvalidStateError,
    NotFoundError,
    OperationFailedError,
    ValidationError,
    WorkflowError,
)
from taskflow_api.executions import WorkflowExecutionService
from taskflow_api.guidance import WorkflowGuidanceResolver
from taskflow_api.progress import ProgressCalculator
from taskflow_api.required_inputs import RequiredInputExtractor
from taskflow_api.role_transitions import RoleTransitionService
from taskflow_api.schemas import (
    BatchStatus,
    BatchStatusUpdate,
    CompleteRequest,
    CompletionReportRead,
    DelegateRequest,
    EnvelopeResponse,
    EscalateRequest,
    ExecutionUpdate,
    InputExtraction,
    NextSubtaskResult,
    RoleHistory,
    RoleTransitionResult,
    StepActionRead,
    StepProgressCreate,
    SubtaskBatchCreate,
    SubtaskBatchResult,
    SubtaskRead,
    SubtaskStatusUpdate,
    TaskCreate,
    TaskDescriptionRead,
    TaskRead,
    TaskStatus,
    TransitionRequest,
    WorkflowBootstrapRequest,
    WorkflowRoleCreate,
    WorkflowRoleRead,
    WorkflowStepCreate,
    WorkflowStepRead,
)
from taskflow_api.seed import seed_defaults
from taskflow_api.store import InMemoryStore
from taskflow_api.subtasks import SubtaskService
from taskflow_api.validation_context import ValidationContextBuilder

settings = load_settings()
logging.basicConfig(level=settings.log_level, format="%(asctime)s %(levelname)s %(name)s: %(message)s")
logger = logging.getLogger(__name__)

store = InMemoryStore(state_file=settings.state_file)
extractor = RequiredInputExtractor()
role_transitions = RoleTransitionService(
    store,
    coordinator_role=settings.coordinator_role,
    completion_policy=settings.completion_policy,
)
subtasks = SubtaskService(store)
executions = WorkflowExecutionService(
    store,
    coordinator_role=settings.coordinator_role,
    cache=BoundedTTLCache(max_entries=settings.cache_max_entries, ttl_seconds=settings.cache_ttl_seconds),
)
envelopes = EnvelopeBuilder(
    resolver=WorkflowGuidanceResolver(store),
    extractor=extractor,
    progress=ProgressCalculator(store),
    validation=ValidationContextBuilder(store),
    action_guidance=ActionGuidanceGenerator(store, extractor=extractor),
    version=settings.envelope_version,
)

_seeded = not settings.seed_defaults

_ERROR_STATUS: dict[type[WorkflowError], int] = {
    NotFoundError: 404,
    InvalidOwnershipError: 403,
    InvalidStateError: 409,
    ValidationError: 422,
    OperationFailedError: 500,
}


async def ensure_seeded() -> None:
    global _seeded
    if _seeded:
        return
    _seeded = True
    await seed_defaults(store)


app = FastAPI(title="taskflow guidance api", version="0.1.0", dependencies=[Depends(ensure_seeded)])

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_allow_origins,
    allow_origin_regex=settings.cors_allow_origin_regex,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


def _http_error(exc: WorkflowError, operation: str) -> HTTPException:
    status_code = _ERROR_STATUS.get(type(exc), 500)
    return HTTPException(status_code=status_code, detail=exc.to_error_payload(operation))


def _unexpected_error(exc: Exception, operation: str) -> HTTPException:
    logger.exception("%s failed unexpectedly", operation)
    wrapped = OperationFailedError(f"{operation} failed: {exc}", operation=operation)
    return HTTPException(status_code=500, detail=wrapped.to_error_payload())


async def _transition_envelope(result: RoleTransitionResult) -> EnvelopeResponse:
    await executions.sync_task(result.task)
    return wrap_envelope(envelopes.build_transition(result), version=envelopes.version)


@app.get("/health")
def health() -> dict[str, str]:
    return {"status": "ok"}


@app.get("/workflow/roles", response_model=list[WorkflowRoleRead])
async def list_roles() -> list[WorkflowRoleRead]:
    return await store.list_roles()


@app.post("/workflow/roles", response_model=WorkflowRoleRead)
async def create_role(payload: WorkflowRoleCreate) -> WorkflowRoleRead:
    return await store.create_role(payload)


@app.get("/workflow/steps", response_model=list[WorkflowStepRead])
async def list_steps(role_name: str | None = None) -> list[WorkflowStepRead]:
    return await store.list_steps(role_name=role_name)


@app.post("/workflow/steps", response_model=WorkflowStepRead)
async def create_step(payload: WorkflowStepCreate) -> WorkflowStepRead:
    try:
        return await store.create_step(payload)
    except WorkflowError as exc:
        raise _http_error(exc, "create_step") from exc


@app.get("/workflow/steps/{step_id}/actions", response_model=list[StepActionRead])
async def list_step_actions(step_id: str) -> list[StepActionRead]:
    try:
        await store.get_step(step_id)
    except WorkflowError as exc:
        raise _http_error(exc, "list_step_actions") from exc
    return await store.list_step_actions(step_id=step_id)


@app.get("/contracts/{service_name}/inputs", response_model=InputExtraction)
def extract_required_inputs(service_name: str, operation: str | None = None) -> InputExtraction:
    return extractor.extract(service_name, operation)


@app.post("/tasks", response_model=TaskRead)
async def create_task(payload: TaskCreate) -> TaskRead:
    try:
        return await store.create_task(payload, current_role=settings.coordinator_role)
    except WorkflowError as exc:
        raise _http_error(exc, "create_task") from exc


@app.get("/tasks", response_model=list[TaskRead])
async def list_tasks(status: TaskStatus | None = None, current_role: str | None = None) -> list[TaskRead]:
    return await store.list_tasks(status=status, current_role=current_role)


@app.get("/tasks/{task_id}", response_model=TaskRead)
async def get_task(task_id: int) -> TaskRead:
    try:
        return await store.get_task(task_id)
    except WorkflowError as exc:
        raise _http_error(exc, "get_task") from exc


@app.get("/tasks/{task_id}/description", response_model=TaskDescriptionRead)
async def get_task_description(task_id: int) -> TaskDescriptionRead:
    try:
        return await store.get_task_description(task_id)
    except WorkflowError as exc:
        raise _http_error(exc, "get_task_description") from exc


@app.post("/tasks/{task_id}/delegate", response_model=EnvelopeResponse)
async def delegate_task(task_id: int, payload: DelegateRequest) -> EnvelopeResponse:
    try:
        result = await role_transitions.delegate(
            task_id,
            from_role=payload.from_role,
            to_role=payload.to_role,
            message=payload.message,
            new_status=payload.new_status,
        )
    except WorkflowError as exc:
        raise _http_error(exc, "delegate") from exc
    except Exception as exc:
        raise _unexpected_error(exc, "delegate") from exc
    return await _transition_envelope(result)


@app.post("/tasks/{task_id}/complete", response_model=EnvelopeResponse)
async def complete_task(task_id: int, payload: CompleteRequest) -> EnvelopeResponse:
    try:
        result = await role_transitions.complete(
            task_id,
            from_role=payload.from_role,
            completion_data=payload.completion_data,
            to_role=payload.to_role,
            new_status=payload.new_status,
        )
    except WorkflowError as exc:
        raise _http_error(exc, "complete") from exc
    except Exception as exc:
        raise _unexpected_error(exc, "complete") from exc
    return await _transition_envelope(result)


@app.post("/tasks/{task_id}/escalate", response_model=EnvelopeResponse)
async def escalate_task(task_id: int, payload: EscalateRequest) -> EnvelopeResponse:
    try:
        result = await role_transitions.escalate(
            task_id,
            from_role=payload.from_role,
            to_role=payload.to_role,
            escalation_data=payload.escalation_data,
            new_status=payload.new_status,
        )
    except WorkflowError as exc:
        raise _http_error(exc, "escalate") from exc
    except Exception as exc:
        raise _unexpected_error(exc, "escalate") from exc
    return await _transition_envelope(result)


@app.post("/tasks/{task_id}/transition", response_model=EnvelopeResponse)
async def transition_task(task_id: int, payload: TransitionRequest) -> EnvelopeResponse:
    try:
        result = await role_transitions.transition(
            task_id,
            from_role=payload.from_role,
            new_status=payload.new_status,
            to_role=payload.to_role,
            message=payload.message,
        )
    except WorkflowError as exc:
        raise _http_error(exc, "transition") from exc
    except Exception as exc:
        raise _unexpected_error(exc, "transition") from exc
    return await _transition_envelope(result)


@app.get("/tasks/{task_id}/role-history", response_model=RoleHistory)
async def get_role_history(task_id: int) -> RoleHistory:
    try:
        return await role_transitions.get_role_history(task_id)
    except WorkflowError as exc:
        raise _http_error(exc, "get_role_history") from exc


@app.get("/tasks/{task_id}/completion-reports", response_model=list[CompletionReportRead])
async def list_completion_reports(task_id: int) -> list[CompletionReportRead]:
    try:
        await store.get_task(task_id)
    except WorkflowError as exc:
        raise _http_error(exc, "list_completion_reports") from exc
    return await store.list_completion_reports(task_id=task_id)


@app.get("/tasks/{task_id}/guidance", response_model=EnvelopeResponse)
async def get_guidance(
    task_id: int,
    role_name: str | None = None,
    step_id: str | None = None,
    project_path: str | None = None,
) -> EnvelopeResponse:
    try:
        envelope = await envelopes.build_guidance(
            task_id, role_name=role_name, step_id=step_id, project_path=project_path
        )
    except WorkflowError as exc:
        raise _http_error(exc, "get_guidance") from exc
    return wrap_envelope(envelope, version=envelopes.version)


@app.post("/tasks/{task_id}/steps/{step_id}/progress", response_model=EnvelopeResponse)
async def record_step_progress(task_id: int, step_id: str, payload: StepProgressCreate) -> EnvelopeResponse:
    try:
        result = await executions.record_step_progress(task_id, step_id, payload)
    except WorkflowError as exc:
        raise _http_error(exc, "record_step_progress") from exc
    envelope = envelopes.build_execution(result, task_id=task_id, step_id=step_id)
    return wrap_envelope(envelope, version=envelopes.version)


@app.post("/tasks/{task_id}/subtask-batches", response_model=SubtaskBatchResult)
async def create_subtask_batch(task_id: int, payload: SubtaskBatchCreate) -> SubtaskBatchResult:
    try:
        return await subtasks.create_subtasks(task_id, payload)
    except WorkflowError as exc:
        raise _http_error(exc, "create_subtasks") from exc


@app.get("/tasks/{task_id}/subtasks", response_model=list[SubtaskRead])
async def list_subtasks(task_id: int, batch_id: str | None = None) -> list[SubtaskRead]:
    try:
        await store.get_task(task_id)
    except WorkflowError as exc:
        raise _http_error(exc, "list_subtasks") from exc
    return await store.list_subtasks(task_id=task_id, batch_id=batch_id)


@app.get("/tasks/{task_id}/subtask-batches/{batch_id}", response_model=BatchStatus)
async def get_batch_status(task_id: int, batch_id: str) -> BatchStatus:
    try:
        return await subtasks.get_batch_status(task_id, batch_id)
    except WorkflowError as exc:
        raise _http_error(exc, "get_batch") from exc


@app.post("/tasks/{task_id}/subtask-batches/{batch_id}/status", response_model=BatchStatus)
async def update_batch_status(task_id: int, batch_id: str, payload: BatchStatusUpdate) -> BatchStatus:
    try:
        return await subtasks.update_batch(task_id, batch_id, payload.status)
    except WorkflowError as exc:
        raise _http_error(exc, "update_batch") from exc


@app.get("/tasks/{task_id}/next-subtask", response_model=NextSubtaskResult)
async def get_next_subtask(task_id: int) -> NextSubtaskResult:
    try:
        return await subtasks.get_next_subtask(task_id)
    except WorkflowError as exc:
        raise _http_error(exc, "get_next_subtask") from exc


@app.post("/subtasks/{subtask_id}/status", response_model=SubtaskRead)
async def update_subtask_status(subtask_id: int, payload: SubtaskStatusUpdate) -> SubtaskRead:
    try:
        return await subtasks.update_subtask_status(subtask_id, payload.status)
    except WorkflowError as exc:
        raise _http_error(exc, "update_subtask") from exc


@app.post("/workflow/bootstrap", response_model=EnvelopeResponse)
async def bootstrap_workflow(payload: WorkflowBootstrapRequest) -> EnvelopeResponse:
    try:
        result = await executions.bootstrap(payload)
    except WorkflowError as exc:
        raise _http_error(exc, "bootstrap") from exc
    envelope = envelopes.build_bootstrap(result, project_path=payload.project_path)
    return wrap_envelope(envelope, version=envelopes.version)


@app.get("/workflow/executions", response_model=EnvelopeResponse)
async def list_active_executions() -> EnvelopeResponse:
    result = await executions.get_active_executions()
    envelope = envelopes.build_workflow_execution(GET_ACTIVE_EXECUTIONS, result)
    return wrap_envelope(envelope, version=envelopes.version)


@app.get("/workflow/executions/{execution_id}", response_model=EnvelopeResponse)
async def get_execution(execution_id: str) -> EnvelopeResponse:
    try:
        result = await executions.get_execution(execution_id)
    except WorkflowError as exc:
        raise _http_error(exc, GET_EXECUTION) from exc
    envelope = envelopes.build_workflow_execution(GET_EXECUTION, result)
    return wrap_envelope(envelope, version=envelopes.version)


@app.patch("/workflow/executions/{execution_id}", response_model=EnvelopeResponse)
async def update_execution(execution_id: str, payload: ExecutionUpdate) -> EnvelopeResponse:
    try:
        result = await executions.update_execution(execution_id, payload)
    except WorkflowError as exc:
        raise _http_error(exc, "update_execution") from exc
    envelope = envelopes.build_workflow_execution("update_execution", result)
    return wrap_envelope(envelope, version=envelopes.version)


@app.post("/workflow/executions/{execution_id}/complete", response_model=EnvelopeResponse)
async def complete_execution(execution_id: str) -> EnvelopeResponse:
    try:
        result = await executions.complete_execution(execution_id)
    except WorkflowError as exc:
        raise _http_error(exc, "complete_execution") from exc
    envelope = envelopes.build_workflow_execution("complete_execution", result)
    return wrap_envelope(envelope, version=envelopes.version)
