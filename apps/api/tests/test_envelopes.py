import asyncio

from taskflow_api.action_guidance import FALLBACK_GUIDANCE, ActionGuidanceGenerator
from taskflow_api.envelopes import GET_ACTIVE_EXECUTIONS, GET_EXECUTION, EnvelopeBuilder, wrap_envelope
from taskflow_api.executions import WorkflowExecutionService
from taskflow_api.guidance import WorkflowGuidanceResolver
from taskflow_api.progress import ProgressCalculator
from taskflow_api.required_inputs import RequiredInputExtractor
from taskflow_api.role_transitions import RoleTransitionService
from taskflow_api.schemas import (
    ExecutionUpdate,
    ProgressMetrics,
    TaskCreate,
    ValidationContext,
    WorkflowBootstrapRequest,
)
from taskflow_api.seed import seed_defaults
from taskflow_api.store import InMemoryStore
from taskflow_api.validation_context import ValidationContextBuilder


async def _builder() -> tuple[InMemoryStore, EnvelopeBuilder]:
    store = InMemoryStore()
    await seed_defaults(store)
    extractor = RequiredInputExtractor()
    builder = EnvelopeBuilder(
        resolver=WorkflowGuidanceResolver(store),
        extractor=extractor,
        progress=ProgressCalculator(store),
        validation=ValidationContextBuilder(store),
        action_guidance=ActionGuidanceGenerator(store, extractor=extractor),
        version="2.0.0",
    )
    return store, builder


async def _failing(*args: object, **kwargs: object) -> None:
    raise RuntimeError("enrichment backend down")


def _contains_key_value(value: object, key: str, expected: object) -> bool:
    if isinstance(value, dict):
        if value.get(key) == expected:
            return True
        return any(_contains_key_value(item, key, expected) for item in value.values())
    if isinstance(value, list):
        return any(_contains_key_value(item, key, expected) for item in value)
    return False


def test_guidance_envelope_merges_all_parts() -> None:
    async def scenario() -> None:
        store, builder = await _builder()
        task = await store.create_task(TaskCreate(name="intake"), current_role="boomerang")

        envelope = await builder.build_guidance(task.id, project_path="/srv/app")

        assert envelope.type == "guidance"
        assert envelope.workflow_guidance.current_role.name == "boomerang"
        assert envelope.workflow_guidance.current_step is not None
        assert envelope.metadata.step_id == "boomerang-intake"
        assert envelope.metadata.step_name == "Task Intake"
        assert envelope.metadata.version == "2.0.0"
        assert {"operation", "taskData", "description", "codebaseAnalysis"} <= set(envelope.required_inputs)
        assert envelope.required_inputs[-3:] == ["taskId", "roleId", "projectPath"]
        assert envelope.progress_metrics.total_steps == 2
        assert envelope.validation_context.quality_patterns[0].id == "boomerang-intake-principles"
        assert envelope.action_guidance.startswith("**Execute service-call Action: create_task**")

    asyncio.run(scenario())


def test_failed_enrichment_degrades_without_blocking_others() -> None:
    async def scenario() -> None:
        store, builder = await _builder()
        task = await store.create_task(TaskCreate(name="intake"), current_role="boomerang")
        builder._progress.calculate = _failing  # type: ignore[method-assign]
        builder._validation.build = _failing  # type: ignore[method-assign]
        builder._action_guidance.generate = _failing  # type: ignore[method-assign]

        envelope = await builder.build_guidance(task.id)

        assert envelope.progress_metrics == ProgressMetrics()
        assert envelope.validation_context == ValidationContext()
        assert envelope.action_guidance == FALLBACK_GUIDANCE
        assert "taskData" in envelope.required_inputs

    asyncio.run(scenario())


def test_failed_input_extraction_keeps_essentials() -> None:
    async def scenario() -> None:
        store, builder = await _builder()
        task = await store.create_task(TaskCreate(name="intake"), current_role="boomerang")
        builder._required_inputs = _failing  # type: ignore[method-assign]

        envelope = await builder.build_guidance(task.id)

        assert envelope.required_inputs == ["taskId", "roleId", "projectPath"]
        assert envelope.progress_metrics.total_steps == 2

    asyncio.run(scenario())


def test_transition_envelope_carries_role_identifiers() -> None:
    async def scenario() -> None:
        store, builder = await _builder()
        service = RoleTransitionService(store, coordinator_role="boomerang")
        task = await store.create_task(TaskCreate(name="T1"), current_role="boomerang")
        result = await service.delegate(task.id, from_role="boomerang", to_role="architect", message="plan it")

        envelope = builder.build_transition(result)

        assert envelope.type == "transition"
        assert envelope.metadata.from_role == "boomerang"
        assert envelope.metadata.to_role == "architect"
        assert envelope.metadata.transition_id == result.transition.id
        assert envelope.transition_result.task.current_role == "architect"

    asyncio.run(scenario())


def test_bootstrap_envelope_does_not_repeat_task() -> None:
    async def scenario() -> None:
        store, builder = await _builder()
        executions = WorkflowExecutionService(store, coordinator_role="boomerang")
        result = await executions.bootstrap(
            WorkflowBootstrapRequest(task=TaskCreate(name="bootstrapped"), project_path="/srv/app")
        )
        assert result.workflow_execution.task is not None

        envelope = builder.build_bootstrap(result, project_path="/srv/app")

        nested = envelope.bootstrap_result["workflow_execution"]
        assert envelope.bootstrap_result["task"]["id"] == result.task.id
        assert "task" not in nested
        assert "task_id" not in nested
        assert not _contains_key_value(nested, "id", result.task.id)
        assert nested["id"] == result.workflow_execution.id
        assert envelope.metadata.task_id == result.task.id
        assert envelope.metadata.execution_id == result.workflow_execution.id
        assert envelope.metadata.initial_role == "boomerang"

    asyncio.run(scenario())


def test_workflow_execution_envelope_shapes() -> None:
    async def scenario() -> None:
        store, builder = await _builder()
        executions = WorkflowExecutionService(store, coordinator_role="boomerang")
        first = await executions.bootstrap(WorkflowBootstrapRequest(task=TaskCreate(name="one"), project_path="/a"))
        await executions.bootstrap(WorkflowBootstrapRequest(task=TaskCreate(name="two"), project_path="/b"))

        listed = builder.build_workflow_execution(GET_ACTIVE_EXECUTIONS, await executions.get_active_executions())
        data = listed.execution_data
        assert data["status"] == "active"
        assert len(data["execution_ids"]) == 2
        assert data["current_roles"] == ["boomerang", "boomerang"]
        assert data["executions_summary"]["total_active"] == 2
        assert data["progress"] == {"total_active_executions": 2}
        assert listed.metadata.execution_id is None

        execution_id = first.workflow_execution.id
        single = builder.build_workflow_execution(GET_EXECUTION, await executions.get_execution(execution_id))
        assert single.execution_data["execution"]["id"] == execution_id
        assert single.execution_data["progress"]["execution_mode"] == "GUIDED"
        assert single.metadata.task_id == first.task.id

        updated = await executions.update_execution(
            execution_id, ExecutionUpdate(current_step_id="boomerang-delegate", steps_completed=1)
        )
        mutated = builder.build_workflow_execution("update_execution", updated)
        assert mutated.execution_data["active_steps"] == ["boomerang-delegate"]
        assert mutated.execution_data["progress"]["overall_progress"] == 0
        assert "execution" not in mutated.execution_data
        assert mutated.metadata.operation == "update_execution"

        await executions.complete_execution(execution_id)
        await executions.complete_execution((await executions.get_active_executions()).executions[0].id)
        empty = builder.build_workflow_execution(GET_ACTIVE_EXECUTIONS, await executions.get_active_executions())
        assert empty.execution_data["status"] == "no_active_executions"

    asyncio.run(scenario())


def test_execution_envelope_identifies_result_and_redacts_secrets() -> None:
    async def scenario() -> None:
        _, builder = await _builder()

        envelope = builder.build_execution(
            {"id": 12, "status": "completed", "result": {"api_key": "abc", "note": "token=xyz"}},
            task_id=3,
            step_id="boomerang-intake",
        )

        assert envelope.metadata.execution_id == "12"
        assert envelope.metadata.status == "completed"
        assert envelope.execution_result["result"]["api_key"] == "[REDACTED]"
        assert envelope.execution_result["result"]["note"] == "token=[REDACTED]"

    asyncio.run(scenario())


def test_wrap_envelope_produces_wire_shape() -> None:
    async def scenario() -> None:
        store, builder = await _builder()
        task = await store.create_task(TaskCreate(name="wire"), current_role="boomerang")
        envelope = await builder.build_guidance(task.id)

        wire = wrap_envelope(envelope, version=builder.version).model_dump(mode="json")

        assert set(wire) == {"version", "envelope", "success", "timestamp"}
        assert wire["success"] is True
        assert wire["version"] == "2.0.0"
        assert wire["envelope"]["type"] == "guidance"
        assert "metadata" in wire["envelope"]

    asyncio.run(scenario())
