import asyncio

import pytest

from taskflow_api.errors import InvalidOwnershipError, InvalidStateError, NotFoundError, ValidationError
from taskflow_api.role_transitions import RoleTransitionService
from taskflow_api.schemas import (
    CompletionData,
    CompletionPolicy,
    EscalationData,
    TaskCreate,
    TaskRead,
    TaskStatus,
)
from taskflow_api.seed import DEFAULT_ROLES, seed_defaults
from taskflow_api.store import InMemoryStore

ALL_ROLES = [role.name for role in DEFAULT_ROLES]


async def _setup(policy: CompletionPolicy = CompletionPolicy.COORDINATOR_RESET) -> tuple[InMemoryStore, RoleTransitionService]:
    store = InMemoryStore()
    await seed_defaults(store)
    service = RoleTransitionService(store, coordinator_role="boomerang", completion_policy=policy)
    return store, service


async def _task_owned_by(store: InMemoryStore, service: RoleTransitionService, role: str) -> TaskRead:
    task = await store.create_task(TaskCreate(name="T1"), current_role="boomerang")
    if role != "boomerang":
        result = await service.delegate(task.id, from_role="boomerang", to_role=role, message="handoff")
        task = result.task
    return task


async def _audit_counts(store: InMemoryStore, task_id: int) -> tuple[int, int]:
    delegations = await store.list_delegations(task_id=task_id)
    transitions = await store.list_transitions(task_id=task_id)
    return len(delegations), len(transitions)


async def _run_every_operation(service: RoleTransitionService, task_id: int, from_role: str, expected: type) -> None:
    with pytest.raises(expected):
        await service.delegate(task_id, from_role=from_role, to_role="researcher", message="x")
    with pytest.raises(expected):
        await service.complete(task_id, from_role=from_role, completion_data=CompletionData(summary="done"))
    with pytest.raises(expected):
        await service.escalate(
            task_id,
            from_role=from_role,
            to_role="architect",
            escalation_data=EscalationData(reason="blocked"),
        )
    with pytest.raises(expected):
        await service.transition(task_id, from_role=from_role, new_status=TaskStatus.PAUSED)


def test_operations_from_non_owner_fail_with_invalid_ownership() -> None:
    async def scenario() -> None:
        store, service = await _setup()
        task = await _task_owned_by(store, service, "architect")
        before = await _audit_counts(store, task.id)

        for role in ALL_ROLES:
            if role == task.current_role:
                continue
            await _run_every_operation(service, task.id, role, InvalidOwnershipError)

        assert await _audit_counts(store, task.id) == before
        assert (await store.get_task(task.id)).current_role == "architect"

    asyncio.run(scenario())


def test_operations_on_terminal_tasks_fail_without_audit_rows() -> None:
    async def scenario() -> None:
        store, service = await _setup()

        completed = await _task_owned_by(store, service, "senior-developer")
        await service.complete(completed.id, from_role="senior-developer", completion_data=CompletionData(summary="done"))

        cancelled = await _task_owned_by(store, service, "architect")
        await service.transition(cancelled.id, from_role="architect", new_status=TaskStatus.CANCELLED)

        for task_id in (completed.id, cancelled.id):
            task = await store.get_task(task_id)
            before = await _audit_counts(store, task_id)
            await _run_every_operation(service, task_id, task.current_role, InvalidStateError)
            assert await _audit_counts(store, task_id) == before

    asyncio.run(scenario())


def test_authorize_reports_missing_task() -> None:
    async def scenario() -> None:
        _, service = await _setup()
        with pytest.raises(NotFoundError) as exc_info:
            await service.authorize(999, "boomerang", operation="delegate")
        assert exc_info.value.to_error_payload()["operation"] == "delegate"

    asyncio.run(scenario())


def test_delegate_writes_one_record_of_each_kind() -> None:
    async def scenario() -> None:
        store, service = await _setup()
        task = await _task_owned_by(store, service, "architect")
        before_delegations, before_transitions = await _audit_counts(store, task.id)

        result = await service.delegate(task.id, from_role="architect", to_role="senior-developer", message="plan ready")

        after_delegations, after_transitions = await _audit_counts(store, task.id)
        assert after_delegations == before_delegations + 1
        assert after_transitions == before_transitions + 1
        assert result.delegation is not None
        assert result.delegation.from_role == "architect"
        assert result.delegation.to_role == "senior-developer"
        assert result.delegation.message == "plan ready"
        assert result.transition.reason == "plan ready"
        assert result.task.current_role == "senior-developer"
        assert result.task.status == TaskStatus.IN_PROGRESS
        assert result.task.redelegation_count == 2

        stored = await store.get_task(task.id)
        assert stored.current_role == "senior-developer"

    asyncio.run(scenario())


def test_delegate_honours_requested_status_and_default_reason() -> None:
    async def scenario() -> None:
        store, service = await _setup()
        task = await store.create_task(TaskCreate(name="review me"), current_role="boomerang")

        result = await service.delegate(
            task.id, from_role="boomerang", to_role="code-review", new_status=TaskStatus.NEEDS_REVIEW
        )

        assert result.task.status == TaskStatus.NEEDS_REVIEW
        assert result.transition.reason == "Delegated from boomerang to code-review"

    asyncio.run(scenario())


def test_delegate_rejects_unknown_or_same_role() -> None:
    async def scenario() -> None:
        store, service = await _setup()
        task = await store.create_task(TaskCreate(name="T1"), current_role="boomerang")

        with pytest.raises(NotFoundError):
            await service.delegate(task.id, from_role="boomerang", to_role="nobody")
        with pytest.raises(ValidationError):
            await service.delegate(task.id, from_role="boomerang", to_role="boomerang")
        assert await _audit_counts(store, task.id) == (0, 0)

    asyncio.run(scenario())


def test_escalate_from_needs_changes_appends_reason() -> None:
    async def scenario() -> None:
        store, service = await _setup()
        task = await _task_owned_by(store, service, "senior-developer")
        await service.transition(task.id, from_role="senior-developer", new_status=TaskStatus.NEEDS_CHANGES)
        assert (await store.get_task(task.id)).status == TaskStatus.NEEDS_CHANGES

        result = await service.escalate(
            task.id,
            from_role="senior-developer",
            to_role="architect",
            escalation_data=EscalationData(reason="blocked", severity="high", blockers=["missing schema"]),
        )

        transitions = await store.list_transitions(task_id=task.id)
        assert "blocked" in transitions[-1].reason
        assert transitions[-1].reason.startswith("Escalation: ")
        assert result.delegation is not None
        assert result.delegation.to_role == "architect"
        assert "missing schema" in result.delegation.message
        assert result.task.current_role == "architect"
        assert result.task.status == TaskStatus.NEEDS_CHANGES

    asyncio.run(scenario())


def test_complete_resets_owner_to_coordinator() -> None:
    async def scenario() -> None:
        store, service = await _setup()
        task = await _task_owned_by(store, service, "code-review")

        result = await service.complete(
            task.id,
            from_role="code-review",
            completion_data=CompletionData(summary="all criteria verified", files_modified=["a.py", "a.py"]),
            to_role="architect",
            new_status=TaskStatus.NEEDS_REVIEW,
        )

        assert result.task.status == TaskStatus.COMPLETED
        assert result.task.current_role == "boomerang"
        assert result.task.completion_date is not None
        assert result.transition.to_role == "boomerang"
        assert result.transition.reason == "all criteria verified"
        assert result.completion_report is not None
        assert result.completion_report.files_modified == ["a.py"]
        assert len(await store.list_completion_reports(task_id=task.id)) == 1

    asyncio.run(scenario())


def test_complete_can_honour_caller_target() -> None:
    async def scenario() -> None:
        store, service = await _setup(CompletionPolicy.HONOR_CALLER)
        task = await _task_owned_by(store, service, "senior-developer")

        result = await service.complete(
            task.id,
            from_role="senior-developer",
            completion_data=CompletionData(summary="ready for review"),
            to_role="code-review",
            new_status=TaskStatus.NEEDS_REVIEW,
        )

        assert result.task.current_role == "code-review"
        assert result.task.status == TaskStatus.NEEDS_REVIEW
        assert result.task.completion_date is None

    asyncio.run(scenario())


def test_complete_and_escalate_require_their_payloads() -> None:
    async def scenario() -> None:
        store, service = await _setup()
        task = await _task_owned_by(store, service, "architect")

        with pytest.raises(ValidationError):
            await service.complete(task.id, from_role="architect", completion_data=None)
        with pytest.raises(ValidationError):
            await service.escalate(task.id, from_role="architect", to_role="boomerang", escalation_data=None)

    asyncio.run(scenario())


def test_transition_keeps_owner_unless_role_given() -> None:
    async def scenario() -> None:
        store, service = await _setup()
        task = await _task_owned_by(store, service, "architect")

        paused = await service.transition(task.id, from_role="architect", new_status=TaskStatus.PAUSED)
        assert paused.task.current_role == "architect"
        assert paused.transition.to_role == "architect"
        assert paused.transition.reason == "Status changed to paused"
        assert paused.delegation is None

        moved = await service.transition(
            task.id,
            from_role="architect",
            new_status=TaskStatus.IN_PROGRESS,
            to_role="researcher",
            message="need research",
        )
        assert moved.task.current_role == "researcher"
        assert moved.transition.reason == "need research"

    asyncio.run(scenario())


def test_failed_write_rolls_back_audit_rows() -> None:
    async def scenario() -> None:
        store, service = await _setup()
        task = await store.create_task(TaskCreate(name="T1"), current_role="boomerang")

        async def broken_update(*args: object, **kwargs: object) -> TaskRead:
            raise RuntimeError("store unavailable")

        store.update_task = broken_update  # type: ignore[method-assign]
        with pytest.raises(RuntimeError):
            await service.delegate(task.id, from_role="boomerang", to_role="architect", message="go")

        assert await _audit_counts(store, task.id) == (0, 0)
        assert (await store.get_task(task.id)).current_role == "boomerang"

    asyncio.run(scenario())


def test_role_history_lists_audit_rows_in_order() -> None:
    async def scenario() -> None:
        store, service = await _setup()
        task = await _task_owned_by(store, service, "architect")
        await service.delegate(task.id, from_role="architect", to_role="senior-developer", message="plan ready")

        history = await service.get_role_history(task.id)

        assert history.current_role == "senior-developer"
        assert [item.to_role for item in history.delegations] == ["architect", "senior-developer"]
        assert [item.reason for item in history.transitions] == ["handoff", "plan ready"]

    asyncio.run(scenario())


def test_transition_into_completed_sets_completion_date() -> None:
    async def scenario() -> None:
        store, service = await _setup()
        task = await _task_owned_by(store, service, "architect")
        assert task.completion_date is None

        paused = await service.transition(task.id, from_role="architect", new_status=TaskStatus.PAUSED)
        assert paused.task.completion_date is None

        done = await service.transition(task.id, from_role="architect", new_status=TaskStatus.COMPLETED)

        assert done.task.status == TaskStatus.COMPLETED
        assert done.task.completion_date is not None
        assert (await store.get_task(task.id)).completion_date == done.task.completion_date

    asyncio.run(scenario())
