import asyncio

import pytest

from taskflow_api.errors import NotFoundError, ValidationError
from taskflow_api.schemas import SubtaskBatchCreate, SubtaskCreate, TaskCreate, TaskStatus
from taskflow_api.seed import seed_defaults
from taskflow_api.store import InMemoryStore
from taskflow_api.subtasks import SubtaskService


async def _setup() -> tuple[InMemoryStore, SubtaskService, int]:
    store = InMemoryStore()
    await seed_defaults(store)
    task = await store.create_task(TaskCreate(name="batched work"), current_role="senior-developer")
    return store, SubtaskService(store), task.id


def _batch(batch_id: str, *subtasks: SubtaskCreate) -> SubtaskBatchCreate:
    return SubtaskBatchCreate(batch_id=batch_id, batch_title=f"Batch {batch_id}", subtasks=list(subtasks))


def test_subtask_with_incomplete_dependencies_cannot_start() -> None:
    async def scenario() -> None:
        _, service, task_id = await _setup()
        result = await service.create_subtasks(
            task_id,
            _batch(
                "B1",
                SubtaskCreate(name="schema"),
                SubtaskCreate(name="fixtures"),
                SubtaskCreate(name="endpoint", dependencies=["schema", "fixtures"]),
            ),
        )
        by_name = {subtask.name: subtask for subtask in result.subtasks}
        assert [subtask.sequence_number for subtask in result.subtasks] == [1, 2, 3]
        assert by_name["endpoint"].dependencies == ["schema", "fixtures"]

        await service.update_subtask_status(by_name["schema"].id, TaskStatus.COMPLETED)
        with pytest.raises(ValidationError) as exc_info:
            await service.update_subtask_status(by_name["endpoint"].id, TaskStatus.IN_PROGRESS)

        assert "incomplete dependencies: fixtures" in str(exc_info.value)
        assert "'in-progress'" in str(exc_info.value)

        await service.update_subtask_status(by_name["fixtures"].id, TaskStatus.COMPLETED)
        started = await service.update_subtask_status(by_name["endpoint"].id, TaskStatus.IN_PROGRESS)
        assert started.status == TaskStatus.IN_PROGRESS
        assert started.started_at is not None
        assert started.completed_at is None

    asyncio.run(scenario())


def test_dependency_gate_does_not_apply_to_other_statuses() -> None:
    async def scenario() -> None:
        _, service, task_id = await _setup()
        result = await service.create_subtasks(
            task_id,
            _batch("B1", SubtaskCreate(name="a"), SubtaskCreate(name="b", dependencies=["a"])),
        )
        blocked = result.subtasks[1]

        paused = await service.update_subtask_status(blocked.id, TaskStatus.PAUSED)

        assert paused.status == TaskStatus.PAUSED

    asyncio.run(scenario())


def test_batch_update_only_touches_its_batch() -> None:
    async def scenario() -> None:
        store, service, task_id = await _setup()
        await service.create_subtasks(task_id, _batch("B1", SubtaskCreate(name="s1"), SubtaskCreate(name="s2")))
        await service.create_subtasks(task_id, _batch("B2", SubtaskCreate(name="s3", dependencies=["s1"])))

        status = await service.update_batch(task_id, "B1", TaskStatus.COMPLETED)

        assert status.total == 2
        assert status.completed == 2
        assert status.is_complete is True
        for subtask in await store.list_subtasks(task_id=task_id, batch_id="B1"):
            assert subtask.status == TaskStatus.COMPLETED
            assert subtask.completed_at is not None
        (other,) = await store.list_subtasks(task_id=task_id, batch_id="B2")
        assert other.status == TaskStatus.NOT_STARTED
        assert other.completed_at is None
        assert other.sequence_number == 3

    asyncio.run(scenario())


def test_batch_update_unknown_batch_is_not_found() -> None:
    async def scenario() -> None:
        _, service, task_id = await _setup()
        with pytest.raises(NotFoundError):
            await service.update_batch(task_id, "missing", TaskStatus.COMPLETED)
        with pytest.raises(NotFoundError):
            await service.get_batch_status(task_id, "missing")

    asyncio.run(scenario())


def test_next_subtask_respects_order_and_dependencies() -> None:
    async def scenario() -> None:
        _, service, task_id = await _setup()
        created = await service.create_subtasks(
            task_id,
            _batch(
                "B1",
                SubtaskCreate(name="design", sequence_number=2),
                SubtaskCreate(name="build", sequence_number=1, dependencies=["design"]),
            ),
        )
        by_name = {subtask.name: subtask for subtask in created.subtasks}

        first = await service.get_next_subtask(task_id)
        assert first.next_subtask is not None
        assert first.next_subtask.name == "design"
        assert first.message == "Next subtask: design"

        await service.update_subtask_status(by_name["design"].id, TaskStatus.COMPLETED)
        second = await service.get_next_subtask(task_id)
        assert second.next_subtask is not None
        assert second.next_subtask.name == "build"

        await service.update_subtask_status(by_name["build"].id, TaskStatus.COMPLETED)
        done = await service.get_next_subtask(task_id)
        assert done.next_subtask is None
        assert done.message == "No remaining subtasks"

    asyncio.run(scenario())


def test_next_subtask_reports_blocked_work() -> None:
    async def scenario() -> None:
        _, service, task_id = await _setup()
        created = await service.create_subtasks(
            task_id,
            _batch("B1", SubtaskCreate(name="a"), SubtaskCreate(name="b", dependencies=["a"])),
        )
        await service.update_subtask_status(created.subtasks[0].id, TaskStatus.PAUSED)

        result = await service.get_next_subtask(task_id)

        assert result.next_subtask is None
        assert result.message == "Remaining subtasks are blocked by incomplete dependencies"

    asyncio.run(scenario())


def test_create_subtasks_rejects_invalid_graphs_without_writing() -> None:
    async def scenario() -> None:
        store, service, task_id = await _setup()

        with pytest.raises(ValidationError, match="contains a cycle"):
            await service.create_subtasks(
                task_id,
                _batch("B1", SubtaskCreate(name="a", dependencies=["b"]), SubtaskCreate(name="b", dependencies=["a"])),
            )
        with pytest.raises(ValidationError, match="is not a known subtask"):
            await service.create_subtasks(task_id, _batch("B1", SubtaskCreate(name="a", dependencies=["ghost"])))
        with pytest.raises(ValidationError, match="cannot depend on itself"):
            await service.create_subtasks(task_id, _batch("B1", SubtaskCreate(name="a", dependencies=["a"])))

        assert await store.list_subtasks(task_id=task_id) == []

    asyncio.run(scenario())


def test_later_batch_can_depend_on_existing_subtask() -> None:
    async def scenario() -> None:
        _, service, task_id = await _setup()
        first = await service.create_subtasks(task_id, _batch("B1", SubtaskCreate(name="migrate")))
        second = await service.create_subtasks(
            task_id, _batch("B2", SubtaskCreate(name="backfill", dependencies=["migrate"]))
        )
        backfill = second.subtasks[0]

        with pytest.raises(ValidationError):
            await service.update_subtask_status(backfill.id, TaskStatus.COMPLETED)

        await service.update_subtask_status(first.subtasks[0].id, TaskStatus.COMPLETED)
        completed = await service.update_subtask_status(backfill.id, TaskStatus.COMPLETED)
        assert completed.completed_at is not None

    asyncio.run(scenario())


def test_subtask_names_must_be_unique_per_task() -> None:
    async def scenario() -> None:
        _, service, task_id = await _setup()
        await service.create_subtasks(task_id, _batch("B1", SubtaskCreate(name="docs")))

        with pytest.raises(ValidationError, match="already exist"):
            await service.create_subtasks(task_id, _batch("B2", SubtaskCreate(name="docs")))

    asyncio.run(scenario())


def test_create_subtasks_for_unknown_task_is_not_found() -> None:
    async def scenario() -> None:
        _, service, _ = await _setup()
        with pytest.raises(NotFoundError) as exc_info:
            await service.create_subtasks(999, _batch("B1", SubtaskCreate(name="x")))
        assert exc_info.value.operation == "create_subtasks"

    asyncio.run(scenario())


def test_batch_update_respects_dependencies_outside_the_batch() -> None:
    async def scenario() -> None:
        store, service, task_id = await _setup()
        await service.create_subtasks(task_id, _batch("B1", SubtaskCreate(name="s1")))
        await service.create_subtasks(task_id, _batch("B2", SubtaskCreate(name="s3", dependencies=["s1"])))

        for status in (TaskStatus.IN_PROGRESS, TaskStatus.COMPLETED):
            with pytest.raises(ValidationError) as exc_info:
                await service.update_batch(task_id, "B2", status)
            assert "incomplete dependencies: s1" in str(exc_info.value)
            assert exc_info.value.operation == "update_batch"

        (blocked,) = await store.list_subtasks(task_id=task_id, batch_id="B2")
        assert blocked.status == TaskStatus.NOT_STARTED
        assert blocked.started_at is None

        await service.update_batch(task_id, "B1", TaskStatus.COMPLETED)
        started = await service.update_batch(task_id, "B2", TaskStatus.IN_PROGRESS)
        assert started.in_progress == 1

    asyncio.run(scenario())


def test_batch_dependencies_inside_the_batch_gate_start_but_not_completion() -> None:
    async def scenario() -> None:
        _, service, task_id = await _setup()
        await service.create_subtasks(
            task_id,
            _batch("B1", SubtaskCreate(name="a"), SubtaskCreate(name="b", dependencies=["a"])),
        )

        with pytest.raises(ValidationError, match="incomplete dependencies: a"):
            await service.update_batch(task_id, "B1", TaskStatus.IN_PROGRESS)

        completed = await service.update_batch(task_id, "B1", TaskStatus.COMPLETED)
        assert completed.is_complete is True

    asyncio.run(scenario())
