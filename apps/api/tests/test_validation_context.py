import asyncio

from taskflow_api.schemas import TaskCreate
from taskflow_api.seed import seed_defaults
from taskflow_api.store import InMemoryStore
from taskflow_api.validation_context import PROJECT_STANDARDS, ValidationContextBuilder


async def _seeded_store() -> InMemoryStore:
    store = InMemoryStore()
    await seed_defaults(store)
    return store


def test_context_is_derived_from_configured_step() -> None:
    async def scenario() -> None:
        store = await _seeded_store()
        task = await store.create_task(TaskCreate(name="plan"), current_role="architect")

        context = await ValidationContextBuilder(store).build("architect", "architect-planning", task.id)

        assert [pattern.id for pattern in context.quality_patterns] == [
            "architect-planning-principles",
            "architect-planning-patterns",
            "architect-planning-quality",
        ]
        assert [pattern.category for pattern in context.quality_patterns] == ["BEHAVIORAL", "ARCHITECTURAL", "QUALITY"]
        assert context.quality_patterns[2].priority == "MEDIUM"

        assert len(context.validation_checks) == 1
        check = context.validation_checks[0]
        assert check.name == "validate_plan"
        assert check.expected_outcome == "Plan covers all acceptance criteria"
        assert check.failure_actions == ["Review and fix validation errors"]
        assert check.description == "Validation check for Implementation Planning"

        assert [item.id for item in context.anti_patterns] == ["architect-planning-big-bang-batch"]
        assert context.anti_patterns[0].category == "PATTERN_VIOLATION"
        assert context.role_standards == ["Follow architectural principles", "Ensure scalability"]
        assert context.step_criteria == ["Batches are independently testable"]
        assert context.project_standards == list(PROJECT_STANDARDS)

    asyncio.run(scenario())


def test_anti_pattern_checks_become_validation_anti_patterns() -> None:
    async def scenario() -> None:
        store = await _seeded_store()
        task = await store.create_task(TaskCreate(name="implement"), current_role="senior-developer")

        context = await ValidationContextBuilder(store).build(
            "senior-developer", "senior-developer-implementation", task.id
        )

        assert len(context.anti_patterns) == 1
        anti_pattern = context.anti_patterns[0]
        assert anti_pattern.name == "Avoid hardcoded-secrets"
        assert anti_pattern.category == "VALIDATION"
        assert anti_pattern.consequences == ["Code quality degradation"]
        assert [check.id for check in context.validation_checks] == ["code-compilation", "test-coverage"]

    asyncio.run(scenario())


def test_empty_step_falls_back_to_catalogs() -> None:
    async def scenario() -> None:
        store = await _seeded_store()
        task = await store.create_task(TaskCreate(name="intake"), current_role="boomerang")

        context = await ValidationContextBuilder(store).build("boomerang", "boomerang-delegate", task.id)

        assert [pattern.id for pattern in context.quality_patterns] == ["solid-principles", "requirements-clarity"]
        assert [check.id for check in context.validation_checks] == ["code-compilation"]
        assert [item.id for item in context.anti_patterns] == ["god-object", "vague-requirements"]
        assert context.anti_patterns[1].category == "ANALYSIS"
        assert context.step_criteria == []

    asyncio.run(scenario())


def test_each_derivation_falls_back_independently() -> None:
    async def scenario() -> None:
        store = await _seeded_store()
        task = await store.create_task(TaskCreate(name="plan"), current_role="architect")

        async def broken(*args: object, **kwargs: object) -> list:
            raise RuntimeError("actions table unavailable")

        store.list_step_actions = broken  # type: ignore[method-assign]
        context = await ValidationContextBuilder(store).build("architect", "architect-planning", task.id)

        assert [check.id for check in context.validation_checks] == ["code-compilation"]
        assert context.quality_patterns[0].id == "architect-planning-principles"
        assert context.anti_patterns[0].id == "architect-planning-big-bang-batch"

    asyncio.run(scenario())


def test_unknown_role_and_task_still_get_defaults() -> None:
    async def scenario() -> None:
        store = await _seeded_store()

        context = await ValidationContextBuilder(store).build("translator", None, 999)

        assert context.role_standards == ["Follow best practices"]
        assert context.project_standards == list(PROJECT_STANDARDS)
        assert [pattern.id for pattern in context.quality_patterns] == ["solid-principles"]
        assert context.step_criteria == []

    asyncio.run(scenario())


def test_unknown_role_anti_patterns_use_generic_catalog() -> None:
    async def scenario() -> None:
        store = await _seeded_store()

        anti_patterns = await ValidationContextBuilder(store).anti_patterns("translator", None)

        assert [item.id for item in anti_patterns] == ["god-object"]

    asyncio.run(scenario())


def test_project_standards_include_task_technical_requirements() -> None:
    async def scenario() -> None:
        store = await _seeded_store()
        task = await store.create_task(
            TaskCreate(name="export", technical_requirements="Python 3.11 and FastAPI"),
            current_role="senior-developer",
        )

        standards = await ValidationContextBuilder(store).project_standards(task.id)

        assert standards[: len(PROJECT_STANDARDS)] == list(PROJECT_STANDARDS)
        assert standards[-1] == "Meet technical requirements: Python 3.11 and FastAPI"

    asyncio.run(scenario())
