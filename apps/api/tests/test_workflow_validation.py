import pytest

from taskflow_api.schemas import SubtaskCreate
from taskflow_api.workflow_validation import validate_subtask_dag


def test_valid_dag_passes() -> None:
    validate_subtask_dag(
        [
            SubtaskCreate(name="plan"),
            SubtaskCreate(name="build", dependencies=["plan"]),
            SubtaskCreate(name="test", dependencies=["build", "plan"]),
        ]
    )


def test_duplicate_names_are_rejected() -> None:
    with pytest.raises(ValueError, match="unique"):
        validate_subtask_dag([SubtaskCreate(name="a"), SubtaskCreate(name="a")])


def test_three_node_cycle_is_rejected() -> None:
    with pytest.raises(ValueError, match="cycle"):
        validate_subtask_dag(
            [
                SubtaskCreate(name="a", dependencies=["c"]),
                SubtaskCreate(name="b", dependencies=["a"]),
                SubtaskCreate(name="c", dependencies=["b"]),
            ]
        )


def test_existing_names_satisfy_dependencies() -> None:
    validate_subtask_dag([SubtaskCreate(name="b", dependencies=["a"])], existing_names={"a"})

    with pytest.raises(ValueError, match="not a known subtask"):
        validate_subtask_dag([SubtaskCreate(name="b", dependencies=["a"])])
