from __future__ import annotations

from collections import deque
from typing import Protocol


class SubtaskLike(Protocol):
    name: str
    dependencies: list[str]


def validate_subtask_dag(subtasks: list[SubtaskLike], *, existing_names: set[str] | None = None) -> None:
    """Check that a batch of subtasks forms a DAG.

    Dependencies may name subtasks from the same batch or, through
    ``existing_names``, subtasks already created for the task. Edges to
    existing subtasks cannot close a cycle because those never gain new
    dependencies.
    """
    names = [subtask.name for subtask in subtasks]
    unique_names = set(names)
    known = unique_names | (existing_names or set())

    if len(unique_names) != len(names):
        raise ValueError("subtask names must be unique within a batch")

    graph: dict[str, list[str]] = {name: [] for name in names}
    indegree: dict[str, int] = {name: 0 for name in names}

    for subtask in subtasks:
        for dependency in subtask.dependencies:
            if dependency == subtask.name:
                raise ValueError(f"subtask '{subtask.name}' cannot depend on itself")
            if dependency not in known:
                raise ValueError(f"subtask dependency '{dependency}' is not a known subtask")
            if dependency in unique_names:
                graph[dependency].append(subtask.name)
                indegree[subtask.name] += 1

    queue = deque([name for name, degree in indegree.items() if degree == 0])
    visited = 0

    while queue:
        current = queue.popleft()
        visited += 1
        for next_name in graph[current]:
            indegree[next_name] -= 1
            if indegree[next_name] == 0:
                queue.append(next_name)

    if visited != len(names):
        raise ValueError("subtask dependency graph contains a cycle")
