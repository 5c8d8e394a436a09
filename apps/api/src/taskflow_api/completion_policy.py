from __future__ import annotations

from dataclasses import dataclass

from taskflow_api.schemas import CompletionPolicy, TaskStatus


@dataclass(frozen=True)
class CompletionTarget:
    role: str
    status: TaskStatus


def resolve_completion_target(
    *,
    policy: CompletionPolicy,
    coordinator_role: str,
    requested_role: str | None = None,
    requested_status: TaskStatus | None = None,
) -> CompletionTarget:
    if policy == CompletionPolicy.HONOR_CALLER:
        return CompletionTarget(
            role=requested_role or coordinator_role,
            status=requested_status or TaskStatus.COMPLETED,
        )
    return CompletionTarget(role=coordinator_role, status=TaskStatus.COMPLETED)
