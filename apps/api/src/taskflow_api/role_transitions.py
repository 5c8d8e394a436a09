from __future__ import annotations

import logging
from datetime import datetime, timezone

from taskflow_api.completion_policy import resolve_completion_target
from taskflow_api.errors import InvalidOwnershipError, InvalidStateError, NotFoundError, ValidationError
from taskflow_api.schemas import (
    TERMINAL_TASK_STATUSES,
    CompletionData,
    CompletionPolicy,
    EscalationData,
    RoleHistory,
    RoleOperation,
    RoleTransitionResult,
    TaskRead,
    TaskStatus,
)
from taskflow_api.store import InMemoryStore

logger = logging.getLogger(__name__)


class RoleTransitionService:
    """Role operations over a task, each gated by ownership and state checks.

    Every operation runs inside one ``store.atomic()`` unit so the audit log
    rows and the task update are either all written or none are.
    """

    def __init__(
        self,
        store: InMemoryStore,
        *,
        coordinator_role: str,
        completion_policy: CompletionPolicy = CompletionPolicy.COORDINATOR_RESET,
    ) -> None:
        self._store = store
        self._coordinator_role = coordinator_role
        self._completion_policy = completion_policy

    async def authorize(self, task_id: int, from_role: str, *, operation: str = "authorize") -> TaskRead:
        try:
            task = await self._store.get_task(task_id)
        except NotFoundError as exc:
            raise NotFoundError(str(exc), operation=operation) from exc

        if task.current_role != from_role:
            raise InvalidOwnershipError(
                f"task {task_id} is owned by '{task.current_role}', not '{from_role}'",
                operation=operation,
            )
        if task.status in TERMINAL_TASK_STATUSES:
            raise InvalidStateError(
                f"task {task_id} is {task.status.value} and accepts no further role operations",
                operation=operation,
            )
        return task

    async def delegate(
        self,
        task_id: int,
        *,
        from_role: str,
        to_role: str,
        message: str = "",
        new_status: TaskStatus | None = None,
    ) -> RoleTransitionResult:
        operation = RoleOperation.DELEGATE.value
        async with self._store.atomic():
            await self.authorize(task_id, from_role, operation=operation)
            await self._require_role(to_role, operation=operation)
            if to_role == from_role:
                raise ValidationError(f"task {task_id} cannot be delegated to its current owner", operation=operation)

            delegation = await self._store.create_delegation(
                task_id=task_id, from_role=from_role, to_role=to_role, message=message
            )
            transition = await self._store.create_transition(
                task_id=task_id,
                from_role=from_role,
                to_role=to_role,
                reason=message or f"Delegated from {from_role} to {to_role}",
            )
            task = await self._store.update_task(
                task_id,
                status=new_status or TaskStatus.IN_PROGRESS,
                current_role=to_role,
                increment_redelegation=True,
            )

        logger.info("task %s delegated from %s to %s", task_id, from_role, to_role)
        return RoleTransitionResult(operation=operation, task=task, transition=transition, delegation=delegation)

    async def complete(
        self,
        task_id: int,
        *,
        from_role: str,
        completion_data: CompletionData | None,
        to_role: str | None = None,
        new_status: TaskStatus | None = None,
    ) -> RoleTransitionResult:
        operation = RoleOperation.COMPLETE.value
        async with self._store.atomic():
            await self.authorize(task_id, from_role, operation=operation)
            if completion_data is None or not completion_data.summary.strip():
                raise ValidationError("completion data requires a summary", operation=operation)

            target = resolve_completion_target(
                policy=self._completion_policy,
                coordinator_role=self._coordinator_role,
                requested_role=to_role,
                requested_status=new_status,
            )
            await self._require_role(target.role, operation=operation)

            report = await self._store.create_completion_report(task_id=task_id, data=completion_data)
            transition = await self._store.create_transition(
                task_id=task_id,
                from_role=from_role,
                to_role=target.role,
                reason=completion_data.summary,
            )
            completion_date = _utc_now() if target.status == TaskStatus.COMPLETED else None
            task = await self._store.update_task(
                task_id,
                status=target.status,
                current_role=target.role,
                completion_date=completion_date,
            )

        logger.info("task %s completed by %s, returned to %s", task_id, from_role, target.role)
        return RoleTransitionResult(
            operation=operation, task=task, transition=transition, completion_report=report
        )

    async def escalate(
        self,
        task_id: int,
        *,
        from_role: str,
        to_role: str,
        escalation_data: EscalationData | None,
        new_status: TaskStatus | None = None,
    ) -> RoleTransitionResult:
        operation = RoleOperation.ESCALATE.value
        async with self._store.atomic():
            await self.authorize(task_id, from_role, operation=operation)
            if escalation_data is None or not escalation_data.reason.strip():
                raise ValidationError("escalation data requires a reason", operation=operation)
            await self._require_role(to_role, operation=operation)

            reason = escalation_data.reason
            details: list[str] = []
            if escalation_data.severity is not None:
                details.append(f"severity: {escalation_data.severity.value}")
            if escalation_data.blockers:
                details.append(f"blockers: {', '.join(escalation_data.blockers)}")
            if details:
                reason = f"{reason} ({'; '.join(details)})"

            delegation = await self._store.create_delegation(
                task_id=task_id, from_role=from_role, to_role=to_role, message=reason
            )
            transition = await self._store.create_transition(
                task_id=task_id,
                from_role=from_role,
                to_role=to_role,
                reason=f"Escalation: {reason}",
            )
            task = await self._store.update_task(
                task_id,
                status=new_status or TaskStatus.NEEDS_CHANGES,
                current_role=to_role,
            )

        logger.warning("task %s escalated from %s to %s", task_id, from_role, to_role)
        return RoleTransitionResult(operation=operation, task=task, transition=transition, delegation=delegation)

    async def transition(
        self,
        task_id: int,
        *,
        from_role: str,
        new_status: TaskStatus,
        to_role: str | None = None,
        message: str | None = None,
    ) -> RoleTransitionResult:
        operation = RoleOperation.TRANSITION.value
        async with self._store.atomic():
            await self.authorize(task_id, from_role, operation=operation)
            if to_role is not None:
                await self._require_role(to_role, operation=operation)

            target_role = to_role or from_role
            transition = await self._store.create_transition(
                task_id=task_id,
                from_role=from_role,
                to_role=target_role,
                reason=message or f"Status changed to {new_status.value}",
            )
            if new_status == TaskStatus.COMPLETED:
                task = await self._store.update_task(
                    task_id, status=new_status, current_role=to_role, completion_date=_utc_now()
                )
            else:
                task = await self._store.update_task(task_id, status=new_status, current_role=to_role)

        logger.info("task %s transitioned to %s (%s)", task_id, new_status.value, target_role)
        return RoleTransitionResult(operation=operation, task=task, transition=transition)

    async def get_role_history(self, task_id: int) -> RoleHistory:
        task = await self._store.get_task(task_id)
        return RoleHistory(
            task_id=task_id,
            current_role=task.current_role,
            delegations=await self._store.list_delegations(task_id=task_id),
            transitions=await self._store.list_transitions(task_id=task_id),
        )

    async def _require_role(self, role_name: str, *, operation: str) -> None:
        try:
            await self._store.get_role(role_name)
        except NotFoundError as exc:
            raise NotFoundError(str(exc), operation=operation) from exc


def _utc_now() -> str:
    return datetime.now(timezone.utc).isoformat()
