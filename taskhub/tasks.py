"""Task lifecycle: creation, status transitions and creator/assignee authorization."""
from __future__ import annotations

import logging
from dataclasses import replace
from datetime import datetime, timezone
from typing import Dict, FrozenSet, List, Optional

from .errors import (
    AssigneeNotFoundError,
    CreatorNotFoundError,
    InvalidInputError,
    InvalidTransitionError,
    NotFoundError,
    TaskNotFoundError,
    UnauthorizedError,
)
from .models import UNSET, Task, TaskStatus, truncate_to_millis, utcnow
from .repositories import TaskRepository, UserRepository

logger = logging.getLogger("taskhub.tasks")

MIN_PRIORITY = 1
MAX_PRIORITY = 5

ALLOWED_TRANSITIONS: Dict[TaskStatus, FrozenSet[TaskStatus]] = {
    TaskStatus.PENDING: frozenset({TaskStatus.IN_PROGRESS, TaskStatus.COMPLETED}),
    TaskStatus.IN_PROGRESS: frozenset({TaskStatus.COMPLETED}),
    TaskStatus.COMPLETED: frozenset({TaskStatus.IN_PROGRESS}),
}


def is_valid_transition(current: TaskStatus, new: TaskStatus) -> bool:
    return new in ALLOWED_TRANSITIONS.get(current, frozenset())


def parse_status(value: object) -> TaskStatus:
    if isinstance(value, TaskStatus):
        return value
    try:
        return TaskStatus(str(value).strip().lower())
    except ValueError as exc:
        raise InvalidInputError(f"unknown task status: {value}") from exc


def _check_priority(priority: object) -> int:
    if isinstance(priority, bool) or not isinstance(priority, int):
        raise InvalidInputError("priority must be an integer between 1 and 5")
    if priority < MIN_PRIORITY or priority > MAX_PRIORITY:
        raise InvalidInputError("priority must be between 1 and 5")
    return priority


def _check_title(title: object) -> str:
    if not isinstance(title, str) or not title.strip():
        raise InvalidInputError("title is required")
    return title.strip()


def _normalize_due_date(value: Optional[datetime]) -> Optional[datetime]:
    if value is None:
        return None
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return truncate_to_millis(value.astimezone(timezone.utc))


class TaskLifecycle:
    """Use cases for tasks.

    Authorization lives in each operation: the creator may update, delete and
    assign; the assignee may only update.
    """

    def __init__(self, tasks: TaskRepository, users: UserRepository) -> None:
        self._tasks = tasks
        self._users = users

    def create(
        self,
        title: str,
        description: Optional[str],
        priority: int,
        due_date: Optional[datetime] = None,
        *,
        created_by: str,
    ) -> Task:
        title = _check_title(title)
        priority = _check_priority(priority)
        try:
            self._users.find_by_id(created_by)
        except NotFoundError as exc:
            raise CreatorNotFoundError() from exc

        now = utcnow()
        task = self._tasks.create(
            Task(
                id="",
                title=title,
                description=description or None,
                status=TaskStatus.PENDING,
                priority=priority,
                due_date=_normalize_due_date(due_date),
                created_by=created_by,
                created_at=now,
                updated_at=now,
            )
        )
        logger.info("Task %s created by %s", task.id, created_by)
        return task

    def get_by_id(self, task_id: str) -> Task:
        try:
            return self._tasks.find_by_id(task_id)
        except NotFoundError as exc:
            raise TaskNotFoundError() from exc

    def update(
        self,
        task_id: str,
        *,
        updated_by: str,
        title: object = UNSET,
        description: object = UNSET,
        status: object = UNSET,
        priority: object = UNSET,
        due_date: object = UNSET,
    ) -> Task:
        """Apply a partial update on behalf of ``updated_by``.

        Fields left as ``UNSET`` are unchanged. ``description=None`` and
        ``due_date=None`` clear those fields; ``None`` for the other fields
        means "unchanged".
        """

        task = self.get_by_id(task_id)
        if not task.is_editable_by(updated_by):
            raise UnauthorizedError("only the creator or the assignee may update this task")

        changes: Dict[str, object] = {}
        if title is not UNSET and title is not None:
            changes["title"] = _check_title(title)
        if description is not UNSET:
            changes["description"] = description or None
        if priority is not UNSET and priority is not None:
            changes["priority"] = _check_priority(priority)
        if due_date is not UNSET:
            changes["due_date"] = _normalize_due_date(due_date)  # type: ignore[arg-type]
        if status is not UNSET and status is not None:
            new_status = parse_status(status)
            if not is_valid_transition(task.status, new_status):
                raise InvalidTransitionError(task.status.value, new_status.value)
            changes["status"] = new_status

        updated = replace(task, updated_at=utcnow(), **changes)
        self._save(updated)
        if "status" in changes:
            logger.info("Task %s moved from %s to %s by %s", task.id, task.status.value, updated.status.value, updated_by)
        return updated

    def delete(self, task_id: str, requester_id: str) -> None:
        task = self.get_by_id(task_id)
        if task.created_by != requester_id:
            raise UnauthorizedError("only the creator may delete this task")
        try:
            self._tasks.delete(task.id)
        except NotFoundError as exc:
            raise TaskNotFoundError() from exc
        logger.info("Task %s deleted by %s", task.id, requester_id)

    def assign(self, task_id: str, assignee_id: str, assigner_id: str) -> Task:
        task = self.get_by_id(task_id)
        if task.created_by != assigner_id:
            raise UnauthorizedError("only the creator may assign this task")
        try:
            self._users.find_by_id(assignee_id)
        except NotFoundError as exc:
            raise AssigneeNotFoundError() from exc

        status = task.status
        # Assigning a pending task starts it.
        if status is TaskStatus.PENDING:
            status = TaskStatus.IN_PROGRESS

        updated = replace(task, assigned_to=assignee_id, status=status, updated_at=utcnow())
        self._save(updated)
        logger.info("Task %s assigned to %s by %s", task.id, assignee_id, assigner_id)
        return updated

    def list_all(self) -> List[Task]:
        return self._tasks.find_all(None)

    def list_by_status(self, status: object) -> List[Task]:
        return self._tasks.find_by_status(parse_status(status))

    def list_by_user(self, user_id: str) -> List[Task]:
        return self._tasks.find_by_user(user_id)

    def _save(self, task: Task) -> None:
        try:
            self._tasks.update(task)
        except NotFoundError as exc:
            raise TaskNotFoundError() from exc


__all__ = [
    "ALLOWED_TRANSITIONS",
    "MAX_PRIORITY",
    "MIN_PRIORITY",
    "TaskLifecycle",
    "is_valid_transition",
    "parse_status",
]
