"""Persistence interfaces plus an in-process implementation of them.

The in-memory store follows the same contract as the MongoDB store: absent
keys raise :class:`NotFoundError`, unique-field collisions raise
:class:`DuplicateKeyError`, and every call is atomic for the single record it
touches. Nothing coordinates concurrent read-modify-write cycles, so two
updates of the same record resolve as last-writer-wins.
"""
from __future__ import annotations

import threading
from dataclasses import replace
from datetime import datetime
from typing import Dict, Iterable, List, Mapping, Optional, Protocol, Tuple

from bson import ObjectId

from .errors import DuplicateKeyError, NotFoundError
from .models import Task, TaskStatus, User


class UserRepository(Protocol):
    def find_by_id(self, user_id: str) -> User: ...

    def find_by_email(self, email: str) -> User: ...

    def find_by_username(self, username: str) -> User: ...

    def create(self, user: User) -> User: ...

    def update(self, user: User) -> None: ...

    def delete(self, user_id: str) -> None: ...


class TaskRepository(Protocol):
    def find_by_id(self, task_id: str) -> Task: ...

    def find_all(self, filter: Optional[Mapping[str, object]] = None) -> List[Task]: ...

    def create(self, task: Task) -> Task: ...

    def update(self, task: Task) -> None: ...

    def delete(self, task_id: str) -> None: ...

    def find_by_user(self, user_id: str) -> List[Task]: ...

    def find_by_status(self, status: TaskStatus) -> List[Task]: ...


def new_id() -> str:
    return str(ObjectId())


def due_date_sort_key(task: Task) -> Tuple[bool, datetime | None]:
    """Ascending due date with undated tasks first, as the document store sorts nulls."""

    return (task.due_date is not None, task.due_date)


def sort_by_due_date(tasks: Iterable[Task]) -> List[Task]:
    return sorted(tasks, key=due_date_sort_key)


class InMemoryUserRepository:
    """Thread-safe dictionary-backed user store."""

    def __init__(self) -> None:
        self._users: Dict[str, User] = {}
        self._lock = threading.Lock()

    def find_by_id(self, user_id: str) -> User:
        with self._lock:
            user = self._users.get(user_id)
        if user is None:
            raise NotFoundError("user not found")
        return user

    def find_by_email(self, email: str) -> User:
        return self._find_one(lambda user: user.email == email)

    def find_by_username(self, username: str) -> User:
        return self._find_one(lambda user: user.username == username)

    def create(self, user: User) -> User:
        created = replace(user, id=user.id or new_id())
        with self._lock:
            if created.id in self._users:
                raise DuplicateKeyError("_id")
            self._check_unique_locked(created)
            self._users[created.id] = created
        return created

    def update(self, user: User) -> None:
        with self._lock:
            if user.id not in self._users:
                raise NotFoundError("user not found")
            self._check_unique_locked(user)
            self._users[user.id] = user

    def delete(self, user_id: str) -> None:
        with self._lock:
            if self._users.pop(user_id, None) is None:
                raise NotFoundError("user not found")

    def list(self) -> List[User]:
        with self._lock:
            return sorted(self._users.values(), key=lambda user: user.created_at)

    def _find_one(self, predicate) -> User:
        with self._lock:
            for user in self._users.values():
                if predicate(user):
                    return user
        raise NotFoundError("user not found")

    def _check_unique_locked(self, candidate: User) -> None:
        for existing in self._users.values():
            if existing.id == candidate.id:
                continue
            if existing.username == candidate.username:
                raise DuplicateKeyError("username")
            if existing.email == candidate.email:
                raise DuplicateKeyError("email")


class InMemoryTaskRepository:
    """Thread-safe dictionary-backed task store."""

    def __init__(self) -> None:
        self._tasks: Dict[str, Task] = {}
        self._lock = threading.Lock()

    def find_by_id(self, task_id: str) -> Task:
        with self._lock:
            task = self._tasks.get(task_id)
        if task is None:
            raise NotFoundError("task not found")
        return task

    def find_all(self, filter: Optional[Mapping[str, object]] = None) -> List[Task]:
        criteria = dict(filter or {})
        with self._lock:
            tasks = list(self._tasks.values())
        return sort_by_due_date(task for task in tasks if _matches(task, criteria))

    def create(self, task: Task) -> Task:
        created = replace(task, id=task.id or new_id())
        with self._lock:
            if created.id in self._tasks:
                raise DuplicateKeyError("_id")
            self._tasks[created.id] = created
        return created

    def update(self, task: Task) -> None:
        with self._lock:
            existing = self._tasks.get(task.id)
            if existing is None:
                raise NotFoundError("task not found")
            # created_by and created_at are never rewritten once stored.
            self._tasks[task.id] = replace(task, created_by=existing.created_by, created_at=existing.created_at)

    def delete(self, task_id: str) -> None:
        with self._lock:
            if self._tasks.pop(task_id, None) is None:
                raise NotFoundError("task not found")

    def find_by_user(self, user_id: str) -> List[Task]:
        with self._lock:
            tasks = list(self._tasks.values())
        return sort_by_due_date(
            task for task in tasks if task.created_by == user_id or task.assigned_to == user_id
        )

    def find_by_status(self, status: TaskStatus) -> List[Task]:
        return self.find_all({"status": status})


def _matches(task: Task, criteria: Mapping[str, object]) -> bool:
    for key, expected in criteria.items():
        actual = getattr(task, key, None)
        if isinstance(actual, TaskStatus):
            actual = actual.value
        if isinstance(expected, TaskStatus):
            expected = expected.value
        if actual != expected:
            return False
    return True


__all__ = [
    "InMemoryTaskRepository",
    "InMemoryUserRepository",
    "TaskRepository",
    "UserRepository",
    "due_date_sort_key",
    "new_id",
    "sort_by_due_date",
]
