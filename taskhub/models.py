"""Domain records for users and tasks."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Optional


def truncate_to_millis(value: datetime) -> datetime:
    return value.replace(microsecond=value.microsecond // 1000 * 1000)


def utcnow() -> datetime:
    """Current UTC time truncated to the millisecond precision of the store."""

    return truncate_to_millis(datetime.now(timezone.utc))


class _Unset:
    """Marker for "field not provided" in partial updates."""

    _instance: Optional["_Unset"] = None

    def __new__(cls) -> "_Unset":
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __repr__(self) -> str:
        return "UNSET"

    def __bool__(self) -> bool:
        return False


UNSET: Any = _Unset()


class TaskStatus(str, Enum):
    """Lifecycle state of a task."""

    PENDING = "pending"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"


@dataclass(frozen=True)
class User:
    """A registered account. ``password_hash`` never leaves the service layer."""

    id: str
    username: str
    email: str
    password_hash: str
    created_at: datetime
    updated_at: datetime
    first_name: Optional[str] = None
    last_name: Optional[str] = None


@dataclass(frozen=True)
class Task:
    """A unit of work owned by its creator and optionally delegated."""

    id: str
    title: str
    status: TaskStatus
    priority: int
    created_by: str
    created_at: datetime
    updated_at: datetime
    description: Optional[str] = None
    due_date: Optional[datetime] = None
    assigned_to: Optional[str] = None

    def is_editable_by(self, user_id: str) -> bool:
        return user_id == self.created_by or (self.assigned_to is not None and user_id == self.assigned_to)


__all__ = ["Task", "TaskStatus", "UNSET", "User", "truncate_to_millis", "utcnow"]
