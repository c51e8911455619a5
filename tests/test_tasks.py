from __future__ import annotations

from datetime import datetime, timedelta, timezone
from itertools import product

import pytest

from taskhub.application import Services
from taskhub.errors import (
    AssigneeNotFoundError,
    CreatorNotFoundError,
    InvalidInputError,
    InvalidTransitionError,
    TaskNotFoundError,
    UnauthorizedError,
)
from taskhub.models import Task, TaskStatus, User
from taskhub.tasks import ALLOWED_TRANSITIONS, is_valid_transition, parse_status

EXPECTED_TRANSITIONS = {
    (TaskStatus.PENDING, TaskStatus.IN_PROGRESS),
    (TaskStatus.PENDING, TaskStatus.COMPLETED),
    (TaskStatus.IN_PROGRESS, TaskStatus.COMPLETED),
    (TaskStatus.COMPLETED, TaskStatus.IN_PROGRESS),
}


def _create(services: Services, owner: User, title: str = "Write report", **kwargs) -> Task:
    kwargs.setdefault("priority", 3)
    return services.tasks.create(title, kwargs.pop("description", None), created_by=owner.id, **kwargs)


@pytest.mark.parametrize("current,new", list(product(TaskStatus, TaskStatus)))
def test_transition_table(current: TaskStatus, new: TaskStatus) -> None:
    assert is_valid_transition(current, new) is ((current, new) in EXPECTED_TRANSITIONS)


def test_transition_table_covers_every_status() -> None:
    assert set(ALLOWED_TRANSITIONS) == set(TaskStatus)


def test_parse_status_rejects_unknown_values() -> None:
    assert parse_status("In_Progress") is TaskStatus.IN_PROGRESS
    with pytest.raises(InvalidInputError):
        parse_status("archived")


def test_create_task_starts_pending(services: Services, alice: User) -> None:
    due = datetime(2030, 1, 1, 12, 0, tzinfo=timezone.utc)
    task = _create(services, alice, description="quarterly numbers", due_date=due)

    assert task.id
    assert task.status is TaskStatus.PENDING
    assert task.created_by == alice.id
    assert task.assigned_to is None
    assert task.description == "quarterly numbers"
    assert task.due_date == due
    assert task.created_at == task.updated_at
    assert services.tasks.get_by_id(task.id) == task


def test_create_treats_naive_due_date_as_utc(services: Services, alice: User) -> None:
    task = _create(services, alice, due_date=datetime(2030, 5, 1, 9, 30))
    assert task.due_date == datetime(2030, 5, 1, 9, 30, tzinfo=timezone.utc)


@pytest.mark.parametrize("priority", [0, 6, -1, True, "3"])
def test_create_rejects_invalid_priority(services: Services, alice: User, priority) -> None:
    with pytest.raises(InvalidInputError):
        _create(services, alice, priority=priority)


@pytest.mark.parametrize("priority", [1, 5])
def test_create_accepts_priority_bounds(services: Services, alice: User, priority: int) -> None:
    assert _create(services, alice, priority=priority).priority == priority


def test_due_date_is_kept_at_millisecond_precision(services: Services, alice: User) -> None:
    task = _create(services, alice, due_date=datetime(2030, 1, 1, 12, 0, 0, 123456, tzinfo=timezone.utc))
    assert task.due_date == datetime(2030, 1, 1, 12, 0, 0, 123000, tzinfo=timezone.utc)

    updated = services.tasks.update(
        task.id, updated_by=alice.id, due_date=datetime(2030, 2, 1, 8, 0, 0, 999999, tzinfo=timezone.utc)
    )
    assert updated.due_date == datetime(2030, 2, 1, 8, 0, 0, 999000, tzinfo=timezone.utc)
    assert services.tasks.get_by_id(task.id).due_date == updated.due_date


def test_create_rejects_blank_title(services: Services, alice: User) -> None:
    with pytest.raises(InvalidInputError):
        _create(services, alice, title="   ")


def test_create_requires_existing_creator(services: Services) -> None:
    with pytest.raises(CreatorNotFoundError):
        services.tasks.create("Orphan", None, 2, created_by="000000000000000000000000")


def test_get_unknown_task(services: Services) -> None:
    with pytest.raises(TaskNotFoundError):
        services.tasks.get_by_id("missing")


def test_creator_can_complete_pending_task(services: Services, alice: User) -> None:
    task = _create(services, alice)
    updated = services.tasks.update(task.id, updated_by=alice.id, status=TaskStatus.COMPLETED)
    assert updated.status is TaskStatus.COMPLETED


def test_completed_task_can_be_reopened_but_not_reset(services: Services, alice: User) -> None:
    task = _create(services, alice)
    services.tasks.update(task.id, updated_by=alice.id, status="completed")

    with pytest.raises(InvalidTransitionError):
        services.tasks.update(task.id, updated_by=alice.id, status="pending")

    reopened = services.tasks.update(task.id, updated_by=alice.id, status="in_progress")
    assert reopened.status is TaskStatus.IN_PROGRESS


def test_same_status_update_is_rejected(services: Services, alice: User) -> None:
    task = _create(services, alice)
    with pytest.raises(InvalidTransitionError):
        services.tasks.update(task.id, updated_by=alice.id, status=TaskStatus.PENDING)


def _move_to(services: Services, owner: User, task: Task, status: TaskStatus) -> None:
    if status is not TaskStatus.PENDING:
        services.tasks.update(task.id, updated_by=owner.id, status=status)


@pytest.mark.parametrize(
    "current,new",
    [pair for pair in product(TaskStatus, TaskStatus) if pair not in EXPECTED_TRANSITIONS],
)
def test_update_rejects_illegal_transitions(
    services: Services, alice: User, current: TaskStatus, new: TaskStatus
) -> None:
    task = _create(services, alice)
    _move_to(services, alice, task, current)

    with pytest.raises(InvalidTransitionError):
        services.tasks.update(task.id, updated_by=alice.id, status=new)
    assert services.tasks.get_by_id(task.id).status is current


@pytest.mark.parametrize("current,new", sorted(EXPECTED_TRANSITIONS, key=str))
def test_update_applies_legal_transitions(
    services: Services, alice: User, current: TaskStatus, new: TaskStatus
) -> None:
    task = _create(services, alice)
    _move_to(services, alice, task, current)

    assert services.tasks.update(task.id, updated_by=alice.id, status=new).status is new


def test_rejected_transition_leaves_task_unchanged(services: Services, alice: User) -> None:
    task = _create(services, alice)
    services.tasks.update(task.id, updated_by=alice.id, status="in_progress")

    with pytest.raises(InvalidTransitionError):
        services.tasks.update(task.id, updated_by=alice.id, title="Renamed", status="pending")

    stored = services.tasks.get_by_id(task.id)
    assert stored.title == "Write report"
    assert stored.status is TaskStatus.IN_PROGRESS


def test_partial_update_only_touches_given_fields(services: Services, alice: User) -> None:
    due = datetime(2031, 3, 1, tzinfo=timezone.utc)
    task = _create(services, alice, description="draft", due_date=due, priority=2)

    updated = services.tasks.update(task.id, updated_by=alice.id, priority=5)

    assert updated.priority == 5
    assert updated.title == task.title
    assert updated.description == "draft"
    assert updated.due_date == due
    assert updated.status is TaskStatus.PENDING
    assert updated.created_by == alice.id
    assert updated.created_at == task.created_at
    assert updated.updated_at >= task.updated_at


def test_update_can_clear_description_and_due_date(services: Services, alice: User) -> None:
    task = _create(services, alice, description="draft", due_date=datetime(2031, 3, 1, tzinfo=timezone.utc))

    updated = services.tasks.update(task.id, updated_by=alice.id, description=None, due_date=None)

    assert updated.description is None
    assert updated.due_date is None


def test_none_title_and_priority_mean_unchanged(services: Services, alice: User) -> None:
    task = _create(services, alice, priority=4)
    updated = services.tasks.update(task.id, updated_by=alice.id, title=None, priority=None, status=None)
    assert updated.title == task.title
    assert updated.priority == 4
    assert updated.status is TaskStatus.PENDING


def test_update_validates_priority(services: Services, alice: User) -> None:
    task = _create(services, alice)
    with pytest.raises(InvalidInputError):
        services.tasks.update(task.id, updated_by=alice.id, priority=9)


def test_stranger_cannot_update(services: Services, alice: User, bob: User) -> None:
    task = _create(services, alice)
    with pytest.raises(UnauthorizedError):
        services.tasks.update(task.id, updated_by=bob.id, title="Hijacked")


def test_assign_advances_pending_task(services: Services, alice: User, bob: User) -> None:
    task = _create(services, alice)

    assigned = services.tasks.assign(task.id, bob.id, alice.id)

    assert assigned.assigned_to == bob.id
    assert assigned.status is TaskStatus.IN_PROGRESS
    assert services.tasks.get_by_id(task.id).status is TaskStatus.IN_PROGRESS


def test_assign_keeps_completed_status(services: Services, alice: User, bob: User) -> None:
    task = _create(services, alice)
    services.tasks.update(task.id, updated_by=alice.id, status="completed")

    assigned = services.tasks.assign(task.id, bob.id, alice.id)

    assert assigned.status is TaskStatus.COMPLETED


def test_reassign_replaces_assignee(services: Services, alice: User, bob: User, carol: User) -> None:
    task = _create(services, alice)
    services.tasks.assign(task.id, bob.id, alice.id)
    reassigned = services.tasks.assign(task.id, carol.id, alice.id)
    assert reassigned.assigned_to == carol.id
    assert reassigned.status is TaskStatus.IN_PROGRESS


def test_assignee_may_update_but_not_delete_or_assign(
    services: Services, alice: User, bob: User, carol: User
) -> None:
    task = _create(services, alice)
    services.tasks.assign(task.id, bob.id, alice.id)

    done = services.tasks.update(task.id, updated_by=bob.id, status="completed")
    assert done.status is TaskStatus.COMPLETED

    with pytest.raises(UnauthorizedError):
        services.tasks.delete(task.id, bob.id)
    with pytest.raises(UnauthorizedError):
        services.tasks.assign(task.id, carol.id, bob.id)


def test_assign_requires_existing_assignee(services: Services, alice: User) -> None:
    task = _create(services, alice)
    with pytest.raises(AssigneeNotFoundError):
        services.tasks.assign(task.id, "000000000000000000000000", alice.id)
    assert services.tasks.get_by_id(task.id).assigned_to is None


def test_delete_by_creator(services: Services, alice: User) -> None:
    task = _create(services, alice)
    services.tasks.delete(task.id, alice.id)
    with pytest.raises(TaskNotFoundError):
        services.tasks.get_by_id(task.id)
    with pytest.raises(TaskNotFoundError):
        services.tasks.delete(task.id, alice.id)


def test_lists_are_ordered_by_due_date(services: Services, alice: User) -> None:
    base = datetime(2030, 1, 1, tzinfo=timezone.utc)
    late = _create(services, alice, title="late", due_date=base + timedelta(days=10))
    undated = _create(services, alice, title="undated")
    early = _create(services, alice, title="early", due_date=base)

    assert [task.id for task in services.tasks.list_all()] == [undated.id, early.id, late.id]
    assert [task.id for task in services.tasks.list_by_user(alice.id)] == [undated.id, early.id, late.id]


def test_list_by_status(services: Services, alice: User) -> None:
    first = _create(services, alice, title="first")
    second = _create(services, alice, title="second")
    services.tasks.update(second.id, updated_by=alice.id, status="completed")

    assert [task.id for task in services.tasks.list_by_status("pending")] == [first.id]
    assert [task.id for task in services.tasks.list_by_status(TaskStatus.COMPLETED)] == [second.id]
    assert services.tasks.list_by_status("in_progress") == []
    with pytest.raises(InvalidInputError):
        services.tasks.list_by_status("done")


def test_list_by_user_includes_created_and_assigned(
    services: Services, alice: User, bob: User, carol: User
) -> None:
    own = _create(services, bob, title="bob's own")
    assigned = _create(services, alice, title="for bob")
    services.tasks.assign(assigned.id, bob.id, alice.id)
    _create(services, carol, title="unrelated")

    ids = {task.id for task in services.tasks.list_by_user(bob.id)}

    assert ids == {own.id, assigned.id}
    assert services.tasks.list_by_user("nobody") == []


def test_sequential_updates_last_writer_wins(services: Services, alice: User, bob: User) -> None:
    task = _create(services, alice)
    services.tasks.assign(task.id, bob.id, alice.id)

    services.tasks.update(task.id, updated_by=alice.id, title="Alice's title")
    services.tasks.update(task.id, updated_by=bob.id, title="Bob's title")

    assert services.tasks.get_by_id(task.id).title == "Bob's title"


def test_assignee_completes_then_cannot_reset(services: Services) -> None:
    alice = services.users.register("alice", "alice@x.com", "secret1")
    bob = services.users.register("bob", "bob@x.com", "secret1")

    task = services.tasks.create("T", None, 3, created_by=alice.id)
    assert task.status is TaskStatus.PENDING

    assigned = services.tasks.assign(task.id, bob.id, alice.id)
    assert assigned.status is TaskStatus.IN_PROGRESS
    assert assigned.assigned_to == bob.id

    completed = services.tasks.update(task.id, updated_by=bob.id, status="completed")
    assert completed.status is TaskStatus.COMPLETED

    with pytest.raises(InvalidTransitionError):
        services.tasks.update(task.id, updated_by=bob.id, status="pending")
