"""MongoDB-backed persistence for users and tasks."""
from __future__ import annotations

import logging
from datetime import timedelta
from typing import Any, Dict, List, Mapping, Optional

from bson import ObjectId
from bson.errors import InvalidId
from pymongo import ASCENDING, MongoClient
from pymongo.collection import Collection
from pymongo.database import Database
from pymongo.errors import DuplicateKeyError as MongoDuplicateKeyError
from pymongo.errors import PyMongoError

from .config import DatabaseSettings
from .errors import DuplicateKeyError, NotFoundError, StoreError
from .models import Task, TaskStatus, User

logger = logging.getLogger("taskhub.mongo")

USERS_COLLECTION = "users"
TASKS_COLLECTION = "tasks"


def _object_id(value: str) -> Optional[ObjectId]:
    try:
        return ObjectId(value)
    except (InvalidId, TypeError):
        return None


def duplicate_field(exc: MongoDuplicateKeyError) -> Optional[str]:
    """Return the field that violated a unique index, if the server reported it."""

    details = exc.details or {}
    for key in ("keyValue", "keyPattern"):
        value = details.get(key)
        if isinstance(value, Mapping) and value:
            return str(next(iter(value)))
    message = str(details.get("errmsg") or exc)
    for field in ("username", "email"):
        if f"{field}_" in message or f"{{ {field}:" in message:
            return field
    return None


class _Collection:
    """Shared error translation for the two repositories."""

    def __init__(self, collection: Collection) -> None:
        self._collection = collection

    def _store_error(self, action: str, exc: PyMongoError) -> StoreError:
        logger.error("MongoDB %s on %s failed: %s", action, self._collection.name, exc, exc_info=exc)
        return StoreError(f"failed to {action} {self._collection.name}")


class MongoUserRepository(_Collection):
    def find_by_id(self, user_id: str) -> User:
        oid = _object_id(user_id)
        if oid is None:
            raise NotFoundError("user not found")
        return self._find_one({"_id": oid})

    def find_by_email(self, email: str) -> User:
        return self._find_one({"email": email})

    def find_by_username(self, username: str) -> User:
        return self._find_one({"username": username})

    def create(self, user: User) -> User:
        document = _user_to_document(user)
        document["_id"] = (_object_id(user.id) if user.id else None) or ObjectId()
        try:
            self._collection.insert_one(document)
        except MongoDuplicateKeyError as exc:
            raise DuplicateKeyError(duplicate_field(exc)) from exc
        except PyMongoError as exc:
            raise self._store_error("insert into", exc) from exc
        return _document_to_user(document)

    def update(self, user: User) -> None:
        oid = _object_id(user.id)
        if oid is None:
            raise NotFoundError("user not found")
        document = _user_to_document(user)
        document.pop("created_at", None)
        try:
            result = self._collection.update_one({"_id": oid}, {"$set": document})
        except MongoDuplicateKeyError as exc:
            raise DuplicateKeyError(duplicate_field(exc)) from exc
        except PyMongoError as exc:
            raise self._store_error("update", exc) from exc
        if result.matched_count == 0:
            raise NotFoundError("user not found")

    def delete(self, user_id: str) -> None:
        oid = _object_id(user_id)
        if oid is None:
            raise NotFoundError("user not found")
        try:
            result = self._collection.delete_one({"_id": oid})
        except PyMongoError as exc:
            raise self._store_error("delete from", exc) from exc
        if result.deleted_count == 0:
            raise NotFoundError("user not found")

    def _find_one(self, query: Dict[str, Any]) -> User:
        try:
            document = self._collection.find_one(query)
        except PyMongoError as exc:
            raise self._store_error("query", exc) from exc
        if document is None:
            raise NotFoundError("user not found")
        return _document_to_user(document)


class MongoTaskRepository(_Collection):
    def find_by_id(self, task_id: str) -> Task:
        oid = _object_id(task_id)
        if oid is None:
            raise NotFoundError("task not found")
        try:
            document = self._collection.find_one({"_id": oid})
        except PyMongoError as exc:
            raise self._store_error("query", exc) from exc
        if document is None:
            raise NotFoundError("task not found")
        return _document_to_task(document)

    def find_all(self, filter: Optional[Mapping[str, object]] = None) -> List[Task]:
        query: Dict[str, Any] = {}
        for key, value in (filter or {}).items():
            if isinstance(value, TaskStatus):
                value = value.value
            elif key in {"created_by", "assigned_to"} and isinstance(value, str):
                value = _object_id(value)
                if value is None:
                    return []
            query[key] = value
        return self._find_many(query)

    def create(self, task: Task) -> Task:
        document = _task_to_document(task)
        document["_id"] = (_object_id(task.id) if task.id else None) or ObjectId()
        try:
            self._collection.insert_one(document)
        except MongoDuplicateKeyError as exc:
            raise DuplicateKeyError(duplicate_field(exc)) from exc
        except PyMongoError as exc:
            raise self._store_error("insert into", exc) from exc
        return _document_to_task(document)

    def update(self, task: Task) -> None:
        oid = _object_id(task.id)
        if oid is None:
            raise NotFoundError("task not found")
        document = _task_to_document(task)
        # created_by is immutable after creation.
        document.pop("created_by", None)
        document.pop("created_at", None)
        try:
            result = self._collection.update_one({"_id": oid}, {"$set": document})
        except PyMongoError as exc:
            raise self._store_error("update", exc) from exc
        if result.matched_count == 0:
            raise NotFoundError("task not found")

    def delete(self, task_id: str) -> None:
        oid = _object_id(task_id)
        if oid is None:
            raise NotFoundError("task not found")
        try:
            result = self._collection.delete_one({"_id": oid})
        except PyMongoError as exc:
            raise self._store_error("delete from", exc) from exc
        if result.deleted_count == 0:
            raise NotFoundError("task not found")

    def find_by_user(self, user_id: str) -> List[Task]:
        oid = _object_id(user_id)
        if oid is None:
            return []
        return self._find_many({"$or": [{"created_by": oid}, {"assigned_to": oid}]})

    def find_by_status(self, status: TaskStatus) -> List[Task]:
        return self._find_many({"status": status.value})

    def _find_many(self, query: Dict[str, Any]) -> List[Task]:
        try:
            cursor = self._collection.find(query).sort("due_date", ASCENDING)
            return [_document_to_task(document) for document in cursor]
        except PyMongoError as exc:
            raise self._store_error("query", exc) from exc


class MongoStore:
    """Owns the client connection pool and hands out repositories."""

    def __init__(self, settings: DatabaseSettings, *, client: Optional[MongoClient] = None) -> None:
        timeout_ms = _milliseconds(settings.timeout)
        if client is None:
            client = MongoClient(
                settings.uri,
                tz_aware=True,
                serverSelectionTimeoutMS=timeout_ms,
                connectTimeoutMS=timeout_ms,
                socketTimeoutMS=timeout_ms,
            )
        self._client = client
        self._database: Database = client[settings.name]
        self.users = MongoUserRepository(self._database[USERS_COLLECTION])
        self.tasks = MongoTaskRepository(self._database[TASKS_COLLECTION])

    def ping(self) -> None:
        try:
            self._client.admin.command("ping")
        except PyMongoError as exc:
            raise StoreError("MongoDB is not reachable") from exc

    def ensure_indexes(self) -> None:
        """Create the unique and lookup indexes the repositories rely on."""

        try:
            users = self._database[USERS_COLLECTION]
            users.create_index([("username", ASCENDING)], unique=True, name="username_unique")
            users.create_index([("email", ASCENDING)], unique=True, name="email_unique")
            tasks = self._database[TASKS_COLLECTION]
            for field in ("created_by", "assigned_to", "status", "due_date"):
                tasks.create_index([(field, ASCENDING)])
        except PyMongoError as exc:
            raise StoreError("failed to create MongoDB indexes") from exc
        logger.info("MongoDB indexes ensured on %s", self._database.name)

    def close(self) -> None:
        self._client.close()


def _milliseconds(value: timedelta) -> int:
    return max(int(value.total_seconds() * 1000), 1)


def _user_to_document(user: User) -> Dict[str, Any]:
    return {
        "username": user.username,
        "email": user.email,
        "password": user.password_hash,
        "first_name": user.first_name,
        "last_name": user.last_name,
        "created_at": user.created_at,
        "updated_at": user.updated_at,
    }


def _document_to_user(document: Mapping[str, Any]) -> User:
    return User(
        id=str(document["_id"]),
        username=str(document["username"]),
        email=str(document["email"]),
        password_hash=str(document.get("password") or ""),
        first_name=document.get("first_name"),
        last_name=document.get("last_name"),
        created_at=document["created_at"],
        updated_at=document["updated_at"],
    )


def _task_to_document(task: Task) -> Dict[str, Any]:
    return {
        "title": task.title,
        "description": task.description,
        "status": task.status.value,
        "priority": task.priority,
        "due_date": task.due_date,
        "assigned_to": _object_id(task.assigned_to) if task.assigned_to else None,
        "created_by": _object_id(task.created_by),
        "created_at": task.created_at,
        "updated_at": task.updated_at,
    }


def _document_to_task(document: Mapping[str, Any]) -> Task:
    assigned_to = document.get("assigned_to")
    return Task(
        id=str(document["_id"]),
        title=str(document["title"]),
        description=document.get("description"),
        status=TaskStatus(document["status"]),
        priority=int(document["priority"]),
        due_date=document.get("due_date"),
        assigned_to=str(assigned_to) if assigned_to else None,
        created_by=str(document["created_by"]),
        created_at=document["created_at"],
        updated_at=document["updated_at"],
    )


__all__ = [
    "MongoStore",
    "MongoTaskRepository",
    "MongoUserRepository",
    "duplicate_field",
]
