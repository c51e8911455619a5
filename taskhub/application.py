"""Wiring of settings, persistence and the use-case services."""
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Callable, Optional

from fastapi import FastAPI

from .auth import AuthService
from .config import Settings
from .repositories import InMemoryTaskRepository, InMemoryUserRepository, TaskRepository, UserRepository
from .security import DEFAULT_BCRYPT_ROUNDS, PasswordHasher, TokenService
from .tasks import TaskLifecycle
from .users import UserDirectory

logger = logging.getLogger("taskhub.application")


@dataclass
class Services:
    """The three use-case services plus a hook releasing the store."""

    users: UserDirectory
    tasks: TaskLifecycle
    auth: AuthService
    close: Callable[[], None] = lambda: None


def build_services(
    settings: Settings,
    *,
    user_repository: UserRepository,
    task_repository: TaskRepository,
    bcrypt_rounds: int = DEFAULT_BCRYPT_ROUNDS,
    close: Optional[Callable[[], None]] = None,
) -> Services:
    hasher = PasswordHasher(rounds=bcrypt_rounds)
    tokens = TokenService(settings.auth.jwt_secret, default_ttl=settings.auth.jwt_expiry)
    users = UserDirectory(user_repository, hasher)
    return Services(
        users=users,
        tasks=TaskLifecycle(task_repository, user_repository),
        auth=AuthService(users, tokens),
        close=close or (lambda: None),
    )


def build_in_memory_services(settings: Settings, *, bcrypt_rounds: int = DEFAULT_BCRYPT_ROUNDS) -> Services:
    return build_services(
        settings,
        user_repository=InMemoryUserRepository(),
        task_repository=InMemoryTaskRepository(),
        bcrypt_rounds=bcrypt_rounds,
    )


def build_mongo_services(settings: Settings, *, ensure_indexes: bool = True) -> Services:
    from .mongo import MongoStore

    store = MongoStore(settings.database)
    if ensure_indexes:
        store.ensure_indexes()
    logger.info("Connected to MongoDB database %s", settings.database.name)
    return build_services(
        settings,
        user_repository=store.users,
        task_repository=store.tasks,
        close=store.close,
    )


def create_application(settings: Settings, *, services: Optional[Services] = None) -> FastAPI:
    """Create the REST application backed by MongoDB unless ``services`` is given."""

    from .api import create_app

    if services is None:
        services = build_mongo_services(settings)
    return create_app(services, settings=settings)


__all__ = [
    "Services",
    "build_in_memory_services",
    "build_mongo_services",
    "build_services",
    "create_application",
]
