from __future__ import annotations

import sys
from datetime import timedelta
from pathlib import Path

import pytest

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from taskhub.application import Services, build_in_memory_services
from taskhub.config import AuthSettings, Settings
from taskhub.models import User

# bcrypt's minimum cost keeps the suite fast.
TEST_BCRYPT_ROUNDS = 4
TEST_SECRET = "test-signing-secret"
TEST_PASSWORD = "s3cret-pass"


def make_settings() -> Settings:
    return Settings(auth=AuthSettings(jwt_secret=TEST_SECRET, jwt_expiry=timedelta(hours=1)))


def make_services(settings: Settings | None = None) -> Services:
    return build_in_memory_services(settings or make_settings(), bcrypt_rounds=TEST_BCRYPT_ROUNDS)


@pytest.fixture()
def settings() -> Settings:
    return make_settings()


@pytest.fixture()
def services(settings: Settings) -> Services:
    return make_services(settings)


@pytest.fixture()
def alice(services: Services) -> User:
    return services.users.register("alice", "alice@example.com", TEST_PASSWORD)


@pytest.fixture()
def bob(services: Services) -> User:
    return services.users.register("bob", "bob@example.com", TEST_PASSWORD)


@pytest.fixture()
def carol(services: Services) -> User:
    return services.users.register("carol", "carol@example.com", TEST_PASSWORD)
