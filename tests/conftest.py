"""
Shared fixtures: a throwaway SQLite database, the in-memory store and
mock-mode planning clients.
"""
import asyncio
import os
import tempfile

_DB_DIR = tempfile.mkdtemp(prefix="fitness-api-tests-")

os.environ["ENVIRONMENT"] = "test"
os.environ["DATABASE_URL"] = "sqlite+aiosqlite:///" + os.path.join(_DB_DIR, "test.db")
os.environ["DATABASE_AUTO_CREATE"] = "false"
os.environ["CACHE_BACKEND"] = "memory"
os.environ["RATE_LIMIT_ENABLED"] = "false"
os.environ["BCRYPT_ROUNDS"] = "4"
os.environ["PLANNING_MOCK_MODE"] = "true"
os.environ["LOG_LEVEL"] = "WARNING"

import pytest
from fastapi.testclient import TestClient

from fitness_api.database.connection import create_tables, drop_tables
from fitness_api.database.models import User
from fitness_api.database.queries import db_session
from fitness_api.main import app
from fitness_api.services.auth_service import hash_password
from fitness_api.middleware.rate_limit import reset_rate_limits
from fitness_api.services.cache import InMemoryCache, set_cache
from fitness_api.services.planning_client import set_planning_client
from fitness_api.services.tokens import generate_token_pair

PASSWORD = "secret123"


def run(coro):
    """Run a coroutine to completion from synchronous test code"""
    return asyncio.run(coro)


@pytest.fixture(autouse=True)
def fresh_state():
    run(drop_tables())
    run(create_tables())
    set_cache(InMemoryCache())
    reset_rate_limits()
    set_planning_client("workout", None)
    set_planning_client("diet", None)
    yield
    set_cache(None)


@pytest.fixture
def client():
    return TestClient(app)


async def _insert_user(**fields) -> User:
    async with db_session() as session:
        user = User(
            username=fields.pop("username"),
            email=fields.pop("email"),
            password_hash=await hash_password(fields.pop("password", PASSWORD)),
            name=fields.pop("name", "Test User"),
            **fields,
        )
        session.add(user)
        await session.commit()
        await session.refresh(user)
        return user


@pytest.fixture
def make_user():
    """Factory inserting a user straight into the database"""
    counter = {"n": 0}

    def _make(role="user", **fields):
        counter["n"] += 1
        n = counter["n"]
        fields.setdefault("username", f"{role}_{n}")
        fields.setdefault("email", f"{role}{n}@example.com")
        return run(_insert_user(role=role, **fields))

    return _make


def headers_for(user: User) -> dict:
    tokens = generate_token_pair(user.id, user.email, user.username, user.role)
    return {"Authorization": f"Bearer {tokens['access_token']}"}


@pytest.fixture
def user(make_user):
    return make_user(
        demographics={"age": 30, "height_cm": 180, "weight_kg": 80, "gender": "Male", "target_weight_kg": 75},
        fitness_profile={"level": "intermediate", "goal": "weight_loss"},
    )


@pytest.fixture
def admin(make_user):
    return make_user(role="admin", email_verified=True)


@pytest.fixture
def user_headers(user):
    return headers_for(user)


@pytest.fixture
def admin_headers(admin):
    return headers_for(admin)
