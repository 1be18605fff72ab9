"""
Pytest configuration - shared fixtures
"""
import sys
import os
from datetime import datetime, timedelta
from typing import Callable, Generator

# Settings are read at import time, so these must be set before importing app
os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ["BCRYPT_ROUNDS"] = "4"
os.environ["RATE_LIMIT_ENABLED"] = "false"

import pytest
from fastapi.testclient import TestClient
from sqlalchemy.orm import Session

# Add backend directory to sys.path
sys.path.insert(0, os.path.join(os.path.dirname(__file__), "../backend"))

from app.core import security
from app.database import Database, get_db
from app.models.store import Store
from app.models.user import User, UserRole
from app.services.auth_service import AuthService
from app.services.store_directory import StoreDirectory

GOOD_PASSWORD = "GoodPass1!"


class FakeClock:
    """Deterministic clock advancing one second per call."""

    def __init__(self, start: datetime = datetime(2025, 1, 1, 12, 0, 0)):
        self.now = start

    def __call__(self) -> datetime:
        self.now += timedelta(seconds=1)
        return self.now


@pytest.fixture
def database() -> Generator[Database, None, None]:
    """In-memory SQLite database with the full schema"""
    db = Database("sqlite://")
    db.create_all()
    try:
        yield db
    finally:
        db.dispose()


@pytest.fixture
def test_db(database) -> Generator[Session, None, None]:
    """Session on the in-memory database"""
    session = database.session_factory()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def make_user(test_db) -> Callable[..., User]:
    """Factory creating users through the auth service"""
    counter = {"n": 0}

    def _make_user(role: UserRole = UserRole.USER, email: str = None, name: str = None) -> User:
        counter["n"] += 1
        n = counter["n"]
        return AuthService(test_db).create_user(
            name or f"Test Account Holder {n:03d}",
            email or f"{role.value}{n}@example.com",
            GOOD_PASSWORD,
            f"{n} Test Street, Springfield",
            role,
        )

    return _make_user


@pytest.fixture
def make_store(test_db) -> Callable[..., Store]:
    """Factory creating stores through the store directory"""
    counter = {"n": 0}

    def _make_store(owner: User = None, name: str = None) -> Store:
        counter["n"] += 1
        n = counter["n"]
        return StoreDirectory(test_db).create_store(
            name or f"Corner Grocery Store Number {n:03d}",
            f"store{n}@example.com",
            f"{n} Market Square, Springfield",
            owner.id if owner else None,
        )

    return _make_store


@pytest.fixture
def client(database, test_db) -> Generator[TestClient, None, None]:
    """TestClient sharing the test session with the app"""
    from app.main import app

    def _get_db():
        yield test_db

    app.state.database = database
    app.dependency_overrides[get_db] = _get_db
    try:
        yield TestClient(app)
    finally:
        app.dependency_overrides.pop(get_db, None)


@pytest.fixture
def auth_headers() -> Callable[[User], dict]:
    """Bearer header for a user"""

    def _auth_headers(user: User) -> dict:
        token = security.create_access_token(user.id, user.role.value)
        return {"Authorization": f"Bearer {token}"}

    return _auth_headers
