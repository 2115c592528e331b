"""Shared fixtures: every test gets its own SQLite file."""
import pytest
from fastapi.testclient import TestClient
from finance_tracker.main import app
from finance_tracker.storage.database import Database, get_db


@pytest.fixture
def db(tmp_path):
    """Fresh database per test."""
    return Database(str(tmp_path / "finance_test.db"))


@pytest.fixture
def client(db):
    """API client bound to the per-test database."""
    app.dependency_overrides[get_db] = lambda: db
    yield TestClient(app)
    app.dependency_overrides.clear()
