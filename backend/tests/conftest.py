"""
Shared pytest fixtures for backend tests.
Each test gets its own SQLite file with the schema created directly (no Alembic).
"""
import pytest
import sqlite3
import sys
import os

# Add backend to path for imports
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))
sys.path.insert(0, os.path.dirname(os.path.abspath(__file__)))

import database
import seed
from config import get_settings
from fakes import RecordingAuditSink


SCHEMA = """
    CREATE TABLE users (
        id TEXT PRIMARY KEY,
        email TEXT NOT NULL UNIQUE,
        created_at TEXT NOT NULL
    );

    CREATE TABLE categories (
        id TEXT PRIMARY KEY,
        user_id TEXT NOT NULL REFERENCES users(id) ON DELETE CASCADE,
        name TEXT NOT NULL,
        description TEXT,
        color TEXT NOT NULL,
        is_default INTEGER NOT NULL DEFAULT 0,
        sort_order INTEGER NOT NULL DEFAULT 0,
        created_at TEXT NOT NULL,
        updated_at TEXT NOT NULL,
        UNIQUE (user_id, name)
    );

    CREATE TABLE tasks (
        id TEXT PRIMARY KEY,
        user_id TEXT NOT NULL REFERENCES users(id) ON DELETE CASCADE,
        category_id TEXT NOT NULL REFERENCES categories(id) ON DELETE CASCADE,
        title TEXT NOT NULL,
        duration_minutes INTEGER NOT NULL CHECK (duration_minutes IN (15, 30, 60, 120)),
        energy_level TEXT NOT NULL CHECK (energy_level IN ('low', 'med', 'high')),
        source TEXT NOT NULL DEFAULT 'manual',
        completed INTEGER NOT NULL DEFAULT 0,
        in_today INTEGER NOT NULL DEFAULT 0,
        today_position INTEGER,
        archived_at TEXT,
        created_at TEXT NOT NULL,
        updated_at TEXT NOT NULL
    );

    CREATE TABLE audit_logs (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        user_id TEXT NOT NULL REFERENCES users(id) ON DELETE CASCADE,
        task_id TEXT,
        action TEXT NOT NULL,
        payload TEXT NOT NULL DEFAULT '{}',
        created_at TEXT NOT NULL
    );
"""


@pytest.fixture
def test_db(monkeypatch, tmp_path):
    """
    Create an isolated test database for each test.
    Uses a temp file (not :memory:) because database.py opens new connections per operation.
    """
    db_path = str(tmp_path / "test.db")
    monkeypatch.setattr(database, "DATABASE_PATH", db_path)
    monkeypatch.setattr(database, "init_db", lambda: None)

    conn = sqlite3.connect(db_path)
    conn.executescript(SCHEMA)
    conn.commit()
    conn.close()

    yield db_path


@pytest.fixture
def user_id(test_db):
    """Seed the default user and categories; return the user id."""
    return seed.seed_defaults(get_settings().default_user_email).id


@pytest.fixture
def categories(user_id):
    """Default category ids keyed by name."""
    return {c.name: c.id for c in database.get_categories_with_counts(user_id)}


@pytest.fixture
def audit():
    return RecordingAuditSink()


@pytest.fixture
def app_client(user_id, monkeypatch):
    """
    Test client for the FastAPI app against the seeded test database.
    Alembic is skipped; tables already exist.
    """
    from fastapi.testclient import TestClient
    import main

    monkeypatch.setattr(database, "init_db", lambda: None)

    with TestClient(main.app) as client:
        yield client
