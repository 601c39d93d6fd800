import sqlite3
import json
import logging
from datetime import datetime
from typing import Optional
from contextlib import contextmanager

from config import get_settings
from models import Task, Category, CategoryCounts, CategoryWithCounts, User

logger = logging.getLogger(__name__)

DATABASE_PATH = get_settings().database_path

@contextmanager
def get_db():
    """Context manager for database connections. Foreign keys are enforced per connection."""
    conn = sqlite3.connect(DATABASE_PATH)
    conn.row_factory = sqlite3.Row
    conn.execute("PRAGMA foreign_keys = ON")
    try:
        yield conn
    finally:
        conn.close()

def init_db():
    """Initialize database by running Alembic migrations."""
    import subprocess
    import os

    # Run alembic upgrade from the backend directory, pointed at the configured database
    backend_dir = os.path.dirname(os.path.abspath(__file__))
    env = dict(os.environ, DATABASE_URL=f"sqlite:///{os.path.abspath(DATABASE_PATH)}")
    logger.info("Running migrations against %s", DATABASE_PATH)
    subprocess.run(
        ["alembic", "upgrade", "head"],
        cwd=backend_dir,
        env=env,
        check=True
    )

def now_iso() -> str:
    return datetime.now().isoformat()

def row_to_user(row) -> User:
    return User(id=row["id"], email=row["email"], created_at=row["created_at"])

def row_to_category(row) -> Category:
    return Category(
        id=row["id"],
        user_id=row["user_id"],
        name=row["name"],
        description=row["description"],
        color=row["color"],
        is_default=bool(row["is_default"]),
        sort_order=row["sort_order"],
        created_at=row["created_at"],
        updated_at=row["updated_at"],
    )

def row_to_task(row) -> Task:
    """Convert a database row to a Task model."""
    return Task(
        id=row["id"],
        user_id=row["user_id"],
        category_id=row["category_id"],
        title=row["title"],
        duration_minutes=row["duration_minutes"],
        energy_level=row["energy_level"],
        source=row["source"],
        completed=bool(row["completed"]),
        in_today=bool(row["in_today"]),
        today_position=row["today_position"],
        archived_at=row["archived_at"],
        created_at=row["created_at"],
        updated_at=row["updated_at"],
    )

# User operations
def get_user_by_email(email: str) -> Optional[User]:
    with get_db() as conn:
        row = conn.execute("SELECT * FROM users WHERE email = ?", (email,)).fetchone()
        return row_to_user(row) if row else None

# Row helpers that run inside a caller's connection/transaction
def fetch_task_row(conn, user_id: str, task_id: str, include_archived: bool = False):
    sql = "SELECT * FROM tasks WHERE id = ? AND user_id = ?"
    if not include_archived:
        sql += " AND archived_at IS NULL"
    return conn.execute(sql, (task_id, user_id)).fetchone()

def fetch_category_row(conn, user_id: str, category_id: str):
    return conn.execute(
        "SELECT * FROM categories WHERE id = ? AND user_id = ?",
        (category_id, user_id)
    ).fetchone()

# Read operations
def get_task(user_id: str, task_id: str, include_archived: bool = False) -> Optional[Task]:
    with get_db() as conn:
        row = fetch_task_row(conn, user_id, task_id, include_archived)
        return row_to_task(row) if row else None

def get_tasks(user_id: str, category_id: Optional[str] = None) -> list[Task]:
    """Active (non-archived) tasks, open ones first, newest first."""
    sql = "SELECT * FROM tasks WHERE user_id = ? AND archived_at IS NULL"
    params: list = [user_id]
    if category_id:
        sql += " AND category_id = ?"
        params.append(category_id)
    sql += " ORDER BY completed ASC, created_at DESC, rowid DESC"
    with get_db() as conn:
        rows = conn.execute(sql, params).fetchall()
        return [row_to_task(row) for row in rows]

def get_today_tasks(user_id: str) -> list[Task]:
    with get_db() as conn:
        rows = conn.execute("""
            SELECT * FROM tasks
            WHERE user_id = ? AND in_today = 1 AND archived_at IS NULL
            ORDER BY today_position ASC, rowid ASC
        """, (user_id,)).fetchall()
        return [row_to_task(row) for row in rows]

def get_category(user_id: str, category_id: str) -> Optional[Category]:
    with get_db() as conn:
        row = fetch_category_row(conn, user_id, category_id)
        return row_to_category(row) if row else None

def get_categories_with_counts(user_id: str) -> list[CategoryWithCounts]:
    """
    Categories ordered by sort_order, each with counts over non-archived tasks.
    Counts are recomputed on every call.
    """
    with get_db() as conn:
        rows = conn.execute("""
            SELECT c.*,
                   COUNT(t.id) AS total_count,
                   COALESCE(SUM(t.in_today), 0) AS in_today_count,
                   COALESCE(SUM(t.completed), 0) AS completed_count
            FROM categories c
            LEFT JOIN tasks t
                ON t.category_id = c.id AND t.archived_at IS NULL
            WHERE c.user_id = ?
            GROUP BY c.id
            ORDER BY c.sort_order ASC, c.created_at ASC
        """, (user_id,)).fetchall()
        result = []
        for row in rows:
            category = row_to_category(row)
            counts = CategoryCounts(
                total=row["total_count"],
                in_today=row["in_today_count"],
                completed=row["completed_count"],
            )
            result.append(CategoryWithCounts(**category.model_dump(), counts=counts))
        return result

def get_context_tasks(user_id: str, limit: int = 100) -> list[dict]:
    """Most relevant non-archived tasks joined with their category, for the assistant prompt."""
    with get_db() as conn:
        rows = conn.execute("""
            SELECT t.*, c.name AS category_name, c.color AS category_color,
                   c.description AS category_description
            FROM tasks t
            JOIN categories c ON c.id = t.category_id
            WHERE t.user_id = ? AND t.archived_at IS NULL
            ORDER BY t.in_today DESC, t.completed ASC, t.created_at DESC, t.rowid DESC
            LIMIT ?
        """, (user_id, limit)).fetchall()
        result = []
        for row in rows:
            task = row_to_task(row).model_dump(mode="json", by_alias=True, exclude={"user_id", "archived_at"})
            task["category"] = {
                "name": row["category_name"],
                "color": row["category_color"],
                "description": row["category_description"],
            }
            result.append(task)
        return result

# Audit operations
def insert_audit_log(user_id: str, action: str, task_id: Optional[str], payload: Optional[dict]) -> int:
    with get_db() as conn:
        cursor = conn.execute(
            "INSERT INTO audit_logs (user_id, task_id, action, payload, created_at) VALUES (?, ?, ?, ?, ?)",
            (user_id, task_id, action, json.dumps(payload or {}), now_iso())
        )
        conn.commit()
        return cursor.lastrowid

def get_audit_logs(user_id: str) -> list[dict]:
    """Audit entries for a user, oldest first."""
    with get_db() as conn:
        rows = conn.execute(
            "SELECT * FROM audit_logs WHERE user_id = ? ORDER BY id ASC",
            (user_id,)
        ).fetchall()
        return [
            {
                "id": row["id"],
                "user_id": row["user_id"],
                "task_id": row["task_id"],
                "action": row["action"],
                "payload": json.loads(row["payload"]),
                "created_at": row["created_at"],
            }
            for row in rows
        ]
