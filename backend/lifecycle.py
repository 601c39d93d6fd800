"""
Task lifecycle service.

Every mutation is scoped by (id, user_id) and paired with one audit entry.
Archived tasks are invisible here: any operation on them other than archive
reports NotFoundError.

State transitions per task:
    active --set_today(True)--> in today
    in today --set_today(False) | set_completion(True)--> active
    active/in today --set_completion(True)--> completed (today cleared)
    completed --set_completion(False)--> active (today is not restored)
    any --archive_task--> archived
"""
import logging
import uuid
from typing import Any, Optional

from audit import AuditSink
from database import get_db, fetch_task_row, fetch_category_row, now_iso, row_to_category, row_to_task
from errors import NotFoundError, ValidationError
from models import (
    AuditAction,
    Category,
    CategoryCreate,
    CategoryUpdate,
    Task,
    TaskCreate,
    TaskUpdate,
)
from ordering import assign_positions, next_today_position

logger = logging.getLogger(__name__)


def _update_task_row(conn, user_id: str, task_id: str, changes: dict[str, Any]) -> None:
    """Apply column changes to one task and bump updated_at. Caller commits."""
    changes = {k: int(v) if isinstance(v, bool) else v for k, v in changes.items()}
    changes["updated_at"] = now_iso()
    set_clause = ", ".join(f"{field} = ?" for field in changes.keys())
    values = list(changes.values()) + [task_id, user_id]
    conn.execute(f"UPDATE tasks SET {set_clause} WHERE id = ? AND user_id = ?", values)


def _require_task(conn, user_id: str, task_id: str):
    row = fetch_task_row(conn, user_id, task_id)
    if not row:
        raise NotFoundError("Task not found")
    return row


def _require_category(conn, user_id: str, category_id: str):
    row = fetch_category_row(conn, user_id, category_id)
    if not row:
        raise NotFoundError("Category not found")
    return row


def _reload(conn, user_id: str, task_id: str) -> Task:
    return row_to_task(fetch_task_row(conn, user_id, task_id, include_archived=True))


def create_task(user_id: str, data: TaskCreate, audit: AuditSink) -> Task:
    """
    Create a task in an owned category.
    With add_to_today the task is appended to the end of Today.
    """
    task_id = str(uuid.uuid4())
    now = now_iso()
    with get_db() as conn:
        conn.execute("BEGIN IMMEDIATE")
        try:
            _require_category(conn, user_id, data.category_id)
            position = next_today_position(conn, user_id) if data.add_to_today else None
            conn.execute(
                """INSERT INTO tasks
                   (id, user_id, category_id, title, duration_minutes, energy_level, source,
                    completed, in_today, today_position, archived_at, created_at, updated_at)
                   VALUES (?, ?, ?, ?, ?, ?, ?, 0, ?, ?, NULL, ?, ?)""",
                (task_id, user_id, data.category_id, data.title, data.duration_minutes,
                 data.energy_level.value, data.source.value, int(data.add_to_today), position, now, now)
            )
            conn.commit()
        except Exception:
            conn.rollback()
            raise
        task = _reload(conn, user_id, task_id)

    payload = data.model_dump(mode="json", by_alias=True, exclude={"add_to_today"})
    audit.record(user_id, AuditAction.create_task, task_id, payload)
    logger.info("Created task %s in category %s (today=%s)", task_id, data.category_id, position)
    return task


def update_task(user_id: str, task_id: str, patch: TaskUpdate, audit: AuditSink) -> Task:
    """Partial update of descriptive fields. Today, completion and archive state are untouched."""
    changes = patch.model_dump(mode="json", exclude_unset=True, exclude_none=True)
    with get_db() as conn:
        _require_task(conn, user_id, task_id)
        if "category_id" in changes:
            _require_category(conn, user_id, changes["category_id"])
        if changes:
            _update_task_row(conn, user_id, task_id, changes)
            conn.commit()
        task = _reload(conn, user_id, task_id)

    payload = patch.model_dump(mode="json", by_alias=True, exclude_unset=True, exclude_none=True)
    audit.record(user_id, AuditAction.update_task, task_id, payload)
    logger.info("Updated task %s fields=%s", task_id, sorted(changes))
    return task


def set_today(
    user_id: str,
    task_id: str,
    in_today: bool,
    audit: AuditSink,
    today_position: Optional[int] = None,
) -> Task:
    """
    Add a task to Today (explicit position, or appended at max + 1) or remove it.
    Completion state is not checked or changed.
    """
    with get_db() as conn:
        conn.execute("BEGIN IMMEDIATE")
        try:
            _require_task(conn, user_id, task_id)
            if in_today:
                position = today_position if today_position is not None else next_today_position(conn, user_id)
                changes = {"in_today": True, "today_position": position}
            else:
                changes = {"in_today": False, "today_position": None}
            _update_task_row(conn, user_id, task_id, changes)
            conn.commit()
        except Exception:
            conn.rollback()
            raise
        task = _reload(conn, user_id, task_id)

    action = AuditAction.add_to_today if in_today else AuditAction.remove_from_today
    audit.record(user_id, action, task_id, {
        "inToday": changes["in_today"],
        "todayPosition": changes["today_position"],
    })
    logger.info("Task %s %s (position=%s)", task_id, action.value, changes["today_position"])
    return task


def reorder_today(user_id: str, task_ids: list[str], audit: AuditSink) -> None:
    """
    Rewrite Today positions to 1..N in the given order, all-or-nothing.
    Every id must be an active task of the caller that is currently in Today.
    Today tasks left out of the list keep their old positions.
    """
    positions = assign_positions(task_ids)
    with get_db() as conn:
        conn.execute("BEGIN IMMEDIATE")
        try:
            for position, task_id in positions:
                row = fetch_task_row(conn, user_id, task_id)
                if not row:
                    raise NotFoundError(f"Task {task_id} not found")
                if not row["in_today"]:
                    raise ValidationError(f"Task {task_id} is not in Today")
                _update_task_row(conn, user_id, task_id, {"today_position": position})
            conn.commit()
        except Exception:
            conn.rollback()
            raise

    audit.record(user_id, AuditAction.update_task, None, {"reordered": task_ids})
    logger.info("Reordered %d today tasks", len(task_ids))


def set_completion(user_id: str, task_id: str, completed: bool, audit: AuditSink) -> Task:
    """
    Complete or reopen a task.
    Completing also drops it from Today; reopening does not put it back.
    """
    if completed:
        changes = {"completed": True, "in_today": False, "today_position": None}
    else:
        changes = {"completed": False}
    with get_db() as conn:
        _require_task(conn, user_id, task_id)
        _update_task_row(conn, user_id, task_id, changes)
        conn.commit()
        task = _reload(conn, user_id, task_id)

    action = AuditAction.complete_task if completed else AuditAction.reopen_task
    payload = {
        "completed": completed,
        **({"inToday": False, "todayPosition": None} if completed else {}),
    }
    audit.record(user_id, action, task_id, payload)
    logger.info("Task %s %s", task_id, action.value)
    return task


def archive_task(user_id: str, task_id: str, audit: AuditSink) -> None:
    """Soft delete. Re-archiving keeps the original archived_at."""
    now = now_iso()
    with get_db() as conn:
        cursor = conn.execute(
            """UPDATE tasks
               SET archived_at = COALESCE(archived_at, ?), in_today = 0,
                   today_position = NULL, updated_at = ?
               WHERE id = ? AND user_id = ?""",
            (now, now, task_id, user_id)
        )
        conn.commit()
        if cursor.rowcount == 0:
            raise NotFoundError("Task not found")

    audit.record(user_id, AuditAction.archive_task, task_id, {})
    logger.info("Archived task %s", task_id)


# Category operations
def create_category(user_id: str, data: CategoryCreate, audit: AuditSink) -> Category:
    """Create a custom category. Duplicate names raise sqlite3.IntegrityError."""
    category_id = str(uuid.uuid4())
    now = now_iso()
    with get_db() as conn:
        sort_order = data.sort_order
        if sort_order is None:
            row = conn.execute(
                "SELECT MAX(sort_order) AS max_order FROM categories WHERE user_id = ?",
                (user_id,)
            ).fetchone()
            sort_order = (row["max_order"] or 0) + 1
        conn.execute(
            """INSERT INTO categories
               (id, user_id, name, description, color, is_default, sort_order, created_at, updated_at)
               VALUES (?, ?, ?, ?, ?, 0, ?, ?, ?)""",
            (category_id, user_id, data.name, data.description, data.color.value, sort_order, now, now)
        )
        conn.commit()
        category = row_to_category(fetch_category_row(conn, user_id, category_id))

    audit.record(user_id, AuditAction.create_category, None, {"categoryId": category_id})
    logger.info("Created category %s (%s)", data.name, category_id)
    return category


def update_category(user_id: str, category_id: str, patch: CategoryUpdate, audit: AuditSink) -> Category:
    changes = patch.model_dump(mode="json", exclude_unset=True, exclude_none=True)
    with get_db() as conn:
        _require_category(conn, user_id, category_id)
        if changes:
            changes["updated_at"] = now_iso()
            set_clause = ", ".join(f"{field} = ?" for field in changes.keys())
            values = list(changes.values()) + [category_id, user_id]
            conn.execute(f"UPDATE categories SET {set_clause} WHERE id = ? AND user_id = ?", values)
            conn.commit()
        category = row_to_category(fetch_category_row(conn, user_id, category_id))

    payload = {"categoryId": category_id,
               **patch.model_dump(mode="json", by_alias=True, exclude_unset=True, exclude_none=True)}
    audit.record(user_id, AuditAction.update_category, None, payload)
    return category


def delete_category(user_id: str, category_id: str) -> int:
    """
    Delete a custom category together with all of its tasks.
    Default categories are protected. Returns the number of tasks removed.
    """
    with get_db() as conn:
        row = _require_category(conn, user_id, category_id)
        if row["is_default"]:
            raise ValidationError("Default categories cannot be deleted")
        task_count = conn.execute(
            "SELECT COUNT(*) FROM tasks WHERE category_id = ?", (category_id,)
        ).fetchone()[0]
        conn.execute("DELETE FROM categories WHERE id = ? AND user_id = ?", (category_id, user_id))
        conn.commit()

    logger.info("Deleted category %s and %d tasks", category_id, task_count)
    return task_count
