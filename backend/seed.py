"""
Bootstrap the default user and their default categories.
Safe to run repeatedly: existing rows are left as they are.
"""
import logging
import uuid
from typing import Optional

from config import get_settings
from database import get_db, now_iso, row_to_user
from models import User

logger = logging.getLogger(__name__)

DEFAULT_CATEGORIES = [
    {"name": "Work", "description": "Professional tasks, meetings, deliverables, communications", "color": "teal", "sort_order": 1},
    {"name": "Academics", "description": "Assignments, readings, coursework, exams, deadlines", "color": "lavender", "sort_order": 2},
    {"name": "Personal", "description": "Errands, household, relationships, finances", "color": "blue", "sort_order": 3},
    {"name": "Well-being", "description": "Meditation, exercise, rest, self-care", "color": "green", "sort_order": 4},
]


def seed_defaults(email: str, fixed_id: Optional[str] = None) -> User:
    """
    Upsert the user, purge their archived tasks, and upsert the default categories.
    """
    now = now_iso()
    with get_db() as conn:
        conn.execute(
            "INSERT INTO users (id, email, created_at) VALUES (?, ?, ?) ON CONFLICT(email) DO NOTHING",
            (fixed_id or str(uuid.uuid4()), email, now)
        )
        user = row_to_user(conn.execute("SELECT * FROM users WHERE email = ?", (email,)).fetchone())

        purged = conn.execute(
            "DELETE FROM tasks WHERE user_id = ? AND archived_at IS NOT NULL",
            (user.id,)
        ).rowcount

        for cat in DEFAULT_CATEGORIES:
            conn.execute(
                """INSERT INTO categories
                   (id, user_id, name, description, color, is_default, sort_order, created_at, updated_at)
                   VALUES (?, ?, ?, ?, ?, 1, ?, ?, ?)
                   ON CONFLICT(user_id, name) DO NOTHING""",
                (str(uuid.uuid4()), user.id, cat["name"], cat["description"], cat["color"], cat["sort_order"], now, now)
            )
        conn.commit()

    logger.info("Seeded user %s (%s), purged %d archived tasks", user.email, user.id, purged)
    return user


if __name__ == "__main__":
    from logging_setup import setup_logging

    settings = get_settings()
    setup_logging(settings.log_level)
    seed_defaults(settings.default_user_email, settings.default_user_id)
