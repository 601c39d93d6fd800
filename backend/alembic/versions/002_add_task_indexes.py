"""Add indexes for per-user task listings and the Today list

Revision ID: 002
Revises: 001
Create Date: 2026-10-19

"""
from typing import Sequence, Union

from alembic import op
from sqlalchemy import text

revision: str = '002'
down_revision: Union[str, None] = '001'
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    conn = op.get_bind()
    conn.execute(text("CREATE INDEX IF NOT EXISTS ix_tasks_user_category ON tasks (user_id, category_id)"))
    conn.execute(text("CREATE INDEX IF NOT EXISTS ix_tasks_user_today ON tasks (user_id, in_today, today_position)"))
    conn.execute(text("CREATE INDEX IF NOT EXISTS ix_audit_logs_user ON audit_logs (user_id)"))


def downgrade() -> None:
    conn = op.get_bind()
    conn.execute(text("DROP INDEX IF EXISTS ix_audit_logs_user"))
    conn.execute(text("DROP INDEX IF EXISTS ix_tasks_user_today"))
    conn.execute(text("DROP INDEX IF EXISTS ix_tasks_user_category"))
