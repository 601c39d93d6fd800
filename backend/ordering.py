"""
Today ordering policy.

Today tasks carry a plain integer position. New entries go to the end
(max + 1); gaps left by removals are only closed by a full reorder.
"""
from errors import ValidationError


def next_today_position(conn, user_id: str) -> int:
    """Next free position at the end of the user's Today list (1 when empty)."""
    row = conn.execute(
        """SELECT MAX(today_position) AS max_pos FROM tasks
           WHERE user_id = ? AND in_today = 1 AND archived_at IS NULL""",
        (user_id,)
    ).fetchone()
    return (row["max_pos"] or 0) + 1


def assign_positions(task_ids: list[str]) -> list[tuple[int, str]]:
    """Map an ordered id list to 1-based positions: [(1, first), (2, second), ...]."""
    if len(set(task_ids)) != len(task_ids):
        raise ValidationError("taskIds must not contain duplicates")
    return [(position, task_id) for position, task_id in enumerate(task_ids, start=1)]
