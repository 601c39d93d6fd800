"""
Tests for lifecycle.py and ordering.py - task state transitions, Today ordering, audit events.
"""
import sqlite3

import pydantic
import pytest

import database
import lifecycle
import seed
from errors import NotFoundError, ValidationError
from models import AuditAction, CategoryCreate, CategoryUpdate, TaskCreate, TaskUpdate
from ordering import assign_positions


def make_task(user_id, category_id, audit, title="Task", add_to_today=False, **fields):
    data = TaskCreate(
        title=title,
        category_id=category_id,
        duration_minutes=fields.pop("duration_minutes", 30),
        energy_level=fields.pop("energy_level", "med"),
        add_to_today=add_to_today,
        **fields,
    )
    return lifecycle.create_task(user_id, data, audit)


def assert_today_invariant(user_id):
    """in_today is true exactly when today_position is set, for every row."""
    with database.get_db() as conn:
        rows = conn.execute(
            "SELECT in_today, today_position FROM tasks WHERE user_id = ?", (user_id,)
        ).fetchall()
    for row in rows:
        assert bool(row["in_today"]) == (row["today_position"] is not None)


def positions(user_id):
    return [(t.title, t.today_position) for t in database.get_today_tasks(user_id)]


class TestCreateTask:
    """Tests for create_task."""

    def test_create_task_basic(self, user_id, categories, audit):
        task = make_task(user_id, categories["Work"], audit, "Write report")

        assert task.title == "Write report"
        assert task.category_id == categories["Work"]
        assert task.duration_minutes == 30
        assert task.source.value == "manual"
        assert task.completed is False
        assert task.in_today is False
        assert task.today_position is None
        assert task.archived_at is None

    def test_create_task_records_audit(self, user_id, categories, audit):
        task = make_task(user_id, categories["Work"], audit, "Write report")

        assert audit.actions == [AuditAction.create_task]
        event = audit.events[0]
        assert event.task_id == task.id
        assert event.payload["title"] == "Write report"
        assert event.payload["durationMinutes"] == 30
        assert "addToToday" not in event.payload

    def test_duration_string_and_number_normalize(self, user_id, categories, audit):
        base = {"title": "T", "categoryId": categories["Work"], "energyLevel": "low", "source": "manual"}
        from_string = lifecycle.create_task(user_id, TaskCreate.model_validate({**base, "durationMinutes": "30"}), audit)
        from_number = lifecycle.create_task(user_id, TaskCreate.model_validate({**base, "durationMinutes": 30}), audit)

        assert from_string.duration_minutes == 30
        assert from_number.duration_minutes == 30

    @pytest.mark.parametrize("duration", [45, "45", 0, "abc", True, None])
    def test_invalid_duration_rejected(self, duration):
        with pytest.raises(pydantic.ValidationError):
            TaskCreate.model_validate({
                "title": "T", "categoryId": "c", "durationMinutes": duration,
                "energyLevel": "low", "source": "manual",
            })

    def test_empty_title_and_bad_energy_rejected(self):
        with pytest.raises(pydantic.ValidationError):
            TaskCreate.model_validate({"title": "", "categoryId": "c", "durationMinutes": 15, "energyLevel": "low"})
        with pytest.raises(pydantic.ValidationError):
            TaskCreate.model_validate({"title": "T", "categoryId": "c", "durationMinutes": 15, "energyLevel": "extreme"})

    def test_unknown_category(self, user_id, audit):
        with pytest.raises(NotFoundError):
            make_task(user_id, "missing", audit)
        assert audit.events == []

    def test_category_of_other_user(self, user_id, audit):
        other = seed.seed_defaults("other@example.com")
        other_category = database.get_categories_with_counts(other.id)[0].id

        with pytest.raises(NotFoundError):
            make_task(user_id, other_category, audit)

    def test_first_today_task_gets_position_one(self, user_id, categories, audit):
        task = make_task(user_id, categories["Work"], audit, add_to_today=True)

        assert task.in_today is True
        assert task.today_position == 1

    def test_add_to_today_appends_after_max_without_filling_gaps(self, user_id, categories, audit):
        make_task(user_id, categories["Work"], audit, "a", add_to_today=True)
        make_task(user_id, categories["Work"], audit, "b", add_to_today=True)
        c = make_task(user_id, categories["Work"], audit, "c", add_to_today=True)
        lifecycle.set_today(user_id, c.id, True, audit, today_position=5)

        new = make_task(user_id, categories["Personal"], audit, "d", add_to_today=True)

        assert new.today_position == 6
        assert positions(user_id) == [("a", 1), ("b", 2), ("c", 5), ("d", 6)]

    def test_archived_today_tasks_do_not_count_for_max(self, user_id, categories, audit):
        old = make_task(user_id, categories["Work"], audit, add_to_today=True)
        lifecycle.archive_task(user_id, old.id, audit)

        new = make_task(user_id, categories["Work"], audit, add_to_today=True)
        assert new.today_position == 1


class TestUpdateTask:
    """Tests for update_task."""

    def test_update_fields(self, user_id, categories, audit):
        task = make_task(user_id, categories["Work"], audit, "Old title")
        patch = TaskUpdate.model_validate({"title": "New title", "categoryId": categories["Personal"], "durationMinutes": "60"})

        updated = lifecycle.update_task(user_id, task.id, patch, audit)

        assert updated.title == "New title"
        assert updated.category_id == categories["Personal"]
        assert updated.duration_minutes == 60
        assert audit.events[-1].action == AuditAction.update_task
        assert audit.events[-1].payload == {
            "title": "New title", "categoryId": categories["Personal"], "durationMinutes": 60,
        }

    def test_update_does_not_touch_today_or_completion(self, user_id, categories, audit):
        task = make_task(user_id, categories["Work"], audit, add_to_today=True)

        updated = lifecycle.update_task(user_id, task.id, TaskUpdate(energy_level="high"), audit)

        assert updated.energy_level.value == "high"
        assert updated.in_today is True
        assert updated.today_position == 1
        assert updated.completed is False

    def test_update_unknown_category(self, user_id, categories, audit):
        task = make_task(user_id, categories["Work"], audit)
        with pytest.raises(NotFoundError):
            lifecycle.update_task(user_id, task.id, TaskUpdate(category_id="missing"), audit)
        assert database.get_task(user_id, task.id).category_id == categories["Work"]

    def test_update_missing_task(self, user_id, audit):
        with pytest.raises(NotFoundError):
            lifecycle.update_task(user_id, "nonexistent", TaskUpdate(title="x"), audit)


class TestSetToday:
    """Tests for set_today."""

    def test_add_appends_to_end(self, user_id, categories, audit):
        make_task(user_id, categories["Work"], audit, "a", add_to_today=True)
        b = make_task(user_id, categories["Work"], audit, "b")

        updated = lifecycle.set_today(user_id, b.id, True, audit)

        assert updated.in_today is True
        assert updated.today_position == 2
        assert audit.events[-1].action == AuditAction.add_to_today
        assert audit.events[-1].payload == {"inToday": True, "todayPosition": 2}

    def test_explicit_position(self, user_id, categories, audit):
        task = make_task(user_id, categories["Work"], audit)
        assert lifecycle.set_today(user_id, task.id, True, audit, today_position=7).today_position == 7

    def test_remove_clears_position(self, user_id, categories, audit):
        task = make_task(user_id, categories["Work"], audit, add_to_today=True)

        updated = lifecycle.set_today(user_id, task.id, False, audit)

        assert updated.in_today is False
        assert updated.today_position is None
        assert audit.events[-1].action == AuditAction.remove_from_today
        assert_today_invariant(user_id)

    def test_does_not_change_completion(self, user_id, categories, audit):
        task = make_task(user_id, categories["Work"], audit)
        lifecycle.set_completion(user_id, task.id, True, audit)

        updated = lifecycle.set_today(user_id, task.id, True, audit)

        assert updated.completed is True
        assert updated.in_today is True


class TestReorderToday:
    """Tests for reorder_today and the ordering helpers."""

    def test_reorder_assigns_one_based_positions(self, user_id, categories, audit):
        a = make_task(user_id, categories["Work"], audit, "a", add_to_today=True)
        b = make_task(user_id, categories["Work"], audit, "b", add_to_today=True)
        c = make_task(user_id, categories["Work"], audit, "c", add_to_today=True)

        lifecycle.reorder_today(user_id, [c.id, a.id, b.id], audit)

        assert positions(user_id) == [("c", 1), ("a", 2), ("b", 3)]
        assert audit.events[-1].action == AuditAction.update_task
        assert audit.events[-1].task_id is None
        assert audit.events[-1].payload == {"reordered": [c.id, a.id, b.id]}

    def test_reorder_closes_gaps(self, user_id, categories, audit):
        a = make_task(user_id, categories["Work"], audit, "a", add_to_today=True)
        b = make_task(user_id, categories["Work"], audit, "b", add_to_today=True)
        lifecycle.set_today(user_id, b.id, True, audit, today_position=9)

        lifecycle.reorder_today(user_id, [a.id, b.id], audit)
        assert positions(user_id) == [("a", 1), ("b", 2)]

    def test_ids_left_out_keep_their_position(self, user_id, categories, audit):
        a = make_task(user_id, categories["Work"], audit, "a", add_to_today=True)
        b = make_task(user_id, categories["Work"], audit, "b", add_to_today=True)
        make_task(user_id, categories["Work"], audit, "c", add_to_today=True)

        lifecycle.reorder_today(user_id, [b.id, a.id], audit)
        assert positions(user_id) == [("b", 1), ("a", 2), ("c", 3)]

    def test_unknown_id_rolls_back_whole_batch(self, user_id, categories, audit):
        a = make_task(user_id, categories["Work"], audit, "a", add_to_today=True)
        b = make_task(user_id, categories["Work"], audit, "b", add_to_today=True)
        events_before = len(audit.events)

        with pytest.raises(NotFoundError):
            lifecycle.reorder_today(user_id, [b.id, a.id, "missing"], audit)

        assert positions(user_id) == [("a", 1), ("b", 2)]
        assert len(audit.events) == events_before

    def test_task_not_in_today_rolls_back(self, user_id, categories, audit):
        a = make_task(user_id, categories["Work"], audit, "a", add_to_today=True)
        b = make_task(user_id, categories["Work"], audit, "b", add_to_today=True)
        outside = make_task(user_id, categories["Work"], audit, "outside")

        with pytest.raises(ValidationError):
            lifecycle.reorder_today(user_id, [b.id, a.id, outside.id], audit)

        assert positions(user_id) == [("a", 1), ("b", 2)]
        assert database.get_task(user_id, outside.id).today_position is None
        assert_today_invariant(user_id)

    def test_duplicates_rejected(self, user_id, categories, audit):
        a = make_task(user_id, categories["Work"], audit, "a", add_to_today=True)
        with pytest.raises(ValidationError):
            lifecycle.reorder_today(user_id, [a.id, a.id], audit)

    def test_assign_positions(self):
        assert assign_positions(["x", "y", "z"]) == [(1, "x"), (2, "y"), (3, "z")]
        assert assign_positions([]) == []


class TestSetCompletion:
    """Tests for set_completion."""

    def test_complete_clears_today(self, user_id, categories, audit):
        task = make_task(user_id, categories["Work"], audit, add_to_today=True)

        updated = lifecycle.set_completion(user_id, task.id, True, audit)

        assert updated.completed is True
        assert updated.in_today is False
        assert updated.today_position is None
        assert audit.events[-1].action == AuditAction.complete_task
        assert_today_invariant(user_id)

    def test_reopen_does_not_restore_today(self, user_id, categories, audit):
        task = make_task(user_id, categories["Work"], audit, add_to_today=True)
        lifecycle.set_completion(user_id, task.id, True, audit)

        reopened = lifecycle.set_completion(user_id, task.id, False, audit)

        assert reopened.completed is False
        assert reopened.in_today is False
        assert reopened.today_position is None
        assert reopened.archived_at is None
        assert audit.events[-1].action == AuditAction.reopen_task
        assert audit.events[-1].payload == {"completed": False}

    def test_cannot_reopen_archived_task(self, user_id, categories, audit):
        task = make_task(user_id, categories["Work"], audit)
        lifecycle.set_completion(user_id, task.id, True, audit)
        lifecycle.archive_task(user_id, task.id, audit)

        with pytest.raises(NotFoundError):
            lifecycle.set_completion(user_id, task.id, False, audit)

        stored = database.get_task(user_id, task.id, include_archived=True)
        assert stored.archived_at is not None
        assert stored.completed is True


class TestArchiveTask:
    """Tests for archive_task."""

    def test_archive_removes_from_listings(self, user_id, categories, audit):
        task = make_task(user_id, categories["Work"], audit, add_to_today=True)

        lifecycle.archive_task(user_id, task.id, audit)

        assert database.get_tasks(user_id) == []
        assert database.get_today_tasks(user_id) == []
        work = next(c for c in database.get_categories_with_counts(user_id) if c.name == "Work")
        assert work.counts.total == 0
        stored = database.get_task(user_id, task.id, include_archived=True)
        assert stored.archived_at is not None
        assert stored.in_today is False
        assert stored.today_position is None
        assert audit.events[-1].action == AuditAction.archive_task

    def test_archive_is_idempotent(self, user_id, categories, audit):
        task = make_task(user_id, categories["Work"], audit)
        lifecycle.archive_task(user_id, task.id, audit)
        first = database.get_task(user_id, task.id, include_archived=True).archived_at

        lifecycle.archive_task(user_id, task.id, audit)

        assert database.get_task(user_id, task.id, include_archived=True).archived_at == first

    def test_archive_not_found(self, user_id, audit):
        with pytest.raises(NotFoundError):
            lifecycle.archive_task(user_id, "nonexistent", audit)
        assert audit.events == []

    def test_archive_other_users_task(self, user_id, categories, audit):
        task = make_task(user_id, categories["Work"], audit)
        other = seed.seed_defaults("other@example.com")

        with pytest.raises(NotFoundError):
            lifecycle.archive_task(other.id, task.id, audit)
        assert database.get_task(user_id, task.id).archived_at is None

    def test_archived_task_rejects_other_mutations(self, user_id, categories, audit):
        task = make_task(user_id, categories["Work"], audit)
        lifecycle.archive_task(user_id, task.id, audit)

        with pytest.raises(NotFoundError):
            lifecycle.set_today(user_id, task.id, True, audit)
        with pytest.raises(NotFoundError):
            lifecycle.update_task(user_id, task.id, TaskUpdate(title="x"), audit)


class TestCategories:
    """Tests for category create/update/delete."""

    def test_create_category(self, user_id, audit):
        category = lifecycle.create_category(user_id, CategoryCreate(name="Side Project", color="blue"), audit)

        assert category.is_default is False
        assert category.sort_order == 5  # after the four defaults
        assert audit.events[-1].action == AuditAction.create_category
        assert audit.events[-1].payload == {"categoryId": category.id}

    def test_duplicate_name_violates_constraint(self, user_id, audit):
        lifecycle.create_category(user_id, CategoryCreate(name="Side Project", color="blue"), audit)
        with pytest.raises(sqlite3.IntegrityError):
            lifecycle.create_category(user_id, CategoryCreate(name="Side Project", color="pink"), audit)

    def test_same_name_for_different_users(self, user_id, audit):
        other = seed.seed_defaults("other@example.com")
        lifecycle.create_category(user_id, CategoryCreate(name="Side Project", color="blue"), audit)
        lifecycle.create_category(other.id, CategoryCreate(name="Side Project", color="blue"), audit)

    def test_color_outside_palette_rejected(self):
        with pytest.raises(pydantic.ValidationError):
            CategoryCreate(name="X", color="mauve")

    def test_update_category(self, user_id, categories, audit):
        updated = lifecycle.update_category(
            user_id, categories["Work"], CategoryUpdate(description="Day job", sort_order=9), audit
        )
        assert updated.description == "Day job"
        assert updated.sort_order == 9
        assert audit.events[-1].action == AuditAction.update_category

    def test_delete_cascades_tasks(self, user_id, audit):
        category = lifecycle.create_category(user_id, CategoryCreate(name="Side Project", color="blue"), audit)
        task = make_task(user_id, category.id, audit, add_to_today=True)

        assert lifecycle.delete_category(user_id, category.id) == 1

        assert database.get_category(user_id, category.id) is None
        assert database.get_task(user_id, task.id, include_archived=True) is None
        assert database.get_today_tasks(user_id) == []

    def test_delete_default_category_rejected(self, user_id, categories, audit):
        task = make_task(user_id, categories["Work"], audit)

        with pytest.raises(ValidationError):
            lifecycle.delete_category(user_id, categories["Work"])

        assert database.get_category(user_id, categories["Work"]) is not None
        assert database.get_task(user_id, task.id) is not None

    def test_delete_missing_category(self, user_id):
        with pytest.raises(NotFoundError):
            lifecycle.delete_category(user_id, "missing")
