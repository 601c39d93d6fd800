"""
HTTP client that mirrors the planner UI state.

Every mutation is a single request followed by a full refetch of categories,
tasks and Today; derived views are rebuilt from that snapshot rather than
patched in place.
"""
import logging
from typing import Any, Optional

import httpx
from pydantic import BaseModel

from models import DURATIONS

logger = logging.getLogger(__name__)

DEFAULT_DURATION = 30

# Time filter label -> predicate on duration_minutes
TIME_FILTERS = {
    "All": lambda minutes: True,
    "15m": lambda minutes: minutes == 15,
    "30m": lambda minutes: minutes == 30,
    "1h": lambda minutes: minutes == 60,
    "2h+": lambda minutes: minutes >= 120,
}

ENERGY_FILTERS = {"All": None, "Low": "low", "Medium": "med", "High": "high"}


def duration_label(minutes: Optional[int]) -> Optional[str]:
    if minutes == 15:
        return "15 min"
    if minutes == 30:
        return "30 min"
    if minutes == 60:
        return "1 hour"
    if minutes == 120:
        return "2+ hours"
    return f"{minutes} min" if minutes else None


def energy_label(level: Optional[str]) -> Optional[str]:
    if not level:
        return None
    return {"low": "Low", "med": "Medium"}.get(level, "High")


class TaskView(BaseModel):
    id: str
    name: str
    duration_minutes: int
    energy_level: str
    duration: Optional[str] = None
    energy: Optional[str] = None
    source: str


class CategoryView(BaseModel):
    id: str
    title: str
    color: str
    is_default: bool
    up_next: list[TaskView] = []
    completed: list[TaskView] = []
    suggested_task: Optional[str] = None

    @property
    def task_count(self) -> int:
        return len(self.up_next) + len(self.completed)


class TodayTask(TaskView):
    category: str
    completed: bool


def filter_tasks(tasks: list[TaskView], time_filter: str = "All", energy_filter: str = "All") -> list[TaskView]:
    """Narrow a task list by time bucket and energy level; unknown labels raise KeyError."""
    time_ok = TIME_FILTERS[time_filter]
    energy = ENERGY_FILTERS[energy_filter]
    return [
        t for t in tasks
        if time_ok(t.duration_minutes) and (energy is None or t.energy_level == energy)
    ]


def coerce_duration(value: Optional[str]) -> int:
    """Free-form duration text to an allowed duration, defaulting to 30."""
    try:
        minutes = int(str(value or DEFAULT_DURATION).strip())
    except ValueError:
        return DEFAULT_DURATION
    return minutes if minutes in DURATIONS else DEFAULT_DURATION


def coerce_energy(value: Optional[str]) -> str:
    text = (value or "").strip().lower()
    if text.startswith("l"):
        return "low"
    if text.startswith("h"):
        return "high"
    return "med"


def _task_view(task: dict) -> TaskView:
    return TaskView(
        id=task["id"],
        name=task["title"],
        duration_minutes=task["durationMinutes"],
        energy_level=task["energyLevel"],
        duration=duration_label(task["durationMinutes"]),
        energy=energy_label(task["energyLevel"]),
        source=task["source"],
    )


class PlannerClient:
    """
    State holder over the planner REST API.

    Pass any httpx.Client with base_url set (FastAPI's TestClient works too).
    Failed requests raise httpx.HTTPStatusError.
    """

    def __init__(self, http: httpx.Client):
        self.http = http
        self.categories: list[CategoryView] = []
        self.today: list[TodayTask] = []
        self.category_lookup: dict[str, dict] = {}

    def _request(self, method: str, path: str, json: Any = None) -> Any:
        response = self.http.request(method, path, json=json)
        response.raise_for_status()
        return response.json()

    def refresh(self) -> None:
        """Refetch everything and rebuild the derived views."""
        categories = self._request("GET", "/categories")
        tasks = self._request("GET", "/tasks")
        today = self._request("GET", "/today")

        self.category_lookup = {c["id"]: c for c in categories}

        views = []
        for cat in categories:
            own = [t for t in tasks if t["categoryId"] == cat["id"] and not t.get("archivedAt")]
            up_next = [_task_view(t) for t in own if not t["inToday"] and not t["completed"]]
            views.append(CategoryView(
                id=cat["id"],
                title=cat["name"],
                color=cat.get("color") or "teal",
                is_default=cat["isDefault"],
                up_next=up_next,
                completed=[_task_view(t) for t in own if t["completed"]],
                suggested_task=up_next[0].name if up_next else None,
            ))
        self.categories = views

        self.today = [
            TodayTask(
                **_task_view(t).model_dump(),
                category=self.category_lookup.get(t["categoryId"], {}).get("name", "Task"),
                completed=t["completed"],
            )
            for t in today
            if not t.get("archivedAt")
        ]

    def _mutate(self, method: str, path: str, json: Any = None) -> Any:
        result = self._request(method, path, json)
        self.refresh()
        return result

    # Today
    def add_to_today(self, task_id: str) -> None:
        if any(t.id == task_id for t in self.today):
            return
        self._mutate("PATCH", f"/tasks/{task_id}/today", {"inToday": True})

    def remove_from_today(self, task_id: str) -> None:
        self._mutate("PATCH", f"/tasks/{task_id}/today", {"inToday": False})

    def reorder_today(self, task_ids: list[str]) -> None:
        self._mutate("POST", "/today/reorder", {"taskIds": task_ids})

    def toggle_task(self, task_id: str) -> None:
        """Flip completion of a task in Today."""
        target = next((t for t in self.today if t.id == task_id), None)
        if target is None:
            return
        self._mutate("PATCH", f"/tasks/{task_id}/complete", {"completed": not target.completed})

    def restore_task(self, task_id: str) -> None:
        self._mutate("PATCH", f"/tasks/{task_id}/complete", {"completed": False})

    def archive_task(self, task_id: str) -> None:
        # Drop the task locally before the round trip
        for cat in self.categories:
            cat.up_next = [t for t in cat.up_next if t.id != task_id]
            cat.completed = [t for t in cat.completed if t.id != task_id]
        self.today = [t for t in self.today if t.id != task_id]
        self._mutate("PATCH", f"/tasks/{task_id}/archive", {})

    # Task creation
    def add_task_to_category(
        self,
        category_id: str,
        name: str,
        duration: str,
        energy: str,
        add_to_today: bool = False,
    ) -> dict:
        return self._mutate("POST", "/tasks", {
            "title": name,
            "categoryId": category_id,
            "durationMinutes": coerce_duration(duration),
            "energyLevel": energy,
            "source": "manual",
            "addToToday": add_to_today,
        })

    def add_task(
        self,
        name: str,
        category: str,
        duration: Optional[str] = None,
        energy: Optional[str] = None,
        add_to_today: bool = True,
    ) -> Optional[dict]:
        """Create a task in the category with the given name (case-insensitive)."""
        entry = next(
            (c for c in self.category_lookup.values() if c["name"].lower() == category.lower()),
            None
        )
        if entry is None:
            logger.warning("Category not found for task: %s", category)
            return None
        return self.add_task_to_category(
            entry["id"], name, duration, coerce_energy(energy), add_to_today
        )

    # Categories
    def add_category(self, title: str, color: str) -> dict:
        return self._mutate("POST", "/categories", {
            "name": title,
            "color": color,
            "sortOrder": len(self.categories) + 1,
        })

    def delete_category(self, category_id: str) -> None:
        self._mutate("DELETE", f"/categories/{category_id}")
