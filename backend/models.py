from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

# Allowed task durations in minutes
DURATIONS = (15, 30, 60, 120)


class EnergyLevel(str, Enum):
    low = "low"
    med = "med"
    high = "high"


class Source(str, Enum):
    manual = "manual"
    assistant = "assistant"
    imported = "imported"


class Color(str, Enum):
    teal = "teal"
    lavender = "lavender"
    blue = "blue"
    green = "green"
    orange = "orange"
    pink = "pink"


class AuditAction(str, Enum):
    create_task = "create_task"
    update_task = "update_task"
    create_category = "create_category"
    update_category = "update_category"
    complete_task = "complete_task"
    reopen_task = "reopen_task"
    archive_task = "archive_task"
    add_to_today = "add_to_today"
    remove_from_today = "remove_from_today"


def parse_duration(value: Any) -> int:
    """
    Normalize a duration to one of DURATIONS.
    Accepts ints (30) and numeral strings ("30"); anything else is rejected.
    """
    # bool is an int subclass; True must not become 1
    if isinstance(value, bool):
        raise ValueError("Duration must be 15, 30, 60, or 120")
    if isinstance(value, str) and value.strip().isdigit():
        value = int(value.strip())
    if isinstance(value, int) and value in DURATIONS:
        return value
    raise ValueError("Duration must be 15, 30, 60, or 120")


class ApiModel(BaseModel):
    """camelCase on the wire, snake_case in Python."""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class User(ApiModel):
    id: str
    email: str
    created_at: str


class CategoryCounts(ApiModel):
    total: int = 0
    in_today: int = 0
    completed: int = 0


class Category(ApiModel):
    id: str
    user_id: str
    name: str
    description: Optional[str] = None
    color: str
    is_default: bool = False
    sort_order: int = 0
    created_at: str
    updated_at: str


class CategoryWithCounts(Category):
    counts: CategoryCounts


class CategoryCreate(ApiModel):
    name: str = Field(min_length=1)
    description: Optional[str] = None
    color: Color
    sort_order: Optional[int] = None


class CategoryUpdate(ApiModel):
    name: Optional[str] = Field(default=None, min_length=1)
    description: Optional[str] = None
    color: Optional[Color] = None
    sort_order: Optional[int] = None


class Task(ApiModel):
    id: str
    user_id: str
    category_id: str
    title: str
    duration_minutes: int
    energy_level: EnergyLevel
    source: Source
    completed: bool = False
    in_today: bool = False
    today_position: Optional[int] = None
    archived_at: Optional[str] = None
    created_at: str  # ISO format datetime string
    updated_at: str


class TaskCreate(ApiModel):
    title: str = Field(min_length=1)
    category_id: str = Field(min_length=1)
    duration_minutes: int
    energy_level: EnergyLevel
    source: Source = Source.manual
    add_to_today: bool = False

    @field_validator("duration_minutes", mode="before")
    @classmethod
    def _normalize_duration(cls, value: Any) -> int:
        return parse_duration(value)


class TaskUpdate(ApiModel):
    title: Optional[str] = Field(default=None, min_length=1)
    category_id: Optional[str] = Field(default=None, min_length=1)
    duration_minutes: Optional[int] = None
    energy_level: Optional[EnergyLevel] = None
    source: Optional[Source] = None

    @field_validator("duration_minutes", mode="before")
    @classmethod
    def _normalize_duration(cls, value: Any) -> Optional[int]:
        if value is None:
            return None
        return parse_duration(value)


class TodayUpdate(ApiModel):
    in_today: bool
    today_position: Optional[int] = Field(default=None, ge=1)


class CompletionUpdate(ApiModel):
    completed: bool


class ReorderRequest(ApiModel):
    task_ids: list[str]


class Message(BaseModel):
    role: str  # "user" or "assistant"
    content: str


class ChatRequest(ApiModel):
    message: str = Field(min_length=1)
    history: list[Message] = []
    user_id: Optional[str] = None


class ChatResult(ApiModel):
    response: str
    created_task: Optional[Task] = None
    error: Optional[str] = None


class InsightsResult(ApiModel):
    insights: list[str] = []
    error: Optional[str] = None
