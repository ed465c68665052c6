from __future__ import annotations

import json
import datetime as dt
from datetime import datetime, timezone
from typing import Annotated, Dict, List, Literal, Optional

from pydantic import AfterValidator, BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

TaskStatus = Literal["pending", "in_progress", "completed"]
TaskPriority = Literal["low", "medium", "high", "urgent"]
TaskCategory = Literal["work", "personal", "health", "finance", "learning", "social", "other"]
UserRole = Literal["user", "admin"]


def _naive_utc(value: Optional[datetime]) -> Optional[datetime]:
    if value is None or value.tzinfo is None:
        return value
    return value.astimezone(timezone.utc).replace(tzinfo=None)


UtcDateTime = Annotated[datetime, AfterValidator(_naive_utc)]


def _aware_utc(value: datetime) -> datetime:
    # stored naive UTC; responses carry the offset
    return value.replace(tzinfo=timezone.utc) if value.tzinfo is None else value.astimezone(timezone.utc)


UtcResponseDateTime = Annotated[datetime, AfterValidator(_aware_utc)]


class ApiModel(BaseModel):
    """camelCase on the wire, snake_case in Python."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


# ---------- Tasks ----------

class TaskCreate(ApiModel):
    title: str = Field(min_length=1, max_length=255)
    description: Optional[str] = None
    due_date: Optional[UtcDateTime] = None
    use_ai: bool = Field(default=True, alias="useAI")
    priority: Optional[TaskPriority] = None
    category: Optional[TaskCategory] = None


class TaskUpdate(ApiModel):
    title: Optional[str] = Field(default=None, min_length=1, max_length=255)
    description: Optional[str] = None
    due_date: Optional[UtcDateTime] = None
    status: Optional[TaskStatus] = None
    priority: Optional[TaskPriority] = None
    category: Optional[TaskCategory] = None


class TaskFilters(ApiModel):
    status: Optional[TaskStatus] = None
    priority: Optional[TaskPriority] = None
    category: Optional[TaskCategory] = None
    search: Optional[str] = None
    due_date_from: Optional[UtcDateTime] = None
    due_date_to: Optional[UtcDateTime] = None


class AIAnalysisOut(BaseModel):
    reasoning: str = ""
    tips: List[str] = Field(default_factory=list)


class TaskResponse(ApiModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, from_attributes=True)

    id: int
    user_id: int
    title: str
    description: Optional[str] = None
    status: TaskStatus
    priority: TaskPriority
    category: TaskCategory
    due_date: Optional[UtcResponseDateTime] = None
    suggested_time: Optional[UtcResponseDateTime] = None
    ai_analysis: Optional[AIAnalysisOut] = None
    completed_at: Optional[UtcResponseDateTime] = None
    created_at: UtcResponseDateTime
    updated_at: UtcResponseDateTime

    @field_validator("ai_analysis", mode="before")
    @classmethod
    def _decode_analysis(cls, value):
        if value is None or isinstance(value, (dict, AIAnalysisOut)):
            return value
        try:
            return json.loads(value)
        except (TypeError, ValueError):
            return None


class SuccessResponse(ApiModel):
    success: bool = True


# ---------- AI ----------

class SuggestionsResponse(ApiModel):
    focus_task: Optional[int] = None
    suggestions: List[str]
    daily_plan: str


class PriorityUpdate(ApiModel):
    id: int
    priority: TaskPriority
    reasoning: str


class ReanalyzeResponse(ApiModel):
    updated: int
    results: List[PriorityUpdate] = Field(default_factory=list)


# ---------- Stats ----------

class ProductivityMetrics(ApiModel):
    total: int
    completed: int
    pending: int
    in_progress: int
    overdue: int
    completion_rate: float
    by_priority: Dict[str, int] = Field(default_factory=dict)
    by_category: Dict[str, int] = Field(default_factory=dict)


class DailyStatResponse(ApiModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, from_attributes=True)

    id: int
    user_id: int
    date: dt.date
    tasks_created: int
    tasks_completed: int


# ---------- Auth ----------

class RegisterRequest(ApiModel):
    name: str = Field(min_length=1, max_length=255)
    email: str = Field(min_length=3, max_length=320, pattern=r"^[^@\s]+@[^@\s]+\.[^@\s]+$")
    password: str = Field(min_length=6, max_length=128)

    @field_validator("email")
    @classmethod
    def _lower_email(cls, value: str) -> str:
        return value.strip().lower()


class LoginRequest(ApiModel):
    email: str = Field(min_length=1)
    password: str = Field(min_length=1)

    @field_validator("email")
    @classmethod
    def _lower_email(cls, value: str) -> str:
        return value.strip().lower()


class UserResponse(ApiModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, from_attributes=True)

    id: int
    email: str
    name: Optional[str] = None
    login_method: str
    role: UserRole
    created_at: UtcResponseDateTime
    last_signed_in: UtcResponseDateTime
