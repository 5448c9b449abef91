# ABOUTME: Pydantic request bodies for goal and task creation.
# ABOUTME: Validation beyond types (non-empty title, known priority/status) raises ValueError -> 400.

from datetime import date
from typing import Optional

from pydantic import BaseModel, Field, field_validator

from core.config import PRIORITIES, TASK_STATUSES


def _require_title(value: Optional[str]) -> str:
    if value is None or not value.strip():
        raise ValueError("title is required")
    return value.strip()


def _check_priority(value: Optional[str]) -> Optional[str]:
    if value is not None and value not in PRIORITIES:
        raise ValueError(f"priority must be one of {', '.join(PRIORITIES)}")
    return value


class GoalCreateRequest(BaseModel):
    title: Optional[str] = Field(default=None, validate_default=True)
    description: Optional[str] = None
    category: Optional[str] = None
    target_date: Optional[date] = None
    priority: Optional[str] = None

    @field_validator("title")
    @classmethod
    def check_title(cls, v):
        return _require_title(v)

    @field_validator("priority")
    @classmethod
    def check_priority(cls, v):
        return _check_priority(v)


class TaskCreateRequest(BaseModel):
    title: Optional[str] = Field(default=None, validate_default=True)
    goal_id: Optional[int] = None
    description: Optional[str] = None
    status: Optional[str] = None
    priority: Optional[str] = None
    estimated_time: Optional[int] = Field(default=None, ge=0)
    due_date: Optional[date] = None

    @field_validator("title")
    @classmethod
    def check_title(cls, v):
        return _require_title(v)

    @field_validator("priority")
    @classmethod
    def check_priority(cls, v):
        return _check_priority(v)

    @field_validator("status")
    @classmethod
    def check_status(cls, v):
        if v is not None and v not in TASK_STATUSES:
            raise ValueError(f"status must be one of {', '.join(TASK_STATUSES)}")
        return v
