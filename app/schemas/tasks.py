"""Pydantic schemas for tasks and task list queries."""

from __future__ import annotations

from datetime import date, datetime
from typing import Any, Literal

from pydantic import BaseModel, Field

Priority = Literal["low", "medium", "high"]
SortField = Literal["created_at", "title", "priority", "completed"]
SortOrder = Literal["asc", "desc"]


class Task(BaseModel):
    id: str
    title: str
    description: str = ""
    priority: Priority = "medium"
    completed: bool = False
    user_id: str
    created_at: datetime
    updated_at: datetime


class TaskCreate(BaseModel):
    title: str = Field(..., min_length=1, max_length=200)
    description: str = Field("", max_length=1000)
    priority: Priority = "medium"
    completed: bool = False


class TaskUpdate(BaseModel):
    """Partial update; omitted fields are left unchanged."""

    title: str | None = Field(None, min_length=1, max_length=200)
    description: str | None = Field(None, max_length=1000)
    priority: Priority | None = None
    completed: bool | None = None


class TaskListFilters(BaseModel):
    """Normalized list query (already clamped and defaulted)."""

    completed: bool | None = None
    priorities: list[Priority] = Field(default_factory=list)
    search: str | None = None
    start_date: date | None = None
    end_date: date | None = None
    sort_by: SortField = "created_at"
    sort_order: SortOrder = "desc"
    page: int = 1
    limit: int = 20


class Pagination(BaseModel):
    page: int
    limit: int
    total: int
    pages: int


class TaskListData(BaseModel):
    tasks: list[Task]
    pagination: Pagination
    filters: dict[str, Any]


class TaskListResponse(BaseModel):
    success: bool = True
    data: TaskListData


class TaskResponse(BaseModel):
    success: bool = True
    message: str | None = None
    data: Task


class TaskStats(BaseModel):
    total: int
    completed: int
    pending: int
    completion_rate: float = Field(..., description="Completed share in percent (0-100).")


class TaskStatsResponse(BaseModel):
    success: bool = True
    data: TaskStats


class MessageResponse(BaseModel):
    success: bool = True
    message: str
