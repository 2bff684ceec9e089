"""Task storage and list queries.

Tasks live in a process-local dict keyed by id. Every operation is scoped to
the owning user: another user's task id behaves like a missing one.
"""

from __future__ import annotations

import logging
import math
import threading
import uuid
from collections.abc import Callable
from datetime import date, datetime, timezone
from typing import Any

from app.core.errors import NotFoundAppError, ValidationAppError
from app.schemas.tasks import (
    Pagination,
    Task,
    TaskCreate,
    TaskListData,
    TaskListFilters,
    TaskStats,
    TaskUpdate,
)

logger = logging.getLogger(__name__)

PRIORITIES = ("low", "medium", "high")
SORT_FIELDS = ("created_at", "title", "priority", "completed")
_PRIORITY_RANK = {"high": 0, "medium": 1, "low": 2}

DEFAULT_PAGE_SIZE = 20


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _parse_date(value: str | None, field_name: str) -> date | None:
    if not value:
        return None
    try:
        return date.fromisoformat(value)
    except ValueError as exc:
        raise ValidationAppError(
            code="invalid_date",
            message=f"{field_name} must be a date in YYYY-MM-DD format",
            details={"field": field_name},
        ) from exc


def _parse_positive_int(value: str | None, default: int) -> int:
    try:
        parsed = int(value) if value is not None else default
    except ValueError:
        return default
    return parsed if parsed > 0 else default


def build_list_filters(
    *,
    completed: str | None = None,
    priority: list[str] | None = None,
    search: str | None = None,
    start_date: str | None = None,
    end_date: str | None = None,
    sort_by: str | None = None,
    sort_order: str | None = None,
    page: str | None = None,
    limit: str | None = None,
    max_page_size: int = 100,
) -> TaskListFilters:
    """Normalize raw query values into ``TaskListFilters``.

    Unknown sort fields/orders fall back to defaults, non-positive page/limit
    fall back to 1/20, and ``limit`` is capped at ``max_page_size``. Priority
    accepts repeated parameters and comma-separated lists.

    Raises:
        ValidationAppError: On an unknown priority or a malformed date.
    """
    priorities: list[str] = []
    for raw in priority or []:
        for item in raw.split(","):
            item = item.strip().lower()
            if not item:
                continue
            if item not in PRIORITIES:
                raise ValidationAppError(
                    code="invalid_priority",
                    message=f"priority must be one of: {', '.join(PRIORITIES)}",
                    details={"field": "priority"},
                )
            if item not in priorities:
                priorities.append(item)

    completed_flag = None
    if completed is not None and completed != "":
        completed_flag = completed.lower() in ("true", "1")

    order = (sort_order or "desc").lower()

    return TaskListFilters(
        completed=completed_flag,
        priorities=priorities,
        search=(search or "").strip() or None,
        start_date=_parse_date(start_date, "start_date"),
        end_date=_parse_date(end_date, "end_date"),
        sort_by=sort_by if sort_by in SORT_FIELDS else "created_at",
        sort_order=order if order in ("asc", "desc") else "desc",
        page=_parse_positive_int(page, 1),
        limit=min(_parse_positive_int(limit, DEFAULT_PAGE_SIZE), max_page_size),
    )


def _sort_key(field_name: str) -> Callable[[Task], Any]:
    if field_name == "priority":
        return lambda task: (_PRIORITY_RANK[task.priority], task.created_at)
    if field_name == "title":
        return lambda task: task.title.lower()
    return lambda task: getattr(task, field_name)


class TaskRepository:
    """Thread-safe in-memory task store."""

    def __init__(self, *, clock: Callable[[], datetime] = _utcnow) -> None:
        self._clock = clock
        self._lock = threading.Lock()
        self._tasks: dict[str, Task] = {}

    def create(self, user_id: str, payload: TaskCreate) -> Task:
        now = self._clock()
        task = Task(
            id=str(uuid.uuid4()),
            user_id=user_id,
            created_at=now,
            updated_at=now,
            **payload.model_dump(),
        )
        with self._lock:
            self._tasks[task.id] = task

        logger.info("task.created", extra={"user_id": user_id, "task_id": task.id})
        return task

    def get(self, user_id: str, task_id: str) -> Task:
        with self._lock:
            task = self._tasks.get(task_id)
        if task is None or task.user_id != user_id:
            raise NotFoundAppError(
                code="task_not_found",
                message="Task not found",
                details={"resource_id": task_id},
            )
        return task

    def update(self, user_id: str, task_id: str, payload: TaskUpdate) -> Task:
        changes = payload.model_dump(exclude_unset=True, exclude_none=True)
        with self._lock:
            current = self._tasks.get(task_id)
            if current is None or current.user_id != user_id:
                raise NotFoundAppError(
                    code="task_not_found",
                    message="Task not found",
                    details={"resource_id": task_id},
                )
            updated = current.model_copy(update={**changes, "updated_at": self._clock()})
            self._tasks[task_id] = updated

        logger.info(
            "task.updated",
            extra={"user_id": user_id, "task_id": task_id, "fields": sorted(changes)},
        )
        return updated

    def delete(self, user_id: str, task_id: str) -> None:
        with self._lock:
            current = self._tasks.get(task_id)
            if current is None or current.user_id != user_id:
                raise NotFoundAppError(
                    code="task_not_found",
                    message="Task not found",
                    details={"resource_id": task_id},
                )
            del self._tasks[task_id]

        logger.info("task.deleted", extra={"user_id": user_id, "task_id": task_id})

    def list_for_user(self, user_id: str, filters: TaskListFilters) -> TaskListData:
        """Filter, sort and paginate the user's tasks."""

        with self._lock:
            tasks = [task for task in self._tasks.values() if task.user_id == user_id]

        if filters.completed is not None:
            tasks = [t for t in tasks if t.completed == filters.completed]
        if filters.priorities:
            tasks = [t for t in tasks if t.priority in filters.priorities]
        if filters.search:
            needle = filters.search.lower()
            tasks = [
                t for t in tasks
                if needle in t.title.lower() or needle in t.description.lower()
            ]
        if filters.start_date:
            tasks = [t for t in tasks if t.created_at.date() >= filters.start_date]
        if filters.end_date:
            tasks = [t for t in tasks if t.created_at.date() <= filters.end_date]

        tasks.sort(key=_sort_key(filters.sort_by), reverse=filters.sort_order == "desc")

        total = len(tasks)
        offset = (filters.page - 1) * filters.limit
        page_items = tasks[offset:offset + filters.limit]

        return TaskListData(
            tasks=page_items,
            pagination=Pagination(
                page=filters.page,
                limit=filters.limit,
                total=total,
                pages=math.ceil(total / filters.limit) if total else 0,
            ),
            filters=filters.model_dump(mode="json"),
        )

    def stats(self, user_id: str) -> TaskStats:
        with self._lock:
            tasks = [task for task in self._tasks.values() if task.user_id == user_id]

        total = len(tasks)
        completed = sum(1 for task in tasks if task.completed)
        return TaskStats(
            total=total,
            completed=completed,
            pending=total - completed,
            completion_rate=round(completed * 100 / total, 2) if total else 0.0,
        )
