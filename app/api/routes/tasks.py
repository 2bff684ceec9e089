from __future__ import annotations

from fastapi import APIRouter, Query, Request, Response, status

from app.api.dependencies import ContextDep, UserDep
from app.core.cache import serve_cached
from app.schemas.tasks import (
    MessageResponse,
    TaskCreate,
    TaskListResponse,
    TaskResponse,
    TaskStatsResponse,
    TaskUpdate,
)
from app.services.task_service import build_list_filters

router = APIRouter(prefix="/api/tasks", tags=["Tasks"])


@router.get("/stats/summary", response_model=TaskStatsResponse)
def task_stats(identity: UserDep, context: ContextDep) -> TaskStatsResponse:
    """Totals of completed and pending tasks for the caller."""

    return TaskStatsResponse(data=context.tasks.stats(identity.user_id))


@router.get("", response_model=TaskListResponse)
def list_tasks(
    request: Request,
    identity: UserDep,
    context: ContextDep,
    completed: str | None = Query(None, description="true/false"),
    priority: list[str] | None = Query(None, description="low, medium, high; comma list or repeated"),
    search: str | None = Query(None, description="Substring of title or description"),
    start_date: str | None = Query(None, description="YYYY-MM-DD, inclusive"),
    end_date: str | None = Query(None, description="YYYY-MM-DD, inclusive"),
    sort_by: str | None = Query(None, description="created_at|title|priority|completed"),
    sort_order: str | None = Query(None, description="asc|desc"),
    page: str | None = Query(None, description="Page number (default 1)"),
    limit: str | None = Query(None, description="Page size (default 20)"),
) -> Response:
    """List the caller's tasks with filters, sorting and pagination.

    Responses are cached per user and normalized query string for the
    configured TTL. Writes do not invalidate the cache.
    """

    def _produce() -> TaskListResponse:
        filters = build_list_filters(
            completed=completed,
            priority=priority,
            search=search,
            start_date=start_date,
            end_date=end_date,
            sort_by=sort_by,
            sort_order=sort_order,
            page=page,
            limit=limit,
            max_page_size=context.settings.app.max_page_size,
        )
        return TaskListResponse(data=context.tasks.list_for_user(identity.user_id, filters))

    return serve_cached(
        context.response_cache,
        identity=identity,
        query_items=request.query_params.multi_items(),
        produce=_produce,
        enabled=context.settings.cache.enabled,
    )


@router.post("", response_model=TaskResponse, status_code=status.HTTP_201_CREATED)
def create_task(payload: TaskCreate, identity: UserDep, context: ContextDep) -> TaskResponse:
    task = context.tasks.create(identity.user_id, payload)
    return TaskResponse(message="Task created", data=task)


@router.get("/{task_id}", response_model=TaskResponse)
def get_task(task_id: str, identity: UserDep, context: ContextDep) -> TaskResponse:
    return TaskResponse(data=context.tasks.get(identity.user_id, task_id))


@router.put("/{task_id}", response_model=TaskResponse)
def update_task(
    task_id: str,
    payload: TaskUpdate,
    identity: UserDep,
    context: ContextDep,
) -> TaskResponse:
    task = context.tasks.update(identity.user_id, task_id, payload)
    return TaskResponse(message="Task updated", data=task)


@router.delete("/{task_id}", response_model=MessageResponse)
def delete_task(task_id: str, identity: UserDep, context: ContextDep) -> MessageResponse:
    context.tasks.delete(identity.user_id, task_id)
    return MessageResponse(message="Task deleted")
