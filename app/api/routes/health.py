from __future__ import annotations

import time
from datetime import datetime, timezone

from fastapi import APIRouter

from app.api.dependencies import ContextDep

router = APIRouter(tags=["Health"])


@router.get("/health")
def health_check(context: ContextDep) -> dict:
    """Health check endpoint.

    Exempt from rate limiting so load balancers can poll it freely.

    Returns:
        dict: status, current UTC timestamp and process uptime in seconds.
    """

    return {
        "status": "healthy",
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "uptime": round(time.monotonic() - context.started_at, 3),
    }


@router.get("/")
def service_info() -> dict:
    """Describe the service, its endpoints and the task list filters."""

    return {
        "service": "Task Management API",
        "version": "1.0.0",
        "endpoints": {
            "auth": ["POST /api/auth/register", "POST /api/auth/login"],
            "tasks": [
                "GET /api/tasks",
                "POST /api/tasks",
                "GET /api/tasks/{task_id}",
                "PUT /api/tasks/{task_id}",
                "DELETE /api/tasks/{task_id}",
                "GET /api/tasks/stats/summary",
            ],
        },
        "filters": {
            "GET /api/tasks": {
                "completed": "true|false",
                "priority": "low,medium,high (comma list or repeated)",
                "search": "substring of title or description",
                "start_date": "YYYY-MM-DD",
                "end_date": "YYYY-MM-DD",
                "sort_by": "created_at|title|priority|completed",
                "sort_order": "asc|desc",
                "page": "number (default 1)",
                "limit": "number (default 20)",
            }
        },
    }
