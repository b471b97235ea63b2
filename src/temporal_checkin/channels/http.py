"""HTTP API for multi-day tasks.

Thin FastAPI adapter over `TaskService`. Request bodies are validated with
the same pydantic models the service uses; task errors map onto status
codes in one place.
"""

from typing import Any

from fastapi import APIRouter, Depends, FastAPI, Query, Request, Response
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from loguru import logger
from pydantic import BaseModel

from temporal_checkin import __version__
from temporal_checkin.errors import (
    InvalidArgumentError,
    InvalidTaskStateError,
    TaskError,
    TaskNotFoundError,
    TransientStoreError,
)
from temporal_checkin.logging import format_log_context
from temporal_checkin.models import (
    AddCheckInInput,
    CreateTaskInput,
    TaskListFilters,
    TaskStatus,
    TaskUpdate,
)
from temporal_checkin.tasks.service import TaskService, get_task_service


class HealthResponse(BaseModel):
    """Health check response."""

    status: str
    version: str = __version__


def get_service(request: Request) -> TaskService:
    return request.app.state.task_service


router = APIRouter(prefix="/v1/multi-day-tasks", tags=["multi-day-tasks"])


@router.post("", status_code=201)
def create_task(body: CreateTaskInput, service: TaskService = Depends(get_service)) -> dict[str, Any]:
    """Create a task; the response carries its conversation id and prompt schedule."""
    task = service.create_task(body)
    data = task.to_dict()
    data["schedule"] = [slot.to_dict() for slot in service.get_schedule(task.id)]
    return data


@router.get("/users/{user_id}")
def list_user_tasks(
    user_id: str,
    status: TaskStatus | None = None,
    topic_category: str | None = None,
    limit: int = Query(50, ge=1, le=100),
    offset: int = Query(0, ge=0),
    service: TaskService = Depends(get_service),
) -> dict[str, Any]:
    filters = TaskListFilters(
        status=status, topic_category=topic_category, limit=limit, offset=offset
    )
    tasks = service.list_by_user(user_id, filters)
    return {
        "tasks": [task.to_dict() for task in tasks],
        "count": len(tasks),
        "user_id": user_id,
        "limit": limit,
        "offset": offset,
    }


@router.get("/{task_id}")
def get_task(task_id: str, service: TaskService = Depends(get_service)) -> dict[str, Any]:
    task = service.find_by_id(task_id)
    if task is None:
        raise TaskNotFoundError(task_id)
    return task.to_dict()


@router.post("/{task_id}/check-ins", status_code=201)
def add_check_in(
    task_id: str,
    body: AddCheckInInput,
    service: TaskService = Depends(get_service),
) -> dict[str, Any]:
    return service.add_check_in(task_id, body).to_dict()


@router.patch("/{task_id}")
def update_task(
    task_id: str,
    body: TaskUpdate,
    service: TaskService = Depends(get_service),
) -> dict[str, Any]:
    return service.update_task(task_id, body).to_dict()


@router.post("/{task_id}/complete")
def complete_task(task_id: str, service: TaskService = Depends(get_service)) -> dict[str, Any]:
    return service.complete_task(task_id).to_dict()


@router.get("/{task_id}/temporal-analysis")
def temporal_analysis(task_id: str, service: TaskService = Depends(get_service)) -> dict[str, Any]:
    task, analysis = service.preview_analysis(task_id)
    if analysis is None:
        return {"message": "No check-ins yet", "analysis": None}
    return {
        "task_id": task.id,
        "task_title": task.title,
        "check_ins_count": len(task.check_ins),
        "analysis": analysis.to_dict(),
    }


@router.get("/{task_id}/schedule")
def task_schedule(task_id: str, service: TaskService = Depends(get_service)) -> dict[str, Any]:
    slots = service.get_schedule(task_id)
    return {"task_id": task_id, "slots": [slot.to_dict() for slot in slots], "count": len(slots)}


@router.delete("/{task_id}", status_code=204)
def delete_task(task_id: str, service: TaskService = Depends(get_service)) -> Response:
    if not service.delete_task(task_id):
        raise TaskNotFoundError(task_id)
    return Response(status_code=204)


def _error_status(exc: TaskError) -> int:
    if isinstance(exc, TaskNotFoundError):
        return 404
    if isinstance(exc, InvalidTaskStateError):
        return 409
    if isinstance(exc, InvalidArgumentError):
        return 400
    if isinstance(exc, TransientStoreError):
        return 503
    return 500


def create_app(service: TaskService | None = None) -> FastAPI:
    """Build the FastAPI application."""
    app = FastAPI(
        title="Temporal Check-in API",
        description="Multi-day tasks with scheduled check-ins and temporal synthesis",
        version=__version__,
    )
    app.state.task_service = service or get_task_service()
    app.include_router(router)

    @app.exception_handler(TaskError)
    async def task_error_handler(request: Request, exc: TaskError) -> JSONResponse:
        status_code = _error_status(exc)
        ctx = format_log_context(
            "request_failed", component="http", path=request.url.path, status=status_code
        )
        if status_code >= 500:
            logger.error(f'{ctx} error="{exc}"')
        else:
            logger.info(f'{ctx} error="{exc}"')
        return JSONResponse(status_code=status_code, content={"error": str(exc)})

    @app.exception_handler(RequestValidationError)
    async def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
        return JSONResponse(
            status_code=400,
            content={
                "error": "Validation failed",
                "details": [
                    {
                        "field": ".".join(str(part) for part in err["loc"] if part != "body"),
                        "message": err["msg"],
                    }
                    for err in exc.errors()
                ],
            },
        )

    @app.get("/health", response_model=HealthResponse)
    async def health() -> HealthResponse:
        return HealthResponse(status="healthy")

    return app
