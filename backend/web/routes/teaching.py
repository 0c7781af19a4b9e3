"""
Teaching API routes for tasks, submissions and grades.

Why:
    Expose the task catalog, the submission browser and the grading workflow
    as a JSON API. The adapter only parses requests, maps domain errors to
    status codes and delegates to the framework-free services.

Notes:
    - Authentication: `main.bearer_auth` rejects /api/* requests without a
      bearer token; the token is forwarded to the data gateway so Supabase
      row-level security decides what the caller may read or write.
    - Persistence: the gateway is built per request by an injectable factory.
      Tests call `set_gateway_factory` to use an in-memory gateway.
    - Pagination: `page_size` is clamped to 1..100 here; the services only
      require positive values.
"""

from __future__ import annotations

import logging
import re
from typing import Any, Optional

from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse, Response
from pydantic import BaseModel

from common.errors import (
    AuthError,
    AuthorizationError,
    AulaError,
    ConfigurationError,
    ConflictError,
    PartialGradeError,
    UpstreamError,
    ValidationError,
)
from gateway.ports import DataGatewayProtocol
from teaching.fields import from_payload
from teaching.services.grading import GradeInput, GradingService
from teaching.services.pagination import Page
from teaching.services.submissions import SubmissionsService
from teaching.services.tasks import TaskChanges, TaskDraft, TasksService

try:
    from ..config import get_grading_mark_retries
    from ..gateway_wiring import GatewayFactory, default_gateway_factory
except ImportError:  # flat layout (backend/web on sys.path)
    from config import get_grading_mark_retries  # type: ignore
    from gateway_wiring import GatewayFactory, default_gateway_factory  # type: ignore

teaching_router = APIRouter(tags=["Teaching"])  # explicit paths below
logger = logging.getLogger("aula.web.teaching")

PAGE_SIZE_MAX = 100

_GATEWAY_FACTORY: GatewayFactory = default_gateway_factory

_ERROR_MAX_LENGTH = 300
_SENSITIVE_TOKEN_PATTERN = re.compile(r"(?i)(secret|token|password|key|authorization)[-_a-z0-9]*\s*[:=]\s*\S+")
_JWT_PATTERN = re.compile(r"eyJ[A-Za-z0-9_-]+\.[A-Za-z0-9_-]+\.[A-Za-z0-9_-]+")


def set_gateway_factory(factory: GatewayFactory) -> None:
    """Allow tests to swap how per-request gateways are built."""
    global _GATEWAY_FACTORY
    _GATEWAY_FACTORY = factory


def reset_gateway_factory() -> None:
    set_gateway_factory(default_gateway_factory)


def _gateway(request: Request) -> DataGatewayProtocol:
    token = getattr(request.state, "access_token", None)
    if not token:
        raise AuthError("Falta encabezado Authorization")
    return _GATEWAY_FACTORY(token)


def _get_tasks_service(request: Request) -> TasksService:
    return TasksService(_gateway(request))


def _get_submissions_service(request: Request) -> SubmissionsService:
    return SubmissionsService(_gateway(request))


def _get_grading_service(request: Request) -> GradingService:
    return GradingService(_gateway(request), mark_retries=get_grading_mark_retries())


# --- Response helpers ------------------------------------------------------------


def _private_no_store() -> dict:
    return {"Cache-Control": "private, no-store"}


def _sanitize_error_message(value: Optional[str]) -> Optional[str]:
    """Strip secrets and truncate lengthy adapter errors for safe exposure."""
    if not value:
        return None
    collapsed = " ".join(str(value).split())
    if not collapsed:
        return None
    scrubbed = _SENSITIVE_TOKEN_PATTERN.sub("[redacted]", collapsed)
    scrubbed = _JWT_PATTERN.sub("[redacted]", scrubbed)
    if len(scrubbed) > _ERROR_MAX_LENGTH:
        scrubbed = scrubbed[: _ERROR_MAX_LENGTH - 3].rstrip() + "..."
    return scrubbed


def _json(body: Any, status_code: int = 200) -> JSONResponse:
    return JSONResponse(body, status_code=status_code, headers=_private_no_store())


def _no_content() -> Response:
    return Response(status_code=204, headers=_private_no_store())


def _error_response(exc: AulaError) -> JSONResponse:
    if isinstance(exc, ValidationError):
        status, kind = 400, "bad_request"
    elif isinstance(exc, AuthError):
        status, kind = 401, "unauthenticated"
    elif isinstance(exc, AuthorizationError):
        status, kind = 403, "forbidden"
    elif isinstance(exc, ConflictError):
        status, kind = 409, "conflict"
    elif isinstance(exc, ConfigurationError):
        status, kind = 500, "server_misconfigured"
    elif isinstance(exc, UpstreamError):
        status, kind = 502, "upstream_error"
    else:
        status, kind = 500, "internal_error"
    body = {"error": kind, "detail": exc.code, "message": _sanitize_error_message(exc.message)}
    return _json(body, status_code=status)


def _page_body(page: Page) -> dict:
    return {"items": page.items, "count": page.count, "page": page.page, "page_size": page.page_size}


def _clamp_page_size(value: int) -> int:
    return max(1, min(PAGE_SIZE_MAX, int(value)))


# --- Request models --------------------------------------------------------------


class TaskCreatePayload(BaseModel):
    course_id: object | None = None
    title: object | None = None
    description: object | None = None
    due_date: object | None = None
    max_score: object | None = None
    is_published: object | None = None


class TaskUpdatePayload(BaseModel):
    title: object | None = None
    description: object | None = None
    due_date: object | None = None
    max_score: object | None = None
    is_published: object | None = None


class TaskPublishPayload(BaseModel):
    published: object | None = None


class GradePayload(BaseModel):
    score: object | None = None
    feedback: object | None = None
    graded_by: object | None = None


# --- Tasks -------------------------------------------------------------------------


@teaching_router.get("/api/tasks")
async def list_tasks(
    request: Request,
    q: str | None = None,
    page: int = 1,
    page_size: int = 10,
    course_id: str | None = None,
    is_published: bool | None = None,
):
    """List tasks newest first with search and pagination.

    Behavior:
        - `q` matches the title case-insensitively (substring).
        - 200 `{items, count, page, page_size}`; `count` is the exact total.
    """
    try:
        result = _get_tasks_service(request).list_tasks(
            search=q,
            page=page,
            page_size=_clamp_page_size(page_size),
            course_id=course_id,
            is_published=is_published,
        )
    except AulaError as exc:
        return _error_response(exc)
    return _json(_page_body(result))


@teaching_router.post("/api/tasks")
async def create_task(request: Request, payload: TaskCreatePayload):
    try:
        task_id = _get_tasks_service(request).create_task(
            TaskDraft(
                course_id=payload.course_id,
                title=payload.title,
                description=payload.description,
                due_date=payload.due_date,
                max_score=payload.max_score,
                is_published=payload.is_published,
            )
        )
    except AulaError as exc:
        return _error_response(exc)
    logger.info("task created: id=%s", task_id)
    return _json({"id": task_id}, status_code=201)


@teaching_router.get("/api/tasks/{task_id}")
async def get_task(request: Request, task_id: str):
    try:
        task = _get_tasks_service(request).get_task_by_id(task_id)
    except AulaError as exc:
        return _error_response(exc)
    if task is None:
        return _json({"error": "not_found"}, status_code=404)
    return _json(task)


@teaching_router.patch("/api/tasks/{task_id}")
async def update_task(request: Request, task_id: str, payload: TaskUpdatePayload):
    """Partially update a task.

    Only keys present in the JSON body are written; an explicit `null`
    clears a nullable column (`description`, `due_date`).
    """
    body = {name: getattr(payload, name) for name in payload.model_fields_set}
    changes = TaskChanges(
        title=from_payload(body, "title"),
        description=from_payload(body, "description"),
        due_date=from_payload(body, "due_date"),
        max_score=from_payload(body, "max_score"),
        is_published=from_payload(body, "is_published"),
    )
    try:
        _get_tasks_service(request).update_task(task_id, changes)
    except AulaError as exc:
        return _error_response(exc)
    return _no_content()


@teaching_router.post("/api/tasks/{task_id}/publish")
async def publish_task(request: Request, task_id: str, payload: TaskPublishPayload):
    try:
        _get_tasks_service(request).publish_task(task_id, payload.published)  # type: ignore[arg-type]
    except AulaError as exc:
        return _error_response(exc)
    return _no_content()


@teaching_router.delete("/api/tasks/{task_id}")
async def delete_task(request: Request, task_id: str):
    """Delete a task; 409 when submissions or grades still reference it."""
    try:
        _get_tasks_service(request).delete_task(task_id)
    except AulaError as exc:
        return _error_response(exc)
    return _no_content()


@teaching_router.get("/api/courses/{course_id}/tasks")
async def list_course_tasks(request: Request, course_id: str):
    try:
        tasks = _get_tasks_service(request).get_tasks_by_course(course_id)
    except AulaError as exc:
        return _error_response(exc)
    return _json(tasks)


# --- Submissions -------------------------------------------------------------------


@teaching_router.get("/api/tasks/{task_id}/submissions")
async def list_task_submissions(
    request: Request,
    task_id: str,
    q: str | None = None,
    page: int = 1,
    page_size: int = 10,
):
    try:
        result = _get_submissions_service(request).list_submissions(
            task_id,
            search=q,
            page=page,
            page_size=_clamp_page_size(page_size),
        )
    except AulaError as exc:
        return _error_response(exc)
    return _json(_page_body(result))


@teaching_router.get("/api/submissions/{submission_id}")
async def get_submission(request: Request, submission_id: str):
    try:
        submission = _get_submissions_service(request).get_submission_by_id(submission_id)
    except AulaError as exc:
        return _error_response(exc)
    if submission is None:
        return _json({"error": "not_found"}, status_code=404)
    return _json(submission)


@teaching_router.delete("/api/submissions/{submission_id}")
async def delete_submission(request: Request, submission_id: str):
    try:
        _get_submissions_service(request).delete_submission(submission_id)
    except AulaError as exc:
        return _error_response(exc)
    return _no_content()


# --- Grades ------------------------------------------------------------------------


@teaching_router.get("/api/tasks/{task_id}/grades/{student_id}")
async def get_task_grade(request: Request, task_id: str, student_id: str):
    try:
        grade = _get_grading_service(request).get_grade_for_task(task_id, student_id)
    except AulaError as exc:
        return _error_response(exc)
    if grade is None:
        return _json({"error": "not_found"}, status_code=404)
    return _json(grade)


@teaching_router.put("/api/tasks/{task_id}/grades/{student_id}")
async def upsert_task_grade(request: Request, task_id: str, student_id: str, payload: GradePayload):
    """Create or update the grade of one student for one task.

    Behavior:
        - 200 `{grade, created, graded_at}` when both writes succeeded.
        - 502 `{error: "partial_failure", grade}` when the grade was saved but
          the submission could not be marked graded.
    """
    req = GradeInput(
        student_id=student_id,
        task_id=task_id,
        score=payload.score,
        feedback=payload.feedback,  # type: ignore[arg-type]
        graded_by=payload.graded_by,  # type: ignore[arg-type]
    )
    try:
        result = _get_grading_service(request).upsert_task_grade(req)
    except PartialGradeError as exc:
        body = {
            "error": "partial_failure",
            "detail": "submission_not_marked",
            "message": exc.message,
            "grade": exc.grade,
            "created": exc.created,
        }
        return _json(body, status_code=502)
    except AulaError as exc:
        return _error_response(exc)
    return _json({"grade": result.grade, "created": result.created, "graded_at": result.graded_at})
