"""Teaching tasks service layer (task catalog).

Why:
    Encapsulates task use cases (list/create/update/publish/delete/lookup) so
    that web adapters remain framework-free and we can unit-test validation
    logic against an in-memory gateway.
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Callable, Dict, List, Optional

from common.errors import ConflictError, ValidationError
from gateway.ports import (
    FOREIGN_KEY_VIOLATION,
    DataGatewayProtocol,
    GatewayError,
    Order,
    eq,
    ilike_contains,
    select_maybe_one,
)
from teaching.fields import CLEAR, UNCHANGED, FieldUpdate, SetTo

from .pagination import Page, normalize_search, window_for

TASKS_TABLE = "tasks"
DEFAULT_MAX_SCORE = 100
TITLE_MIN_LENGTH = 3

DELETE_CONFLICT_MESSAGE = (
    "No se puede eliminar la tarea porque tiene entregas o calificaciones asociadas."
)


def _require_id(value: object, code: str = "missing_id") -> str:
    if not isinstance(value, str) or not value.strip():
        raise ValidationError("ID requerido", code=code)
    return value.strip()


def _normalize_title(value: object) -> str:
    if not isinstance(value, str):
        raise ValidationError("El título es obligatorio (mínimo 3 caracteres)", code="invalid_title")
    trimmed = value.strip()
    if len(trimmed) < TITLE_MIN_LENGTH:
        raise ValidationError("El título es obligatorio (mínimo 3 caracteres)", code="invalid_title")
    return trimmed


def _normalize_course(value: object) -> str:
    if not isinstance(value, str) or not value.strip():
        raise ValidationError("El curso es obligatorio", code="missing_course")
    return value.strip()


def _normalize_description(value: object) -> Optional[str]:
    if value is None:
        return None
    if not isinstance(value, str):
        raise ValidationError("Descripción inválida", code="invalid_description")
    return value


def _normalize_due_date(value: object) -> Optional[str]:
    if value is None:
        return None
    if not isinstance(value, str) or not value.strip():
        raise ValidationError("Fecha de entrega inválida", code="invalid_due_date")
    trimmed = value.strip()
    candidate = trimmed[:-1] + "+00:00" if trimmed.endswith("Z") else trimmed
    try:
        datetime.fromisoformat(candidate)
    except ValueError as exc:
        raise ValidationError("Fecha de entrega inválida", code="invalid_due_date") from exc
    return trimmed


def _normalize_max_score(value: object) -> float | int:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise ValidationError("Puntaje máximo inválido", code="invalid_max_score")
    if (isinstance(value, float) and not math.isfinite(value)) or value <= 0:
        raise ValidationError("Puntaje máximo inválido", code="invalid_max_score")
    return value


def _normalize_published(value: object) -> bool:
    if not isinstance(value, bool):
        raise ValidationError("Estado de publicación inválido", code="invalid_is_published")
    return value


@dataclass
class TaskDraft:
    course_id: object
    title: object
    description: object = None
    due_date: object = None
    max_score: object = None
    is_published: object = None


@dataclass(frozen=True)
class TaskChanges:
    """Partial task update; every column defaults to UNCHANGED."""

    title: FieldUpdate = UNCHANGED
    description: FieldUpdate = UNCHANGED
    due_date: FieldUpdate = UNCHANGED
    max_score: FieldUpdate = UNCHANGED
    is_published: FieldUpdate = UNCHANGED


# column -> (normalizer, nullable)
_CHANGE_COLUMNS: Dict[str, tuple[Callable[[object], Any], bool]] = {
    "title": (_normalize_title, False),
    "description": (_normalize_description, True),
    "due_date": (_normalize_due_date, True),
    "max_score": (_normalize_max_score, False),
    "is_published": (_normalize_published, False),
}


def _build_patch(changes: TaskChanges) -> Dict[str, Any]:
    patch: Dict[str, Any] = {}
    for column, (normalize, nullable) in _CHANGE_COLUMNS.items():
        update = getattr(changes, column)
        if update is UNCHANGED:
            continue
        if update is CLEAR:
            if not nullable:
                raise ValidationError(f"El campo {column} no puede quedar vacío", code=f"invalid_{column}")
            patch[column] = None
        elif isinstance(update, SetTo):
            patch[column] = normalize(update.value)
        else:
            raise ValidationError(f"Cambio inválido para {column}", code=f"invalid_{column}")
    return patch


@dataclass
class TasksService:
    """Use cases for the task catalog (framework-independent)."""

    gateway: DataGatewayProtocol

    def list_tasks(
        self,
        *,
        search: object = None,
        page: int = 1,
        page_size: int = 10,
        course_id: Optional[str] = None,
        is_published: Optional[bool] = None,
    ) -> Page:
        window = window_for(page, page_size)
        term = normalize_search(search)
        filters = []
        if term:
            filters.append(ilike_contains("title", term))
        if course_id:
            filters.append(eq("course_id", course_id))
        if is_published is not None:
            filters.append(eq("is_published", _normalize_published(is_published)))
        result = self.gateway.select(
            TASKS_TABLE,
            filters=filters,
            order=Order("created_at", descending=True),
            window=window,
            count=True,
        )
        return Page(items=result.rows, count=result.count or 0, page=page, page_size=page_size)

    def create_task(self, draft: TaskDraft) -> str:
        title = _normalize_title(draft.title)
        course_id = _normalize_course(draft.course_id)
        row = {
            "course_id": course_id,
            "title": title,
            "description": _normalize_description(draft.description),
            "due_date": _normalize_due_date(draft.due_date),
            "max_score": DEFAULT_MAX_SCORE if draft.max_score is None else _normalize_max_score(draft.max_score),
            "is_published": False if draft.is_published is None else _normalize_published(draft.is_published),
        }
        created = self.gateway.insert(TASKS_TABLE, row)
        task_id = created.get("id")
        if not task_id:
            raise GatewayError("insert returned no id", code="missing_id")
        return str(task_id)

    def update_task(self, task_id: str, changes: TaskChanges) -> None:
        tid = _require_id(task_id)
        patch = _build_patch(changes)
        if not patch:
            return
        self.gateway.update(TASKS_TABLE, patch, filters=[eq("id", tid)])

    def publish_task(self, task_id: str, published: bool) -> None:
        tid = _require_id(task_id)
        self.gateway.update(
            TASKS_TABLE,
            {"is_published": _normalize_published(published)},
            filters=[eq("id", tid)],
        )

    def delete_task(self, task_id: str) -> None:
        tid = _require_id(task_id)
        try:
            self.gateway.delete(TASKS_TABLE, filters=[eq("id", tid)])
        except GatewayError as exc:
            if exc.code == FOREIGN_KEY_VIOLATION:
                raise ConflictError(DELETE_CONFLICT_MESSAGE, code="task_has_dependents") from exc
            raise

    def get_task_by_id(self, task_id: str) -> Optional[dict]:
        tid = _require_id(task_id)
        return select_maybe_one(self.gateway, TASKS_TABLE, filters=[eq("id", tid)])

    def get_tasks_by_course(self, course_id: str) -> List[dict]:
        cid = _require_id(course_id, code="missing_course")
        result = self.gateway.select(
            TASKS_TABLE,
            filters=[eq("course_id", cid)],
            order=Order("created_at", descending=True),
        )
        return result.rows
