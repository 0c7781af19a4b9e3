"""
Grading workflow: upsert a task grade and mark the submission as graded.

Why:
    Grades and submissions are independent rows correlated only by
    (task_id, student_id). Grading a student therefore takes two writes:
    the grade upsert and the submission's `graded_at` timestamp.

Behavior:
    - At most one grade per (task, student): an existing row is updated in
      place (score + feedback; omitted feedback clears to null), otherwise a
      full row is inserted.
    - The submission timestamp is written after the grade, whichever branch
      ran. PostgREST offers no multi-statement transaction here, so the second
      write is idempotent (filters by task + student, writes one timestamp)
      and retried `mark_retries` extra times.
    - When the second write still fails the grade stays committed and
      `PartialGradeError` reports the committed row. There is no rollback.
    - No optimistic concurrency: concurrent graders of the same pair race and
      the last write wins.
"""
from __future__ import annotations

import logging
import math
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Callable, Optional

from common.errors import PartialGradeError, ValidationError
from gateway.ports import DataGatewayProtocol, GatewayError, eq, select_maybe_one

GRADES_TABLE = "grades"
SUBMISSIONS_TABLE = "submissions"

_log = logging.getLogger("aula.teaching.grading")


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _require_id(value: object, code: str) -> str:
    if not isinstance(value, str) or not value.strip():
        raise ValidationError("ID requerido", code=code)
    return value.strip()


def _normalize_score(value: object) -> float | int:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise ValidationError("La calificación debe ser numérica", code="invalid_score")
    if isinstance(value, float) and not math.isfinite(value):
        raise ValidationError("La calificación debe ser un número finito", code="invalid_score")
    if value < 0:
        raise ValidationError("La calificación no puede ser negativa", code="invalid_score")
    return value


def _normalize_feedback(value: object) -> Optional[str]:
    if value is None:
        return None
    if not isinstance(value, str):
        raise ValidationError("Comentario inválido", code="invalid_feedback")
    return value


def _normalize_grader(value: object) -> Optional[str]:
    if value is None:
        return None
    if not isinstance(value, str):
        raise ValidationError("Evaluador inválido", code="invalid_graded_by")
    return value.strip() or None


@dataclass
class GradeInput:
    student_id: str
    task_id: str
    score: object
    feedback: Optional[str] = None
    graded_by: Optional[str] = None


@dataclass
class GradeResult:
    grade: dict
    created: bool
    graded_at: str


@dataclass
class GradingService:
    gateway: DataGatewayProtocol
    mark_retries: int = 2
    clock: Callable[[], datetime] = field(default=_utcnow)

    def get_grade_for_task(self, task_id: str, student_id: str) -> Optional[dict]:
        tid = _require_id(task_id, "missing_task_id")
        sid = _require_id(student_id, "missing_student_id")
        return select_maybe_one(
            self.gateway,
            GRADES_TABLE,
            filters=[eq("task_id", tid), eq("student_id", sid)],
        )

    def upsert_task_grade(self, req: GradeInput) -> GradeResult:
        """Create or update the grade for (task, student), then stamp the submission.

        Raises:
            ValidationError: bad ids, score, feedback or grader (no write happened).
            GatewayError: the grade lookup or write failed (no write happened
                or the store rejected it).
            PartialGradeError: grade committed, submission not marked.
        """
        task_id = _require_id(req.task_id, "missing_task_id")
        student_id = _require_id(req.student_id, "missing_student_id")
        score = _normalize_score(req.score)
        feedback = _normalize_feedback(req.feedback)
        graded_by = _normalize_grader(req.graded_by)

        existing = select_maybe_one(
            self.gateway,
            GRADES_TABLE,
            filters=[eq("task_id", task_id), eq("student_id", student_id)],
        )
        if existing and existing.get("id"):
            patch = {"score": score, "feedback": feedback}
            self.gateway.update(GRADES_TABLE, patch, filters=[eq("id", existing["id"])])
            grade = {**existing, **patch}
            created = False
        else:
            grade = self.gateway.insert(
                GRADES_TABLE,
                {
                    "student_id": student_id,
                    "task_id": task_id,
                    "score": score,
                    "feedback": feedback,
                    "graded_by": graded_by,
                },
            )
            created = True

        graded_at = self._mark_submission_graded(task_id, student_id, grade=grade, created=created)
        return GradeResult(grade=grade, created=created, graded_at=graded_at)

    def _mark_submission_graded(self, task_id: str, student_id: str, *, grade: dict, created: bool) -> str:
        graded_at = self.clock().isoformat()
        attempts = 1 + max(0, int(self.mark_retries))
        last_exc: GatewayError | None = None
        for attempt in range(1, attempts + 1):
            try:
                self.gateway.update(
                    SUBMISSIONS_TABLE,
                    {"graded_at": graded_at},
                    filters=[eq("task_id", task_id), eq("student_id", student_id)],
                )
                return graded_at
            except GatewayError as exc:
                last_exc = exc
                _log.warning(
                    "marking submission graded failed: attempt=%s/%s code=%s",
                    attempt,
                    attempts,
                    exc.code,
                )
        _log.warning("grade committed but submission not marked graded: grade_id=%s", grade.get("id"))
        raise PartialGradeError(
            "La calificación se guardó, pero no se pudo marcar la entrega como calificada.",
            grade=grade,
            created=created,
        ) from last_exc


__all__ = ["GradeInput", "GradeResult", "GradingService"]
