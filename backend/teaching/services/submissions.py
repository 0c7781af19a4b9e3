from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

from common.errors import ValidationError
from gateway.ports import DataGatewayProtocol, Order, eq, ilike_contains, select_maybe_one

from .pagination import Page, normalize_search, window_for

SUBMISSIONS_TABLE = "submissions"


def _require_id(value: object, code: str) -> str:
    if not isinstance(value, str) or not value.strip():
        raise ValidationError("ID requerido", code=code)
    return value.strip()


@dataclass
class SubmissionsService:
    """Read side of student submissions for one task (teacher view)."""

    gateway: DataGatewayProtocol

    def list_submissions(
        self,
        task_id: str,
        *,
        search: object = None,
        page: int = 1,
        page_size: int = 10,
    ) -> Page:
        """Return a page of submissions for `task_id`, newest first.

        Behavior:
            - `search` (trimmed) matches `content` case-insensitively.
            - Count is the exact total for the task and search filter.
        """
        tid = _require_id(task_id, "missing_task_id")
        window = window_for(page, page_size)
        filters = [eq("task_id", tid)]
        term = normalize_search(search)
        if term:
            filters.append(ilike_contains("content", term))
        result = self.gateway.select(
            SUBMISSIONS_TABLE,
            filters=filters,
            order=Order("submitted_at", descending=True),
            window=window,
            count=True,
        )
        return Page(items=result.rows, count=result.count or 0, page=page, page_size=page_size)

    def get_submission_by_id(self, submission_id: str) -> Optional[dict]:
        sid = _require_id(submission_id, "missing_id")
        return select_maybe_one(self.gateway, SUBMISSIONS_TABLE, filters=[eq("id", sid)])

    def delete_submission(self, submission_id: str) -> None:
        sid = _require_id(submission_id, "missing_id")
        self.gateway.delete(SUBMISSIONS_TABLE, filters=[eq("id", sid)])
