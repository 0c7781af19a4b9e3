"""
Teaching API: tasks, submissions and grades over HTTP.

Each test injects a fresh in-memory gateway via `set_gateway_factory` so the
routes run against the real services without Supabase. The factory records
the bearer token it receives to check it is forwarded per request.
"""
from __future__ import annotations

import httpx
import pytest
from httpx import ASGITransport

import main  # type: ignore  # noqa: E402
import routes.teaching as teaching  # type: ignore  # noqa: E402
from gateway.memory import InMemoryDataGateway, lms_references
from gateway.ports import GatewayError

pytestmark = pytest.mark.anyio("asyncio")

AUTH = {"Authorization": "Bearer caller-token"}


async def _client() -> httpx.AsyncClient:
    return httpx.AsyncClient(transport=ASGITransport(app=main.app), base_url="http://test")


def _install(gw: InMemoryDataGateway | None = None) -> tuple[InMemoryDataGateway, list[str]]:
    gw = gw or InMemoryDataGateway(references=lms_references())
    tokens: list[str] = []

    def _factory(token: str):
        tokens.append(token)
        return gw

    teaching.set_gateway_factory(_factory)
    return gw, tokens


async def _create_task(c: httpx.AsyncClient, title: str = "Ensayo final", **extra) -> str:
    r = await c.post("/api/tasks", json={"course_id": "c1", "title": title, **extra}, headers=AUTH)
    assert r.status_code == 201, r.text
    return r.json()["id"]


@pytest.mark.anyio
async def test_requires_bearer_token():
    _install()
    async with (await _client()) as c:
        r = await c.get("/api/tasks")
    assert r.status_code == 401
    assert r.json() == {"error": "unauthenticated"}
    assert r.headers.get("Cache-Control") == "private, no-store"
    assert r.headers.get("WWW-Authenticate") == "Bearer"


@pytest.mark.anyio
async def test_create_and_get_task_forwards_caller_token():
    gw, tokens = _install()
    async with (await _client()) as c:
        task_id = await _create_task(c)
        r = await c.get(f"/api/tasks/{task_id}", headers=AUTH)
    assert r.status_code == 200
    assert r.json()["title"] == "Ensayo final"
    assert r.headers.get("Cache-Control") == "private, no-store"
    assert tokens and set(tokens) == {"caller-token"}


@pytest.mark.anyio
async def test_create_task_short_title_is_400_with_message():
    _install()
    async with (await _client()) as c:
        r = await c.post("/api/tasks", json={"course_id": "c1", "title": "ab"}, headers=AUTH)
    assert r.status_code == 400
    body = r.json()
    assert body["error"] == "bad_request"
    assert body["detail"] == "invalid_title"
    assert "mínimo 3 caracteres" in body["message"]


@pytest.mark.anyio
async def test_get_unknown_task_is_404():
    _install()
    async with (await _client()) as c:
        r = await c.get("/api/tasks/missing", headers=AUTH)
    assert r.status_code == 404


@pytest.mark.anyio
async def test_list_tasks_search_and_pagination():
    _install()
    async with (await _client()) as c:
        for i in range(12):
            await _create_task(c, title=f"Ensayo {i:02d}")
        await _create_task(c, title="Lectura")
        r = await c.get("/api/tasks", params={"q": "ensayo", "page": 2, "page_size": 5}, headers=AUTH)
    assert r.status_code == 200
    body = r.json()
    assert body["count"] == 12
    assert body["page"] == 2
    assert body["page_size"] == 5
    assert [t["title"] for t in body["items"]] == [f"Ensayo {i:02d}" for i in (6, 5, 4, 3, 2)]


@pytest.mark.anyio
async def test_list_tasks_page_size_is_clamped():
    _install()
    async with (await _client()) as c:
        r = await c.get("/api/tasks", params={"page_size": 1000}, headers=AUTH)
        r0 = await c.get("/api/tasks", params={"page": 0}, headers=AUTH)
    assert r.status_code == 200
    assert r.json()["page_size"] == 100
    assert r0.status_code == 400
    assert r0.json()["detail"] == "invalid_page"


@pytest.mark.anyio
async def test_patch_only_writes_present_fields_and_null_clears():
    gw, _ = _install()
    async with (await _client()) as c:
        task_id = await _create_task(c, description="Original", due_date="2026-05-01T12:00:00Z")
        r = await c.patch(f"/api/tasks/{task_id}", json={"due_date": None, "title": "Ensayo revisado"}, headers=AUTH)
    assert r.status_code == 204
    row = gw.tables["tasks"][0]
    assert row["title"] == "Ensayo revisado"
    assert row["due_date"] is None
    assert row["description"] == "Original"


@pytest.mark.anyio
async def test_patch_null_title_is_400():
    _install()
    async with (await _client()) as c:
        task_id = await _create_task(c)
        r = await c.patch(f"/api/tasks/{task_id}", json={"title": None}, headers=AUTH)
    assert r.status_code == 400
    assert r.json()["detail"] == "invalid_title"


@pytest.mark.anyio
async def test_publish_task():
    gw, _ = _install()
    async with (await _client()) as c:
        task_id = await _create_task(c)
        r = await c.post(f"/api/tasks/{task_id}/publish", json={"published": True}, headers=AUTH)
    assert r.status_code == 204
    assert gw.tables["tasks"][0]["is_published"] is True


@pytest.mark.anyio
async def test_delete_task_with_submissions_is_409():
    gw, _ = _install()
    async with (await _client()) as c:
        task_id = await _create_task(c)
        gw.seed("submissions", {"task_id": task_id, "student_id": "u1"})
        r = await c.delete(f"/api/tasks/{task_id}", headers=AUTH)
    assert r.status_code == 409
    body = r.json()
    assert body["error"] == "conflict"
    assert body["message"] == "No se puede eliminar la tarea porque tiene entregas o calificaciones asociadas."
    assert len(gw.tables["tasks"]) == 1


@pytest.mark.anyio
async def test_delete_task_without_dependents_is_204():
    gw, _ = _install()
    async with (await _client()) as c:
        task_id = await _create_task(c)
        r = await c.delete(f"/api/tasks/{task_id}", headers=AUTH)
    assert r.status_code == 204
    assert gw.tables["tasks"] == []


@pytest.mark.anyio
async def test_course_tasks_listing():
    _install()
    async with (await _client()) as c:
        await _create_task(c, title="Del curso")
        r = await c.get("/api/courses/c1/tasks", headers=AUTH)
        other = await c.get("/api/courses/c2/tasks", headers=AUTH)
    assert [t["title"] for t in r.json()] == ["Del curso"]
    assert other.json() == []


@pytest.mark.anyio
async def test_submissions_listing_lookup_and_delete():
    gw, _ = _install()
    gw.seed(
        "submissions",
        {"id": "s1", "task_id": "t1", "student_id": "u1", "content": "ensayo", "submitted_at": "2026-03-01T00:00:00+00:00"},
        {"id": "s2", "task_id": "t1", "student_id": "u2", "content": "otro", "submitted_at": "2026-03-02T00:00:00+00:00"},
    )
    async with (await _client()) as c:
        listing = await c.get("/api/tasks/t1/submissions", params={"q": "ENS"}, headers=AUTH)
        one = await c.get("/api/submissions/s2", headers=AUTH)
        missing = await c.get("/api/submissions/nope", headers=AUTH)
        deleted = await c.delete("/api/submissions/s1", headers=AUTH)
    assert listing.json()["count"] == 1
    assert listing.json()["items"][0]["id"] == "s1"
    assert one.json()["student_id"] == "u2"
    assert missing.status_code == 404
    assert deleted.status_code == 204
    assert [s["id"] for s in gw.tables["submissions"]] == ["s2"]


@pytest.mark.anyio
async def test_grade_upsert_creates_then_updates():
    gw, _ = _install()
    gw.seed("submissions", {"id": "s1", "task_id": "t1", "student_id": "u1", "graded_at": None})
    async with (await _client()) as c:
        first = await c.put("/api/tasks/t1/grades/u1", json={"score": 70, "feedback": "Bien"}, headers=AUTH)
        second = await c.put("/api/tasks/t1/grades/u1", json={"score": 95}, headers=AUTH)
        fetched = await c.get("/api/tasks/t1/grades/u1", headers=AUTH)
    assert first.status_code == 200
    assert first.json()["created"] is True
    assert second.json()["created"] is False
    assert len(gw.tables["grades"]) == 1
    assert fetched.json()["score"] == 95
    assert fetched.json()["feedback"] is None
    assert gw.tables["submissions"][0]["graded_at"] == second.json()["graded_at"]


@pytest.mark.anyio
async def test_grade_negative_score_is_400():
    _install()
    async with (await _client()) as c:
        r = await c.put("/api/tasks/t1/grades/u1", json={"score": -3}, headers=AUTH)
    assert r.status_code == 400
    assert r.json()["detail"] == "invalid_score"


@pytest.mark.anyio
async def test_grade_non_finite_score_is_400_and_nothing_saved():
    gw, _ = _install()
    gw.seed("submissions", {"id": "s1", "task_id": "t1", "student_id": "u1", "graded_at": None})
    async with (await _client()) as c:
        r = await c.put(
            "/api/tasks/t1/grades/u1",
            content=b'{"score": NaN}',
            headers={**AUTH, "Content-Type": "application/json"},
        )
    assert r.status_code == 400
    assert r.json()["detail"] == "invalid_score"
    assert gw.tables.get("grades", []) == []
    assert gw.tables["submissions"][0]["graded_at"] is None


@pytest.mark.anyio
async def test_grade_non_string_grader_is_400():
    _install()
    async with (await _client()) as c:
        r = await c.put("/api/tasks/t1/grades/u1", json={"score": 5, "graded_by": 7}, headers=AUTH)
    assert r.status_code == 400
    assert r.json()["detail"] == "invalid_graded_by"


@pytest.mark.anyio
async def test_grade_partial_failure_is_502_with_committed_grade(monkeypatch):
    class SubmissionsDown(InMemoryDataGateway):
        def update(self, table, patch, *, filters):
            if table == "submissions":
                raise GatewayError("upstream timeout", code="network_error")
            return super().update(table, patch, filters=filters)

    monkeypatch.setenv("GRADING_MARK_RETRIES", "0")
    gw, _ = _install(SubmissionsDown())
    async with (await _client()) as c:
        r = await c.put("/api/tasks/t1/grades/u1", json={"score": 80}, headers=AUTH)
    assert r.status_code == 502
    body = r.json()
    assert body["error"] == "partial_failure"
    assert body["grade"]["score"] == 80
    assert body["created"] is True
    assert len(gw.tables["grades"]) == 1


@pytest.mark.anyio
async def test_gateway_failure_is_502_and_message_is_sanitized():
    class Broken(InMemoryDataGateway):
        def select(self, *args, **kwargs):
            raise GatewayError("JWT expired token=eyJhbGciOi.eyJzdWIiOi.c2lnbmF0dXJl", code="PGRST301")

    _install(Broken())
    async with (await _client()) as c:
        r = await c.get("/api/tasks", headers=AUTH)
    assert r.status_code == 502
    body = r.json()
    assert body["detail"] == "PGRST301"
    assert "eyJ" not in body["message"]
    assert "[redacted]" in body["message"]


@pytest.mark.anyio
async def test_unconfigured_prod_is_500(monkeypatch):
    teaching.reset_gateway_factory()
    monkeypatch.setenv("AULA_ENV", "prod")
    async with (await _client()) as c:
        r = await c.get("/api/tasks", headers=AUTH)
    assert r.status_code == 500
    assert r.json()["error"] == "server_misconfigured"


@pytest.mark.anyio
async def test_health_is_public():
    async with (await _client()) as c:
        r = await c.get("/health")
    assert r.status_code == 200
    assert r.json() == {"status": "ok"}
    assert r.headers.get("X-Content-Type-Options") == "nosniff"
