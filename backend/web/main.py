"Aula API"
from __future__ import annotations

import logging
import os
import sys as _sys

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from identity_access.domain import bearer_token

# Ensure flat and package imports reference the same module instance.
if __name__ == "main":
    _sys.modules.setdefault("web.main", _sys.modules[__name__])
elif __name__ == "web.main":
    _sys.modules["main"] = _sys.modules[__name__]


def _should_load_dotenv() -> bool:
    """Decide if we should load a local .env file.

    - Never load under pytest to avoid contaminating test env.
    - Allow explicit opt-out via AULA_ENABLE_DOTENV (default true outside pytest).
    """
    if "pytest" in _sys.modules or os.getenv("PYTEST_CURRENT_TEST"):
        return False
    flag = (os.getenv("AULA_ENABLE_DOTENV", "true") or "").strip().lower()
    return flag in ("1", "true", "yes")


from dotenv import load_dotenv  # noqa: E402

if _should_load_dotenv():
    load_dotenv()

try:
    from . import config as _cfg
except ImportError:
    import config as _cfg  # type: ignore

# Minimal production safety checks (fail-fast on insecure config)
_cfg.ensure_secure_config_on_startup()

logging.basicConfig(
    level=_cfg.get_log_level(),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger("aula.web")

app = FastAPI(title="Aula", description="Tareas, entregas y calificaciones sobre Supabase", version="0.1.0")

try:
    from .routes.admin import admin_router
    from .routes.teaching import teaching_router
except ImportError:
    from routes.admin import admin_router  # type: ignore
    from routes.teaching import teaching_router  # type: ignore


def _is_public_path(path: str) -> bool:
    return not path.startswith("/api/")


@app.middleware("http")
async def bearer_auth(request: Request, call_next):
    """Require a bearer token on /api/* and expose it on request.state.

    The token is not verified here: PostgREST validates it on every call and
    row-level security scopes what the caller can see.
    """
    request.state.access_token = None
    path = request.url.path
    if _is_public_path(path) or request.method == "OPTIONS":
        return await call_next(request)
    token = bearer_token(request.headers.get("authorization"))
    if not token:
        return JSONResponse(
            {"error": "unauthenticated"},
            status_code=401,
            headers={"Cache-Control": "private, no-store", "WWW-Authenticate": "Bearer"},
        )
    request.state.access_token = token
    return await call_next(request)


@app.middleware("http")
async def security_headers(request: Request, call_next):
    response = await call_next(request)
    response.headers.setdefault("X-Content-Type-Options", "nosniff")
    response.headers.setdefault("X-Frame-Options", "DENY")
    response.headers.setdefault("Referrer-Policy", "no-referrer")
    return response


app.include_router(teaching_router)
app.include_router(admin_router)


@app.get("/health")
async def health_check():
    # Security: include no-store to avoid caching any runtime status.
    return JSONResponse({"status": "ok"}, headers={"Cache-Control": "private, no-store"})


def run() -> None:
    """Serve the app with uvicorn (`aula-serve`, or `python -m web.main`)."""
    import uvicorn

    host, port = _cfg.get_server_bind()
    uvicorn.run(app, host=host, port=port)


if __name__ == "__main__":
    run()
