"""
Admin API route: privileged account creation (`/admin-create-user`).

Why:
    Administrators create accounts inside their own tenant from the browser.
    The route keeps the public contract of the hosted edge function (CORS on
    every response, `{success, ...}` bodies) and delegates the steps to
    `identity_access.provisioning.ProvisionUserUseCase`.

Status codes:
    - 200 `{success: true, user: {id, email}, message, alignment}`
    - 400 validation errors and upstream failures (message passed through)
    - 401 missing bearer token
    - 403 caller is not an administrator
    - 405 any method other than POST/OPTIONS
    - 500 missing configuration or unexpected failure

Permissions:
    Any authenticated caller may call the route; the administrator check runs
    against the database with the caller's token.
"""
from __future__ import annotations

import json
import logging

from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse, PlainTextResponse

from common.errors import AuthorizationError, ConfigurationError, UpstreamError, ValidationError
from identity_access.domain import bearer_token
from identity_access.provisioning import SUCCESS_MESSAGE, ProvisionUserUseCase

try:
    from ..config import load_supabase_settings
    from ..gateway_wiring import ProvisioningFactory, default_provisioning_factory
except ImportError:  # flat layout (backend/web on sys.path)
    from config import load_supabase_settings  # type: ignore
    from gateway_wiring import ProvisioningFactory, default_provisioning_factory  # type: ignore

admin_router = APIRouter(tags=["Admin"])
logger = logging.getLogger("aula.web.admin")

CORS_HEADERS = {
    "Access-Control-Allow-Origin": "*",
    "Access-Control-Allow-Headers": "authorization, x-client-info, apikey, content-type",
    "Access-Control-Allow-Methods": "POST, OPTIONS",
}

_PROVISIONING_FACTORY: ProvisioningFactory = default_provisioning_factory


def set_provisioning_factory(factory: ProvisioningFactory) -> None:
    """Allow tests to replace the Supabase clients used for provisioning."""
    global _PROVISIONING_FACTORY
    _PROVISIONING_FACTORY = factory


def reset_provisioning_factory() -> None:
    set_provisioning_factory(default_provisioning_factory)


def _failure(message: str, status_code: int) -> JSONResponse:
    return JSONResponse({"success": False, "error": message}, status_code=status_code, headers=CORS_HEADERS)


@admin_router.api_route(
    "/admin-create-user",
    methods=["GET", "POST", "PUT", "PATCH", "DELETE", "OPTIONS", "HEAD"],
)
async def admin_create_user(request: Request):
    if request.method == "OPTIONS":
        return PlainTextResponse("ok", headers=CORS_HEADERS)
    if request.method != "POST":
        return _failure("Método no permitido", 405)

    token = bearer_token(request.headers.get("authorization"))
    if not token:
        return _failure("Falta encabezado Authorization", 401)

    try:
        settings = load_supabase_settings()
    except ConfigurationError as exc:
        logger.error("admin-create-user misconfigured: %s", exc.message)
        return _failure(exc.message, 500)

    raw_body = await request.body()
    try:
        clients = _PROVISIONING_FACTORY(settings, token)
        usecase = ProvisionUserUseCase(
            caller_gateway=clients.caller_gateway,
            admin_gateway=clients.admin_gateway,
            accounts=clients.accounts,
            caller_id=clients.caller_id,
        )
        result = usecase.execute(lambda: json.loads(raw_body or b"null"))
    except AuthorizationError as exc:
        return _failure(exc.message, 403)
    except ValidationError as exc:
        return _failure(exc.message, 400)
    except UpstreamError as exc:
        logger.warning("admin-create-user upstream failure: code=%s", exc.code)
        return _failure(exc.message, 400)
    except Exception as exc:
        logger.exception("admin-create-user failed")
        return _failure(str(exc) or type(exc).__name__, 500)

    if not result.fully_aligned:
        logger.warning("account %s created without full tenant alignment: %s", result.user_id, result.alignment)
    body = {
        "success": True,
        "user": {"id": result.user_id, "email": result.email},
        "message": SUCCESS_MESSAGE,
        "alignment": result.alignment,
    }
    return JSONResponse(body, headers=CORS_HEADERS)
