"""
Supabase Auth admin client (minimal) for account provisioning.

Design:
- Framework-agnostic, callable from web adapters and use cases.
- Wraps a supabase client created with the service-role key; the caller's own
  token must never be used here.

Security:
- Do not log credentials, tokens or passwords.
- The service-role key comes from the environment (see web/config.py).
"""

from __future__ import annotations

from typing import Any, Mapping, Protocol

from common.errors import UpstreamError


class AccountCreationError(UpstreamError):
    """The auth admin API refused to create the account."""

    default_code = "user_create_failed"


class AccountAdminProtocol(Protocol):
    def create_user(
        self,
        *,
        email: str,
        password: str,
        email_confirm: bool,
        user_metadata: Mapping[str, Any],
    ) -> str:
        ...


class AdminClient:
    """AccountAdminProtocol on top of `client.auth.admin` (supabase-py)."""

    def __init__(self, client: Any) -> None:
        self._client = client

    def create_user(
        self,
        *,
        email: str,
        password: str,
        email_confirm: bool,
        user_metadata: Mapping[str, Any],
    ) -> str:
        attributes = {
            "email": email,
            "password": password,
            "email_confirm": email_confirm,
            "user_metadata": dict(user_metadata),
        }
        try:
            res = self._client.auth.admin.create_user(attributes)
        except Exception as exc:
            # gotrue/supabase_auth raise AuthApiError with a human `message`;
            # pass it through verbatim.
            message = getattr(exc, "message", None) or str(exc) or type(exc).__name__
            raise AccountCreationError(str(message)) from exc
        user = getattr(res, "user", None)
        user_id = getattr(user, "id", None)
        if user_id is None and isinstance(res, Mapping):
            user_id = (res.get("user") or {}).get("id")
        if not user_id:
            raise AccountCreationError("user_id_missing", code="user_id_missing")
        return str(user_id)

    def user_id_for_token(self, access_token: str) -> str:
        """Resolve the account id behind a caller JWT via the auth server."""
        try:
            res = self._client.auth.get_user(access_token)
        except Exception as exc:
            message = getattr(exc, "message", None) or str(exc) or type(exc).__name__
            raise UpstreamError(str(message), code="caller_lookup_failed") from exc
        user_id = getattr(getattr(res, "user", None), "id", None)
        if not user_id:
            raise UpstreamError("caller_unknown", code="caller_lookup_failed")
        return str(user_id)


__all__ = ["AccountAdminProtocol", "AccountCreationError", "AdminClient"]
