"""
Privileged user provisioning (admin creates an account inside their tenant).

Why:
    Account creation needs the service-role credential, so the check that the
    caller is an administrator must run first, with the caller's own token.
    This use case stays framework-free; the HTTP adapter lives in
    web/routes/admin.py.

Steps:
    1. AUTHORIZE       RPC `is_platform_admin` as the caller
    2. RESOLVE_TENANT  caller's `profiles.tenant_id` (filtered by caller id)
    3. VALIDATE_INPUT  email/password presence, password length, role
    4. CREATE_ACCOUNT  auth admin API with the service credential
    5. ALIGN_TENANT    profile update + membership upsert (tenant known only)

Partial success:
    Alignment runs after the account exists. Its failures do not fail the
    request; they are logged and reported per step in `ProvisionResult.alignment`
    (`ok | failed | skipped`) so the caller can see an unaligned account.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Mapping, Optional

from common.errors import AuthorizationError, UpstreamError, ValidationError
from gateway.ports import NO_ROWS, DataGatewayProtocol, GatewayError, eq

from .admin_client import AccountAdminProtocol
from .domain import ALLOWED_ROLES, DEFAULT_ROLE

_log = logging.getLogger("aula.identity_access")

ADMIN_CHECK_RPC = "is_platform_admin"
PASSWORD_MIN_LENGTH = 6
SUCCESS_MESSAGE = "Usuario creado exitosamente"


def _optional_text(value: Any) -> Optional[str]:
    if value is None or value == "":
        return None
    return str(value)


@dataclass
class ProvisionRequest:
    email: str
    password: str
    full_name: Optional[str] = None
    role_name: str = DEFAULT_ROLE
    phone: Optional[str] = None
    signature_url: Optional[str] = None
    photo_url: Optional[str] = None

    @classmethod
    def from_payload(cls, payload: Any) -> "ProvisionRequest":
        """Normalize the JSON body (camelCase keys) without validating it."""
        data: Mapping[str, Any] = payload if isinstance(payload, Mapping) else {}
        raw_name = data.get("fullName")
        full_name = raw_name.strip() if isinstance(raw_name, str) else None
        return cls(
            email=str(data.get("email") or "").strip().lower(),
            password=str(data.get("password") or ""),
            full_name=full_name or None,
            role_name=str(data.get("roleName") or DEFAULT_ROLE),
            phone=_optional_text(data.get("phone")),
            signature_url=_optional_text(data.get("signatureUrl")),
            photo_url=_optional_text(data.get("photoUrl")),
        )

    @property
    def display_name(self) -> str:
        return self.full_name or self.email.split("@")[0]

    def validate(self) -> None:
        if not self.email or not self.password:
            raise ValidationError("Email y contraseña son requeridos", code="missing_credentials")
        if len(self.password) < PASSWORD_MIN_LENGTH:
            raise ValidationError(
                "La contraseña debe tener al menos 6 caracteres", code="password_too_short"
            )
        if self.role_name not in ALLOWED_ROLES:
            raise ValidationError(f"Rol inválido: {self.role_name}", code="invalid_role")


@dataclass
class ProvisionResult:
    user_id: str
    email: str
    tenant_id: Optional[str]
    alignment: Dict[str, str] = field(default_factory=dict)

    @property
    def fully_aligned(self) -> bool:
        return "failed" not in self.alignment.values()


class ProvisionUserUseCase:
    def __init__(
        self,
        *,
        caller_gateway: DataGatewayProtocol,
        admin_gateway: DataGatewayProtocol,
        accounts: AccountAdminProtocol,
        caller_id: Optional[str] = None,
    ) -> None:
        self._caller = caller_gateway
        self._admin = admin_gateway
        self._accounts = accounts
        self._caller_id = caller_id

    def execute(self, load_payload: Callable[[], Any]) -> ProvisionResult:
        """Provision an account on behalf of an authenticated administrator.

        Parameters:
            load_payload: returns the decoded request body. It is only called
                after the caller is authorized, so unauthorized callers never
                get body-parsing errors.

        Raises:
            AuthorizationError: caller is not an administrator.
            UpstreamError: admin check, tenant lookup or account creation failed
                (message passed through from the backend).
            ValidationError: missing email/password, short password, bad role.
        """
        self._authorize()
        tenant_id = self._resolve_tenant()
        req = ProvisionRequest.from_payload(load_payload())
        req.validate()

        user_id = self._accounts.create_user(
            email=req.email,
            password=req.password,
            email_confirm=True,
            user_metadata={
                "full_name": req.display_name,
                "role": req.role_name,
                "created_by_admin": True,
                "phone": req.phone,
                "signature_url": req.signature_url,
                "photo_url": req.photo_url,
            },
        )
        _log.info("account created by admin: user_id=%s tenant=%s", user_id, tenant_id or "-")

        alignment = {"profile": "skipped", "membership": "skipped"}
        if tenant_id:
            alignment = self._align_tenant(user_id, tenant_id, req)
        return ProvisionResult(user_id=user_id, email=req.email, tenant_id=tenant_id, alignment=alignment)

    # --- Steps ---------------------------------------------------------------

    def _authorize(self) -> None:
        try:
            is_admin = self._caller.rpc(ADMIN_CHECK_RPC)
        except GatewayError as exc:
            raise UpstreamError(exc.message, code="admin_check_failed") from exc
        if not is_admin:
            raise AuthorizationError("Solo administradores pueden crear usuarios")

    def _resolve_tenant(self) -> Optional[str]:
        try:
            # Without a known caller id, RLS alone must scope the read to one row.
            filters = [eq("id", self._caller_id)] if self._caller_id else []
            result = self._caller.select("profiles", filters=filters, columns="tenant_id")
        except GatewayError as exc:
            raise UpstreamError(exc.message, code="profile_lookup_failed") from exc
        if len(result.rows) != 1:
            # Same contract as PostgREST's single-object response.
            raise UpstreamError(
                "JSON object requested, multiple (or no) rows returned", code=NO_ROWS
            )
        tenant_id = result.rows[0].get("tenant_id")
        return str(tenant_id) if tenant_id else None

    def _align_tenant(self, user_id: str, tenant_id: str, req: ProvisionRequest) -> Dict[str, str]:
        alignment: Dict[str, str] = {}
        try:
            self._admin.update(
                "profiles",
                {
                    "full_name": req.display_name,
                    "role": req.role_name,
                    "tenant_id": tenant_id,
                    "is_active": True,
                },
                filters=[eq("id", user_id)],
            )
            alignment["profile"] = "ok"
        except GatewayError as exc:
            _log.warning("profile alignment failed: user_id=%s code=%s", user_id, exc.code)
            alignment["profile"] = "failed"
        try:
            self._admin.upsert(
                "memberships",
                {
                    "user_id": user_id,
                    "tenant_id": tenant_id,
                    "role": req.role_name,
                    "is_active": True,
                    "permissions": {},
                },
                on_conflict="user_id,tenant_id",
            )
            alignment["membership"] = "ok"
        except GatewayError as exc:
            _log.warning("membership alignment failed: user_id=%s code=%s", user_id, exc.code)
            alignment["membership"] = "failed"
        return alignment


__all__ = ["ProvisionRequest", "ProvisionResult", "ProvisionUserUseCase", "PASSWORD_MIN_LENGTH"]
