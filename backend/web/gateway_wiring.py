"""
Shared helpers for wiring Supabase-backed gateways into the web adapters.

Why:
    Every teaching request must reach PostgREST with the caller's own token so
    row-level security applies, while provisioning additionally needs a
    service-role client. This module builds both from the environment and
    keeps one injectable factory per concern so tests can swap in fakes.

Behavior:
    - Supabase configured: one caller-scoped gateway per request.
    - Not configured in dev/test: a single shared InMemoryDataGateway (logged
      once), mirroring the in-memory repo fallback for offline work.
    - Not configured in prod-like envs: ConfigurationError (HTTP 500).

Security:
    The service-role key is only used for the provisioning clients and never
    leaves the server.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Callable, Optional

from common.errors import ConfigurationError
from gateway.memory import InMemoryDataGateway, lms_references
from gateway.ports import DataGatewayProtocol
from identity_access.admin_client import AccountAdminProtocol, AdminClient

try:
    from .config import SupabaseSettings, is_prod_like, load_supabase_settings, supabase_configured
except ImportError:  # flat layout (backend/web on sys.path)
    from config import SupabaseSettings, is_prod_like, load_supabase_settings, supabase_configured  # type: ignore

logger = logging.getLogger("aula.web")

_DEV_GATEWAY: Optional[InMemoryDataGateway] = None


def _create_client(url: str, key: str, *, access_token: Optional[str] = None) -> Any:
    # Lazy imports keep the optional dependency out of offline/test paths.
    from supabase import ClientOptions, create_client

    if access_token:
        options = ClientOptions(headers={"Authorization": f"Bearer {access_token}"})
        client = create_client(url, key, options=options)
        # Ensure PostgREST requests carry the caller's JWT, not the anon key.
        client.postgrest.auth(access_token)
        return client
    return create_client(url, key)


def build_caller_gateway(settings: SupabaseSettings, access_token: str) -> DataGatewayProtocol:
    """Gateway acting as the caller (anon key + caller JWT, RLS enforced)."""
    from gateway.supabase_gateway import SupabaseDataGateway

    return SupabaseDataGateway(_create_client(settings.url, settings.anon_key, access_token=access_token))


def build_service_gateway(settings: SupabaseSettings) -> DataGatewayProtocol:
    """Gateway with the service-role key (bypasses RLS)."""
    from gateway.supabase_gateway import SupabaseDataGateway

    return SupabaseDataGateway(_create_client(settings.url, settings.service_role_key))


def build_account_admin(settings: SupabaseSettings) -> AdminClient:
    return AdminClient(_create_client(settings.url, settings.service_role_key))


def dev_gateway() -> InMemoryDataGateway:
    global _DEV_GATEWAY
    if _DEV_GATEWAY is None:
        logger.warning("Supabase not configured: using in-memory gateway (dev only)")
        _DEV_GATEWAY = InMemoryDataGateway(references=lms_references())
    return _DEV_GATEWAY


def default_gateway_factory(access_token: str) -> DataGatewayProtocol:
    """Return the gateway for one teaching request."""
    if supabase_configured():
        return build_caller_gateway(load_supabase_settings(), access_token)
    if is_prod_like():
        # Raises with the list of missing variables.
        load_supabase_settings()
        raise ConfigurationError("supabase_not_configured")
    return dev_gateway()


@dataclass
class ProvisioningClients:
    caller_gateway: DataGatewayProtocol
    admin_gateway: DataGatewayProtocol
    accounts: AccountAdminProtocol
    caller_id: Optional[str] = None


def default_provisioning_factory(settings: SupabaseSettings, access_token: str) -> ProvisioningClients:
    accounts = build_account_admin(settings)
    return ProvisioningClients(
        caller_gateway=build_caller_gateway(settings, access_token),
        admin_gateway=build_service_gateway(settings),
        accounts=accounts,
        caller_id=accounts.user_id_for_token(access_token),
    )


GatewayFactory = Callable[[str], DataGatewayProtocol]
ProvisioningFactory = Callable[[SupabaseSettings, str], ProvisioningClients]
