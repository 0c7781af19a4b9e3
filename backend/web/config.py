"""
Configuration and startup security checks for Aula.

Why: The service is a thin layer over Supabase; without the project URL and
keys nothing works, and a production deployment with placeholder keys must not
start at all. Development stays permissive (in-memory fallback).

Permissions: The caller needs no special privileges. The functions only read
environment variables.
"""
from __future__ import annotations

import os
from dataclasses import dataclass

from common.errors import ConfigurationError

REQUIRED_SUPABASE_VARS = ("SUPABASE_URL", "SUPABASE_ANON_KEY", "SUPABASE_SERVICE_ROLE_KEY")
_DUMMY_MARKERS = ("DUMMY_DO_NOT_USE", "CHANGE_ME")


def _is_prod_like(env: str) -> bool:
    env_l = (env or "").lower()
    return env_l in {"prod", "production", "stage", "staging"}


def current_environment() -> str:
    return (os.getenv("AULA_ENV", "dev") or "dev").strip().lower()


def is_prod_like() -> bool:
    return _is_prod_like(current_environment())


@dataclass(frozen=True)
class SupabaseSettings:
    url: str
    anon_key: str
    service_role_key: str


def load_supabase_settings() -> SupabaseSettings:
    """Return the three required Supabase values or raise ConfigurationError."""
    values = {name: (os.getenv(name) or "").strip() for name in REQUIRED_SUPABASE_VARS}
    missing = [name for name, value in values.items() if not value]
    if missing:
        raise ConfigurationError(
            "Faltan variables de entorno " + ", ".join(missing),
            code="config_missing",
        )
    return SupabaseSettings(
        url=values["SUPABASE_URL"].rstrip("/"),
        anon_key=values["SUPABASE_ANON_KEY"],
        service_role_key=values["SUPABASE_SERVICE_ROLE_KEY"],
    )


def supabase_configured() -> bool:
    return all((os.getenv(name) or "").strip() for name in REQUIRED_SUPABASE_VARS)


def _parse_int_env(name: str, default: int, *, minimum: int = 0) -> int:
    raw = (os.getenv(name) or "").strip()
    if not raw:
        return default
    try:
        value = int(raw)
    except ValueError:
        return default
    if value < minimum:
        return default
    return value


def get_grading_mark_retries() -> int:
    """Extra attempts for stamping `submissions.graded_at` (default 2)."""
    return _parse_int_env("GRADING_MARK_RETRIES", 2)


def get_server_bind() -> tuple[str, int]:
    """Host and port for `aula-serve` (AULA_HOST, AULA_PORT; default 0.0.0.0:8000)."""
    host = (os.getenv("AULA_HOST") or "0.0.0.0").strip()
    return host, _parse_int_env("AULA_PORT", 8000, minimum=1)


def get_log_level() -> str:
    return (os.getenv("AULA_LOG_LEVEL") or "INFO").strip().upper()


def ensure_secure_config_on_startup() -> None:
    """Fail fast on insecure production configuration.

    Intent: Abort process startup when obviously insecure settings are detected
    in production/staging. Development remains permissive for convenience.

    Checks:
    - All Supabase variables set and none a known dummy placeholder.
    - SUPABASE_URL uses https.
    """
    if not is_prod_like():
        return  # dev/test remain permissive

    for name in REQUIRED_SUPABASE_VARS:
        value = (os.getenv(name) or "").strip()
        if not value or value.upper().startswith(_DUMMY_MARKERS):
            raise SystemExit(
                f"Refusing to start: {name} is unset or a placeholder in production."
            )

    url = (os.getenv("SUPABASE_URL") or "").strip().lower()
    if url and not url.startswith("https://"):
        raise SystemExit("Refusing to start: SUPABASE_URL must use https in production (got http).")
