#!/usr/bin/env python3
"""
Sync Supabase env for local development and the API tests against a live stack.

Why:
    After `supabase start` / `db reset`, the anon and Service Role keys change
    and the API URL may differ. The Aula API needs all three values: the anon
    key for caller-scoped PostgREST requests and the Service Role key for
    account provisioning.

Behavior:
    - Runs `supabase status -o json` (fail-fast on errors).
    - Extracts API URL, ANON_KEY and SERVICE_ROLE_KEY and updates them in `.env`.
    - Verifies that REST and Auth services are reported as running; exits non-zero otherwise.
    - Creates a backup `.env.bak` before writing.

Security:
    This script is for local dev/test only and never prints secret values. It
    only checks for presence and updates `.env` on disk.
"""
from __future__ import annotations

import json
import shutil
import subprocess
from pathlib import Path
from typing import Any, NamedTuple

ENV_PATH = Path(".env")
BACKUP_PATH = Path(".env.bak")
_PLACEHOLDER = "DUMMY_DO_NOT_USE"


class StatusFields(NamedTuple):
    api_url: str | None
    anon_key: str | None
    service_role_key: str | None
    services_ok: bool


def _load_supabase_status() -> dict:
    try:
        proc = subprocess.run(
            ["supabase", "status", "-o", "json"],
            check=True,
            capture_output=True,
            text=True,
        )
    except FileNotFoundError as exc:
        raise SystemExit("supabase CLI not found. Install it before running this script.") from exc
    except subprocess.CalledProcessError as exc:
        raise SystemExit(f"supabase status failed: {exc.stderr or exc.stdout}") from exc

    text = proc.stdout.strip()
    json_start = text.find("{")
    if json_start == -1:
        raise SystemExit("Unexpected supabase status output (no JSON payload found).")
    data = json.loads(text[json_start:])
    if not isinstance(data, dict):
        raise SystemExit("Unexpected supabase status JSON payload.")
    return data


def _deep_get(d: Any, *keys: str) -> Any:
    if not isinstance(d, dict):
        return None
    for k in keys:
        if k in d:
            return d[k]
    lowered = {str(k).lower(): v for k, v in d.items()}
    for k in keys:
        v = lowered.get(str(k).lower())
        if v is not None:
            return v
    return None


def _extract_core_fields(data: dict) -> StatusFields:
    """Extract API URL, both keys and the service health flag.

    Supabase CLI JSON differs by version, so several shapes are accepted.
    """
    url = _deep_get(data, "API_URL", "api_url")
    api_section = _deep_get(data, "api")
    if isinstance(api_section, dict) and not url:
        url = _deep_get(api_section, "url", "URL")

    anon = _deep_get(data, "ANON_KEY", "anon_key")
    service_role = _deep_get(data, "SERVICE_ROLE_KEY", "service_role_key")

    services_ok = True
    services = _deep_get(data, "services")
    if isinstance(services, dict):
        def _is_running(name: str) -> bool:
            sec = _deep_get(services, name)
            if isinstance(sec, dict):
                return str(_deep_get(sec, "status") or "").lower() == "running"
            return True  # unknown shape: do not fail on it
        services_ok = _is_running("rest") and _is_running("auth")

    return StatusFields(
        api_url=str(url) if url else None,
        anon_key=str(anon) if anon else None,
        service_role_key=str(service_role) if service_role else None,
        services_ok=bool(services_ok),
    )


def _update_env(env_path: Path, key: str, value: str) -> None:
    if not env_path.exists():
        raise SystemExit(f"{env_path} does not exist.")
    lines = env_path.read_text().splitlines()
    match_prefix = f"{key}="
    for idx, line in enumerate(lines):
        if line.startswith(match_prefix):
            lines[idx] = f"{match_prefix}{value}"
            break
    else:
        lines.append(f"{match_prefix}{value}")
    shutil.copy2(env_path, env_path.with_suffix(".bak"))
    env_path.write_text("\n".join(lines) + "\n")


def _is_placeholder(value: str | None) -> bool:
    return not value or value.upper() == _PLACEHOLDER


def main() -> None:
    fields = _extract_core_fields(_load_supabase_status())

    if _is_placeholder(fields.service_role_key):
        raise SystemExit("Supabase Service Role key is missing or a dummy placeholder.")
    if _is_placeholder(fields.anon_key):
        raise SystemExit("Supabase anon key is missing or a dummy placeholder.")
    if not fields.api_url:
        raise SystemExit("Supabase API URL not found in status output.")
    if not fields.services_ok:
        raise SystemExit("Supabase services not healthy (rest/auth not running).")

    _update_env(ENV_PATH, "SUPABASE_URL", fields.api_url)
    _update_env(ENV_PATH, "SUPABASE_ANON_KEY", str(fields.anon_key))
    _update_env(ENV_PATH, "SUPABASE_SERVICE_ROLE_KEY", str(fields.service_role_key))
    print(f"Synced SUPABASE_URL and both Supabase keys in {ENV_PATH} (backup saved to {BACKUP_PATH}).")


if __name__ == "__main__":
    main()
