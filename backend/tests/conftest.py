"""
Pytest configuration for backend tests.

Why: Force AnyIO to use the asyncio backend to avoid sandbox restrictions
that can affect the Trio backend (e.g., socketpair permission errors).
"""
import sys
from pathlib import Path

import pytest

# Ensure modules in backend/ and backend/web are importable across tests
REPO_ROOT = Path(__file__).resolve().parents[2]
BACKEND_DIR = REPO_ROOT / "backend"
WEB_DIR = BACKEND_DIR / "web"
TESTS_DIR = BACKEND_DIR / "tests"
for p in (str(REPO_ROOT), str(BACKEND_DIR), str(WEB_DIR), str(TESTS_DIR)):
    if p not in sys.path:
        sys.path.insert(0, p)


@pytest.fixture
def anyio_backend():
    return "asyncio"


@pytest.fixture(autouse=True)
def _clear_aula_environment(monkeypatch: pytest.MonkeyPatch):
    """Start every test in dev mode without Supabase configuration.

    Why:
        A developer shell (or a leaked `.env`) with real Supabase values would
        make API tests talk to a live project. Tests that need configuration
        set it explicitly with monkeypatch.
    """
    for var in (
        "AULA_ENV",
        "AULA_LOG_LEVEL",
        "AULA_HOST",
        "AULA_PORT",
        "GRADING_MARK_RETRIES",
        "SUPABASE_URL",
        "SUPABASE_ANON_KEY",
        "SUPABASE_SERVICE_ROLE_KEY",
    ):
        monkeypatch.delenv(var, raising=False)
    yield


@pytest.fixture(autouse=True)
def _reset_route_factories():
    """Restore the default gateway/provisioning factories after each test.

    Why:
        API tests inject in-memory gateways via `set_gateway_factory` and
        `set_provisioning_factory`; a missing teardown would leak them into
        unrelated tests in a full run.
    """
    yield
    if "routes.teaching" in sys.modules:
        sys.modules["routes.teaching"].reset_gateway_factory()
    if "routes.admin" in sys.modules:
        sys.modules["routes.admin"].reset_provisioning_factory()
    if "gateway_wiring" in sys.modules:
        sys.modules["gateway_wiring"]._DEV_GATEWAY = None
