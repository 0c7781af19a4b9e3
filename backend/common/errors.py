"""
Error taxonomy shared by the teaching services and identity provisioning.

Why:
    Services raise typed errors with a stable machine code (for API bodies and
    tests) and a human message (shown to users). Each class also derives from
    the builtin exception the web adapters already map (ValueError → 400,
    PermissionError → 401/403), so callers that only know the builtins keep
    working.

Notes:
    Absence is not an error: lookups return ``None`` instead of raising.
"""
from __future__ import annotations

from typing import Any, Optional


class AulaError(Exception):
    """Base class carrying a machine-readable code and a human message."""

    default_code = "error"

    def __init__(self, message: str = "", *, code: Optional[str] = None) -> None:
        self.code = code or self.default_code
        self.message = message or self.code
        super().__init__(self.message)


class ValidationError(AulaError, ValueError):
    """Bad input detected before any side effect."""

    default_code = "invalid_input"


class AuthError(AulaError, PermissionError):
    """Missing or invalid credentials (HTTP 401)."""

    default_code = "unauthenticated"


class AuthorizationError(AulaError, PermissionError):
    """Authenticated caller lacks the required role (HTTP 403)."""

    default_code = "forbidden"


class ConflictError(AulaError):
    """Write rejected because other rows still depend on the target."""

    default_code = "conflict"


class ConfigurationError(AulaError, RuntimeError):
    """Required environment configuration is absent."""

    default_code = "config_missing"


class UpstreamError(AulaError):
    """The backend service (PostgREST, auth admin API) reported a failure.

    The upstream message is passed through unchanged so it can be surfaced
    verbatim where the API contract requires it.
    """

    default_code = "upstream_error"


class PartialGradeError(UpstreamError):
    """Grade was committed but the submission could not be marked graded.

    Attributes:
        grade: the committed grade row (as returned by the store)
        created: True when the grade was inserted, False when updated
    """

    default_code = "partial_failure"

    def __init__(self, message: str, *, grade: dict[str, Any], created: bool) -> None:
        super().__init__(message)
        self.grade = grade
        self.created = created


__all__ = [
    "AulaError",
    "ValidationError",
    "AuthError",
    "AuthorizationError",
    "ConflictError",
    "ConfigurationError",
    "UpstreamError",
    "PartialGradeError",
]
