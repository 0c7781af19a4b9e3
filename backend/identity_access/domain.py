"""
Identity domain constants and simple helpers.

Why:
- Centralize the membership roles to avoid drift between provisioning and the
  web layer.
- Keep the bearer-token parsing rule in one place for all adapters.
"""

from __future__ import annotations

from typing import Optional

# Membership roles as stored in `memberships.role`. Immutable to prevent accidental mutation.
ALLOWED_ROLES = frozenset({"owner", "admin", "teacher", "student", "parent", "viewer"})
DEFAULT_ROLE = "student"


def bearer_token(authorization: Optional[str]) -> Optional[str]:
    """Return the token from an `Authorization: Bearer <token>` header value.

    Missing header, other schemes and empty tokens all yield None.
    """
    if not authorization:
        return None
    scheme, _, token = authorization.strip().partition(" ")
    if scheme.lower() != "bearer":
        return None
    token = token.strip()
    return token or None


__all__ = ["ALLOWED_ROLES", "DEFAULT_ROLE", "bearer_token"]
