"""Admin authentication as an explicit ``AuthContext`` passed into admin-gated handlers."""
from __future__ import annotations

import hmac
from dataclasses import dataclass, field

from fastapi import Header, HTTPException

from config.settings import settings


@dataclass(frozen=True)
class AuthContext:
    roles: frozenset[str] = field(default_factory=frozenset)

    @property
    def is_admin(self) -> bool:
        return "admin" in self.roles

    @classmethod
    def anonymous(cls) -> AuthContext:
        return cls()

    @classmethod
    def admin(cls) -> AuthContext:
        return cls(roles=frozenset({"admin"}))


def auth_from_key(key: str | None, expected: str | None = None) -> AuthContext:
    """Timing-safe admin key check. No configured key means nobody is admin."""
    expected = settings.ADMIN_API_KEY if expected is None else expected
    if expected and key and hmac.compare_digest(key.encode(), expected.encode()):
        return AuthContext.admin()
    return AuthContext.anonymous()


def get_auth_context(x_admin_key: str | None = Header(None)) -> AuthContext:
    return auth_from_key(x_admin_key)


def require_admin(auth: AuthContext) -> None:
    if not auth.is_admin:
        raise HTTPException(403, "Admin access required")
