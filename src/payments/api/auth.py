"""Caller identity for the authenticated routes.

Session handling lives in the gateway in front of this service, which
forwards the authenticated user in ``X-User-Id`` and ``X-User-Role``. The
webhook route does not use this dependency.
"""

from dataclasses import dataclass

from fastapi import Header

from payments.errors import ForbiddenError, NotAuthenticatedError

ADMIN_ROLE = "admin"


@dataclass(frozen=True)
class Principal:
    user_id: str
    role: str = "customer"

    @property
    def is_admin(self) -> bool:
        return self.role == ADMIN_ROLE

    def can_access(self, owner_id: str) -> bool:
        return self.is_admin or str(owner_id) == self.user_id

    def require_owner_or_admin(self, owner_id: str) -> None:
        if not self.can_access(owner_id):
            raise ForbiddenError("Forbidden")

    def require_admin(self) -> None:
        if not self.is_admin:
            raise ForbiddenError("Admin access required")


def current_principal(
    x_user_id: str | None = Header(default=None),
    x_user_role: str | None = Header(default=None),
) -> Principal:
    if not x_user_id or not x_user_id.strip():
        raise NotAuthenticatedError("Unauthorized")
    return Principal(user_id=x_user_id.strip(), role=(x_user_role or "customer").strip().lower())
