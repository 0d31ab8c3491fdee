# Overview: Resolves a theater user's role into the page-keyed access list used by routes.

"""
Role/Permission Resolution

DESIGN PRINCIPLES:
- Fail closed: a missing document, dangling role reference, inactive role or
  inactive user yields an empty permission set and a non-privileged
  user_type. Nothing here raises for those cases.
- Fail loudly: every fail-closed resolution logs a warning so an operator
  can see users locked out by bad data.
- Privilege comes from the role's is_admin_role flag, never from its name.
"""

from __future__ import annotations

from dataclasses import dataclass, field

from flask import current_app

from .role_service import get_role
from .theater_user_service import get_user


USER_TYPE_ADMIN = "theater_admin"
USER_TYPE_USER = "theater_user"
USER_TYPE_SUPER_ADMIN = "super_admin"


@dataclass(frozen=True)
class ResolvedAccess:
    role_id: str | None = None
    role_name: str | None = None
    user_type: str = USER_TYPE_USER
    permissions: tuple = field(default_factory=tuple)
    pages: tuple = field(default_factory=tuple)

    def allows(self, page: str) -> bool:
        return page in self.pages

    def to_dict(self) -> dict:
        return {
            "role_id": self.role_id,
            "role_name": self.role_name,
            "user_type": self.user_type,
            "permissions": [dict(p) for p in self.permissions],
            "pages": list(self.pages),
        }


NO_ACCESS = ResolvedAccess()


def _denied(reason: str, *args) -> ResolvedAccess:
    current_app.logger.warning("Access resolved to no pages: " + reason, *args)
    return NO_ACCESS


def resolve_role_access(theater_id: int, role_id: str | None) -> ResolvedAccess:
    """Realized access list for one role of a theater."""
    if not role_id:
        return _denied("no role assigned (theater %s)", theater_id)

    role = get_role(theater_id, role_id)
    if role is None:
        return _denied("role %s not found in theater %s", role_id, theater_id)
    if not role.get("is_active", True):
        return _denied("role %s is inactive (theater %s)", role_id, theater_id)

    granted = tuple(
        dict(entry) for entry in role.get("permissions") or []
        if entry.get("has_access") is True and entry.get("page")
    )

    return ResolvedAccess(
        role_id=role["_id"],
        role_name=role.get("name"),
        user_type=USER_TYPE_ADMIN if role.get("is_admin_role") is True else USER_TYPE_USER,
        permissions=granted,
        pages=tuple(entry["page"] for entry in granted),
    )


def resolve_user_access(theater_id: int, user_id: str | None) -> ResolvedAccess:
    """Realized access list for a theater user, via the role they reference."""
    user = get_user(theater_id, user_id) if user_id else None
    if user is None:
        return _denied("user %s not found in theater %s", user_id, theater_id)
    if not user.get("is_active", True):
        return _denied("user %s is inactive (theater %s)", user_id, theater_id)

    return resolve_role_access(theater_id, user.get("role"))


def has_page_access(theater_id: int, user_id: str | None, page: str) -> bool:
    return resolve_user_access(theater_id, user_id).allows(page)
