# Overview: Service-layer operations for theater roles; encapsulates business logic and database work.

"""
Theater Roles

Roles live in the theater's RoleArray document. A role bundles page
permissions ({page, page_name, route, has_access}); theater users reference
one role by its item _id.

RULES:
- Role names are unique among the theater's active roles (case-insensitive).
- Page keys are unique within one role's permission list.
- Default roles (seeded per theater) accept permission changes only, and
  can_delete=False roles are never removed.
- A role still referenced by a theater user cannot be removed.
- is_admin_role is the explicit privilege flag used for user_type; role
  names carry no meaning.
"""

from __future__ import annotations

from ..extensions import db
from ..models import RoleArray, TheaterUserArray
from ..permissions import DEFAULT_ROLES, build_permission_entry
from ..validation import (
    DuplicateKeyError,
    FieldSpec,
    ItemValidationPolicy,
    NotFoundError,
    ProtectedItemError,
    ValidationError,
)
from .array_store import TheaterArrayStore, new_item_id, _index_of
from .concurrency import run_write
from theaterpos.time_utils import utcnow, to_utc_z


# Fields a default (protected) role may not change
PROTECTED_ROLE_FIELDS = {
    "name",
    "description",
    "priority",
    "is_global",
    "is_default",
    "can_delete",
    "can_edit",
    "is_admin_role",
}

ROLE_POLICY = ItemValidationPolicy(
    fields={
        "name": FieldSpec("str", nullable=False, max_length=100),
        "description": FieldSpec("str", max_length=500),
        "permissions": FieldSpec("list", nullable=False),
        "is_active": FieldSpec("bool", nullable=False),
        "priority": FieldSpec("int", nullable=False, min_value=1, max_value=10),
        "is_global": FieldSpec("bool", nullable=False),
        "is_default": FieldSpec("bool", nullable=False),
        "can_delete": FieldSpec("bool", nullable=False),
        "can_edit": FieldSpec("bool", nullable=False),
        "is_admin_role": FieldSpec("bool", nullable=False),
        "sort_order": FieldSpec("int", nullable=False, min_value=0),
    },
    writable_fields={
        "name", "description", "permissions", "is_active", "priority",
        "is_global", "is_default", "can_delete", "can_edit", "is_admin_role", "sort_order",
    },
    required_on_create={"name"},
    defaults={
        "description": "",
        "permissions": [],
        "is_active": True,
        "priority": 1,
        "is_global": False,
        "is_default": False,
        "can_delete": True,
        "can_edit": True,
        "is_admin_role": False,
    },
)


def normalize_permissions(raw: list) -> list[dict]:
    """
    Validate a role's permission list.

    Each entry needs a non-blank string `page`; page keys must be unique.
    page_name and route default from the page catalog.
    """
    result: list[dict] = []
    seen: set[str] = set()

    for position, entry in enumerate(raw):
        if not isinstance(entry, dict):
            raise ValidationError(f"permissions[{position}] must be an object", {"permissions": "invalid entry"})

        page = entry.get("page")
        if not isinstance(page, str) or not page.strip():
            raise ValidationError(f"permissions[{position}].page is required", {"permissions": "page is required"})
        page = page.strip()

        if page in seen:
            raise ValidationError(f"Duplicate page in permissions: {page}", {"permissions": f"duplicate page {page}"})
        seen.add(page)

        has_access = entry.get("has_access", False)
        if not isinstance(has_access, bool):
            raise ValidationError(
                f"permissions[{position}].has_access must be a boolean",
                {"permissions": "has_access must be a boolean"},
            )

        normalized = build_permission_entry(page, has_access)
        if entry.get("page_name"):
            normalized["page_name"] = str(entry["page_name"]).strip()
        if entry.get("route"):
            normalized["route"] = str(entry["route"]).strip()
        result.append(normalized)

    return result


def _name_taken(items: list[dict], normalized_name: str, exclude_id: str | None = None) -> bool:
    return any(
        role.get("normalized_name") == normalized_name
        and role.get("is_active", True)
        and role.get("_id") != exclude_id
        for role in items
    )


def _assigned_user_count(theater_id: int, role_id: str) -> int:
    doc = db.session.query(TheaterUserArray).filter_by(theater_id=theater_id).first()
    if not doc:
        return 0
    return sum(1 for user in doc.items or [] if user.get("role") == role_id)


class RoleStore(TheaterArrayStore):
    model = RoleArray
    policy = ROLE_POLICY
    search_fields = ("name", "description")
    filter_fields = ("is_active", "is_default")

    def prepare_new_item(self, theater_id, items, item):
        item["normalized_name"] = item["name"].lower()
        if _name_taken(items, item["normalized_name"]):
            raise DuplicateKeyError("Role name already exists in this theater")

        item["permissions"] = normalize_permissions(item.get("permissions") or [])
        if item.get("is_default"):
            item["can_delete"] = False

    def prepare_update(self, theater_id, items, current, patch):
        if current.get("is_default") or not current.get("can_edit", True):
            blocked = sorted(k for k in patch if k in PROTECTED_ROLE_FIELDS)
            if blocked:
                raise ProtectedItemError(
                    "Default roles only allow permission changes",
                    {k: "protected" for k in blocked},
                )

        if "name" in patch:
            patch["normalized_name"] = patch["name"].lower()

        # Renaming or reactivating must not produce two active roles with one name
        if ("name" in patch or "is_active" in patch) and patch.get("is_active", current.get("is_active", True)):
            normalized = patch.get("normalized_name", current.get("normalized_name"))
            if _name_taken(items, normalized, exclude_id=current["_id"]):
                raise DuplicateKeyError("Role name already exists in this theater")

        if patch.get("is_default"):
            patch["can_delete"] = False

        if "permissions" in patch:
            patch["permissions"] = normalize_permissions(patch["permissions"])

    def before_remove(self, theater_id, item):
        if not item.get("can_delete", True):
            raise ProtectedItemError("This role cannot be deleted")

        assigned = _assigned_user_count(theater_id, item["_id"])
        if assigned:
            raise ValidationError(f"Role is assigned to {assigned} user(s)")

    def sort_key(self, item):
        return (item.get("priority", 1), item.get("sort_order", 0))


roles = RoleStore()


def get_role(theater_id: int, role_id: str) -> dict | None:
    """Role item or None; never raises (used by access resolution)."""
    doc = roles.get_document(theater_id)
    return doc.find_item(role_id) if doc else None


def get_default_role(theater_id: int) -> dict | None:
    """The fallback role handed to new theater staff: first active default role."""
    doc = roles.get_document(theater_id)
    if not doc:
        return None
    defaults = [r for r in doc.copy_items() if r.get("is_default") and r.get("is_active", True)]
    defaults.sort(key=roles.sort_key)
    return defaults[0] if defaults else None


def create_default_roles(theater_id: int) -> list[dict]:
    """
    Seed the default roles (Theater Admin, Kiosk Screen) for a theater.

    Idempotent: a default role that already exists by name is left alone.
    Returns the roles created by this call.
    """
    def _op():
        doc = roles._document_for_write(theater_id)
        items = doc.copy_items()
        created = []
        now = to_utc_z(utcnow())

        for name, (description, is_admin_role, pages) in DEFAULT_ROLES.items():
            exists = any(
                r.get("normalized_name") == name.lower() and r.get("is_default")
                for r in items
            )
            if exists:
                continue

            role = {
                "_id": new_item_id(),
                "name": name,
                "normalized_name": name.lower(),
                "description": description,
                "permissions": [build_permission_entry(page, True) for page in pages],
                "is_active": True,
                "priority": 1,
                "is_global": False,
                "is_default": True,
                "can_delete": False,
                "can_edit": True,
                "is_admin_role": is_admin_role,
                "sort_order": len(items),
                "created_at": now,
                "updated_at": now,
            }
            items.append(role)
            created.append(role)

        if created:
            doc.set_items(items)
        db.session.commit()
        return created

    return run_write(_op, what="default roles")


def set_role_permission(
    theater_id: int,
    role_id: str,
    page: str,
    has_access: bool,
) -> dict:
    """
    Grant or revoke one page on a role, adding the page entry if missing.

    Allowed on default roles: permissions are the editable part of them.
    """
    if not isinstance(page, str) or not page.strip():
        raise ValidationError("page is required", {"page": "is required"})
    if not isinstance(has_access, bool):
        raise ValidationError("has_access must be a boolean", {"has_access": "must be a boolean"})
    page = page.strip()

    def _op():
        doc = roles.get_document(theater_id)
        items = doc.copy_items() if doc else []
        index = _index_of(items, role_id)
        if index is None:
            raise NotFoundError("Role not found")

        role = items[index]
        permissions = role.get("permissions") or []
        for entry in permissions:
            if entry.get("page") == page:
                entry["has_access"] = has_access
                break
        else:
            permissions.append(build_permission_entry(page, has_access))

        role["permissions"] = permissions
        role["updated_at"] = to_utc_z(utcnow())
        doc.set_items(items)
        db.session.commit()
        return role

    return run_write(_op, what="role permission")
