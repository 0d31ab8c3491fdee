# Overview: Flask API routes for theater roles; parses input and returns JSON responses.

from flask import Blueprint, request

from ..decorators import require_auth, require_page_access
from ..responses import get_json_body, ok, query_bool, query_int
from ..services import role_service
from ..services.role_service import roles

roles_bp = Blueprint("roles", __name__, url_prefix="/api/theaters/<int:theater_id>/roles")


@roles_bp.get("")
@require_auth
@require_page_access("Roles")
def list_roles(theater_id: int):
    """
    Query params:
    - page, limit: pagination (default 1, 10)
    - is_active, is_default: true/false filters
    - search: substring over name and description
    """
    result = roles.list_items(
        theater_id,
        filters={
            "is_active": query_bool("is_active"),
            "is_default": query_bool("is_default"),
            "search": request.args.get("search"),
        },
        page=query_int("page", 1),
        limit=query_int("limit", 10),
    )
    return ok(result)


@roles_bp.post("")
@require_auth
@require_page_access("Roles")
def create_role(theater_id: int):
    role = roles.add_item(theater_id, get_json_body())
    return ok(role, "Role created", 201)


@roles_bp.get("/<role_id>")
@require_auth
@require_page_access("Roles")
def get_role(theater_id: int, role_id: str):
    return ok(roles.get_item(theater_id, role_id))


@roles_bp.put("/<role_id>")
@require_auth
@require_page_access("Roles")
def update_role(theater_id: int, role_id: str):
    role = roles.update_item(theater_id, role_id, get_json_body())
    return ok(role, "Role updated")


@roles_bp.put("/<role_id>/permissions")
@require_auth
@require_page_access("Roles")
def set_role_permission(theater_id: int, role_id: str):
    """Body: {"page": "Dashboard", "has_access": true}"""
    data = get_json_body()
    role = role_service.set_role_permission(theater_id, role_id, data.get("page"), data.get("has_access"))
    return ok(role, "Permission updated")


@roles_bp.delete("/<role_id>")
@require_auth
@require_page_access("Roles")
def delete_role(theater_id: int, role_id: str):
    removed = roles.remove_item(theater_id, role_id)
    return ok({"removed": removed}, "Role deleted" if removed else "Role already absent")
