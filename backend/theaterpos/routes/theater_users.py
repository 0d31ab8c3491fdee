# Overview: Flask API routes for theater staff accounts and their two-step login checks.

from flask import Blueprint, request

from ..decorators import require_auth, require_page_access
from ..responses import fail, get_json_body, ok, query_bool, query_int
from ..services import permission_service, theater_user_service
from ..services.theater_user_service import AccountLockedError, theater_users

theater_users_bp = Blueprint("theater_users", __name__, url_prefix="/api/theaters/<int:theater_id>/users")
theater_auth_bp = Blueprint("theater_auth", __name__, url_prefix="/api/theaters/<int:theater_id>/auth")


@theater_users_bp.get("")
@require_auth
@require_page_access("Users")
def list_users(theater_id: int):
    result = theater_users.list_items(
        theater_id,
        filters={
            "is_active": query_bool("is_active"),
            "role": request.args.get("role") or None,
            "search": request.args.get("search"),
        },
        page=query_int("page", 1),
        limit=query_int("limit", 10),
    )
    return ok(result)


@theater_users_bp.post("")
@require_auth
@require_page_access("Users")
def create_user(theater_id: int):
    user = theater_users.add_item(theater_id, get_json_body())
    return ok(user, "User created", 201)


@theater_users_bp.get("/<user_id>")
@require_auth
@require_page_access("Users")
def get_user(theater_id: int, user_id: str):
    return ok(theater_users.get_item(theater_id, user_id))


@theater_users_bp.put("/<user_id>")
@require_auth
@require_page_access("Users")
def update_user(theater_id: int, user_id: str):
    user = theater_users.update_item(theater_id, user_id, get_json_body())
    return ok(user, "User updated")


@theater_users_bp.delete("/<user_id>")
@require_auth
@require_page_access("Users")
def delete_user(theater_id: int, user_id: str):
    removed = theater_users.remove_item(theater_id, user_id)
    return ok({"removed": removed}, "User deleted" if removed else "User already absent")


# =============================================================================
# LOGIN CHECKS
# Credential checks only; session/token issuance belongs to the auth gateway.
# =============================================================================

@theater_auth_bp.post("/login")
def login(theater_id: int):
    """Step 1. Body: {"username", "password"}. 401 on bad credentials, 423 while locked."""
    data = get_json_body()
    try:
        user = theater_user_service.verify_credentials(theater_id, data.get("username"), data.get("password"))
    except AccountLockedError as exc:
        return fail(str(exc), 423)

    if user is None:
        return fail("Invalid username or password", 401)
    return ok({"user_id": user["_id"], "username": user["username"], "pin_required": True}, "Enter your PIN")


@theater_auth_bp.post("/validate-pin")
def validate_pin(theater_id: int):
    """Step 2. Body: {"user_id", "pin"}. Returns the user and their resolved page access."""
    data = get_json_body()
    try:
        user = theater_user_service.verify_pin(theater_id, data.get("user_id"), data.get("pin"))
    except AccountLockedError as exc:
        return fail(str(exc), 423)

    if user is None:
        return fail("Invalid PIN", 401)

    access = permission_service.resolve_user_access(theater_id, user["_id"])
    return ok({"user": user, "access": access.to_dict()}, "Login successful")
