# Overview: Flask API routes for the pages a theater has enabled.

from flask import Blueprint, request

from ..decorators import require_auth, require_page_access
from ..responses import get_json_body, ok, query_bool, query_int
from ..services import page_access_service
from ..services.page_access_service import page_access

page_access_bp = Blueprint("page_access", __name__, url_prefix="/api/theaters/<int:theater_id>/page-access")


@page_access_bp.get("")
@require_auth
@require_page_access("Settings")
def list_pages(theater_id: int):
    result = page_access.list_items(
        theater_id,
        filters={
            "is_active": query_bool("is_active"),
            "category": request.args.get("category") or None,
            "search": request.args.get("search"),
        },
        page=query_int("page", 1),
        limit=query_int("limit", 100),
    )
    return ok(result)


@page_access_bp.post("")
@require_auth
@require_page_access("Settings")
def add_page(theater_id: int):
    """Adds a page, or updates the existing entry with the same page key."""
    item = page_access.add_item(theater_id, get_json_body())
    return ok(item, "Page access saved", 201)


@page_access_bp.put("/<item_id>")
@require_auth
@require_page_access("Settings")
def update_page(theater_id: int, item_id: str):
    item = page_access.update_item(theater_id, item_id, get_json_body())
    return ok(item, "Page access updated")


@page_access_bp.patch("/<item_id>/toggle")
@require_auth
@require_page_access("Settings")
def toggle_page(theater_id: int, item_id: str):
    """Body: {"is_active": bool}"""
    data = get_json_body()
    item = page_access_service.toggle_page(theater_id, item_id, data.get("is_active"))
    return ok(item, "Page enabled" if item["is_active"] else "Page disabled")


@page_access_bp.delete("/<item_id>")
@require_auth
@require_page_access("Settings")
def delete_page(theater_id: int, item_id: str):
    removed = page_access.remove_item(theater_id, item_id)
    return ok({"removed": removed}, "Page access deleted" if removed else "Page access already absent")
