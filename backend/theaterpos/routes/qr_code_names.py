# Overview: Flask API routes for seat/screen QR code names.

from flask import Blueprint, request

from ..decorators import require_auth, require_page_access
from ..responses import get_json_body, ok, query_bool, query_int
from ..services.qr_code_name_service import qr_code_names

qr_code_names_bp = Blueprint("qr_code_names", __name__, url_prefix="/api/theaters/<int:theater_id>/qr-code-names")


@qr_code_names_bp.get("")
@require_auth
@require_page_access("QRCodeNames")
def list_qr_code_names(theater_id: int):
    result = qr_code_names.list_items(
        theater_id,
        filters={
            "is_active": query_bool("is_active"),
            "seat_class": request.args.get("seat_class") or None,
            "search": request.args.get("search"),
        },
        page=query_int("page", 1),
        limit=query_int("limit", 10),
    )
    return ok(result)


@qr_code_names_bp.post("")
@require_auth
@require_page_access("QRCodeNames")
def create_qr_code_name(theater_id: int):
    item = qr_code_names.add_item(theater_id, get_json_body())
    return ok(item, "QR code name created", 201)


@qr_code_names_bp.put("/<item_id>")
@require_auth
@require_page_access("QRCodeNames")
def update_qr_code_name(theater_id: int, item_id: str):
    item = qr_code_names.update_item(theater_id, item_id, get_json_body())
    return ok(item, "QR code name updated")


@qr_code_names_bp.delete("/<item_id>")
@require_auth
@require_page_access("QRCodeNames")
def delete_qr_code_name(theater_id: int, item_id: str):
    removed = qr_code_names.remove_item(theater_id, item_id)
    return ok({"removed": removed}, "QR code name deleted" if removed else "QR code name already absent")
