# Overview: Service-layer operations for seat/screen QR code names.

from __future__ import annotations

from ..models import QRCodeNameArray
from ..validation import DuplicateKeyError, FieldSpec, ItemValidationPolicy
from .array_store import TheaterArrayStore


QR_CODE_NAME_POLICY = ItemValidationPolicy(
    fields={
        "qr_name": FieldSpec("str", nullable=False, max_length=100),
        "seat_class": FieldSpec("str", nullable=False, max_length=50),
        "description": FieldSpec("str", max_length=500),
        "is_active": FieldSpec("bool", nullable=False),
        "sort_order": FieldSpec("int", nullable=False, min_value=0),
    },
    writable_fields={"qr_name", "seat_class", "description", "is_active", "sort_order"},
    required_on_create={"qr_name", "seat_class"},
    defaults={"description": "", "is_active": True},
)


def _qr_name_taken(items: list[dict], qr_name: str, exclude_id: str | None = None) -> bool:
    key = qr_name.lower()
    return any(
        (item.get("qr_name") or "").lower() == key
        and item.get("is_active", True)
        and item.get("_id") != exclude_id
        for item in items
    )


class QRCodeNameStore(TheaterArrayStore):
    model = QRCodeNameArray
    policy = QR_CODE_NAME_POLICY
    search_fields = ("qr_name", "seat_class", "description")
    filter_fields = ("is_active", "seat_class")

    def prepare_new_item(self, theater_id, items, item):
        if item.get("is_active", True) and _qr_name_taken(items, item["qr_name"]):
            raise DuplicateKeyError("QR code name already exists in this theater")

    def prepare_update(self, theater_id, items, current, patch):
        name = patch.get("qr_name", current.get("qr_name"))
        active = patch.get("is_active", current.get("is_active", True))
        if ("qr_name" in patch or "is_active" in patch) and active:
            if _qr_name_taken(items, name, exclude_id=current["_id"]):
                raise DuplicateKeyError("QR code name already exists in this theater")


qr_code_names = QRCodeNameStore()
