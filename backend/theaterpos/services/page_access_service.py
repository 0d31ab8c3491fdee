# Overview: Service-layer operations for theater page access; encapsulates business logic and database work.

from __future__ import annotations

from ..extensions import db
from ..models import PageAccessArray
from ..permissions import PAGE_DEFINITIONS, PageCategory
from ..validation import (
    DuplicateKeyError,
    FieldSpec,
    ItemValidationPolicy,
    ValidationError,
    validate_item_payload,
)
from .array_store import TheaterArrayStore, new_item_id
from .concurrency import run_write
from theaterpos.time_utils import utcnow, to_utc_z


PAGE_ACCESS_POLICY = ItemValidationPolicy(
    fields={
        "page": FieldSpec("str", nullable=False, max_length=100),
        "page_name": FieldSpec("str", nullable=False, max_length=100),
        "route": FieldSpec("str", nullable=False, max_length=255),
        "category": FieldSpec("str", nullable=False, choices=PageCategory.ALL),
        "description": FieldSpec("str", max_length=500),
        "show_in_menu": FieldSpec("bool", nullable=False),
        "menu_order": FieldSpec("int", nullable=False, min_value=0),
        "is_active": FieldSpec("bool", nullable=False),
    },
    writable_fields={
        "page", "page_name", "route", "category", "description",
        "show_in_menu", "menu_order", "is_active",
    },
    required_on_create={"page", "page_name", "route"},
    defaults={
        "category": PageCategory.ADMIN,
        "description": "",
        "show_in_menu": True,
        "menu_order": 0,
        "is_active": True,
    },
)


class PageAccessStore(TheaterArrayStore):
    """
    Pages enabled for a theater, keyed by `page`.

    Adding a page whose key already exists updates that entry in place
    instead of creating a second one.
    """
    model = PageAccessArray
    policy = PAGE_ACCESS_POLICY
    search_fields = ("page", "page_name", "description")
    filter_fields = ("is_active", "category")

    def add_item(self, theater_id: int, data: dict) -> dict:
        created = validate_item_payload(payload=data, policy=self.policy, partial=False)
        provided = validate_item_payload(payload=data, policy=self.policy, partial=True)

        def _op():
            doc = self._document_for_write(theater_id)
            items = doc.copy_items()
            now = to_utc_z(utcnow())

            for item in items:
                if item.get("page") == created["page"]:
                    item.update(provided)
                    item["updated_at"] = now
                    break
            else:
                item = dict(created, _id=new_item_id(), sort_order=len(items), created_at=now, updated_at=now)
                items.append(item)

            doc.set_items(items)
            db.session.commit()
            return item

        return run_write(_op, what="page")

    def prepare_update(self, theater_id, items, current, patch):
        if "page" in patch and any(
            p.get("page") == patch["page"] and p.get("_id") != current["_id"] for p in items
        ):
            raise DuplicateKeyError("Page key already configured for this theater")

    def sort_key(self, item):
        return (item.get("menu_order", 0), item.get("page_name", ""))


page_access = PageAccessStore()


def toggle_page(theater_id: int, item_id: str, is_active: bool) -> dict:
    if not isinstance(is_active, bool):
        raise ValidationError("is_active must be a boolean", {"is_active": "must be a boolean"})
    return page_access.update_item(theater_id, item_id, {"is_active": is_active})
    for item in doc.copy_items():
        if item.get("page") == page_key:
            return item
    return None


def seed_page_access(theater_id: int) -> int:
    """
    Enable every catalog page for a theater. Idempotent: existing page keys
    are left untouched. Returns the number of pages added.
    """
    def _op():
        doc = page_access._document_for_write(theater_id)
        items = doc.copy_items()
        existing = {item.get("page") for item in items}
        now = to_utc_z(utcnow())
        added = 0

        for order, (page, page_name, route, category) in enumerate(PAGE_DEFINITIONS):
            if page in existing:
                continue
            items.append({
                "_id": new_item_id(),
                "page": page,
                "page_name": page_name,
                "route": route,
                "category": category,
                "description": "",
                "show_in_menu": category != PageCategory.KIOSK,
                "menu_order": order,
                "is_active": True,
                "sort_order": len(items),
                "created_at": now,
                "updated_at": now,
            })
            added += 1

        if added:
            doc.set_items(items)
        db.session.commit()
        return added

    return run_write(_op, what="page access")
