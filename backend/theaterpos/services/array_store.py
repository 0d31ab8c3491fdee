# Overview: Generic CRUD over one embedded item inside a theater's array document.

"""
Theater-Scoped Array Store

WHY: Roles, theater users, page access and QR code names are all stored the
same way: one document per theater holding an ordered array of items. This
module owns that pattern once; each entity kind subclasses
TheaterArrayStore and only supplies its validation policy and hooks.

CONCURRENCY:
Writes are whole-array read-modify-write. Each write runs inside
run_write(), so a writer that read a stale version gets StaleDataError on
commit, rolls back, re-reads and re-applies its change. Concurrent add_item
calls on one theater therefore never drop each other's items.

FILTERING:
list_items loads the whole array and filters in memory. Arrays are small
(tens of items per theater), so there is no query pushdown.
"""

from __future__ import annotations

import math
import uuid

from ..extensions import db
from ..models import Theater
from ..validation import (
    ItemValidationPolicy,
    NotFoundError,
    ValidationError,
    validate_item_payload,
)
from .concurrency import run_write
from theaterpos.time_utils import utcnow, to_utc_z

MAX_PAGE_SIZE = 100


def new_item_id() -> str:
    return uuid.uuid4().hex


class TheaterArrayStore:
    model = None
    policy: ItemValidationPolicy = None
    search_fields: tuple[str, ...] = ()
    filter_fields: tuple[str, ...] = ("is_active",)

    @property
    def label(self) -> str:
        return self.model.ITEM_LABEL

    # ------------------------------------------------------------------
    # Hooks for entity kinds
    # ------------------------------------------------------------------

    def prepare_new_item(self, theater_id: int, items: list[dict], item: dict) -> None:
        """Enforce kind-specific rules on a validated new item. May normalize `item` in place."""

    def prepare_update(self, theater_id: int, items: list[dict], current: dict, patch: dict) -> None:
        """Enforce kind-specific rules on a validated patch. May normalize `patch` in place."""

    def before_remove(self, theater_id: int, item: dict) -> None:
        """Raise to refuse removal."""

    def sort_key(self, item: dict):
        return (item.get("sort_order", 0), item.get("created_at") or "")

    def public_item(self, item: dict) -> dict:
        return item

    # ------------------------------------------------------------------
    # Documents
    # ------------------------------------------------------------------

    def get_document(self, theater_id: int):
        return db.session.query(self.model).filter_by(theater_id=theater_id).first()

    def _require_theater(self, theater_id: int) -> Theater:
        theater = db.session.query(Theater).filter_by(id=theater_id).first()
        if not theater:
            raise NotFoundError("Theater not found")
        return theater

    def _document_for_write(self, theater_id: int):
        doc = self.get_document(theater_id)
        if doc is None:
            self._require_theater(theater_id)
            doc = self.model(theater_id=theater_id, items=[])
            db.session.add(doc)
        return doc

    def find_or_create_by_theater(self, theater_id: int):
        """
        Return the theater's document, creating an empty one if needed.

        Idempotent: a second call returns the same row. If two callers race
        to create, the loser's insert violates the unique theater_id, is
        retried and finds the winner's document.
        """
        def _op():
            doc = self._document_for_write(theater_id)
            if doc.id is None:
                db.session.commit()
            return doc

        return run_write(_op, what=f"{self.label.lower()} document")

    # ------------------------------------------------------------------
    # Items
    # ------------------------------------------------------------------

    def add_item(self, theater_id: int, data: dict) -> dict:
        """Validate, assign an _id, append and persist. Returns the stored item."""
        cleaned = validate_item_payload(payload=data, policy=self.policy, partial=False)

        def _op():
            doc = self._document_for_write(theater_id)
            items = doc.copy_items()

            item = dict(cleaned)
            item["_id"] = new_item_id()
            self.prepare_new_item(theater_id, items, item)

            now = to_utc_z(utcnow())
            item.setdefault("sort_order", len(items))
            item["created_at"] = now
            item["updated_at"] = now

            items.append(item)
            doc.set_items(items)
            db.session.commit()
            return item

        return self.public_item(run_write(_op, what=self.label.lower()))

    def get_item(self, theater_id: int, item_id: str) -> dict:
        doc = self.get_document(theater_id)
        item = doc.find_item(item_id) if doc else None
        if item is None:
            raise NotFoundError(f"{self.label} not found")
        return self.public_item(item)

    def update_item(self, theater_id: int, item_id: str, patch: dict) -> dict:
        """Merge a validated patch into one item and persist."""
        cleaned = validate_item_payload(payload=patch, policy=self.policy, partial=True)

        def _op():
            doc = self.get_document(theater_id)
            if doc is None:
                raise NotFoundError(f"{self.label} not found")

            items = doc.copy_items()
            index = _index_of(items, item_id)
            if index is None:
                raise NotFoundError(f"{self.label} not found")

            changes = dict(cleaned)
            self.prepare_update(theater_id, items, items[index], changes)

            items[index].update(changes)
            items[index]["updated_at"] = to_utc_z(utcnow())
            doc.set_items(items)
            db.session.commit()
            return items[index]

        return self.public_item(run_write(_op, what=self.label.lower()))

    def remove_item(self, theater_id: int, item_id: str) -> bool:
        """
        Remove one item. Idempotent: returns False (no error) when the
        theater has no document or the item is already gone.
        """
        def _op():
            doc = self.get_document(theater_id)
            if doc is None:
                return False

            items = doc.copy_items()
            index = _index_of(items, item_id)
            if index is None:
                return False

            self.before_remove(theater_id, items[index])
            del items[index]
            doc.set_items(items)
            db.session.commit()
            return True

        return run_write(_op, what=self.label.lower())

    def list_items(
        self,
        theater_id: int,
        filters: dict | None = None,
        page: int = 1,
        limit: int = 10,
    ) -> dict:
        """
        Return one page of items matching `filters`.

        Supported filters: any name in filter_fields (equality) and
        "search" (case-insensitive substring over search_fields).
        """
        if page < 1:
            raise ValidationError("page must be >= 1", {"page": "must be >= 1"})
        if limit < 1 or limit > MAX_PAGE_SIZE:
            raise ValidationError(
                f"limit must be between 1 and {MAX_PAGE_SIZE}",
                {"limit": f"must be between 1 and {MAX_PAGE_SIZE}"},
            )

        filters = filters or {}
        doc = self.get_document(theater_id)
        items = doc.copy_items() if doc else []

        for key in self.filter_fields:
            value = filters.get(key)
            if value is not None:
                items = [item for item in items if item.get(key) == value]

        search = (filters.get("search") or "").strip().lower()
        if search:
            items = [
                item for item in items
                if any(search in str(item.get(f) or "").lower() for f in self.search_fields)
            ]

        items.sort(key=self.sort_key)

        total = len(items)
        start = (page - 1) * limit
        page_items = items[start:start + limit]

        return {
            "theater_id": theater_id,
            "items": [self.public_item(item) for item in page_items],
            "pagination": {
                "current_page": page,
                "total_pages": math.ceil(total / limit) if total else 0,
                "total_items": total,
                "items_per_page": limit,
            },
            "metadata": doc.item_counts() if doc else {"total": 0, "active": 0, "inactive": 0},
        }


def _index_of(items: list[dict], item_id: str) -> int | None:
    for index, item in enumerate(items):
        if item.get("_id") == item_id:
            return index
    return None
