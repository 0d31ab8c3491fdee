from __future__ import annotations

import copy

from sqlalchemy.orm import declared_attr

from ..extensions import db


class TheaterArrayDocument:
    """
    One row per theater holding an ordered array of embedded items.

    INVARIANTS:
    - Exactly one document per (theater_id, entity kind): theater_id is unique.
    - Every item carries a generated string "_id", unique within the document.
    - The document is the unit of concurrency. Writers replace `items` as a
      whole and the version_id column turns a stale replace into a
      StaleDataError instead of a silently lost update.

    `items` is a plain JSON column: never mutate it in place, always assign
    a new list (see set_items) so the change is flushed and versioned.
    """
    ITEM_LABEL = "Item"

    id = db.Column(db.Integer, primary_key=True)

    @declared_attr
    def theater_id(cls):
        return db.Column(db.Integer, db.ForeignKey("theaters.id"), nullable=False, unique=True)

    items = db.Column(db.JSON, nullable=False, default=list)

    version_id = db.Column(db.Integer, nullable=False, default=1)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    @declared_attr.directive
    def __mapper_args__(cls):
        return {"version_id_col": cls.__table__.c.version_id}

    def copy_items(self) -> list[dict]:
        return copy.deepcopy(self.items or [])

    def set_items(self, items: list[dict]) -> None:
        self.items = items

    def find_item(self, item_id: str) -> dict | None:
        for item in self.items or []:
            if item.get("_id") == item_id:
                return copy.deepcopy(item)
        return None

    def item_counts(self) -> dict:
        items = self.items or []
        active = sum(1 for item in items if item.get("is_active", True))
        return {
            "total": len(items),
            "active": active,
            "inactive": len(items) - active,
        }


class RoleArray(TheaterArrayDocument, db.Model):
    """Roles of a theater; each role bundles page permissions."""
    __tablename__ = "roles"
    ITEM_LABEL = "Role"

    theater = db.relationship("Theater", backref=db.backref("role_document", uselist=False, lazy=True))


class TheaterUserArray(TheaterArrayDocument, db.Model):
    """Staff accounts of a theater. Items reference a RoleArray item by `role`."""
    __tablename__ = "theaterusers"
    ITEM_LABEL = "User"


class TheaterUserPin(db.Model):
    """
    Claim on a 4-digit PIN. The primary key makes a PIN unique across all
    theaters even when two theaters add users at the same moment: the second
    insert fails with IntegrityError and the whole add is retried.
    """
    __tablename__ = "theateruserpins"

    pin = db.Column(db.String(4), primary_key=True)
    theater_id = db.Column(db.Integer, db.ForeignKey("theaters.id"), nullable=False, index=True)
    user_id = db.Column(db.String(32), nullable=False, index=True)

    def __repr__(self) -> str:
        return f"<TheaterUserPin pin=**** theater_id={self.theater_id} user_id={self.user_id}>"


class PageAccessArray(TheaterArrayDocument, db.Model):
    """Pages the theater has enabled, keyed by `page`."""
    __tablename__ = "pageaccesses"
    ITEM_LABEL = "Page"


class QRCodeNameArray(TheaterArrayDocument, db.Model):
    """Seat/screen QR code names printed for customer ordering."""
    __tablename__ = "qrcodenames"
    ITEM_LABEL = "QR code name"
