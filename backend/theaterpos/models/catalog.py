from __future__ import annotations

from ..extensions import db
from theaterpos.time_utils import to_utc_z


class Product(db.Model):
    """
    Concession product sold at one theater.

    current_stock is a derived cache: it always equals the closing balance of
    the product's newest MonthlyStock ledger and is written in the same
    transaction as that ledger. Never write it on its own.
    """
    __tablename__ = "products"
    __table_args__ = (
        db.UniqueConstraint("theater_id", "sku", name="uq_products_theater_sku"),
        db.Index("ix_products_theater_active", "theater_id", "is_active"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    theater_id = db.Column(db.Integer, db.ForeignKey("theaters.id"), nullable=False, index=True)

    sku = db.Column(db.String(64), nullable=True)
    name = db.Column(db.String(255), nullable=False)

    current_stock = db.Column(db.Integer, nullable=False, default=0)
    is_active = db.Column(db.Boolean, nullable=False, default=True)

    version_id = db.Column(db.Integer, nullable=False, default=1)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    theater = db.relationship("Theater", backref=db.backref("products", lazy=True))

    __mapper_args__ = {"version_id_col": version_id}

    def __repr__(self) -> str:
        return f"<Product id={self.id} name={self.name!r} theater_id={self.theater_id}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "theater_id": self.theater_id,
            "sku": self.sku,
            "name": self.name,
            "current_stock": self.current_stock,
            "is_active": self.is_active,
            "version_id": self.version_id,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }
