from __future__ import annotations

import calendar
import copy

from ..extensions import db
from theaterpos.time_utils import to_utc_z


ENTRY_ADDED = "ADDED"
ENTRY_SOLD = "SOLD"
ENTRY_DAMAGED = "DAMAGED"


class MonthlyStock(db.Model):
    """
    Per-product, per-calendar-month stock ledger.

    LEDGER INVARIANTS (authoritative):
    - carry_forward is the previous month's closing_balance (0 for the first month).
    - stock_details is kept in chronological order (date, then insertion order).
    - Entries are typed: ADDED (a received lot), SOLD and DAMAGED (outflows).
    - Each entry: balance = previous balance + received_stock - expired_stock
      for ADDED entries, previous balance - quantity for outflows, where the
      first "previous balance" is carry_forward.
    - On an ADDED lot, invord_stock is the part still on hand, so
      received_stock == invord_stock + sold_stock + damaged_stock + expired_stock.
    - closing_balance = last entry's balance, or carry_forward when empty.

    Like the theater array documents, stock_details is rewritten as a whole
    and guarded by version_id.
    """
    __tablename__ = "monthlystocks"
    __table_args__ = (
        db.UniqueConstraint("product_id", "year", "month", name="uq_monthlystocks_product_period"),
        db.Index("ix_monthlystocks_theater_period", "theater_id", "year", "month"),
        db.CheckConstraint("month >= 1 AND month <= 12", name="month_range"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    theater_id = db.Column(db.Integer, db.ForeignKey("theaters.id"), nullable=False, index=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False, index=True)

    year = db.Column(db.Integer, nullable=False)
    month = db.Column(db.Integer, nullable=False)

    carry_forward = db.Column(db.Integer, nullable=False, default=0)
    stock_details = db.Column(db.JSON, nullable=False, default=list)
    closing_balance = db.Column(db.Integer, nullable=False, default=0)

    version_id = db.Column(db.Integer, nullable=False, default=1)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    product = db.relationship("Product", backref=db.backref("monthly_stocks", lazy=True))

    __mapper_args__ = {"version_id_col": version_id}

    def copy_details(self) -> list[dict]:
        return copy.deepcopy(self.stock_details or [])

    def totals(self) -> dict:
        """
        Month sums. received/invord/expired come from the month's lots;
        sold/damaged are the outflows booked in this month.
        """
        details = self.stock_details or []
        lots = [e for e in details if e.get("type", ENTRY_ADDED) == ENTRY_ADDED]
        return {
            "received_stock": sum(e.get("received_stock", 0) for e in lots),
            "invord_stock": sum(e.get("invord_stock", 0) for e in lots),
            "expired_stock": sum(e.get("expired_stock", 0) for e in lots),
            "sold_stock": sum(e.get("quantity", 0) for e in details if e.get("type") == ENTRY_SOLD),
            "damaged_stock": sum(e.get("quantity", 0) for e in details if e.get("type") == ENTRY_DAMAGED),
        }

    def __repr__(self) -> str:
        return f"<MonthlyStock product_id={self.product_id} {self.year}-{self.month:02d} closing={self.closing_balance}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "theater_id": self.theater_id,
            "product_id": self.product_id,
            "year": self.year,
            "month": self.month,
            "month_name": calendar.month_name[self.month],
            "carry_forward": self.carry_forward,
            "stock_details": self.copy_details(),
            "closing_balance": self.closing_balance,
            "totals": self.totals(),
            "version_id": self.version_id,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }
