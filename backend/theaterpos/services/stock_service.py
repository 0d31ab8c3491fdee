# Overview: Service-layer operations for the monthly stock ledger; encapsulates business logic and database work.

"""
Monthly Stock Ledger Invariants (authoritative)

Ledger model:
- One MonthlyStock row per (product, year, month), created on the first
  movement of that month.
- carry_forward = closing_balance of the product's newest earlier ledger
  (0 for the first one). Later months are re-chained whenever an earlier
  month changes.
- stock_details is chronological: ordered by date, ties keep insertion order.
- Entries are ADDED lots or SOLD / DAMAGED outflows.
- Entry arithmetic, starting from carry_forward:
  ADDED:          balance = previous balance + received_stock - expired_stock
  SOLD / DAMAGED: balance = previous balance - quantity
- On a lot, invord_stock is what is still on hand:
  received_stock = invord_stock + sold_stock + damaged_stock + expired_stock.

Outflows (FIFO):
- A sale or damage consumes lots oldest first, across months, taking only
  lots received on or before the outflow date and not yet expired on it.
- The consumed quantities are written to the lots (sold_stock / damaged_stock)
  and listed on the outflow entry's fifo_details, so deleting the outflow
  gives the units back to the same lots.
- An outflow larger than the eligible on-hand stock is rejected whole.

Derived cache:
- Product.current_stock = closing_balance of the product's newest ledger,
  written in the same transaction as every ledger change.

Sweep:
- Expires only what is still on hand (invord_stock) of lots whose
  expire_date <= as_of. Sold and damaged units are never expired.
- Best-effort per product: each product's ledgers are one transaction. A
  failing product is logged and reported; the sweep moves on.
- Idempotent for a given as_of: expired entries have invord_stock == 0.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date as date_type

from flask import current_app

from ..extensions import db
from ..models import MonthlyStock, Product
from ..models.stock import ENTRY_ADDED, ENTRY_DAMAGED, ENTRY_SOLD
from ..validation import (
    NotFoundError,
    ValidationError,
    require_date,
    require_positive_quantity,
)
from .array_store import new_item_id
from .concurrency import run_write
from theaterpos.time_utils import local_today, parse_iso_date, to_utc_z, utcnow


MIN_YEAR = 2000
MAX_YEAR = 9999


@dataclass
class SweepReport:
    as_of: date_type
    ledgers_scanned: int = 0
    entries_expired: int = 0
    quantity_expired: int = 0
    products_updated: int = 0
    failures: list[dict] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "as_of": self.as_of.isoformat(),
            "ledgers_scanned": self.ledgers_scanned,
            "entries_expired": self.entries_expired,
            "quantity_expired": self.quantity_expired,
            "products_updated": self.products_updated,
            "failures": list(self.failures),
        }


def _check_period(year, month) -> tuple[int, int]:
    if isinstance(year, bool) or not isinstance(year, int) or not MIN_YEAR <= year <= MAX_YEAR:
        raise ValidationError(f"year must be between {MIN_YEAR} and {MAX_YEAR}", {"year": "invalid year"})
    if isinstance(month, bool) or not isinstance(month, int) or not 1 <= month <= 12:
        raise ValidationError("month must be between 1 and 12", {"month": "must be between 1 and 12"})
    return year, month


def get_product(product_id: int) -> Product:
    product = db.session.query(Product).filter_by(id=product_id).first()
    if product is None:
        raise NotFoundError("Product not found")
    return product


def _product_ledgers(product_id: int) -> list[MonthlyStock]:
    return (
        db.session.query(MonthlyStock)
        .filter_by(product_id=product_id)
        .order_by(MonthlyStock.year.asc(), MonthlyStock.month.asc())
        .all()
    )


def _find_ledger(product_id: int, year: int, month: int) -> MonthlyStock | None:
    return db.session.query(MonthlyStock).filter_by(product_id=product_id, year=year, month=month).first()


def _opening_balance(product_id: int, year: int, month: int) -> int:
    """Closing balance of the newest ledger strictly before (year, month)."""
    previous = (
        db.session.query(MonthlyStock)
        .filter(MonthlyStock.product_id == product_id)
        .filter(
            (MonthlyStock.year < year)
            | ((MonthlyStock.year == year) & (MonthlyStock.month < month))
        )
        .order_by(MonthlyStock.year.desc(), MonthlyStock.month.desc())
        .first()
    )
    return previous.closing_balance if previous else 0


def _ledger_for_write(product: Product, year: int, month: int) -> MonthlyStock:
    ledger = _find_ledger(product.id, year, month)
    if ledger is None:
        carry = _opening_balance(product.id, year, month)
        ledger = MonthlyStock(
            theater_id=product.theater_id,
            product_id=product.id,
            year=year,
            month=month,
            carry_forward=carry,
            stock_details=[],
            closing_balance=carry,
        )
        db.session.add(ledger)
    return ledger


def _entry_sort_key(entry: dict):
    return entry.get("date") or ""


def _is_lot(entry: dict) -> bool:
    return entry.get("type", ENTRY_ADDED) == ENTRY_ADDED


def _movement(entry: dict) -> int:
    if _is_lot(entry):
        return entry.get("received_stock", 0) - entry.get("expired_stock", 0)
    return -entry.get("quantity", 0)


def recalculate_balances(ledger: MonthlyStock) -> int:
    """
    Recompute every entry's running balance from carry_forward and set
    closing_balance. Returns the closing balance.
    """
    details = sorted(ledger.copy_details(), key=_entry_sort_key)

    running = ledger.carry_forward or 0
    for entry in details:
        running += _movement(entry)
        entry["balance"] = running

    ledger.stock_details = details
    ledger.closing_balance = running
    return running


def _rechain(ledgers: list[MonthlyStock], start: int = 0) -> None:
    """Recalculate ledgers[start:] so each carry_forward follows its predecessor."""
    for index in range(start, len(ledgers)):
        if index > 0:
            ledgers[index].carry_forward = ledgers[index - 1].closing_balance
        recalculate_balances(ledgers[index])


def _refresh_product_stock(product: Product, ledgers: list[MonthlyStock]) -> None:
    if ledgers:
        product.current_stock = ledgers[-1].closing_balance


def _chain_after_change(product: Product, ledger: MonthlyStock) -> None:
    """Re-chain every ledger from `ledger` onward and refresh the product cache."""
    db.session.flush()
    ledgers = _product_ledgers(product.id)
    start = next(i for i, row in enumerate(ledgers) if row.id == ledger.id)
    _rechain(ledgers, start)
    _refresh_product_stock(product, ledgers)


def get_or_create_ledger(product_id: int, year: int, month: int) -> MonthlyStock:
    """Return the product's ledger for the month, opening it from the previous closing balance."""
    year, month = _check_period(year, month)

    def _op():
        product = get_product(product_id)
        ledger = _ledger_for_write(product, year, month)
        if ledger.id is None:
            _chain_after_change(product, ledger)
            db.session.commit()
        return ledger

    return run_write(_op, what="stock ledger")


def get_ledger(product_id: int, year: int, month: int) -> dict:
    """
    Ledger view for a month. A month with no movements yet is reported as an
    empty ledger opening at the previous closing balance; nothing is created.
    """
    year, month = _check_period(year, month)
    product = get_product(product_id)

    ledger = _find_ledger(product.id, year, month)
    if ledger is not None:
        return ledger.to_dict()

    carry = _opening_balance(product.id, year, month)
    return MonthlyStock(
        theater_id=product.theater_id,
        product_id=product.id,
        year=year,
        month=month,
        carry_forward=carry,
        stock_details=[],
        closing_balance=carry,
    ).to_dict()


def _default_entry_date(year: int, month: int) -> date_type:
    today = local_today(current_app.config["STOCK_SWEEP_TIMEZONE"])
    if (today.year, today.month) == (year, month):
        return today
    return date_type(year, month, 1)


def _entry_date(value, year: int, month: int) -> date_type:
    on = require_date(value, "date") if value is not None else _default_entry_date(year, month)
    if (on.year, on.month) != (year, month):
        raise ValidationError("date must fall within the ledger month", {"date": "outside ledger month"})
    return on


def _clean_text(value) -> str | None:
    return (str(value).strip() or None) if value is not None else None


def _insert_chronological(details: list[dict], entry: dict) -> None:
    position = sum(1 for row in details if (row.get("date") or "") <= entry["date"])
    details.insert(position, entry)


def _ledger_index(ledgers: list[MonthlyStock], ledger: MonthlyStock) -> int:
    return next(i for i, row in enumerate(ledgers) if row is ledger)


def record_receipt(
    product_id: int,
    year: int,
    month: int,
    quantity,
    expire_date=None,
    date=None,
    batch_number: str | None = None,
    notes: str | None = None,
) -> MonthlyStock:
    """
    Record stock received into a month's ledger.

    A lot with the same date, expire_date and batch_number is incremented;
    otherwise a new lot is inserted in date order. Balances of this month
    and every later month are recomputed and product.current_stock follows.
    """
    year, month = _check_period(year, month)
    quantity = require_positive_quantity(quantity)

    received_on = _entry_date(date, year, month)
    expires_on = require_date(expire_date, "expire_date") if expire_date is not None else None
    batch_number = _clean_text(batch_number)
    notes = _clean_text(notes)

    entry_date = received_on.isoformat()
    entry_expiry = expires_on.isoformat() if expires_on else None

    def _op():
        product = get_product(product_id)
        ledger = _ledger_for_write(product, year, month)
        details = ledger.copy_details()
        now = to_utc_z(utcnow())

        for entry in details:
            if (
                _is_lot(entry)
                and entry.get("date") == entry_date
                and entry.get("expire_date") == entry_expiry
                and entry.get("batch_number") == batch_number
            ):
                entry["received_stock"] = entry.get("received_stock", 0) + quantity
                entry["invord_stock"] = entry.get("invord_stock", 0) + quantity
                if notes:
                    entry["notes"] = notes
                entry["updated_at"] = now
                break
        else:
            _insert_chronological(details, {
                "_id": new_item_id(),
                "type": ENTRY_ADDED,
                "date": entry_date,
                "received_stock": quantity,
                "invord_stock": quantity,
                "sold_stock": 0,
                "damaged_stock": 0,
                "expired_stock": 0,
                "balance": 0,
                "expire_date": entry_expiry,
                "batch_number": batch_number,
                "notes": notes or "",
                "created_at": now,
                "updated_at": now,
            })

        ledger.stock_details = details
        _chain_after_change(product, ledger)
        db.session.commit()
        return ledger

    ledger = run_write(_op, what="stock receipt")
    current_app.logger.info(
        "Received %d units of product %s into %d-%02d", quantity, product_id, year, month
    )
    return ledger


def _eligible(lot: dict, on: str) -> bool:
    """A lot can supply an outflow dated `on` if it was on hand and unexpired that day."""
    if not _is_lot(lot) or lot.get("invord_stock", 0) <= 0:
        return False
    if (lot.get("date") or "") > on:
        return False
    expiry = lot.get("expire_date")
    return expiry is None or expiry > on


def _record_outflow(kind: str, product_id: int, year: int, month: int, quantity, date, notes, lot_id) -> MonthlyStock:
    year, month = _check_period(year, month)
    quantity = require_positive_quantity(quantity)
    on = _entry_date(date, year, month).isoformat()
    notes = _clean_text(notes)
    counter = "sold_stock" if kind == ENTRY_SOLD else "damaged_stock"

    def _op():
        product = get_product(product_id)
        target = _ledger_for_write(product, year, month)
        db.session.flush()
        ledgers = _product_ledgers(product.id)
        target_index = _ledger_index(ledgers, target)
        details = [row.copy_details() for row in ledgers]

        candidates = [
            (index, lot)
            for index, rows in enumerate(details[:target_index + 1])
            for lot in rows
            if _eligible(lot, on) and (lot_id is None or lot["_id"] == lot_id)
        ]
        if lot_id is not None and not candidates:
            raise NotFoundError("No stock on hand in that lot")

        available = sum(lot["invord_stock"] for _, lot in candidates)
        if available < quantity:
            raise ValidationError(
                f"Insufficient stock: {available} available, {quantity} requested",
                {"quantity": f"only {available} available"},
            )

        now = to_utc_z(utcnow())
        remaining = quantity
        fifo_details = []
        touched = set()
        for index, lot in candidates:
            if remaining == 0:
                break
            take = min(remaining, lot["invord_stock"])
            lot["invord_stock"] -= take
            lot[counter] = lot.get(counter, 0) + take
            lot["updated_at"] = now
            remaining -= take
            touched.add(index)
            fifo_details.append({
                "entry_id": lot["_id"],
                "year": ledgers[index].year,
                "month": ledgers[index].month,
                "batch_number": lot.get("batch_number"),
                "expire_date": lot.get("expire_date"),
                "quantity": take,
            })

        _insert_chronological(details[target_index], {
            "_id": new_item_id(),
            "type": kind,
            "date": on,
            "quantity": quantity,
            "balance": 0,
            "fifo_details": fifo_details,
            "notes": notes or "",
            "created_at": now,
            "updated_at": now,
        })
        touched.add(target_index)

        for index in touched:
            ledgers[index].stock_details = details[index]
        _rechain(ledgers, target_index)
        _refresh_product_stock(product, ledgers)
        db.session.commit()
        return target

    return run_write(_op, what=f"stock {kind.lower()}")


def record_sale(product_id: int, year: int, month: int, quantity, date=None, notes: str | None = None) -> MonthlyStock:
    """
    Book a sale in the month's ledger, taking the units from the oldest
    unexpired lots first. Raises ValidationError when stock on hand is short.
    """
    ledger = _record_outflow(ENTRY_SOLD, product_id, year, month, quantity, date, notes, None)
    current_app.logger.info("Sold %s units of product %s in %d-%02d", quantity, product_id, year, month)
    return ledger


def record_damage(
    product_id: int,
    year: int,
    month: int,
    quantity,
    date=None,
    entry_id: str | None = None,
    notes: str | None = None,
) -> MonthlyStock:
    """
    Write off damaged units. With entry_id the units come from that lot only;
    otherwise lots are consumed oldest first, like a sale.
    """
    ledger = _record_outflow(ENTRY_DAMAGED, product_id, year, month, quantity, date, notes, entry_id)
    current_app.logger.warning("Wrote off %s damaged units of product %s in %d-%02d", quantity, product_id, year, month)
    return ledger


LOT_EDITABLE_FIELDS = {"quantity", "date", "expire_date", "batch_number", "notes"}
OUTFLOW_EDITABLE_FIELDS = {"notes"}


def _locate_entry(details: list[dict], entry_id: str) -> dict:
    entry = next((row for row in details if row.get("_id") == entry_id), None)
    if entry is None:
        raise NotFoundError("Stock entry not found")
    return entry


def update_entry(product_id: int, year: int, month: int, entry_id: str, changes: dict) -> MonthlyStock:
    """
    Edit one ledger entry.

    Lots accept quantity, date, expire_date, batch_number and notes. The new
    quantity may not drop below what was already sold, damaged or expired.
    A lot that has supplied outflows keeps its date, and an expired lot keeps
    its expire_date. Outflows accept notes only; delete and re-record them
    to change the quantity.
    """
    year, month = _check_period(year, month)
    if not isinstance(changes, dict) or not changes:
        raise ValidationError("No changes supplied")

    def _op():
        product = get_product(product_id)
        ledger = _find_ledger(product.id, year, month)
        details = ledger.copy_details() if ledger else []
        entry = _locate_entry(details, entry_id)

        allowed = LOT_EDITABLE_FIELDS if _is_lot(entry) else OUTFLOW_EDITABLE_FIELDS
        unknown = sorted(set(changes) - allowed)
        if unknown:
            raise ValidationError(
                f"Fields cannot be changed on this entry: {', '.join(unknown)}",
                {k: "not editable" for k in unknown},
            )

        consumed = entry.get("sold_stock", 0) + entry.get("damaged_stock", 0)
        if "quantity" in changes:
            quantity = require_positive_quantity(changes["quantity"])
            floor = consumed + entry.get("expired_stock", 0)
            if quantity < floor:
                raise ValidationError(
                    f"quantity cannot be below {floor} already used or expired",
                    {"quantity": f"must be >= {floor}"},
                )
            entry["received_stock"] = quantity
            entry["invord_stock"] = quantity - floor

        if "date" in changes:
            moved = _entry_date(changes["date"], year, month).isoformat()
            if moved != entry["date"] and consumed:
                raise ValidationError("A lot that has supplied sales or damage keeps its date", {"date": "lot in use"})
            entry["date"] = moved

        if "expire_date" in changes:
            value = changes["expire_date"]
            expiry = require_date(value, "expire_date").isoformat() if value not in (None, "") else None
            if expiry != entry.get("expire_date") and entry.get("expired_stock", 0):
                raise ValidationError("Expired stock keeps its expire_date", {"expire_date": "already expired"})
            entry["expire_date"] = expiry

        if "batch_number" in changes:
            entry["batch_number"] = _clean_text(changes["batch_number"])
        if "notes" in changes:
            entry["notes"] = _clean_text(changes["notes"]) or ""

        entry["updated_at"] = to_utc_z(utcnow())
        ledger.stock_details = details
        _chain_after_change(product, ledger)
        db.session.commit()
        return ledger

    ledger = run_write(_op, what="stock entry update")
    current_app.logger.info("Updated stock entry %s of product %s (%d-%02d)", entry_id, product_id, year, month)
    return ledger


def delete_entry(product_id: int, year: int, month: int, entry_id: str) -> MonthlyStock:
    """
    Remove one ledger entry.

    A lot can go only while none of it has been sold or damaged. Deleting a
    sale or damage entry returns its units to the lots it consumed; units
    given back to a lot that has meanwhile passed its expire_date are picked
    up by the next expiry sweep.
    """
    year, month = _check_period(year, month)

    def _op():
        product = get_product(product_id)
        ledger = _find_ledger(product.id, year, month)
        ledgers = _product_ledgers(product.id)
        details = [row.copy_details() for row in ledgers]
        index = _ledger_index(ledgers, ledger) if ledger else None
        entry = _locate_entry(details[index] if ledger else [], entry_id)

        touched = {index}
        if _is_lot(entry):
            if entry.get("sold_stock", 0) or entry.get("damaged_stock", 0):
                raise ValidationError("A lot that has supplied sales or damage cannot be deleted")
        else:
            counter = "sold_stock" if entry["type"] == ENTRY_SOLD else "damaged_stock"
            lots = {
                lot["_id"]: (position, lot)
                for position, rows in enumerate(details)
                for lot in rows
                if _is_lot(lot)
            }
            for part in entry.get("fifo_details") or []:
                if part["entry_id"] not in lots:
                    raise ValidationError(f"Source lot {part['entry_id']} no longer exists")
                position, lot = lots[part["entry_id"]]
                lot[counter] = lot.get(counter, 0) - part["quantity"]
                lot["invord_stock"] = lot.get("invord_stock", 0) + part["quantity"]
                touched.add(position)

        details[index].remove(entry)
        for position in touched:
            ledgers[position].stock_details = details[position]
        _rechain(ledgers, index)
        _refresh_product_stock(product, ledgers)
        db.session.commit()
        return ledger

    ledger = run_write(_op, what="stock entry delete")
    current_app.logger.info("Deleted stock entry %s of product %s (%d-%02d)", entry_id, product_id, year, month)
    return ledger


def roll_forward(product_id: int, from_year: int, from_month: int) -> int:
    """
    Re-chain every ledger of the product from (from_year, from_month) onward.
    Returns the product's resulting current stock.
    """
    from_year, from_month = _check_period(from_year, from_month)

    def _op():
        product = get_product(product_id)
        ledgers = _product_ledgers(product.id)
        start = next(
            (i for i, row in enumerate(ledgers) if (row.year, row.month) >= (from_year, from_month)),
            len(ledgers),
        )
        _rechain(ledgers, start)
        _refresh_product_stock(product, ledgers)
        db.session.commit()
        return product.current_stock

    return run_write(_op, what="stock roll forward")


def rollover_month(year: int, month: int) -> int:
    """
    Open (year, month) for every active product that has an earlier ledger,
    so the month starts from the previous closing balance. Returns the number
    of ledgers created.
    """
    year, month = _check_period(year, month)

    product_ids = [
        row[0]
        for row in db.session.query(MonthlyStock.product_id)
        .join(Product, Product.id == MonthlyStock.product_id)
        .filter(Product.is_active.is_(True))
        .filter(
            (MonthlyStock.year < year)
            | ((MonthlyStock.year == year) & (MonthlyStock.month < month))
        )
        .distinct()
        .all()
    ]

    created = 0
    for product_id in product_ids:
        if _find_ledger(product_id, year, month) is None:
            get_or_create_ledger(product_id, year, month)
            created += 1

    current_app.logger.info("Opened %d stock ledgers for %d-%02d", created, year, month)
    return created


def _expire_entries(ledger: MonthlyStock, as_of: date_type, now: str) -> tuple[int, int]:
    details = ledger.copy_details()
    entries = 0
    quantity = 0

    for entry in details:
        expires_on = parse_iso_date(entry.get("expire_date"))
        live = entry.get("invord_stock", 0)
        if not _is_lot(entry) or expires_on is None or live <= 0 or expires_on > as_of:
            continue
        entry["expired_stock"] = entry.get("expired_stock", 0) + live
        entry["invord_stock"] = 0
        entry["updated_at"] = now
        entries += 1
        quantity += live

    if entries:
        ledger.stock_details = details
    return entries, quantity


def sweep_expired_stock(as_of=None) -> SweepReport:
    """
    Expire every live entry whose expire_date <= as_of, across all products.

    as_of defaults to today in STOCK_SWEEP_TIMEZONE.
    """
    if as_of is None:
        as_of = local_today(current_app.config["STOCK_SWEEP_TIMEZONE"])
    else:
        as_of = require_date(as_of, "as_of")

    report = SweepReport(as_of=as_of)
    product_ids = [
        row[0]
        for row in db.session.query(MonthlyStock.product_id)
        .distinct()
        .order_by(MonthlyStock.product_id.asc())
        .all()
    ]

    for product_id in product_ids:
        def _op(product_id=product_id):
            product = get_product(product_id)
            ledgers = _product_ledgers(product_id)
            now = to_utc_z(utcnow())
            entries = 0
            quantity = 0
            first_changed = None

            for index, ledger in enumerate(ledgers):
                changed, moved = _expire_entries(ledger, as_of, now)
                if changed and first_changed is None:
                    first_changed = index
                entries += changed
                quantity += moved

            if first_changed is not None:
                _rechain(ledgers, first_changed)
                _refresh_product_stock(product, ledgers)
                db.session.commit()
            return len(ledgers), entries, quantity

        try:
            scanned, entries, quantity = run_write(_op, what=f"expired stock for product {product_id}")
        except Exception as exc:
            current_app.logger.exception("Expiry sweep failed for product %s", product_id)
            report.failures.append({"product_id": product_id, "error": str(exc)})
            continue

        report.ledgers_scanned += scanned
        report.entries_expired += entries
        report.quantity_expired += quantity
        if entries:
            report.products_updated += 1

    log = current_app.logger.warning if report.failures else current_app.logger.info
    log(
        "Expiry sweep as of %s: %d ledgers scanned, %d entries expired (%d units), "
        "%d products updated, %d failures",
        as_of.isoformat(), report.ledgers_scanned, report.entries_expired,
        report.quantity_expired, report.products_updated, len(report.failures),
    )
    return report
