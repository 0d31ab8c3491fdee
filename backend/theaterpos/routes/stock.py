# Overview: Flask API routes for the monthly stock ledger; parses input and returns JSON responses.

from flask import Blueprint, current_app, g

from ..decorators import require_auth, require_page_access
from ..responses import fail, get_json_body, ok, query_int
from ..services import stock_service
from theaterpos.time_utils import local_today

stock_bp = Blueprint("stock", __name__, url_prefix="/api/stock")


def _product_for_caller(product_id: int):
    """Product of the caller's theater, or None (foreign products read as missing)."""
    product = stock_service.get_product(product_id)
    if not g.is_super_admin and product.theater_id != g.theater_id:
        return None
    return product


def _period_args() -> tuple[int, int]:
    today = local_today(current_app.config["STOCK_SWEEP_TIMEZONE"])
    return query_int("year", today.year), query_int("month", today.month)


@stock_bp.get("/<int:product_id>")
@require_auth
@require_page_access("Stock")
def get_ledger(product_id: int):
    """
    Monthly ledger for a product.

    Query params:
    - year, month: ledger period (default: current month in the theater time zone)
    """
    if _product_for_caller(product_id) is None:
        return fail("Product not found", 404)

    year, month = _period_args()
    return ok(stock_service.get_ledger(product_id, year, month))


@stock_bp.post("/<int:product_id>/receipts")
@require_auth
@require_page_access("Stock")
def record_receipt(product_id: int):
    """
    Record received stock.

    Body:
    - quantity: positive integer (required)
    - year, month: ledger period (default: current month)
    - date: ISO date within the period (default: today, or the 1st for other months)
    - expire_date: ISO date, optional
    - batch_number, notes: optional
    """
    if _product_for_caller(product_id) is None:
        return fail("Product not found", 404)

    data = get_json_body()
    today = local_today(current_app.config["STOCK_SWEEP_TIMEZONE"])
    ledger = stock_service.record_receipt(
        product_id,
        data.get("year", today.year),
        data.get("month", today.month),
        data.get("quantity"),
        expire_date=data.get("expire_date"),
        date=data.get("date"),
        batch_number=data.get("batch_number"),
        notes=data.get("notes"),
    )
    return ok(ledger.to_dict(), "Stock received", 201)


@stock_bp.post("/<int:product_id>/sales")
@require_auth
@require_page_access("Stock")
def record_sale(product_id: int):
    """
    Book a sale; units come from the oldest unexpired lots first.

    Body:
    - quantity: positive integer (required)
    - year, month, date: as for receipts
    - notes: optional
    """
    if _product_for_caller(product_id) is None:
        return fail("Product not found", 404)

    data = get_json_body()
    today = local_today(current_app.config["STOCK_SWEEP_TIMEZONE"])
    ledger = stock_service.record_sale(
        product_id,
        data.get("year", today.year),
        data.get("month", today.month),
        data.get("quantity"),
        date=data.get("date"),
        notes=data.get("notes"),
    )
    return ok(ledger.to_dict(), "Sale recorded", 201)


@stock_bp.post("/<int:product_id>/damage")
@require_auth
@require_page_access("Stock")
def record_damage(product_id: int):
    """
    Write off damaged units.

    Body: as for sales, plus an optional entry_id naming the damaged lot.
    """
    if _product_for_caller(product_id) is None:
        return fail("Product not found", 404)

    data = get_json_body()
    today = local_today(current_app.config["STOCK_SWEEP_TIMEZONE"])
    ledger = stock_service.record_damage(
        product_id,
        data.get("year", today.year),
        data.get("month", today.month),
        data.get("quantity"),
        date=data.get("date"),
        entry_id=data.get("entry_id"),
        notes=data.get("notes"),
    )
    return ok(ledger.to_dict(), "Damage recorded", 201)


@stock_bp.put("/<int:product_id>/entries/<entry_id>")
@require_auth
@require_page_access("Stock")
def update_entry(product_id: int, entry_id: str):
    """Edit a ledger entry; year and month (query) name the ledger holding it."""
    if _product_for_caller(product_id) is None:
        return fail("Product not found", 404)

    year, month = _period_args()
    ledger = stock_service.update_entry(product_id, year, month, entry_id, get_json_body())
    return ok(ledger.to_dict(), "Stock entry updated")


@stock_bp.delete("/<int:product_id>/entries/<entry_id>")
@require_auth
@require_page_access("Stock")
def delete_entry(product_id: int, entry_id: str):
    if _product_for_caller(product_id) is None:
        return fail("Product not found", 404)

    year, month = _period_args()
    ledger = stock_service.delete_entry(product_id, year, month, entry_id)
    return ok(ledger.to_dict(), "Stock entry deleted")
