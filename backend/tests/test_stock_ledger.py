# Overview: Pytest coverage for the monthly stock ledger and the expiry sweep.

"""
Monthly Stock Ledger Tests

Running-total invariant checked after every mutation:
    closing_balance == carry_forward + received - expired - sold - damaged
with every entry's balance equal to the running total at that entry, and
every lot accounting for its units: received == invord + sold + damaged + expired.
"""

from datetime import date

import pytest

from theaterpos.extensions import db
from theaterpos.models import MonthlyStock
from theaterpos.services import stock_service
from theaterpos.validation import NotFoundError, ValidationError


def assert_running_total(ledger: MonthlyStock):
    running = ledger.carry_forward
    dates = []
    for entry in ledger.stock_details:
        if entry.get("type", "ADDED") == "ADDED":
            running += entry["received_stock"] - entry["expired_stock"]
            assert entry["received_stock"] == (
                entry["invord_stock"]
                + entry.get("sold_stock", 0)
                + entry.get("damaged_stock", 0)
                + entry["expired_stock"]
            )
        else:
            running -= entry["quantity"]
            assert sum(part["quantity"] for part in entry["fifo_details"]) == entry["quantity"]
        assert entry["balance"] == running
        dates.append(entry["date"])
    assert dates == sorted(dates)

    totals = ledger.totals()
    assert ledger.closing_balance == (
        ledger.carry_forward
        + totals["received_stock"]
        - totals["expired_stock"]
        - totals["sold_stock"]
        - totals["damaged_stock"]
    )
    assert ledger.closing_balance == running


def ledger_for(product, year, month) -> MonthlyStock:
    return db.session.query(MonthlyStock).filter_by(product_id=product.id, year=year, month=month).one()


@pytest.fixture
def october_scenario(db_session, product):
    """carry_forward 100 into October, then entry A (50, no expiry) and entry B (30, expiring Oct 5)."""
    stock_service.record_receipt(product.id, 2026, 9, 100, date="2026-09-15")
    stock_service.record_receipt(product.id, 2026, 10, 50, date="2026-10-01")
    stock_service.record_receipt(product.id, 2026, 10, 30, date="2026-10-02", expire_date="2026-10-05")
    return product


class TestRecordReceipt:
    def test_first_ledger_opens_at_zero(self, db_session, product):
        ledger = stock_service.record_receipt(product.id, 2026, 10, 40, date="2026-10-03")

        assert ledger.carry_forward == 0
        assert ledger.closing_balance == 40
        entry = ledger.stock_details[0]
        assert entry["received_stock"] == 40
        assert entry["invord_stock"] == 40
        assert entry["expired_stock"] == 0
        assert entry["expire_date"] is None
        assert_running_total(ledger)

    def test_updates_product_stock(self, db_session, product):
        stock_service.record_receipt(product.id, 2026, 10, 40, date="2026-10-03")
        assert db_session.get(type(product), product.id).current_stock == 40

    def test_scenario_before_sweep(self, october_scenario):
        ledger = ledger_for(october_scenario, 2026, 10)

        assert ledger.carry_forward == 100
        assert [e["balance"] for e in ledger.stock_details] == [150, 180]
        assert ledger.closing_balance == 180
        assert october_scenario.current_stock == 180
        assert_running_total(ledger)

    def test_same_date_expiry_and_batch_increments(self, db_session, product):
        stock_service.record_receipt(product.id, 2026, 10, 10, date="2026-10-03", expire_date="2026-12-01", batch_number="B1")
        ledger = stock_service.record_receipt(
            product.id, 2026, 10, 15, date="2026-10-03", expire_date="2026-12-01", batch_number="B1"
        )

        assert len(ledger.stock_details) == 1
        assert ledger.stock_details[0]["received_stock"] == 25
        assert ledger.stock_details[0]["invord_stock"] == 25

    def test_different_batch_is_new_entry(self, db_session, product):
        stock_service.record_receipt(product.id, 2026, 10, 10, date="2026-10-03", batch_number="B1")
        ledger = stock_service.record_receipt(product.id, 2026, 10, 15, date="2026-10-03", batch_number="B2")

        assert len(ledger.stock_details) == 2
        assert ledger.closing_balance == 25

    def test_backdated_entry_inserted_chronologically(self, db_session, product):
        stock_service.record_receipt(product.id, 2026, 10, 10, date="2026-10-20")
        ledger = stock_service.record_receipt(product.id, 2026, 10, 5, date="2026-10-04")

        assert [e["date"] for e in ledger.stock_details] == ["2026-10-04", "2026-10-20"]
        assert [e["balance"] for e in ledger.stock_details] == [5, 15]
        assert_running_total(ledger)

    def test_earlier_month_receipt_rolls_forward(self, october_scenario, db_session):
        stock_service.record_receipt(october_scenario.id, 2026, 9, 20, date="2026-09-20")

        september = ledger_for(october_scenario, 2026, 9)
        october = ledger_for(october_scenario, 2026, 10)
        assert september.closing_balance == 120
        assert october.carry_forward == 120
        assert october.closing_balance == 200
        assert october_scenario.current_stock == 200
        assert_running_total(october)

    def test_unknown_product(self, db_session):
        with pytest.raises(NotFoundError):
            stock_service.record_receipt(99999, 2026, 10, 5, date="2026-10-01")

    @pytest.mark.parametrize("quantity", [0, -5, "abc", 2.5, None])
    def test_quantity_must_be_positive_integer(self, db_session, product, quantity):
        with pytest.raises(ValidationError):
            stock_service.record_receipt(product.id, 2026, 10, quantity, date="2026-10-01")

    def test_date_must_fall_in_month(self, db_session, product):
        with pytest.raises(ValidationError):
            stock_service.record_receipt(product.id, 2026, 10, 5, date="2026-11-01")

    @pytest.mark.parametrize("year,month", [(2026, 0), (2026, 13), (1999, 5), ("2026", 5)])
    def test_period_validated(self, db_session, product, year, month):
        with pytest.raises(ValidationError):
            stock_service.record_receipt(product.id, year, month, 5)


class TestLedgerChain:
    def test_get_or_create_opens_from_previous_closing(self, october_scenario):
        november = stock_service.get_or_create_ledger(october_scenario.id, 2026, 11)

        assert november.carry_forward == 180
        assert november.closing_balance == 180
        assert november.stock_details == []
        assert stock_service.get_or_create_ledger(october_scenario.id, 2026, 11).id == november.id

    def test_gap_month_uses_newest_earlier_ledger(self, october_scenario):
        ledger = stock_service.record_receipt(october_scenario.id, 2027, 2, 1, date="2027-02-01")
        assert ledger.carry_forward == 180

    def test_get_ledger_does_not_create(self, october_scenario, db_session):
        view = stock_service.get_ledger(october_scenario.id, 2026, 12)

        assert view["carry_forward"] == 180
        assert view["closing_balance"] == 180
        assert view["month_name"] == "December"
        assert db_session.query(MonthlyStock).filter_by(product_id=october_scenario.id, year=2026, month=12).count() == 0

    def test_roll_forward_repairs_chain(self, october_scenario, db_session):
        october = ledger_for(october_scenario, 2026, 10)
        october.carry_forward = 0
        db_session.commit()

        assert stock_service.roll_forward(october_scenario.id, 2026, 9) == 180
        assert ledger_for(october_scenario, 2026, 10).carry_forward == 100

    def test_rollover_month(self, october_scenario, other_product):
        assert stock_service.rollover_month(2026, 11) == 1
        assert stock_service.rollover_month(2026, 11) == 0
        assert ledger_for(october_scenario, 2026, 11).carry_forward == 180


def lot(ledger: MonthlyStock, on: str) -> dict:
    return next(e for e in ledger.stock_details if e.get("type") == "ADDED" and e["date"] == on)


class TestSales:
    def test_fifo_across_months(self, october_scenario):
        ledger = stock_service.record_sale(october_scenario.id, 2026, 10, 120, date="2026-10-03")

        sale = ledger.stock_details[-1]
        assert sale["type"] == "SOLD"
        assert sale["quantity"] == 120
        assert [(p["year"], p["month"], p["quantity"]) for p in sale["fifo_details"]] == [(2026, 9, 100), (2026, 10, 20)]
        assert [e["balance"] for e in ledger.stock_details] == [150, 180, 60]
        assert ledger.totals()["sold_stock"] == 120
        assert october_scenario.current_stock == 60
        assert_running_total(ledger)

        september = ledger_for(october_scenario, 2026, 9)
        assert september.closing_balance == 100
        assert lot(september, "2026-09-15")["invord_stock"] == 0
        assert lot(september, "2026-09-15")["sold_stock"] == 100
        assert lot(ledger, "2026-10-01")["invord_stock"] == 30
        assert_running_total(september)

    def test_insufficient_stock_rejected_whole(self, october_scenario):
        with pytest.raises(ValidationError) as exc:
            stock_service.record_sale(october_scenario.id, 2026, 10, 181, date="2026-10-03")
        assert exc.value.fields == {"quantity": "only 180 available"}

        ledger = ledger_for(october_scenario, 2026, 10)
        assert ledger.closing_balance == 180
        assert all(e.get("type") == "ADDED" for e in ledger.stock_details)
        assert lot(ledger_for(october_scenario, 2026, 9), "2026-09-15")["invord_stock"] == 100

    def test_lot_expiring_on_sale_day_not_used(self, october_scenario):
        with pytest.raises(ValidationError):
            stock_service.record_sale(october_scenario.id, 2026, 10, 151, date="2026-10-05")

        ledger = stock_service.record_sale(october_scenario.id, 2026, 10, 150, date="2026-10-05")
        assert lot(ledger, "2026-10-02")["invord_stock"] == 30

    def test_lot_received_after_sale_not_used(self, db_session, product):
        stock_service.record_receipt(product.id, 2026, 10, 10, date="2026-10-20")
        with pytest.raises(ValidationError):
            stock_service.record_sale(product.id, 2026, 10, 5, date="2026-10-10")

    def test_sale_opens_new_month(self, october_scenario):
        ledger = stock_service.record_sale(october_scenario.id, 2026, 11, 30, date="2026-11-02")

        assert ledger.carry_forward == 180
        assert ledger.closing_balance == 150
        assert october_scenario.current_stock == 150
        assert_running_total(ledger)

    def test_rejected_sale_leaves_no_ledger(self, october_scenario, db_session):
        with pytest.raises(ValidationError):
            stock_service.record_sale(october_scenario.id, 2026, 11, 500, date="2026-11-02")
        assert db_session.query(MonthlyStock).filter_by(product_id=october_scenario.id, year=2026, month=11).count() == 0

    def test_backdated_sale_rechains(self, october_scenario):
        stock_service.record_sale(october_scenario.id, 2026, 9, 10, date="2026-09-20")

        october = ledger_for(october_scenario, 2026, 10)
        assert ledger_for(october_scenario, 2026, 9).closing_balance == 90
        assert october.carry_forward == 90
        assert october.closing_balance == 170
        assert_running_total(october)

    def test_quantity_validated(self, october_scenario):
        with pytest.raises(ValidationError):
            stock_service.record_sale(october_scenario.id, 2026, 10, 0, date="2026-10-03")


class TestDamage:
    def test_named_lot(self, october_scenario):
        october = ledger_for(october_scenario, 2026, 10)
        lot_b = lot(october, "2026-10-02")

        ledger = stock_service.record_damage(
            october_scenario.id, 2026, 10, 5, date="2026-10-03", entry_id=lot_b["_id"], notes="dropped tray"
        )

        damage = ledger.stock_details[-1]
        assert damage["type"] == "DAMAGED"
        assert damage["fifo_details"][0]["entry_id"] == lot_b["_id"]
        assert lot(ledger, "2026-10-02")["invord_stock"] == 25
        assert lot(ledger, "2026-10-02")["damaged_stock"] == 5
        assert ledger.totals()["damaged_stock"] == 5
        assert ledger.closing_balance == 175
        assert_running_total(ledger)

    def test_named_lot_over_its_stock(self, october_scenario):
        lot_b = lot(ledger_for(october_scenario, 2026, 10), "2026-10-02")
        with pytest.raises(ValidationError):
            stock_service.record_damage(october_scenario.id, 2026, 10, 31, date="2026-10-03", entry_id=lot_b["_id"])

    def test_unknown_lot(self, october_scenario):
        with pytest.raises(NotFoundError):
            stock_service.record_damage(october_scenario.id, 2026, 10, 1, date="2026-10-03", entry_id="missing")

    def test_without_lot_uses_oldest(self, october_scenario):
        stock_service.record_damage(october_scenario.id, 2026, 10, 4, date="2026-10-03")

        september = ledger_for(october_scenario, 2026, 9)
        assert lot(september, "2026-09-15")["damaged_stock"] == 4
        assert october_scenario.current_stock == 176


class TestEntryEdits:
    def test_raise_lot_quantity(self, october_scenario):
        lot_a = lot(ledger_for(october_scenario, 2026, 10), "2026-10-01")

        ledger = stock_service.update_entry(october_scenario.id, 2026, 10, lot_a["_id"], {"quantity": 60})

        assert lot(ledger, "2026-10-01")["received_stock"] == 60
        assert lot(ledger, "2026-10-01")["invord_stock"] == 60
        assert ledger.closing_balance == 190
        assert october_scenario.current_stock == 190
        assert_running_total(ledger)

    def test_quantity_floor_is_units_used(self, october_scenario):
        stock_service.record_sale(october_scenario.id, 2026, 10, 120, date="2026-10-03")
        lot_a = lot(ledger_for(october_scenario, 2026, 10), "2026-10-01")

        with pytest.raises(ValidationError):
            stock_service.update_entry(october_scenario.id, 2026, 10, lot_a["_id"], {"quantity": 19})

        ledger = stock_service.update_entry(october_scenario.id, 2026, 10, lot_a["_id"], {"quantity": 20})
        assert lot(ledger, "2026-10-01")["invord_stock"] == 0
        assert_running_total(ledger)

    def test_used_lot_keeps_date(self, october_scenario):
        stock_service.record_sale(october_scenario.id, 2026, 10, 120, date="2026-10-03")
        lot_a = lot(ledger_for(october_scenario, 2026, 10), "2026-10-01")

        with pytest.raises(ValidationError):
            stock_service.update_entry(october_scenario.id, 2026, 10, lot_a["_id"], {"date": "2026-10-10"})

    def test_redate_unused_lot_reorders(self, october_scenario):
        lot_a = lot(ledger_for(october_scenario, 2026, 10), "2026-10-01")

        ledger = stock_service.update_entry(october_scenario.id, 2026, 10, lot_a["_id"], {"date": "2026-10-09"})

        assert [e["date"] for e in ledger.stock_details] == ["2026-10-02", "2026-10-09"]
        assert_running_total(ledger)

    def test_new_expire_date_used_by_sweep(self, october_scenario):
        lot_a = lot(ledger_for(october_scenario, 2026, 10), "2026-10-01")
        stock_service.update_entry(
            october_scenario.id, 2026, 10, lot_a["_id"], {"expire_date": "2026-10-04", "batch_number": "A-1"}
        )

        report = stock_service.sweep_expired_stock(date(2026, 10, 4))

        assert report.quantity_expired == 50
        assert lot(ledger_for(october_scenario, 2026, 10), "2026-10-01")["batch_number"] == "A-1"

    def test_sale_accepts_notes_only(self, october_scenario):
        ledger = stock_service.record_sale(october_scenario.id, 2026, 10, 5, date="2026-10-03")
        sale_id = ledger.stock_details[-1]["_id"]

        with pytest.raises(ValidationError) as exc:
            stock_service.update_entry(october_scenario.id, 2026, 10, sale_id, {"quantity": 6})
        assert exc.value.fields == {"quantity": "not editable"}

        ledger = stock_service.update_entry(october_scenario.id, 2026, 10, sale_id, {"notes": "matinee"})
        assert ledger.stock_details[-1]["notes"] == "matinee"

    def test_update_unknown_entry(self, october_scenario):
        with pytest.raises(NotFoundError):
            stock_service.update_entry(october_scenario.id, 2026, 10, "missing", {"notes": "x"})
        with pytest.raises(NotFoundError):
            stock_service.update_entry(october_scenario.id, 2026, 12, "missing", {"notes": "x"})

    def test_delete_sale_returns_units(self, october_scenario):
        ledger = stock_service.record_sale(october_scenario.id, 2026, 10, 120, date="2026-10-03")
        sale_id = ledger.stock_details[-1]["_id"]

        ledger = stock_service.delete_entry(october_scenario.id, 2026, 10, sale_id)

        assert len(ledger.stock_details) == 2
        assert ledger.closing_balance == 180
        assert lot(ledger, "2026-10-01")["invord_stock"] == 50
        september = ledger_for(october_scenario, 2026, 9)
        assert lot(september, "2026-09-15")["invord_stock"] == 100
        assert lot(september, "2026-09-15")["sold_stock"] == 0
        assert october_scenario.current_stock == 180
        assert_running_total(ledger)

    def test_delete_used_lot_rejected(self, october_scenario):
        stock_service.record_sale(october_scenario.id, 2026, 10, 120, date="2026-10-03")
        lot_a = lot(ledger_for(october_scenario, 2026, 10), "2026-10-01")

        with pytest.raises(ValidationError):
            stock_service.delete_entry(october_scenario.id, 2026, 10, lot_a["_id"])

    def test_delete_unused_lot(self, october_scenario):
        lot_b = lot(ledger_for(october_scenario, 2026, 10), "2026-10-02")

        ledger = stock_service.delete_entry(october_scenario.id, 2026, 10, lot_b["_id"])

        assert ledger.closing_balance == 150
        assert october_scenario.current_stock == 150
        assert_running_total(ledger)

    def test_delete_unknown_entry(self, october_scenario):
        with pytest.raises(NotFoundError):
            stock_service.delete_entry(october_scenario.id, 2026, 10, "missing")


class TestExpirySweep:
    def test_scenario_after_sweep(self, october_scenario):
        report = stock_service.sweep_expired_stock(date(2026, 10, 6))

        ledger = ledger_for(october_scenario, 2026, 10)
        entry_a, entry_b = ledger.stock_details
        assert entry_a["invord_stock"] == 50
        assert entry_a["expired_stock"] == 0
        assert entry_b["invord_stock"] == 0
        assert entry_b["expired_stock"] == 30
        assert entry_b["balance"] == 150
        assert ledger.closing_balance == 150
        assert october_scenario.current_stock == 150
        assert_running_total(ledger)

        assert report.entries_expired == 1
        assert report.quantity_expired == 30
        assert report.products_updated == 1
        assert report.ledgers_scanned == 2
        assert report.failures == []

    def test_idempotent(self, october_scenario):
        stock_service.sweep_expired_stock(date(2026, 10, 6))
        version = ledger_for(october_scenario, 2026, 10).version_id

        report = stock_service.sweep_expired_stock(date(2026, 10, 6))

        assert report.entries_expired == 0
        assert report.products_updated == 0
        ledger = ledger_for(october_scenario, 2026, 10)
        assert ledger.version_id == version
        assert ledger.closing_balance == 150

    def test_expiry_day_is_inclusive(self, october_scenario):
        assert stock_service.sweep_expired_stock("2026-10-04").entries_expired == 0
        assert stock_service.sweep_expired_stock("2026-10-05").entries_expired == 1

    def test_expiry_propagates_to_later_months(self, db_session, product):
        stock_service.record_receipt(product.id, 2026, 9, 40, date="2026-09-01", expire_date="2026-09-30")
        stock_service.record_receipt(product.id, 2026, 10, 10, date="2026-10-01")

        stock_service.sweep_expired_stock(date(2026, 10, 1))

        assert ledger_for(product, 2026, 9).closing_balance == 0
        october = ledger_for(product, 2026, 10)
        assert october.carry_forward == 0
        assert october.closing_balance == 10
        assert product.current_stock == 10

    def test_failure_isolated_per_product(self, db_session, product, other_product, monkeypatch):
        stock_service.record_receipt(product.id, 2026, 10, 5, date="2026-10-01", expire_date="2026-10-02")
        stock_service.record_receipt(other_product.id, 2026, 10, 7, date="2026-10-01", expire_date="2026-10-02")

        real_ledgers = stock_service._product_ledgers

        def flaky_ledgers(product_id):
            if product_id == product.id:
                raise RuntimeError("disk full")
            return real_ledgers(product_id)

        monkeypatch.setattr(stock_service, "_product_ledgers", flaky_ledgers)

        report = stock_service.sweep_expired_stock(date(2026, 10, 3))

        assert report.failures == [{"product_id": product.id, "error": "disk full"}]
        assert report.products_updated == 1
        assert report.quantity_expired == 7
        assert ledger_for(product, 2026, 10).closing_balance == 5
        assert ledger_for(other_product, 2026, 10).closing_balance == 0

    def test_report_to_dict(self, db_session):
        report = stock_service.sweep_expired_stock(date(2026, 10, 6))
        assert report.to_dict() == {
            "as_of": "2026-10-06",
            "ledgers_scanned": 0,
            "entries_expired": 0,
            "quantity_expired": 0,
            "products_updated": 0,
            "failures": [],
        }

    def test_only_unsold_remainder_expires(self, db_session, product):
        stock_service.record_receipt(product.id, 2026, 10, 30, date="2026-10-02", expire_date="2026-10-05")
        stock_service.record_sale(product.id, 2026, 10, 12, date="2026-10-03")

        report = stock_service.sweep_expired_stock(date(2026, 10, 6))

        ledger = ledger_for(product, 2026, 10)
        received = lot(ledger, "2026-10-02")
        assert received["sold_stock"] == 12
        assert received["expired_stock"] == 18
        assert received["invord_stock"] == 0
        assert report.quantity_expired == 18
        assert ledger.closing_balance == 0
        assert product.current_stock == 0
        assert_running_total(ledger)
