# Overview: Pytest coverage for theater page access entries.

import pytest

from theaterpos.permissions import PAGE_DEFINITIONS
from theaterpos.services import page_access_service
from theaterpos.services.page_access_service import page_access
from theaterpos.validation import DuplicateKeyError, ValidationError


def _page(key="Reports", **extra):
    data = {"page": key, "page_name": key, "route": f"/theater/:theaterId/{key.lower()}", "category": "reports"}
    data.update(extra)
    return data


class TestPageAccess:
    def test_seed_is_idempotent(self, db_session, theater):
        assert page_access_service.seed_page_access(theater.id) == len(PAGE_DEFINITIONS)
        assert page_access_service.seed_page_access(theater.id) == 0

        listing = page_access.list_items(theater.id, limit=100)
        assert listing["pagination"]["total_items"] == len(PAGE_DEFINITIONS)

    def test_seeded_kiosk_pages_hidden_from_menu(self, db_session, seeded_theater):
        kiosk = page_access.list_items(seeded_theater.id, filters={"category": "kiosk"}, limit=100)["items"]
        assert kiosk
        assert all(item["show_in_menu"] is False for item in kiosk)

    def test_add_same_page_key_updates_in_place(self, db_session, theater):
        first = page_access.add_item(theater.id, _page(description="v1"))
        second = page_access.add_item(theater.id, _page(description="v2", menu_order=4))

        assert second["_id"] == first["_id"]
        items = page_access.list_items(theater.id)["items"]
        assert len(items) == 1
        assert items[0]["description"] == "v2"
        assert items[0]["menu_order"] == 4

    def test_rekey_to_existing_page_rejected(self, db_session, theater):
        page_access.add_item(theater.id, _page("Reports"))
        orders = page_access.add_item(theater.id, _page("Orders"))

        with pytest.raises(DuplicateKeyError):
            page_access.update_item(theater.id, orders["_id"], {"page": "Reports"})

    def test_category_must_be_known(self, db_session, theater):
        with pytest.raises(ValidationError):
            page_access.add_item(theater.id, _page(category="marketing"))

    def test_toggle(self, db_session, theater):
        item = page_access.add_item(theater.id, _page())

        disabled = page_access_service.toggle_page(theater.id, item["_id"], False)
        assert disabled["is_active"] is False
        assert page_access.get_item(theater.id, item["_id"])["is_active"] is False

        enabled = page_access_service.toggle_page(theater.id, item["_id"], True)
        assert enabled["is_active"] is True

    def test_toggle_requires_boolean(self, db_session, theater):
        item = page_access.add_item(theater.id, _page())
        with pytest.raises(ValidationError):
            page_access_service.toggle_page(theater.id, item["_id"], "off")

    def test_sorted_by_menu_order(self, db_session, theater):
        page_access.add_item(theater.id, _page("Reports", menu_order=5))
        page_access.add_item(theater.id, _page("Orders", menu_order=1))

        assert [i["page"] for i in page_access.list_items(theater.id)["items"]] == ["Orders", "Reports"]
