# Overview: Pytest coverage for role/permission resolution and its fail-closed behavior.

"""
Permission Resolution Tests

DESIGN PRINCIPLE UNDER TEST: fail closed, but loudly. Every broken
reference resolves to zero pages without raising, and logs a warning.
"""

import logging

import pytest

from theaterpos.models import TheaterUserArray
from theaterpos.services import permission_service
from theaterpos.services.role_service import roles, set_role_permission
from theaterpos.services.theater_user_service import theater_users

from conftest import user_payload


@pytest.fixture
def dashboard_only(db_session, theater):
    """Theater Admin role granting Dashboard but not Settings, and one user holding it."""
    role = roles.add_item(theater.id, {
        "name": "Theater Admin",
        "is_admin_role": True,
        "permissions": [
            {"page": "Dashboard", "has_access": True},
            {"page": "Settings", "has_access": False},
        ],
    })
    user = theater_users.add_item(theater.id, user_payload("manager", role=role["_id"]))
    return role, user


def _dangle_role(db_session, theater_id, role_id):
    doc = db_session.query(TheaterUserArray).filter_by(theater_id=theater_id).one()
    items = doc.copy_items()
    for item in items:
        item["role"] = role_id
    doc.set_items(items)
    db_session.commit()


class TestResolveUserAccess:
    def test_only_granted_pages(self, db_session, theater, dashboard_only):
        role, user = dashboard_only

        access = permission_service.resolve_user_access(theater.id, user["_id"])

        assert list(access.pages) == ["Dashboard"]
        assert access.role_id == role["_id"]
        assert access.role_name == "Theater Admin"
        assert access.user_type == "theater_admin"
        assert [p["page"] for p in access.permissions] == ["Dashboard"]

    def test_resolution_is_idempotent(self, db_session, theater, dashboard_only):
        _, user = dashboard_only
        first = permission_service.resolve_user_access(theater.id, user["_id"])
        second = permission_service.resolve_user_access(theater.id, user["_id"])
        assert first == second

    def test_dangling_role_fails_closed(self, db_session, theater, dashboard_only, caplog):
        _, user = dashboard_only
        _dangle_role(db_session, theater.id, "deleted-role-id")

        with caplog.at_level(logging.WARNING):
            access = permission_service.resolve_user_access(theater.id, user["_id"])

        assert access.pages == ()
        assert access.permissions == ()
        assert access.user_type == "theater_user"
        assert "deleted-role-id" in caplog.text

    def test_inactive_role_fails_closed(self, db_session, theater, dashboard_only):
        role, user = dashboard_only
        roles.update_item(theater.id, role["_id"], {"is_active": False})

        access = permission_service.resolve_user_access(theater.id, user["_id"])
        assert access.pages == ()
        assert access.user_type == "theater_user"

    def test_inactive_user_fails_closed(self, db_session, theater, dashboard_only):
        _, user = dashboard_only
        theater_users.update_item(theater.id, user["_id"], {"is_active": False})

        assert permission_service.resolve_user_access(theater.id, user["_id"]).pages == ()

    def test_unknown_user_and_theater(self, db_session, theater):
        assert permission_service.resolve_user_access(theater.id, "nobody").pages == ()
        assert permission_service.resolve_user_access(99999, "nobody").pages == ()

    def test_user_without_role(self, db_session, theater):
        user = theater_users.add_item(theater.id, user_payload("trainee"))
        assert permission_service.resolve_user_access(theater.id, user["_id"]).pages == ()

    def test_user_of_other_theater(self, db_session, theater, other_theater, dashboard_only):
        _, user = dashboard_only
        assert permission_service.resolve_user_access(other_theater.id, user["_id"]).pages == ()


class TestAdminClassification:
    def test_name_does_not_grant_admin(self, db_session, theater):
        role = roles.add_item(theater.id, {"name": "Admin Assistant", "permissions": [{"page": "Dashboard", "has_access": True}]})

        access = permission_service.resolve_role_access(theater.id, role["_id"])
        assert access.user_type == "theater_user"

    def test_flag_grants_admin(self, db_session, theater):
        role = roles.add_item(theater.id, {"name": "Owner", "is_admin_role": True})

        access = permission_service.resolve_role_access(theater.id, role["_id"])
        assert access.user_type == "theater_admin"

    def test_seeded_roles(self, db_session, admin_role, kiosk_role, seeded_theater):
        admin = permission_service.resolve_role_access(seeded_theater.id, admin_role["_id"])
        kiosk = permission_service.resolve_role_access(seeded_theater.id, kiosk_role["_id"])

        assert admin.user_type == "theater_admin"
        assert "Roles" in admin.pages
        assert kiosk.user_type == "theater_user"
        assert "Roles" not in kiosk.pages
        assert "KioskCart" in kiosk.pages


class TestHasPageAccess:
    def test_gate(self, db_session, theater, dashboard_only):
        _, user = dashboard_only
        assert permission_service.has_page_access(theater.id, user["_id"], "Dashboard") is True
        assert permission_service.has_page_access(theater.id, user["_id"], "Settings") is False
        assert permission_service.has_page_access(theater.id, user["_id"], "Reports") is False

    def test_revoking_takes_effect(self, db_session, theater, dashboard_only):
        role, user = dashboard_only
        set_role_permission(theater.id, role["_id"], "Dashboard", False)

        assert permission_service.has_page_access(theater.id, user["_id"], "Dashboard") is False
