"""
Tests for role-based menu visibility and progress arithmetic
"""
import pytest
from bbos.services.access_control import allowed_menu_items, can_access_route, MENU_ITEMS
from bbos.services.dashboard_service import calculate_progress


def test_admin_menu():
    paths = [item["path"] for item in allowed_menu_items("admin")]
    assert paths == [
        "/dashboard",
        "/admin/users",
        "/admin/departments",
        "/admin/data-banks",
        "/admin/forms",
        "/admin/schedules",
        "/reports",
    ]


def test_data_entry_menu():
    paths = [item["path"] for item in allowed_menu_items("data_entry_user")]
    assert paths == ["/dashboard", "/data-collection", "/admin/data-banks"]


def test_unknown_or_missing_role_sees_nothing():
    assert allowed_menu_items(None) == []
    assert allowed_menu_items("auditor") == []


def test_route_gate_matches_menu():
    assert can_access_route("admin", "/admin/schedules")
    assert not can_access_route("data_entry_user", "/admin/schedules")
    assert can_access_route("data_entry_user", "/data-collection")
    assert not can_access_route("admin", "/data-collection")
    assert can_access_route("data_entry_user", "/profile")
    assert not can_access_route(None, "/dashboard")


def test_every_menu_item_names_known_roles():
    for item in MENU_ITEMS:
        assert set(item["roles"]) <= {"admin", "data_entry_user"}


@pytest.mark.parametrize("current, baseline, reverse, expected", [
    (50, 100, False, 50.0),
    (150, 100, False, 100.0),
    (-5, 100, False, 0.0),
    (30, 40, True, 25.0),
    (60, 40, True, 0.0),
    (10, 0, False, 0.0),
    (None, 100, False, 0.0),
])
def test_calculate_progress(current, baseline, reverse, expected):
    assert calculate_progress(current, baseline, reverse) == pytest.approx(expected)
