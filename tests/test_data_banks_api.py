"""
Tests for the reference data store endpoints
"""
import pytest


@pytest.fixture
def data_bank(admin_client):
    response = admin_client.post("/api/data-banks", json={"name": "Cities", "description": "World cities"})
    assert response.status_code == 201, response.text
    return response.json()["data"]


def _entries(client, id_or_name, order_by="key"):
    response = client.get(f"/api/data-banks/{id_or_name}/entries", params={"order_by": order_by})
    assert response.status_code == 200, response.text
    return response.json()["data"]


def test_bulk_add_commas_and_newlines_are_equivalent(admin_client):
    first = admin_client.post("/api/data-banks", json={"name": "Comma"}).json()["data"]
    second = admin_client.post("/api/data-banks", json={"name": "Newline"}).json()["data"]

    admin_client.post(f"/api/data-banks/{first['id']}/entries/bulk", json={"raw_text": "New York, London, Tokyo"})
    admin_client.post(f"/api/data-banks/{second['id']}/entries/bulk", json={"raw_text": "New York\nLondon\nTokyo"})

    def pairs(set_id):
        return [(e["key"], e["value"]) for e in _entries(admin_client, set_id)]

    assert pairs(first["id"]) == pairs(second["id"])
    assert [key for key, _ in pairs(first["id"])] == ["london", "new_york", "tokyo"]


def test_bulk_add_skips_existing_keys_with_warning(admin_client, data_bank):
    url = f"/api/data-banks/{data_bank['id']}/entries/bulk"
    admin_client.post(url, json={"raw_text": "Lahore, Karachi"})

    response = admin_client.post(url, json={"raw_text": "Karachi, Quetta, quetta"})
    assert response.status_code == 201
    result = response.json()["data"]
    assert [e["key"] for e in result["entries"]] == ["quetta"]
    assert result["skipped"] == ["Karachi", "quetta"]
    assert result["warning"] == "Some entries already exist and were skipped"
    assert len(_entries(admin_client, data_bank["id"])) == 3


def test_bulk_add_with_no_values_is_rejected(admin_client, data_bank):
    response = admin_client.post(f"/api/data-banks/{data_bank['id']}/entries/bulk", json={"raw_text": " , \n "})
    assert response.status_code == 400
    assert response.json()["error"] == "validation_error"


def test_single_entry_key_generated_and_duplicate_rejected(admin_client, data_bank):
    url = f"/api/data-banks/{data_bank['id']}/entries"
    response = admin_client.post(url, json={"value": "Dera Bugti"})
    assert response.status_code == 201
    assert response.json()["data"]["key"] == "dera_bugti"

    response = admin_client.post(url, json={"value": "Dera  Bugti!"})
    assert response.status_code == 409
    assert response.json()["error"] == "duplicate_key"


def test_deactivated_entry_is_reactivated_on_re_add(admin_client, data_bank):
    url = f"/api/data-banks/{data_bank['id']}/entries"
    entry = admin_client.post(url, json={"value": "Sibi"}).json()["data"]
    assert admin_client.delete(f"{url}/{entry['id']}").status_code == 200
    assert _entries(admin_client, data_bank["id"]) == []

    response = admin_client.post(url, json={"value": "SIBI"})
    assert response.status_code == 201
    revived = response.json()["data"]
    assert revived["id"] == entry["id"]
    assert revived["value"] == "SIBI"
    assert [e["key"] for e in _entries(admin_client, data_bank["id"])] == ["sibi"]


def test_update_entry_regenerates_key_and_detects_collisions(admin_client, data_bank):
    url = f"/api/data-banks/{data_bank['id']}/entries"
    admin_client.post(url, json={"value": "Zhob"})
    entry = admin_client.post(url, json={"value": "Loralai"}).json()["data"]

    response = admin_client.put(f"{url}/{entry['id']}", json={"value": "Loralai City"})
    assert response.status_code == 200
    assert response.json()["data"]["key"] == "loralai_city"

    response = admin_client.put(f"{url}/{entry['id']}", json={"value": "zhob"})
    assert response.status_code == 409
    assert response.json()["message"] == "An option with this value already exists"


def test_entries_by_name_and_ordering(admin_client, data_bank):
    url = f"/api/data-banks/{data_bank['id']}/entries"
    admin_client.post(url, json={"value": "Beta", "key": "a_key"})
    admin_client.post(url, json={"value": "Alpha", "key": "z_key"})

    by_key = [e["value"] for e in _entries(admin_client, "Cities", order_by="key")]
    by_value = [e["value"] for e in _entries(admin_client, "Cities", order_by="value")]
    assert by_key == ["Beta", "Alpha"]
    assert by_value == ["Alpha", "Beta"]


def test_unknown_set_name_is_not_found(admin_client):
    response = admin_client.get("/api/data-banks/Nowhere/entries")
    assert response.status_code == 404
    assert response.json()["error"] == "not_found"


def test_options_degrade_to_empty_for_missing_set(entry_client):
    response = entry_client.get("/api/data-banks/by-name/Missing/options")
    assert response.status_code == 200
    assert response.json()["data"] == {"name": "Missing", "options": [], "available": False}


def test_options_follow_active_entries(admin_client, data_bank):
    url = f"/api/data-banks/{data_bank['id']}/entries"
    admin_client.post(url, json={"value": "Turbat"})
    gone = admin_client.post(url, json={"value": "Gwadar"}).json()["data"]
    admin_client.delete(f"{url}/{gone['id']}")

    options = admin_client.get("/api/data-banks/by-name/Cities/options").json()["data"]
    assert options["options"] == [{"key": "turbat", "value": "Turbat"}]
    assert options["available"] is True


def test_duplicate_active_set_name_rejected_until_deactivated(admin_client, data_bank):
    response = admin_client.post("/api/data-banks", json={"name": "Cities"})
    assert response.status_code == 409

    assert admin_client.delete(f"/api/data-banks/{data_bank['id']}").status_code == 200
    response = admin_client.post("/api/data-banks", json={"name": "Cities"})
    assert response.status_code == 201


def test_list_sets_reports_entry_counts(admin_client, data_bank):
    admin_client.post(f"/api/data-banks/{data_bank['id']}/entries/bulk", json={"raw_text": "a, b, c"})
    sets = admin_client.get("/api/data-banks").json()["data"]
    assert sets[0]["name"] == "Cities"
    assert sets[0]["entry_count"] == 3


def test_data_bank_requires_login(client):
    response = client.get("/api/data-banks")
    assert response.status_code == 401
    assert response.json()["error"] == "not_authenticated"


def test_only_admins_delete_sets(entry_client, data_bank):
    response = entry_client.delete(f"/api/data-banks/{data_bank['id']}")
    assert response.status_code == 403


def test_entry_can_be_added_by_set_name(admin_client, data_bank):
    response = admin_client.post("/api/data-banks/Cities/entries", json={"value": "Kalat"})
    assert response.status_code == 201
    assert response.json()["data"]["data_bank_id"] == data_bank["id"]
