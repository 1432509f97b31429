"""
Tests for session authentication, accounts and departments
"""
from bbos.core.config import settings


def test_temp_signup_bootstraps_first_admin_only(client, monkeypatch):
    monkeypatch.setattr(settings, "ALLOW_TEMP_SIGNUP", False)
    response = client.post("/api/auth/temp-signup", json={"email": "Root@Example.org", "password": "secret123"})
    assert response.status_code == 201
    data = response.json()["data"]
    assert data["profile"]["role"] == "admin"
    assert data["user"]["email"] == "root@example.org"
    assert client.get("/api/auth/user").status_code == 200

    response = client.post("/api/auth/temp-signup", json={"email": "second@example.org", "password": "secret123"})
    assert response.status_code == 403


def test_temp_signup_allowed_when_enabled(client, admin_user, monkeypatch):
    monkeypatch.setattr(settings, "ALLOW_TEMP_SIGNUP", True)
    response = client.post("/api/auth/temp-signup", json={"email": "second@example.org", "password": "secret123"})
    assert response.status_code == 201


def test_register_creates_data_entry_user(client):
    response = client.post(
        "/api/auth/register",
        json={"email": "new@example.org", "password": "secret123", "full_name": "New Clerk"},
    )
    assert response.status_code == 201
    data = response.json()["data"]
    assert data["profile"]["role"] == "data_entry_user"
    assert [item["path"] for item in data["menu"]] == ["/dashboard", "/data-collection", "/admin/data-banks"]


def test_register_rejects_short_password_and_duplicates(client, entry_user):
    response = client.post("/api/auth/register", json={"email": "short@example.org", "password": "123"})
    assert response.status_code == 400

    response = client.post("/api/auth/register", json={"email": "CLERK@example.org", "password": "secret123"})
    assert response.status_code == 409


def test_login_logout_cycle(client, entry_user):
    assert client.get("/api/auth/user").status_code == 401

    bad = client.post("/api/auth/login", json={"email": entry_user["email"], "password": "wrong-pass"})
    assert bad.status_code == 401
    assert bad.json()["error"] == "not_authenticated"

    response = client.post("/api/auth/login", json={"email": "Clerk@Example.org", "password": "secret123"})
    assert response.status_code == 200
    assert settings.SESSION_COOKIE_NAME in response.cookies

    user = client.get("/api/auth/user").json()["data"]
    assert user["user"]["id"] == entry_user["id"]
    assert user["profile"]["department_id"] == entry_user["department_id"]

    assert client.post("/api/auth/logout").status_code == 200
    assert client.get("/api/auth/user").status_code == 401


def test_menu_depends_on_role(admin_client, entry_client):
    admin_paths = [item["path"] for item in admin_client.get("/api/auth/menu").json()["data"]]
    entry_paths = [item["path"] for item in entry_client.get("/api/auth/menu").json()["data"]]
    assert "/admin/users" in admin_paths
    assert "/data-collection" not in admin_paths
    assert entry_paths == ["/dashboard", "/data-collection", "/admin/data-banks"]


def test_admin_creates_user_in_department(admin_client, department):
    response = admin_client.post(
        "/api/auth/create-user",
        json={
            "email": "nurse@example.org",
            "password": "secret123",
            "role": "data_entry_user",
            "department_id": department["id"],
        },
    )
    assert response.status_code == 201
    profile = response.json()["data"]["profile"]
    assert profile["department_id"] == department["id"]

    listed = admin_client.get("/api/profiles", params={"department_id": department["id"]}).json()["data"]
    assert [p["email"] for p in listed] == ["nurse@example.org"]


def test_create_user_rejects_unknown_role(admin_client):
    response = admin_client.post(
        "/api/auth/create-user",
        json={"email": "boss@example.org", "password": "secret123", "role": "superuser"},
    )
    assert response.status_code == 400


def test_admin_moves_user_between_departments(admin_client, entry_user, other_department):
    response = admin_client.patch(f"/api/profiles/{entry_user['id']}", json={"department_id": other_department["id"]})
    assert response.status_code == 200
    assert response.json()["data"]["department_id"] == other_department["id"]


def test_department_crud(admin_client):
    created = admin_client.post("/api/departments", json={"name": "Finance"})
    assert created.status_code == 201
    department = created.json()["data"]

    assert admin_client.post("/api/departments", json={"name": "Finance"}).status_code == 409

    renamed = admin_client.patch(f"/api/departments/{department['id']}", json={"name": "Finance & Planning"})
    assert renamed.json()["data"]["name"] == "Finance & Planning"

    assert admin_client.delete(f"/api/departments/{department['id']}").status_code == 200
    names = [d["name"] for d in admin_client.get("/api/departments").json()["data"]]
    assert "Finance & Planning" not in names


def test_dashboard_overview(admin_client, collecting_schedule):
    overview = admin_client.get("/api/dashboard").json()["data"]
    assert overview["stats"]["total_schedules"] == 1
    assert overview["stats"]["schedules_by_status"]["collection"] == 1
    assert overview["stats"]["forms"] == 1
    assert [s["name"] for s in overview["active_collections"]] == ["Q1 2025"]
    assert overview["schedules"][0]["badge"]["label"] == "Collection"


def test_health_and_root(client):
    assert client.get("/health").json() == {"status": "healthy"}
    assert client.get("/").json()["message"] == settings.APP_NAME


def test_create_user_rejects_deactivated_department(admin_client, other_department):
    admin_client.delete(f"/api/departments/{other_department['id']}")
    response = admin_client.post(
        "/api/auth/create-user",
        json={"email": "late@example.org", "password": "secret123", "department_id": other_department["id"]},
    )
    assert response.status_code == 400


def test_register_replaces_existing_session(admin_client):
    response = admin_client.post("/api/auth/register", json={"email": "fresh@example.org", "password": "secret123"})
    assert response.status_code == 201

    current = admin_client.get("/api/auth/user").json()["data"]
    assert current["user"]["email"] == "fresh@example.org"
    assert current["profile"]["role"] == "data_entry_user"
    assert admin_client.get("/api/profiles").status_code == 403


def test_temp_signup_replaces_existing_session(entry_client, monkeypatch):
    monkeypatch.setattr(settings, "ALLOW_TEMP_SIGNUP", True)
    response = entry_client.post("/api/auth/temp-signup", json={"email": "boot@example.org", "password": "secret123"})
    assert response.status_code == 201
    assert entry_client.get("/api/auth/user").json()["data"]["user"]["email"] == "boot@example.org"
