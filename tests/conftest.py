"""
Shared fixtures: in-memory SQLite database and signed-in API clients
"""
import os

os.environ["DATABASE_URL"] = "sqlite://"
os.environ["AUTO_CREATE_TABLES"] = "false"
os.environ["SECRET_KEY"] = "test-secret-key"
os.environ["LOG_LEVEL"] = "WARNING"

import pytest
from datetime import date
from fastapi.testclient import TestClient
from sqlalchemy.orm import sessionmaker
import bbos.models  # noqa: F401
from bbos.core.database import Base, create_db_engine, get_db
from bbos.main import app
from bbos.models.profile import ROLE_ADMIN, ROLE_DATA_ENTRY_USER
from bbos.services.auth_service import AuthService
from bbos.services.department_service import DepartmentService

PASSWORD = "secret123"


@pytest.fixture
def engine():
    engine = create_db_engine("sqlite://")
    Base.metadata.create_all(bind=engine)
    yield engine
    Base.metadata.drop_all(bind=engine)
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)


@pytest.fixture
def db_session(session_factory):
    session = session_factory()
    yield session
    session.close()


@pytest.fixture(autouse=True)
def override_get_db(session_factory):
    def _get_db():
        db = session_factory()
        try:
            yield db
        finally:
            db.close()

    app.dependency_overrides[get_db] = _get_db
    yield
    app.dependency_overrides.clear()


@pytest.fixture
def client():
    with TestClient(app) as test_client:
        yield test_client


@pytest.fixture
def department(db_session):
    return DepartmentService(db_session).create_department("Health", "Health statistics")


@pytest.fixture
def other_department(db_session):
    return DepartmentService(db_session).create_department("Education")


def _login(email: str) -> TestClient:
    test_client = TestClient(app)
    response = test_client.post("/api/auth/login", json={"email": email, "password": PASSWORD})
    assert response.status_code == 200, response.text
    return test_client


@pytest.fixture
def admin_user(db_session):
    return AuthService(db_session).create_user("admin@example.org", PASSWORD, "Admin", ROLE_ADMIN)


@pytest.fixture
def entry_user(db_session, department):
    return AuthService(db_session).create_user(
        "clerk@example.org", PASSWORD, "Clerk", ROLE_DATA_ENTRY_USER, department["id"]
    )


@pytest.fixture
def admin_client(admin_user):
    test_client = _login(admin_user["email"])
    yield test_client
    test_client.close()


@pytest.fixture
def entry_client(entry_user):
    test_client = _login(entry_user["email"])
    yield test_client
    test_client.close()


@pytest.fixture
def simple_fields():
    """A single-row form: facility name, two counts and their total"""
    return [
        {"field_name": "facility", "field_label": "Facility", "field_type": "text", "is_required": True},
        {"field_name": "male", "field_label": "Male", "field_type": "number"},
        {"field_name": "female", "field_label": "Female", "field_type": "number"},
        {
            "field_name": "total",
            "field_label": "Total",
            "field_type": "aggregate",
            "aggregate_fields": ["male", "female"],
        },
    ]


@pytest.fixture
def form_with_fields(admin_client, department, simple_fields):
    response = admin_client.post("/api/forms", json={"name": "Facility Census", "department_id": department["id"]})
    assert response.status_code == 201, response.text
    form = response.json()["data"]
    response = admin_client.put(f"/api/forms/{form['id']}/fields", json={"fields": simple_fields})
    assert response.status_code == 200, response.text
    return form


@pytest.fixture
def schedule(admin_client):
    response = admin_client.post(
        "/api/schedules",
        json={"name": "Q1 2025", "start_date": "2025-01-01", "end_date": "2025-03-31"},
    )
    assert response.status_code == 201, response.text
    return response.json()["data"]


@pytest.fixture
def collecting_schedule(admin_client, schedule, form_with_fields):
    response = admin_client.post(f"/api/schedules/{schedule['id']}/forms", json={"form_id": form_with_fields["id"]})
    assert response.status_code == 201, response.text
    response = admin_client.post(f"/api/schedules/{schedule['id']}/status", json={"status": "collection"})
    assert response.status_code == 200, response.text
    return response.json()["data"]


@pytest.fixture
def today():
    return date(2025, 3, 1)
