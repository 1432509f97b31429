"""
Tests for the HTTP client: envelope unwrapping, error mapping and session bootstrap
"""
import time
import httpx
import pytest
from fastapi.testclient import TestClient
from bbos.client import BBoSClient
from bbos.core.exceptions import (
    AuthenticationError,
    DuplicateAttachmentError,
    DuplicateKeyError,
    StatePreconditionError,
    ValidationError,
)
from bbos.main import app


@pytest.fixture
def api(admin_user):
    client = BBoSClient(client=TestClient(app))
    client.login(admin_user["email"], "secret123")
    yield client
    client.close()


def _mock_client(handler) -> BBoSClient:
    return BBoSClient(client=httpx.Client(base_url="http://bbos.test", transport=httpx.MockTransport(handler)))


def test_bootstrap_returns_none_when_logged_out():
    client = BBoSClient(client=TestClient(app))
    assert client.bootstrap_session() is None


def test_bootstrap_returns_session_when_logged_in(api, admin_user):
    session = api.bootstrap_session()
    assert session["user"]["id"] == admin_user["id"]
    assert session["profile"]["role"] == "admin"


@pytest.mark.parametrize("error", [httpx.ReadTimeout, httpx.ConnectError])
def test_bootstrap_treats_network_failures_as_logged_out(error):
    def handler(request):
        raise error("unreachable", request=request)

    assert _mock_client(handler).bootstrap_session(timeout=0.1) is None


@pytest.mark.parametrize("status", [500, 502, 503, 403])
def test_bootstrap_treats_error_status_as_logged_out(status):
    def handler(request):
        return httpx.Response(status, json={"success": False, "error": "internal_error", "message": "Bad gateway"})

    assert _mock_client(handler).bootstrap_session() is None


def test_bootstrap_treats_unreadable_body_as_logged_out():
    def handler(request):
        return httpx.Response(200, content=b"<html>maintenance</html>")

    assert _mock_client(handler).bootstrap_session() is None


def test_bootstrap_gives_up_on_slow_body():
    def trickle():
        for _ in range(10):
            time.sleep(0.05)
            yield b" "
        yield b'{"success": true, "data": {"user": {"id": 1}}}'

    def handler(request):
        return httpx.Response(200, content=trickle())

    started = time.monotonic()
    assert _mock_client(handler).bootstrap_session(timeout=0.1) is None
    assert time.monotonic() - started < 0.5


def test_error_code_maps_to_exception_class():
    def handler(request):
        return httpx.Response(
            409,
            json={"success": False, "error": "duplicate_attachment", "message": "Form is already attached to this schedule"},
        )

    with pytest.raises(DuplicateAttachmentError, match="already attached"):
        _mock_client(handler).attach_form(1, 2)


def test_unknown_code_falls_back_to_status():
    def handler(request):
        return httpx.Response(422, json={"detail": [{"msg": "field required"}]})

    with pytest.raises(ValidationError, match="field required"):
        _mock_client(handler).list_forms()


def test_end_to_end_collection(api, department):
    data_bank = api.create_data_bank("Districts")
    result = api.bulk_add_entries(data_bank["id"], "Quetta\nGwadar")
    assert len(result["entries"]) == 2
    assert [o["key"] for o in api.get_options("Districts")["options"]] == ["gwadar", "quetta"]

    form = api.create_form("Hospital Beds", department["id"])
    defined = api.define_fields(form["id"], [
        {"field_name": "district", "field_label": "District", "field_type": "select",
         "reference_data_name": "Districts", "is_primary_column": True},
        {"field_name": "beds", "field_label": "Beds", "field_type": "number"},
    ], expected_version=form["version"])
    assert defined["version"] == form["version"] + 1

    schedule = api.create_schedule("Beds 2025", "2025-01-01", "2025-12-31")
    api.attach_form(schedule["id"], form["id"])
    with pytest.raises(DuplicateAttachmentError):
        api.attach_form(schedule["id"], form["id"])

    with pytest.raises(StatePreconditionError):
        api.submit(schedule["id"], form["id"], {"district": "quetta", "beds": 5})
    api.change_status(schedule["id"], "collection")

    submission = api.submit(schedule["id"], form["id"], {"district": "quetta", "beds": "5"})
    assert submission["data"]["beds"] == 5
    with pytest.raises(DuplicateKeyError):
        api.submit(schedule["id"], form["id"], {"district": "quetta", "beds": 6})
    with pytest.raises(ValidationError, match="unknown option"):
        api.submit(schedule["id"], form["id"], {"district": "turbat"})

    assert api.has_submitted(schedule["id"], form["id"])
    exported = api.export_submissions(schedule["id"], form["id"])
    assert exported.decode("utf-8").splitlines()[0] == "submission_id,submitted_by,submitted_at,district,beds"

    api.logout()
    with pytest.raises(AuthenticationError):
        api.current_user()
