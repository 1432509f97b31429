"""
Tests for submissions, completions, progress and export
"""
import csv
import io
from bbos.core.config import settings


def _submit(client, schedule_id, form_id, data):
    return client.post("/api/form-submissions", json={"schedule_id": schedule_id, "form_id": form_id, "data": data})


def _schedule_form_id(client, schedule_id):
    return client.get(f"/api/schedules/{schedule_id}/forms").json()["data"][0]["id"]


def test_submission_rejected_while_schedule_open(admin_client, entry_client, schedule, form_with_fields):
    admin_client.post(f"/api/schedules/{schedule['id']}/forms", json={"form_id": form_with_fields["id"]})
    response = _submit(entry_client, schedule["id"], form_with_fields["id"], {"facility": "BHU Pishin"})
    assert response.status_code == 409
    assert response.json()["error"] == "invalid_state"


def test_submission_rejected_after_publish(admin_client, entry_client, collecting_schedule, form_with_fields):
    admin_client.post(f"/api/schedules/{collecting_schedule['id']}/status", json={"status": "published"})
    response = _submit(entry_client, collecting_schedule["id"], form_with_fields["id"], {"facility": "BHU Pishin"})
    assert response.status_code == 409


def test_aggregate_is_computed_on_submit(entry_client, collecting_schedule, form_with_fields):
    response = _submit(
        entry_client,
        collecting_schedule["id"],
        form_with_fields["id"],
        {"facility": "BHU Pishin", "male": "3", "female": 4, "total": 100},
    )
    assert response.status_code == 201, response.text
    data = response.json()["data"]["data"]
    assert data["male"] == 3
    assert data["total"] == 7


def test_missing_required_field_rejected(entry_client, collecting_schedule, form_with_fields):
    response = _submit(entry_client, collecting_schedule["id"], form_with_fields["id"], {"male": 1})
    assert response.status_code == 400
    assert response.json()["message"] == "Missing required fields: Facility"


def test_unknown_field_rejected(entry_client, collecting_schedule, form_with_fields):
    response = _submit(entry_client, collecting_schedule["id"], form_with_fields["id"], {"facility": "A", "beds": 3})
    assert response.status_code == 400


def test_form_not_in_schedule_rejected(admin_client, entry_client, collecting_schedule, department):
    loose = admin_client.post("/api/forms", json={"name": "Loose", "department_id": department["id"]}).json()["data"]
    response = _submit(entry_client, collecting_schedule["id"], loose["id"], {"facility": "A"})
    assert response.status_code == 400
    assert response.json()["message"] == "Form is not part of this schedule"


def test_duplicate_submission_rejected(entry_client, collecting_schedule, form_with_fields):
    payload = {"facility": "BHU Pishin", "male": 1}
    assert _submit(entry_client, collecting_schedule["id"], form_with_fields["id"], payload).status_code == 201

    response = _submit(entry_client, collecting_schedule["id"], form_with_fields["id"], payload)
    assert response.status_code == 409
    assert response.json()["error"] == "duplicate_key"

    listed = entry_client.get("/api/form-submissions", params={"schedule_id": collecting_schedule["id"]}).json()["data"]
    assert len(listed) == 1


def test_rows_with_distinct_primary_values_are_separate(admin_client, entry_client, department):
    form = admin_client.post("/api/forms", json={"name": "Districts", "department_id": department["id"]}).json()["data"]
    admin_client.put(f"/api/forms/{form['id']}/fields", json={"fields": [
        {"field_name": "district", "field_label": "District", "field_type": "text", "is_primary_column": True},
        {"field_name": "beds", "field_label": "Beds", "field_type": "number"},
    ]})
    schedule = admin_client.post(
        "/api/schedules", json={"name": "Beds 2025", "start_date": "2025-01-01", "end_date": "2025-12-31"}
    ).json()["data"]
    admin_client.post(f"/api/schedules/{schedule['id']}/forms", json={"form_id": form["id"]})
    admin_client.post(f"/api/schedules/{schedule['id']}/status", json={"status": "collection"})

    assert _submit(entry_client, schedule["id"], form["id"], {"district": "Quetta", "beds": 10}).status_code == 201
    assert _submit(entry_client, schedule["id"], form["id"], {"district": "Gwadar", "beds": 4}).status_code == 201
    response = _submit(entry_client, schedule["id"], form["id"], {"district": "Quetta", "beds": 11})
    assert response.status_code == 409
    assert "Quetta" in response.json()["message"]


def test_other_department_cannot_submit(admin_client, collecting_schedule, form_with_fields, other_department, db_session):
    from bbos.services.auth_service import AuthService
    AuthService(db_session).create_user("principal@example.org", "secret123", "Principal", "data_entry_user", other_department["id"])
    admin_client.post("/api/auth/logout")
    admin_client.post("/api/auth/login", json={"email": "principal@example.org", "password": "secret123"})

    response = _submit(admin_client, collecting_schedule["id"], form_with_fields["id"], {"facility": "School"})
    assert response.status_code == 403


def test_check_endpoint_reports_own_submission(entry_client, collecting_schedule, form_with_fields):
    params = {"schedule_id": collecting_schedule["id"], "form_id": form_with_fields["id"]}
    assert entry_client.get("/api/form-submissions/check", params=params).json()["data"] == {"submitted": False}
    _submit(entry_client, collecting_schedule["id"], form_with_fields["id"], {"facility": "A"})
    assert entry_client.get("/api/form-submissions/check", params=params).json()["data"] == {"submitted": True}


def test_submission_blocks_schedule_delete_and_detach(admin_client, entry_client, collecting_schedule, form_with_fields):
    _submit(entry_client, collecting_schedule["id"], form_with_fields["id"], {"facility": "A"})
    schedule_form_id = _schedule_form_id(admin_client, collecting_schedule["id"])

    assert admin_client.delete(f"/api/schedules/{collecting_schedule['id']}").status_code == 409
    assert admin_client.delete(f"/api/schedule-forms/{schedule_form_id}").status_code == 409


def test_completion_flow_and_progress(admin_client, entry_client, entry_user, collecting_schedule, form_with_fields):
    schedule_id = collecting_schedule["id"]
    schedule_form_id = _schedule_form_id(admin_client, schedule_id)

    status = admin_client.get(f"/api/schedules/{schedule_id}/completion-status").json()["data"]
    assert status["can_publish"] is False
    assert status["form_statuses"][0]["submitters"] == 0

    _submit(entry_client, schedule_id, form_with_fields["id"], {"facility": "A"})
    progress = entry_client.get(f"/api/dashboard/schedules/{schedule_id}/progress").json()["data"]
    assert progress["summary"] == "0 of 1 forms completed"

    response = entry_client.post(f"/api/schedule-forms/{schedule_form_id}/completions")
    assert response.status_code == 201
    again = entry_client.post(f"/api/schedule-forms/{schedule_form_id}/completions")
    assert again.json()["data"]["id"] == response.json()["data"]["id"]

    status = admin_client.get(f"/api/schedules/{schedule_id}/completion-status").json()["data"]
    assert status["can_publish"] is True
    assert status["form_statuses"][0]["completed_by"] == 1

    progress = entry_client.get(f"/api/dashboard/schedules/{schedule_id}/progress").json()["data"]
    assert progress["summary"] == "1 of 1 forms completed"
    assert progress["percent"] == 100.0

    completions = admin_client.get(
        f"/api/schedule-forms/{schedule_form_id}/completions", params={"user_id": entry_user["id"]}
    ).json()["data"]
    assert len(completions) == 1

    assert entry_client.delete(f"/api/schedule-forms/{schedule_form_id}/completions").status_code == 200
    status = admin_client.get(f"/api/schedules/{schedule_id}/completion-status").json()["data"]
    assert status["can_publish"] is False


def test_submission_counts(admin_client, entry_client, collecting_schedule, form_with_fields):
    _submit(entry_client, collecting_schedule["id"], form_with_fields["id"], {"facility": "A"})
    counts = admin_client.get(f"/api/schedules/{collecting_schedule['id']}/submission-counts").json()["data"]
    assert counts == [{"form_id": form_with_fields["id"], "form_name": "Facility Census", "submissions": 1, "submitters": 1}]


def test_csv_export(admin_client, entry_client, collecting_schedule, form_with_fields):
    _submit(entry_client, collecting_schedule["id"], form_with_fields["id"], {"facility": "BHU Pishin", "male": 3, "female": 4})

    response = admin_client.get(
        "/api/form-submissions/export",
        params={"schedule_id": collecting_schedule["id"], "form_id": form_with_fields["id"], "format": "csv"},
    )
    assert response.status_code == 200
    assert response.headers["content-type"].startswith("text/csv")
    assert "Q1_2025-Facility_Census.csv" in response.headers["content-disposition"]

    rows = list(csv.DictReader(io.StringIO(response.text)))
    assert list(rows[0].keys()) == ["submission_id", "submitted_by", "submitted_at", "facility", "male", "female", "total"]
    assert rows[0]["submitted_by"] == "clerk@example.org"
    assert rows[0]["facility"] == "BHU Pishin"
    assert rows[0]["total"] == "7"


def test_excel_export(admin_client, entry_client, collecting_schedule, form_with_fields):
    _submit(entry_client, collecting_schedule["id"], form_with_fields["id"], {"facility": "A"})
    response = admin_client.get(
        "/api/form-submissions/export",
        params={"schedule_id": collecting_schedule["id"], "form_id": form_with_fields["id"], "format": "excel"},
    )
    assert response.status_code == 200
    assert response.content[:2] == b"PK"


def test_unknown_export_format(admin_client, collecting_schedule, form_with_fields):
    response = admin_client.get(
        "/api/form-submissions/export",
        params={"schedule_id": collecting_schedule["id"], "form_id": form_with_fields["id"], "format": "pdf"},
    )
    assert response.status_code == 400


def test_publish_waits_for_completions_when_required(admin_client, entry_client, collecting_schedule, form_with_fields, monkeypatch):
    monkeypatch.setattr(settings, "REQUIRE_COMPLETION_TO_PUBLISH", True)
    schedule_id = collecting_schedule["id"]
    publish = {"status": "published"}

    response = admin_client.post(f"/api/schedules/{schedule_id}/status", json=publish)
    assert response.status_code == 409
    assert response.json()["error"] == "invalid_state"

    _submit(entry_client, schedule_id, form_with_fields["id"], {"facility": "A"})
    assert admin_client.post(f"/api/schedules/{schedule_id}/status", json=publish).status_code == 409

    entry_client.post(f"/api/schedule-forms/{_schedule_form_id(admin_client, schedule_id)}/completions")
    response = admin_client.post(f"/api/schedules/{schedule_id}/status", json=publish)
    assert response.status_code == 200
    assert response.json()["data"]["status"] == "published"


def test_export_rejected_above_row_limit(admin_client, entry_client, collecting_schedule, form_with_fields, monkeypatch):
    _submit(entry_client, collecting_schedule["id"], form_with_fields["id"], {"facility": "A"})
    params = {"schedule_id": collecting_schedule["id"], "form_id": form_with_fields["id"], "format": "csv"}

    monkeypatch.setattr(settings, "EXPORT_MAX_ROWS", 1)
    assert admin_client.get("/api/form-submissions/export", params=params).status_code == 200

    monkeypatch.setattr(settings, "EXPORT_MAX_ROWS", 0)
    response = admin_client.get("/api/form-submissions/export", params=params)
    assert response.status_code == 400
    assert response.json()["message"] == "Export has 1 rows; the limit is 0"
