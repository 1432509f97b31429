"""
Typed HTTP client for the data collection API

Wraps an httpx.Client (a FastAPI TestClient works too), unwraps the
{"success", "data", "message"} envelope and raises the same exception
classes the server raised, matched by error code.
"""
import json
import logging
import time
from datetime import date
from typing import Any, Dict, List, Optional, Union
import httpx
from pydantic import BaseModel
from bbos.core.config import settings
from bbos.core.exceptions import (
    ERRORS_BY_CODE,
    DataCollectionError,
    ValidationError,
    AuthenticationError,
    PermissionDeniedError,
    NotFoundError,
    DuplicateKeyError,
)

logger = logging.getLogger(__name__)

_ERRORS_BY_STATUS = {
    400: ValidationError,
    401: AuthenticationError,
    403: PermissionDeniedError,
    404: NotFoundError,
    409: DuplicateKeyError,
    422: ValidationError,
}


def _jsonable(value: Any) -> Any:
    if isinstance(value, BaseModel):
        return value.model_dump()
    if isinstance(value, date):
        return value.isoformat()
    if isinstance(value, dict):
        return {k: _jsonable(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [_jsonable(v) for v in value]
    return value


def _drop_none(payload: Dict[str, Any]) -> Dict[str, Any]:
    return {k: v for k, v in payload.items() if v is not None}


class BBoSClient:
    """Client for every endpoint group of the API"""

    def __init__(
        self,
        base_url: str = "http://localhost:8000",
        client: Optional[httpx.Client] = None,
        api_prefix: str = settings.API_PREFIX,
        timeout: float = 30.0
    ):
        self.http = client if client is not None else httpx.Client(base_url=base_url, timeout=timeout)
        self.api_prefix = api_prefix.rstrip("/")

    def close(self) -> None:
        self.http.close()

    def __enter__(self) -> "BBoSClient":
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()

    # Transport

    def _url(self, path: str) -> str:
        return f"{self.api_prefix}{path}"

    def _raise_for_error(self, response: httpx.Response) -> None:
        if response.is_success:
            return
        try:
            payload = response.json()
        except ValueError:
            payload = {}
        if not isinstance(payload, dict):
            payload = {}

        code = payload.get("error")
        message = payload.get("message") or payload.get("detail") or response.text
        if isinstance(message, list):
            # FastAPI request validation details
            message = "; ".join(str(item.get("msg", item)) for item in message if isinstance(item, dict)) or str(message)

        error_cls = ERRORS_BY_CODE.get(code) or _ERRORS_BY_STATUS.get(response.status_code, DataCollectionError)
        raise error_cls(str(message))

    def _request(self, method: str, path: str, **kwargs) -> httpx.Response:
        if "json" in kwargs:
            kwargs["json"] = _jsonable(kwargs["json"])
        if "params" in kwargs and kwargs["params"] is not None:
            kwargs["params"] = _drop_none(kwargs["params"])
        response = self.http.request(method, self._url(path), **kwargs)
        self._raise_for_error(response)
        return response

    def _data(self, method: str, path: str, **kwargs) -> Any:
        return self._request(method, path, **kwargs).json().get("data")

    # Authentication

    def bootstrap_session(self, timeout: float = settings.AUTH_BOOTSTRAP_TIMEOUT) -> Optional[Dict[str, Any]]:
        """
        Resolve the current session without hanging

        Returns the signed-in user payload, or None when logged out. Any
        failure (no answer within timeout seconds in total, a network error,
        an error status or an unreadable body) also counts as logged out.
        """
        deadline = time.monotonic() + timeout
        try:
            with self.http.stream("GET", self._url("/auth/user"), timeout=httpx.Timeout(timeout)) as response:
                if response.status_code == 401:
                    return None
                if not response.is_success:
                    logger.warning(f"Session check returned {response.status_code}; treating as logged out")
                    return None
                chunks = []
                for chunk in response.iter_bytes():
                    if time.monotonic() > deadline:
                        logger.warning(f"Session check exceeded {timeout}s; treating as logged out")
                        return None
                    chunks.append(chunk)
        except httpx.TimeoutException:
            logger.warning(f"Session check timed out after {timeout}s; treating as logged out")
            return None
        except httpx.HTTPError as e:
            logger.warning(f"Session check failed: {str(e)}; treating as logged out")
            return None

        try:
            payload = json.loads(b"".join(chunks))
        except ValueError:
            logger.warning("Session check returned an unreadable body; treating as logged out")
            return None
        if not isinstance(payload, dict):
            return None
        return payload.get("data")

    def login(self, email: str, password: str) -> Dict[str, Any]:
        return self._data("POST", "/auth/login", json={"email": email, "password": password})

    def logout(self) -> None:
        self._request("POST", "/auth/logout")

    def register(self, email: str, password: str, full_name: Optional[str] = None) -> Dict[str, Any]:
        return self._data("POST", "/auth/register", json={"email": email, "password": password, "full_name": full_name})

    def temp_signup(self, email: str, password: str, full_name: Optional[str] = None) -> Dict[str, Any]:
        return self._data("POST", "/auth/temp-signup", json={"email": email, "password": password, "full_name": full_name})

    def current_user(self) -> Dict[str, Any]:
        return self._data("GET", "/auth/user")

    def menu(self) -> List[Dict[str, str]]:
        return self._data("GET", "/auth/menu")

    def create_user(
        self,
        email: str,
        password: str,
        full_name: Optional[str] = None,
        role: Optional[str] = None,
        department_id: Optional[int] = None
    ) -> Dict[str, Any]:
        payload = {
            "email": email,
            "password": password,
            "full_name": full_name,
            "role": role,
            "department_id": department_id,
        }
        return self._data("POST", "/auth/create-user", json=payload)

    # Profiles

    def list_profiles(self, department_id: Optional[int] = None) -> List[Dict[str, Any]]:
        return self._data("GET", "/profiles", params={"department_id": department_id})

    def get_profile(self, profile_id: int) -> Dict[str, Any]:
        return self._data("GET", f"/profiles/{profile_id}")

    def update_profile(self, profile_id: int, **changes) -> Dict[str, Any]:
        return self._data("PATCH", f"/profiles/{profile_id}", json=changes)

    # Departments

    def list_departments(self) -> List[Dict[str, Any]]:
        return self._data("GET", "/departments")

    def create_department(self, name: str, description: Optional[str] = None) -> Dict[str, Any]:
        return self._data("POST", "/departments", json={"name": name, "description": description})

    def update_department(self, department_id: int, **changes) -> Dict[str, Any]:
        return self._data("PATCH", f"/departments/{department_id}", json=changes)

    def delete_department(self, department_id: int) -> None:
        self._request("DELETE", f"/departments/{department_id}")

    # Reference data

    def list_data_banks(self) -> List[Dict[str, Any]]:
        return self._data("GET", "/data-banks")

    def create_data_bank(
        self,
        name: str,
        description: Optional[str] = None,
        department_id: Optional[int] = None
    ) -> Dict[str, Any]:
        payload = {"name": name, "description": description, "department_id": department_id}
        return self._data("POST", "/data-banks", json=payload)

    def get_data_bank(self, set_id: int) -> Dict[str, Any]:
        return self._data("GET", f"/data-banks/{set_id}")

    def update_data_bank(self, set_id: int, **changes) -> Dict[str, Any]:
        return self._data("PUT", f"/data-banks/{set_id}", json=changes)

    def delete_data_bank(self, set_id: int) -> None:
        self._request("DELETE", f"/data-banks/{set_id}")

    def list_entries(self, id_or_name: Union[int, str], order_by: str = "key") -> List[Dict[str, Any]]:
        return self._data("GET", f"/data-banks/{id_or_name}/entries", params={"order_by": order_by})

    def add_entry(
        self,
        set_id: Union[int, str],
        value: str,
        key: Optional[str] = None,
        metadata: Optional[Dict[str, Any]] = None
    ) -> Dict[str, Any]:
        payload = _drop_none({"value": value, "key": key, "metadata": metadata})
        return self._data("POST", f"/data-banks/{set_id}/entries", json=payload)

    def bulk_add_entries(self, set_id: int, raw_text: str) -> Dict[str, Any]:
        return self._data("POST", f"/data-banks/{set_id}/entries/bulk", json={"raw_text": raw_text})

    def update_entry(self, set_id: int, entry_id: int, **changes) -> Dict[str, Any]:
        return self._data("PUT", f"/data-banks/{set_id}/entries/{entry_id}", json=changes)

    def delete_entry(self, set_id: int, entry_id: int) -> None:
        self._request("DELETE", f"/data-banks/{set_id}/entries/{entry_id}")

    def get_options(self, name: str) -> Dict[str, Any]:
        return self._data("GET", f"/data-banks/by-name/{name}/options")

    # Forms

    def list_forms(self, category: Optional[str] = None) -> List[Dict[str, Any]]:
        return self._data("GET", "/forms", params={"category": category})

    def create_form(
        self,
        name: str,
        department_id: Optional[int],
        description: Optional[str] = None,
        category: str = "bbos"
    ) -> Dict[str, Any]:
        payload = {"name": name, "department_id": department_id, "description": description, "category": category}
        return self._data("POST", "/forms", json=payload)

    def get_form(self, form_id: int) -> Dict[str, Any]:
        return self._data("GET", f"/forms/{form_id}")

    def update_form(self, form_id: int, **changes) -> Dict[str, Any]:
        return self._data("PUT", f"/forms/{form_id}", json=changes)

    def delete_form(self, form_id: int) -> None:
        self._request("DELETE", f"/forms/{form_id}")

    def get_fields(self, form_id: int) -> Dict[str, Any]:
        return self._data("GET", f"/forms/{form_id}/fields")

    def define_fields(self, form_id: int, fields: List[Any], expected_version: Optional[int] = None) -> Dict[str, Any]:
        payload = {"fields": fields, "expected_version": expected_version}
        return self._data("PUT", f"/forms/{form_id}/fields", json=payload)

    def render_form(self, form_id: int) -> Dict[str, Any]:
        return self._data("GET", f"/forms/{form_id}/render")

    def download_template(self, form_id: int) -> str:
        return self._request("GET", f"/forms/{form_id}/template").text

    def list_field_groups(self, form_id: int) -> List[Dict[str, Any]]:
        return self._data("GET", f"/forms/{form_id}/groups")

    def create_field_groups(self, form_id: int, groups: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
        return self._data("POST", f"/forms/{form_id}/groups", json={"groups": groups})

    def update_field_group(self, group_id: int, **changes) -> Dict[str, Any]:
        return self._data("PATCH", f"/field-groups/{group_id}", json=changes)

    def delete_field_group(self, group_id: int) -> None:
        self._request("DELETE", f"/field-groups/{group_id}")

    # Schedules

    def list_schedules(self, status: Optional[str] = None) -> List[Dict[str, Any]]:
        return self._data("GET", "/schedules", params={"status": status})

    def create_schedule(
        self,
        name: str,
        start_date: Union[str, date],
        end_date: Union[str, date],
        description: Optional[str] = None,
        department_id: Optional[int] = None
    ) -> Dict[str, Any]:
        payload = {
            "name": name,
            "start_date": start_date,
            "end_date": end_date,
            "description": description,
            "department_id": department_id,
        }
        return self._data("POST", "/schedules", json=payload)

    def get_schedule(self, schedule_id: int) -> Dict[str, Any]:
        return self._data("GET", f"/schedules/{schedule_id}")

    def update_schedule(self, schedule_id: int, **changes) -> Dict[str, Any]:
        return self._data("PUT", f"/schedules/{schedule_id}", json=changes)

    def delete_schedule(self, schedule_id: int) -> None:
        self._request("DELETE", f"/schedules/{schedule_id}")

    def change_status(self, schedule_id: int, status: str) -> Dict[str, Any]:
        return self._data("POST", f"/schedules/{schedule_id}/status", json={"status": status})

    def list_schedule_forms(self, schedule_id: int) -> List[Dict[str, Any]]:
        return self._data("GET", f"/schedules/{schedule_id}/forms")

    def attach_form(
        self,
        schedule_id: int,
        form_id: int,
        is_required: bool = True,
        due_date: Union[str, date, None] = None
    ) -> Dict[str, Any]:
        payload = {"form_id": form_id, "is_required": is_required, "due_date": due_date}
        return self._data("POST", f"/schedules/{schedule_id}/forms", json=payload)

    def list_available_forms(self, schedule_id: int) -> List[Dict[str, Any]]:
        return self._data("GET", f"/schedules/{schedule_id}/available-forms")

    def completion_status(self, schedule_id: int) -> Dict[str, Any]:
        return self._data("GET", f"/schedules/{schedule_id}/completion-status")

    def submission_counts(self, schedule_id: int) -> List[Dict[str, Any]]:
        return self._data("GET", f"/schedules/{schedule_id}/submission-counts")

    # Schedule forms and completions

    def list_all_schedule_forms(self) -> List[Dict[str, Any]]:
        return self._data("GET", "/schedule-forms")

    def update_schedule_form(self, schedule_form_id: int, **changes) -> Dict[str, Any]:
        return self._data("PUT", f"/schedule-forms/{schedule_form_id}", json=changes)

    def detach_form(self, schedule_form_id: int) -> None:
        self._request("DELETE", f"/schedule-forms/{schedule_form_id}")

    def list_completions(self, schedule_form_id: int, user_id: Optional[int] = None) -> List[Dict[str, Any]]:
        return self._data("GET", f"/schedule-forms/{schedule_form_id}/completions", params={"user_id": user_id})

    def mark_complete(self, schedule_form_id: int) -> Dict[str, Any]:
        return self._data("POST", f"/schedule-forms/{schedule_form_id}/completions")

    def unmark_complete(self, schedule_form_id: int) -> None:
        self._request("DELETE", f"/schedule-forms/{schedule_form_id}/completions")

    # Submissions

    def list_submissions(
        self,
        schedule_id: Optional[int] = None,
        form_id: Optional[int] = None,
        user_id: Optional[int] = None
    ) -> List[Dict[str, Any]]:
        params = {"schedule_id": schedule_id, "form_id": form_id, "user_id": user_id}
        return self._data("GET", "/form-submissions", params=params)

    def submit(self, schedule_id: int, form_id: int, data: Dict[str, Any]) -> Dict[str, Any]:
        payload = {"schedule_id": schedule_id, "form_id": form_id, "data": data}
        return self._data("POST", "/form-submissions", json=payload)

    def get_submission(self, submission_id: int) -> Dict[str, Any]:
        return self._data("GET", f"/form-submissions/{submission_id}")

    def has_submitted(self, schedule_id: int, form_id: int) -> bool:
        data = self._data("GET", "/form-submissions/check", params={"schedule_id": schedule_id, "form_id": form_id})
        return bool(data["submitted"])

    def export_submissions(self, schedule_id: int, form_id: int, fmt: str = "csv") -> bytes:
        params = {"schedule_id": schedule_id, "form_id": form_id, "format": fmt}
        return self._request("GET", "/form-submissions/export", params=params).content

    # Dashboard

    def dashboard(self) -> Dict[str, Any]:
        return self._data("GET", "/dashboard")

    def alerts(self) -> List[Dict[str, Any]]:
        return self._data("GET", "/dashboard/alerts")

    def schedule_progress(self, schedule_id: int) -> Dict[str, Any]:
        return self._data("GET", f"/dashboard/schedules/{schedule_id}/progress")
