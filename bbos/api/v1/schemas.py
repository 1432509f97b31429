"""
API request schemas
"""
from datetime import date
from pydantic import BaseModel, Field
from typing import Any, Dict, List, Optional
from bbos.services.form_definition import FieldSpec


class LoginRequest(BaseModel):
    email: str
    password: str


class RegisterRequest(BaseModel):
    email: str
    password: str
    full_name: Optional[str] = None


class CreateUserRequest(BaseModel):
    email: str
    password: str
    full_name: Optional[str] = None
    role: Optional[str] = None  # admin, data_entry_user
    department_id: Optional[int] = None


class ProfileUpdateRequest(BaseModel):
    full_name: Optional[str] = None
    role: Optional[str] = None
    department_id: Optional[int] = None
    password: Optional[str] = None


class DepartmentRequest(BaseModel):
    name: str = Field(..., min_length=1, max_length=255)
    description: Optional[str] = None


class DepartmentUpdateRequest(BaseModel):
    name: Optional[str] = Field(None, min_length=1, max_length=255)
    description: Optional[str] = None


class DataBankRequest(BaseModel):
    name: str = Field(..., min_length=1, max_length=255)
    description: Optional[str] = None
    department_id: Optional[int] = None


class DataBankUpdateRequest(BaseModel):
    name: Optional[str] = Field(None, min_length=1, max_length=255)
    description: Optional[str] = None
    department_id: Optional[int] = None


class EntryRequest(BaseModel):
    value: str = Field(..., min_length=1, max_length=500)
    key: Optional[str] = None  # Generated from value when omitted
    metadata: Optional[Dict[str, Any]] = None


class EntryUpdateRequest(BaseModel):
    value: Optional[str] = Field(None, min_length=1, max_length=500)
    key: Optional[str] = None
    metadata: Optional[Dict[str, Any]] = None


class BulkEntriesRequest(BaseModel):
    raw_text: str = Field(..., description="Values separated by commas or new lines")


class FormRequest(BaseModel):
    name: str = Field(..., min_length=1, max_length=255)
    description: Optional[str] = None
    department_id: Optional[int] = None
    category: str = "bbos"  # bbos, sdg


class FormUpdateRequest(BaseModel):
    name: Optional[str] = Field(None, min_length=1, max_length=255)
    description: Optional[str] = None
    department_id: Optional[int] = None
    category: Optional[str] = None


class DefineFieldsRequest(BaseModel):
    fields: List[FieldSpec]
    expected_version: Optional[int] = Field(None, description="Form version the editor loaded")


class FieldGroupRequest(BaseModel):
    group_name: str
    group_label: str
    parent_group_id: Optional[int] = None
    group_type: str = "section"  # section, category, sub_category
    display_order: Optional[int] = None
    is_repeatable: bool = False


class FieldGroupsRequest(BaseModel):
    groups: List[FieldGroupRequest]


class FieldGroupUpdateRequest(BaseModel):
    group_name: Optional[str] = None
    group_label: Optional[str] = None
    parent_group_id: Optional[int] = None
    group_type: Optional[str] = None
    display_order: Optional[int] = None
    is_repeatable: Optional[bool] = None


class ScheduleRequest(BaseModel):
    name: str = Field(..., min_length=1, max_length=255)
    description: Optional[str] = None
    start_date: date
    end_date: date
    department_id: Optional[int] = None


class ScheduleUpdateRequest(BaseModel):
    name: Optional[str] = Field(None, min_length=1, max_length=255)
    description: Optional[str] = None
    start_date: Optional[date] = None
    end_date: Optional[date] = None
    department_id: Optional[int] = None
    status: Optional[str] = None


class StatusRequest(BaseModel):
    status: str  # collection, published, cancelled


class AttachFormRequest(BaseModel):
    form_id: int
    is_required: bool = True
    due_date: Optional[date] = None


class ScheduleFormRequest(AttachFormRequest):
    schedule_id: int


class ScheduleFormUpdateRequest(BaseModel):
    is_required: Optional[bool] = None
    due_date: Optional[date] = None


class SubmissionRequest(BaseModel):
    schedule_id: int
    form_id: int
    data: Dict[str, Any]
