"""
Form management API endpoints
"""
from fastapi import APIRouter, Depends, Query
from fastapi.responses import Response
from sqlalchemy.orm import Session
from typing import Optional, Dict, Any
from bbos.core.database import get_db
from bbos.api.deps import get_current_user, require_admin
from bbos.api.v1.schemas import (
    FormRequest,
    FormUpdateRequest,
    DefineFieldsRequest,
    FieldGroupsRequest,
    FieldGroupUpdateRequest,
)
from bbos.models.profile import Profile
from bbos.services.form_service import FormService
from bbos.utils.api_decorators import handle_api_errors

router = APIRouter()
field_groups_router = APIRouter()


@router.get("", response_model=Dict[str, Any])
@handle_api_errors
async def get_forms(
    category: Optional[str] = Query(None, description="bbos or sdg"),
    user: Profile = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    """Active forms; data entry users only see their department's forms"""
    return {"success": True, "data": FormService(db).list_forms(user, category=category)}


@router.post("", response_model=Dict[str, Any], status_code=201)
@handle_api_errors
async def create_form(
    request: FormRequest,
    admin: Profile = Depends(require_admin),
    db: Session = Depends(get_db)
):
    form = FormService(db).create_form(
        name=request.name,
        department_id=request.department_id,
        description=request.description,
        category=request.category,
        created_by=admin.id,
    )
    return {
        "success": True,
        "data": form,
        "message": "Form created successfully"
    }


@router.get("/{form_id}", response_model=Dict[str, Any])
@handle_api_errors
async def get_form(
    form_id: int,
    user: Profile = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    return {"success": True, "data": FormService(db).get_form(form_id)}


@router.put("/{form_id}", response_model=Dict[str, Any])
@handle_api_errors
async def update_form(
    form_id: int,
    request: FormUpdateRequest,
    admin: Profile = Depends(require_admin),
    db: Session = Depends(get_db)
):
    form = FormService(db).update_form(form_id, **request.model_dump(exclude_unset=True))
    return {
        "success": True,
        "data": form,
        "message": "Form updated successfully"
    }


@router.delete("/{form_id}", response_model=Dict[str, Any])
@handle_api_errors
async def delete_form(
    form_id: int,
    admin: Profile = Depends(require_admin),
    db: Session = Depends(get_db)
):
    FormService(db).deactivate_form(form_id)
    return {"success": True, "data": None, "message": "Form deleted successfully"}


@router.get("/{form_id}/fields", response_model=Dict[str, Any])
@handle_api_errors
async def get_fields(
    form_id: int,
    user: Profile = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    service = FormService(db)
    form = service.get_form_model(form_id)
    return {"success": True, "data": {"version": form.version, "fields": service.get_fields(form_id)}}


@router.put("/{form_id}/fields", response_model=Dict[str, Any])
@handle_api_errors
async def define_fields(
    form_id: int,
    request: DefineFieldsRequest,
    admin: Profile = Depends(require_admin),
    db: Session = Depends(get_db)
):
    """
    Replace the whole field set of a form

    Args:
        form_id: Form ID
        request: Ordered field tree and the version the editor loaded
        admin: Signed-in administrator
        db: Database session

    Returns:
        New version and stored fields
    """
    result = FormService(db).define_fields(form_id, request.fields, request.expected_version)
    return {
        "success": True,
        "data": result,
        "message": "Form fields saved successfully"
    }


@router.get("/{form_id}/render", response_model=Dict[str, Any])
@handle_api_errors
async def render_form(
    form_id: int,
    user: Profile = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    return {"success": True, "data": FormService(db).render_form(form_id)}


@router.get("/{form_id}/template")
@handle_api_errors
async def download_template(
    form_id: int,
    user: Profile = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    """CSV file whose header lists every input column of the form"""
    service = FormService(db)
    form = service.get_form_model(form_id)
    content = service.build_csv_template(form_id)
    filename = f"{form.name}-template.csv".replace(" ", "_")
    return Response(
        content=content,
        media_type="text/csv",
        headers={"Content-Disposition": f'attachment; filename="{filename}"'}
    )


@router.get("/{form_id}/groups", response_model=Dict[str, Any])
@handle_api_errors
async def get_field_groups(
    form_id: int,
    user: Profile = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    return {"success": True, "data": FormService(db).list_field_groups(form_id)}


@router.post("/{form_id}/groups", response_model=Dict[str, Any], status_code=201)
@handle_api_errors
async def create_field_groups(
    form_id: int,
    request: FieldGroupsRequest,
    admin: Profile = Depends(require_admin),
    db: Session = Depends(get_db)
):
    groups = [g.model_dump(exclude_none=True) for g in request.groups]
    created = FormService(db).create_field_groups(form_id, groups)
    return {
        "success": True,
        "data": created,
        "message": f"Created {len(created)} field groups"
    }


@field_groups_router.patch("/{group_id}", response_model=Dict[str, Any])
@handle_api_errors
async def update_field_group(
    group_id: int,
    request: FieldGroupUpdateRequest,
    admin: Profile = Depends(require_admin),
    db: Session = Depends(get_db)
):
    group = FormService(db).update_field_group(group_id, **request.model_dump(exclude_unset=True))
    return {"success": True, "data": group, "message": "Field group updated successfully"}


@field_groups_router.delete("/{group_id}", response_model=Dict[str, Any])
@handle_api_errors
async def delete_field_group(
    group_id: int,
    admin: Profile = Depends(require_admin),
    db: Session = Depends(get_db)
):
    FormService(db).delete_field_group(group_id)
    return {"success": True, "data": None, "message": "Field group deleted successfully"}
