"""
Department API endpoints
"""
from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session
from typing import Dict, Any
from bbos.core.database import get_db
from bbos.api.deps import get_current_user, require_admin
from bbos.api.v1.schemas import DepartmentRequest, DepartmentUpdateRequest
from bbos.models.profile import Profile
from bbos.services.department_service import DepartmentService
from bbos.utils.api_decorators import handle_api_errors

router = APIRouter()


@router.get("", response_model=Dict[str, Any])
@handle_api_errors
async def get_departments(
    user: Profile = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    return {"success": True, "data": DepartmentService(db).list_departments()}


@router.post("", response_model=Dict[str, Any], status_code=201)
@handle_api_errors
async def create_department(
    request: DepartmentRequest,
    admin: Profile = Depends(require_admin),
    db: Session = Depends(get_db)
):
    department = DepartmentService(db).create_department(request.name, request.description)
    return {
        "success": True,
        "data": department,
        "message": "Department created successfully"
    }


@router.patch("/{department_id}", response_model=Dict[str, Any])
@handle_api_errors
async def update_department(
    department_id: int,
    request: DepartmentUpdateRequest,
    admin: Profile = Depends(require_admin),
    db: Session = Depends(get_db)
):
    department = DepartmentService(db).update_department(department_id, **request.model_dump(exclude_unset=True))
    return {
        "success": True,
        "data": department,
        "message": "Department updated successfully"
    }


@router.delete("/{department_id}", response_model=Dict[str, Any])
@handle_api_errors
async def delete_department(
    department_id: int,
    admin: Profile = Depends(require_admin),
    db: Session = Depends(get_db)
):
    DepartmentService(db).delete_department(department_id)
    return {"success": True, "data": None, "message": "Department deleted successfully"}
