"""
Schedule API endpoints
"""
from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session
from typing import Optional, Dict, Any
from bbos.core.database import get_db
from bbos.api.deps import get_current_user, require_admin
from bbos.api.v1.schemas import ScheduleRequest, ScheduleUpdateRequest, StatusRequest, AttachFormRequest
from bbos.models.profile import Profile
from bbos.services.schedule_service import ScheduleService
from bbos.services.submission_service import SubmissionService
from bbos.utils.api_decorators import handle_api_errors

router = APIRouter()


@router.get("", response_model=Dict[str, Any])
@handle_api_errors
async def get_schedules(
    status: Optional[str] = Query(None, description="open, collection, published or cancelled"),
    user: Profile = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    """
    Schedules newest first

    Data entry users only see schedules carrying forms of their department.
    """
    return {"success": True, "data": ScheduleService(db).list_schedules(user, status=status)}


@router.post("", response_model=Dict[str, Any], status_code=201)
@handle_api_errors
async def create_schedule(
    request: ScheduleRequest,
    admin: Profile = Depends(require_admin),
    db: Session = Depends(get_db)
):
    schedule = ScheduleService(db).create_schedule(
        name=request.name,
        start_date=request.start_date,
        end_date=request.end_date,
        description=request.description,
        department_id=request.department_id,
        created_by=admin.id,
    )
    return {
        "success": True,
        "data": schedule,
        "message": "Schedule created successfully"
    }


@router.get("/{schedule_id}", response_model=Dict[str, Any])
@handle_api_errors
async def get_schedule(
    schedule_id: int,
    user: Profile = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    return {"success": True, "data": ScheduleService(db).get_schedule(schedule_id, user)}


@router.put("/{schedule_id}", response_model=Dict[str, Any])
@handle_api_errors
async def update_schedule(
    schedule_id: int,
    request: ScheduleUpdateRequest,
    admin: Profile = Depends(require_admin),
    db: Session = Depends(get_db)
):
    schedule = ScheduleService(db).update_schedule(schedule_id, **request.model_dump(exclude_unset=True))
    return {
        "success": True,
        "data": schedule,
        "message": "Schedule updated successfully"
    }


@router.delete("/{schedule_id}", response_model=Dict[str, Any])
@handle_api_errors
async def delete_schedule(
    schedule_id: int,
    admin: Profile = Depends(require_admin),
    db: Session = Depends(get_db)
):
    ScheduleService(db).delete_schedule(schedule_id)
    return {"success": True, "data": None, "message": "Schedule deleted successfully"}


@router.post("/{schedule_id}/status", response_model=Dict[str, Any])
@handle_api_errors
async def change_status(
    schedule_id: int,
    request: StatusRequest,
    admin: Profile = Depends(require_admin),
    db: Session = Depends(get_db)
):
    """Move a schedule along open -> collection -> published, or cancel it"""
    schedule = ScheduleService(db).transition_status(schedule_id, request.status)
    return {
        "success": True,
        "data": schedule,
        "message": f"Schedule is now {schedule['status']}"
    }


@router.get("/{schedule_id}/forms", response_model=Dict[str, Any])
@handle_api_errors
async def get_schedule_forms(
    schedule_id: int,
    user: Profile = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    service = ScheduleService(db)
    service.get_visible_schedule(schedule_id, user)
    return {"success": True, "data": service.list_schedule_forms(schedule_id)}


@router.post("/{schedule_id}/forms", response_model=Dict[str, Any], status_code=201)
@handle_api_errors
async def attach_form(
    schedule_id: int,
    request: AttachFormRequest,
    admin: Profile = Depends(require_admin),
    db: Session = Depends(get_db)
):
    schedule_form = ScheduleService(db).attach_form(
        schedule_id,
        request.form_id,
        is_required=request.is_required,
        due_date=request.due_date,
    )
    return {
        "success": True,
        "data": schedule_form,
        "message": "Form added to schedule"
    }


@router.get("/{schedule_id}/available-forms", response_model=Dict[str, Any])
@handle_api_errors
async def get_available_forms(
    schedule_id: int,
    admin: Profile = Depends(require_admin),
    db: Session = Depends(get_db)
):
    return {"success": True, "data": ScheduleService(db).list_available_forms(schedule_id)}


@router.get("/{schedule_id}/completion-status", response_model=Dict[str, Any])
@handle_api_errors
async def get_completion_status(
    schedule_id: int,
    user: Profile = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    service = ScheduleService(db)
    service.get_visible_schedule(schedule_id, user)
    return {"success": True, "data": service.completion_status(schedule_id)}


@router.get("/{schedule_id}/submission-counts", response_model=Dict[str, Any])
@handle_api_errors
async def get_submission_counts(
    schedule_id: int,
    admin: Profile = Depends(require_admin),
    db: Session = Depends(get_db)
):
    ScheduleService(db).get_schedule_model(schedule_id)
    return {"success": True, "data": SubmissionService(db).submission_counts(schedule_id)}
