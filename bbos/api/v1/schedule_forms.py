"""
Schedule form and completion API endpoints
"""
from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session
from typing import Optional, Dict, Any
from bbos.core.database import get_db
from bbos.api.deps import get_current_user, require_admin
from bbos.api.v1.schemas import ScheduleFormRequest, ScheduleFormUpdateRequest
from bbos.models.profile import Profile
from bbos.services.schedule_service import ScheduleService
from bbos.utils.api_decorators import handle_api_errors

router = APIRouter()


@router.get("", response_model=Dict[str, Any])
@handle_api_errors
async def get_all_schedule_forms(
    user: Profile = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    return {"success": True, "data": ScheduleService(db).list_all_schedule_forms(user)}


@router.post("", response_model=Dict[str, Any], status_code=201)
@handle_api_errors
async def create_schedule_form(
    request: ScheduleFormRequest,
    admin: Profile = Depends(require_admin),
    db: Session = Depends(get_db)
):
    schedule_form = ScheduleService(db).attach_form(
        request.schedule_id,
        request.form_id,
        is_required=request.is_required,
        due_date=request.due_date,
    )
    return {"success": True, "data": schedule_form, "message": "Form added to schedule"}


@router.put("/{schedule_form_id}", response_model=Dict[str, Any])
@handle_api_errors
async def update_schedule_form(
    schedule_form_id: int,
    request: ScheduleFormUpdateRequest,
    admin: Profile = Depends(require_admin),
    db: Session = Depends(get_db)
):
    schedule_form = ScheduleService(db).update_schedule_form(
        schedule_form_id, **request.model_dump(exclude_unset=True)
    )
    return {"success": True, "data": schedule_form, "message": "Schedule form updated successfully"}


@router.delete("/{schedule_form_id}", response_model=Dict[str, Any])
@handle_api_errors
async def delete_schedule_form(
    schedule_form_id: int,
    admin: Profile = Depends(require_admin),
    db: Session = Depends(get_db)
):
    ScheduleService(db).detach_form(schedule_form_id)
    return {"success": True, "data": None, "message": "Form removed from schedule"}


@router.get("/{schedule_form_id}/completions", response_model=Dict[str, Any])
@handle_api_errors
async def get_completions(
    schedule_form_id: int,
    user_id: Optional[int] = Query(None, description="Only this user's completion"),
    user: Profile = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    completions = ScheduleService(db).list_completions(schedule_form_id, user_id=user_id)
    return {"success": True, "data": completions}


@router.post("/{schedule_form_id}/completions", response_model=Dict[str, Any], status_code=201)
@handle_api_errors
async def mark_complete(
    schedule_form_id: int,
    user: Profile = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    """Mark the form complete for the signed-in user"""
    completion = ScheduleService(db).mark_complete(schedule_form_id, user.id)
    return {"success": True, "data": completion, "message": "Form marked as complete"}


@router.delete("/{schedule_form_id}/completions", response_model=Dict[str, Any])
@handle_api_errors
async def unmark_complete(
    schedule_form_id: int,
    user: Profile = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    ScheduleService(db).unmark_complete(schedule_form_id, user.id)
    return {"success": True, "data": None, "message": "Completion withdrawn"}
