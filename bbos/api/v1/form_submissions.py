"""
Form submission API endpoints
"""
from fastapi import APIRouter, Depends, Query
from fastapi.responses import Response
from sqlalchemy.orm import Session
from typing import Optional, Dict, Any
from bbos.core.database import get_db
from bbos.api.deps import get_current_user
from bbos.api.v1.schemas import SubmissionRequest
from bbos.models.profile import Profile
from bbos.services.submission_service import SubmissionService
from bbos.utils.api_decorators import handle_api_errors
import logging

logger = logging.getLogger(__name__)

router = APIRouter()


@router.get("", response_model=Dict[str, Any])
@handle_api_errors
async def get_submissions(
    schedule_id: Optional[int] = Query(None, description="Filter by schedule"),
    form_id: Optional[int] = Query(None, description="Filter by form"),
    user_id: Optional[int] = Query(None, description="Filter by submitter"),
    user: Profile = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    """
    Submissions newest first

    Args:
        schedule_id: Filter by schedule
        form_id: Filter by form
        user_id: Filter by submitter
        user: Signed-in profile; non-admins only see their department's forms
        db: Database session

    Returns:
        Submissions list
    """
    submissions = SubmissionService(db).list_submissions(
        user,
        schedule_id=schedule_id,
        form_id=form_id,
        user_id=user_id,
    )
    return {"success": True, "data": submissions}


@router.post("", response_model=Dict[str, Any], status_code=201)
@handle_api_errors
async def create_submission(
    request: SubmissionRequest,
    user: Profile = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    submission = SubmissionService(db).submit(
        schedule_id=request.schedule_id,
        form_id=request.form_id,
        submitted_by=user.id,
        data=request.data,
        profile=user,
    )
    return {
        "success": True,
        "data": submission,
        "message": "Form submitted successfully"
    }


@router.get("/check", response_model=Dict[str, Any])
@handle_api_errors
async def check_submitted(
    schedule_id: int = Query(..., description="Schedule ID"),
    form_id: int = Query(..., description="Form ID"),
    user: Profile = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    """Whether the signed-in user already submitted this form in this schedule"""
    submitted = SubmissionService(db).has_submitted(schedule_id, form_id, user.id)
    return {"success": True, "data": {"submitted": submitted}}


@router.get("/export")
@handle_api_errors
async def export_submissions(
    schedule_id: int = Query(..., description="Schedule ID"),
    form_id: int = Query(..., description="Form ID"),
    format: str = Query("csv", description="csv or excel"),
    user: Profile = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    content, media_type, filename = SubmissionService(db).export_submissions(
        schedule_id, form_id, fmt=format, profile=user
    )
    return Response(
        content=content,
        media_type=media_type,
        headers={"Content-Disposition": f'attachment; filename="{filename}"'}
    )


@router.get("/{submission_id}", response_model=Dict[str, Any])
@handle_api_errors
async def get_submission(
    submission_id: int,
    user: Profile = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    return {"success": True, "data": SubmissionService(db).get_submission(submission_id, user)}
