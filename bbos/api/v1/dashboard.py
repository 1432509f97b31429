"""
Dashboard API endpoints
"""
from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session
from typing import Dict, Any
from bbos.core.database import get_db
from bbos.api.deps import get_current_user
from bbos.models.profile import Profile
from bbos.services.dashboard_service import DashboardService
from bbos.utils.api_decorators import handle_api_errors

router = APIRouter()


@router.get("", response_model=Dict[str, Any])
@handle_api_errors
async def get_dashboard(
    user: Profile = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    """Stats, deadline alerts and status badges for the signed-in user"""
    return {"success": True, "data": DashboardService(db).overview(user)}


@router.get("/alerts", response_model=Dict[str, Any])
@handle_api_errors
async def get_alerts(
    user: Profile = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    return {"success": True, "data": DashboardService(db).alerts(user)}


@router.get("/schedules/{schedule_id}/progress", response_model=Dict[str, Any])
@handle_api_errors
async def get_schedule_progress(
    schedule_id: int,
    user: Profile = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    return {"success": True, "data": DashboardService(db).schedule_progress(schedule_id, user)}
