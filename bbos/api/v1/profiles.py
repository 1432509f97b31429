"""
Profile management API endpoints
"""
from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session
from typing import Optional, Dict, Any
from bbos.core.database import get_db
from bbos.core.exceptions import PermissionDeniedError
from bbos.api.deps import get_current_user, require_admin
from bbos.api.v1.schemas import ProfileUpdateRequest
from bbos.models.profile import Profile
from bbos.services.auth_service import AuthService
from bbos.utils.api_decorators import handle_api_errors

router = APIRouter()


@router.get("", response_model=Dict[str, Any])
@handle_api_errors
async def get_profiles(
    department_id: Optional[int] = Query(None, description="Filter by department"),
    admin: Profile = Depends(require_admin),
    db: Session = Depends(get_db)
):
    profiles = AuthService(db).list_profiles(department_id)
    return {"success": True, "data": profiles}


@router.get("/{profile_id}", response_model=Dict[str, Any])
@handle_api_errors
async def get_profile(
    profile_id: int,
    user: Profile = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    """Admins read any profile; everyone else only their own"""
    if not user.is_admin and user.id != profile_id:
        raise PermissionDeniedError("You can only view your own profile")
    return {"success": True, "data": AuthService(db).get_profile(profile_id)}


@router.patch("/{profile_id}", response_model=Dict[str, Any])
@handle_api_errors
async def update_profile(
    profile_id: int,
    request: ProfileUpdateRequest,
    admin: Profile = Depends(require_admin),
    db: Session = Depends(get_db)
):
    profile = AuthService(db).update_profile(profile_id, **request.model_dump(exclude_unset=True))
    return {
        "success": True,
        "data": profile,
        "message": "Profile updated successfully"
    }
