"""
Authentication API endpoints (session cookie)
"""
from fastapi import APIRouter, Depends, Request
from sqlalchemy.orm import Session
from typing import Dict, Any
from bbos.core.config import settings
from bbos.core.database import get_db
from bbos.api.deps import get_current_user, require_admin, SESSION_USER_KEY
from bbos.api.v1.schemas import LoginRequest, RegisterRequest, CreateUserRequest
from bbos.models.profile import Profile
from bbos.services.auth_service import AuthService
from bbos.services.access_control import allowed_menu_items
from bbos.utils.api_decorators import handle_api_errors
import logging

logger = logging.getLogger(__name__)

router = APIRouter()


def _session_payload(profile: Dict[str, Any]) -> Dict[str, Any]:
    return {
        "user": {"id": profile["id"], "email": profile["email"]},
        "profile": profile,
        "menu": allowed_menu_items(profile["role"]),
    }


@router.post("/register", response_model=Dict[str, Any], status_code=201)
@handle_api_errors
async def register(
    request: RegisterRequest,
    http_request: Request,
    db: Session = Depends(get_db)
):
    """
    Self-register as a data entry user and sign in

    Args:
        request: Email, password and optional full name
        http_request: Incoming request carrying the session
        db: Database session

    Returns:
        Signed-in user, profile and menu
    """
    profile = AuthService(db).register(request.email, request.password, request.full_name)
    http_request.session.clear()
    http_request.session[SESSION_USER_KEY] = profile["id"]
    return {
        "success": True,
        "data": _session_payload(profile),
        "message": "Registration successful"
    }


@router.post("/login", response_model=Dict[str, Any])
@handle_api_errors
async def login(
    request: LoginRequest,
    http_request: Request,
    db: Session = Depends(get_db)
):
    profile = AuthService(db).authenticate(request.email, request.password)
    http_request.session.clear()
    http_request.session[SESSION_USER_KEY] = profile["id"]
    return {
        "success": True,
        "data": _session_payload(profile),
        "message": "Logged in successfully"
    }


@router.post("/logout", response_model=Dict[str, Any])
@handle_api_errors
async def logout(http_request: Request):
    http_request.session.clear()
    return {"success": True, "data": None, "message": "Logged out successfully"}


@router.get("/user", response_model=Dict[str, Any])
@handle_api_errors
async def get_user(
    user: Profile = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    """Current session's user; 401 when logged out"""
    profile = AuthService(db).get_profile(user.id)
    return {"success": True, "data": _session_payload(profile)}


@router.post("/create-user", response_model=Dict[str, Any], status_code=201)
@handle_api_errors
async def create_user(
    request: CreateUserRequest,
    admin: Profile = Depends(require_admin),
    db: Session = Depends(get_db)
):
    """Admin creates an account with a role and department"""
    profile = AuthService(db).create_user(
        email=request.email,
        password=request.password,
        full_name=request.full_name,
        role=request.role,
        department_id=request.department_id,
    )
    logger.info(f"User {profile['id']} created by admin {admin.id}")
    return {
        "success": True,
        "data": {"user": {"id": profile["id"], "email": profile["email"]}, "profile": profile},
        "message": "User created successfully"
    }


@router.post("/temp-signup", response_model=Dict[str, Any], status_code=201)
@handle_api_errors
async def temp_signup(
    request: RegisterRequest,
    http_request: Request,
    db: Session = Depends(get_db)
):
    """Bootstrap the first administrator and sign in as them"""
    profile = AuthService(db).temp_signup(
        request.email,
        request.password,
        request.full_name,
        allow_when_admin_exists=settings.ALLOW_TEMP_SIGNUP,
    )
    http_request.session.clear()
    http_request.session[SESSION_USER_KEY] = profile["id"]
    return {
        "success": True,
        "data": _session_payload(profile),
        "message": "Administrator account created"
    }


@router.get("/menu", response_model=Dict[str, Any])
@handle_api_errors
async def get_menu(user: Profile = Depends(get_current_user)):
    return {"success": True, "data": allowed_menu_items(user.role)}
