"""
Request dependencies: database session and the signed-in profile
"""
from fastapi import Depends, Request
from sqlalchemy.orm import Session
from bbos.core.database import get_db
from bbos.core.exceptions import AuthenticationError, PermissionDeniedError
from bbos.models.profile import Profile

SESSION_USER_KEY = "user_id"


def get_current_user(request: Request, db: Session = Depends(get_db)) -> Profile:
    """Profile stored in the session cookie; 401 when absent or stale"""
    user_id = request.session.get(SESSION_USER_KEY)
    if not user_id:
        raise AuthenticationError("Authentication required")
    profile = db.query(Profile).filter(Profile.id == user_id).first()
    if not profile:
        request.session.clear()
        raise AuthenticationError("User not found")
    return profile


def require_admin(user: Profile = Depends(get_current_user)) -> Profile:
    if not user.is_admin:
        raise PermissionDeniedError("Admin access required")
    return user
