"""
Authentication and profile service
"""
from typing import Dict, List, Any, Optional
from sqlalchemy.orm import Session
from sqlalchemy.exc import IntegrityError
from werkzeug.security import generate_password_hash, check_password_hash
from bbos.models.profile import Profile, ROLES, ROLE_ADMIN, ROLE_DATA_ENTRY_USER
from bbos.models.department import Department
from bbos.core.exceptions import ValidationError, DuplicateKeyError, NotFoundError, AuthenticationError, PermissionDeniedError
from bbos.utils.serialization import iso
import logging

logger = logging.getLogger(__name__)

MIN_PASSWORD_LENGTH = 6


class AuthService:
    """Service for accounts, credentials and profiles"""

    def __init__(self, db: Session):
        self.db = db

    def register(self, email: str, password: str, full_name: Optional[str] = None) -> Dict[str, Any]:
        """Self-registration always yields a data entry user"""
        return self._create_profile(email, password, full_name, ROLE_DATA_ENTRY_USER, None)

    def create_user(
        self,
        email: str,
        password: str,
        full_name: Optional[str] = None,
        role: Optional[str] = None,
        department_id: Optional[int] = None
    ) -> Dict[str, Any]:
        """Admin-created account with an explicit role and department"""
        return self._create_profile(email, password, full_name, role or ROLE_DATA_ENTRY_USER, department_id)

    def temp_signup(
        self,
        email: str,
        password: str,
        full_name: Optional[str] = None,
        allow_when_admin_exists: bool = False
    ) -> Dict[str, Any]:
        """
        Bootstrap an administrator account

        Only allowed while no administrator exists, unless explicitly enabled.
        """
        admin_exists = self.db.query(Profile).filter(Profile.role == ROLE_ADMIN).first() is not None
        if admin_exists and not allow_when_admin_exists:
            raise PermissionDeniedError("An administrator already exists; ask them to create your account")
        return self._create_profile(email, password, full_name, ROLE_ADMIN, None)

    def authenticate(self, email: str, password: str) -> Dict[str, Any]:
        email = (email or "").strip().lower()
        profile = self.db.query(Profile).filter(Profile.email == email).first()
        if not profile or not check_password_hash(profile.password_hash, password or ""):
            logger.warning(f"Failed login for {email}")
            raise AuthenticationError("Invalid credentials")
        logger.info(f"User logged in: {profile.id}")
        return self._profile_to_dict(profile)

    def get_profile_model(self, profile_id: int) -> Optional[Profile]:
        return self.db.query(Profile).filter(Profile.id == profile_id).first()

    def get_profile(self, profile_id: int) -> Dict[str, Any]:
        profile = self.get_profile_model(profile_id)
        if not profile:
            raise NotFoundError("Profile not found")
        return self._profile_to_dict(profile)

    def list_profiles(self, department_id: Optional[int] = None) -> List[Dict[str, Any]]:
        query = self.db.query(Profile)
        if department_id is not None:
            query = query.filter(Profile.department_id == department_id)
        profiles = query.order_by(Profile.created_at.desc(), Profile.id.desc()).all()
        return [self._profile_to_dict(p) for p in profiles]

    def update_profile(self, profile_id: int, **changes) -> Dict[str, Any]:
        try:
            profile = self.get_profile_model(profile_id)
            if not profile:
                raise NotFoundError("Profile not found")

            if "full_name" in changes:
                profile.full_name = changes["full_name"]
            if "role" in changes and changes["role"] is not None:
                profile.role = self._check_role(changes["role"])
            if "department_id" in changes:
                profile.department_id = self._check_department(changes["department_id"])
            if changes.get("password"):
                profile.password_hash = self._hash_password(changes["password"])

            self.db.commit()
            self.db.refresh(profile)
            logger.info(f"Profile updated: {profile_id}")
            return self._profile_to_dict(profile)

        except Exception as e:
            self.db.rollback()
            logger.error(f"Error updating profile {profile_id}: {str(e)}", exc_info=True)
            raise

    def _create_profile(
        self,
        email: str,
        password: str,
        full_name: Optional[str],
        role: str,
        department_id: Optional[int]
    ) -> Dict[str, Any]:
        try:
            email = (email or "").strip().lower()
            if not email or "@" not in email:
                raise ValidationError("A valid email address is required")

            if self.db.query(Profile).filter(Profile.email == email).first():
                raise DuplicateKeyError("User already exists with this email")

            profile = Profile(
                email=email,
                password_hash=self._hash_password(password),
                full_name=full_name or "",
                role=self._check_role(role),
                department_id=self._check_department(department_id),
            )
            self.db.add(profile)
            self.db.commit()
            self.db.refresh(profile)

            logger.info(f"Profile created: {profile.id} ({profile.role})")
            return self._profile_to_dict(profile)

        except IntegrityError:
            self.db.rollback()
            raise DuplicateKeyError("User already exists with this email")
        except Exception as e:
            self.db.rollback()
            logger.error(f"Error creating profile: {str(e)}", exc_info=True)
            raise

    def _hash_password(self, password: str) -> str:
        if not password or len(password) < MIN_PASSWORD_LENGTH:
            raise ValidationError(f"Password must be at least {MIN_PASSWORD_LENGTH} characters")
        return generate_password_hash(password)

    def _check_role(self, role: str) -> str:
        if role not in ROLES:
            raise ValidationError(f"Unknown role '{role}'. Allowed: {', '.join(ROLES)}")
        return role

    def _check_department(self, department_id: Optional[int]) -> Optional[int]:
        if department_id is None:
            return None
        exists = (
            self.db.query(Department.id)
            .filter(Department.id == department_id, Department.is_active.is_(True))
            .first()
        )
        if not exists:
            raise ValidationError(f"Department {department_id} does not exist")
        return department_id

    def _profile_to_dict(self, profile: Profile) -> Dict[str, Any]:
        return {
            "id": profile.id,
            "email": profile.email,
            "full_name": profile.full_name,
            "role": profile.role,
            "department_id": profile.department_id,
            "created_at": iso(profile.created_at),
            "updated_at": iso(profile.updated_at),
        }
