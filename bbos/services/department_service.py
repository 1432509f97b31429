"""
Department service
"""
from typing import Dict, List, Any, Optional
from sqlalchemy.orm import Session
from sqlalchemy.exc import IntegrityError
from bbos.models.department import Department
from bbos.core.exceptions import ValidationError, DuplicateKeyError, NotFoundError
from bbos.utils.serialization import iso
import logging

logger = logging.getLogger(__name__)


class DepartmentService:
    """Service for managing departments"""

    def __init__(self, db: Session):
        self.db = db

    def create_department(self, name: str, description: Optional[str] = None) -> Dict[str, Any]:
        try:
            name = (name or "").strip()
            if not name:
                raise ValidationError("Department name cannot be empty")

            existing = self.db.query(Department).filter(Department.name == name).first()
            if existing:
                if existing.is_active:
                    raise DuplicateKeyError(f"Department '{name}' already exists")
                # Re-creating a removed department brings it back
                existing.is_active = True
                existing.description = description
                department = existing
            else:
                department = Department(name=name, description=description)
                self.db.add(department)

            self.db.commit()
            self.db.refresh(department)
            logger.info(f"Department saved: {department.id} - {name}")
            return self._department_to_dict(department)

        except IntegrityError:
            self.db.rollback()
            raise DuplicateKeyError(f"Department '{name}' already exists")
        except Exception as e:
            self.db.rollback()
            logger.error(f"Error creating department: {str(e)}", exc_info=True)
            raise

    def list_departments(self) -> List[Dict[str, Any]]:
        departments = (
            self.db.query(Department)
            .filter(Department.is_active.is_(True))
            .order_by(Department.name)
            .all()
        )
        return [self._department_to_dict(d) for d in departments]

    def get_department(self, department_id: int) -> Dict[str, Any]:
        return self._department_to_dict(self._get_department(department_id))

    def update_department(self, department_id: int, **changes) -> Dict[str, Any]:
        try:
            department = self._get_department(department_id)

            if "name" in changes and changes["name"] is not None:
                name = changes["name"].strip()
                if not name:
                    raise ValidationError("Department name cannot be empty")
                clash = (
                    self.db.query(Department)
                    .filter(Department.name == name, Department.id != department_id)
                    .first()
                )
                if clash:
                    raise DuplicateKeyError(f"Department '{name}' already exists")
                department.name = name
            if "description" in changes:
                department.description = changes["description"]

            self.db.commit()
            self.db.refresh(department)
            logger.info(f"Department updated: {department_id}")
            return self._department_to_dict(department)

        except Exception as e:
            self.db.rollback()
            logger.error(f"Error updating department {department_id}: {str(e)}", exc_info=True)
            raise

    def delete_department(self, department_id: int) -> None:
        """Soft delete; profiles and forms keep their department reference"""
        try:
            department = self._get_department(department_id)
            department.is_active = False
            self.db.commit()
            logger.info(f"Department deactivated: {department_id}")
        except Exception as e:
            self.db.rollback()
            logger.error(f"Error deleting department {department_id}: {str(e)}", exc_info=True)
            raise

    def _get_department(self, department_id: int) -> Department:
        department = (
            self.db.query(Department)
            .filter(Department.id == department_id, Department.is_active.is_(True))
            .first()
        )
        if not department:
            raise NotFoundError("Department not found")
        return department

    def _department_to_dict(self, department: Department) -> Dict[str, Any]:
        return {
            "id": department.id,
            "name": department.name,
            "description": department.description,
            "is_active": department.is_active,
            "created_at": iso(department.created_at),
            "updated_at": iso(department.updated_at),
        }
