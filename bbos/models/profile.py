"""
User profile models
"""
from sqlalchemy import Column, Integer, String, DateTime, ForeignKey
from datetime import datetime
from bbos.core.database import Base

ROLE_ADMIN = "admin"
ROLE_DATA_ENTRY_USER = "data_entry_user"
ROLES = (ROLE_ADMIN, ROLE_DATA_ENTRY_USER)


class Profile(Base):
    __tablename__ = "profiles"

    id = Column(Integer, primary_key=True, index=True)
    email = Column(String(255), nullable=False, unique=True, index=True)
    password_hash = Column(String(255), nullable=False)
    full_name = Column(String(255), nullable=True)
    role = Column(String(32), nullable=False, default=ROLE_DATA_ENTRY_USER)  # admin, data_entry_user
    department_id = Column(Integer, ForeignKey("departments.id"), nullable=True, index=True)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    @property
    def is_admin(self) -> bool:
        return self.role == ROLE_ADMIN
