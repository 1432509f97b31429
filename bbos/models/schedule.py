"""
Schedule models
"""
from sqlalchemy import Column, Integer, String, DateTime, Date, Text, Boolean, ForeignKey, UniqueConstraint
from sqlalchemy.orm import relationship
from datetime import datetime
from bbos.core.database import Base

STATUS_OPEN = "open"
STATUS_COLLECTION = "collection"
STATUS_PUBLISHED = "published"
STATUS_CANCELLED = "cancelled"
SCHEDULE_STATUSES = (STATUS_OPEN, STATUS_COLLECTION, STATUS_PUBLISHED, STATUS_CANCELLED)


class Schedule(Base):
    __tablename__ = "schedules"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(255), nullable=False, unique=True)
    description = Column(Text, nullable=True)
    start_date = Column(Date, nullable=False)
    end_date = Column(Date, nullable=False)
    status = Column(String(20), nullable=False, default=STATUS_OPEN, index=True)  # open, collection, published, cancelled
    department_id = Column(Integer, ForeignKey("departments.id"), nullable=True, index=True)
    created_by = Column(Integer, ForeignKey("profiles.id"), nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow, index=True)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    schedule_forms = relationship("ScheduleForm", back_populates="schedule", cascade="all, delete-orphan")


class ScheduleForm(Base):
    __tablename__ = "schedule_forms"

    id = Column(Integer, primary_key=True, index=True)
    schedule_id = Column(Integer, ForeignKey("schedules.id", ondelete="CASCADE"), nullable=False, index=True)
    form_id = Column(Integer, ForeignKey("forms.id", ondelete="CASCADE"), nullable=False, index=True)
    is_required = Column(Boolean, nullable=False, default=True)
    due_date = Column(Date, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow)

    schedule = relationship("Schedule", back_populates="schedule_forms")
    form = relationship("Form")
    completions = relationship("ScheduleFormCompletion", back_populates="schedule_form", cascade="all, delete-orphan")

    __table_args__ = (
        UniqueConstraint("schedule_id", "form_id", name="uq_schedule_form"),
    )


class ScheduleFormCompletion(Base):
    __tablename__ = "schedule_form_completions"

    id = Column(Integer, primary_key=True, index=True)
    schedule_form_id = Column(Integer, ForeignKey("schedule_forms.id", ondelete="CASCADE"), nullable=False, index=True)
    user_id = Column(Integer, ForeignKey("profiles.id"), nullable=False)
    completed_at = Column(DateTime, default=datetime.utcnow)
    created_at = Column(DateTime, default=datetime.utcnow)

    schedule_form = relationship("ScheduleForm", back_populates="completions")

    __table_args__ = (
        UniqueConstraint("schedule_form_id", "user_id", name="uq_schedule_form_completion"),
    )
