"""
Form submission models
"""
from sqlalchemy import Column, Integer, String, DateTime, JSON, ForeignKey, UniqueConstraint, Index
from datetime import datetime
from bbos.core.database import Base


class FormSubmission(Base):
    __tablename__ = "form_submissions"

    id = Column(Integer, primary_key=True, index=True)
    form_id = Column(Integer, ForeignKey("forms.id", ondelete="CASCADE"), nullable=False, index=True)
    schedule_id = Column(Integer, ForeignKey("schedules.id"), nullable=False, index=True)
    submitted_by = Column(Integer, ForeignKey("profiles.id"), nullable=False, index=True)
    submitted_at = Column(DateTime, default=datetime.utcnow, index=True)
    data = Column(JSON, nullable=False, default=dict)  # field key -> value
    row_key = Column(String(500), nullable=False, default="")  # Joined primary-column values, "" for single-row forms

    __table_args__ = (
        UniqueConstraint("form_id", "schedule_id", "submitted_by", "row_key", name="uq_form_submission"),
        Index("idx_submission_schedule_form", "schedule_id", "form_id"),
    )
