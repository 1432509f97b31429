"""
Form definition models
"""
from sqlalchemy import Column, Integer, String, DateTime, Text, Boolean, JSON, ForeignKey, UniqueConstraint, Index
from sqlalchemy.orm import relationship
from datetime import datetime
from bbos.core.database import Base

FIELD_TYPES = ("text", "number", "select", "aggregate", "date", "textarea")
FORM_CATEGORIES = ("bbos", "sdg")
GROUP_TYPES = ("section", "category", "sub_category")


class Form(Base):
    __tablename__ = "forms"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(255), nullable=False, index=True)
    description = Column(Text, nullable=True)
    category = Column(String(20), nullable=False, default="bbos")  # bbos, sdg
    department_id = Column(Integer, ForeignKey("departments.id"), nullable=True, index=True)
    created_by = Column(Integer, ForeignKey("profiles.id"), nullable=True)
    is_active = Column(Boolean, nullable=False, default=True, index=True)
    version = Column(Integer, nullable=False, default=1)  # Bumped on every field redefinition
    created_at = Column(DateTime, default=datetime.utcnow, index=True)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    fields = relationship(
        "FormField",
        back_populates="form",
        cascade="all, delete-orphan",
        order_by="FormField.field_order",
    )
    field_groups = relationship("FieldGroup", back_populates="form", cascade="all, delete-orphan")


class FieldGroup(Base):
    __tablename__ = "field_groups"

    id = Column(Integer, primary_key=True, index=True)
    form_id = Column(Integer, ForeignKey("forms.id", ondelete="CASCADE"), nullable=False, index=True)
    group_name = Column(String(255), nullable=False)
    group_label = Column(String(255), nullable=False)
    parent_group_id = Column(Integer, ForeignKey("field_groups.id"), nullable=True)
    group_type = Column(String(20), nullable=False, default="section")  # section, category, sub_category
    display_order = Column(Integer, nullable=False, default=0)
    is_repeatable = Column(Boolean, nullable=False, default=False)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    form = relationship("Form", back_populates="field_groups")


class FormField(Base):
    __tablename__ = "form_fields"

    id = Column(Integer, primary_key=True, index=True)
    form_id = Column(Integer, ForeignKey("forms.id", ondelete="CASCADE"), nullable=False, index=True)
    field_group_id = Column(Integer, ForeignKey("field_groups.id", ondelete="SET NULL"), nullable=True)
    field_name = Column(String(255), nullable=False)
    field_label = Column(String(255), nullable=False)
    field_type = Column(String(20), nullable=False)  # text, number, select, aggregate, date, textarea
    is_required = Column(Boolean, nullable=False, default=False)
    is_primary_column = Column(Boolean, nullable=False, default=False)
    is_secondary_column = Column(Boolean, nullable=False, default=False)
    reference_data_name = Column(String(255), nullable=True)  # Data bank name backing a select
    placeholder_text = Column(String(255), nullable=True)
    aggregate_fields = Column(JSON, nullable=True)  # Sibling field names summed into this field
    has_sub_headers = Column(Boolean, nullable=False, default=False)
    sub_headers = Column(JSON, nullable=True)  # [{name, label, fields: [...]}], nested recursively
    field_order = Column(Integer, nullable=False, default=0)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    form = relationship("Form", back_populates="fields")

    __table_args__ = (
        UniqueConstraint("form_id", "field_name", name="uq_form_field_name"),
        Index("idx_form_field_order", "form_id", "field_order"),
    )
