"""
Reference data (data bank) models
"""
from sqlalchemy import Column, Integer, String, DateTime, Text, Boolean, JSON, ForeignKey, UniqueConstraint
from sqlalchemy.orm import relationship
from datetime import datetime
from bbos.core.database import Base


class DataBank(Base):
    __tablename__ = "data_banks"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(255), nullable=False, index=True)  # Unique among active sets (checked in service)
    description = Column(Text, nullable=True)
    department_id = Column(Integer, ForeignKey("departments.id"), nullable=True, index=True)
    created_by = Column(Integer, ForeignKey("profiles.id"), nullable=True)
    is_active = Column(Boolean, nullable=False, default=True, index=True)
    created_at = Column(DateTime, default=datetime.utcnow, index=True)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    entries = relationship("DataBankEntry", back_populates="data_bank", cascade="all, delete-orphan")


class DataBankEntry(Base):
    __tablename__ = "data_bank_entries"

    id = Column(Integer, primary_key=True, index=True)
    data_bank_id = Column(Integer, ForeignKey("data_banks.id", ondelete="CASCADE"), nullable=False, index=True)
    key = Column(String(64), nullable=False)  # Generated from value, max 50 chars
    value = Column(String(500), nullable=False)
    metadata_json = Column("metadata", JSON, nullable=True)
    created_by = Column(Integer, ForeignKey("profiles.id"), nullable=True)
    is_active = Column(Boolean, nullable=False, default=True, index=True)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    data_bank = relationship("DataBank", back_populates="entries")

    __table_args__ = (
        UniqueConstraint("data_bank_id", "key", name="uq_data_bank_entry_key"),
    )
