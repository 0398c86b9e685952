"""SQLAlchemy models for members, care records and their ledger."""
from __future__ import annotations

from sqlalchemy import (
    Boolean,
    Column,
    DateTime,
    Float,
    ForeignKey,
    Integer,
    String,
    Text,
    func,
)
from sqlalchemy.orm import relationship

from .session import Base


class Member(Base):
    __tablename__ = "members"

    id = Column(String(32), primary_key=True)
    name = Column(String(120), nullable=False)
    phone = Column(String(32), nullable=False)
    email = Column(String(255), nullable=False, default="")
    gender = Column(String(16), nullable=True)
    tier = Column(String(16), nullable=False, default="SILVER")
    deposit = Column(Integer, nullable=False, default=0)
    used = Column(Integer, nullable=False, default=0)
    remaining = Column(Integer, nullable=False, default=0)
    core_goal = Column(Text, nullable=False, default="")
    ai_recommended = Column(Text, nullable=False, default="")
    admin_note = Column(Text, nullable=True)
    expiry_date = Column(String(10), nullable=True)
    status = Column(String(16), nullable=False, default="active")
    version = Column(Integer, nullable=False)
    joined_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)

    care_records = relationship("CareRecord", back_populates="member")

    __mapper_args__ = {"version_id_col": version}


class Therapist(Base):
    __tablename__ = "therapists"

    id = Column(String(64), primary_key=True)
    name = Column(String(120), nullable=False)
    specialty = Column(String(120), nullable=False, default="")
    phone = Column(String(32), nullable=False, default="")
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)


class CareRecord(Base):
    __tablename__ = "care_records"

    id = Column(String(64), primary_key=True)
    member_id = Column(String(32), ForeignKey("members.id"), nullable=False, index=True)
    therapist_id = Column(String(64), nullable=False)
    therapist_name = Column(String(120), nullable=False, default="")
    content = Column(Text, nullable=False, default="")
    original_price = Column(Integer, nullable=False)
    discount_rate = Column(Float, nullable=False)
    discounted_price = Column(Integer, nullable=False)
    feedback = Column(Text, nullable=False, default="")
    recommendation = Column(Text, nullable=False, default="")
    status = Column(String(32), nullable=False, default="WAITING_SIGNATURE", index=True)
    signature = Column(Text, nullable=True)
    signed_at = Column(DateTime(timezone=True), nullable=True)
    cancel_reason = Column(Text, nullable=True)
    resend_count = Column(Integer, nullable=False, default=0)
    date = Column(String(10), nullable=False)
    year_month = Column(String(7), nullable=False, index=True)
    requested_at = Column(DateTime(timezone=True), nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)

    member = relationship("Member", back_populates="care_records")


class Contract(Base):
    """A signed deposit agreement; every DEPOSIT journal entry points at one."""

    __tablename__ = "contracts"

    id = Column(String(64), primary_key=True)
    member_id = Column(String(32), ForeignKey("members.id"), nullable=False, index=True)
    type = Column(String(32), nullable=False, default="MEMBERSHIP")
    type_name = Column(String(120), nullable=False, default="")
    amount = Column(Integer, nullable=False)
    status = Column(String(16), nullable=False, default="COMPLETED")
    signature = Column(Text, nullable=True)
    year_month = Column(String(7), nullable=False, index=True)
    created_at = Column(DateTime(timezone=True), nullable=False)


class LedgerEntry(Base):
    __tablename__ = "ledger_entries"

    id = Column(Integer, primary_key=True, autoincrement=True)
    member_id = Column(String(32), ForeignKey("members.id"), nullable=False, index=True)
    kind = Column(String(16), nullable=False)
    amount = Column(Integer, nullable=False)
    deposit_after = Column(Integer, nullable=False)
    used_after = Column(Integer, nullable=False)
    remaining_after = Column(Integer, nullable=False)
    care_record_id = Column(String(64), ForeignKey("care_records.id"), nullable=True)
    contract_id = Column(String(64), ForeignKey("contracts.id"), nullable=True)
    note = Column(Text, nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)

    contract = relationship("Contract")


class Notification(Base):
    __tablename__ = "notifications"

    id = Column(String(64), primary_key=True)
    member_id = Column(String(32), ForeignKey("members.id"), nullable=False, index=True)
    type = Column(String(32), nullable=False, default="GENERAL")
    recipient = Column(String(255), nullable=False, default="")
    subject = Column(String(255), nullable=False)
    body = Column(Text, nullable=False)
    is_read = Column(Boolean, nullable=False, default=False)
    attempts = Column(Integer, nullable=False, default=0)
    delivered_at = Column(DateTime(timezone=True), nullable=True)
    last_error = Column(Text, nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False)


class AuditLog(Base):
    __tablename__ = "audit_logs"

    id = Column(Integer, primary_key=True, autoincrement=True)
    action = Column(String(64), nullable=False)
    target = Column(String(128), nullable=False)
    actor = Column(String(120), nullable=False)
    details = Column(Text, nullable=False, default="")
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
