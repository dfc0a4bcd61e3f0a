import uuid
from datetime import datetime, timezone
from decimal import Decimal
from typing import Optional

from sqlalchemy import (
    String,
    DateTime,
    Boolean,
    ForeignKey,
    Integer,
    Numeric,
    JSON,
    Text,
    Index,
)
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import relationship, Mapped, mapped_column

from ..db import Base


def uuid_pk() -> Mapped[uuid.UUID]:
    return mapped_column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Company(Base):
    __tablename__ = "companies"

    id: Mapped[uuid.UUID] = uuid_pk()
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utcnow)


class User(Base):
    __tablename__ = "users"

    id: Mapped[uuid.UUID] = uuid_pk()
    company_id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), ForeignKey("companies.id", ondelete="CASCADE"), nullable=False, index=True)
    email: Mapped[str] = mapped_column(String(255), unique=True, nullable=False, index=True)
    full_name: Mapped[str] = mapped_column(String(255), nullable=False)
    role: Mapped[str] = mapped_column(String(50), default="technician")  # admin|manager|technician|customer
    is_active: Mapped[bool] = mapped_column(Boolean, default=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utcnow)


class Customer(Base):
    __tablename__ = "customers"

    id: Mapped[uuid.UUID] = uuid_pk()
    company_id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), ForeignKey("companies.id", ondelete="CASCADE"), nullable=False, index=True)
    user_id: Mapped[Optional[uuid.UUID]] = mapped_column(UUID(as_uuid=True), ForeignKey("users.id", ondelete="SET NULL"))
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    company_name: Mapped[Optional[str]] = mapped_column(String(255))
    email: Mapped[Optional[str]] = mapped_column(String(255))
    phone: Mapped[Optional[str]] = mapped_column(String(50))
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utcnow)


class Technician(Base):
    __tablename__ = "technicians"

    id: Mapped[uuid.UUID] = uuid_pk()
    company_id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), ForeignKey("companies.id", ondelete="CASCADE"), nullable=False, index=True)
    user_id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    employee_id: Mapped[Optional[str]] = mapped_column(String(50))
    is_available: Mapped[bool] = mapped_column(Boolean, default=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utcnow)

    user = relationship("User")


class EquipmentType(Base):
    __tablename__ = "equipment_types"

    id: Mapped[uuid.UUID] = uuid_pk()
    company_id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), ForeignKey("companies.id", ondelete="CASCADE"), nullable=False, index=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    brand: Mapped[Optional[str]] = mapped_column(String(100))
    model: Mapped[Optional[str]] = mapped_column(String(255))


class CustomerEquipment(Base):
    __tablename__ = "customer_equipment"

    id: Mapped[uuid.UUID] = uuid_pk()
    customer_id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), ForeignKey("customers.id", ondelete="CASCADE"), nullable=False, index=True)
    equipment_type_id: Mapped[Optional[uuid.UUID]] = mapped_column(UUID(as_uuid=True), ForeignKey("equipment_types.id", ondelete="SET NULL"))
    serial_number: Mapped[Optional[str]] = mapped_column(String(255), index=True)

    equipment_type = relationship("EquipmentType")


class Part(Base):
    __tablename__ = "parts"

    id: Mapped[uuid.UUID] = uuid_pk()
    company_id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), ForeignKey("companies.id", ondelete="CASCADE"), nullable=False, index=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    part_number: Mapped[Optional[str]] = mapped_column(String(100))
    unit_price: Mapped[Decimal] = mapped_column(Numeric(10, 2), default=0)


class Job(Base):
    """Work order; workshop jobs carry an intake and an equipment status"""
    __tablename__ = "jobs"

    id: Mapped[uuid.UUID] = uuid_pk()
    company_id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), ForeignKey("companies.id", ondelete="CASCADE"), nullable=False, index=True)
    customer_id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), ForeignKey("customers.id", ondelete="CASCADE"), nullable=False, index=True)
    equipment_id: Mapped[Optional[uuid.UUID]] = mapped_column(UUID(as_uuid=True), ForeignKey("customer_equipment.id", ondelete="SET NULL"))
    technician_id: Mapped[Optional[uuid.UUID]] = mapped_column(UUID(as_uuid=True), ForeignKey("technicians.id", ondelete="SET NULL"), index=True)
    job_number: Mapped[str] = mapped_column(String(50), unique=True, nullable=False, index=True)
    title: Mapped[str] = mapped_column(String(255), nullable=False)
    description: Mapped[Optional[str]] = mapped_column(Text)
    priority: Mapped[str] = mapped_column(String(20), default="medium", index=True)  # low|medium|high|urgent
    status: Mapped[str] = mapped_column(String(20), default="pending", index=True)  # pending|assigned|in_progress|completed|cancelled|on_hold
    location_type: Mapped[str] = mapped_column(String(20), default="on_site", index=True)  # on_site|workshop
    scheduled_date: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))
    due_date: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))
    started_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))
    completed_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))
    estimated_duration: Mapped[Optional[int]] = mapped_column(Integer)  # minutes
    actual_duration: Mapped[Optional[int]] = mapped_column(Integer)  # minutes
    estimated_completion_date: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))
    total_cost: Mapped[Optional[Decimal]] = mapped_column(Numeric(10, 2))
    delivery_scheduled_date: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))
    delivery_technician_id: Mapped[Optional[uuid.UUID]] = mapped_column(UUID(as_uuid=True), ForeignKey("technicians.id", ondelete="SET NULL"))
    pickup_delivery_fee: Mapped[Optional[Decimal]] = mapped_column(Numeric(10, 2))
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utcnow)
    updated_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))

    customer = relationship("Customer")
    equipment = relationship("CustomerEquipment")
    technician = relationship("Technician", foreign_keys=[technician_id])
    delivery_technician = relationship("Technician", foreign_keys=[delivery_technician_id])
    intake = relationship("EquipmentIntake", back_populates="job", uselist=False)
    equipment_status = relationship("EquipmentStatus", back_populates="job", uselist=False)
    parts = relationship("JobPart", back_populates="job", cascade="all, delete-orphan")

    __table_args__ = (
        Index('idx_job_company_location', 'company_id', 'location_type'),
        Index('idx_job_technician_status', 'technician_id', 'status'),
    )


class JobPart(Base):
    __tablename__ = "job_parts"

    id: Mapped[uuid.UUID] = uuid_pk()
    job_id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), ForeignKey("jobs.id", ondelete="CASCADE"), nullable=False, index=True)
    part_id: Mapped[Optional[uuid.UUID]] = mapped_column(UUID(as_uuid=True), ForeignKey("parts.id", ondelete="SET NULL"))
    quantity_used: Mapped[int] = mapped_column(Integer, default=1)
    unit_price: Mapped[Decimal] = mapped_column(Numeric(10, 2), default=0)
    total_price: Mapped[Decimal] = mapped_column(Numeric(10, 2), default=0)  # quantity_used * unit_price
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utcnow)

    job = relationship("Job", back_populates="parts")


class EquipmentIntake(Base):
    """Arrival record for equipment dropped at the workshop (one per workshop job)"""
    __tablename__ = "equipment_intakes"

    id: Mapped[uuid.UUID] = uuid_pk()
    job_id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), ForeignKey("jobs.id", ondelete="CASCADE"), unique=True, nullable=False)
    intake_date: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utcnow, index=True)
    received_by: Mapped[Optional[uuid.UUID]] = mapped_column(UUID(as_uuid=True), ForeignKey("users.id", ondelete="SET NULL"))
    reported_issue: Mapped[str] = mapped_column(Text, nullable=False)
    visual_condition: Mapped[Optional[str]] = mapped_column(Text)
    physical_damage_notes: Mapped[Optional[str]] = mapped_column(Text)
    accessories_included: Mapped[Optional[list]] = mapped_column(JSON)  # ["charger", "case", ...]
    photos: Mapped[Optional[list]] = mapped_column(JSON)  # Array of file ids
    customer_signature: Mapped[Optional[str]] = mapped_column(Text)
    customer_notes: Mapped[Optional[str]] = mapped_column(Text)
    internal_notes: Mapped[Optional[str]] = mapped_column(Text)
    estimated_repair_time: Mapped[Optional[int]] = mapped_column(Integer)  # hours
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utcnow)
    updated_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))

    job = relationship("Job", back_populates="intake")


class EquipmentStatus(Base):
    """Authoritative repair status of a workshop job"""
    __tablename__ = "equipment_status"

    id: Mapped[uuid.UUID] = uuid_pk()
    job_id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), ForeignKey("jobs.id", ondelete="CASCADE"), unique=True, nullable=False)
    current_status: Mapped[str] = mapped_column(String(30), nullable=False, index=True)  # pending_intake|in_transit|received|in_repair|repair_completed|ready_for_pickup|out_for_delivery|returned
    pending_intake_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))
    in_transit_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))
    received_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))
    in_repair_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))
    repair_completed_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))
    ready_for_pickup_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))
    out_for_delivery_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))
    returned_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utcnow)
    updated_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))

    job = relationship("Job", back_populates="equipment_status")
    history = relationship("EquipmentStatusHistory", back_populates="equipment_status", order_by="EquipmentStatusHistory.changed_at.desc()")


class EquipmentStatusHistory(Base):
    """Append-only log of equipment status transitions"""
    __tablename__ = "equipment_status_history"

    id: Mapped[uuid.UUID] = uuid_pk()
    equipment_status_id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), ForeignKey("equipment_status.id", ondelete="CASCADE"), nullable=False, index=True)
    job_id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), ForeignKey("jobs.id", ondelete="CASCADE"), nullable=False, index=True)
    from_status: Mapped[Optional[str]] = mapped_column(String(30))  # None for the intake row
    to_status: Mapped[str] = mapped_column(String(30), nullable=False)
    changed_by: Mapped[Optional[uuid.UUID]] = mapped_column(UUID(as_uuid=True), ForeignKey("users.id", ondelete="SET NULL"))
    changed_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utcnow, nullable=False)
    notes: Mapped[Optional[str]] = mapped_column(Text)

    equipment_status = relationship("EquipmentStatus", back_populates="history")

    __table_args__ = (
        Index('idx_status_history_job_changed', 'job_id', 'changed_at'),
    )


class WorkshopSettings(Base):
    """Per-company workshop limits, defaults and notification templates"""
    __tablename__ = "workshop_settings"

    id: Mapped[uuid.UUID] = uuid_pk()
    company_id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), ForeignKey("companies.id", ondelete="CASCADE"), unique=True, nullable=False)
    max_concurrent_jobs: Mapped[int] = mapped_column(Integer, default=20)
    max_jobs_per_technician: Mapped[int] = mapped_column(Integer, default=5)
    default_estimated_repair_hours: Mapped[int] = mapped_column(Integer, default=24)
    default_pickup_delivery_fee: Mapped[Decimal] = mapped_column(Numeric(10, 2), default=0)
    workshop_address: Mapped[Optional[str]] = mapped_column(Text)
    workshop_phone: Mapped[Optional[str]] = mapped_column(String(50))
    send_intake_confirmation: Mapped[bool] = mapped_column(Boolean, default=True)
    send_ready_notification: Mapped[bool] = mapped_column(Boolean, default=True)
    send_status_updates: Mapped[bool] = mapped_column(Boolean, default=False)
    intake_confirmation_template: Mapped[Optional[str]] = mapped_column(Text)
    ready_notification_template: Mapped[Optional[str]] = mapped_column(Text)
    status_update_template: Mapped[Optional[str]] = mapped_column(Text)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utcnow)
    updated_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))


class Notification(Base):
    __tablename__ = "notifications"

    id: Mapped[uuid.UUID] = uuid_pk()
    company_id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), ForeignKey("companies.id", ondelete="CASCADE"), nullable=False, index=True)
    customer_id: Mapped[Optional[uuid.UUID]] = mapped_column(UUID(as_uuid=True), ForeignKey("customers.id", ondelete="SET NULL"), index=True)
    job_id: Mapped[Optional[uuid.UUID]] = mapped_column(UUID(as_uuid=True), ForeignKey("jobs.id", ondelete="SET NULL"), index=True)
    channel: Mapped[str] = mapped_column(String(20), nullable=False)  # email|push
    template_key: Mapped[Optional[str]] = mapped_column(String(100))
    subject: Mapped[Optional[str]] = mapped_column(String(255))
    body: Mapped[Optional[str]] = mapped_column(Text)
    payload_json: Mapped[Optional[dict]] = mapped_column(JSON)
    status: Mapped[str] = mapped_column(String(20), default="pending", index=True)  # pending|sent|failed
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utcnow)
    sent_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))
