"""
Equipment intake: logging equipment arrival at the workshop.
"""
import uuid
from datetime import datetime
from typing import Optional

import structlog
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from ..db import unit_of_work
from ..models.models import EquipmentIntake, EquipmentStatus, Job
from ..schemas.workshop import EquipmentRepairStatus as S, IntakeCreate, IntakeNotesUpdate
from .errors import AlreadyExists, NotFound, ValidationError
from .jobs import get_company_job
from .notifications import Notifier, safe_notify
from .status_machine import apply_transition, record_history, stamp_status, sync_job_status
from .time_rules import add_hours, utcnow
from .workshop_settings import load_workshop_config


logger = structlog.get_logger(__name__)

INTAKE_NOTE = "Equipment received at workshop during intake"
NOTE_FIELDS = ("visual_condition", "physical_damage_notes", "accessories_included", "customer_notes", "internal_notes")
DUPLICATE_INTAKE = "Intake record already exists for this job"


def validate_intake(data: IntakeCreate) -> None:
    if not data.reported_issue or not data.reported_issue.strip():
        raise ValidationError("Reported issue is required")
    if data.estimated_repair_time is not None and data.estimated_repair_time < 0:
        raise ValidationError("Estimated repair time must be a positive number")


def estimate_completion(db: Session, company_id: uuid.UUID, estimated_repair_hours: Optional[int], start: Optional[datetime] = None) -> datetime:
    hours = estimated_repair_hours or load_workshop_config(db, company_id).default_estimated_repair_hours
    return add_hours(start or utcnow(), hours)


def _initialize_status(db: Session, job: Job, actor_id: Optional[uuid.UUID], now: datetime) -> EquipmentStatus:
    """Create the status row at received, or advance an existing pre-arrival row."""
    row = db.query(EquipmentStatus).filter(EquipmentStatus.job_id == job.id).with_for_update().first()
    if row is not None:
        row, _ = apply_transition(db, job, S.received, actor_id, INTAKE_NOTE)
        return row

    row = EquipmentStatus(job_id=job.id, current_status=S.received.value, created_at=now, updated_at=now)
    stamp_status(row, S.received, now)
    db.add(row)
    db.flush()
    record_history(db, row, None, S.received, actor_id, INTAKE_NOTE, now)
    sync_job_status(job, S.received, now)
    return row


def intake_exists(db: Session, job_id: uuid.UUID) -> bool:
    return db.query(EquipmentIntake.id).filter(EquipmentIntake.job_id == job_id).first() is not None


def create_intake(
    db: Session,
    company_id: uuid.UUID,
    actor_id: Optional[uuid.UUID],
    data: IntakeCreate,
    notify: Optional[Notifier] = None,
) -> EquipmentIntake:
    validate_intake(data)

    with unit_of_work(db):
        job = get_company_job(db, data.job_id, company_id, lock=True)
        if job.location_type != "workshop":
            raise ValidationError("Job must be a workshop job to create intake record")
        if intake_exists(db, job.id):
            raise AlreadyExists(DUPLICATE_INTAKE)

        now = utcnow()
        intake = EquipmentIntake(
            job_id=job.id,
            received_by=actor_id,
            intake_date=data.intake_date or now,
            reported_issue=data.reported_issue.strip(),
            visual_condition=data.visual_condition,
            physical_damage_notes=data.physical_damage_notes,
            accessories_included=data.accessories_included,
            photos=data.photos,
            customer_signature=data.customer_signature,
            customer_notes=data.customer_notes,
            internal_notes=data.internal_notes,
            estimated_repair_time=data.estimated_repair_time,
            created_at=now,
        )
        db.add(intake)
        try:
            db.flush()
        except IntegrityError:
            # A concurrent intake for the same job committed first
            raise AlreadyExists(DUPLICATE_INTAKE)
        _initialize_status(db, job, actor_id, now)
        job.estimated_completion_date = estimate_completion(db, company_id, data.estimated_repair_time, now)
        db.flush()

    db.refresh(intake)
    logger.info("equipment_intake_created", job_id=str(data.job_id), intake_id=str(intake.id))
    safe_notify(notify, data.job_id, company_id, "intake_confirmation", {})
    return intake


def get_intake(db: Session, job_id: uuid.UUID, company_id: uuid.UUID) -> EquipmentIntake:
    job = get_company_job(db, job_id, company_id)
    intake = db.query(EquipmentIntake).filter(EquipmentIntake.job_id == job.id).first()
    if not intake:
        raise NotFound("Intake record not found for this job")
    return intake


def update_intake_notes(db: Session, intake_id: uuid.UUID, company_id: uuid.UUID, data: IntakeNotesUpdate) -> EquipmentIntake:
    """Only note fields are editable after intake."""
    intake = (
        db.query(EquipmentIntake)
        .join(Job, Job.id == EquipmentIntake.job_id)
        .filter(EquipmentIntake.id == intake_id, Job.company_id == company_id)
        .first()
    )
    if not intake:
        raise NotFound("Intake record not found")

    update_data = data.model_dump(exclude_unset=True)
    for key, value in update_data.items():
        if key in NOTE_FIELDS:
            setattr(intake, key, value)
    intake.updated_at = utcnow()
    db.commit()
    db.refresh(intake)
    return intake
