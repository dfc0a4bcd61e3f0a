"""
Return logistics: getting repaired equipment back to the customer.
"""
import uuid
from datetime import datetime
from decimal import Decimal
from typing import Optional

import structlog
from sqlalchemy.orm import Session

from ..db import unit_of_work
from ..models.models import EquipmentIntake, EquipmentStatus, Job
from ..schemas.workshop import EquipmentRepairStatus as S
from .errors import InvalidState, ValidationError
from .invoicing import refresh_job_total
from .jobs import get_company_job, get_company_technician
from .notifications import Notifier, safe_notify
from .status_machine import apply_transition
from .time_rules import ensure_utc
from .workshop_settings import load_workshop_config


logger = structlog.get_logger(__name__)


def _workshop_job(db: Session, job_id: uuid.UUID, company_id: uuid.UUID) -> Job:
    job = get_company_job(db, job_id, company_id, lock=True)
    if job.location_type != "workshop":
        raise ValidationError("Job is not a workshop job")
    return job


def mark_ready_for_pickup(
    db: Session,
    job_id: uuid.UUID,
    company_id: uuid.UUID,
    actor_id: Optional[uuid.UUID],
    notify_customer: bool = True,
    notes: Optional[str] = None,
    notify: Optional[Notifier] = None,
) -> EquipmentStatus:
    with unit_of_work(db):
        job = _workshop_job(db, job_id, company_id)
        row, _ = apply_transition(db, job, S.ready_for_pickup, actor_id, notes or "Equipment marked as ready for pickup")

    db.refresh(row)
    logger.info("equipment_ready_for_pickup", job_id=str(job_id), notify_customer=notify_customer)
    if notify_customer:
        safe_notify(notify, job_id, company_id, "ready_for_pickup", {})
    return row


def schedule_delivery(
    db: Session,
    job_id: uuid.UUID,
    company_id: uuid.UUID,
    actor_id: Optional[uuid.UUID],
    delivery_date: datetime,
    delivery_technician_id: uuid.UUID,
    delivery_fee: Optional[Decimal] = None,
    notify: Optional[Notifier] = None,
) -> Job:
    with unit_of_work(db):
        job = _workshop_job(db, job_id, company_id)
        get_company_technician(db, delivery_technician_id, company_id)

        if delivery_fee is None:
            delivery_fee = load_workshop_config(db, company_id).default_pickup_delivery_fee
        job.delivery_scheduled_date = ensure_utc(delivery_date)
        job.delivery_technician_id = delivery_technician_id
        job.pickup_delivery_fee = delivery_fee
        date_text = ensure_utc(delivery_date).strftime("%Y-%m-%d %H:%M UTC")
        apply_transition(db, job, S.out_for_delivery, actor_id, f"Delivery scheduled for {date_text}")

    db.refresh(job)
    logger.info("delivery_scheduled", job_id=str(job_id), delivery_technician_id=str(delivery_technician_id))
    safe_notify(notify, job_id, company_id, "delivery_scheduled", {"delivery_date": delivery_date})
    return job


def mark_returned(
    db: Session,
    job_id: uuid.UUID,
    company_id: uuid.UUID,
    actor_id: Optional[uuid.UUID],
    customer_signature: str,
    return_notes: Optional[str] = None,
    notify: Optional[Notifier] = None,
) -> EquipmentStatus:
    """
    Close out a workshop job: store the customer's signature, append any
    return notes to the intake and move the equipment to returned. The job
    total is refreshed afterwards on a best-effort basis.
    """
    if not customer_signature or not customer_signature.strip():
        raise ValidationError("Customer signature is required")

    with unit_of_work(db):
        job = _workshop_job(db, job_id, company_id)
        intake = db.query(EquipmentIntake).filter(EquipmentIntake.job_id == job.id).first()
        if intake is None:
            raise InvalidState("Intake record not found for this job")

        intake.customer_signature = customer_signature
        if return_notes:
            prefix = f"{intake.internal_notes}\n\n" if intake.internal_notes else ""
            intake.internal_notes = f"{prefix}Return Notes: {return_notes}"
        row, from_s = apply_transition(db, job, S.returned, actor_id, "Equipment returned to customer")

    db.refresh(row)
    logger.info("equipment_returned", job_id=str(job_id))
    refresh_job_total(job_id)
    safe_notify(notify, job_id, company_id, "status_update", {"old_status": from_s.value, "new_status": S.returned.value})
    return row
