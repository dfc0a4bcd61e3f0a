"""
Invoice readiness and job totals.
A job total is the sum of its parts line items plus, for workshop jobs, the
pickup/delivery fee. Labor and tax are computed by the invoicing system.
"""
import uuid
from dataclasses import dataclass
from decimal import Decimal
from typing import List, Optional, Tuple

import structlog
from sqlalchemy import func, or_
from sqlalchemy.orm import Session, joinedload

from ..db import SessionLocal
from ..models.models import EquipmentStatus, Job, JobPart
from .errors import NotFound
from .time_rules import utcnow


logger = structlog.get_logger(__name__)

CENTS = Decimal("0.01")


@dataclass
class Readiness:
    job_id: uuid.UUID
    ready: bool
    reason: Optional[str] = None


def _get_job(db: Session, job_id: uuid.UUID, company_id: Optional[uuid.UUID] = None) -> Optional[Job]:
    q = db.query(Job).filter(Job.id == job_id)
    if company_id is not None:
        q = q.filter(Job.company_id == company_id)
    return q.first()


def is_job_ready_for_invoicing(db: Session, job_id: uuid.UUID, company_id: Optional[uuid.UUID] = None) -> Readiness:
    job = _get_job(db, job_id, company_id)
    if not job:
        return Readiness(job_id, False, "Job not found")
    if job.status != "completed":
        return Readiness(job_id, False, "Job is not completed")

    if job.location_type == "workshop":
        status_row = db.query(EquipmentStatus).filter(EquipmentStatus.job_id == job.id).first()
        if status_row is None:
            return Readiness(job_id, False, "Equipment status record not found for this job")
        if status_row.current_status != "returned":
            return Readiness(
                job_id,
                False,
                f"Equipment status is '{status_row.current_status}'. Equipment must be returned before invoicing.",
            )
    return Readiness(job_id, True)


def calculate_job_total(db: Session, job_id: uuid.UUID, company_id: Optional[uuid.UUID] = None) -> Decimal:
    job = _get_job(db, job_id, company_id)
    if not job:
        raise NotFound("Job not found")

    parts_total = (
        db.query(func.coalesce(func.sum(JobPart.total_price), 0))
        .filter(JobPart.job_id == job.id)
        .scalar()
    )
    total = Decimal(str(parts_total or 0))
    if job.location_type == "workshop" and job.pickup_delivery_fee:
        total += Decimal(str(job.pickup_delivery_fee))
    return total.quantize(CENTS)


def update_job_total(db: Session, job_id: uuid.UUID, company_id: Optional[uuid.UUID] = None) -> Decimal:
    """Store the computed total on the job; flushes only, the caller commits."""
    total = calculate_job_total(db, job_id, company_id)
    job = _get_job(db, job_id, company_id)
    job.total_cost = total
    job.updated_at = utcnow()
    db.flush()
    return total


def refresh_job_total(job_id: uuid.UUID) -> Optional[Decimal]:
    """Best-effort total refresh in its own session; failures are logged, never raised."""
    db = SessionLocal()
    try:
        total = update_job_total(db, job_id)
        db.commit()
        return total
    except Exception as e:
        db.rollback()
        logger.warning("job_total_refresh_failed", job_id=str(job_id), error=str(e))
        return None
    finally:
        db.close()


def list_jobs_ready_for_invoicing(
    db: Session,
    company_id: uuid.UUID,
    page: int = 1,
    limit: int = 20,
) -> Tuple[List[Job], int]:
    """Completed on-site jobs and completed workshop jobs whose equipment is back with the customer."""
    q = (
        db.query(Job)
        .outerjoin(EquipmentStatus, EquipmentStatus.job_id == Job.id)
        .filter(
            Job.company_id == company_id,
            Job.status == "completed",
            or_(
                Job.location_type == "on_site",
                (Job.location_type == "workshop") & (EquipmentStatus.current_status == "returned"),
            ),
        )
    )
    total = q.count()
    items = (
        q.options(joinedload(Job.customer))
        .order_by(Job.completed_at.desc(), Job.created_at.desc())
        .offset((page - 1) * limit)
        .limit(limit)
        .all()
    )
    return items, total
