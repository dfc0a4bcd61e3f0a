"""
Claiming queued workshop jobs.

claim_job is the only write path that assigns a technician to a workshop
job. Every check and write runs in one unit of work: job, technician and
equipment status rows are locked, the technician's load is recounted inside
the transaction, and the assignment is a conditional update on an empty
technician_id so two claims of the same job cannot both land.
"""
import uuid
from typing import Optional

import structlog
from sqlalchemy import update
from sqlalchemy.orm import Session, joinedload

from ..db import unit_of_work
from ..models.models import CustomerEquipment, EquipmentStatus, Job, Technician
from .capacity import check_technician_capacity
from .errors import AlreadyAssigned, CapacityExceeded, InvalidState, WorkshopError
from .jobs import get_company_technician, get_workshop_job
from .notifications import Notifier, safe_notify
from .status_machine import apply_transition
from .time_rules import utcnow


logger = structlog.get_logger(__name__)

CLAIM_NOTE = "Job claimed by technician from workshop queue"


def load_job_view(db: Session, job_id: uuid.UUID) -> Job:
    """Job with customer, technician (and user), equipment, status and intake loaded."""
    return (
        db.query(Job)
        .options(
            joinedload(Job.customer),
            joinedload(Job.technician).joinedload(Technician.user),
            joinedload(Job.equipment).joinedload(CustomerEquipment.equipment_type),
            joinedload(Job.equipment_status),
            joinedload(Job.intake),
        )
        .filter(Job.id == job_id)
        .populate_existing()
        .one()
    )


def _claim(db: Session, job_id: uuid.UUID, technician_id: uuid.UUID, company_id: uuid.UUID, actor_id: Optional[uuid.UUID]) -> None:
    job = get_workshop_job(db, job_id, company_id, lock=True)
    if job.technician_id is not None:
        raise AlreadyAssigned("Job is already assigned to a technician")

    status_row = (
        db.query(EquipmentStatus)
        .filter(EquipmentStatus.job_id == job.id)
        .with_for_update()
        .first()
    )
    if status_row is None or status_row.current_status != "received":
        current = status_row.current_status if status_row else None
        raise InvalidState(
            f"Job cannot be claimed. Current equipment status: {current}. Only 'received' jobs can be claimed.",
            {"current_status": current},
        )

    get_company_technician(db, technician_id, company_id, lock=True)

    capacity = check_technician_capacity(db, technician_id, company_id)
    if not capacity.valid:
        raise CapacityExceeded(capacity.message, capacity.current_count, capacity.max_capacity)

    now = utcnow()
    result = db.execute(
        update(Job)
        .where(Job.id == job.id, Job.technician_id.is_(None))
        .values(technician_id=technician_id, status="in_progress", started_at=now, updated_at=now)
        .execution_options(synchronize_session=False)
    )
    if result.rowcount != 1:
        raise AlreadyAssigned("Job is already assigned to a technician")
    db.refresh(job)

    apply_transition(db, job, "in_repair", actor_id, CLAIM_NOTE)


def claim_job(
    db: Session,
    job_id: uuid.UUID,
    technician_id: uuid.UUID,
    company_id: uuid.UUID,
    actor_id: Optional[uuid.UUID] = None,
    notify: Optional[Notifier] = None,
) -> Job:
    """
    Assign ``technician_id`` to a received workshop job and move it into repair.

    Raises NotFound, AlreadyAssigned, InvalidState or CapacityExceeded; on any
    error nothing is written.
    """
    try:
        with unit_of_work(db):
            _claim(db, job_id, technician_id, company_id, actor_id)
    except WorkshopError as e:
        logger.info("claim_rejected", job_id=str(job_id), technician_id=str(technician_id), reason=e.code)
        raise

    logger.info("job_claimed", job_id=str(job_id), technician_id=str(technician_id), actor_id=str(actor_id) if actor_id else None)
    safe_notify(notify, job_id, company_id, "job_claimed", {"technician_id": str(technician_id)})
    return load_job_view(db, job_id)
