"""
Equipment repair status machine.

Owns EquipmentStatus.current_status for workshop jobs: validates moves
against TRANSITIONS, stamps the per-status timestamp the first time a status
is entered, appends one EquipmentStatusHistory row per move and re-derives
the job's overall status.
"""
import uuid
from typing import Dict, List, Optional, Tuple, Union

import structlog
from sqlalchemy.orm import Session

from ..db import unit_of_work
from ..models.models import EquipmentStatus, EquipmentStatusHistory, Job
from ..schemas.workshop import EquipmentRepairStatus as S, JobStatus
from .errors import InvalidState, InvalidTransition, NotFound, ValidationError
from .jobs import get_workshop_job
from .notifications import Notifier, safe_notify
from .time_rules import utcnow


logger = structlog.get_logger(__name__)


TRANSITIONS: Dict[S, Tuple[S, ...]] = {
    S.pending_intake: (S.in_transit, S.received),
    S.in_transit: (S.received,),
    S.received: (S.in_repair,),
    S.in_repair: (S.repair_completed, S.received),  # received = rework
    S.repair_completed: (S.ready_for_pickup, S.out_for_delivery),
    S.ready_for_pickup: (S.returned,),
    S.out_for_delivery: (S.returned,),
    S.returned: (),
}

STATUS_TIMESTAMP_FIELDS = {
    S.pending_intake: EquipmentStatus.pending_intake_at,
    S.in_transit: EquipmentStatus.in_transit_at,
    S.received: EquipmentStatus.received_at,
    S.in_repair: EquipmentStatus.in_repair_at,
    S.repair_completed: EquipmentStatus.repair_completed_at,
    S.ready_for_pickup: EquipmentStatus.ready_for_pickup_at,
    S.out_for_delivery: EquipmentStatus.out_for_delivery_at,
    S.returned: EquipmentStatus.returned_at,
}

_JOB_STATUS_BY_EQUIPMENT_STATUS = {
    S.received: JobStatus.assigned,
    S.in_repair: JobStatus.in_progress,
    S.repair_completed: JobStatus.completed,
    S.ready_for_pickup: JobStatus.completed,
    S.out_for_delivery: JobStatus.completed,
    S.returned: JobStatus.completed,
}


def parse_status(value: Union[str, S]) -> S:
    try:
        return S(value)
    except ValueError:
        raise ValidationError(f"Unknown equipment status: {value}")


def allowed_transitions(status: Union[str, S]) -> Tuple[S, ...]:
    return TRANSITIONS[parse_status(status)]


def is_valid_transition(current: Union[str, S], new: Union[str, S]) -> bool:
    return parse_status(new) in allowed_transitions(current)


def validate_transition(current: Union[str, S], new: Union[str, S]) -> None:
    current_s, new_s = parse_status(current), parse_status(new)
    allowed = TRANSITIONS[current_s]
    if new_s not in allowed:
        raise InvalidTransition(current_s.value, new_s.value, [a.value for a in allowed])


def derive_job_status(equipment_status: Union[str, S]) -> JobStatus:
    return _JOB_STATUS_BY_EQUIPMENT_STATUS.get(parse_status(equipment_status), JobStatus.pending)


def stamp_status(row: EquipmentStatus, status: S, when) -> None:
    """Set the timestamp column for ``status`` unless it was already entered once."""
    attr = STATUS_TIMESTAMP_FIELDS[status].key
    if getattr(row, attr) is None:
        setattr(row, attr, when)


def sync_job_status(job: Job, equipment_status: S, when) -> None:
    job_status = derive_job_status(equipment_status)
    if job_status == JobStatus.completed and job.completed_at is None:
        job.completed_at = when
    job.status = job_status.value
    job.updated_at = when


def record_history(db: Session, row: EquipmentStatus, from_status: Optional[S], to_status: S, actor_id: Optional[uuid.UUID], notes: Optional[str], when) -> EquipmentStatusHistory:
    entry = EquipmentStatusHistory(
        equipment_status_id=row.id,
        job_id=row.job_id,
        from_status=from_status.value if from_status else None,
        to_status=to_status.value,
        changed_by=actor_id,
        changed_at=when,
        notes=notes,
    )
    db.add(entry)
    return entry


def apply_transition(
    db: Session,
    job: Job,
    new_status: Union[str, S],
    actor_id: Optional[uuid.UUID],
    notes: Optional[str] = None,
) -> Tuple[EquipmentStatus, S]:
    """
    Move ``job``'s equipment to ``new_status`` inside the caller's unit of work.

    Only flushes; the caller commits. Returns the updated status row and the
    status it moved from.
    """
    new_s = parse_status(new_status)
    row = (
        db.query(EquipmentStatus)
        .filter(EquipmentStatus.job_id == job.id)
        .with_for_update()
        .first()
    )
    if not row:
        raise NotFound("Equipment status record not found for this job")

    from_s = parse_status(row.current_status)
    validate_transition(from_s, new_s)
    if new_s == S.in_repair and job.technician_id is None:
        raise InvalidState(
            "Job has no technician assigned. Claim the job from the workshop queue to start the repair.",
            {"current_status": from_s.value},
        )

    now = utcnow()
    row.current_status = new_s.value
    stamp_status(row, new_s, now)
    row.updated_at = now
    record_history(db, row, from_s, new_s, actor_id, notes, now)

    if from_s == S.in_repair and new_s == S.received:
        # Rework puts the job back in the queue unassigned
        job.technician_id = None
    sync_job_status(job, new_s, now)
    db.flush()
    return row, from_s


def transition_status(
    db: Session,
    job_id: uuid.UUID,
    company_id: uuid.UUID,
    new_status: Union[str, S],
    actor_id: Optional[uuid.UUID],
    notes: Optional[str] = None,
    notify: Optional[Notifier] = None,
) -> EquipmentStatus:
    new_s = parse_status(new_status)
    with unit_of_work(db):
        job = get_workshop_job(db, job_id, company_id, lock=True)
        row, from_s = apply_transition(db, job, new_s, actor_id, notes)

    db.refresh(row)
    logger.info(
        "status_transitioned",
        job_id=str(job_id),
        from_status=from_s.value,
        to_status=new_s.value,
        actor_id=str(actor_id) if actor_id else None,
    )
    safe_notify(notify, job_id, company_id, "status_update", {"old_status": from_s.value, "new_status": new_s.value, "notes": notes})
    return row


def get_equipment_status(db: Session, job_id: uuid.UUID, company_id: uuid.UUID) -> EquipmentStatus:
    job = get_workshop_job(db, job_id, company_id)
    row = db.query(EquipmentStatus).filter(EquipmentStatus.job_id == job.id).first()
    if not row:
        raise NotFound("Equipment status record not found for this job")
    return row


def get_status_history(db: Session, job_id: uuid.UUID, company_id: uuid.UUID) -> List[EquipmentStatusHistory]:
    """Newest first."""
    job = get_workshop_job(db, job_id, company_id)
    return (
        db.query(EquipmentStatusHistory)
        .filter(EquipmentStatusHistory.job_id == job.id)
        .order_by(EquipmentStatusHistory.changed_at.desc(), EquipmentStatusHistory.id.desc())
        .all()
    )
