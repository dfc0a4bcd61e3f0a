"""
Workshop repair queue.

Jobs waiting at the depot (equipment received or in repair) ordered by a
priority score: priority weight + whole days waiting + an overdue bonus.
Read only; no locking.
"""
import uuid
from dataclasses import dataclass
from datetime import datetime
from typing import List, Optional

from sqlalchemy.orm import Session, joinedload

from ..models.models import CustomerEquipment, EquipmentIntake, EquipmentStatus, EquipmentType, Job, Technician
from .time_rules import ensure_utc, utcnow, whole_days_between


PRIORITY_WEIGHTS = {
    "urgent": 100,
    "high": 75,
    "medium": 50,
    "low": 25,
}
OVERDUE_BONUS = 50
QUEUE_STATUSES = ("received", "in_repair")


@dataclass
class QueueFilters:
    equipment_type: Optional[str] = None
    customer_id: Optional[uuid.UUID] = None
    priority: Optional[str] = None


@dataclass
class QueueItem:
    job: Job
    priority_score: int
    days_waiting: int
    is_overdue: bool


def priority_weight(priority: str) -> int:
    return PRIORITY_WEIGHTS.get(priority, 0)


def days_waiting(intake_date: datetime, now: Optional[datetime] = None) -> int:
    return whole_days_between(intake_date, now or utcnow())


def is_overdue(estimated_completion_date: Optional[datetime], now: Optional[datetime] = None) -> bool:
    if estimated_completion_date is None:
        return False
    return ensure_utc(estimated_completion_date) < ensure_utc(now or utcnow())


def calculate_priority_score(
    priority: str,
    intake_date: datetime,
    estimated_completion_date: Optional[datetime] = None,
    now: Optional[datetime] = None,
) -> int:
    now = now or utcnow()
    score = priority_weight(priority) + days_waiting(intake_date, now)
    if is_overdue(estimated_completion_date, now):
        score += OVERDUE_BONUS
    return score


def _queue_query(db: Session, company_id: uuid.UUID, filters: QueueFilters):
    q = (
        db.query(Job)
        .join(EquipmentStatus, EquipmentStatus.job_id == Job.id)
        .join(EquipmentIntake, EquipmentIntake.job_id == Job.id)
        .filter(
            Job.company_id == company_id,
            Job.location_type == "workshop",
            EquipmentStatus.current_status.in_(QUEUE_STATUSES),
        )
    )
    if filters.equipment_type:
        q = (
            q.join(CustomerEquipment, CustomerEquipment.id == Job.equipment_id)
            .join(EquipmentType, EquipmentType.id == CustomerEquipment.equipment_type_id)
            .filter(EquipmentType.name == filters.equipment_type)
        )
    if filters.customer_id:
        q = q.filter(Job.customer_id == filters.customer_id)
    if filters.priority:
        q = q.filter(Job.priority == filters.priority)
    return q.options(
        joinedload(Job.customer),
        joinedload(Job.technician).joinedload(Technician.user),
        joinedload(Job.equipment).joinedload(CustomerEquipment.equipment_type),
        joinedload(Job.equipment_status),
        joinedload(Job.intake),
    )


def get_workshop_queue(
    db: Session,
    company_id: uuid.UUID,
    filters: Optional[QueueFilters] = None,
    sort_by: str = "priority",
    now: Optional[datetime] = None,
) -> List[QueueItem]:
    """
    Return the company's queue.

    Args:
        filters: optional equipment type name / customer / priority filters
        sort_by: "priority" (score, highest first), "intake_date" (oldest
            first) or "estimated_completion" (soonest first, undated last)
        now: reference time for scoring (defaults to the current UTC time)

    Equal keys keep the natural newest-created-first order.
    """
    now = now or utcnow()
    jobs = (
        _queue_query(db, company_id, filters or QueueFilters())
        .order_by(Job.created_at.desc())
        .all()
    )

    items = []
    for job in jobs:
        intake_date = job.intake.intake_date
        items.append(QueueItem(
            job=job,
            priority_score=calculate_priority_score(job.priority, intake_date, job.estimated_completion_date, now),
            days_waiting=days_waiting(intake_date, now),
            is_overdue=is_overdue(job.estimated_completion_date, now),
        ))

    if sort_by == "intake_date":
        items.sort(key=lambda i: ensure_utc(i.job.intake.intake_date))
    elif sort_by == "estimated_completion":
        items.sort(key=lambda i: (
            i.job.estimated_completion_date is None,
            ensure_utc(i.job.estimated_completion_date) or now,
        ))
    else:
        items.sort(key=lambda i: i.priority_score, reverse=True)
    return items
