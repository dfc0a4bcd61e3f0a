"""
Workshop performance metrics for the dashboard.
"""
import uuid
from dataclasses import dataclass, field
from datetime import datetime
from typing import Dict, List, Optional

from sqlalchemy import func
from sqlalchemy.orm import Session

from ..models.models import EquipmentStatus, Job
from ..schemas.workshop import EquipmentRepairStatus
from .capacity import active_jobs_per_technician, count_workshop_active_jobs, utilization_percent
from .time_rules import ensure_utc, hours_between
from .workshop_settings import load_workshop_config


@dataclass
class TechnicianLoad:
    technician_id: uuid.UUID
    technician_name: str
    active_jobs: int


@dataclass
class WorkshopMetrics:
    total_jobs: int
    jobs_by_status: Dict[str, int]
    average_repair_time_hours: float
    on_time_completion_rate: float
    current_capacity_utilization: float
    jobs_per_technician: List[TechnicianLoad] = field(default_factory=list)


def _workshop_status_query(db: Session, company_id: uuid.UUID, *columns):
    return (
        db.query(*columns)
        .select_from(Job)
        .join(EquipmentStatus, EquipmentStatus.job_id == Job.id)
        .filter(Job.company_id == company_id, Job.location_type == "workshop")
    )


def average_repair_time_hours(db: Session, company_id: uuid.UUID, date_from: Optional[datetime] = None, date_to: Optional[datetime] = None) -> float:
    """Mean hours from received to repair completed, over jobs received in the window."""
    q = _workshop_status_query(db, company_id, EquipmentStatus.received_at, EquipmentStatus.repair_completed_at).filter(
        EquipmentStatus.received_at.isnot(None),
        EquipmentStatus.repair_completed_at.isnot(None),
    )
    if date_from:
        q = q.filter(EquipmentStatus.received_at >= date_from)
    if date_to:
        q = q.filter(EquipmentStatus.received_at <= date_to)

    durations = [hours_between(received, completed) for received, completed in q.all()]
    if not durations:
        return 0.0
    return sum(durations) / len(durations)


def jobs_by_status(db: Session, company_id: uuid.UUID, date_from: Optional[datetime] = None, date_to: Optional[datetime] = None) -> Dict[str, int]:
    counts = {s.value: 0 for s in EquipmentRepairStatus}
    q = (
        db.query(EquipmentStatus.current_status, func.count(Job.id))
        .select_from(Job)
        .outerjoin(EquipmentStatus, EquipmentStatus.job_id == Job.id)
        .filter(Job.company_id == company_id, Job.location_type == "workshop")
    )
    if date_from:
        q = q.filter(Job.created_at >= date_from)
    if date_to:
        q = q.filter(Job.created_at <= date_to)
    for status, count in q.group_by(EquipmentStatus.current_status).all():
        if status:
            counts[status] = count
    return counts


def on_time_completion_rate(db: Session, company_id: uuid.UUID, date_from: Optional[datetime] = None, date_to: Optional[datetime] = None) -> float:
    """Percentage of completed repairs finished by their estimated completion date."""
    q = _workshop_status_query(db, company_id, EquipmentStatus.repair_completed_at, Job.estimated_completion_date).filter(
        EquipmentStatus.repair_completed_at.isnot(None),
        Job.estimated_completion_date.isnot(None),
    )
    if date_from:
        q = q.filter(EquipmentStatus.repair_completed_at >= date_from)
    if date_to:
        q = q.filter(EquipmentStatus.repair_completed_at <= date_to)

    rows = q.all()
    if not rows:
        return 0.0
    on_time = sum(1 for completed, estimated in rows if ensure_utc(completed) <= ensure_utc(estimated))
    return on_time / len(rows) * 100


def get_workshop_metrics(db: Session, company_id: uuid.UUID, date_from: Optional[datetime] = None, date_to: Optional[datetime] = None) -> WorkshopMetrics:
    by_status = jobs_by_status(db, company_id, date_from, date_to)
    config = load_workshop_config(db, company_id)
    return WorkshopMetrics(
        total_jobs=sum(by_status.values()),
        jobs_by_status=by_status,
        average_repair_time_hours=round(average_repair_time_hours(db, company_id, date_from, date_to), 2),
        on_time_completion_rate=round(on_time_completion_rate(db, company_id, date_from, date_to), 2),
        current_capacity_utilization=utilization_percent(count_workshop_active_jobs(db, company_id), config.max_concurrent_jobs),
        jobs_per_technician=[
            TechnicianLoad(technician_id=tech_id, technician_name=name, active_jobs=count)
            for tech_id, name, count in active_jobs_per_technician(db, company_id)
        ],
    )
