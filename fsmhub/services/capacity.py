"""
Workshop and technician capacity.

The two check_* functions are admission checks computed fresh from the job
and equipment-status rows; a company with no settings row is unlimited.
get_capacity_utilization is the dashboard view and resolves missing settings
to the defaults instead.
"""
import uuid
from dataclasses import dataclass, field
from typing import List, Optional, Tuple

from sqlalchemy import func, or_
from sqlalchemy.orm import Session

from ..config import settings
from ..models.models import EquipmentStatus, Job, Technician, User
from .workshop_settings import get_workshop_settings, resolve_workshop_config


TECHNICIAN_ACTIVE_EQUIPMENT_STATUSES = ("in_repair", "repair_completed")
TECHNICIAN_INACTIVE_JOB_STATUSES = ("completed", "cancelled")
# Dashboard per-technician load
UTILIZATION_JOB_STATUSES = ("assigned", "in_progress")


@dataclass
class CapacityCheck:
    valid: bool
    current_count: int
    max_capacity: Optional[int] = None
    message: Optional[str] = None


@dataclass
class WorkshopCapacity:
    max_concurrent_jobs: int
    current_active_jobs: int
    utilization_percentage: float
    available_capacity: int
    warning: bool = False


@dataclass
class TechnicianUtilization:
    technician_id: uuid.UUID
    technician_name: str
    active_jobs: int
    max_jobs: int
    utilization_percentage: float
    available_capacity: int
    warning: bool = False


@dataclass
class CapacitySnapshot:
    workshop: WorkshopCapacity
    technicians: List[TechnicianUtilization] = field(default_factory=list)


def utilization_percent(current: int, maximum: int) -> float:
    if maximum <= 0:
        return 0.0
    return round(current / maximum * 100, 2)


def count_workshop_active_jobs(db: Session, company_id: uuid.UUID) -> int:
    """Workshop jobs not cancelled whose equipment has not been returned (or has no status yet)."""
    return (
        db.query(func.count(Job.id))
        .outerjoin(EquipmentStatus, EquipmentStatus.job_id == Job.id)
        .filter(
            Job.company_id == company_id,
            Job.location_type == "workshop",
            Job.status != "cancelled",
            or_(EquipmentStatus.current_status.is_(None), EquipmentStatus.current_status != "returned"),
        )
        .scalar()
        or 0
    )


def count_technician_active_jobs(db: Session, technician_id: uuid.UUID, company_id: uuid.UUID) -> int:
    return (
        db.query(func.count(Job.id))
        .join(EquipmentStatus, EquipmentStatus.job_id == Job.id)
        .filter(
            Job.technician_id == technician_id,
            Job.company_id == company_id,
            Job.location_type == "workshop",
            EquipmentStatus.current_status.in_(TECHNICIAN_ACTIVE_EQUIPMENT_STATUSES),
            Job.status.notin_(TECHNICIAN_INACTIVE_JOB_STATUSES),
        )
        .scalar()
        or 0
    )


def check_workshop_capacity(db: Session, company_id: uuid.UUID) -> CapacityCheck:
    current = count_workshop_active_jobs(db, company_id)
    row = get_workshop_settings(db, company_id)
    if row is None or row.max_concurrent_jobs is None:
        return CapacityCheck(valid=True, current_count=current)

    max_jobs = row.max_concurrent_jobs
    if current >= max_jobs:
        return CapacityCheck(
            valid=False,
            current_count=current,
            max_capacity=max_jobs,
            message=f"Workshop has reached maximum capacity ({max_jobs} jobs). Current active jobs: {current}",
        )
    return CapacityCheck(valid=True, current_count=current, max_capacity=max_jobs)


def check_technician_capacity(db: Session, technician_id: uuid.UUID, company_id: uuid.UUID) -> CapacityCheck:
    current = count_technician_active_jobs(db, technician_id, company_id)
    row = get_workshop_settings(db, company_id)
    if row is None or row.max_jobs_per_technician is None:
        return CapacityCheck(valid=True, current_count=current)

    max_jobs = row.max_jobs_per_technician
    if current >= max_jobs:
        return CapacityCheck(
            valid=False,
            current_count=current,
            max_capacity=max_jobs,
            message=f"Technician has reached maximum capacity ({max_jobs} jobs). Current active jobs: {current}",
        )
    return CapacityCheck(valid=True, current_count=current, max_capacity=max_jobs)


def get_capacity_utilization(db: Session, company_id: uuid.UUID) -> CapacitySnapshot:
    config = resolve_workshop_config(get_workshop_settings(db, company_id))
    threshold = settings.capacity_warning_percent

    active = count_workshop_active_jobs(db, company_id)
    workshop_pct = utilization_percent(active, config.max_concurrent_jobs)
    workshop = WorkshopCapacity(
        max_concurrent_jobs=config.max_concurrent_jobs,
        current_active_jobs=active,
        utilization_percentage=workshop_pct,
        available_capacity=max(0, config.max_concurrent_jobs - active),
        warning=workshop_pct >= threshold,
    )

    max_per_tech = config.max_jobs_per_technician
    technicians = []
    for tech_id, name, count in active_jobs_per_technician(db, company_id):
        pct = utilization_percent(count, max_per_tech)
        technicians.append(TechnicianUtilization(
            technician_id=tech_id,
            technician_name=name,
            active_jobs=count,
            max_jobs=max_per_tech,
            utilization_percentage=pct,
            available_capacity=max(0, max_per_tech - count),
            warning=pct >= threshold,
        ))
    return CapacitySnapshot(workshop=workshop, technicians=technicians)


def active_jobs_per_technician(db: Session, company_id: uuid.UUID) -> List[Tuple[uuid.UUID, str, int]]:
    """(technician_id, name, active workshop jobs) for available technicians, busiest first."""
    active_jobs = func.count(Job.id).label("active_jobs")
    return (
        db.query(Technician.id, User.full_name, active_jobs)
        .join(User, User.id == Technician.user_id)
        .outerjoin(
            Job,
            (Job.technician_id == Technician.id)
            & (Job.location_type == "workshop")
            & (Job.status.in_(UTILIZATION_JOB_STATUSES))
            & (Job.company_id == company_id),
        )
        .filter(Technician.company_id == company_id, Technician.is_available.is_(True))
        .group_by(Technician.id, User.full_name)
        .order_by(active_jobs.desc(), User.full_name.asc())
        .all()
    )
