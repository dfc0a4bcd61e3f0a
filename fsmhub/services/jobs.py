"""
Company-scoped job lookups shared by the workshop services.
"""
import uuid
from datetime import datetime
from typing import List, Optional, Tuple

from sqlalchemy import or_
from sqlalchemy.orm import Session, joinedload

from ..models.models import Customer, CustomerEquipment, EquipmentStatus, Job, Technician
from .errors import NotFound


def get_company_job(db: Session, job_id: uuid.UUID, company_id: uuid.UUID, lock: bool = False) -> Job:
    q = db.query(Job).filter(Job.id == job_id, Job.company_id == company_id)
    if lock:
        q = q.with_for_update()
    job = q.first()
    if not job:
        raise NotFound("Job not found")
    return job


def get_workshop_job(db: Session, job_id: uuid.UUID, company_id: uuid.UUID, lock: bool = False) -> Job:
    job = get_company_job(db, job_id, company_id, lock=lock)
    if job.location_type != "workshop":
        raise NotFound("Workshop job not found")
    return job


def get_company_technician(db: Session, technician_id: uuid.UUID, company_id: uuid.UUID, lock: bool = False) -> Technician:
    q = db.query(Technician).filter(Technician.id == technician_id, Technician.company_id == company_id)
    if lock:
        q = q.with_for_update()
    tech = q.first()
    if not tech:
        raise NotFound("Technician not found or does not belong to this company")
    return tech


def list_workshop_jobs(
    db: Session,
    company_id: uuid.UUID,
    page: int = 1,
    limit: int = 10,
    search: Optional[str] = None,
    status: Optional[str] = None,
    priority: Optional[str] = None,
    equipment_status: Optional[str] = None,
    customer_id: Optional[uuid.UUID] = None,
    date_from: Optional[datetime] = None,
    date_to: Optional[datetime] = None,
) -> Tuple[List[Job], int]:
    """Paginated workshop jobs, newest first. Returns (page_items, total)."""
    q = (
        db.query(Job)
        .outerjoin(Customer, Customer.id == Job.customer_id)
        .outerjoin(EquipmentStatus, EquipmentStatus.job_id == Job.id)
        .filter(Job.company_id == company_id, Job.location_type == "workshop")
    )
    if search:
        like = f"%{search}%"
        q = q.filter(or_(
            Job.job_number.ilike(like),
            Job.title.ilike(like),
            Job.description.ilike(like),
            Customer.name.ilike(like),
        ))
    if status:
        q = q.filter(Job.status == status)
    if priority:
        q = q.filter(Job.priority == priority)
    if equipment_status:
        q = q.filter(EquipmentStatus.current_status == equipment_status)
    if customer_id:
        q = q.filter(Job.customer_id == customer_id)
    if date_from:
        q = q.filter(Job.created_at >= date_from)
    if date_to:
        q = q.filter(Job.created_at <= date_to)

    total = q.count()
    items = (
        q.options(
            joinedload(Job.customer),
            joinedload(Job.technician).joinedload(Technician.user),
            joinedload(Job.equipment).joinedload(CustomerEquipment.equipment_type),
            joinedload(Job.equipment_status),
            joinedload(Job.intake),
        )
        .order_by(Job.created_at.desc())
        .offset((page - 1) * limit)
        .limit(limit)
        .all()
    )
    return items, total
