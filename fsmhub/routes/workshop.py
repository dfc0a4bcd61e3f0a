import math
import uuid
from datetime import datetime
from typing import Optional

from fastapi import APIRouter, BackgroundTasks, Depends, Query
from sqlalchemy.orm import Session

from ..db import get_db
from ..auth.security import STAFF_ROLES, CompanyContext, get_company_context, require_roles
from ..schemas.workshop import (
    CapacityCheckResponse,
    CapacitySnapshotResponse,
    ClaimRequest,
    ClaimResponse,
    EquipmentRepairStatus,
    EquipmentStatusResponse,
    JobPriority,
    JobStatus,
    MarkReturnedRequest,
    QueueCapacityHeadline,
    QueueItemResponse,
    QueueResponse,
    QueueSortBy,
    ReadyForPickupRequest,
    ScheduleDeliveryRequest,
    WorkshopJobListResponse,
    WorkshopJobResponse,
    WorkshopMetricsResponse,
)
from ..services.capacity import check_technician_capacity, check_workshop_capacity, get_capacity_utilization
from ..services.claim import claim_job, load_job_view
from ..services.jobs import get_company_technician, list_workshop_jobs
from ..services.notifications import background_notifier
from ..services.queue import QueueFilters, get_workshop_queue
from ..services.returns import mark_ready_for_pickup, mark_returned, schedule_delivery
from ..services.workshop_metrics import get_workshop_metrics

router = APIRouter(prefix="/workshop", tags=["workshop"])

staff_only = require_roles(*STAFF_ROLES)


def _total_pages(total: int, limit: int) -> int:
    return math.ceil(total / limit) if limit else 0


@router.get("/jobs", response_model=WorkshopJobListResponse)
def list_jobs(
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    search: Optional[str] = None,
    status: Optional[JobStatus] = None,
    priority: Optional[JobPriority] = None,
    equipment_status: Optional[EquipmentRepairStatus] = None,
    customer_id: Optional[uuid.UUID] = None,
    date_from: Optional[datetime] = None,
    date_to: Optional[datetime] = None,
    db: Session = Depends(get_db),
    ctx: CompanyContext = Depends(get_company_context),
):
    """List workshop jobs with filters"""
    items, total = list_workshop_jobs(
        db,
        ctx.company_id,
        page=page,
        limit=limit,
        search=search,
        status=status.value if status else None,
        priority=priority.value if priority else None,
        equipment_status=equipment_status.value if equipment_status else None,
        customer_id=customer_id,
        date_from=date_from,
        date_to=date_to,
    )
    return {"items": items, "total": total, "page": page, "limit": limit, "total_pages": _total_pages(total, limit)}


@router.get("/queue", response_model=QueueResponse)
def get_queue(
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    equipment_type: Optional[str] = None,
    customer_id: Optional[uuid.UUID] = None,
    priority: Optional[JobPriority] = None,
    sort_by: QueueSortBy = QueueSortBy.priority,
    db: Session = Depends(get_db),
    ctx: CompanyContext = Depends(get_company_context),
):
    """Workshop repair queue, highest priority score first"""
    filters = QueueFilters(
        equipment_type=equipment_type,
        customer_id=customer_id,
        priority=priority.value if priority else None,
    )
    items = get_workshop_queue(db, ctx.company_id, filters, sort_by=sort_by.value)
    start = (page - 1) * limit
    snapshot = get_capacity_utilization(db, ctx.company_id)
    return {
        "items": [QueueItemResponse.model_validate(i) for i in items[start:start + limit]],
        "total": len(items),
        "page": page,
        "limit": limit,
        "total_pages": _total_pages(len(items), limit),
        "capacity": QueueCapacityHeadline(
            utilization=snapshot.workshop.utilization_percentage,
            current_jobs=snapshot.workshop.current_active_jobs,
            max_jobs=snapshot.workshop.max_concurrent_jobs,
        ),
    }


@router.get("/capacity", response_model=CapacitySnapshotResponse)
def get_capacity(
    db: Session = Depends(get_db),
    ctx: CompanyContext = Depends(get_company_context),
):
    """Workshop and per-technician utilization"""
    return get_capacity_utilization(db, ctx.company_id)


@router.get("/capacity/check", response_model=CapacityCheckResponse)
def check_capacity(
    db: Session = Depends(get_db),
    ctx: CompanyContext = Depends(get_company_context),
):
    return check_workshop_capacity(db, ctx.company_id)


@router.get("/capacity/technicians/{technician_id}", response_model=CapacityCheckResponse)
def check_technician(
    technician_id: uuid.UUID,
    db: Session = Depends(get_db),
    ctx: CompanyContext = Depends(get_company_context),
):
    get_company_technician(db, technician_id, ctx.company_id)
    return check_technician_capacity(db, technician_id, ctx.company_id)


@router.post("/jobs/{job_id}/claim", response_model=ClaimResponse)
def claim(
    job_id: uuid.UUID,
    body: ClaimRequest,
    background_tasks: BackgroundTasks,
    db: Session = Depends(get_db),
    ctx: CompanyContext = Depends(staff_only),
):
    """Claim a received job from the queue for a technician"""
    job = claim_job(
        db,
        job_id,
        body.technician_id,
        ctx.company_id,
        actor_id=ctx.actor_id,
        notify=background_notifier(background_tasks),
    )
    return {"job": job, "message": "Job claimed successfully"}


@router.post("/jobs/{job_id}/ready-for-pickup", response_model=EquipmentStatusResponse)
def ready_for_pickup(
    job_id: uuid.UUID,
    background_tasks: BackgroundTasks,
    body: Optional[ReadyForPickupRequest] = None,
    db: Session = Depends(get_db),
    ctx: CompanyContext = Depends(staff_only),
):
    body = body or ReadyForPickupRequest()
    return mark_ready_for_pickup(
        db,
        job_id,
        ctx.company_id,
        ctx.actor_id,
        notify_customer=body.notify_customer,
        notes=body.notes,
        notify=background_notifier(background_tasks),
    )


@router.post("/jobs/{job_id}/schedule-delivery", response_model=WorkshopJobResponse)
def schedule_job_delivery(
    job_id: uuid.UUID,
    body: ScheduleDeliveryRequest,
    background_tasks: BackgroundTasks,
    db: Session = Depends(get_db),
    ctx: CompanyContext = Depends(staff_only),
):
    job = schedule_delivery(
        db,
        job_id,
        ctx.company_id,
        ctx.actor_id,
        delivery_date=body.delivery_date,
        delivery_technician_id=body.delivery_technician_id,
        delivery_fee=body.delivery_fee,
        notify=background_notifier(background_tasks),
    )
    return load_job_view(db, job.id)


@router.post("/jobs/{job_id}/mark-returned", response_model=EquipmentStatusResponse)
def mark_job_returned(
    job_id: uuid.UUID,
    body: MarkReturnedRequest,
    background_tasks: BackgroundTasks,
    db: Session = Depends(get_db),
    ctx: CompanyContext = Depends(staff_only),
):
    return mark_returned(
        db,
        job_id,
        ctx.company_id,
        ctx.actor_id,
        customer_signature=body.customer_signature,
        return_notes=body.return_notes,
        notify=background_notifier(background_tasks),
    )


@router.get("/metrics", response_model=WorkshopMetricsResponse)
def metrics(
    date_from: Optional[datetime] = None,
    date_to: Optional[datetime] = None,
    db: Session = Depends(get_db),
    ctx: CompanyContext = Depends(get_company_context),
):
    return get_workshop_metrics(db, ctx.company_id, date_from, date_to)
