import math
import uuid

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from ..db import get_db
from ..auth.security import CompanyContext, get_company_context, require_roles
from ..schemas.workshop import InvoiceReadinessResponse, InvoiceReadyListResponse, JobTotalResponse
from ..services.invoicing import (
    calculate_job_total,
    is_job_ready_for_invoicing,
    list_jobs_ready_for_invoicing,
    update_job_total,
)

router = APIRouter(prefix="/invoices", tags=["invoices"])


@router.get("/ready", response_model=InvoiceReadyListResponse)
def ready_jobs(
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    db: Session = Depends(get_db),
    ctx: CompanyContext = Depends(get_company_context),
):
    """Completed jobs that can be invoiced"""
    items, total = list_jobs_ready_for_invoicing(db, ctx.company_id, page=page, limit=limit)
    return {
        "items": items,
        "total": total,
        "page": page,
        "limit": limit,
        "total_pages": math.ceil(total / limit),
    }


@router.get("/jobs/{job_id}/ready", response_model=InvoiceReadinessResponse)
def job_ready(
    job_id: uuid.UUID,
    db: Session = Depends(get_db),
    ctx: CompanyContext = Depends(get_company_context),
):
    return is_job_ready_for_invoicing(db, job_id, ctx.company_id)


@router.get("/jobs/{job_id}/total", response_model=JobTotalResponse)
def job_total(
    job_id: uuid.UUID,
    db: Session = Depends(get_db),
    ctx: CompanyContext = Depends(get_company_context),
):
    return {"job_id": job_id, "total": calculate_job_total(db, job_id, ctx.company_id)}


@router.post("/jobs/{job_id}/calculate", response_model=JobTotalResponse)
def recalculate_total(
    job_id: uuid.UUID,
    db: Session = Depends(get_db),
    ctx: CompanyContext = Depends(require_roles("admin", "manager")),
):
    """Recompute and store the job total"""
    total = update_job_total(db, job_id, ctx.company_id)
    db.commit()
    return {"job_id": job_id, "total": total}
