import uuid
from typing import List

from fastapi import APIRouter, BackgroundTasks, Depends
from sqlalchemy.orm import Session

from ..db import get_db
from ..auth.security import STAFF_ROLES, CompanyContext, get_company_context, require_roles
from ..schemas.workshop import EquipmentStatusResponse, StatusHistoryEntry, StatusTransitionRequest
from ..services.notifications import background_notifier
from ..services.status_machine import get_equipment_status, get_status_history, transition_status

router = APIRouter(prefix="/workshop/status", tags=["workshop-status"])


@router.get("/{job_id}", response_model=EquipmentStatusResponse)
def get_status(
    job_id: uuid.UUID,
    db: Session = Depends(get_db),
    ctx: CompanyContext = Depends(get_company_context),
):
    return get_equipment_status(db, job_id, ctx.company_id)


@router.put("/{job_id}", response_model=EquipmentStatusResponse)
def update_status(
    job_id: uuid.UUID,
    body: StatusTransitionRequest,
    background_tasks: BackgroundTasks,
    db: Session = Depends(get_db),
    ctx: CompanyContext = Depends(require_roles(*STAFF_ROLES)),
):
    """Move equipment to the next repair status"""
    return transition_status(
        db,
        job_id,
        ctx.company_id,
        body.status,
        ctx.actor_id,
        body.notes,
        notify=background_notifier(background_tasks),
    )


@router.get("/{job_id}/history", response_model=List[StatusHistoryEntry])
def get_history(
    job_id: uuid.UUID,
    db: Session = Depends(get_db),
    ctx: CompanyContext = Depends(get_company_context),
):
    """Status history, newest first"""
    return get_status_history(db, job_id, ctx.company_id)
