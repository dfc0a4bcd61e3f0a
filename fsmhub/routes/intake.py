import uuid

from fastapi import APIRouter, BackgroundTasks, Depends
from sqlalchemy.orm import Session

from ..db import get_db
from ..auth.security import STAFF_ROLES, CompanyContext, get_company_context, require_roles
from ..schemas.workshop import IntakeCreate, IntakeNotesUpdate, IntakeResponse
from ..services.intake import create_intake, get_intake, update_intake_notes
from ..services.notifications import background_notifier

router = APIRouter(prefix="/workshop/intake", tags=["workshop-intake"])

staff_only = require_roles(*STAFF_ROLES)


@router.post("", response_model=IntakeResponse, status_code=201)
def create_intake_record(
    body: IntakeCreate,
    background_tasks: BackgroundTasks,
    db: Session = Depends(get_db),
    ctx: CompanyContext = Depends(staff_only),
):
    """Log equipment arrival at the workshop"""
    return create_intake(db, ctx.company_id, ctx.actor_id, body, notify=background_notifier(background_tasks))


@router.get("/{job_id}", response_model=IntakeResponse)
def read_intake(
    job_id: uuid.UUID,
    db: Session = Depends(get_db),
    ctx: CompanyContext = Depends(get_company_context),
):
    return get_intake(db, job_id, ctx.company_id)


@router.put("/{intake_id}", response_model=IntakeResponse)
def update_notes(
    intake_id: uuid.UUID,
    body: IntakeNotesUpdate,
    db: Session = Depends(get_db),
    ctx: CompanyContext = Depends(staff_only),
):
    """Update intake note fields"""
    return update_intake_notes(db, intake_id, ctx.company_id, body)
