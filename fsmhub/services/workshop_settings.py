"""
Workshop settings lookup.
A company without a settings row gets the defaults below; capacity checks
treat a missing row as unlimited, so callers that care keep the Optional.
"""
import uuid
from dataclasses import dataclass
from decimal import Decimal
from typing import Optional

from sqlalchemy.orm import Session

from ..models.models import WorkshopSettings


DEFAULT_MAX_CONCURRENT_JOBS = 20
DEFAULT_MAX_JOBS_PER_TECHNICIAN = 5
DEFAULT_ESTIMATED_REPAIR_HOURS = 24
DEFAULT_PICKUP_DELIVERY_FEE = Decimal("0")


@dataclass(frozen=True)
class WorkshopConfig:
    max_concurrent_jobs: int = DEFAULT_MAX_CONCURRENT_JOBS
    max_jobs_per_technician: int = DEFAULT_MAX_JOBS_PER_TECHNICIAN
    default_estimated_repair_hours: int = DEFAULT_ESTIMATED_REPAIR_HOURS
    default_pickup_delivery_fee: Decimal = DEFAULT_PICKUP_DELIVERY_FEE
    send_intake_confirmation: bool = True
    send_ready_notification: bool = True
    send_status_updates: bool = False
    intake_confirmation_template: Optional[str] = None
    ready_notification_template: Optional[str] = None
    status_update_template: Optional[str] = None


def get_workshop_settings(db: Session, company_id: uuid.UUID) -> Optional[WorkshopSettings]:
    return db.query(WorkshopSettings).filter(WorkshopSettings.company_id == company_id).first()


def _or_default(value, default):
    return default if value is None else value


def resolve_workshop_config(row: Optional[WorkshopSettings]) -> WorkshopConfig:
    """Collapse an optional settings row into a fully populated config."""
    if row is None:
        return WorkshopConfig()
    return WorkshopConfig(
        max_concurrent_jobs=_or_default(row.max_concurrent_jobs, DEFAULT_MAX_CONCURRENT_JOBS),
        max_jobs_per_technician=_or_default(row.max_jobs_per_technician, DEFAULT_MAX_JOBS_PER_TECHNICIAN),
        default_estimated_repair_hours=_or_default(row.default_estimated_repair_hours, DEFAULT_ESTIMATED_REPAIR_HOURS),
        default_pickup_delivery_fee=Decimal(str(_or_default(row.default_pickup_delivery_fee, DEFAULT_PICKUP_DELIVERY_FEE))),
        send_intake_confirmation=_or_default(row.send_intake_confirmation, True),
        send_ready_notification=_or_default(row.send_ready_notification, True),
        send_status_updates=_or_default(row.send_status_updates, False),
        intake_confirmation_template=row.intake_confirmation_template,
        ready_notification_template=row.ready_notification_template,
        status_update_template=row.status_update_template,
    )


def load_workshop_config(db: Session, company_id: uuid.UUID) -> WorkshopConfig:
    return resolve_workshop_config(get_workshop_settings(db, company_id))
