"""
Customer notifications for workshop events.
Records email/push notifications for delivery by an external sender, honoring
the global channel switches and the company's workshop notification toggles.
"""
import uuid
from dataclasses import dataclass
from typing import Any, Callable, Dict, Optional

import structlog
from sqlalchemy.orm import Session

from ..config import settings
from ..db import SessionLocal
from ..models.models import Job, Notification
from .time_rules import ensure_utc
from .workshop_settings import get_workshop_settings, resolve_workshop_config


logger = structlog.get_logger(__name__)

# notify(job_id, company_id, event, payload)
Notifier = Callable[[uuid.UUID, uuid.UUID, str, Dict[str, Any]], None]


@dataclass(frozen=True)
class _EventSpec:
    toggle: str
    template_field: Optional[str]
    subject: str
    default_template: str


EVENTS: Dict[str, _EventSpec] = {
    "intake_confirmation": _EventSpec(
        toggle="send_intake_confirmation",
        template_field="intake_confirmation_template",
        subject="Equipment Received - Job #{job_number}",
        default_template=(
            "Hi {customer_name}, we have received your {equipment_type} (job {job_number}). "
            "Estimated completion: {estimated_completion_date}. Questions? Call {workshop_phone}."
        ),
    ),
    "ready_for_pickup": _EventSpec(
        toggle="send_ready_notification",
        template_field="ready_notification_template",
        subject="Equipment Ready for Pickup - Job #{job_number}",
        default_template=(
            "Hi {customer_name}, your {equipment_type} (job {job_number}) is ready for pickup at "
            "{workshop_address}. Questions? Call {workshop_phone}."
        ),
    ),
    "status_update": _EventSpec(
        toggle="send_status_updates",
        template_field="status_update_template",
        subject="Equipment Status Update - Job #{job_number}",
        default_template=(
            "Hi {customer_name}, the status of your {equipment_type} (job {job_number}) is now {status}."
        ),
    ),
    "job_claimed": _EventSpec(
        toggle="send_status_updates",
        template_field="status_update_template",
        subject="Equipment Status Update - Job #{job_number}",
        default_template=(
            "Hi {customer_name}, a technician has started work on your {equipment_type} (job {job_number})."
        ),
    ),
    "delivery_scheduled": _EventSpec(
        toggle="send_status_updates",
        template_field=None,
        subject="Delivery Scheduled - Job #{job_number}",
        default_template=(
            "Hi {customer_name}, delivery of your {equipment_type} (job {job_number}) is scheduled for {delivery_date}."
        ),
    ),
}

TEMPLATE_FALLBACKS = {
    "customer_name": "Customer",
    "job_number": "N/A",
    "equipment_type": "Equipment",
    "estimated_completion_date": "TBD",
    "delivery_date": "TBD",
    "workshop_address": "Our workshop",
    "workshop_phone": "Contact us",
    "status": "updated",
}


def render_template(template: str, context: Dict[str, Any]) -> str:
    """Replace {placeholders}; unknown placeholders are left as written."""
    out = template
    for key, fallback in TEMPLATE_FALLBACKS.items():
        value = context.get(key)
        out = out.replace("{" + key + "}", str(value) if value not in (None, "") else fallback)
    return out


def _format_date(value) -> Optional[str]:
    if value is None:
        return None
    if isinstance(value, str):
        return value
    return ensure_utc(value).strftime("%Y-%m-%d")


def _build_context(job: Job, payload: Dict[str, Any], address: Optional[str], phone: Optional[str]) -> Dict[str, Any]:
    equipment_type = None
    if job.equipment and job.equipment.equipment_type:
        equipment_type = job.equipment.equipment_type.name
    return {
        "customer_name": job.customer.name if job.customer else None,
        "job_number": job.job_number,
        "equipment_type": equipment_type,
        "estimated_completion_date": _format_date(job.estimated_completion_date),
        "delivery_date": _format_date(payload.get("delivery_date") or job.delivery_scheduled_date),
        "workshop_address": address,
        "workshop_phone": phone,
        "status": payload.get("new_status"),
    }


def create_workshop_notifications(db: Session, job_id: uuid.UUID, company_id: uuid.UUID, event: str, payload: Dict[str, Any]) -> list:
    """
    Create notification rows for a workshop event.

    Returns:
        The Notification rows created (empty if the event is disabled or the
        customer has no reachable channel)
    """
    spec = EVENTS.get(event)
    if spec is None:
        logger.info("notification_event_ignored", notification_event=event, job_id=str(job_id))
        return []

    job = db.query(Job).filter(Job.id == job_id, Job.company_id == company_id).first()
    if not job or not job.customer:
        return []

    row = get_workshop_settings(db, company_id)
    config = resolve_workshop_config(row)
    if not getattr(config, spec.toggle):
        return []

    context = _build_context(
        job, payload,
        row.workshop_address if row else None,
        row.workshop_phone if row else None,
    )
    custom = getattr(config, spec.template_field) if spec.template_field else None
    body = render_template(custom or spec.default_template, context)
    subject = render_template(spec.subject, context)

    created = []
    channels = []
    if settings.enable_email and job.customer.email:
        channels.append("email")
    if settings.enable_push and job.customer.user_id:
        channels.append("push")
    for channel in channels:
        n = Notification(
            company_id=company_id,
            customer_id=job.customer_id,
            job_id=job.id,
            channel=channel,
            template_key=event,
            subject=subject,
            body=body,
            payload_json={k: (str(v) if v is not None else None) for k, v in payload.items()},
            status="pending",
        )
        db.add(n)
        created.append(n)
    db.commit()
    return created


def dispatch_workshop_notification(job_id: uuid.UUID, company_id: uuid.UUID, event: str, payload: Optional[Dict[str, Any]] = None) -> None:
    """Fire-and-forget notifier; runs after the triggering transaction has committed."""
    db = SessionLocal()
    try:
        created = create_workshop_notifications(db, job_id, company_id, event, payload or {})
        logger.info("notification_dispatched", notification_event=event, job_id=str(job_id), count=len(created))
    except Exception as e:
        db.rollback()
        logger.warning("notification_dispatch_failed", notification_event=event, job_id=str(job_id), error=str(e))
    finally:
        db.close()


def safe_notify(notify: Optional[Notifier], job_id: uuid.UUID, company_id: uuid.UUID, event: str, payload: Dict[str, Any]) -> None:
    """Invoke a notifier, logging instead of raising if it fails."""
    if notify is None:
        return
    try:
        notify(job_id, company_id, event, payload)
    except Exception as e:
        logger.warning("notification_dispatch_failed", notification_event=event, job_id=str(job_id), error=str(e))


def background_notifier(background_tasks) -> Notifier:
    """Notifier that defers dispatch until the response has been sent."""
    def _notify(job_id: uuid.UUID, company_id: uuid.UUID, event: str, payload: Dict[str, Any]) -> None:
        background_tasks.add_task(dispatch_workshop_notification, job_id, company_id, event, payload)

    return _notify
