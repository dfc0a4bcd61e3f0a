from datetime import datetime, timedelta, timezone
from decimal import Decimal

import pytest

from fsmhub.models.models import EquipmentIntake, EquipmentStatusHistory, Job, JobPart
from fsmhub.services.errors import InvalidState, InvalidTransition, ValidationError
from fsmhub.services.returns import mark_ready_for_pickup, mark_returned, schedule_delivery


def _latest(db, job_id):
    return (
        db.query(EquipmentStatusHistory)
        .filter_by(job_id=job_id)
        .order_by(EquipmentStatusHistory.changed_at.desc())
        .first()
    )


class TestReadyForPickup:
    def test_moves_to_ready_and_notifies(self, db, company, admin, make_workshop_job):
        job = make_workshop_job(status="repair_completed")
        events = []

        row = mark_ready_for_pickup(db, job.id, company.id, admin.id, notify=lambda *a: events.append(a[2]))

        assert row.current_status == "ready_for_pickup"
        assert row.ready_for_pickup_at is not None
        assert events == ["ready_for_pickup"]
        assert _latest(db, job.id).notes == "Equipment marked as ready for pickup"

    def test_notification_can_be_skipped(self, db, company, admin, make_workshop_job):
        job = make_workshop_job(status="repair_completed")
        events = []

        mark_ready_for_pickup(db, job.id, company.id, admin.id, notify_customer=False, notify=lambda *a: events.append(a))
        assert events == []

    def test_requires_completed_repair(self, db, company, admin, make_workshop_job):
        job = make_workshop_job(status="in_repair")
        with pytest.raises(InvalidTransition):
            mark_ready_for_pickup(db, job.id, company.id, admin.id)

    def test_on_site_job_rejected(self, db, company, admin, make_job):
        job = make_job(location_type="on_site")
        with pytest.raises(ValidationError):
            mark_ready_for_pickup(db, job.id, company.id, admin.id)


class TestScheduleDelivery:
    def test_sets_delivery_fields(self, db, company, admin, technician, workshop_settings, make_workshop_job):
        workshop_settings(default_pickup_delivery_fee=Decimal("12.50"))
        job = make_workshop_job(status="repair_completed")
        when = datetime(2026, 3, 4, 15, 30, tzinfo=timezone.utc)

        job = schedule_delivery(db, job.id, company.id, admin.id, when, technician.id)

        assert job.delivery_technician_id == technician.id
        assert job.pickup_delivery_fee == Decimal("12.50")
        assert job.equipment_status.current_status == "out_for_delivery"
        assert _latest(db, job.id).notes == "Delivery scheduled for 2026-03-04 15:30 UTC"

    def test_explicit_fee_wins(self, db, company, admin, technician, make_workshop_job):
        job = make_workshop_job(status="repair_completed")
        job = schedule_delivery(
            db, job.id, company.id, admin.id,
            datetime.now(timezone.utc) + timedelta(days=1), technician.id,
            delivery_fee=Decimal("30.00"),
        )
        assert job.pickup_delivery_fee == Decimal("30.00")

    def test_requires_completed_repair(self, db, company, admin, technician, make_workshop_job):
        job = make_workshop_job(status="received")
        with pytest.raises(InvalidTransition):
            schedule_delivery(db, job.id, company.id, admin.id, datetime.now(timezone.utc), technician.id)
        db.expire_all()
        assert db.get(Job, job.id).delivery_technician_id is None


class TestMarkReturned:
    def test_closes_out_job(self, db, company, admin, make_workshop_job):
        job = make_workshop_job(status="ready_for_pickup")
        intake = db.query(EquipmentIntake).filter_by(job_id=job.id).one()
        intake.internal_notes = "Replaced belt"
        db.add(JobPart(job_id=job.id, quantity_used=2, unit_price=Decimal("10.00"), total_price=Decimal("20.00")))
        db.commit()

        row = mark_returned(db, job.id, company.id, admin.id, customer_signature="sig-data", return_notes="Collected by owner")

        assert row.current_status == "returned"
        db.expire_all()
        intake = db.query(EquipmentIntake).filter_by(job_id=job.id).one()
        assert intake.customer_signature == "sig-data"
        assert intake.internal_notes == "Replaced belt\n\nReturn Notes: Collected by owner"
        assert db.get(Job, job.id).total_cost == Decimal("20.00")

    @pytest.mark.parametrize("from_status", ["ready_for_pickup", "out_for_delivery"])
    def test_notification_carries_previous_status(self, db, company, admin, make_workshop_job, from_status):
        job = make_workshop_job(status=from_status)
        calls = []

        mark_returned(db, job.id, company.id, admin.id, customer_signature="sig", notify=lambda *a: calls.append(a))

        assert len(calls) == 1
        _, _, event, payload = calls[0]
        assert event == "status_update"
        assert payload == {"old_status": from_status, "new_status": "returned"}

    def test_signature_required(self, db, company, admin, make_workshop_job):
        job = make_workshop_job(status="ready_for_pickup")
        with pytest.raises(ValidationError):
            mark_returned(db, job.id, company.id, admin.id, customer_signature="  ")

    def test_intake_required(self, db, company, admin, make_workshop_job):
        job = make_workshop_job(status="ready_for_pickup", with_intake=False)
        with pytest.raises(InvalidState):
            mark_returned(db, job.id, company.id, admin.id, customer_signature="sig")

    def test_not_from_repair(self, db, company, admin, make_workshop_job):
        job = make_workshop_job(status="in_repair")
        with pytest.raises(InvalidTransition):
            mark_returned(db, job.id, company.id, admin.id, customer_signature="sig")
        db.expire_all()
        assert db.query(EquipmentIntake).filter_by(job_id=job.id).one().customer_signature is None
