import uuid

import pytest

from fsmhub.db import SessionLocal
from fsmhub.models.models import EquipmentStatus, EquipmentStatusHistory, Job
from fsmhub.services.claim import CLAIM_NOTE, claim_job
from fsmhub.services.errors import AlreadyAssigned, CapacityExceeded, InvalidState, NotFound


def _history(db, job_id):
    return db.query(EquipmentStatusHistory).filter_by(job_id=job_id).count()


class TestClaimJob:
    def test_claim_assigns_and_starts_repair(self, db, company, admin, technician, make_workshop_job):
        job = make_workshop_job(status="received")

        claimed = claim_job(db, job.id, technician.id, company.id, actor_id=admin.id)

        assert claimed.technician_id == technician.id
        assert claimed.status == "in_progress"
        assert claimed.started_at is not None
        assert claimed.equipment_status.current_status == "in_repair"
        assert claimed.equipment_status.in_repair_at is not None
        assert claimed.technician.user.full_name == "Sam Tech"

        latest = (
            db.query(EquipmentStatusHistory)
            .filter_by(job_id=job.id)
            .order_by(EquipmentStatusHistory.changed_at.desc())
            .first()
        )
        assert (latest.from_status, latest.to_status) == ("received", "in_repair")
        assert latest.notes == CLAIM_NOTE
        assert latest.changed_by == admin.id

    def test_second_claim_rejected(self, db, company, make_technician, make_workshop_job):
        first, second = make_technician(full_name="First"), make_technician(full_name="Second")
        job = make_workshop_job(status="received")
        claim_job(db, job.id, first.id, company.id)

        with pytest.raises(AlreadyAssigned):
            claim_job(db, job.id, second.id, company.id)

        db.expire_all()
        assert db.get(Job, job.id).technician_id == first.id

    def test_only_received_jobs(self, db, company, technician, make_workshop_job):
        job = make_workshop_job(status="pending_intake")

        with pytest.raises(InvalidState) as exc:
            claim_job(db, job.id, technician.id, company.id)
        assert exc.value.extra["current_status"] == "pending_intake"
        assert "Only 'received' jobs can be claimed" in exc.value.message

    def test_unknown_job(self, db, company, technician):
        with pytest.raises(NotFound):
            claim_job(db, uuid.uuid4(), technician.id, company.id)

    def test_on_site_job(self, db, company, technician, make_job):
        job = make_job(location_type="on_site")
        with pytest.raises(NotFound):
            claim_job(db, job.id, technician.id, company.id)

    def test_technician_from_other_company(self, db, company, make_workshop_job):
        job = make_workshop_job(status="received")
        with pytest.raises(NotFound) as exc:
            claim_job(db, job.id, uuid.uuid4(), company.id)
        assert "Technician not found" in exc.value.message

    def test_capacity_exceeded_leaves_job_untouched(self, db, company, technician, workshop_settings, make_workshop_job):
        workshop_settings(max_jobs_per_technician=1)
        make_workshop_job(status="in_repair", technician=technician)
        job = make_workshop_job(status="received")

        with pytest.raises(CapacityExceeded) as exc:
            claim_job(db, job.id, technician.id, company.id)
        assert exc.value.current_count == 1
        assert exc.value.max_capacity == 1

        db.expire_all()
        job = db.get(Job, job.id)
        assert job.technician_id is None
        assert job.status == "assigned"
        assert db.query(EquipmentStatus).filter_by(job_id=job.id).one().current_status == "received"
        assert _history(db, job.id) == 1

    def test_stale_reader_cannot_double_assign(self, db, company, make_technician, make_workshop_job):
        winner, loser = make_technician(full_name="Winner"), make_technician(full_name="Loser")
        job = make_workshop_job(status="received")
        job_id = job.id

        stale = SessionLocal()
        fresh = SessionLocal()
        try:
            # Both rows sit in the stale session's identity map as unassigned/received
            stale.get(Job, job_id)
            stale.query(EquipmentStatus).filter_by(job_id=job_id).one()

            claim_job(fresh, job_id, winner.id, company.id)

            with pytest.raises(AlreadyAssigned):
                claim_job(stale, job_id, loser.id, company.id)
        finally:
            stale.close()
            fresh.close()

        db.expire_all()
        assert db.get(Job, job_id).technician_id == winner.id
        assert db.query(EquipmentStatusHistory).filter_by(job_id=job_id, to_status="in_repair").count() == 1

    def test_notifies_after_commit(self, db, company, technician, make_workshop_job):
        job = make_workshop_job(status="received")
        events = []

        def notify(job_id, company_id, event, payload):
            check = SessionLocal()
            try:
                events.append((event, check.get(Job, job_id).technician_id))
            finally:
                check.close()

        claim_job(db, job.id, technician.id, company.id, notify=notify)
        assert events == [("job_claimed", technician.id)]

    def test_notifier_failure_keeps_claim(self, db, company, technician, make_workshop_job):
        job = make_workshop_job(status="received")

        def broken(*args):
            raise RuntimeError("push gateway down")

        claimed = claim_job(db, job.id, technician.id, company.id, notify=broken)
        assert claimed.technician_id == technician.id
        db.expire_all()
        assert db.get(Job, job.id).technician_id == technician.id
        assert db.query(EquipmentStatus).filter_by(job_id=job.id).one().current_status == "in_repair"
