import uuid
from datetime import timedelta

import pytest

from fsmhub.models.models import EquipmentStatus, EquipmentStatusHistory, Job
from fsmhub.schemas.workshop import IntakeCreate, IntakeNotesUpdate
from fsmhub.services.errors import AlreadyExists, NotFound, ValidationError
from fsmhub.services.intake import INTAKE_NOTE, create_intake, get_intake, update_intake_notes
from fsmhub.services.time_rules import ensure_utc


def _intake(job_id, **fields):
    data = {"job_id": job_id, "reported_issue": "Blade will not spin"}
    data.update(fields)
    return IntakeCreate(**data)


class TestCreateIntake:
    def test_creates_status_at_received(self, db, company, admin, make_job):
        job = make_job(location_type="workshop")

        intake = create_intake(db, company.id, admin.id, _intake(job.id, accessories_included=["charger"]))

        assert intake.received_by == admin.id
        assert intake.accessories_included == ["charger"]
        row = db.query(EquipmentStatus).filter_by(job_id=job.id).one()
        assert row.current_status == "received"
        assert row.received_at is not None
        history = db.query(EquipmentStatusHistory).filter_by(job_id=job.id).all()
        assert [(h.from_status, h.to_status, h.notes) for h in history] == [(None, "received", INTAKE_NOTE)]
        assert db.get(Job, job.id).status == "assigned"

    def test_estimated_completion_uses_repair_hours(self, db, company, admin, make_job):
        job = make_job(location_type="workshop")

        intake = create_intake(db, company.id, admin.id, _intake(job.id, estimated_repair_time=48))

        job = db.get(Job, job.id)
        delta = ensure_utc(job.estimated_completion_date) - ensure_utc(intake.created_at)
        assert delta == timedelta(hours=48)

    def test_estimated_completion_falls_back_to_settings(self, db, company, admin, workshop_settings, make_job):
        workshop_settings(default_estimated_repair_hours=6)
        job = make_job(location_type="workshop")

        intake = create_intake(db, company.id, admin.id, _intake(job.id))

        job = db.get(Job, job.id)
        assert ensure_utc(job.estimated_completion_date) - ensure_utc(intake.created_at) == timedelta(hours=6)

    def test_advances_existing_pre_arrival_status(self, db, company, admin, make_workshop_job):
        job = make_workshop_job(status="in_transit", with_intake=False)

        create_intake(db, company.id, admin.id, _intake(job.id))

        row = db.query(EquipmentStatus).filter_by(job_id=job.id).one()
        assert row.current_status == "received"
        latest = (
            db.query(EquipmentStatusHistory)
            .filter_by(job_id=job.id)
            .order_by(EquipmentStatusHistory.changed_at.desc())
            .first()
        )
        assert (latest.from_status, latest.to_status) == ("in_transit", "received")

    def test_duplicate_rejected(self, db, company, admin, make_job):
        job = make_job(location_type="workshop")
        create_intake(db, company.id, admin.id, _intake(job.id))

        with pytest.raises(AlreadyExists):
            create_intake(db, company.id, admin.id, _intake(job.id))

    def test_duplicate_that_slips_past_the_read_check(self, db, company, admin, make_job, monkeypatch):
        job = make_job(location_type="workshop")
        first = create_intake(db, company.id, admin.id, _intake(job.id))
        # Second writer read before the first one committed
        monkeypatch.setattr("fsmhub.services.intake.intake_exists", lambda db, job_id: False)

        with pytest.raises(AlreadyExists):
            create_intake(db, company.id, admin.id, _intake(job.id, reported_issue="Second report"))

        db.expire_all()
        assert get_intake(db, job.id, company.id).id == first.id
        assert db.query(EquipmentStatusHistory).filter_by(job_id=job.id).count() == 1

    def test_on_site_job_rejected(self, db, company, admin, make_job):
        job = make_job(location_type="on_site")
        with pytest.raises(ValidationError):
            create_intake(db, company.id, admin.id, _intake(job.id))
        assert db.query(EquipmentStatus).filter_by(job_id=job.id).count() == 0

    def test_blank_issue_rejected(self, db, company, admin, make_job):
        job = make_job(location_type="workshop")
        with pytest.raises(ValidationError):
            create_intake(db, company.id, admin.id, _intake(job.id, reported_issue="   "))

    def test_unknown_job(self, db, company, admin):
        with pytest.raises(NotFound):
            create_intake(db, company.id, admin.id, _intake(uuid.uuid4()))

    def test_sends_intake_confirmation(self, db, company, admin, make_job):
        job = make_job(location_type="workshop")
        events = []

        create_intake(db, company.id, admin.id, _intake(job.id), notify=lambda *a: events.append(a[2]))
        assert events == ["intake_confirmation"]


class TestIntakeNotes:
    def test_get_intake(self, db, company, admin, make_job):
        job = make_job(location_type="workshop")
        created = create_intake(db, company.id, admin.id, _intake(job.id))
        assert get_intake(db, job.id, company.id).id == created.id

    def test_get_missing_intake(self, db, company, make_job):
        job = make_job(location_type="workshop")
        with pytest.raises(NotFound):
            get_intake(db, job.id, company.id)

    def test_update_only_touches_given_fields(self, db, company, admin, make_job):
        job = make_job(location_type="workshop")
        created = create_intake(db, company.id, admin.id, _intake(job.id, customer_notes="handle with care"))

        updated = update_intake_notes(db, created.id, company.id, IntakeNotesUpdate(internal_notes="cracked housing"))

        assert updated.internal_notes == "cracked housing"
        assert updated.customer_notes == "handle with care"
        assert updated.reported_issue == "Blade will not spin"
        assert updated.updated_at is not None

    def test_update_other_company(self, db, company, admin, make_job):
        job = make_job(location_type="workshop")
        created = create_intake(db, company.id, admin.id, _intake(job.id))
        with pytest.raises(NotFound):
            update_intake_notes(db, created.id, uuid.uuid4(), IntakeNotesUpdate(internal_notes="x"))
