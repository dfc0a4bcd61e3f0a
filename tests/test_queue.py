import uuid
from datetime import timedelta

import pytest

from fsmhub.models.models import Customer
from fsmhub.services.queue import (
    QueueFilters,
    calculate_priority_score,
    days_waiting,
    get_workshop_queue,
    priority_weight,
)
from fsmhub.services.time_rules import utcnow


class TestScoring:
    def test_weights(self):
        assert [priority_weight(p) for p in ("urgent", "high", "medium", "low")] == [100, 75, 50, 25]
        assert priority_weight("whenever") == 0

    def test_days_waiting_floors_partial_days(self):
        now = utcnow()
        assert days_waiting(now - timedelta(days=1, hours=22), now) == 1
        assert days_waiting(now - timedelta(hours=3), now) == 0

    def test_score_adds_days_waiting(self):
        now = utcnow()
        assert calculate_priority_score("urgent", now - timedelta(days=2), None, now) == 102

    def test_overdue_bonus(self):
        now = utcnow()
        late = now - timedelta(hours=1)
        assert calculate_priority_score("low", now - timedelta(days=1), late, now) == 76
        assert calculate_priority_score("low", now - timedelta(days=1), now + timedelta(hours=1), now) == 26


class TestQueue:
    def test_orders_by_priority_weight(self, db, company, make_workshop_job):
        now = utcnow()
        low = make_workshop_job(priority="low", intake_date=now)
        urgent = make_workshop_job(priority="urgent", intake_date=now)
        medium = make_workshop_job(priority="medium", intake_date=now)

        items = get_workshop_queue(db, company.id, now=now)
        assert [i.job.id for i in items] == [urgent.id, medium.id, low.id]
        assert [i.priority_score for i in items] == [100, 50, 25]

    def test_overdue_low_beats_fresh_medium(self, db, company, make_workshop_job):
        now = utcnow()
        medium = make_workshop_job(priority="medium", intake_date=now)
        overdue = make_workshop_job(
            priority="low",
            intake_date=now - timedelta(days=3),
            estimated_completion_date=now - timedelta(hours=2),
        )

        items = get_workshop_queue(db, company.id, now=now)
        assert [i.job.id for i in items] == [overdue.id, medium.id]
        assert items[0].priority_score == 78
        assert items[0].is_overdue is True
        assert items[0].days_waiting == 3

    def test_equal_scores_keep_newest_created_first(self, db, company, make_workshop_job):
        now = utcnow()
        older = make_workshop_job(intake_date=now, created_at=now - timedelta(hours=2))
        newer = make_workshop_job(intake_date=now, created_at=now - timedelta(hours=1))

        items = get_workshop_queue(db, company.id, now=now)
        assert [i.job.id for i in items] == [newer.id, older.id]

    def test_only_received_and_in_repair_jobs(self, db, company, make_job, make_workshop_job):
        received = make_workshop_job(status="received")
        in_repair = make_workshop_job(status="in_repair")
        for status in ("pending_intake", "repair_completed", "ready_for_pickup", "returned"):
            make_workshop_job(status=status)
        make_job(location_type="on_site")

        ids = {i.job.id for i in get_workshop_queue(db, company.id)}
        assert ids == {received.id, in_repair.id}

    def test_other_company_jobs_hidden(self, db, make_workshop_job):
        make_workshop_job(status="received")
        assert get_workshop_queue(db, uuid.uuid4()) == []

    @pytest.mark.parametrize("filters,expected", [
        (QueueFilters(priority="high"), "high"),
        (QueueFilters(equipment_type="Lawn Mower"), "mower"),
    ])
    def test_filters(self, db, company, make_workshop_job, filters, expected):
        jobs = {
            "high": make_workshop_job(priority="high"),
            "mower": make_workshop_job(priority="low", equipment_type="Lawn Mower"),
            "other": make_workshop_job(priority="low", equipment_type="Chainsaw"),
        }
        items = get_workshop_queue(db, company.id, filters)
        assert [i.job.id for i in items] == [jobs[expected].id]

    def test_customer_filter(self, db, company, customer, make_workshop_job):
        other = Customer(company_id=company.id, name="Other Customer")
        db.add(other)
        db.commit()
        mine = make_workshop_job()
        make_workshop_job(customer_id=other.id)

        items = get_workshop_queue(db, company.id, QueueFilters(customer_id=customer.id))
        assert [i.job.id for i in items] == [mine.id]

    def test_sort_by_intake_date_oldest_first(self, db, company, make_workshop_job):
        now = utcnow()
        recent = make_workshop_job(priority="urgent", intake_date=now - timedelta(hours=1))
        old = make_workshop_job(priority="low", intake_date=now - timedelta(days=4))

        items = get_workshop_queue(db, company.id, sort_by="intake_date", now=now)
        assert [i.job.id for i in items] == [old.id, recent.id]

    def test_sort_by_estimated_completion_undated_last(self, db, company, make_workshop_job):
        now = utcnow()
        undated = make_workshop_job(priority="urgent")
        later = make_workshop_job(estimated_completion_date=now + timedelta(days=3))
        sooner = make_workshop_job(estimated_completion_date=now + timedelta(days=1))

        items = get_workshop_queue(db, company.id, sort_by="estimated_completion", now=now)
        assert [i.job.id for i in items] == [sooner.id, later.id, undated.id]
