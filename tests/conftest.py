import os
import tempfile
import uuid
from datetime import timedelta

_TMP_DIR = tempfile.mkdtemp(prefix="fsmhub-tests-")
os.environ["DATABASE_URL"] = f"sqlite:///{_TMP_DIR}/test.db"
os.environ["AUTO_CREATE_DB"] = "false"
os.environ["RATE_LIMIT"] = "10000/minute"
os.environ["JWT_SECRET"] = "test-secret"

import pytest
from fastapi.testclient import TestClient

from fsmhub.auth.security import create_access_token
from fsmhub.db import Base, SessionLocal, engine
from fsmhub.main import app
from fsmhub.models.models import (
    Company,
    Customer,
    CustomerEquipment,
    EquipmentIntake,
    EquipmentStatus,
    EquipmentStatusHistory,
    EquipmentType,
    Job,
    Technician,
    User,
    WorkshopSettings,
)
from fsmhub.schemas.workshop import EquipmentRepairStatus
from fsmhub.services.status_machine import derive_job_status, stamp_status
from fsmhub.services.time_rules import utcnow


@pytest.fixture
def db():
    Base.metadata.create_all(bind=engine)
    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()
        Base.metadata.drop_all(bind=engine)


@pytest.fixture
def company(db):
    c = Company(name="Northside Repairs")
    db.add(c)
    db.commit()
    return c


@pytest.fixture
def make_user(db, company):
    def _make(role="admin", full_name="Dana Admin", company_id=None):
        u = User(
            company_id=company_id or company.id,
            email=f"{uuid.uuid4().hex[:8]}@example.com",
            full_name=full_name,
            role=role,
            is_active=True,
        )
        db.add(u)
        db.commit()
        return u

    return _make


@pytest.fixture
def admin(make_user):
    return make_user(role="admin")


@pytest.fixture
def make_technician(db, company, make_user):
    def _make(full_name="Sam Tech", is_available=True, company_id=None):
        user = make_user(role="technician", full_name=full_name, company_id=company_id)
        t = Technician(
            company_id=company_id or company.id,
            user_id=user.id,
            employee_id=f"T-{uuid.uuid4().hex[:4]}",
            is_available=is_available,
        )
        db.add(t)
        db.commit()
        return t

    return _make


@pytest.fixture
def technician(make_technician):
    return make_technician()


@pytest.fixture
def customer(db, company, make_user):
    portal_user = make_user(role="customer", full_name="Alex Customer")
    c = Customer(
        company_id=company.id,
        user_id=portal_user.id,
        name="Alex Customer",
        email="alex@example.com",
        phone="555-0100",
    )
    db.add(c)
    db.commit()
    return c


@pytest.fixture
def workshop_settings(db, company):
    def _make(**fields):
        row = WorkshopSettings(company_id=company.id, **fields)
        db.add(row)
        db.commit()
        return row

    return _make


@pytest.fixture
def make_job(db, company, customer):
    """On-site or workshop job with no intake or status row."""
    def _make(location_type="workshop", priority="medium", status="pending", **fields):
        job = Job(
            company_id=company.id,
            customer_id=customer.id,
            job_number=f"JOB-{uuid.uuid4().hex[:8].upper()}",
            title="Repair",
            priority=priority,
            status=status,
            location_type=location_type,
            **fields,
        )
        db.add(job)
        db.commit()
        return job

    return _make


@pytest.fixture
def make_workshop_job(db, company, customer):
    """
    Workshop job already sitting at ``status`` with an intake record and one
    history row per status it passed through.
    """
    def _make(
        status="received",
        priority="medium",
        intake_date=None,
        estimated_completion_date=None,
        technician=None,
        equipment_type=None,
        created_at=None,
        with_intake=True,
        customer_id=None,
    ):
        now = utcnow()
        equipment_id = None
        if equipment_type is not None:
            et = EquipmentType(company_id=company.id, name=equipment_type)
            db.add(et)
            db.flush()
            eq = CustomerEquipment(customer_id=customer_id or customer.id, equipment_type_id=et.id, serial_number="SN-1")
            db.add(eq)
            db.flush()
            equipment_id = eq.id

        job = Job(
            company_id=company.id,
            customer_id=customer_id or customer.id,
            equipment_id=equipment_id,
            technician_id=technician.id if technician else None,
            job_number=f"WS-{uuid.uuid4().hex[:8].upper()}",
            title="Workshop repair",
            priority=priority,
            status=derive_job_status(status).value,
            location_type="workshop",
            estimated_completion_date=estimated_completion_date,
            created_at=created_at or now,
        )
        db.add(job)
        db.flush()

        if with_intake:
            db.add(EquipmentIntake(
                job_id=job.id,
                intake_date=intake_date or now,
                reported_issue="Does not power on",
                created_at=now,
            ))

        row = EquipmentStatus(job_id=job.id, current_status=status, created_at=now, updated_at=now)
        path = {
            "pending_intake": ["pending_intake"],
            "in_transit": ["pending_intake", "in_transit"],
            "received": ["received"],
            "in_repair": ["received", "in_repair"],
            "repair_completed": ["received", "in_repair", "repair_completed"],
            "ready_for_pickup": ["received", "in_repair", "repair_completed", "ready_for_pickup"],
            "out_for_delivery": ["received", "in_repair", "repair_completed", "out_for_delivery"],
            "returned": ["received", "in_repair", "repair_completed", "ready_for_pickup", "returned"],
        }[status]
        db.add(row)
        db.flush()
        previous = None
        for i, step in enumerate(path):
            when = now - timedelta(minutes=len(path) - i)
            stamp_status(row, EquipmentRepairStatus(step), when)
            db.add(EquipmentStatusHistory(
                equipment_status_id=row.id,
                job_id=job.id,
                from_status=previous,
                to_status=step,
                changed_at=when,
            ))
            previous = step
        if job.status == "completed":
            job.completed_at = now
        db.commit()
        return job

    return _make


@pytest.fixture
def client(db):
    return TestClient(app)


@pytest.fixture
def auth_headers():
    def _headers(user):
        return {"Authorization": f"Bearer {create_access_token(user)}"}

    return _headers
