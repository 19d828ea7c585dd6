"""
Shared pytest fixtures for all tests.

Every test gets a fresh in-memory SQLite database. The API client shares the
test's session so data seeded by a test is what the endpoints see.
"""

import os
from datetime import date, timedelta

# Configure the app for tests before anything imports it
os.environ["DATABASE_URL"] = "sqlite://"
os.environ["DB_LOG_SLOW_QUERIES"] = "false"

import pytest
from fastapi.testclient import TestClient
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from clinic_booking import models  # noqa: F401
from clinic_booking.database import Base, build_engine, get_db
from clinic_booking.domain.appointments.actors import Actor
from clinic_booking.main import app
from clinic_booking.models import (
    Appointment,
    CapacityPlan,
    Patient,
    PatientHmo,
    Payment,
    RefundSetting,
    Service,
    WeeklySchedule,
)

# ============================================================================
# DATABASE FIXTURES
# ============================================================================


@pytest.fixture
def engine():
    test_engine = build_engine("sqlite://", poolclass=StaticPool)
    Base.metadata.create_all(bind=test_engine)
    yield test_engine
    Base.metadata.drop_all(bind=test_engine)
    test_engine.dispose()


@pytest.fixture
def db_session(engine):
    """Fresh session per test"""
    TestingSession = sessionmaker(autocommit=False, autoflush=False, bind=engine)
    session = TestingSession()
    try:
        yield session
    finally:
        session.rollback()
        session.close()


@pytest.fixture
def client(db_session):
    """TestClient whose get_db yields the test session"""

    def override_get_db():
        yield db_session

    app.dependency_overrides[get_db] = override_get_db
    yield TestClient(app)
    app.dependency_overrides.clear()


# ============================================================================
# ACTORS AND HEADERS
# ============================================================================


@pytest.fixture
def staff():
    return Actor(user_id=900, role="staff", name="Front Desk")


@pytest.fixture
def admin():
    return Actor(user_id=901, role="admin", name="Clinic Admin")


def headers_for(user_id: int, role: str = "patient") -> dict:
    return {"X-User-Id": str(user_id), "X-User-Role": role}


# ============================================================================
# DATA FACTORIES
# ============================================================================


@pytest.fixture
def tomorrow() -> date:
    return date.today() + timedelta(days=1)


@pytest.fixture
def open_every_day(db_session):
    """Weekly default of 08:00-17:00 on all seven weekdays"""
    for weekday in range(7):
        db_session.add(WeeklySchedule(weekday=weekday, is_open=True, open_time="08:00", close_time="17:00"))
    db_session.commit()


@pytest.fixture
def set_capacity(db_session):
    def _set(target_date: date, capacity: int) -> CapacityPlan:
        plan = db_session.query(CapacityPlan).filter(CapacityPlan.date == target_date).first()
        if plan:
            plan.capacity = capacity
        else:
            plan = CapacityPlan(date=target_date, capacity=capacity)
            db_session.add(plan)
        db_session.commit()
        return plan

    return _set


@pytest.fixture
def make_service(db_session):
    def _make(**overrides) -> Service:
        values = {
            "name": "Oral Prophylaxis",
            "category": "Preventive",
            "price": 1000.0,
            "estimated_minutes": 60,
        }
        values.update(overrides)
        service = Service(**values)
        db_session.add(service)
        db_session.commit()
        return service

    return _make


@pytest.fixture
def make_patient(db_session):
    counter = {"n": 0}

    def _make(user_id=None, **overrides) -> Patient:
        counter["n"] += 1
        values = {
            "user_id": user_id,
            "first_name": f"Patient{counter['n']}",
            "last_name": "Santos",
            "contact_number": "09170000000",
        }
        values.update(overrides)
        patient = Patient(**values)
        db_session.add(patient)
        db_session.commit()
        return patient

    return _make


@pytest.fixture
def make_hmo(db_session):
    def _make(patient: Patient, provider_name: str = "Maxicare") -> PatientHmo:
        hmo = PatientHmo(patient_id=patient.id, provider_name=provider_name, member_number="MX-001")
        db_session.add(hmo)
        db_session.commit()
        return hmo

    return _make


@pytest.fixture
def make_appointment(db_session, make_service, make_patient):
    """Insert an appointment row directly, bypassing booking validation"""
    counter = {"n": 0}

    def _make(target_date, time_slot="09:00-10:00", status="pending", patient=None, service=None, **overrides):
        counter["n"] += 1
        patient = patient or make_patient()
        service = service or make_service()
        values = {
            "patient_id": patient.id,
            "service_id": service.id,
            "date": target_date,
            "time_slot": time_slot,
            "reference_code": f"TEST{counter['n']:04d}",
            "status": status,
            "payment_method": "cash",
            "payment_status": "unpaid",
        }
        values.update(overrides)
        appointment = Appointment(**values)
        db_session.add(appointment)
        db_session.commit()
        return appointment

    return _make


@pytest.fixture
def refund_settings(db_session):
    def _configure(**values) -> RefundSetting:
        settings = db_session.query(RefundSetting).first()
        if not settings:
            settings = RefundSetting()
            db_session.add(settings)
        for key, value in values.items():
            setattr(settings, key, value)
        db_session.commit()
        return settings

    return _configure


@pytest.fixture
def mark_paid(db_session):
    """Simulate the gateway capturing an appointment's maya payment"""
    from clinic_booking.domain.payments.service import PaymentService

    def _mark(appointment) -> Payment:
        payment = (
            db_session.query(Payment)
            .filter(Payment.appointment_id == appointment.id, Payment.method == "maya")
            .first()
        )
        return PaymentService(db_session).mark_paid(payment.id)

    return _mark
