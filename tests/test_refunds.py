"""Cancellation fees, refund quotes and the refund request lifecycle"""

from datetime import date, datetime, time, timedelta

import pytest

from clinic_booking.domain.appointments.actors import Actor
from clinic_booking.domain.refunds.calculator import RefundCalculator, appointment_start
from clinic_booking.domain.refunds.fee_policies import (
    FlatFeePolicy,
    NoFeePolicy,
    ProportionalFeePolicy,
    ServiceFeePolicy,
    TieredFeePolicy,
    build_fee_policy,
    parse_tiers,
)
from clinic_booking.domain.refunds.service import RefundService
from clinic_booking.models import Appointment, Payment, RefundRequest, RefundSetting, Service, StaffNotification, SystemLog
from clinic_booking.shared.errors import NotFoundError, StateConflictError, ValidationError

DAY = date(2030, 3, 4)


# ============================================================================
# FEE POLICIES
# ============================================================================


class TestFeePolicies:
    def test_no_fee(self):
        assert NoFeePolicy()(1000, 2) == 0.0

    def test_flat(self):
        assert FlatFeePolicy(300)(1000, 2) == 300.0

    def test_flat_never_exceeds_amount(self):
        assert FlatFeePolicy(300)(200, 2) == 200.0

    def test_proportional_rounds(self):
        assert ProportionalFeePolicy(0.333)(100, 2) == 33.3

    @pytest.mark.parametrize("hours,fee", [(20, 500.0), (12, 500.0), (5, 1000.0), (-1, 1000.0)])
    def test_tiered(self, hours, fee):
        policy = TieredFeePolicy(parse_tiers("12:0.5,0:1.0"))
        assert policy(1000, hours) == fee

    def test_tiered_needs_tiers(self):
        with pytest.raises(ValueError):
            TieredFeePolicy([])

    def test_parse_tiers_rejects_garbage(self):
        with pytest.raises(ValueError):
            parse_tiers("12:half")

    def test_service_fee(self):
        policy = ServiceFeePolicy(fallback_rate=0.2)
        assert policy(1000, 2, Service(name="X", cancellation_fee=150.0)) == 150.0
        assert policy(1000, 2, Service(name="Y")) == 200.0
        assert policy(1000, 2) == 200.0

    @pytest.mark.parametrize(
        "name,policy_type",
        [
            ("none", NoFeePolicy),
            ("flat", FlatFeePolicy),
            ("PROPORTIONAL", ProportionalFeePolicy),
            ("tiered", TieredFeePolicy),
            ("service", ServiceFeePolicy),
            ("mystery", ServiceFeePolicy),
        ],
    )
    def test_build_fee_policy(self, name, policy_type):
        assert isinstance(build_fee_policy(name), policy_type)


# ============================================================================
# REFUND QUOTES
# ============================================================================


class TestRefundCalculator:
    @pytest.fixture
    def settings(self):
        return RefundSetting(cancellation_deadline_hours=24, create_zero_refund_request=False, reminder_days=5)

    def quote(self, settings, now, reason="patient_request", amount_paid=1000.0, amount_due=1000.0):
        appointment = Appointment(date=DAY, time_slot="10:00-11:00", cancellation_reason=reason)
        payment = Payment(method="maya", status="paid", amount_paid=amount_paid, amount_due=amount_due)
        calculator = RefundCalculator(None, settings, policy=ProportionalFeePolicy(0.2))
        return calculator.quote(appointment, payment, now)

    def test_appointment_start(self):
        appointment = Appointment(date=DAY, time_slot="10:30-11:00")
        assert appointment_start(appointment) == datetime(2030, 3, 4, 10, 30)

    def test_exactly_at_deadline_is_free(self, settings):
        quote = self.quote(settings, datetime(2030, 3, 3, 10, 0))
        assert not quote.late_cancellation
        assert quote.refund_amount == 1000.0

    def test_after_deadline_is_charged(self, settings):
        quote = self.quote(settings, datetime(2030, 3, 3, 10, 1))
        assert quote.late_cancellation
        assert quote.cancellation_fee == 200.0
        assert quote.refund_amount == 800.0

    def test_waived_reason(self, settings):
        quote = self.quote(settings, datetime(2030, 3, 4, 9, 0), reason="medical_contraindication")
        assert quote.late_cancellation and quote.fee_waived
        assert quote.cancellation_fee == 0.0

    def test_amount_due_used_when_nothing_recorded_as_paid(self, settings):
        quote = self.quote(settings, datetime(2030, 3, 1), amount_paid=0, amount_due=750.0)
        assert quote.original_amount == 750.0

    def test_to_dict(self, settings):
        quote = self.quote(settings, datetime(2030, 3, 4, 9, 0))
        assert quote.to_dict() == {"original_amount": 1000.0, "cancellation_fee": 200.0, "refund_amount": 800.0}


# ============================================================================
# REFUND REQUEST LIFECYCLE
# ============================================================================


@pytest.fixture
def refunds(db_session):
    return RefundService(db_session)


@pytest.fixture
def owner(make_patient):
    return make_patient(user_id=7)


@pytest.fixture
def make_refund(db_session, make_appointment, owner):
    def _make(status="pending", deadline_at=None, confirmed=False):
        appointment = make_appointment(
            DAY,
            "10:00-11:00",
            status="cancelled",
            patient=owner,
            payment_method="maya",
            payment_status="paid",
        )
        payment = Payment(
            appointment_id=appointment.id, method="maya", status="paid", amount_due=1000.0, amount_paid=1000.0
        )
        db_session.add(payment)
        db_session.flush()
        refund_request = RefundRequest(
            patient_id=owner.id,
            appointment_id=appointment.id,
            payment_id=payment.id,
            original_amount=1000.0,
            cancellation_fee=0.0,
            refund_amount=1000.0,
            status=status,
            requested_at=datetime.now(),
            deadline_at=deadline_at or datetime.now() + timedelta(days=5),
            patient_confirmed_at=datetime.now() if confirmed else None,
        )
        db_session.add(refund_request)
        db_session.commit()
        return refund_request

    return _make


class TestRefundTransitions:
    def test_approve(self, refunds, make_refund, admin, db_session):
        refund_request = make_refund()
        refunds.approve(refund_request.id, admin, admin_notes="OK")

        assert refund_request.status == "approved"
        assert refund_request.approved_at is not None
        assert refund_request.admin_notes == "OK"
        log = db_session.query(SystemLog).filter_by(category="refund", action="approved").one()
        assert log.context["approved_by_role"] == "admin"

    def test_approve_twice(self, refunds, make_refund, admin):
        refund_request = make_refund()
        refunds.approve(refund_request.id, admin)
        with pytest.raises(StateConflictError):
            refunds.approve(refund_request.id, admin)

    def test_reject(self, refunds, make_refund, admin):
        refund_request = make_refund()
        refunds.reject(refund_request.id, admin, admin_notes="Duplicate")
        assert refund_request.status == "rejected"
        with pytest.raises(StateConflictError):
            refunds.process(refund_request.id, admin)

    def test_process_requires_approval(self, refunds, make_refund, admin):
        with pytest.raises(StateConflictError):
            refunds.process(make_refund().id, admin)

    def test_process_notifies_patient(self, refunds, make_refund, admin, db_session):
        refund_request = make_refund(status="approved")
        refunds.process(refund_request.id, admin)

        assert refund_request.status == "processed"
        assert refund_request.processed_by == admin.user_id
        assert db_session.query(StaffNotification).filter_by(type="refund_ready").count() == 1

    def test_missing(self, refunds, admin):
        with pytest.raises(NotFoundError):
            refunds.approve(404, admin)


class TestRefundConfirmation:
    def test_patient_confirms_pickup(self, refunds, make_refund, owner, db_session):
        refund_request = make_refund(status="processed")
        refunds.confirm(refund_request.id, Actor(user_id=7, role="patient"))

        assert refund_request.patient_confirmed_at is not None
        assert refund_request.payment.status == "refunded"
        assert refund_request.payment.refunded_at is not None
        assert refund_request.appointment.payment_status == "refunded"

        with pytest.raises(StateConflictError):
            refunds.confirm(refund_request.id, Actor(user_id=7, role="patient"))

    def test_other_patient(self, refunds, make_refund, make_patient):
        refund_request = make_refund(status="processed")
        make_patient(user_id=8)
        with pytest.raises(NotFoundError):
            refunds.confirm(refund_request.id, Actor(user_id=8, role="patient"))

    def test_not_processed_yet(self, refunds, make_refund, staff):
        with pytest.raises(StateConflictError):
            refunds.confirm(make_refund(status="approved").id, staff)

    def test_pending_claims(self, refunds, make_refund, owner, staff):
        processed = make_refund(status="processed")
        make_refund(status="approved")
        make_refund(status="processed", confirmed=True)

        assert [r.id for r in refunds.pending_claims(Actor(user_id=7, role="patient"))] == [processed.id]
        assert [r.id for r in refunds.pending_claims(staff, patient_id=owner.id)] == [processed.id]
        with pytest.raises(ValidationError):
            refunds.pending_claims(staff)


class TestRefundDeadlines:
    def test_extend(self, refunds, make_refund, admin, db_session):
        refund_request = make_refund()
        new_day = date.today() + timedelta(days=10)
        refunds.extend_deadline(refund_request.id, new_day, "Patient abroad", admin)

        assert refund_request.deadline_at == datetime.combine(new_day, time(23, 59, 59))
        assert refund_request.deadline_extension_reason == "Patient abroad"
        assert refund_request.deadline_extended_at is not None
        assert db_session.query(SystemLog).filter_by(action="deadline_extended").count() == 1

    def test_extend_requires_reason(self, refunds, make_refund, admin):
        with pytest.raises(ValidationError):
            refunds.extend_deadline(make_refund().id, date.today() + timedelta(days=10), " ", admin)

    def test_extend_must_move_forward(self, refunds, make_refund, admin):
        refund_request = make_refund(deadline_at=datetime.now() + timedelta(days=20))
        with pytest.raises(ValidationError):
            refunds.extend_deadline(refund_request.id, date.today() + timedelta(days=10), "Later", admin)

    def test_extend_rejected_request(self, refunds, make_refund, admin):
        refund_request = make_refund(status="rejected")
        with pytest.raises(StateConflictError):
            refunds.extend_deadline(refund_request.id, date.today() + timedelta(days=10), "Later", admin)

    def test_alerts(self, refunds, make_refund):
        now = datetime.now()
        overdue = make_refund(deadline_at=now - timedelta(hours=1))
        approaching = make_refund(status="processed", deadline_at=now + timedelta(days=1))
        make_refund(deadline_at=now + timedelta(days=10))
        make_refund(status="processed", deadline_at=now - timedelta(days=1), confirmed=True)
        make_refund(status="rejected", deadline_at=now - timedelta(days=1))

        alerts = refunds.deadline_alerts(now)
        assert [r.id for r in alerts["overdue"]] == [overdue.id]
        assert [r.id for r in alerts["approaching"]] == [approaching.id]


class TestRefundSettings:
    def test_defaults_created_on_first_read(self, refunds, db_session):
        settings = refunds.get_settings()
        assert settings.cancellation_deadline_hours == 24
        assert settings.monthly_cancellation_limit == 3
        assert settings.reminder_days == 5
        assert settings.create_zero_refund_request is False
        refunds.get_settings()
        assert db_session.query(RefundSetting).count() == 1

    def test_update(self, refunds, admin, db_session):
        settings = refunds.update_settings(admin, cancellation_deadline_hours=48, create_zero_refund_request=True)
        assert settings.cancellation_deadline_hours == 48
        assert settings.create_zero_refund_request is True
        assert settings.monthly_cancellation_limit == 3
        assert db_session.query(SystemLog).filter_by(action="settings_updated").count() == 1

    @pytest.mark.parametrize(
        "field,value",
        [("cancellation_deadline_hours", 200), ("monthly_cancellation_limit", -1), ("reminder_days", 0)],
    )
    def test_update_bounds(self, refunds, admin, field, value):
        with pytest.raises(ValidationError):
            refunds.update_settings(admin, **{field: value})

    def test_list_filter(self, refunds, make_refund):
        make_refund()
        make_refund(status="approved")
        assert len(refunds.list_requests()) == 2
        assert len(refunds.list_requests("all")) == 2
        assert len(refunds.list_requests("approved")) == 1
        with pytest.raises(ValidationError):
            refunds.list_requests("lost")
