from sqlalchemy import (
    JSON,
    Boolean,
    CheckConstraint,
    Column,
    Date,
    DateTime,
    Float,
    ForeignKey,
    Integer,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func

from .database import Base

# Appointment statuses that occupy capacity and block a patient's time
COMMITTED_STATUSES = ("pending", "approved", "completed")

PAYMENT_METHODS = ("cash", "maya", "hmo")
REFUND_STATUSES = ("pending", "approved", "rejected", "processed")

CANCELLATION_REASONS = (
    "patient_request",
    "clinic_cancellation",
    "medical_contraindication",
    "other",
)
# Clinic-side reasons never carry a cancellation fee
FEE_WAIVED_CANCELLATION_REASONS = ("clinic_cancellation", "medical_contraindication")


class Patient(Base):
    __tablename__ = "patients"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, unique=True, nullable=True, index=True)  # Linked login account
    first_name = Column(String(100), nullable=False)
    last_name = Column(String(100), nullable=False)
    contact_number = Column(String(50), nullable=True)
    email = Column(String(255), nullable=True)

    # No-show management: active -> warning -> blocked
    block_status = Column(String(20), default="active", nullable=False)
    block_type = Column(String(20), nullable=True)  # account, ip, both
    block_reason = Column(Text, nullable=True)
    blocked_ip = Column(String(64), nullable=True)
    blocked_at = Column(DateTime, nullable=True)

    created_at = Column(DateTime, server_default=func.now())

    hmos = relationship("PatientHmo", back_populates="patient")
    appointments = relationship("Appointment", back_populates="patient")

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}".strip()


class PatientHmo(Base):
    __tablename__ = "patient_hmos"

    id = Column(Integer, primary_key=True, index=True)
    patient_id = Column(Integer, ForeignKey("patients.id"), nullable=False, index=True)
    provider_name = Column(String(255), nullable=False)
    member_number = Column(String(100), nullable=True)

    patient = relationship("Patient", back_populates="hmos")


class Service(Base):
    __tablename__ = "services"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(255), nullable=False)
    category = Column(String(100), nullable=True)
    price = Column(Float, nullable=False, default=0)
    estimated_minutes = Column(Integer, nullable=False, default=30)

    # Per-tooth services grow with the number of teeth beyond the included ones
    per_teeth_service = Column(Boolean, default=False, nullable=False)
    per_tooth_minutes = Column(Integer, default=0, nullable=False)
    included_teeth = Column(Integer, default=1, nullable=False)

    # Late-cancellation fee used by the "service" fee policy
    cancellation_fee = Column(Float, nullable=True)


class WeeklySchedule(Base):
    """Default opening hours, one row per weekday (Monday=0)"""

    __tablename__ = "clinic_weekly_schedules"

    id = Column(Integer, primary_key=True, index=True)
    weekday = Column(Integer, unique=True, nullable=False)
    is_open = Column(Boolean, default=True, nullable=False)
    open_time = Column(String(8), nullable=True)  # HH:MM
    close_time = Column(String(8), nullable=True)

    __table_args__ = (CheckConstraint("weekday >= 0 AND weekday <= 6", name="ck_weekday_range"),)


class CalendarOverride(Base):
    """Date-specific hours; takes precedence over the weekly default"""

    __tablename__ = "clinic_calendar_overrides"

    id = Column(Integer, primary_key=True, index=True)
    date = Column(Date, unique=True, nullable=False, index=True)
    is_open = Column(Boolean, default=False, nullable=False)
    open_time = Column(String(8), nullable=True)
    close_time = Column(String(8), nullable=True)
    note = Column(Text, nullable=True)


class CapacityPlan(Base):
    __tablename__ = "clinic_capacity_plans"

    id = Column(Integer, primary_key=True, index=True)
    date = Column(Date, unique=True, nullable=False, index=True)
    capacity = Column(Integer, nullable=False)

    __table_args__ = (CheckConstraint("capacity >= 0", name="ck_capacity_non_negative"),)


class Appointment(Base):
    __tablename__ = "appointments"

    id = Column(Integer, primary_key=True, index=True)
    patient_id = Column(Integer, ForeignKey("patients.id"), nullable=False, index=True)
    service_id = Column(Integer, ForeignKey("services.id"), nullable=False)
    patient_hmo_id = Column(Integer, ForeignKey("patient_hmos.id"), nullable=True)

    date = Column(Date, nullable=False, index=True)
    time_slot = Column(String(20), nullable=False)  # HH:MM-HH:MM
    reference_code = Column(String(8), unique=True, nullable=False, index=True)

    # Status workflow: pending -> approved -> completed, pending -> rejected,
    # pending/approved -> cancelled, pending/approved -> pending (reschedule)
    status = Column(String(20), default="pending", nullable=False, index=True)
    payment_method = Column(String(20), nullable=False)  # cash, maya, hmo
    payment_status = Column(String(20), default="unpaid", nullable=False)

    teeth_count = Column(Integer, nullable=True)
    notes = Column(Text, nullable=True)
    booked_by_staff = Column(Boolean, default=False, nullable=False)

    reminded_at = Column(DateTime, nullable=True)
    canceled_at = Column(DateTime, nullable=True)
    cancellation_reason = Column(String(50), nullable=True)
    cancelled_by_role = Column(String(20), nullable=True)  # patient, staff, admin

    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())

    patient = relationship("Patient", back_populates="appointments")
    service = relationship("Service")
    payments = relationship("Payment", back_populates="appointment")
    admission_tickets = relationship(
        "AdmissionTicket", back_populates="appointment", cascade="all, delete-orphan"
    )


class AdmissionTicket(Base):
    """
    One row per (date, block, unit) occupied by a committed appointment.
    The unique constraint is what keeps two concurrent bookings from both
    taking the last unit of a block.
    """

    __tablename__ = "admission_tickets"

    id = Column(Integer, primary_key=True, index=True)
    appointment_id = Column(Integer, ForeignKey("appointments.id"), nullable=False, index=True)
    date = Column(Date, nullable=False)
    block_start = Column(String(5), nullable=False)  # HH:MM
    unit = Column(Integer, nullable=False)

    appointment = relationship("Appointment", back_populates="admission_tickets")

    __table_args__ = (
        UniqueConstraint("date", "block_start", "unit", name="uq_admission_ticket_unit"),
    )


class Payment(Base):
    __tablename__ = "payments"

    id = Column(Integer, primary_key=True, index=True)
    appointment_id = Column(Integer, ForeignKey("appointments.id"), nullable=True, index=True)
    visit_id = Column(Integer, nullable=True, index=True)  # Walk-in visits live outside this service

    method = Column(String(20), nullable=False)
    status = Column(String(20), default="unpaid", nullable=False)
    amount_due = Column(Float, default=0, nullable=False)
    amount_paid = Column(Float, default=0, nullable=False)

    paid_at = Column(DateTime, nullable=True)
    cancelled_at = Column(DateTime, nullable=True)
    refunded_at = Column(DateTime, nullable=True)

    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())

    appointment = relationship("Appointment", back_populates="payments")

    __table_args__ = (
        CheckConstraint(
            "(appointment_id IS NULL AND visit_id IS NOT NULL) "
            "OR (appointment_id IS NOT NULL AND visit_id IS NULL)",
            name="ck_payment_single_owner",
        ),
    )


class RefundRequest(Base):
    __tablename__ = "refund_requests"

    id = Column(Integer, primary_key=True, index=True)
    patient_id = Column(Integer, ForeignKey("patients.id"), nullable=False, index=True)
    appointment_id = Column(Integer, ForeignKey("appointments.id"), nullable=True, index=True)
    payment_id = Column(Integer, ForeignKey("payments.id"), nullable=True)

    original_amount = Column(Float, nullable=False)
    cancellation_fee = Column(Float, nullable=False, default=0)
    refund_amount = Column(Float, nullable=False)
    reason = Column(Text, nullable=True)

    # pending -> approved -> processed (-> patient confirmed), pending -> rejected
    status = Column(String(20), default="pending", nullable=False, index=True)
    admin_notes = Column(Text, nullable=True)

    requested_at = Column(DateTime, nullable=False)
    approved_at = Column(DateTime, nullable=True)
    processed_at = Column(DateTime, nullable=True)
    processed_by = Column(Integer, nullable=True)
    deadline_at = Column(DateTime, nullable=True)
    deadline_extended_at = Column(DateTime, nullable=True)
    deadline_extension_reason = Column(Text, nullable=True)
    patient_confirmed_at = Column(DateTime, nullable=True)

    appointment = relationship("Appointment")
    payment = relationship("Payment")


class RefundSetting(Base):
    """Singleton row holding refund/cancellation policy"""

    __tablename__ = "refund_settings"

    id = Column(Integer, primary_key=True, index=True)
    cancellation_deadline_hours = Column(Integer, nullable=False, default=24)
    monthly_cancellation_limit = Column(Integer, nullable=False, default=3)
    create_zero_refund_request = Column(Boolean, nullable=False, default=False)
    reminder_days = Column(Integer, nullable=False, default=5)
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())


class SystemLog(Base):
    """Append-only audit trail"""

    __tablename__ = "system_logs"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, nullable=True)
    category = Column(String(50), nullable=False, index=True)  # appointment, refund, schedule
    action = Column(String(100), nullable=False)
    message = Column(Text, nullable=False)
    context = Column(JSON, nullable=True)
    created_at = Column(DateTime, server_default=func.now())


class StaffNotification(Base):
    """Outbox of notifications for the staff dashboard and patient channels"""

    __tablename__ = "staff_notifications"

    id = Column(Integer, primary_key=True, index=True)
    type = Column(String(50), nullable=False)
    title = Column(String(255), nullable=False)
    body = Column(Text, nullable=False)
    data = Column(JSON, nullable=True)
    created_at = Column(DateTime, server_default=func.now())
