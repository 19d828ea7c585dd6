import os
from pathlib import Path

from dotenv import load_dotenv

# Load .env from project root
env_path = Path(__file__).resolve().parent.parent / ".env"
load_dotenv(dotenv_path=env_path)

DATABASE_URL = os.getenv("DATABASE_URL", "sqlite:///./clinic_booking.db")

# Slot grid - every duration and capacity unit is one 30-minute block
SLOT_MINUTES = 30

# Capacity used when no capacity plan exists for a date (max concurrent bookings per block)
DEFAULT_CLINIC_CAPACITY = int(os.getenv("DEFAULT_CLINIC_CAPACITY", "3"))

# Booking window in days from today (self-service starts tomorrow, staff walk-ins start today)
BOOKING_WINDOW_DAYS = int(os.getenv("BOOKING_WINDOW_DAYS", "7"))

# Admission ticket claim retries when a concurrent booking grabs the same unit
ADMISSION_MAX_RETRIES = int(os.getenv("ADMISSION_MAX_RETRIES", "5"))

# Reference code generation attempts before giving up on collisions
REFERENCE_CODE_LENGTH = 8
REFERENCE_CODE_MAX_ATTEMPTS = int(os.getenv("REFERENCE_CODE_MAX_ATTEMPTS", "10"))

# Cancellation fee policy applied to late cancellations of paid maya appointments
# One of: none, flat, proportional, tiered, service
CANCELLATION_FEE_POLICY = os.getenv("CANCELLATION_FEE_POLICY", "service").lower()
CANCELLATION_FEE_FLAT = float(os.getenv("CANCELLATION_FEE_FLAT", "0"))
CANCELLATION_FEE_RATE = float(os.getenv("CANCELLATION_FEE_RATE", "0.20"))
# "hours_before:rate" pairs, e.g. "12:0.5,0:1.0" -> 50% when >=12h remain, 100% after that
CANCELLATION_FEE_TIERS = os.getenv("CANCELLATION_FEE_TIERS", "12:0.5,0:1.0")

# Refund settings defaults (persisted in the refund_settings singleton row on first read)
DEFAULT_CANCELLATION_DEADLINE_HOURS = int(os.getenv("DEFAULT_CANCELLATION_DEADLINE_HOURS", "24"))
DEFAULT_MONTHLY_CANCELLATION_LIMIT = int(os.getenv("DEFAULT_MONTHLY_CANCELLATION_LIMIT", "3"))
DEFAULT_CREATE_ZERO_REFUND_REQUEST = (
    os.getenv("DEFAULT_CREATE_ZERO_REFUND_REQUEST", "false").lower() == "true"
)
DEFAULT_REFUND_REMINDER_DAYS = int(os.getenv("DEFAULT_REFUND_REMINDER_DAYS", "5"))

# Refund requests whose deadline is this close get flagged as approaching
REFUND_DEADLINE_ALERT_DAYS = int(os.getenv("REFUND_DEADLINE_ALERT_DAYS", "2"))
