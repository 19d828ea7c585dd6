"""Capacity usage, fit checks and admission tickets"""

from datetime import date

import pytest

from clinic_booking.config import ADMISSION_MAX_RETRIES
from clinic_booking.domain.appointments.capacity_ledger import CapacityLedger
from clinic_booking.domain.appointments.overlap import OverlapChecker
from clinic_booking.domain.scheduling.resolver import ClinicDaySnapshot
from clinic_booking.domain.scheduling.slot_grid import build_grid
from clinic_booking.models import AdmissionTicket
from clinic_booking.shared.errors import CapacityError

DAY = date(2030, 1, 7)


def snapshot(capacity=2, open_time="08:00", close_time="12:00", is_open=True):
    if not is_open:
        return ClinicDaySnapshot.closed(DAY)
    return ClinicDaySnapshot(
        date=DAY,
        is_open=True,
        open_time=open_time,
        close_time=close_time,
        effective_capacity=capacity,
        source="weekly",
        grid=build_grid(open_time, close_time),
    )


class TestUsage:
    def test_empty_day_has_every_block_at_zero(self, db_session):
        usage = CapacityLedger(db_session, snapshot()).usage()
        assert set(usage) == set(build_grid("08:00", "12:00"))
        assert all(count == 0 for count in usage.values())

    def test_counts_committed_statuses_only(self, db_session, make_appointment):
        for status in ("pending", "approved", "completed", "cancelled", "rejected"):
            make_appointment(DAY, "09:00-10:00", status=status)
        usage = CapacityLedger(db_session, snapshot()).usage()
        assert usage["09:00"] == 3
        assert usage["09:30"] == 3
        assert usage["10:00"] == 0

    def test_other_dates_are_ignored(self, db_session, make_appointment):
        make_appointment(date(2030, 1, 8), "09:00-10:00")
        assert CapacityLedger(db_session, snapshot()).usage()["09:00"] == 0

    def test_malformed_slot_is_skipped(self, db_session, make_appointment):
        make_appointment(DAY, "garbage")
        make_appointment(DAY, "09:00-09:30")
        assert CapacityLedger(db_session, snapshot()).usage()["09:00"] == 1

    def test_exclusion(self, db_session, make_appointment):
        appointment = make_appointment(DAY, "09:00-10:00")
        usage = CapacityLedger(db_session, snapshot()).usage(exclude_appointment_id=appointment.id)
        assert usage["09:00"] == 0


class TestCanFit:
    def test_fits_on_empty_day(self, db_session):
        assert CapacityLedger(db_session, snapshot()).can_fit("09:00", 2).ok

    def test_reports_first_full_block(self, db_session, make_appointment):
        make_appointment(DAY, "09:30-10:00")
        make_appointment(DAY, "09:30-10:00")
        fit = CapacityLedger(db_session, snapshot(capacity=2)).can_fit("09:00", 3)
        assert not fit.ok
        assert fit.full_at == "09:30"

    def test_running_past_close_reports_off_grid_block(self, db_session):
        fit = CapacityLedger(db_session, snapshot()).can_fit("11:30", 2)
        assert not fit.ok
        assert fit.full_at == "12:00"

    def test_long_run_at_the_end_of_a_late_day(self, db_session):
        fit = CapacityLedger(db_session, snapshot(close_time="23:30")).can_fit("23:00", 4)
        assert not fit.ok
        assert fit.full_at == "23:30"

    def test_closed_day(self, db_session):
        fit = CapacityLedger(db_session, snapshot(is_open=False)).can_fit("09:00", 1)
        assert not fit.ok
        assert fit.full_at == "09:00"

    def test_zero_capacity(self, db_session):
        fit = CapacityLedger(db_session, snapshot(capacity=0)).can_fit("09:00", 1)
        assert fit.full_at == "09:00"

    def test_excluding_itself_frees_its_blocks(self, db_session, make_appointment):
        appointment = make_appointment(DAY, "09:00-10:00")
        ledger = CapacityLedger(db_session, snapshot(capacity=1))
        assert not ledger.can_fit("09:00", 2).ok
        assert ledger.can_fit("09:00", 2, exclude_appointment_id=appointment.id).ok


class TestAdmission:
    def test_admit_claims_one_ticket_per_block(self, db_session, make_appointment):
        appointment = make_appointment(DAY, "09:00-10:30")
        ledger = CapacityLedger(db_session, snapshot())
        tickets = ledger.admit(appointment)
        db_session.commit()
        assert [t.block_start for t in tickets] == ["09:00", "09:30", "10:00"]
        assert all(t.unit == 0 for t in tickets)

    def test_second_admission_takes_next_unit(self, db_session, make_appointment):
        ledger = CapacityLedger(db_session, snapshot(capacity=2))
        ledger.admit(make_appointment(DAY, "09:00-09:30"))
        tickets = ledger.admit(make_appointment(DAY, "09:00-09:30"))
        assert tickets[0].unit == 1

    def test_no_free_unit_raises(self, db_session, make_appointment):
        ledger = CapacityLedger(db_session, snapshot(capacity=1))
        ledger.admit(make_appointment(DAY, "09:00-09:30"))
        with pytest.raises(CapacityError) as exc_info:
            ledger.admit(make_appointment(DAY, "09:00-10:00"))
        assert exc_info.value.full_at == "09:00"
        assert exc_info.value.detail["full_at"] == "09:00"

    def test_unit_taken_after_read_moves_to_next_unit(self, db_session, make_appointment, monkeypatch):
        rival = make_appointment(DAY, "09:00-09:30")
        db_session.add(AdmissionTicket(appointment_id=rival.id, date=DAY, block_start="09:00", unit=0))
        db_session.commit()

        ledger = CapacityLedger(db_session, snapshot(capacity=2))
        fresh_read = ledger.taken_units
        reads = []

        def stale_first_read(day, block):
            reads.append(block)
            return set() if len(reads) == 1 else fresh_read(day, block)

        monkeypatch.setattr(ledger, "taken_units", stale_first_read)
        appointment = make_appointment(DAY, "09:00-09:30")
        tickets = ledger.admit(appointment)
        db_session.commit()

        assert tickets[0].unit == 1
        assert reads == ["09:00", "09:00"]
        units = db_session.query(AdmissionTicket.unit).filter(AdmissionTicket.block_start == "09:00").all()
        assert sorted(unit for (unit,) in units) == [0, 1]

    def test_unit_taken_on_every_attempt_raises_capacity_error(self, db_session, make_appointment, monkeypatch):
        for unit in (0, 1):
            rival = make_appointment(DAY, "09:00-09:30")
            db_session.add(AdmissionTicket(appointment_id=rival.id, date=DAY, block_start="09:00", unit=unit))
        db_session.commit()

        ledger = CapacityLedger(db_session, snapshot(capacity=2))
        reads = []

        def always_stale(day, block):
            reads.append(block)
            return set()

        monkeypatch.setattr(ledger, "taken_units", always_stale)
        with pytest.raises(CapacityError) as exc_info:
            ledger.admit(make_appointment(DAY, "09:00-09:30"))

        assert exc_info.value.full_at == "09:00"
        assert len(reads) == ADMISSION_MAX_RETRIES
        # Only the failed savepoints were rolled back
        assert db_session.query(AdmissionTicket).count() == 2

    def test_release(self, db_session, make_appointment):
        appointment = make_appointment(DAY, "09:00-10:00")
        CapacityLedger(db_session, snapshot()).admit(appointment)
        db_session.commit()

        assert CapacityLedger.release(db_session, appointment) == 2
        db_session.commit()
        assert db_session.query(AdmissionTicket).count() == 0
        assert appointment.admission_tickets == []


class TestOverlapChecker:
    def test_touching_slots_are_free(self, db_session, make_patient, make_appointment):
        patient = make_patient()
        make_appointment(DAY, "09:00-10:00", patient=patient)
        assert not OverlapChecker(db_session).has_overlap(patient.id, DAY, "10:00-10:30")

    def test_overlap_detected(self, db_session, make_patient, make_appointment):
        patient = make_patient()
        make_appointment(DAY, "09:00-10:00", patient=patient)
        assert OverlapChecker(db_session).has_overlap(patient.id, DAY, "09:30-10:30")

    def test_other_patients_do_not_count(self, db_session, make_patient, make_appointment):
        make_appointment(DAY, "09:00-10:00")
        assert not OverlapChecker(db_session).has_overlap(make_patient().id, DAY, "09:00-10:00")

    def test_cancelled_appointments_do_not_count(self, db_session, make_patient, make_appointment):
        patient = make_patient()
        make_appointment(DAY, "09:00-10:00", patient=patient, status="cancelled")
        assert not OverlapChecker(db_session).has_overlap(patient.id, DAY, "09:00-10:00")

    def test_exclusion(self, db_session, make_patient, make_appointment):
        patient = make_patient()
        appointment = make_appointment(DAY, "09:00-10:00", patient=patient)
        assert not OverlapChecker(db_session).has_overlap(
            patient.id, DAY, "09:30-10:30", exclude_appointment_id=appointment.id
        )
