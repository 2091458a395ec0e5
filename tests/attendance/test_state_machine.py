from dataclasses import replace
from datetime import datetime, timedelta

import pytest

from src.attendance_engine.attendance_engine.attendance.state_machine import AttendanceStateMachine
from src.attendance_engine.attendance_engine.businesses.model import BusinessAnchor
from src.attendance_engine.attendance_engine.core.enums import (
    AttendanceStatus,
    BreakType,
    CheckInMethod,
    CheckOutMethod,
    ConflictCode,
    TokenFailure,
)
from src.attendance_engine.attendance_engine.core.exceptions import (
    GeofenceViolation,
    NotFound,
    StateConflict,
    TokenInvalid,
    ValidationError,
)
from src.attendance_engine.attendance_engine.location.model import GeoPoint
from src.attendance_engine.attendance_engine.location.verifier import LocationVerifier
from src.attendance_engine.attendance_engine.qr.codec import TokenCodec

ANCHOR = BusinessAnchor(business_id=1, location=GeoPoint(lat=37.4979, lon=127.0276), radius_meters=50)
AT_ANCHOR = GeoPoint(lat=37.4979, lon=127.0276)
FAR_AWAY = GeoPoint(lat=37.5000, lon=127.0300)
T0 = datetime(2026, 3, 2, 9, 0, 0)


def _machine() -> AttendanceStateMachine:
    return AttendanceStateMachine(LocationVerifier(), TokenCodec("unit-test-key"))


def _checked_in(machine: AttendanceStateMachine, at: datetime = T0):
    record = machine.check_in(
        None, user_id=5, business_id=1, method=CheckInMethod.GPS, now=at, anchor=ANCHOR, location=AT_ANCHOR
    )
    return replace(record, attendance_id=100)


def _with_break_ids(record):
    return replace(record, breaks=tuple(replace(b, break_id=i + 1) for i, b in enumerate(record.breaks)))


def test_gps_check_in_at_anchor():
    record = _checked_in(_machine())

    assert record.status == AttendanceStatus.CHECKED_IN
    assert record.check_in_time == T0
    assert record.work_date == T0.date()
    assert record.check_in_method == CheckInMethod.GPS
    assert record.check_in_location == AT_ANCHOR


def test_gps_check_in_outside_geofence():
    with pytest.raises(GeofenceViolation) as exc:
        _machine().check_in(
            None, user_id=5, business_id=1, method=CheckInMethod.GPS, now=T0, anchor=ANCHOR, location=FAR_AWAY
        )

    assert exc.value.distance_meters > 300
    assert exc.value.radius_meters == 50
    assert exc.value.code == "GEOFENCE_VIOLATION"


def test_gps_check_in_needs_location():
    with pytest.raises(ValidationError):
        _machine().check_in(None, user_id=5, business_id=1, method=CheckInMethod.GPS, now=T0, anchor=ANCHOR)


def test_qr_check_in_with_fresh_token():
    machine = AttendanceStateMachine(LocationVerifier(), TokenCodec("unit-test-key"))
    token = TokenCodec("unit-test-key").issue(1, now=T0 - timedelta(seconds=10)).token

    record = machine.check_in(None, user_id=5, business_id=1, method=CheckInMethod.QR, now=T0, qr_token=token)

    assert record.check_in_method == CheckInMethod.QR
    assert record.check_in_location is None


@pytest.mark.parametrize(
    "issued_for, issued_at, reason",
    [
        (1, T0 - timedelta(seconds=31), TokenFailure.EXPIRED),
        (2, T0 - timedelta(seconds=5), TokenFailure.WRONG_BUSINESS),
    ],
)
def test_qr_check_in_rejected(issued_for, issued_at, reason):
    token = TokenCodec("unit-test-key").issue(issued_for, now=issued_at).token

    with pytest.raises(TokenInvalid) as exc:
        _machine().check_in(None, user_id=5, business_id=1, method=CheckInMethod.QR, now=T0, qr_token=token)

    assert exc.value.reason == reason
    assert exc.value.code == f"TOKEN_{reason.name}"


def test_qr_check_in_needs_token():
    with pytest.raises(ValidationError):
        _machine().check_in(None, user_id=5, business_id=1, method=CheckInMethod.QR, now=T0, qr_token="  ")


def test_second_check_in_same_day():
    machine = _machine()
    record = _checked_in(machine)

    with pytest.raises(StateConflict) as exc:
        machine.check_in(
            record, user_id=5, business_id=1, method=CheckInMethod.GPS, now=T0, anchor=ANCHOR, location=AT_ANCHOR
        )
    assert exc.value.conflict == ConflictCode.ALREADY_CHECKED_IN

    on_break = machine.start_break(record, BreakType.NORMAL, T0 + timedelta(hours=1))
    with pytest.raises(StateConflict) as exc:
        machine.ensure_can_check_in(on_break)
    assert exc.value.conflict == ConflictCode.ALREADY_CHECKED_IN


def test_check_in_after_check_out_same_day():
    machine = _machine()
    done, _ = machine.check_out(_checked_in(machine), T0 + timedelta(hours=8))

    with pytest.raises(StateConflict) as exc:
        machine.ensure_can_check_in(done)
    assert exc.value.conflict == ConflictCode.ALREADY_CHECKED_OUT
    assert exc.value.http_status == 409


def test_state_conflict_is_raised_before_proof_is_checked():
    machine = _machine()
    record = _checked_in(machine)

    with pytest.raises(StateConflict):
        machine.check_in(
            record, user_id=5, business_id=1, method=CheckInMethod.GPS, now=T0, anchor=ANCHOR, location=FAR_AWAY
        )


def test_break_cycle():
    machine = _machine()
    record = _checked_in(machine)

    on_break = _with_break_ids(machine.start_break(record, BreakType.MEAL, T0 + timedelta(hours=3)))
    assert on_break.status == AttendanceStatus.ON_BREAK
    assert machine.ledger.open_break(on_break).break_type == BreakType.MEAL

    back, closed = machine.end_break(on_break, 1, T0 + timedelta(hours=3, minutes=40))
    assert back.status == AttendanceStatus.CHECKED_IN
    assert closed.end_time == T0 + timedelta(hours=3, minutes=40)
    assert machine.ledger.break_minutes(closed) == 40


def test_start_break_twice():
    machine = _machine()
    on_break = machine.start_break(_checked_in(machine), BreakType.NORMAL, T0 + timedelta(hours=1))

    with pytest.raises(StateConflict) as exc:
        machine.start_break(on_break, BreakType.NORMAL, T0 + timedelta(hours=2))
    assert exc.value.conflict == ConflictCode.ALREADY_ON_BREAK


def test_start_break_after_check_out():
    machine = _machine()
    done, _ = machine.check_out(_checked_in(machine), T0 + timedelta(hours=8))

    with pytest.raises(StateConflict) as exc:
        machine.start_break(done, BreakType.NORMAL, T0 + timedelta(hours=9))
    assert exc.value.conflict == ConflictCode.NO_ACTIVE_CHECK_IN


def test_break_cannot_start_before_check_in():
    machine = _machine()

    with pytest.raises(ValidationError):
        machine.start_break(_checked_in(machine), BreakType.NORMAL, T0 - timedelta(minutes=1))


def test_end_unknown_or_closed_break():
    machine = _machine()
    on_break = _with_break_ids(machine.start_break(_checked_in(machine), BreakType.NORMAL, T0 + timedelta(hours=1)))

    with pytest.raises(NotFound):
        machine.end_break(on_break, 99, T0 + timedelta(hours=2))

    back, _ = machine.end_break(on_break, 1, T0 + timedelta(hours=2))
    with pytest.raises(StateConflict) as exc:
        machine.end_break(back, 1, T0 + timedelta(hours=3))
    assert exc.value.conflict == ConflictCode.NO_ACTIVE_BREAK


def test_check_out_closes_open_break():
    machine = _machine()
    on_break = _with_break_ids(
        machine.start_break(_checked_in(machine), BreakType.NORMAL, T0 + timedelta(hours=7, minutes=30))
    )

    done, duration = machine.check_out(on_break, T0 + timedelta(hours=8))

    assert done.status == AttendanceStatus.CHECKED_OUT
    assert done.check_out_method == CheckOutMethod.MANUAL
    assert machine.ledger.open_break(done) is None
    assert (duration.total_minutes, duration.break_minutes, duration.actual_work_minutes) == (480, 30, 450)
    assert machine.work_duration(done) == duration


def test_check_out_with_location_nearby():
    machine = _machine()

    done, _ = machine.check_out(_checked_in(machine), T0 + timedelta(hours=8), location=AT_ANCHOR, anchor=ANCHOR)

    assert done.check_out_method == CheckOutMethod.GPS
    assert done.check_out_location == AT_ANCHOR
    assert done.note is None


def test_far_check_out_is_accepted_but_flagged():
    machine = _machine()

    done, _ = machine.check_out(_checked_in(machine), T0 + timedelta(hours=8), location=FAR_AWAY, anchor=ANCHOR)

    assert done.status == AttendanceStatus.CHECKED_OUT
    assert "from the business" in done.note


def test_check_out_without_check_in():
    with pytest.raises(StateConflict) as exc:
        _machine().check_out(None, T0)
    assert exc.value.conflict == ConflictCode.NO_ACTIVE_CHECK_IN


def test_check_out_must_be_after_check_in():
    machine = _machine()

    with pytest.raises(ValidationError):
        machine.check_out(_checked_in(machine), T0)


def test_work_duration_is_none_while_open():
    machine = _machine()

    assert machine.work_duration(_checked_in(machine)) is None
    assert machine.state_of(None) == AttendanceStatus.NOT_CHECKED_IN


def test_work_day_over_the_daily_limit_is_flagged(caplog):
    machine = _machine()

    with caplog.at_level("WARNING"):
        done, duration = machine.check_out(_checked_in(machine), T0 + timedelta(hours=13, minutes=5))

    assert done.status == AttendanceStatus.CHECKED_OUT
    assert duration.overtime_minutes == 5 * 60 + 5
    assert "13h05m exceeds the daily limit" in done.note
    assert "excessive work day" in caplog.text


def test_work_day_at_the_daily_limit_is_not_flagged():
    machine = _machine()

    done, _ = machine.check_out(_checked_in(machine), T0 + timedelta(hours=12))

    assert done.note is None


def test_long_day_and_far_check_out_are_both_noted():
    machine = AttendanceStateMachine(LocationVerifier(), TokenCodec("unit-test-key"), max_daily_work_hours=6)

    done, _ = machine.check_out(_checked_in(machine), T0 + timedelta(hours=8), location=FAR_AWAY, anchor=ANCHOR)

    assert "from the business" in done.note
    assert "8h00m exceeds the daily limit" in done.note
