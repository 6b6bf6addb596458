"""Tests for the attendance recorder: liveness, linkage, lateness, at-most-once."""
import threading
from datetime import datetime

import pytest
from sqlalchemy.exc import IntegrityError

from attendance import create_app, db
from attendance.models.attendance import AttendanceRecord, AttendanceMethod, AttendanceStatus
from attendance.models.attendance_session import AttendanceSession
from attendance.models.course import Course
from attendance.models.enrollment import Enrollment
from attendance.models.user import User, UserRole
from attendance.services.attendance_recorder import AttendanceRecorder, is_unique_violation
from attendance.utils.errors import AttendanceError, ErrorKind
from config.testing import TestingConfig

from conftest import FixedClock, SESSION_DATE, SESSION_START


@pytest.fixture
def recorder(clock):
    return AttendanceRecorder(late_threshold_minutes=10, clock=clock)


def _record(recorder, session, student, method=AttendanceMethod.QR, **kwargs):
    kwargs.setdefault('class_id', session.class_id)
    return recorder.record(session_id=session.id, student_id=student.id, method=method, **kwargs)


def test_records_present(recorder, session, student):
    result = _record(recorder, session, student, latitude=33.3152, longitude=44.3661, accuracy=8.0)

    assert result.recorded
    assert result.status == AttendanceStatus.PRESENT
    row = AttendanceRecord.query.one()
    assert row.method_used == AttendanceMethod.QR
    assert row.class_id == session.class_id
    assert row.latitude == 33.3152
    assert row.gps_accuracy == 8.0


def test_second_attempt_already_recorded(recorder, session, student, clock):
    first = _record(recorder, session, student)

    clock.set(datetime(2025, 3, 10, 9, 6, 0))
    second = _record(recorder, session, student, method=AttendanceMethod.PROXIMITY, evidence_score=0.9)

    assert second.already_recorded
    assert second.record_id == first.record_id
    assert second.status == AttendanceStatus.PRESENT
    assert AttendanceRecord.query.count() == 1
    assert AttendanceRecord.query.one().method_used == AttendanceMethod.QR


@pytest.mark.parametrize('now, expected', [
    (datetime(2025, 3, 10, 9, 9, 59), AttendanceStatus.PRESENT),
    (datetime(2025, 3, 10, 9, 10, 0), AttendanceStatus.PRESENT),
    (datetime(2025, 3, 10, 9, 10, 1), AttendanceStatus.LATE),
    (datetime(2025, 3, 10, 11, 30, 0), AttendanceStatus.LATE),
])
def test_lateness_boundary(recorder, session, student, clock, now, expected):
    clock.set(now)

    assert _record(recorder, session, student).status == expected


def test_evidence_score_stored(recorder, session, student):
    _record(recorder, session, student, method=AttendanceMethod.FACE, evidence_score=0.91)

    assert AttendanceRecord.query.one().verification_score == 0.91


def test_unknown_session(recorder, student, app):
    with pytest.raises(AttendanceError) as exc:
        recorder.record(session_id=404, student_id=student.id, class_id=1, method=AttendanceMethod.QR)
    assert exc.value.kind == ErrorKind.NOT_FOUND


def test_ended_session(recorder, session, student):
    session.is_active = False
    db.session.commit()

    with pytest.raises(AttendanceError) as exc:
        _record(recorder, session, student)
    assert exc.value.kind == ErrorKind.SESSION_CLOSED


def test_session_lapses_after_its_day(recorder, session, student, clock):
    clock.set(datetime(2025, 3, 11, 8, 0, 0))

    with pytest.raises(AttendanceError) as exc:
        _record(recorder, session, student)
    assert exc.value.kind == ErrorKind.SESSION_CLOSED


def test_class_mismatch(recorder, session, student):
    with pytest.raises(AttendanceError) as exc:
        _record(recorder, session, student, class_id=session.class_id + 1)
    assert exc.value.kind == ErrorKind.MISMATCH
    assert AttendanceRecord.query.count() == 0


def test_not_enrolled(recorder, session, outsider):
    with pytest.raises(AttendanceError) as exc:
        _record(recorder, session, outsider)
    assert exc.value.kind == ErrorKind.NOT_ENROLLED
    assert exc.value.status_code == 403


def test_mismatch_checked_before_enrollment(recorder, session, outsider):
    with pytest.raises(AttendanceError) as exc:
        _record(recorder, session, outsider, class_id=session.class_id + 1)
    assert exc.value.kind == ErrorKind.MISMATCH


def test_unique_constraint_wins_when_precheck_is_passed(recorder, session, student, monkeypatch):
    """A request that slipped past the existence check still cannot add a row."""
    first = _record(recorder, session, student)

    real_find = AttendanceRecorder._find_existing
    calls = []

    def stale_find(session_id, student_id):
        calls.append(session_id)
        if len(calls) == 1:
            return None
        return real_find(session_id, student_id)

    monkeypatch.setattr(AttendanceRecorder, '_find_existing', staticmethod(stale_find))

    second = _record(recorder, session, student, method=AttendanceMethod.PROXIMITY)

    assert first.recorded
    assert second.already_recorded
    assert second.record_id == first.record_id
    assert AttendanceRecord.query.count() == 1


def test_other_integrity_errors_are_internal(recorder, session, student, monkeypatch):
    def broken_commit():
        raise IntegrityError('INSERT', {}, Exception('NOT NULL constraint failed: attendance_records.status'))

    monkeypatch.setattr(db.session, 'commit', broken_commit)

    with pytest.raises(AttendanceError) as exc:
        _record(recorder, session, student)
    assert exc.value.kind == ErrorKind.INTERNAL_ERROR
    assert exc.value.public_message == "Something went wrong. Please try again."


def test_is_unique_violation_by_sqlstate():
    class PgError(Exception):
        pgcode = '23505'

    assert is_unique_violation(IntegrityError('INSERT', {}, PgError('duplicate key')))
    assert not is_unique_violation(IntegrityError('INSERT', {}, Exception('foreign key violation')))


@pytest.fixture
def file_app(tmp_path, monkeypatch):
    """App on a file database so separate threads get separate connections."""
    monkeypatch.setattr(TestingConfig, 'SQLALCHEMY_DATABASE_URI', f"sqlite:///{tmp_path / 'race.db'}")
    app = create_app('testing')
    app.extensions['clock'] = FixedClock(datetime(2025, 3, 10, 9, 5, 0))

    with app.app_context():
        db.create_all()
        professor = User(email='p@campus.edu', name='Prof', role=UserRole.PROFESSOR)
        professor.set_password('password123')
        student = User(email='s@campus.edu', name='Student', role=UserRole.STUDENT)
        student.set_password('password123')
        db.session.add_all([professor, student])
        db.session.flush()

        course = Course(professor_id=professor.id, subject='Networks', join_code='NET101')
        db.session.add(course)
        db.session.flush()

        session = AttendanceSession(class_id=course.id, date=SESSION_DATE, start_time=SESSION_START)
        db.session.add_all([session, Enrollment(class_id=course.id, student_id=student.id)])
        db.session.commit()

        ids = {'session_id': session.id, 'student_id': student.id, 'class_id': course.id}

    yield app, ids

    with app.app_context():
        db.session.remove()
        db.drop_all()
        db.engine.dispose()


def test_concurrent_checkins_record_once(file_app, monkeypatch):
    """QR and proximity racing for the same student produce one row."""
    app, ids = file_app
    barrier = threading.Barrier(2, timeout=10)
    real_find = AttendanceRecorder._find_existing
    local = threading.local()

    def racing_find(session_id, student_id):
        # Both requests pass the pre-check before either inserts
        if not getattr(local, 'waited', False):
            local.waited = True
            barrier.wait()
            return None
        return real_find(session_id, student_id)

    monkeypatch.setattr(AttendanceRecorder, '_find_existing', staticmethod(racing_find))

    results, errors = [], []

    def check_in(method):
        with app.app_context():
            try:
                recorder = AttendanceRecorder.from_app(clock=app.extensions['clock'])
                results.append(recorder.record(method=method, **ids))
            except Exception as e:
                errors.append(e)

    threads = [
        threading.Thread(target=check_in, args=(AttendanceMethod.QR,)),
        threading.Thread(target=check_in, args=(AttendanceMethod.PROXIMITY,)),
    ]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join(timeout=30)

    assert errors == []
    assert sorted(result.recorded for result in results) == [False, True]

    with app.app_context():
        assert AttendanceRecord.query.count() == 1
