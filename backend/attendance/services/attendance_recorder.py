"""Single point where a verified check-in becomes an attendance record.

Every check-in method ends here. The existence pre-check only produces a
friendly "already checked in" answer early; the unique constraint on
(session_id, student_id) is what guarantees at most one record when
requests race across methods or server instances.
"""
from dataclasses import dataclass
from datetime import datetime
from typing import Callable, Optional

from flask import current_app
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from attendance import db
from attendance.models.attendance import AttendanceRecord, AttendanceMethod, AttendanceStatus
from attendance.models.attendance_session import AttendanceSession
from attendance.models.enrollment import Enrollment
from attendance.utils.errors import AttendanceError, ErrorKind
from attendance.utils.helpers import utcnow

UNIQUE_VIOLATION_SQLSTATE = '23505'


@dataclass
class RecordResult:
    """Outcome of a recording attempt that did not fail."""
    recorded: bool
    status: Optional[AttendanceStatus]
    verification_score: Optional[float] = None
    record_id: Optional[int] = None

    @property
    def already_recorded(self) -> bool:
        return not self.recorded


def is_unique_violation(error: IntegrityError) -> bool:
    """True when the storage layer rejected a duplicate key."""
    orig = error.orig
    if getattr(orig, 'pgcode', None) == UNIQUE_VIOLATION_SQLSTATE:
        return True
    if getattr(orig, 'sqlstate', None) == UNIQUE_VIOLATION_SQLSTATE:
        return True
    if getattr(orig, 'sqlite_errorname', None) == 'SQLITE_CONSTRAINT_UNIQUE':
        return True
    return 'UNIQUE constraint failed' in str(orig)


class AttendanceRecorder:
    """Records at most one attendance event per (session, student)."""

    def __init__(self, late_threshold_minutes: int = 10,
                 clock: Callable[[], datetime] = utcnow):
        self.late_threshold_minutes = late_threshold_minutes
        self.clock = clock

    @classmethod
    def from_app(cls, clock: Callable[[], datetime] = None) -> 'AttendanceRecorder':
        return cls(
            late_threshold_minutes=current_app.config.get('LATE_THRESHOLD_MINUTES', 10),
            clock=clock or utcnow,
        )

    def classify(self, session: AttendanceSession, now: datetime) -> AttendanceStatus:
        """Late once the grace window after the declared start has passed."""
        if now > session.late_threshold(self.late_threshold_minutes):
            return AttendanceStatus.LATE
        return AttendanceStatus.PRESENT

    @staticmethod
    def _find_existing(session_id: int, student_id: int) -> Optional[AttendanceRecord]:
        return AttendanceRecord.query.filter_by(
            session_id=session_id,
            student_id=student_id
        ).first()

    @staticmethod
    def _already(existing: Optional[AttendanceRecord]) -> RecordResult:
        return RecordResult(
            recorded=False,
            status=existing.status if existing else None,
            verification_score=existing.verification_score if existing else None,
            record_id=existing.id if existing else None,
        )

    def record(
        self,
        session_id: int,
        student_id: int,
        class_id: int,
        method: AttendanceMethod,
        evidence_score: Optional[float] = None,
        latitude: Optional[float] = None,
        longitude: Optional[float] = None,
        accuracy: Optional[float] = None,
    ) -> RecordResult:
        """Record a check-in that already passed method-specific verification."""
        # Session liveness
        session = db.session.get(AttendanceSession, session_id)
        if session is None:
            raise AttendanceError(ErrorKind.NOT_FOUND, "Session not found")

        now = self.clock()
        if not session.is_live(now):
            raise AttendanceError(ErrorKind.SESSION_CLOSED, "Session is not active")

        # Class linkage and enrollment
        if class_id != session.class_id:
            raise AttendanceError(ErrorKind.MISMATCH, "Class ID does not match session")

        enrollment = Enrollment.query.filter_by(class_id=class_id, student_id=student_id).first()
        if enrollment is None:
            raise AttendanceError(ErrorKind.NOT_ENROLLED, "You are not enrolled in this class")

        # Duplicate pre-check
        existing = self._find_existing(session_id, student_id)
        if existing is not None:
            return self._already(existing)

        status = self.classify(session, now)
        record = AttendanceRecord(
            session_id=session_id,
            class_id=class_id,
            student_id=student_id,
            timestamp=now,
            method_used=method,
            status=status,
            verification_score=evidence_score,
            latitude=latitude,
            longitude=longitude,
            gps_accuracy=accuracy,
        )

        try:
            db.session.add(record)
            db.session.commit()
        except IntegrityError as e:
            db.session.rollback()
            if is_unique_violation(e):
                current_app.logger.info(
                    f"Concurrent check-in for session {session_id} student {student_id} lost the race"
                )
                return self._already(self._find_existing(session_id, student_id))
            current_app.logger.exception("Attendance recording failed")
            raise AttendanceError(ErrorKind.INTERNAL_ERROR, "Failed to record attendance")
        except SQLAlchemyError:
            db.session.rollback()
            current_app.logger.exception("Attendance recording failed")
            raise AttendanceError(ErrorKind.INTERNAL_ERROR, "Failed to record attendance")

        current_app.logger.info(
            f"Attendance recorded: session={session_id} student={student_id} "
            f"method={method.value} status={status.value}"
        )
        return RecordResult(
            recorded=True,
            status=status,
            verification_score=evidence_score,
            record_id=record.id,
        )
