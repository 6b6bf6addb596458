"""Attendance record model with verification details."""
from enum import Enum
from attendance import db
from attendance.models.base import BaseModel
from attendance.utils.helpers import utcnow


class AttendanceMethod(Enum):
    """How the student proved presence."""
    QR = 'qr'
    FACE = 'face'
    PROXIMITY = 'proximity'
    MANUAL = 'manual'


class AttendanceStatus(Enum):
    """Recorded outcome; ABSENT is only written by reporting jobs."""
    PRESENT = 'present'
    LATE = 'late'
    ABSENT = 'absent'


class AttendanceRecord(BaseModel):
    """Attendance record model."""

    __tablename__ = 'attendance_records'
    __table_args__ = (
        db.UniqueConstraint('session_id', 'student_id', name='uq_attendance_session_student'),
    )

    session_id = db.Column(db.Integer, db.ForeignKey('attendance_sessions.id'), nullable=False, index=True)
    class_id = db.Column(db.Integer, db.ForeignKey('classes.id'), nullable=False, index=True)
    student_id = db.Column(db.Integer, db.ForeignKey('users.id'), nullable=False, index=True)
    timestamp = db.Column(db.DateTime, default=utcnow, nullable=False)

    # Verification details
    method_used = db.Column(db.Enum(AttendanceMethod), nullable=False)
    status = db.Column(db.Enum(AttendanceStatus), nullable=False, default=AttendanceStatus.PRESENT)
    verification_score = db.Column(db.Float, nullable=True)

    # Location where check-in happened
    latitude = db.Column(db.Float, nullable=True)
    longitude = db.Column(db.Float, nullable=True)
    gps_accuracy = db.Column(db.Float, nullable=True)  # meters, as reported by the device

    def __repr__(self):
        return f'<AttendanceRecord {self.student_id}-{self.session_id}>'
