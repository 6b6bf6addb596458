"""Attendance session: one calendar sitting of a class."""
from datetime import datetime, timedelta
from attendance import db
from attendance.models.base import BaseModel
from attendance.utils.helpers import utcnow


class AttendanceSession(BaseModel):
    """Session accepting check-ins while active."""

    __tablename__ = 'attendance_sessions'

    class_id = db.Column(db.Integer, db.ForeignKey('classes.id'), nullable=False, index=True)
    date = db.Column(db.Date, nullable=False, default=lambda: utcnow().date())
    start_time = db.Column(db.Time, nullable=False)
    end_time = db.Column(db.Time, nullable=True)
    is_active = db.Column(db.Boolean, default=True, nullable=False)

    # Relationships
    records = db.relationship('AttendanceRecord', backref='session', lazy='dynamic')

    @property
    def starts_at(self) -> datetime:
        return datetime.combine(self.date, self.start_time)

    def late_threshold(self, grace_minutes: int) -> datetime:
        """Instant after which a check-in counts as late."""
        return self.starts_at + timedelta(minutes=grace_minutes)

    def is_expired(self, now: datetime) -> bool:
        """A session lapses once its calendar day has passed."""
        return now.date() > self.date

    def is_live(self, now: datetime) -> bool:
        return bool(self.is_active) and not self.is_expired(now)

    def end(self, now: datetime) -> None:
        """Close the session; later check-ins are rejected."""
        self.is_active = False
        self.end_time = now.time().replace(microsecond=0)

    def to_dict(self, now: datetime = None):
        data = super().to_dict()
        if now is not None:
            data['is_active'] = self.is_live(now)
        return data

    def __repr__(self):
        return f'<AttendanceSession {self.id} class={self.class_id} {self.date}>'
