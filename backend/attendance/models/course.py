"""Class (course) model with its classroom geofence."""
import secrets
import string
from dataclasses import dataclass
from typing import Optional
from attendance import db
from attendance.models.base import BaseModel

DEFAULT_RADIUS_METERS = 50

JOIN_CODE_ALPHABET = string.ascii_uppercase + string.digits


@dataclass(frozen=True)
class ClassGeofence:
    """Circular admission region around a classroom."""
    latitude: Optional[float]
    longitude: Optional[float]
    radius_meters: float = DEFAULT_RADIUS_METERS
    room: Optional[str] = None

    @property
    def is_configured(self) -> bool:
        return self.latitude is not None and self.longitude is not None


class Course(BaseModel):
    """A class taught by a professor; students enroll and attend its sessions."""

    __tablename__ = 'classes'

    professor_id = db.Column(db.Integer, db.ForeignKey('users.id'), nullable=False, index=True)
    subject = db.Column(db.String(255), nullable=False)
    room = db.Column(db.String(100), nullable=True)
    join_code = db.Column(db.String(6), unique=True, nullable=False, index=True)

    # Geofence; unset center means proximity is not configured
    latitude = db.Column(db.Float, nullable=True)
    longitude = db.Column(db.Float, nullable=True)
    proximity_radius_meters = db.Column(db.Integer, nullable=False, default=DEFAULT_RADIUS_METERS)

    # Relationships
    enrollments = db.relationship('Enrollment', backref='course', lazy='dynamic')
    sessions = db.relationship('AttendanceSession', backref='course', lazy='dynamic')

    @staticmethod
    def generate_join_code(length: int = 6) -> str:
        """Generate a join code not used by any other class."""
        while True:
            code = ''.join(secrets.choice(JOIN_CODE_ALPHABET) for _ in range(length))
            if not Course.query.filter_by(join_code=code).first():
                return code

    @property
    def geofence(self) -> ClassGeofence:
        return ClassGeofence(
            latitude=self.latitude,
            longitude=self.longitude,
            radius_meters=self.proximity_radius_meters or DEFAULT_RADIUS_METERS,
            room=self.room,
        )

    def is_taught_by(self, user) -> bool:
        return user is not None and self.professor_id == user.id

    def has_student(self, student_id: int) -> bool:
        from attendance.models.enrollment import Enrollment
        return Enrollment.query.filter_by(class_id=self.id, student_id=student_id).first() is not None

    def to_dict(self):
        data = super().to_dict()
        data['geofence_configured'] = self.geofence.is_configured
        return data

    def __repr__(self):
        return f'<Course {self.subject}>'
