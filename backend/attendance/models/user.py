"""User model for authentication and authorization."""
from enum import Enum
from werkzeug.security import generate_password_hash, check_password_hash
from attendance import db
from attendance.models.base import BaseModel


class UserRole(Enum):
    """User roles enumeration."""
    STUDENT = 'student'
    PROFESSOR = 'professor'
    ADMIN = 'admin'


class User(BaseModel):
    """User model for all system users."""

    __tablename__ = 'users'

    # Basic Information
    email = db.Column(db.String(255), unique=True, nullable=False, index=True)
    password_hash = db.Column(db.String(255), nullable=False)
    name = db.Column(db.String(255), nullable=False)
    role = db.Column(db.Enum(UserRole), nullable=False, default=UserRole.STUDENT)
    is_active = db.Column(db.Boolean, default=True, nullable=False)
    last_login = db.Column(db.DateTime, nullable=True)

    # Face reference features, Fernet-encrypted JSON
    face_reference = db.Column(db.Text, nullable=True)
    face_registered_at = db.Column(db.DateTime, nullable=True)

    # Relationships
    courses = db.relationship('Course', backref='professor', lazy='dynamic')
    attendance_records = db.relationship('AttendanceRecord', backref='student', lazy='dynamic')

    def set_password(self, password: str) -> None:
        """Set user password with hashing."""
        self.password_hash = generate_password_hash(password)

    def check_password(self, password: str) -> bool:
        """Check if provided password matches user's password."""
        return check_password_hash(self.password_hash, password)

    def is_professor(self) -> bool:
        return self.role == UserRole.PROFESSOR

    def is_student(self) -> bool:
        return self.role == UserRole.STUDENT

    def is_admin(self) -> bool:
        return self.role == UserRole.ADMIN

    @property
    def face_registered(self) -> bool:
        return self.face_reference is not None

    def to_dict(self, exclude: list = None) -> dict:
        """Convert to dictionary excluding sensitive data."""
        default_exclude = ['password_hash', 'face_reference']
        exclude = (exclude or []) + default_exclude

        result = super().to_dict(exclude=exclude)
        result['face_registered'] = self.face_registered

        return result

    def __repr__(self) -> str:
        return f'<User {self.email}>'
