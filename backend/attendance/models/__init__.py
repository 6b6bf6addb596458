"""Models package with all models."""
from .base import BaseModel
from .user import User, UserRole
from .course import Course, ClassGeofence
from .enrollment import Enrollment
from .attendance_session import AttendanceSession
from .session_secret import SessionSecret
from .attendance import AttendanceRecord, AttendanceMethod, AttendanceStatus

__all__ = [
    'BaseModel', 'User', 'UserRole',
    'Course', 'ClassGeofence', 'Enrollment',
    'AttendanceSession', 'SessionSecret',
    'AttendanceRecord', 'AttendanceMethod', 'AttendanceStatus'
]
