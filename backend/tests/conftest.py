"""Shared fixtures: app on in-memory SQLite, users, a class and a live session."""
from datetime import date, datetime, time, timedelta

import pytest
from flask_jwt_extended import create_access_token

from attendance import create_app, db
from attendance.models.attendance_session import AttendanceSession
from attendance.models.course import Course
from attendance.models.enrollment import Enrollment
from attendance.models.user import User, UserRole
from attendance.services.face_service import CAPTURE_ANGLES, DuplicateVerdict, FaceCapture

# Session starts 09:00; the clock reads 09:05 unless a test moves it
SESSION_DATE = date(2025, 3, 10)
SESSION_START = time(9, 0)
FIXED_NOW = datetime(2025, 3, 10, 9, 5, 0)

# Lecture hall A101
CLASS_LAT = 33.3152
CLASS_LON = 44.3661


class FixedClock:
    """Callable clock the services read instead of the wall clock."""

    def __init__(self, now: datetime):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def set(self, now: datetime) -> None:
        self.now = now

    def advance(self, **kwargs) -> None:
        self.now += timedelta(**kwargs)


@pytest.fixture
def app():
    """Create test app."""
    app = create_app('testing')
    with app.app_context():
        db.create_all()
        yield app
        db.session.remove()
        db.drop_all()


@pytest.fixture
def client(app):
    """Create test client."""
    return app.test_client()


@pytest.fixture
def clock(app):
    clock = FixedClock(FIXED_NOW)
    app.extensions['clock'] = clock
    return clock


def make_user(email, name, role, password='password123'):
    user = User(email=email, name=name, role=role)
    user.set_password(password)
    return user.save()


@pytest.fixture
def professor(app):
    return make_user('amal.hassan@campus.edu', 'Dr. Amal Hassan', UserRole.PROFESSOR)


@pytest.fixture
def other_professor(app):
    return make_user('omar.k@campus.edu', 'Dr. Omar Kareem', UserRole.PROFESSOR)


@pytest.fixture
def student(app):
    return make_user('zainab.khalid@campus.edu', 'Zainab Khalid', UserRole.STUDENT)


@pytest.fixture
def outsider(app):
    """A student who is not enrolled in the class."""
    return make_user('yusuf.ali@campus.edu', 'Yusuf Ali', UserRole.STUDENT)


@pytest.fixture
def course(professor):
    course = Course(
        professor_id=professor.id,
        subject='Data Structures',
        room='A101',
        join_code='DS2025',
        latitude=CLASS_LAT,
        longitude=CLASS_LON,
        proximity_radius_meters=50,
    )
    return course.save()


@pytest.fixture
def enrollment(course, student):
    return Enrollment(class_id=course.id, student_id=student.id).save()


@pytest.fixture
def session(course, enrollment, clock):
    """Live session of the class for today, started at 09:00."""
    session = AttendanceSession(
        class_id=course.id,
        date=SESSION_DATE,
        start_time=SESSION_START,
        is_active=True,
    )
    return session.save()


def auth_headers(user):
    token = create_access_token(identity=str(user.id))
    return {'Authorization': f'Bearer {token}'}


@pytest.fixture
def professor_headers(professor):
    return auth_headers(professor)


@pytest.fixture
def student_headers(student):
    return auth_headers(student)


# One image per registration pose
CAPTURES = {angle: 'aGVsbG8=' for angle in CAPTURE_ANGLES}


def good_capture(angle, **overrides):
    """Analysis of a clear, live, correctly posed capture."""
    values = dict(
        angle=angle,
        face_detected=True,
        single_face=True,
        is_real_person=True,
        face_quality=88,
        angle_matches=True,
        face_features={'face_shape': 'oval', 'pose': angle},
        embedding_signature=f'sig-{angle}',
    )
    values.update(overrides)
    return FaceCapture(**values)


class StubFaceOracle:
    """Face oracle answering with fixed verdicts."""

    def __init__(self, match=None, captures=None, duplicate=None, error=None):
        self.match = match
        self.captures = captures or {}
        self.duplicate = duplicate or DuplicateVerdict(is_duplicate=False, highest_similarity=12)
        self.error = error
        self.compared = []
        self.duplicate_checks = []

    def compare(self, image_base64, reference_features):
        self.compared.append(reference_features)
        if self.error is not None:
            raise self.error
        return self.match

    def analyze_capture(self, image_base64, angle):
        if self.error is not None:
            raise self.error
        return self.captures.get(angle) or good_capture(angle)

    def find_duplicate(self, reference, existing):
        self.duplicate_checks.append(existing)
        if isinstance(self.duplicate, Exception):
            raise self.duplicate
        return self.duplicate
