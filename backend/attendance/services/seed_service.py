"""Database seeding service for demo data."""
from attendance import db
from attendance.models.course import Course
from attendance.models.enrollment import Enrollment
from attendance.models.user import User, UserRole

DEMO_PROFESSOR = ('Dr. Amal Hassan', 'amal.hassan@campus.edu', 'professor123')

DEMO_STUDENTS = [
    ('Omar Salem', 'omar.salem@campus.edu', 'student123'),
    ('Zainab Khalid', 'zainab.khalid@campus.edu', 'student123'),
    ('Yusuf Ali', 'yusuf.ali@campus.edu', 'student123'),
]

# Lecture hall A101; proximity check-in admits within 50 m
DEMO_CLASS = {
    'subject': 'Data Structures',
    'room': 'A101',
    'latitude': 33.3152,
    'longitude': 44.3661,
    'proximity_radius_meters': 50,
}


class SeedService:
    """Service to seed database with demo data."""

    @staticmethod
    def seed_demo() -> str:
        """Seed one professor, one class with a geofence and enrolled students.

        Safe to run twice: existing users and enrollments are reused.
        """
        professor = SeedService._get_or_create_user(*DEMO_PROFESSOR, role=UserRole.PROFESSOR)

        course = Course.query.filter_by(professor_id=professor.id, subject=DEMO_CLASS['subject']).first()
        if course is None:
            course = Course(professor_id=professor.id, join_code=Course.generate_join_code(), **DEMO_CLASS)
            db.session.add(course)
            db.session.flush()

        for name, email, password in DEMO_STUDENTS:
            student = SeedService._get_or_create_user(name, email, password, role=UserRole.STUDENT)
            if not course.has_student(student.id):
                db.session.add(Enrollment(class_id=course.id, student_id=student.id))

        db.session.commit()
        return (f"class '{course.subject}' (join code {course.join_code}) with "
                f"{course.enrollments.count()} students; professor {professor.email}")

    @staticmethod
    def _get_or_create_user(name: str, email: str, password: str, role: UserRole) -> User:
        user = User.query.filter_by(email=email).first()
        if user is None:
            user = User(email=email, name=name, role=role)
            user.set_password(password)
            db.session.add(user)
            db.session.flush()
        return user
