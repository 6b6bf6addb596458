"""Class enrollment (class, student) membership."""
from attendance import db
from attendance.models.base import BaseModel
from attendance.utils.helpers import utcnow


class Enrollment(BaseModel):
    """A student's membership in a class."""

    __tablename__ = 'class_enrollments'
    __table_args__ = (
        db.UniqueConstraint('class_id', 'student_id', name='uq_enrollment_class_student'),
    )

    class_id = db.Column(db.Integer, db.ForeignKey('classes.id'), nullable=False, index=True)
    student_id = db.Column(db.Integer, db.ForeignKey('users.id'), nullable=False, index=True)
    enrolled_at = db.Column(db.DateTime, default=utcnow, nullable=False)

    def __repr__(self):
        return f'<Enrollment {self.class_id}-{self.student_id}>'
