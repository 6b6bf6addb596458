"""Class API: creation, classroom geofence, enrollment by join code."""
from numbers import Real
from flask import Blueprint, request, current_app
from flask_jwt_extended import jwt_required, current_user
from sqlalchemy.exc import IntegrityError
from attendance import db
from attendance.models.course import Course, DEFAULT_RADIUS_METERS
from attendance.models.enrollment import Enrollment
from attendance.services.geo import validate_coordinates
from attendance.utils.decorators import professor_required, student_required
from attendance.utils.helpers import success_response, error_response

classes_bp = Blueprint('classes', __name__)


def _parse_radius(value):
    if value is None:
        return current_app.config.get('DEFAULT_PROXIMITY_RADIUS_METERS', DEFAULT_RADIUS_METERS)
    if not isinstance(value, Real) or isinstance(value, bool) or value <= 0:
        return None
    return int(round(value))


@classes_bp.route('', methods=['POST'])
@jwt_required()
@professor_required
def create_class():
    """Create a class owned by the calling professor."""
    data = request.get_json(silent=True) or {}
    if not isinstance(data, dict):
        return error_response("Request body must be a JSON object", 400, reason='validation_error')

    subject = str(data.get('subject', '')).strip()
    if not subject:
        return error_response("Subject is required", 400, reason='validation_error')

    radius = _parse_radius(data.get('proximity_radius_meters'))
    if radius is None:
        return error_response("Proximity radius must be a positive number", 400, reason='validation_error')

    latitude, longitude = data.get('latitude'), data.get('longitude')
    if latitude is not None or longitude is not None:
        latitude, longitude = validate_coordinates(latitude, longitude)

    course = Course(
        professor_id=current_user.id,
        subject=subject,
        room=data.get('room'),
        join_code=Course.generate_join_code(),
        latitude=latitude,
        longitude=longitude,
        proximity_radius_meters=radius,
    )
    course.save()

    current_app.logger.info(f"Class {course.id} created by professor {current_user.id}")
    return success_response(data=course.to_dict(), message="Class created", status_code=201)


@classes_bp.route('/<int:class_id>/geofence', methods=['PUT'])
@jwt_required()
@professor_required
def update_geofence(class_id):
    """Set or clear the classroom location used for proximity checks."""
    course = Course.get_by_id(class_id)
    if course is None:
        return error_response("Class not found", 404, reason='not_found')
    if not course.is_taught_by(current_user):
        return error_response("You can only configure your own classes", 403, reason='forbidden')

    data = request.get_json(silent=True) or {}
    if not isinstance(data, dict):
        return error_response("Request body must be a JSON object", 400, reason='validation_error')

    radius = _parse_radius(data.get('proximity_radius_meters', course.proximity_radius_meters))
    if radius is None:
        return error_response("Proximity radius must be a positive number", 400, reason='validation_error')

    latitude, longitude = data.get('latitude'), data.get('longitude')
    if latitude is None and longitude is None:
        course.update(latitude=None, longitude=None, proximity_radius_meters=radius)
        message = "Classroom location cleared"
    else:
        latitude, longitude = validate_coordinates(latitude, longitude)
        course.update(latitude=latitude, longitude=longitude, proximity_radius_meters=radius)
        message = "Classroom location updated for proximity check-in"

    current_app.logger.info(f"Geofence of class {course.id} updated by professor {current_user.id}")
    return success_response(data=course.to_dict(), message=message)


@classes_bp.route('/join', methods=['POST'])
@jwt_required()
@student_required
def join_class():
    """Enroll the calling student using a class join code."""
    data = request.get_json(silent=True) or {}
    if not isinstance(data, dict):
        return error_response("Request body must be a JSON object", 400, reason='validation_error')

    code =str(data.get('join_code', '')).strip().upper()

    if not code:
        return error_response("Join code is required", 400, reason='validation_error')

    course = Course.query.filter_by(join_code=code).first()
    if course is None:
        return error_response("Invalid class code", 404, reason='not_found')

    if course.has_student(current_user.id):
        return error_response("Already enrolled in this class", 409, reason='already_enrolled')

    try:
        enrollment = Enrollment(class_id=course.id, student_id=current_user.id)
        enrollment.save()
    except IntegrityError:
        db.session.rollback()
        return error_response("Already enrolled in this class", 409, reason='already_enrolled')

    return success_response(
        data={'class_id': course.id, 'subject': course.subject},
        message="Enrolled successfully",
        status_code=201
    )
