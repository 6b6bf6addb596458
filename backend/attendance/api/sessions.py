"""Attendance session API: start, end, live sessions and QR token issuance."""
from datetime import datetime
from flask import Blueprint, request, current_app
from flask_jwt_extended import jwt_required, current_user
from attendance import db, limiter
from attendance.models.attendance import AttendanceRecord
from attendance.models.attendance_session import AttendanceSession
from attendance.models.course import Course
from attendance.models.enrollment import Enrollment
from attendance.services.qr_service import SessionTokenService
from attendance.utils.decorators import professor_required, student_required
from attendance.utils.helpers import success_response, error_response, app_clock

sessions_bp = Blueprint('sessions', __name__)


def _parse_time(value, default):
    if value is None:
        return default
    try:
        return datetime.strptime(value, '%H:%M:%S').time()
    except (TypeError, ValueError):
        try:
            return datetime.strptime(value, '%H:%M').time()
        except (TypeError, ValueError):
            return None


def _parse_date(value, default):
    if value is None:
        return default
    try:
        return datetime.strptime(value, '%Y-%m-%d').date()
    except (TypeError, ValueError):
        return None


def _owned_session(session_id):
    """Return (session, None) or (None, error response) for the caller."""
    session = AttendanceSession.get_by_id(session_id)
    if session is None:
        return None, error_response("Session not found", 404, reason='not_found')
    if not session.course.is_taught_by(current_user):
        return None, error_response("Not authorized for this session", 403, reason='forbidden')
    return session, None


@sessions_bp.route('', methods=['POST'])
@jwt_required()
@professor_required
def start_session():
    """Start an attendance session for one of the caller's classes."""
    data = request.get_json(silent=True) or {}
    if not isinstance(data, dict):
        return error_response("Request body must be a JSON object", 400, reason='validation_error')

    class_id = data.get('class_id')
    if not isinstance(class_id, int) or isinstance(class_id, bool):
        return error_response("Class ID is required", 400, reason='validation_error')

    course = Course.get_by_id(class_id)
    if course is None:
        return error_response("Class not found", 404, reason='not_found')
    if not course.is_taught_by(current_user):
        return error_response("You can only start sessions for your own classes", 403, reason='forbidden')

    now = app_clock()()
    session_date = _parse_date(data.get('date'), now.date())
    start_time = _parse_time(data.get('start_time'), now.time().replace(microsecond=0))
    if session_date is None or start_time is None:
        return error_response("Invalid date or start time", 400, reason='validation_error')

    session = AttendanceSession(
        class_id=course.id,
        date=session_date,
        start_time=start_time,
        is_active=True,
    )
    session.save()

    current_app.logger.info(f"Session {session.id} started for class {course.id}")
    return success_response(data=session.to_dict(now), message="Session started", status_code=201)


@sessions_bp.route('/active', methods=['GET'])
@jwt_required()
@student_required
def active_sessions():
    """Live sessions of the classes the calling student is enrolled in."""
    now = app_clock()()
    sessions = (
        AttendanceSession.query
        .join(Enrollment, Enrollment.class_id == AttendanceSession.class_id)
        .filter(
            Enrollment.student_id == current_user.id,
            AttendanceSession.is_active.is_(True),
            AttendanceSession.date >= now.date(),
        )
        .order_by(AttendanceSession.created_at.desc())
        .all()
    )

    checked_in = {
        record.session_id for record in AttendanceRecord.query.filter(
            AttendanceRecord.student_id == current_user.id,
            AttendanceRecord.session_id.in_([s.id for s in sessions]),
        )
    } if sessions else set()

    items = []
    for session in sessions:
        data = session.to_dict(now)
        data['subject'] = session.course.subject
        data['room'] = session.course.room
        data['geofence_configured'] = session.course.geofence.is_configured
        data['checked_in'] = session.id in checked_in
        items.append(data)

    return success_response(data={'sessions': items, 'count': len(items)})


@sessions_bp.route('/<int:session_id>', methods=['GET'])
@jwt_required()
def get_session(session_id):
    """Session details for its professor or an enrolled student."""
    session = AttendanceSession.get_by_id(session_id)
    if session is None:
        return error_response("Session not found", 404, reason='not_found')

    course = session.course
    if not (course.is_taught_by(current_user) or course.has_student(current_user.id)):
        return error_response("Not authorized for this session", 403, reason='forbidden')

    data = session.to_dict(app_clock()())
    data['subject'] = course.subject
    data['room'] = course.room
    data['geofence_configured'] = course.geofence.is_configured
    if course.is_taught_by(current_user):
        data['present_count'] = session.records.count()
    return success_response(data=data)


@sessions_bp.route('/<int:session_id>/end', methods=['POST'])
@jwt_required()
@professor_required
def end_session(session_id):
    """End a session; later check-ins are rejected."""
    session, error = _owned_session(session_id)
    if error:
        return error

    now = app_clock()()
    session.end(now)
    db.session.commit()

    current_app.logger.info(f"Session {session.id} ended")
    return success_response(data=session.to_dict(now), message="Session ended")


@sessions_bp.route('/<int:session_id>/token', methods=['POST'])
@jwt_required()
@professor_required
@limiter.limit("10 per minute")
def issue_token(session_id):
    """Issue a fresh QR token; the display polls this every TTL."""
    service = SessionTokenService.from_app(clock=app_clock())
    token = service.issue(session_id, current_user)

    return success_response(
        data={
            'qr_data': token.to_qr_string(),
            'token': token.to_dict(),
            'qr_image': SessionTokenService.render_qr(token),
            'expires_in': current_app.config.get('SESSION_TOKEN_TTL_SECONDS', 30),
        },
        message="QR code generated successfully"
    )
