"""Check-in API: one endpoint for QR, face, and proximity attendance."""
from flask import Blueprint, request
from flask_jwt_extended import jwt_required, current_user
from attendance.services.checkin_service import CheckInEvidence, CheckInOrchestrator
from attendance.utils.decorators import student_required
from attendance.utils.helpers import success_response, error_response

checkin_bp = Blueprint('checkin', __name__)


@checkin_bp.route('', methods=['POST'])
@jwt_required()
@student_required
def check_in():
    """Check in to a session.

    Body: ``method`` (qr, face, proximity) plus that method's evidence:
    ``qr_data``, ``session_id``, ``latitude``/``longitude``/``accuracy``,
    ``image_base64``.
    """
    data = request.get_json(silent=True)
    if not isinstance(data, dict) or not data:
        return error_response("Request body must be a JSON object", 400, reason='validation_error')

    method = data.get('method')
    if not method or not isinstance(method, str):
        return error_response("Check-in method is required", 400, reason='validation_error')

    result = CheckInOrchestrator.from_app().check_in(
        current_user, method, CheckInEvidence.from_json(data)
    )

    if result.success:
        return success_response(data=result.to_dict(), message=result.message,
                                status_code=result.status_code)

    body = result.to_dict()
    return error_response(result.message, result.status_code, reason=result.reason, details=body)
