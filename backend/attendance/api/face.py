"""Face registration API."""
from flask import Blueprint, request
from flask_jwt_extended import jwt_required, current_user
from attendance.services.face_registration_service import FaceRegistrationService
from attendance.utils.decorators import student_required
from attendance.utils.helpers import success_response, error_response

face_bp = Blueprint('face', __name__)


@face_bp.route('/register', methods=['POST'])
@jwt_required()
@student_required
def register_face():
    """Store an encrypted reference built from five verified captures.

    Body: ``captures`` with base64 images for ``front``, ``left``,
    ``right``, ``up`` and ``blink``.
    """
    data = request.get_json(silent=True)
    if not isinstance(data, dict):
        return error_response("Request body must be a JSON object", 400, reason='validation_error')

    result = FaceRegistrationService.from_app().register(current_user, data.get('captures'))

    return success_response(data=result, message="Face registered successfully with enhanced security")
