"""Authentication API."""
from flask import Blueprint, request
from flask_jwt_extended import jwt_required, current_user
from attendance import limiter
from attendance.services.auth_service import AuthService
from attendance.utils.helpers import success_response, error_response

auth_bp = Blueprint("auth", __name__)


@auth_bp.route("/health", methods=["GET"])
def health_check():
    """Health check endpoint."""
    return success_response(message="Auth service is running")


@auth_bp.route("/login", methods=["POST"])
@limiter.limit("5 per minute")
def login():
    """Exchange email and password for an access token."""
    data = request.get_json(silent=True)

    if not isinstance(data, dict) or not data:
        return error_response("Request body must be a JSON object", 400, reason='validation_error')

    email = str(data.get("email", "")).strip()
    password = str(data.get("password", ""))

    result, error = AuthService.login(email, password)

    if error:
        return error_response(error, 401, reason='unauthenticated')

    return success_response(data=result, message="Login successful")


@auth_bp.route("/me", methods=["GET"])
@jwt_required()
def me():
    """Current user profile."""
    return success_response(data=current_user.to_dict())
