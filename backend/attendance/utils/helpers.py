"""Helper functions for the application."""
from datetime import datetime, timezone
from typing import Any

from flask import current_app, jsonify


def utcnow() -> datetime:
    """Current UTC time as a naive datetime, matching the stored columns."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def to_epoch_ms(value: datetime) -> int:
    """Convert a naive UTC datetime to epoch milliseconds."""
    return int(value.replace(tzinfo=timezone.utc).timestamp() * 1000)


def handle_error(error, status_code: int):
    """Handle application errors with consistent format."""
    return jsonify({
        'error': True,
        'message': str(error),
        'status_code': status_code
    }), status_code


def success_response(data: Any = None, message: str = "Success", status_code: int = 200):
    """Return consistent success response."""
    response = {
        'error': False,
        'message': message
    }

    if data is not None:
        response['data'] = data

    return jsonify(response), status_code


def error_response(message: str, status_code: int = 400, reason: str = None, details: dict = None):
    """Return consistent error response."""
    response = {
        'error': True,
        'message': message,
        'status_code': status_code
    }

    if reason:
        response['reason'] = reason
    if details:
        response['details'] = details

    return jsonify(response), status_code


def app_clock():
    """Clock used by the check-in services of the current application."""
    return current_app.extensions.get('clock', utcnow)
