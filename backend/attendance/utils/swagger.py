"""Swagger/OpenAPI configuration for the application."""
from flask_swagger_ui import get_swaggerui_blueprint

# Swagger UI configuration
SWAGGER_URL = '/api/docs'
API_URL = '/api/swagger.json'

CHECKIN_REASONS = [
    "not_found", "session_closed", "session_inactive", "not_enrolled", "mismatch",
    "expired", "invalid", "invalid_coordinates", "location_required",
    "configuration_error", "too_far", "low_match_score", "face_not_registered",
    "face_not_detected", "verification_unavailable", "already_recorded",
    "validation_error", "internal_error",
]


def get_swagger_blueprint():
    """Create and return swagger UI blueprint."""
    return get_swaggerui_blueprint(
        SWAGGER_URL,
        API_URL,
        config={
            'app_name': "Campus Attendance API",
            'defaultModelsExpandDepth': -1,
            'docExpansion': 'list',
            'supportedSubmitMethods': ['get', 'post', 'put'],
            'validatorUrl': None,
        }
    )


def _body(properties, required=None):
    schema = {"type": "object", "properties": properties}
    if required:
        schema["required"] = required
    return {"required": True, "content": {"application/json": {"schema": schema}}}


def _responses(*codes):
    descriptions = {
        200: "Success", 201: "Created", 400: "Validation failed", 401: "Unauthenticated",
        403: "Forbidden", 404: "Not found", 409: "Conflict", 429: "Rate limited",
        503: "Verification unavailable",
    }
    responses = {}
    for code in codes:
        schema = "#/components/schemas/Success" if code < 300 else "#/components/schemas/Error"
        responses[str(code)] = {
            "description": descriptions[code],
            "content": {"application/json": {"schema": {"$ref": schema}}},
        }
    return responses


def _path_id(name):
    return [{"name": name, "in": "path", "required": True, "schema": {"type": "integer"}}]


def generate_swagger_spec():
    """Generate OpenAPI/Swagger specification."""
    secured = [{"bearerAuth": []}]
    coordinates = {
        "latitude": {"type": "number", "minimum": -90, "maximum": 90},
        "longitude": {"type": "number", "minimum": -180, "maximum": 180},
    }

    return {
        "openapi": "3.0.0",
        "info": {
            "title": "Campus Attendance API",
            "description": "Classroom attendance with rotating QR tokens, face match and proximity check-in",
            "version": "1.0.0",
        },
        "servers": [{"url": "/api", "description": "Current server"}],
        "components": {
            "securitySchemes": {
                "bearerAuth": {"type": "http", "scheme": "bearer", "bearerFormat": "JWT"}
            },
            "schemas": {
                "Error": {
                    "type": "object",
                    "properties": {
                        "error": {"type": "boolean", "default": True},
                        "message": {"type": "string"},
                        "status_code": {"type": "integer"},
                        "reason": {"type": "string", "enum": CHECKIN_REASONS + ["unauthenticated", "forbidden"]},
                        "details": {"type": "object"},
                    }
                },
                "Success": {
                    "type": "object",
                    "properties": {
                        "error": {"type": "boolean", "default": False},
                        "message": {"type": "string"},
                        "data": {"type": "object"},
                    }
                },
                "SessionToken": {
                    "type": "object",
                    "properties": {
                        "sessionId": {"type": "integer"},
                        "issuedAt": {"type": "integer", "description": "Epoch milliseconds"},
                        "secret": {"type": "string"},
                        "expiresAt": {"type": "integer", "description": "Epoch milliseconds"},
                        "signature": {"type": "string", "description": "Base64 HMAC-SHA256"},
                    }
                },
                "CheckInResult": {
                    "type": "object",
                    "properties": {
                        "success": {"type": "boolean"},
                        "method": {"type": "string", "enum": ["qr", "face", "proximity"]},
                        "message": {"type": "string"},
                        "status": {"type": "string", "enum": ["present", "late"]},
                        "reason": {"type": "string", "enum": CHECKIN_REASONS},
                        "already_checked_in": {"type": "boolean"},
                        "distance_meters": {"type": "integer"},
                        "allowed_radius": {"type": "number"},
                        "room": {"type": "string"},
                        "match_score": {"type": "number"},
                        "low_assurance": {"type": "boolean"},
                    }
                },
            }
        },
        "paths": {
            "/auth/login": {
                "post": {
                    "tags": ["Authentication"],
                    "summary": "Exchange credentials for an access token",
                    "requestBody": _body({
                        "email": {"type": "string", "format": "email"},
                        "password": {"type": "string"},
                    }, ["email", "password"]),
                    "responses": _responses(200, 400, 401, 429),
                }
            },
            "/auth/me": {
                "get": {
                    "tags": ["Authentication"],
                    "summary": "Current user profile",
                    "security": secured,
                    "responses": _responses(200, 401),
                }
            },
            "/classes": {
                "post": {
                    "tags": ["Classes"],
                    "summary": "Create a class (professor)",
                    "security": secured,
                    "requestBody": _body({
                        "subject": {"type": "string"},
                        "room": {"type": "string"},
                        "proximity_radius_meters": {"type": "number", "default": 50},
                        **coordinates,
                    }, ["subject"]),
                    "responses": _responses(201, 400, 401, 403),
                }
            },
            "/classes/{class_id}/geofence": {
                "put": {
                    "tags": ["Classes"],
                    "summary": "Set or clear the classroom location",
                    "security": secured,
                    "parameters": _path_id("class_id"),
                    "requestBody": _body({
                        "proximity_radius_meters": {"type": "number"},
                        **coordinates,
                    }),
                    "responses": _responses(200, 400, 401, 403, 404),
                }
            },
            "/classes/join": {
                "post": {
                    "tags": ["Classes"],
                    "summary": "Enroll with a join code (student)",
                    "security": secured,
                    "requestBody": _body({"join_code": {"type": "string"}}, ["join_code"]),
                    "responses": _responses(201, 400, 401, 403, 404, 409),
                }
            },
            "/sessions": {
                "post": {
                    "tags": ["Sessions"],
                    "summary": "Start an attendance session",
                    "security": secured,
                    "requestBody": _body({
                        "class_id": {"type": "integer"},
                        "date": {"type": "string", "format": "date"},
                        "start_time": {"type": "string", "example": "09:00"},
                    }, ["class_id"]),
                    "responses": _responses(201, 400, 401, 403, 404),
                }
            },
            "/sessions/active": {
                "get": {
                    "tags": ["Sessions"],
                    "summary": "Live sessions of the student's classes",
                    "description": "Each item carries subject, room and whether the caller already checked in.",
                    "security": secured,
                    "responses": _responses(200, 401, 403),
                }
            },
            "/sessions/{session_id}": {
                "get": {
                    "tags": ["Sessions"],
                    "summary": "Session details",
                    "security": secured,
                    "parameters": _path_id("session_id"),
                    "responses": _responses(200, 401, 403, 404),
                }
            },
            "/sessions/{session_id}/end": {
                "post": {
                    "tags": ["Sessions"],
                    "summary": "End a session",
                    "security": secured,
                    "parameters": _path_id("session_id"),
                    "responses": _responses(200, 401, 403, 404),
                }
            },
            "/sessions/{session_id}/token": {
                "post": {
                    "tags": ["Sessions"],
                    "summary": "Issue a rotating QR token",
                    "description": "Replaces the session's secret; earlier tokens stop verifying.",
                    "security": secured,
                    "parameters": _path_id("session_id"),
                    "responses": _responses(200, 401, 403, 404, 409, 429),
                }
            },
            "/checkin": {
                "post": {
                    "tags": ["Check-in"],
                    "summary": "Check in with QR, face or proximity",
                    "security": secured,
                    "requestBody": _body({
                        "method": {"type": "string", "enum": ["qr", "face", "proximity"]},
                        "session_id": {"type": "integer"},
                        "class_id": {"type": "integer"},
                        "qr_data": {"type": "string", "description": "Scanned token JSON"},
                        "image_base64": {"type": "string"},
                        "accuracy": {"type": "number", "description": "GPS accuracy in meters, stored with the record"},
                        **coordinates,
                    }, ["method"]),
                    "responses": _responses(200, 201, 400, 401, 403, 404, 409, 503),
                }
            },
            "/face/register": {
                "post": {
                    "tags": ["Face"],
                    "summary": "Register the student's reference face from five captures",
                    "description": "Each capture must show one live face of good quality at its pose; "
                                   "faces already registered to another account are refused.",
                    "security": secured,
                    "requestBody": _body({
                        "captures": {
                            "type": "object",
                            "properties": {
                                angle: {"type": "string", "format": "byte"}
                                for angle in ("front", "left", "right", "up", "blink")
                            },
                            "required": ["front", "left", "right", "up", "blink"],
                        },
                    }, ["captures"]),
                    "responses": _responses(200, 400, 401, 403, 503),
                }
            },
        },
    }
