"""Shared configuration for the Campus Attendance service."""
import os
from datetime import timedelta


class BaseConfig:
    """Base configuration."""

    SECRET_KEY = os.getenv('SECRET_KEY') or 'dev-secret-key-change-in-production'
    SQLALCHEMY_TRACK_MODIFICATIONS = False
    SQLALCHEMY_ECHO = False

    # JWT Configuration
    JWT_SECRET_KEY = os.getenv('JWT_SECRET_KEY') or 'jwt-secret-key-change-in-production'
    JWT_ACCESS_TOKEN_EXPIRES = timedelta(hours=2)
    JWT_ALGORITHM = 'HS256'

    # CORS
    CORS_ORIGINS = ["http://localhost:*", "http://127.0.0.1:*"]

    # Rate Limiting
    RATELIMIT_STORAGE_URI = os.getenv('REDIS_URL') or 'memory://'
    RATELIMIT_ENABLED = True

    # Redis (only required when SESSION_SECRET_BACKEND = 'redis')
    REDIS_URL = os.getenv('REDIS_URL')

    # Session tokens (QR check-in)
    SESSION_TOKEN_SIGNING_KEY = os.getenv('SESSION_TOKEN_SIGNING_KEY') or 'session-token-key-change-in-production'
    SESSION_TOKEN_TTL_SECONDS = 30
    SESSION_SECRET_BACKEND = os.getenv('SESSION_SECRET_BACKEND', 'database')  # database | redis

    # Attendance policy
    LATE_THRESHOLD_MINUTES = 10
    DEFAULT_PROXIMITY_RADIUS_METERS = 50
    QR_REQUIRES_GEOFENCE = True
    FACE_MATCH_THRESHOLD = 0.75
    FACE_MIN_CAPTURE_QUALITY = 60
    FACE_DUPLICATE_SIMILARITY = 85

    # Face match oracle (OpenAI-compatible chat completions endpoint)
    FACE_ORACLE_URL = os.getenv('FACE_ORACLE_URL', 'https://ai.gateway.lovable.dev/v1/chat/completions')
    FACE_ORACLE_API_KEY = os.getenv('FACE_ORACLE_API_KEY')
    FACE_ORACLE_MODEL = os.getenv('FACE_ORACLE_MODEL', 'google/gemini-2.5-flash')
    FACE_ORACLE_TIMEOUT_SECONDS = 20
    FACE_TEMPLATE_KEY = os.getenv('FACE_TEMPLATE_KEY')  # Fernet key

    # Face images are sent as base64 in JSON bodies
    MAX_CONTENT_LENGTH = 8 * 1024 * 1024

    # Logging
    LOG_LEVEL = 'INFO'
    LOG_FILE = 'logs/app.log'
