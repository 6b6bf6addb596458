"""Testing configuration."""
from datetime import timedelta

from .base import BaseConfig


class TestingConfig(BaseConfig):
    """Testing configuration class."""

    DEBUG = False
    TESTING = True
    SECRET_KEY = 'test-secret-key'

    # Database (in-memory SQLite for testing)
    SQLALCHEMY_DATABASE_URI = 'sqlite:///:memory:'

    # JWT Configuration
    JWT_SECRET_KEY = 'test-jwt-secret'
    JWT_ACCESS_TOKEN_EXPIRES = timedelta(minutes=5)

    # Rate Limiting (disabled for testing)
    RATELIMIT_ENABLED = False
    RATELIMIT_STORAGE_URI = 'memory://'

    # Session tokens
    SESSION_TOKEN_SIGNING_KEY = 'test-session-token-key'
    SESSION_SECRET_BACKEND = 'database'

    # Face match oracle (never reached in tests)
    FACE_ORACLE_URL = 'http://localhost:9/v1/chat/completions'
    FACE_ORACLE_API_KEY = 'test-oracle-key'
    FACE_ORACLE_TIMEOUT_SECONDS = 2
    FACE_TEMPLATE_KEY = 'dGVzdC1mYWNlLXRlbXBsYXRlLWtleS0zMi1ieXRlcyE='

    # Logging
    LOG_LEVEL = 'WARNING'
