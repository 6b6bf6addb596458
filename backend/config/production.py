"""Production configuration."""
import os
from datetime import timedelta

from .base import BaseConfig


class ProductionConfig(BaseConfig):
    """Production configuration class."""

    DEBUG = False
    TESTING = False
    SECRET_KEY = os.getenv('SECRET_KEY')  # Must be set in production

    # Database
    SQLALCHEMY_DATABASE_URI = os.getenv('DATABASE_URL')

    # JWT Configuration
    JWT_SECRET_KEY = os.getenv('JWT_SECRET_KEY')
    JWT_ACCESS_TOKEN_EXPIRES = timedelta(hours=1)

    # Rate Limiting
    RATELIMIT_STORAGE_URI = os.getenv('REDIS_URL') or 'memory://'

    # Session tokens
    SESSION_TOKEN_SIGNING_KEY = os.getenv('SESSION_TOKEN_SIGNING_KEY')

    # Enhanced security
    SESSION_COOKIE_SECURE = True
    SESSION_COOKIE_HTTPONLY = True
    SESSION_COOKIE_SAMESITE = 'Lax'

    # Logging
    LOG_LEVEL = 'INFO'
    LOG_FILE = os.getenv('LOG_FILE', 'logs/app.log')
