"""Campus Attendance - Application Factory."""
import logging
import os
from flask import Flask, jsonify
from flask_sqlalchemy import SQLAlchemy
from flask_migrate import Migrate
from flask_jwt_extended import JWTManager
from flask_cors import CORS
from flask_limiter import Limiter
from flask_limiter.util import get_remote_address

# Initialize extensions
db = SQLAlchemy()
migrate = Migrate()
jwt = JWTManager()
limiter = Limiter(
    key_func=get_remote_address,
    default_limits=["200 per day", "50 per hour"]
)


def create_app(config_name: str = None) -> Flask:
    """Application factory pattern."""
    app = Flask(__name__)

    # Load configuration
    from config import get_config
    config_class = get_config(config_name)
    app.config.from_object(config_class)

    # Initialize extensions
    db.init_app(app)
    migrate.init_app(app, db)
    jwt.init_app(app)
    limiter.init_app(app)

    # Configure CORS
    CORS(app, origins=app.config.get('CORS_ORIGINS', ["*"]))

    # Setup logging
    setup_logging(app)

    # Register blueprints
    register_blueprints(app)

    # Register error handlers
    register_error_handlers(app)

    # Setup database and check-in services
    setup_database(app)
    setup_services(app)

    # Add CLI commands
    register_commands(app)

    # Add health check
    @app.route('/health')
    def health_check():
        return jsonify({
            'status': 'healthy',
            'service': 'Campus Attendance',
            'version': '1.0.0'
        })

    return app


def register_blueprints(app: Flask) -> None:
    """Register all application blueprints."""
    from attendance.api.auth import auth_bp
    from attendance.api.classes import classes_bp
    from attendance.api.sessions import sessions_bp
    from attendance.api.checkin import checkin_bp
    from attendance.api.face import face_bp

    app.register_blueprint(auth_bp, url_prefix='/api/auth')
    app.register_blueprint(classes_bp, url_prefix='/api/classes')
    app.register_blueprint(sessions_bp, url_prefix='/api/sessions')
    app.register_blueprint(checkin_bp, url_prefix='/api/checkin')
    app.register_blueprint(face_bp, url_prefix='/api/face')

    # Swagger UI
    from attendance.utils.swagger import SWAGGER_URL, API_URL, generate_swagger_spec, get_swagger_blueprint

    @app.route(API_URL)
    def swagger_spec():
        """Serve Swagger/OpenAPI specification."""
        return jsonify(generate_swagger_spec())

    app.register_blueprint(get_swagger_blueprint(), url_prefix=SWAGGER_URL)


def register_error_handlers(app: Flask) -> None:
    """Register error handlers."""
    from werkzeug.exceptions import HTTPException
    from attendance.utils.errors import AttendanceError
    from attendance.utils.helpers import handle_error, error_response

    @app.errorhandler(AttendanceError)
    def attendance_error(error):
        if error.status_code >= 500:
            app.logger.error(f"Unhandled attendance error: {error.kind.value}: {error.message}")
            return error_response(error.public_message, error.status_code, reason=error.kind.value)
        return error_response(error.public_message, error.status_code,
                              reason=error.kind.value, details=error.details)

    @app.errorhandler(HTTPException)
    def handle_exception(e):
        return handle_error(e.description, e.code)

    @app.errorhandler(Exception)
    def internal_error(error):
        db.session.rollback()
        app.logger.exception('Unhandled error')
        return error_response("Something went wrong. Please try again.", 500,
                              reason='internal_error')

    # JWT error handlers
    @jwt.expired_token_loader
    def expired_token_callback(jwt_header, jwt_payload):
        return error_response('Token has expired', 401, reason='unauthenticated')

    @jwt.invalid_token_loader
    def invalid_token_callback(error):
        return error_response('Invalid token', 401, reason='unauthenticated')

    @jwt.unauthorized_loader
    def missing_token_callback(error):
        return error_response('Authorization token required', 401, reason='unauthenticated')

    @jwt.user_lookup_error_loader
    def user_lookup_error_callback(jwt_header, jwt_payload):
        return error_response('Account not found or deactivated', 401, reason='unauthenticated')


def setup_logging(app: Flask) -> None:
    """Setup application logging."""
    level = getattr(logging, app.config.get('LOG_LEVEL', 'INFO'), logging.INFO)

    if not app.debug and not app.testing:
        log_file = app.config.get('LOG_FILE', 'logs/app.log')
        log_dir = os.path.dirname(log_file)
        if log_dir and not os.path.exists(log_dir):
            os.makedirs(log_dir)

        file_handler = logging.FileHandler(log_file)
        file_handler.setFormatter(logging.Formatter(
            '%(asctime)s %(levelname)s: %(message)s [in %(pathname)s:%(lineno)d]'
        ))
        file_handler.setLevel(level)
        app.logger.addHandler(file_handler)

    app.logger.setLevel(level)
    app.logger.info('Campus Attendance startup')


def setup_database(app: Flask) -> None:
    """Setup database connections."""
    with app.app_context():
        # Import all models
        from attendance.models import (
            User, UserRole, Course, Enrollment,
            AttendanceSession, SessionSecret, AttendanceRecord
        )


def setup_services(app: Flask) -> None:
    """Resolve the check-in collaborators once per application."""
    from attendance.services.auth_service import register_identity_loader
    from attendance.services.token_store import build_secret_store
    from attendance.services.checkin_service import PolicyTable
    from attendance.services.face_service import FaceOracleClient, FaceTemplateCipher
    from attendance.utils.helpers import utcnow

    register_identity_loader(jwt)

    # QR tokens cannot be signed without it; refuse to start rather than fail every request
    if not app.config.get('SESSION_TOKEN_SIGNING_KEY'):
        raise ValueError("SESSION_TOKEN_SIGNING_KEY must be set")

    app.extensions['clock'] = utcnow
    app.extensions['session_secret_store'] = build_secret_store(app.config)
    app.extensions['checkin_policy'] = PolicyTable.from_config(app.config)
    app.extensions['face_oracle'] = FaceOracleClient.from_config(app.config)
    app.extensions['face_cipher'] = FaceTemplateCipher.from_config(app.config)

    app.logger.info(
        f"Check-in policy: QR requires geofence = {app.config.get('QR_REQUIRES_GEOFENCE')}, "
        f"secret store = {app.config.get('SESSION_SECRET_BACKEND')}"
    )


def register_commands(app: Flask) -> None:
    """Register CLI commands."""
    import click

    @app.cli.command('init-db')
    @click.option('--drop', is_flag=True, help='Drop existing tables')
    def init_db(drop):
        """Initialize the database."""
        if drop:
            db.drop_all()
            click.echo('Dropped all tables.')

        db.create_all()
        click.echo('Created all tables.')

        # Create admin
        from attendance.models.user import User, UserRole

        admin = User.query.filter_by(email='admin@campus.edu').first()
        if not admin:
            admin = User(
                email='admin@campus.edu',
                name='Campus Admin',
                role=UserRole.ADMIN
            )
            admin.set_password('admin123456')
            db.session.add(admin)
            db.session.commit()
            click.echo('Created admin user: admin@campus.edu / admin123456')

    @app.cli.command('seed-demo')
    def seed_demo():
        """Seed database with a demo class, professor and students."""
        from attendance.services.seed_service import SeedService

        try:
            summary = SeedService.seed_demo()
            click.echo(f"Database seeded: {summary}")
        except Exception as e:
            db.session.rollback()
            click.echo(f'Error seeding database: {str(e)}')
