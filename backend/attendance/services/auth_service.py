"""Authentication service: credential login and JWT identity lookup."""
import re
from flask_jwt_extended import create_access_token
from attendance import db
from attendance.models.user import User
from attendance.utils.helpers import utcnow

EMAIL_PATTERN = r'^[a-zA-Z0-9._%+-]+@[a-zA-Z0-9.-]+\.[a-zA-Z]{2,}$'


class AuthService:
    @staticmethod
    def validate_email(email: str) -> bool:
        """Validate email format."""
        return re.match(EMAIL_PATTERN, email) is not None

    @staticmethod
    def login(email: str, password: str) -> tuple[dict, str]:
        """Authenticate user and return an access token."""
        if not email or not password:
            return None, "Email and password are required"

        if not AuthService.validate_email(email):
            return None, "Invalid email format"

        user = User.query.filter_by(email=email.lower().strip()).first()

        if not user or not user.check_password(password):
            return None, "Invalid email or password"

        if not user.is_active:
            return None, "Account is deactivated"

        user.last_login = utcnow()
        user.save()

        return {
            "access_token": create_access_token(identity=str(user.id)),
            "user": user.to_dict()
        }, None


def register_identity_loader(jwt) -> None:
    """Resolve the JWT subject to an active User for `current_user`."""

    @jwt.user_lookup_loader
    def load_user(jwt_header, jwt_payload):
        try:
            user_id = int(jwt_payload['sub'])
        except (KeyError, TypeError, ValueError):
            return None

        user = db.session.get(User, user_id)
        if user is None or not user.is_active:
            return None
        return user
