"""Custom decorators for authorization."""
from functools import wraps
from flask_jwt_extended import current_user
from attendance.models.user import UserRole
from attendance.utils.helpers import error_response


def role_required(*roles: UserRole):
    """Decorator to require one of the given roles; use after @jwt_required()."""
    def decorator(f):
        @wraps(f)
        def decorated_function(*args, **kwargs):
            if current_user.role not in roles:
                allowed = ' or '.join(role.value for role in roles)
                return error_response(f"{allowed.capitalize()} access required", 403, reason='forbidden')

            return f(*args, **kwargs)
        return decorated_function
    return decorator


professor_required = role_required(UserRole.PROFESSOR, UserRole.ADMIN)
student_required = role_required(UserRole.STUDENT)
