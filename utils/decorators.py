from functools import wraps

from flask import jsonify
from flask_login import current_user

from constants import ROLE_ADMIN, ROLE_SUPPLIER


def role_required(*roles):
    """
    Require a bearer-authenticated user holding any of `roles`.
    Admins pass every role check.
    """
    def decorator(f):
        @wraps(f)
        def decorated_function(*args, **kwargs):
            if not current_user.is_authenticated:
                return jsonify({"success": False, "error": "Authentication required"}), 401
            if current_user.is_admin or current_user.roles.intersection(roles):
                return f(*args, **kwargs)
            return jsonify({"success": False, "error": "Insufficient permissions"}), 403
        return decorated_function
    return decorator


admin_required = role_required(ROLE_ADMIN)
supplier_required = role_required(ROLE_SUPPLIER)
