"""
Identity middleware.

The upstream auth provider verifies the session and forwards the
caller's identity as X-User-Id and X-User-Role headers. This module only
reads them; it never validates credentials itself.
"""
import logging
from functools import wraps
from flask import request, g

from ..utils.errors import forbidden, unauthorized

logger = logging.getLogger(__name__)

ADMIN_ROLE = 'admin'


def get_identity():
    """Return (user_id, role) from the request headers, or (None, None)."""
    user_id = (request.headers.get('X-User-Id') or '').strip() or None
    role = (request.headers.get('X-User-Role') or '').strip().lower() or None
    return user_id, role


def require_auth(f):
    """
    Decorator requiring a caller identity.

    Sets g.user_id and g.user_role.

    Usage:
        @require_auth
        def my_endpoint():
            user_id = g.user_id
    """
    @wraps(f)
    def decorated_function(*args, **kwargs):
        user_id, role = get_identity()
        if not user_id:
            return unauthorized('Missing X-User-Id header')
        g.user_id = user_id
        g.user_role = role or 'customer'
        return f(*args, **kwargs)

    return decorated_function


def require_admin(f):
    """Decorator requiring the admin role. Implies require_auth."""
    @wraps(f)
    def decorated_function(*args, **kwargs):
        user_id, role = get_identity()
        if not user_id:
            return unauthorized('Missing X-User-Id header')
        if role != ADMIN_ROLE:
            logger.info(f'User {user_id} with role {role} denied admin access to {request.path}')
            return forbidden('Admin access required')
        g.user_id = user_id
        g.user_role = role
        return f(*args, **kwargs)

    return decorated_function
