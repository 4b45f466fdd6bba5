"""
Caller authentication and staff authorization

Identity comes from the external identity provider as a signed bearer
token (itsdangerous, shared SECRET_KEY, payload {"user_id": ...}). The
verified user id is passed explicitly into every service call; the body of
a request is never trusted for identity.

Staff are users listed in the `admins` table; super admins are those added
by 'system' (initial SQL) and may manage other admins.
"""

from functools import wraps

from flask import current_app, g, request
from itsdangerous import BadSignature, SignatureExpired, URLSafeTimedSerializer

from services.errors import ForbiddenError, UnauthenticatedError
from services.store import get_store
from utils.responses import error_from

TOKEN_SALT = 'gym-booking-auth'


def _serializer(secret_key=None):
    return URLSafeTimedSerializer(secret_key or current_app.config['SECRET_KEY'], salt=TOKEN_SALT)


def issue_token(user_id, secret_key=None):
    """
    Signed bearer token for a user (identity provider side / development)

    Example:
        >>> token = issue_token("user-123")
        >>> verify_token(token)
        'user-123'
    """
    return _serializer(secret_key).dumps({'user_id': str(user_id)})


def verify_token(token, max_age=None):
    """
    User id from a bearer token

    Raises:
        UnauthenticatedError: missing, tampered or expired token
    """
    if not token:
        raise UnauthenticatedError("Unauthorized", code='UNAUTHORIZED')

    if max_age is None:
        max_age = current_app.config.get('AUTH_TOKEN_MAX_AGE')

    try:
        payload = _serializer().loads(token, max_age=max_age)
    except SignatureExpired:
        raise UnauthenticatedError("Session expired", code='TOKEN_EXPIRED')
    except BadSignature:
        raise UnauthenticatedError("User not found", code='INVALID_TOKEN')

    user_id = payload.get('user_id') if isinstance(payload, dict) else None
    if not user_id:
        raise UnauthenticatedError("User not found", code='INVALID_TOKEN')
    return user_id


def _bearer_token():
    header = request.headers.get('Authorization', '')
    scheme, _, token = header.partition(' ')
    if scheme.lower() != 'bearer':
        return None
    return token.strip() or None


def login_required(view):
    """Reject unauthenticated calls with 401; sets g.user_id"""
    @wraps(view)
    def wrapped(*args, **kwargs):
        try:
            g.user_id = verify_token(_bearer_token())
        except UnauthenticatedError as e:
            current_app.logger.warning(f"Auth rejected: {request.path} | Code: {e.code}")
            return error_from(e)
        return view(*args, **kwargs)
    return wrapped


def is_admin(user_id):
    """
    Staff check (admins + super admins)

    Args:
        user_id (str): caller

    Returns:
        bool: True when listed in admins
    """
    with get_store().transaction() as tx:
        return tx.get_admin(user_id) is not None


def is_super_admin(user_id):
    """
    Super admin check

    Super admins are the admins with added_by='system'; only those
    registered by the initial SQL have this role.
    """
    with get_store().transaction() as tx:
        admin = tx.get_admin(user_id)
    return bool(admin) and admin['added_by'] == 'system'


def admin_required(view):
    """login_required + admins membership (403 otherwise)"""
    @wraps(view)
    @login_required
    def wrapped(*args, **kwargs):
        if not is_admin(g.user_id):
            current_app.logger.warning(f"Permission denied: {g.user_id} | {request.path}")
            return error_from(ForbiddenError("Staff permission required.", code='FORBIDDEN'))
        return view(*args, **kwargs)
    return wrapped
