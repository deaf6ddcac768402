"""
JWT authentication decorators for the REST API.

Token issuance is handled upstream; this module only verifies bearer tokens
and resolves the acting user.
"""
from functools import wraps
from datetime import datetime, timedelta, timezone

import jwt
from flask import request, jsonify, current_app

from rosterdesk.extensions import db
from rosterdesk.models.user import User


def _secret():
    return current_app.config.get('JWT_SECRET_KEY') or current_app.config['SECRET_KEY']


def create_access_token(user_id, expires_minutes=60):
    """Create a JWT access token."""
    payload = {
        'sub': str(user_id),
        'type': 'access',
        'iat': datetime.now(timezone.utc),
        'exp': datetime.now(timezone.utc) + timedelta(minutes=expires_minutes),
    }
    return jwt.encode(payload, _secret(), algorithm='HS256')


def decode_token(token):
    """Decode and validate a JWT token. Returns payload or None."""
    try:
        return jwt.decode(token, _secret(), algorithms=['HS256'])
    except jwt.ExpiredSignatureError:
        return None
    except jwt.InvalidTokenError:
        return None


def _unauthorized(code, message):
    return jsonify({'error': {'code': code, 'message': message}}), 401


def get_current_api_user():
    """Extract user from Authorization header. Returns (user, error_response)."""
    auth_header = request.headers.get('Authorization', '')
    if not auth_header.startswith('Bearer '):
        return None, _unauthorized('missing_token', 'Authorization header with Bearer token required.')

    payload = decode_token(auth_header[7:])
    if payload is None:
        return None, _unauthorized('invalid_token', 'Token is invalid or expired.')

    if payload.get('type') != 'access':
        return None, _unauthorized('wrong_token_type', 'Access token required.')

    try:
        user_id = int(payload['sub'])
    except (KeyError, ValueError, TypeError):
        return None, _unauthorized('invalid_token', 'Token contains invalid user ID.')

    user = db.session.get(User, user_id)
    if user is None or not user.is_active:
        return None, _unauthorized('user_not_found', 'User not found or deactivated.')

    return user, None


def jwt_required(f):
    """Decorator: require valid JWT access token."""
    @wraps(f)
    def decorated(*args, **kwargs):
        user, error = get_current_api_user()
        if error:
            return error
        request.api_user = user
        return f(*args, **kwargs)
    return decorated


def requires_api_access(min_level):
    """Decorator: require minimum access level.

    Usage: @requires_api_access(AccessLevel.PLANNER)
    """
    def decorator(f):
        @wraps(f)
        def decorated(*args, **kwargs):
            user, error = get_current_api_user()
            if error:
                return error

            if not user.has_access(min_level):
                return jsonify({
                    'error': {
                        'code': 'forbidden',
                        'message': 'Insufficient permissions.',
                    }
                }), 403

            request.api_user = user
            return f(*args, **kwargs)
        return decorated
    return decorator
