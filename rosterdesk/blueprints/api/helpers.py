"""
API helper functions: error formatting, response builders, body loading.
"""
from flask import request, jsonify


def api_error(code, message, status=400, details=None):
    """Build a standard API error response."""
    error_body = {
        'error': {
            'code': code,
            'message': message,
        }
    }
    if details:
        error_body['error']['details'] = details
    return jsonify(error_body), status


def api_success(data, status=200):
    """Build a standard API success response."""
    return jsonify({'data': data}), status


def load_body(schema):
    """Validate the JSON body with a marshmallow schema.

    Raises marshmallow.ValidationError (rendered as 422 by the app).
    """
    return schema.load(request.get_json(silent=True) or {})
