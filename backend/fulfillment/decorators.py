# Overview: Request decorators for trusted (admin) API routes.

import hmac
from functools import wraps

from flask import request, jsonify, current_app


ADMIN_TOKEN_HEADER = "X-Admin-Token"


def _presented_token() -> str:
    token = request.headers.get(ADMIN_TOKEN_HEADER)
    if token:
        return token
    auth_header = request.headers.get("Authorization") or ""
    if auth_header.startswith("Bearer "):
        return auth_header.split(" ", 1)[1]
    return ""


def require_admin_token(f):
    """
    Restrict a route to trusted callers holding ADMIN_API_TOKEN.

    Accepts the token in X-Admin-Token or as a Bearer Authorization header.

    SECURITY: Returns 401 when no token is presented and 403 when it does
    not match. An unset ADMIN_API_TOKEN rejects every caller.
    """
    @wraps(f)
    def decorated_function(*args, **kwargs):
        presented = _presented_token()
        if not presented:
            return jsonify({"error": "Authentication required"}), 401

        expected = current_app.config.get("ADMIN_API_TOKEN") or ""
        if not expected or not hmac.compare_digest(expected, presented):
            return jsonify({"error": "Invalid admin token"}), 403

        return f(*args, **kwargs)

    return decorated_function
