"""
Lab Inventory Authentication
============================
Google login via Flask-Dance, session-backed current user, and the
decorators the API uses to require a login or the admin role.

The OAuth dance itself is handled by Flask-Dance; this module only turns a
completed Google authorization into a local user session.
"""

import logging
from functools import wraps

from flask import Blueprint, current_app, g, jsonify, redirect, session

from labinventory.exceptions import NotFoundError
from labinventory.inventory_service import get_inventory_service
from labinventory.models import UserRole

logger = logging.getLogger(__name__)

auth_bp = Blueprint('auth', __name__)


def _auth_error(message: str, code: str, status: int):
    return jsonify({
        "success": False,
        "error": {"code": code, "message": message}
    }), status


def load_current_user():
    """Load current user before each request."""
    g.current_user = None
    user_id = session.get('user_id')
    if user_id is None:
        return
    try:
        g.current_user = get_inventory_service().get_user(user_id)
    except NotFoundError:
        # Account was deleted while the session was alive
        session.pop('user_id', None)


def login_required(f):
    """Decorator to require a logged-in user (JSON 401 otherwise)."""
    @wraps(f)
    def decorated_function(*args, **kwargs):
        if g.get('current_user') is None:
            return _auth_error("Authentication required. Please log in.", "AUTH_REQUIRED", 401)
        return f(*args, **kwargs)
    return decorated_function


def admin_required(f):
    """Decorator to require admin role."""
    @wraps(f)
    def decorated_function(*args, **kwargs):
        if g.get('current_user') is None:
            return _auth_error("Authentication required. Please log in.", "AUTH_REQUIRED", 401)
        if g.current_user.get('role') != UserRole.ADMIN.value:
            return _auth_error("Admin access required.", "PERMISSION_DENIED", 403)
        return f(*args, **kwargs)
    return decorated_function


auth_bp.before_request(load_current_user)


@auth_bp.route('/auth/google')
def google_login():
    """Handle Google OAuth callback."""
    from flask_dance.contrib.google import google

    if not current_app.config.get('GOOGLE_OAUTH_ENABLED'):
        return _auth_error("Google OAuth is not configured", "OAUTH_DISABLED", 404)

    if not google.authorized:
        return redirect('/oauth/google')

    resp = google.get('/oauth2/v2/userinfo')
    if not resp.ok:
        logger.error(f"Failed to fetch user info from Google: HTTP {resp.status_code}")
        return _auth_error("Failed to fetch user info from Google", "OAUTH_ERROR", 502)

    google_info = resp.json()
    google_id = google_info.get('id')
    email = google_info.get('email')
    if not google_id or not email:
        logger.error("Google user info is missing id or email")
        return _auth_error("Google user info is missing id or email", "OAUTH_ERROR", 502)

    user = get_inventory_service().get_or_create_google_user(
        google_id=google_id,
        email=email,
        name=google_info.get('name', '')
    )
    session['user_id'] = user['id']
    logger.info(f"User {user['id']} <{user['email']}> logged in with Google")
    return redirect(current_app.config.get('LOGIN_REDIRECT_URL', '/'))


@auth_bp.route('/api/auth/me')
@login_required
def me():
    """Return the logged-in user."""
    return jsonify({"success": True, "data": g.current_user}), 200


@auth_bp.route('/api/auth/logout', methods=['POST'])
def logout():
    """User logout."""
    session.pop('user_id', None)
    return jsonify({"success": True, "data": None}), 200
