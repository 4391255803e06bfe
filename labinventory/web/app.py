"""
Lab Inventory Web Application
=============================
Flask application factory for the inventory REST API.
"""

from typing import Optional
from dotenv import load_dotenv
from flask import Flask
from flask_dance.contrib.google import make_google_blueprint

from labinventory.config import Settings, configure, get_settings
from labinventory.session import get_db, init_db

# Load environment variables from .env file
load_dotenv()


def create_app(database_url: Optional[str] = None, settings: Optional[Settings] = None) -> Flask:
    """Create and configure the Flask application.

    Args:
        database_url: Optional database URL. If given, the global database is
            (re)initialized with it; otherwise the current one is used.
        settings: Optional settings, installed as the process-wide settings.

    Returns:
        Configured Flask application.
    """
    if settings is not None:
        configure(settings)
    settings = get_settings()

    app = Flask(__name__)

    # Configuration
    app.config['SECRET_KEY'] = settings.secret_key

    # Only enable OAuth if credentials are configured
    if settings.google_oauth_enabled:
        google_bp = make_google_blueprint(
            client_id=settings.google_client_id,
            client_secret=settings.google_client_secret,
            scope=['openid', 'https://www.googleapis.com/auth/userinfo.email', 'https://www.googleapis.com/auth/userinfo.profile'],
            redirect_to='auth.google_login'
        )
        app.register_blueprint(google_bp, url_prefix='/oauth')
        app.config['GOOGLE_OAUTH_ENABLED'] = True
    else:
        app.config['GOOGLE_OAUTH_ENABLED'] = False

    # Initialize database
    if database_url is not None:
        init_db(database_url)
    else:
        get_db()

    # Register blueprints
    from labinventory.web.auth import auth_bp
    from labinventory.web.api import api_bp, register_error_handlers
    app.register_blueprint(auth_bp)
    app.register_blueprint(api_bp)
    register_error_handlers(app)

    return app
