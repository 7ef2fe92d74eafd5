"""Initialize the Flask app and its extensions."""

import json
import os

import firebase_admin
from firebase_admin import credentials
from flask import Flask, g
from werkzeug.middleware.proxy_fix import ProxyFix

from .auth import load_request_user
from .core.constants import MAX_ANSWER_SHEETS
from .extensions import coordinator, socketio, store


def _cors_origins(value):
    """Parse SOCKETIO_CORS_ORIGINS: '*' or a comma-separated list."""
    if not value or value == "*":
        return "*"
    return [origin.strip() for origin in value.split(",") if origin.strip()]


def init_firebase(app):
    """Initialize the Firebase Admin SDK from the best credential available.

    Order: FIREBASE_CREDENTIALS_JSON, then a local firebase_credentials.json,
    then application default credentials.
    """
    cred = None
    project_id = app.config.get("FIREBASE_PROJECT_ID")

    cred_json = app.config.get("FIREBASE_CREDENTIALS_JSON")
    if cred_json:
        try:
            cred_info = json.loads(cred_json)
            project_id = cred_info.get("project_id") or project_id
            cred = credentials.Certificate(cred_info)
        except (json.JSONDecodeError, ValueError) as e:
            app.logger.error(f"Error parsing FIREBASE_CREDENTIALS_JSON: {e}")

    if not cred:
        cred_path = os.path.join(
            os.path.dirname(os.path.dirname(__file__)), "firebase_credentials.json"
        )
        if os.path.exists(cred_path):
            try:
                with open(cred_path, "r") as f:
                    project_id = json.load(f).get("project_id") or project_id
                cred = credentials.Certificate(cred_path)
            except (json.JSONDecodeError, ValueError) as e:
                app.logger.error(f"Error loading credentials from file: {e}")

    if not cred:
        try:
            cred = credentials.ApplicationDefault()
        except Exception as e:
            app.logger.error(f"Could not find any valid Firebase credentials: {e}")
            return

    if firebase_admin._apps:
        app.logger.info("Firebase app already initialized.")
        return

    storage_bucket = app.config.get("FIREBASE_STORAGE_BUCKET")
    if not storage_bucket and project_id:
        storage_bucket = f"{project_id}.firebasestorage.app"
    options = {"storageBucket": storage_bucket}
    if project_id:
        options["projectId"] = project_id
    firebase_admin.initialize_app(cred, options)


def create_app(test_config=None):
    """Create and configure an instance of the Flask application."""
    app = Flask(__name__)

    # Load configuration
    app.config.from_mapping(
        SECRET_KEY=os.environ.get("SECRET_KEY") or "dev",
        FIREBASE_CREDENTIALS_JSON=os.environ.get("FIREBASE_CREDENTIALS_JSON"),
        FIREBASE_PROJECT_ID=os.environ.get("FIREBASE_PROJECT_ID"),
        FIREBASE_STORAGE_BUCKET=os.environ.get("FIREBASE_STORAGE_BUCKET"),
        SOCKETIO_MESSAGE_QUEUE=os.environ.get("SOCKETIO_MESSAGE_QUEUE"),
        SOCKETIO_CORS_ORIGINS=os.environ.get("SOCKETIO_CORS_ORIGINS") or "*",
        MAX_CONTENT_LENGTH=int(
            os.environ.get("MAX_CONTENT_LENGTH") or 16 * 1024 * 1024
        ),
        MAX_ANSWER_SHEETS=int(
            os.environ.get("MAX_ANSWER_SHEETS") or MAX_ANSWER_SHEETS
        ),
        LOG_LEVEL=(os.environ.get("LOG_LEVEL") or "INFO").upper(),
    )

    if test_config:
        app.config.update(test_config)

    # Module loggers live under the "studyhub" logger, which is app.logger.
    app.logger.setLevel(app.config["LOG_LEVEL"])

    if not app.config.get("TESTING"):
        init_firebase(app)

    # Initialize extensions; event handlers must be registered first.
    from .realtime import events  # noqa: F401

    store.init_app(app)
    socketio.init_app(
        app,
        message_queue=app.config["SOCKETIO_MESSAGE_QUEUE"],
        cors_allowed_origins=_cors_origins(app.config["SOCKETIO_CORS_ORIGINS"]),
    )
    coordinator.init_app(app, socketio)

    # Register blueprints
    from . import main as main_bp

    app.register_blueprint(main_bp.bp)

    from . import group as group_bp

    app.register_blueprint(group_bp.bp)

    from . import exam as exam_bp

    app.register_blueprint(exam_bp.bp)

    from . import chat as chat_bp

    app.register_blueprint(chat_bp.bp)

    from . import notification as notification_bp

    app.register_blueprint(notification_bp.bp)

    from . import error_handlers

    app.register_blueprint(error_handlers.error_handlers_bp)

    @app.before_request
    def authenticate_request():
        """Resolve an optional bearer token into g.user."""
        try:
            load_request_user(store)
        except Exception as e:
            app.logger.error(f"Error loading user for request: {e}")
            g.user = None

    app.wsgi_app = ProxyFix(app.wsgi_app, x_for=1, x_proto=1, x_host=1, x_prefix=1)

    return app
