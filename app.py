import os
from flask import Flask, jsonify
from sqlalchemy import text

from config import Config
from extensions import db, init_extensions, login_manager
from logger import configure_logging
from ledger.engine import init_ledger
from ledger.exceptions import LedgerError


def create_app(config_class=Config, clock=None):
    app = Flask(__name__)
    app.config.from_object(config_class)

    if not app.config.get("SECRET_KEY"):
        if not app.config.get("TESTING"):
            raise ValueError("SECRET_KEY environment variable is required")

    if not app.debug:
        app.config.update(
            SESSION_COOKIE_HTTPONLY=True,
            REMEMBER_COOKIE_HTTPONLY=True,
        )

    # ------------------------------------------------------------------------------------------
    # Logging
    # ------------------------------------------------------------------------------------------
    configure_logging(app)

    # ------------------------------------------------------------------------------------------
    # SQLite instance folder
    # ------------------------------------------------------------------------------------------
    database_uri = app.config.get("SQLALCHEMY_DATABASE_URI", "")
    if database_uri.startswith("sqlite:///"):
        os.makedirs(os.path.dirname(database_uri[len("sqlite:///"):]) or ".", exist_ok=True)

    # ------------------------------------------------------------------------------------------
    # Extensions and the ledger engine
    # ------------------------------------------------------------------------------------------
    init_extensions(app)
    ledger = init_ledger(app, clock=clock)

    is_valid, message = ledger.config.validate()
    if not is_valid:
        raise ValueError(f"Invalid ledger configuration: {message}")
    app.logger.info(message)

    register_blueprints(app)
    register_error_handlers(app)

    # ------------------------------------------------------------------------------------------
    # Flask-Login
    # ------------------------------------------------------------------------------------------
    @login_manager.user_loader
    def load_user(user_id):
        from models import User
        return db.session.get(User, int(user_id))

    @login_manager.unauthorized_handler
    def unauthorized():
        return jsonify({"error": "UNAUTHORIZED", "message": "Login required"}), 401

    # ----------------------
    # Health
    # ----------------------
    @app.route("/healthz")
    def healthz():
        try:
            db.session.execute(text("SELECT 1"))
            database = "ok"
        except Exception as e:
            db.session.rollback()
            app.logger.error(f"Health check database failure: {e}")
            database = "unavailable"

        status = "ok" if database == "ok" else "degraded"
        return jsonify({
            "status": status,
            "database": database,
            "tasks": ledger.health_report(),
        }), 200 if status == "ok" else 503

    if app.config.get("SCHEDULER_ENABLED"):
        from ledger.scheduler import start_background_tasks
        start_background_tasks(app)

    return app


# ------------------------------------------------------------------------------------------------------------------------
# Register blueprints
# -----------------------------------------------------------------------------------------------------------------------
def register_blueprints(app):
    from blueprints.auth import bp as auth_bp
    from blueprints.wallet import bp as wallet_bp
    from blueprints.referrals import bp as referrals_bp

    app.register_blueprint(auth_bp)
    app.register_blueprint(wallet_bp)
    app.register_blueprint(referrals_bp)


def register_error_handlers(app):

    @app.errorhandler(LedgerError)
    def handle_ledger_error(error):
        if error.status_code >= 500:
            app.logger.error(f"{error.error_code}: {error}")
        return jsonify(error.to_dict()), error.status_code

    @app.errorhandler(404)
    def not_found(error):
        return jsonify({"error": "NOT_FOUND", "message": "Resource not found"}), 404

    @app.errorhandler(405)
    def method_not_allowed(error):
        return jsonify({"error": "METHOD_NOT_ALLOWED", "message": "Method not allowed"}), 405

    @app.errorhandler(500)
    def internal_error(error):
        db.session.rollback()
        app.logger.error(f"Unhandled error: {error}")
        return jsonify({"error": "INTERNAL_ERROR", "message": "Internal server error"}), 500
