import logging
import os
from datetime import timedelta

from dotenv import load_dotenv
from flask import Flask, g, jsonify, request
from flask_cors import CORS
from werkzeug.exceptions import HTTPException

from app.rijschool.config import load_config
from app.rijschool.db import db_session, init_db, teardown_db_session
from app.rijschool.errors import ServiceError
from app.rijschool.routes import bp as routes_bp
from app.rijschool.auth import bp as auth_bp, load_current_user
from app.rijschool.modules.accounts.api import bp as accounts_bp
from app.rijschool.modules.cars.api import bp as cars_bp
from app.rijschool.modules.packages.api import bp as packages_bp
from app.rijschool.modules.lessons.api import bp as lessons_bp
from app.rijschool.modules.lesson_requests.api import bp as lesson_requests_bp
from app.rijschool.modules.availability.api import bp as availability_bp
from app.rijschool.modules.payments.api import bp as payments_bp
from app.rijschool.modules.feedback.api import bp as feedback_bp
from app.rijschool.modules.calendar.api import bp as calendar_bp
from app.rijschool.modules.dashboards.api import bp as dashboards_bp
from app.rijschool.modules.functions.api import bp as functions_bp

_PUBLIC_PREFIXES = ("/static/", "/health", "/healthz")


def create_app() -> Flask:
    load_dotenv()
    app = Flask(__name__)
    app.config.from_mapping(load_config())
    app.config["PERMANENT_SESSION_LIFETIME"] = timedelta(hours=8)
    app.config["SESSION_REFRESH_EACH_REQUEST"] = True
    app.json.sort_keys = False  # type: ignore[attr-defined]

    logging.basicConfig(level=app.config["LOG_LEVEL"])
    app.logger.setLevel(app.config["LOG_LEVEL"])

    cors_origins = app.config["CORS_ORIGINS"]
    CORS(
        app,
        resources={r"/api/*": {"origins": cors_origins}, r"/functions/*": {"origins": cors_origins}},
        supports_credentials=True,
    )

    # Production guardrails (fail fast with clear logs)
    env = (app.config.get("ENV") or "").strip().lower()
    if env in ("prod", "production"):
        if not app.config.get("DATABASE_URL") or str(app.config["DATABASE_URL"]).strip() == "":
            raise RuntimeError("DATABASE_URL is required in production.")
        if str(app.config["DATABASE_URL"]).startswith("sqlite"):
            raise RuntimeError("DATABASE_URL must be Postgres in production (not sqlite).")
        if not app.config.get("SECRET_KEY") or str(app.config["SECRET_KEY"]) in ("", "change-me"):
            raise RuntimeError("SECRET_KEY must be set to a strong value in production (not default).")

    init_db(app)

    def _dispose_engine_on_fork() -> None:
        if hasattr(os, "register_at_fork"):
            def _after_fork_child():
                engine = app.extensions.get("sqlalchemy_engine")
                if engine:
                    engine.dispose()
                    app.logger.info("Disposed DB engine after fork (pid=%s)", os.getpid())

            os.register_at_fork(after_in_child=_after_fork_child)

    _dispose_engine_on_fork()

    app.register_blueprint(routes_bp)
    app.register_blueprint(auth_bp, url_prefix="/auth")
    for bp in (
        accounts_bp,
        cars_bp,
        packages_bp,
        lessons_bp,
        lesson_requests_bp,
        availability_bp,
        payments_bp,
        feedback_bp,
        calendar_bp,
        dashboards_bp,
    ):
        app.register_blueprint(bp, url_prefix="/api")
    app.register_blueprint(functions_bp, url_prefix="/functions")

    def _load_user_wrapper():
        if request.path.startswith(_PUBLIC_PREFIXES):
            g.current_user = None
            g.auth = None
            return None
        return load_current_user()

    app.before_request(_load_user_wrapper)
    app.teardown_appcontext(teardown_db_session)

    @app.errorhandler(ServiceError)
    def _err_service(e: ServiceError):  # type: ignore[no-redef]
        db_session().rollback()
        app.logger.info("%s: %s (request_id=%s)", type(e).__name__, e.message, getattr(g, "request_id", None))
        return jsonify(e.to_dict()), e.status_code

    @app.errorhandler(HTTPException)
    def _err_http(e: HTTPException):  # type: ignore[no-redef]
        if e.code == 403:
            missing = getattr(g, "missing_permission", None)
            if missing:
                app.logger.warning("Forbidden: missing_permission=%s request_id=%s", missing, getattr(g, "request_id", None))
        return jsonify({"error": e.description or e.name}), e.code

    @app.errorhandler(500)
    def _err_500(e):  # type: ignore[no-redef]
        # Ensure stack trace shows in the logs.
        rid = getattr(g, "request_id", None)
        app.logger.exception("Unhandled 500 (request_id=%s)", rid)
        return jsonify({"error": "Internal server error", "request_id": rid}), 500

    logging.getLogger(__name__).info("create_app() complete; app ready to serve")

    return app
