"""
app/__init__.py

Flask application factory for the Quotation CRM backend.

- JSON API consumed by the single-page frontend.
- PostgreSQL-ready (SQLAlchemy + migrations); SQLite is used for dev/tests.
- Pricing (app.pricing) and numbering (app.numbering) are plain modules; the
  blueprints only parse input, persist and serialize.
"""

from __future__ import annotations

import logging.config

import click
from flask import Flask, jsonify
from flask_wtf.csrf import CSRFError, generate_csrf
from werkzeug.exceptions import HTTPException

from .extensions import csrf, db, migrate


def _configure_logging(app: Flask) -> None:
    """Console logging for the app and the pricing/numbering modules."""
    logging.config.dictConfig(
        {
            "version": 1,
            "disable_existing_loggers": False,
            "formatters": {
                "default": {"format": "[%(asctime)s] %(levelname)s in %(name)s: %(message)s"},
            },
            "handlers": {
                "console": {
                    "class": "logging.StreamHandler",
                    "stream": "ext://sys.stderr",
                    "formatter": "default",
                },
            },
            "loggers": {
                "app": {"level": app.config["LOG_LEVEL"], "handlers": ["console"], "propagate": True},
            },
        }
    )
    app.logger.setLevel(app.config["LOG_LEVEL"])


def create_app(config_object: str | object = "config.Config") -> Flask:
    """Create and configure the Flask application."""
    app = Flask(__name__)
    app.config.from_object(config_object)

    _configure_logging(app)

    # Extensions
    db.init_app(app)
    migrate.init_app(app, db)
    csrf.init_app(app)

    # ----------------------------------------------------------------------
    # Blueprints
    # ----------------------------------------------------------------------
    from .blueprints.quotations import quotations_bp
    from .blueprints.settings import settings_bp
    from .blueprints.reports import reports_bp
    from .blueprints.invoices import invoices_bp
    from .blueprints.tasks import tasks_bp

    app.register_blueprint(quotations_bp)
    app.register_blueprint(settings_bp)
    app.register_blueprint(reports_bp)
    app.register_blueprint(invoices_bp)
    app.register_blueprint(tasks_bp)

    # ----------------------------------------------------------------------
    # Errors as JSON
    # ----------------------------------------------------------------------
    @app.errorhandler(CSRFError)
    def handle_csrf_error(exc: CSRFError):
        return jsonify({"error": exc.description}), 400

    @app.errorhandler(HTTPException)
    def handle_http_error(exc: HTTPException):
        return jsonify({"error": exc.description}), exc.code

    # ----------------------------------------------------------------------
    # CLI
    # ----------------------------------------------------------------------
    @app.cli.command("seed-counters")
    def seed_counters_command():
        """Create the quotation/invoice counters if missing."""
        from .seed import seed_counters

        created = seed_counters()
        click.echo(f"Counters created: {', '.join(created) or 'none (already present)'}")

    @app.cli.command("next-reference")
    @click.argument("counter_name")
    @click.option("--code", default=None, help="Company short code used as prefix.")
    def next_reference_command(counter_name: str, code: str | None):
        """Issue and print a reference number."""
        from .numbering import generate_reference

        click.echo(generate_reference(counter_name, code))

    # ----------------------------------------------------------------------
    # Misc
    # ----------------------------------------------------------------------
    @app.route("/csrf-token")
    def csrf_token():
        """Token for the SPA's X-CSRFToken header."""
        return jsonify({"csrf_token": generate_csrf()})

    @app.route("/")
    def index():
        return jsonify({"app": app.config.get("APP_NAME"), "status": "ok"})

    return app
