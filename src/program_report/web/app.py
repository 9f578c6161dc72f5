"""Flask application factory for the Program Report API."""

from flask import Flask


def create_app() -> Flask:
    """Create and configure the Flask application."""
    app = Flask(__name__)

    from program_report.web.routes import bp
    app.register_blueprint(bp)

    return app
