import logging

from flask import Flask, jsonify
from flask_cors import CORS
from flask_jwt_extended import JWTManager
from pydantic import ValidationError as SchemaValidationError
from werkzeug.exceptions import HTTPException

from models import db
from auth.routes import auth_bp
from categorization.routes import categorization_bp
from errors import AppError
from ledger.routes import ledger_bp
from profiles.routes import profiles_bp
from statements.cli import statements_cli
from statements.routes import statements_bp
from statements.worker import init_worker
from storage.object_store import init_object_store
from storage.routes import files_bp
from config import Config

logger = logging.getLogger(__name__)


def _configure_logging(level_name: str) -> None:
    level = getattr(logging, str(level_name).upper(), logging.INFO)
    logging.basicConfig(
        level=level,
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
    )
    logging.getLogger().setLevel(level)


def _register_error_handlers(app: Flask) -> None:

    @app.errorhandler(AppError)
    def handle_app_error(e):
        return jsonify(e.to_dict()), e.status_code

    @app.errorhandler(SchemaValidationError)
    def handle_schema_error(e):
        return jsonify({"error": e.errors(include_url=False, include_context=False)}), 400

    @app.errorhandler(HTTPException)
    def handle_http_error(e):
        return jsonify({"error": e.description}), e.code

    @app.errorhandler(Exception)
    def handle_unexpected(e):
        logger.exception("Unhandled error")
        return jsonify({"error": "Internal server error"}), 500


def create_app(test_config=None):
    app = Flask(__name__)
    app.config.from_object(Config)
    if test_config:
        app.config.update(test_config)

    _configure_logging(app.config.get("LOG_LEVEL", "INFO"))

    CORS(app)

    db.init_app(app)
    with app.app_context():
        db.create_all()
    JWTManager(app)

    init_object_store(app)
    init_worker(app)

    app.register_blueprint(auth_bp)
    app.register_blueprint(profiles_bp)
    app.register_blueprint(categorization_bp)
    app.register_blueprint(statements_bp)
    app.register_blueprint(ledger_bp)
    app.register_blueprint(files_bp)

    app.cli.add_command(statements_cli)
    _register_error_handlers(app)

    return app


if __name__ == "__main__":
    create_app().run(debug=True)
