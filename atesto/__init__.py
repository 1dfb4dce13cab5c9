"""
Pacote principal da aplicação Flask de atesto de notas fiscais.
"""

from flask import Flask, jsonify
from werkzeug.exceptions import HTTPException

from config import DevConfig
from .extensions import init_extensions


def create_app(config_class=DevConfig) -> Flask:
    app = Flask(__name__, instance_relative_config=True)
    app.config.from_object(config_class)
    init_extensions(app)

    from .middleware.auth import init_auth
    init_auth(app)

    _register_collaborators(app)
    _register_blueprints(app)
    _register_error_handlers(app)

    app.logger.info("Aplicação Flask inicializada.")

    @app.route("/health")
    def healthcheck():
        return jsonify({"status": "ok"}), 200

    return app


def _register_collaborators(app: Flask) -> None:
    """E-mail, armazenamento e extração ficam em app.extensions para poderem ser trocados nos testes."""
    from .services.email_service import EXTENSION_KEY as MAILER_KEY, SmtpMailer
    from .services.extraction_service import EXTENSION_KEY as EXTRACTOR_KEY, NoteDataExtractor
    from .services.storage_service import EXTENSION_KEY as STORAGE_KEY, LocalBlobStorage

    app.extensions[MAILER_KEY] = SmtpMailer.from_config(app.config)
    app.extensions[STORAGE_KEY] = LocalBlobStorage(app.config.get("BLOB_STORAGE_PATH"))
    app.extensions[EXTRACTOR_KEY] = NoteDataExtractor(
        api_key=app.config.get("GEMINI_API_KEY"),
        endpoint=app.config.get("GEMINI_ENDPOINT"),
    )


def _register_blueprints(app: Flask) -> None:
    from .api import (
        api_attest_bp,
        api_cron_bp,
        api_files_bp,
        api_notes_bp,
        api_reports_bp,
        api_settings_bp,
    )

    app.register_blueprint(api_notes_bp, url_prefix="/api/notes")
    app.register_blueprint(api_settings_bp, url_prefix="/api/settings")
    app.register_blueprint(api_reports_bp, url_prefix="/api/reports")
    app.register_blueprint(api_cron_bp, url_prefix="/api/cron")
    app.register_blueprint(api_attest_bp, url_prefix="/attest")
    app.register_blueprint(api_files_bp, url_prefix="/files")


def _register_error_handlers(app: Flask) -> None:
    messages = {
        404: "Recurso não encontrado.",
        405: "Método não permitido.",
        413: "Arquivo muito grande.",
    }

    @app.errorhandler(HTTPException)
    def handle_http_error(exc: HTTPException):
        message = messages.get(exc.code, exc.description or "Erro na requisição.")
        return jsonify({"success": False, "message": message}), exc.code

    @app.errorhandler(Exception)
    def handle_unexpected_error(exc: Exception):
        app.logger.exception("Erro não tratado na requisição")
        return (
            jsonify({"success": False, "message": "Ocorreu um erro no servidor. Tente novamente."}),
            500,
        )
