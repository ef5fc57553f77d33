# zork_app/api/errors.py
import datetime
import logging
import traceback
from datetime import timezone

from flask import current_app, jsonify
from werkzeug.exceptions import HTTPException

from ..exceptions import ZorkError

logger = logging.getLogger(__name__)


def error_response(status_code: int, label: str, message: str, exc: Exception = None, **extra):
    """The JSON envelope every failure is returned in."""
    body = {
        "success": False,
        "error": label,
        "message": message,
        "timestamp": datetime.datetime.now(timezone.utc).isoformat(),
    }
    body.update(extra)
    if exc is not None and current_app.config.get("FLASK_ENV") != "production":
        body["stack"] = "".join(traceback.format_exception(type(exc), exc, exc.__traceback__))
    return jsonify(body), status_code


def register_error_handlers(app) -> None:

    @app.errorhandler(ZorkError)
    def handle_zork_error(e: ZorkError):
        if e.status_code >= 500:
            logger.error(f"{type(e).__name__}: {e.message} ({e.detail})")
        else:
            logger.warning(f"{type(e).__name__}: {e.message}")
        return error_response(e.status_code, e.label, e.message, exc=e if e.status_code >= 500 else None)

    @app.errorhandler(404)
    def handle_not_found(e):
        return error_response(
            404, "Endpoint no encontrado", "El endpoint solicitado no existe",
            availableEndpoints=["/health", "/api/chat", "/api/context/<conversationId>",
                                "/api/history/<conversationId>", "/api/conversations",
                                "/api/models", "/api/status"],
        )

    @app.errorhandler(HTTPException)
    def handle_http_exception(e: HTTPException):
        return error_response(e.code or 500, e.name, e.description or e.name)

    @app.errorhandler(Exception)
    def handle_unexpected(e: Exception):
        logger.exception(f"Unhandled error: {e}")
        production = current_app.config.get("FLASK_ENV") == "production"
        return error_response(500, "Error interno del servidor",
                              "Algo salió mal" if production else str(e), exc=e)
