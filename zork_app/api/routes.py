# zork_app/api/routes.py
# -*- coding: utf-8 -*-

import datetime
import logging
from datetime import timezone

from flask import current_app, jsonify, request

from .errors import error_response
from .schemas import parse_chat_request
from ..exceptions import ForbiddenError, InternalError, ValidationError
from ..services.chat_service import ChatService

from . import api_bp

logger = logging.getLogger(__name__)


def _now_iso() -> str:
    return datetime.datetime.now(timezone.utc).isoformat()


def _chat_service() -> ChatService:
    service = getattr(current_app, "chat_service", None)
    if service is None:
        raise InternalError("El asistente no está configurado. Revisá OPENAI_API_KEY y OPENAI_ASSISTANT_ID.")
    return service


def _client_key() -> str:
    # X-Forwarded-For is only honoured through ProxyFix (TRUSTED_PROXY_HOPS), which rewrites remote_addr.
    return request.remote_addr or "unknown"


@api_bp.before_request
def enforce_rate_limit():
    limiter = getattr(current_app, "rate_limiter", None)
    if limiter is None:
        return None
    decision = limiter.hit(_client_key())
    if decision.allowed:
        return None
    response, status = error_response(
        429, "Demasiadas solicitudes",
        "Demasiadas solicitudes desde esta IP, intenta de nuevo más tarde.",
        retryAfter=decision.retry_after,
    )
    response.headers["Retry-After"] = str(decision.retry_after)
    return response, status


@api_bp.route('/chat', methods=['POST'])
def chat():
    """Forward a player message to the assistant and return its reply."""
    payload = request.get_json(silent=True)
    if payload is None:
        raise ValidationError('El cuerpo debe ser JSON con el campo "message".')
    chat_request = parse_chat_request(payload, current_app.config.get("MAX_MESSAGE_LENGTH", 4000))

    result = _chat_service().chat(chat_request.message, chat_request.conversation_id)
    return jsonify({"success": True, "data": result.to_dict()}), 200


@api_bp.route('/context/<conversation_id>', methods=['GET'])
def get_context(conversation_id):
    context = _chat_service().get_context(conversation_id)
    return jsonify({"success": True, "data": context}), 200


@api_bp.route('/context/<conversation_id>', methods=['DELETE'])
def delete_context(conversation_id):
    # Kept disabled: the mapping is only removed through the new-game flow.
    logger.warning(f"Rejected DELETE for conversation {conversation_id}: deletion is disabled.")
    raise ForbiddenError("La eliminación de conversaciones está deshabilitada.")


@api_bp.route('/history/<conversation_id>', methods=['GET'])
def get_history(conversation_id):
    history = _chat_service().get_history(conversation_id)
    return jsonify({"success": True, "data": history}), 200


@api_bp.route('/conversations', methods=['GET'])
def list_conversations():
    conversations = _chat_service().list_conversations()
    return jsonify({
        "success": True,
        "data": {"conversations": conversations, "count": len(conversations), "timestamp": _now_iso()},
    }), 200


@api_bp.route('/models', methods=['GET'])
def list_models():
    models = _chat_service().assistant.list_models()
    return jsonify({
        "success": True,
        "data": {"models": models, "count": len(models), "timestamp": _now_iso()},
    }), 200


@api_bp.route('/status', methods=['GET'])
def status():
    """Configuration flags only; does not touch the database or OpenAI."""
    config = current_app.config
    return jsonify({
        "success": True,
        "data": {
            "configured": bool(config.get("OPENAI_API_KEY")),
            "assistantConfigured": bool(config.get("OPENAI_ASSISTANT_ID")),
            "serviceReady": getattr(current_app, "chat_service", None) is not None,
            "model": config.get("OPENAI_MODEL"),
            "replyFormat": config.get("REPLY_FORMAT"),
            "databaseConfigured": bool(config.get("SQLALCHEMY_DATABASE_URI")),
            "rateLimitEnabled": getattr(current_app, "rate_limiter", None) is not None,
            "environment": config.get("FLASK_ENV", "development"),
            "timestamp": _now_iso(),
        },
    }), 200
