# zork_app/exceptions.py
# -*- coding: utf-8 -*-
"""
Error taxonomy shared by the services and the HTTP boundary.

Services raise these; only the boundary (``api/errors.py``) turns them into
status codes and JSON envelopes.
"""
from typing import Optional


class ZorkError(Exception):
    """Base class for every error the application raises on purpose."""

    status_code = 500
    label = "Error interno del servidor"

    def __init__(self, message: str = "", *, detail: Optional[str] = None):
        super().__init__(message or self.label)
        self.message = message or self.label
        self.detail = detail


class ValidationError(ZorkError):
    status_code = 400
    label = "Solicitud inválida"


class ForbiddenError(ZorkError):
    status_code = 403
    label = "Operación no permitida"


class NotFoundError(ZorkError):
    status_code = 404
    label = "Conversación no encontrada"


class ConversationBusyError(ZorkError):
    status_code = 409
    label = "Conversación ocupada"


class InternalError(ZorkError):
    status_code = 500
    label = "Error interno del servidor"


class StoreError(ZorkError):
    status_code = 500
    label = "Error de base de datos"


# --- Remote assistant API ---

class UpstreamError(ZorkError):
    status_code = 500
    label = "Error del asistente remoto"


class UpstreamAuthError(UpstreamError):
    status_code = 401
    label = "API key inválida"


class UpstreamQuotaError(UpstreamError):
    status_code = 402
    label = "Cuota de API insuficiente"


class UpstreamRateLimitError(UpstreamError):
    status_code = 429
    label = "Límite de velocidad excedido"


class UpstreamTimeoutError(UpstreamError):
    status_code = 408
    label = "Timeout en la solicitud"


class RunExecutionError(UpstreamError):
    """The remote run finished in a failure state."""

    label = "La ejecución del asistente falló"

    def __init__(self, message: str = "", *, run_id: Optional[str] = None,
                 status: Optional[str] = None, detail: Optional[str] = None):
        super().__init__(message, detail=detail)
        self.run_id = run_id
        self.status = status


class RunTimeoutError(UpstreamTimeoutError):
    """The remote run did not reach a terminal state before the deadline."""

    label = "El asistente tardó demasiado en responder"

    def __init__(self, message: str = "", *, run_id: Optional[str] = None):
        super().__init__(message)
        self.run_id = run_id


class ReplyFormatError(ZorkError):
    status_code = 502
    label = "Respuesta del asistente con formato inválido"
