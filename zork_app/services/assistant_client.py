# zork_app/services/assistant_client.py
# -*- coding: utf-8 -*-
import logging
from contextlib import contextmanager
from dataclasses import dataclass
from typing import Any, Dict, Iterator, List, Optional

import openai
from openai import OpenAI

from ..exceptions import (
    UpstreamAuthError,
    UpstreamError,
    UpstreamQuotaError,
    UpstreamRateLimitError,
    UpstreamTimeoutError,
)

logger = logging.getLogger(__name__)

ACTIVE_RUN_STATUSES = ("queued", "in_progress", "cancelling")
# A run waiting on tool output also keeps the thread closed to new messages.
BLOCKING_RUN_STATUSES = ACTIVE_RUN_STATUSES + ("requires_action",)


@dataclass(frozen=True)
class RunState:
    id: str
    status: str
    error_code: Optional[str] = None
    error_message: Optional[str] = None

    @property
    def is_active(self) -> bool:
        return self.status in ACTIVE_RUN_STATUSES

    @property
    def blocks_thread(self) -> bool:
        return self.status in BLOCKING_RUN_STATUSES


@dataclass(frozen=True)
class ThreadMessage:
    id: str
    role: str
    text: Optional[str]
    created_at: Optional[int] = None

    def to_dict(self) -> Dict[str, Any]:
        return {"id": self.id, "role": self.role, "content": self.text, "createdAt": self.created_at}


def _message_text(message) -> Optional[str]:
    """Concatenate the text blocks of an Assistants message; None when it has none."""
    parts = []
    for block in getattr(message, "content", None) or []:
        if getattr(block, "type", None) == "text":
            parts.append(block.text.value)
    return "\n".join(parts) if parts else None


def translate_openai_error(exc: Exception, operation: str) -> UpstreamError:
    """Map an ``openai`` exception onto the application's upstream error kinds."""
    code = getattr(exc, "code", None)
    detail = str(exc)

    if code == "insufficient_quota":
        return UpstreamQuotaError(f"Cuota de OpenAI insuficiente ({operation}).", detail=detail)
    if isinstance(exc, (openai.AuthenticationError, openai.PermissionDeniedError)) or code == "invalid_api_key":
        return UpstreamAuthError(f"OpenAI rechazó las credenciales ({operation}).", detail=detail)
    if isinstance(exc, openai.RateLimitError) or code == "rate_limit_exceeded":
        return UpstreamRateLimitError(f"OpenAI limitó la solicitud ({operation}).", detail=detail)
    if isinstance(exc, openai.APITimeoutError) or "timeout" in detail.lower():
        return UpstreamTimeoutError(f"OpenAI no respondió a tiempo ({operation}).", detail=detail)
    return UpstreamError(f"Error de OpenAI ({operation}).", detail=detail)


class AssistantClient:
    """
    Thin wrapper over the OpenAI Assistants API (``client.beta.threads``).

    Returns plain dataclasses and raises only ``UpstreamError`` subclasses.
    Transient failures (429, 5xx, connection, timeout) are retried by the SDK
    itself with exponential backoff, up to ``max_retries`` times.
    """

    def __init__(self, api_key: Optional[str] = None, assistant_id: Optional[str] = None,
                 timeout: float = 30.0, max_retries: int = 2, client: Optional[OpenAI] = None):
        if client is None:
            if not api_key:
                raise ValueError("An OpenAI API key is required for AssistantClient.")
            client = OpenAI(api_key=api_key, timeout=timeout, max_retries=max_retries)
        self.client = client
        self.assistant_id = assistant_id
        logger.info(f"AssistantClient initialized for Assistant ID '{assistant_id}'.")

    @classmethod
    def from_config(cls, config) -> "AssistantClient":
        return cls(
            api_key=config.get("OPENAI_API_KEY"),
            assistant_id=config.get("OPENAI_ASSISTANT_ID"),
            timeout=config.get("OPENAI_TIMEOUT", 30.0),
            max_retries=config.get("OPENAI_MAX_RETRIES", 2),
        )

    @contextmanager
    def _call(self, operation: str) -> Iterator[None]:
        try:
            yield
        except openai.OpenAIError as e:
            error = translate_openai_error(e, operation)
            logger.error(f"OpenAI call '{operation}' failed: {type(e).__name__}: {e}")
            raise error from e

    # --- threads ---

    def create_thread(self) -> str:
        with self._call("create thread"):
            thread = self.client.beta.threads.create()
        logger.info(f"Created OpenAI thread {thread.id}.")
        return thread.id

    def add_user_message(self, thread_id: str, text: str) -> str:
        with self._call("add message"):
            message = self.client.beta.threads.messages.create(thread_id=thread_id, role="user", content=text)
        return message.id

    def list_messages(self, thread_id: str, order: str = "asc", limit: Optional[int] = None) -> List[ThreadMessage]:
        """
        Messages of a thread in ``order``. Without ``limit`` every page is
        fetched (the SDK cursor page auto-paginates on iteration).
        """
        with self._call("list messages"):
            if limit is not None:
                page = self.client.beta.threads.messages.list(thread_id=thread_id, order=order, limit=limit)
                raw_messages = list(page.data)
            else:
                page = self.client.beta.threads.messages.list(thread_id=thread_id, order=order, limit=100)
                raw_messages = list(page)
        return [
            ThreadMessage(id=m.id, role=m.role, text=_message_text(m), created_at=getattr(m, "created_at", None))
            for m in raw_messages
        ]

    def latest_message(self, thread_id: str) -> Optional[ThreadMessage]:
        messages = self.list_messages(thread_id, order="desc", limit=1)
        return messages[0] if messages else None

    # --- runs ---

    @staticmethod
    def _run_state(run) -> RunState:
        last_error = getattr(run, "last_error", None)
        return RunState(
            id=run.id,
            status=run.status,
            error_code=getattr(last_error, "code", None) if last_error else None,
            error_message=getattr(last_error, "message", None) if last_error else None,
        )

    def start_run(self, thread_id: str, instructions: Optional[str] = None) -> RunState:
        if not self.assistant_id:
            raise UpstreamError("OPENAI_ASSISTANT_ID no está configurado.")
        kwargs = {"thread_id": thread_id, "assistant_id": self.assistant_id}
        if instructions:
            kwargs["instructions"] = instructions
        with self._call("create run"):
            run = self.client.beta.threads.runs.create(**kwargs)
        logger.info(f"Created Run {run.id} for Thread {thread_id}.")
        return self._run_state(run)

    def get_run(self, thread_id: str, run_id: str) -> RunState:
        with self._call("retrieve run"):
            run = self.client.beta.threads.runs.retrieve(thread_id=thread_id, run_id=run_id)
        return self._run_state(run)

    def cancel_run(self, thread_id: str, run_id: str) -> RunState:
        with self._call("cancel run"):
            run = self.client.beta.threads.runs.cancel(thread_id=thread_id, run_id=run_id)
        logger.warning(f"Cancelled Run {run_id} on Thread {thread_id}.")
        return self._run_state(run)

    def latest_run(self, thread_id: str) -> Optional[RunState]:
        with self._call("list runs"):
            resp = self.client.beta.threads.runs.list(thread_id=thread_id, limit=1)
        return self._run_state(resp.data[0]) if resp.data else None

    # --- models ---

    def list_models(self, name_filter: str = "gpt") -> List[Dict[str, Any]]:
        with self._call("list models"):
            models = self.client.models.list()
            available = [
                {"id": m.id, "owned_by": m.owned_by, "created": m.created}
                for m in models.data if name_filter in m.id
            ]
        return sorted(available, key=lambda m: m["created"] or 0, reverse=True)
