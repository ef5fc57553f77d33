# zork_app/services/chat_service.py
# -*- coding: utf-8 -*-
import datetime
import logging
import uuid
from dataclasses import dataclass
from datetime import timezone
from typing import Any, Dict, List, Optional

from .assistant_client import AssistantClient
from .conversation_store import ConversationStore
from .new_game_detector import NewGameDetector
from .run_synchronizer import PollPolicy, RunSynchronizer
from .thread_cache import ThreadCache
from .thread_resolver import ThreadResolver
from ..exceptions import NotFoundError
from ..models.conversation import ConversationRecord
from ..utils.history_builder import build_exchanges
from ..utils.locks import LocalKeyedLock, RedisKeyedLock
from ..utils.reply_parser import parse_reply

logger = logging.getLogger(__name__)


@dataclass
class ChatResult:
    message: Any
    conversation_id: str
    thread_id: str
    new_game: bool
    timestamp: str

    def to_dict(self) -> Dict[str, Any]:
        return {
            "message": self.message,
            "conversationId": self.conversation_id,
            "threadId": self.thread_id,
            "timestamp": self.timestamp,
        }


def _now_iso() -> str:
    return datetime.datetime.now(timezone.utc).isoformat()


class ChatService:
    """
    Entry point used by the HTTP routes: the chat flow plus the read-only
    conversation queries.
    """

    def __init__(self, store: ConversationStore, cache: ThreadCache, assistant: AssistantClient,
                 resolver: Optional[ThreadResolver] = None, synchronizer: Optional[RunSynchronizer] = None,
                 detector: Optional[NewGameDetector] = None, locks=None, reply_format: str = "json"):
        self.store = store
        self.cache = cache
        self.assistant = assistant
        self.locks = locks or LocalKeyedLock()
        self.resolver = resolver or ThreadResolver(cache, store, assistant, locks=self.locks)
        self.synchronizer = synchronizer or RunSynchronizer(assistant)
        self.detector = detector or NewGameDetector()
        self.reply_format = reply_format

    # --- chat ---

    def chat(self, message: str, conversation_id: Optional[str] = None) -> ChatResult:
        conversation_id = conversation_id or f"conv_{uuid.uuid4().hex}"
        logger.info(f"New message for conversation {conversation_id}: {message[:100]}...",
                    extra={"conversation_id": conversation_id})

        # Only one run may be active on a thread, so the whole exchange is serialized per conversation.
        with self.locks.hold(f"chat:{conversation_id}"):
            new_game = self.detector.is_new_game_request(message)
            if new_game:
                removed = self.resolver.forget(conversation_id)
                logger.info(f"New game requested for conversation {conversation_id} "
                            f"(previous mapping {'removed' if removed else 'absent'}).",
                            extra={"conversation_id": conversation_id})

            entry = self.resolver.resolve(conversation_id)
            reply_text = self.synchronizer.converse(entry.thread_id, message)

        reply = parse_reply(reply_text, self.reply_format)
        logger.info(f"Reply generated for conversation {conversation_id}.",
                    extra={"conversation_id": conversation_id, "thread_id": entry.thread_id})
        return ChatResult(
            message=reply,
            conversation_id=conversation_id,
            thread_id=entry.thread_id,
            new_game=new_game,
            timestamp=_now_iso(),
        )

    # --- queries ---

    def _require(self, conversation_id: str) -> ConversationRecord:
        record = self.store.get(conversation_id)
        if record is None:
            raise NotFoundError(f"No existe la conversación '{conversation_id}'.")
        return record

    def get_context(self, conversation_id: str) -> Dict[str, Any]:
        record = self._require(conversation_id)
        last = self.assistant.latest_message(record.thread_id)
        context = record.to_dict()
        context["lastMessage"] = last.to_dict() if last else None
        return context

    def get_history(self, conversation_id: str) -> Dict[str, Any]:
        record = self._require(conversation_id)
        messages = self.assistant.list_messages(record.thread_id, order="asc")
        exchanges = build_exchanges(messages)
        return {
            "conversationId": record.conversation_id,
            "threadId": record.thread_id,
            "history": exchanges,
            "count": len(exchanges),
        }

    def list_conversations(self) -> List[Dict[str, Any]]:
        return [record.to_dict() for record in self.store.list_all()]

# Slack on top of the two polling phases a chat can spend under its lock.
LOCK_MARGIN_SECONDS = 30


def lock_ttl(config) -> float:
    """
    Expiry for a held ``chat:`` lock. One exchange may wait up to
    ``RUN_TIMEOUT_SECONDS`` for a previous run and as long again for its own,
    so shorter values are raised to that bound.
    """
    minimum = 2 * config.get("RUN_TIMEOUT_SECONDS", 120.0) + LOCK_MARGIN_SECONDS
    configured = config.get("LOCK_TIMEOUT_SECONDS") or 0
    if configured < minimum:
        if configured:
            logger.warning(f"LOCK_TIMEOUT_SECONDS={configured} is shorter than one exchange can take; "
                           f"using {minimum:g}s.")
        return minimum
    return configured


def build_locks(config, redis_client=None):
    """
    Both backends wait up to ``LOCK_WAIT_SECONDS`` (default: the lock expiry)
    for a busy conversation and then raise ``ConversationBusyError``.
    """
    ttl = lock_ttl(config)
    wait = config.get("LOCK_WAIT_SECONDS") or ttl
    if config.get("LOCK_BACKEND") == "redis" and redis_client is not None:
        logger.info(f"Using Redis locks for conversation serialization (ttl {ttl:g}s, wait {wait:g}s).")
        return RedisKeyedLock(redis_client, timeout=ttl, blocking_timeout=wait)
    return LocalKeyedLock(timeout=wait)


def build_chat_service(config, assistant: AssistantClient, redis_client=None) -> ChatService:
    """Wire the chat service from a Flask config mapping."""
    store = ConversationStore()
    cache = ThreadCache(max_entries=config.get("THREAD_CACHE_MAX_ENTRIES", 0))
    locks = build_locks(config, redis_client)
    # Redis locks mean several processes, each with its own cache over the shared store.
    resolver = ThreadResolver(cache, store, assistant, locks=locks,
                              verify_cached=isinstance(locks, RedisKeyedLock))
    return ChatService(
        store=store,
        cache=cache,
        assistant=assistant,
        resolver=resolver,
        synchronizer=RunSynchronizer(assistant, policy=PollPolicy.from_config(config)),
        detector=NewGameDetector(extra_phrases=config.get("NEW_GAME_PHRASES") or ()),
        locks=locks,
        reply_format=config.get("REPLY_FORMAT", "json"),
    )
