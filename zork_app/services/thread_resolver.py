# zork_app/services/thread_resolver.py
import logging
from typing import Optional

from .thread_cache import CacheEntry, ThreadCache
from ..models.conversation import utcnow
from ..utils.locks import LocalKeyedLock

logger = logging.getLogger(__name__)


class ThreadResolver:
    """
    Finds the OpenAI thread for a conversation, creating it on first use.

    Lookup order is cache, then store, then a new remote thread. The whole
    check-then-create sequence runs under a per-conversation lock, so
    concurrent first requests for the same conversation share one thread.
    Store and remote errors propagate unchanged.

    With ``verify_cached`` the cache is only trusted when it agrees with the
    store. Needed when several processes share the store but each keeps its
    own cache: a new game handled by one process must reach the others.
    """

    def __init__(self, cache: ThreadCache, store, assistant, locks=None, verify_cached: bool = False):
        self.cache = cache
        self.store = store
        self.assistant = assistant
        self.locks = locks or LocalKeyedLock()
        self.verify_cached = verify_cached

    def resolve(self, conversation_id: str) -> CacheEntry:
        if not self.verify_cached:
            entry = self.cache.get(conversation_id)
            if entry is not None:
                return entry

        with self.locks.hold(f"thread:{conversation_id}"):
            # Another caller may have finished the creation while we waited.
            cached = self.cache.get(conversation_id)
            if cached is not None and not self.verify_cached:
                return cached

            record = self.store.get(conversation_id)
            if record is not None:
                if cached is not None and cached.thread_id == record.thread_id:
                    return cached
                if cached is not None:
                    logger.info(f"Cached thread {cached.thread_id} for conversation {conversation_id} "
                                f"was replaced by {record.thread_id} in the store.",
                                extra={"conversation_id": conversation_id, "thread_id": record.thread_id})
                entry = CacheEntry(thread_id=record.thread_id, created_at=record.created_at)
                self.cache.put(conversation_id, entry)
                logger.info(f"Loaded thread {record.thread_id} for conversation {conversation_id} from the store.",
                            extra={"conversation_id": conversation_id, "thread_id": record.thread_id})
                return entry

            if cached is not None:
                logger.info(f"Mapping for conversation {conversation_id} was removed from the store; "
                            f"dropping cached thread {cached.thread_id}.",
                            extra={"conversation_id": conversation_id, "thread_id": cached.thread_id})
                self.cache.discard(conversation_id)

            logger.info(f"No existing thread for conversation {conversation_id}. Creating a new one.",
                        extra={"conversation_id": conversation_id})
            thread_id = self.assistant.create_thread()
            saved = self.store.save(conversation_id, thread_id)
            entry = CacheEntry(thread_id=saved.thread_id, created_at=saved.created_at or utcnow())
            self.cache.put(conversation_id, entry)
            return entry

    def forget(self, conversation_id: str) -> bool:
        """
        Drop the mapping from cache and store so the next ``resolve`` creates a
        fresh thread. Returns True when a stored row was removed.
        """
        with self.locks.hold(f"thread:{conversation_id}"):
            self.cache.discard(conversation_id)
            deleted = self.store.delete(conversation_id)
        return bool(deleted)

    def peek(self, conversation_id: str) -> Optional[CacheEntry]:
        """Resolve without creating: cache, then store, else None."""
        if not self.verify_cached:
            entry = self.cache.get(conversation_id)
            if entry is not None:
                return entry
        record = self.store.get(conversation_id)
        if record is None:
            self.cache.discard(conversation_id)
            return None
        entry = CacheEntry(thread_id=record.thread_id, created_at=record.created_at)
        self.cache.put(conversation_id, entry)
        return entry
