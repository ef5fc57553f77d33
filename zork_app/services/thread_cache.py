# zork_app/services/thread_cache.py
import datetime
import logging
import threading
from collections import OrderedDict
from dataclasses import dataclass
from typing import Optional

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CacheEntry:
    thread_id: str
    created_at: Optional[datetime.datetime]


class ThreadCache:
    """
    In-memory view of the conversation -> thread mapping.

    The cache is lossy: it starts empty after a restart and is refilled from the
    store on demand. When ``max_entries`` is positive the least recently used
    conversation is evicted once the limit is reached; 0 means unbounded.
    """

    def __init__(self, max_entries: int = 0):
        self.max_entries = max(0, int(max_entries or 0))
        self._entries: "OrderedDict[str, CacheEntry]" = OrderedDict()
        self._lock = threading.Lock()

    def get(self, conversation_id: str) -> Optional[CacheEntry]:
        with self._lock:
            entry = self._entries.get(conversation_id)
            if entry is not None:
                self._entries.move_to_end(conversation_id)
            return entry

    def put(self, conversation_id: str, entry: CacheEntry) -> None:
        with self._lock:
            self._entries[conversation_id] = entry
            self._entries.move_to_end(conversation_id)
            if self.max_entries and len(self._entries) > self.max_entries:
                evicted, _ = self._entries.popitem(last=False)
                logger.debug(f"Thread cache full ({self.max_entries}); evicted conversation {evicted}.")

    def discard(self, conversation_id: str) -> bool:
        with self._lock:
            removed = self._entries.pop(conversation_id, None) is not None
        if removed:
            logger.info(f"Removed cached thread for conversation {conversation_id}.")
        return removed

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()

    def __contains__(self, conversation_id: str) -> bool:
        with self._lock:
            return conversation_id in self._entries

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)
