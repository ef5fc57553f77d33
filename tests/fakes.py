# /tests/fakes.py
"""In-memory stand-ins for the OpenAI Assistants API and the conversation store."""
import itertools
import json
import threading
import time
from typing import Dict, List, Optional
from unittest.mock import MagicMock

from zork_app.config import Config
from zork_app.models.conversation import ConversationRecord, utcnow
from zork_app.services.assistant_client import RunState, ThreadMessage


class TestConfig(Config):
    """Explicit settings for the test run, independent of any .env file."""
    __test__ = False

    TESTING = True
    DEBUG = False
    FLASK_ENV = 'testing'
    SQLALCHEMY_DATABASE_URI = 'sqlite:///:memory:'
    DATABASE_URL = SQLALCHEMY_DATABASE_URI
    SQLALCHEMY_ECHO = False
    AUTO_CREATE_TABLES = True
    OPENAI_API_KEY = 'sk-test'
    OPENAI_ASSISTANT_ID = 'asst_test'
    REPLY_FORMAT = 'json'
    LOCK_BACKEND = 'local'
    RATE_LIMIT_ENABLED = False
    RUN_POLL_INTERVAL_SECONDS = 0.001
    RUN_POLL_MAX_INTERVAL_SECONDS = 0.002
    RUN_TIMEOUT_SECONDS = 5.0
    THREAD_CACHE_MAX_ENTRIES = 100
    NEW_GAME_PHRASES = []


def echo_reply(user_text: str) -> str:
    return json.dumps({"narrative": f"Eco: {user_text}", "location": "Obelisco"}, ensure_ascii=False)


class FakeAssistantClient:
    """
    Behaves like ``AssistantClient``. Every run walks through ``run_script``
    (one status per ``get_run`` call, the last one repeats); when it reaches
    ``completed`` the reply from ``reply_factory`` is appended to the thread.
    """

    def __init__(self, run_script=("in_progress", "completed"), reply_factory=echo_reply,
                 create_delay: float = 0.0):
        self.run_script = list(run_script)
        self.reply_factory = reply_factory
        self.create_delay = create_delay
        self.failure_message = "Something went wrong on the model side."
        self.threads: Dict[str, List[ThreadMessage]] = {}
        self.runs: Dict[str, dict] = {}
        self.created_threads: List[str] = []
        self.get_run_calls: List[str] = []
        self.cancelled_runs: List[str] = []
        self.active_run: Optional[RunState] = None
        self.errors: Dict[str, Exception] = {}
        self.client = MagicMock()
        self._ids = itertools.count(1)
        self._clock = itertools.count(1_700_000_000)
        self._lock = threading.Lock()

    def _maybe_fail(self, operation: str) -> None:
        if operation in self.errors:
            raise self.errors[operation]

    def create_thread(self) -> str:
        self._maybe_fail("create_thread")
        if self.create_delay:
            time.sleep(self.create_delay)
        with self._lock:
            thread_id = f"thread_{next(self._ids)}"
            self.threads[thread_id] = []
            self.created_threads.append(thread_id)
        return thread_id

    def add_user_message(self, thread_id: str, text: str) -> str:
        self._maybe_fail("add_user_message")
        message = ThreadMessage(id=f"msg_{next(self._ids)}", role="user", text=text, created_at=next(self._clock))
        self.threads[thread_id].append(message)
        return message.id

    def start_run(self, thread_id: str, instructions: Optional[str] = None) -> RunState:
        self._maybe_fail("start_run")
        run_id = f"run_{next(self._ids)}"
        self.runs[run_id] = {"thread_id": thread_id, "statuses": list(self.run_script), "replied": False}
        return RunState(id=run_id, status="queued")

    def get_run(self, thread_id: str, run_id: str) -> RunState:
        self._maybe_fail("get_run")
        self.get_run_calls.append(run_id)
        run = self.runs[run_id]
        statuses = run["statuses"]
        status = statuses.pop(0) if len(statuses) > 1 else statuses[0]
        if status == "completed" and not run["replied"]:
            run["replied"] = True
            last_user = [m for m in self.threads[thread_id] if m.role == "user"][-1]
            self.threads[thread_id].append(ThreadMessage(
                id=f"msg_{next(self._ids)}", role="assistant",
                text=self.reply_factory(last_user.text), created_at=next(self._clock),
            ))
        if status == "failed":
            return RunState(id=run_id, status=status, error_code="server_error", error_message=self.failure_message)
        return RunState(id=run_id, status=status)

    def cancel_run(self, thread_id: str, run_id: str) -> RunState:
        self.cancelled_runs.append(run_id)
        return RunState(id=run_id, status="cancelling")

    def latest_run(self, thread_id: str) -> Optional[RunState]:
        return self.active_run

    def list_messages(self, thread_id: str, order: str = "asc", limit: Optional[int] = None) -> List[ThreadMessage]:
        self._maybe_fail("list_messages")
        messages = list(self.threads.get(thread_id, []))
        if order == "desc":
            messages.reverse()
        return messages[:limit] if limit is not None else messages

    def latest_message(self, thread_id: str) -> Optional[ThreadMessage]:
        messages = self.list_messages(thread_id, order="desc", limit=1)
        return messages[0] if messages else None

    def list_models(self, name_filter: str = "gpt"):
        return [{"id": "gpt-4o-mini", "owned_by": "system", "created": 1721172741}]


class InMemoryStore:
    """Dictionary-backed replacement for ``ConversationStore``."""

    def __init__(self):
        self.rows: Dict[str, ConversationRecord] = {}
        self.saves: List[tuple] = []
        self.gets = 0
        self._lock = threading.Lock()

    def get(self, conversation_id: str) -> Optional[ConversationRecord]:
        self.gets += 1
        return self.rows.get(conversation_id)

    def save(self, conversation_id: str, thread_id: str) -> ConversationRecord:
        with self._lock:
            self.saves.append((conversation_id, thread_id))
            previous = self.rows.get(conversation_id)
            now = utcnow()
            record = ConversationRecord(conversation_id, thread_id,
                                        previous.created_at if previous else now, now)
            self.rows[conversation_id] = record
        return record

    def delete(self, conversation_id: str) -> int:
        return 1 if self.rows.pop(conversation_id, None) else 0

    def list_all(self) -> List[ConversationRecord]:
        return sorted(self.rows.values(), key=lambda r: r.created_at, reverse=True)


class CountingRedis:
    """Just enough of a Redis client for the fixed-window rate limiter: per-key INCR counters."""

    def __init__(self):
        self.counts: Dict[str, int] = {}

    def pipeline(self):
        return _CountingPipeline(self)


class _CountingPipeline:
    def __init__(self, redis_client: CountingRedis):
        self.redis = redis_client
        self.key = None

    def incr(self, key):
        self.key = key

    def expire(self, key, seconds):
        pass

    def execute(self):
        self.redis.counts[self.key] = self.redis.counts.get(self.key, 0) + 1
        return [self.redis.counts[self.key], True]
