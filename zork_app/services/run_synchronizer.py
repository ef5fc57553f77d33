# zork_app/services/run_synchronizer.py
# -*- coding: utf-8 -*-
import logging
import time
from dataclasses import dataclass
from typing import Callable, Optional

from .assistant_client import RunState
from ..exceptions import RunExecutionError, RunTimeoutError

logger = logging.getLogger(__name__)

FAILED_RUN_STATUSES = ("failed", "cancelled", "expired", "incomplete")


@dataclass(frozen=True)
class PollPolicy:
    """Exponential backoff for run polling: ``interval`` grows by ``backoff`` up to ``max_interval``."""
    interval: float = 1.0
    max_interval: float = 8.0
    backoff: float = 2.0
    timeout: float = 120.0

    @classmethod
    def from_config(cls, config) -> "PollPolicy":
        return cls(
            interval=config.get("RUN_POLL_INTERVAL_SECONDS", 1.0),
            max_interval=config.get("RUN_POLL_MAX_INTERVAL_SECONDS", 8.0),
            backoff=config.get("RUN_POLL_BACKOFF", 2.0),
            timeout=config.get("RUN_TIMEOUT_SECONDS", 120.0),
        )

    def delays(self):
        delay = self.interval
        while True:
            yield delay
            delay = min(delay * self.backoff, self.max_interval)


class RunSynchronizer:
    """
    Sends one user message to a thread, runs the assistant on it and waits for
    the run to finish.
    """

    def __init__(self, assistant, policy: Optional[PollPolicy] = None,
                 sleep: Callable[[float], None] = time.sleep,
                 clock: Callable[[], float] = time.monotonic):
        self.assistant = assistant
        self.policy = policy or PollPolicy()
        self._sleep = sleep
        self._clock = clock

    def converse(self, thread_id: str, user_message: str, instructions: Optional[str] = None) -> str:
        self.wait_for_thread_free(thread_id)

        self.assistant.add_user_message(thread_id, user_message)
        run = self.assistant.start_run(thread_id, instructions=instructions)
        run = self._wait_for_run(thread_id, run)
        logger.info(f"Run {run.id} completed.", extra={"thread_id": thread_id, "run_id": run.id})

        reply = self.assistant.latest_message(thread_id)
        if reply is None or reply.role != "assistant" or not reply.text:
            raise RunExecutionError(
                f"El run {run.id} terminó sin un mensaje de texto del asistente.",
                run_id=run.id, status=run.status,
            )
        return reply.text

    def wait_for_thread_free(self, thread_id: str) -> None:
        """
        Block until the thread has no run that keeps it closed; the Assistants
        API rejects new messages meanwhile. A run waiting on tool output is
        cancelled (no tools are registered), and so is one still active at the
        deadline.
        """
        run = self.assistant.latest_run(thread_id)
        if run is None or not run.blocks_thread:
            return
        logger.info(f"Thread {thread_id} busy with Run {run.id} ({run.status}); waiting.")
        cancelled = set()

        def released(r: RunState) -> bool:
            if r.status == "requires_action":
                if r.id not in cancelled:
                    cancelled.add(r.id)
                    self._cancel_quietly(thread_id, r.id)
                return False
            return not r.blocks_thread

        self._poll(thread_id, run, until=released)

    def _wait_for_run(self, thread_id: str, run: RunState) -> RunState:
        run = self._poll(thread_id, run, until=lambda r: r.status == "completed" or self._is_failure(r))
        if run.status != "completed":
            reason = run.error_message or f"El run terminó con estado '{run.status}'."
            logger.error(f"Run {run.id} ended with {run.status}: {run.error_code} {run.error_message}",
                         extra={"thread_id": thread_id, "run_id": run.id})
            if run.status == "requires_action":
                # No tools are registered for this assistant; nothing can satisfy the request.
                self._cancel_quietly(thread_id, run.id)
            raise RunExecutionError(reason, run_id=run.id, status=run.status, detail=run.error_code)
        return run

    @staticmethod
    def _is_failure(run: RunState) -> bool:
        return run.status in FAILED_RUN_STATUSES or run.status == "requires_action"

    def _poll(self, thread_id: str, run: RunState, until: Callable[[RunState], bool]) -> RunState:
        deadline = self._clock() + self.policy.timeout
        delays = self.policy.delays()
        while not until(run):
            remaining = deadline - self._clock()
            if remaining <= 0:
                logger.warning(f"Run {run.id} hung; cancelling after {self.policy.timeout}s",
                               extra={"thread_id": thread_id, "run_id": run.id})
                self._cancel_quietly(thread_id, run.id)
                raise RunTimeoutError(
                    f"El run {run.id} no terminó en {self.policy.timeout:g} segundos.", run_id=run.id
                )
            self._sleep(min(next(delays), remaining))
            run = self.assistant.get_run(thread_id, run.id)
            logger.debug(f"Run {run.id} status: {run.status}")
        return run

    def _cancel_quietly(self, thread_id: str, run_id: str) -> None:
        try:
            self.assistant.cancel_run(thread_id, run_id)
        except Exception as e:
            logger.error(f"Could not cancel Run {run_id} on Thread {thread_id}: {e}")
