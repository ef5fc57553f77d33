import pytest

from fakes import FakeAssistantClient
from zork_app.exceptions import RunExecutionError, RunTimeoutError, UpstreamError
from zork_app.services.assistant_client import RunState, ThreadMessage
from zork_app.services.run_synchronizer import PollPolicy, RunSynchronizer


class FakeClock:
    """Monotonic clock that only moves when the synchronizer sleeps."""

    def __init__(self):
        self.now = 0.0
        self.sleeps = []

    def sleep(self, seconds):
        self.sleeps.append(seconds)
        self.now += seconds

    def __call__(self):
        return self.now


def make_synchronizer(assistant, policy=None):
    clock = FakeClock()
    synchronizer = RunSynchronizer(
        assistant, policy=policy or PollPolicy(interval=1, max_interval=8, backoff=2, timeout=60),
        sleep=clock.sleep, clock=clock,
    )
    return synchronizer, clock


def test_queued_in_progress_completed_returns_newest_message_text():
    assistant = FakeAssistantClient(run_script=["in_progress", "completed"], reply_factory=lambda t: "Estás en Palermo.")
    thread_id = assistant.create_thread()
    synchronizer, clock = make_synchronizer(assistant)

    reply = synchronizer.converse(thread_id, "mirar alrededor")

    assert reply == "Estás en Palermo."
    assert [m.role for m in assistant.threads[thread_id]] == ["user", "assistant"]
    assert len(assistant.get_run_calls) == 2


def test_failed_run_raises_and_stops_polling():
    assistant = FakeAssistantClient(run_script=["in_progress", "failed", "completed"])
    thread_id = assistant.create_thread()
    synchronizer, _ = make_synchronizer(assistant)

    with pytest.raises(RunExecutionError) as excinfo:
        synchronizer.converse(thread_id, "abrir la puerta")

    assert excinfo.value.status == "failed"
    assert "model side" in excinfo.value.message
    assert len(assistant.get_run_calls) == 2


@pytest.mark.parametrize("status", ["cancelled", "expired", "incomplete"])
def test_other_terminal_failures_raise(status):
    assistant = FakeAssistantClient(run_script=[status])
    thread_id = assistant.create_thread()
    synchronizer, _ = make_synchronizer(assistant)

    with pytest.raises(RunExecutionError) as excinfo:
        synchronizer.converse(thread_id, "ir al norte")
    assert excinfo.value.status == status


def test_requires_action_cancels_run():
    assistant = FakeAssistantClient(run_script=["requires_action"])
    thread_id = assistant.create_thread()
    synchronizer, _ = make_synchronizer(assistant)

    with pytest.raises(RunExecutionError):
        synchronizer.converse(thread_id, "usar herramienta")
    assert len(assistant.cancelled_runs) == 1


def test_poll_interval_backs_off_exponentially_up_to_the_cap():
    assistant = FakeAssistantClient(run_script=["queued"] + ["in_progress"] * 5 + ["completed"])
    thread_id = assistant.create_thread()
    synchronizer, clock = make_synchronizer(assistant)

    synchronizer.converse(thread_id, "esperar")

    assert clock.sleeps == [1, 2, 4, 8, 8, 8, 8]


def test_run_past_deadline_is_cancelled_and_times_out():
    assistant = FakeAssistantClient(run_script=["in_progress"])
    thread_id = assistant.create_thread()
    synchronizer, clock = make_synchronizer(assistant, PollPolicy(interval=1, max_interval=8, backoff=2, timeout=5))

    with pytest.raises(RunTimeoutError) as excinfo:
        synchronizer.converse(thread_id, "dormir")

    assert clock.sleeps == [1, 2, 2]
    assert assistant.cancelled_runs == [excinfo.value.run_id]
    assert excinfo.value.status_code == 408


def test_waits_for_active_run_before_adding_message():
    assistant = FakeAssistantClient()
    thread_id = assistant.create_thread()
    assistant.runs["run_previous"] = {"thread_id": thread_id, "statuses": ["in_progress", "completed"], "replied": True}
    assistant.active_run = RunState(id="run_previous", status="in_progress")
    synchronizer, clock = make_synchronizer(assistant)

    synchronizer.converse(thread_id, "mirar")

    assert assistant.get_run_calls[:2] == ["run_previous", "run_previous"]


def test_completed_run_without_assistant_text_is_an_error():
    assistant = FakeAssistantClient(run_script=["completed"])
    thread_id = assistant.create_thread()
    synchronizer, _ = make_synchronizer(assistant)
    assistant.latest_message = lambda tid: ThreadMessage(id="m", role="user", text="hola")

    with pytest.raises(RunExecutionError):
        synchronizer.converse(thread_id, "hola")


def test_failed_cancel_does_not_mask_requires_action_failure():
    assistant = FakeAssistantClient(run_script=["requires_action"])
    thread_id = assistant.create_thread()
    synchronizer, _ = make_synchronizer(assistant)

    def cancel_fails(tid, run_id):
        raise UpstreamError("cancel rejected")

    assistant.cancel_run = cancel_fails

    with pytest.raises(RunExecutionError) as excinfo:
        synchronizer.converse(thread_id, "usar herramienta")
    assert excinfo.value.status == "requires_action"


def test_leftover_requires_action_run_is_cancelled_before_adding_message():
    assistant = FakeAssistantClient()
    thread_id = assistant.create_thread()
    assistant.runs["run_stuck"] = {"thread_id": thread_id, "statuses": ["cancelling", "cancelled"], "replied": True}
    assistant.active_run = RunState(id="run_stuck", status="requires_action")
    synchronizer, _ = make_synchronizer(assistant)

    reply = synchronizer.converse(thread_id, "mirar")

    assert assistant.cancelled_runs == ["run_stuck"]
    assert assistant.get_run_calls[:2] == ["run_stuck", "run_stuck"]
    assert "Eco: mirar" in reply
