"""
Unit tests for the job poll state machine.
"""

import asyncio
from itertools import islice

import pytest

from generation_studio.api.adapter import StatusReport
from generation_studio.api.error_handler import StudioAPIError, TransientAPIError
from generation_studio.utils.polling import BackoffPolicy, PollStateMachine, PollStatus


def scripted_poll(*reports):
    """Poll function returning the given reports in order; the last one repeats."""
    queue = list(reports)
    calls = []

    async def poll(workflow_id):
        calls.append(workflow_id)
        report = queue.pop(0) if len(queue) > 1 else queue[0]
        if isinstance(report, Exception):
            raise report
        return report

    poll.calls = calls
    return poll


PROCESSING = StatusReport(status="processing")
DONE = StatusReport(status="completed", result_url="https://cdn/v.mp4")


class TestBackoffPolicy:

    def test_delays_double_up_to_cap(self):
        policy = BackoffPolicy(initial_delay_ms=1000, max_delay_ms=16000)
        assert list(islice(policy.delays(), 7)) == [1000, 2000, 4000, 8000, 16000, 16000, 16000]

    def test_invalid_policy(self):
        with pytest.raises(ValueError):
            BackoffPolicy(initial_delay_ms=2000, max_delay_ms=1000)
        with pytest.raises(ValueError):
            BackoffPolicy(timeout_ms=0)


class TestPollStateMachine:

    def test_completes_after_processing(self, clock):
        poll = scripted_poll(PROCESSING, PROCESSING, PROCESSING, PROCESSING, PROCESSING, DONE)
        machine = PollStateMachine(poll, BackoffPolicy(), clock)

        job = asyncio.run(machine.start("wf-1"))

        assert job.status is PollStatus.COMPLETED
        assert job.result_url == "https://cdn/v.mp4"
        assert job.attempt == 6
        assert clock.sleeps[:5] == [1000, 2000, 4000, 8000, 16000]
        assert poll.calls == ["wf-1"] * 6

    def test_times_out_at_deadline(self, clock):
        poll = scripted_poll(PROCESSING)
        machine = PollStateMachine(poll, BackoffPolicy(timeout_ms=120000), clock)

        job = asyncio.run(machine.start("wf-1"))

        assert job.status is PollStatus.TIMED_OUT
        assert job.workflow_id == "wf-1"
        assert "may still finish" in job.error
        # waits never run past the deadline
        assert sum(clock.sleeps) == 120000
        assert clock.sleeps[-1] == 120000 - sum(clock.sleeps[:-1])

    def test_failed_status(self, clock):
        poll = scripted_poll(PROCESSING, StatusReport(status="failed", error_message="Video generation failed: nsfw"))
        job = asyncio.run(PollStateMachine(poll, BackoffPolicy(), clock).start("wf-2"))
        assert job.status is PollStatus.FAILED
        assert job.error == "Video generation failed: nsfw"

    def test_transient_error_keeps_polling(self, clock):
        poll = scripted_poll(TransientAPIError(503, "down"), DONE)
        job = asyncio.run(PollStateMachine(poll, BackoffPolicy(), clock).start("wf-3"))
        assert job.status is PollStatus.COMPLETED
        assert clock.sleeps == [1000, 2000]

    def test_other_error_fails_job(self, clock):
        poll = scripted_poll(StudioAPIError(404, "Unknown workflow"))
        job = asyncio.run(PollStateMachine(poll, BackoffPolicy(), clock).start("wf-4"))
        assert job.status is PollStatus.FAILED
        assert "Unknown workflow" in job.error

    def test_abandoned_before_waiting(self, clock):
        poll = scripted_poll(PROCESSING)

        job = asyncio.run(PollStateMachine(poll, BackoffPolicy(), clock).start("wf-5", lambda: False))

        assert job.status is PollStatus.PROCESSING
        assert poll.calls == []
        assert clock.sleeps == []

    def test_abandoned_during_wait(self, clock):
        poll = scripted_poll(PROCESSING)
        wanted = {"value": True}
        clock_sleep = clock.sleep

        async def sleep_and_remove(delay_ms):
            await clock_sleep(delay_ms)
            if len(clock.sleeps) == 2:
                wanted["value"] = False

        clock.sleep = sleep_and_remove
        job = asyncio.run(PollStateMachine(poll, BackoffPolicy(), clock).start(
            "wf-5", lambda: wanted["value"]))

        assert job.status is PollStatus.PROCESSING
        assert poll.calls == ["wf-5"]
        assert job.attempt == 1

    def test_resume_reuses_workflow(self, clock):
        poll = scripted_poll(PROCESSING)
        machine = PollStateMachine(poll, BackoffPolicy(timeout_ms=10000), clock)

        async def scenario():
            job = await machine.start("wf-6")
            assert job.status is PollStatus.TIMED_OUT
            calls_before = len(poll.calls)
            poll_later = scripted_poll(DONE)
            machine.poll_status = poll_later
            job = await machine.resume(job)
            return job, calls_before, poll_later.calls

        job, calls_before, resumed_calls = asyncio.run(scenario())
        assert calls_before > 0
        assert job.status is PollStatus.COMPLETED
        assert resumed_calls == ["wf-6"]
        assert job.error is None

    def test_resume_resets_window(self, clock):
        poll = scripted_poll(PROCESSING)
        machine = PollStateMachine(poll, BackoffPolicy(timeout_ms=10000), clock)

        async def scenario():
            job = await machine.start("wf-7")
            clock.sleeps.clear()
            return await machine.resume(job)

        job = asyncio.run(scenario())
        assert job.status is PollStatus.TIMED_OUT
        assert clock.sleeps[0] == 1000
        assert sum(clock.sleeps) == 10000

    def test_resume_only_from_timed_out(self, clock):
        machine = PollStateMachine(scripted_poll(DONE), BackoffPolicy(), clock)
        job = asyncio.run(machine.start("wf-8"))
        with pytest.raises(ValueError):
            asyncio.run(machine.resume(job))

    def test_on_update_called_per_poll(self, clock):
        updates = []
        machine = PollStateMachine(scripted_poll(PROCESSING, DONE), BackoffPolicy(), clock,
                                   on_update=lambda job: updates.append(job.status))
        asyncio.run(machine.start("wf-9"))
        assert updates == [PollStatus.PROCESSING, PollStatus.COMPLETED]
