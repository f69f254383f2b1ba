"""
Job status polling with exponential backoff.

A submitted provider job is polled until it completes, fails, or its absolute
deadline passes. The deadline is independent of the backoff schedule. A timed
out job keeps its workflow id, so `resume()` continues polling the same job
instead of submitting a new one.
"""

import asyncio
import logging
import time
from dataclasses import dataclass
from enum import Enum
from typing import Awaitable, Callable, Optional

from ..api.adapter import StatusReport
from ..api.error_handler import TransientAPIError, RateLimitError, describe_error

logger = logging.getLogger(__name__)

# Job polling configuration
INITIAL_DELAY_MS = 1000
MAX_DELAY_MS = 16000
DEFAULT_TIMEOUT_MS = 120000


class PollStatus(str, Enum):
    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"
    TIMED_OUT = "timed_out"

    @property
    def is_terminal(self) -> bool:
        return self in (PollStatus.COMPLETED, PollStatus.FAILED, PollStatus.TIMED_OUT)


@dataclass
class PollJob:
    """Resumable handle on an asynchronous provider job."""
    workflow_id: str
    deadline_at: float  # clock ms, fixed when the polling window opens
    next_delay_ms: int
    attempt: int = 0
    status: PollStatus = PollStatus.PENDING
    result_url: Optional[str] = None
    error: Optional[str] = None


@dataclass(frozen=True)
class BackoffPolicy:
    """Doubling delay schedule with a cap, plus an absolute deadline."""
    initial_delay_ms: int = INITIAL_DELAY_MS
    max_delay_ms: int = MAX_DELAY_MS
    timeout_ms: int = DEFAULT_TIMEOUT_MS
    factor: int = 2

    def __post_init__(self):
        if self.initial_delay_ms <= 0 or self.timeout_ms <= 0:
            raise ValueError("Poll delays and timeout must be positive")
        if self.max_delay_ms < self.initial_delay_ms:
            raise ValueError("max_delay_ms must be >= initial_delay_ms")
        if self.factor < 1:
            raise ValueError("factor must be >= 1")

    def next_delay(self, delay_ms: int) -> int:
        return min(delay_ms * self.factor, self.max_delay_ms)

    def delays(self):
        """Infinite generator of the delay sequence."""
        delay = self.initial_delay_ms
        while True:
            yield delay
            delay = self.next_delay(delay)


class AsyncioClock:
    """Monotonic milliseconds and event-loop sleeps."""

    def now(self) -> float:
        return time.monotonic() * 1000

    async def sleep(self, delay_ms: float) -> None:
        await asyncio.sleep(delay_ms / 1000)


PollFunc = Callable[[str], Awaitable[StatusReport]]


class PollStateMachine:
    """
    Drives PollJob instances: pending -> processing -> completed | failed | timed_out.

    Transient transport errors while polling count as "still processing";
    any other error fails the job.
    """

    def __init__(self, poll_status: PollFunc, policy: Optional[BackoffPolicy] = None,
                 clock=None, on_update: Optional[Callable[[PollJob], None]] = None):
        """
        Args:
            poll_status: Coroutine function workflow_id -> StatusReport
            policy: Backoff schedule and deadline
            clock: Object with now() (ms) and async sleep(ms); AsyncioClock by default
            on_update: Callback after every poll with the job
        """
        self.poll_status = poll_status
        self.policy = policy or BackoffPolicy()
        self.clock = clock or AsyncioClock()
        self.on_update = on_update

    def new_job(self, workflow_id: str) -> PollJob:
        """Create a job for a freshly submitted workflow; the deadline starts now."""
        return PollJob(
            workflow_id=workflow_id,
            deadline_at=self.clock.now() + self.policy.timeout_ms,
            next_delay_ms=self.policy.initial_delay_ms,
        )

    async def start(self, workflow_id: str,
                    should_continue: Optional[Callable[[], bool]] = None) -> PollJob:
        return await self.run(self.new_job(workflow_id), should_continue)

    async def resume(self, job: PollJob,
                     should_continue: Optional[Callable[[], bool]] = None) -> PollJob:
        """
        Poll an existing job again after a timeout.

        The workflow id is reused; a new polling window with a fresh schedule
        and deadline is opened.
        """
        if job.status is not PollStatus.TIMED_OUT:
            raise ValueError(f"Only timed-out jobs can be resumed (job is {job.status.value})")
        logger.info(f"Resuming poll for workflow {job.workflow_id}")
        job.status = PollStatus.PENDING
        job.error = None
        job.deadline_at = self.clock.now() + self.policy.timeout_ms
        job.next_delay_ms = self.policy.initial_delay_ms
        return await self.run(job, should_continue)

    @staticmethod
    def _wanted(job: PollJob, should_continue: Optional[Callable[[], bool]]) -> bool:
        if should_continue is None or should_continue():
            return True
        logger.info(f"Abandoning poll for workflow {job.workflow_id}")
        return False

    async def run(self, job: PollJob,
                  should_continue: Optional[Callable[[], bool]] = None) -> PollJob:
        """
        Poll until the job reaches a terminal status.

        should_continue is checked before and after every wait; returning False abandons
        the job (status stays processing) without touching the provider again.
        """
        job.status = PollStatus.PROCESSING

        while True:
            now = self.clock.now()
            if now >= job.deadline_at:
                job.status = PollStatus.TIMED_OUT
                job.error = (f"Video generation timed out after "
                             f"{self.policy.timeout_ms / 1000:.0f}s; the job may still finish")
                logger.warning(f"Poll timeout for workflow {job.workflow_id} after {job.attempt} attempts")
                return job

            if not self._wanted(job, should_continue):
                return job

            await self.clock.sleep(min(job.next_delay_ms, job.deadline_at - now))
            if not self._wanted(job, should_continue):
                return job
            job.attempt += 1

            try:
                report = await self.poll_status(job.workflow_id)
            except (TransientAPIError, RateLimitError) as e:
                logger.warning(f"Polling attempt {job.attempt} for {job.workflow_id} hit a transient error: {e}")
                report = StatusReport(status="processing")
            except Exception as e:
                logger.error(f"Polling {job.workflow_id} failed: {e}")
                report = StatusReport(status="failed", error_message=describe_error(e))

            logger.debug(f"Workflow {job.workflow_id} attempt {job.attempt}: {report.status}")

            if report.status == "completed":
                job.status = PollStatus.COMPLETED
                job.result_url = report.result_url
            elif report.status == "failed":
                job.status = PollStatus.FAILED
                job.error = report.error_message or "Video generation failed"
            else:
                job.next_delay_ms = self.policy.next_delay(job.next_delay_ms)

            if self.on_update:
                try:
                    self.on_update(job)
                except Exception as e:
                    logger.error(f"Error in on_update callback: {e}")

            if job.status.is_terminal:
                logger.info(f"Workflow {job.workflow_id} reached terminal state: {job.status.value}")
                return job
