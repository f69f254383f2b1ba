"""
Batch orchestrator: the surface the UI and exporter talk to.

Owns the result store, progress tracker, task registry, runner, coordinator
and retry coordinator of one gallery session.
"""

import logging
import time
from typing import Any, Dict, List, Mapping, Optional, Sequence, Tuple

from ..api.client import GenerationAPI
from ..api.gateway import ProviderGateway
from ..utils.config import StudioConfig
from ..utils.export import build_manifest
from ..utils.polling import BackoffPolicy, PollStateMachine
from .batch import BatchCoordinator, DEFAULT_CONCURRENCY, SourceItem, build_tasks
from .models import BatchProgress, GenerationResult, GenerationTask, ResultKey, TaskKind
from .progress import ProgressTracker
from .retry import RetryCoordinator
from .runner import TaskRunner
from .store import ResultStore

logger = logging.getLogger(__name__)


class BatchOrchestrator:
    """
    Turns "Generate" into independent tasks and tracks them to completion.

    Commands: build_batch / generate, retry_one, retry_all, remove, clear_all.
    Reads: generation_results, progress, export_manifest.
    """

    def __init__(self, gateway, concurrency_limit: int = DEFAULT_CONCURRENCY,
                 poll_policy: Optional[BackoffPolicy] = None, clock=None):
        """
        Args:
            gateway: Async provider gateway (prepare / generate / submit / poll_status)
            concurrency_limit: Maximum tasks running at once
            poll_policy: Backoff schedule for video polling
            clock: Clock for the poll state machine (tests inject a fake)
        """
        self.store = ResultStore()
        self.tracker = ProgressTracker(self.store)
        self._tasks: Dict[ResultKey, GenerationTask] = {}
        self._last_timestamp = 0

        poller = PollStateMachine(gateway.poll_status, poll_policy, clock)
        self.runner = TaskRunner(gateway, self.store, poller)
        self.coordinator = BatchCoordinator(self.runner, concurrency_limit)
        self.retries = RetryCoordinator(self.store, self.coordinator, self._tasks)

    @classmethod
    def from_config(cls, config: StudioConfig) -> "BatchOrchestrator":
        api = GenerationAPI(config.api_token, config.base_url, config.endpoints, config.request_timeout)
        gateway = ProviderGateway(api, config.model, config.retry_config(), config.requires_public_url)
        return cls(gateway, config.concurrency_limit, config.backoff_policy())

    # -- reads ----------------------------------------------------------------

    @property
    def generation_results(self) -> List[GenerationResult]:
        return self.store.snapshot()

    @property
    def progress(self) -> BatchProgress:
        return self.tracker.progress

    def task_for(self, key: ResultKey) -> Optional[GenerationTask]:
        return self._tasks.get(key)

    # -- commands -------------------------------------------------------------

    def next_batch_timestamp(self) -> int:
        """Milliseconds since the epoch, strictly increasing within the session."""
        stamp = max(time.time_ns() // 1_000_000, self._last_timestamp + 1)
        self._last_timestamp = stamp
        return stamp

    def build_batch(self, sources: Sequence[SourceItem], prompts: Sequence[str],
                    kind: TaskKind = TaskKind.IMAGE, model_params: Optional[Mapping[str, Any]] = None,
                    prepend: str = "", append: str = "") -> List[GenerationTask]:
        """Validate the selection and create one batch of tasks (nothing runs yet)."""
        return build_tasks(sources, prompts, self.next_batch_timestamp(), kind,
                           model_params, prepend, append)

    async def generate(self, tasks: Sequence[GenerationTask]) -> List[Optional[GenerationResult]]:
        """
        Show pending placeholders for every task, then run them.

        Placeholders are written before the first suspension point, so callers
        scheduling this coroutine see them as soon as it starts.
        """
        keys = [task.key for task in tasks]
        if len(set(keys)) != len(keys):
            raise ValueError("Batch contains duplicate keys")
        clashes = [key for key in keys if key in self._tasks or self.store.is_stale(key)]
        if clashes:
            raise ValueError(f"Keys already used in this session: {clashes[:3]}")

        for task in tasks:
            self._tasks[task.key] = task
        if tasks:
            logger.info(f"Generating batch {tasks[0].batch_timestamp} with {len(tasks)} task(s)")
        return await self.coordinator.dispatch(tasks)

    async def retry_one(self, key: ResultKey) -> Optional[GenerationResult]:
        return await self.retries.retry_one(key)

    async def retry_all(self) -> List[Optional[GenerationResult]]:
        return await self.retries.retry_all()

    def remove(self, key: ResultKey) -> Optional[GenerationResult]:
        """Drop one entry. Must run on the loop thread that runs the batch."""
        removed = self.store.remove(key)
        if removed is not None:
            self._tasks.pop(key, None)
            self.runner.poll_jobs.pop(key, None)
            logger.info(f"Removed {key} ({removed.status.value})")
        return removed

    def clear_all(self) -> None:
        """Clear the gallery; in-flight work for pending keys is ignored when it lands.

        Must run on the loop thread that runs the batch; see BackgroundLoop.call.
        """
        self.store.clear()
        self._tasks.clear()
        self.runner.poll_jobs.clear()
        logger.info("Gallery cleared")

    def export_manifest(self, source_names: Sequence[str], template: str,
                        set_id: str = "", short_ids: Optional[Sequence[str]] = None) -> List[Tuple[str, str]]:
        """(filename, url) pairs of successful results for an external exporter."""
        return build_manifest(self.store.snapshot(), template, source_names, set_id, short_ids)
