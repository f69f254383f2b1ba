"""Re-running failed tasks under their original keys."""

import logging
from typing import List, Mapping, Optional

from .batch import BatchCoordinator
from .models import GenerationResult, GenerationTask, ResultKey, ResultStatus
from .store import ResultStore

logger = logging.getLogger(__name__)


class RetryCoordinator:
    """
    Resets retryable entries to pending and resubmits their tasks.

    Successful and pending entries are never touched. A timed-out video task
    resumes polling its existing workflow (handled by the runner).
    """

    def __init__(self, store: ResultStore, coordinator: BatchCoordinator,
                 tasks: Mapping[ResultKey, GenerationTask]):
        self.store = store
        self.coordinator = coordinator
        self.tasks = tasks

    async def retry_one(self, key: ResultKey) -> Optional[GenerationResult]:
        task = self.tasks.get(key)
        if task is None:
            logger.warning(f"No task recorded for {key}; nothing to retry")
            return None
        if not self.store.replace_for_retry([key]):
            return None
        logger.info(f"Retrying {key}")
        results = await self.coordinator.run([task])
        return results[0]

    async def retry_all(self) -> List[Optional[GenerationResult]]:
        keys = self.store.keys_with_status(ResultStatus.ERROR, ResultStatus.WARNING, ResultStatus.TIMED_OUT)
        keys = [key for key in keys if key in self.tasks]
        replaced = self.store.replace_for_retry(keys)
        if not replaced:
            return []
        logger.info(f"Retrying {len(replaced)} failed task(s)")
        return await self.coordinator.run([self.tasks[result.key] for result in replaced])
