"""Progress derived from result store state."""

import logging
from typing import Callable, List

from .models import BatchProgress
from .store import ResultStore

logger = logging.getLogger(__name__)


class ProgressTracker:
    """
    Recomputes {completed, total} after every store mutation.

    total counts the entries still expected in the gallery (removed entries no
    longer count); completed counts the terminal ones among them.
    """

    def __init__(self, store: ResultStore):
        self._progress = BatchProgress()
        self._callbacks: List[Callable[[BatchProgress], None]] = []
        store.subscribe(self._recompute)

    @property
    def progress(self) -> BatchProgress:
        return self._progress

    def on_change(self, callback: Callable[[BatchProgress], None]) -> None:
        self._callbacks.append(callback)

    def _recompute(self, store: ResultStore) -> None:
        results = store.snapshot()
        progress = BatchProgress(
            completed=sum(1 for result in results if result.status.is_terminal),
            total=len(results),
        )
        if progress == self._progress:
            return
        self._progress = progress
        logger.debug(f"Progress {progress.completed}/{progress.total}")
        for callback in self._callbacks:
            callback(progress)
