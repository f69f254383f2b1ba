"""
Result store: the single piece of mutable state shared by all tasks.

Entries are kept in insertion order and keyed by ResultKey. Every mutation
goes through upsert / remove / replace_for_retry / clear, runs under one lock
and notifies listeners before the lock is released, so a listener always sees
each mutation exactly once.
"""

import logging
import threading
from collections import OrderedDict
from typing import Callable, Iterable, List, Optional, Set

from ..api.error_handler import InvalidTransitionError
from .models import GenerationResult, ResultKey, ResultStatus

logger = logging.getLogger(__name__)

Listener = Callable[["ResultStore"], None]


class ResultStore:
    """Ordered mapping of ResultKey -> GenerationResult with stale-key tracking."""

    def __init__(self):
        self._results: "OrderedDict[ResultKey, GenerationResult]" = OrderedDict()
        self._stale: Set[ResultKey] = set()
        self._listeners: List[Listener] = []
        self._lock = threading.RLock()

    # -- observation ----------------------------------------------------------

    def subscribe(self, listener: Listener) -> None:
        with self._lock:
            self._listeners.append(listener)
            listener(self)

    def _notify(self) -> None:
        for listener in self._listeners:
            try:
                listener(self)
            except Exception as e:
                logger.error(f"Error in result store listener: {e}")

    # -- reads ----------------------------------------------------------------

    def get(self, key: ResultKey) -> Optional[GenerationResult]:
        with self._lock:
            return self._results.get(key)

    def snapshot(self) -> List[GenerationResult]:
        with self._lock:
            return list(self._results.values())

    def keys_with_status(self, *statuses: ResultStatus) -> List[ResultKey]:
        with self._lock:
            return [key for key, result in self._results.items() if result.status in statuses]

    def is_stale(self, key: ResultKey) -> bool:
        with self._lock:
            return key in self._stale

    def __contains__(self, key: ResultKey) -> bool:
        with self._lock:
            return key in self._results

    def __len__(self) -> int:
        with self._lock:
            return len(self._results)

    # -- mutations ------------------------------------------------------------

    def upsert(self, result: GenerationResult) -> bool:
        """
        Insert or overwrite the entry for result.key.

        Returns:
            False when the key is stale and the write was discarded

        Raises:
            InvalidTransitionError: the status change is not allowed
        """
        with self._lock:
            if result.key in self._stale:
                # a key has at most one outstanding settlement
                self._stale.discard(result.key)
                logger.debug(f"Dropping settlement for removed key {result.key}")
                return False

            current = self._results.get(result.key)
            if current is None:
                if result.status is not ResultStatus.PENDING:
                    raise InvalidTransitionError(f"{result.key}: first write must be pending, got {result.status.value}")
            elif current.status is ResultStatus.PENDING:
                if result.status is ResultStatus.PENDING:
                    raise InvalidTransitionError(f"{result.key}: already pending")
            elif not (current.status.is_retryable and result.status is ResultStatus.PENDING):
                raise InvalidTransitionError(
                    f"{result.key}: cannot move from {current.status.value} to {result.status.value}"
                )

            self._results[result.key] = result
            self._notify()
            return True

    def remove(self, key: ResultKey) -> Optional[GenerationResult]:
        """Delete an entry; a pending entry's key becomes stale."""
        with self._lock:
            removed = self._results.pop(key, None)
            if removed is None:
                return None
            if removed.status is ResultStatus.PENDING:
                self._stale.add(key)
            self._notify()
            return removed

    def replace_for_retry(
        self,
        keys: Iterable[ResultKey],
        pending_factory: Callable[[GenerationResult], GenerationResult] = GenerationResult.as_pending,
    ) -> List[GenerationResult]:
        """
        Reset retryable entries to pending in one mutation.

        Keys that are missing or not in a retryable state are skipped.

        Returns:
            The terminal entries that were replaced
        """
        with self._lock:
            replaced = []
            for key in keys:
                current = self._results.get(key)
                if current is None or not current.status.is_retryable:
                    logger.warning(f"Skipping retry of {key}: not in a retryable state")
                    continue
                pending = pending_factory(current)
                if pending.key != key or pending.status is not ResultStatus.PENDING:
                    raise InvalidTransitionError(f"{key}: retry factory must return a pending entry for the same key")
                self._results[key] = pending
                replaced.append(current)
            if replaced:
                self._notify()
            return replaced

    def clear(self) -> None:
        """Drop everything; in-flight settlements for pending keys are discarded."""
        with self._lock:
            self._stale.update(key for key, result in self._results.items()
                               if result.status is ResultStatus.PENDING)
            self._results.clear()
            self._notify()
