"""
Batch building and bounded fan-out.

build_tasks turns the user's selection (source items x prompt variants) into
tasks sharing one batch timestamp. BatchCoordinator runs tasks under a
counting semaphore; every task settles on its own and a failure in one never
reaches its siblings.
"""

import asyncio
import logging
from typing import Any, List, Mapping, Optional, Sequence, Union

from ..api.error_handler import PreflightValidationError, describe_error
from ..utils.prompt_builder import compose_prompt
from .models import GenerationResult, GenerationTask, ResultStatus, TaskKind
from .runner import TaskRunner, task_context

logger = logging.getLogger(__name__)

DEFAULT_CONCURRENCY = 5

SourceItem = Union[str, Sequence[str]]


def build_tasks(
    sources: Sequence[SourceItem],
    prompts: Sequence[str],
    batch_timestamp: int,
    kind: TaskKind = TaskKind.IMAGE,
    model_params: Optional[Mapping[str, Any]] = None,
    prepend: str = "",
    append: str = "",
) -> List[GenerationTask]:
    """
    Build the cross product of sources and prompt variants.

    Args:
        sources: One entry per source item; a string or a sequence of input refs
        prompts: Prompt variants, applied to every source
        batch_timestamp: Shared stamp of this batch (ms)
        kind: Image or video tasks
        model_params: Provider parameters copied onto every task
        prepend: Text placed before every prompt
        append: Text placed after every prompt

    Raises:
        PreflightValidationError: no sources, no prompts or a blank prompt
    """
    if not sources:
        raise PreflightValidationError("Please upload at least one image.")
    if not prompts:
        raise PreflightValidationError("Please provide at least one prompt.")
    if any(not prompt or not prompt.strip() for prompt in prompts):
        raise PreflightValidationError("Please fill all prompts.")

    source_refs = []
    for index, source in enumerate(sources):
        refs = (source,) if isinstance(source, str) else tuple(source)
        if not refs or any(not ref for ref in refs):
            raise PreflightValidationError(f"Source {index + 1} has no input file.")
        source_refs.append(refs)

    params = dict(model_params or {})
    return [
        GenerationTask(
            source_index=source_index,
            variant_index=variant_index,
            batch_timestamp=batch_timestamp,
            input_refs=refs,
            prompt_text=compose_prompt(prompt, prepend, append),
            kind=kind,
            model_params=dict(params),
        )
        for source_index, refs in enumerate(source_refs)
        for variant_index, prompt in enumerate(prompts)
    ]


class BatchCoordinator:
    """Fans tasks out to the runner, at most `concurrency_limit` at a time."""

    def __init__(self, runner: TaskRunner, concurrency_limit: int = DEFAULT_CONCURRENCY):
        if concurrency_limit < 1:
            raise ValueError("concurrency_limit must be at least 1")
        self.runner = runner
        self.concurrency_limit = concurrency_limit
        self._semaphore: Optional[asyncio.Semaphore] = None
        self._semaphore_loop = None
        self.in_flight = 0

    def _limiter(self) -> asyncio.Semaphore:
        loop = asyncio.get_running_loop()
        if self._semaphore is None or self._semaphore_loop is not loop:
            self._semaphore = asyncio.Semaphore(self.concurrency_limit)
            self._semaphore_loop = loop
        return self._semaphore

    async def dispatch(self, tasks: Sequence[GenerationTask]) -> List[Optional[GenerationResult]]:
        """Write a pending placeholder for every task, then run them all."""
        for task in tasks:
            self.runner.store.upsert(GenerationResult.pending(task))
        logger.info(f"Enqueued {len(tasks)} task(s)")
        return await self.run(tasks)

    async def run(self, tasks: Sequence[GenerationTask]) -> List[Optional[GenerationResult]]:
        """Run tasks whose entries are already pending; results come back in task order."""
        if not tasks:
            return []
        return list(await asyncio.gather(*(self._run_one(task) for task in tasks)))

    async def _run_one(self, task: GenerationTask) -> Optional[GenerationResult]:
        async with self._limiter():
            self.in_flight += 1
            try:
                return await self.runner.run(task)
            except Exception as e:
                logger.exception(f"Task {task.key} crashed outside the runner's error handling")
                return self._settle_crash(task, e)
            finally:
                self.in_flight -= 1

    def _settle_crash(self, task: GenerationTask, error: Exception) -> Optional[GenerationResult]:
        """Turn a crashed task's pending entry into a retryable error."""
        store = self.runner.store
        if not store.is_stale(task.key):
            current = store.get(task.key)
            if current is None or current.status is not ResultStatus.PENDING:
                return None
        result = GenerationResult.failure(task, describe_error(error, task_context(task)))
        return result if store.upsert(result) else None
