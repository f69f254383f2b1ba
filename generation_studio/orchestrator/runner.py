"""
Executes one GenerationTask end to end and writes its result.

Image tasks make a single generate call whose response is classified as
success (asset URL), warning (the model explained instead of producing an
asset) or error (anything raised). Video tasks submit a job and hand its
workflow id to the poll state machine; a timed-out video task is resumed on
the same workflow when it runs again.
"""

import logging
from typing import Dict, Optional

from ..api.error_handler import describe_error
from ..utils.polling import PollJob, PollStateMachine, PollStatus
from .models import GenerationResult, GenerationTask, ResultKey, TaskKind
from .store import ResultStore

logger = logging.getLogger(__name__)


def task_context(task: GenerationTask) -> str:
    return f"source {task.source_index + 1}, variant {task.variant_index + 1}"


class TaskRunner:
    """Runs tasks against a provider gateway and settles them into the store."""

    def __init__(self, gateway, store: ResultStore, poller: PollStateMachine):
        """
        Args:
            gateway: Object with async generate / submit / poll_status (see ProviderGateway)
            store: Result store receiving the settlements
            poller: Poll state machine for video tasks
        """
        self.gateway = gateway
        self.store = store
        self.poller = poller
        self.poll_jobs: Dict[ResultKey, PollJob] = {}

    async def run(self, task: GenerationTask) -> Optional[GenerationResult]:
        """
        Execute a task and upsert its terminal result.

        Returns:
            The stored result, or None when the key was removed meanwhile
        """
        if task.kind is TaskKind.VIDEO:
            result = await self._run_video(task)
        else:
            result = await self._run_image(task)

        if not self.store.upsert(result):
            return None
        logger.info(f"Task {task.key} settled: {result.status.value}")
        return result

    async def _run_image(self, task: GenerationTask) -> GenerationResult:
        try:
            outcome = await self.gateway.generate(task.prompt_text, task.input_refs, task.model_params)
        except Exception as e:
            logger.error(f"Generation failed for {task.key}: {e}")
            return GenerationResult.failure(task, describe_error(e, task_context(task)))

        if outcome.is_refusal:
            return GenerationResult.warning(task, outcome.refusal_text)
        return GenerationResult.success(task, outcome.asset_url)

    async def _run_video(self, task: GenerationTask) -> GenerationResult:
        def still_wanted() -> bool:
            return not self.store.is_stale(task.key)

        job = self.poll_jobs.get(task.key)
        if job is not None and job.status is PollStatus.TIMED_OUT:
            job = await self.poller.resume(job, still_wanted)
        else:
            try:
                workflow_id = await self.gateway.submit(task.prompt_text, task.input_refs, task.model_params)
            except Exception as e:
                logger.error(f"Video submission failed for {task.key}: {e}")
                return GenerationResult.failure(task, describe_error(e, task_context(task)))

            logger.info(f"Task {task.key} submitted as workflow {workflow_id}")
            job = self.poller.new_job(workflow_id)
            self.poll_jobs[task.key] = job
            job = await self.poller.run(job, still_wanted)

        if job.status is PollStatus.COMPLETED and job.result_url:
            return GenerationResult.success(task, job.result_url, workflow_id=job.workflow_id)
        if job.status is PollStatus.TIMED_OUT:
            return GenerationResult.timed_out(task, job.workflow_id, job.error)
        if job.status is PollStatus.FAILED:
            return GenerationResult.failure(task, f"Failed on {task_context(task)}: {job.error}",
                                            workflow_id=job.workflow_id)
        # abandoned or completed without a URL
        return GenerationResult.failure(task, f"Failed on {task_context(task)}: video job did not produce a result",
                                        workflow_id=job.workflow_id)
