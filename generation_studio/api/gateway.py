"""
Async provider gateway.

Exposes the operations the orchestrator awaits (prepare, generate, submit,
poll_status) on top of the blocking GenerationAPI. Each blocking call runs in
a worker thread; transient transport failures are retried with backoff.
"""

import asyncio
import logging
import mimetypes
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional, Sequence

from .adapter import (
    GenerationOutcome,
    StatusReport,
    classify_generation_response,
    parse_upload,
    parse_video_init,
    parse_video_status,
)
from .client import GenerationAPI
from .error_handler import RetryConfig, retry_with_backoff

logger = logging.getLogger(__name__)


def _is_remote(ref: str) -> bool:
    return ref.startswith(("http://", "https://"))


class ProviderGateway:
    """Async facade over GenerationAPI used by the task runner."""

    def __init__(self, api: GenerationAPI, model: str,
                 retry_config: Optional[RetryConfig] = None,
                 requires_public_url: bool = True):
        self.api = api
        self.model = model
        self.retry_config = retry_config or RetryConfig()
        self.requires_public_url = requires_public_url
        self._public_urls: Dict[str, str] = {}
        self._uploads: Dict[str, "asyncio.Future[str]"] = {}

    async def _call(self, func, *args, **kwargs) -> Any:
        async def attempt():
            return await asyncio.to_thread(func, *args, **kwargs)
        return await retry_with_backoff(attempt, self.retry_config)

    async def prepare(self, ref: str) -> str:
        """Return a public URL for an input reference, uploading local files once."""
        if _is_remote(ref):
            return ref
        cached = self._public_urls.get(ref)
        if cached:
            return cached

        # concurrent callers share one upload per ref; a failed upload is forgotten
        upload = self._uploads.get(ref)
        if upload is None:
            upload = asyncio.ensure_future(self._upload(ref))
            self._uploads[ref] = upload
            upload.add_done_callback(lambda _: self._uploads.pop(ref, None))
        return await asyncio.shield(upload)

    async def _upload(self, ref: str) -> str:
        path = Path(ref)
        data = await asyncio.to_thread(path.read_bytes)
        content_type = mimetypes.guess_type(path.name)[0] or "application/octet-stream"
        response = await self._call(self.api.upload_image, path.name, data, content_type)
        public_url = parse_upload(response)
        self._public_urls[ref] = public_url
        logger.info(f"Uploaded {path.name} -> {public_url}")
        return public_url

    async def _resolve(self, input_refs: Sequence[str]) -> List[str]:
        if not self.requires_public_url:
            return list(input_refs)
        return [await self.prepare(ref) for ref in input_refs]

    async def generate(self, prompt: str, input_refs: Sequence[str],
                       model_params: Optional[Mapping[str, Any]] = None) -> GenerationOutcome:
        image_urls = await self._resolve(input_refs)
        response = await self._call(self.api.generate_image, prompt, image_urls,
                                    self.model, dict(model_params or {}))
        return classify_generation_response(response)

    async def submit(self, prompt: str, input_refs: Sequence[str],
                     model_params: Optional[Mapping[str, Any]] = None) -> str:
        """Start a video render from a start frame (and optional end frame)."""
        image_urls = await self._resolve(input_refs)
        if not image_urls:
            raise ValueError("Video generation requires a start image")
        end_image_url = image_urls[1] if len(image_urls) > 1 else None
        response = await self._call(self.api.submit_video, prompt, image_urls[0],
                                    end_image_url, dict(model_params or {}))
        return parse_video_init(response)

    async def poll_status(self, workflow_id: str) -> StatusReport:
        # single shot: the poll loop owns retry timing
        response = await asyncio.to_thread(self.api.get_video_status, workflow_id)
        return parse_video_status(response)
