"""
Response adapters for the generation provider.

Turns raw (already status-checked) JSON bodies into the small result shapes the
orchestrator consumes. Generation responses are classified three ways: an
asset URL, a textual refusal from the model, or an unusable payload.
"""

import logging
from dataclasses import dataclass
from typing import Dict, Any, Optional

from .error_handler import ResponseFormatError

logger = logging.getLogger(__name__)

ASSET_FIELDS = ("asset_url", "url", "image_url")
REFUSAL_FIELDS = ("refusal_text", "text", "refusal", "message")
PROCESSING_STATES = {"pending", "queued", "generating", "processing", "in_progress", "running"}


@dataclass(frozen=True)
class GenerationOutcome:
    """Either an asset URL or the model's explanation for not producing one."""
    asset_url: Optional[str] = None
    refusal_text: Optional[str] = None

    @property
    def is_refusal(self) -> bool:
        return self.asset_url is None


@dataclass(frozen=True)
class StatusReport:
    """One answer from the job-status endpoint."""
    status: str  # processing, completed, failed
    result_url: Optional[str] = None
    error_message: Optional[str] = None


def _as_asset_url(value: str) -> str:
    if value.startswith(("http://", "https://", "data:")):
        return value
    # Webhook providers return bare base64 image payloads
    return f"data:image/jpeg;base64,{value}"


def classify_generation_response(data: Dict[str, Any]) -> GenerationOutcome:
    """
    Classify a generation response.

    Args:
        data: Response JSON from the generate endpoint

    Returns:
        GenerationOutcome carrying either asset_url or refusal_text

    Raises:
        ResponseFormatError: neither an asset nor an explanation was returned
    """
    for field in ASSET_FIELDS:
        value = data.get(field)
        if isinstance(value, str) and value:
            return GenerationOutcome(asset_url=_as_asset_url(value))

    images = data.get("images")
    if isinstance(images, list) and images:
        first = images[0]
        if isinstance(first, dict):
            first = first.get("url") or first.get("data")
        if isinstance(first, str) and first:
            return GenerationOutcome(asset_url=_as_asset_url(first))
        raise ResponseFormatError(200, "Image generation response contained invalid image data", data)

    for field in REFUSAL_FIELDS:
        value = data.get(field)
        if isinstance(value, str) and value.strip():
            logger.info(f"Model returned text instead of an image: {value[:100]}")
            return GenerationOutcome(refusal_text=value.strip())

    raise ResponseFormatError(200, "Image generation failed. The model did not return an image.", data)


def parse_video_init(data: Dict[str, Any]) -> str:
    """Extract the workflow id from a video submission response."""
    error = data.get("Error") or data.get("error")
    if error:
        raise ResponseFormatError(200, f"Video generation initiation failed: {error}", data)

    workflow_id = data.get("workflow_id") or data.get("request_id") or data.get("id")
    if not workflow_id:
        raise ResponseFormatError(200, "Video generation response did not contain a request_id", data)
    return str(workflow_id)


def parse_video_status(data: Dict[str, Any]) -> StatusReport:
    """
    Interpret a status-poll body.

    A returned video always wins; an explicit error or a non-processing status
    is a failure; an absent status is treated as still processing.
    """
    videos = data.get("videos")
    if isinstance(videos, list) and videos and isinstance(videos[0], str):
        return StatusReport(status="completed", result_url=videos[0])
    video_url = data.get("video_url") or data.get("result_url")
    if isinstance(video_url, str) and video_url:
        return StatusReport(status="completed", result_url=video_url)

    error = data.get("Error") or data.get("error")
    if error:
        return StatusReport(status="failed", error_message=f"Video generation failed: {error}")

    status = str(data.get("status") or "").lower()
    if not status or status in PROCESSING_STATES:
        return StatusReport(status="processing")
    if status == "completed":
        return StatusReport(status="failed",
                            error_message="Video generation completed without a video URL")
    return StatusReport(status="failed",
                        error_message=f"Video generation failed with status: {status}")


def parse_upload(data: Dict[str, Any]) -> str:
    """Extract the public URL from an upload response."""
    if data.get("error"):
        raise ResponseFormatError(200, f"Upload failed: {data['error']}", data)
    public_url = data.get("image_url") or data.get("file_url")
    if not public_url:
        raise ResponseFormatError(200, "Upload response did not contain a valid URL", data)
    return public_url
