"""
Generation Provider API Client
==============================

HTTP client for a webhook-style generation provider with proper error
handling and logging. Every call is blocking; the async gateway runs them on
worker threads.

Endpoints (relative to base_url, configurable):
- upload:        multipart image upload, returns a public URL
- generate:      image edit/generation, returns an image or a textual refusal
- video_submit:  start an asynchronous video render, returns a request id
- video_status:  status of a video render
"""

import requests
import logging
import json
from typing import Dict, Any, List, Tuple, Optional
from .error_handler import (
    handle_api_response,
    sanitize_error_for_display
)

logger = logging.getLogger(__name__)

DEFAULT_ENDPOINTS = {
    "upload": "/upload",
    "generate": "/images/generate",
    "video_submit": "/videos",
    "video_status": "/videos/status",
}


class GenerationAPI:
    """
    Generation provider client.

    Low-level `_request` returns (status_code, data); the typed methods raise
    StudioAPIError subclasses through handle_api_response.
    """

    def __init__(self, api_token: str, base_url: str,
                 endpoints: Optional[Dict[str, str]] = None, timeout: float = 30):
        """
        Initialize API client.

        Args:
            api_token: Provider API token
            base_url: Provider base URL, without trailing slash
            endpoints: Overrides for DEFAULT_ENDPOINTS
            timeout: Per-request timeout in seconds
        """
        if not api_token or not api_token.strip():
            raise ValueError("API token cannot be empty")

        self.api_token = api_token.strip()
        self.base_url = base_url.rstrip("/")
        self.endpoints = {**DEFAULT_ENDPOINTS, **(endpoints or {})}
        self.timeout = timeout
        self.headers = {
            "Authorization": f"Bearer {self.api_token}",
            "Content-Type": "application/json"
        }
        logger.info("GenerationAPI client initialized")

    def _request(self, method: str, endpoint: str, **kwargs) -> Tuple[int, Dict]:
        """
        Make API request with proper error handling.

        Args:
            method: HTTP method (GET, POST)
            endpoint: Key of self.endpoints or a literal path
            **kwargs: Additional requests parameters

        Returns:
            Tuple of (status_code, response_dict). Timeouts map to 504 and
            connection failures to 503 so callers can treat them as transient.
        """
        path = self.endpoints.get(endpoint, endpoint)
        url = f"{self.base_url}{path}"
        headers = kwargs.pop("headers", self.headers.copy())

        logger.debug(f"{method} {path}")

        try:
            response = requests.request(method, url, headers=headers, timeout=self.timeout, **kwargs)

            try:
                data = response.json()
            except (json.JSONDecodeError, ValueError) as e:
                logger.error(f"Failed to parse JSON response: {e}")
                logger.debug(f"Raw response: {response.text[:500]}")
                data = {
                    "error": f"Failed to parse API response: {response.reason}",
                    "raw": response.text[:1000]
                }
                if response.status_code < 400:
                    return 502, data

            if not isinstance(data, dict):
                data = {"data": data}

            if response.status_code >= 400:
                logger.warning(
                    f"{method} {path} -> {response.status_code}: "
                    f"{data.get('error', 'Unknown error')}"
                )
            else:
                logger.debug(f"{method} {path} -> {response.status_code}")

            return response.status_code, data

        except requests.exceptions.Timeout as e:
            logger.error(f"Request timeout: {path}")
            return 504, {"error": f"Request timeout: {str(e)}"}

        except requests.exceptions.ConnectionError as e:
            logger.error(f"Connection error: {path}")
            return 503, {"error": f"Network error: {sanitize_error_for_display(e)}"}

        except requests.exceptions.RequestException as e:
            logger.error(f"Request failed: {path} - {sanitize_error_for_display(e)}")
            return 500, {"error": f"Request failed: {sanitize_error_for_display(e)}"}

    def _request_with_validation(self, method: str, endpoint: str, **kwargs) -> Dict:
        """
        Make API request and validate response (raises exceptions on error).

        Raises:
            StudioAPIError subclasses for error responses
        """
        status_code, data = self._request(method, endpoint, **kwargs)
        return handle_api_response(status_code, data)

    # -------------------------------------------------------------------------
    # Uploads
    # -------------------------------------------------------------------------

    def upload_image(self, filename: str, file_bytes: bytes, content_type: str) -> Dict:
        """
        Upload a source image so the provider can fetch it by URL.

        Returns:
            Response dict containing image_url or file_url
        """
        size_mb = len(file_bytes) / (1024 * 1024)
        logger.info(f"Upload: {filename} ({size_mb:.2f}MB)")

        # multipart: let requests set the boundary header
        headers = {"Authorization": f"Bearer {self.api_token}"}
        files = {"file": (filename, file_bytes, content_type)}
        return self._request_with_validation("POST", "upload", headers=headers, files=files)

    # -------------------------------------------------------------------------
    # Generation
    # -------------------------------------------------------------------------

    def generate_image(self, prompt: str, image_urls: List[str], model: str,
                       params: Optional[Dict[str, Any]] = None) -> Dict:
        """
        Generate (or edit) an image from a prompt and source images.

        Returns:
            Response dict with an image (asset_url / images) or a text refusal
        """
        payload = {"prompt": prompt, "image_urls": list(image_urls), "model": model}
        if params:
            payload.update(params)

        logger.info(f"Generate: {prompt[:100]}...")
        return self._request_with_validation("POST", "generate", json=payload)

    def submit_video(self, prompt: str, image_url: str, end_image_url: Optional[str] = None,
                     params: Optional[Dict[str, Any]] = None) -> Dict:
        """
        Start an asynchronous video render.

        Returns:
            Response dict containing request_id
        """
        payload = {
            "prompt": prompt,
            "image_url": image_url,
            "aspect_ratio": "auto",
            "resolution": "720p",
            "duration": "5",
        }
        if end_image_url:
            payload["end_image_url"] = end_image_url
        if params:
            payload.update(params)

        logger.info(f"Video submit: {prompt[:100]}...")
        return self._request_with_validation("POST", "video_submit", json=payload)

    def get_video_status(self, request_id: str) -> Dict:
        """
        Get the status of a video render.

        Status values: generating, completed, failed
        """
        return self._request_with_validation("POST", "video_status", json={"id": request_id})
