"""
Unit tests for the blocking provider client.
"""

import json

import pytest
import requests

from generation_studio.api.client import GenerationAPI
from generation_studio.api.error_handler import (
    AuthenticationError,
    StudioAPIError,
    TransientAPIError
)


class FakeResponse:
    def __init__(self, status_code=200, payload=None, text=None, reason="OK"):
        self.status_code = status_code
        self._payload = payload
        self.text = text if text is not None else json.dumps(payload)
        self.reason = reason

    def json(self):
        if self._payload is None:
            raise json.JSONDecodeError("Expecting value", self.text, 0)
        return self._payload


@pytest.fixture
def api():
    return GenerationAPI("test-token-1234567890", "https://provider.example/webhook/")


@pytest.fixture
def recorded(monkeypatch):
    """Patch requests.request; returns the list of calls and a setter for the reply."""
    calls = []
    reply = {"value": FakeResponse(200, {"ok": True})}

    def fake_request(method, url, **kwargs):
        calls.append((method, url, kwargs))
        value = reply["value"]
        if isinstance(value, Exception):
            raise value
        return value

    monkeypatch.setattr(requests, "request", fake_request)

    def set_reply(value):
        reply["value"] = value

    return calls, set_reply


class TestClientInit:

    def test_empty_token_rejected(self):
        with pytest.raises(ValueError):
            GenerationAPI("  ", "https://x")

    def test_endpoint_overrides(self):
        api = GenerationAPI("tok", "https://x", endpoints={"generate": "/edit"})
        assert api.endpoints["generate"] == "/edit"
        assert api.endpoints["upload"] == "/upload"


class TestRequest:

    def test_success(self, api, recorded):
        calls, set_reply = recorded
        set_reply(FakeResponse(200, {"asset_url": "https://cdn/a.png"}))

        status, data = api._request("POST", "generate", json={"prompt": "p"})

        assert status == 200
        assert data == {"asset_url": "https://cdn/a.png"}
        method, url, kwargs = calls[0]
        assert method == "POST"
        assert url == "https://provider.example/webhook/images/generate"
        assert kwargs["headers"]["Authorization"] == "Bearer test-token-1234567890"
        assert kwargs["timeout"] == 30

    def test_invalid_json_on_success_is_502(self, api, recorded):
        _, set_reply = recorded
        set_reply(FakeResponse(200, None, text="<html>oops</html>"))
        status, data = api._request("POST", "generate")
        assert status == 502
        assert "Failed to parse API response" in data["error"]

    def test_invalid_json_on_error_keeps_status(self, api, recorded):
        _, set_reply = recorded
        set_reply(FakeResponse(500, None, text="Internal Server Error", reason="Internal Server Error"))
        status, data = api._request("POST", "generate")
        assert status == 500
        assert data["raw"] == "Internal Server Error"

    def test_non_dict_body_is_wrapped(self, api, recorded):
        _, set_reply = recorded
        set_reply(FakeResponse(200, ["https://cdn/a.png"]))
        assert api._request("POST", "generate") == (200, {"data": ["https://cdn/a.png"]})

    def test_timeout_maps_to_504(self, api, recorded):
        _, set_reply = recorded
        set_reply(requests.exceptions.Timeout("read timed out"))
        status, data = api._request("POST", "generate")
        assert status == 504

    def test_connection_error_maps_to_503(self, api, recorded):
        _, set_reply = recorded
        set_reply(requests.exceptions.ConnectionError("refused"))
        status, data = api._request("POST", "generate")
        assert status == 503
        assert data["error"].startswith("Network error")


class TestTypedCalls:

    def test_generate_image_payload(self, api, recorded):
        calls, set_reply = recorded
        set_reply(FakeResponse(200, {"asset_url": "https://cdn/a.png"}))

        api.generate_image("a red car", ["https://files/1.png"], "edit-v1", {"seed": 3})

        payload = calls[0][2]["json"]
        assert payload == {"prompt": "a red car", "image_urls": ["https://files/1.png"],
                           "model": "edit-v1", "seed": 3}

    def test_generate_image_raises_on_500(self, api, recorded):
        _, set_reply = recorded
        set_reply(FakeResponse(500, {"error": "Internal server error"}))
        with pytest.raises(StudioAPIError) as exc_info:
            api.generate_image("p", [], "m")
        assert exc_info.value.status_code == 500

    def test_auth_failure(self, api, recorded):
        _, set_reply = recorded
        set_reply(FakeResponse(401, {"error": "bad token"}))
        with pytest.raises(AuthenticationError):
            api.generate_image("p", [], "m")

    def test_connection_failure_is_transient(self, api, recorded):
        _, set_reply = recorded
        set_reply(requests.exceptions.ConnectionError("refused"))
        with pytest.raises(TransientAPIError):
            api.generate_image("p", [], "m")

    def test_upload_is_multipart(self, api, recorded):
        calls, set_reply = recorded
        set_reply(FakeResponse(200, {"image_url": "https://files/1.png"}))

        data = api.upload_image("cat.png", b"\x89PNG", "image/png")

        assert data == {"image_url": "https://files/1.png"}
        _, url, kwargs = calls[0]
        assert url.endswith("/upload")
        assert "Content-Type" not in kwargs["headers"]
        assert kwargs["files"]["file"] == ("cat.png", b"\x89PNG", "image/png")

    def test_submit_video_with_end_frame(self, api, recorded):
        calls, set_reply = recorded
        set_reply(FakeResponse(200, {"request_id": "wf-1"}))

        api.submit_video("zoom in", "https://files/start.png", "https://files/end.png")

        payload = calls[0][2]["json"]
        assert payload["image_url"] == "https://files/start.png"
        assert payload["end_image_url"] == "https://files/end.png"
        assert payload["duration"] == "5"

    def test_video_status(self, api, recorded):
        calls, set_reply = recorded
        set_reply(FakeResponse(200, {"status": "generating"}))

        assert api.get_video_status("wf-1") == {"status": "generating"}
        assert calls[0][2]["json"] == {"id": "wf-1"}
