import json

import pytest
import requests

from subrewrite.errors import AuthorizationFailure, ServiceError, TransientServiceError
from subrewrite.rewrite import GeminiRewriteService, OpenAIRewriteService, get_rewrite_service
from subrewrite.rewrite.base import classify_http_error

from conftest import FakeService, make_blocks


class FakeResponse:
    def __init__(self, status_code=200, payload=None, text=None):
        self.status_code = status_code
        self.ok = status_code < 400
        self._payload = payload
        self.text = text if text is not None else json.dumps(payload)

    def json(self):
        if self._payload is None:
            raise ValueError("no json")
        return self._payload


def gemini_payload(texts):
    return {"candidates": [{"content": {"parts": [{"text": json.dumps(texts)}]}}]}


def gemini_error(code, status, message):
    return FakeResponse(code, {"error": {"code": code, "status": status, "message": message}})


@pytest.fixture
def posts(monkeypatch):
    calls = []
    queue = []

    def fake_post(url, headers=None, data=None, timeout=None, proxies=None):
        calls.append({"url": url, "headers": headers, "body": json.loads(data)})
        item = queue.pop(0)
        if isinstance(item, Exception):
            raise item
        return item

    monkeypatch.setattr(requests, "post", fake_post)
    return calls, queue


def make_gemini(**kwargs):
    kwargs.setdefault("sleep", lambda _: None)
    service = GeminiRewriteService(lambda: "key-1", **kwargs)
    service.begin_job()
    return service


def test_gemini_request_shape_and_result(posts):
    calls, queue = posts
    queue.append(FakeResponse(200, gemini_payload(["một", "hai"])))
    service = make_gemini()

    result = service.rewrite_batch(make_blocks(2), "giữ ngắn gọn")

    assert result == ["một", "hai"]
    call = calls[0]
    assert call["url"].endswith("/v1beta/models/gemini-3-flash-preview:generateContent")
    assert call["headers"]["x-goog-api-key"] == "key-1"
    config = call["body"]["generationConfig"]
    assert config["responseMimeType"] == "application/json"
    assert config["responseSchema"] == {"type": "ARRAY", "items": {"type": "STRING"}}
    prompt = call["body"]["contents"][0]["parts"][0]["text"]
    assert '"giữ ngắn gọn"' in prompt
    assert '{"id": "1", "text": "line 1", "duration": "1.50s"}' in prompt


def test_short_response_falls_back_to_original(posts):
    _, queue = posts
    queue.append(FakeResponse(200, gemini_payload(["A"])))
    service = make_gemini()

    assert service.rewrite_batch(make_blocks(3), "") == ["A", "line 2", "line 3"]


def test_empty_text_response_keeps_originals(posts):
    _, queue = posts
    queue.append(FakeResponse(200, {"candidates": [{"content": {"parts": [{"text": ""}]}}]}))
    service = make_gemini()

    assert service.rewrite_batch(make_blocks(2), "") == ["line 1", "line 2"]


def test_rate_limit_is_retried(posts):
    calls, queue = posts
    queue.append(gemini_error(429, "RESOURCE_EXHAUSTED", "Quota exceeded"))
    queue.append(FakeResponse(200, gemini_payload(["ok"])))
    delays = []
    service = make_gemini(sleep=delays.append)

    assert service.rewrite_batch(make_blocks(1), "") == ["ok"]
    assert len(calls) == 2
    assert len(delays) == 1
    assert 2.0 <= delays[0] < 3.0


def test_entity_not_found_is_authorization_failure(posts):
    calls, queue = posts
    queue.append(gemini_error(404, "NOT_FOUND", "Requested entity was not found."))
    service = make_gemini()

    with pytest.raises(AuthorizationFailure):
        service.rewrite_batch(make_blocks(1), "")
    assert len(calls) == 1


def test_server_error_is_not_retried(posts):
    calls, queue = posts
    queue.append(gemini_error(500, "INTERNAL", "boom"))
    service = make_gemini()

    with pytest.raises(ServiceError) as excinfo:
        service.rewrite_batch(make_blocks(1), "")
    assert not isinstance(excinfo.value, TransientServiceError)
    assert excinfo.value.status_code == 500
    assert len(calls) == 1


def test_connection_error_becomes_service_error(posts):
    _, queue = posts
    queue.append(requests.ConnectionError("offline"))
    service = make_gemini()

    with pytest.raises(ServiceError):
        service.rewrite_batch(make_blocks(1), "")


def test_non_json_content_is_service_error(posts):
    _, queue = posts
    queue.append(FakeResponse(200, {"candidates": [{"content": {"parts": [{"text": "not json"}]}}]}))
    service = make_gemini()

    with pytest.raises(ServiceError):
        service.rewrite_batch(make_blocks(1), "")


def test_classify_plain_text_error():
    error = classify_http_error(FakeResponse(429, None, text="Too Many Requests"))

    assert isinstance(error, TransientServiceError)


def test_missing_credential_fails_at_job_start():
    service = GeminiRewriteService(lambda: None)

    with pytest.raises(AuthorizationFailure):
        service.begin_job()


def test_credential_is_resolved_per_job():
    keys = iter(["first", "second"])
    service = FakeService()
    service.credential_resolver = lambda: next(keys)

    service.begin_job()
    assert service.api_key == "first"
    service.begin_job()
    assert service.api_key == "second"


def test_openai_accepts_wrapped_array(posts):
    calls, queue = posts
    content = json.dumps({"texts": ["x", "y"]})
    queue.append(FakeResponse(200, {"choices": [{"message": {"content": content}}]}))
    service = OpenAIRewriteService(lambda: "sk-test", model="m1", url="http://llm.local/v1/chat")
    service.begin_job()

    assert service.rewrite_batch(make_blocks(2), "") == ["x", "y"]
    body = calls[0]["body"]
    assert calls[0]["url"] == "http://llm.local/v1/chat"
    assert calls[0]["headers"]["Authorization"] == "Bearer sk-test"
    assert body["model"] == "m1"
    assert body["response_format"]["json_schema"]["schema"]["required"] == ["texts"]


def test_openai_unauthorized(posts):
    _, queue = posts
    queue.append(FakeResponse(401, {"error": {"message": "Incorrect API key", "code": "invalid_api_key"}}))
    service = OpenAIRewriteService(lambda: "sk-bad")
    service.begin_job()

    with pytest.raises(AuthorizationFailure):
        service.rewrite_batch(make_blocks(1), "")


def test_factory(monkeypatch):
    monkeypatch.setenv("GEMINI_API_KEY", "from-env")
    service = get_rewrite_service("Gemini", model="gemini-x")
    service.begin_job()

    assert isinstance(service, GeminiRewriteService)
    assert service.model == "gemini-x"
    assert service.api_key == "from-env"
    with pytest.raises(ValueError):
        get_rewrite_service("nope")
