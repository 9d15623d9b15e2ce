"""Tests for the Gemini REST text generator."""

import pytest

from visionquest.exceptions import GenerationError, RateLimitedError
from visionquest.gemini_client import GeminiTextGenerator
from visionquest.retry import is_rate_limited


class FakeResponse:
    def __init__(self, status_code, payload=None, text=""):
        self.status_code = status_code
        self._payload = payload
        self.text = text

    def json(self):
        if self._payload is None:
            raise ValueError("no json")
        return self._payload


class FakeSession:
    def __init__(self, response):
        self.response = response
        self.requests = []

    def post(self, url, **kwargs):
        self.requests.append((url, kwargs))
        return self.response


def ok(text):
    return FakeResponse(200, {"candidates": [{"content": {"parts": [{"text": text}]}}]})


class TestGeminiTextGenerator:
    def test_generate_returns_text(self):
        session = FakeSession(ok(" Owls can rotate their heads. "))
        generator = GeminiTextGenerator(api_key="k", model="gemini-test", session=session)

        assert generator.generate("tell me", {"temperature": 0.7, "top_k": 40, "top_p": 0.95}) == "Owls can rotate their heads."

        url, kwargs = session.requests[0]
        assert url.endswith("/models/gemini-test:generateContent")
        assert kwargs["params"] == {"key": "k"}
        assert kwargs["json"]["contents"] == [{"parts": [{"text": "tell me"}]}]
        assert kwargs["json"]["generationConfig"] == {"temperature": 0.7, "topK": 40, "topP": 0.95}

    def test_thought_parts_skipped(self):
        payload = {"candidates": [{"content": {"parts": [{"text": "hmm", "thought": True}, {"text": "Answer."}]}}]}
        generator = GeminiTextGenerator(api_key="k", session=FakeSession(FakeResponse(200, payload)))
        assert generator.generate("q") == "Answer."

    def test_quota_error_is_rate_limited(self):
        payload = {"error": {"code": 429, "status": "RESOURCE_EXHAUSTED", "message": "Quota exceeded"}}
        generator = GeminiTextGenerator(api_key="k", session=FakeSession(FakeResponse(429, payload)))

        with pytest.raises(RateLimitedError) as info:
            generator.generate("q")
        assert info.value.status == 429
        assert is_rate_limited(info.value)

    def test_bad_request_is_not_rate_limited(self):
        payload = {"error": {"code": 400, "status": "INVALID_ARGUMENT", "message": "API key not valid"}}
        generator = GeminiTextGenerator(api_key="k", session=FakeSession(FakeResponse(400, payload)))

        with pytest.raises(GenerationError) as info:
            generator.generate("q")
        assert info.value.status == 400
        assert "API key not valid" in str(info.value)
        assert not is_rate_limited(info.value)

    def test_non_json_error_body(self):
        generator = GeminiTextGenerator(api_key="k", session=FakeSession(FakeResponse(502, text="Bad Gateway")))
        with pytest.raises(GenerationError, match="Bad Gateway"):
            generator.generate("q")

    def test_missing_api_key(self):
        session = FakeSession(ok("unused"))
        with pytest.raises(GenerationError):
            GeminiTextGenerator(api_key="", session=session).generate("q")
        assert session.requests == []
