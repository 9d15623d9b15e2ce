"""Text generation over the Gemini REST API."""

import requests
from loguru import logger

from .config import GEMINI_API_KEY, GEMINI_MODEL, GEMINI_TIMEOUT
from .exceptions import GenerationError, RateLimitedError

GEMINI_URL = "https://generativelanguage.googleapis.com/v1beta/models/{model}:generateContent"

# sampling parameter names -> generationConfig keys
_PARAM_KEYS = {
    "temperature": "temperature",
    "top_k": "topK",
    "top_p": "topP",
    "max_output_tokens": "maxOutputTokens",
}


class GeminiTextGenerator:
    def __init__(self, api_key: str = GEMINI_API_KEY, model: str = GEMINI_MODEL, timeout: float = GEMINI_TIMEOUT, session=None):
        self.api_key = api_key
        self.model = model
        self.timeout = timeout
        self.session = session or requests.Session()

    def _payload(self, prompt: str, params: dict | None) -> dict:
        generation_config = {_PARAM_KEYS.get(k, k): v for k, v in (params or {}).items()}
        return {
            "contents": [{"parts": [{"text": prompt}]}],
            "generationConfig": generation_config,
        }

    def generate(self, prompt: str, params: dict | None = None) -> str:
        if not self.api_key:
            raise GenerationError("GEMINI_API_KEY is not set")

        resp = self.session.post(
            GEMINI_URL.format(model=self.model),
            params={"key": self.api_key},
            json=self._payload(prompt, params),
            timeout=self.timeout,
        )
        if resp.status_code != 200:
            try:
                error = resp.json().get("error", {})
                message = f"{error.get('status', '')} {error.get('message', '')}".strip()
            except ValueError:
                message = resp.text[:200]
            logger.debug("Gemini returned {}: {}", resp.status_code, message)
            if resp.status_code == 429:
                raise RateLimitedError(message or "RESOURCE_EXHAUSTED")
            raise GenerationError(message or f"HTTP {resp.status_code}", status=resp.status_code)

        data = resp.json()
        parts = data.get("candidates", [{}])[0].get("content", {}).get("parts", [])
        text = "".join(part.get("text", "") for part in parts if not part.get("thought"))
        return text.strip()
