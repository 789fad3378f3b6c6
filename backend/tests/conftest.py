import json
import os
import sys

import httpx
import pytest

# Add parent to path
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from app.core.config import Settings
from app.core.rate_limit import limiter
from app.services.gemini_client import GeminiClient

# Disable rate limiting for all tests
limiter.enabled = False


def make_settings(**overrides):
    values = {"GEMINI_API_KEY": "test-key", "MAX_CONCURRENT_REVIEWS": 4}
    values.update(overrides)
    return Settings(_env_file=None, **values)


def listing(*models):
    """Listing payload; each model is (name, supports_generation)."""
    return {
        "models": [
            {
                "name": f"models/{name}",
                "supportedGenerationMethods": ["generateContent"] if gen else ["embedContent"],
            }
            for name, gen in models
        ]
    }


def generated(text):
    return {"candidates": [{"content": {"parts": [{"text": text}]}}]}


class FakeGemini:
    """
    Scripted upstream. ``replies`` maps a file name (from the prompt's
    File: line) to a (status, body) pair; unknown files get ``default``.
    """

    def __init__(self, models=None, replies=None, default=None):
        self.models = models if models is not None else listing(("gemini-2.5-pro", True))
        self.replies = replies or {}
        self.default = default or (200, generated('{"file_path": "x", "language": "Python", "summary": "ok", "issues": []}'))
        self.list_calls = 0
        self.generate_calls = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        if request.method == "GET" and request.url.path.endswith("/models"):
            self.list_calls += 1
            return httpx.Response(200, json=self.models)

        body = json.loads(request.content)
        prompt = body["contents"][0]["parts"][1]["text"]
        filename = prompt.split("\n", 1)[0][len("File: "):]
        self.generate_calls.append((request.url.path, filename, body))

        status, payload = self.replies.get(filename, self.default)
        if isinstance(payload, str):
            return httpx.Response(status, text=payload)
        return httpx.Response(status, json=payload)

    def client(self, **kwargs):
        return GeminiClient(api_key="test-key", transport=httpx.MockTransport(self), **kwargs)


@pytest.fixture
def fake_gemini():
    return FakeGemini()
