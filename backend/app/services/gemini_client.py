"""
gemini_client.py
================
Thin async client for the Gemini generative-language REST API.

Two calls are used:
  GET  /models?key=K                       → candidate listing
  POST /models/<id>:generateContent?key=K  → the review itself

Both are single-shot; failures surface as exceptions carrying the
HTTP status (None for transport errors) and the response body.
"""

from typing import Any, Dict, List, Optional
from urllib.parse import quote

import httpx
from loguru import logger
from pydantic import ValidationError

from app.core.exceptions import CandidateListingFailed, GenerationCallFailed
from app.models.schemas import ModelCandidate


SYSTEM_PROMPT = """You are a senior software engineer performing a precise code review.
Focus on: correctness/bugs, security, performance, readability, modularity, dead code, and anti-patterns.
Cite line ranges where relevant. Recommend concrete fixes.
Respond in compact JSON:
{ file_path, language, summary, issues: [{severity,title,details,suggestion,line_start,line_end}] }"""


class GeminiClient:
    """Calls the Gemini REST endpoints with an API key."""

    def __init__(
        self,
        api_key: Optional[str],
        base_url: str = "https://generativelanguage.googleapis.com/v1",
        timeout: float = 60.0,
        temperature: float = 0.0,
        top_p: float = 0.1,
        top_k: int = 1,
        max_output_tokens: int = 2048,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.api_key = api_key
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.generation_config = {
            "temperature": temperature,
            "topP": top_p,
            "topK": top_k,
            "maxOutputTokens": max_output_tokens,
        }
        self._transport = transport

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(timeout=self.timeout, transport=self._transport)

    async def list_models(self) -> List[ModelCandidate]:
        if not self.api_key:
            raise CandidateListingFailed(None, "Missing API key for listModels")

        try:
            async with self._client() as client:
                response = await client.get(
                    f"{self.base_url}/models", params={"key": self.api_key}
                )
        except httpx.HTTPError as e:
            logger.error(f"Listing models failed: {e!r}")
            raise CandidateListingFailed(None, str(e) or type(e).__name__) from e

        if not response.is_success:
            raise CandidateListingFailed(response.status_code, response.text)

        try:
            data = response.json()
        except ValueError as e:
            raise CandidateListingFailed(response.status_code, response.text) from e

        if not isinstance(data, dict) or not isinstance(data.get("models") or [], list):
            raise CandidateListingFailed(response.status_code, response.text)

        candidates = []
        for entry in data.get("models") or []:
            if not isinstance(entry, dict):
                logger.warning(f"Skipping malformed model listing entry: {entry!r}")
                continue
            try:
                candidates.append(ModelCandidate.from_listing(entry))
            except (ValidationError, TypeError) as e:
                raise CandidateListingFailed(response.status_code, response.text) from e
        return candidates

    def build_body(self, filename: str, language: str, content: str) -> Dict[str, Any]:
        return {
            "contents": [
                {
                    "role": "user",
                    "parts": [
                        {"text": SYSTEM_PROMPT},
                        {"text": f"File: {filename}\nLanguage: {language}\n\n<CODE>\n{content}\n</CODE>"},
                    ],
                }
            ],
            "generationConfig": dict(self.generation_config),
        }

    async def generate(self, model: str, filename: str, language: str, content: str) -> str:
        """Run one review and return the model's raw text."""
        url = f"{self.base_url}/models/{quote(model, safe='')}:generateContent"
        body = self.build_body(filename, language, content)

        try:
            async with self._client() as client:
                response = await client.post(url, params={"key": self.api_key}, json=body)
        except httpx.HTTPError as e:
            raise GenerationCallFailed(None, str(e) or type(e).__name__) from e

        if not response.is_success:
            raise GenerationCallFailed(response.status_code, response.text)

        try:
            data = response.json()
        except ValueError:
            logger.warning(f"Non-JSON generate response for {filename}")
            return ""

        return self.extract_text(data)

    @staticmethod
    def extract_text(data: Any) -> str:
        """Join candidates[0].content.parts[*].text."""
        try:
            parts = data["candidates"][0]["content"]["parts"]
        except (KeyError, IndexError, TypeError):
            return ""
        if not isinstance(parts, list):
            return ""
        return "".join(
            p["text"] for p in parts if isinstance(p, dict) and isinstance(p.get("text"), str)
        )
