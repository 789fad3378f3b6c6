"""
model_resolver.py
=================
Picks which Gemini model to call and remembers the choice.

Order of preference:
  1. the configured override, if the key can use it
  2. the first entry of PREFERRED_MODELS the key can use
  3. any model that supports generateContent
Upstream retires model names without notice, so a "not found" from the
generate call clears the cached choice and the next review re-resolves.
"""

import asyncio
from typing import List, Optional

from loguru import logger

from app.core.exceptions import NoCompatibleModel
from app.models.schemas import ModelCandidate
from app.services.gemini_client import GeminiClient


PREFERRED_MODELS = [
    "gemini-2.5-pro",
    "gemini-2.5-flash",
    "gemini-1.5-pro-002",
    "gemini-1.5-pro",
    "gemini-1.5-flash",
]

MOCK_MODEL = "gemini-1.5-flash"


def choose_model(candidates: List[ModelCandidate], override: Optional[str] = None,
                 preferred: Optional[List[str]] = None) -> str:
    """Apply the preference order to a listing. Raises NoCompatibleModel."""
    usable = [c.identifier for c in candidates if c.supports_generation]

    if override and override in usable:
        return override
    for wanted in (PREFERRED_MODELS if preferred is None else preferred):
        if wanted in usable:
            return wanted
    if usable:
        return usable[0]
    raise NoCompatibleModel(candidates)


class ModelResolver:
    """
    Owns the resolved model identifier.

    A lock serializes resolution and invalidation so at most one
    listing call is in flight at a time.
    """

    def __init__(self, client: GeminiClient, override: Optional[str] = None,
                 mock_mode: bool = False):
        self.client = client
        self.override = (override or "").strip() or None
        self.mock_mode = mock_mode
        self._resolved: Optional[str] = None
        self._lock = asyncio.Lock()

    @property
    def cached(self) -> Optional[str]:
        return self._resolved

    async def resolve(self) -> str:
        if self._resolved:
            return self._resolved

        async with self._lock:
            if self._resolved:
                return self._resolved

            if self.mock_mode:
                self._resolved = self.override or MOCK_MODEL
                logger.info(f"Mock mode: using {self._resolved} without listing")
                return self._resolved

            candidates = await self.client.list_models()
            self._resolved = choose_model(candidates, self.override)
            logger.info(f"Resolved Gemini model: {self._resolved} ({len(candidates)} listed)")
            return self._resolved

    async def invalidate(self, identifier: str) -> bool:
        """Forget ``identifier`` if it is still the cached choice."""
        async with self._lock:
            if self._resolved != identifier:
                return False
            logger.warning(f"Model {identifier} no longer available, will re-resolve")
            self._resolved = None
            return True
