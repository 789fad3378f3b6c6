"""
review_service.py
=================
The review pipeline: one Report per submitted item.

    ReviewRequest → resolve model → classify + bound content
                  → generateContent → normalize → Report

Only listing/resolution failures escape as exceptions. Anything that
goes wrong after a model has been resolved degrades into a Report
whose summary explains the failure, so N items always give N reports.
"""

import asyncio
from typing import List, Optional

from loguru import logger

from app.core.config import Settings, settings
from app.core.exceptions import GenerationCallFailed
from app.models.schemas import Issue, ModelCandidate, Report, ReviewRequest, Severity
from app.services.content import bound, classify
from app.services.gemini_client import GeminiClient
from app.services.model_resolver import ModelResolver
from app.services.normalizer import build_report, degraded_report


def mock_report(filename: str, language: str) -> Report:
    """Canned review returned when no API key is configured."""
    return Report(
        file_path=filename,
        language=language,
        summary="Processed in MOCK mode (no GEMINI_API_KEY). Connect a real key to enable LLM review.",
        issues=[
            Issue(
                severity=Severity.MINOR,
                title="Example: Prefer strict equality",
                details="Use strict equality (===) to avoid type coercion bugs.",
                suggestion="Replace == with === where appropriate.",
                line_start=1,
                line_end=1,
            )
        ],
    )


class ReviewService:
    """
    Runs reviews against Gemini and owns the model resolver state.
    """

    def __init__(self, config: Settings = settings, client: Optional[GeminiClient] = None):
        self.settings = config
        self.client = client or GeminiClient(
            api_key=config.GEMINI_API_KEY,
            base_url=config.GEMINI_API_BASE,
            timeout=config.REQUEST_TIMEOUT_SECONDS,
            temperature=config.TEMPERATURE,
            top_p=config.TOP_P,
            top_k=config.TOP_K,
            max_output_tokens=config.MAX_OUTPUT_TOKENS,
        )
        self.resolver = ModelResolver(
            self.client,
            override=config.GEMINI_MODEL,
            mock_mode=config.mock_mode,
        )

    @property
    def backend_name(self) -> str:
        return "mock" if self.settings.mock_mode else "gemini"

    async def current_model(self) -> str:
        return await self.resolver.resolve()

    async def list_candidates(self) -> List[ModelCandidate]:
        return await self.client.list_models()

    async def review(self, request: ReviewRequest) -> Report:
        """
        Review a single item. Raises only CandidateListingFailed or
        NoCompatibleModel; every later failure becomes a degraded Report.
        """
        model = await self.resolver.resolve()

        language = (request.language_hint or "").strip() or classify(request.name)
        content = bound(
            request.content,
            self.settings.MAX_CODE_LENGTH,
            self.settings.TRUNCATION_HEAD_RATIO,
        )
        logger.info(f"Reviewing {request.name} | lang={language} | size={len(content)} | model={model}")

        if self.settings.mock_mode:
            return mock_report(request.name, language)

        try:
            raw = await self.client.generate(model, request.name, language, content)
        except GenerationCallFailed as e:
            logger.warning(f"Review of {request.name} degraded: {e}")
            if e.model_not_found:
                await self.resolver.invalidate(model)
            return degraded_report(
                request.name, language, e.status, e.body,
                excerpt=self.settings.ERROR_BODY_EXCERPT,
            )

        return build_report(request.name, language, raw)

    async def review_batch(self, requests: List[ReviewRequest]) -> List[Report]:
        """
        Review items concurrently; reports come back in submission order.

        The model is resolved once before any item starts. If an item
        still fails hard (re-resolution after a 404), the remaining items
        are cancelled before the error propagates.
        """
        if not requests:
            return []
        await self.resolver.resolve()

        semaphore = asyncio.Semaphore(max(1, self.settings.MAX_CONCURRENT_REVIEWS))

        async def run(request: ReviewRequest) -> Report:
            async with semaphore:
                return await self.review(request)

        tasks = [asyncio.ensure_future(run(r)) for r in requests]
        try:
            return list(await asyncio.gather(*tasks))
        except BaseException:
            for task in tasks:
                task.cancel()
            await asyncio.gather(*tasks, return_exceptions=True)
            raise


# Singleton instance, created on first use
_service: Optional[ReviewService] = None

def get_review_service() -> ReviewService:
    global _service
    if _service is None:
        _service = ReviewService()
    return _service
