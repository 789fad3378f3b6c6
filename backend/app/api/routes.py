"""
routes.py
=========
All API endpoint definitions.
"""

import json
import time
from typing import List, Tuple

from fastapi import APIRouter, Depends, HTTPException, Request
from fastapi.exceptions import RequestValidationError
from loguru import logger
from pydantic import ValidationError
from starlette.datastructures import UploadFile

from app.core.config import settings
from app.core.exceptions import ReviewGatewayError
from app.core.rate_limit import limiter
from app.models.schemas import (
    BatchReviewResponse, CodeReviewPayload, HealthResponse,
    ResolvedModelResponse, ReviewRequest,
)
from app.services.content import EXTENSION_LANGUAGES, PLAINTEXT, classify, compose
from app.services.review_service import ReviewService, get_review_service

router = APIRouter()

NOTHING_TO_REVIEW = "Provide {code} JSON, or upload file(s), or a prompt."

FORM_CONTENT_TYPES = ("multipart/form-data", "application/x-www-form-urlencoded")


# ─────────────────────────────────────────────
# REQUEST → ITEMS
# ─────────────────────────────────────────────

def build_items(payload: CodeReviewPayload, uploads: List[Tuple[str, str]]) -> List[ReviewRequest]:
    """
    Turn one submission into review items, in order:
    pasted code, then each non-blank upload, then a prompt-only
    item if nothing else was produced.
    """
    prompt = (payload.prompt or "").strip()
    items: List[ReviewRequest] = []

    code = payload.code or ""
    if code.strip():
        language = (payload.language or "").strip() or classify(payload.filename or "pasted.txt")
        filename = (payload.filename or "").strip() or f"pasted-{language or 'text'}.txt"
        items.append(ReviewRequest(name=filename, language_hint=language, content=compose(prompt, code)))

    for filename, text in uploads:
        if not text.strip():
            continue
        items.append(ReviewRequest(name=filename, content=compose(prompt, text)))

    if not items and prompt:
        items.append(ReviewRequest(name="prompt.txt", language_hint=PLAINTEXT, content=prompt))

    return items


async def _read_json(request: Request) -> Tuple[CodeReviewPayload, List[Tuple[str, str]]]:
    body = await request.body()
    if not body.strip():
        return CodeReviewPayload(), []
    try:
        data = json.loads(body)
    except ValueError:
        raise HTTPException(status_code=400, detail="Request body is not valid JSON")
    if not isinstance(data, dict):
        raise HTTPException(status_code=400, detail="Request body must be a JSON object")
    try:
        return CodeReviewPayload.model_validate(data), []
    except ValidationError as e:
        raise RequestValidationError(e.errors(include_url=False))


async def _read_form(request: Request) -> Tuple[CodeReviewPayload, List[Tuple[str, str]]]:
    form = await request.form()
    max_bytes = int(settings.MAX_FILE_MB * 1024 * 1024)

    files = [f for f in form.getlist("files") if isinstance(f, UploadFile)]
    if len(files) > settings.MAX_FILES:
        raise HTTPException(status_code=413, detail=f"Too many files. Max {settings.MAX_FILES}.")

    uploads = []
    for upload in files:
        data = await upload.read()
        if len(data) > max_bytes:
            raise HTTPException(
                status_code=413,
                detail=f"{upload.filename} too large. Max {settings.MAX_FILE_MB} MB per file.",
            )
        uploads.append((upload.filename or "upload.txt", data.decode("utf-8", errors="replace")))

    fields = {
        key: form.get(key) for key in ("code", "language", "filename", "prompt")
        if isinstance(form.get(key), str)
    }
    return CodeReviewPayload(**fields), uploads


# ─────────────────────────────────────────────
# HEALTH CHECK
# ─────────────────────────────────────────────

@router.get("/health", response_model=HealthResponse, tags=["System"])
async def health_check(service: ReviewService = Depends(get_review_service)):
    """Check that the API is up and which backend it uses."""
    return HealthResponse(
        status="ok",
        model_backend=service.backend_name,
        version=settings.APP_VERSION,
    )


# ─────────────────────────────────────────────
# MAIN REVIEW ENDPOINT
# ─────────────────────────────────────────────

@router.post("/review", response_model=BatchReviewResponse, tags=["Review"])
@limiter.limit(settings.RATE_LIMIT)
async def review_code(
    request: Request,
    service: ReviewService = Depends(get_review_service),
):
    """
    Submit code for AI review. Accepts any of:

    - JSON: `{code, language?, filename?, prompt?}`
    - multipart/form-data: `files` (repeatable) and an optional `prompt`
    - JSON or form with only a `prompt` (reviewed as a virtual file)

    Returns one report per item, in submission order.
    """
    content_type = request.headers.get("content-type", "")
    if content_type.startswith(FORM_CONTENT_TYPES):
        payload, uploads = await _read_form(request)
    else:
        payload, uploads = await _read_json(request)

    items = build_items(payload, uploads)
    if not items:
        raise HTTPException(status_code=400, detail=NOTHING_TO_REVIEW)

    try:
        logger.info(f"Review request | items={len(items)} | uploads={len(uploads)}")
        reports = await service.review_batch(items)
    except ReviewGatewayError as e:
        logger.error(f"Review failed: {str(e)}")
        raise HTTPException(status_code=500, detail=str(e))

    total_issues = sum(len(r.issues) for r in reports)
    logger.info(f"Review complete | items={len(reports)} | issues={total_issues}")

    return BatchReviewResponse(
        report_id=f"report_{int(time.time() * 1000)}",
        status="completed",
        summary=(
            f"Automated code review completed. {total_issues} issue(s) found "
            f"across {len(reports)} item(s)."
        ),
        files=reports,
    )


# ─────────────────────────────────────────────
# MODEL DIAGNOSTICS
# ─────────────────────────────────────────────

@router.get("/review/_models", tags=["System"])
async def list_models(service: ReviewService = Depends(get_review_service)):
    """Models the configured key can see, with their generation methods."""
    if not service.settings.GEMINI_API_KEY:
        raise HTTPException(status_code=400, detail="Missing API key")
    try:
        candidates = await service.list_candidates()
    except ReviewGatewayError as e:
        logger.error(f"Listing models failed: {str(e)}")
        raise HTTPException(status_code=500, detail=str(e))
    return [{"name": c.identifier, "methods": c.methods} for c in candidates]


@router.get("/models/resolved", response_model=ResolvedModelResponse, tags=["System"])
async def resolved_model(service: ReviewService = Depends(get_review_service)):
    """The model reviews are currently sent to."""
    try:
        return ResolvedModelResponse(model=await service.current_model())
    except ReviewGatewayError as e:
        logger.error(f"Model resolution failed: {str(e)}")
        raise HTTPException(status_code=500, detail=str(e))


# ─────────────────────────────────────────────
# SUPPORTED LANGUAGES
# ─────────────────────────────────────────────

@router.get("/languages", tags=["System"])
async def get_supported_languages():
    """Returns the extension → language table used for detection."""
    languages = {}
    for ext, name in EXTENSION_LANGUAGES.items():
        languages.setdefault(name, []).append(f".{ext}")
    return {
        "languages": [
            {"name": name, "extensions": extensions}
            for name, extensions in languages.items()
        ],
        "default": PLAINTEXT,
    }
