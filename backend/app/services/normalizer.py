"""
normalizer.py
=============
Turns the model's raw text into a validated Report.

Model output is not guaranteed to be pure JSON: it may sit inside a
fenced code block or be surrounded by prose. Extraction strategies are
tried in order and the first one that yields a JSON object wins. When
nothing can be recovered the raw text becomes the report summary.
"""

import json
import re
from typing import Any, Callable, Dict, List, Optional

from loguru import logger
from pydantic import ValidationError

from app.models.schemas import Issue, Report, Severity

Payload = Dict[str, Any]

_FENCED_RE = re.compile(r"```(?:json)?\s*([\s\S]*?)```", re.IGNORECASE)

SEVERITY_MAP = {
    "critical": Severity.CRITICAL,
    "high": Severity.MAJOR,
    "major": Severity.MAJOR,
    "medium": Severity.MINOR,
    "minor": Severity.MINOR,
    "low": Severity.INFO,
    "info": Severity.INFO,
}


def _load_object(text: str) -> Optional[Payload]:
    try:
        value = json.loads(text)
    except (TypeError, ValueError, RecursionError):
        return None
    return value if isinstance(value, dict) else None


def _from_fenced_block(raw: str) -> Optional[Payload]:
    match = _FENCED_RE.search(raw)
    if not match or not match.group(1):
        return None
    return _load_object(match.group(1))


def _from_whole_text(raw: str) -> Optional[Payload]:
    return _load_object(raw)


def _from_brace_span(raw: str) -> Optional[Payload]:
    start, end = raw.find("{"), raw.rfind("}")
    if start == -1 or end <= start:
        return None
    return _load_object(raw[start:end + 1])


EXTRACTION_STRATEGIES: List[Callable[[str], Optional[Payload]]] = [
    _from_fenced_block,
    _from_whole_text,
    _from_brace_span,
]


def extract_structured(raw: Optional[str]) -> Optional[Payload]:
    """Return the first JSON object any strategy recovers, else None."""
    if not raw:
        return None
    for strategy in EXTRACTION_STRATEGIES:
        payload = strategy(raw)
        if payload is not None:
            return payload
    return None


def normalize_severity(raw: Any) -> Severity:
    """Collapse the model's severity vocabulary onto the four canonical levels."""
    if not isinstance(raw, str):
        return Severity.INFO
    return SEVERITY_MAP.get(raw.strip().lower(), Severity.INFO)


def _is_shaped(payload: Payload) -> bool:
    file_path = payload.get("file_path")
    language = payload.get("language")
    issues = payload.get("issues")
    return (
        isinstance(file_path, str) and bool(file_path)
        and isinstance(language, str) and bool(language)
        and isinstance(issues, list)
    )


def text_report(filename: str, language: str, raw: Optional[str]) -> Report:
    return Report(
        file_path=filename,
        language=language,
        summary=raw or "No content returned.",
        issues=[],
    )


def build_report(filename: str, language: str, raw: Optional[str]) -> Report:
    """
    Build a Report from raw model output. Never raises.

    A payload is used when it carries file_path, language and a list
    of issues; entries that are not objects are dropped and severities
    are normalized on the way.
    Anything else falls back to wrapping the raw text.
    """
    payload = extract_structured(raw)
    if payload is None or not _is_shaped(payload):
        logger.debug(f"Unstructured response for {filename}, wrapping text")
        return text_report(filename, language, raw)

    issues = [
        {**issue, "severity": normalize_severity(issue.get("severity"))}
        for issue in payload["issues"] if isinstance(issue, dict)
    ]
    dropped = len(payload["issues"]) - len(issues)
    if dropped:
        logger.warning(f"Dropped {dropped} malformed issue(s) for {filename}")
    try:
        return Report(
            file_path=payload["file_path"],
            language=payload["language"],
            summary=payload.get("summary"),
            issues=[Issue.model_validate(issue) for issue in issues],
        )
    except ValidationError as e:
        logger.warning(f"Structured response for {filename} failed validation: {e}")
        return text_report(filename, language, raw)
    except Exception as e:
        logger.exception(f"Unexpected error building report for {filename}: {e!r}")
        return text_report(filename, language, raw)


def degraded_report(filename: str, language: str, status: Optional[int],
                    detail: str, excerpt: int = 1000) -> Report:
    """Report for an item whose upstream call failed."""
    detail = (detail or "")[:excerpt]
    if status is None:
        summary = f"LLM error: {detail or 'request failed.'}"
    else:
        summary = f"LLM error: HTTP {status}. {detail or 'No details.'}"
    return Report(file_path=filename, language=language, summary=summary, issues=[])
