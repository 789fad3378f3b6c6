"""
schemas.py
==========
Pydantic models for request/response validation.
These define the exact shape of data going in and out of the API,
and the report shape recovered from the model's output.
"""

from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator


class Severity(str, Enum):
    CRITICAL = "critical"
    MAJOR = "major"
    MINOR = "minor"
    INFO = "info"


# ─── Upstream Models ───────────────────────────────────────────────────────────

class ModelCandidate(BaseModel):
    """A model advertised by the listing endpoint."""
    identifier: str
    methods: List[str] = Field(default_factory=list)

    @property
    def supports_generation(self) -> bool:
        return "generateContent" in self.methods

    @classmethod
    def from_listing(cls, entry: Dict[str, Any]) -> "ModelCandidate":
        name = str(entry.get("name") or "")
        if name.startswith("models/"):
            name = name[len("models/"):]
        methods = entry.get("supportedGenerationMethods") or []
        if not isinstance(methods, list):
            raise TypeError(f"supportedGenerationMethods must be a list, got {type(methods).__name__}")
        return cls(identifier=name, methods=methods)


# ─── Review Models ─────────────────────────────────────────────────────────────

class ReviewRequest(BaseModel):
    """One item to review: pasted code, an uploaded file or a prompt."""
    name: str
    language_hint: Optional[str] = None
    content: str


class Issue(BaseModel):
    """A single finding reported by the model."""
    model_config = ConfigDict(frozen=True)

    severity: Severity = Severity.INFO
    title: str = ""
    details: str = ""
    suggestion: str = ""
    line_start: Optional[int] = None
    line_end: Optional[int] = None

    @field_validator("title", "details", "suggestion", mode="before")
    @classmethod
    def text_or_empty(cls, v):
        if v is None:
            return ""
        return v if isinstance(v, str) else str(v)

    @field_validator("line_start", "line_end", mode="before")
    @classmethod
    def line_or_none(cls, v):
        if isinstance(v, bool):
            return None
        try:
            return int(v)
        except (TypeError, ValueError, OverflowError):
            return None


class Report(BaseModel):
    """Review of a single item. Immutable once built."""
    model_config = ConfigDict(frozen=True)

    file_path: str
    language: str
    summary: str = ""
    issues: List[Issue] = Field(default_factory=list)

    @field_validator("summary", mode="before")
    @classmethod
    def summary_or_empty(cls, v):
        if v is None:
            return ""
        return v if isinstance(v, str) else str(v)


# ─── Request Models ────────────────────────────────────────────────────────────

class CodeReviewPayload(BaseModel):
    """JSON body accepted by POST /api/review."""
    code: Optional[str] = Field(default=None, description="The source code to review")
    language: Optional[str] = Field(default=None, description="Language label, detected from filename if omitted")
    filename: Optional[str] = Field(default=None, description="Optional filename (e.g. 'app.py')")
    prompt: Optional[str] = Field(default=None, description="Extra reviewer instructions, or a prompt-only review")

    model_config = ConfigDict(
        json_schema_extra={
            "example": {
                "code": "def divide(a, b):\n    return a / b",
                "filename": "math_utils.py",
                "prompt": "Focus on error handling",
            }
        }
    )


# ─── Response Models ───────────────────────────────────────────────────────────

class BatchReviewResponse(BaseModel):
    """Full review response: one report per submitted item, in order."""
    report_id: str
    status: str = "completed"
    summary: str
    files: List[Report] = Field(default_factory=list)


class HealthResponse(BaseModel):
    status: str
    model_backend: str
    version: str


class ResolvedModelResponse(BaseModel):
    model: str
