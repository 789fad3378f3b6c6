"""
exceptions.py
=============
Errors raised while talking to the upstream model API.

Only listing/resolution failures escape the review pipeline.
GenerationCallFailed is absorbed into a degraded report by the service.
"""

from typing import List, Optional

from app.models.schemas import ModelCandidate


class ReviewGatewayError(Exception):
    """Base class for all gateway errors."""


class CandidateListingFailed(ReviewGatewayError):
    """Listing the upstream models failed (transport or non-2xx)."""

    def __init__(self, status: Optional[int], body: str):
        self.status = status
        self.body = body
        if status is None:
            message = f"List models failed: {body}"
        else:
            message = f"List models failed: HTTP {status} {body}".rstrip()
        super().__init__(message)


class NoCompatibleModel(ReviewGatewayError):
    """The listing succeeded but nothing supports generateContent."""

    def __init__(self, candidates: List[ModelCandidate]):
        self.candidates = candidates
        names = "\n".join(f"{c.identifier} [{','.join(c.methods)}]" for c in candidates)
        super().__init__(
            f"No compatible Gemini model found for this API key. Available:\n{names}"
        )


class GenerationCallFailed(ReviewGatewayError):
    """The generateContent call failed; status is None for transport errors."""

    def __init__(self, status: Optional[int], body: str):
        self.status = status
        self.body = body
        super().__init__(f"Generate call failed: HTTP {status} {body}" if status else body)

    @property
    def model_not_found(self) -> bool:
        return self.status == 404
