"""
test_review_service.py
======================
The end-to-end pipeline with a scripted upstream.
"""

import asyncio
import json

import httpx
import pytest

from app.core.exceptions import CandidateListingFailed, NoCompatibleModel
from app.models.schemas import ReviewRequest, Severity
from app.services.content import TRUNCATION_MARKER
from app.services.gemini_client import GeminiClient
from app.services.review_service import ReviewService
from conftest import FakeGemini, generated, listing, make_settings


def review_json(file_path, severity="high"):
    return json.dumps({
        "file_path": file_path,
        "language": "Python",
        "summary": f"Reviewed {file_path}",
        "issues": [{"severity": severity, "title": "Issue", "details": "d", "suggestion": "s"}],
    })


def make_service(fake, **overrides):
    return ReviewService(make_settings(**overrides), client=fake.client())


def test_review_returns_normalized_report():
    fake = FakeGemini(default=(200, generated("```json\n" + review_json("app.py") + "\n```")))
    report = asyncio.run(make_service(fake).review(ReviewRequest(name="app.py", content="x = 1")))

    assert report.file_path == "app.py"
    assert report.summary == "Reviewed app.py"
    assert report.issues[0].severity is Severity.MAJOR


def test_review_uses_detected_language_in_prompt():
    fake = FakeGemini()
    asyncio.run(make_service(fake).review(ReviewRequest(name="lib.RS", content="fn main() {}")))

    body = fake.generate_calls[0][2]
    assert "Language: Rust" in body["contents"][0]["parts"][1]["text"]


def test_review_language_hint_wins():
    fake = FakeGemini(default=(200, generated("plain words")))
    report = asyncio.run(make_service(fake).review(
        ReviewRequest(name="notes.txt", language_hint="Go", content="package main")
    ))
    assert report.language == "Go"
    assert report.summary == "plain words"


def test_review_truncates_long_content():
    fake = FakeGemini()
    service = make_service(fake, MAX_CODE_LENGTH=200)
    asyncio.run(service.review(ReviewRequest(name="big.py", content="y" * 5000)))

    prompt = fake.generate_calls[0][2]["contents"][0]["parts"][1]["text"]
    code = prompt.split("<CODE>\n", 1)[1].rsplit("\n</CODE>", 1)[0]
    assert TRUNCATION_MARKER in code
    assert len(code) <= 200


def test_generation_failure_degrades():
    fake = FakeGemini(default=(500, "internal error"))
    report = asyncio.run(make_service(fake).review(ReviewRequest(name="a.py", content="x")))

    assert report.summary == "LLM error: HTTP 500. internal error"
    assert report.issues == []
    assert report.file_path == "a.py"
    assert report.language == "Python"


def test_not_found_invalidates_cached_model():
    fake = FakeGemini(models=listing(("X", True)), default=(404, "model X not found"))
    service = make_service(fake)

    async def scenario():
        degraded = await service.review(ReviewRequest(name="a.py", content="x"))
        assert service.resolver.cached is None
        fake.default = (200, generated("ok"))
        fake.models = listing(("Y", True))
        healthy = await service.review(ReviewRequest(name="a.py", content="x"))
        return degraded, healthy

    degraded, healthy = asyncio.run(scenario())
    assert "HTTP 404" in degraded.summary
    assert healthy.summary == "ok"
    assert fake.list_calls == 2
    assert fake.generate_calls[-1][0].endswith("/models/Y:generateContent")


def test_other_failures_keep_cached_model():
    fake = FakeGemini(default=(429, "quota"))
    service = make_service(fake)
    asyncio.run(service.review(ReviewRequest(name="a.py", content="x")))
    assert service.resolver.cached == "gemini-2.5-pro"


def test_resolution_failures_propagate():
    fake = FakeGemini(models=listing(("text-embedding-004", False)))
    with pytest.raises(NoCompatibleModel):
        asyncio.run(make_service(fake).review(ReviewRequest(name="a.py", content="x")))
    assert fake.generate_calls == []


def test_missing_key_fails_when_required():
    service = ReviewService(make_settings(GEMINI_API_KEY=None, FAIL_ON_MISSING_KEY=True))
    with pytest.raises(CandidateListingFailed):
        asyncio.run(service.review(ReviewRequest(name="a.py", content="x")))


def test_mock_mode_returns_canned_report():
    fake = FakeGemini()
    service = ReviewService(make_settings(GEMINI_API_KEY=None), client=fake.client())
    report = asyncio.run(service.review(ReviewRequest(name="a.js", content="x == y")))

    assert service.backend_name == "mock"
    assert "MOCK mode" in report.summary
    assert report.language == "JavaScript"
    assert report.issues[0].severity is Severity.MINOR
    assert fake.list_calls == 0
    assert fake.generate_calls == []


@pytest.mark.parametrize("concurrency", [1, 4])
def test_batch_preserves_order_when_one_item_fails(concurrency):
    fake = FakeGemini(replies={
        "first.py": (200, generated(review_json("first.py"))),
        "second.py": (503, "overloaded"),
        "pasted-Python.txt": (200, generated(review_json("pasted-Python.txt", "low"))),
    })
    service = make_service(fake, MAX_CONCURRENT_REVIEWS=concurrency)
    requests = [
        ReviewRequest(name="first.py", content="a = 1"),
        ReviewRequest(name="second.py", content="b = 2"),
        ReviewRequest(name="pasted-Python.txt", language_hint="Python", content="c = 3"),
    ]
    reports = asyncio.run(service.review_batch(requests))

    assert [r.file_path for r in reports] == ["first.py", "second.py", "pasted-Python.txt"]
    assert reports[1].summary == "LLM error: HTTP 503. overloaded"
    assert reports[2].issues[0].severity is Severity.INFO


def test_batch_survives_non_finite_line_numbers():
    hostile = (
        '{"file_path": "b.py", "language": "Python", "summary": "odd", '
        '"issues": [{"severity": "high", "title": "t", "line_end": Infinity}]}'
    )
    fake = FakeGemini(replies={"b.py": (200, generated(hostile))})
    requests = [ReviewRequest(name=n, content="x = 1") for n in ("a.py", "b.py", "c.py")]
    reports = asyncio.run(make_service(fake).review_batch(requests))

    assert len(reports) == 3
    assert reports[1].summary == "odd"
    assert reports[1].issues[0].line_end is None


def test_batch_resolution_failure_lists_once_and_generates_nothing():
    fake = FakeGemini(models=listing(("text-embedding-004", False)))
    requests = [ReviewRequest(name=f"f{i}.py", content="x") for i in range(3)]

    with pytest.raises(NoCompatibleModel):
        asyncio.run(make_service(fake).review_batch(requests))
    assert fake.list_calls == 1
    assert fake.generate_calls == []


def test_batch_listing_failure_lists_once():
    calls = []

    def handler(request):
        calls.append(request.method)
        return httpx.Response(500, text="backend error")

    service = ReviewService(make_settings(), client=GeminiClient(api_key="k", transport=httpx.MockTransport(handler)))
    requests = [ReviewRequest(name=f"f{i}.py", content="x") for i in range(3)]

    with pytest.raises(CandidateListingFailed):
        asyncio.run(service.review_batch(requests))
    assert calls == ["GET"]


def test_batch_cancels_remaining_items_on_hard_failure():
    service = make_service(FakeGemini())
    started, cancelled = [], []

    async def fake_review(request):
        started.append(request.name)
        if request.name == "bad.py":
            raise NoCompatibleModel([])
        try:
            await asyncio.sleep(10)
        except asyncio.CancelledError:
            cancelled.append(request.name)
            raise

    service.review = fake_review
    requests = [ReviewRequest(name=n, content="x") for n in ("slow1.py", "bad.py", "slow2.py")]

    with pytest.raises(NoCompatibleModel):
        asyncio.run(service.review_batch(requests))
    assert sorted(cancelled) == ["slow1.py", "slow2.py"]


def test_empty_batch():
    fake = FakeGemini()
    assert asyncio.run(make_service(fake).review_batch([])) == []
    assert fake.list_calls == 0
