"""
content.py
==========
Prepares review content before it goes upstream:
language detection from the file name, prompt composition and
head/tail truncation for oversized inputs.
"""

import re
from typing import Optional

PLAINTEXT = "plaintext"

TRUNCATION_MARKER = "\n\n/* ... truncated ... */\n\n"

PROMPT_SEPARATOR = "\n\n---\n\n"

EXTENSION_LANGUAGES = {
    "js": "JavaScript", "jsx": "JavaScript", "ts": "TypeScript", "tsx": "TypeScript",
    "py": "Python", "java": "Java", "cs": "C#", "cpp": "C++", "c": "C",
    "rb": "Ruby", "go": "Go", "php": "PHP", "rs": "Rust", "kt": "Kotlin",
    "swift": "Swift", "scala": "Scala", "sh": "Shell", "bash": "Shell",
    "json": "JSON", "yml": "YAML", "yaml": "YAML", "md": "Markdown",
    "html": "HTML", "css": "CSS", "scss": "SCSS",
}

_EXTENSION_RE = re.compile(r"\.([a-z0-9]+)$")


def classify(name: Optional[str]) -> str:
    """Map a file name to a language label by its extension."""
    match = _EXTENSION_RE.search((name or "").lower())
    if not match:
        return PLAINTEXT
    return EXTENSION_LANGUAGES.get(match.group(1), PLAINTEXT)


def bound(text: str, max_chars: int, head_ratio: float = 0.7) -> str:
    """
    Keep ``text`` within ``max_chars``.

    Oversized text keeps its opening and closing sections joined by a
    truncation marker. The result (marker included) never exceeds
    ``max_chars``, so bounding twice gives the same result.
    """
    if not text:
        return ""
    if len(text) <= max_chars:
        return text

    budget = max_chars - len(TRUNCATION_MARKER)
    if budget <= 0:
        return text[:max(max_chars, 0)]

    head = int(budget * head_ratio)
    tail = budget - head
    return text[:head] + TRUNCATION_MARKER + text[len(text) - tail:]


def compose(prompt: Optional[str], code: str) -> str:
    """Prefix reviewer instructions to the code, if any were given."""
    prompt = (prompt or "").strip()
    if not prompt:
        return code
    return f"{prompt}{PROMPT_SEPARATOR}{code}"
