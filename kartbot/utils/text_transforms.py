"""
Post-processing of answer text before it reaches the user.

Each transform is a pure str -> str function. They run in the order of
ANSWER_TRANSFORMS after generation (and over canned answers too).
"""
import re
from typing import Callable, Iterable, List

Transform = Callable[[str], str]

_FENCE_RE = re.compile(r"^\s*```[a-zA-Z0-9_-]*\s*\n(.*?)\n?\s*```\s*$", re.DOTALL)
_BR_RE = re.compile(r"<br\s*/?>", re.IGNORECASE)
_TAG_RE = re.compile(r"</?[a-zA-Z][a-zA-Z0-9]*(?:\s[^<>]*)?/?>")
_BLANK_LINES_RE = re.compile(r"\n{3,}")


def strip_code_fence(text: str) -> str:
    """Unwrap an answer the model returned inside a single code fence."""
    match = _FENCE_RE.match(text)
    return match.group(1) if match else text


def strip_html(text: str) -> str:
    """Drop HTML tags; answers are Markdown only."""
    text = _BR_RE.sub("\n", text)
    return _TAG_RE.sub("", text)


def enforce_gbp(text: str) -> str:
    """Prices are always quoted in pounds."""
    return (text or "").replace("$", "£")


def normalize_whitespace(text: str) -> str:
    lines = [line.rstrip() for line in text.strip().splitlines()]
    return _BLANK_LINES_RE.sub("\n\n", "\n".join(lines))


ANSWER_TRANSFORMS: List[Transform] = [
    strip_code_fence,
    strip_html,
    enforce_gbp,
    normalize_whitespace,
]


def apply_transforms(text: str, transforms: Iterable[Transform] = ANSWER_TRANSFORMS) -> str:
    for transform in transforms:
        text = transform(text)
    return text
