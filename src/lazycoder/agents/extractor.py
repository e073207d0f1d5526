"""Structured payload extraction from free-text model responses.

Generation service responses are expected to contain JSON but frequently
arrive wrapped in Markdown fences or surrounded by prose. ``clean_and_parse_json``
recovers the payload with a deliberately simple heuristic:

1. Trim the text.
2. If a fenced block (```` ``` ```` or ```` ```json ````) exists, keep its inner content.
3. The payload starts at the first ``{`` or ``[``, whichever comes first.
4. The payload ends at the *last* closing delimiter of the same type:
   the last ``}`` for objects, the last ``]`` for arrays.
5. Parse the resulting span with :func:`json.loads`.

Step 4 is an outermost-span heuristic, not a balanced-bracket scan. Prose
after the payload that contains the same closing character (``"{...} see }"``)
widens the span and the parse fails. That limitation is accepted; callers
that can tolerate failure pass a default.
"""

from __future__ import annotations

import json
import re
from typing import Any, TypeVar

import structlog

logger = structlog.get_logger(__name__)

T = TypeVar("T")

_MISSING: Any = object()

_FENCE_PATTERN = re.compile(r"```(?:json)?\s*([\s\S]*?)\s*```", re.IGNORECASE)


class ExtractionError(ValueError):
    """Raised when no structured payload can be recovered from a response.

    Attributes:
        original: The raw text as received
        cleaned: The text after fence stripping and span extraction
    """

    def __init__(self, message: str, original: str, cleaned: str) -> None:
        self.original = original
        self.cleaned = cleaned
        super().__init__(message)

    def __str__(self) -> str:
        return (
            f"{self.args[0]} (original={self.original[:200]!r}, "
            f"cleaned={self.cleaned[:200]!r})"
        )


def extract_payload_span(text: str) -> str | None:
    """Isolate the candidate JSON span in ``text``.

    Args:
        text: Raw response text

    Returns:
        The cleaned candidate span, or None when no opening delimiter exists
    """
    cleaned = text.strip()

    match = _FENCE_PATTERN.search(cleaned)
    if match and match.group(1):
        cleaned = match.group(1).strip()

    candidates = [i for i in (cleaned.find("{"), cleaned.find("[")) if i != -1]
    if not candidates:
        return None
    start = min(candidates)

    closing = "}" if cleaned[start] == "{" else "]"
    end = cleaned.rfind(closing)
    if end > start:
        cleaned = cleaned[start : end + 1]
    else:
        cleaned = cleaned[start:]
    return cleaned


def clean_and_parse_json(text: str | None, default: T = _MISSING) -> Any:
    """Parse a JSON payload out of a noisy model response.

    Args:
        text: Raw response text, possibly fenced or wrapped in prose
        default: Value returned instead of raising on any failure

    Returns:
        The parsed JSON value, or ``default`` when parsing fails and a
        default was supplied

    Raises:
        ExtractionError: If parsing fails and no default was supplied

    Example:
        >>> clean_and_parse_json('Here is your data: {"x": [1, 2]} thanks')
        {'x': [1, 2]}
    """
    has_default = default is not _MISSING
    original = text or ""

    if not original.strip():
        if has_default:
            return default
        raise ExtractionError("Received empty text for JSON parsing", original, "")

    cleaned = extract_payload_span(original)
    if cleaned is None:
        if has_default:
            return default
        raise ExtractionError(
            "No JSON object or array found in response", original, original.strip()
        )

    try:
        return json.loads(cleaned)
    except json.JSONDecodeError as e:
        logger.debug(
            "json_parse_failed",
            error=str(e),
            original_length=len(original),
            cleaned_length=len(cleaned),
        )
        if has_default:
            return default
        raise ExtractionError(
            f"Failed to parse AI response as JSON: {e}", original, cleaned
        ) from e
