"""Fingerprinting — normalises and hashes conditions for deduplication."""

from __future__ import annotations

import hashlib
import re
from typing import TYPE_CHECKING, Optional

if TYPE_CHECKING:
    from ui_sentinel.core.models import ConditionEvent, Matched


# Hyphen, non-breaking hyphen, figure dash, en dash, em dash, minus sign, etc.
_DASHES = re.compile("[‐‑‒–—―−﹘﹣－]")
# Bare hex ids must contain a digit
_HEX_ID = re.compile(r"\b0x[0-9a-f]+\b|\b(?=[0-9a-f]*[0-9])[0-9a-f]{8,}\b")
_NUMBER = re.compile(r"\d+")
_WHITESPACE = re.compile(r"\s+")


def normalize_dashes(text: str) -> str:
    """Replace typographic dash characters with a plain hyphen."""
    return _DASHES.sub("-", text)


def normalize_message(message: Optional[str]) -> str:
    """Reduce a failure message to its stable shape.

    Volatile parts (ids, counters, timings) are replaced with ``#`` so that
    two occurrences of the same failure produce the same text.
    """
    if not message:
        return ""
    text = normalize_dashes(message).lower()
    text = _HEX_ID.sub("#", text)
    text = _NUMBER.sub("#", text)
    return _WHITESPACE.sub(" ", text).strip()


def extract_exception_type(stack_trace: Optional[str]) -> Optional[str]:
    """Return the simple class name of the exception in a stack trace.

    Handles both layouts: Python tracebacks name the exception on the last
    line, other runtimes on the first.
    """
    if not stack_trace or not stack_trace.strip():
        return None
    lines = [line.strip() for line in stack_trace.strip().splitlines() if line.strip()]
    line = lines[-1] if lines[0].startswith("Traceback") else lines[0]
    head = line.split(":", 1)[0].strip()
    if not head or " " in head:
        return None
    return head.rsplit(".", 1)[-1]


def condition_hash(event: ConditionEvent) -> str:
    """Content hash identifying repeated occurrences of the same condition."""
    parts = [
        event.kind.value,
        event.exception_type or "",
        normalize_message(event.message),
        normalize_dashes(event.locator_value or ""),
    ]
    serialized = "|".join(parts).encode()
    return hashlib.sha256(serialized).hexdigest()[:16]


def condition_signature(outcome: Matched) -> str:
    """Short signature of a checker match, used in cascade logging."""
    data = f"{outcome.checker_id}:{outcome.category.value}"
    return hashlib.sha256(data.encode()).hexdigest()[:12]
