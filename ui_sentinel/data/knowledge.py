"""Knowledge base — persisted, scored patterns for recurring conditions.

Patterns live in one JSON file, rewritten atomically on every mutation.
Readers work against an immutable tuple snapshot. Writers serialize on a
lock shared by every instance opened on the same file, re-read the file,
apply their change to what is on disk, and swap the snapshot only after the
write has landed.
"""

from __future__ import annotations

import dataclasses
import json
import logging
import os
import re
import tempfile
import threading
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Callable, Iterable, Optional
from urllib.parse import urlparse

from ui_sentinel.core.models import (
    ConditionEvent,
    InsightResponse,
    KnownPattern,
)
from ui_sentinel.data.fingerprint import normalize_dashes
from ui_sentinel.exceptions import KnowledgeBaseError, PatternValidationError

logger = logging.getLogger(__name__)

MIN_MATCH_SIGNALS_FLOOR = 3
FORMAT_VERSION = 1

_DEFAULT_KB_PATH = os.path.join(
    str(Path.home()), ".ui-sentinel", "knowledge_base.json"
)


_PATH_LOCKS: dict[str, threading.Lock] = {}
_PATH_LOCKS_GUARD = threading.Lock()


def path_lock(path: str) -> threading.Lock:
    """Return the process-wide lock guarding writes to *path*."""
    key = os.path.realpath(path)
    with _PATH_LOCKS_GUARD:
        return _PATH_LOCKS.setdefault(key, threading.Lock())


def validate_pattern(pattern: KnownPattern) -> None:
    """Raise PatternValidationError if *pattern* may not be persisted."""
    if not pattern.id:
        raise PatternValidationError("pattern id is required")
    if pattern.min_match_signals < MIN_MATCH_SIGNALS_FLOOR:
        raise PatternValidationError(
            f"min_match_signals={pattern.min_match_signals} is below the "
            f"floor of {MIN_MATCH_SIGNALS_FLOOR}",
            pattern_id=pattern.id,
        )


# ── Scoring ─────────────────────────────────────────────────────────


def _url_matches(pattern: str, url: Optional[str]) -> bool:
    if not url:
        return False
    if pattern in url:
        return True
    try:
        return re.search(pattern, url) is not None
    except re.error:
        return False


def _contains(needle: str, haystack: Optional[str]) -> bool:
    return bool(haystack) and needle in haystack


def score(pattern: KnownPattern, event: ConditionEvent) -> int:
    """Count the pattern's defined signals that match the event."""
    points = 0
    if pattern.url_pattern and _url_matches(pattern.url_pattern, event.current_url):
        points += 1
    if pattern.locator_value_pattern and event.locator_value:
        if normalize_dashes(pattern.locator_value_pattern) in normalize_dashes(
            event.locator_value
        ):
            points += 1
    if pattern.condition_kind is not None and pattern.condition_kind is event.kind:
        points += 1
    if pattern.exception_type and (
        _contains(pattern.exception_type, event.stack_trace)
        or pattern.exception_type == event.exception_type
    ):
        points += 1
    if pattern.message_contains and _contains(pattern.message_contains, event.message):
        points += 1
    if pattern.dom_contains and _contains(pattern.dom_contains, event.dom_snapshot):
        points += 1
    return points


def is_candidate(pattern: KnownPattern, event: ConditionEvent) -> bool:
    return score(pattern, event) >= pattern.min_match_signals


# ── Repository ──────────────────────────────────────────────────────


class KnowledgeBase:
    """Thread-safe repository of known patterns backed by a JSON file."""

    def __init__(
        self,
        path: Optional[str] = None,
        clock: Callable[[], datetime] = lambda: datetime.now(timezone.utc),
    ):
        self.path = path or _DEFAULT_KB_PATH
        self._clock = clock
        self._lock = path_lock(self.path)
        self._patterns: tuple[KnownPattern, ...] = ()
        self.reload()

    # -----------------------------------------------------------------
    # Reads (lock-free against the current snapshot)
    # -----------------------------------------------------------------

    def patterns(self) -> tuple[KnownPattern, ...]:
        """All patterns, including disabled ones."""
        return self._patterns

    def enabled_patterns(self) -> tuple[KnownPattern, ...]:
        return tuple(p for p in self._patterns if p.enabled)

    def get(self, pattern_id: str) -> Optional[KnownPattern]:
        for pattern in self._patterns:
            if pattern.id == pattern_id:
                return pattern
        return None

    def __len__(self) -> int:
        return len(self._patterns)

    def match(self, event: ConditionEvent) -> Optional[KnownPattern]:
        """Return the best candidate for *event*, or None.

        Highest score wins; ties go to the lowest pattern id.
        """
        best: Optional[KnownPattern] = None
        best_score = -1
        for pattern in self._patterns:
            if not pattern.enabled:
                continue
            try:
                points = score(pattern, event)
            except Exception:
                logger.warning("Scoring failed for pattern %s", pattern.id, exc_info=True)
                continue
            if points < pattern.min_match_signals:
                continue
            if points > best_score or (
                points == best_score and best is not None and pattern.id < best.id
            ):
                best, best_score = pattern, points
        if best is not None:
            logger.info("Knowledge base matched %s (score %d)", best.id, best_score)
        return best

    # -----------------------------------------------------------------
    # Mutations (re-read under the file lock, persisted, then published)
    # -----------------------------------------------------------------

    def add(self, pattern: KnownPattern) -> KnownPattern:
        """Add a new pattern; raise ValueError if the id already exists."""
        validate_pattern(pattern)
        pattern = self._stamp(pattern)
        with self._lock:
            current = self._refresh()
            if any(p.id == pattern.id for p in current):
                raise ValueError(f"Pattern {pattern.id!r} already exists")
            self._commit(current + (pattern,))
        logger.info("Added pattern %s", pattern.id)
        return pattern

    def learn(self, pattern: KnownPattern) -> KnownPattern:
        """Insert *pattern*, replacing any existing pattern with the same id."""
        validate_pattern(pattern)
        pattern = self._stamp(pattern)
        with self._lock:
            kept = tuple(p for p in self._refresh() if p.id != pattern.id)
            self._commit(kept + (pattern,))
        logger.info("Learned pattern %s", pattern.id)
        return pattern

    def learn_from_insight(
        self,
        event: ConditionEvent,
        insight: InsightResponse,
        pattern_id: str,
        added_by: str = "remote-analysis",
        description: str = "",
    ) -> KnownPattern:
        """Promote a resolved diagnosis into a pattern keyed on the event's signals."""
        pattern = KnownPattern(
            id=pattern_id,
            description=description or insight.root_cause[:120],
            url_pattern=learned_url_pattern(event.current_url),
            locator_value_pattern=event.locator_value or None,
            condition_kind=event.kind,
            exception_type=event.exception_type,
            min_match_signals=MIN_MATCH_SIGNALS_FLOOR,
            category=insight.category,
            root_cause=insight.root_cause,
            confidence=insight.confidence,
            is_transient=insight.is_transient,
            suggested_outcome=insight.suggested_outcome,
            action_plan=insight.action_plan,
            evidence_highlights=tuple(insight.evidence_highlights),
            added_by=added_by,
            notes=f"Learned from condition {insight.condition_id}",
        )
        if pattern.signal_count() < pattern.min_match_signals:
            raise PatternValidationError(
                f"only {pattern.signal_count()} signal(s) available; "
                f"{pattern.min_match_signals} required",
                pattern_id=pattern_id,
            )
        return self.learn(pattern)

    def disable(self, pattern_id: str) -> KnownPattern:
        return self._update(pattern_id, enabled=False)

    def enable(self, pattern_id: str) -> KnownPattern:
        return self._update(pattern_id, enabled=True)

    def record_hit(self, pattern_id: str) -> KnownPattern:
        with self._lock:
            self._refresh()
            current = self._require(pattern_id)
            updated = dataclasses.replace(
                current, hit_count=current.hit_count + 1, last_hit=self._clock()
            )
            self._commit(self._replace_one(updated))
        return updated

    def reload(self) -> None:
        """Re-read the file. Raises KnowledgeBaseError or PatternValidationError."""
        with self._lock:
            self._refresh()
        logger.debug("Loaded %d pattern(s) from %s", len(self._patterns), self.path)

    # -----------------------------------------------------------------
    # Internals
    # -----------------------------------------------------------------

    def _update(self, pattern_id: str, **changes: Any) -> KnownPattern:
        with self._lock:
            self._refresh()
            updated = dataclasses.replace(self._require(pattern_id), **changes)
            self._commit(self._replace_one(updated))
        return updated

    def _refresh(self) -> tuple[KnownPattern, ...]:
        """Adopt the on-disk patterns. Caller must hold the lock."""
        self._patterns = tuple(self._load())
        return self._patterns

    def _require(self, pattern_id: str) -> KnownPattern:
        pattern = self.get(pattern_id)
        if pattern is None:
            raise KeyError(f"Unknown pattern: {pattern_id!r}")
        return pattern

    def _replace_one(self, updated: KnownPattern) -> tuple[KnownPattern, ...]:
        return tuple(updated if p.id == updated.id else p for p in self._patterns)

    def _stamp(self, pattern: KnownPattern) -> KnownPattern:
        if pattern.added_at is None:
            return dataclasses.replace(pattern, added_at=self._clock())
        return pattern

    def _commit(self, patterns: tuple[KnownPattern, ...]) -> None:
        """Persist then publish. Caller must hold the lock."""
        write_json_atomic(
            self.path,
            {
                "version": FORMAT_VERSION,
                "patterns": [p.to_dict() for p in patterns],
            },
        )
        self._patterns = patterns

    def _load(self) -> list[KnownPattern]:
        if not os.path.exists(self.path):
            return []
        try:
            with open(self.path, encoding="utf-8") as f:
                data = json.load(f)
        except (OSError, json.JSONDecodeError) as e:
            raise KnowledgeBaseError(f"Cannot read knowledge base {self.path}: {e}") from e

        raw = data.get("patterns", []) if isinstance(data, dict) else data
        if not isinstance(raw, list):
            raise KnowledgeBaseError(f"{self.path}: 'patterns' must be a list")

        patterns = []
        for entry in raw:
            try:
                pattern = KnownPattern.from_dict(entry)
            except (KeyError, TypeError, ValueError) as e:
                raise KnowledgeBaseError(f"{self.path}: malformed pattern {entry!r}: {e}") from e
            validate_pattern(pattern)
            patterns.append(pattern)
        return patterns


def learned_url_pattern(url: Optional[str]) -> Optional[str]:
    """Anchor a learned URL signal on host and path.

    A bare "/" path is a substring of every URL, so a URL with neither a host
    nor a meaningful path yields no signal at all.
    """
    if not url:
        return None
    parsed = urlparse(url)
    path = parsed.path if parsed.path not in ("", "/") else ""
    if not parsed.netloc and not path:
        return None
    return re.escape(parsed.netloc + (path or "/"))


def write_json_atomic(path: str, payload: Any) -> None:
    """Write JSON to a sibling temp file, fsync, then rename over *path*."""
    directory = os.path.dirname(os.path.abspath(path))
    os.makedirs(directory, exist_ok=True)
    fd, tmp_path = tempfile.mkstemp(
        prefix=f".{os.path.basename(path)}.", suffix=".tmp", dir=directory
    )
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as f:
            json.dump(payload, f, indent=2, sort_keys=False)
            f.write("\n")
            f.flush()
            os.fsync(f.fileno())
        os.replace(tmp_path, path)
    except BaseException:
        try:
            os.unlink(tmp_path)
        except OSError:
            pass
        raise


def load_patterns(entries: Iterable[dict[str, Any]]) -> list[KnownPattern]:
    """Parse and validate pattern dictionaries (e.g. from a seed file)."""
    patterns = [KnownPattern.from_dict(e) for e in entries]
    for pattern in patterns:
        validate_pattern(pattern)
    return patterns
