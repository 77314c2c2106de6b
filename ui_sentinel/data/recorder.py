"""Unknown-condition recorder — a deduplicated log of conditions nothing explained.

Operators review the log to author new checkers or knowledge patterns.
Every mutation re-reads the file under the lock shared by all recorders on
that path, so separate recorders on one log never drop each other's entries.
"""

from __future__ import annotations

import dataclasses
import json
import logging
import os
from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from pathlib import Path
from typing import Any, Callable, Optional

from ui_sentinel.core.models import ConditionEvent
from ui_sentinel.data.fingerprint import condition_hash
from ui_sentinel.data.knowledge import path_lock, write_json_atomic
from ui_sentinel.exceptions import KnowledgeBaseError

logger = logging.getLogger(__name__)

DOM_SNIPPET_CHARS = 500
STACK_EXCERPT_LINES = 5

_DEFAULT_LOG_PATH = os.path.join(
    str(Path.home()), ".ui-sentinel", "unknown_conditions.json"
)


class RecordStatus(Enum):
    NEW = "NEW"
    REVIEWED = "REVIEWED"
    PATTERN_CREATED = "PATTERN_CREATED"
    IGNORED = "IGNORED"


_FROZEN_STATUSES = (RecordStatus.PATTERN_CREATED, RecordStatus.IGNORED)


@dataclass(frozen=True)
class UnknownConditionRecord:
    hash: str
    condition_kind: str
    message: str
    exception_type: Optional[str] = None
    locator_value: Optional[str] = None
    current_url: Optional[str] = None
    dom_snippet: Optional[str] = None
    stack_excerpt: Optional[str] = None
    occurrence_count: int = 1
    first_seen: str = ""
    last_seen: str = ""
    status: RecordStatus = RecordStatus.NEW
    notes: str = ""

    def to_dict(self) -> dict[str, Any]:
        data = dataclasses.asdict(self)
        data["status"] = self.status.value
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> UnknownConditionRecord:
        fields = {f.name for f in dataclasses.fields(cls)}
        values = {k: v for k, v in data.items() if k in fields}
        values["status"] = RecordStatus(values.get("status", "NEW"))
        return cls(**values)


class UnknownConditionRecorder:
    """Appends unexplained conditions to a JSON log, one entry per content hash."""

    def __init__(
        self,
        path: Optional[str] = None,
        clock: Callable[[], datetime] = lambda: datetime.now(timezone.utc),
    ):
        self.path = path or _DEFAULT_LOG_PATH
        self._clock = clock
        self._lock = path_lock(self.path)
        self._records: tuple[UnknownConditionRecord, ...] = tuple(self._load())

    def record(self, event: ConditionEvent) -> UnknownConditionRecord:
        """Log *event*, incrementing the count if it was seen before."""
        digest = condition_hash(event)
        now = self._clock().isoformat()
        with self._lock:
            self._refresh()
            existing = self._find(digest)
            if existing is not None:
                if existing.status in _FROZEN_STATUSES:
                    logger.debug(
                        "Unknown condition %s already %s; not counted",
                        digest, existing.status.value,
                    )
                    return existing
                updated = dataclasses.replace(
                    existing,
                    occurrence_count=existing.occurrence_count + 1,
                    last_seen=now,
                )
                self._commit(tuple(
                    updated if r.hash == digest else r for r in self._records
                ))
                logger.info(
                    "Unknown condition %s seen %d times", digest, updated.occurrence_count
                )
                return updated

            record = _new_record(digest, event, now)
            self._commit(self._records + (record,))
        logger.info("Recorded new unknown condition %s", digest)
        return record

    def records(self, status: Optional[RecordStatus] = None) -> list[UnknownConditionRecord]:
        return [r for r in self._records if status is None or r.status is status]

    def get(self, digest: str) -> Optional[UnknownConditionRecord]:
        return self._find(digest)

    def reload(self) -> None:
        with self._lock:
            self._refresh()

    def mark_reviewed(self, digest: str, notes: str = "") -> UnknownConditionRecord:
        return self._set_status(digest, RecordStatus.REVIEWED, notes)

    def mark_pattern_created(self, digest: str, pattern_id: str) -> UnknownConditionRecord:
        return self._set_status(
            digest, RecordStatus.PATTERN_CREATED, f"Pattern created: {pattern_id}"
        )

    def mark_ignored(self, digest: str, notes: str = "") -> UnknownConditionRecord:
        return self._set_status(digest, RecordStatus.IGNORED, notes)

    def _set_status(
        self, digest: str, status: RecordStatus, notes: str
    ) -> UnknownConditionRecord:
        with self._lock:
            self._refresh()
            existing = self._find(digest)
            if existing is None:
                raise KeyError(f"Unknown condition record: {digest!r}")
            updated = dataclasses.replace(
                existing, status=status, notes=notes or existing.notes
            )
            self._commit(tuple(
                updated if r.hash == digest else r for r in self._records
            ))
        return updated

    def _find(self, digest: str) -> Optional[UnknownConditionRecord]:
        for record in self._records:
            if record.hash == digest:
                return record
        return None

    def _refresh(self) -> None:
        self._records = tuple(self._load())

    def _commit(self, records: tuple[UnknownConditionRecord, ...]) -> None:
        write_json_atomic(self.path, [r.to_dict() for r in records])
        self._records = records

    def _load(self) -> list[UnknownConditionRecord]:
        if not os.path.exists(self.path):
            return []
        try:
            with open(self.path, encoding="utf-8") as f:
                raw = json.load(f)
            return [UnknownConditionRecord.from_dict(entry) for entry in raw]
        except (OSError, json.JSONDecodeError, TypeError, ValueError) as e:
            raise KnowledgeBaseError(
                f"Cannot read unknown-condition log {self.path}: {e}"
            ) from e


def _new_record(digest: str, event: ConditionEvent, now: str) -> UnknownConditionRecord:
    stack_excerpt = None
    if event.stack_trace:
        stack_excerpt = "\n".join(event.stack_trace.splitlines()[:STACK_EXCERPT_LINES])
    dom_snippet = event.dom_snapshot[:DOM_SNIPPET_CHARS] if event.dom_snapshot else None
    return UnknownConditionRecord(
        hash=digest,
        condition_kind=event.kind.value,
        message=event.message,
        exception_type=event.exception_type,
        locator_value=event.locator_value,
        current_url=event.current_url,
        dom_snippet=dom_snippet,
        stack_excerpt=stack_excerpt,
        first_seen=now,
        last_seen=now,
    )
