"""Core data models for ui-sentinel."""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from types import MappingProxyType
from typing import Any, Mapping, Optional, Union

from ui_sentinel.data.fingerprint import extract_exception_type


def _now() -> datetime:
    return datetime.now(timezone.utc)


def _parse_datetime(value: Any) -> Optional[datetime]:
    if not value:
        return None
    if isinstance(value, datetime):
        return value
    return datetime.fromisoformat(str(value))


def _format_datetime(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value else None


class ConditionKind(Enum):
    ELEMENT_NOT_FOUND = "element_not_found"
    TIMEOUT = "timeout"
    WRONG_PAGE = "wrong_page"
    ASSERTION_FAILURE = "assertion_failure"
    STALE_REFERENCE = "stale_reference"
    EXCEPTION = "exception"
    NETWORK_ERROR = "network_error"
    CUSTOM = "custom"


class ConditionCategory(Enum):
    OVERLAY = "OVERLAY"
    LOADING = "LOADING"
    STALE_DOM = "STALE_DOM"
    NAVIGATION = "NAVIGATION"
    INFRA = "INFRA"
    AUTH = "AUTH"
    TEST_DATA = "TEST_DATA"
    FLAKE = "FLAKE"
    APPLICATION_BUG = "APPLICATION_BUG"
    UNKNOWN = "UNKNOWN"


class SuggestedOutcome(Enum):
    CONTINUE = "CONTINUE"
    RETRY = "RETRY"
    SKIP = "SKIP"
    FAIL_WITH_CONTEXT = "FAIL_WITH_CONTEXT"
    INVESTIGATE = "INVESTIGATE"
    ESCALATE = "ESCALATE"


class RiskLevel(Enum):
    LOW = "LOW"
    MEDIUM = "MEDIUM"
    HIGH = "HIGH"

    @property
    def rank(self) -> int:
        return _RISK_RANK[self]

    def exceeds(self, ceiling: RiskLevel) -> bool:
        return self.rank > ceiling.rank


_RISK_RANK = {RiskLevel.LOW: 0, RiskLevel.MEDIUM: 1, RiskLevel.HIGH: 2}


class ActionType(Enum):
    CLICK = "CLICK"
    CLICK_IF_PRESENT = "CLICK_IF_PRESENT"
    WAIT_FOR_ELEMENT = "WAIT_FOR_ELEMENT"
    WAIT_FOR_URL = "WAIT_FOR_URL"
    WAIT_FIXED = "WAIT_FIXED"
    WAIT_AND_RETRY = "WAIT_AND_RETRY"
    SCROLL_TO_ELEMENT = "SCROLL_TO_ELEMENT"
    SCROLL_TO_TOP = "SCROLL_TO_TOP"
    DISMISS_OVERLAY = "DISMISS_OVERLAY"
    ACCEPT_ALERT = "ACCEPT_ALERT"
    DISMISS_ALERT = "DISMISS_ALERT"
    REFRESH_PAGE = "REFRESH_PAGE"
    NAVIGATE_BACK = "NAVIGATE_BACK"
    NAVIGATE_TO = "NAVIGATE_TO"
    EXECUTE_SCRIPT = "EXECUTE_SCRIPT"
    RETRY_ACTION = "RETRY_ACTION"
    CLEAR_COOKIES = "CLEAR_COOKIES"
    SWITCH_TO_FRAME = "SWITCH_TO_FRAME"
    SWITCH_TO_DEFAULT = "SWITCH_TO_DEFAULT"
    QUERY_APM = "QUERY_APM"
    CAPTURE_HAR = "CAPTURE_HAR"
    CAPTURE_SCREENSHOT = "CAPTURE_SCREENSHOT"
    SKIP_STEP = "SKIP_STEP"
    SKIP_TEST = "SKIP_TEST"
    ABORT_SUITE = "ABORT_SUITE"
    CUSTOM = "CUSTOM"


class InsightSource(Enum):
    LOCAL = "local"
    KNOWLEDGE_BASE = "kb"
    REMOTE = "remote"
    NONE = "none"


class CascadeState(Enum):
    RESOLVED = "RESOLVED"
    ESCALATED = "ESCALATED"
    UNRESOLVED = "UNRESOLVED"
    DIAGNOSED = "DIAGNOSED"
    ERROR = "ERROR"


def coerce_enum(enum_cls: type[Enum], value: Any, default: Any) -> Any:
    """Return ``enum_cls(value)``, matching names case-insensitively, or *default*."""
    if isinstance(value, enum_cls):
        return value
    if value is None:
        return default
    text = str(value).strip()
    try:
        return enum_cls(text)
    except ValueError:
        pass
    member = enum_cls.__members__.get(text.upper().replace("-", "_"))
    return member if member is not None else default


# ── Condition event ─────────────────────────────────────────────────


@dataclass(frozen=True)
class ConditionEvent:
    """Immutable snapshot of one failure under diagnosis."""

    kind: ConditionKind
    message: str
    stack_trace: Optional[str] = None
    current_url: Optional[str] = None
    expected_url: Optional[str] = None
    page_title: Optional[str] = None
    dom_snapshot: Optional[str] = None
    screenshot: Optional[str] = None  # base64 PNG
    console_logs: tuple[str, ...] = ()
    prior_steps: tuple[str, ...] = ()
    locator_strategy: Optional[str] = None
    locator_value: Optional[str] = None
    metadata: Mapping[str, str] = field(default_factory=dict)
    timestamp: datetime = field(default_factory=_now)

    def __post_init__(self) -> None:
        object.__setattr__(self, "console_logs", tuple(self.console_logs))
        object.__setattr__(self, "prior_steps", tuple(self.prior_steps))
        object.__setattr__(
            self, "metadata", MappingProxyType(dict(self.metadata))
        )

    @property
    def exception_type(self) -> Optional[str]:
        """Simple class name of the exception named in the stack trace."""
        return extract_exception_type(self.stack_trace)

    def to_dict(self) -> dict[str, Any]:
        return {
            "kind": self.kind.value,
            "message": self.message,
            "stack_trace": self.stack_trace,
            "current_url": self.current_url,
            "expected_url": self.expected_url,
            "page_title": self.page_title,
            "dom_snapshot": self.dom_snapshot,
            "screenshot": self.screenshot,
            "console_logs": list(self.console_logs),
            "prior_steps": list(self.prior_steps),
            "locator_strategy": self.locator_strategy,
            "locator_value": self.locator_value,
            "metadata": dict(self.metadata),
            "timestamp": _format_datetime(self.timestamp),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> ConditionEvent:
        kind = coerce_enum(ConditionKind, data.get("kind"), ConditionKind.EXCEPTION)
        return cls(
            kind=kind,
            message=data.get("message") or "",
            stack_trace=data.get("stack_trace"),
            current_url=data.get("current_url"),
            expected_url=data.get("expected_url"),
            page_title=data.get("page_title"),
            dom_snapshot=data.get("dom_snapshot"),
            screenshot=data.get("screenshot"),
            console_logs=tuple(data.get("console_logs") or ()),
            prior_steps=tuple(data.get("prior_steps") or ()),
            locator_strategy=data.get("locator_strategy"),
            locator_value=data.get("locator_value"),
            metadata={str(k): str(v) for k, v in (data.get("metadata") or {}).items()},
            timestamp=_parse_datetime(data.get("timestamp")) or _now(),
        )


# ── Action plans ────────────────────────────────────────────────────


@dataclass
class ActionStep:
    action_type: ActionType
    risk_level: RiskLevel = RiskLevel.LOW
    description: str = ""
    parameters: dict[str, Any] = field(default_factory=dict)
    confidence: float = 1.0
    rationale: str = ""
    requires_verification: bool = False

    def to_dict(self) -> dict[str, Any]:
        return {
            "action_type": self.action_type.value,
            "risk_level": self.risk_level.value,
            "description": self.description,
            "parameters": dict(self.parameters),
            "confidence": self.confidence,
            "rationale": self.rationale,
            "requires_verification": self.requires_verification,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> ActionStep:
        raw_type = data.get("action_type")
        parameters = dict(data.get("parameters") or {})
        action_type = coerce_enum(ActionType, raw_type, ActionType.CUSTOM)
        if action_type is ActionType.CUSTOM and raw_type and str(raw_type).upper() != "CUSTOM":
            parameters.setdefault("original_type", str(raw_type))
        return cls(
            action_type=action_type,
            # Unknown risk is treated as the highest so it never auto-executes.
            risk_level=coerce_enum(RiskLevel, data.get("risk_level"), RiskLevel.HIGH),
            description=data.get("description") or "",
            parameters=parameters,
            confidence=clamp_confidence(data.get("confidence", 1.0)),
            rationale=data.get("rationale") or "",
            requires_verification=bool(data.get("requires_verification", False)),
        )


@dataclass
class ActionPlan:
    steps: list[ActionStep] = field(default_factory=list)
    summary: str = ""
    confidence: float = 1.0
    requires_human: bool = False

    @property
    def is_empty(self) -> bool:
        return not self.steps

    def highest_risk(self) -> Optional[RiskLevel]:
        if not self.steps:
            return None
        return max((s.risk_level for s in self.steps), key=lambda r: r.rank)

    def to_dict(self) -> dict[str, Any]:
        return {
            "summary": self.summary,
            "confidence": self.confidence,
            "requires_human": self.requires_human,
            "steps": [s.to_dict() for s in self.steps],
        }

    @classmethod
    def from_dict(cls, data: Optional[dict[str, Any]]) -> Optional[ActionPlan]:
        if not data:
            return None
        steps = [
            ActionStep.from_dict(s)
            for s in data.get("steps") or []
            if isinstance(s, dict)
        ]
        if not steps:
            return None
        return cls(
            steps=steps,
            summary=data.get("summary") or "",
            confidence=clamp_confidence(data.get("confidence", 1.0)),
            requires_human=bool(data.get("requires_human", False)),
        )


@dataclass
class ActionResult:
    step: ActionStep
    success: bool
    message: str = ""
    duration_ms: int = 0


# ── Checker outcomes ────────────────────────────────────────────────


@dataclass(frozen=True)
class Matched:
    checker_id: str
    category: ConditionCategory
    diagnosis: str
    confidence: float
    suggested_outcome: SuggestedOutcome
    action_plan: Optional[ActionPlan] = None
    is_transient: bool = False
    evidence_highlights: tuple[str, ...] = ()

    @property
    def matched(self) -> bool:
        return True


@dataclass(frozen=True)
class NoMatch:
    checker_id: str
    reason: str = ""

    @property
    def matched(self) -> bool:
        return False


CheckerOutcome = Union[Matched, NoMatch]


# ── Knowledge patterns ──────────────────────────────────────────────

SIGNAL_FIELDS = (
    "url_pattern",
    "locator_value_pattern",
    "condition_kind",
    "exception_type",
    "message_contains",
    "dom_contains",
)


@dataclass(frozen=True)
class KnownPattern:
    id: str
    description: str = ""
    enabled: bool = True

    url_pattern: Optional[str] = None
    locator_value_pattern: Optional[str] = None
    condition_kind: Optional[ConditionKind] = None
    exception_type: Optional[str] = None
    message_contains: Optional[str] = None
    dom_contains: Optional[str] = None
    min_match_signals: int = 3

    category: ConditionCategory = ConditionCategory.UNKNOWN
    root_cause: str = ""
    confidence: float = 1.0
    is_transient: bool = False
    suggested_outcome: SuggestedOutcome = SuggestedOutcome.INVESTIGATE
    action_plan: Optional[ActionPlan] = None
    evidence_highlights: tuple[str, ...] = ()

    hit_count: int = 0
    last_hit: Optional[datetime] = None
    added_by: str = "operator"
    added_at: Optional[datetime] = None
    notes: str = ""

    def signal_count(self) -> int:
        """Number of signal fields this pattern defines."""
        return sum(1 for name in SIGNAL_FIELDS if getattr(self, name) not in (None, ""))

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "description": self.description,
            "enabled": self.enabled,
            "url_pattern": self.url_pattern,
            "locator_value_pattern": self.locator_value_pattern,
            "condition_kind": self.condition_kind.value if self.condition_kind else None,
            "exception_type": self.exception_type,
            "message_contains": self.message_contains,
            "dom_contains": self.dom_contains,
            "min_match_signals": self.min_match_signals,
            "category": self.category.value,
            "root_cause": self.root_cause,
            "confidence": self.confidence,
            "is_transient": self.is_transient,
            "suggested_outcome": self.suggested_outcome.value,
            "action_plan": self.action_plan.to_dict() if self.action_plan else None,
            "evidence_highlights": list(self.evidence_highlights),
            "hit_count": self.hit_count,
            "last_hit": _format_datetime(self.last_hit),
            "added_by": self.added_by,
            "added_at": _format_datetime(self.added_at),
            "notes": self.notes,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> KnownPattern:
        kind = data.get("condition_kind")
        return cls(
            id=str(data["id"]),
            description=data.get("description") or "",
            enabled=bool(data.get("enabled", True)),
            url_pattern=data.get("url_pattern") or None,
            locator_value_pattern=data.get("locator_value_pattern") or None,
            condition_kind=coerce_enum(ConditionKind, kind, None) if kind else None,
            exception_type=data.get("exception_type") or None,
            message_contains=data.get("message_contains") or None,
            dom_contains=data.get("dom_contains") or None,
            min_match_signals=int(data.get("min_match_signals", 3)),
            category=coerce_enum(
                ConditionCategory, data.get("category"), ConditionCategory.UNKNOWN
            ),
            root_cause=data.get("root_cause") or "",
            confidence=clamp_confidence(data.get("confidence", 1.0)),
            is_transient=bool(data.get("is_transient", False)),
            suggested_outcome=coerce_enum(
                SuggestedOutcome,
                data.get("suggested_outcome"),
                SuggestedOutcome.INVESTIGATE,
            ),
            action_plan=ActionPlan.from_dict(data.get("action_plan")),
            evidence_highlights=tuple(data.get("evidence_highlights") or ()),
            hit_count=int(data.get("hit_count", 0)),
            last_hit=_parse_datetime(data.get("last_hit")),
            added_by=data.get("added_by") or "operator",
            added_at=_parse_datetime(data.get("added_at")),
            notes=data.get("notes") or "",
        )


# ── Insights ────────────────────────────────────────────────────────


def _new_condition_id() -> str:
    return str(uuid.uuid4())


@dataclass
class InsightResponse:
    """The diagnosis handed back to the caller, whichever tier produced it."""

    category: ConditionCategory
    root_cause: str
    confidence: float
    suggested_outcome: SuggestedOutcome
    source: InsightSource
    condition_id: str = field(default_factory=_new_condition_id)
    is_transient: bool = False
    action_plan: Optional[ActionPlan] = None
    evidence_highlights: list[str] = field(default_factory=list)
    checker_id: Optional[str] = None
    pattern_id: Optional[str] = None
    input_tokens: int = 0
    output_tokens: int = 0
    latency_ms: int = 0
    analyzed_at: datetime = field(default_factory=_now)
    is_error: bool = False
    error_message: Optional[str] = None
    raw_response: Optional[str] = None

    @classmethod
    def error(cls, reason: str, latency_ms: int = 0) -> InsightResponse:
        return cls(
            category=ConditionCategory.UNKNOWN,
            root_cause=f"Analysis failed: {reason}",
            confidence=0.0,
            suggested_outcome=SuggestedOutcome.INVESTIGATE,
            source=InsightSource.REMOTE,
            latency_ms=latency_ms,
            is_error=True,
            error_message=reason,
        )

    @classmethod
    def unresolved(cls, event: ConditionEvent) -> InsightResponse:
        return cls(
            category=ConditionCategory.UNKNOWN,
            root_cause=(
                f"No checker or known pattern explains this "
                f"{event.kind.value} condition: {event.message}"
            ),
            confidence=0.0,
            suggested_outcome=SuggestedOutcome.INVESTIGATE,
            source=InsightSource.NONE,
        )

    @classmethod
    def from_match(cls, outcome: Matched) -> InsightResponse:
        return cls(
            category=outcome.category,
            root_cause=outcome.diagnosis,
            confidence=outcome.confidence,
            suggested_outcome=outcome.suggested_outcome,
            source=InsightSource.LOCAL,
            is_transient=outcome.is_transient,
            action_plan=outcome.action_plan,
            evidence_highlights=list(outcome.evidence_highlights),
            checker_id=outcome.checker_id,
        )

    @classmethod
    def from_pattern(cls, pattern: KnownPattern) -> InsightResponse:
        return cls(
            category=pattern.category,
            root_cause=pattern.root_cause,
            confidence=pattern.confidence,
            suggested_outcome=pattern.suggested_outcome,
            source=InsightSource.KNOWLEDGE_BASE,
            is_transient=pattern.is_transient,
            action_plan=pattern.action_plan,
            evidence_highlights=list(pattern.evidence_highlights),
            pattern_id=pattern.id,
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "condition_id": self.condition_id,
            "category": self.category.value,
            "root_cause": self.root_cause,
            "confidence": self.confidence,
            "is_transient": self.is_transient,
            "suggested_outcome": self.suggested_outcome.value,
            "action_plan": self.action_plan.to_dict() if self.action_plan else None,
            "evidence_highlights": list(self.evidence_highlights),
            "source": self.source.value,
            "checker_id": self.checker_id,
            "pattern_id": self.pattern_id,
            "input_tokens": self.input_tokens,
            "output_tokens": self.output_tokens,
            "latency_ms": self.latency_ms,
            "analyzed_at": _format_datetime(self.analyzed_at),
            "is_error": self.is_error,
            "error_message": self.error_message,
        }


@dataclass
class CascadeResult:
    state: CascadeState
    insight: InsightResponse
    depth: int = 0
    actions_executed: list[ActionResult] = field(default_factory=list)

    @property
    def resolved(self) -> bool:
        return self.state is CascadeState.RESOLVED


def clamp_confidence(value: Any) -> float:
    try:
        number = float(value)
    except (TypeError, ValueError):
        return 0.0
    return max(0.0, min(1.0, number))
