"""Remote analysis gateway — the last, most expensive diagnostic tier.

Owns the request layout, the retry protocol and defensive parsing of the
reply. ``analyze`` never raises: every failure comes back as an
error-state ``InsightResponse`` carrying the reason and measured latency.
"""

from __future__ import annotations

import json
import logging
import os
import re
import time
import uuid
from typing import TYPE_CHECKING, Any, Callable

from tenacity import RetryCallState, Retrying, retry_if_exception, stop_after_attempt

from ui_sentinel.core.models import (
    ActionPlan,
    ConditionCategory,
    ConditionEvent,
    InsightResponse,
    InsightSource,
    SuggestedOutcome,
    clamp_confidence,
    coerce_enum,
)
from ui_sentinel.core.providers import detect_provider, get_provider_class
from ui_sentinel.core.providers.base import AnalysisRequest, BaseAnalysisProvider, Completion
from ui_sentinel.exceptions import (
    RemoteAnalysisError,
    RemoteStatusError,
    RemoteTransportError,
)

if TYPE_CHECKING:
    from ui_sentinel.core.config import SentinelConfig

logger = logging.getLogger(__name__)

_PROMPTS_DIR = os.path.join(os.path.dirname(os.path.dirname(__file__)), "prompts")

RATE_LIMIT_BACKOFF_SECONDS = 5.0
TRANSPORT_BACKOFF_SECONDS = 2.0
DEFAULT_MAX_ATTEMPTS = 2

_FENCE_START = re.compile(r"^\s*```[A-Za-z0-9_-]*\s*")
_FENCE_END = re.compile(r"\s*```\s*$")


def _load_prompt(name: str) -> str:
    path = os.path.join(_PROMPTS_DIR, name)
    with open(path, encoding="utf-8") as f:
        return f.read()


def _is_retryable(exc: BaseException) -> bool:
    if isinstance(exc, RemoteTransportError):
        return True
    return isinstance(exc, RemoteStatusError) and exc.is_retryable


class RemoteAnalysisGateway:
    """Sends events to a remote reasoning service and parses its diagnosis."""

    def __init__(
        self,
        provider: BaseAnalysisProvider,
        max_attempts: int = DEFAULT_MAX_ATTEMPTS,
        rate_limit_backoff: float = RATE_LIMIT_BACKOFF_SECONDS,
        transport_backoff: float = TRANSPORT_BACKOFF_SECONDS,
        dom_max_chars: int = 15000,
        log_prompts: bool = False,
        sleep: Callable[[float], None] = time.sleep,
        clock: Callable[[], float] = time.monotonic,
    ):
        if max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        self.provider = provider
        self.max_attempts = max_attempts
        self.rate_limit_backoff = rate_limit_backoff
        self.transport_backoff = transport_backoff
        self.dom_max_chars = dom_max_chars
        self.log_prompts = log_prompts
        self._sleep = sleep
        self._clock = clock
        self._system_prompt = _load_prompt("system.txt")

    @classmethod
    def from_config(cls, config: SentinelConfig) -> RemoteAnalysisGateway:
        """Build a gateway for ``config.model``.

        Raises:
            ImportError: If the provider SDK is not installed.
        """
        provider_class = get_provider_class(detect_provider(config.model))
        provider = provider_class(
            config.model,
            max_tokens=config.max_tokens,
            connect_timeout=config.connect_timeout,
            read_timeout=config.read_timeout,
        )
        return cls(
            provider,
            max_attempts=config.max_attempts,
            dom_max_chars=config.dom_max_chars,
            log_prompts=config.log_prompts,
        )

    def analyze(self, event: ConditionEvent) -> InsightResponse:
        request = build_request(event, self._system_prompt, self.dom_max_chars)
        if self.log_prompts:
            logger.debug("Remote analysis request:\n%s", request.user_text)

        start = self._clock()
        try:
            completion = self._send(request)
        except RemoteAnalysisError as e:
            latency_ms = self._elapsed_ms(start)
            logger.warning("Remote analysis failed after %dms: %s", latency_ms, e)
            return InsightResponse.error(str(e), latency_ms)
        except Exception as e:
            latency_ms = self._elapsed_ms(start)
            logger.warning("Remote analysis raised unexpectedly", exc_info=True)
            return InsightResponse.error(f"unexpected error: {e}", latency_ms)

        latency_ms = self._elapsed_ms(start)
        if self.log_prompts:
            logger.debug("Remote analysis response:\n%s", completion.text)
        insight = parse_insight(completion.text, latency_ms)
        insight.input_tokens = completion.input_tokens
        insight.output_tokens = completion.output_tokens
        logger.info(
            "Remote analysis: %s (confidence %.2f, %dms, %d/%d tokens)",
            insight.category.value, insight.confidence, latency_ms,
            completion.input_tokens, completion.output_tokens,
        )
        return insight

    # -----------------------------------------------------------------
    # Retry protocol
    # -----------------------------------------------------------------

    def _send(self, request: AnalysisRequest) -> Completion:
        retrying = Retrying(
            stop=stop_after_attempt(self.max_attempts),
            wait=self._backoff,
            retry=retry_if_exception(_is_retryable),
            sleep=self._sleep,
            before_sleep=self._log_retry,
            reraise=True,
        )
        return retrying(self.provider.complete, request)

    def _backoff(self, retry_state: RetryCallState) -> float:
        exc = retry_state.outcome.exception() if retry_state.outcome else None
        if isinstance(exc, RemoteStatusError):
            return self.rate_limit_backoff
        return self.transport_backoff

    def _log_retry(self, retry_state: RetryCallState) -> None:
        exc = retry_state.outcome.exception() if retry_state.outcome else None
        wait = retry_state.next_action.sleep if retry_state.next_action else 0
        logger.warning(
            "Remote analysis attempt %d/%d failed (%s); retrying in %.0fs",
            retry_state.attempt_number, self.max_attempts, exc, wait,
        )

    def _elapsed_ms(self, start: float) -> int:
        return int((self._clock() - start) * 1000)


# ── Request building ────────────────────────────────────────────────


def build_request(
    event: ConditionEvent, system_prompt: str, dom_max_chars: int = 15000
) -> AnalysisRequest:
    """Lay the event's salient fields out as tagged sections."""
    sections = [
        ("condition_type", event.kind.value),
        ("message", event.message),
        ("current_url", event.current_url),
        ("expected_url", event.expected_url),
        ("page_title", event.page_title),
    ]
    if event.locator_value:
        locator = event.locator_value
        if event.locator_strategy:
            locator = f"{event.locator_strategy}: {locator}"
        sections.append(("locator", locator))
    if event.prior_steps:
        sections.append((
            "prior_test_steps",
            "\n".join(f"{i}. {s}" for i, s in enumerate(event.prior_steps, 1)),
        ))
    if event.console_logs:
        sections.append(("browser_console_logs", "\n".join(event.console_logs)))
    sections.append(("stack_trace", event.stack_trace))
    if event.dom_snapshot:
        dom = event.dom_snapshot
        if len(dom) > dom_max_chars:
            dom = dom[:dom_max_chars] + "\n<!-- truncated -->"
        sections.append(("dom_snapshot", dom))
    if event.metadata:
        sections.append((
            "test_metadata",
            "\n".join(f"{k}: {v}" for k, v in sorted(event.metadata.items())),
        ))

    body = "\n\n".join(
        f"<{tag}>\n{value}\n</{tag}>" for tag, value in sections if value
    )
    text = (
        "Analyze this test automation condition and return the JSON diagnosis.\n\n"
        + body
    )
    return AnalysisRequest(
        system_prompt=system_prompt,
        user_text=text,
        screenshot_base64=event.screenshot,
    )


# ── Response parsing ────────────────────────────────────────────────


def extract_json_object(text: str) -> str:
    """Strip code fences and return the outermost ``{...}`` slice.

    Raises:
        ValueError: If no object boundaries are present.
    """
    stripped = _FENCE_END.sub("", _FENCE_START.sub("", text or ""))
    start = stripped.find("{")
    end = stripped.rfind("}")
    if start == -1 or end <= start:
        raise ValueError("no JSON object found in response")
    return stripped[start:end + 1]


def _pick(data: dict[str, Any], *keys: str, default: Any = None) -> Any:
    for key in keys:
        if key in data and data[key] is not None:
            return data[key]
    return default


def parse_insight(text: str, latency_ms: int = 0) -> InsightResponse:
    """Parse a reply into an insight, or an error insight if it is unusable."""
    try:
        data = json.loads(extract_json_object(text))
    except ValueError as e:
        insight = InsightResponse.error(f"could not parse response: {e}", latency_ms)
        insight.raw_response = text
        return insight
    if not isinstance(data, dict):
        insight = InsightResponse.error("response JSON is not an object", latency_ms)
        insight.raw_response = text
        return insight

    plan_data = _pick(data, "action_plan", "actionPlan")
    evidence = _pick(data, "evidence_highlights", "evidenceHighlights", default=[])
    return InsightResponse(
        condition_id=str(_pick(data, "condition_id", "conditionId", default="")).strip()
        or str(uuid.uuid4()),
        category=coerce_enum(
            ConditionCategory,
            _pick(data, "category", "conditionCategory"),
            ConditionCategory.UNKNOWN,
        ),
        root_cause=str(_pick(data, "root_cause", "rootCause", default="")),
        confidence=clamp_confidence(_pick(data, "confidence", default=0.0)),
        is_transient=bool(_pick(data, "is_transient", "isTransient", default=False)),
        suggested_outcome=coerce_enum(
            SuggestedOutcome,
            _pick(data, "suggested_outcome", "suggestedTestOutcome"),
            SuggestedOutcome.INVESTIGATE,
        ),
        action_plan=ActionPlan.from_dict(plan_data) if isinstance(plan_data, dict) else None,
        evidence_highlights=[str(e) for e in evidence] if isinstance(evidence, list) else [],
        source=InsightSource.REMOTE,
        latency_ms=latency_ms,
        raw_response=text,
    )
