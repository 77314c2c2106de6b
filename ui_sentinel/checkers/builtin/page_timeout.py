"""Page timeout checker — the page or a wait ran out of time."""

from __future__ import annotations

from typing import Optional

from ui_sentinel.checkers.base import (
    CheckerDescriptor,
    ConditionChecker,
    DriverCapability,
    text_of,
)
from ui_sentinel.checkers.registry import register_checker
from ui_sentinel.core.models import (
    ActionPlan,
    ActionStep,
    ActionType,
    ConditionCategory,
    ConditionEvent,
    ConditionKind,
    Matched,
    RiskLevel,
    SuggestedOutcome,
)

TIMEOUT_SIGNALS = [
    "timeout",
    "timed out",
    "timedout",
    "err_timed_out",
    "net::err_connection_timed_out",
]

TITLE_SIGNALS = ["timed out", "err_timed_out"]


class PageTimeoutChecker(ConditionChecker):
    def inspect(
        self, driver: Optional[DriverCapability], event: ConditionEvent
    ) -> Optional[Matched]:
        if not self._timed_out(driver, event):
            return None
        return self.matched(
            ConditionCategory.INFRA,
            "Page load timed out: the server did not respond within the "
            "expected window. A refresh is recommended; if it persists, "
            "suspect a backend or network problem.",
            SuggestedOutcome.RETRY,
            confidence=0.90,
            plan=ActionPlan(
                steps=[
                    ActionStep(
                        action_type=ActionType.REFRESH_PAGE,
                        risk_level=RiskLevel.MEDIUM,
                        description="Refresh the page to retry the load",
                        confidence=0.80,
                        rationale="Transient timeouts usually clear on reload.",
                    ),
                    ActionStep(
                        action_type=ActionType.WAIT_FOR_ELEMENT,
                        risk_level=RiskLevel.LOW,
                        description="Wait for the page body after refresh",
                        parameters={"selector": "body", "timeout_ms": 10000},
                        confidence=0.85,
                    ),
                ],
                summary="Refresh the page and wait for it to load",
                confidence=0.80,
            ),
            transient=True,
        )

    def _timed_out(
        self, driver: Optional[DriverCapability], event: ConditionEvent
    ) -> bool:
        if event.kind is ConditionKind.TIMEOUT:
            return True
        haystack = text_of(event.message, event.stack_trace)
        if any(signal in haystack for signal in TIMEOUT_SIGNALS):
            return True
        title = event.page_title
        if title is None and driver is not None:
            title = self.probe(driver.title)
        title = (title or "").lower()
        return any(signal in title for signal in TITLE_SIGNALS)


register_checker(
    CheckerDescriptor("page-timeout", priority=10, description="Page load timeout"),
    PageTimeoutChecker,
)
