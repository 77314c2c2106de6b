"""Navigation checkers — wrong page and authentication redirects."""

from __future__ import annotations

from typing import Optional
from urllib.parse import urlparse

from ui_sentinel.checkers.base import (
    CheckerDescriptor,
    ConditionChecker,
    DriverCapability,
)
from ui_sentinel.checkers.registry import register_checker
from ui_sentinel.core.models import (
    ActionPlan,
    ActionStep,
    ActionType,
    ConditionCategory,
    ConditionEvent,
    Matched,
    RiskLevel,
    SuggestedOutcome,
)

AUTH_PATH_SEGMENTS = [
    "/login",
    "/signin",
    "/sign-in",
    "/auth",
    "/sso",
    "/logout",
    "/session-expired",
]

AUTH_DOM_SIGNALS = [
    "session has expired",
    "please log in",
    "please sign in",
    "your session",
]


def _live_url(
    checker: ConditionChecker,
    driver: Optional[DriverCapability],
    event: ConditionEvent,
) -> Optional[str]:
    if driver is not None:
        url = checker.probe(driver.current_url)
        if url:
            return url
    return event.current_url


class WrongPageChecker(ConditionChecker):
    """The test landed somewhere other than the page it expected."""

    def inspect(
        self, driver: Optional[DriverCapability], event: ConditionEvent
    ) -> Optional[Matched]:
        expected = event.expected_url
        current = _live_url(self, driver, event)
        if not current or not expected:
            return None
        if expected in current or current in expected:
            return None

        return self.matched(
            ConditionCategory.NAVIGATION,
            f"The test is on the wrong page: expected {expected!r} "
            f"but currently at {current!r}.",
            SuggestedOutcome.RETRY,
            confidence=0.95,
            plan=ActionPlan(
                steps=[
                    ActionStep(
                        action_type=ActionType.NAVIGATE_TO,
                        risk_level=RiskLevel.MEDIUM,
                        description=f"Navigate directly to {expected}",
                        parameters={"url": expected},
                        confidence=0.90,
                        rationale="Direct navigation corrects the wrong-page condition.",
                    ),
                ],
                summary="Navigate to the expected URL",
                confidence=0.90,
            ),
            evidence=(f"current: {current}", f"expected: {expected}"),
        )


class AuthRedirectChecker(ConditionChecker):
    """The session expired and the app bounced the test to a login page."""

    def inspect(
        self, driver: Optional[DriverCapability], event: ConditionEvent
    ) -> Optional[Matched]:
        url = _live_url(self, driver, event) or ""
        path = urlparse(url).path.lower()
        url_hit = any(segment in path for segment in AUTH_PATH_SEGMENTS)

        dom_hit = False
        if not url_hit:
            dom = self.probe(driver.page_source) if driver else event.dom_snapshot
            dom = (dom or "").lower()
            dom_hit = any(signal in dom for signal in AUTH_DOM_SIGNALS)

        if not url_hit and not dom_hit:
            return None

        return self.matched(
            ConditionCategory.AUTH,
            f"The session expired or was redirected to a login page "
            f"(URL: {url or 'unknown'}). Authentication must be re-established.",
            SuggestedOutcome.SKIP,
            confidence=0.92,
            plan=ActionPlan(
                steps=[
                    ActionStep(
                        action_type=ActionType.SKIP_TEST,
                        risk_level=RiskLevel.MEDIUM,
                        description="Skip this test: the session is no longer authenticated",
                        parameters={"reason": "session expired"},
                        confidence=0.90,
                        rationale="Continuing without a session only produces noise failures.",
                    ),
                ],
                summary="Skip the test; re-authenticate before the next run",
                confidence=0.90,
                requires_human=True,
            ),
        )


register_checker(
    CheckerDescriptor("wrong-page", priority=5, description="Unexpected URL"),
    WrongPageChecker,
)
register_checker(
    CheckerDescriptor("auth-redirect", priority=15, description="Login redirect"),
    AuthRedirectChecker,
)
