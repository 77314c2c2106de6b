"""Tests for the built-in checkers."""

from __future__ import annotations

from conftest import FakeDriver, make_event
from ui_sentinel.checkers.base import CheckerDescriptor
from ui_sentinel.checkers.builtin.assertion_failure import AssertionFailureChecker
from ui_sentinel.checkers.builtin.dom_state import (
    ElementHiddenChecker,
    StaleElementChecker,
)
from ui_sentinel.checkers.builtin.navigation import (
    AuthRedirectChecker,
    WrongPageChecker,
)
from ui_sentinel.checkers.builtin.overlay import OverlayChecker
from ui_sentinel.checkers.builtin.page_timeout import PageTimeoutChecker
from ui_sentinel.core.models import (
    ActionType,
    ConditionCategory,
    ConditionKind,
    Matched,
    NoMatch,
    RiskLevel,
    SuggestedOutcome,
)


def _checker(cls, checker_id="test"):
    return cls(CheckerDescriptor(checker_id))


class _ExplodingDriver(FakeDriver):
    def current_url(self):
        raise ConnectionError("session lost")

    def page_source(self):
        raise ConnectionError("session lost")

    def title(self):
        raise ConnectionError("session lost")

    def is_displayed(self, selector):
        raise ConnectionError("session lost")


# ---------------------------------------------------------------------------
# Wrong page
# ---------------------------------------------------------------------------

class TestWrongPage:
    def test_fires_when_live_url_differs(self):
        driver = FakeDriver(url="https://shop.example.com/cart")
        event = make_event(expected_url="https://shop.example.com/checkout")
        outcome = _checker(WrongPageChecker).check(driver, event)
        assert isinstance(outcome, Matched)
        assert outcome.category is ConditionCategory.NAVIGATION
        step = outcome.action_plan.steps[0]
        assert step.action_type is ActionType.NAVIGATE_TO
        assert step.parameters["url"] == "https://shop.example.com/checkout"

    def test_quiet_when_on_expected_page(self):
        driver = FakeDriver(url="https://shop.example.com/checkout?step=2")
        event = make_event(expected_url="https://shop.example.com/checkout")
        assert not _checker(WrongPageChecker).check(driver, event).matched

    def test_quiet_without_expected_url(self):
        assert not _checker(WrongPageChecker).check(FakeDriver(), make_event()).matched

    def test_falls_back_to_event_url_without_driver(self):
        event = make_event(
            current_url="https://shop.example.com/home",
            expected_url="https://shop.example.com/checkout",
        )
        assert _checker(WrongPageChecker).check(None, event).matched

    def test_live_url_wins_over_event_url(self):
        # The event was captured on the wrong page, but navigation fixed it.
        driver = FakeDriver(url="https://shop.example.com/checkout")
        event = make_event(
            current_url="https://shop.example.com/home",
            expected_url="https://shop.example.com/checkout",
        )
        assert not _checker(WrongPageChecker).check(driver, event).matched


# ---------------------------------------------------------------------------
# Page timeout
# ---------------------------------------------------------------------------

class TestPageTimeout:
    def test_fires_on_timeout_kind(self):
        event = make_event(kind=ConditionKind.TIMEOUT, message="", stack_trace=None)
        outcome = _checker(PageTimeoutChecker).check(None, event)
        assert outcome.matched
        assert outcome.category is ConditionCategory.INFRA
        assert outcome.is_transient

    def test_fires_on_message_signal(self):
        event = make_event(
            kind=ConditionKind.EXCEPTION,
            message="Navigation timed out after 30000 ms",
            stack_trace=None,
        )
        assert _checker(PageTimeoutChecker).check(None, event).matched

    def test_fires_on_live_title(self):
        event = make_event(kind=ConditionKind.EXCEPTION, message="boom", stack_trace=None)
        driver = FakeDriver(title="ERR_TIMED_OUT")
        assert _checker(PageTimeoutChecker).check(driver, event).matched

    def test_plan_refreshes_then_waits(self):
        event = make_event(kind=ConditionKind.TIMEOUT)
        plan = _checker(PageTimeoutChecker).check(None, event).action_plan
        assert [s.action_type for s in plan.steps] == [
            ActionType.REFRESH_PAGE,
            ActionType.WAIT_FOR_ELEMENT,
        ]
        assert plan.steps[0].risk_level is RiskLevel.MEDIUM

    def test_quiet_on_element_not_found(self):
        assert not _checker(PageTimeoutChecker).check(FakeDriver(), make_event()).matched


# ---------------------------------------------------------------------------
# Stale element
# ---------------------------------------------------------------------------

class TestStaleElement:
    def test_fires_on_stale_kind(self):
        event = make_event(kind=ConditionKind.STALE_REFERENCE, stack_trace=None)
        outcome = _checker(StaleElementChecker).check(None, event)
        assert outcome.matched
        assert outcome.category is ConditionCategory.STALE_DOM
        assert outcome.suggested_outcome is SuggestedOutcome.RETRY

    def test_fires_on_trace_signal(self):
        event = make_event(
            kind=ConditionKind.EXCEPTION,
            message="boom",
            stack_trace="org.openqa.selenium.StaleElementReferenceException: gone",
        )
        assert _checker(StaleElementChecker).check(None, event).matched

    def test_plan_is_low_risk(self):
        event = make_event(kind=ConditionKind.STALE_REFERENCE)
        plan = _checker(StaleElementChecker).check(None, event).action_plan
        assert plan.highest_risk() is RiskLevel.LOW
        assert plan.steps[0].parameters["wait_ms"] == 500

    def test_quiet_otherwise(self):
        assert not _checker(StaleElementChecker).check(None, make_event()).matched


# ---------------------------------------------------------------------------
# Element hidden
# ---------------------------------------------------------------------------

class TestElementHidden:
    def test_fires_when_present_but_invisible(self):
        driver = FakeDriver(counts={"#submit": 1}, visible={"#submit": False})
        outcome = _checker(ElementHiddenChecker).check(driver, make_event())
        assert outcome.matched
        assert [s.action_type for s in outcome.action_plan.steps] == [
            ActionType.SCROLL_TO_ELEMENT,
            ActionType.WAIT_FOR_ELEMENT,
        ]

    def test_quiet_when_absent(self):
        driver = FakeDriver(counts={"#submit": 0})
        assert not _checker(ElementHiddenChecker).check(driver, make_event()).matched

    def test_quiet_when_visible(self):
        driver = FakeDriver(counts={"#submit": 1}, visible={"#submit": True})
        assert not _checker(ElementHiddenChecker).check(driver, make_event()).matched

    def test_quiet_without_driver(self):
        assert not _checker(ElementHiddenChecker).check(None, make_event()).matched

    def test_quiet_when_visibility_unknown(self):
        driver = _ExplodingDriver(counts={"#submit": 2})
        assert not _checker(ElementHiddenChecker).check(driver, make_event()).matched


# ---------------------------------------------------------------------------
# Auth redirect
# ---------------------------------------------------------------------------

class TestAuthRedirect:
    def test_fires_on_login_path(self):
        driver = FakeDriver(url="https://shop.example.com/login?next=/checkout")
        outcome = _checker(AuthRedirectChecker).check(driver, make_event())
        assert outcome.matched
        assert outcome.category is ConditionCategory.AUTH
        assert outcome.suggested_outcome is SuggestedOutcome.SKIP
        assert outcome.action_plan.requires_human

    def test_fires_on_live_dom_signal(self):
        driver = FakeDriver(source="<p>Your session has expired. Please log in.</p>")
        assert _checker(AuthRedirectChecker).check(driver, make_event()).matched

    def test_fires_on_snapshot_without_driver(self):
        event = make_event(dom_snapshot="<p>Please sign in to continue</p>")
        assert _checker(AuthRedirectChecker).check(None, event).matched

    def test_login_in_query_only_does_not_fire(self):
        driver = FakeDriver(url="https://shop.example.com/search?q=/login")
        assert not _checker(AuthRedirectChecker).check(driver, make_event()).matched

    def test_quiet_on_normal_page(self):
        assert not _checker(AuthRedirectChecker).check(FakeDriver(), make_event()).matched


# ---------------------------------------------------------------------------
# Overlay
# ---------------------------------------------------------------------------

class TestOverlay:
    def test_fires_on_visible_overlay_selector(self):
        driver = FakeDriver(visible={"[class*='cookie-banner']": True})
        outcome = _checker(OverlayChecker).check(driver, make_event())
        assert outcome.matched
        assert outcome.category is ConditionCategory.OVERLAY
        first = outcome.action_plan.steps[0]
        assert first.action_type is ActionType.DISMISS_OVERLAY
        assert first.parameters["selector"] == "[class*='cookie-banner']"

    def test_fires_on_live_dom_marker(self):
        driver = FakeDriver(source='<body class="modal-open"></body>')
        outcome = _checker(OverlayChecker).check(driver, make_event())
        assert outcome.matched
        assert outcome.evidence_highlights == ("[role='dialog']",)

    def test_uses_snapshot_without_driver(self):
        event = make_event(dom_snapshot='<div aria-modal="true"></div>')
        assert _checker(OverlayChecker).check(None, event).matched

    def test_live_page_wins_over_stale_snapshot(self):
        event = make_event(dom_snapshot='<body class="modal-open"></body>')
        assert not _checker(OverlayChecker).check(FakeDriver(), event).matched

    def test_plan_is_low_risk(self):
        event = make_event(dom_snapshot='<body class="modal-open"></body>')
        plan = _checker(OverlayChecker).check(None, event).action_plan
        assert plan.highest_risk() is RiskLevel.LOW
        assert len(plan.steps) == 2

    def test_driver_errors_are_inconclusive(self):
        outcome = _checker(OverlayChecker).check(_ExplodingDriver(), make_event())
        assert isinstance(outcome, NoMatch)


# ---------------------------------------------------------------------------
# Assertion failure
# ---------------------------------------------------------------------------

class TestAssertionFailure:
    def test_fires_on_assertion_kind(self):
        event = make_event(
            kind=ConditionKind.ASSERTION_FAILURE,
            message="Order total mismatch",
            stack_trace=None,
        )
        outcome = _checker(AssertionFailureChecker).check(None, event)
        assert outcome.matched
        assert outcome.category is ConditionCategory.APPLICATION_BUG
        assert outcome.suggested_outcome is SuggestedOutcome.FAIL_WITH_CONTEXT
        assert outcome.action_plan is None

    def test_fires_on_message_shape(self):
        event = make_event(
            kind=ConditionKind.EXCEPTION,
            message="expected: <3> but was: <2>",
            stack_trace=None,
        )
        assert _checker(AssertionFailureChecker).check(None, event).matched

    def test_quiet_on_element_not_found(self):
        assert not _checker(AssertionFailureChecker).check(None, make_event()).matched
