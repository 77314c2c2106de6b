"""Shared test fixtures for ui-sentinel tests."""

from __future__ import annotations

import os
from datetime import datetime, timezone
from typing import Optional

import pytest

from ui_sentinel.checkers.base import DriverCapability
from ui_sentinel.core.models import (
    ActionPlan,
    ActionStep,
    ActionType,
    ConditionCategory,
    ConditionEvent,
    ConditionKind,
    KnownPattern,
    RiskLevel,
    SuggestedOutcome,
)
from ui_sentinel.data.knowledge import KnowledgeBase
from ui_sentinel.data.recorder import UnknownConditionRecorder

FIXED_NOW = datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc)

SELENIUM_TRACE = (
    "org.openqa.selenium.NoSuchElementException: no such element: "
    "Unable to locate element: {\"method\":\"css selector\",\"selector\":\"#submit\"}\n"
    "    at org.openqa.selenium.remote.RemoteWebDriver.findElement(RemoteWebDriver.java:352)\n"
    "    at com.shop.tests.CheckoutTest.placeOrder(CheckoutTest.java:88)"
)


class FakeDriver(DriverCapability):
    """In-memory stand-in for a live browser."""

    def __init__(
        self,
        url: str = "https://shop.example.com/checkout",
        title: str = "Checkout",
        source: str = "<html><body></body></html>",
        counts: Optional[dict[str, int]] = None,
        visible: Optional[dict[str, bool]] = None,
    ):
        self.url = url
        self.page_title = title
        self.source = source
        self.counts = counts or {}
        self.visible = visible or {}

    def current_url(self) -> str:
        return self.url

    def title(self) -> str:
        return self.page_title

    def page_source(self) -> str:
        return self.source

    def find_count(self, selector: str) -> int:
        return self.counts.get(selector, 0)

    def is_displayed(self, selector: str) -> bool:
        return self.visible.get(selector, False)


def make_event(**overrides) -> ConditionEvent:
    fields = {
        "kind": ConditionKind.ELEMENT_NOT_FOUND,
        "message": "no such element: Unable to locate element #submit",
        "stack_trace": SELENIUM_TRACE,
        "current_url": "https://shop.example.com/checkout",
        "locator_strategy": "css",
        "locator_value": "#submit",
    }
    fields.update(overrides)
    return ConditionEvent(**fields)


def make_pattern(pattern_id: str = "checkout-submit", **overrides) -> KnownPattern:
    fields = {
        "id": pattern_id,
        "description": "Submit button missing during checkout",
        "url_pattern": "/checkout",
        "locator_value_pattern": "#submit",
        "condition_kind": ConditionKind.ELEMENT_NOT_FOUND,
        "exception_type": "NoSuchElementException",
        "min_match_signals": 3,
        "category": ConditionCategory.LOADING,
        "root_cause": "Checkout renders the submit button after the cart loads",
        "confidence": 0.8,
        "suggested_outcome": SuggestedOutcome.RETRY,
        "action_plan": ActionPlan(
            steps=[
                ActionStep(
                    action_type=ActionType.WAIT_FOR_ELEMENT,
                    risk_level=RiskLevel.LOW,
                    parameters={"selector": "#submit"},
                ),
            ],
            summary="Wait for the submit button",
        ),
    }
    fields.update(overrides)
    return KnownPattern(**fields)


@pytest.fixture
def event() -> ConditionEvent:
    return make_event()


@pytest.fixture
def driver() -> FakeDriver:
    return FakeDriver()


@pytest.fixture
def kb_path(tmp_path) -> str:
    return os.path.join(str(tmp_path), "knowledge_base.json")


@pytest.fixture
def kb(kb_path) -> KnowledgeBase:
    return KnowledgeBase(kb_path, clock=lambda: FIXED_NOW)


@pytest.fixture
def recorder(tmp_path) -> UnknownConditionRecorder:
    path = os.path.join(str(tmp_path), "unknown_conditions.json")
    return UnknownConditionRecorder(path, clock=lambda: FIXED_NOW)
