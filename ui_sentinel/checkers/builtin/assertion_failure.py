"""Assertion failure checker — a genuine test failure, not infrastructure."""

from __future__ import annotations

from typing import Optional

from ui_sentinel.checkers.base import (
    CheckerDescriptor,
    ConditionChecker,
    DriverCapability,
)
from ui_sentinel.checkers.registry import register_checker
from ui_sentinel.core.models import (
    ConditionCategory,
    ConditionEvent,
    ConditionKind,
    Matched,
    SuggestedOutcome,
)

ASSERTION_CLASS_SIGNALS = [
    "AssertionError",
    "AssertionFailedError",
    "ComparisonFailure",
    "org.assertj",
    "org.junit.Assert",
    "org.testng.Assert",
]

ASSERTION_MESSAGE_SIGNALS = [
    "expected:",
    "but was:",
    "expected [",
    "to be equal to",
    "to contain",
    "expecting",
    "expected condition",
    "assertion failed",
]


class AssertionFailureChecker(ConditionChecker):
    def inspect(
        self, driver: Optional[DriverCapability], event: ConditionEvent
    ) -> Optional[Matched]:
        message = event.message or ""
        trace = event.stack_trace or ""
        class_hit = event.kind is ConditionKind.ASSERTION_FAILURE or any(
            s in message or s in trace for s in ASSERTION_CLASS_SIGNALS
        )
        lowered = message.lower()
        message_hit = any(s in lowered for s in ASSERTION_MESSAGE_SIGNALS)
        if not class_hit and not message_hit:
            return None

        # No plan: assertion failures need a human.
        return self.matched(
            ConditionCategory.APPLICATION_BUG,
            "A test assertion failed: the application state did not match the "
            "expected value. This is usually an application bug or incorrect "
            "test data rather than an infrastructure problem.",
            SuggestedOutcome.FAIL_WITH_CONTEXT,
            confidence=0.88,
            evidence=(message[:200],) if message else (),
        )


register_checker(
    CheckerDescriptor("assertion-failure", priority=25, description="Failed assertion"),
    AssertionFailureChecker,
)
