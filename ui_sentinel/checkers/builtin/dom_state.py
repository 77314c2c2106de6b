"""DOM state checkers — stale references and hidden elements."""

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

STALE_SIGNALS = ["staleelementreference", "stale element"]


class StaleElementChecker(ConditionChecker):
    def inspect(
        self, driver: Optional[DriverCapability], event: ConditionEvent
    ) -> Optional[Matched]:
        stale = event.kind is ConditionKind.STALE_REFERENCE or any(
            signal in text_of(event.message, event.stack_trace)
            for signal in STALE_SIGNALS
        )
        if not stale:
            return None

        return self.matched(
            ConditionCategory.STALE_DOM,
            "A stale element reference was detected: the DOM re-rendered "
            "after the element was located, so the reference is no longer valid.",
            SuggestedOutcome.RETRY,
            confidence=0.95,
            plan=ActionPlan(
                steps=[
                    ActionStep(
                        action_type=ActionType.WAIT_FIXED,
                        risk_level=RiskLevel.LOW,
                        description="Wait 500ms for the DOM to settle",
                        parameters={"wait_ms": 500},
                        confidence=0.85,
                    ),
                    ActionStep(
                        action_type=ActionType.RETRY_ACTION,
                        risk_level=RiskLevel.LOW,
                        description="Re-locate the element and retry the action",
                        parameters={"delay_ms": 500, "max_retries": 3},
                        confidence=0.88,
                        rationale="A fresh lookup yields a live reference.",
                    ),
                ],
                summary="Wait for re-render, then retry with a fresh element",
                confidence=0.88,
            ),
            transient=True,
        )


class ElementHiddenChecker(ConditionChecker):
    """The locator matches elements, but none of them is visible."""

    def inspect(
        self, driver: Optional[DriverCapability], event: ConditionEvent
    ) -> Optional[Matched]:
        locator = event.locator_value
        if driver is None or not locator:
            return None
        if event.kind is not ConditionKind.ELEMENT_NOT_FOUND:
            return None

        count = self.probe(driver.find_count, locator)
        if not count:
            return None
        if self.probe(driver.is_displayed, locator) is not False:
            return None

        return self.matched(
            ConditionCategory.LOADING,
            f"Element {locator!r} exists in the DOM ({count} match(es)) but is "
            f"not visible. It may be off-screen, display:none, or still loading.",
            SuggestedOutcome.RETRY,
            confidence=0.87,
            plan=ActionPlan(
                steps=[
                    ActionStep(
                        action_type=ActionType.SCROLL_TO_ELEMENT,
                        risk_level=RiskLevel.LOW,
                        description="Scroll the hidden element into the viewport",
                        parameters={"selector": locator},
                        confidence=0.75,
                    ),
                    ActionStep(
                        action_type=ActionType.WAIT_FOR_ELEMENT,
                        risk_level=RiskLevel.LOW,
                        description="Wait for the element to become visible",
                        parameters={
                            "selector": locator,
                            "condition": "visible",
                            "timeout_ms": 5000,
                        },
                        confidence=0.78,
                    ),
                ],
                summary="Scroll element into view and wait for visibility",
                confidence=0.78,
            ),
            transient=True,
        )


register_checker(
    CheckerDescriptor("stale-element", priority=10, description="Stale DOM reference"),
    StaleElementChecker,
)
register_checker(
    CheckerDescriptor("element-hidden", priority=30, description="Element present but hidden"),
    ElementHiddenChecker,
)
