"""Overlay checker — a modal, cookie banner or backdrop blocks the target."""

from __future__ import annotations

from typing import Optional

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

OVERLAY_SELECTORS = [
    "[class*='modal'][style*='display: block']",
    "[class*='modal'].show",
    "[class*='overlay']:not([style*='display: none'])",
    "[class*='cookie-banner']",
    "[id*='cookie-consent']",
    "[class*='gdpr']",
    "[role='dialog'][aria-modal='true']",
    ".modal-backdrop.show",
]

OVERLAY_DOM_MARKERS = [
    "modal-open",
    "overlay--visible",
    "cookie-banner--active",
    "modal-backdrop show",
    'aria-modal="true"',
]

_FALLBACK_SELECTOR = "[role='dialog']"


class OverlayChecker(ConditionChecker):
    def inspect(
        self, driver: Optional[DriverCapability], event: ConditionEvent
    ) -> Optional[Matched]:
        selector = self._find_active_overlay(driver) if driver else None
        if selector is None and not self._dom_shows_overlay(driver, event):
            return None

        selector = selector or _FALLBACK_SELECTOR
        return self.matched(
            ConditionCategory.OVERLAY,
            f"An overlay or modal dialog is blocking interaction "
            f"(selector: {selector}). The target element is likely obscured.",
            SuggestedOutcome.RETRY,
            confidence=0.88,
            plan=_dismiss_plan(selector),
            transient=True,
            evidence=(selector,),
        )

    def _find_active_overlay(self, driver: DriverCapability) -> Optional[str]:
        for selector in OVERLAY_SELECTORS:
            if self.probe(driver.is_displayed, selector):
                return selector
        return None

    def _dom_shows_overlay(
        self, driver: Optional[DriverCapability], event: ConditionEvent
    ) -> bool:
        # Prefer the live page: the captured snapshot predates any remediation.
        dom = self.probe(driver.page_source) if driver else event.dom_snapshot
        if not dom:
            return False
        dom = dom.lower()
        return any(marker in dom for marker in OVERLAY_DOM_MARKERS)


def _dismiss_plan(selector: str) -> ActionPlan:
    return ActionPlan(
        steps=[
            ActionStep(
                action_type=ActionType.DISMISS_OVERLAY,
                risk_level=RiskLevel.LOW,
                description="Dismiss the overlay blocking test interaction",
                parameters={"selector": selector, "method": "click"},
                confidence=0.85,
                rationale="The overlay must go before the target can be used.",
            ),
            ActionStep(
                action_type=ActionType.DISMISS_OVERLAY,
                risk_level=RiskLevel.LOW,
                description="Fallback: dismiss the overlay with the Escape key",
                parameters={"method": "escape"},
                confidence=0.70,
                rationale="Escape closes most dialogs when no close button works.",
            ),
        ],
        summary="Dismiss blocking overlay then retry the original action",
        confidence=0.85,
    )


register_checker(
    CheckerDescriptor("overlay", priority=20, description="Blocking modal or banner"),
    OverlayChecker,
)
