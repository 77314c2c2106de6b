"""Checker extension point — fast local rules for known condition signatures."""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Callable, Optional, TypeVar

from ui_sentinel.core.models import (
    ActionPlan,
    CheckerOutcome,
    ConditionCategory,
    ConditionEvent,
    Matched,
    NoMatch,
    SuggestedOutcome,
)

logger = logging.getLogger(__name__)

DEFAULT_PRIORITY = 100

T = TypeVar("T")


@dataclass(frozen=True)
class CheckerDescriptor:
    id: str
    priority: int = DEFAULT_PRIORITY
    description: str = ""


class DriverCapability(ABC):
    """Read-only, point-in-time view of the live application.

    Any method may raise; checkers treat a failure as inconclusive.
    """

    @abstractmethod
    def current_url(self) -> str: ...

    @abstractmethod
    def title(self) -> str: ...

    @abstractmethod
    def page_source(self) -> str: ...

    @abstractmethod
    def find_count(self, selector: str) -> int:
        """Number of elements matching a CSS selector."""

    @abstractmethod
    def is_displayed(self, selector: str) -> bool:
        """Whether any element matching the selector is visible."""


class ConditionChecker(ABC):
    """Base class for checkers.

    Subclasses implement :meth:`inspect`; callers use :meth:`check`, which
    never raises. The ``descriptor`` attribute is set by the registry.
    """

    descriptor: CheckerDescriptor

    def __init__(self, descriptor: CheckerDescriptor):
        self.descriptor = descriptor

    @property
    def id(self) -> str:
        return self.descriptor.id

    @property
    def priority(self) -> int:
        return self.descriptor.priority

    def check(
        self, driver: Optional[DriverCapability], event: ConditionEvent
    ) -> CheckerOutcome:
        try:
            outcome = self.inspect(driver, event)
        except Exception as e:
            logger.debug("Checker %s failed", self.id, exc_info=True)
            return NoMatch(self.id, reason=f"checker error: {e}")
        if outcome is None:
            return NoMatch(self.id)
        return outcome

    @abstractmethod
    def inspect(
        self, driver: Optional[DriverCapability], event: ConditionEvent
    ) -> Optional[CheckerOutcome]:
        """Return a ``Matched`` outcome, or ``None``/``NoMatch`` when not applicable."""

    # -----------------------------------------------------------------
    # Helpers for subclasses
    # -----------------------------------------------------------------

    def matched(
        self,
        category: ConditionCategory,
        diagnosis: str,
        outcome: SuggestedOutcome,
        confidence: float = 0.9,
        plan: Optional[ActionPlan] = None,
        transient: bool = False,
        evidence: tuple[str, ...] = (),
    ) -> Matched:
        return Matched(
            checker_id=self.id,
            category=category,
            diagnosis=diagnosis,
            confidence=confidence,
            suggested_outcome=outcome,
            action_plan=plan,
            is_transient=transient,
            evidence_highlights=evidence,
        )

    def probe(self, call: Callable[..., T], *args: Any) -> Optional[T]:
        """Run a driver query, returning None when it fails."""
        try:
            return call(*args)
        except Exception:
            logger.debug("Driver query failed in checker %s", self.id, exc_info=True)
            return None


def text_of(*parts: Optional[str]) -> str:
    """Join the non-empty parts into one lowercase haystack."""
    return "\n".join(p for p in parts if p).lower()
