"""Action execution — runs remediation steps against the live application."""

from __future__ import annotations

import logging
import time
from abc import ABC, abstractmethod
from typing import Any, Callable, Optional

from ui_sentinel.core.models import ActionPlan, ActionResult, ActionStep, ConditionEvent

logger = logging.getLogger(__name__)


class ActionExecutor(ABC):
    """Capability that performs one action step and reports success."""

    @abstractmethod
    def execute(
        self, driver: Any, step: ActionStep, event: ConditionEvent
    ) -> ActionResult: ...


class DispatchingExecutor(ActionExecutor):
    """Dispatches each step to a ``_handle_<action_type>`` method.

    Subclasses add handlers for the actions their automation stack can
    perform. A handler returns an ``ActionResult``, or a bool for brevity.
    ``WAIT_FIXED`` is handled here since it needs no driver.
    """

    def __init__(self, sleep: Callable[[float], None] = time.sleep):
        self._sleep = sleep

    def execute(
        self, driver: Any, step: ActionStep, event: ConditionEvent
    ) -> ActionResult:
        handler_name = f"_handle_{step.action_type.value.lower()}"
        handler = getattr(self, handler_name, None)
        if handler is None:
            return ActionResult(
                step=step,
                success=False,
                message=f"No handler for {step.action_type.value}",
            )
        start = time.monotonic()
        try:
            outcome = handler(driver, step.parameters, event)
        except Exception as e:
            return ActionResult(
                step=step,
                success=False,
                message=f"Action error: {e}",
                duration_ms=int((time.monotonic() - start) * 1000),
            )
        if isinstance(outcome, ActionResult):
            return outcome
        return ActionResult(
            step=step,
            success=bool(outcome),
            duration_ms=int((time.monotonic() - start) * 1000),
        )

    def _handle_wait_fixed(
        self, driver: Any, params: dict[str, Any], event: ConditionEvent
    ) -> bool:
        wait_ms = int(params.get("wait_ms", 500))
        self._sleep(wait_ms / 1000)
        return True


class DryRunExecutor(ActionExecutor):
    """Logs each step and reports success without touching the application."""

    def __init__(self) -> None:
        self.executed: list[ActionStep] = []

    def execute(
        self, driver: Any, step: ActionStep, event: ConditionEvent
    ) -> ActionResult:
        logger.info(
            "[dry run] %s (%s): %s",
            step.action_type.value, step.risk_level.value, step.description,
        )
        self.executed.append(step)
        return ActionResult(step=step, success=True, message="dry run")


def run_plan(
    executor: ActionExecutor,
    driver: Any,
    plan: ActionPlan,
    event: ConditionEvent,
) -> list[ActionResult]:
    """Run steps in order, stopping at the first failure.

    Never raises: an executor exception is recorded as a failed step.
    """
    results: list[ActionResult] = []
    for index, step in enumerate(plan.steps, 1):
        try:
            result = executor.execute(driver, step, event)
        except Exception as e:
            logger.warning("Executor raised on step %d", index, exc_info=True)
            result = ActionResult(step=step, success=False, message=str(e))
        results.append(result)
        if not result.success:
            logger.info(
                "Step %d/%d (%s) failed: %s; skipping the rest of the plan",
                index, len(plan.steps), step.action_type.value, result.message,
            )
            break
        logger.info(
            "Step %d/%d (%s) succeeded", index, len(plan.steps), step.action_type.value
        )
    return results


def summarize(results: list[ActionResult]) -> Optional[str]:
    """One-line summary of a plan run, or None when nothing ran."""
    if not results:
        return None
    ok = sum(1 for r in results if r.success)
    return f"{ok}/{len(results)} step(s) succeeded"
