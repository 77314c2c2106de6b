"""Orchestrator — the resolution cascade.

checkers → knowledge base → remote analysis → (act → verify)*, bounded by
``max_depth`` action/verify cycles.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass, replace
from typing import Any, Callable, Optional

from rich.console import Console

from ui_sentinel.checkers.registry import CheckerRegistry
from ui_sentinel.core.advisor import ActionPlanAdvisor
from ui_sentinel.core.executor import ActionExecutor, run_plan, summarize
from ui_sentinel.core.gateway import RemoteAnalysisGateway
from ui_sentinel.core.models import (
    ActionResult,
    CascadeResult,
    CascadeState,
    ConditionEvent,
    InsightResponse,
    InsightSource,
    KnownPattern,
    Matched,
    RiskLevel,
    SuggestedOutcome,
)
from ui_sentinel.core.report import render_result
from ui_sentinel.data.fingerprint import condition_hash, condition_signature
from ui_sentinel.data.knowledge import KnowledgeBase
from ui_sentinel.data.recorder import UnknownConditionRecorder
from ui_sentinel.exceptions import SentinelError

logger = logging.getLogger(__name__)

Recapture = Callable[[ConditionEvent], ConditionEvent]


@dataclass
class _Diagnosis:
    insight: InsightResponse
    tier: InsightSource
    label: str


class CascadeOrchestrator:
    """Drives one condition through the tiers and the remediation loop.

    Instances hold no per-call state, so one orchestrator may serve
    concurrent invocations; only the knowledge base is shared and it
    serializes its own mutations.
    """

    def __init__(
        self,
        registry: CheckerRegistry,
        knowledge_base: Optional[KnowledgeBase] = None,
        gateway: Optional[RemoteAnalysisGateway] = None,
        recorder: Optional[UnknownConditionRecorder] = None,
        executor: Optional[ActionExecutor] = None,
        advisor: Optional[ActionPlanAdvisor] = None,
        max_depth: int = 3,
        max_risk: Optional[RiskLevel] = None,
        remote_enabled: bool = True,
        auto_learn: bool = False,
        console: Optional[Console] = None,
    ):
        if max_depth < 1:
            raise ValueError("max_depth must be at least 1")
        self.registry = registry
        self.knowledge_base = knowledge_base
        self.gateway = gateway
        self.recorder = recorder
        self.executor = executor
        # max_risk only seeds the default advisor; an injected one keeps its ceiling
        self.advisor = advisor or ActionPlanAdvisor(max_risk or RiskLevel.LOW)
        self.max_depth = max_depth
        self.max_risk = self.advisor.max_risk
        self.remote_enabled = remote_enabled
        self.auto_learn = auto_learn
        self.console = console

    def run(
        self,
        event: ConditionEvent,
        driver: Any = None,
        recapture: Optional[Recapture] = None,
    ) -> CascadeResult:
        """Diagnose *event* and, where allowed, remediate and re-verify.

        Args:
            event: The failure under diagnosis.
            driver: Live-application handle passed to checkers and the executor.
            recapture: Optional callback returning a fresh event after
                remediation. Without it, verification reuses *event* and
                relies on checkers querying the live driver.
        """
        start = time.monotonic()
        depth = 0
        executed: list[ActionResult] = []
        current = event

        while True:
            diagnosis = self._diagnose(current, driver)
            if diagnosis is None:
                result = self._unresolved(current, depth, executed)
                break
            insight = diagnosis.insight
            if insight.is_error:
                logger.warning("Remote tier failed: %s", insight.error_message)
                result = CascadeResult(CascadeState.ERROR, insight, depth, executed)
                break

            plan = self.advisor.filter(insight.action_plan)
            if plan.is_empty or self.executor is None:
                if insight.action_plan and plan.is_empty:
                    logger.info(
                        "Plan from %s exceeds the %s ceiling; diagnosis only",
                        diagnosis.label, self.max_risk.value,
                    )
                result = CascadeResult(CascadeState.DIAGNOSED, insight, depth, executed)
                break

            results = run_plan(self.executor, driver, plan, current)
            executed.extend(results)
            depth += 1
            logger.info(
                "Cycle %d/%d: %s", depth, self.max_depth, summarize(results)
            )

            if recapture is not None:
                try:
                    current = recapture(event)
                except Exception:
                    logger.warning(
                        "Recapture failed; verifying against the original event",
                        exc_info=True,
                    )
                    current = event

            remaining = self._checker_tier(current, driver)
            if remaining is None:
                logger.info("Condition cleared after %d cycle(s)", depth)
                self._maybe_learn(event, diagnosis)
                result = CascadeResult(CascadeState.RESOLVED, insight, depth, executed)
                break

            logger.info(
                "Condition still present after cycle %d (signature %s)",
                depth, condition_signature(remaining),
            )
            if depth >= self.max_depth:
                escalated = replace(insight, suggested_outcome=SuggestedOutcome.ESCALATE)
                result = CascadeResult(CascadeState.ESCALATED, escalated, depth, executed)
                break

        logger.info(
            "Cascade finished: %s after %d cycle(s) in %.0fms",
            result.state.value, result.depth, (time.monotonic() - start) * 1000,
        )
        if self.console is not None:
            render_result(result, self.console)
        return result

    # -----------------------------------------------------------------
    # Tiers
    # -----------------------------------------------------------------

    def _diagnose(self, event: ConditionEvent, driver: Any) -> Optional[_Diagnosis]:
        outcome = self._checker_tier(event, driver)
        if outcome is not None:
            return _Diagnosis(
                InsightResponse.from_match(outcome), InsightSource.LOCAL,
                f"checker {outcome.checker_id}",
            )

        pattern = self._knowledge_tier(event)
        if pattern is not None:
            return _Diagnosis(
                InsightResponse.from_pattern(pattern), InsightSource.KNOWLEDGE_BASE,
                f"pattern {pattern.id}",
            )

        if self.remote_enabled and self.gateway is not None:
            try:
                insight = self.gateway.analyze(event)
            except Exception as e:
                logger.warning("Gateway raised unexpectedly", exc_info=True)
                insight = InsightResponse.error(str(e))
            return _Diagnosis(insight, InsightSource.REMOTE, "remote analysis")
        return None

    def _checker_tier(self, event: ConditionEvent, driver: Any) -> Optional[Matched]:
        try:
            outcome = self.registry.first_match(driver, event)
        except Exception:
            logger.warning("Checker tier failed", exc_info=True)
            return None
        return outcome if isinstance(outcome, Matched) else None

    def _knowledge_tier(self, event: ConditionEvent) -> Optional[KnownPattern]:
        if self.knowledge_base is None:
            return None
        try:
            pattern = self.knowledge_base.match(event)
        except Exception:
            logger.warning("Knowledge base tier failed", exc_info=True)
            return None
        if pattern is not None:
            try:
                self.knowledge_base.record_hit(pattern.id)
            except (OSError, SentinelError, KeyError):
                logger.warning("Could not record hit for %s", pattern.id, exc_info=True)
        return pattern

    def _unresolved(
        self, event: ConditionEvent, depth: int, executed: list[ActionResult]
    ) -> CascadeResult:
        logger.info("No tier explained the condition (%s)", condition_hash(event))
        if self.recorder is not None:
            try:
                self.recorder.record(event)
            except (OSError, SentinelError):
                logger.warning("Could not record unknown condition", exc_info=True)
        return CascadeResult(
            CascadeState.UNRESOLVED, InsightResponse.unresolved(event), depth, executed
        )

    def _maybe_learn(self, event: ConditionEvent, diagnosis: _Diagnosis) -> None:
        if not self.auto_learn or diagnosis.tier is not InsightSource.REMOTE:
            return
        if self.knowledge_base is None:
            return
        pattern_id = f"learned-{condition_hash(event)}"
        try:
            self.knowledge_base.learn_from_insight(event, diagnosis.insight, pattern_id)
        except (OSError, SentinelError):
            logger.warning("Could not learn pattern %s", pattern_id, exc_info=True)
