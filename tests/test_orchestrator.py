"""Tests for ui_sentinel.core.orchestrator — the resolution cascade."""

from __future__ import annotations

import io
from unittest.mock import MagicMock

import pytest
from rich.console import Console

from conftest import make_event, make_pattern
from ui_sentinel.checkers.registry import CheckerRegistry
from ui_sentinel.core.advisor import ActionPlanAdvisor
from ui_sentinel.core.executor import ActionExecutor
from ui_sentinel.core.gateway import RemoteAnalysisGateway
from ui_sentinel.core.models import (
    ActionPlan,
    ActionResult,
    ActionStep,
    ActionType,
    CascadeState,
    ConditionCategory,
    InsightResponse,
    InsightSource,
    Matched,
    NoMatch,
    RiskLevel,
    SuggestedOutcome,
)
from ui_sentinel.core.orchestrator import CascadeOrchestrator
from ui_sentinel.data.fingerprint import condition_hash
from ui_sentinel.data.knowledge import KnowledgeBase
from ui_sentinel.data.recorder import UnknownConditionRecorder

# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

NO_MATCH = NoMatch("*")


def _plan(risk=RiskLevel.LOW, action_type=ActionType.DISMISS_OVERLAY):
    return ActionPlan(
        steps=[ActionStep(action_type=action_type, risk_level=risk, description="fix")],
        summary="fix it",
    )


def _matched(plan=None, checker_id="overlay"):
    return Matched(
        checker_id=checker_id,
        category=ConditionCategory.OVERLAY,
        diagnosis="A modal blocks the button",
        confidence=0.9,
        suggested_outcome=SuggestedOutcome.RETRY,
        action_plan=plan if plan is not None else _plan(),
        is_transient=True,
    )


def _registry(*outcomes):
    registry = MagicMock(spec=CheckerRegistry)
    if len(outcomes) == 1:
        registry.first_match.return_value = outcomes[0]
    else:
        registry.first_match.side_effect = list(outcomes)
    return registry


def _executor(success=True):
    executor = MagicMock(spec=ActionExecutor)
    executor.execute.side_effect = lambda driver, step, event: ActionResult(step, success)
    return executor


def _remote_insight(plan=None):
    return InsightResponse(
        category=ConditionCategory.LOADING,
        root_cause="Button renders late",
        confidence=0.75,
        suggested_outcome=SuggestedOutcome.RETRY,
        source=InsightSource.REMOTE,
        action_plan=plan if plan is not None else _plan(action_type=ActionType.WAIT_FOR_ELEMENT),
    )


def _gateway(insight):
    gateway = MagicMock(spec=RemoteAnalysisGateway)
    gateway.analyze.return_value = insight
    return gateway


# ---------------------------------------------------------------------------
# Checker tier
# ---------------------------------------------------------------------------

class TestCheckerTier:
    def test_resolved_after_one_cycle(self):
        registry = _registry(_matched(), NO_MATCH)
        executor = _executor()
        result = CascadeOrchestrator(registry, executor=executor).run(make_event())

        assert result.state is CascadeState.RESOLVED
        assert result.resolved
        assert result.depth == 1
        assert executor.execute.call_count == 1
        assert len(result.actions_executed) == 1
        assert result.insight.source is InsightSource.LOCAL
        assert result.insight.checker_id == "overlay"

    def test_checker_hit_skips_later_tiers(self):
        kb = MagicMock(spec=KnowledgeBase)
        gateway = _gateway(_remote_insight())
        registry = _registry(_matched(), NO_MATCH)
        CascadeOrchestrator(
            registry, knowledge_base=kb, gateway=gateway, executor=_executor()
        ).run(make_event())
        kb.match.assert_not_called()
        gateway.analyze.assert_not_called()

    def test_escalates_after_max_depth(self):
        registry = _registry(_matched())
        executor = _executor()
        result = CascadeOrchestrator(registry, executor=executor, max_depth=3).run(
            make_event()
        )

        assert result.state is CascadeState.ESCALATED
        assert result.depth == 3
        assert executor.execute.call_count == 3
        assert result.insight.suggested_outcome is SuggestedOutcome.ESCALATE

    def test_max_depth_one(self):
        registry = _registry(_matched())
        executor = _executor()
        result = CascadeOrchestrator(registry, executor=executor, max_depth=1).run(
            make_event()
        )
        assert result.state is CascadeState.ESCALATED
        assert executor.execute.call_count == 1

    def test_different_checker_after_action_counts_as_present(self):
        registry = _registry(
            _matched(), _matched(checker_id="wrong-page"), _matched(), NO_MATCH
        )
        result = CascadeOrchestrator(registry, executor=_executor()).run(make_event())
        assert result.state is CascadeState.RESOLVED
        assert result.depth == 2

    def test_high_risk_plan_is_diagnosis_only(self):
        registry = _registry(_matched(plan=_plan(RiskLevel.HIGH)))
        executor = _executor()
        result = CascadeOrchestrator(registry, executor=executor).run(make_event())

        assert result.state is CascadeState.DIAGNOSED
        assert result.depth == 0
        executor.execute.assert_not_called()

    def test_raised_ceiling_allows_medium(self):
        registry = _registry(_matched(plan=_plan(RiskLevel.MEDIUM)), NO_MATCH)
        executor = _executor()
        result = CascadeOrchestrator(
            registry, executor=executor, max_risk=RiskLevel.MEDIUM
        ).run(make_event())
        assert result.state is CascadeState.RESOLVED
        assert executor.execute.call_count == 1

    def test_injected_advisor_ceiling_is_kept(self):
        registry = _registry(_matched(plan=_plan(RiskLevel.MEDIUM)), NO_MATCH)
        executor = _executor()
        orchestrator = CascadeOrchestrator(
            registry, executor=executor, advisor=ActionPlanAdvisor(RiskLevel.MEDIUM)
        )
        result = orchestrator.run(make_event())
        assert orchestrator.max_risk is RiskLevel.MEDIUM
        assert result.state is CascadeState.RESOLVED
        assert executor.execute.call_count == 1

    def test_no_plan_is_diagnosis_only(self):
        matched = Matched(
            "assertion-failure", ConditionCategory.APPLICATION_BUG, "assert failed",
            0.88, SuggestedOutcome.FAIL_WITH_CONTEXT,
        )
        result = CascadeOrchestrator(_registry(matched), executor=_executor()).run(make_event())
        assert result.state is CascadeState.DIAGNOSED
        assert result.insight.suggested_outcome is SuggestedOutcome.FAIL_WITH_CONTEXT

    def test_no_executor_is_diagnosis_only(self):
        result = CascadeOrchestrator(_registry(_matched())).run(make_event())
        assert result.state is CascadeState.DIAGNOSED

    def test_failed_step_still_verifies(self):
        registry = _registry(_matched(), NO_MATCH)
        result = CascadeOrchestrator(registry, executor=_executor(success=False)).run(
            make_event()
        )
        assert result.state is CascadeState.RESOLVED
        assert not result.actions_executed[0].success

    def test_registry_failure_falls_through(self):
        registry = MagicMock(spec=CheckerRegistry)
        registry.first_match.side_effect = RuntimeError("broken")
        recorder = MagicMock(spec=UnknownConditionRecorder)
        result = CascadeOrchestrator(
            registry, recorder=recorder, remote_enabled=False
        ).run(make_event())
        assert result.state is CascadeState.UNRESOLVED

    def test_driver_passed_to_checkers_and_executor(self):
        registry = _registry(_matched(), NO_MATCH)
        executor = _executor()
        driver = object()
        event = make_event()
        CascadeOrchestrator(registry, executor=executor).run(event, driver=driver)
        registry.first_match.assert_any_call(driver, event)
        assert executor.execute.call_args[0][0] is driver

    def test_recapture_supplies_verification_event(self):
        registry = _registry(_matched(), NO_MATCH)
        event = make_event()
        fresh = make_event(message="fresh capture")
        recapture = MagicMock(return_value=fresh)
        CascadeOrchestrator(registry, executor=_executor()).run(event, recapture=recapture)
        recapture.assert_called_once_with(event)
        assert registry.first_match.call_args_list[1][0][1] is fresh

    def test_recapture_failure_uses_original_event(self):
        registry = _registry(_matched(), NO_MATCH)
        event = make_event()
        recapture = MagicMock(side_effect=RuntimeError("browser gone"))
        result = CascadeOrchestrator(registry, executor=_executor()).run(
            event, recapture=recapture
        )
        assert result.state is CascadeState.RESOLVED
        assert registry.first_match.call_args_list[1][0][1] is event

    def test_invalid_depth(self):
        with pytest.raises(ValueError):
            CascadeOrchestrator(_registry(NO_MATCH), max_depth=0)


# ---------------------------------------------------------------------------
# Knowledge base tier
# ---------------------------------------------------------------------------

class TestKnowledgeTier:
    def test_pattern_hit_records_hit(self):
        kb = MagicMock(spec=KnowledgeBase)
        kb.match.return_value = make_pattern()
        gateway = _gateway(_remote_insight())
        result = CascadeOrchestrator(
            _registry(NO_MATCH), knowledge_base=kb, gateway=gateway
        ).run(make_event())

        assert result.state is CascadeState.DIAGNOSED
        assert result.insight.source is InsightSource.KNOWLEDGE_BASE
        assert result.insight.pattern_id == "checkout-submit"
        kb.record_hit.assert_called_once_with("checkout-submit")
        gateway.analyze.assert_not_called()

    def test_pattern_plan_executes_and_resolves(self, kb):
        kb.add(make_pattern())
        registry = _registry(NO_MATCH)
        executor = _executor()
        result = CascadeOrchestrator(
            registry, knowledge_base=kb, executor=executor
        ).run(make_event())
        assert result.state is CascadeState.RESOLVED
        assert kb.get("checkout-submit").hit_count == 1

    def test_record_hit_failure_does_not_block(self):
        kb = MagicMock(spec=KnowledgeBase)
        kb.match.return_value = make_pattern()
        kb.record_hit.side_effect = OSError("read-only filesystem")
        result = CascadeOrchestrator(_registry(NO_MATCH), knowledge_base=kb).run(make_event())
        assert result.insight.pattern_id == "checkout-submit"


# ---------------------------------------------------------------------------
# Remote tier
# ---------------------------------------------------------------------------

class TestRemoteTier:
    def test_remote_diagnosis(self):
        gateway = _gateway(_remote_insight(plan=ActionPlan()))
        result = CascadeOrchestrator(_registry(NO_MATCH), gateway=gateway).run(make_event())
        assert result.state is CascadeState.DIAGNOSED
        assert result.insight.source is InsightSource.REMOTE

    def test_remote_error_is_error_state(self):
        gateway = _gateway(InsightResponse.error("HTTP 529: overloaded", latency_ms=12000))
        recorder = MagicMock(spec=UnknownConditionRecorder)
        result = CascadeOrchestrator(
            _registry(NO_MATCH), gateway=gateway, recorder=recorder
        ).run(make_event())
        assert result.state is CascadeState.ERROR
        assert result.insight.latency_ms == 12000
        recorder.record.assert_not_called()

    def test_gateway_exception_is_error_state(self):
        gateway = MagicMock(spec=RemoteAnalysisGateway)
        gateway.analyze.side_effect = RuntimeError("unexpected")
        result = CascadeOrchestrator(_registry(NO_MATCH), gateway=gateway).run(make_event())
        assert result.state is CascadeState.ERROR

    def test_remote_disabled_skips_gateway(self):
        gateway = _gateway(_remote_insight())
        recorder = MagicMock(spec=UnknownConditionRecorder)
        event = make_event()
        result = CascadeOrchestrator(
            _registry(NO_MATCH), gateway=gateway, recorder=recorder, remote_enabled=False
        ).run(event)
        assert result.state is CascadeState.UNRESOLVED
        assert result.insight.source is InsightSource.NONE
        gateway.analyze.assert_not_called()
        recorder.record.assert_called_once_with(event)


# ---------------------------------------------------------------------------
# Unknown conditions and learning
# ---------------------------------------------------------------------------

class TestUnresolved:
    def test_recorded_to_log(self, recorder):
        event = make_event()
        result = CascadeOrchestrator(_registry(NO_MATCH), recorder=recorder).run(event)
        assert result.state is CascadeState.UNRESOLVED
        assert recorder.get(condition_hash(event)).occurrence_count == 1

    def test_recorder_failure_does_not_raise(self):
        recorder = MagicMock(spec=UnknownConditionRecorder)
        recorder.record.side_effect = OSError("disk full")
        result = CascadeOrchestrator(_registry(NO_MATCH), recorder=recorder).run(make_event())
        assert result.state is CascadeState.UNRESOLVED


class TestAutoLearn:
    def test_remote_resolution_is_learned(self, kb):
        event = make_event()
        result = CascadeOrchestrator(
            _registry(NO_MATCH),
            knowledge_base=kb,
            gateway=_gateway(_remote_insight()),
            executor=_executor(),
            auto_learn=True,
        ).run(event)

        assert result.state is CascadeState.RESOLVED
        pattern = kb.get(f"learned-{condition_hash(event)}")
        assert pattern is not None
        assert pattern.category is ConditionCategory.LOADING
        assert pattern.added_by == "remote-analysis"

    def test_disabled_by_default(self, kb):
        CascadeOrchestrator(
            _registry(NO_MATCH),
            knowledge_base=kb,
            gateway=_gateway(_remote_insight()),
            executor=_executor(),
        ).run(make_event())
        assert len(kb) == 0

    def test_checker_resolution_is_not_learned(self, kb):
        CascadeOrchestrator(
            _registry(_matched(), NO_MATCH),
            knowledge_base=kb,
            executor=_executor(),
            auto_learn=True,
        ).run(make_event())
        assert len(kb) == 0

    def test_too_few_signals_is_not_fatal(self, kb):
        event = make_event(current_url=None, locator_value=None, stack_trace=None)
        result = CascadeOrchestrator(
            _registry(NO_MATCH),
            knowledge_base=kb,
            gateway=_gateway(_remote_insight()),
            executor=_executor(),
            auto_learn=True,
        ).run(event)
        assert result.state is CascadeState.RESOLVED
        assert len(kb) == 0


class TestReporting:
    def test_renders_to_console(self):
        output = io.StringIO()
        console = Console(file=output, width=120)
        CascadeOrchestrator(
            _registry(_matched(), NO_MATCH), executor=_executor(), console=console
        ).run(make_event())
        text = output.getvalue()
        assert "RESOLVED" in text
        assert "A modal blocks the button" in text
