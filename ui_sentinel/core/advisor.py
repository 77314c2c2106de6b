"""Action plan advisor — gates remediation behind a risk ceiling."""

from __future__ import annotations

import dataclasses
from typing import Optional

from ui_sentinel.core.models import ActionPlan, RiskLevel

DEFAULT_MAX_RISK = RiskLevel.LOW


class ActionPlanAdvisor:
    """Clamps action plans to the steps allowed to run unattended.

    Steps run in order, so the plan is cut at the first step above the
    ceiling: later steps may depend on it having run.
    """

    def __init__(self, max_risk: RiskLevel = DEFAULT_MAX_RISK):
        self.max_risk = max_risk

    def filter(
        self, plan: Optional[ActionPlan], max_risk: Optional[RiskLevel] = None
    ) -> ActionPlan:
        """Return the executable prefix of *plan* (possibly empty)."""
        ceiling = max_risk or self.max_risk
        if plan is None:
            return ActionPlan()
        allowed = []
        for step in plan.steps:
            if step.risk_level.exceeds(ceiling):
                break
            allowed.append(step)
        return dataclasses.replace(plan, steps=allowed)

    def describe(
        self, plan: Optional[ActionPlan], max_risk: Optional[RiskLevel] = None
    ) -> str:
        """Plain-text summary marking which steps would run."""
        if plan is None or plan.is_empty:
            return "No action plan."
        ceiling = max_risk or self.max_risk
        permitted = len(self.filter(plan, ceiling).steps)
        lines = [
            f"Action plan: {plan.summary or '(no summary)'} "
            f"[confidence {plan.confidence:.0%}, ceiling {ceiling.value}]"
        ]
        if plan.requires_human:
            lines.append("  ! requires human review")
        for i, step in enumerate(plan.steps):
            marker = "run " if i < permitted else "gate"
            lines.append(
                f"  {i + 1}. [{marker}] {step.action_type.value} "
                f"({step.risk_level.value}) {step.description}"
            )
        if permitted < len(plan.steps):
            lines.append(
                f"  {len(plan.steps) - permitted} step(s) exceed the "
                f"{ceiling.value} ceiling and need manual action."
            )
        return "\n".join(lines)
