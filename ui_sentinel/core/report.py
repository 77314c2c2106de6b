"""Report rendering — rich panels for insights, plans and cascade results."""

from __future__ import annotations

from typing import Optional

from rich.console import Console
from rich.markup import escape
from rich.panel import Panel
from rich.table import Table

from ui_sentinel.core.models import (
    ActionPlan,
    CascadeResult,
    CascadeState,
    InsightResponse,
    RiskLevel,
)

_STATE_STYLES = {
    CascadeState.RESOLVED: "green",
    CascadeState.DIAGNOSED: "blue",
    CascadeState.ESCALATED: "yellow",
    CascadeState.UNRESOLVED: "magenta",
    CascadeState.ERROR: "red",
}

_RISK_STYLES = {
    RiskLevel.LOW: "green",
    RiskLevel.MEDIUM: "yellow",
    RiskLevel.HIGH: "red",
}


def render_insight(
    insight: InsightResponse, console: Console, title: str = "Diagnosis"
) -> None:
    lines = [
        f"[bold]Category:[/] {insight.category.value}",
        f"[bold]Outcome:[/] {insight.suggested_outcome.value}",
        f"[bold]Confidence:[/] {insight.confidence:.0%}",
        f"[bold]Source:[/] {_source_label(insight)}",
        f"[bold]Transient:[/] {'yes' if insight.is_transient else 'no'}",
        "",
        escape(insight.root_cause),
    ]
    if insight.evidence_highlights:
        lines.append("")
        lines.append("[bold]Evidence:[/]")
        lines.extend(f"  - {escape(e)}" for e in insight.evidence_highlights)
    if insight.latency_ms:
        lines.append("")
        lines.append(
            f"[dim]{insight.latency_ms}ms, "
            f"{insight.input_tokens} in / {insight.output_tokens} out tokens[/]"
        )
    lines.append(f"[dim]condition {insight.condition_id}[/]")

    console.print(
        Panel(
            "\n".join(lines),
            title=title,
            border_style="red" if insight.is_error else "blue",
        )
    )
    if insight.action_plan and not insight.action_plan.is_empty:
        render_plan(insight.action_plan, console)


def render_plan(
    plan: ActionPlan, console: Console, max_risk: Optional[RiskLevel] = None
) -> None:
    table = Table(title=escape(plan.summary or "Action plan"))
    table.add_column("#", justify="right")
    table.add_column("Action")
    table.add_column("Risk")
    table.add_column("Description")
    for i, step in enumerate(plan.steps, 1):
        risk = step.risk_level
        style = _RISK_STYLES[risk]
        if max_risk is not None and risk.exceeds(max_risk):
            style = f"dim {style}"
        table.add_row(
            str(i),
            step.action_type.value,
            f"[{style}]{risk.value}[/]",
            escape(step.description),
        )
    console.print(table)


def render_result(result: CascadeResult, console: Console) -> None:
    style = _STATE_STYLES[result.state]
    console.print(
        f"[bold {style}]{result.state.value}[/] after {result.depth} "
        f"action/verify cycle(s), {len(result.actions_executed)} step(s) executed"
    )
    render_insight(result.insight, console)


def _source_label(insight: InsightResponse) -> str:
    if insight.checker_id:
        return f"{insight.source.value} ({insight.checker_id})"
    if insight.pattern_id:
        return f"{insight.source.value} ({insight.pattern_id})"
    return insight.source.value
