"""Scenario context — one explicit bundle of collaborators per test scenario."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Optional

from rich.console import Console

from ui_sentinel.checkers.registry import CheckerRegistry
from ui_sentinel.core.advisor import ActionPlanAdvisor
from ui_sentinel.core.config import SentinelConfig
from ui_sentinel.core.events import StepHistory, build_event
from ui_sentinel.core.executor import ActionExecutor
from ui_sentinel.core.gateway import RemoteAnalysisGateway
from ui_sentinel.core.models import ConditionEvent, ConditionKind
from ui_sentinel.core.orchestrator import CascadeOrchestrator
from ui_sentinel.core.providers import detect_provider, get_provider_class
from ui_sentinel.data.knowledge import KnowledgeBase
from ui_sentinel.data.recorder import UnknownConditionRecorder

logger = logging.getLogger(__name__)


@dataclass
class SentinelContext:
    """Everything a scenario needs to run the cascade.

    Build a fresh context per scenario so knowledge learned in one scenario
    only reaches another through the persisted file, never through shared
    in-memory state. Sharing one context process-wide is allowed but must be
    done deliberately.
    """

    config: SentinelConfig
    registry: CheckerRegistry
    knowledge_base: KnowledgeBase
    recorder: UnknownConditionRecorder
    gateway: Optional[RemoteAnalysisGateway] = None
    executor: Optional[ActionExecutor] = None
    console: Optional[Console] = None
    history: StepHistory = field(default_factory=StepHistory)

    @classmethod
    def create(
        cls,
        config: Optional[SentinelConfig] = None,
        executor: Optional[ActionExecutor] = None,
        registry: Optional[CheckerRegistry] = None,
        gateway: Optional[RemoteAnalysisGateway] = None,
        console: Optional[Console] = None,
    ) -> SentinelContext:
        """Wire up collaborators from *config* (environment if omitted).

        Startup errors (bad checker registrations, an invalid knowledge base)
        propagate. A missing API key or SDK only disables the remote tier.
        """
        config = config or SentinelConfig.from_environment()
        if gateway is None and config.remote_enabled:
            gateway = _build_gateway(config)
        return cls(
            config=config,
            registry=registry or CheckerRegistry.default(),
            knowledge_base=KnowledgeBase(config.knowledge_base_path),
            recorder=UnknownConditionRecorder(config.unknown_log_path),
            gateway=gateway,
            executor=executor,
            console=console,
            history=StepHistory(config.step_history_size),
        )

    def orchestrator(self) -> CascadeOrchestrator:
        return CascadeOrchestrator(
            registry=self.registry,
            knowledge_base=self.knowledge_base,
            gateway=self.gateway,
            recorder=self.recorder,
            executor=self.executor,
            advisor=ActionPlanAdvisor(self.config.max_risk),
            max_depth=self.config.max_depth,
            remote_enabled=self.config.remote_enabled and self.gateway is not None,
            auto_learn=self.config.auto_learn,
            console=self.console,
        )

    def event(
        self,
        kind: Optional[ConditionKind] = None,
        message: str = "",
        **fields: Any,
    ) -> ConditionEvent:
        """Build an event carrying this scenario's recent steps."""
        fields.setdefault("dom_max_chars", self.config.dom_max_chars)
        return build_event(kind, message, history=self.history, **fields)


def _build_gateway(config: SentinelConfig) -> Optional[RemoteAnalysisGateway]:
    provider_name = detect_provider(config.model)
    try:
        provider_class = get_provider_class(provider_name)
    except ImportError as e:
        logger.warning("Remote analysis disabled: %s", e)
        return None
    has_key, key_name = provider_class.check_api_key()
    if not has_key:
        logger.warning("Remote analysis disabled: %s is not set", key_name)
        return None
    return RemoteAnalysisGateway.from_config(config)
