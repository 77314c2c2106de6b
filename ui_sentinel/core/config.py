"""Configuration — resolved from environment variables with sane defaults."""

from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Mapping, Optional

from ui_sentinel.core.models import RiskLevel

ENV_PREFIX = "UI_SENTINEL_"

DEFAULT_MODEL = "claude-sonnet-4-6"
_DATA_DIR = os.path.join(str(Path.home()), ".ui-sentinel")

_TRUE = {"1", "true", "yes", "on"}
_FALSE = {"0", "false", "no", "off", ""}


@dataclass
class SentinelConfig:
    model: str = DEFAULT_MODEL
    remote_enabled: bool = True
    max_risk: RiskLevel = RiskLevel.LOW
    max_depth: int = 3
    max_attempts: int = 2
    read_timeout: float = 30.0
    connect_timeout: float = 10.0
    max_tokens: int = 2048
    dom_max_chars: int = 15000
    knowledge_base_path: str = os.path.join(_DATA_DIR, "knowledge_base.json")
    unknown_log_path: str = os.path.join(_DATA_DIR, "unknown_conditions.json")
    auto_learn: bool = False
    log_prompts: bool = False
    step_history_size: int = 20

    def __post_init__(self) -> None:
        if self.max_depth < 1:
            raise ValueError("max_depth must be at least 1")
        if self.max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")

    @classmethod
    def from_environment(
        cls, environ: Optional[Mapping[str, str]] = None
    ) -> SentinelConfig:
        """Build a config from ``UI_SENTINEL_*`` variables.

        Raises:
            ValueError: If a variable holds a malformed value.
        """
        env = _Env(os.environ if environ is None else environ)
        defaults = cls()
        remote = env.flag("REMOTE_ENABLED", defaults.remote_enabled)
        if env.flag("OFFLINE", False):
            remote = False
        return cls(
            model=env.text("MODEL", defaults.model),
            remote_enabled=remote,
            max_risk=env.risk("MAX_RISK", defaults.max_risk),
            max_depth=env.integer("MAX_DEPTH", defaults.max_depth),
            max_attempts=env.integer("MAX_ATTEMPTS", defaults.max_attempts),
            read_timeout=env.number("TIMEOUT", defaults.read_timeout),
            connect_timeout=env.number("CONNECT_TIMEOUT", defaults.connect_timeout),
            max_tokens=env.integer("MAX_TOKENS", defaults.max_tokens),
            dom_max_chars=env.integer("DOM_MAX_CHARS", defaults.dom_max_chars),
            knowledge_base_path=os.path.expanduser(
                env.text("KB_PATH", defaults.knowledge_base_path)
            ),
            unknown_log_path=os.path.expanduser(
                env.text("UNKNOWN_LOG_PATH", defaults.unknown_log_path)
            ),
            auto_learn=env.flag("AUTO_LEARN", defaults.auto_learn),
            log_prompts=env.flag("LOG_PROMPTS", defaults.log_prompts),
            step_history_size=env.integer("STEP_HISTORY", defaults.step_history_size),
        )


class _Env:
    def __init__(self, environ: Mapping[str, str]):
        self._environ = environ

    def _raw(self, name: str) -> Optional[str]:
        value = self._environ.get(ENV_PREFIX + name)
        return value.strip() if value is not None else None

    def text(self, name: str, default: str) -> str:
        return self._raw(name) or default

    def flag(self, name: str, default: bool) -> bool:
        raw = self._raw(name)
        if raw is None:
            return default
        if raw.lower() in _TRUE:
            return True
        if raw.lower() in _FALSE:
            return False
        raise ValueError(f"{ENV_PREFIX}{name} must be a boolean, got {raw!r}")

    def integer(self, name: str, default: int) -> int:
        raw = self._raw(name)
        if not raw:
            return default
        try:
            return int(raw)
        except ValueError:
            raise ValueError(f"{ENV_PREFIX}{name} must be an integer, got {raw!r}")

    def number(self, name: str, default: float) -> float:
        raw = self._raw(name)
        if not raw:
            return default
        try:
            return float(raw)
        except ValueError:
            raise ValueError(f"{ENV_PREFIX}{name} must be a number, got {raw!r}")

    def risk(self, name: str, default: RiskLevel) -> RiskLevel:
        raw = self._raw(name)
        if not raw:
            return default
        try:
            return RiskLevel(raw.upper())
        except ValueError:
            choices = ", ".join(r.value for r in RiskLevel)
            raise ValueError(f"{ENV_PREFIX}{name} must be one of {choices}, got {raw!r}")
