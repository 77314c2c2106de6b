"""Provider detection and registry for remote analysis."""

from __future__ import annotations

import importlib
from typing import Type

from ui_sentinel.core.providers.base import BaseAnalysisProvider

DEFAULT_PROVIDER = "anthropic"

_OPENAI_PREFIXES = ("gpt-", "o1-", "o3-", "o4-")

# name -> (module, class, extra that installs its SDK)
_REGISTRY = {
    "anthropic": ("ui_sentinel.core.providers.anthropic", "AnthropicProvider", None),
    "openai": ("ui_sentinel.core.providers.openai", "OpenAIProvider", "openai"),
}


def detect_provider(model: str) -> str:
    """Map a model name to the provider that serves it.

    Only the OpenAI families are recognised by prefix; every other model
    name, including ones from vendors without a provider here, is sent to
    the default Anthropic provider.
    """
    if model.lower().startswith(_OPENAI_PREFIXES):
        return "openai"
    return DEFAULT_PROVIDER


def get_provider_class(name: str) -> Type[BaseAnalysisProvider]:
    """Import and return the provider class registered under *name*.

    Raises:
        ImportError: If the provider's SDK is not installed.
        ValueError: If the provider name is unknown.
    """
    try:
        module_name, class_name, extra = _REGISTRY[name]
    except KeyError:
        raise ValueError(
            f"Unknown provider: {name!r}. Available: {', '.join(sorted(_REGISTRY))}"
        )
    try:
        module = importlib.import_module(module_name)
    except ImportError:
        if extra is None:
            raise
        raise ImportError(
            f"{class_name} needs an optional SDK. Install it with: "
            f"pip install ui-sentinel[{extra}]"
        )
    return getattr(module, class_name)
