"""Base class for remote analysis providers."""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Optional


@dataclass
class AnalysisRequest:
    system_prompt: str
    user_text: str
    screenshot_base64: Optional[str] = None


@dataclass
class Completion:
    text: str
    input_tokens: int = 0
    output_tokens: int = 0


class BaseAnalysisProvider(ABC):
    """Abstract base for provider implementations.

    Providers make exactly one request per call and never retry. SDK errors
    are translated to ``RemoteStatusError`` (the service answered with an
    error status) or ``RemoteTransportError`` (no answer: connection failure
    or timeout) so the gateway can apply one retry policy to every provider.
    """

    name = "unknown"

    def __init__(
        self,
        model: str,
        max_tokens: int = 2048,
        connect_timeout: float = 10.0,
        read_timeout: float = 30.0,
    ):
        self.model = model
        self.max_tokens = max_tokens
        self.connect_timeout = connect_timeout
        self.read_timeout = read_timeout

    @abstractmethod
    def complete(self, request: AnalysisRequest) -> Completion:
        """Send one request and return the raw completion text."""

    @staticmethod
    @abstractmethod
    def check_api_key() -> tuple[bool, str]:
        """Check whether the required API key is set.

        Returns:
            (is_set, env_var_name), e.g. (True, "ANTHROPIC_API_KEY").
        """
