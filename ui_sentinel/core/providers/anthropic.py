"""Anthropic (Claude) analysis provider."""

from __future__ import annotations

import os

import anthropic
import httpx

from ui_sentinel.core.providers.base import (
    AnalysisRequest,
    BaseAnalysisProvider,
    Completion,
)
from ui_sentinel.exceptions import RemoteStatusError, RemoteTransportError


class AnthropicProvider(BaseAnalysisProvider):
    """Provider for Anthropic Claude models."""

    name = "anthropic"

    def __init__(self, model: str, **kwargs):
        super().__init__(model, **kwargs)
        self.client = anthropic.Anthropic(
            max_retries=0,
            timeout=httpx.Timeout(self.read_timeout, connect=self.connect_timeout),
        )

    def complete(self, request: AnalysisRequest) -> Completion:
        content: list[dict] = []
        if request.screenshot_base64:
            content.append({
                "type": "image",
                "source": {
                    "type": "base64",
                    "media_type": "image/png",
                    "data": request.screenshot_base64,
                },
            })
        content.append({"type": "text", "text": request.user_text})

        try:
            response = self.client.messages.create(
                model=self.model,
                max_tokens=self.max_tokens,
                system=request.system_prompt,
                messages=[{"role": "user", "content": content}],
            )
        except anthropic.APIStatusError as e:
            raise RemoteStatusError(e.status_code, e.message, provider=self.name) from e
        except anthropic.APIConnectionError as e:
            # APITimeoutError is a subclass.
            raise RemoteTransportError(str(e), provider=self.name) from e

        text = "".join(
            block.text for block in response.content if block.type == "text"
        )
        usage = response.usage
        return Completion(
            text=text,
            input_tokens=getattr(usage, "input_tokens", 0) or 0,
            output_tokens=getattr(usage, "output_tokens", 0) or 0,
        )

    @staticmethod
    def check_api_key() -> tuple[bool, str]:
        return bool(os.environ.get("ANTHROPIC_API_KEY")), "ANTHROPIC_API_KEY"
