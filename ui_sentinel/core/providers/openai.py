"""OpenAI analysis provider."""

from __future__ import annotations

import os

import httpx
import openai

from ui_sentinel.core.providers.base import (
    AnalysisRequest,
    BaseAnalysisProvider,
    Completion,
)
from ui_sentinel.exceptions import RemoteStatusError, RemoteTransportError


class OpenAIProvider(BaseAnalysisProvider):
    """Provider for OpenAI models (GPT-4o, o1, o3, etc.)."""

    name = "openai"

    def __init__(self, model: str, **kwargs):
        super().__init__(model, **kwargs)
        self.client = openai.OpenAI(
            max_retries=0,
            timeout=httpx.Timeout(self.read_timeout, connect=self.connect_timeout),
        )

    def complete(self, request: AnalysisRequest) -> Completion:
        user_content: list[dict] = [{"type": "text", "text": request.user_text}]
        if request.screenshot_base64:
            user_content.append({
                "type": "image_url",
                "image_url": {
                    "url": f"data:image/png;base64,{request.screenshot_base64}",
                },
            })

        try:
            response = self.client.chat.completions.create(
                model=self.model,
                max_tokens=self.max_tokens,
                messages=[
                    {"role": "system", "content": request.system_prompt},
                    {"role": "user", "content": user_content},
                ],
            )
        except openai.APIStatusError as e:
            raise RemoteStatusError(e.status_code, e.message, provider=self.name) from e
        except openai.APIConnectionError as e:
            raise RemoteTransportError(str(e), provider=self.name) from e

        message = response.choices[0].message
        usage = response.usage
        return Completion(
            text=message.content or "",
            input_tokens=getattr(usage, "prompt_tokens", 0) or 0,
            output_tokens=getattr(usage, "completion_tokens", 0) or 0,
        )

    @staticmethod
    def check_api_key() -> tuple[bool, str]:
        return bool(os.environ.get("OPENAI_API_KEY")), "OPENAI_API_KEY"
