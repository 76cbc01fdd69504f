from __future__ import annotations

import logging
import time
from typing import Any, Optional, Sequence

import openai
from openai import AsyncOpenAI

from app.ai.types import ChatMessage, ProviderCall

logger = logging.getLogger(__name__)


class OpenAICompatibleProvider:
    """Chat completions against OpenAI or any OpenAI-compatible API (DeepSeek).

    Exactly one attempt per call: the SDK's retry loop is disabled because a
    duplicate completion is billed twice and callers have a local fallback.
    """

    def __init__(
        self,
        model: str,
        api_key: str,
        base_url: Optional[str] = None,
        timeout_s: float = 15.0,
        temperature: float = 0.3,
        max_tokens: int = 1000,
        json_mode: bool = True,
        client: Any = None,
    ):
        self.model = model
        self._temperature = temperature
        self._max_tokens = max_tokens
        self._json_mode = json_mode
        self._client = client or AsyncOpenAI(
            api_key=api_key,
            base_url=base_url or None,
            timeout=timeout_s,
            max_retries=0,
        )

    async def complete(self, messages: Sequence[ChatMessage]) -> ProviderCall:
        payload = [{"role": m.role, "content": m.content} for m in messages]

        create_kwargs: dict[str, Any] = {
            "model": self.model,
            "messages": payload,
            "temperature": self._temperature,
            "max_tokens": self._max_tokens,
        }
        if self._json_mode:
            create_kwargs["response_format"] = {"type": "json_object"}

        started = time.perf_counter()
        try:
            response = await self._client.chat.completions.create(**create_kwargs)
        except openai.APITimeoutError as exc:
            return ProviderCall(status="timeout", error=str(exc), latency_ms=_elapsed_ms(started))
        except openai.APIStatusError as exc:
            return ProviderCall(
                status="http_error",
                http_status=exc.status_code,
                error=str(exc)[:200],
                latency_ms=_elapsed_ms(started),
            )
        except openai.APIConnectionError as exc:
            return ProviderCall(status="network_error", error=str(exc), latency_ms=_elapsed_ms(started))
        except openai.OpenAIError as exc:
            return ProviderCall(status="network_error", error=str(exc), latency_ms=_elapsed_ms(started))

        content = ""
        try:
            choices = getattr(response, "choices", None) or []
            if choices:
                content = choices[0].message.content or ""
        except (AttributeError, IndexError, TypeError):
            logger.debug("provider_response_unexpected_shape model=%s", self.model, exc_info=True)
            content = ""

        if not isinstance(content, str) or not content.strip():
            return ProviderCall(status="empty", latency_ms=_elapsed_ms(started))
        return ProviderCall(status="ok", content=content, latency_ms=_elapsed_ms(started))


def _elapsed_ms(started: float) -> int:
    return int((time.perf_counter() - started) * 1000)
