"""Anthropic Claude プロバイダー"""

import time
from typing import Any

import anthropic
from loguru import logger

from src.config.settings import get_settings
from src.llm_gateway.providers.base import BaseLLMProvider, LLMResponse


class AnthropicProvider(BaseLLMProvider):
    """Anthropic Claude API プロバイダー"""

    def __init__(self, client: anthropic.AsyncAnthropic | None = None) -> None:
        settings = get_settings()
        self._client = client or anthropic.AsyncAnthropic(
            api_key=settings.anthropic_api_key,
            timeout=settings.anthropic_timeout,
        )
        self._default_model = settings.anthropic_model_primary
        self._fast_model = settings.anthropic_model_fast
        self._max_tokens = settings.anthropic_max_tokens

    @property
    def provider_name(self) -> str:
        return "anthropic"

    async def generate(
        self,
        prompt: str,
        system_prompt: str | None = None,
        model: str | None = None,
        max_tokens: int | None = None,
        temperature: float = 0.0,
        **kwargs: Any,
    ) -> LLMResponse:
        """Claude APIでテキスト生成"""
        model = model or self._default_model
        max_tokens = max_tokens or self._max_tokens

        messages = [{"role": "user", "content": prompt}]

        start = time.monotonic()
        try:
            response = await self._client.messages.create(
                model=model,
                max_tokens=max_tokens,
                temperature=temperature,
                system=system_prompt or "",
                messages=messages,  # type: ignore[arg-type]
                **kwargs,
            )
        except anthropic.APIError as e:
            latency_ms = (time.monotonic() - start) * 1000
            logger.error("Anthropic API エラー", error=str(e), model=model, latency_ms=latency_ms)
            raise

        latency_ms = (time.monotonic() - start) * 1000
        input_tokens = response.usage.input_tokens
        output_tokens = response.usage.output_tokens
        content = response.content[0].text if response.content else ""  # type: ignore[union-attr]

        logger.debug(
            "LLM生成完了",
            provider="anthropic",
            model=model,
            input_tokens=input_tokens,
            output_tokens=output_tokens,
            latency_ms=round(latency_ms, 1),
        )

        return LLMResponse(
            content=content,
            model=model,
            provider="anthropic",
            input_tokens=input_tokens,
            output_tokens=output_tokens,
            latency_ms=latency_ms,
            metadata={"stop_reason": response.stop_reason},
        )

    async def health_check(self) -> bool:
        """Anthropic API接続チェック"""
        try:
            response = await self._client.messages.create(
                model=self._fast_model,
                max_tokens=10,
                messages=[{"role": "user", "content": "ping"}],
            )
            return len(response.content) > 0
        except anthropic.APIError as e:
            logger.error("Anthropic ヘルスチェック失敗", error=str(e))
            return False
