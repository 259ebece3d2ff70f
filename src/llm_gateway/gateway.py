"""LLMゲートウェイ — プロバイダー選択 + リトライ + メトリクス"""

from typing import Any

from loguru import logger
from tenacity import retry, retry_if_exception_type, stop_after_attempt, wait_exponential

from src.config.settings import get_settings
from src.llm_gateway.providers.base import BaseLLMProvider, LLMResponse
from src.monitoring.metrics import (
    llm_request_duration_seconds,
    llm_requests_total,
    llm_tokens_total,
)


class LLMGateway:
    """LLMゲートウェイ

    - 登録順にプロバイダーを試行
    - 自動リトライ + 指数バックオフ
    - メトリクス記録
    """

    def __init__(self) -> None:
        self._providers: dict[str, BaseLLMProvider] = {}
        self._settings = get_settings()

    def register_provider(self, provider: BaseLLMProvider) -> None:
        """プロバイダーを登録"""
        self._providers[provider.provider_name] = provider
        logger.info("LLMプロバイダー登録", provider=provider.provider_name)

    @property
    def providers(self) -> list[str]:
        return list(self._providers)

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=1, max=30),
        retry=retry_if_exception_type(Exception),
        reraise=True,
    )
    async def generate(
        self,
        prompt: str,
        system_prompt: str | None = None,
        model: str | None = None,
        provider: str | None = None,
        max_tokens: int | None = None,
        temperature: float = 0.0,
        use_fast_model: bool = False,
        **kwargs: Any,
    ) -> LLMResponse:
        """テキスト生成 — フォールバック + リトライ対応"""
        if use_fast_model:
            model = self._settings.anthropic_model_fast

        providers_to_try = [provider] if provider else list(self._providers)
        last_error: Exception | None = None

        for provider_name in providers_to_try:
            if provider_name not in self._providers:
                continue
            try:
                response = await self._providers[provider_name].generate(
                    prompt=prompt,
                    system_prompt=system_prompt,
                    model=model,
                    max_tokens=max_tokens,
                    temperature=temperature,
                    **kwargs,
                )
                self._record_metrics(response)
                return response

            except Exception as e:
                last_error = e
                llm_requests_total.labels(provider=provider_name, model=model or "default", status="error").inc()
                logger.warning(
                    "LLMプロバイダーエラー、フォールバック試行",
                    provider=provider_name,
                    error=str(e),
                )
                continue

        raise last_error or RuntimeError("利用可能なLLMプロバイダーがありません")

    def _record_metrics(self, response: LLMResponse) -> None:
        """Prometheusメトリクスを記録"""
        llm_requests_total.labels(
            provider=response.provider,
            model=response.model,
            status="success",
        ).inc()

        llm_tokens_total.labels(
            provider=response.provider,
            model=response.model,
            direction="input",
        ).inc(response.input_tokens)

        llm_tokens_total.labels(
            provider=response.provider,
            model=response.model,
            direction="output",
        ).inc(response.output_tokens)

        llm_request_duration_seconds.labels(
            provider=response.provider,
            model=response.model,
        ).observe(response.latency_ms / 1000)

    async def health_check(self) -> dict[str, bool]:
        """全プロバイダーのヘルスチェック"""
        results: dict[str, bool] = {}
        for name, provider in self._providers.items():
            results[name] = await provider.health_check()
        return results
