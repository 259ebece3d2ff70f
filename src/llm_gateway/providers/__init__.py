from src.llm_gateway.providers.anthropic import AnthropicProvider
from src.llm_gateway.providers.base import BaseLLMProvider, LLMResponse

__all__ = ["BaseLLMProvider", "LLMResponse", "AnthropicProvider"]
