from typing import AsyncIterator, Protocol, runtime_checkable

from portfolio_chat.providers.common import ModelDecision


@runtime_checkable
class ModelProvider(Protocol):
    async def decide(self, messages: list[dict], tools: list[dict]) -> ModelDecision:
        """Ask the model for its next step: either tool calls or a final answer.

        ``messages`` are OpenAI-style chat messages; ``tools`` are provider-neutral
        ``{name, description, input_schema}`` dicts.
        """
        ...

    def stream(self, messages: list[dict]) -> AsyncIterator[str]:
        """Stream a final answer token by token, without tool access."""
        ...

    async def complete(self, messages: list[dict]) -> str:
        """Non-streaming completion (used for code explanations)."""
        ...


def create_provider(
    provider_name: str,
    api_key: str,
    *,
    model: str = "",
    temperature: float = 0.3,
    max_tokens: int = 2048,
) -> ModelProvider:
    """Factory: create a ModelProvider by name."""
    name = provider_name.strip().lower()
    if name == "openai":
        from portfolio_chat.providers.openai_provider import DEFAULT_MODEL, OpenAIProvider
        return OpenAIProvider(api_key, model=model or DEFAULT_MODEL, temperature=temperature, max_tokens=max_tokens)
    if name == "anthropic":
        from portfolio_chat.providers.anthropic_provider import DEFAULT_MODEL, AnthropicProvider
        return AnthropicProvider(api_key, model=model or DEFAULT_MODEL, temperature=temperature, max_tokens=max_tokens)
    raise ValueError(f"Unknown provider: {provider_name!r}. Supported: 'openai', 'anthropic'")
