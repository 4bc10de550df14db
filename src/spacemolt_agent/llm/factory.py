"""
LLM factory for creating provider instances.

Model strings use the ``provider/model-id`` form, e.g. ``ollama/qwen3:8b``.
"""

from ..config import LLMConfig, Settings
from .base import BaseLLM
from .anthropic import AnthropicLLM
from .openai import OpenAILLM


def create_llm(
    config: LLMConfig | None = None,
    settings: Settings | None = None,
    model_string: str | None = None,
) -> BaseLLM:
    """Create an LLM instance based on configuration.

    Provider routing:
    - anthropic -> AnthropicLLM (native Anthropic SDK)
    - everything else -> OpenAILLM (native or OpenAI-compatible endpoint)
    """
    if config is None:
        if settings is None:
            from ..config import get_settings
            settings = get_settings()
        config = settings.get_llm_config(model_string)

    if not config.api_key:
        raise ValueError(f"No API key configured for provider: {config.provider}")

    if config.provider == "anthropic":
        return AnthropicLLM(
            api_key=config.api_key,
            model=config.model,
            base_url=config.base_url,
            max_tokens=config.max_tokens,
            temperature=config.temperature,
        )

    return OpenAILLM(
        api_key=config.api_key,
        model=config.model,
        base_url=config.base_url,
        max_tokens=config.max_tokens,
        temperature=config.temperature,
    )
