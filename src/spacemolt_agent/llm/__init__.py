"""
LLM module for multi-provider AI model support.

Providers:
- Anthropic Claude (native SDK)
- OpenAI GPT (native SDK)
- OpenRouter, Groq, xAI, Mistral (via OpenAI-compatible endpoints)
- Ollama, LM Studio, vLLM (local OpenAI-compatible servers)
"""

from .base import BaseLLM, LLMMessage, LLMResponse, ToolCall, ToolDefinition
from .anthropic import AnthropicLLM
from .exceptions import LLMEmptyResponseError, LLMError, LLMStopError, LLMTimeoutError
from .openai import OpenAILLM
from .factory import create_llm

__all__ = [
    "BaseLLM",
    "LLMMessage",
    "LLMResponse",
    "ToolCall",
    "ToolDefinition",
    "AnthropicLLM",
    "OpenAILLM",
    "LLMError",
    "LLMEmptyResponseError",
    "LLMStopError",
    "LLMTimeoutError",
    "create_llm",
]
