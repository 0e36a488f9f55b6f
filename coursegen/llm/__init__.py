"""LLM client and invoker boundary."""

from .client import (
    LLMSettings,
    ModelInvocationError,
    ModelInvoker,
    ModelResponse,
    OllamaInvoker,
    classify_invocation_error,
    create_llm_client,
    get_llm_settings,
)

__all__ = [
    "LLMSettings",
    "ModelInvocationError",
    "ModelInvoker",
    "ModelResponse",
    "OllamaInvoker",
    "classify_invocation_error",
    "create_llm_client",
    "get_llm_settings",
]
