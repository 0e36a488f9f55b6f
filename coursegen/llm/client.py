"""Model invoker: the boundary between the pipeline and the generative model.

The pipeline only depends on the ModelInvoker protocol. OllamaInvoker is the
default implementation, built on langchain-ollama.
"""

import time
from functools import lru_cache
from typing import Optional, Protocol

import httpx
import structlog
from langchain_core.output_parsers import StrOutputParser
from langchain_ollama import OllamaLLM
from pydantic import BaseModel
from pydantic_settings import BaseSettings, SettingsConfigDict

from coursegen.models import InvocationErrorKind

logger = structlog.get_logger(__name__)

RATE_LIMIT_MARKERS = ("429", "rate limit", "rate-limit", "quota", "resource_exhausted", "too many requests")


class LLMSettings(BaseSettings):
    """LLM configuration settings."""

    model_config = SettingsConfigDict(
        env_prefix="LLM_",
        env_file=".env",
        extra="ignore",
    )

    ollama_base_url: str = "http://localhost:11434"
    model_name: str = "gpt-oss:20b"
    fallback_model_name: Optional[str] = None  # Used when primary returns empty
    temperature: float = 0.3
    request_timeout: int = 120
    num_ctx: int = 32768
    num_predict: int = 8192  # Max tokens to generate


class ModelResponse(BaseModel):
    """Text returned by one model invocation."""

    text: str
    duration_ms: int
    model: str


class ModelInvocationError(Exception):
    """Model invocation failed.

    Attributes:
        kind: Rate limit, transport, empty response or unknown.
    """

    def __init__(self, message: str, kind: InvocationErrorKind = InvocationErrorKind.UNKNOWN):
        super().__init__(message)
        self.kind = kind

    @property
    def is_rate_limit(self) -> bool:
        return self.kind == InvocationErrorKind.RATE_LIMIT


class ModelInvoker(Protocol):
    """Anything that turns a prompt into model text."""

    def invoke(self, prompt: str) -> ModelResponse:
        """Invoke the model.

        Raises:
            ModelInvocationError: On any failure.
        """
        ...


@lru_cache
def get_llm_settings() -> LLMSettings:
    """Get cached LLM settings."""
    return LLMSettings()


def create_llm_client(settings: LLMSettings | None = None, use_fallback: bool = False) -> OllamaLLM:
    """Create configured Ollama LLM client.

    Args:
        settings: Optional custom settings. Uses defaults if not provided.
        use_fallback: If True, use the fallback model instead of primary.

    Returns:
        Configured OllamaLLM instance.
    """
    settings = settings or get_llm_settings()
    model = settings.fallback_model_name if use_fallback else settings.model_name

    return OllamaLLM(
        model=model,
        base_url=settings.ollama_base_url,
        temperature=settings.temperature,
        timeout=settings.request_timeout,
        num_ctx=settings.num_ctx,
        num_predict=settings.num_predict,
    )


def classify_invocation_error(exc: BaseException) -> InvocationErrorKind:
    """Classify a raw client exception.

    Rate limiting is detected from an HTTP 429 status or quota wording;
    connection problems and timeouts count as transport failures.
    """
    if isinstance(exc, ModelInvocationError):
        return exc.kind

    status = getattr(exc, "status_code", None) or getattr(exc, "status", None)
    if status == 429:
        return InvocationErrorKind.RATE_LIMIT

    message = str(exc).lower()
    if any(marker in message for marker in RATE_LIMIT_MARKERS):
        return InvocationErrorKind.RATE_LIMIT

    if isinstance(exc, (httpx.TransportError, ConnectionError, TimeoutError)):
        return InvocationErrorKind.TRANSPORT

    return InvocationErrorKind.UNKNOWN


class OllamaInvoker:
    """ModelInvoker backed by a local Ollama server.

    Falls back to the configured fallback model when the primary model
    returns an empty response.
    """

    def __init__(self, settings: LLMSettings | None = None):
        self.settings = settings or get_llm_settings()

    def _call(self, prompt: str, use_fallback: bool) -> str:
        chain = create_llm_client(self.settings, use_fallback=use_fallback) | StrOutputParser()
        try:
            return chain.invoke(prompt) or ""
        except Exception as e:
            kind = classify_invocation_error(e)
            logger.warning("llm_invocation_failed", error=str(e), kind=kind.value)
            raise ModelInvocationError(f"Model invocation failed: {e}", kind) from e

    def invoke(self, prompt: str) -> ModelResponse:
        start = time.perf_counter()
        model = self.settings.model_name

        logger.debug("llm_invoke_primary", model=model, prompt_chars=len(prompt))
        text = self._call(prompt, use_fallback=False)

        if not text.strip() and self.settings.fallback_model_name:
            model = self.settings.fallback_model_name
            logger.warning(
                "llm_primary_empty_trying_fallback",
                primary_model=self.settings.model_name,
                fallback_model=model,
            )
            text = self._call(prompt, use_fallback=True)

        if not text.strip():
            raise ModelInvocationError(
                f"Empty response from model {model}", InvocationErrorKind.EMPTY_RESPONSE
            )

        return ModelResponse(
            text=text,
            duration_ms=int((time.perf_counter() - start) * 1000),
            model=model,
        )
