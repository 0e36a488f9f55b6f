"""Unit tests for the model invoker boundary."""

import httpx
import pytest

from coursegen.llm import LLMSettings, ModelInvocationError, OllamaInvoker, classify_invocation_error
from coursegen.models import InvocationErrorKind


class _StatusError(Exception):
    def __init__(self, status_code: int):
        super().__init__(f"HTTP {status_code}")
        self.status_code = status_code


class TestClassifyInvocationError:
    """Tests for error classification."""

    @pytest.mark.parametrize("message", [
        "429 Too Many Requests",
        "Rate limit reached for model",
        "Quota exceeded for project",
        "RESOURCE_EXHAUSTED: try later",
    ])
    def test_rate_limit_wording(self, message):
        assert classify_invocation_error(RuntimeError(message)) == InvocationErrorKind.RATE_LIMIT

    def test_status_code_429(self):
        assert classify_invocation_error(_StatusError(429)) == InvocationErrorKind.RATE_LIMIT

    def test_transport_errors(self):
        assert classify_invocation_error(httpx.ConnectError("refused")) == InvocationErrorKind.TRANSPORT
        assert classify_invocation_error(TimeoutError("timed out")) == InvocationErrorKind.TRANSPORT
        assert classify_invocation_error(ConnectionError("reset")) == InvocationErrorKind.TRANSPORT

    def test_unknown(self):
        assert classify_invocation_error(_StatusError(500)) == InvocationErrorKind.UNKNOWN
        assert classify_invocation_error(ValueError("bad model output")) == InvocationErrorKind.UNKNOWN

    def test_existing_kind_kept(self):
        error = ModelInvocationError("empty", InvocationErrorKind.EMPTY_RESPONSE)
        assert classify_invocation_error(error) == InvocationErrorKind.EMPTY_RESPONSE


class TestOllamaInvoker:
    """Tests for fallback and empty-response handling, with the client call stubbed."""

    def test_fallback_used_when_primary_empty(self, monkeypatch):
        settings = LLMSettings(model_name="primary", fallback_model_name="backup")
        invoker = OllamaInvoker(settings)
        calls = []

        def fake_call(prompt, use_fallback):
            calls.append(use_fallback)
            return "fallback text" if use_fallback else "  "

        monkeypatch.setattr(invoker, "_call", fake_call)
        response = invoker.invoke("prompt")

        assert response.text == "fallback text"
        assert response.model == "backup"
        assert calls == [False, True]

    def test_empty_without_fallback_raises(self, monkeypatch):
        invoker = OllamaInvoker(LLMSettings(model_name="primary", fallback_model_name=None))
        monkeypatch.setattr(invoker, "_call", lambda prompt, use_fallback: "")

        with pytest.raises(ModelInvocationError) as exc_info:
            invoker.invoke("prompt")
        assert exc_info.value.kind == InvocationErrorKind.EMPTY_RESPONSE

    def test_client_errors_wrapped(self, monkeypatch):
        invoker = OllamaInvoker(LLMSettings())

        class _FailingChain:
            def invoke(self, prompt):
                raise httpx.ReadTimeout("read timed out")

        monkeypatch.setattr(
            "coursegen.llm.client.create_llm_client",
            lambda settings, use_fallback=False: _Pipe(_FailingChain()),
        )
        with pytest.raises(ModelInvocationError) as exc_info:
            invoker.invoke("prompt")
        assert exc_info.value.kind == InvocationErrorKind.TRANSPORT


class _Pipe:
    """Stands in for an LLM client in `client | StrOutputParser()`."""

    def __init__(self, chain):
        self.chain = chain

    def __or__(self, other):
        return self.chain
