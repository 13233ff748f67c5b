from __future__ import annotations

import json

import pytest

LLM_ENV_VARS = (
    "LLM_PROVIDER",
    "LLM_API_KEY",
    "LLM_BASE_URL",
    "LLM_MODEL",
    "LLM_TIMEOUT",
    "OPENAI_API_KEY",
    "OPENROUTER_API_KEY",
    "OPENROUTER_MODEL",
    "ANTHROPIC_API_KEY",
    "APP_URL",
    "APP_TITLE",
)


@pytest.fixture(autouse=True)
def _clear_llm_env(monkeypatch) -> None:
    # Tests must never reach a real provider.
    for var in LLM_ENV_VARS:
        monkeypatch.delenv(var, raising=False)


class FakeCompletion:
    """Stands in for the provider call and records every request."""

    def __init__(self, *responses) -> None:
        self.responses = list(responses)
        self.requests = []

    def __call__(self, request):
        self.requests.append(request)
        response = self.responses.pop(0) if len(self.responses) > 1 else self.responses[0]
        if isinstance(response, Exception):
            raise response
        if isinstance(response, dict):
            return json.dumps(response)
        return response


@pytest.fixture
def fake_completion():
    return FakeCompletion


@pytest.fixture
def llm_config():
    from expense_extraction.core.config import LLMConfig

    return LLMConfig(api_key="test-key")
