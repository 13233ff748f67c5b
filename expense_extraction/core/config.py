"""
LLM configuration, resolved from the environment or built explicitly.
"""

import os
from dataclasses import dataclass
from enum import Enum
from typing import Dict, Optional


class LLMProvider(str, Enum):
    """Supported LLM providers."""
    OPENAI = "openai"
    ANTHROPIC = "anthropic"


# Default models for each provider
DEFAULT_MODELS = {
    LLMProvider.OPENAI: "gpt-4o-mini",
    LLMProvider.ANTHROPIC: "claude-3-5-haiku-20241022",
}

# Provider-specific credential variables, checked after LLM_API_KEY
API_KEY_ENV_VARS = {
    LLMProvider.OPENAI: ("OPENAI_API_KEY", "OPENROUTER_API_KEY"),
    LLMProvider.ANTHROPIC: ("ANTHROPIC_API_KEY",),
}

DEFAULT_TIMEOUT = 30.0

# OpenRouter is reached through the OpenAI client
OPENROUTER_BASE_URL = "https://openrouter.ai/api/v1"
OPENROUTER_DEFAULT_MODEL = "mistralai/mixtral-8x7b-instruct"


@dataclass(frozen=True)
class LLMConfig:
    """
    Settings for the structured-extraction model client.

    An instance without ``api_key`` is the unconfigured variant: the
    extractor abstains on every call and the pipeline runs heuristics only.
    """
    provider: LLMProvider = LLMProvider.OPENAI
    api_key: Optional[str] = None
    base_url: Optional[str] = None
    model: Optional[str] = None
    timeout: float = DEFAULT_TIMEOUT
    max_tokens: int = 500
    temperature: float = 0.2
    app_url: Optional[str] = None
    app_title: Optional[str] = None

    def __post_init__(self):
        object.__setattr__(self, "provider", parse_provider(self.provider))

    @property
    def is_configured(self) -> bool:
        return bool(self.api_key)

    @property
    def resolved_model(self) -> str:
        return self.model or DEFAULT_MODELS[self.provider]

    @property
    def extra_headers(self) -> Dict[str, str]:
        """Attribution headers understood by OpenRouter."""
        headers = {}
        if self.app_url:
            headers["HTTP-Referer"] = self.app_url
        if self.app_title:
            headers["X-Title"] = self.app_title
        return headers

    @classmethod
    def unconfigured(cls) -> "LLMConfig":
        return cls()

    @classmethod
    def from_env(cls, provider: Optional[str] = None,
                 model: Optional[str] = None,
                 environ: Optional[Dict[str, str]] = None) -> "LLMConfig":
        """
        Build a config from environment variables.

        Args:
            provider: Overrides LLM_PROVIDER when given
            model: Overrides LLM_MODEL when given
            environ: Mapping to read instead of os.environ

        Raises:
            ValueError: unknown provider name
        """
        env = os.environ if environ is None else environ
        resolved = parse_provider(provider or env.get("LLM_PROVIDER") or LLMProvider.OPENAI)

        api_key = env.get("LLM_API_KEY")
        key_var = "LLM_API_KEY"
        if not api_key:
            for var in API_KEY_ENV_VARS[resolved]:
                if env.get(var):
                    api_key, key_var = env[var], var
                    break

        base_url = env.get("LLM_BASE_URL") or None
        model = model or env.get("LLM_MODEL") or None
        if api_key and key_var == "OPENROUTER_API_KEY" and not base_url:
            base_url = OPENROUTER_BASE_URL
        if base_url == OPENROUTER_BASE_URL and not model:
            model = env.get("OPENROUTER_MODEL") or OPENROUTER_DEFAULT_MODEL

        timeout = env.get("LLM_TIMEOUT")
        return cls(
            provider=resolved,
            api_key=api_key or None,
            base_url=base_url,
            model=model,
            timeout=float(timeout) if timeout else DEFAULT_TIMEOUT,
            app_url=env.get("APP_URL") or None,
            app_title=env.get("APP_TITLE") or None,
        )


def parse_provider(value) -> LLMProvider:
    """Convert a provider name to LLMProvider, rejecting unknown names."""
    try:
        return LLMProvider(value)
    except ValueError:
        valid = ", ".join(p.value for p in LLMProvider)
        raise ValueError(f"Invalid LLM provider: {value} (must be one of: {valid})") from None
