"""Provider configuration and registry."""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from typing import Literal, Optional

import keyring

from flux.core.config import KEYRING_SERVICE, OLLAMA_HOST, OLLAMA_MODEL, OLLAMA_PORT

from ..errors import ConfigurationError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ProviderSpec:
    """Static description of an LLM backend."""

    id: str
    display_name: str
    dialect: Literal["openai", "anthropic", "gemini"]
    client_class: str  # Module path to adapter class
    default_model: str
    requires_api_key: bool = True
    api_key_env: Optional[str] = None
    api_key_name: Optional[str] = None  # keyring entry
    base_url: Optional[str] = None
    max_tokens: int = 1024

    def __post_init__(self):
        """Validate configuration."""
        if self.requires_api_key and not (self.api_key_env or self.api_key_name):
            raise ConfigurationError(f"Provider {self.id} requires an API key but names no source for it")


PROVIDER_REGISTRY: dict[str, ProviderSpec] = {
    "gemini": ProviderSpec(
        id="gemini",
        display_name="Google Gemini",
        dialect="gemini",
        client_class="nanocoder.models.gemini_client.GeminiProvider",
        default_model="gemini-2.0-flash",
        api_key_env="GEMINI_API_KEY",
        api_key_name="gemini_api_key",
    ),
    "openai": ProviderSpec(
        id="openai",
        display_name="OpenAI",
        dialect="openai",
        client_class="nanocoder.models.openai_client.OpenAIProvider",
        default_model="gpt-4o-mini",
        api_key_env="OPENAI_API_KEY",
        api_key_name="openai_api_key",
    ),
    "claude": ProviderSpec(
        id="claude",
        display_name="Anthropic Claude",
        dialect="anthropic",
        client_class="nanocoder.models.anthropic_client.AnthropicProvider",
        default_model="claude-3-5-haiku-20241022",
        api_key_env="ANTHROPIC_API_KEY",
        api_key_name="anthropic_api_key",
    ),
    "glm": ProviderSpec(
        id="glm",
        display_name="Z.AI GLM",
        dialect="anthropic",
        client_class="nanocoder.models.anthropic_client.AnthropicProvider",
        default_model="glm-4.6",
        api_key_env="GLM_API_KEY",
        api_key_name="glm_api_key",
        base_url="https://api.z.ai/api/anthropic",
        max_tokens=4096,
    ),
    "ollama": ProviderSpec(
        id="ollama",
        display_name="Ollama (local)",
        dialect="openai",
        client_class="nanocoder.models.ollama_client.OllamaProvider",
        default_model=OLLAMA_MODEL,
        requires_api_key=False,
        # Only considered configured when a host is set.
        base_url=f"http://{OLLAMA_HOST}:{OLLAMA_PORT}" if OLLAMA_HOST else None,
    ),
}

PROVIDER_FALLBACK_ORDER = ("gemini", "openai", "claude", "glm", "ollama")
DEFAULT_PROVIDER = "openai"


def get_provider_spec(provider_id: str) -> ProviderSpec:
    spec = PROVIDER_REGISTRY.get(provider_id)
    if spec is None:
        raise ConfigurationError(
            f"Unknown provider: {provider_id}. Available: {', '.join(PROVIDER_REGISTRY)}"
        )
    return spec


def list_providers() -> list[ProviderSpec]:
    return list(PROVIDER_REGISTRY.values())


def resolve_api_key(spec: ProviderSpec) -> Optional[str]:
    """Look up a credential: environment first, then the OS keyring."""
    if spec.api_key_env:
        key = os.getenv(spec.api_key_env)
        if key:
            return key
    if not spec.api_key_name:
        return None
    try:
        return keyring.get_password(KEYRING_SERVICE, spec.api_key_name)
    except Exception as e:
        logger.debug("Keyring lookup for %s failed: %s", spec.api_key_name, e)
        return None


def store_api_key(spec: ProviderSpec, api_key: str) -> None:
    """Persist a credential in the OS keyring."""
    if not spec.api_key_name:
        raise ConfigurationError(f"Provider {spec.id} does not use an API key")
    keyring.set_password(KEYRING_SERVICE, spec.api_key_name, api_key)
