"""Factory for provider adapters."""

from __future__ import annotations

import importlib
import logging
from typing import Any, Dict, List, Optional, Tuple

from ..errors import ConfigurationError
from .base import LLMProvider
from .config import (
    DEFAULT_PROVIDER,
    PROVIDER_FALLBACK_ORDER,
    PROVIDER_REGISTRY,
    get_provider_spec,
    store_api_key,
)

logger = logging.getLogger(__name__)


class ProviderFactory:
    """Creates and caches one adapter per provider id."""

    def __init__(self, providers: Optional[Dict[str, LLMProvider]] = None):
        self._providers: Dict[str, LLMProvider] = dict(providers or {})

    def get(self, provider_id: str) -> LLMProvider:
        """
        Return the adapter for ``provider_id``, creating it on first use.

        Raises:
            ConfigurationError: If the id is unknown or the adapter cannot be imported
        """
        if provider_id in self._providers:
            return self._providers[provider_id]

        spec = get_provider_spec(provider_id)
        module_path, class_name = spec.client_class.rsplit(".", 1)
        try:
            module = importlib.import_module(module_path)
            client_class = getattr(module, class_name)
        except (ImportError, AttributeError) as e:
            raise ConfigurationError(f"Failed to import provider class {spec.client_class}: {e}") from e

        provider = client_class(spec=spec)
        self._providers[provider_id] = provider
        return provider

    def is_available(self, provider_id: str) -> bool:
        try:
            return self.get(provider_id).is_configured()
        except ConfigurationError as e:
            logger.warning("Provider %s unavailable: %s", provider_id, e)
            return False

    def available(self) -> List[Tuple[str, bool]]:
        """(id, configured) for every known provider, in fallback order."""
        ids = list(PROVIDER_FALLBACK_ORDER) + [p for p in self._providers if p not in PROVIDER_FALLBACK_ORDER]
        return [(provider_id, self.is_available(provider_id)) for provider_id in ids]

    def first_configured(self) -> Optional[str]:
        for provider_id in PROVIDER_FALLBACK_ORDER:
            if self.is_available(provider_id):
                return provider_id
        return None

    def resolve(self, preferred: Optional[str] = None) -> Tuple[str, LLMProvider]:
        """Pick the provider for a command.

        The preferred provider wins when configured; otherwise the first
        configured provider in fallback order; otherwise the default, whose
        ``chat`` then reports that it is not configured.
        """
        if preferred and (preferred in PROVIDER_REGISTRY or preferred in self._providers):
            if self.is_available(preferred):
                return preferred, self.get(preferred)
            logger.info("Preferred provider %s is not configured, falling back", preferred)
        provider_id = self.first_configured() or DEFAULT_PROVIDER
        return provider_id, self.get(provider_id)

    def configure(self, provider_id: str, remember: bool = False, **changes: Any) -> LLMProvider:
        """Apply settings to a provider; ``remember`` stores the API key in the keyring."""
        provider = self.get(provider_id)
        provider.configure(**changes)
        if remember and changes.get("api_key"):
            store_api_key(get_provider_spec(provider_id), changes["api_key"])
        return provider
