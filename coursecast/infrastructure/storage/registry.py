"""
Provider lookup table.

The storage service asks the registry for a backend by provider and
never switches on provider names. Adding a provider means registering
one more backend here.
"""

import logging
from typing import Iterable, Optional

import httpx

from ...core.storage import StorageProvider, UnsupportedProviderError
from .base import StorageBackend
from .bunny import BunnyStorageBackend
from .cloudflare import CloudflareWorkerBackend
from .mock import InMemoryStorageBackend
from .supabase import SupabaseStorageBackend

logger = logging.getLogger(__name__)


class ProviderRegistry:

    def __init__(self, backends: Iterable[StorageBackend] = ()) -> None:
        self._backends: dict[StorageProvider, StorageBackend] = {}
        for backend in backends:
            self.register(backend)

    def register(self, backend: StorageBackend) -> None:
        if backend.provider is StorageProvider.EXTERNAL:
            raise ValueError("External links have no storage backend")
        self._backends[backend.provider] = backend

    def get(self, provider: object) -> StorageBackend:
        """Backend for a provider value; raises UnsupportedProviderError otherwise."""
        try:
            key = StorageProvider(provider)
        except ValueError:
            raise UnsupportedProviderError(provider)

        backend = self._backends.get(key)
        if backend is None:
            raise UnsupportedProviderError(provider)
        return backend

    @property
    def providers(self) -> list[StorageProvider]:
        return list(self._backends)

    @property
    def backends(self) -> list[StorageBackend]:
        return list(self._backends.values())


def create_provider_registry(
    client: Optional[httpx.AsyncClient] = None,
    supabase_url: Optional[str] = None,
    supabase_service_key: Optional[str] = None,
    mock_mode: bool = False,
) -> ProviderRegistry:
    """
    Build the registry of real backends, or in-memory ones in mock mode.

    Args:
        client: Shared HTTP client (required if not mock_mode)
        supabase_url: Supabase project URL for the direct object store
        supabase_service_key: Key sent as bearer token to Supabase Storage
        mock_mode: If True, register in-memory backends for all providers
    """
    if mock_mode:
        logger.info("Using in-memory storage backends")
        return ProviderRegistry(
            InMemoryStorageBackend(provider)
            for provider in StorageProvider
            if provider.is_stored
        )

    if client is None:
        raise ValueError("client is required when not in mock mode")

    return ProviderRegistry([
        SupabaseStorageBackend(client, supabase_url, supabase_service_key),
        CloudflareWorkerBackend(client),
        BunnyStorageBackend(client),
    ])
