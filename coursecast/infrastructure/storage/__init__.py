"""
Video storage providers and the storage service in front of them.

Includes in-memory backends for local development without credentials.
"""

from .bunny import BunnyStorageBackend
from .cloudflare import CloudflareWorkerBackend
from .mock import InMemoryStorageBackend, build_mock_transport
from .registry import ProviderRegistry, create_provider_registry
from .service import VideoStorageService
from .supabase import SupabaseStorageBackend

__all__ = [
    "BunnyStorageBackend",
    "CloudflareWorkerBackend",
    "InMemoryStorageBackend",
    "build_mock_transport",
    "ProviderRegistry",
    "create_provider_registry",
    "VideoStorageService",
    "SupabaseStorageBackend",
]
