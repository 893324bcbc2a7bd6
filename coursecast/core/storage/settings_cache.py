"""
Time-bounded cache for the storage settings record.

The settings row changes rarely but is read on every upload and every
playback URL. The cache serves it from memory for a fixed TTL and can be
invalidated explicitly after a write, so a saved change is visible on the
very next operation rather than after the TTL runs out.
"""

import logging
import time
from typing import Callable, Optional

from .models import StorageSettings

logger = logging.getLogger(__name__)

DEFAULT_TTL_SECONDS = 5 * 60


class SettingsCache:
    """
    Holds one StorageSettings value for at most `ttl_seconds`.

    Staleness never exceeds the TTL. Writers must call `invalidate()`
    after changing the underlying record.
    """

    def __init__(
        self,
        loader: Callable[[], StorageSettings],
        ttl_seconds: float = DEFAULT_TTL_SECONDS,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        if ttl_seconds <= 0:
            raise ValueError("ttl_seconds must be positive")
        self._loader = loader
        self._ttl = ttl_seconds
        self._clock = clock
        self._value: Optional[StorageSettings] = None
        self._loaded_at = 0.0

    @property
    def is_fresh(self) -> bool:
        return (
            self._value is not None
            and (self._clock() - self._loaded_at) < self._ttl
        )

    def get(self) -> StorageSettings:
        """Return cached settings, reloading once the TTL has elapsed."""
        if self.is_fresh:
            return self._value

        value = self._loader()
        self._value = value
        self._loaded_at = self._clock()

        logger.debug(
            "Loaded storage settings",
            extra={"active_provider": getattr(value.active_provider, "value", value.active_provider)}
        )
        return value

    def invalidate(self) -> None:
        self._value = None
        self._loaded_at = 0.0
