"""Snowflake repositories for storage settings and course content."""

from .content import ContentRepository
from .storage_settings import SnowflakeConnection, StorageSettingsRepository

__all__ = ["ContentRepository", "SnowflakeConnection", "StorageSettingsRepository"]
