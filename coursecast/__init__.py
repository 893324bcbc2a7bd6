"""
CourseCast - course video storage and playback service.

This package contains the complete application:
- core: Storage domain models and the playback controller
- infrastructure: Provider backends, Snowflake persistence, storage service
- api: FastAPI routes and dependencies
- config: Application configuration
"""

__version__ = "0.1.0"
