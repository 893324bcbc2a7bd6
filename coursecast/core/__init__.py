"""
Core domain logic for course videos.

Framework-agnostic: nothing here imports FastAPI, httpx or Snowflake.
"""
