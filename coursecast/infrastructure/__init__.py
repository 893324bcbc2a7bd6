"""
Infrastructure layer - external service integrations.

Each subdirectory wraps an external dependency:
- snowflake: Database persistence
- storage: Video storage providers (Supabase, Cloudflare R2, Bunny CDN)

These wrappers translate between external formats and our domain models.
"""
