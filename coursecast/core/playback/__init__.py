"""
Learner-facing playback: access gating, preview cutoff and completion events.
"""

from .controller import (
    LOCKED_MESSAGE,
    POLL_INTERVAL_SECONDS,
    PREVIEW_DURATION_SECONDS,
    PREVIEW_ENDED_MESSAGE,
    PROCESSING_MESSAGE,
    UNAVAILABLE_MESSAGE,
    MediaElement,
    PlaybackController,
    PlaybackState,
    PlaybackView,
    PlayerMode,
    PreviewState,
    is_embed_url,
)

__all__ = [
    "LOCKED_MESSAGE",
    "POLL_INTERVAL_SECONDS",
    "PREVIEW_DURATION_SECONDS",
    "PREVIEW_ENDED_MESSAGE",
    "PROCESSING_MESSAGE",
    "UNAVAILABLE_MESSAGE",
    "MediaElement",
    "PlaybackController",
    "PlaybackState",
    "PlaybackView",
    "PlayerMode",
    "PreviewState",
    "is_embed_url",
]
