"""
Learner-side playback state machine.

The controller decides what a lesson player shows: a locked notice, a
spinner, a "still processing" notice, an error, or the video itself. It
also enforces the free-preview cutoff and tells the course-progress
tracker when a lesson was watched to the end.

States:
    LOCKED      content is locked and the learner has no access
    LOADING     fetching the processing status / playable URL
    PROCESSING  video is still being processed; status is polled
    ERROR       video cannot be played
    READY       URL resolved; rendered as iframe or native player

The controller holds no reference to a UI toolkit. A media element that
can `play()` and `pause()` may be attached so the preview cutoff can stop
playback directly.
"""

import asyncio
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Awaitable, Callable, Optional, Protocol

from ..storage.models import ProcessingStatus

logger = logging.getLogger(__name__)

PREVIEW_DURATION_SECONDS = 5.0
POLL_INTERVAL_SECONDS = 5.0

EMBED_MARKERS = (
    "/embed/",
    "iframe.mediadelivery.net",
    "player.vimeo.com",
    "youtube.com/embed",
)

LOCKED_MESSAGE = "This video is locked. Contact your tutor to get access to this video."
PROCESSING_MESSAGE = "This video is still processing. It will start automatically when ready."
UNAVAILABLE_MESSAGE = "Video not available"
PREVIEW_ENDED_MESSAGE = "Preview ended. Enroll in this course to watch the full video."

UrlLoader = Callable[[str], Awaitable[str]]
StatusSource = Callable[[str], Awaitable[ProcessingStatus]]


class PlaybackState(str, Enum):
    LOCKED = "locked"
    LOADING = "loading"
    PROCESSING = "processing"
    ERROR = "error"
    READY = "ready"


class PlayerMode(str, Enum):
    IFRAME = "iframe"
    NATIVE = "native"


class MediaElement(Protocol):
    """Anything that can be paused and resumed, e.g. a video element proxy."""

    def play(self) -> None: ...
    def pause(self) -> None: ...


@dataclass
class PreviewState:
    current_time_seconds: float = 0.0
    preview_duration_limit: float = PREVIEW_DURATION_SECONDS
    preview_ended: bool = False


@dataclass(frozen=True)
class PlaybackView:
    """Snapshot of what the player should render."""
    state: PlaybackState
    mode: Optional[PlayerMode] = None
    url: Optional[str] = None
    message: Optional[str] = None
    preview_ended: bool = False


def is_embed_url(url: str) -> bool:
    return any(marker in url for marker in EMBED_MARKERS)


class PlaybackController:
    """
    Drives one lesson player.

    Call `load()` when the player mounts and `close()` when it goes away;
    `close()` stops any status polling still running.
    """

    def __init__(
        self,
        content_id: str,
        url_loader: UrlLoader,
        status_source: Optional[StatusSource] = None,
        *,
        is_free_preview: bool = False,
        is_locked: bool = False,
        has_access: bool = False,
        on_video_end: Optional[Callable[[], None]] = None,
        poll_interval: float = POLL_INTERVAL_SECONDS,
        preview_duration: float = PREVIEW_DURATION_SECONDS,
    ) -> None:
        self.content_id = content_id
        self.is_free_preview = is_free_preview
        self.is_locked = is_locked
        self.has_access = has_access
        self.state = PlaybackState.LOADING
        self.url: Optional[str] = None
        self.preview = PreviewState(preview_duration_limit=preview_duration)

        self._url_loader = url_loader
        self._status_source = status_source
        self._on_video_end = on_video_end
        self._poll_interval = poll_interval
        self._media: Optional[MediaElement] = None
        self._poll_task: Optional[asyncio.Task] = None
        self._playing = False
        self._ended_fired = False

    # ------------------------------------------------------------------
    # Loading
    # ------------------------------------------------------------------

    @property
    def is_previewing(self) -> bool:
        return self.is_free_preview and not self.has_access

    async def load(self) -> PlaybackState:
        if self.is_locked and not self.has_access:
            self.state = PlaybackState.LOCKED
            return self.state

        self.state = PlaybackState.LOADING
        self.url = None

        status = await self._fetch_status()
        if status is ProcessingStatus.PROCESSING:
            self.state = PlaybackState.PROCESSING
            self._start_polling()
        elif status is ProcessingStatus.ERROR:
            self.state = PlaybackState.ERROR
        else:
            await self._load_url()

        return self.state

    async def _fetch_status(self) -> ProcessingStatus:
        if self._status_source is None:
            return ProcessingStatus.READY
        try:
            return await self._status_source(self.content_id)
        except Exception as e:
            # Fall through to the URL fetch, which reports its own failure
            logger.warning(
                "Failed to fetch processing status",
                extra={"content_id": self.content_id, "error": str(e)}
            )
            return ProcessingStatus.READY

    async def _load_url(self) -> None:
        try:
            url = await self._url_loader(self.content_id)
        except Exception as e:
            logger.error(
                "Failed to load video",
                extra={"content_id": self.content_id, "error": str(e)}
            )
            self.state = PlaybackState.ERROR
            return

        if not url:
            self.state = PlaybackState.ERROR
            return

        self.url = url
        self.state = PlaybackState.READY

    # ------------------------------------------------------------------
    # Processing poll
    # ------------------------------------------------------------------

    def _start_polling(self) -> None:
        if self._poll_task is None or self._poll_task.done():
            self._poll_task = asyncio.create_task(self._poll_until_settled())

    async def _poll_until_settled(self) -> None:
        while self.state is PlaybackState.PROCESSING:
            await asyncio.sleep(self._poll_interval)
            try:
                status = await self._status_source(self.content_id)
            except Exception as e:
                logger.warning(
                    "Processing status poll failed, retrying",
                    extra={"content_id": self.content_id, "error": str(e)}
                )
                continue

            if status is ProcessingStatus.READY:
                self.state = PlaybackState.LOADING
                await self._load_url()
            elif status is ProcessingStatus.ERROR:
                self.state = PlaybackState.ERROR

    async def wait_until_settled(self) -> PlaybackState:
        """Wait for a running status poll to finish."""
        if self._poll_task is not None:
            await self._poll_task
        return self.state

    async def close(self) -> None:
        task, self._poll_task = self._poll_task, None
        if task is None or task.done():
            return
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass

    # ------------------------------------------------------------------
    # Media events
    # ------------------------------------------------------------------

    def attach(self, media: Optional[MediaElement]) -> None:
        self._media = media

    def play(self) -> bool:
        """Start playback; returns False while the preview cutoff is latched."""
        if self.state is not PlaybackState.READY:
            return False
        if self.is_previewing and self.preview.preview_ended:
            return False

        if self._media is not None:
            self._media.play()
        self._playing = True
        self._ended_fired = False
        return True

    def pause(self) -> None:
        if self._media is not None:
            self._media.pause()
        self._playing = False

    def on_time_update(self, current_time: float) -> None:
        self.preview.current_time_seconds = current_time

        if not self.is_previewing or self.preview.preview_ended:
            return
        if current_time >= self.preview.preview_duration_limit:
            self.pause()
            self.preview.preview_ended = True
            logger.info(
                "Free preview ended",
                extra={"content_id": self.content_id, "current_time": current_time}
            )

    def on_ended(self) -> None:
        """Natural end of playback; notifies the progress tracker once."""
        self._playing = False
        if self._ended_fired:
            return
        self._ended_fired = True
        if self._on_video_end is not None:
            self._on_video_end()

    async def grant_access(self) -> PlaybackState:
        """Learner gained access (e.g. enrolled) while the player is open."""
        self.has_access = True
        self.preview.preview_ended = False
        if self.state is PlaybackState.LOCKED:
            return await self.load()
        return self.state

    # ------------------------------------------------------------------
    # Rendering
    # ------------------------------------------------------------------

    @property
    def is_playing(self) -> bool:
        return self._playing

    @property
    def view(self) -> PlaybackView:
        preview_ended = self.is_previewing and self.preview.preview_ended

        if self.state is PlaybackState.READY:
            mode = PlayerMode.IFRAME if is_embed_url(self.url) else PlayerMode.NATIVE
            return PlaybackView(
                state=self.state,
                mode=mode,
                url=self.url,
                message=PREVIEW_ENDED_MESSAGE if preview_ended else None,
                preview_ended=preview_ended,
            )

        messages = {
            PlaybackState.LOCKED: LOCKED_MESSAGE,
            PlaybackState.PROCESSING: PROCESSING_MESSAGE,
            PlaybackState.ERROR: UNAVAILABLE_MESSAGE,
        }
        return PlaybackView(state=self.state, message=messages.get(self.state))
