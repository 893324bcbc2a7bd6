"""
Unit tests for the lesson playback controller.
"""

import pytest

from coursecast.core.playback import (
    LOCKED_MESSAGE,
    PREVIEW_ENDED_MESSAGE,
    PROCESSING_MESSAGE,
    UNAVAILABLE_MESSAGE,
    PlaybackController,
    PlaybackState,
    PlayerMode,
    is_embed_url,
)
from coursecast.core.storage import ProcessingStatus

NATIVE_URL = "https://cdn.example.com/courses/course-1/1_intro.mp4?token=abc"
EMBED_URL = "https://iframe.mediadelivery.net/embed/1234/abcd"


class FakeMedia:

    def __init__(self) -> None:
        self.events: list[str] = []

    def play(self) -> None:
        self.events.append("play")

    def pause(self) -> None:
        self.events.append("pause")


class UrlLoader:
    """Counts calls and returns a fixed URL or raises."""

    def __init__(self, url: str = NATIVE_URL, error: Exception = None) -> None:
        self.url = url
        self.error = error
        self.calls: list[str] = []

    async def __call__(self, content_id: str) -> str:
        self.calls.append(content_id)
        if self.error is not None:
            raise self.error
        return self.url


def status_sequence(*statuses):
    """Status source yielding the given statuses, then repeating the last."""
    remaining = list(statuses)

    async def source(content_id: str) -> ProcessingStatus:
        if len(remaining) > 1:
            return remaining.pop(0)
        return remaining[0]

    return source


async def ready_controller(**kwargs) -> PlaybackController:
    controller = PlaybackController("lesson-1", UrlLoader(), **kwargs)
    await controller.load()
    return controller


class TestLoading:

    @pytest.mark.asyncio
    async def test_locked_without_access_never_fetches(self):
        loader = UrlLoader()
        controller = PlaybackController("lesson-1", loader, is_locked=True)

        state = await controller.load()

        assert state is PlaybackState.LOCKED
        assert loader.calls == []
        assert controller.view.message == LOCKED_MESSAGE

    @pytest.mark.asyncio
    async def test_locked_with_access_loads(self):
        controller = PlaybackController(
            "lesson-1", UrlLoader(), is_locked=True, has_access=True
        )

        assert await controller.load() is PlaybackState.READY

    @pytest.mark.asyncio
    async def test_ready_native_video(self):
        controller = await ready_controller()

        view = controller.view
        assert view.state is PlaybackState.READY
        assert view.mode is PlayerMode.NATIVE
        assert view.url == NATIVE_URL
        assert view.message is None

    @pytest.mark.asyncio
    async def test_embed_url_renders_as_iframe(self):
        controller = PlaybackController("lesson-1", UrlLoader(EMBED_URL))
        await controller.load()

        assert controller.view.mode is PlayerMode.IFRAME

    @pytest.mark.parametrize("url,embedded", [
        ("https://www.youtube.com/embed/xyz", True),
        ("https://player.vimeo.com/video/42", True),
        ("https://iframe.mediadelivery.net/play/1/2", True),
        ("https://example.com/embed/lesson", True),
        ("https://coursecast.b-cdn.net/courses/c/1_a.mp4", False),
        ("https://www.youtube.com/watch?v=xyz", False),
    ])
    def test_is_embed_url(self, url, embedded):
        assert is_embed_url(url) is embedded

    @pytest.mark.asyncio
    async def test_url_failure_is_error(self):
        controller = PlaybackController("lesson-1", UrlLoader(error=RuntimeError("boom")))

        assert await controller.load() is PlaybackState.ERROR
        assert controller.view.message == UNAVAILABLE_MESSAGE
        assert controller.view.url is None

    @pytest.mark.asyncio
    async def test_empty_url_is_error(self):
        controller = PlaybackController("lesson-1", UrlLoader(url=""))

        assert await controller.load() is PlaybackState.ERROR

    @pytest.mark.asyncio
    async def test_processing_error_status(self):
        loader = UrlLoader()
        controller = PlaybackController(
            "lesson-1", loader, status_sequence(ProcessingStatus.ERROR)
        )

        assert await controller.load() is PlaybackState.ERROR
        assert loader.calls == []

    @pytest.mark.asyncio
    async def test_status_source_failure_still_loads_url(self):
        async def broken(content_id):
            raise ConnectionError("status service down")

        controller = PlaybackController("lesson-1", UrlLoader(), broken)

        assert await controller.load() is PlaybackState.READY


class TestProcessingPoll:

    @pytest.mark.asyncio
    async def test_polls_until_ready_then_loads(self):
        loader = UrlLoader()
        controller = PlaybackController(
            "lesson-1",
            loader,
            status_sequence(
                ProcessingStatus.PROCESSING,
                ProcessingStatus.PROCESSING,
                ProcessingStatus.READY,
            ),
            poll_interval=0,
        )

        assert await controller.load() is PlaybackState.PROCESSING
        assert controller.view.message == PROCESSING_MESSAGE

        assert await controller.wait_until_settled() is PlaybackState.READY
        assert loader.calls == ["lesson-1"]
        assert controller.url == NATIVE_URL

    @pytest.mark.asyncio
    async def test_poll_stops_on_error(self):
        loader = UrlLoader()
        controller = PlaybackController(
            "lesson-1",
            loader,
            status_sequence(ProcessingStatus.PROCESSING, ProcessingStatus.ERROR),
            poll_interval=0,
        )
        await controller.load()

        assert await controller.wait_until_settled() is PlaybackState.ERROR
        assert loader.calls == []

    @pytest.mark.asyncio
    async def test_poll_survives_transient_failures(self):
        responses = [ProcessingStatus.PROCESSING, ConnectionError("blip"), ProcessingStatus.READY]

        async def flaky(content_id):
            response = responses.pop(0)
            if isinstance(response, Exception):
                raise response
            return response

        controller = PlaybackController("lesson-1", UrlLoader(), flaky, poll_interval=0)
        await controller.load()

        assert await controller.wait_until_settled() is PlaybackState.READY

    @pytest.mark.asyncio
    async def test_close_cancels_polling(self):
        loader = UrlLoader()
        controller = PlaybackController(
            "lesson-1",
            loader,
            status_sequence(ProcessingStatus.PROCESSING),
            poll_interval=60,
        )
        await controller.load()
        task = controller._poll_task

        await controller.close()

        assert task.cancelled()
        assert controller.state is PlaybackState.PROCESSING
        assert loader.calls == []

    @pytest.mark.asyncio
    async def test_close_without_polling_is_noop(self):
        controller = await ready_controller()

        await controller.close()

        assert controller.state is PlaybackState.READY


class TestFreePreview:

    @pytest.mark.asyncio
    async def test_cutoff_pauses_and_latches(self):
        media = FakeMedia()
        controller = await ready_controller(is_free_preview=True)
        controller.attach(media)
        controller.play()

        controller.on_time_update(4.9)
        assert controller.is_playing

        controller.on_time_update(5.0)

        assert media.events == ["play", "pause"]
        assert not controller.is_playing
        view = controller.view
        assert view.preview_ended
        assert view.message == PREVIEW_ENDED_MESSAGE

    @pytest.mark.asyncio
    async def test_play_is_refused_after_cutoff(self):
        media = FakeMedia()
        controller = await ready_controller(is_free_preview=True)
        controller.attach(media)
        controller.play()
        controller.on_time_update(6.0)

        # Seeking back does not clear the latch
        controller.on_time_update(1.0)

        assert controller.play() is False
        assert media.events == ["play", "pause"]

    @pytest.mark.asyncio
    async def test_access_disables_cutoff(self):
        media = FakeMedia()
        controller = await ready_controller(is_free_preview=True, has_access=True)
        controller.attach(media)
        controller.play()

        controller.on_time_update(120.0)

        assert controller.is_playing
        assert media.events == ["play"]
        assert not controller.view.preview_ended

    @pytest.mark.asyncio
    async def test_grant_access_clears_latch(self):
        controller = await ready_controller(is_free_preview=True)
        controller.play()
        controller.on_time_update(5.0)

        await controller.grant_access()

        assert controller.play() is True

    @pytest.mark.asyncio
    async def test_grant_access_unlocks_locked_lesson(self):
        loader = UrlLoader()
        controller = PlaybackController("lesson-1", loader, is_locked=True)
        await controller.load()

        assert await controller.grant_access() is PlaybackState.READY
        assert loader.calls == ["lesson-1"]

    @pytest.mark.asyncio
    async def test_custom_preview_length(self):
        controller = await ready_controller(is_free_preview=True, preview_duration=30)
        controller.play()

        controller.on_time_update(29.0)
        assert controller.is_playing
        controller.on_time_update(30.0)
        assert not controller.is_playing

    @pytest.mark.asyncio
    async def test_play_requires_ready(self):
        controller = PlaybackController("lesson-1", UrlLoader(), is_locked=True)
        await controller.load()

        assert controller.play() is False


class TestVideoEnd:

    @pytest.mark.asyncio
    async def test_end_callback_fires_once_per_completion(self):
        ended = []
        controller = await ready_controller(on_video_end=lambda: ended.append(True))
        controller.play()

        controller.on_ended()
        controller.on_ended()
        assert ended == [True]

        controller.play()
        controller.on_ended()
        assert ended == [True, True]

    @pytest.mark.asyncio
    async def test_end_without_callback(self):
        controller = await ready_controller()
        controller.play()

        controller.on_ended()

        assert not controller.is_playing

