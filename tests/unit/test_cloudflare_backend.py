"""
Unit tests for the worker-mediated Cloudflare R2 backend.
"""

import json
from dataclasses import replace

import httpx
import pytest

from coursecast.core.storage import (
    CancellationToken,
    NotConfiguredError,
    UploadCancelledError,
    UploadError,
    VideoFile,
)
from coursecast.infrastructure.storage.cloudflare import CloudflareWorkerBackend

from tests.helpers import make_client

WORKER = "https://r2-upload.example.workers.dev"
PATH = "courses/course-7/1700000000000_intro.mp4"


def worker_handler(final_key="courses/course-7/renamed.mp4", fail_phase=None):
    """Fake worker implementing /upload, /chunk, /complete and friends."""

    def handler(request: httpx.Request) -> httpx.Response:
        route = request.url.path
        if fail_phase and route == f"/{fail_phase}":
            return httpx.Response(500, text=f"{fail_phase} exploded")
        if route == "/upload":
            body = json.loads(request.content)
            return httpx.Response(200, json={"uploadId": "up-1", "objectKey": body["path"]})
        if route == "/chunk":
            return httpx.Response(200, json={"success": True})
        if route == "/complete":
            return httpx.Response(200, json={"objectKey": final_key})
        if route == "/get-url":
            return httpx.Response(200, json={"url": "https://signed.example/video.mp4"})
        return httpx.Response(200, json={})

    return handler


def make_backend(handler, chunk_size=4):
    client, transport = make_client(handler)
    return CloudflareWorkerBackend(client, chunk_size=chunk_size), transport


class TestWorkerUpload:
    """Three-phase upload: initiate, chunks, complete."""

    @pytest.mark.asyncio
    async def test_three_phases_and_authoritative_key(self, settings):
        backend, transport = make_backend(worker_handler())
        progress = []

        key = await backend.upload(
            VideoFile(name="intro.mp4", data=bytes(10)),
            PATH,
            settings,
            on_progress=progress.append,
        )

        assert key == "courses/course-7/renamed.mp4"
        routes = [(r.method, r.url.path) for r in transport.requests]
        assert routes == [
            ("POST", "/upload"),
            ("PUT", "/chunk"),
            ("PUT", "/chunk"),
            ("PUT", "/chunk"),
            ("POST", "/complete"),
        ]
        assert progress[-1].percentage == 100

    @pytest.mark.asyncio
    async def test_initiate_payload_and_chunk_headers(self, settings):
        backend, transport = make_backend(worker_handler())

        await backend.upload(VideoFile(name="intro.mp4", data=bytes(6)), PATH, settings)

        initiate = json.loads(transport.requests[0].content)
        assert initiate == {
            "fileName": "intro.mp4",
            "courseId": "course-7",
            "contentType": "video/mp4",
            "path": PATH,
        }

        chunks = [r for r in transport.requests if r.url.path == "/chunk"]
        assert [r.headers["X-Chunk-Index"] for r in chunks] == ["0", "1"]
        assert all(r.headers["X-Upload-ID"] == "up-1" for r in chunks)
        assert all(r.headers["X-Total-Chunks"] == "2" for r in chunks)

        complete = json.loads(transport.requests[-1].content)
        assert complete == {"uploadId": "up-1", "totalChunks": 2}

    @pytest.mark.parametrize("phase", ["upload", "chunk", "complete"])
    @pytest.mark.asyncio
    async def test_any_phase_failure_aborts(self, settings, phase):
        backend, _ = make_backend(worker_handler(fail_phase=phase))

        with pytest.raises(UploadError, match=f"{phase} exploded"):
            await backend.upload(VideoFile(name="a.mp4", data=bytes(6)), PATH, settings)

    @pytest.mark.asyncio
    async def test_requires_worker_url(self, settings):
        backend, transport = make_backend(worker_handler())

        with pytest.raises(NotConfiguredError):
            await backend.upload(
                VideoFile(name="a.mp4", data=b"x"),
                PATH,
                replace(settings, cloudflare_worker_url=None),
            )
        assert transport.requests == []

    @pytest.mark.asyncio
    async def test_cancellation_calls_worker_cancel(self, settings):
        token = CancellationToken()
        backend, transport = make_backend(worker_handler())

        with pytest.raises(UploadCancelledError):
            await backend.upload(
                VideoFile(name="a.mp4", data=bytes(12)),
                PATH,
                settings,
                on_progress=lambda progress: token.cancel(),
                cancel_token=token,
            )

        routes = [(r.method, r.url.path) for r in transport.requests]
        assert routes == [
            ("POST", "/upload"),
            ("PUT", "/chunk"),
            ("DELETE", "/cancel/up-1"),
        ]


class TestWorkerUrls:
    """Public URL first, then the worker."""

    @pytest.mark.asyncio
    async def test_public_url_is_concatenated(self, settings):
        backend, transport = make_backend(worker_handler())
        settings = replace(settings, cloudflare_public_url="https://videos.example.com/")

        url = await backend.get_url(PATH, settings)

        assert url == f"https://videos.example.com/{PATH}"
        assert transport.requests == []

    @pytest.mark.asyncio
    async def test_falls_back_to_worker(self, settings):
        backend, transport = make_backend(worker_handler())

        url = await backend.get_url(PATH, settings)

        assert url == "https://signed.example/video.mp4"
        body = json.loads(transport.requests[0].content)
        assert body == {"objectKey": PATH, "expiresIn": 3600}

    @pytest.mark.asyncio
    async def test_not_configured_without_any_route(self, settings):
        backend, _ = make_backend(worker_handler())

        with pytest.raises(NotConfiguredError):
            await backend.get_url(PATH, replace(settings, cloudflare_worker_url=None))


class TestWorkerDeleteAndStatus:

    @pytest.mark.asyncio
    async def test_delete_posts_object_key(self, settings):
        backend, transport = make_backend(worker_handler())

        await backend.delete(PATH, settings)

        request = transport.requests[0]
        assert request.url.path == "/delete"
        assert json.loads(request.content) == {"objectKey": PATH}

    @pytest.mark.asyncio
    async def test_status_of_unknown_upload_is_none(self, settings):
        backend, _ = make_backend(lambda request: httpx.Response(404, text="Upload not found"))

        assert await backend.get_upload_status("gone", settings) is None
