"""HTTP helpers for backend tests."""

from typing import Callable, Optional

import httpx


class RecordingTransport(httpx.MockTransport):
    """MockTransport that keeps every request it answered."""

    def __init__(self, handler: Callable[[httpx.Request], httpx.Response]) -> None:
        self.requests: list[httpx.Request] = []

        def record(request: httpx.Request) -> httpx.Response:
            request.read()
            self.requests.append(request)
            return handler(request)

        super().__init__(record)


def make_client(
    handler: Optional[Callable[[httpx.Request], httpx.Response]] = None,
) -> tuple[httpx.AsyncClient, RecordingTransport]:
    """AsyncClient over a recording transport; answers 200 {} by default."""
    transport = RecordingTransport(handler or (lambda request: httpx.Response(200, json={})))
    return httpx.AsyncClient(transport=transport), transport
