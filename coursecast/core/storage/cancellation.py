"""Cooperative cancellation for chunked uploads."""

from typing import Optional

from .errors import UploadCancelledError


class CancellationToken:
    """
    Flag checked by uploaders between chunk requests.

    A request already on the wire is allowed to finish; the upload stops
    before the next one is sent.
    """

    def __init__(self) -> None:
        self._cancelled = False
        self._reason: Optional[str] = None

    def cancel(self, reason: str = "Upload cancelled") -> None:
        self._cancelled = True
        self._reason = reason

    @property
    def cancelled(self) -> bool:
        return self._cancelled

    def raise_if_cancelled(self) -> None:
        if self._cancelled:
            raise UploadCancelledError(self._reason or "Upload cancelled")
