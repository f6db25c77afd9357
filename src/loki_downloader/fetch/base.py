from __future__ import annotations
from typing import Protocol
from loki_downloader.core.cancellation import CancellationToken
from loki_downloader.core.models import BatchResult, FetchDirection


class Fetcher(Protocol):
    """
    Protocol for fetching one batch of log records.

    ``cursor`` is the position of the first record wanted and ``window_end`` the
    far bound of the traversal (the window end when going forward, the window
    start when going backward). Records come back in traversal order.
    """

    direction: FetchDirection

    def fetch(
        self,
        cursor: int,
        window_end: int,
        query: str,
        limit: int,
        token: CancellationToken,
    ) -> BatchResult: ...
