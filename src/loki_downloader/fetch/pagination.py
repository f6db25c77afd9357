from __future__ import annotations

from dataclasses import dataclass
from typing import Optional, Tuple

from loki_downloader.core.cancellation import CancellationToken
from loki_downloader.core.models import LogRecord
from loki_downloader.fetch.base import Fetcher

# one record past the batch is requested so the next cursor is a record that
# has not been handed out yet
LOOKAHEAD = 1


@dataclass(frozen=True)
class PageOutcome:
    """Result of one pagination step."""

    records: Tuple[LogRecord, ...]
    pointer: Optional[LogRecord]
    next_cursor: int
    exhausted: bool
    issued: bool = True


class Paginator:
    """
    Cursor based pagination over a Fetcher.

    Every step asks for ``requested_count + 1`` records. The first
    ``requested_count`` are returned; the extra one, when present, becomes the
    pointer whose timestamp is the next cursor, so the following batch starts
    exactly at the first record not yet returned. When the lookahead record is
    missing the window holds nothing beyond this batch and the query is
    exhausted.
    """

    def __init__(self, fetcher: Fetcher, query: str, window_end: int):
        self.fetcher = fetcher
        self.query = query
        self.window_end = window_end

    def next_batch(self, cursor: int, requested_count: int, token: CancellationToken) -> PageOutcome:
        if requested_count < 1:
            raise ValueError("requested_count must be at least 1")

        if token.cancelled:
            return PageOutcome(records=(), pointer=None, next_cursor=cursor, exhausted=False, issued=False)

        result = self.fetcher.fetch(
            cursor,
            self.window_end,
            self.query,
            requested_count + LOOKAHEAD,
            token,
        )

        fetched = result.records
        returned = tuple(fetched[:requested_count])
        lookahead = fetched[requested_count] if len(fetched) > requested_count else None
        pointer = lookahead or (returned[-1] if returned else None)

        return PageOutcome(
            records=returned,
            pointer=pointer,
            next_cursor=pointer.raw_timestamp if pointer else cursor,
            exhausted=len(returned) < requested_count or lookahead is None,
        )
