from __future__ import annotations

from typing import List, Tuple

from loki_downloader.core.cancellation import CancellationToken
from loki_downloader.core.errors import OperationCancelled
from loki_downloader.core.models import BatchResult, FetchDirection, LogRecord
from loki_downloader.http.client import LokiHttpClient
from loki_downloader.http.response import MatrixData, QueryRangeResponse
from loki_downloader.utils.logging import get_logger
from loki_downloader.utils.time import nanoseconds_to_iso, seconds_to_nanoseconds


def window_bounds(cursor: int, window_end: int, direction: FetchDirection) -> Tuple[int, int]:
    """Loki ``[start, end)`` for a cursor; the cursor record is always included."""
    if direction == FetchDirection.FORWARD:
        return cursor, window_end
    return window_end, cursor + 1


def records_from_response(data: QueryRangeResponse, direction: FetchDirection) -> List[LogRecord]:
    """Flatten every stream of the response into one list in traversal order."""
    records: List[LogRecord] = []

    if isinstance(data.data, MatrixData):
        for series in data.data.result:
            for seconds, value in series.values:
                raw = seconds_to_nanoseconds(seconds)
                records.append(LogRecord(nanoseconds_to_iso(raw), raw, value, dict(series.metric)))
    else:
        for stream in data.data.result:
            for ns, line in stream.values:
                raw = int(ns)
                records.append(LogRecord(nanoseconds_to_iso(raw), raw, line, dict(stream.stream)))

    # streams arrive one after another; interleave them by time (stable)
    records.sort(key=lambda r: r.raw_timestamp, reverse=direction == FetchDirection.BACKWARD)
    return records


class LokiFetcher:
    """Fetcher backed by the Loki ``query_range`` endpoint."""

    def __init__(self, client: LokiHttpClient, direction: FetchDirection = FetchDirection.BACKWARD):
        self.client = client
        self.direction = direction
        self.log = get_logger("loki_downloader.fetch")

    def fetch(
        self,
        cursor: int,
        window_end: int,
        query: str,
        limit: int,
        token: CancellationToken,
    ) -> BatchResult:
        start, end = window_bounds(cursor, window_end, self.direction)
        if start >= end:
            return BatchResult()

        try:
            data = self.client.query_range(
                query=query,
                limit=limit,
                start_ns=start,
                end_ns=end,
                direction=self.direction,
                token=token,
            )
        except OperationCancelled:
            self.log.info("Fetch aborted by cancellation")
            return BatchResult()

        records = records_from_response(data, self.direction)[:limit]
        return BatchResult(records=tuple(records), pointer=records[-1] if records else None)
