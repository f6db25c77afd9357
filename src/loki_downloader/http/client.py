from __future__ import annotations

import json
import threading
from decimal import Decimal
from typing import Any, Dict, List, Mapping, Optional

import requests
from pydantic import ValidationError

from loki_downloader.core.cancellation import CancellationToken
from loki_downloader.core.errors import (
    MaxResultWindowExceeded,
    OperationCancelled,
    RemoteQueryError,
)
from loki_downloader.core.models import FetchDirection
from loki_downloader.http.response import QueryRangeResponse
from loki_downloader.utils.logging import get_logger

QUERY_RANGE_PATH = "/loki/api/v1/query_range"
MAX_ENTRIES_ERROR = "max entries limit per query exceeded"


def build_headers(
    headers: Optional[Mapping[str, str]] = None,
    org_id: Optional[str] = None,
    query_tags: Optional[Mapping[str, str]] = None,
) -> Dict[str, str]:
    """Merge user headers with the tenant and query tag headers Loki understands."""
    merged = dict(headers or {})
    if org_id:
        merged["X-Scope-OrgID"] = org_id
    if query_tags:
        merged["X-Query-Tags"] = ",".join(f"{k}={v}" for k, v in query_tags.items())
    return merged


class LokiHttpClient:
    """
    Minimal Loki HTTP API client using the requests library.

    Responses are streamed so an in-flight transfer can be torn down when the
    cancellation token fires; no retries happen here.
    """

    def __init__(
        self,
        base_url: str,
        timeout_s: int = 30,
        headers: Optional[Mapping[str, str]] = None,
        session: Optional[requests.Session] = None,
        chunk_size: int = 64 * 1024,
    ):
        self.base_url = base_url.rstrip("/")
        self.timeout_s = timeout_s
        self.headers = dict(headers or {})
        self.session = session or requests.Session()
        self.chunk_size = chunk_size
        self.log = get_logger("loki_downloader.http")

    def query_range(
        self,
        *,
        query: str,
        limit: int,
        start_ns: int,
        end_ns: int,
        direction: FetchDirection,
        token: CancellationToken,
    ) -> QueryRangeResponse:
        """Run one ``query_range`` request for ``[start_ns, end_ns)``."""
        if token.cancelled:
            raise OperationCancelled("query_range not issued, run was cancelled")

        url = f"{self.base_url}{QUERY_RANGE_PATH}"
        params = {
            "query": query,
            "limit": str(limit),
            "start": str(start_ns),
            "end": str(end_ns),
            "direction": direction.value.lower(),
        }
        self.log.debug("GET %s limit=%s start=%s end=%s", url, limit, start_ns, end_ns)

        try:
            r = self._send(url, params, token)
        except requests.RequestException as e:
            if token.cancelled:
                raise OperationCancelled("query_range aborted") from e
            raise RemoteQueryError(f"Request to {url} failed: {e}") from e

        try:
            with token.on_cancel(r.close):
                body = self._read_body(r, token, url)
        finally:
            r.close()

        if not r.ok:
            text = body.decode("utf-8", errors="replace")
            if MAX_ENTRIES_ERROR in text:
                raise MaxResultWindowExceeded(text.strip() or MAX_ENTRIES_ERROR)
            raise RemoteQueryError(f"Loki API error (status={r.status_code}): {text.strip()[:500]}")

        return self._parse(body, url)

    def _send(self, url: str, params: Dict[str, str], token: CancellationToken) -> requests.Response:
        """
        Issue the GET on a worker thread and wait for headers or cancellation.

        Loki may take a long time to compute a result before it sends any
        headers. Cancelling during that wait closes the session's connections
        and abandons the worker; a response that still arrives afterwards is
        closed by the worker itself.
        """
        outcome: Dict[str, Any] = {}
        finished = threading.Event()

        def worker() -> None:
            try:
                response = self.session.get(
                    url,
                    params=params,
                    headers=self.headers,
                    timeout=self.timeout_s,
                    stream=True,
                )
                outcome["response"] = response
                if token.cancelled:
                    response.close()
            except Exception as e:
                outcome["error"] = e
            finally:
                finished.set()

        thread = threading.Thread(target=worker, name="loki-query-range", daemon=True)
        with token.on_cancel(finished.set):
            thread.start()
            finished.wait()

        if token.cancelled:
            self.log.info("Abandoning in-flight request to %s", url)
            response = outcome.get("response")
            if response is not None:
                response.close()
            self.session.close()
            raise OperationCancelled("query_range aborted while waiting for a response")

        if "error" in outcome:
            raise outcome["error"]
        return outcome["response"]

    def _read_body(self, r: requests.Response, token: CancellationToken, url: str) -> bytes:
        chunks: List[bytes] = []
        try:
            for chunk in r.iter_content(chunk_size=self.chunk_size):
                if token.cancelled:
                    raise OperationCancelled("query_range aborted")
                if chunk:
                    chunks.append(chunk)
        except OperationCancelled:
            raise
        except Exception as e:
            # closing the response from the abort hook surfaces here
            if token.cancelled:
                raise OperationCancelled("query_range aborted") from e
            raise RemoteQueryError(f"Failed reading response from {url}: {e}") from e

        if token.cancelled:
            raise OperationCancelled("query_range aborted")
        return b"".join(chunks)

    def _parse(self, body: bytes, url: str) -> QueryRangeResponse:
        try:
            payload = json.loads(body, parse_float=Decimal)
            parsed = QueryRangeResponse.model_validate(payload)
        except (ValueError, ValidationError) as e:
            raise RemoteQueryError(f"Unexpected response from {url}: {e}") from e

        if parsed.status != "success":
            raise RemoteQueryError(f"Loki reported status={parsed.status} for {url}")
        return parsed
