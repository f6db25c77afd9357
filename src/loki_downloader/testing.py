"""
Deterministic in-memory collaborators.

``InMemoryFetcher`` serves a fixed list of records with the same window,
direction and limit semantics as the Loki fetcher, and ``InMemoryFileSystem``
keeps output files and state snapshots in dictionaries. Both let a download
engine run without network or disk.
"""

from __future__ import annotations

import json
from typing import Any, Callable, Dict, List, Mapping, Optional, Sequence, Tuple

from loki_downloader.core.cancellation import CancellationToken
from loki_downloader.core.models import BatchResult, FetchDirection, LogRecord
from loki_downloader.fetch.loki_fetcher import window_bounds
from loki_downloader.sinks.base import OutputDirInfo
from loki_downloader.sinks.local_fs import encode_records
from loki_downloader.utils.time import nanoseconds_to_iso

OnCalled = Callable[[int, CancellationToken], None]


def make_records(count: int, start_ns: int, step_ns: int = 1_000_000) -> List[LogRecord]:
    """``count`` records one ``step_ns`` apart, numbered from 1 in time order."""
    records = []
    for index in range(count):
        raw = start_ns + index * step_ns
        records.append(LogRecord(nanoseconds_to_iso(raw), raw, f"log line: {index + 1}", {"app": "test"}))
    return records


class InMemoryFetcher:
    """
    Fetcher over a fixed dataset.

    ``on_called(call_number, token)`` runs after the batch has been selected,
    which is where tests inject failures or cancel an in-flight call.
    """

    def __init__(
        self,
        records: Sequence[LogRecord],
        direction: FetchDirection = FetchDirection.BACKWARD,
        on_called: Optional[OnCalled] = None,
    ):
        self.records = sorted(records, key=lambda r: r.raw_timestamp)
        self.direction = direction
        self.on_called = on_called
        self.called = 0
        self.requests: List[Tuple[int, int, int]] = []

    def fetch(
        self,
        cursor: int,
        window_end: int,
        query: str,
        limit: int,
        token: CancellationToken,
    ) -> BatchResult:
        self.called += 1
        self.requests.append((cursor, window_end, limit))

        if token.cancelled:
            return BatchResult()

        start, end = window_bounds(cursor, window_end, self.direction)
        matching = [r for r in self.records if start <= r.raw_timestamp < end]
        if self.direction == FetchDirection.BACKWARD:
            matching.reverse()
        batch = tuple(matching[:limit])

        if self.on_called:
            self.on_called(self.called, token)

        return BatchResult(records=batch, pointer=batch[-1] if batch else None)


class InMemoryFileSystem:
    """FileSystem keeping everything in dictionaries."""

    def __init__(self, configs: Optional[Mapping[str, str]] = None):
        self.files: Dict[str, str] = {}
        self.snapshots: Dict[str, str] = {}
        self.configs: Dict[str, str] = dict(configs or {})
        self.dirs: set = set()
        self.cleared: List[str] = []

    def _children(self, path: str) -> List[str]:
        prefix = path.rstrip("/") + "/"
        return [name for name in self.files if name.startswith(prefix)]

    def describe_output_dir(self, path: str) -> OutputDirInfo:
        children = self._children(path)
        if not children and path not in self.dirs:
            return OutputDirInfo(exists=False, is_empty=False)
        return OutputDirInfo(exists=True, is_empty=not children)

    def clear_output_dir(self, path: str) -> None:
        for name in self._children(path):
            del self.files[name]
        self.dirs.add(path)
        self.cleared.append(path)

    def append_records(self, path: str, records: Sequence[LogRecord]) -> None:
        if not records:
            return
        self.files[path] = self.files.get(path, "") + encode_records(records)

    def read_config_file(self, path: str) -> str:
        if path not in self.configs:
            raise FileNotFoundError(path)
        return self.configs[path]

    def load_state_snapshot(self, path: str) -> Optional[str]:
        return self.snapshots.get(path)

    def save_state_snapshot(self, path: str, state: Mapping[str, Any]) -> None:
        self.snapshots[path] = json.dumps(dict(state))

    # ---------- Inspection helpers ----------

    def read_records(self, path: str) -> List[Dict[str, Any]]:
        return [json.loads(line) for line in self.files.get(path, "").splitlines() if line]

    def output_files(self, output_dir: str) -> List[str]:
        """Output file paths under ``output_dir`` in file number order."""
        names = self._children(output_dir)
        return sorted(names, key=lambda name: int(name.rsplit("/", 1)[-1].split(".", 1)[0]))

    def state_snapshots(self) -> Dict[str, Dict[str, Any]]:
        return {path: json.loads(raw) for path, raw in self.snapshots.items()}
