from __future__ import annotations

from dataclasses import dataclass, field, replace
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Mapping, Optional, Tuple

from loki_downloader.utils.time import datetime_to_nanoseconds


class FetchDirection(str, Enum):
    """Traversal order of the query window."""

    FORWARD = "FORWARD"
    BACKWARD = "BACKWARD"


class RunStatus(str, Enum):
    """Lifecycle of a single download run."""

    IDLE = "idle"
    PREPARING = "preparing"
    RUNNING = "running"
    COOLING_DOWN = "cooling_down"
    DONE = "done"
    CANCELLED = "cancelled"
    FAILED = "failed"


@dataclass(frozen=True)
class LogRecord:
    """A single log line returned by the remote query API."""

    timestamp: str
    raw_timestamp: int
    content: str
    labels: Mapping[str, str] = field(default_factory=dict)

    def to_json_dict(self) -> Dict[str, Any]:
        return {
            "timestamp": self.timestamp,
            "rawTimestamp": str(self.raw_timestamp),
            "content": self.content,
            "labels": dict(self.labels),
        }


@dataclass(frozen=True)
class BatchResult:
    """Records of one fetch call plus the record the next fetch starts from."""

    records: Tuple[LogRecord, ...] = ()
    pointer: Optional[LogRecord] = None


@dataclass(frozen=True)
class DownloadState:
    """Progress snapshot persisted after every committed batch."""

    start_from_timestamp: int
    total_records: int = 0
    query_records_exhausted: bool = False
    file_number: int = 0
    iteration: int = 0
    prev_saved_records_in_file: int = 0

    def to_snapshot(self) -> Dict[str, Any]:
        # cursor as decimal string, JSON numbers lose nanosecond precision
        return {
            "startFromTimestamp": str(self.start_from_timestamp),
            "totalRecords": self.total_records,
            "queryRecordsExhausted": self.query_records_exhausted,
            "fileNumber": self.file_number,
            "iteration": self.iteration,
            "prevSavedRecordsInFile": self.prev_saved_records_in_file,
        }

    def advance(
        self,
        *,
        cursor: int,
        returned: int,
        exhausted: bool,
        file_number: int,
        saved_in_file: int,
    ) -> "DownloadState":
        """Return the snapshot that follows one committed batch."""
        return replace(
            self,
            start_from_timestamp=cursor,
            total_records=self.total_records + returned,
            query_records_exhausted=exhausted,
            file_number=file_number,
            iteration=self.iteration + 1,
            prev_saved_records_in_file=saved_in_file,
        )


@dataclass(frozen=True)
class DownloadJob:
    """Validated definition of one download run."""

    query: str
    loki_url: str
    from_date: datetime
    to_date: datetime
    total_records_limit: Optional[int] = None
    file_records_limit: Optional[int] = None
    batch_records_limit: int = 2000
    cool_down_ms: Optional[int] = None
    output_folder: str = "output"
    output_name: str = "download"
    clear_output_dir: bool = False
    direction: FetchDirection = FetchDirection.BACKWARD
    headers: Dict[str, str] = field(default_factory=dict)
    prompt_to_start: bool = False
    request_timeout_s: int = 30

    @property
    def output_dir(self) -> str:
        return f"{self.output_folder}/{self.output_name}"

    @property
    def start_ns(self) -> int:
        return datetime_to_nanoseconds(self.from_date)

    @property
    def end_ns(self) -> int:
        return datetime_to_nanoseconds(self.to_date)

    def initial_cursor(self) -> int:
        """Position of the first record to fetch for a fresh run."""
        if self.direction == FetchDirection.FORWARD:
            return self.start_ns
        # window end is exclusive
        return self.end_ns - 1

    def window_end(self) -> int:
        """Far bound of the traversal, where pagination stops."""
        if self.direction == FetchDirection.FORWARD:
            return self.end_ns
        return self.start_ns

    def fingerprint_inputs(self) -> List[str]:
        """Parameters that define "the same logical run", in a fixed order."""
        return [
            self.from_date.isoformat(),
            self.to_date.isoformat(),
            self.query,
            self.loki_url,
            str(self.file_records_limit) if self.file_records_limit else "Infinity",
            self.output_name,
            self.output_folder,
            self.direction.value,
        ]


@dataclass
class DownloadReport:
    """Summary of a download run."""

    status: RunStatus = RunStatus.IDLE
    state_key: str = ""
    resumed: bool = False
    batches_committed: int = 0
    records_written: int = 0
    batches_discarded: int = 0
    files_written: List[str] = field(default_factory=list)

    def touch_file(self, file_name: str) -> None:
        if file_name not in self.files_written:
            self.files_written.append(file_name)
