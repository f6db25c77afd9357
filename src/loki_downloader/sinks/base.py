from __future__ import annotations
from dataclasses import dataclass
from typing import Any, Mapping, Optional, Protocol, Sequence
from loki_downloader.core.models import LogRecord


@dataclass(frozen=True)
class OutputDirInfo:
    exists: bool
    is_empty: bool


class FileSystem(Protocol):
    """Protocol for the storage the downloader reads from and writes to."""

    def describe_output_dir(self, path: str) -> OutputDirInfo: ...

    def clear_output_dir(self, path: str) -> None: ...

    def append_records(self, path: str, records: Sequence[LogRecord]) -> None: ...

    def read_config_file(self, path: str) -> str: ...

    def load_state_snapshot(self, path: str) -> Optional[str]: ...

    def save_state_snapshot(self, path: str, state: Mapping[str, Any]) -> None: ...
