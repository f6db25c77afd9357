from __future__ import annotations

import json
import os
import shutil
import tempfile
from pathlib import Path
from typing import Any, Mapping, Optional, Sequence

from loki_downloader.core.models import LogRecord
from loki_downloader.sinks.base import OutputDirInfo


def encode_records(records: Sequence[LogRecord]) -> str:
    """One JSON object per line, newline terminated."""
    return "".join(json.dumps(r.to_json_dict(), ensure_ascii=False) + "\n" for r in records)


class LocalFileSystem:
    """
    FileSystem backed by the local disk.

    Every path is resolved against ``root_dir``. Writes are flushed and fsynced
    before returning so that a state snapshot saved afterwards never describes
    records that are not on disk.
    """

    def __init__(self, root_dir: str = ""):
        self.root_dir = root_dir

    def _full_path(self, path: str) -> Path:
        return Path(self.root_dir) / path if self.root_dir else Path(path)

    def describe_output_dir(self, path: str) -> OutputDirInfo:
        full = self._full_path(path)
        if not full.is_dir():
            return OutputDirInfo(exists=False, is_empty=False)
        return OutputDirInfo(exists=True, is_empty=not any(full.iterdir()))

    def clear_output_dir(self, path: str) -> None:
        full = self._full_path(path)
        full.mkdir(parents=True, exist_ok=True)
        for child in full.iterdir():
            if child.is_dir() and not child.is_symlink():
                shutil.rmtree(child)
            else:
                child.unlink()

    def append_records(self, path: str, records: Sequence[LogRecord]) -> None:
        if not records:
            return
        full = self._full_path(path)
        full.parent.mkdir(parents=True, exist_ok=True)
        with full.open("a", encoding="utf-8") as f:
            f.write(encode_records(records))
            f.flush()
            os.fsync(f.fileno())

    def read_config_file(self, path: str) -> str:
        return self._full_path(path).read_text(encoding="utf-8")

    def load_state_snapshot(self, path: str) -> Optional[str]:
        full = self._full_path(path)
        if not full.exists():
            return None
        return full.read_text(encoding="utf-8")

    def save_state_snapshot(self, path: str, state: Mapping[str, Any]) -> None:
        """Stage the snapshot next to the target, then rename it into place."""
        full = self._full_path(path)
        full.parent.mkdir(parents=True, exist_ok=True)

        fd, tmp_path = tempfile.mkstemp(prefix=f".{full.name}.", suffix=".tmp", dir=full.parent)
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                json.dump(dict(state), f)
                f.flush()
                os.fsync(f.fileno())
            os.replace(tmp_path, full)
        except BaseException:
            if os.path.exists(tmp_path):
                os.unlink(tmp_path)
            raise
        self._fsync_dir(full.parent)

    def _fsync_dir(self, directory: Path) -> None:
        if os.name != "posix":
            return
        fd = os.open(directory, os.O_RDONLY)
        try:
            os.fsync(fd)
        finally:
            os.close(fd)
