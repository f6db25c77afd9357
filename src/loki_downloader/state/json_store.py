from __future__ import annotations

import json
from typing import Optional, Sequence

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from loki_downloader.core.errors import DeserializationError
from loki_downloader.core.models import DownloadState
from loki_downloader.sinks.base import FileSystem
from loki_downloader.utils.hashing import fingerprint
from loki_downloader.utils.logging import get_logger

INTERNAL_DIR = ".internal"
STATE_DIR = "state"


class StateSnapshot(BaseModel):
    """On-disk shape of a progress snapshot."""

    model_config = ConfigDict(extra="forbid", strict=True)

    startFromTimestamp: str
    totalRecords: int = Field(ge=0)
    queryRecordsExhausted: bool
    fileNumber: int = Field(ge=0)
    iteration: int = Field(ge=0)
    prevSavedRecordsInFile: int = Field(ge=0)

    @field_validator("startFromTimestamp")
    @classmethod
    def validate_cursor(cls, v):
        if not v.lstrip("-").isdigit():
            raise ValueError("startFromTimestamp must be a decimal integer string")
        return v

    def to_state(self) -> DownloadState:
        return DownloadState(
            start_from_timestamp=int(self.startFromTimestamp),
            total_records=self.totalRecords,
            query_records_exhausted=self.queryRecordsExhausted,
            file_number=self.fileNumber,
            iteration=self.iteration,
            prev_saved_records_in_file=self.prevSavedRecordsInFile,
        )


class JsonStateHandle:
    """JSON snapshot of one run, stored at ``.internal/state/<key>.json``."""

    def __init__(self, file_system: FileSystem, key: str):
        self.file_system = file_system
        self.key = key
        self.path = f"{INTERNAL_DIR}/{STATE_DIR}/{key}.json"
        self.log = get_logger("loki_downloader.state")

    def load(self) -> Optional[DownloadState]:
        raw = self.file_system.load_state_snapshot(self.path)
        if raw is None:
            return None

        try:
            snapshot = StateSnapshot.model_validate(json.loads(raw))
        except (json.JSONDecodeError, ValidationError) as e:
            raise DeserializationError(f"Invalid state snapshot at {self.path}: {e}") from e

        self.log.info("Found previous state under %s, continuing where it left off", self.key)
        return snapshot.to_state()

    def save(self, state: DownloadState) -> None:
        self.file_system.save_state_snapshot(self.path, state.to_snapshot())


class JsonStateStore:
    """Maps run-defining parameters to a JSON state file."""

    def __init__(self, file_system: FileSystem):
        self.file_system = file_system

    def open(self, fingerprint_inputs: Sequence[str]) -> JsonStateHandle:
        return JsonStateHandle(self.file_system, fingerprint(fingerprint_inputs))
