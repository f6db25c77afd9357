from __future__ import annotations

from typing import Optional, Protocol, Sequence

from loki_downloader.core.models import DownloadState


class StateHandle(Protocol):
    """Progress snapshot storage for one fingerprint."""

    key: str

    def load(self) -> Optional[DownloadState]: ...

    def save(self, state: DownloadState) -> None: ...


class StateStore(Protocol):
    """Protocol for state backends keyed by run fingerprint."""

    def open(self, fingerprint_inputs: Sequence[str]) -> StateHandle: ...
