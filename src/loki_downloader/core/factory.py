from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

import requests

from loki_downloader.core.engine import DownloadEngine
from loki_downloader.core.models import DownloadJob
from loki_downloader.core.policies import CoolDown
from loki_downloader.fetch.base import Fetcher
from loki_downloader.fetch.loki_fetcher import LokiFetcher
from loki_downloader.http.client import LokiHttpClient
from loki_downloader.sinks.base import FileSystem
from loki_downloader.sinks.local_fs import LocalFileSystem
from loki_downloader.state.json_store import JsonStateStore


@dataclass(frozen=True)
class BuiltComponents:
    engine: DownloadEngine
    fetcher: Fetcher
    file_system: FileSystem
    state_store: JsonStateStore


class ComponentFactory:
    """
    Factory responsible for wiring dependencies.
    Any collaborator passed in replaces the production default.
    """

    def __init__(
        self,
        root_dir: str = "",
        file_system: Optional[FileSystem] = None,
        fetcher: Optional[Fetcher] = None,
        session: Optional[requests.Session] = None,
    ):
        self.root_dir = root_dir
        self.file_system = file_system
        self.fetcher = fetcher
        self.session = session

    def build(self, job: DownloadJob) -> BuiltComponents:
        """
        Build all components needed for a download.

        Args:
            job: The download job definition.

        Returns:
            A container with all built components.
        """
        file_system = self._file_system()
        fetcher = self._fetcher(job)
        state_store = self._state_store(file_system)

        engine = DownloadEngine(
            fetcher=fetcher,
            file_system=file_system,
            state_store=state_store,
            cool_down=CoolDown(),
        )

        return BuiltComponents(
            engine=engine,
            fetcher=fetcher,
            file_system=file_system,
            state_store=state_store,
        )

    # ---------- Builders (private) ----------

    def _file_system(self) -> FileSystem:
        """Create the output/state storage."""
        return self.file_system or LocalFileSystem(self.root_dir)

    def _fetcher(self, job: DownloadJob) -> Fetcher:
        """Create the Loki fetcher for the job's URL and direction."""
        if self.fetcher is not None:
            return self.fetcher
        client = LokiHttpClient(
            job.loki_url,
            timeout_s=job.request_timeout_s,
            headers=job.headers,
            session=self.session,
        )
        return LokiFetcher(client, direction=job.direction)

    def _state_store(self, file_system: FileSystem) -> JsonStateStore:
        """Create the fingerprinted state store."""
        return JsonStateStore(file_system)
