from __future__ import annotations

from typing import Any, Mapping, Optional, Union

from loki_downloader.config_models import DownloadConfig, load_and_validate_config, parse_config
from loki_downloader.core.cancellation import CancellationToken
from loki_downloader.core.engine import Confirm
from loki_downloader.core.factory import ComponentFactory
from loki_downloader.core.models import DownloadReport
from loki_downloader.core.policies import RetryPolicy, run_with_retries
from loki_downloader.fetch.base import Fetcher
from loki_downloader.sinks.base import FileSystem
from loki_downloader.sinks.local_fs import LocalFileSystem

CONFIG_FILE_KEYS = ("config_file", "configFile")


def resolve_config(
    config: Union[DownloadConfig, Mapping[str, Any]],
    file_system: FileSystem,
) -> DownloadConfig:
    """Validate ``config``; a ``config_file`` entry replaces every other value."""
    if isinstance(config, DownloadConfig):
        return config

    raw = dict(config)
    for key in CONFIG_FILE_KEYS:
        path = raw.pop(key, None)
        if path:
            return load_and_validate_config(path, file_system)
    return parse_config(raw)


def download(
    config: Union[DownloadConfig, Mapping[str, Any]],
    *,
    root_dir: str = "",
    file_system: Optional[FileSystem] = None,
    fetcher: Optional[Fetcher] = None,
    token: Optional[CancellationToken] = None,
    confirm: Optional[Confirm] = None,
    retry: Optional[RetryPolicy] = None,
) -> DownloadReport:
    """
    Download the records selected by ``config``.

    Args:
        config: A DownloadConfig or raw values (snake_case or camelCase keys).
        root_dir: Directory output and state paths are resolved against.
        file_system: Storage override, the local disk by default.
        fetcher: Fetcher override, the Loki HTTP API by default.
        token: Cancel it from another thread to stop the run cleanly.
        confirm: Yes/no prompt; without it no question is ever asked.
        retry: Re-invoke the run after transient failures.

    Returns:
        The report of the last run attempt.
    """
    file_system = file_system or LocalFileSystem(root_dir)
    job = resolve_config(config, file_system).to_job()
    token = token or CancellationToken()

    built = ComponentFactory(file_system=file_system, fetcher=fetcher).build(job)

    return run_with_retries(
        lambda: built.engine.run(job, token=token, confirm=confirm),
        retry or RetryPolicy(),
        token,
    )
