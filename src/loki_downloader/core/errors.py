from __future__ import annotations


class DownloaderError(Exception):
    """Base class for all errors raised by the downloader."""


class ConfigurationError(DownloaderError):
    """Invalid or missing run parameters."""


class OutputDirectoryNotEmptyError(DownloaderError):
    """Output directory holds files and no resumable state exists for this run."""

    def __init__(self, path: str):
        super().__init__(
            f"Output directory {path} already contains files. Back them up and run again "
            "with clear_output_dir enabled to replace them."
        )
        self.path = path


class DeserializationError(DownloaderError):
    """A persisted state snapshot exists but is structurally invalid."""


class RemoteQueryError(DownloaderError):
    """Transient failure talking to the remote query API; the run may be re-invoked."""


class UnrecoverableError(DownloaderError):
    """Failure that retrying cannot fix."""


class MaxResultWindowExceeded(UnrecoverableError):
    """The remote API refuses the requested batch size."""

    def __init__(self, message: str = "max entries limit per query exceeded"):
        super().__init__(message)


class OperationCancelled(DownloaderError):
    """An in-flight operation was aborted by the cancellation token."""
