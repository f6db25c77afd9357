from __future__ import annotations

from typing import Callable, Optional

from loki_downloader.core.cancellation import CancellationToken
from loki_downloader.core.chunker import ChunkPlan, plan_chunks, space_left
from loki_downloader.core.errors import OutputDirectoryNotEmptyError
from loki_downloader.core.models import DownloadJob, DownloadReport, DownloadState, RunStatus
from loki_downloader.core.policies import CoolDown
from loki_downloader.fetch.base import Fetcher
from loki_downloader.fetch.pagination import PageOutcome, Paginator
from loki_downloader.sinks.base import FileSystem
from loki_downloader.state.base import StateHandle, StateStore
from loki_downloader.utils.logging import get_logger

Confirm = Callable[[str], bool]


class DownloadEngine:
    """
    Drives a resumable download: cool-down, fetch, chunk, commit, save state.

    A batch is committed all at once or not at all. Cancellation observed
    before the commit discards the fetched records and leaves both the output
    files and the persisted state as they were before the iteration.
    """

    def __init__(
        self,
        fetcher: Fetcher,
        file_system: FileSystem,
        state_store: StateStore,
        cool_down: Optional[CoolDown] = None,
    ):
        """
        Initialize the download engine.

        Args:
            fetcher: Source of record batches.
            file_system: Output and state storage.
            state_store: Fingerprinted progress persistence.
            cool_down: Pause between batches.
        """
        self.fetcher = fetcher
        self.file_system = file_system
        self.state_store = state_store
        self.cool_down = cool_down or CoolDown()
        self.status = RunStatus.IDLE
        self.log = get_logger("loki_downloader.engine")

    def run(
        self,
        job: DownloadJob,
        token: Optional[CancellationToken] = None,
        confirm: Optional[Confirm] = None,
    ) -> DownloadReport:
        """
        Execute the download job until the query is exhausted, the total limit
        is reached or the run is cancelled.

        Args:
            job: The download job definition.
            token: Cancellation token shared with whoever may stop the run.
            confirm: Optional yes/no prompt used before clearing the output
                directory and before starting.

        Returns:
            A report summarizing the run.
        """
        token = token or CancellationToken()
        report = DownloadReport()

        try:
            self._set_status(report, RunStatus.PREPARING)
            handle = self.state_store.open(job.fingerprint_inputs())
            report.state_key = handle.key

            prev_state = handle.load()
            report.resumed = prev_state is not None
            self._prepare_output_dir(job, prev_state, token, confirm)

            asked = job.prompt_to_start and confirm is not None and not token.cancelled
            if asked and not confirm(self._start_message(job)):
                self.log.info("Download not started")
                self._set_status(report, RunStatus.CANCELLED)
                return report

            state = prev_state or DownloadState(start_from_timestamp=job.initial_cursor())
            self._loop(job, handle, state, token, report)
        except BaseException:
            self._set_status(report, RunStatus.FAILED)
            raise

        if token.cancelled:
            self._set_status(report, RunStatus.CANCELLED)
            self.log.info(
                "Download cancelled: batches=%s records=%s discarded=%s",
                report.batches_committed,
                report.records_written,
                report.batches_discarded,
            )
        else:
            self._set_status(report, RunStatus.DONE)
            self.log.info(
                "All query results were downloaded: batches=%s records=%s files=%s",
                report.batches_committed,
                report.records_written,
                len(report.files_written),
            )
        return report

    def _loop(
        self,
        job: DownloadJob,
        handle: StateHandle,
        state: DownloadState,
        token: CancellationToken,
        report: DownloadReport,
    ) -> DownloadState:
        total_limit = job.total_records_limit
        paginator = Paginator(self.fetcher, job.query, job.window_end())

        self.log.info(
            "Download started: state=%s cursor=%s total=%s direction=%s",
            handle.key,
            state.start_from_timestamp,
            state.total_records,
            job.direction.value,
        )

        while (
            (total_limit is None or state.total_records < total_limit)
            and not state.query_records_exhausted
            and not token.cancelled
        ):
            if state.iteration != 0 and job.cool_down_ms:
                self._set_status(report, RunStatus.COOLING_DOWN)
                self.log.info("Cool-down configured, waiting %sms before fetching next records", job.cool_down_ms)
                if self.cool_down.wait(job.cool_down_ms, token):
                    break

            self._set_status(report, RunStatus.RUNNING)
            batch_size = job.batch_records_limit
            if total_limit is not None:
                batch_size = min(total_limit - state.total_records, batch_size)

            self.log.info("Fetching next %s records", batch_size)
            page = paginator.next_batch(state.start_from_timestamp, batch_size, token)

            space = space_left(job.file_records_limit, state.prev_saved_records_in_file)
            plan = plan_chunks(page.records, state.file_number, space, job.file_records_limit)

            if token.cancelled:
                if page.issued:
                    report.batches_discarded += 1
                self.log.info("Cancelled before commit, discarding %s fetched records", len(page.records))
                break

            state = self._commit(job, handle, state, page, plan, batch_size, report)

        return state

    def _commit(
        self,
        job: DownloadJob,
        handle: StateHandle,
        state: DownloadState,
        page: PageOutcome,
        plan: ChunkPlan,
        batch_size: int,
        report: DownloadReport,
    ) -> DownloadState:
        """Append the planned writes, then persist the snapshot that covers them."""
        for write in plan.writes:
            path = f"{job.output_dir}/{write.file_name}"
            self.log.info("Saving %s records to %s", len(write.records), path)
            self.file_system.append_records(path, write.records)
            report.touch_file(write.file_name)

        new_state = state.advance(
            cursor=page.next_cursor,
            returned=len(page.records),
            exhausted=page.exhausted or len(page.records) < batch_size,
            file_number=plan.file_number,
            saved_in_file=plan.saved_in_current_file(job.file_records_limit, state.prev_saved_records_in_file),
        )
        handle.save(new_state)

        report.batches_committed += 1
        report.records_written += len(page.records)
        return new_state

    def _prepare_output_dir(
        self,
        job: DownloadJob,
        prev_state: Optional[DownloadState],
        token: CancellationToken,
        confirm: Optional[Confirm],
    ) -> None:
        info = self.file_system.describe_output_dir(job.output_dir)

        # previous state means the files belong to this run; keep them and resume
        if not info.exists or info.is_empty or prev_state is not None:
            return

        if not job.clear_output_dir:
            message = (
                f"Output directory at {job.output_dir} already exists with some files. "
                "All files in this directory will be deleted in order to progress. Do you want to continue?"
            )
            approved = confirm is not None and confirm(message)
            # an interrupt at the prompt wins over whatever was answered
            if token.cancelled:
                self.log.info("Cancelled at the prompt, leaving %s untouched", job.output_dir)
                return
            if not approved:
                raise OutputDirectoryNotEmptyError(job.output_dir)

        self.log.info("Removing files in %s", job.output_dir)
        self.file_system.clear_output_dir(job.output_dir)

    def _start_message(self, job: DownloadJob) -> str:
        limit = job.total_records_limit or "all"
        return (
            f"Download {limit} records of {job.query} from {job.loki_url} "
            f"({job.from_date.isoformat()} - {job.to_date.isoformat()}) into {job.output_dir}?"
        )

    def _set_status(self, report: DownloadReport, status: RunStatus) -> None:
        self.status = status
        report.status = status
