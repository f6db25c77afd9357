import unittest
from datetime import datetime, timezone

from loki_downloader.core.errors import RemoteQueryError
from loki_downloader.core.models import FetchDirection, RunStatus
from loki_downloader.core.policies import RetryPolicy
from loki_downloader.sdk import download
from loki_downloader.testing import InMemoryFetcher, InMemoryFileSystem, make_records
from loki_downloader.utils.time import datetime_to_nanoseconds

CONFIG = {
    "query": '{app="test"}',
    "from": "2026-10-19T00:00:00Z",
    "to": "2026-10-20T00:00:00Z",
    "startFromOldest": True,
    "batchRecordsLimit": 40,
    "fileRecordsLimit": 50,
    "coolDown": 0,
}
FIRST_NS = datetime_to_nanoseconds(datetime(2026, 10, 19, tzinfo=timezone.utc))


class TestDownload(unittest.TestCase):
    def test_download_with_injected_collaborators(self):
        fs = InMemoryFileSystem()
        fetcher = InMemoryFetcher(make_records(120, FIRST_NS), FetchDirection.FORWARD)

        report = download(CONFIG, file_system=fs, fetcher=fetcher)

        self.assertEqual(report.status, RunStatus.DONE)
        self.assertEqual(report.records_written, 120)
        self.assertEqual(fetcher.called, 3)
        self.assertEqual(
            [len(fs.read_records(p)) for p in fs.output_files("output/download")],
            [50, 50, 20],
        )

    def test_retry_policy_resumes_run(self):
        def fail_once(called, token):
            if called == 2:
                raise RemoteQueryError("timeout")

        fs = InMemoryFileSystem()
        fetcher = InMemoryFetcher(make_records(120, FIRST_NS), FetchDirection.FORWARD, on_called=fail_once)

        report = download(
            CONFIG,
            file_system=fs,
            fetcher=fetcher,
            retry=RetryPolicy(max_attempts=2, base_delay_s=0, jitter_s=0),
        )

        self.assertTrue(report.resumed)
        self.assertEqual(fetcher.called, 4)
        contents = [r["content"] for p in fs.output_files("output/download") for r in fs.read_records(p)]
        self.assertEqual(contents, [f"log line: {i}" for i in range(1, 121)])

    def test_config_file_through_file_system(self):
        fs = InMemoryFileSystem(
            configs={"run.yaml": "query: '{}'\nstart_from_oldest: true\nfrom: '2026-10-19T00:00:00Z'\nto: '2026-10-20T00:00:00Z'\n"}
        )
        fetcher = InMemoryFetcher(make_records(5, FIRST_NS), FetchDirection.FORWARD)

        report = download({"config_file": "run.yaml"}, file_system=fs, fetcher=fetcher)

        self.assertEqual(report.records_written, 5)
        self.assertEqual(fetcher.requests[0][0], FIRST_NS)


if __name__ == "__main__":
    unittest.main()
