"""
Tests for the command line entry point.
"""

import unittest
from unittest.mock import Mock, patch

from loki_downloader.core.errors import (
    ConfigurationError,
    DeserializationError,
    OutputDirectoryNotEmptyError,
    RemoteQueryError,
)
from loki_downloader.core.models import DownloadReport, FetchDirection, RunStatus
from loki_downloader.main import (
    EXIT_CONFIG_ERROR,
    EXIT_FAILURE,
    EXIT_OK,
    build_parser,
    config_from_args,
    main,
    parse_header,
    parse_tag,
)
from loki_downloader.testing import InMemoryFileSystem

ARGS = ["-q", '{app="api"}', "--from", "2024-09-27T00:00:00Z", "--to", "2024-09-28T00:00:00Z"]


class TestConfigFromArgs(unittest.TestCase):
    def test_options_map_to_config(self):
        args = build_parser().parse_args(
            ARGS
            + [
                "-n", "run",
                "--file-records-limit", "100",
                "--cool-down", "0",
                "--start-from-oldest",
                "--org-id", "tenant",
                "--header", "Authorization: Bearer x",
                "--query-tag", "source=cli",
                "--no-prompt-to-start",
            ]
        )

        config = config_from_args(args, InMemoryFileSystem())

        self.assertEqual(config.output_name, "run")
        self.assertEqual(config.file_records_limit, 100)
        self.assertEqual(config.cool_down, 0)
        self.assertEqual(config.direction, FetchDirection.FORWARD)
        self.assertFalse(config.prompt_to_start)
        self.assertEqual(config.headers, {"Authorization": "Bearer x"})
        self.assertEqual(config.query_tags, {"source": "cli"})
        self.assertEqual(config.to_job().headers["X-Scope-OrgID"], "tenant")

    def test_unset_options_keep_defaults(self):
        config = config_from_args(build_parser().parse_args(ARGS), InMemoryFileSystem())

        self.assertEqual(config.batch_records_limit, 2000)
        self.assertEqual(config.direction, FetchDirection.BACKWARD)
        self.assertTrue(config.prompt_to_start)

    def test_config_file_replaces_options(self):
        fs = InMemoryFileSystem(configs={"run.yaml": "query: from-file\nbatch_records_limit: 10\n"})
        args = build_parser().parse_args(ARGS + ["-c", "run.yaml"])

        config = config_from_args(args, fs)

        self.assertEqual(config.query, "from-file")
        self.assertEqual(config.batch_records_limit, 10)

    def test_header_and_tag_parsing(self):
        self.assertEqual(parse_header("X-Trace: a:b"), ("X-Trace", "a:b"))
        self.assertEqual(parse_tag("team = core"), ("team", "core"))
        for bad in ("no-separator", ": value"):
            with self.subTest(bad=bad):
                with self.assertRaises(ConfigurationError):
                    parse_header(bad)
        with self.assertRaises(ConfigurationError):
            parse_tag("=value")


@patch("loki_downloader.main.setup_logging")
@patch("loki_downloader.main.ComponentFactory")
@patch("loki_downloader.main.LocalFileSystem", InMemoryFileSystem)
class TestMain(unittest.TestCase):
    def _engine(self, factory_cls) -> Mock:
        return factory_cls.return_value.build.return_value.engine

    def test_successful_run(self, factory_cls, setup_logging):
        engine = self._engine(factory_cls)
        engine.run.return_value = DownloadReport(status=RunStatus.DONE)

        self.assertEqual(main(ARGS + ["--log-level", "debug"]), EXIT_OK)

        engine.run.assert_called_once()
        job = engine.run.call_args.args[0]
        self.assertEqual(job.query, '{app="api"}')
        setup_logging.assert_called_once_with("configs/logging.yaml", "DEBUG", True)

    def test_cancelled_run_exits_cleanly(self, factory_cls, setup_logging):
        self._engine(factory_cls).run.return_value = DownloadReport(status=RunStatus.CANCELLED)

        self.assertEqual(main(ARGS), EXIT_OK)

    def test_config_errors(self, factory_cls, setup_logging):
        for argv in ([], ARGS + ["--batch-records-limit", "0"], ARGS + ["--header", "broken"]):
            with self.subTest(argv=argv):
                self.assertEqual(main(argv), EXIT_CONFIG_ERROR)

        factory_cls.assert_not_called()

    def test_runtime_failures(self, factory_cls, setup_logging):
        engine = self._engine(factory_cls)
        for error in (
            RemoteQueryError("down"),
            DeserializationError("corrupt"),
            OutputDirectoryNotEmptyError("output/download"),
            OSError("disk full"),
        ):
            with self.subTest(error=type(error).__name__):
                engine.run.side_effect = error
                self.assertEqual(main(ARGS), EXIT_FAILURE)

    @patch("loki_downloader.core.policies.backoff_delay", return_value=0)
    def test_retries_option(self, backoff, factory_cls, setup_logging):
        engine = self._engine(factory_cls)
        engine.run.side_effect = [RemoteQueryError("down"), DownloadReport(status=RunStatus.DONE)]

        self.assertEqual(main(ARGS + ["--retries", "1"]), EXIT_OK)
        self.assertEqual(engine.run.call_count, 2)


if __name__ == "__main__":
    unittest.main()
