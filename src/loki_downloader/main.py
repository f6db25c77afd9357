from __future__ import annotations

import argparse
import sys
from typing import Any, Dict, Optional, Sequence

from loki_downloader import __version__
from loki_downloader.config_models import DownloadConfig, load_and_validate_config, parse_config
from loki_downloader.core.cancellation import CancellationToken, route_signals
from loki_downloader.core.errors import ConfigurationError, DownloaderError
from loki_downloader.core.factory import ComponentFactory
from loki_downloader.core.models import RunStatus
from loki_downloader.core.policies import RetryPolicy, run_with_retries
from loki_downloader.sinks.base import FileSystem
from loki_downloader.sinks.local_fs import LocalFileSystem
from loki_downloader.utils.logging import get_logger, setup_logging

EXIT_OK = 0
EXIT_FAILURE = 1
EXIT_CONFIG_ERROR = 2


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="loki-download",
        description="Download logs from a Loki query in batches, resuming where a previous run stopped.",
    )
    parser.add_argument("--version", action="version", version=__version__)
    parser.add_argument("-q", "--query", help="LogQL query")
    parser.add_argument("-u", "--loki-url", help="Base URL of the Loki API")
    parser.add_argument("-f", "--from", dest="from_date", help="Window start, ISO-8601 (default: start of today)")
    parser.add_argument("-t", "--to", dest="to_date", help="Window end, ISO-8601 (default: end of today)")
    parser.add_argument("-c", "--config-file", help="YAML/JSON config file, replaces all other options")
    parser.add_argument("-o", "--output-folder", help="Root folder for downloads")
    parser.add_argument("-n", "--output-name", help="Folder under the output folder for this download")
    parser.add_argument("--total-records-limit", type=int, help="Stop after this many records")
    parser.add_argument("--file-records-limit", type=int, help="Maximum records per output file")
    parser.add_argument("--batch-records-limit", type=int, help="Records requested per API call")
    parser.add_argument("--cool-down", type=int, help="Pause between API calls in ms, 0 disables")
    parser.add_argument("--clear-output-dir", action="store_true", default=None, help="Empty the output dir without asking")
    parser.add_argument("--org-id", help="Tenant sent as X-Scope-OrgID")
    parser.add_argument("--header", action="append", default=[], metavar="'NAME: VALUE'", help="Extra HTTP header")
    parser.add_argument("--query-tag", action="append", default=[], metavar="KEY=VALUE", help="Tag sent in X-Query-Tags")
    parser.add_argument("--start-from-oldest", action="store_true", default=None, help="Download oldest records first")
    parser.add_argument("--no-prompt-to-start", dest="prompt_to_start", action="store_false", default=None)
    parser.add_argument("--no-pretty-logs", dest="pretty_logs", action="store_false", default=None)
    parser.add_argument("--log-level", help="DEBUG, INFO, WARNING or ERROR")
    parser.add_argument("--logging-config", default="configs/logging.yaml", help="logging dictConfig YAML")
    parser.add_argument("--retries", type=int, default=0, help="Re-run after transient failures this many times")
    return parser


def parse_header(value: str) -> tuple[str, str]:
    name, sep, header_value = value.partition(":")
    if not sep or not name.strip():
        raise ConfigurationError(f"Invalid header {value!r}, expected 'Name: value'")
    return name.strip(), header_value.strip()


def parse_tag(value: str) -> tuple[str, str]:
    key, sep, tag_value = value.partition("=")
    if not sep or not key.strip():
        raise ConfigurationError(f"Invalid query tag {value!r}, expected key=value")
    return key.strip(), tag_value.strip()


def config_from_args(args: argparse.Namespace, file_system: FileSystem) -> DownloadConfig:
    """Build the config from a config file, or from the command line options."""
    if args.config_file:
        return load_and_validate_config(args.config_file, file_system)

    raw: Dict[str, Any] = {
        "query": args.query,
        "loki_url": args.loki_url,
        "from": args.from_date,
        "to": args.to_date,
        "output_folder": args.output_folder,
        "output_name": args.output_name,
        "total_records_limit": args.total_records_limit,
        "file_records_limit": args.file_records_limit,
        "batch_records_limit": args.batch_records_limit,
        "cool_down": args.cool_down,
        "clear_output_dir": args.clear_output_dir,
        "org_id": args.org_id,
        "start_from_oldest": args.start_from_oldest,
        "prompt_to_start": args.prompt_to_start,
        "pretty_logs": args.pretty_logs,
        "log_level": args.log_level,
    }
    if args.header:
        raw["headers"] = dict(parse_header(h) for h in args.header)
    if args.query_tag:
        raw["query_tags"] = dict(parse_tag(t) for t in args.query_tag)

    return parse_config({k: v for k, v in raw.items() if v is not None}, source="command line")


def prompt(message: str) -> bool:
    """Ask a yes/no question on the terminal."""
    try:
        answer = input(f"{message} [y/N] ")
    except EOFError:
        return False
    return answer.strip().lower() in {"y", "yes"}


def main(argv: Optional[Sequence[str]] = None) -> int:
    """Main entry point for the Loki downloader."""
    args = build_parser().parse_args(argv)
    print(f"\n=== Loki log downloader version: {__version__} ===\n")

    file_system = LocalFileSystem()
    try:
        config = config_from_args(args, file_system)
    except ConfigurationError as e:
        print(f"Error: {e}", file=sys.stderr)
        return EXIT_CONFIG_ERROR

    setup_logging(args.logging_config, config.log_level, config.pretty_logs)
    log = get_logger("loki_downloader.cli")

    job = config.to_job()
    confirm = prompt if sys.stdin.isatty() else None

    token = CancellationToken()
    built = ComponentFactory(file_system=file_system).build(job)
    policy = RetryPolicy(max_attempts=max(0, args.retries) + 1)

    with route_signals(token):
        try:
            report = run_with_retries(lambda: built.engine.run(job, token=token, confirm=confirm), policy, token)
        except ConfigurationError as e:
            log.error("%s", e)
            return EXIT_CONFIG_ERROR
        except (DownloaderError, OSError) as e:
            log.error("Download failed: %s: %s", type(e).__name__, e)
            return EXIT_FAILURE

    if report.status == RunStatus.CANCELLED:
        log.info("Stopped. Run the same command again to continue where it left off.")
    return EXIT_OK


if __name__ == "__main__":
    raise SystemExit(main())
