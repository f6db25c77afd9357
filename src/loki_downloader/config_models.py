"""
Pydantic models for download configuration validation.
Accepts snake_case keys as well as the camelCase keys used by JSON config files.
"""

from __future__ import annotations
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, Mapping, Optional

import yaml
from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator, model_validator
from pydantic.alias_generators import to_camel

from loki_downloader.core.errors import ConfigurationError
from loki_downloader.core.models import DownloadJob, FetchDirection
from loki_downloader.http.client import build_headers
from loki_downloader.sinks.base import FileSystem
from loki_downloader.utils.time import end_of_today, ensure_utc, start_of_today

DEFAULT_LOKI_URL = "http://localhost:3100"
DEFAULT_OUTPUT_FOLDER = "output"
DEFAULT_OUTPUT_NAME = "download"
LOG_LEVELS = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}


class DownloadConfig(BaseModel):
    """Configuration for one download run."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="forbid")

    query: str = Field(..., min_length=1, description="LogQL query selecting the records to download")
    loki_url: str = Field(DEFAULT_LOKI_URL, description="Base URL of the Loki API")
    from_date: datetime = Field(default_factory=start_of_today, alias="from", description="Window start (inclusive)")
    to_date: datetime = Field(default_factory=end_of_today, alias="to", description="Window end (exclusive)")
    total_records_limit: Optional[int] = Field(None, ge=1, description="Stop after this many records")
    file_records_limit: Optional[int] = Field(None, ge=1, description="Maximum records per output file")
    batch_records_limit: int = Field(2000, ge=1, description="Records requested per API call")
    cool_down: Optional[int] = Field(10_000, ge=0, description="Pause between API calls in milliseconds")
    output_folder: str = Field(DEFAULT_OUTPUT_FOLDER, min_length=1, description="Root folder for downloads")
    output_name: str = Field(DEFAULT_OUTPUT_NAME, min_length=1, description="Sub folder holding the output files")
    clear_output_dir: bool = Field(False, description="Empty a non-empty output directory without asking")
    direction: FetchDirection = Field(FetchDirection.BACKWARD, description="FORWARD starts from the oldest record")
    start_from_oldest: bool = Field(False, description="Shortcut for direction FORWARD")
    headers: Dict[str, str] = Field(default_factory=dict, description="Extra HTTP headers")
    org_id: Optional[str] = Field(None, description="Tenant sent as X-Scope-OrgID")
    query_tags: Dict[str, str] = Field(default_factory=dict, description="Tags sent as X-Query-Tags")
    prompt_to_start: bool = Field(True, description="Ask for confirmation before downloading")
    pretty_logs: bool = Field(True, description="Timestamped, aligned log lines")
    log_level: str = Field("INFO", description="Logging level")
    request_timeout_s: int = Field(30, ge=1, le=3600, description="Per request timeout in seconds")

    @field_validator("loki_url")
    @classmethod
    def validate_loki_url(cls, v):
        if not v.startswith(("http://", "https://")):
            raise ValueError("loki_url must be a valid HTTP/HTTPS URL")
        return v.rstrip("/")

    @field_validator("from_date", "to_date")
    @classmethod
    def validate_timezone(cls, v):
        return ensure_utc(v)

    @field_validator("direction", mode="before")
    @classmethod
    def validate_direction(cls, v):
        return v.upper() if isinstance(v, str) else v

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v):
        level = v.upper()
        if level not in LOG_LEVELS:
            raise ValueError(f"log_level must be one of: {', '.join(sorted(LOG_LEVELS))}")
        return level

    @model_validator(mode="after")
    def validate_window(self):
        if self.from_date >= self.to_date:
            raise ValueError("from must be earlier than to")
        if self.start_from_oldest:
            self.direction = FetchDirection.FORWARD
        return self

    def to_job(self) -> DownloadJob:
        """Convert the validated config to the core job definition."""
        return DownloadJob(
            query=self.query,
            loki_url=self.loki_url,
            from_date=self.from_date,
            to_date=self.to_date,
            total_records_limit=self.total_records_limit,
            file_records_limit=self.file_records_limit,
            batch_records_limit=self.batch_records_limit,
            cool_down_ms=self.cool_down or None,
            output_folder=self.output_folder,
            output_name=self.output_name,
            clear_output_dir=self.clear_output_dir,
            direction=self.direction,
            headers=build_headers(self.headers, self.org_id, self.query_tags),
            prompt_to_start=self.prompt_to_start,
            request_timeout_s=self.request_timeout_s,
        )


def parse_config(raw: Mapping[str, Any], source: str = "configuration") -> DownloadConfig:
    """
    Validate raw configuration values.

    Raises:
        ConfigurationError: If a value is missing or invalid, one line per field.
    """
    try:
        return DownloadConfig.model_validate(dict(raw))
    except ValidationError as e:
        # Format validation errors nicely
        error_messages = []
        for error in e.errors():
            field_path = ".".join(str(loc) for loc in error["loc"]) or "config"
            error_messages.append(f"  {field_path}: {error['msg']}")

        raise ConfigurationError(
            f"Configuration validation failed for {source}:\n" + "\n".join(error_messages)
        ) from e


def load_and_validate_config(config_path: str, file_system: Optional[FileSystem] = None) -> DownloadConfig:
    """
    Load and validate a download configuration from a YAML or JSON file.

    Args:
        config_path: Path to the configuration file
        file_system: Storage to read from, the local disk when omitted

    Returns:
        Validated DownloadConfig object

    Raises:
        ConfigurationError: If the file is missing, malformed or invalid
    """
    try:
        if file_system is not None:
            text = file_system.read_config_file(config_path)
        else:
            text = Path(config_path).read_text(encoding="utf-8")
    except FileNotFoundError as e:
        raise ConfigurationError(f"Configuration file not found: {config_path}") from e

    try:
        raw_config = yaml.safe_load(text)
    except yaml.YAMLError as e:
        raise ConfigurationError(f"Invalid YAML in {config_path}: {e}") from e

    if not isinstance(raw_config, dict):
        raise ConfigurationError(f"Configuration in {config_path} must be a mapping")

    return parse_config(raw_config, source=config_path)
