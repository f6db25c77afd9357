from __future__ import annotations
import logging
import logging.config
from pathlib import Path
from typing import Optional
import yaml

PRETTY_FORMAT = "%(asctime)s | %(levelname)s | %(name)s | %(message)s"
PLAIN_FORMAT = "%(levelname)s %(message)s"


def setup_logging(
    config_path: Optional[str] = "configs/logging.yaml",
    level: str = "INFO",
    pretty: bool = True,
) -> None:
    """Setup logging configuration from YAML file."""
    path = Path(config_path) if config_path else None
    if path is None or not path.exists():
        # Safe fallback
        logging.basicConfig(
            level=getattr(logging, level.upper(), logging.INFO),
            format=PRETTY_FORMAT if pretty else PLAIN_FORMAT,
            force=True,
        )
        return

    with path.open("r", encoding="utf-8") as f:
        cfg = yaml.safe_load(f)
    logging.config.dictConfig(cfg)
    logger = logging.getLogger("loki_downloader")
    logger.setLevel(level.upper())
    if not pretty:
        for handler in logger.handlers:
            handler.setFormatter(logging.Formatter(PLAIN_FORMAT))


def get_logger(name: str) -> logging.Logger:
    """Get a logger instance."""
    return logging.getLogger(name)
