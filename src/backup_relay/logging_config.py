from __future__ import annotations

import logging
from pathlib import Path
from typing import Optional

from rich.console import Console
from rich.logging import RichHandler


LOG_FORMAT = "%(asctime)s | %(levelname)s | %(name)s | %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"


def configure_logging(
    log_dir: Optional[Path] = None,
    verbose: bool = False,
    logger_name: Optional[str] = None,
) -> logging.Logger:
    """
    Configure process-wide logging and return a scoped logger.

    Console output goes through Rich. When *log_dir* is given, every record is
    also appended to ``backup_relay.log`` and errors to ``errors.log`` so that
    failures survive the process.
    """
    level = logging.DEBUG if verbose else logging.INFO
    handlers: list[logging.Handler] = [
        RichHandler(console=Console(stderr=True), show_time=True, show_path=False),
    ]
    if log_dir is not None:
        log_dir = Path(log_dir)
        log_dir.mkdir(parents=True, exist_ok=True)
        formatter = logging.Formatter(LOG_FORMAT, datefmt=DATE_FORMAT)

        file_handler = logging.FileHandler(log_dir / "backup_relay.log", mode="a", encoding="utf-8")
        file_handler.setFormatter(formatter)
        handlers.append(file_handler)

        error_handler = logging.FileHandler(log_dir / "errors.log", mode="a", encoding="utf-8")
        error_handler.setLevel(logging.ERROR)
        error_handler.setFormatter(formatter)
        handlers.append(error_handler)

    logging.basicConfig(level=level, format="%(message)s", handlers=handlers, force=True)
    logger = logging.getLogger(logger_name or "backup_relay")
    logger.debug("Logging configured with level %s", logging.getLevelName(level))
    return logger
