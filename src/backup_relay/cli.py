"""CLI entrypoints: the backup run itself and the webhook server."""
from __future__ import annotations

import logging
import sys
from typing import Callable

import click
from rich.console import Console
from rich.table import Table

from .config import ConfigurationError, Settings, load_settings
from .logging_config import configure_logging
from .pipeline import BackupPipeline
from .schemas import BackupRun

console = Console(stderr=True)
logger = logging.getLogger("backup_relay.cli")

EXIT_CONFIGURATION_ERROR = 2


def _load_or_exit(validate: Callable[[Settings], None]) -> Settings:
    try:
        settings = load_settings()
        validate(settings)
    except ConfigurationError as exc:
        configure_logging()
        logger.error("Configuration error: %s", exc)
        sys.exit(EXIT_CONFIGURATION_ERROR)
    return settings


def build_pipeline(settings: Settings) -> BackupPipeline:
    return BackupPipeline.from_settings(settings)


@click.command(context_settings={"help_option_names": ["-h", "--help"]})
def run_backup() -> None:
    """Dump, compress, export and deliver the configured database, then clean up.

    Takes no options; configuration comes from BACKUP_RELAY_* environment
    variables or .env. Exits non-zero when any step failed.
    """

    settings = _load_or_exit(Settings.validate_for_backup)
    configure_logging(log_dir=settings.log_dir, logger_name="backup_relay.cli")
    with build_pipeline(settings) as pipeline:
        run = pipeline.execute()
    _print_summary(run)
    sys.exit(run.exit_code)


@click.command(context_settings={"help_option_names": ["-h", "--help"]})
@click.option("--host", type=str, default="127.0.0.1", show_default=True, help="Interface to bind.")
@click.option("--port", type=int, default=8080, show_default=True, help="Port to listen on.")
@click.option("--verbose", is_flag=True, default=False, help="Increase logging verbosity.")
def serve_webhook(host: str, port: int, verbose: bool) -> None:  # pragma: no cover - thin uvicorn wrapper
    """Serve the Telegram webhook endpoint."""

    import uvicorn

    from .webhook import create_app

    settings = _load_or_exit(Settings.validate_for_webhook)
    configure_logging(log_dir=settings.log_dir, verbose=verbose, logger_name="backup_relay.cli")
    logger.info("Serving webhook on %s:%s%s", host, port, settings.webhook.path)
    uvicorn.run(create_app(settings), host=host, port=port, log_config=None)


def _print_summary(run: BackupRun) -> None:
    table = Table(title=f"Backup Run {run.run_id[:8]} ({run.database})", show_lines=True)
    table.add_column("Step")
    table.add_column("Status")
    table.add_column("Details")
    for step in run.steps:
        table.add_row(step.name, "ok" if step.ok else "failed", step.message)
    for artifact in run.artifacts:
        table.add_row(
            artifact.kind.value,
            f"delivered={artifact.delivered} cleaned={artifact.cleaned}",
            f"{artifact.path.name} ({artifact.size} bytes)",
        )
    console.print(table)
    console.print(f"Status: {run.status.value}")


if __name__ == "__main__":  # pragma: no cover
    run_backup()
