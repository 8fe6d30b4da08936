"""Backup pipeline: prepare, dump, compress, export, deliver, cleanup, finalize."""
from __future__ import annotations

import logging
import os
import uuid
from datetime import datetime
from pathlib import Path
from typing import Callable, List, Optional, Protocol, Tuple

from .config import Settings
from .exporter import DatabaseExporter, ExportError, ExportSummary
from .lock import RunLock
from .runner import CommandResult, CommandRunner
from .schemas import Artifact, ArtifactKind, BackupRun, RunStatus, StepOutcome
from .telegram import TelegramClient

logger = logging.getLogger(__name__)

TIMESTAMP_FORMAT = "%Y%m%d_%H%M%S"


class Runner(Protocol):
    def run(self, command, *, secrets=(), expected_output=None, require_non_empty=False, cwd=None) -> CommandResult:
        ...


class Exporter(Protocol):
    def export(self, path: Path) -> ExportSummary:
        ...


class DeliveryClient(Protocol):
    def send_document(self, path: Path, caption: str = "", chat_id=None) -> bool:
        ...

    def close(self) -> None:
        ...


Stage = Tuple[str, Callable[[BackupRun], StepOutcome]]


class BackupPipeline:
    """Run one backup end to end.

    Stages before delivery short-circuit to cleanup on the first failure.
    Delivery and cleanup are attempted per artifact and every result is
    folded into the run's final status.
    """

    def __init__(
        self,
        settings: Settings,
        *,
        runner: Runner,
        exporter: Exporter,
        delivery: DeliveryClient,
        clock: Optional[Callable[[], datetime]] = None,
    ) -> None:
        self.settings = settings
        self.runner = runner
        self.exporter = exporter
        self.delivery = delivery
        self._zone = settings.zone()
        self._clock = clock or (lambda: datetime.now(self._zone))
        self._lock = RunLock(settings.staging_dir)

    @classmethod
    def from_settings(cls, settings: Settings) -> "BackupPipeline":
        return cls(
            settings,
            runner=CommandRunner(secrets=(settings.database.password.get_secret_value(),)),
            exporter=DatabaseExporter(settings.database.sqlalchemy_url()),
            delivery=TelegramClient(settings.telegram),
        )

    def __enter__(self) -> "BackupPipeline":
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()

    def close(self) -> None:
        self.delivery.close()

    @property
    def staging_dir(self) -> Path:
        return Path(self.settings.staging_dir)

    def execute(self) -> BackupRun:
        now = self._clock()
        run = BackupRun(
            run_id=uuid.uuid4().hex,
            database=self.settings.database.name,
            timestamp=now.strftime(TIMESTAMP_FORMAT),
            timezone=now.tzname() or self.settings.timezone,
            started_at=now,
            status=RunStatus.RUNNING,
        )
        logger.info("Starting backup process for database: %s", run.database)

        stages: List[Stage] = [
            ("prepare", self.prepare),
            ("dump", self.dump),
            ("compress", self.compress),
            ("export", self.export),
        ]
        aborted = False
        try:
            for name, stage in stages:
                try:
                    outcome = run.record(stage(run))
                except Exception as exc:  # pragma: no cover
                    logger.exception("Stage %s raised", name)
                    outcome = run.record(StepOutcome(name=name, ok=False, message=f"unexpected error: {exc}"))
                if not outcome.ok:
                    logger.error("Stage %s failed: %s", name, outcome.message)
                    aborted = True
                    break
            if not aborted:
                run.record(self.deliver(run))
            run.record(self.cleanup(run))
        finally:
            self._lock.release()
        return self.finalize(run)

    def prepare(self, run: BackupRun) -> StepOutcome:
        directory = self.staging_dir
        if not directory.is_dir():
            logger.info("Creating backup directory: %s", directory)
            try:
                directory.mkdir(parents=True, exist_ok=True)
            except OSError as exc:
                return StepOutcome(name="prepare", ok=False, message=f"Failed to create backup directory {directory}: {exc}")
        if not os.access(directory, os.W_OK):
            return StepOutcome(name="prepare", ok=False, message=f"Backup directory is not writable: {directory}")
        if not self._lock.acquire():
            return StepOutcome(name="prepare", ok=False, message="Another backup run is in progress.")
        return StepOutcome(name="prepare", ok=True, message=str(directory))

    def dump(self, run: BackupRun) -> StepOutcome:
        db = self.settings.database
        sql_path = self.staging_dir / f"{run.database}_backup_{run.timestamp}.sql"
        artifact = Artifact(path=sql_path, kind=ArtifactKind.SQL_DUMP)
        run.artifacts.append(artifact)

        command = [
            self.settings.tools.dump_path,
            f"--user={db.user}",
            f"--password={db.password.get_secret_value()}",
            f"--host={db.host}",
            f"--port={db.port}",
            "--single-transaction",
            "--skip-lock-tables",
            f"--result-file={sql_path}",
            run.database,
        ]
        result = self.runner.run(
            command,
            secrets=(db.password.get_secret_value(),),
            expected_output=sql_path,
            require_non_empty=True,
        )
        if not result.ok:
            size = sql_path.stat().st_size if sql_path.exists() else "N/A"
            return StepOutcome(
                name="dump",
                ok=False,
                message=(
                    f"mysqldump failed ({result.reason}). Exit code: {result.return_code}. "
                    f"File exists: {'Yes' if sql_path.exists() else 'No'}. File size: {size}. "
                    f"Output: {result.output.strip()}"
                ),
            )
        artifact.refresh_size()
        logger.info("SQL dump created: %s (%d bytes)", sql_path.name, artifact.size)
        return StepOutcome(name="dump", ok=True, message=sql_path.name)

    def compress(self, run: BackupRun) -> StepOutcome:
        artifact = run.artifact(ArtifactKind.SQL_DUMP)
        if artifact is None:
            return StepOutcome(name="compress", ok=False, message="No SQL dump to compress.")
        sql_path = artifact.path
        gz_path = sql_path.with_name(sql_path.name + ".gz")

        result = self.runner.run([self.settings.tools.gzip_path, str(sql_path)], expected_output=gz_path)
        if not result.ok:
            if gz_path.exists():
                run.artifacts.append(Artifact(path=gz_path, kind=ArtifactKind.SQL_DUMP))
            return StepOutcome(
                name="compress",
                ok=False,
                message=f"gzip failed ({result.reason}). Exit code: {result.return_code}. Output: {result.output.strip()}",
            )
        artifact.path = gz_path
        artifact.produced = True
        artifact.refresh_size()
        logger.info("SQL dump gzipped: %s (%d bytes)", gz_path.name, artifact.size)
        return StepOutcome(name="compress", ok=True, message=gz_path.name)

    def export(self, run: BackupRun) -> StepOutcome:
        csv_path = self.staging_dir / f"{run.database}_export_{run.timestamp}.csv"
        artifact = Artifact(path=csv_path, kind=ArtifactKind.CSV_EXPORT)
        run.artifacts.append(artifact)
        logger.info("Creating CSV export: %s", csv_path.name)
        try:
            summary = self.exporter.export(csv_path)
        except ExportError as exc:
            return StepOutcome(name="export", ok=False, message=str(exc))

        if not summary.written:
            run.artifacts.remove(artifact)
            return StepOutcome(name="export", ok=True, message="No tables found; CSV export skipped.")
        artifact.produced = True
        artifact.refresh_size()
        message = f"{csv_path.name}: {len(summary.tables)} tables, {summary.rows} rows"
        if summary.failed_tables:
            message += f"; failed tables: {', '.join(summary.failed_tables)}"
        return StepOutcome(name="export", ok=True, message=message)

    def deliver(self, run: BackupRun) -> StepOutcome:
        logger.info("Sending files to Telegram...")
        failed = []
        for artifact in run.produced_artifacts():
            label = "SQL Backup" if artifact.kind is ArtifactKind.SQL_DUMP else "CSV Export"
            caption = f"{label} ({run.database}) - {run.timestamp} {run.timezone}"
            artifact.delivered = self.delivery.send_document(artifact.path, caption)
            if not artifact.delivered:
                logger.error("Failed to send %s to Telegram.", artifact.path.name)
                failed.append(artifact.path.name)
        if failed:
            return StepOutcome(name="deliver", ok=False, message="Not delivered: " + ", ".join(failed))
        return StepOutcome(name="deliver", ok=True, message=f"{len(run.produced_artifacts())} file(s) sent")

    def cleanup(self, run: BackupRun) -> StepOutcome:
        logger.info("Cleaning up local backup files...")
        failed = []
        for artifact in run.artifacts:
            artifact.cleaned = _remove(artifact.path)
            if not artifact.cleaned:
                failed.append(artifact.path.name)
        if failed:
            return StepOutcome(name="cleanup", ok=False, message="Could not delete: " + ", ".join(failed))
        return StepOutcome(name="cleanup", ok=True, message=f"{len(run.artifacts)} file(s) removed")

    def finalize(self, run: BackupRun) -> BackupRun:
        succeeded = (
            all(step.ok for step in run.steps)
            and all(artifact.delivered for artifact in run.produced_artifacts())
            and all(artifact.cleaned for artifact in run.artifacts)
        )
        run.status = RunStatus.SUCCEEDED if succeeded else RunStatus.FAILED
        run.completed_at = self._clock()
        if succeeded:
            logger.info("Backup process completed successfully.")
        else:
            logger.error(
                "Backup process completed with errors: %s",
                "; ".join(f"{step.name}: {step.message}" for step in run.steps if not step.ok) or "artifact not delivered",
            )
        return run


def _remove(path: Path) -> bool:
    if not path.exists():
        logger.info("Local file not found for cleanup (already removed): %s", path.name)
        return True
    try:
        path.unlink()
    except OSError as exc:
        logger.error("Failed to delete local file %s: %s", path.name, exc)
        return False
    logger.info("Deleted local file: %s", path.name)
    return True
