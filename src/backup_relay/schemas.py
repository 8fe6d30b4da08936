"""Shared data models for backup runs."""
from __future__ import annotations

from datetime import datetime
from enum import Enum
from pathlib import Path
from typing import List, Optional

from pydantic import BaseModel, Field


class RunStatus(str, Enum):
    """Lifecycle states tracked for a backup run."""

    PENDING = "pending"
    RUNNING = "running"
    SUCCEEDED = "succeeded"
    FAILED = "failed"


class ArtifactKind(str, Enum):
    SQL_DUMP = "sql-dump"
    CSV_EXPORT = "csv-export"


class Artifact(BaseModel):
    """A local file belonging to one run."""

    path: Path
    kind: ArtifactKind
    size: int = 0
    produced: bool = False
    delivered: Optional[bool] = None
    cleaned: Optional[bool] = None

    @property
    def exists(self) -> bool:
        return self.path.exists()

    def refresh_size(self) -> int:
        self.size = self.path.stat().st_size if self.path.exists() else 0
        return self.size


class StepOutcome(BaseModel):
    """Result of one pipeline stage."""

    name: str
    ok: bool
    message: str = ""


class BackupRun(BaseModel):
    """Mutable record of a single pipeline execution."""

    run_id: str
    database: str
    timestamp: str = Field(..., description="YYYYMMDD_HHMMSS in the configured zone.")
    timezone: str
    started_at: datetime
    completed_at: Optional[datetime] = None
    status: RunStatus = RunStatus.PENDING
    artifacts: List[Artifact] = Field(default_factory=list)
    steps: List[StepOutcome] = Field(default_factory=list)

    def record(self, outcome: StepOutcome) -> StepOutcome:
        self.steps.append(outcome)
        return outcome

    def artifact(self, kind: ArtifactKind) -> Optional[Artifact]:
        for artifact in self.artifacts:
            if artifact.kind is kind:
                return artifact
        return None

    def produced_artifacts(self) -> List[Artifact]:
        return [artifact for artifact in self.artifacts if artifact.produced]

    @property
    def exit_code(self) -> int:
        return 0 if self.status is RunStatus.SUCCEEDED else 1
