"""
Schema — Pydantic models for per-cell records and the run report.

One ``ArtifactRecord`` exists per attempted build cell; its ``outcome``
says whether ``output_path`` is a renamed binary or a ``.failed`` marker.
"""
from datetime import datetime, timezone
from enum import Enum, unique
from typing import List, Optional

from pydantic import BaseModel, Field

from build_matrix import PACKAGE_NAME, REPORT_SCHEMA_VERSION, __version__


@unique
class Outcome(str, Enum):
    SUCCESS = "Success"
    BUILD_FAILED = "BuildFailed"


@unique
class RunStatus(str, Enum):
    RUNNING = "RUNNING"
    SUCCESS = "SUCCESS"    # every cell produced a binary
    PARTIAL = "PARTIAL"    # soft failures recorded, no fatal error
    FAILED = "FAILED"      # a hard-fail phase aborted the run


class ArtifactRecord(BaseModel):
    """What one build cell left in the artifacts directory."""
    cell_identity: str
    outcome: Outcome
    output_path: str
    architecture: str
    configuration: str
    build_mode: str
    reason: Optional[str] = None
    duration_ms: int = 0


class FailureInfo(BaseModel):
    """The fatal error that stopped a run."""
    step: str
    cell_identity: Optional[str] = None
    message: str
    exit_code: int = 1


class RunReport(BaseModel):
    """Summary of one orchestrator invocation."""

    package_name: str = PACKAGE_NAME
    package_version: str = __version__
    schema_version: str = REPORT_SCHEMA_VERSION

    project: str
    compiler: str
    binary_name: str
    profile_id: str

    started_at: str = Field(default_factory=lambda: now_iso())
    finished_at: Optional[str] = None
    status: RunStatus = RunStatus.RUNNING

    records: List[ArtifactRecord] = Field(default_factory=list)
    failure: Optional[FailureInfo] = None

    def compute_status(self) -> RunStatus:
        """Derive the run status from the failure and the records."""
        if self.failure is not None:
            return RunStatus.FAILED
        if any(r.outcome == Outcome.BUILD_FAILED for r in self.records):
            return RunStatus.PARTIAL
        return RunStatus.SUCCESS


def now_iso() -> str:
    """Current UTC time as ISO 8601 string."""
    return datetime.now(timezone.utc).isoformat()
