"""
Artifact recorder — turns a cell's build outcome into exactly one entry
in the artifacts directory: the renamed binary, or an empty
``<identity>.failed`` marker.

The directory is append-only within a run.  Leftovers from an earlier
run under the same identity are replaced so that a binary and its marker
never coexist.
"""
from __future__ import annotations

import logging
import shutil
from dataclasses import dataclass
from pathlib import Path
from typing import Optional, Set, Union

from build_matrix.core.matrix import MatrixCell
from build_matrix.errors import DuplicateArtifact
from build_matrix.io.schema import ArtifactRecord, Outcome

logger = logging.getLogger(__name__)

FAILED_SUFFIX = ".failed"


@dataclass(frozen=True)
class Success:
    """The build produced a binary at ``artifact_path``."""
    artifact_path: Path


@dataclass(frozen=True)
class Failure:
    """The build failed; ``reason`` says how."""
    reason: str


BuildOutcome = Union[Success, Failure]


class ArtifactRecorder:
    """Places per-cell results into the artifacts directory under unique names."""

    def __init__(
        self,
        artifacts_dir: Path,
        project_name: str,
        default_architecture: str,
        binary_suffix: str = "",
    ):
        self.artifacts_dir = Path(artifacts_dir)
        self.project_name = project_name
        self.default_architecture = default_architecture
        self.binary_suffix = binary_suffix
        self._claimed: Set[str] = set()

    def identity(self, cell: MatrixCell) -> str:
        return cell.identity(self.project_name, self.default_architecture)

    def _paths(self, identity: str) -> tuple[Path, Path]:
        binary = self.artifacts_dir / f"{identity}{self.binary_suffix}"
        marker = self.artifacts_dir / f"{identity}{FAILED_SUFFIX}"
        return binary, marker

    def prepare(self) -> None:
        """Create the artifacts directory before the first phase runs."""
        self.artifacts_dir.mkdir(parents=True, exist_ok=True)

    def _claim(self, identity: str) -> None:
        if identity in self._claimed:
            raise DuplicateArtifact(identity)
        self._claimed.add(identity)

    def record(
        self,
        cell: MatrixCell,
        outcome: BuildOutcome,
        duration_ms: int = 0,
        identity: Optional[str] = None,
    ) -> ArtifactRecord:
        identity = identity or self.identity(cell)
        self._claim(identity)
        self.prepare()
        binary, marker = self._paths(identity)

        if isinstance(outcome, Success):
            for stale in (marker, binary):
                if stale.exists():
                    stale.unlink()
            shutil.move(str(outcome.artifact_path), str(binary))
            logger.info("Artifact %s", binary.name)
            return ArtifactRecord(
                cell_identity=identity,
                outcome=Outcome.SUCCESS,
                output_path=str(binary),
                architecture=cell.architecture,
                configuration=cell.configuration,
                build_mode=cell.build_mode,
                duration_ms=duration_ms,
            )

        if binary.exists():
            binary.unlink()
        marker.touch()
        logger.warning("Marked %s as failed: %s", identity, outcome.reason)
        return ArtifactRecord(
            cell_identity=identity,
            outcome=Outcome.BUILD_FAILED,
            output_path=str(marker),
            architecture=cell.architecture,
            configuration=cell.configuration,
            build_mode=cell.build_mode,
            reason=outcome.reason,
            duration_ms=duration_ms,
        )
