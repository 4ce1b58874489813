"""
Build tool — argument lists for dub, the project's build system.

Only command construction and output location live here; running the
commands is the caller's job.  The package-manager and version-control
helpers at the bottom are thin pass-through glue.
"""
from __future__ import annotations

import logging
import sys
from pathlib import Path
from typing import List, Sequence

from build_matrix.core.matrix import MatrixCell
from build_matrix.core.shell import CommandRunner
from build_matrix.errors import MatrixError
from build_matrix.policy.profile import AuxDependency

logger = logging.getLogger(__name__)


class DubBuildTool:
    """Builds dub command lines for one project directory."""

    def __init__(self, project_dir: Path, binary_stem: str, executable: str = "dub"):
        self.project_dir = Path(project_dir)
        self.binary_stem = binary_stem
        self.executable = executable

    @property
    def binary_suffix(self) -> str:
        return ".exe" if sys.platform.startswith("win") else ""

    @property
    def output_binary(self) -> Path:
        """Where a successful build leaves its binary."""
        return self.project_dir / f"{self.binary_stem}{self.binary_suffix}"

    def clean_command(self) -> List[str]:
        return [self.executable, "clean"]

    def test_command(self, compiler: str, cell: MatrixCell, test_args: Sequence[str] = ()) -> List[str]:
        return [
            self.executable, "test",
            f"--compiler={compiler}",
            f"--arch={cell.architecture}",
            "-c", cell.configuration,
            *test_args,
            *cell.extra_args,
        ]

    def build_command(self, compiler: str, cell: MatrixCell) -> List[str]:
        return [
            self.executable, "build", "--nodeps",
            f"--compiler={compiler}",
            f"--arch={cell.architecture}",
            "-b", cell.build_mode,
            "-c", cell.configuration,
            *cell.extra_args,
        ]

    def remove_stale_output(self) -> None:
        """Delete a leftover binary so a failed build cannot pass for a good one."""
        if self.output_binary.exists():
            logger.debug("Removing stale output %s", self.output_binary)
            self.output_binary.unlink()


# =============================================================================
# External collaborators (pass-through)
# =============================================================================

def add_auxiliary_dependencies(
    deps: Sequence[AuxDependency],
    runner: CommandRunner,
    workdir: Path,
    dub: str = "dub",
) -> None:
    """Clone forked dependencies and register them with dub as local packages."""
    if not deps:
        return
    for dep in deps:
        target = workdir / dep.name
        steps: List[List[str]] = []
        if not target.exists():
            steps.append(["git", "clone", dep.url, str(target)])
        steps.append([dub, "add-local", str(target), dep.version])
        for argv in steps:
            result = runner.run(argv, cwd=workdir)
            if not result.ok:
                raise MatrixError(f"auxiliary dependency {dep.name}: {result.describe_failure()}")

    result = runner.run([dub, "upgrade"], cwd=workdir)
    if not result.ok:
        raise MatrixError(f"dub upgrade: {result.describe_failure()}")


def install_system_dependencies(commands: Sequence[Sequence[str]], runner: CommandRunner) -> None:
    """Run package-manager commands in order; the first failure is fatal."""
    for argv in commands:
        result = runner.run(list(argv))
        if not result.ok:
            err = MatrixError(f"dependency installation failed: {result.describe_failure()}")
            if result.returncode > 0:
                err.exit_code = result.returncode
            raise err
