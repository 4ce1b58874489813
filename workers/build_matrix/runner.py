"""
Matrix runner — top-level orchestration: activated compiler → artifacts.

For every (architecture, configuration) group the runner cleans the
project, runs the test suite (hard-fail), then builds each mode in
priority order.  Hard-fail builds (debug by default) abort the run after
their marker is written; soft-fail builds are recorded and the matrix
carries on.  Cells execute strictly one at a time because the build tool
shares the project directory and its output binary between cells.
"""
import logging
from typing import List, Optional

from build_matrix.core.activator import ActivatedCompiler
from build_matrix.core.buildtool import DubBuildTool
from build_matrix.core.matrix import CellGroup, MatrixCell, check_unique_identities, enumerate_groups
from build_matrix.core.recorder import ArtifactRecorder, BuildOutcome, Failure, Success
from build_matrix.core.shell import CommandResult, CommandRunner
from build_matrix.errors import (
    CleanFailed,
    DebugBuildFailed,
    MatrixError,
    PhaseFailed,
    ProfileError,
    TestPhaseFailed,
)
from build_matrix.io.schema import ArtifactRecord, FailureInfo, RunReport, now_iso
from build_matrix.policy.gating import TEST_PHASE_POLICY, FailurePolicy, build_policy
from build_matrix.policy.profile import MatrixProfile

logger = logging.getLogger(__name__)


class MatrixRunner:
    """Runs the test-then-build pipeline over every enabled matrix cell."""

    def __init__(
        self,
        build_tool: DubBuildTool,
        recorder: ArtifactRecorder,
        commands: Optional[CommandRunner] = None,
        clean: bool = True,
        phase_timeout: Optional[float] = None,
    ):
        self.build_tool = build_tool
        self.recorder = recorder
        self.commands = commands or CommandRunner(cwd=build_tool.project_dir)
        self.clean = clean
        self.phase_timeout = phase_timeout
        self.records: List[ArtifactRecord] = []

    # -----------------------------------------------------------------
    # Phases
    # -----------------------------------------------------------------

    def _group_identity(self, group: CellGroup, step: str) -> str:
        probe = MatrixCell(
            compiler=group.cells[0].compiler,
            architecture=group.architecture,
            build_mode=step,
            configuration=group.configuration,
        )
        return self.recorder.identity(probe)

    def _clean(self, shell: CommandRunner, group: CellGroup) -> None:
        result = shell.run(self.build_tool.clean_command(), timeout=self.phase_timeout)
        if not result.ok:
            raise CleanFailed(
                group.cells[0],
                self._group_identity(group, "clean"),
                result.describe_failure(),
                result.returncode,
            )

    def _test(
        self,
        shell: CommandRunner,
        compiler: ActivatedCompiler,
        group: CellGroup,
        profile: MatrixProfile,
    ) -> None:
        cell = group.cells[0]
        logger.info("Testing %s [%s]", self._group_identity(group, "test"), TEST_PHASE_POLICY.value)
        result = shell.run(
            self.build_tool.test_command(compiler.binary_name, cell, profile.test_args),
            timeout=self.phase_timeout,
        )
        if not result.ok:
            raise TestPhaseFailed(
                cell,
                self._group_identity(group, "test"),
                result.describe_failure(),
                result.returncode,
            )

    def _outcome(self, result: CommandResult) -> BuildOutcome:
        if not result.ok:
            return Failure(result.describe_failure())
        output = self.build_tool.output_binary
        if not output.exists():
            return Failure(f"no artifact produced at {output}")
        return Success(output)

    def _build(
        self,
        shell: CommandRunner,
        compiler: ActivatedCompiler,
        cell: MatrixCell,
        profile: MatrixProfile,
    ) -> ArtifactRecord:
        identity = self.recorder.identity(cell)
        policy = build_policy(cell.build_mode, profile)
        logger.info("Building %s [%s]", identity, policy.value)

        self.build_tool.remove_stale_output()
        result = shell.run(
            self.build_tool.build_command(compiler.binary_name, cell),
            timeout=self.phase_timeout,
        )
        outcome = self._outcome(result)

        record = self.recorder.record(cell, outcome, result.duration_ms, identity=identity)
        self.records.append(record)

        if isinstance(outcome, Failure) and policy == FailurePolicy.HARD:
            raise DebugBuildFailed(cell, identity, outcome.reason, result.returncode)
        return record

    # -----------------------------------------------------------------
    # Full matrix
    # -----------------------------------------------------------------

    def run(self, compiler: ActivatedCompiler, profile: MatrixProfile) -> List[ArtifactRecord]:
        """
        Execute every cell for *compiler*.

        Returns one record per attempted build cell.  Raises a
        ``PhaseFailed`` subclass on the first hard failure; records made
        up to that point remain available on ``self.records``.
        """
        self.records = []
        groups = list(enumerate_groups(compiler.label, profile))
        check_unique_identities(
            (cell for group in groups for cell in group.cells),
            self.recorder.project_name,
            self.recorder.default_architecture,
        )
        self.recorder.prepare()
        shell = self.commands.with_overlay(compiler.environment_overlay)

        for group in groups:
            logger.info(
                "=== %s / %s / %s (%d build(s)) ===",
                compiler.label, group.architecture, group.configuration, len(group.cells),
            )
            if self.clean:
                self._clean(shell, group)
            if profile.test_enabled:
                self._test(shell, compiler, group, profile)
            for cell in group.cells:
                self._build(shell, compiler, cell, profile)

        return list(self.records)


def run_matrix(
    runner: MatrixRunner,
    compiler: ActivatedCompiler,
    profile: MatrixProfile,
    project_name: str,
) -> RunReport:
    """
    Run the matrix and summarise it as a ``RunReport``.

    Fatal errors are captured in ``report.failure`` rather than raised so
    the caller can persist the partial report before exiting.
    """
    report = RunReport(
        project=project_name,
        compiler=compiler.label,
        binary_name=compiler.binary_name,
        profile_id=profile.profile_id,
    )
    try:
        runner.run(compiler, profile)
    except PhaseFailed as e:
        logger.error("Aborting matrix: %s", e)
        report.failure = FailureInfo(
            step=e.step,
            cell_identity=e.identity,
            message=str(e),
            exit_code=e.exit_code,
        )
    except ProfileError as e:
        logger.error("Invalid matrix: %s", e)
        report.failure = FailureInfo(step="profile", message=str(e), exit_code=e.exit_code)
    except MatrixError as e:
        logger.error("Aborting matrix: %s", e)
        report.failure = FailureInfo(step="record", message=str(e), exit_code=e.exit_code)

    report.records = list(runner.records)
    report.finished_at = now_iso()
    report.status = report.compute_status()

    succeeded = sum(1 for r in report.records if r.outcome.value == "Success")
    logger.info(
        "Matrix finished: %s (%d/%d cell(s) produced a binary)",
        report.status.value, succeeded, len(report.records),
    )
    return report
