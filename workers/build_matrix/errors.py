"""
Errors — the orchestrator's failure taxonomy.

Every fatal condition is a ``MatrixError`` carrying the process exit code
the CLI should return.  Soft build failures are never raised; they are
recorded as ``.failed`` markers by the artifact recorder.
"""
from __future__ import annotations

from typing import TYPE_CHECKING, Optional

if TYPE_CHECKING:
    from build_matrix.core.matrix import MatrixCell


class MatrixError(Exception):
    """Base class for all fatal orchestrator errors."""

    exit_code: int = 1


class UnknownCommand(MatrixError):
    """The positional command matched no known variant."""

    exit_code = 2

    def __init__(self, value: str):
        self.value = value
        super().__init__(f"Unknown command: {value}")


class ProfileError(MatrixError):
    """A matrix profile file could not be read or validated."""


class FetchExhausted(MatrixError):
    """Every installer endpoint failed on every attempt."""

    def __init__(
        self,
        endpoints: list[str],
        attempts: int,
        last_error: Optional[str] = None,
        waited_seconds: float = 0.0,
    ):
        self.endpoints = endpoints
        self.attempts = attempts
        self.last_error = last_error
        self.waited_seconds = waited_seconds
        msg = (
            f"installer download failed after {attempts} attempt(s) over {len(endpoints)} endpoint(s) "
            f"and {waited_seconds:.0f}s of backoff"
        )
        if last_error:
            msg += f": {last_error}"
        super().__init__(msg)


class ActivationFailed(MatrixError):
    """The installer could not install or activate the requested compiler."""

    def __init__(self, identifier: str, reason: str, exit_code: Optional[int] = None):
        self.identifier = identifier
        self.reason = reason
        if exit_code is not None and exit_code > 0:
            self.exit_code = exit_code
        super().__init__(f"activation of {identifier} failed: {reason}")


class PhaseFailed(MatrixError):
    """A hard-fail phase failed; the remaining matrix is abandoned."""

    step = "phase"

    def __init__(self, cell: "MatrixCell", identity: str, reason: str, returncode: Optional[int] = None):
        self.cell = cell
        self.identity = identity
        self.reason = reason
        self.returncode = returncode
        if returncode is not None and returncode > 0:
            self.exit_code = returncode
        super().__init__(f"{self.step} failed for {identity}: {reason}")


class CleanFailed(PhaseFailed):
    """Cleaning prior build state failed."""

    step = "clean"


class TestPhaseFailed(PhaseFailed):
    """The project test suite failed for a configuration."""

    step = "test"


class DebugBuildFailed(PhaseFailed):
    """A gating (hard-fail) build failed."""

    step = "debug build"

    def __init__(self, cell: "MatrixCell", identity: str, reason: str, returncode: Optional[int] = None):
        self.step = f"{cell.build_mode} build"
        super().__init__(cell, identity, reason, returncode)


class DuplicateArtifact(MatrixError):
    """Two cells in one run resolved to the same artifact name."""

    def __init__(self, name: str):
        self.name = name
        super().__init__(f"artifact name {name!r} already claimed in this run")
