"""
Shell — blocking execution of external commands.

Every command is echoed before it runs and its exit code and wall time
are logged afterwards, so a failure is attributable to exactly one step.
Child output streams straight to the console unless ``capture`` is set.
"""
from __future__ import annotations

import logging
import os
import shlex
import subprocess
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, List, Mapping, Optional

logger = logging.getLogger(__name__)


@dataclass
class CommandResult:
    """Outcome of a single command invocation."""
    argv: List[str]
    returncode: int
    duration_ms: int
    stdout: str = ""
    stderr: str = ""
    timed_out: bool = False

    @property
    def ok(self) -> bool:
        return self.returncode == 0 and not self.timed_out

    @property
    def command(self) -> str:
        return shlex.join(self.argv)

    def describe_failure(self) -> str:
        """Short human-readable reason for a failed command."""
        if self.timed_out:
            return f"timed out after {self.duration_ms / 1000:.1f}s"
        return f"`{self.command}` exited with code {self.returncode}"


def merge_environment(overlay: Optional[Mapping[str, str]] = None,
                      base: Optional[Mapping[str, str]] = None) -> Dict[str, str]:
    """Return *base* (default: the process environment) with *overlay* applied."""
    env = dict(os.environ if base is None else base)
    if overlay:
        env.update(overlay)
    return env


class CommandRunner:
    """
    Runs commands with an optional environment overlay.

    The overlay is merged into each child's environment; the process
    environment itself is never modified.
    """

    def __init__(
        self,
        cwd: Optional[Path] = None,
        env_overlay: Optional[Mapping[str, str]] = None,
        timeout: Optional[float] = None,
    ):
        self.cwd = cwd
        self.env_overlay: Dict[str, str] = dict(env_overlay or {})
        self.timeout = timeout

    def with_overlay(self, overlay: Mapping[str, str]) -> "CommandRunner":
        """Return a runner sharing cwd/timeout with *overlay* layered on top."""
        merged = dict(self.env_overlay)
        merged.update(overlay)
        return type(self)(cwd=self.cwd, env_overlay=merged, timeout=self.timeout)

    def run(
        self,
        argv: List[str],
        *,
        cwd: Optional[Path] = None,
        capture: bool = False,
        timeout: Optional[float] = None,
    ) -> CommandResult:
        """Execute *argv* and return its result. Never raises on nonzero exit."""
        workdir = cwd or self.cwd
        limit = timeout if timeout is not None else self.timeout
        cmd_str = shlex.join(argv)
        logger.info("$ %s", cmd_str)

        t0 = time.monotonic()
        stdout = ""
        stderr = ""
        timed_out = False
        try:
            result = subprocess.run(
                argv,
                cwd=str(workdir) if workdir else None,
                env=merge_environment(self.env_overlay),
                capture_output=capture,
                text=True,
                timeout=limit,
            )
            returncode = result.returncode
            if capture:
                stdout = result.stdout or ""
                stderr = result.stderr or ""
        except subprocess.TimeoutExpired:
            returncode = -1
            timed_out = True
            stderr = f"TIMEOUT after {limit}s"
        except OSError as e:
            # missing executable, permission denied, bad cwd
            returncode = 127
            stderr = str(e)
            logger.error("Could not start `%s`: %s", cmd_str, e)
        duration = int((time.monotonic() - t0) * 1000)

        outcome = CommandResult(
            argv=list(argv),
            returncode=returncode,
            duration_ms=duration,
            stdout=stdout,
            stderr=stderr,
            timed_out=timed_out,
        )
        if outcome.ok:
            logger.info("  -> exit 0 in %.2fs", duration / 1000)
        else:
            logger.warning("  -> %s (%.2fs)", outcome.describe_failure(), duration / 1000)
        return outcome
