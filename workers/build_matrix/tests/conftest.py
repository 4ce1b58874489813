"""
Shared pytest fixtures for build_matrix tests.

No real compiler, dub or network is needed: external commands go through
``FakeRunner``, which scripts the behaviour of ``dub`` and the installer
and records every invocation with the environment overlay it carried.
"""
import os
import stat
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable, Dict, List, Optional, Set, Tuple, Union

import pytest

from build_matrix.core.activator import ActivatedCompiler, CompilerSpec
from build_matrix.core.buildtool import DubBuildTool
from build_matrix.core.recorder import ArtifactRecorder
from build_matrix.core.shell import CommandResult, CommandRunner
from build_matrix.policy.profile import ConfigurationAxis, MatrixProfile

PROJECT = "kameloso"

HandlerResult = Union[int, Tuple[int, str]]


@dataclass
class Call:
    argv: List[str]
    overlay: Dict[str, str]
    timeout: Optional[float] = None


class FakeRunner(CommandRunner):
    """CommandRunner whose commands are answered by a Python callable."""

    def __init__(
        self,
        handler: Callable[[List[str]], HandlerResult],
        env_overlay: Optional[Dict[str, str]] = None,
        calls: Optional[List[Call]] = None,
    ):
        super().__init__(env_overlay=env_overlay)
        self.handler = handler
        self.calls: List[Call] = calls if calls is not None else []

    def with_overlay(self, overlay):
        merged = dict(self.env_overlay)
        merged.update(overlay)
        return FakeRunner(self.handler, merged, self.calls)

    def run(self, argv, *, cwd=None, capture=False, timeout=None):
        self.calls.append(Call(list(argv), dict(self.env_overlay), timeout))
        out = self.handler(list(argv))
        returncode, stdout = (out, "") if isinstance(out, int) else out
        return CommandResult(argv=list(argv), returncode=returncode, duration_ms=1, stdout=stdout)

    def argvs(self, program: Optional[str] = None) -> List[List[str]]:
        return [c.argv for c in self.calls if program is None or c.argv[0] == program]


def _opt(argv: List[str], flag: str) -> Optional[str]:
    if flag in argv:
        return argv[argv.index(flag) + 1]
    return None


@dataclass
class FakeDub:
    """
    Scripted dub: builds write the output binary unless told to fail.

    ``fail_tests`` holds configuration names, ``fail_builds`` and
    ``silent_builds`` hold (configuration, mode) pairs; a silent build
    exits 0 without producing a binary.
    """
    project_dir: Path
    fail_tests: Set[str] = field(default_factory=set)
    fail_builds: Set[Tuple[str, str]] = field(default_factory=set)
    silent_builds: Set[Tuple[str, str]] = field(default_factory=set)
    fail_clean: bool = False

    def __call__(self, argv: List[str]) -> HandlerResult:
        if argv[0] != "dub":
            return 0
        verb = argv[1]
        config = _opt(argv, "-c")
        if verb == "clean":
            return 1 if self.fail_clean else 0
        if verb == "test":
            return 2 if config in self.fail_tests else 0
        if verb == "build":
            key = (config, _opt(argv, "-b"))
            if key in self.fail_builds:
                return 1
            if key not in self.silent_builds:
                arch = next(a for a in argv if a.startswith("--arch=")).split("=", 1)[1]
                out = self.project_dir / PROJECT
                out.write_bytes(f"{arch}:{key[0]}:{key[1]}".encode())
            return 0
        return 0


@pytest.fixture
def project_dir(tmp_path) -> Path:
    d = tmp_path / "project"
    d.mkdir()
    return d


@pytest.fixture
def artifacts_dir(project_dir) -> Path:
    return project_dir / "artifacts"


@pytest.fixture
def dmd() -> ActivatedCompiler:
    return ActivatedCompiler(
        spec=CompilerSpec("dmd"),
        binary_name="dmd",
        environment_overlay={"PATH": "/opt/dlang/dmd/bin:/usr/bin", "DC": "dmd"},
    )


@pytest.fixture
def dev_profile() -> MatrixProfile:
    """architectures [x86_64] × modes [debug, plain, release] × configurations [dev]."""
    return MatrixProfile(
        architectures=["x86_64"],
        default_architecture="x86_64",
        build_modes=["debug", "plain", "release"],
        configurations=[ConfigurationAxis(name="dev")],
    )


@pytest.fixture
def build_tool(project_dir) -> DubBuildTool:
    tool = DubBuildTool(project_dir, PROJECT)
    if tool.binary_suffix:
        pytest.skip("artifact names are asserted without an .exe suffix")
    return tool


@pytest.fixture
def recorder(artifacts_dir) -> ArtifactRecorder:
    return ArtifactRecorder(artifacts_dir, PROJECT, "x86_64")


@pytest.fixture
def fake_bin(tmp_path) -> Path:
    """A directory holding executable stand-ins for dmd and ldc2."""
    d = tmp_path / "toolchain" / "bin"
    d.mkdir(parents=True)
    for name in ("dmd", "ldc2"):
        exe = d / name
        exe.write_text("#!/bin/sh\nexit 0\n")
        exe.chmod(exe.stat().st_mode | stat.S_IXUSR | stat.S_IXGRP | stat.S_IXOTH)
    return d


def artifact_names(artifacts_dir: Path) -> List[str]:
    if not artifacts_dir.exists():
        return []
    return sorted(p.name for p in artifacts_dir.iterdir())


def env_dump(values: Dict[str, str]) -> str:
    """Render *values* on top of the current environment like ``env -0``."""
    env = dict(os.environ)
    env.update(values)
    return "".join(f"{k}={v}\0" for k, v in env.items())
