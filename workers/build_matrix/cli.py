"""
CLI — the orchestrator's command surface.

    build-matrix install-deps
    build-matrix build-<compiler>[-<version>]   e.g. build-dmd, build-ldc-1.38.0

Exit code 0 means no hard failure; otherwise the code of the failing step.
"""
from __future__ import annotations

import argparse
import logging
import sys
from dataclasses import dataclass
from enum import Enum, unique
from pathlib import Path
from typing import List, Optional

import httpx

from build_matrix import __version__
from build_matrix.config import Settings
from build_matrix.core.activator import CompilerSpec, ToolchainActivator
from build_matrix.core.buildtool import (
    DubBuildTool,
    add_auxiliary_dependencies,
    install_system_dependencies,
)
from build_matrix.core.fetcher import InstallerFetcher
from build_matrix.core.recorder import ArtifactRecorder
from build_matrix.core.shell import CommandRunner
from build_matrix.errors import MatrixError, UnknownCommand
from build_matrix.io.schema import RunReport
from build_matrix.io.writer import write_report
from build_matrix.policy.profile import MatrixProfile, load_profile
from build_matrix.runner import MatrixRunner, run_matrix

logger = logging.getLogger(__name__)

BUILD_PREFIX = "build-"


# ─── Commands ────────────────────────────────────────────────────────────────

@unique
class CommandKind(str, Enum):
    INSTALL_DEPS = "install-deps"
    BUILD = "build"


@dataclass(frozen=True)
class Command:
    kind: CommandKind
    compiler: Optional[CompilerSpec] = None


def parse_command(value: str) -> Command:
    """Map the positional argument onto a ``Command``; raise ``UnknownCommand`` otherwise."""
    if value == CommandKind.INSTALL_DEPS.value:
        return Command(CommandKind.INSTALL_DEPS)
    if value.startswith(BUILD_PREFIX) and len(value) > len(BUILD_PREFIX):
        try:
            spec = CompilerSpec.parse(value[len(BUILD_PREFIX):])
        except ValueError:
            raise UnknownCommand(value) from None
        return Command(CommandKind.BUILD, spec)
    raise UnknownCommand(value)


@dataclass
class RunOptions:
    """Per-invocation switches that are not settings."""
    with_aux_deps: bool = False
    clean: bool = True


# ─── Handlers ────────────────────────────────────────────────────────────────

def handle_install_deps(settings: Settings, commands: CommandRunner) -> int:
    install_system_dependencies(settings.INSTALL_DEPS_COMMANDS, commands)
    logger.info("System dependencies installed")
    return 0


def handle_build(
    command: Command,
    settings: Settings,
    options: RunOptions,
    commands: CommandRunner,
    client: Optional[httpx.Client] = None,
) -> int:
    assert command.compiler is not None
    project_dir = settings.project_path

    profile = (
        load_profile(Path(settings.MATRIX_FILE))
        if settings.MATRIX_FILE
        else MatrixProfile.default()
    )
    logger.info(
        "Project %s in %s, profile %s, compiler %s",
        settings.PROJECT_NAME, project_dir, profile.profile_id, command.compiler.identifier,
    )

    # 1. Installer
    fetcher = InstallerFetcher(
        settings.INSTALLER_URLS,
        max_attempts=settings.INSTALLER_MAX_ATTEMPTS,
        timeout=settings.INSTALLER_TIMEOUT,
        scratch_dir=Path(settings.SCRATCH_DIR),
        user_agent=settings.USER_AGENT,
        client=client,
    )
    installer = fetcher.fetch()

    # 2. Toolchain
    activator = ToolchainActivator(
        installer.path,
        install_root=settings.install_root,
        runner=commands,
    )
    compiler = activator.activate(command.compiler)

    # 3. Auxiliary sources
    shell = commands.with_overlay(compiler.environment_overlay)
    if options.with_aux_deps:
        add_auxiliary_dependencies(profile.auxiliary_dependencies, shell, project_dir)

    # 4. Matrix
    tool = DubBuildTool(project_dir, settings.PROJECT_NAME)
    recorder = ArtifactRecorder(
        settings.artifacts_path,
        settings.PROJECT_NAME,
        profile.default_architecture,
        binary_suffix=tool.binary_suffix,
    )
    runner = MatrixRunner(
        tool,
        recorder,
        commands=commands,
        clean=options.clean,
        phase_timeout=settings.PHASE_TIMEOUT,
    )
    report = run_matrix(runner, compiler, profile, settings.PROJECT_NAME)
    _save_report(report, settings)

    if report.failure is not None:
        logger.error(
            "%s failed%s: %s",
            report.failure.step,
            f" ({report.failure.cell_identity})" if report.failure.cell_identity else "",
            report.failure.message,
        )
        return report.failure.exit_code
    return 0


def _save_report(report: RunReport, settings: Settings) -> None:
    if not settings.REPORT_PATH:
        return
    path = write_report(report, Path(settings.REPORT_PATH))
    logger.info("Run report written to %s", path)


def dispatch(
    command: Command,
    settings: Settings,
    options: Optional[RunOptions] = None,
    commands: Optional[CommandRunner] = None,
    client: Optional[httpx.Client] = None,
) -> int:
    """Run the handler for *command*; fatal errors propagate as ``MatrixError``."""
    options = options or RunOptions()
    # PHASE_TIMEOUT bounds clean/test/build only; installs run untimed
    commands = commands or CommandRunner(cwd=settings.project_path)
    if command.kind == CommandKind.INSTALL_DEPS:
        return handle_install_deps(settings, commands)
    return handle_build(command, settings, options, commands, client=client)


# ─── Entry point ─────────────────────────────────────────────────────────────

def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="build-matrix",
        description="Test and build a project across a compiler/architecture/configuration matrix",
    )
    parser.add_argument(
        "command",
        help="install-deps, or build-<compiler>[-<version>] (e.g. build-dmd, build-ldc-1.38.0)",
    )
    parser.add_argument("--project-dir", default=None, help="Project directory (default: PROJECT_DIR)")
    parser.add_argument("--artifacts-dir", default=None, help="Artifacts directory (default: ARTIFACTS_DIR)")
    parser.add_argument("--matrix", default=None, help="Matrix profile file (.json/.yaml)")
    parser.add_argument("--report", default=None, help="Write a JSON run report to this path")
    parser.add_argument("--phase-timeout", type=float, default=None,
                        help="Per-command timeout in seconds for clean/test/build")
    parser.add_argument("--with-aux-deps", action="store_true",
                        help="Clone and register auxiliary source dependencies first")
    parser.add_argument("--no-clean", action="store_true", help="Skip the clean step before each configuration")
    parser.add_argument("--verbose", "-v", action="store_true")
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    return parser


def _apply_overrides(settings: Settings, args: argparse.Namespace) -> Settings:
    overrides = {
        "PROJECT_DIR": args.project_dir,
        "ARTIFACTS_DIR": args.artifacts_dir,
        "MATRIX_FILE": args.matrix,
        "REPORT_PATH": args.report,
        "PHASE_TIMEOUT": args.phase_timeout,
    }
    update = {k: v for k, v in overrides.items() if v is not None}
    return settings.model_copy(update=update) if update else settings


def main(argv: Optional[List[str]] = None) -> int:
    """CLI entry point."""
    parser = build_parser()
    args = parser.parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s  %(levelname)-8s  %(name)s  %(message)s",
    )

    try:
        command = parse_command(args.command)
        settings = _apply_overrides(Settings(), args)
        options = RunOptions(with_aux_deps=args.with_aux_deps, clean=not args.no_clean)
        return dispatch(command, settings, options)
    except MatrixError as e:
        logger.error("%s", e)
        return e.exit_code


if __name__ == "__main__":
    sys.exit(main())
