"""
Toolchain activator — install a compiler with the fetched installer and
capture the environment its activation script would establish.

The result is an ``ActivatedCompiler`` value carrying an explicit
environment overlay; nothing here touches ``os.environ``.
"""
from __future__ import annotations

import logging
import os
import shutil
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, Mapping, Optional

from build_matrix.core.shell import CommandRunner, merge_environment
from build_matrix.errors import ActivationFailed

logger = logging.getLogger(__name__)

# compiler family -> binary name when the activation script does not export DC
COMPILER_BINARIES: Dict[str, str] = {
    "dmd": "dmd",
    "ldc": "ldc2",
    "gdc": "gdc",
}

# shell bookkeeping that always differs between processes
_IGNORED_VARIABLES = frozenset({"_", "SHLVL", "PWD", "OLDPWD", "PS1"})


@dataclass(frozen=True)
class CompilerSpec:
    """A compiler family, optionally pinned to a version."""
    name: str
    version_tag: Optional[str] = None

    @property
    def identifier(self) -> str:
        """Installer identifier, e.g. ``dmd`` or ``ldc-1.38.0``."""
        if self.version_tag:
            return f"{self.name}-{self.version_tag}"
        return self.name

    @classmethod
    def parse(cls, text: str) -> "CompilerSpec":
        """Parse ``name`` or ``name-version`` (the version may contain dashes)."""
        text = text.strip()
        if not text:
            raise ValueError("empty compiler specification")
        name, sep, version = text.partition("-")
        return cls(name=name, version_tag=version if sep and version else None)


@dataclass(frozen=True)
class ActivatedCompiler:
    """A compiler callable by name once ``environment_overlay`` is applied."""
    spec: CompilerSpec
    binary_name: str
    environment_overlay: Dict[str, str] = field(default_factory=dict)
    activate_script: Optional[Path] = None

    @property
    def label(self) -> str:
        """Label used in artifact names."""
        return self.spec.identifier


def parse_env_dump(raw: str) -> Dict[str, str]:
    """Parse NUL-separated ``KEY=VALUE`` records as printed by ``env -0``."""
    env: Dict[str, str] = {}
    for record in raw.split("\0"):
        if not record or "=" not in record:
            continue
        key, _, value = record.partition("=")
        env[key] = value
    return env


def diff_environment(before: Mapping[str, str], after: Mapping[str, str]) -> Dict[str, str]:
    """Variables that are new or changed in *after*."""
    return {
        k: v for k, v in after.items()
        if k not in _IGNORED_VARIABLES and before.get(k) != v
    }


class ToolchainActivator:
    """Runs ``install.sh install <id>`` and turns its activation into an overlay."""

    def __init__(
        self,
        installer_path: Path,
        install_root: Optional[Path] = None,
        runner: Optional[CommandRunner] = None,
        shell: str = "bash",
    ):
        self.installer_path = Path(installer_path)
        self.install_root = Path(install_root).expanduser() if install_root else None
        self.runner = runner or CommandRunner()
        self.shell = shell

    def _installer_argv(self, identifier: str, *extra: str) -> list[str]:
        argv = [self.shell, str(self.installer_path), "install"]
        if self.install_root is not None:
            argv += ["-p", str(self.install_root)]
        argv.append(identifier)
        argv.extend(extra)
        return argv

    def _capture_overlay(self, identifier: str, script: Path) -> Dict[str, str]:
        result = self.runner.run(
            [self.shell, "-c", 'source "$1" >/dev/null && env -0', "activate", str(script)],
            capture=True,
        )
        if not result.ok:
            raise ActivationFailed(
                identifier,
                f"sourcing {script} failed: {result.stderr.strip() or result.describe_failure()}",
                result.returncode,
            )
        base = merge_environment(self.runner.env_overlay)
        return diff_environment(base, parse_env_dump(result.stdout))

    def activate(self, spec: CompilerSpec) -> ActivatedCompiler:
        identifier = spec.identifier
        logger.info("Installing compiler %s", identifier)

        install = self.runner.run(self._installer_argv(identifier), capture=True)
        if not install.ok:
            reason = install.stderr.strip() or install.describe_failure()
            raise ActivationFailed(identifier, reason, install.returncode)

        locate = self.runner.run(self._installer_argv(identifier, "-a"), capture=True)
        if not locate.ok:
            reason = locate.stderr.strip() or locate.describe_failure()
            raise ActivationFailed(identifier, reason, locate.returncode)

        lines = [ln.strip() for ln in locate.stdout.splitlines() if ln.strip()]
        if not lines:
            raise ActivationFailed(identifier, "installer printed no activation script path")
        script = Path(lines[-1])

        overlay = self._capture_overlay(identifier, script)
        binary = overlay.get("DC") or COMPILER_BINARIES.get(spec.name, spec.name)

        search_path = merge_environment(overlay, merge_environment(self.runner.env_overlay)).get("PATH", os.defpath)
        if shutil.which(binary, path=search_path) is None:
            raise ActivationFailed(identifier, f"compiler binary {binary!r} not found on activated PATH")

        logger.info(
            "Activated %s as %s (%d environment variable(s) overlaid)",
            identifier, binary, len(overlay),
        )
        return ActivatedCompiler(
            spec=spec,
            binary_name=binary,
            environment_overlay=overlay,
            activate_script=script,
        )
