"""
Matrix — cell enumeration.

Order is part of the contract: architecture outermost, configuration in
the middle, build mode innermost with debug before plain before release.
Cells sharing an (architecture, configuration) pair form a group that is
cleaned and tested once before its builds.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Dict, Iterable, Iterator, List, Tuple

from build_matrix.errors import ProfileError
from build_matrix.policy.gating import order_build_modes
from build_matrix.policy.profile import MatrixProfile


@dataclass(frozen=True)
class MatrixCell:
    """One compiler × architecture × build-mode × configuration unit of work."""
    compiler: str
    architecture: str
    build_mode: str
    configuration: str
    extra_args: Tuple[str, ...] = ()

    def identity(self, project_name: str, default_architecture: str) -> str:
        """
        Deterministic artifact name for this cell.

        ``<project>-<compiler>[-<arch>][-<mode>]-<configuration>``: the
        architecture is dropped when it is the default one and the mode
        is dropped for debug builds, e.g. ``kameloso-dmd-dev`` and
        ``kameloso-dmd-plain-dev``.
        """
        parts = [project_name, self.compiler]
        if self.architecture != default_architecture:
            parts.append(self.architecture)
        if self.build_mode != "debug":
            parts.append(self.build_mode)
        parts.append(self.configuration)
        return "-".join(parts)


@dataclass
class CellGroup:
    """Cells sharing one clean + test pass."""
    architecture: str
    configuration: str
    extra_args: Tuple[str, ...]
    cells: List[MatrixCell] = field(default_factory=list)


def enumerate_groups(compiler: str, profile: MatrixProfile) -> Iterator[CellGroup]:
    """Yield non-empty cell groups in execution order."""
    for arch in profile.architectures:
        for config in profile.configurations:
            if not config.enabled:
                continue
            extra = tuple(config.extra_args)
            group = CellGroup(architecture=arch, configuration=config.name, extra_args=extra)
            for mode in order_build_modes(profile.modes_for(config)):
                if profile.is_excluded(arch, config.name, mode):
                    continue
                group.cells.append(MatrixCell(
                    compiler=compiler,
                    architecture=arch,
                    build_mode=mode,
                    configuration=config.name,
                    extra_args=extra,
                ))
            if group.cells:
                yield group


def enumerate_cells(compiler: str, profile: MatrixProfile) -> List[MatrixCell]:
    """Flat list of every cell in execution order."""
    return [cell for group in enumerate_groups(compiler, profile) for cell in group.cells]


def check_unique_identities(
    cells: Iterable[MatrixCell],
    project_name: str,
    default_architecture: str,
) -> None:
    """
    Raise ``ProfileError`` if two cells would share an artifact name.

    Debug builds drop the mode from their name, so ``(dev, release)`` and
    ``(release-dev, debug)`` both map to ``<project>-<compiler>-release-dev``.
    """
    seen: Dict[str, MatrixCell] = {}
    for cell in cells:
        name = cell.identity(project_name, default_architecture)
        other = seen.get(name)
        if other is not None:
            raise ProfileError(
                f"artifact name {name!r} is shared by "
                f"({other.architecture}, {other.configuration}, {other.build_mode}) and "
                f"({cell.architecture}, {cell.configuration}, {cell.build_mode})"
            )
        seen[name] = cell
