"""
Profile — the matrix axes as data.

Architectures, build modes and configurations are declared here (or in a
JSON/YAML file), never as code branches, so cells can be enabled or
disabled without touching the orchestrator.
"""
from __future__ import annotations

import json
from pathlib import Path
from typing import List, Optional

import yaml
from pydantic import BaseModel, Field, ValidationError, model_validator

from build_matrix.errors import ProfileError


def _reject_duplicates(label: str, values: List[str]) -> None:
    dupes = sorted({v for v in values if values.count(v) > 1})
    if dupes:
        raise ValueError(f"duplicate {label}: {', '.join(dupes)}")


class ConfigurationAxis(BaseModel):
    """One named build configuration and the extra arguments it needs."""
    name: str
    extra_args: List[str] = Field(default_factory=list)
    build_modes: Optional[List[str]] = None  # overrides MatrixProfile.build_modes
    enabled: bool = True


class CellExclusion(BaseModel):
    """Skip every cell matching all of the fields that are set."""
    architecture: Optional[str] = None
    configuration: Optional[str] = None
    build_mode: Optional[str] = None

    def matches(self, architecture: str, configuration: str, build_mode: str) -> bool:
        if self.architecture is not None and self.architecture != architecture:
            return False
        if self.configuration is not None and self.configuration != configuration:
            return False
        if self.build_mode is not None and self.build_mode != build_mode:
            return False
        return True


class AuxDependency(BaseModel):
    """A forked source dependency cloned and registered before building."""
    url: str
    name: str
    version: str


class MatrixProfile(BaseModel):
    """Everything that decides which cells run and how failures are treated."""

    profile_id: str = "custom"
    architectures: List[str] = Field(default_factory=lambda: ["x86_64"])
    default_architecture: str = "x86_64"
    build_modes: List[str] = Field(default_factory=lambda: ["debug", "plain", "release"])
    configurations: List[ConfigurationAxis] = Field(default_factory=list)
    exclude: List[CellExclusion] = Field(default_factory=list)
    hard_fail_modes: List[str] = Field(default_factory=lambda: ["debug"])
    test_enabled: bool = True
    test_args: List[str] = Field(default_factory=list)
    auxiliary_dependencies: List[AuxDependency] = Field(default_factory=list)

    @model_validator(mode="after")
    def _check_axes(self) -> "MatrixProfile":
        if not self.architectures:
            raise ValueError("at least one architecture is required")
        if not self.configurations:
            raise ValueError("at least one configuration is required")
        _reject_duplicates("architectures", self.architectures)
        _reject_duplicates("build modes", self.build_modes)
        _reject_duplicates("configuration names", [c.name for c in self.configurations])
        for config in self.configurations:
            if config.build_modes is not None:
                _reject_duplicates(f"build modes of {config.name}", config.build_modes)
        return self

    def is_excluded(self, architecture: str, configuration: str, build_mode: str) -> bool:
        return any(ex.matches(architecture, configuration, build_mode) for ex in self.exclude)

    def modes_for(self, configuration: ConfigurationAxis) -> List[str]:
        if configuration.build_modes is not None:
            return list(configuration.build_modes)
        return list(self.build_modes)

    @classmethod
    def default(cls) -> "MatrixProfile":
        """The stock kameloso matrix: dev, twitch and application on x86_64."""
        return cls(
            profile_id="kameloso-default",
            architectures=["x86_64"],
            default_architecture="x86_64",
            build_modes=["debug", "plain", "release"],
            configurations=[
                ConfigurationAxis(name="dev"),
                ConfigurationAxis(name="twitch", build_modes=["debug"]),
                ConfigurationAxis(name="application", build_modes=["debug", "release"]),
            ],
            auxiliary_dependencies=[
                AuxDependency(
                    url="https://github.com/zorael/mir-algorithm.git",
                    name="mir-algorithm",
                    version="3.22.99",
                ),
                AuxDependency(
                    url="https://github.com/zorael/asdf.git",
                    name="asdf",
                    version="0.7.99",
                ),
            ],
        )


def load_profile(path: Path) -> MatrixProfile:
    """Load a profile from ``.json``, ``.yaml`` or ``.yml``."""
    path = Path(path)
    try:
        text = path.read_text()
    except OSError as e:
        raise ProfileError(f"cannot read matrix file {path}: {e}") from e

    try:
        if path.suffix.lower() in (".yaml", ".yml"):
            data = yaml.safe_load(text) or {}
            profile = MatrixProfile.model_validate(data)
        else:
            profile = MatrixProfile.model_validate_json(text)
    except (yaml.YAMLError, json.JSONDecodeError, ValidationError) as e:
        raise ProfileError(f"invalid matrix file {path}: {e}") from e

    if profile.profile_id == "custom":
        profile.profile_id = path.stem
    return profile
