"""
Orchestrator configuration
"""
import tempfile
from pathlib import Path
from typing import List, Optional

from pydantic_settings import BaseSettings

from build_matrix import __version__


class Settings(BaseSettings):
    """Orchestrator settings"""

    # Project
    PROJECT_NAME: str = "kameloso"
    PROJECT_DIR: str = "."
    ARTIFACTS_DIR: str = "artifacts"

    # Installer download
    INSTALLER_URLS: List[str] = [
        "https://dlang.org/install.sh",
        "https://downloads.dlang.org/other/install.sh",
    ]
    INSTALLER_MAX_ATTEMPTS: int = 5
    INSTALLER_TIMEOUT: float = 30.0  # seconds, per request
    INSTALL_ROOT: str = "~/dlang"
    SCRATCH_DIR: str = tempfile.gettempdir()
    USER_AGENT: str = f"build-matrix/{__version__}"

    # Matrix
    MATRIX_FILE: Optional[str] = None
    PHASE_TIMEOUT: Optional[float] = None  # seconds; None = no limit
    REPORT_PATH: Optional[str] = None

    # System dependencies (install-deps)
    INSTALL_DEPS_COMMANDS: List[List[str]] = [
        [
            "sudo", "wget",
            "https://master.dl.sourceforge.net/project/d-apt/files/d-apt.list",
            "-O", "/etc/apt/sources.list.d/d-apt.list",
        ],
        ["sudo", "apt-get", "update"],
        [
            "sudo", "apt-get", "-y", "--allow-unauthenticated",
            "install", "--reinstall", "d-apt-keyring",
        ],
        ["sudo", "apt-get", "update"],
        ["sudo", "apt-get", "-y", "install", "dmd-compiler", "dub"],
    ]

    @property
    def project_path(self) -> Path:
        """Resolved project working directory"""
        return Path(self.PROJECT_DIR).expanduser().resolve()

    @property
    def artifacts_path(self) -> Path:
        """Artifacts directory; relative paths hang off the project directory"""
        path = Path(self.ARTIFACTS_DIR).expanduser()
        if not path.is_absolute():
            path = self.project_path / path
        return path

    @property
    def install_root(self) -> Path:
        return Path(self.INSTALL_ROOT).expanduser()

    class Config:
        env_file = ".env"
        case_sensitive = True

