"""Installer configuration.

Library mechanism, app policy: the host application decides where libraries
live and injects it here. Nothing is read from the environment.
"""

from pathlib import Path

from pydantic import BaseModel
from pydantic import ConfigDict


class InstallerConfig(BaseModel):
    """Paths and switches for LibraryInstaller."""

    model_config = ConfigDict(frozen=True)

    libraries_dir: Path
    # Must be on the same filesystem as libraries_dir for atomic renames.
    staging_dir: Path | None = None
    verify_checksums: bool = True
    keep_git_metadata: bool = False

    @property
    def staging_root(self) -> Path:
        """Directory under which per-request staging directories are created."""
        return self.staging_dir if self.staging_dir is not None else self.libraries_dir
