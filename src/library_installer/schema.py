"""Library data model - release descriptors, installed refs and on-disk metadata.

Release descriptors come from the index (or are synthesized for archive and git
installs). Installed refs come from the catalog. Both are immutable.
"""

import tomllib
from enum import Enum
from pathlib import Path

from pydantic import BaseModel
from pydantic import ConfigDict


class SourceKind(str, Enum):
    """Where a release is installed from."""

    INDEX = "index"
    ARCHIVE = "archive"
    GIT = "git"


class ReleaseDescriptor(BaseModel):
    """
    Immutable identity of an installable library release plus its source location.

    Two descriptors are equal when name and version match, whatever their source.
    """

    model_config = ConfigDict(frozen=True)

    name: str
    version: str
    source_kind: SourceKind = SourceKind.INDEX
    # Index: download URL. Archive: local path. Git: clone URL.
    locator: str

    # Index releases only
    checksum: str | None = None
    size: int | None = None
    archive_file_name: str | None = None

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, ReleaseDescriptor):
            return NotImplemented
        return (self.name, self.version) == (other.name, other.version)

    def __hash__(self) -> int:
        return hash((self.name, self.version))

    def __str__(self) -> str:
        return f"{self.name}@{self.version}"


class InstalledLibrary(BaseModel):
    """A library currently installed on disk (owned by the catalog)."""

    model_config = ConfigDict(frozen=True)

    name: str
    version: str
    path: Path

    def __str__(self) -> str:
        return f"{self.name}@{self.version}"


class LibraryMetadata(BaseModel):
    """
    Library metadata from pyproject.toml.

    Only the standard [project] section is read; the library's own name and
    version are the source of truth for archive installs and catalog scans.
    """

    model_config = ConfigDict(frozen=True)

    name: str
    version: str
    description: str = ""

    # Optional URLs from [project.urls]
    homepage: str | None = None
    repository: str | None = None

    @classmethod
    def from_pyproject(cls, pyproject_path: Path) -> "LibraryMetadata":
        """
        Load library metadata from pyproject.toml.

        Args:
            pyproject_path: Path to pyproject.toml file

        Returns:
            LibraryMetadata instance

        Raises:
            FileNotFoundError: If pyproject.toml doesn't exist
            KeyError: If required fields missing
            tomllib.TOMLDecodeError: If invalid TOML
        """
        if not pyproject_path.exists():
            raise FileNotFoundError(f"pyproject.toml not found: {pyproject_path}")

        with open(pyproject_path, "rb") as f:
            data = tomllib.load(f)

        project = data.get("project", {})
        if not project:
            raise KeyError(f"[project] section missing in {pyproject_path}")

        urls = project.get("urls", {})

        return cls(
            name=project["name"],
            version=str(project["version"]),
            description=project.get("description", ""),
            homepage=urls.get("homepage"),
            repository=urls.get("repository"),
        )


def find_library_root(directory: Path) -> Path | None:
    """Find library root by locating pyproject.toml.

    Supports both structures:
    - Flat: directory/pyproject.toml
    - Nested: directory/pkg_name/pyproject.toml

    Returns:
        Path to library root (where pyproject.toml is), or None if not found
    """
    if (directory / "pyproject.toml").exists():
        return directory

    for item in sorted(directory.iterdir()):
        if item.is_dir() and not item.name.startswith(".") and (item / "pyproject.toml").exists():
            return item

    return None
