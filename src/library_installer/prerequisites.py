"""Install prerequisite check.

Decides, from the requested release and the currently installed set, whether
an install is needed and whether it replaces an existing version. Pure apart
from checking whether the target directory already exists.
"""

import logging
from dataclasses import dataclass
from pathlib import Path

from .exceptions import PrerequisiteError
from .schema import InstalledLibrary
from .schema import ReleaseDescriptor
from .utils import sanitize_library_name

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class AlreadySatisfied:
    """Requested name and version are already installed."""

    installed: InstalledLibrary


@dataclass(frozen=True)
class CleanInstall:
    """Nothing with this name is installed."""

    target_path: Path


@dataclass(frozen=True)
class ReplaceInstall:
    """Another version of the library is installed and will be superseded."""

    target_path: Path
    conflicting: InstalledLibrary


PrerequisiteDecision = AlreadySatisfied | CleanInstall | ReplaceInstall


def library_target_path(name: str, libraries_dir: Path) -> Path:
    """Canonical install directory for a library name.

    Raises:
        PrerequisiteError: If the name does not map to a valid directory name
    """
    try:
        return libraries_dir / sanitize_library_name(name)
    except ValueError as e:
        raise PrerequisiteError(
            f"Cannot compute install path for '{name}': {e}",
            context={"library": name, "libraries_dir": str(libraries_dir)},
        ) from e


def is_managed(library: InstalledLibrary, libraries_dir: Path) -> bool:
    """True if library lives inside libraries_dir (installed by us)."""
    return library.path.resolve().is_relative_to(libraries_dir.resolve())


def check_prerequisites(
    release: ReleaseDescriptor,
    installed: list[InstalledLibrary],
    libraries_dir: Path,
) -> PrerequisiteDecision:
    """
    Decide how to install release given the installed set.

    Only libraries inside libraries_dir are managed here. A library of the
    same name in another catalog directory (e.g. a bundled platform
    library) is shadowed by the new install, never replaced or removed.

    Policy:
    - Same name, same version installed in libraries_dir -> AlreadySatisfied
    - Same name, other version installed in libraries_dir -> ReplaceInstall
    - Otherwise -> CleanInstall, unless the target directory already exists
      (content the catalog doesn't know about is never overwritten)

    Args:
        release: Requested release
        installed: Snapshot of installed libraries (from the catalog)
        libraries_dir: Directory libraries are installed into

    Returns:
        PrerequisiteDecision for this request

    Raises:
        PrerequisiteError: If the target path is invalid or already taken

    Example:
        >>> decision = check_prerequisites(release, catalog.list_installed(), libs_dir)
        >>> if isinstance(decision, ReplaceInstall):
        ...     print(f"Replacing {decision.conflicting}")
    """
    target_path = library_target_path(release.name, libraries_dir)

    same_name = [lib for lib in installed if lib.name == release.name]
    managed = [lib for lib in same_name if is_managed(lib, libraries_dir)]

    if managed:
        conflicting = managed[0]
        if conflicting.version == release.version:
            return AlreadySatisfied(installed=conflicting)
        return ReplaceInstall(target_path=target_path, conflicting=conflicting)

    for lib in same_name:
        logger.debug(f"{release} will shadow {lib} at {lib.path}")

    if target_path.exists():
        raise PrerequisiteError(
            f"Destination dir {target_path} already exists, cannot install {release}",
            context={"library": str(release), "target_path": str(target_path)},
        )

    return CleanInstall(target_path=target_path)
