"""Directory catalog - installed libraries rebuilt from disk.

Reference implementation of LibraryCatalogProtocol. Apps with their own
catalog (database, lock file, IDE state) inject that instead.

Scans libraries_dir for library directories and reads each library's
pyproject.toml for its authoritative name and version. Hidden directories
(staging areas, swap backups) are never libraries.
"""

import logging
import threading
from pathlib import Path

from .schema import InstalledLibrary
from .schema import LibraryMetadata
from .schema import find_library_root

logger = logging.getLogger(__name__)


class DirectoryCatalog:
    """
    In-memory catalog of libraries installed under one or more directories.

    Higher-precedence directories (later in the list) override libraries of
    the same name found in lower-precedence ones.

    Example:
        >>> catalog = DirectoryCatalog([Path("/usr/share/arduino/libraries"), user_libs])
        >>> catalog.rescan()
        >>> [str(lib) for lib in catalog.list_installed()]
        ['Servo@1.1.0', 'WiFi101@0.16.1']
    """

    def __init__(self, libraries_dirs: list[Path] | Path):
        if isinstance(libraries_dirs, Path):
            libraries_dirs = [libraries_dirs]
        self.libraries_dirs = libraries_dirs
        self._libraries: dict[str, InstalledLibrary] = {}
        self._lock = threading.Lock()

    def list_installed(self) -> list[InstalledLibrary]:
        """Return snapshot of installed libraries, sorted by name."""
        with self._lock:
            return sorted(self._libraries.values(), key=lambda lib: lib.name)

    def get(self, name: str) -> InstalledLibrary | None:
        with self._lock:
            return self._libraries.get(name)

    def rescan(self) -> None:
        """Rebuild catalog from disk.

        Directories whose metadata can't be read are skipped with a warning;
        an unreadable libraries directory is an error.
        """
        libraries: dict[str, InstalledLibrary] = {}

        # Precedence order (lowest to highest); higher overwrites lower
        for libraries_dir in self.libraries_dirs:
            if not libraries_dir.exists():
                continue

            for library_dir in sorted(libraries_dir.iterdir()):
                if not library_dir.is_dir() or library_dir.name.startswith("."):
                    continue

                library = self._read_library(library_dir)
                if library is not None:
                    libraries[library.name] = library

        with self._lock:
            self._libraries = libraries
        logger.debug(f"Catalog rescanned: {len(libraries)} libraries")

    def _read_library(self, library_dir: Path) -> InstalledLibrary | None:
        root = find_library_root(library_dir)
        if root is None:
            logger.debug(f"No pyproject.toml in {library_dir}, skipping")
            return None

        try:
            metadata = LibraryMetadata.from_pyproject(root / "pyproject.toml")
        except Exception as e:
            logger.warning(f"Could not read library metadata from {root}: {e}")
            return None

        return InstalledLibrary(name=metadata.name, version=metadata.version, path=library_dir.resolve())
