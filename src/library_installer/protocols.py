"""Protocols for the collaborators the installer drives.

Apps provide the implementations (index client, HTTP downloader, zip/tar
extractor, git client, catalog). The library only requires these interfaces.
"""

from collections.abc import Callable
from pathlib import Path
from typing import Protocol
from typing import runtime_checkable

from .progress import ProgressEvent
from .schema import InstalledLibrary
from .schema import ReleaseDescriptor

ProgressSink = Callable[[ProgressEvent], None]
"""Caller-supplied observer for install progress. Fire-and-forget."""

DownloadProgressSink = Callable[[int, int | None], None]
"""Byte-level download progress: (bytes_downloaded, total_bytes or None)."""


@runtime_checkable
class LibraryIndexProtocol(Protocol):
    """Lookup of index releases by name and version constraint."""

    def find_release(self, name: str, version: str | None = None) -> ReleaseDescriptor | None:
        """Find a release in the index.

        Args:
            name: Library name
            version: Exact version, or None for the latest release

        Returns:
            Matching release descriptor, or None if the index has no match
        """
        ...


@runtime_checkable
class LibraryCatalogProtocol(Protocol):
    """In-memory catalog of installed libraries.

    The catalog is the only writer of the installed set; the installer reads it
    through list_installed() and asks for a rebuild through rescan().
    """

    def list_installed(self) -> list[InstalledLibrary]:
        """Return currently installed libraries."""
        ...

    def rescan(self) -> None:
        """Rebuild the catalog from disk state.

        Raises:
            Exception: If the rebuild fails
        """
        ...


class DownloaderProtocol(Protocol):
    """Network fetch of index releases."""

    async def download(
        self,
        release: ReleaseDescriptor,
        destination: Path,
        on_bytes: DownloadProgressSink | None = None,
    ) -> None:
        """Download release archive to destination file.

        Args:
            release: Release to download (release.locator is the URL)
            destination: File to write (parent directory exists)
            on_bytes: Optional byte-progress callback

        Raises:
            Exception: If the transfer fails
        """
        ...


class ExtractorProtocol(Protocol):
    """Archive extraction (zip, tar.gz, ...)."""

    async def extract(self, archive_path: Path, target_dir: Path) -> None:
        """Extract archive contents into target_dir (created if needed).

        Raises:
            Exception: If extraction fails
        """
        ...


class GitClonerProtocol(Protocol):
    """Version-control clone mechanics."""

    async def clone(self, url: str, target_dir: Path, ref: str | None = None) -> None:
        """Clone url into target_dir, checking out ref if given.

        Raises:
            Exception: If the clone fails
        """
        ...
