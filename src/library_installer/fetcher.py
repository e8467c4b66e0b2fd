"""Fetch stage - bring library content into staging.

Three variants, one per install entry point:
- Index: download release archive into staging and verify size/checksum
- Archive: validate a local archive and extract it into staging
- Git: delegate the clone to the git collaborator

Every failure is raised as FetchError; nothing here touches the canonical
library directory except the git clone, which the caller points there.
"""

import hashlib
import logging
import shutil
import tarfile
import zipfile
from pathlib import Path

from .exceptions import FetchError
from .exceptions import LibraryError
from .materializer import top_level_entries
from .protocols import DownloadProgressSink
from .protocols import DownloaderProtocol
from .protocols import ExtractorProtocol
from .protocols import GitClonerProtocol
from .schema import LibraryMetadata
from .schema import ReleaseDescriptor
from .schema import find_library_root

logger = logging.getLogger(__name__)

_CHUNK_SIZE = 64 * 1024


def staged_archive_name(release: ReleaseDescriptor) -> str:
    """File name for a downloaded release inside staging."""
    if release.archive_file_name:
        return Path(release.archive_file_name).name
    return f"{release.name}-{release.version}.zip".replace("/", "_")


def verify_download(path: Path, release: ReleaseDescriptor) -> None:
    """Check downloaded file against the size and checksum the index published.

    Checksum format is "ALGO:hexdigest" (e.g. "SHA-256:9f86d0..."); the
    algorithm name is lowercased with dashes removed before hashlib lookup.

    Raises:
        FetchError: On size or checksum mismatch, or unknown algorithm
    """
    context = {"library": str(release), "path": str(path)}

    if release.size is not None:
        actual_size = path.stat().st_size
        if actual_size != release.size:
            raise FetchError(
                f"Size mismatch for {release}: expected {release.size} bytes, got {actual_size}",
                context=context,
            )

    if not release.checksum:
        return

    algorithm, sep, expected = release.checksum.partition(":")
    if not sep or not expected:
        raise FetchError(f"Malformed checksum for {release}: {release.checksum!r}", context=context)

    try:
        digest = hashlib.new(algorithm.lower().replace("-", ""))
    except ValueError as e:
        raise FetchError(f"Unsupported checksum algorithm for {release}: {algorithm}", context=context) from e

    with open(path, "rb") as f:
        for chunk in iter(lambda: f.read(_CHUNK_SIZE), b""):
            digest.update(chunk)

    if digest.hexdigest().lower() != expected.strip().lower():
        raise FetchError(
            f"Checksum mismatch for {release}: expected {expected}, got {digest.hexdigest()}",
            context=context,
        )


async def download_release(
    downloader: DownloaderProtocol,
    release: ReleaseDescriptor,
    staging_dir: Path,
    on_bytes: DownloadProgressSink | None = None,
    verify: bool = True,
) -> Path:
    """
    Download release archive into staging_dir.

    Args:
        downloader: Network fetch collaborator
        release: Index release to download
        staging_dir: Per-request staging directory
        on_bytes: Optional byte-progress callback, passed through to downloader
        verify: Check size/checksum published by the index

    Returns:
        Path to downloaded archive in staging

    Raises:
        FetchError: If download or verification fails
    """
    destination = staging_dir / staged_archive_name(release)
    try:
        logger.debug(f"Downloading {release} from {release.locator} to {destination}")
        await downloader.download(release, destination, on_bytes)

        if not destination.is_file():
            raise FetchError(
                f"Downloader reported success but {destination} is missing",
                context={"library": str(release)},
            )

        if verify:
            verify_download(destination, release)

        return destination

    except Exception as e:
        if isinstance(e, LibraryError):
            raise
        raise FetchError(
            f"Failed to download {release}: {e}",
            context={"library": str(release), "url": release.locator},
        ) from e


def validate_archive(archive_path: Path) -> Path:
    """Check that archive_path is an existing zip or tar archive.

    Returns:
        Resolved archive path

    Raises:
        FetchError: If the file is missing or not a supported archive
    """
    context = {"archive_path": str(archive_path)}
    if not archive_path.exists():
        raise FetchError(f"Archive not found: {archive_path}", context=context)
    if not archive_path.is_file():
        raise FetchError(f"Archive is not a file: {archive_path}", context=context)
    if not (zipfile.is_zipfile(archive_path) or tarfile.is_tarfile(archive_path)):
        raise FetchError(f"Unsupported archive format: {archive_path}", context=context)
    return archive_path.resolve()


async def stage_archive(
    extractor: ExtractorProtocol,
    archive_path: Path,
    staging_dir: Path,
) -> tuple[Path, LibraryMetadata]:
    """
    Extract a local library archive into staging and read its metadata.

    Convention: the archive holds exactly one top-level directory (macOS
    "__MACOSX" entries ignored) containing the library and its pyproject.toml.

    Returns:
        (staged library directory, library metadata)

    Raises:
        FetchError: If the archive is invalid, unreadable or has no metadata
    """
    try:
        archive_path = validate_archive(archive_path)
        extracted_dir = staging_dir / "extracted"

        logger.debug(f"Extracting {archive_path} to {extracted_dir}")
        await extractor.extract(archive_path, extracted_dir)

        entries = top_level_entries(extracted_dir)
        if len(entries) != 1 or not entries[0].is_dir():
            raise FetchError(
                f"Archive is not valid: multiple files found in archive top level: {archive_path}",
                context={"archive_path": str(archive_path), "entries": [p.name for p in entries]},
            )
        library_dir = entries[0]

        library_root = find_library_root(library_dir)
        if library_root is None:
            raise FetchError(
                f"No pyproject.toml found in archive {archive_path}.\n"
                f"Expected at:\n"
                f"  - {library_dir.name}/pyproject.toml (flat structure), or\n"
                f"  - {library_dir.name}/*/pyproject.toml (nested structure)",
                context={"archive_path": str(archive_path)},
            )

        metadata = LibraryMetadata.from_pyproject(library_root / "pyproject.toml")
        logger.debug(f"Archive contains {metadata.name}@{metadata.version}")
        return library_dir, metadata

    except Exception as e:
        if isinstance(e, LibraryError):
            raise
        raise FetchError(
            f"Failed to read archive {archive_path}: {e}",
            context={"archive_path": str(archive_path)},
        ) from e


async def clone_repository(
    cloner: GitClonerProtocol,
    release: ReleaseDescriptor,
    target_dir: Path,
    ref: str | None = None,
    keep_git_metadata: bool = False,
) -> None:
    """
    Clone release.locator directly into target_dir.

    A failed or cancelled clone into a directory that did not exist
    beforehand is cleaned up so no partial library is left under the
    canonical name. The .git directory is removed after a successful clone
    unless keep_git_metadata.

    Raises:
        FetchError: If the clone fails
    """
    existed = target_dir.exists()
    cloned = False
    try:
        logger.debug(f"Cloning {release.locator} (ref={ref}) into {target_dir}")
        target_dir.parent.mkdir(parents=True, exist_ok=True)
        await cloner.clone(release.locator, target_dir, ref)
        cloned = True
    except Exception as e:
        raise FetchError(
            f"Failed to clone {release.locator}: {e}",
            context={"library": str(release), "url": release.locator, "target_dir": str(target_dir)},
        ) from e
    finally:
        if not cloned and not existed and target_dir.exists():
            logger.debug(f"Removing partial clone at {target_dir}")
            shutil.rmtree(target_dir, ignore_errors=True)

    if not keep_git_metadata:
        try:
            shutil.rmtree(target_dir / ".git")
        except FileNotFoundError:
            pass
        except OSError as e:
            logger.warning(f"Could not remove git metadata from {target_dir}: {e}")
