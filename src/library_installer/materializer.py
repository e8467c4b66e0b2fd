"""Materialize stage - commit staged content to the canonical library directory.

Staged content lives in a per-request staging directory on the same
filesystem as the libraries directory, so every commit is an os.replace.
A replaced library is renamed aside first and deleted only after the new
content is in place; if the swap fails the old directory is restored.
"""

import logging
import os
import shutil
import tempfile
from pathlib import Path
from uuid import uuid4

from .exceptions import FetchError
from .exceptions import LibraryError
from .exceptions import MaterializeError
from .prerequisites import CleanInstall
from .prerequisites import ReplaceInstall
from .protocols import ExtractorProtocol

logger = logging.getLogger(__name__)

# macOS archive metadata, never part of a library
IGNORED_TOP_LEVEL = ("__MACOSX",)


class StagingArea:
    """
    Per-request staging directory, created on first use under root.

    Requests that never stage anything (already installed, git clones)
    never touch the filesystem. Removed on exit, including on failure and
    cancellation, so nothing staged outlives its request.
    """

    def __init__(self, root: Path):
        self.root = root
        self._tmp: tempfile.TemporaryDirectory | None = None

    @property
    def path(self) -> Path:
        if self._tmp is None:
            try:
                self.root.mkdir(parents=True, exist_ok=True)
                self._tmp = tempfile.TemporaryDirectory(dir=self.root, prefix=".staging-")
            except OSError as e:
                raise FetchError(
                    f"Cannot create staging directory in {self.root}: {e}",
                    context={"staging_root": str(self.root)},
                ) from e
            logger.debug(f"Staging in {self._tmp.name}")
        return Path(self._tmp.name)

    def cleanup(self) -> None:
        if self._tmp is not None:
            self._tmp.cleanup()
            self._tmp = None

    def __enter__(self) -> "StagingArea":
        return self

    def __exit__(self, *exc_info) -> None:
        self.cleanup()


def top_level_entries(directory: Path) -> list[Path]:
    """List extracted top-level entries, skipping archive metadata."""
    return sorted(p for p in directory.iterdir() if not p.name.startswith(IGNORED_TOP_LEVEL))


async def extract_release(extractor: ExtractorProtocol, archive_path: Path, staging_dir: Path) -> Path:
    """
    Extract downloaded release archive inside staging.

    Index archives normally wrap the library in a single top-level directory;
    flat archives are accepted as-is.

    Returns:
        Staged library root

    Raises:
        MaterializeError: If extraction fails or yields nothing
    """
    extracted_dir = staging_dir / "extracted"
    try:
        await extractor.extract(archive_path, extracted_dir)
    except Exception as e:
        raise MaterializeError(
            f"Failed to extract {archive_path.name}: {e}",
            context={"archive_path": str(archive_path)},
        ) from e

    if not extracted_dir.is_dir():
        raise MaterializeError(
            f"Archive {archive_path.name} extracted nothing",
            context={"archive_path": str(archive_path)},
        )

    entries = top_level_entries(extracted_dir)
    if not entries:
        raise MaterializeError(
            f"Archive {archive_path.name} is empty",
            context={"archive_path": str(archive_path)},
        )
    if len(entries) == 1 and entries[0].is_dir():
        return entries[0]
    return extracted_dir


def install_directory(staged_dir: Path, target_dir: Path) -> None:
    """Move staged_dir to target_dir, which must not exist."""
    if target_dir.exists():
        raise MaterializeError(
            f"Destination dir {target_dir} already exists",
            context={"target_dir": str(target_dir)},
        )
    target_dir.parent.mkdir(parents=True, exist_ok=True)
    os.replace(staged_dir, target_dir)


def replace_directory(staged_dir: Path, existing_dir: Path) -> None:
    """Atomically swap staged_dir into existing_dir's place.

    The previous contents stay intact under a backup name until the new
    directory is in place, and are restored if the swap fails.
    """
    backup_dir = existing_dir.parent / f".{existing_dir.name}.backup-{uuid4().hex}"

    os.replace(existing_dir, backup_dir)
    try:
        os.replace(staged_dir, existing_dir)
    except Exception:
        os.replace(backup_dir, existing_dir)
        raise
    remove_superseded(backup_dir)


def remove_superseded(old_dir: Path) -> None:
    """Delete a directory the new install no longer needs.

    Runs after the new content is committed, so a failure only leaves the
    old directory behind.
    """
    try:
        shutil.rmtree(old_dir)
    except OSError as e:
        logger.warning(f"Could not remove superseded library directory {old_dir}: {e}")


def overwrite_directory(staged_dir: Path, target_dir: Path) -> None:
    """Commit staged_dir to target_dir whether or not target_dir exists."""
    if target_dir.exists():
        replace_directory(staged_dir, target_dir)
    else:
        install_directory(staged_dir, target_dir)


def materialize(staged_dir: Path, decision: CleanInstall | ReplaceInstall) -> Path:
    """
    Commit staged library content according to the prerequisite decision.

    CleanInstall: move into target_path.
    ReplaceInstall: swap into target_path. If the conflicting library lives in
    another directory, the new content is moved in first and the old directory
    removed afterwards.

    Returns:
        Final library path

    Raises:
        MaterializeError: If the move or swap fails
    """
    target_path = decision.target_path
    try:
        if isinstance(decision, CleanInstall):
            install_directory(staged_dir, target_path)
        else:
            old_path = decision.conflicting.path
            if old_path.exists() and old_path.resolve() == target_path.resolve():
                replace_directory(staged_dir, target_path)
            else:
                install_directory(staged_dir, target_path)
                if old_path.exists():
                    logger.debug(f"Removing superseded {decision.conflicting} at {old_path}")
                    remove_superseded(old_path)

        logger.debug(f"Materialized library at {target_path}")
        return target_path

    except Exception as e:
        if isinstance(e, LibraryError):
            raise
        raise MaterializeError(
            f"Failed to install into {target_path}: {e}",
            context={"target_path": str(target_path), "staged_dir": str(staged_dir)},
        ) from e
