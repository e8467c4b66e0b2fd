"""Install variants - the per-source steps of the install state machine.

LibraryInstaller runs the same resolve -> check -> fetch -> materialize
sequence for every request. A variant supplies the source-specific parts:
how the release descriptor is obtained, how content is fetched and how it
is committed. One variant instance serves exactly one request.

Archive and git variants skip the catalog check: an archive overwrites the
canonical directory, and a git clone goes straight into it.
"""

import logging
from pathlib import Path

from .config import InstallerConfig
from .exceptions import FetchError
from .exceptions import LibraryNotFoundError
from .exceptions import MaterializeError
from .fetcher import clone_repository
from .fetcher import download_release
from .fetcher import stage_archive
from .materializer import StagingArea
from .materializer import extract_release
from .materializer import materialize
from .materializer import overwrite_directory
from .prerequisites import CleanInstall
from .prerequisites import ReplaceInstall
from .progress import ProgressReporter
from .protocols import DownloadProgressSink
from .protocols import DownloaderProtocol
from .protocols import ExtractorProtocol
from .protocols import GitClonerProtocol
from .protocols import LibraryIndexProtocol
from .schema import ReleaseDescriptor
from .schema import SourceKind
from .utils import parse_git_url

logger = logging.getLogger(__name__)


class IndexVariant:
    """Install a release looked up in the library index."""

    checks_prerequisites = True

    def __init__(
        self,
        index: LibraryIndexProtocol,
        downloader: DownloaderProtocol,
        extractor: ExtractorProtocol,
        config: InstallerConfig,
        name: str,
        version: str | None = None,
        on_bytes: DownloadProgressSink | None = None,
    ):
        self.index = index
        self.downloader = downloader
        self.extractor = extractor
        self.config = config
        self.name = name
        self.version = version
        self.on_bytes = on_bytes

    def __str__(self) -> str:
        return f"{self.name}@{self.version or 'latest'}"

    async def resolve(self, staging: StagingArea) -> ReleaseDescriptor:
        try:
            release = self.index.find_release(self.name, self.version)
        except Exception as e:
            raise LibraryNotFoundError(
                f"Looking for library {self}: {e}",
                context={"library": self.name, "version": self.version},
            ) from e

        if release is None:
            raise LibraryNotFoundError(
                f"Library {self} not found in index",
                context={"library": self.name, "version": self.version},
            )
        return release

    def begin_name(self, release: ReleaseDescriptor) -> str:
        return f"Installing {release}"

    async def fetch(
        self,
        release: ReleaseDescriptor,
        decision: CleanInstall | ReplaceInstall,
        staging: StagingArea,
        reporter: ProgressReporter,
    ) -> Path:
        reporter.message(f"Downloading {release}")
        return await download_release(
            self.downloader,
            release,
            staging.path,
            on_bytes=self.on_bytes,
            verify=self.config.verify_checksums,
        )

    async def materialize(
        self,
        release: ReleaseDescriptor,
        decision: CleanInstall | ReplaceInstall,
        staged: Path,
        staging: StagingArea,
        reporter: ProgressReporter,
    ) -> Path:
        library_root = await extract_release(self.extractor, staged, staging.path)
        reporter.message(f"Installing {release} into {decision.target_path}")
        return materialize(library_root, decision)

    def completed_message(self, release: ReleaseDescriptor) -> str:
        return f"Installed {release}"


class ArchiveVariant:
    """Install from a local library archive.

    The descriptor comes from the library's own pyproject.toml inside the
    archive, so the archive is extracted while resolving.
    """

    checks_prerequisites = False

    def __init__(self, extractor: ExtractorProtocol, archive_path: Path):
        self.extractor = extractor
        self.archive_path = archive_path
        self._staged: Path | None = None

    def __str__(self) -> str:
        return str(self.archive_path)

    async def resolve(self, staging: StagingArea) -> ReleaseDescriptor:
        self._staged, metadata = await stage_archive(self.extractor, self.archive_path, staging.path)
        return ReleaseDescriptor(
            name=metadata.name,
            version=metadata.version,
            source_kind=SourceKind.ARCHIVE,
            locator=str(self.archive_path),
        )

    def begin_name(self, release: ReleaseDescriptor) -> str:
        return f"Installing {release} from archive"

    async def fetch(
        self,
        release: ReleaseDescriptor,
        decision: CleanInstall | ReplaceInstall,
        staging: StagingArea,
        reporter: ProgressReporter,
    ) -> Path:
        if self._staged is None:
            raise FetchError(f"Archive {self.archive_path} was not staged", context={"library": str(release)})
        return self._staged

    async def materialize(
        self,
        release: ReleaseDescriptor,
        decision: CleanInstall | ReplaceInstall,
        staged: Path,
        staging: StagingArea,
        reporter: ProgressReporter,
    ) -> Path:
        target_path = decision.target_path
        reporter.message(f"Installing {release} into {target_path}")
        try:
            overwrite_directory(staged, target_path)
        except Exception as e:
            raise MaterializeError(
                f"Failed to install {release} into {target_path}: {e}",
                context={"library": str(release), "target_path": str(target_path)},
            ) from e
        return target_path

    def completed_message(self, release: ReleaseDescriptor) -> str:
        return f"Installed archived library {release}"


class GitVariant:
    """Install by cloning a git repository into the libraries directory."""

    checks_prerequisites = False

    def __init__(self, cloner: GitClonerProtocol, config: InstallerConfig, url: str):
        self.cloner = cloner
        self.config = config
        self.url = url
        self._ref: str | None = None

    def __str__(self) -> str:
        return self.url

    async def resolve(self, staging: StagingArea) -> ReleaseDescriptor:
        try:
            clone_url, name, self._ref = parse_git_url(self.url)
        except ValueError as e:
            raise FetchError(f"Failed parsing git URL: {e}", context={"url": self.url}) from e

        logger.debug(f"Git URL {self.url} names library {name} (ref={self._ref})")
        return ReleaseDescriptor(
            name=name,
            version=self._ref or "HEAD",
            source_kind=SourceKind.GIT,
            locator=clone_url,
        )

    def begin_name(self, release: ReleaseDescriptor) -> str:
        return f"Installing {release} from git"

    async def fetch(
        self,
        release: ReleaseDescriptor,
        decision: CleanInstall | ReplaceInstall,
        staging: StagingArea,
        reporter: ProgressReporter,
    ) -> Path:
        target_path = decision.target_path
        reporter.message(f"Cloning {release.locator} into {target_path}")
        await clone_repository(
            self.cloner,
            release,
            target_path,
            ref=self._ref,
            keep_git_metadata=self.config.keep_git_metadata,
        )
        return target_path

    async def materialize(
        self,
        release: ReleaseDescriptor,
        decision: CleanInstall | ReplaceInstall,
        staged: Path,
        staging: StagingArea,
        reporter: ProgressReporter,
    ) -> Path:
        # Cloned in place
        return staged

    def completed_message(self, release: ReleaseDescriptor) -> str:
        return f"Installed library {release} from git URL"


InstallVariant = IndexVariant | ArchiveVariant | GitVariant
