"""Library install orchestrator (protocol-based).

Library mechanism, app policy: the installer doesn't know HOW to look up,
download, extract or clone; apps inject collaborators implementing the
protocols in protocols.py, and an InstallerConfig saying WHERE to install.

Every request runs the same state machine:

    resolving -> checking -> (already_satisfied | fetching -> materializing)
              -> rescanning -> done

with failed reachable from any non-terminal state. The three entry points
differ only in the variant (variants.py) supplying the resolving step and
source-specific fetch/materialize.
"""

import logging
from enum import Enum
from pathlib import Path

from .config import InstallerConfig
from .exceptions import LibraryError
from .exceptions import PrerequisiteError
from .exceptions import RescanError
from .materializer import StagingArea
from .prerequisites import AlreadySatisfied
from .prerequisites import CleanInstall
from .prerequisites import PrerequisiteDecision
from .prerequisites import ReplaceInstall
from .prerequisites import check_prerequisites
from .prerequisites import library_target_path
from .progress import ProgressReporter
from .protocols import DownloadProgressSink
from .protocols import DownloaderProtocol
from .protocols import ExtractorProtocol
from .protocols import GitClonerProtocol
from .protocols import LibraryCatalogProtocol
from .protocols import LibraryIndexProtocol
from .protocols import ProgressSink
from .schema import ReleaseDescriptor
from .variants import ArchiveVariant
from .variants import GitVariant
from .variants import IndexVariant
from .variants import InstallVariant

logger = logging.getLogger(__name__)


class InstallState(str, Enum):
    RESOLVING = "resolving"
    CHECKING = "checking"
    ALREADY_SATISFIED = "already_satisfied"
    FETCHING = "fetching"
    MATERIALIZING = "materializing"
    RESCANNING = "rescanning"
    DONE = "done"
    FAILED = "failed"


class LibraryInstaller:
    """
    Install libraries from the index, local archives or git URLs.

    The installer holds no catalog state. It reads the installed set from the
    catalog before deciding, and asks the catalog to rescan after a
    successful install. Safe to share between concurrent requests for
    different libraries; requests for the same library must be serialized
    by the caller.

    Example:
        >>> installer = LibraryInstaller(
        ...     config=InstallerConfig(libraries_dir=Path("~/Arduino/libraries").expanduser()),
        ...     catalog=DirectoryCatalog(libraries_dir),
        ...     index=index_client,
        ...     downloader=http_downloader,
        ...     extractor=zip_extractor,
        ... )
        >>> await installer.install_from_index("Servo", "1.1.0", progress=print)
    """

    def __init__(
        self,
        config: InstallerConfig,
        catalog: LibraryCatalogProtocol,
        index: LibraryIndexProtocol | None = None,
        downloader: DownloaderProtocol | None = None,
        extractor: ExtractorProtocol | None = None,
        cloner: GitClonerProtocol | None = None,
    ):
        """
        Collaborators are optional per source, but each source must be
        configured completely: index installs need index, downloader and
        extractor; archive installs need extractor; git installs need cloner.

        Raises:
            ValueError: If index installs are partially configured or no
                install source is configured at all
        """
        if (index is None) != (downloader is None):
            raise ValueError("Index installs need both index and downloader")
        if index is not None and extractor is None:
            raise ValueError("Index installs need an extractor")
        if extractor is None and cloner is None:
            raise ValueError("No install source configured (need an extractor or a git cloner)")

        self.config = config
        self.catalog = catalog
        self.index = index
        self.downloader = downloader
        self.extractor = extractor
        self.cloner = cloner

    async def install_from_index(
        self,
        name: str,
        version: str | None = None,
        progress: ProgressSink | None = None,
        on_bytes: DownloadProgressSink | None = None,
    ) -> None:
        """
        Install a library release from the index.

        Args:
            name: Library name
            version: Exact version, or None for the latest release
            progress: Optional sink for install progress events
            on_bytes: Optional sink for download byte progress

        Raises:
            LibraryNotFoundError: If no release matches
            PrerequisiteError: If the install decision cannot be made
            FetchError: If download or verification fails
            MaterializeError: If extraction or swap fails
            RescanError: If the catalog rebuild fails (files are on disk)
        """
        if self.index is None or self.downloader is None or self.extractor is None:
            raise ValueError("Index installs are not configured on this installer")

        variant = IndexVariant(
            self.index,
            self.downloader,
            self.extractor,
            self.config,
            name=name,
            version=version,
            on_bytes=on_bytes,
        )
        await self._run(variant, ProgressReporter(progress))

    async def install_from_archive(self, archive_path: Path | str, progress: ProgressSink | None = None) -> None:
        """
        Install a library from a local zip/tar archive.

        Name and version come from the pyproject.toml inside the archive. No
        already-installed or replace detection: an existing library directory
        of the same name is overwritten (atomically).

        Raises:
            FetchError: If the archive is missing, invalid or has no metadata
            PrerequisiteError: If the library name is not a valid directory name
            MaterializeError: If the swap into the libraries directory fails
            RescanError: If the catalog rebuild fails (files are on disk)
        """
        if self.extractor is None:
            raise ValueError("Archive installs are not configured on this installer")

        variant = ArchiveVariant(self.extractor, Path(archive_path))
        await self._run(variant, ProgressReporter(progress))

    async def install_from_git(self, url: str, progress: ProgressSink | None = None) -> None:
        """
        Install a library by cloning a git repository.

        The library name is the last URL path segment without ".git"; an
        optional "#ref" suffix selects the branch/tag. The clone goes directly
        into the libraries directory, with no already-installed or replace
        detection.

        Raises:
            FetchError: If the URL is invalid or the clone fails
            PrerequisiteError: If the library name is not a valid directory name
            RescanError: If the catalog rebuild fails (files are on disk)
        """
        if self.cloner is None:
            raise ValueError("Git installs are not configured on this installer")

        variant = GitVariant(self.cloner, self.config, url)
        await self._run(variant, ProgressReporter(progress))

    async def _run(self, variant: InstallVariant, reporter: ProgressReporter) -> None:
        """Drive one request through the install state machine."""
        state = InstallState.RESOLVING
        logger.info(f"Installing library {variant}")

        try:
            with StagingArea(self.config.staging_root) as staging:
                release = await variant.resolve(staging)
                reporter.begin(variant.begin_name(release))

                state = self._enter(InstallState.CHECKING, release)
                decision = self._decide(variant, release)

                if isinstance(decision, AlreadySatisfied):
                    self._enter(InstallState.ALREADY_SATISFIED, release)
                    reporter.complete(f"Already installed {release}")
                    logger.info(f"Library {release} already installed at {decision.installed.path}")
                    return

                if isinstance(decision, ReplaceInstall):
                    reporter.message(f"Replacing {decision.conflicting} with {release}")

                state = self._enter(InstallState.FETCHING, release)
                staged = await variant.fetch(release, decision, staging, reporter)

                state = self._enter(InstallState.MATERIALIZING, release)
                installed_path = await variant.materialize(release, decision, staged, staging, reporter)

            state = self._enter(InstallState.RESCANNING, release)
            self._rescan(release, installed_path)

            state = self._enter(InstallState.DONE, release)
            reporter.complete(variant.completed_message(release))
            logger.info(f"Successfully installed library {release} at {installed_path}")

        except LibraryError as e:
            logger.debug(f"Install of {variant} {InstallState.FAILED.value} while {state.value}: {e}")
            raise

    def _enter(self, state: InstallState, release: ReleaseDescriptor) -> InstallState:
        logger.debug(f"{release}: {state.value}")
        return state

    def _decide(self, variant: InstallVariant, release: ReleaseDescriptor) -> PrerequisiteDecision:
        if not variant.checks_prerequisites:
            return CleanInstall(target_path=library_target_path(release.name, self.config.libraries_dir))

        try:
            installed = self.catalog.list_installed()
        except Exception as e:
            raise PrerequisiteError(
                f"Checking install prerequisites for {release}: cannot list installed libraries: {e}",
                context={"library": str(release)},
            ) from e

        decision = check_prerequisites(release, installed, self.config.libraries_dir)
        logger.debug(f"{release}: {type(decision).__name__}")
        return decision

    def _rescan(self, release: ReleaseDescriptor, installed_path: Path) -> None:
        try:
            self.catalog.rescan()
        except Exception as e:
            raise RescanError(
                f"Rescanning libraries after installing {release}: {e}",
                context={"library": str(release), "installed_path": str(installed_path)},
            ) from e
