"""library-installer - Atomic, idempotent library installation.

Installs libraries from an index, local archives or git URLs, reporting
ordered progress to an observer.

This is library mechanism; apps inject policy (paths) and collaborators
(index, downloader, extractor, git client, catalog).
"""

from .catalog import DirectoryCatalog
from .config import InstallerConfig
from .exceptions import FetchError
from .exceptions import LibraryError
from .exceptions import LibraryNotFoundError
from .exceptions import MaterializeError
from .exceptions import PrerequisiteError
from .exceptions import RescanError
from .installer import InstallState
from .installer import LibraryInstaller
from .prerequisites import AlreadySatisfied
from .prerequisites import CleanInstall
from .prerequisites import PrerequisiteDecision
from .prerequisites import ReplaceInstall
from .prerequisites import check_prerequisites
from .progress import ProgressEvent
from .progress import ProgressKind
from .progress import ProgressReporter
from .protocols import DownloadProgressSink
from .protocols import DownloaderProtocol
from .protocols import ExtractorProtocol
from .protocols import GitClonerProtocol
from .protocols import LibraryCatalogProtocol
from .protocols import LibraryIndexProtocol
from .protocols import ProgressSink
from .schema import InstalledLibrary
from .schema import LibraryMetadata
from .schema import ReleaseDescriptor
from .schema import SourceKind
from .utils import parse_git_url
from .utils import sanitize_library_name

__all__ = [
    # Installation
    "LibraryInstaller",
    "InstallerConfig",
    "InstallState",
    # Data model
    "ReleaseDescriptor",
    "SourceKind",
    "InstalledLibrary",
    "LibraryMetadata",
    # Prerequisites
    "check_prerequisites",
    "PrerequisiteDecision",
    "AlreadySatisfied",
    "CleanInstall",
    "ReplaceInstall",
    # Progress
    "ProgressEvent",
    "ProgressKind",
    "ProgressReporter",
    # Collaborator protocols
    "LibraryIndexProtocol",
    "LibraryCatalogProtocol",
    "DownloaderProtocol",
    "ExtractorProtocol",
    "GitClonerProtocol",
    "ProgressSink",
    "DownloadProgressSink",
    # Catalog
    "DirectoryCatalog",
    # Exceptions
    "LibraryError",
    "LibraryNotFoundError",
    "PrerequisiteError",
    "FetchError",
    "MaterializeError",
    "RescanError",
    # Utilities
    "sanitize_library_name",
    "parse_git_url",
]

__version__ = "0.1.0"
