"""Library install exceptions.

One exception per install stage, so callers can tell which stage failed.
Every stage wraps the underlying error and keeps it as ``__cause__``.
"""


class LibraryError(Exception):
    """Base exception for library install operations."""

    def __init__(self, message: str, context: dict | None = None):
        """Initialize with message and optional context.

        Args:
            message: Human-readable error message
            context: Optional dict with additional context (library, paths, etc.)
        """
        super().__init__(message)
        self.message = message
        self.context = context or {}


class LibraryNotFoundError(LibraryError):
    """No release in the index matches the requested name/version."""


class PrerequisiteError(LibraryError):
    """Install decision could not be determined."""


class FetchError(LibraryError):
    """Download, archive read or git clone failed."""


class MaterializeError(LibraryError):
    """Extraction or atomic swap into the libraries directory failed."""


class RescanError(LibraryError):
    """Catalog rebuild after a successful install failed.

    The library files are already on disk; ``context["installed_path"]`` says where.
    """
