"""Shared fakes for installer tests.

Collaborators are real enough to touch the filesystem (zip archives are
built, copied and extracted) but record every call so tests can assert on
what the installer did and did not do.
"""

import asyncio
import hashlib
import shutil
import zipfile
from pathlib import Path

import pytest
from library_installer import DirectoryCatalog
from library_installer import InstallerConfig
from library_installer import LibraryInstaller
from library_installer import ReleaseDescriptor


def make_library_zip(
    archive_path: Path,
    name: str,
    version: str,
    top_dir: str | None = None,
    extra_top_level: list[str] | None = None,
) -> Path:
    """Build zip holding one library directory with pyproject.toml and a header."""
    top_dir = top_dir or name
    archive_path.parent.mkdir(parents=True, exist_ok=True)
    with zipfile.ZipFile(archive_path, "w") as zf:
        zf.writestr(
            f"{top_dir}/pyproject.toml",
            f'[project]\nname = "{name}"\nversion = "{version}"\n',
        )
        zf.writestr(f"{top_dir}/src/{name}.h", f"// {name} {version}\n")
        for entry in extra_top_level or []:
            zf.writestr(entry, "")
    return archive_path


def write_installed_library(libraries_dir: Path, name: str, version: str, dir_name: str | None = None) -> Path:
    """Lay out an installed library directly on disk."""
    library_dir = libraries_dir / (dir_name or name)
    (library_dir / "src").mkdir(parents=True)
    (library_dir / "pyproject.toml").write_text(f'[project]\nname = "{name}"\nversion = "{version}"\n')
    (library_dir / "src" / f"{name}.h").write_text(f"// {name} {version}\n")
    return library_dir


def sha256_checksum(path: Path) -> str:
    return "SHA-256:" + hashlib.sha256(path.read_bytes()).hexdigest()


class FakeIndex:
    """Index over a fixed list of releases."""

    def __init__(self, releases: list[ReleaseDescriptor] | None = None):
        self.releases = releases or []
        self.lookups: list[tuple[str, str | None]] = []

    def add(self, release: ReleaseDescriptor) -> None:
        self.releases.append(release)

    def find_release(self, name: str, version: str | None = None) -> ReleaseDescriptor | None:
        self.lookups.append((name, version))
        matches = [r for r in self.releases if r.name == name and (version is None or r.version == version)]
        return matches[-1] if matches else None


class FakeDownloader:
    """Downloader copying release.locator (a local file) to the destination."""

    def __init__(self, fail_with: Exception | None = None):
        self.fail_with = fail_with
        self.downloads: list[ReleaseDescriptor] = []

    async def download(self, release, destination, on_bytes=None):
        self.downloads.append(release)
        if self.fail_with is not None:
            raise self.fail_with
        shutil.copyfile(release.locator, destination)
        if on_bytes is not None:
            size = destination.stat().st_size
            on_bytes(size // 2, size)
            on_bytes(size, size)


class ZipExtractor:
    """Extractor for zip archives."""

    def __init__(self, fail_with: Exception | None = None):
        self.fail_with = fail_with
        self.extractions: list[Path] = []

    async def extract(self, archive_path, target_dir):
        self.extractions.append(archive_path)
        if self.fail_with is not None:
            raise self.fail_with
        target_dir.mkdir(parents=True, exist_ok=True)
        with zipfile.ZipFile(archive_path) as zf:
            zf.extractall(target_dir)


class FakeCloner:
    """Git client laying out a library checkout (with .git) at target_dir."""

    def __init__(self, version: str = "0.0.0", fail_with: Exception | None = None):
        self.version = version
        self.fail_with = fail_with
        self.clones: list[tuple[str, Path, str | None]] = []

    async def clone(self, url, target_dir, ref=None):
        self.clones.append((url, target_dir, ref))
        target_dir.mkdir(parents=True)
        (target_dir / ".git").mkdir()
        (target_dir / ".git" / "HEAD").write_text("ref: refs/heads/main\n")
        if self.fail_with is not None:
            raise self.fail_with
        name = target_dir.name
        (target_dir / "pyproject.toml").write_text(f'[project]\nname = "{name}"\nversion = "{self.version}"\n')


class ChunkedDownloader(FakeDownloader):
    """Downloader writing in small chunks, yielding to the event loop between them.

    Every chunk is recorded in trace as the release name, so tests can see
    how concurrent downloads interleaved.
    """

    def __init__(self, chunk_size: int = 64):
        super().__init__()
        self.chunk_size = chunk_size
        self.trace: list[str] = []

    async def download(self, release, destination, on_bytes=None):
        self.downloads.append(release)
        data = Path(release.locator).read_bytes()
        with open(destination, "wb") as f:
            for start in range(0, len(data), self.chunk_size):
                f.write(data[start : start + self.chunk_size])
                self.trace.append(release.name)
                await asyncio.sleep(0)


class StallingDownloader(FakeDownloader):
    """Downloader writing part of the archive, then never finishing."""

    async def download(self, release, destination, on_bytes=None):
        self.downloads.append(release)
        destination.write_bytes(Path(release.locator).read_bytes()[:10])
        await asyncio.sleep(3600)


class StallingCloner(FakeCloner):
    """Git client that starts a checkout, then never finishes."""

    async def clone(self, url, target_dir, ref=None):
        self.clones.append((url, target_dir, ref))
        target_dir.mkdir(parents=True)
        (target_dir / ".git").mkdir()
        (target_dir / "README.md").write_text("partial checkout\n")
        await asyncio.sleep(3600)


class RecordingCatalog(DirectoryCatalog):
    """DirectoryCatalog counting rescans, optionally failing them."""

    def __init__(self, libraries_dirs: list[Path] | Path, fail_rescan: bool = False, fail_list: bool = False):
        super().__init__(libraries_dirs)
        self.fail_rescan = fail_rescan
        self.fail_list = fail_list
        self.rescans = 0

    def list_installed(self):
        if self.fail_list:
            raise OSError("catalog unavailable")
        return super().list_installed()

    def rescan(self):
        self.rescans += 1
        if self.fail_rescan:
            raise OSError("disk scan failed")
        super().rescan()

    def refresh(self):
        """Rescan for test setup, not counted."""
        super().rescan()


@pytest.fixture
def libraries_dir(tmp_path):
    path = tmp_path / "libraries"
    path.mkdir()
    return path


@pytest.fixture
def archives_dir(tmp_path):
    path = tmp_path / "archives"
    path.mkdir()
    return path


@pytest.fixture
def catalog(libraries_dir):
    catalog = RecordingCatalog(libraries_dir)
    catalog.refresh()
    return catalog


@pytest.fixture
def index():
    return FakeIndex()


@pytest.fixture
def downloader():
    return FakeDownloader()


@pytest.fixture
def extractor():
    return ZipExtractor()


@pytest.fixture
def cloner():
    return FakeCloner()


@pytest.fixture
def installer(libraries_dir, catalog, index, downloader, extractor, cloner):
    return LibraryInstaller(
        config=InstallerConfig(libraries_dir=libraries_dir),
        catalog=catalog,
        index=index,
        downloader=downloader,
        extractor=extractor,
        cloner=cloner,
    )


@pytest.fixture
def publish(index, archives_dir):
    """Publish a release of a library to the fake index."""

    def _publish(name: str, version: str, checksum: bool = True) -> ReleaseDescriptor:
        archive = make_library_zip(archives_dir / f"{name}-{version}.zip", name, version)
        release = ReleaseDescriptor(
            name=name,
            version=version,
            locator=str(archive),
            checksum=sha256_checksum(archive) if checksum else None,
            size=archive.stat().st_size,
            archive_file_name=archive.name,
        )
        index.add(release)
        return release

    return _publish
