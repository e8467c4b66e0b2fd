"""Tests for the fetch stage (download verification, archive staging, git clone)."""

import asyncio
import hashlib
import tarfile

import pytest
from conftest import FakeCloner
from conftest import FakeDownloader
from conftest import StallingCloner
from conftest import ZipExtractor
from conftest import make_library_zip
from library_installer import FetchError
from library_installer import ReleaseDescriptor
from library_installer import SourceKind
from library_installer.fetcher import clone_repository
from library_installer.fetcher import download_release
from library_installer.fetcher import stage_archive
from library_installer.fetcher import staged_archive_name
from library_installer.fetcher import validate_archive
from library_installer.fetcher import verify_download


@pytest.fixture
def payload(tmp_path):
    path = tmp_path / "upstream" / "Servo-1.1.0.zip"
    path.parent.mkdir()
    path.write_bytes(b"library bytes")
    return path


def release_for(path, **kwargs) -> ReleaseDescriptor:
    return ReleaseDescriptor(name="Servo", version="1.1.0", locator=str(path), **kwargs)


def test_verify_download_accepts_matching_size_and_checksum(payload):
    digest = hashlib.sha256(b"library bytes").hexdigest()

    verify_download(payload, release_for(payload, size=13, checksum=f"SHA-256:{digest}"))


def test_verify_download_checksum_case_insensitive(payload):
    digest = hashlib.md5(b"library bytes").hexdigest().upper()

    verify_download(payload, release_for(payload, checksum=f"MD5:{digest}"))


def test_verify_download_size_mismatch(payload):
    with pytest.raises(FetchError, match="Size mismatch"):
        verify_download(payload, release_for(payload, size=999))


def test_verify_download_checksum_mismatch(payload):
    with pytest.raises(FetchError, match="Checksum mismatch"):
        verify_download(payload, release_for(payload, checksum="SHA-256:" + "f" * 64))


def test_verify_download_unknown_algorithm(payload):
    with pytest.raises(FetchError, match="Unsupported checksum algorithm"):
        verify_download(payload, release_for(payload, checksum="CRC-99:abcd"))


def test_verify_download_malformed_checksum(payload):
    with pytest.raises(FetchError, match="Malformed checksum"):
        verify_download(payload, release_for(payload, checksum="abcdef"))


def test_staged_archive_name():
    assert staged_archive_name(release_for("x", archive_file_name="../../Servo-1.1.0.zip")) == "Servo-1.1.0.zip"
    assert staged_archive_name(release_for("x")) == "Servo-1.1.0.zip"


@pytest.mark.asyncio
async def test_download_release(payload, tmp_path):
    staging = tmp_path / "staging"
    staging.mkdir()
    release = release_for(payload, size=13)

    staged = await download_release(FakeDownloader(), release, staging)

    assert staged == staging / "Servo-1.1.0.zip"
    assert staged.read_bytes() == b"library bytes"


@pytest.mark.asyncio
async def test_download_release_skips_verification_when_disabled(payload, tmp_path):
    release = release_for(payload, size=999)

    staged = await download_release(FakeDownloader(), release, tmp_path, verify=False)

    assert staged.exists()


@pytest.mark.asyncio
async def test_download_release_wraps_transport_error(payload, tmp_path):
    downloader = FakeDownloader(fail_with=TimeoutError("read timed out"))

    with pytest.raises(FetchError, match="Failed to download Servo@1.1.0: read timed out") as exc_info:
        await download_release(downloader, release_for(payload), tmp_path)

    assert isinstance(exc_info.value.__cause__, TimeoutError)
    assert exc_info.value.context["url"] == str(payload)


@pytest.mark.asyncio
async def test_download_release_missing_file(payload, tmp_path):
    class SilentDownloader:
        async def download(self, release, destination, on_bytes=None):
            pass

    with pytest.raises(FetchError, match="is missing"):
        await download_release(SilentDownloader(), release_for(payload), tmp_path)


def test_validate_archive_accepts_tar(tmp_path):
    content = tmp_path / "Servo"
    content.mkdir()
    archive = tmp_path / "Servo.tar.gz"
    with tarfile.open(archive, "w:gz") as tf:
        tf.add(content, arcname="Servo")

    assert validate_archive(archive) == archive.resolve()


def test_validate_archive_rejects_directory(tmp_path):
    with pytest.raises(FetchError, match="not a file"):
        validate_archive(tmp_path)


@pytest.mark.asyncio
async def test_stage_archive_reads_metadata(tmp_path):
    archive = make_library_zip(tmp_path / "servo.zip", "Servo", "1.1.0", top_dir="Servo-master")
    staging = tmp_path / "staging"
    staging.mkdir()

    library_dir, metadata = await stage_archive(ZipExtractor(), archive, staging)

    assert library_dir == staging / "extracted" / "Servo-master"
    assert (metadata.name, metadata.version) == ("Servo", "1.1.0")


@pytest.mark.asyncio
async def test_stage_archive_without_metadata(tmp_path):
    import zipfile

    archive = tmp_path / "bare.zip"
    with zipfile.ZipFile(archive, "w") as zf:
        zf.writestr("Bare/Bare.h", "")

    with pytest.raises(FetchError, match="No pyproject.toml found"):
        await stage_archive(ZipExtractor(), archive, tmp_path)


@pytest.mark.asyncio
async def test_stage_archive_extract_error(tmp_path):
    archive = make_library_zip(tmp_path / "servo.zip", "Servo", "1.1.0")

    with pytest.raises(FetchError, match="Failed to read archive"):
        await stage_archive(ZipExtractor(fail_with=OSError("bad crc")), archive, tmp_path)


@pytest.mark.asyncio
async def test_clone_repository_strips_git_dir(tmp_path):
    target = tmp_path / "libraries" / "Servo"
    release = ReleaseDescriptor(name="Servo", version="HEAD", source_kind=SourceKind.GIT, locator="https://x/Servo.git")
    cloner = FakeCloner()

    await clone_repository(cloner, release, target, ref="1.1.8")

    assert cloner.clones == [("https://x/Servo.git", target, "1.1.8")]
    assert (target / "pyproject.toml").exists()
    assert not (target / ".git").exists()


@pytest.mark.asyncio
async def test_clone_failure_keeps_preexisting_directory(tmp_path):
    target = tmp_path / "Servo"
    target.mkdir()
    (target / "keep.txt").write_text("mine")
    release = ReleaseDescriptor(name="Servo", version="HEAD", source_kind=SourceKind.GIT, locator="https://x/Servo.git")

    class RefusingCloner:
        async def clone(self, url, target_dir, ref=None):
            raise FileExistsError(f"{target_dir} already exists")

    with pytest.raises(FetchError, match="already exists"):
        await clone_repository(RefusingCloner(), release, target)

    assert (target / "keep.txt").read_text() == "mine"


@pytest.mark.asyncio
async def test_cancelled_clone_removes_partial_checkout(tmp_path):
    target = tmp_path / "libraries" / "Servo"
    release = ReleaseDescriptor(name="Servo", version="HEAD", source_kind=SourceKind.GIT, locator="https://x/Servo.git")
    task = asyncio.create_task(clone_repository(StallingCloner(), release, target))
    await asyncio.sleep(0.05)

    task.cancel()
    with pytest.raises(asyncio.CancelledError):
        await task

    assert not target.exists()


@pytest.mark.asyncio
async def test_git_metadata_removal_failure_is_logged(tmp_path, monkeypatch, caplog):
    import library_installer.fetcher as fetcher

    target = tmp_path / "Servo"
    release = ReleaseDescriptor(name="Servo", version="HEAD", source_kind=SourceKind.GIT, locator="https://x/Servo.git")
    real_rmtree = fetcher.shutil.rmtree

    def failing_rmtree(path, *args, **kwargs):
        if path.name == ".git":
            raise PermissionError("read-only pack file")
        return real_rmtree(path, *args, **kwargs)

    monkeypatch.setattr(fetcher.shutil, "rmtree", failing_rmtree)

    await clone_repository(FakeCloner(), release, target)

    assert (target / "pyproject.toml").exists()
    assert "Could not remove git metadata" in caplog.text
