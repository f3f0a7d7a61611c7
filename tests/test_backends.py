"""
Tests for cache backends — in-memory fake, local directory store, registry.
"""

from datetime import UTC, datetime
from pathlib import Path

from compcache.adapters.backends import (
    InMemoryBackend,
    LocalDirectoryBackend,
    build_backend,
)
from compcache.core.models.config import BackendSettings, CacheConfig
from compcache.core.models.descriptor import CacheDescriptor
from compcache.core.services import cache_key


def _descriptor(commit="abc123", profile="dev", stamp=None, arch="x86_64", os_="linux"):
    return CacheDescriptor.create(
        profile,
        commit,
        architecture=arch,
        operating_system=os_,
        timestamp=stamp or datetime(2024, 11, 16, 12, 0, 0, tzinfo=UTC),
    )


def _seed(backend: InMemoryBackend, descriptor: CacheDescriptor, ext="zip") -> str:
    path = cache_key.remote_path(descriptor, ext)
    backend.put(path, b"artifact")
    return path


# ── In-memory backend ────────────────────────────────────────────────


class TestInMemoryBackend:
    def test_fetch_not_found(self):
        backend = InMemoryBackend()
        receipt = backend.fetch_by_descriptor(_descriptor())
        assert receipt.not_found
        assert not receipt.failed

    def test_fetch_returns_stored_timestamp(self):
        backend = InMemoryBackend()
        stored = _descriptor(stamp=datetime(2023, 5, 6, 7, 8, 9, tzinfo=UTC))
        path = _seed(backend, stored)

        receipt = backend.fetch_by_descriptor(_descriptor())
        assert receipt.ok
        assert receipt.descriptor == stored
        assert receipt.remote_path == path

    def test_fetch_picks_newest(self):
        backend = InMemoryBackend()
        _seed(backend, _descriptor(stamp=datetime(2024, 1, 1, tzinfo=UTC)))
        newest = _descriptor(stamp=datetime(2024, 6, 1, tzinfo=UTC))
        _seed(backend, newest)

        assert backend.fetch_by_descriptor(_descriptor()).descriptor == newest

    def test_fetch_ignores_other_commits_and_platforms(self):
        backend = InMemoryBackend()
        _seed(backend, _descriptor(commit="abc1234"))
        _seed(backend, _descriptor(arch="aarch64", os_="macos"))
        _seed(backend, _descriptor(profile="test"))

        assert backend.fetch_by_descriptor(_descriptor()).not_found

    def test_extension_filter(self):
        backend = InMemoryBackend(extension="tar")
        _seed(backend, _descriptor(), ext="zip")
        assert backend.fetch_by_descriptor(_descriptor()).not_found

        _seed(backend, _descriptor(), ext="tar")
        assert backend.fetch_by_descriptor(_descriptor()).ok

    def test_listing_failure_is_failed_not_missing(self):
        backend = InMemoryBackend()
        backend.fail_on("list")
        receipt = backend.fetch_by_descriptor(_descriptor())
        assert receipt.failed
        assert "Could not list" in receipt.error

    def test_unavailable(self):
        backend = InMemoryBackend(available=False)
        assert backend.fetch_by_descriptor(_descriptor()).failed
        assert backend.list("dev", architecture="x86_64", operating_system="linux").failed

    def test_list_newest_first(self):
        backend = InMemoryBackend()
        old = _descriptor(commit="old", stamp=datetime(2024, 1, 1, tzinfo=UTC))
        new = _descriptor(commit="new", stamp=datetime(2024, 2, 1, tzinfo=UTC))
        _seed(backend, old)
        _seed(backend, new)
        _seed(backend, _descriptor(commit="other", profile="test"))
        backend.put("x86_64/dev/README.md")

        receipt = backend.list("dev", architecture="x86_64", operating_system="linux")
        assert receipt.ok
        assert receipt.descriptors == [new, old]

    def test_upload_download(self, tmp_path: Path):
        backend = InMemoryBackend()
        source = tmp_path / "a.zip"
        source.write_bytes(b"payload")

        up = backend.upload(source, "x86_64/dev/a.zip")
        assert up.ok
        assert up.metadata["size_bytes"] == 7

        target = tmp_path / "out" / "a.zip"
        down = backend.download("x86_64/dev/a.zip", target)
        assert down.ok
        assert target.read_bytes() == b"payload"
        assert backend.calls("upload") == ["x86_64/dev/a.zip"]

    def test_download_missing(self, tmp_path: Path):
        receipt = InMemoryBackend().download("x86_64/dev/nope.zip", tmp_path / "nope.zip")
        assert receipt.not_found

    def test_reset(self):
        backend = InMemoryBackend()
        backend.fail_on("list")
        backend.setup()
        backend.fetch_by_descriptor(_descriptor())
        backend.reset()
        assert backend.call_log == []
        assert backend.setup_calls == 0
        assert backend.fetch_by_descriptor(_descriptor()).not_found


# ── Local directory backend ──────────────────────────────────────────


class TestLocalDirectoryBackend:
    def _backend(self, tmp_path: Path, **kwargs) -> LocalDirectoryBackend:
        backend = LocalDirectoryBackend(tmp_path / "store", **kwargs)
        backend.setup()
        return backend

    def test_setup_creates_root(self, tmp_path: Path):
        self._backend(tmp_path)
        assert (tmp_path / "store").is_dir()

    def test_upload_then_fetch_and_download(self, tmp_path: Path):
        backend = self._backend(tmp_path, extension="zip")
        descriptor = _descriptor()
        artifact = tmp_path / "local.zip"
        artifact.write_bytes(b"zipped build")

        remote = cache_key.remote_path(descriptor, "zip")
        up = backend.upload(artifact, remote)
        assert up.ok
        assert (tmp_path / "store" / remote).read_bytes() == b"zipped build"

        found = backend.fetch_by_descriptor(_descriptor(stamp=datetime(2030, 1, 1, tzinfo=UTC)))
        assert found.ok
        assert found.descriptor == descriptor
        assert found.remote_path == remote

        target = tmp_path / "_build" / "restored.zip"
        down = backend.download(found.remote_path, target)
        assert down.ok
        assert target.read_bytes() == b"zipped build"

    def test_upload_leaves_no_temp_files(self, tmp_path: Path):
        backend = self._backend(tmp_path)
        artifact = tmp_path / "local.zip"
        artifact.write_bytes(b"x")
        backend.upload(artifact, "x86_64/dev/x86_64_linux_dev_abc_20240101000000.zip")

        names = [p.name for p in (tmp_path / "store" / "x86_64" / "dev").iterdir()]
        assert names == ["x86_64_linux_dev_abc_20240101000000.zip"]

    def test_nothing_uploaded_yet(self, tmp_path: Path):
        backend = self._backend(tmp_path)
        assert backend.fetch_by_descriptor(_descriptor()).not_found
        listing = backend.list("dev", architecture="x86_64", operating_system="linux")
        assert listing.ok
        assert listing.descriptors == []

    def test_missing_root_is_failure(self, tmp_path: Path):
        backend = LocalDirectoryBackend(tmp_path / "unmounted", create=False)
        backend.setup()
        assert backend.fetch_by_descriptor(_descriptor()).failed

    def test_download_missing(self, tmp_path: Path):
        backend = self._backend(tmp_path)
        receipt = backend.download("x86_64/dev/nope.zip", tmp_path / "nope.zip")
        assert receipt.not_found

    def test_upload_missing_source_fails(self, tmp_path: Path):
        backend = self._backend(tmp_path)
        receipt = backend.upload(tmp_path / "ghost.zip", "x86_64/dev/ghost.zip")
        assert receipt.failed

    def test_rejects_paths_outside_store(self, tmp_path: Path):
        backend = self._backend(tmp_path)
        artifact = tmp_path / "local.zip"
        artifact.write_bytes(b"x")
        assert backend.upload(artifact, "../escape.zip").failed
        assert backend.download("../../etc/passwd", tmp_path / "p").failed
        assert not (tmp_path / "escape.zip").exists()


# ── Registry ─────────────────────────────────────────────────────────


class TestBuildBackend:
    def test_local_default(self, tmp_path: Path):
        backend = build_backend(CacheConfig(project_root=tmp_path))
        assert isinstance(backend, LocalDirectoryBackend)
        assert backend.root == tmp_path / ".compcache" / "remote"
        assert backend.extension == "zip"

    def test_absolute_path(self, tmp_path: Path):
        config = CacheConfig(
            project_root=tmp_path / "project",
            backend=BackendSettings(path=str(tmp_path / "shared")),
        )
        assert build_backend(config).root == tmp_path / "shared"

    def test_memory(self, tmp_path: Path):
        config = CacheConfig.model_validate(
            {"project_root": tmp_path, "backend": {"kind": "memory"}, "archive": {"format": "tar"}}
        )
        backend = build_backend(config)
        assert isinstance(backend, InMemoryBackend)
        assert backend.extension == "tar"
