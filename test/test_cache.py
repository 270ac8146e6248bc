"""Tests for the persistent record caches."""

from __future__ import annotations

import json
import logging
from typing import TYPE_CHECKING

import pytest

from modgraph.cache import ReleaseCache, RepositoryMetadataCache, ResourceStatusCache, expand_path
from modgraph.errors import CacheWriteError
from modgraph.netutil import ResourceStatus
from modgraph.releases import Release
from modgraph.repository import RepositoryMetadata

if TYPE_CHECKING:
    from pathlib import Path


def repositories() -> list[RepositoryMetadata]:
    return [
        RepositoryMetadata("github", "bazelbuild", "rules_go", stargazers=1300, languages={"Go": 900}),
        RepositoryMetadata("gitlab", "group/sub", "proj", languages={}),
        RepositoryMetadata("github", "abseil", "abseil-cpp", description="Abseil", languages=None),
    ]


class TestRepositoryMetadataCache:
    """Tests for the repository metadata cache."""

    def test_round_trip(self, tmp_path: Path) -> None:
        """Test that saved records load back under the same identities."""
        path = tmp_path / "repos.json"
        cache = RepositoryMetadataCache(path)
        cache.update(repositories())
        assert cache.save()

        loaded = RepositoryMetadataCache(path)
        assert loaded.load() == 3
        assert sorted(loaded.records) == sorted(md.id for md in repositories())
        for md in repositories():
            assert loaded.get(md.id) == md
        # an empty language map survives the round trip and is distinct from "not fetched"
        assert loaded.get("gitlab:group/sub/proj").languages == {}
        assert loaded.get("github:abseil/abseil-cpp").languages is None

    def test_records_are_written_in_key_order(self, tmp_path: Path) -> None:
        """Test that the file does not depend on insertion order."""
        first = RepositoryMetadataCache(tmp_path / "first.json")
        first.update(repositories())
        first.save()
        second = RepositoryMetadataCache(tmp_path / "second.json")
        second.update(reversed(repositories()))
        second.save()
        assert (tmp_path / "first.json").read_text() == (tmp_path / "second.json").read_text()
        records = json.loads((tmp_path / "first.json").read_text())["records"]
        assert [(r["type"], r["organization"]) for r in records] == [
            ("github", "abseil"),
            ("github", "bazelbuild"),
            ("gitlab", "group/sub"),
        ]

    def test_unchanged_cache_is_not_rewritten(self, tmp_path: Path) -> None:
        """Test that load followed by save is a no-op when nothing was fetched."""
        path = tmp_path / "repos.json"
        cache = RepositoryMetadataCache(path)
        cache.update(repositories())
        cache.save()
        mtime = path.stat().st_mtime_ns

        reloaded = RepositoryMetadataCache(path)
        reloaded.load()
        assert not reloaded.dirty
        assert not reloaded.save()
        assert path.stat().st_mtime_ns == mtime

    def test_unreadable_cache_starts_empty(self, tmp_path: Path, caplog: pytest.LogCaptureFixture) -> None:
        """Test that a corrupt file is logged and ignored."""
        path = tmp_path / "repos.json"
        path.write_text("{not json")
        cache = RepositoryMetadataCache(path)
        with caplog.at_level(logging.WARNING):
            assert cache.load() == 0
        assert len(cache) == 0
        assert "Could not read repository metadata cache" in caplog.text

    def test_missing_cache_starts_empty(self, tmp_path: Path) -> None:
        """Test that a missing file is not an error."""
        cache = RepositoryMetadataCache(tmp_path / "missing.json")
        assert cache.load() == 0
        assert len(cache) == 0

    def test_write_failure(self, tmp_path: Path) -> None:
        """Test that a failed write raises an error naming the cache."""
        blocker = tmp_path / "blocker"
        blocker.write_text("")
        cache = RepositoryMetadataCache(blocker / "repos.json")
        cache.update(repositories())
        with pytest.raises(CacheWriteError) as excinfo:
            cache.save()
        assert excinfo.value.cache_name == "repository metadata"
        assert excinfo.value.path == blocker / "repos.json"

    def test_no_path_disables_persistence(self) -> None:
        """Test a cache that only lives in memory."""
        cache = RepositoryMetadataCache()
        cache.update(repositories())
        assert cache.load() == 0
        assert not cache.save()
        assert len(cache) == 3


class TestReleaseCache:
    """Tests for the release history cache."""

    def test_round_trip(self, tmp_path: Path) -> None:
        """Test that releases keep their commit details."""
        path = tmp_path / "releases.json"
        release = Release(
            "8.0.0",
            created_at="2024-12-09T00:00:00Z",
            is_prerelease=False,
            url="https://github.com/bazelbuild/bazel/archive/refs/tags/8.0.0.tar.gz",
            commit_sha="a" * 40,
            commit_date="2024-12-08T00:00:00Z",
            commit_message="Release 8.0.0",
        )
        with ReleaseCache(path) as cache:
            cache.put(release)
            cache.put(Release("7.4.1", is_prerelease=True))

        loaded = ReleaseCache(path)
        loaded.load()
        assert [r.version for r in loaded] == ["7.4.1", "8.0.0"]
        assert loaded.get("8.0.0") == release
        assert loaded.get("8.0.0").commit_message == "Release 8.0.0"

    def test_context_manager_loads_and_saves_once(self, tmp_path: Path) -> None:
        """Test that nested use of the same cache only persists on the outermost exit."""
        path = tmp_path / "releases.json"
        cache = ReleaseCache(path)
        with cache, cache:
            cache.put(Release("1.0"))
        assert path.exists()
        assert not cache.dirty


class TestResourceStatusCache:
    """Tests for the URL status cache."""

    def test_always_written(self, tmp_path: Path) -> None:
        """Test that the status cache is rewritten even when nothing changed."""
        path = tmp_path / "status.json"
        cache = ResourceStatusCache(path)
        cache.put(ResourceStatus("https://example.com/a", 200, "OK"), mark_dirty=False)
        assert not cache.dirty
        assert cache.save()
        loaded = ResourceStatusCache(path)
        loaded.load()
        assert loaded.get("https://example.com/a") == ResourceStatus("https://example.com/a", 200, "OK")


def test_expand_path(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    """Test that environment variables in cache paths are expanded."""
    monkeypatch.setenv("MODGRAPH_TEST_CACHE_DIR", str(tmp_path))
    assert expand_path("$MODGRAPH_TEST_CACHE_DIR/repos.json") == tmp_path / "repos.json"
    assert expand_path(None) is None
    assert expand_path("") is None
