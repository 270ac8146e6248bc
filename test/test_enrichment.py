"""Tests for repository metadata enrichment and commit resolution."""

from __future__ import annotations

import gzip
from typing import TYPE_CHECKING
from unittest.mock import MagicMock, Mock

from modgraph.backup import BackupRegistry
from modgraph.enrichment import (
    collect_source_urls,
    enrich_repository_metadata,
    fetch_in_batches,
    filter_repositories,
    resolve_source_commits,
)
from modgraph.errors import FetchError
from modgraph.models import Module, ModuleMetadata, ModuleSource, ModuleVersion, Registry
from modgraph.repository import RepositoryMetadata

if TYPE_CHECKING:
    from collections.abc import Sequence

    from modgraph.source_url import SourceURLInfo

SHA = "0123456789abcdef0123456789abcdef01234567"
OTHER_SHA = "fedcba9876543210fedcba9876543210fedcba98"


def tag_url(repo: str, tag: str) -> str:
    return f"https://github.com/org/{repo}/archive/refs/tags/{tag}.tar.gz"


def backup_registry() -> Registry:
    module = Module(
        "a",
        metadata=ModuleMetadata("a", versions=["1.0"]),
        versions=[ModuleVersion("a", "1.0", source=ModuleSource(url=tag_url("a", "v1.0"), commit_sha=OTHER_SHA))],
        repository_metadata=RepositoryMetadata(
            "github", "org", "a", description="from backup", stargazers=7, languages={"Go": 10}, primary_language="Go"
        ),
    )
    return Registry([module])


class TestFilterRepositories:
    """Tests for selecting repositories that need fetching."""

    def test_only_unfetched_repositories_of_the_provider(self) -> None:
        """Test that a repository with an empty language map counts as fetched."""
        repos = {
            md.id: md
            for md in [
                RepositoryMetadata("github", "org", "b"),
                RepositoryMetadata("github", "org", "a"),
                RepositoryMetadata("github", "org", "empty", languages={}),
                RepositoryMetadata("gitlab", "org", "c"),
                RepositoryMetadata("github", "bazel-contrib", "rules_pex"),
            ]
        }
        assert [md.id for md in filter_repositories(repos, "github")] == ["github:org/a", "github:org/b"]
        assert [md.id for md in filter_repositories(repos, "gitlab")] == ["gitlab:org/c"]


class TestFetchInBatches:
    """Tests for batched fetching with retries."""

    def test_failed_batch_does_not_block_later_batches(self) -> None:
        """Test that a batch failing every attempt is skipped and its records left untouched."""
        todo = [RepositoryMetadata("github", "org", f"r{i:03d}", description="prior") for i in range(250)]
        calls: list[int] = []

        def fetch_batch(batch: Sequence[RepositoryMetadata]) -> int:
            calls.append(len(batch))
            if batch[0].name == "r100":
                msg = "server error"
                raise FetchError(msg, status_code=502)
            for md in batch:
                md.set_languages({"Go": 1})
            return len(batch)

        sleep = Mock()
        assert fetch_in_batches(todo, fetch_batch, "GitHub", sleep=sleep) == 150
        assert calls == [100, 100, 100, 100, 50]
        assert [c.args[0] for c in sleep.call_args_list] == [1.0, 2.0]
        assert all(md.fetched for md in todo[:100])
        assert all(not md.fetched and md.description == "prior" for md in todo[100:200])
        assert all(md.fetched for md in todo[200:])

    def test_total_counts_fetched_repositories(self) -> None:
        """Test the returned count."""
        todo = [RepositoryMetadata("github", "org", str(i)) for i in range(5)]
        assert fetch_in_batches(todo, lambda batch: len(batch) - 1, "GitHub", batch_size=2, sleep=Mock()) == 2


class TestEnrichRepositoryMetadata:
    """Tests for the enrichment phase."""

    def test_backup_short_circuits_network(self) -> None:
        """Test that repositories found in the backup registry are not fetched."""
        md = RepositoryMetadata("github", "org", "a")
        other = RepositoryMetadata("github", "org", "b")
        repos = {md.id: md, other.id: other}
        github = Mock()
        github.fetch_repository_metadata_batch.return_value = 1
        fetched = enrich_repository_metadata(repos, github=github, backup=BackupRegistry(backup_registry()))
        assert fetched == 1
        assert md.description == "from backup"
        assert md.stargazers == 7
        assert md.languages == {"Go": 10}
        assert md.primary_language == "Go"
        batch = github.fetch_repository_metadata_batch.call_args.args[0]
        assert [r.id for r in batch] == ["github:org/b"]

    def test_missing_clients_disable_fetching(self) -> None:
        """Test that nothing is fetched without clients."""
        repos = {"github:org/a": RepositoryMetadata("github", "org", "a")}
        assert enrich_repository_metadata(repos) == 0
        assert not repos["github:org/a"].fetched


class TestBackupRegistry:
    """Tests for the backup registry."""

    def test_fetch_gzip(self) -> None:
        """Test downloading a compressed snapshot."""
        response = Mock()
        response.status_code = 200
        response.content = gzip.compress(backup_registry().dumps().encode())
        session = MagicMock()
        session.get.return_value = response
        backup = BackupRegistry.fetch("https://example.com/registry.json.gz", session)
        assert backup is not None
        assert backup.repository_metadata("github:org/a").description == "from backup"
        assert backup.module_source("a", "1.0").commit_sha == OTHER_SHA
        assert backup.module_source("a", "2.0") is None
        assert backup.repository_metadata_for_module("a", "1.0").stargazers == 7

    def test_fetch_failure_disables_backup(self) -> None:
        """Test that an unusable snapshot is ignored."""
        response = Mock()
        response.status_code = 200
        response.content = b"not gzip"
        session = MagicMock()
        session.get.return_value = response
        assert BackupRegistry.fetch("https://example.com/registry.json.gz", session) is None
        response.status_code = 404
        assert BackupRegistry.fetch("https://example.com/registry.json", session) is None

    def test_populate_copies_only_non_empty_fields(self) -> None:
        """Test that empty backup fields never erase existing data."""
        registry = backup_registry()
        registry.module("a").repository_metadata.description = ""
        md = RepositoryMetadata("github", "org", "a", description="kept")
        assert BackupRegistry(registry).populate([md, RepositoryMetadata("github", "org", "z")]) == 1
        assert md.description == "kept"
        assert md.stargazers == 7


def ranked_registry() -> Registry:
    return Registry(
        [
            Module(
                "a",
                metadata=ModuleMetadata("a", versions=["1.0"]),
                versions=[ModuleVersion("a", "1.0", source=ModuleSource(url=tag_url("a", "v1.0")))],
            ),
            Module(
                "b",
                metadata=ModuleMetadata("b", versions=["1.0", "2.0"]),
                versions=[
                    ModuleVersion("b", "1.0", source=ModuleSource(url=tag_url("shared", "v1"))),
                    ModuleVersion("b", "2.0", source=ModuleSource(url=tag_url("shared", "v1"))),
                ],
            ),
            Module(
                "c",
                metadata=ModuleMetadata("c", versions=["1.0"]),
                versions=[
                    ModuleVersion("c", "1.0", source=ModuleSource(url="https://example.com/c-1.0.tar.gz")),
                ],
            ),
            Module(
                "d",
                metadata=ModuleMetadata("d", versions=["1.0"]),
                versions=[ModuleVersion("d", "1.0", source=ModuleSource(url=tag_url("d", "v1"), commit_sha=SHA))],
            ),
            Module(
                "e",
                metadata=ModuleMetadata("e", versions=["1.0"]),
                versions=[ModuleVersion("e", "1.0", source=ModuleSource(url=tag_url("e", "v1")))],
            ),
        ]
    )


RANKS = {"a@1.0": 1, "b@1.0": 2, "b@2.0": 1, "c@1.0": 1, "d@1.0": 1, "e@1.0": 0}


class TestCommitResolution:
    """Tests for resolving source commits."""

    def test_collect_source_urls(self) -> None:
        """Test rank gating, deduplication and backup commits."""
        registry = ranked_registry()
        infos, users = collect_source_urls(registry.module_versions(), RANKS, BackupRegistry(backup_registry()))
        # a is served by the backup, c is not a GitHub source URL, d already has a commit, e is unranked
        assert sorted(infos) == [tag_url("shared", "v1")]
        assert [mv.id for mv in users[tag_url("shared", "v1")]] == ["b@1.0", "b@2.0"]
        assert registry.module("a").version("1.0").source.commit_sha == OTHER_SHA

    def test_resolved_commit_is_copied_to_every_user(self) -> None:
        """Test that a URL is resolved once and applied to every module version using it."""
        registry = ranked_registry()
        github = Mock()
        github.resolve_source_commit.return_value = SHA
        resolved = resolve_source_commits(registry, RANKS, github)
        assert resolved == {"a@1.0": SHA, "b@1.0": SHA, "b@2.0": SHA}
        assert github.resolve_source_commit.call_count == 2
        assert registry.module("b").version("2.0").source.commit_sha == SHA
        assert registry.module("e").version("1.0").source.commit_sha == ""

    def test_failed_resolution_is_skipped(self) -> None:
        """Test that a URL that cannot be resolved leaves its sources alone."""
        registry = ranked_registry()
        github = Mock()
        def resolve(info: SourceURLInfo) -> str:
            if info.repository == "a":
                return SHA
            msg = "not found"
            raise FetchError(msg, status_code=404)

        github.resolve_source_commit.side_effect = resolve
        resolved = resolve_source_commits(registry, RANKS, github)
        assert resolved == {"a@1.0": SHA}
        assert registry.module("b").version("1.0").source.commit_sha == ""

    def test_no_client(self) -> None:
        """Test that resolution is skipped without a GitHub client."""
        assert resolve_source_commits(ranked_registry(), RANKS, None) == {}
