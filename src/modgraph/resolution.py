"""The resolution context: every phase of a run, threaded through one explicit value."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import TYPE_CHECKING, Any, Self

from .backup import BackupRegistry
from .cache import ReleaseCache, RepositoryMetadataCache, ResourceStatusCache
from .concurrency import DEFAULT_MAX_WORKERS, RateLimiter
from .cycles import Cycle, build_cycle_map, detect_cycles
from .enrichment import enrich_repository_metadata, fetch_release_history, resolve_source_commits
from .errors import CacheWriteError, FetchError
from .github import GitHubClient
from .gitlab import GitLabClient
from .graph import DependencyGraph
from .index import ImportIndex, build_import_index, cycle_members_references, dependency_reference
from .modgraph import APP_DIRS
from .mvs import MvsResult, annotate_module_versions, calculate_mvs, rank_module_versions
from .netutil import ResourceStatus, check_urls
from .repository import track_repositories

if TYPE_CHECKING:
    from collections.abc import Iterable

    from .cache import RecordCache
    from .config import Settings
    from .models import Registry
    from .releases import Release
    from .repository import RepositoryMetadata

logger = logging.getLogger(__name__)

RELEASE_CACHE_FILE = "releases.json"
REPOSITORY_METADATA_CACHE_FILE = "repository_metadata.json"
RESOURCE_STATUS_CACHE_FILE = "resource_status.json"


def _cache_path(path: Path | None, filename: str, *, use_default: bool) -> Path | None:
    if path is not None:
        return path
    if use_default:
        return Path(APP_DIRS.user_cache_dir) / filename
    return None


class ResolutionContext:
    """Holds the graph, the caches and the remote clients of one run.

    Constructing the context does no I/O; `open()` (or entering it as a context manager) loads the caches and
    `close()` saves them.
    """

    def __init__(  # noqa: PLR0913
        self,
        registry: Registry,
        release_cache: ReleaseCache | None = None,
        repository_cache: RepositoryMetadataCache | None = None,
        resource_status_cache: ResourceStatusCache | None = None,
        github: GitHubClient | None = None,
        gitlab: GitLabClient | None = None,
        backup: BackupRegistry | None = None,
        max_workers: int = DEFAULT_MAX_WORKERS,
        blacklisted_urls: Iterable[str] = (),
    ) -> None:
        """Initialize a resolution context.

        Args:
            registry: The registry snapshot being resolved
            release_cache: Release history cache; an in-memory one is used by default
            repository_cache: Repository metadata cache; an in-memory one is used by default
            resource_status_cache: URL status cache; an in-memory one is used by default
            github: GitHub client; `None` disables every GitHub phase
            gitlab: GitLab client; `None` disables GitLab metadata fetching
            backup: Backup registry consulted before any API call
            max_workers: Upper bound on the size of every worker pool
            blacklisted_urls: URLs never checked for liveness

        """
        self.registry: Registry = registry
        self.graph: DependencyGraph = DependencyGraph()
        self.release_cache: ReleaseCache = release_cache if release_cache is not None else ReleaseCache()
        self.repository_cache: RepositoryMetadataCache = (
            repository_cache if repository_cache is not None else RepositoryMetadataCache()
        )
        self.resource_status_cache: ResourceStatusCache = (
            resource_status_cache if resource_status_cache is not None else ResourceStatusCache()
        )
        self.github: GitHubClient | None = github
        self.gitlab: GitLabClient | None = gitlab
        self.backup: BackupRegistry | None = backup
        self.max_workers: int = max_workers
        self.blacklisted_urls: frozenset[str] = frozenset(blacklisted_urls)
        self.cycles: list[Cycle] = []
        self.cycle_map: dict[str, str] = {}
        self.mvs: MvsResult | None = None
        self.ranks: dict[str, int] = {}
        self.resolved_commits: dict[str, str] = {}
        self.url_statuses: dict[str, ResourceStatus] = {}
        self._entries: int = 0

    @classmethod
    def from_settings(cls, settings: Settings, registry: Registry) -> ResolutionContext:
        """Build a context from the command-line settings, fetching the backup registry if one is configured."""
        # GitHub and GitLab quotas are counted separately
        github: GitHubClient | None = None
        if settings.github_token:
            github = GitHubClient(
                settings.github_token, limiter=RateLimiter(settings.requests_per_hour, settings.burst)
            )
        else:
            logger.warning("No GitHub token configured; GitHub metadata, releases and commits will not be fetched")
        if not settings.gitlab_token:
            logger.warning("No GitLab token configured; GitLab metadata will be fetched unauthenticated")
        gitlab = GitLabClient(settings.gitlab_token, limiter=RateLimiter(settings.requests_per_hour, settings.burst))
        backup = BackupRegistry.fetch(settings.registry_source_url) if settings.registry_source_url else None
        use_default = settings.use_default_caches
        return cls(
            registry,
            release_cache=ReleaseCache(
                _cache_path(settings.release_cache, RELEASE_CACHE_FILE, use_default=use_default)
            ),
            repository_cache=RepositoryMetadataCache(
                _cache_path(settings.repository_metadata_cache, REPOSITORY_METADATA_CACHE_FILE, use_default=use_default)
            ),
            resource_status_cache=ResourceStatusCache(
                _cache_path(settings.resource_status_cache, RESOURCE_STATUS_CACHE_FILE, use_default=use_default)
            ),
            github=github,
            gitlab=gitlab,
            backup=backup,
            max_workers=settings.max_workers,
            blacklisted_urls=settings.blacklisted_urls,
        )

    @property
    def caches(self) -> tuple[RecordCache[Any], ...]:
        """The three persistent caches, in save order."""
        return (self.release_cache, self.repository_cache, self.resource_status_cache)

    @property
    def repositories(self) -> dict[str, RepositoryMetadata]:
        """Canonical repository identity -> metadata, shared with the repository metadata cache."""
        return self.repository_cache.records

    def open(self) -> None:
        """Load every cache. A cache that cannot be read starts empty."""
        for cache in self.caches:
            cache.load()

    def close(self) -> list[CacheWriteError]:
        """Save every cache, returning the error of each one that could not be written.

        A failed cache never stops the others from being saved.
        """
        errors: list[CacheWriteError] = []
        for cache in self.caches:
            try:
                cache.save()
            except CacheWriteError as e:
                errors.append(e)
        return errors

    def __enter__(self) -> Self:
        """Enter context manager."""
        if self._entries == 0:
            self.open()
        self._entries += 1
        return self

    def __exit__(self, exc_type: type[BaseException] | None, exc_val: BaseException | None, exc_tb: object) -> None:
        """Exit context manager."""
        self._entries -= 1
        if self._entries == 0:
            for error in self.close():
                logger.error("%s", error)

    def populate(self) -> None:
        """Build the dependency graph and track every referenced repository."""
        self.graph.add_module_versions(self.registry.module_versions())
        added = track_repositories(self.registry, self.repositories)
        logger.info(
            "Dependency graph has %d module versions and %d edges (%d unresolved); tracking %d new repositories",
            self.graph.vertex_count(),
            self.graph.edge_count(),
            len(self.graph.unresolved),
            added,
        )

    def detect_cycles(self) -> list[Cycle]:
        """Find the dependency cycles of the populated graph."""
        self.cycles = detect_cycles(self.graph)
        self.cycle_map = build_cycle_map(self.cycles)
        return self.cycles

    def run_mvs(self, *, include_global: bool = False) -> MvsResult:
        """Run MVS for every module version, annotate the registry with the results and rank the versions."""
        self.mvs = calculate_mvs(self.graph, self.registry, self.max_workers, include_global=include_global)
        annotate_module_versions(self.registry, self.mvs)
        self.ranks = rank_module_versions(self.mvs, self.registry)
        return self.mvs

    def enrich_repositories(self) -> int:
        """Fill in repository metadata from the backup registry and the hosting providers."""
        fetched = enrich_repository_metadata(
            self.repositories, github=self.github, gitlab=self.gitlab, backup=self.backup
        )
        if fetched > 0:
            self.repository_cache.dirty = True
        return fetched

    def fetch_releases(self, repository: str) -> list[Release]:
        """Fetch the release history of `owner/name` into the release cache.

        Returns the releases that were new or changed. A failed fetch is logged and leaves the cache as is.
        """
        if self.github is None:
            logger.info("No GitHub client available, skipping release history of %s", repository)
            return []
        owner, sep, name = repository.partition("/")
        if not sep or not owner or not name:
            logger.warning("Invalid release repository %r, expected 'owner/name'", repository)
            return []
        try:
            releases = fetch_release_history(self.github, owner, name)
        except FetchError as e:
            logger.warning("Failed to fetch releases of %s: %s", repository, e)
            return []
        changed = [r for r in releases if self.release_cache.get(r.version) != r]
        self.release_cache.update(changed)
        logger.info("Fetched %d releases of %s, %d new or changed", len(releases), repository, len(changed))
        return changed

    def resolve_commits(self) -> dict[str, str]:
        """Resolve source commits for every module version with a positive rank."""
        if self.mvs is None:
            self.run_mvs()
        self.resolved_commits = resolve_source_commits(
            self.registry, self.ranks, self.github, backup=self.backup, max_workers=self.max_workers
        )
        return self.resolved_commits

    def source_urls(self) -> set[str]:
        """Return every source and docs URL referenced by the registry."""
        urls: set[str] = set()
        for mv in self.registry.module_versions():
            if mv.source is None:
                continue
            if mv.source.url:
                urls.add(mv.source.url)
            if mv.source.docs_url:
                urls.add(mv.source.docs_url)
        return urls

    def check_urls(self) -> dict[str, ResourceStatus]:
        """Check that every source and docs URL still exists."""
        self.url_statuses = check_urls(
            self.source_urls(),
            cache=self.resource_status_cache,
            blacklist=self.blacklisted_urls,
            max_workers=self.max_workers,
        )
        return self.url_statuses

    def build_import_index(self) -> ImportIndex:
        """Index every module version and cycle for reference lookups."""
        return build_import_index(self.registry.module_versions(), self.cycles)

    def dependency_references(self, index: ImportIndex | None = None) -> dict[str, dict[str, str]]:
        """Map each module version's resolvable dependencies to the targets that provide them."""
        if index is None:
            index = self.build_import_index()
        references: dict[str, dict[str, str]] = {}
        for mv in self.registry.module_versions():
            refs: dict[str, str] = {}
            for dep in mv.deps:
                if not dep.name or not dep.target_version:
                    continue
                target = dep.target_id
                if not self.graph.is_resolvable(target):
                    continue
                ref = dependency_reference(target, self.cycle_map, index)
                if ref is not None:
                    refs[target] = ref
            if refs:
                references[mv.id] = dict(sorted(refs.items()))
        return references

    def report(self) -> dict[str, Any]:
        """Summarize the run as a JSON-serializable dictionary with deterministic key order."""
        ret: dict[str, Any] = {}
        if self.mvs is not None:
            ret.update(self.mvs.to_obj())
        ret["cycles"] = [c.to_obj() for c in self.cycles]
        ret["unresolved"] = sorted(self.graph.unresolved)
        ret["ranks"] = {k: v for k, v in sorted(self.ranks.items()) if v > 0}
        index = self.build_import_index()
        ret["references"] = self.dependency_references(index)
        if self.cycles:
            ret["cycle_references"] = {c.name: cycle_members_references(c, index) for c in self.cycles}
        ret["repositories"] = {k: self.repositories[k].to_obj() for k in sorted(self.repositories)}
        if self.resolved_commits:
            ret["commits"] = dict(sorted(self.resolved_commits.items()))
        if self.url_statuses:
            ret["url_status"] = {url: s.to_obj() for url, s in sorted(self.url_statuses.items())}
        return ret
