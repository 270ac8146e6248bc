"""Repository metadata enrichment and commit resolution."""

from __future__ import annotations

import logging
import time
from typing import TYPE_CHECKING

from tqdm import tqdm

from .concurrency import DEFAULT_MAX_WORKERS, fan_out, retry_with_backoff
from .errors import FetchError, SourceURLError
from .graphql import MAX_BATCH_SIZE
from .repository import GITHUB, GITLAB
from .source_url import SourceURLInfo, parse_source_url

if TYPE_CHECKING:
    from collections.abc import Callable, Iterable, Mapping, Sequence

    from .backup import BackupRegistry
    from .github import GitHubClient
    from .gitlab import GitLabClient
    from .models import ModuleVersion, Registry
    from .releases import Release
    from .repository import RepositoryMetadata

logger = logging.getLogger(__name__)

MAX_ATTEMPTS = 3
BACKOFF = 1.0

# (organization, name) pairs that are referenced by the registry but do not exist
KNOWN_BAD_REPOSITORIES = frozenset({("bazel-contrib", "rules_pex")})


def filter_repositories(repositories: Mapping[str, RepositoryMetadata], provider: str) -> list[RepositoryMetadata]:
    """Return the repositories of `provider` that still need fetching, ordered by identity.

    A repository needs fetching iff its language map is unset.
    """
    todo: list[RepositoryMetadata] = []
    for key in sorted(repositories):
        md = repositories[key]
        if md is None or md.type != provider:
            continue
        if (md.organization, md.name) in KNOWN_BAD_REPOSITORIES:
            continue
        if md.languages is not None:
            continue
        todo.append(md)
    return todo


def fetch_in_batches(
    todo: Sequence[RepositoryMetadata],
    fetch_batch: Callable[[Sequence[RepositoryMetadata]], int],
    label: str,
    batch_size: int = MAX_BATCH_SIZE,
    max_attempts: int = MAX_ATTEMPTS,
    backoff: float = BACKOFF,
    sleep: Callable[[float], None] = time.sleep,
) -> int:
    """Fetch metadata for `todo` in batches, retrying each batch with linear backoff.

    A batch that fails every attempt is logged and skipped; its repositories keep whatever metadata they
    had, and later batches still run. Returns the number of repositories that received metadata.
    """
    total_fetched = 0
    with tqdm(desc=f"Fetching {label} metadata", total=len(todo), leave=False, unit=" repositories") as t:
        for start in range(0, len(todo), batch_size):
            batch = todo[start : start + batch_size]
            end = start + len(batch)
            logger.info(
                "Fetching %s metadata for batch %d-%d of %d repositories...", label, start + 1, end, len(todo)
            )
            try:
                fetched = retry_with_backoff(
                    lambda batch=batch: fetch_batch(batch),
                    max_attempts=max_attempts,
                    backoff=backoff,
                    description=f"{label} batch {start + 1}-{end}",
                    sleep=sleep,
                )
            except FetchError as e:
                logger.warning(
                    "Failed to fetch %s metadata batch %d-%d after %d attempts, skipping: %s",
                    label,
                    start + 1,
                    end,
                    max_attempts,
                    e,
                )
                t.update(len(batch))
                continue
            t.update(len(batch))
            total_fetched += fetched
            logger.info("Fetched metadata for %d repositories in this batch", fetched)
    logger.info("Fetched %s metadata for %d of %d repositories total", label, total_fetched, len(todo))
    return total_fetched


def enrich_repository_metadata(
    repositories: Mapping[str, RepositoryMetadata],
    github: GitHubClient | None = None,
    gitlab: GitLabClient | None = None,
    backup: BackupRegistry | None = None,
    sleep: Callable[[float], None] = time.sleep,
) -> int:
    """Fill in metadata for every repository that has none yet.

    The backup registry is consulted first; what it cannot provide is fetched from GitHub and GitLab. A
    missing client disables that provider. Returns the number of repositories fetched from the network.
    """
    if backup is not None:
        pending = [md for md in repositories.values() if md.languages is None]
        populated = backup.populate(pending)
        logger.info("Populated %d of %d repositories from the backup registry", populated, len(pending))

    total = 0
    todo = filter_repositories(repositories, GITHUB)
    if not todo:
        logger.info("No GitHub repositories need metadata fetching")
    elif github is None:
        logger.info("No GitHub token available, skipping %d GitHub repositories", len(todo))
    else:
        github.report_rate_limits()
        total += fetch_in_batches(todo, github.fetch_repository_metadata_batch, "GitHub", sleep=sleep)

    todo = filter_repositories(repositories, GITLAB)
    if not todo:
        logger.info("No GitLab repositories need metadata fetching")
    elif gitlab is None:
        logger.info("No GitLab client available, skipping %d GitLab repositories", len(todo))
    else:
        total += fetch_in_batches(todo, gitlab.fetch_repository_metadata_batch, "GitLab", sleep=sleep)
    return total


class _CommitResult:
    """Result of resolving one source URL."""

    def __init__(self, url: str, commit_sha: str = "", error: Exception | None = None) -> None:
        """Initialize commit result."""
        self.url: str = url
        self.commit_sha: str = commit_sha
        self.error: Exception | None = error


def _resolve(github: GitHubClient, info: SourceURLInfo) -> _CommitResult:
    try:
        return _CommitResult(info.url, commit_sha=github.resolve_source_commit(info))
    except FetchError as e:
        return _CommitResult(info.url, error=e)


def collect_source_urls(
    module_versions: Iterable[ModuleVersion],
    ranks: Mapping[str, int],
    backup: BackupRegistry | None = None,
) -> tuple[dict[str, SourceURLInfo], dict[str, list[ModuleVersion]]]:
    """Select the source URLs whose commit needs resolving.

    Only module versions with a positive rank and a source without a commit are considered. A commit found
    in the backup registry is applied directly. URLs that are not recognized GitHub source URLs are skipped.
    Returns url -> parsed URL and url -> every module version using it.
    """
    infos: dict[str, SourceURLInfo] = {}
    users: dict[str, list[ModuleVersion]] = {}
    for mv in module_versions:
        if ranks.get(mv.id, 0) <= 0 or mv.source is None or not mv.source.url:
            continue
        if mv.source.commit_sha:
            continue
        if backup is not None:
            backup_source = backup.module_source(mv.name, mv.version)
            if backup_source is not None and backup_source.commit_sha and backup_source.url == mv.source.url:
                mv.source.commit_sha = backup_source.commit_sha
                continue
        url = mv.source.url
        if url not in infos:
            try:
                infos[url] = parse_source_url(url)
            except SourceURLError:
                continue
        users.setdefault(url, []).append(mv)
    return infos, users


def resolve_source_commits(
    registry: Registry,
    ranks: Mapping[str, int],
    github: GitHubClient | None,
    backup: BackupRegistry | None = None,
    max_workers: int = DEFAULT_MAX_WORKERS,
) -> dict[str, str]:
    """Resolve the commit of every ranked module version's source and store it on the source.

    Each distinct URL is resolved once. Returns module version id -> commit SHA for every source updated
    from the network.
    """
    infos, users = collect_source_urls(registry.module_versions(), ranks, backup)
    if not infos:
        logger.info("No GitHub source URLs need commit SHA resolution")
        return {}
    if github is None:
        logger.info("No GitHub client available, skipping commit resolution for %d URLs", len(infos))
        return {}
    logger.info("Resolving commit SHAs for %d unique GitHub source URLs...", len(infos))
    results = fan_out(
        [infos[url] for url in sorted(infos)],
        lambda info: _resolve(github, info),
        max_workers=max_workers,
        desc="Resolving commit SHAs",
        unit=" urls",
    )
    resolved: dict[str, str] = {}
    errors = 0
    for info in sorted(results, key=lambda i: i.url):
        result = results[info]
        if result.error is not None or not result.commit_sha:
            logger.warning("Failed to resolve commit SHA for %s: %s", result.url, result.error or "empty SHA")
            errors += 1
            continue
        for mv in users.get(result.url, ()):
            if mv.source is not None:
                mv.source.commit_sha = result.commit_sha
                resolved[mv.id] = result.commit_sha
        logger.debug("Resolved %s -> %s", result.url, result.commit_sha[:8])
    logger.info(
        "Commit SHA resolution complete: %d module versions updated, %d errors, %d URLs",
        len(resolved),
        errors,
        len(infos),
    )
    return resolved


def fetch_release_history(github: GitHubClient, owner: str, repo: str) -> list[Release]:
    """Fetch every release of `owner/repo` with retries."""
    return retry_with_backoff(
        lambda: github.fetch_releases(owner, repo),
        max_attempts=MAX_ATTEMPTS,
        backoff=BACKOFF,
        description=f"fetching releases of {owner}/{repo}",
    )
