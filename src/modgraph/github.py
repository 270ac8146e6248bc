"""GitHub API client: repository metadata, release history and commit resolution."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any

import requests

from .concurrency import DEFAULT_BURST, DEFAULT_REQUESTS_PER_HOUR, RateLimiter, retry_with_backoff
from .errors import FetchError
from .graphql import (
    MAX_BATCH_SIZE,
    GitHubReleasesData,
    GitHubRepository,
    decode_alias,
    execute_graphql,
    graphql_string,
)
from .releases import Release
from .repository import GITHUB
from .source_url import SourceURLInfo, SourceURLType

if TYPE_CHECKING:
    from collections.abc import Sequence

    from .repository import RepositoryMetadata

logger = logging.getLogger(__name__)

API_BASE = "https://api.github.com"
GRAPHQL_URL = f"{API_BASE}/graphql"
REST_TIMEOUT = 30
SHA_LENGTH = 40


def build_repository_batch_query(repos: Sequence[RepositoryMetadata]) -> str:
    """Build one GraphQL query with an aliased `repoN` sub-query per GitHub repository."""
    parts = ["query {"]
    for i, md in enumerate(repos):
        if md.type != GITHUB:
            continue
        parts.append(
            f"  repo{i}: repository(owner: {graphql_string(md.organization)}, name: {graphql_string(md.name)}) {{\n"
            "    description\n"
            "    stargazerCount\n"
            "    languages(first: 10, orderBy: {field: SIZE, direction: DESC}) {\n"
            "      edges {\n"
            "        size\n"
            "        node {\n"
            "          name\n"
            "        }\n"
            "      }\n"
            "    }\n"
            "  }"
        )
    parts.append("}")
    return "\n".join(parts) + "\n"


def build_releases_query(owner: str, repo: str, after: str | None = None) -> str:
    """Build a query for one page of releases, newest first."""
    after_clause = f", after: {graphql_string(after)}" if after else ""
    return f"""query {{
  repository(owner: {graphql_string(owner)}, name: {graphql_string(repo)}) {{
    releases(first: 100{after_clause}, orderBy: {{field: CREATED_AT, direction: DESC}}) {{
      nodes {{
        tagName
        createdAt
        isDraft
        isPrerelease
        tagCommit {{
          oid
          committedDate
          message
        }}
      }}
      pageInfo {{
        hasNextPage
        endCursor
      }}
    }}
  }}
}}
"""


class GitHubClient:
    """Client for GitHub API interactions."""

    def __init__(
        self,
        token: str | None = None,
        session: requests.Session | None = None,
        limiter: RateLimiter | None = None,
    ) -> None:
        """Initialize GitHub API client.

        Args:
            token: GitHub personal access token for authentication
            session: HTTP session to use; a new one is created by default
            limiter: Rate limiter shared by every request of this client

        """
        self.token: str | None = token
        self.session: requests.Session = session if session is not None else requests.Session()
        self.session.headers["Accept"] = "application/vnd.github+json"
        if token:
            self.session.headers["Authorization"] = f"Bearer {token}"
        self.limiter: RateLimiter = (
            limiter if limiter is not None else RateLimiter(DEFAULT_REQUESTS_PER_HOUR, DEFAULT_BURST)
        )

    def graphql(self, query: str) -> dict[str, Any]:
        """Execute a GraphQL query against the GitHub API."""
        return execute_graphql(self.session, GRAPHQL_URL, query, self.token)

    def get(self, path: str) -> Any:  # noqa: ANN401
        """GET a REST endpoint and return its decoded JSON body.

        Raises:
            FetchError: on a transport error, a non-2xx status or an undecodable body

        """
        url = f"{API_BASE}/{path.lstrip('/')}"
        try:
            response = self.session.get(url, timeout=REST_TIMEOUT)
        except requests.RequestException as e:
            msg = f"GET {url} failed: {e}"
            raise FetchError(msg) from e
        if not response.ok:
            msg = f"GET {url} failed with status {response.status_code}"
            raise FetchError(msg, status_code=response.status_code)
        try:
            return response.json()
        except ValueError as e:
            msg = f"GET {url} returned an undecodable body: {e}"
            raise FetchError(msg) from e

    def report_rate_limits(self) -> dict[str, Any] | None:
        """Log the remaining REST and GraphQL quota."""
        try:
            resources = self.get("rate_limit").get("resources", {})
        except (FetchError, AttributeError) as e:
            logger.warning("Failed to get GitHub API rate limits: %s", e)
            return None
        for name, label in (("core", "REST"), ("graphql", "GraphQL")):
            limits = resources.get(name) or {}
            logger.info(
                "GitHub %s API rate limit: %s remaining of %s (resets at %s)",
                label,
                limits.get("remaining"),
                limits.get("limit"),
                limits.get("reset"),
            )
        return resources

    def fetch_repository_metadata_batch(self, repos: Sequence[RepositoryMetadata]) -> int:
        """Fetch metadata for up to 100 repositories in a single query and fill it in place.

        A repository missing from the response is left untouched. Returns the number of repositories that
        received metadata.

        Raises:
            FetchError: if the query as a whole failed
            ValueError: if more than 100 repositories are passed

        """
        if not repos:
            return 0
        if len(repos) > MAX_BATCH_SIZE:
            msg = f"maximum {MAX_BATCH_SIZE} repositories per batch, got {len(repos)}"
            raise ValueError(msg)
        self.limiter.acquire()
        data = self.graphql(build_repository_batch_query(repos))
        fetched = 0
        for i, md in enumerate(repos):
            if md.type != GITHUB:
                continue
            result: GitHubRepository | None = decode_alias(data, f"repo{i}", GitHubRepository, md.id)
            if result is None:
                continue
            md.description = result.description or ""
            md.stargazers = result.stargazer_count
            edges = result.languages.edges if result.languages is not None else []
            md.set_languages({edge.node.name: edge.size for edge in edges})
            fetched += 1
        return fetched

    def fetch_releases(self, owner: str, repo: str) -> list[Release]:
        """Fetch every non-draft release of a repository, following pagination."""
        releases: list[Release] = []
        after: str | None = None
        while True:
            self.limiter.acquire()
            data = self.graphql(build_releases_query(owner, repo, after))
            try:
                page = GitHubReleasesData.model_validate(data).repository.releases
            except ValueError as e:
                msg = f"could not decode releases of {owner}/{repo}: {e}"
                raise FetchError(msg) from e
            for node in page.nodes:
                if node is None or node.is_draft or not node.tag_name:
                    continue
                commit = node.tag_commit
                releases.append(
                    Release(
                        version=node.tag_name,
                        created_at=node.created_at or "",
                        is_prerelease=node.is_prerelease,
                        url=f"https://github.com/{owner}/{repo}/archive/refs/tags/{node.tag_name}.tar.gz",
                        commit_sha=commit.oid if commit is not None else "",
                        commit_date=(commit.committed_date or "") if commit is not None else "",
                        commit_message=(commit.message or "") if commit is not None else "",
                    )
                )
            if not page.page_info.has_next_page or not page.page_info.end_cursor:
                break
            after = page.page_info.end_cursor
            logger.info("Fetched %d releases so far, fetching next page...", len(releases))
        return releases

    def _ref_sha(self, owner: str, repo: str, ref: str) -> str:
        """Resolve `ref` (for example `tags/v1.0`), dereferencing annotated tags."""
        obj = self.get(f"repos/{owner}/{repo}/git/ref/{ref}").get("object") or {}
        if obj.get("type") == "tag":
            tag = self.get(f"repos/{owner}/{repo}/git/tags/{obj.get('sha')}")
            return (tag.get("object") or {}).get("sha", "")
        return obj.get("sha", "")

    def tag_commit_sha(self, owner: str, repo: str, tag: str) -> str:
        """Resolve a git tag to the commit it points at."""
        sha = self._ref_sha(owner, repo, f"tags/{tag}")
        if not sha:
            msg = f"tag {tag} of {owner}/{repo} does not point at a commit"
            raise FetchError(msg)
        return sha

    def release_commit_sha(self, owner: str, repo: str, version: str) -> str:
        """Resolve a release to the commit its target commitish points at.

        The commitish is tried as a branch, then as a tag, then (when it looks like one) as a commit SHA.
        """
        release = self.get(f"repos/{owner}/{repo}/releases/tags/{version}")
        target = release.get("target_commitish") or ""
        if not target:
            msg = f"release {version} of {owner}/{repo} has no target commitish"
            raise FetchError(msg)
        try:
            branch = self.get(f"repos/{owner}/{repo}/branches/{target}")
            sha = (branch.get("commit") or {}).get("sha")
            if sha:
                return sha
        except FetchError as e:
            logger.debug("%s/%s: %s is not a branch: %s", owner, repo, target, e)
        try:
            sha = self._ref_sha(owner, repo, f"tags/{target}")
            if sha:
                return sha
        except FetchError as e:
            logger.debug("%s/%s: %s is not a tag: %s", owner, repo, target, e)
        if len(target) == SHA_LENGTH:
            commit = self.get(f"repos/{owner}/{repo}/commits/{target}")
            sha = commit.get("sha")
            if sha:
                return sha
        msg = f"could not resolve target commitish {target!r} of {owner}/{repo} to a commit SHA"
        raise FetchError(msg)

    def resolve_source_commit(self, info: SourceURLInfo, max_attempts: int = 3) -> str:
        """Resolve the commit a parsed source URL refers to.

        Commit archives need no request. Tags and releases are looked up with retries; a 404 is not retried.
        """
        if info.type == SourceURLType.commit_sha:
            return info.reference
        if info.type == SourceURLType.tag:
            return retry_with_backoff(
                lambda: self.tag_commit_sha(info.organization, info.repository, info.reference),
                max_attempts=max_attempts,
                description=f"resolving tag {info.reference} of {info.repo_id}",
                limiter=self.limiter,
            )
        return retry_with_backoff(
            lambda: self.release_commit_sha(info.organization, info.repository, info.reference),
            max_attempts=max_attempts,
            description=f"resolving release {info.reference} of {info.repo_id}",
            limiter=self.limiter,
        )
