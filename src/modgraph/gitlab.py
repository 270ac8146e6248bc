"""GitLab API client for repository metadata."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any

import requests

from .concurrency import DEFAULT_BURST, DEFAULT_REQUESTS_PER_HOUR, RateLimiter
from .graphql import MAX_BATCH_SIZE, GitLabProject, decode_alias, execute_graphql, graphql_string
from .repository import GITLAB

if TYPE_CHECKING:
    from collections.abc import Sequence

    from .repository import RepositoryMetadata

logger = logging.getLogger(__name__)

GRAPHQL_URL = "https://gitlab.com/api/graphql"

# GitLab reports languages as percentage shares; scale them to pseudo sizes comparable across projects
SHARE_SCALE = 10000


def build_project_batch_query(repos: Sequence[RepositoryMetadata]) -> str:
    """Build one GraphQL query with an aliased `repoN` sub-query per GitLab project."""
    parts = ["query {"]
    for i, md in enumerate(repos):
        if md.type != GITLAB:
            continue
        full_path = graphql_string(f"{md.organization}/{md.name}")
        parts.append(
            f"  repo{i}: project(fullPath: {full_path}) {{\n"
            "    description\n"
            "    starCount\n"
            "    repository {\n"
            "      rootRef\n"
            "    }\n"
            "    languages {\n"
            "      name\n"
            "      share\n"
            "    }\n"
            "  }"
        )
    parts.append("}")
    return "\n".join(parts) + "\n"


class GitLabClient:
    """Client for the GitLab GraphQL API. Works unauthenticated with a lower quota."""

    def __init__(
        self,
        token: str | None = None,
        session: requests.Session | None = None,
        limiter: RateLimiter | None = None,
    ) -> None:
        """Initialize GitLab API client."""
        self.token: str | None = token
        self.session: requests.Session = session if session is not None else requests.Session()
        self.limiter: RateLimiter = (
            limiter if limiter is not None else RateLimiter(DEFAULT_REQUESTS_PER_HOUR, DEFAULT_BURST)
        )

    def graphql(self, query: str) -> dict[str, Any]:
        """Execute a GraphQL query against the GitLab API."""
        return execute_graphql(self.session, GRAPHQL_URL, query, self.token)

    def fetch_repository_metadata_batch(self, repos: Sequence[RepositoryMetadata]) -> int:
        """Fetch metadata for up to 100 projects in a single query and fill it in place.

        Returns the number of projects that received metadata.
        """
        if not repos:
            return 0
        if len(repos) > MAX_BATCH_SIZE:
            msg = f"maximum {MAX_BATCH_SIZE} repositories per batch, got {len(repos)}"
            raise ValueError(msg)
        self.limiter.acquire()
        data = self.graphql(build_project_batch_query(repos))
        fetched = 0
        for i, md in enumerate(repos):
            if md.type != GITLAB:
                continue
            project: GitLabProject | None = decode_alias(data, f"repo{i}", GitLabProject, md.id)
            if project is None:
                continue
            md.description = project.description or ""
            md.stargazers = project.star_count
            md.set_languages({lang.name: int(lang.share * SHARE_SCALE) for lang in project.languages or ()})
            fetched += 1
        return fetched
