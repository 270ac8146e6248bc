"""Typed GraphQL response schema shared by the hosting-provider clients."""

from __future__ import annotations

import json
import logging
from typing import Any

import requests
from pydantic import BaseModel, ConfigDict, Field, ValidationError

from .errors import FetchError

logger = logging.getLogger(__name__)

GRAPHQL_TIMEOUT = 60
MAX_BATCH_SIZE = 100


class GraphQLError(BaseModel):
    """One entry of a GraphQL `errors` array."""

    message: str = ""


class GraphQLResponse(BaseModel):
    """The envelope of every GraphQL response."""

    data: dict[str, Any] | None = None
    errors: list[GraphQLError] = Field(default_factory=list)


class _Schema(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")


class GitHubLanguageNode(_Schema):
    """A language reported by GitHub."""

    name: str


class GitHubLanguageEdge(_Schema):
    """A language and the number of bytes written in it."""

    size: int
    node: GitHubLanguageNode


class GitHubLanguageConnection(_Schema):
    """The languages of a GitHub repository, largest first."""

    edges: list[GitHubLanguageEdge] = Field(default_factory=list)


class GitHubRepository(_Schema):
    """The fields of a GitHub `repository` query."""

    description: str | None = None
    stargazer_count: int = Field(default=0, alias="stargazerCount")
    languages: GitHubLanguageConnection | None = None


class GitHubTagCommit(_Schema):
    """The commit a release tag points at."""

    oid: str = ""
    committed_date: str | None = Field(default=None, alias="committedDate")
    message: str | None = None


class GitHubReleaseNode(_Schema):
    """One GitHub release."""

    tag_name: str | None = Field(default=None, alias="tagName")
    created_at: str | None = Field(default=None, alias="createdAt")
    is_draft: bool = Field(default=False, alias="isDraft")
    is_prerelease: bool = Field(default=False, alias="isPrerelease")
    tag_commit: GitHubTagCommit | None = Field(default=None, alias="tagCommit")


class PageInfo(_Schema):
    """Cursor pagination state."""

    has_next_page: bool = Field(default=False, alias="hasNextPage")
    end_cursor: str | None = Field(default=None, alias="endCursor")


class GitHubReleaseConnection(_Schema):
    """A page of GitHub releases."""

    nodes: list[GitHubReleaseNode | None] = Field(default_factory=list)
    page_info: PageInfo = Field(default_factory=PageInfo, alias="pageInfo")


class GitHubReleasesRepository(_Schema):
    """The `repository` field of a releases query."""

    releases: GitHubReleaseConnection


class GitHubReleasesData(_Schema):
    """The data of a releases query."""

    repository: GitHubReleasesRepository


class GitLabLanguage(_Schema):
    """A language and its percentage share of a GitLab project."""

    name: str
    share: float


class GitLabRepositoryRef(_Schema):
    """The default branch of a GitLab project."""

    root_ref: str | None = Field(default=None, alias="rootRef")


class GitLabProject(_Schema):
    """The fields of a GitLab `project` query."""

    description: str | None = None
    star_count: int = Field(default=0, alias="starCount")
    repository: GitLabRepositoryRef | None = None
    languages: list[GitLabLanguage] | None = None


def graphql_string(value: str) -> str:
    """Quote `value` as a GraphQL string literal."""
    return json.dumps(value)


def execute_graphql(
    session: requests.Session,
    url: str,
    query: str,
    token: str | None = None,
    timeout: float = GRAPHQL_TIMEOUT,
) -> dict[str, Any]:
    """POST a GraphQL query and return its `data`.

    Raises:
        FetchError: on a transport error, a non-200 status, an undecodable body or a non-empty `errors` array

    """
    headers = {"Content-Type": "application/json"}
    if token:
        headers["Authorization"] = f"Bearer {token}"
    try:
        response = session.post(url, json={"query": query}, headers=headers, timeout=timeout)
    except requests.RequestException as e:
        msg = f"GraphQL request to {url} failed: {e}"
        raise FetchError(msg) from e
    if response.status_code != 200:  # noqa: PLR2004
        msg = f"GraphQL request failed with status {response.status_code}: {response.text}"
        raise FetchError(msg, status_code=response.status_code)
    try:
        envelope = GraphQLResponse.model_validate(response.json())
    except (ValueError, ValidationError) as e:
        msg = f"failed to decode GraphQL response from {url}: {e}"
        raise FetchError(msg) from e
    if envelope.errors:
        msg = f"GraphQL errors: {'; '.join(err.message for err in envelope.errors)}"
        raise FetchError(msg)
    return envelope.data or {}


def decode_alias(data: dict[str, Any], alias: str, schema: type[_Schema], label: str) -> Any | None:  # noqa: ANN401
    """Decode one aliased sub-query result, or return `None` if it is absent or malformed."""
    obj = data.get(alias)
    if obj is None:
        logger.warning("%s: GraphQL response repository not found: %s", label, alias)
        return None
    try:
        return schema.model_validate(obj)
    except ValidationError as e:
        logger.warning("%s: could not decode GraphQL response: %s", label, e)
        return None
