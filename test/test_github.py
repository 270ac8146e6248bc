"""Tests for the GitHub and GitLab API clients."""

from __future__ import annotations

from unittest.mock import MagicMock, Mock

import pytest
import requests

from modgraph.concurrency import RateLimiter
from modgraph.errors import FetchError
from modgraph.github import GitHubClient, build_repository_batch_query
from modgraph.gitlab import GitLabClient, build_project_batch_query
from modgraph.repository import RepositoryMetadata
from modgraph.source_url import parse_source_url

SHA = "0123456789abcdef0123456789abcdef01234567"


def json_response(body: object, status_code: int = 200) -> Mock:
    response = Mock()
    response.status_code = status_code
    response.ok = 200 <= status_code < 300
    response.text = str(body)
    response.json.return_value = body
    return response


def release_node(tag: str, *, draft: bool = False) -> dict:
    return {
        "tagName": tag,
        "createdAt": "2024-01-01T00:00:00Z",
        "isDraft": draft,
        "isPrerelease": False,
        "tagCommit": {"oid": SHA, "committedDate": "2023-12-31T00:00:00Z", "message": f"Release {tag}"},
    }


class TestGitHubClient:
    """Tests for GitHubClient."""

    def test_initialization_with_token(self) -> None:
        """Test that the token is sent as a bearer credential."""
        client = GitHubClient(token="test_token")
        assert client.session.headers["Authorization"] == "Bearer test_token"

    def test_batch_query(self) -> None:
        """Test that one aliased sub-query is built per GitHub repository."""
        query = build_repository_batch_query(
            [RepositoryMetadata("github", "org", "a"), RepositoryMetadata("gitlab", "org", "b")]
        )
        assert 'repo0: repository(owner: "org", name: "a")' in query
        assert "repo1" not in query

    def test_fetch_repository_metadata_batch(self) -> None:
        """Test decoding a batch response into the repository records."""
        session = MagicMock()
        session.post.return_value = json_response(
            {
                "data": {
                    "repo0": {
                        "description": "Go rules",
                        "stargazerCount": 1300,
                        "languages": {
                            "edges": [
                                {"size": 900, "node": {"name": "Go"}},
                                {"size": 100, "node": {"name": "Starlark"}},
                            ]
                        },
                    },
                    "repo1": None,
                }
            }
        )
        found = RepositoryMetadata("github", "bazelbuild", "rules_go")
        missing = RepositoryMetadata("github", "bazelbuild", "gone", description="prior")
        client = GitHubClient(token="t", session=session)
        assert client.fetch_repository_metadata_batch([found, missing]) == 1
        assert found.description == "Go rules"
        assert found.stargazers == 1300
        assert found.languages == {"Go": 900, "Starlark": 100}
        assert found.primary_language == "Go"
        assert missing.description == "prior"
        assert missing.languages is None

    def test_batch_fetch_takes_a_limiter_token(self) -> None:
        """Test that each batch query waits on the client's rate limiter once."""
        session = MagicMock()
        session.post.return_value = json_response({"data": {"repo0": None, "repo1": None}})
        limiter = Mock()
        client = GitHubClient(token="t", session=session, limiter=limiter)
        client.fetch_repository_metadata_batch(
            [RepositoryMetadata("github", "org", "a"), RepositoryMetadata("github", "org", "b")]
        )
        assert limiter.acquire.call_count == 1

    def test_tag_resolution_takes_a_limiter_token(self) -> None:
        """Test that resolving a tag goes through the client's rate limiter."""
        session = MagicMock()
        session.get.return_value = json_response({"object": {"type": "commit", "sha": SHA}})
        limiter = Mock()
        client = GitHubClient(token="t", session=session, limiter=limiter)
        info = parse_source_url("https://github.com/org/repo/archive/refs/tags/v1.0.tar.gz")
        assert client.resolve_source_commit(info) == SHA
        assert limiter.acquire.call_count == 1

    def test_graphql_errors(self) -> None:
        """Test that a response carrying GraphQL errors is a fetch error."""
        session = MagicMock()
        session.post.return_value = json_response({"data": None, "errors": [{"message": "rate limited"}]})
        client = GitHubClient(token="t", session=session)
        with pytest.raises(FetchError, match="rate limited"):
            client.fetch_repository_metadata_batch([RepositoryMetadata("github", "org", "a")])

    def test_http_error(self) -> None:
        """Test that a non-200 response is a fetch error carrying its status."""
        session = MagicMock()
        session.post.return_value = json_response({}, status_code=502)
        client = GitHubClient(token="t", session=session)
        with pytest.raises(FetchError) as excinfo:
            client.graphql("query { viewer { login } }")
        assert excinfo.value.status_code == 502

    def test_transport_error(self) -> None:
        """Test that a failed request is a fetch error."""
        session = MagicMock()
        session.post.side_effect = requests.Timeout("timed out")
        client = GitHubClient(token="t", session=session)
        with pytest.raises(FetchError, match="timed out"):
            client.graphql("query { viewer { login } }")

    def test_batch_size_limit(self) -> None:
        """Test that a batch holds at most 100 repositories."""
        client = GitHubClient(token="t", session=MagicMock())
        with pytest.raises(ValueError, match="maximum 100"):
            client.fetch_repository_metadata_batch([RepositoryMetadata("github", "org", str(i)) for i in range(101)])

    def test_fetch_releases_follows_pages(self) -> None:
        """Test that every page is fetched and drafts are skipped."""
        session = MagicMock()
        session.post.side_effect = [
            json_response(
                {
                    "data": {
                        "repository": {
                            "releases": {
                                "nodes": [release_node("8.0.0"), release_node("8.1.0rc1", draft=True)],
                                "pageInfo": {"hasNextPage": True, "endCursor": "cursor1"},
                            }
                        }
                    }
                }
            ),
            json_response(
                {
                    "data": {
                        "repository": {
                            "releases": {
                                "nodes": [release_node("7.0.0"), {"tagName": ""}],
                                "pageInfo": {"hasNextPage": False, "endCursor": None},
                            }
                        }
                    }
                }
            ),
        ]
        client = GitHubClient(token="t", session=session)
        releases = client.fetch_releases("bazelbuild", "bazel")
        assert [r.version for r in releases] == ["8.0.0", "7.0.0"]
        assert releases[0].url == "https://github.com/bazelbuild/bazel/archive/refs/tags/8.0.0.tar.gz"
        assert releases[0].commit_sha == SHA
        assert releases[0].commit_message == "Release 8.0.0"
        assert session.post.call_count == 2
        assert 'after: "cursor1"' in session.post.call_args_list[1].kwargs["json"]["query"]

    def test_commit_archive_needs_no_request(self) -> None:
        """Test that a commit archive URL resolves to its own SHA."""
        session = MagicMock()
        client = GitHubClient(token="t", session=session)
        info = parse_source_url(f"https://github.com/org/repo/archive/{SHA}.tar.gz")
        assert client.resolve_source_commit(info) == SHA
        session.get.assert_not_called()

    def test_annotated_tag_is_dereferenced(self) -> None:
        """Test resolving a tag object to the commit it points at."""
        session = MagicMock()
        session.get.side_effect = [
            json_response({"object": {"type": "tag", "sha": "tagobject"}}),
            json_response({"object": {"type": "commit", "sha": SHA}}),
        ]
        client = GitHubClient(token="t", session=session)
        info = parse_source_url("https://github.com/org/repo/archive/refs/tags/v1.0.tar.gz")
        assert client.resolve_source_commit(info) == SHA
        assert session.get.call_args_list[0].args[0].endswith("repos/org/repo/git/ref/tags/v1.0")
        assert session.get.call_args_list[1].args[0].endswith("repos/org/repo/git/tags/tagobject")

    def test_missing_tag_is_not_retried(self) -> None:
        """Test that a 404 fails immediately."""
        session = MagicMock()
        session.get.return_value = json_response({"message": "Not Found"}, status_code=404)
        client = GitHubClient(token="t", session=session)
        info = parse_source_url("https://github.com/org/repo/archive/refs/tags/v1.0.tar.gz")
        with pytest.raises(FetchError):
            client.resolve_source_commit(info)
        assert session.get.call_count == 1

    def test_release_resolves_branch_commitish(self) -> None:
        """Test resolving a release whose target commitish is a branch."""
        session = MagicMock()
        session.get.side_effect = [
            json_response({"target_commitish": "main"}),
            json_response({"commit": {"sha": SHA}}),
        ]
        client = GitHubClient(token="t", session=session)
        info = parse_source_url("https://github.com/org/repo/releases/download/v1.0/repo-v1.0.tar.gz")
        assert client.resolve_source_commit(info) == SHA

    def test_release_resolves_sha_commitish(self) -> None:
        """Test falling back to a commit lookup when the commitish is neither a branch nor a tag."""
        session = MagicMock()
        session.get.side_effect = [
            json_response({"target_commitish": SHA}),
            json_response({"message": "Branch not found"}, status_code=404),
            json_response({"message": "Not Found"}, status_code=404),
            json_response({"sha": SHA}),
        ]
        client = GitHubClient(token="t", session=session)
        assert client.release_commit_sha("org", "repo", "v1.0") == SHA


class TestGitLabClient:
    """Tests for GitLabClient."""

    def test_batch_query(self) -> None:
        """Test that projects are addressed by their full path."""
        query = build_project_batch_query([RepositoryMetadata("gitlab", "group/sub", "proj")])
        assert 'repo0: project(fullPath: "group/sub/proj")' in query

    def test_fetch_repository_metadata_batch(self) -> None:
        """Test that language shares are scaled to sizes."""
        session = MagicMock()
        session.post.return_value = json_response(
            {
                "data": {
                    "repo0": {
                        "description": "A project",
                        "starCount": 12,
                        "repository": {"rootRef": "main"},
                        "languages": [{"name": "C", "share": 60.0}, {"name": "Shell", "share": 40.0}],
                    }
                }
            }
        )
        md = RepositoryMetadata("gitlab", "group", "proj")
        client = GitLabClient(session=session)
        assert client.fetch_repository_metadata_batch([md]) == 1
        assert md.stargazers == 12
        assert md.languages == {"C": 600000, "Shell": 400000}
        assert md.primary_language == "C"
        assert "Authorization" not in session.post.call_args.kwargs["headers"]

    def test_batch_fetch_takes_a_limiter_token(self) -> None:
        """Test that each batch query waits on the client's rate limiter once."""
        session = MagicMock()
        session.post.return_value = json_response({"data": {"repo0": None}})
        limiter = Mock()
        client = GitLabClient(session=session, limiter=limiter)
        assert client.fetch_repository_metadata_batch([RepositoryMetadata("gitlab", "group", "proj")]) == 0
        assert limiter.acquire.call_count == 1

    def test_default_limiter(self) -> None:
        """Test that a client built without a limiter still rate limits."""
        assert isinstance(GitLabClient(session=MagicMock()).limiter, RateLimiter)
