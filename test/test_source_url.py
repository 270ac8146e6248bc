"""Tests for source URL classification."""

from __future__ import annotations

import pytest

from modgraph.errors import SourceURLError
from modgraph.source_url import SourceURLType, is_github_url, parse_source_url

SHA = "0123456789abcdef0123456789abcdef01234567"


class TestParseSourceURL:
    """Tests for parsing GitHub source URLs."""

    def test_tag_archive(self) -> None:
        """Test a tag archive URL."""
        info = parse_source_url("https://github.com/bazelbuild/rules_go/archive/refs/tags/v0.50.1.tar.gz")
        assert info.type == SourceURLType.tag
        assert (info.organization, info.repository, info.reference) == ("bazelbuild", "rules_go", "v0.50.1")
        assert info.repo_id == "github:bazelbuild/rules_go"

    def test_tag_zip_archive(self) -> None:
        """Test a zip tag archive URL."""
        info = parse_source_url("https://github.com/org/repo/archive/refs/tags/1.0.zip")
        assert info.type == SourceURLType.tag
        assert info.reference == "1.0"

    def test_commit_archive(self) -> None:
        """Test a commit archive URL."""
        info = parse_source_url(f"https://github.com/org/repo/archive/{SHA}.tar.gz")
        assert info.type == SourceURLType.commit_sha
        assert info.reference == SHA

    def test_release_download(self) -> None:
        """Test a release asset URL."""
        info = parse_source_url("https://github.com/org/repo/releases/download/v1.2/repo-v1.2.tar.gz")
        assert info.type == SourceURLType.release
        assert info.reference == "v1.2"

    @pytest.mark.parametrize(
        "url",
        [
            "https://gitlab.com/org/repo/-/archive/v1/repo-v1.tar.gz",
            "https://github.com/org/repo/archive/main.tar.gz",
            "https://mirror.bazel.build/github.com/org/repo/archive/refs/tags/v1.tar.gz",
            "",
        ],
    )
    def test_unknown_patterns(self, url: str) -> None:
        """Test that unrecognized URLs are rejected."""
        with pytest.raises(SourceURLError):
            parse_source_url(url)

    def test_unknown_pattern_is_a_value_error(self) -> None:
        """Test that callers catching ValueError also skip unrecognized URLs."""
        with pytest.raises(ValueError, match="does not match"):
            parse_source_url("ftp://example.com/x")


def test_is_github_url() -> None:
    """Test recognizing github.com URLs."""
    assert is_github_url("https://github.com/org/repo")
    assert not is_github_url("https://gitlab.com/org/repo")
