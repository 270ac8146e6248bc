"""Interpretation of GitHub module source URLs."""

from __future__ import annotations

import re
from dataclasses import dataclass
from enum import Enum

from .errors import SourceURLError


class SourceURLType(str, Enum):
    """How a source URL refers to a revision of its repository."""

    tag = "tag"
    commit_sha = "commit_sha"
    release = "release"


TAG_ARCHIVE_RE = re.compile(r"^https://github\.com/([^/]+)/([^/]+)/archive/refs/tags/([^/]+)\.(tar\.gz|zip)$")
COMMIT_ARCHIVE_RE = re.compile(r"^https://github\.com/([^/]+)/([^/]+)/archive/([a-f0-9]{40})\.(tar\.gz|zip)$")
RELEASE_DOWNLOAD_RE = re.compile(r"^https://github\.com/([^/]+)/([^/]+)/releases/download/([^/]+)/[^/]+$")


@dataclass(frozen=True)
class SourceURLInfo:
    """The repository and revision a source URL points at."""

    url: str
    organization: str
    repository: str
    type: SourceURLType
    reference: str

    @property
    def repo_id(self) -> str:
        """The canonical identity of the repository."""
        return f"github:{self.organization}/{self.repository}"


def is_github_url(url: str) -> bool:
    """Check whether `url` points at github.com."""
    return url.startswith("https://github.com/")


def parse_source_url(url: str) -> SourceURLInfo:
    """Classify a GitHub source URL as a tag archive, commit archive or release download.

    Raises:
        SourceURLError: if the URL matches none of these

    """
    m = TAG_ARCHIVE_RE.match(url)
    if m:
        return SourceURLInfo(url, m.group(1), m.group(2), SourceURLType.tag, m.group(3))
    m = COMMIT_ARCHIVE_RE.match(url)
    if m:
        return SourceURLInfo(url, m.group(1), m.group(2), SourceURLType.commit_sha, m.group(3))
    m = RELEASE_DOWNLOAD_RE.match(url)
    if m:
        return SourceURLInfo(url, m.group(1), m.group(2), SourceURLType.release, m.group(3))
    msg = f"URL does not match any known GitHub source URL pattern: {url}"
    raise SourceURLError(msg)
