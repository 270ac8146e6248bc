"""Source repository identity and metadata for registry modules."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any
from urllib.parse import urlsplit

if TYPE_CHECKING:
    from collections.abc import Iterable

    from .models import Module

logger = logging.getLogger(__name__)

GITHUB = "github"
GITLAB = "gitlab"
UNKNOWN = "unknown"

_HOSTS = {"github.com": GITHUB, "gitlab.com": GITLAB}


class RepositoryMetadata:
    """What the hosting provider knows about a source repository.

    `languages` is `None` until the repository has been fetched; an empty dict means it was fetched and
    the provider reported no languages.
    """

    def __init__(  # noqa: PLR0913
        self,
        type: str,  # noqa: A002
        organization: str,
        name: str,
        description: str = "",
        stargazers: int = 0,
        languages: dict[str, int] | None = None,
        primary_language: str = "",
        canonical_name: str = "",
    ) -> None:
        """Initialize repository metadata."""
        self.type: str = type
        self.organization: str = organization
        self.name: str = name
        self.description: str = description
        self.stargazers: int = stargazers
        self.languages: dict[str, int] | None = languages
        self.primary_language: str = primary_language
        self.canonical_name: str = canonical_name

    @property
    def id(self) -> str:
        """The canonical repository identity."""
        return repository_id(self)

    @property
    def fetched(self) -> bool:
        """Whether metadata has already been fetched for this repository."""
        return self.languages is not None

    def set_languages(self, languages: dict[str, int]) -> None:
        """Record the per-language size map and derive the primary language from it."""
        self.languages = dict(languages)
        self.primary_language = ""
        largest = 0
        for language, size in sorted(self.languages.items()):
            if size > largest:
                largest = size
                self.primary_language = language

    def to_obj(self) -> dict[str, Any]:
        """Convert repository metadata to dictionary representation."""
        ret: dict[str, Any] = {
            "type": self.type,
            "organization": self.organization,
            "name": self.name,
        }
        if self.description:
            ret["description"] = self.description
        if self.stargazers:
            ret["stargazers"] = self.stargazers
        if self.languages is not None:
            ret["languages"] = dict(sorted(self.languages.items()))
        if self.primary_language:
            ret["primary_language"] = self.primary_language
        if self.canonical_name:
            ret["canonical_name"] = self.canonical_name
        return ret

    @classmethod
    def from_obj(cls, obj: dict[str, Any]) -> RepositoryMetadata:
        """Create repository metadata from its dictionary representation."""
        languages = obj.get("languages")
        return cls(
            type=obj.get("type", UNKNOWN),
            organization=obj.get("organization", ""),
            name=obj.get("name", ""),
            description=obj.get("description", ""),
            stargazers=int(obj.get("stargazers", 0)),
            languages={k: int(v) for k, v in languages.items()} if languages is not None else None,
            primary_language=obj.get("primary_language", ""),
            canonical_name=obj.get("canonical_name", ""),
        )

    def __eq__(self, other: object) -> bool:
        """Check equality with other repository metadata."""
        return isinstance(other, RepositoryMetadata) and self.to_obj() == other.to_obj()

    def __hash__(self) -> int:
        """Compute hash for repository metadata."""
        return hash(self.id)

    def __repr__(self) -> str:
        """Return the representation of the repository metadata."""
        return f"{self.__class__.__name__}({self.id!r})"


def repository_id(md: RepositoryMetadata) -> str:
    """Format the canonical `<provider>:<org>/<name>` identity; unknown providers format as `org/name`."""
    if md.type in (GITHUB, GITLAB):
        return f"{md.type}:{md.organization}/{md.name}"
    return f"{md.organization}/{md.name}"


def _split_path(path: str) -> tuple[str, str] | None:
    path = path.strip("/")
    if path.endswith(".git"):
        path = path[: -len(".git")]
    org, sep, name = path.rpartition("/")
    if not sep or not org or not name:
        return None
    return org, name


def parse_repository(s: str) -> RepositoryMetadata | None:
    """Parse a repository reference as found in module metadata.

    Accepts `github:org/name`, `gitlab:org/name` and `http(s)://github.com/org/name` or
    `http(s)://gitlab.com/org/name`. Returns `None` for anything else.
    """
    s = s.strip()
    for provider in (GITHUB, GITLAB):
        prefix = f"{provider}:"
        if s.startswith(prefix):
            path = s[len(prefix) :].split("?", 1)[0].split("#", 1)[0]
            parts = _split_path(path)
            if parts is None:
                return None
            return RepositoryMetadata(type=provider, organization=parts[0], name=parts[1])
    if s.startswith(("https://", "http://")):
        url = urlsplit(s)
        provider = _HOSTS.get(url.netloc.lower())
        if provider is None:
            return None
        parts = _split_path(url.path)
        if parts is None:
            return None
        return RepositoryMetadata(type=provider, organization=parts[0], name=parts[1])
    return None


def track_repositories(
    modules: Iterable[Module],
    repositories: dict[str, RepositoryMetadata],
) -> int:
    """Register every repository referenced by `modules` in `repositories`.

    Existing entries (for example ones loaded from the repository metadata cache) are never overwritten.
    Each module's `repository_metadata` is pointed at the shared record for its first parseable repository.
    Returns the number of newly tracked repositories.
    """
    added = 0
    for module in modules:
        for ref in module.metadata.repository:
            md = parse_repository(ref)
            if md is None:
                logger.debug("Skipping unrecognized repository %r of module %s", ref, module.name)
                continue
            key = md.id
            if key not in repositories:
                repositories[key] = md
                added += 1
            if module.repository_metadata is None:
                module.repository_metadata = repositories[key]
                for mv in module.versions:
                    mv.repository_metadata = repositories[key]
    return added
