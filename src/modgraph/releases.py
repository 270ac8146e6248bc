"""Release history records."""

from __future__ import annotations

from typing import Any


class Release:
    """A published release of a repository, identified by its tag name."""

    def __init__(  # noqa: PLR0913
        self,
        version: str,
        created_at: str = "",
        *,
        is_draft: bool = False,
        is_prerelease: bool = False,
        url: str = "",
        commit_sha: str = "",
        commit_date: str = "",
        commit_message: str = "",
    ) -> None:
        """Initialize a release."""
        self.version: str = version
        self.created_at: str = created_at
        self.is_draft: bool = is_draft
        self.is_prerelease: bool = is_prerelease
        self.url: str = url
        self.commit_sha: str = commit_sha
        self.commit_date: str = commit_date
        self.commit_message: str = commit_message

    def to_obj(self) -> dict[str, Any]:
        """Convert release to dictionary representation."""
        ret: dict[str, Any] = {"version": self.version}
        if self.created_at:
            ret["created_at"] = self.created_at
        if self.is_draft:
            ret["is_draft"] = True
        if self.is_prerelease:
            ret["is_prerelease"] = True
        if self.url:
            ret["url"] = self.url
        if self.commit_sha:
            ret["commit"] = {
                "sha1": self.commit_sha,
                "date": self.commit_date,
                "message": self.commit_message,
            }
        return ret

    @classmethod
    def from_obj(cls, obj: dict[str, Any]) -> Release:
        """Create a release from its dictionary representation."""
        commit = obj.get("commit") or {}
        return cls(
            version=obj["version"],
            created_at=obj.get("created_at", ""),
            is_draft=bool(obj.get("is_draft", False)),
            is_prerelease=bool(obj.get("is_prerelease", False)),
            url=obj.get("url", ""),
            commit_sha=commit.get("sha1", ""),
            commit_date=commit.get("date", ""),
            commit_message=commit.get("message", ""),
        )

    def __eq__(self, other: object) -> bool:
        """Check equality with another release."""
        return isinstance(other, Release) and self.to_obj() == other.to_obj()

    def __hash__(self) -> int:
        """Compute hash for release."""
        return hash(self.version)

    def __repr__(self) -> str:
        """Return the representation of the release."""
        return f"{self.__class__.__name__}({self.version!r})"
