"""URL liveness checks."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any

import requests

from .concurrency import DEFAULT_MAX_WORKERS, fan_out

if TYPE_CHECKING:
    from collections.abc import Iterable

    from .cache import ResourceStatusCache

logger = logging.getLogger(__name__)

CHECK_TIMEOUT = 10
MAX_REDIRECTS = 10

USER_AGENT = "modgraph-url-check/1.0"


class ResourceStatus:
    """The outcome of probing a URL. A code of 0 means the request itself failed."""

    def __init__(self, url: str, code: int = 0, message: str = "") -> None:
        """Initialize a resource status."""
        self.url: str = url
        self.code: int = code
        self.message: str = message

    @property
    def exists(self) -> bool:
        """Whether the URL answered with a 2xx status."""
        return 200 <= self.code < 300  # noqa: PLR2004

    def to_obj(self) -> dict[str, Any]:
        """Convert status to dictionary representation."""
        ret: dict[str, Any] = {"url": self.url, "code": self.code}
        if self.message:
            ret["message"] = self.message
        return ret

    @classmethod
    def from_obj(cls, obj: dict[str, Any]) -> ResourceStatus:
        """Create a status from its dictionary representation."""
        return cls(url=obj["url"], code=int(obj.get("code", 0)), message=obj.get("message", ""))

    def __eq__(self, other: object) -> bool:
        """Check equality with another status."""
        return isinstance(other, ResourceStatus) and self.to_obj() == other.to_obj()

    def __hash__(self) -> int:
        """Compute hash for status."""
        return hash((self.url, self.code))

    def __repr__(self) -> str:
        """Return the representation of the status."""
        return f"{self.__class__.__name__}({self.url!r}, {self.code})"


def _session() -> requests.Session:
    session = requests.Session()
    session.max_redirects = MAX_REDIRECTS
    session.headers["User-Agent"] = USER_AGENT
    return session


def check_url(url: str, session: requests.Session | None = None) -> ResourceStatus:
    """Probe `url` with a HEAD request, following redirects."""
    if session is None:
        session = _session()
    try:
        response = session.head(url, timeout=CHECK_TIMEOUT, allow_redirects=True)
    except requests.RequestException as e:
        logger.debug("HEAD %s failed: %s", url, e)
        return ResourceStatus(url=url, code=0, message=str(e))
    return ResourceStatus(url=url, code=response.status_code, message=response.reason or "")


def check_urls(
    urls: Iterable[str],
    cache: ResourceStatusCache | None = None,
    blacklist: Iterable[str] = (),
    max_workers: int = DEFAULT_MAX_WORKERS,
    session: requests.Session | None = None,
) -> dict[str, ResourceStatus]:
    """Check every URL not already in `cache` and record each status in it.

    URLs in `blacklist` are skipped. Returns url -> status for every checked or cached URL.
    """
    statuses: dict[str, ResourceStatus] = {}
    pending: list[str] = []
    blacklist = frozenset(blacklist)
    for url in sorted(set(urls)):
        if url in blacklist:
            logger.info("Skipping blacklisted URL: %s", url)
            continue
        cached = cache.get(url) if cache is not None else None
        if cached is not None:
            statuses[url] = cached
        else:
            pending.append(url)
    if not pending:
        return statuses
    logger.info("Checking %d URLs (%d cached)", len(pending), len(statuses))
    if session is None:
        session = _session()
    checked = fan_out(
        pending,
        lambda url: check_url(url, session),
        max_workers=max_workers,
        desc="Checking URLs",
        unit=" urls",
    )
    for url, status in checked.items():
        if not status.exists:
            logger.warning("URL %s is not reachable: %d %s", url, status.code, status.message)
        if cache is not None:
            cache.put(status)
        statuses[url] = status
    return statuses
