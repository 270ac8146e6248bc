"""Persistent record caches.

Each cache is a flat JSON collection of records, keyed by the record's own identity and written in sorted
key order. Loading is best-effort; saving a single cache can fail without affecting the others.
"""

from __future__ import annotations

import json
import logging
import os
from abc import ABC, abstractmethod
from pathlib import Path
from typing import TYPE_CHECKING, Any, Generic, Self, TypeVar

from .errors import CacheWriteError
from .netutil import ResourceStatus
from .releases import Release
from .repository import RepositoryMetadata

if TYPE_CHECKING:
    from collections.abc import Iterable, Iterator

logger = logging.getLogger(__name__)

R = TypeVar("R")


def expand_path(path: Path | str | None) -> Path | None:
    """Expand environment variables and `~` in a cache path."""
    if path is None or str(path) == "":
        return None
    return Path(os.path.expandvars(os.path.expanduser(str(path))))


class RecordCache(ABC, Generic[R]):
    """An abstract base class for a persisted, keyed collection of records."""

    name: str = "record"
    # rewrite the file on every save, even if nothing new was fetched
    always_write: bool = False

    def __init__(self, path: Path | str | None = None) -> None:
        """Initialize the cache.

        Args:
            path: File the cache is loaded from and saved to; `None` disables persistence

        """
        self.path: Path | None = expand_path(path)
        self.records: dict[str, R] = {}
        self.dirty: bool = False
        self._entries: int = 0

    @abstractmethod
    def key(self, record: R) -> str:
        """Return the identity of a record."""
        raise NotImplementedError

    @abstractmethod
    def record_to_obj(self, record: R) -> dict[str, Any]:
        """Convert a record to its dictionary representation."""
        raise NotImplementedError

    @abstractmethod
    def record_from_obj(self, obj: dict[str, Any]) -> R:
        """Create a record from its dictionary representation."""
        raise NotImplementedError

    def get(self, key: str) -> R | None:
        """Return the record for `key`, if cached."""
        return self.records.get(key)

    def put(self, record: R, *, mark_dirty: bool = True) -> None:
        """Insert or overwrite a record."""
        self.records[self.key(record)] = record
        if mark_dirty:
            self.dirty = True

    def update(self, records: Iterable[R], *, mark_dirty: bool = True) -> None:
        """Insert or overwrite several records."""
        for record in records:
            self.put(record, mark_dirty=mark_dirty)

    def load(self) -> int:
        """Merge the persisted records into memory.

        Any error reading or decoding the file is logged and leaves the in-memory records as they were.
        Returns the number of records loaded.
        """
        if self.path is None:
            return 0
        try:
            with self.path.open() as f:
                obj = json.load(f)
            loaded = [self.record_from_obj(r) for r in obj.get("records", ())]
        except FileNotFoundError:
            logger.debug("No %s cache at %s", self.name, self.path)
            return 0
        except (OSError, ValueError, KeyError, TypeError, AttributeError) as e:
            logger.warning("Could not read %s cache %s: %s", self.name, self.path, e)
            return 0
        for record in loaded:
            self.records[self.key(record)] = record
        logger.info("Loaded %d cached %s records from %s", len(loaded), self.name, self.path)
        return len(loaded)

    def to_obj(self) -> dict[str, Any]:
        """Convert the cache to its serialized form, ordered by key."""
        return {"records": [self.record_to_obj(self.records[k]) for k in sorted(self.records)]}

    def save(self) -> bool:
        """Persist the in-memory records.

        Returns whether the file was written.

        Raises:
            CacheWriteError: if the file could not be written

        """
        if self.path is None:
            return False
        if not self.always_write and not self.dirty:
            logger.info("No new %s records fetched, skipping write to %s", self.name, self.path)
            return False
        tmp = self.path.with_name(self.path.name + ".tmp")
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            with tmp.open("w") as f:
                json.dump(self.to_obj(), f, indent=2)
                f.write("\n")
            tmp.replace(self.path)
        except OSError as e:
            raise CacheWriteError(self.name, self.path, e) from e
        self.dirty = False
        logger.info("Wrote %d %s records to %s", len(self.records), self.name, self.path)
        return True

    def open(self) -> None:
        """Open the cache."""
        self.load()

    def close(self) -> None:
        """Close the cache."""
        self.save()

    def __enter__(self) -> Self:
        """Enter context manager."""
        if self._entries == 0:
            self.open()
        self._entries += 1
        return self

    def __exit__(self, exc_type: type[BaseException] | None, exc_val: BaseException | None, exc_tb: object) -> None:
        """Exit context manager."""
        self._entries -= 1
        if self._entries == 0:
            self.close()

    def __contains__(self, key: object) -> bool:
        """Check whether a key is cached."""
        return key in self.records

    def __len__(self) -> int:
        """Return the number of cached records."""
        return len(self.records)

    def __iter__(self) -> Iterator[R]:
        """Iterate over records in key order."""
        return iter(self.records[k] for k in sorted(self.records))


class ReleaseCache(RecordCache[Release]):
    """Release history, keyed by version."""

    name = "release"

    def key(self, record: Release) -> str:
        """Return the release version."""
        return record.version

    def record_to_obj(self, record: Release) -> dict[str, Any]:
        """Convert a release to its dictionary representation."""
        return record.to_obj()

    def record_from_obj(self, obj: dict[str, Any]) -> Release:
        """Create a release from its dictionary representation."""
        return Release.from_obj(obj)


class RepositoryMetadataCache(RecordCache[RepositoryMetadata]):
    """Repository metadata, keyed by canonical repository identity."""

    name = "repository metadata"

    def key(self, record: RepositoryMetadata) -> str:
        """Return the canonical repository identity."""
        return record.id

    def record_to_obj(self, record: RepositoryMetadata) -> dict[str, Any]:
        """Convert repository metadata to its dictionary representation."""
        return record.to_obj()

    def record_from_obj(self, obj: dict[str, Any]) -> RepositoryMetadata:
        """Create repository metadata from its dictionary representation."""
        return RepositoryMetadata.from_obj(obj)


class ResourceStatusCache(RecordCache[ResourceStatus]):
    """URL liveness, keyed by URL. Always rewritten on save."""

    name = "resource status"
    always_write = True

    def key(self, record: ResourceStatus) -> str:
        """Return the URL."""
        return record.url

    def record_to_obj(self, record: ResourceStatus) -> dict[str, Any]:
        """Convert a status to its dictionary representation."""
        return record.to_obj()

    def record_from_obj(self, obj: dict[str, Any]) -> ResourceStatus:
        """Create a status from its dictionary representation."""
        return ResourceStatus.from_obj(obj)
