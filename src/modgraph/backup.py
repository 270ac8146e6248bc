"""A prior full registry export used to fill in data before any API call."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

import requests

from .models import Registry

if TYPE_CHECKING:
    from collections.abc import Iterable

    from .models import ModuleSource
    from .repository import RepositoryMetadata

logger = logging.getLogger(__name__)

BACKUP_TIMEOUT = 60


class BackupRegistry:
    """Lookups into a backup registry snapshot."""

    def __init__(self, registry: Registry) -> None:
        """Initialize the backup from a loaded registry."""
        self.registry: Registry = registry
        self._by_repository_id: dict[str, RepositoryMetadata] = {}
        for module in registry:
            md = module.repository_metadata
            if md is not None and md.id not in self._by_repository_id:
                self._by_repository_id[md.id] = md

    @classmethod
    def fetch(cls, url: str, session: requests.Session | None = None) -> BackupRegistry | None:
        """Download and decode the snapshot at `url`, gunzipping it when the URL ends in `.gz`.

        Any failure is logged and returns `None`, which disables the backup for the run.
        """
        if not url:
            return None
        if session is None:
            session = requests.Session()
        logger.info("Fetching backup registry from %s", url)
        try:
            response = session.get(url, timeout=BACKUP_TIMEOUT)
        except requests.RequestException as e:
            logger.warning("Failed to fetch backup registry: %s", e)
            return None
        if response.status_code != 200:  # noqa: PLR2004
            logger.warning("Failed to fetch backup registry: HTTP %d", response.status_code)
            return None
        try:
            registry = Registry.from_bytes(response.content, gz=url.endswith(".gz"))
        except (OSError, EOFError, ValueError, KeyError, TypeError) as e:
            logger.warning("Failed to decode backup registry: %s", e)
            return None
        logger.info("Loaded backup registry with %d modules", len(registry))
        return cls(registry)

    def repository_metadata(self, repo_id: str) -> RepositoryMetadata | None:
        """Return the backup's metadata for a canonical repository identity."""
        return self._by_repository_id.get(repo_id)

    def repository_metadata_for_module(self, name: str, version: str) -> RepositoryMetadata | None:
        """Return the backup's metadata for a module version, falling back to the module's."""
        module = self.registry.module(name)
        if module is None:
            return None
        mv = module.version(version)
        if mv is not None and mv.repository_metadata is not None:
            return mv.repository_metadata
        return module.repository_metadata

    def module_source(self, name: str, version: str) -> ModuleSource | None:
        """Return the backup's source descriptor for a module version."""
        module = self.registry.module(name)
        if module is None:
            return None
        mv = module.version(version)
        if mv is None:
            return None
        return mv.source

    def populate(self, repositories: Iterable[RepositoryMetadata]) -> int:
        """Copy backup data into every repository the backup knows about.

        Only non-empty backup fields are copied. Returns the number of repositories populated.
        """
        populated = 0
        for md in repositories:
            backup = self.repository_metadata(md.id)
            if backup is None:
                continue
            if backup.description:
                md.description = backup.description
            if backup.stargazers > 0:
                md.stargazers = backup.stargazers
            if backup.languages:
                if md.languages is None:
                    md.languages = {}
                md.languages.update(backup.languages)
            if backup.primary_language:
                md.primary_language = backup.primary_language
            if backup.canonical_name:
                md.canonical_name = backup.canonical_name
            populated += 1
        return populated
