"""Core data models for the module registry."""

from __future__ import annotations

import gzip
import json
from pathlib import Path
from typing import TYPE_CHECKING, Any

from .errors import GraphInvariantError

if TYPE_CHECKING:
    from collections.abc import Iterable, Iterator

    from .repository import RepositoryMetadata


def module_id(name: str, version: str) -> str:
    """Return the canonical `name@version` identifier of a module version."""
    return f"{name}@{version}"


def parse_module_id(key: str) -> tuple[str, str]:
    """Split a `name@version` identifier into its name and version.

    Raises:
        GraphInvariantError: if the key is not of the form `name@version`

    """
    name, sep, version = key.partition("@")
    if not sep:
        msg = f"invalid module key format {key!r}, expected 'module@version'"
        raise GraphInvariantError(msg)
    return name, version


class Override:
    """An override attached to a dependency declaration."""

    KINDS = ("git", "archive", "single_version", "local_path")

    def __init__(  # noqa: PLR0913
        self,
        kind: str,
        version: str = "",
        url: str = "",
        commit: str = "",
        path: str = "",
        patches: Iterable[str] = (),
    ) -> None:
        """Initialize an override.

        Args:
            kind: One of `git`, `archive`, `single_version`, `local_path`
            version: Version forced by a single version override
            url: Remote or archive URL
            commit: Commit of a git override
            path: Path of a local path override
            patches: Patch files applied by the override

        """
        if kind not in self.KINDS:
            msg = f"unknown override kind {kind!r}"
            raise ValueError(msg)
        self.kind: str = kind
        self.version: str = version
        self.url: str = url
        self.commit: str = commit
        self.path: str = path
        self.patches: list[str] = list(patches)

    @property
    def redirected_version(self) -> str | None:
        """The version a dependency edge should point at instead of the declared one."""
        if self.kind == "single_version" and self.version:
            return self.version
        return None

    def to_obj(self) -> dict[str, Any]:
        """Convert override to dictionary representation."""
        ret: dict[str, Any] = {"kind": self.kind}
        for key in ("version", "url", "commit", "path"):
            if getattr(self, key):
                ret[key] = getattr(self, key)
        if self.patches:
            ret["patches"] = list(self.patches)
        return ret

    @classmethod
    def from_obj(cls, obj: dict[str, Any]) -> Override:
        """Create an override from its dictionary representation."""
        return cls(
            kind=obj["kind"],
            version=obj.get("version", ""),
            url=obj.get("url", ""),
            commit=obj.get("commit", ""),
            path=obj.get("path", ""),
            patches=obj.get("patches", ()),
        )

    def __eq__(self, other: object) -> bool:
        """Check equality with another override."""
        return isinstance(other, Override) and self.to_obj() == other.to_obj()

    def __hash__(self) -> int:
        """Compute hash for override."""
        return hash((self.kind, self.version, self.url, self.commit, self.path))


class ModuleDependency:
    """A dependency declared by a module version."""

    def __init__(  # noqa: PLR0913
        self,
        name: str,
        version: str = "",
        *,
        dev: bool = False,
        override: Override | None = None,
        repo_name: str = "",
        unresolved: bool = False,
    ) -> None:
        """Initialize a module dependency."""
        self.name: str = name
        self.version: str = version
        self.dev: bool = dev
        self.override: Override | None = override
        self.repo_name: str = repo_name
        self.unresolved: bool = unresolved

    @property
    def target_version(self) -> str:
        """The version this dependency points at once overrides are applied."""
        if self.override is not None:
            redirected = self.override.redirected_version
            if redirected is not None:
                return redirected
        return self.version

    @property
    def target_id(self) -> str:
        """The `name@version` this dependency points at."""
        return module_id(self.name, self.target_version)

    def to_obj(self) -> dict[str, Any]:
        """Convert dependency to dictionary representation."""
        ret: dict[str, Any] = {"name": self.name}
        if self.version:
            ret["version"] = self.version
        if self.dev:
            ret["dev"] = True
        if self.override is not None:
            ret["override"] = self.override.to_obj()
        if self.repo_name:
            ret["repo_name"] = self.repo_name
        if self.unresolved:
            ret["unresolved"] = True
        return ret

    @classmethod
    def from_obj(cls, obj: dict[str, Any]) -> ModuleDependency:
        """Create a dependency from its dictionary representation."""
        override = obj.get("override")
        return cls(
            name=obj["name"],
            version=obj.get("version", ""),
            dev=bool(obj.get("dev", False)),
            override=Override.from_obj(override) if override else None,
            repo_name=obj.get("repo_name", ""),
            unresolved=bool(obj.get("unresolved", False)),
        )

    def __str__(self) -> str:
        """Return string representation of the dependency."""
        return self.target_id


class ModuleSource:
    """Where the sources of a module version come from."""

    def __init__(  # noqa: PLR0913
        self,
        url: str = "",
        strip_prefix: str = "",
        integrity: str = "",
        patch_strip: int = 0,
        patches: Iterable[str] = (),
        commit_sha: str = "",
        docs_url: str = "",
    ) -> None:
        """Initialize a module source."""
        self.url: str = url
        self.strip_prefix: str = strip_prefix
        self.integrity: str = integrity
        self.patch_strip: int = patch_strip
        self.patches: list[str] = list(patches)
        self.commit_sha: str = commit_sha
        self.docs_url: str = docs_url

    def to_obj(self) -> dict[str, Any]:
        """Convert source to dictionary representation."""
        ret: dict[str, Any] = {}
        for key in ("url", "strip_prefix", "integrity", "patch_strip", "commit_sha", "docs_url"):
            if getattr(self, key):
                ret[key] = getattr(self, key)
        if self.patches:
            ret["patches"] = list(self.patches)
        return ret

    @classmethod
    def from_obj(cls, obj: dict[str, Any]) -> ModuleSource:
        """Create a source from its dictionary representation."""
        return cls(
            url=obj.get("url", ""),
            strip_prefix=obj.get("strip_prefix", ""),
            integrity=obj.get("integrity", ""),
            patch_strip=int(obj.get("patch_strip", 0)),
            patches=obj.get("patches", ()),
            commit_sha=obj.get("commit_sha", ""),
            docs_url=obj.get("docs_url", ""),
        )


class ModuleCommit:
    """The registry commit that introduced a module version."""

    def __init__(self, sha1: str, date: str = "", message: str = "") -> None:
        """Initialize a module commit."""
        self.sha1: str = sha1
        self.date: str = date
        self.message: str = message

    def to_obj(self) -> dict[str, str]:
        """Convert commit to dictionary representation."""
        return {"sha1": self.sha1, "date": self.date, "message": self.message}

    @classmethod
    def from_obj(cls, obj: dict[str, Any]) -> ModuleCommit:
        """Create a commit from its dictionary representation."""
        return cls(sha1=obj.get("sha1", ""), date=obj.get("date", ""), message=obj.get("message", ""))


class ModuleVersion:
    """One released version of a module, with its own dependency list."""

    def __init__(  # noqa: PLR0913
        self,
        name: str,
        version: str,
        deps: Iterable[ModuleDependency] = (),
        compatibility_level: int = 0,
        bazel_compatibility: Iterable[str] = (),
        repo_name: str = "",
        source: ModuleSource | None = None,
        presubmit: dict[str, Any] | None = None,
        attestations: dict[str, Any] | None = None,
        commit: ModuleCommit | None = None,
    ) -> None:
        """Initialize a module version.

        Args:
            name: Module name
            version: Module version string, compared literally
            deps: Declared dependencies
            compatibility_level: Compatibility marker
            bazel_compatibility: Build tool version constraints
            repo_name: Repository name the module is visible as
            source: Source archive descriptor
            presubmit: Presubmit configuration, kept opaque
            attestations: Attestations, kept opaque
            commit: Registry commit that introduced this version

        """
        self.name: str = name
        self.version: str = version
        self.deps: tuple[ModuleDependency, ...] = tuple(deps)
        self.compatibility_level: int = compatibility_level
        self.bazel_compatibility: list[str] = list(bazel_compatibility)
        self.repo_name: str = repo_name
        self.source: ModuleSource | None = source
        self.presubmit: dict[str, Any] | None = presubmit
        self.attestations: dict[str, Any] | None = attestations
        self.commit: ModuleCommit | None = commit
        self.repository_metadata: RepositoryMetadata | None = None
        self.is_latest_version: bool = False
        self.mvs: dict[str, str] = {}
        self.mvs_dev: dict[str, str] = {}

    @property
    def id(self) -> str:
        """The `name@version` identifier of this module version."""
        return module_id(self.name, self.version)

    @property
    def regular_deps(self) -> list[ModuleDependency]:
        """Dependencies that are not dev dependencies."""
        return [d for d in self.deps if not d.dev]

    @property
    def dev_deps(self) -> list[ModuleDependency]:
        """Dev dependencies."""
        return [d for d in self.deps if d.dev]

    def to_obj(self) -> dict[str, Any]:
        """Convert module version to dictionary representation."""
        ret: dict[str, Any] = {
            "name": self.name,
            "version": self.version,
            "deps": [d.to_obj() for d in self.deps],
        }
        if self.compatibility_level:
            ret["compatibility_level"] = self.compatibility_level
        if self.bazel_compatibility:
            ret["bazel_compatibility"] = list(self.bazel_compatibility)
        if self.repo_name:
            ret["repo_name"] = self.repo_name
        if self.source is not None:
            ret["source"] = self.source.to_obj()
        if self.presubmit is not None:
            ret["presubmit"] = self.presubmit
        if self.attestations is not None:
            ret["attestations"] = self.attestations
        if self.commit is not None:
            ret["commit"] = self.commit.to_obj()
        if self.repository_metadata is not None:
            ret["repository_metadata"] = self.repository_metadata.to_obj()
        if self.is_latest_version:
            ret["is_latest_version"] = True
        if self.mvs:
            ret["mvs"] = dict(sorted(self.mvs.items()))
        if self.mvs_dev:
            ret["mvs_dev"] = dict(sorted(self.mvs_dev.items()))
        return ret

    @classmethod
    def from_obj(cls, obj: dict[str, Any], name: str | None = None) -> ModuleVersion:
        """Create a module version from its dictionary representation."""
        from .repository import RepositoryMetadata  # noqa: PLC0415

        source = obj.get("source")
        commit = obj.get("commit")
        mv = cls(
            name=obj.get("name") or name or "",
            version=obj["version"],
            deps=[ModuleDependency.from_obj(d) for d in obj.get("deps", ())],
            compatibility_level=int(obj.get("compatibility_level", 0)),
            bazel_compatibility=obj.get("bazel_compatibility", ()),
            repo_name=obj.get("repo_name", ""),
            source=ModuleSource.from_obj(source) if source else None,
            presubmit=obj.get("presubmit"),
            attestations=obj.get("attestations"),
            commit=ModuleCommit.from_obj(commit) if commit else None,
        )
        repository_metadata = obj.get("repository_metadata")
        if repository_metadata:
            mv.repository_metadata = RepositoryMetadata.from_obj(repository_metadata)
        return mv

    def __str__(self) -> str:
        """Return string representation of the module version."""
        return self.id

    def __repr__(self) -> str:
        """Return the representation of the module version."""
        return f"{self.__class__.__name__}({self.id!r})"


class Maintainer:
    """A maintainer of a module."""

    def __init__(
        self,
        email: str = "",
        name: str = "",
        github: str = "",
        github_user_id: int = 0,
        *,
        do_not_notify: bool = False,
    ) -> None:
        """Initialize a maintainer."""
        self.email: str = email
        self.name: str = name
        self.github: str = github
        self.github_user_id: int = github_user_id
        self.do_not_notify: bool = do_not_notify

    def to_obj(self) -> dict[str, Any]:
        """Convert maintainer to dictionary representation."""
        ret: dict[str, Any] = {}
        for key in ("email", "name", "github", "github_user_id", "do_not_notify"):
            if getattr(self, key):
                ret[key] = getattr(self, key)
        return ret

    @classmethod
    def from_obj(cls, obj: dict[str, Any]) -> Maintainer:
        """Create a maintainer from its dictionary representation."""
        return cls(
            email=obj.get("email", ""),
            name=obj.get("name", ""),
            github=obj.get("github", ""),
            github_user_id=int(obj.get("github_user_id", 0)),
            do_not_notify=bool(obj.get("do_not_notify", False)),
        )


class ModuleMetadata:
    """Per-module metadata.

    `versions` is ordered oldest to newest; its last element is the highest version.
    """

    def __init__(  # noqa: PLR0913
        self,
        name: str,
        versions: Iterable[str] = (),
        homepage: str = "",
        maintainers: Iterable[Maintainer] = (),
        repository: Iterable[str] = (),
        yanked_versions: dict[str, str] | None = None,
        deprecated: str = "",
    ) -> None:
        """Initialize module metadata."""
        self.name: str = name
        self.versions: list[str] = list(versions)
        self.homepage: str = homepage
        self.maintainers: list[Maintainer] = list(maintainers)
        self.repository: list[str] = list(repository)
        self.yanked_versions: dict[str, str] = dict(yanked_versions or {})
        self.deprecated: str = deprecated

    @property
    def latest_version(self) -> str | None:
        """The highest published version, if any."""
        if not self.versions:
            return None
        return self.versions[-1]

    def to_obj(self) -> dict[str, Any]:
        """Convert metadata to dictionary representation."""
        ret: dict[str, Any] = {"versions": list(self.versions)}
        if self.homepage:
            ret["homepage"] = self.homepage
        if self.maintainers:
            ret["maintainers"] = [m.to_obj() for m in self.maintainers]
        if self.repository:
            ret["repository"] = list(self.repository)
        if self.yanked_versions:
            ret["yanked_versions"] = dict(sorted(self.yanked_versions.items()))
        if self.deprecated:
            ret["deprecated"] = self.deprecated
        return ret

    @classmethod
    def from_obj(cls, obj: dict[str, Any], name: str) -> ModuleMetadata:
        """Create metadata from its dictionary representation."""
        return cls(
            name=name,
            versions=obj.get("versions", ()),
            homepage=obj.get("homepage", ""),
            maintainers=[Maintainer.from_obj(m) for m in obj.get("maintainers", ())],
            repository=obj.get("repository", ()),
            yanked_versions=obj.get("yanked_versions"),
            deprecated=obj.get("deprecated", ""),
        )


class Module:
    """A named module: its metadata plus every known version."""

    def __init__(
        self,
        name: str,
        metadata: ModuleMetadata | None = None,
        versions: Iterable[ModuleVersion] = (),
        repository_metadata: RepositoryMetadata | None = None,
    ) -> None:
        """Initialize a module."""
        self.name: str = name
        self.metadata: ModuleMetadata = metadata if metadata is not None else ModuleMetadata(name)
        self.versions: list[ModuleVersion] = list(versions)
        self.repository_metadata: RepositoryMetadata | None = repository_metadata

    def version(self, version: str) -> ModuleVersion | None:
        """Return the record for `version`, if present."""
        for mv in self.versions:
            if mv.version == version:
                return mv
        return None

    def to_obj(self) -> dict[str, Any]:
        """Convert module to dictionary representation."""
        ret: dict[str, Any] = {
            "name": self.name,
            "metadata": self.metadata.to_obj(),
            "versions": [mv.to_obj() for mv in self.versions],
        }
        if self.repository_metadata is not None:
            ret["repository_metadata"] = self.repository_metadata.to_obj()
        return ret

    @classmethod
    def from_obj(cls, obj: dict[str, Any]) -> Module:
        """Create a module from its dictionary representation."""
        from .repository import RepositoryMetadata  # noqa: PLC0415

        name = obj["name"]
        repository_metadata = obj.get("repository_metadata")
        return cls(
            name=name,
            metadata=ModuleMetadata.from_obj(obj.get("metadata", {}), name),
            versions=[ModuleVersion.from_obj(v, name=name) for v in obj.get("versions", ())],
            repository_metadata=RepositoryMetadata.from_obj(repository_metadata) if repository_metadata else None,
        )

    def dumps(self) -> str:
        """Serialize module to JSON string."""
        return json.dumps(self.to_obj())


class Registry:
    """A full registry snapshot: every module known to the resolver."""

    def __init__(self, modules: Iterable[Module] = ()) -> None:
        """Initialize a registry."""
        self.modules: dict[str, Module] = {}
        for module in modules:
            self.add(module)

    def add(self, module: Module) -> None:
        """Add or replace a module."""
        self.modules[module.name] = module

    def module(self, name: str) -> Module | None:
        """Return the module called `name`, if present."""
        return self.modules.get(name)

    def module_versions(self) -> Iterator[ModuleVersion]:
        """Yield every module version in the registry, ordered by module name."""
        for name in sorted(self.modules):
            yield from self.modules[name].versions

    def __len__(self) -> int:
        """Return the number of modules."""
        return len(self.modules)

    def __iter__(self) -> Iterator[Module]:
        """Iterate over modules ordered by name."""
        return iter(self.modules[name] for name in sorted(self.modules))

    def to_obj(self) -> dict[str, Any]:
        """Convert registry to dictionary representation."""
        return {"modules": [m.to_obj() for m in self]}

    @classmethod
    def from_obj(cls, obj: dict[str, Any]) -> Registry:
        """Create a registry from its dictionary representation."""
        return cls(Module.from_obj(m) for m in obj.get("modules", ()))

    @classmethod
    def from_bytes(cls, data: bytes, *, gz: bool = False) -> Registry:
        """Decode a serialized registry, gunzipping it first when `gz` is set."""
        if gz:
            data = gzip.decompress(data)
        return cls.from_obj(json.loads(data))

    @classmethod
    def load(cls, path: Path | str) -> Registry:
        """Load a registry snapshot from disk; a `.gz` suffix means it is gzip-compressed."""
        path = Path(path)
        return cls.from_bytes(path.read_bytes(), gz=path.suffix == ".gz")

    def dumps(self) -> str:
        """Serialize registry to JSON string."""
        return json.dumps(self.to_obj())
