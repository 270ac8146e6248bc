"""Configuration settings for modgraph."""

from __future__ import annotations

from pathlib import Path  # noqa: TC003

from pydantic import Field
from pydantic_settings import (
    BaseSettings,
    CliImplicitFlag,
    SettingsConfigDict,
)


class Settings(BaseSettings):
    """Settings for modgraph."""

    registry: Path | None = Field(
        default=None,
        description="""Registry snapshot (JSON, optionally gzip-compressed
        with a `.gz` suffix) to resolve.""",
    )
    github_token: str | None = Field(
        default=None,
        description="""GitHub API token. Without it, GitHub metadata
        fetching and commit resolution are disabled.""",
    )
    gitlab_token: str | None = Field(
        default=None,
        description="""GitLab API token. GitLab metadata is fetched
        unauthenticated when it is absent.""",
    )
    registry_source_url: str | None = Field(
        default=None,
        description="""URL of a backup registry snapshot used to fill in
        repository metadata and commits before any API call. A `.gz` suffix
        means it is gzip-compressed.""",
    )
    release_cache: Path | None = Field(
        default=None,
        description="""Release history cache file.""",
    )
    repository_metadata_cache: Path | None = Field(
        default=None,
        description="""Repository metadata cache file.""",
    )
    resource_status_cache: Path | None = Field(
        default=None,
        description="""URL status cache file.""",
    )
    use_default_caches: CliImplicitFlag[bool] = Field(
        default=False,
        description="""Keep any cache that is not given explicitly in the
        user cache directory.""",
    )
    release_repository: str = Field(
        default="bazelbuild/bazel",
        description="""`owner/name` of the repository whose release history
        is cached.""",
    )
    fetch_metadata: CliImplicitFlag[bool] = Field(
        default=False,
        description="""Fetch repository metadata from GitHub and GitLab.""",
    )
    fetch_releases: CliImplicitFlag[bool] = Field(
        default=False,
        description="""Fetch the release history of `--release-repository`.""",
    )
    resolve_commits: CliImplicitFlag[bool] = Field(
        default=False,
        description="""Resolve source commits of ranked module versions.""",
    )
    check_urls: CliImplicitFlag[bool] = Field(
        default=False,
        description="""Check that source and docs URLs exist.""",
    )
    blacklisted_urls: list[str] = Field(
        default_factory=list,
        description="""URLs never checked.""",
    )
    global_mvs: CliImplicitFlag[bool] = Field(
        default=False,
        description="""Also run MVS with every module as a root.""",
    )
    max_workers: int = Field(
        default=10,
        description="""Maximum number of jobs to run concurrently.""",
    )
    requests_per_hour: float = Field(
        default=4800.0,
        description="""GitHub requests per hour.""",
    )
    burst: int = Field(
        default=1000,
        description="""GitHub request burst size.""",
    )
    force: CliImplicitFlag[bool] = Field(
        default=False,
        description="""Force the overwrite of the output file if it already
        exists.""",
    )
    log_level: str = Field(default="info", description="Log level")
    output_file: Path | None = Field(
        default=None,
        description="""Output file path. If not provided, the output will be
        written to stdout.""",
    )
    version: CliImplicitFlag[bool] = Field(
        default=False,
        description="""Show the version of modgraph and exit.""",
    )

    model_config = SettingsConfigDict(
        cli_parse_args=True,
        cli_kebab_case=True,
        env_prefix="MODGRAPH_",
        nested_model_default_partial_update=True,
    )
