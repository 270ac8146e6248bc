"""Command-line interface for modgraph."""

from __future__ import annotations

import json
import logging
import sys

from . import __version__ as modgraph_version
from .config import Settings
from .logger import setup_logger
from .models import Registry
from .resolution import ResolutionContext

logger = logging.getLogger(__name__)


def main() -> None:  # noqa: C901
    settings = Settings()
    setup_logger(settings.log_level)

    if settings.max_workers < 1:
        settings.max_workers = 1

    logger.debug("Starting modgraph with settings: %s", settings)

    if settings.version:
        logger.info("modgraph version %s", modgraph_version)
        return

    if settings.registry is None:
        logger.error("No registry given; pass --registry PATH")
        return

    if settings.output_file is None:
        output_write = sys.stdout.write
    else:
        output_write = settings.output_file.write_text
        if not settings.force and settings.output_file.exists():
            logger.error("%s already exists!\nRe-run with `--force` to overwrite the file.\n", settings.output_file)
            return

    try:
        registry = Registry.load(settings.registry)
    except OSError as e:
        logger.error("Could not read registry %s: %s", settings.registry, e)  # noqa: TRY400
        return
    except (ValueError, KeyError, TypeError) as e:
        logger.error("Could not decode registry %s: %s", settings.registry, e)  # noqa: TRY400
        return
    logger.info("Loaded %d modules from %s", len(registry), settings.registry)

    context = ResolutionContext.from_settings(settings, registry)
    context.open()
    try:
        context.populate()
        context.detect_cycles()
        context.run_mvs(include_global=settings.global_mvs)
        if settings.fetch_metadata:
            context.enrich_repositories()
        if settings.fetch_releases:
            context.fetch_releases(settings.release_repository)
        if settings.resolve_commits:
            context.resolve_commits()
        if settings.check_urls:
            context.check_urls()
        output_write(json.dumps(context.report(), indent=4))
    finally:
        for error in context.close():
            logger.error("%s", error)
        if settings.output_file is not None:
            logger.info("Output saved to %s\n", settings.output_file.absolute())
