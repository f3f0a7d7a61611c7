"""
Cache use case — wire the orchestrator from configuration.

The CLI and any other entrypoint build their orchestrator here so the
choice of backend, archive format and build command lives in one place.
"""

from __future__ import annotations

import logging
from pathlib import Path

from compcache.adapters.archive import build_packager
from compcache.adapters.backends import CacheBackend, build_backend
from compcache.adapters.build import BuildInvoker
from compcache.adapters.vcs import GitCli
from compcache.core.config.loader import load_config
from compcache.core.models.config import CacheConfig
from compcache.core.services.lineage import CommitLineage
from compcache.core.services.orchestrator import CacheOrchestrator

logger = logging.getLogger(__name__)


def build_lineage(config: CacheConfig) -> CommitLineage:
    """Commit lineage over the project's working copy."""
    return CommitLineage(GitCli(cwd=config.project_root, timeout=config.git_timeout))


def build_orchestrator(
    config: CacheConfig,
    *,
    backend: CacheBackend | None = None,
) -> CacheOrchestrator:
    """Orchestrator with every collaborator chosen by *config*."""
    return CacheOrchestrator(
        lineage=build_lineage(config),
        backend=backend or build_backend(config),
        packager=build_packager(config),
        builder=BuildInvoker(config.build, cwd=config.project_root),
        config=config,
    )


def orchestrator_from_file(config_path: Path | None = None) -> CacheOrchestrator:
    """Load compcache.yml (or defaults) and build the orchestrator for it."""
    config = load_config(config_path)
    logger.debug("Project root: %s", config.project_root)
    return build_orchestrator(config)
