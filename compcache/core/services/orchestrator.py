"""
Cache orchestrator — decide between restoring a cached build and compiling.

Policy, end to end:

    1. Find the nearest ancestor of HEAD that is also on the upstream
       branch. Without one, no shared artifact can apply.
    2. Walk that commit's lineage nearest-first and ask the backend for
       an artifact of each commit; stop at the first hit.
    3. On a hit: download, unpack over the build root, compile the delta,
       upload a fresh artifact for the current upstream commit.
    4. On a miss (or when forced): compile, then upload.

Collaborators and configuration are passed in explicitly; nothing here
reads global state.
"""

from __future__ import annotations

import logging
import time
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Any, Literal

from compcache.adapters.archive.base import ArchivePackager, ensure_exists
from compcache.adapters.backends.base import CacheBackend
from compcache.adapters.build.compiler import BuildInvoker, CompileOutcome
from compcache.core.errors import PreconditionError
from compcache.core.models.config import CacheConfig
from compcache.core.models.descriptor import (
    Architecture,
    BuildProfile,
    CacheDescriptor,
    OperatingSystem,
    detect_platform,
)
from compcache.core.models.receipt import Receipt
from compcache.core.reliability.circuit_breaker import BackendCircuit
from compcache.core.reliability.retry import RetryPolicy
from compcache.core.services import cache_key
from compcache.core.services.lineage import CommitLineage

logger = logging.getLogger(__name__)


# ═══════════════════════════════════════════════════════════════════
#  Results
# ═══════════════════════════════════════════════════════════════════


@dataclass
class Resolution:
    """Outcome of the cache search.

    status:
        cached        an artifact was found (``descriptor`` is set)
        stale_lineage HEAD shares no commit with the upstream branch in range
        miss          every candidate was checked, none had an artifact
        unavailable   the backend kept failing, the search was abandoned
    """

    status: Literal["cached", "stale_lineage", "miss", "unavailable"]
    descriptor: CacheDescriptor | None = None
    remote_path: str | None = None
    commit: str | None = None
    candidates: int = 0
    lookups: int = 0
    failed_lookups: int = 0
    reason: str = ""

    @property
    def ok(self) -> bool:
        return self.status == "cached"

    def to_dict(self) -> dict[str, Any]:
        return {
            "status": self.status,
            "descriptor": str(self.descriptor) if self.descriptor else None,
            "remote_path": self.remote_path,
            "upstream_commit": self.commit,
            "candidates": self.candidates,
            "lookups": self.lookups,
            "failed_lookups": self.failed_lookups,
            "reason": self.reason,
        }


@dataclass
class ApplyReport:
    """Outcome of download_and_apply, with per-phase timings in milliseconds."""

    receipt: Receipt
    descriptor: CacheDescriptor | None = None
    resolution: Resolution | None = None
    resolve_ms: int = 0
    download_ms: int = 0
    unpack_ms: int = 0

    @property
    def ok(self) -> bool:
        return self.receipt.ok


@dataclass
class RunReport:
    """Everything decide_and_act did, for the CLI to print or serialize."""

    action: Literal["compile_and_upload", "restore_and_upload"]
    status: Literal["ok", "failed"] = "ok"
    forced: bool = False
    resolution: Resolution | None = None
    apply: ApplyReport | None = None
    compile: CompileOutcome | None = None
    upload: Receipt | None = None
    error: str | None = None
    warnings: list[str] = field(default_factory=list)
    timings: dict[str, int] = field(default_factory=dict)

    @property
    def ok(self) -> bool:
        return self.status == "ok"

    def to_dict(self) -> dict[str, Any]:
        return {
            "action": self.action,
            "status": self.status,
            "forced": self.forced,
            "resolution": self.resolution.to_dict() if self.resolution else None,
            "restored": self.apply.ok if self.apply else None,
            "compile": self.compile.status if self.compile else None,
            "uploaded": self.upload.remote_path if self.upload and self.upload.ok else None,
            "error": self.error,
            "warnings": self.warnings,
            "timings_ms": self.timings,
        }


# ═══════════════════════════════════════════════════════════════════
#  Orchestrator
# ═══════════════════════════════════════════════════════════════════


class CacheOrchestrator:
    """Build cache policy over explicit collaborators.

    Args:
        lineage: History queries for the working copy.
        backend: Remote artifact store.
        packager: Archive format used for artifacts.
        builder: Runs the compile command.
        config: Repository configuration.
        retry: Retry policy for backend calls (from config when omitted).
        clock: Monotonic clock in seconds, injectable for tests.
        architecture / operating_system: Platform of the artifacts;
            detected when omitted.
    """

    def __init__(
        self,
        lineage: CommitLineage,
        backend: CacheBackend,
        packager: ArchivePackager,
        builder: BuildInvoker,
        config: CacheConfig,
        *,
        retry: RetryPolicy | None = None,
        clock: Callable[[], float] = time.monotonic,
        architecture: Architecture | None = None,
        operating_system: OperatingSystem | None = None,
    ):
        self.lineage = lineage
        self.backend = backend
        self.packager = packager
        self.builder = builder
        self.config = config
        self.retry = retry or RetryPolicy(
            attempts=config.backend.retry_attempts,
            base_delay=config.backend.retry_base_delay,
        )
        self.clock = clock

        if architecture is None or operating_system is None:
            detected_arch, detected_os = detect_platform()
            architecture = architecture or detected_arch
            operating_system = operating_system or detected_os
        self.architecture = architecture
        self.operating_system = operating_system

        self._backend_ready = False

    # ── Helpers ─────────────────────────────────────────────────

    def _elapsed_ms(self, start: float) -> int:
        return int((self.clock() - start) * 1000)

    def _ensure_backend(self) -> None:
        """Call backend.setup() once per orchestrator."""
        if not self._backend_ready:
            self.backend.setup()
            self._backend_ready = True

    def _descriptor(self, profile: BuildProfile | str, commit: str) -> CacheDescriptor:
        return CacheDescriptor.create(
            profile,
            commit,
            architecture=self.architecture,
            operating_system=self.operating_system,
        )

    def _profile(self, profile: BuildProfile | str | None) -> BuildProfile:
        return BuildProfile(profile) if profile is not None else self.config.default_profile

    def _branch(self, remote_branch: str | None) -> str:
        return remote_branch or self.config.remote_branch

    # ── Queries ─────────────────────────────────────────────────

    def current_code_includes_upstream(self, remote_branch: str | None = None) -> bool:
        """Whether an artifact built from the current code is shareable upstream."""
        match = self.lineage.nearest_common_commit(
            self._branch(remote_branch), self.config.upstream_depth
        )
        return match is not None

    def resolve_cached_build(
        self,
        profile: BuildProfile | str | None = None,
        remote_branch: str | None = None,
    ) -> Resolution:
        """Find the nearest commit in the upstream lineage that has an artifact.

        Lookups go nearest-first and stop at the first hit. A lookup that
        fails is retried; after ``backend.failure_threshold`` consecutive
        failed lookups the search is abandoned as ``unavailable``.
        """
        profile = self._profile(profile)
        branch = self._branch(remote_branch)

        match = self.lineage.nearest_common_commit(branch, self.config.upstream_depth)
        if match is None:
            return Resolution(
                status="stale_lineage",
                reason=f"No commit of the last {self.config.upstream_depth} is on '{branch}'",
            )
        logger.debug("Latest local commit present in %s: %s", branch, match.commit)

        candidates = self.lineage.linearize(match.commit, self.config.lineage_depth)
        self._ensure_backend()
        circuit = BackendCircuit(self.backend.name, self.config.backend.failure_threshold)

        lookups = 0
        for commit in candidates:
            if not circuit.allow_request():
                break

            probe = self._descriptor(profile, commit)
            logger.debug("Checking if '%s' has a cached build...", commit)
            receipt = self.retry.call(
                lambda: self.backend.fetch_by_descriptor(probe),
                label=f"lookup of {commit}",
            )
            lookups += 1
            circuit.record(receipt)

            if receipt.ok:
                logger.info("Found a cached build: %s", receipt.descriptor)
                return Resolution(
                    status="cached",
                    descriptor=receipt.descriptor,
                    remote_path=receipt.remote_path,
                    commit=match.commit,
                    candidates=len(candidates),
                    lookups=lookups,
                    failed_lookups=circuit.total_failures,
                )

        if circuit.is_open:
            return Resolution(
                status="unavailable",
                commit=match.commit,
                candidates=len(candidates),
                lookups=lookups,
                failed_lookups=circuit.total_failures,
                reason=f"Backend '{self.backend.name}' is not answering",
            )

        if circuit.total_failures:
            logger.warning(
                "%d of %d lookups could not be answered; treating them as misses",
                circuit.total_failures,
                lookups,
            )
        return Resolution(
            status="miss",
            commit=match.commit,
            candidates=len(candidates),
            lookups=lookups,
            failed_lookups=circuit.total_failures,
            reason=f"None of {lookups} commits has a cached {profile.value} build",
        )

    # ── Actions ─────────────────────────────────────────────────

    def create_and_upload(
        self,
        profile: BuildProfile | str | None = None,
        remote_branch: str | None = None,
        password: str | None = None,
    ) -> Receipt:
        """Pack ``<build_root>/<profile>`` and upload it for the nearest upstream commit.

        Assumes the compilation already succeeded.

        Raises:
            PreconditionError: The build directory does not exist.
        """
        profile = self._profile(profile)
        branch = self._branch(remote_branch)

        build_dir = ensure_exists(self.config.build_dir(profile), "Build directory")
        if not build_dir.is_dir():
            raise PreconditionError(f"Build directory ('{build_dir}') is not a directory")

        match = self.lineage.nearest_common_commit(branch, self.config.upstream_depth)
        if match is None:
            return Receipt.missing(
                "upload", f"Current code shares no commit with '{branch}', nothing to share"
            )

        descriptor = self._descriptor(profile, match.commit)
        extension = self.packager.extension
        archive_path = self.config.build_root_path / cache_key.encode(descriptor, extension)
        remote = cache_key.remote_path(descriptor, extension)

        try:
            packed = self.packager.pack(
                build_dir, archive_path, password, root=self.config.project_root
            )
            if not packed.ok:
                return packed

            self._ensure_backend()
            receipt = self.retry.call(
                lambda: self.backend.upload(archive_path, remote),
                label=f"upload of {remote}",
            )
            return receipt.model_copy(update={"descriptor": descriptor})
        finally:
            archive_path.unlink(missing_ok=True)

    def download_and_apply(
        self,
        profile: BuildProfile | str | None = None,
        remote_branch: str | None = None,
        password: str | None = None,
        descriptor: CacheDescriptor | None = None,
    ) -> ApplyReport:
        """Download an artifact and unpack it over the build root.

        With *descriptor* the search is skipped. The archive holds paths
        relative to the project root, so it is unpacked there.
        """
        start = self.clock()
        resolution: Resolution | None = None
        if descriptor is None:
            resolution = self.resolve_cached_build(profile, remote_branch)
            if not resolution.ok:
                return ApplyReport(
                    receipt=Receipt.missing("restore", resolution.reason or resolution.status),
                    resolution=resolution,
                    resolve_ms=self._elapsed_ms(start),
                )
            descriptor = resolution.descriptor
        resolve_ms = self._elapsed_ms(start)

        build_root = self.config.build_root_path
        build_root.mkdir(parents=True, exist_ok=True)
        extension = self.packager.extension
        local_path = build_root / cache_key.encode(descriptor, extension)
        remote = cache_key.remote_path(descriptor, extension)

        download_start = self.clock()
        self._ensure_backend()
        downloaded = self.retry.call(
            lambda: self.backend.download(remote, local_path),
            label=f"download of {remote}",
        )
        download_ms = self._elapsed_ms(download_start)
        if not downloaded.ok:
            local_path.unlink(missing_ok=True)
            return ApplyReport(
                receipt=downloaded,
                descriptor=descriptor,
                resolution=resolution,
                resolve_ms=resolve_ms,
                download_ms=download_ms,
            )

        unpack_start = self.clock()
        try:
            unpacked = self.packager.unpack(local_path, self.config.project_root, password)
        finally:
            local_path.unlink(missing_ok=True)
        unpack_ms = self._elapsed_ms(unpack_start)

        return ApplyReport(
            receipt=unpacked.model_copy(update={"descriptor": descriptor}),
            descriptor=descriptor,
            resolution=resolution,
            resolve_ms=resolve_ms,
            download_ms=download_ms,
            unpack_ms=unpack_ms,
        )

    def decide_and_act(
        self,
        profile: BuildProfile | str | None = None,
        remote_branch: str | None = None,
        password: str | None = None,
        force: bool = False,
    ) -> RunReport:
        """Restore the nearest cached build and compile the delta, or compile from scratch.

        Either way a new artifact is uploaded afterwards. A failing
        compile aborts the run; a failing upload only adds a warning.
        """
        profile = self._profile(profile)

        if force:
            logger.info("Forced run: compiling and uploading a new build cache")
            report = RunReport(action="compile_and_upload", forced=True)
            return self._compile_and_upload(report, profile, remote_branch, password)

        start = self.clock()
        resolution = self.resolve_cached_build(profile, remote_branch)
        resolve_ms = self._elapsed_ms(start)

        if not resolution.ok:
            if resolution.status == "unavailable":
                logger.warning("%s; compiling without the cache", resolution.reason)
            else:
                logger.info("No build cache available (%s)", resolution.reason or resolution.status)
            report = RunReport(action="compile_and_upload", resolution=resolution)
            report.timings["resolve"] = resolve_ms
            return self._compile_and_upload(report, profile, remote_branch, password)

        report = RunReport(action="restore_and_upload", resolution=resolution)
        report.timings["resolve"] = resolve_ms

        applied = self.download_and_apply(
            profile, remote_branch, password, descriptor=resolution.descriptor
        )
        report.apply = applied
        report.timings["download"] = applied.download_ms
        report.timings["unpack"] = applied.unpack_ms

        if not applied.ok:
            message = f"Could not restore {resolution.descriptor}: {applied.receipt.error}"
            logger.warning("%s; compiling from scratch", message)
            report.warnings.append(message)
            report.action = "compile_and_upload"

        return self._compile_and_upload(report, profile, remote_branch, password)

    def _compile_and_upload(
        self,
        report: RunReport,
        profile: BuildProfile,
        remote_branch: str | None,
        password: str | None,
    ) -> RunReport:
        outcome = self.builder.compile(profile)
        report.compile = outcome
        report.timings["compile"] = outcome.duration_ms

        if not outcome.ok:
            report.status = "failed"
            report.error = f"Compilation failed: {outcome.detail}"
            return report

        upload_start = self.clock()
        upload = self.create_and_upload(profile, remote_branch, password)
        report.timings["upload"] = self._elapsed_ms(upload_start)
        report.upload = upload

        if not upload.ok:
            message = f"Build cache not uploaded: {upload.error}"
            logger.warning(message)
            report.warnings.append(message)
        return report
