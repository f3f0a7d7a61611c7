"""
Compilation cache — CLI entrypoint.

Usage:
    python -m compcache.main --help
    python -m compcache.main run --profile dev
    python -m compcache.main check
    python -m compcache.main config check
"""

from __future__ import annotations

import json
import os
import sys
from collections import defaultdict
from pathlib import Path

import click

from compcache import __version__
from compcache.core.errors import CompCacheError
from compcache.core.models.descriptor import BuildProfile
from compcache.core.observability.logging_config import (
    FILE_ENV,
    FILE_LEVEL_ENV,
    redact,
    resolve_level,
    setup_logging,
)

_PROFILES = [p.value for p in BuildProfile]

_profile_option = click.option(
    "--profile",
    "-p",
    type=click.Choice(_PROFILES),
    default=None,
    help="Build profile (default: from config, else 'dev').",
)
_branch_option = click.option(
    "--remote-branch",
    "-b",
    default=None,
    help="Upstream branch shared artifacts are built from (default: origin/main).",
)
_password_option = click.option(
    "--password",
    default=None,
    help="Archive password (default: from the variable named by archive.password_env).",
)
_json_option = click.option(
    "--json-output", "--json", "as_json", is_flag=True, help="Output as JSON."
)


@click.group()
@click.version_option(version=__version__, prog_name="compcache")
@click.option("--verbose", "-v", is_flag=True, help="Enable verbose output.")
@click.option("--quiet", "-q", is_flag=True, help="Suppress non-essential output.")
@click.option("--debug", is_flag=True, help="Enable debug logging (very verbose).")
@click.option(
    "--config",
    "-c",
    "config_path",
    type=click.Path(exists=False),
    default=None,
    help="Path to compcache.yml (default: auto-detect).",
)
@click.pass_context
def cli(
    ctx: click.Context,
    verbose: bool,
    quiet: bool,
    debug: bool,
    config_path: str | None,
) -> None:
    """Compilation cache — reuse builds of commits shared with upstream."""
    ctx.ensure_object(dict)
    ctx.obj["verbose"] = verbose
    ctx.obj["quiet"] = quiet
    ctx.obj["debug"] = debug
    ctx.obj["config_path"] = Path(config_path) if config_path else None

    # ── Logging setup (once, at process start) ──────────────────
    setup_logging(
        level=resolve_level(debug=debug, verbose=verbose, quiet=quiet),
        log_file=os.environ.get(FILE_ENV),
        log_file_level=os.environ.get(FILE_LEVEL_ENV),
    )


# ── Helpers ─────────────────────────────────────────────────────


def _orchestrator(ctx: click.Context):
    """Build the orchestrator for the configured project, or exit."""
    from compcache.core.use_cases.cache import orchestrator_from_file

    try:
        return orchestrator_from_file(ctx.obj.get("config_path"))
    except CompCacheError as e:
        click.secho(f"❌ {e}", fg="red")
        sys.exit(1)


def _password(orchestrator, password: str | None) -> str | None:
    if password is None:
        password = orchestrator.config.archive.password()
    redact(password)
    return password


def _fail(error: Exception) -> None:
    click.secho(f"❌ {error}", fg="red")
    sys.exit(1)


def _secs(ms: int) -> str:
    return f"{ms / 1000:.1f}s"


# ── Cache commands ──────────────────────────────────────────────


@cli.command()
@_profile_option
@_branch_option
@_password_option
@click.option("--force", is_flag=True, help="Compile and upload even if a cached build exists.")
@_json_option
@click.pass_context
def run(
    ctx: click.Context,
    profile: str | None,
    remote_branch: str | None,
    password: str | None,
    force: bool,
    as_json: bool,
) -> None:
    """Restore the nearest cached build, or compile and upload a new one.

    Examples:

        compcache run

        compcache run --profile test --force
    """
    orchestrator = _orchestrator(ctx)
    quiet = ctx.obj.get("quiet", False)

    if not quiet and not as_json:
        click.secho("🔎 Looking for a build cache...", fg="cyan")

    try:
        report = orchestrator.decide_and_act(
            profile, remote_branch, _password(orchestrator, password), force=force
        )
    except CompCacheError as e:
        _fail(e)
        return

    if as_json:
        click.echo(json.dumps(report.to_dict(), indent=2))
        sys.exit(0 if report.ok else 1)
        return

    resolution = report.resolution
    if report.forced:
        click.echo("👷🏗️ Forced: compiled locally, cache lookup skipped")
    elif report.apply and report.apply.ok:
        click.secho(
            f"✅ Build cache put in place: {report.apply.descriptor} "
            f"(find {_secs(report.apply.resolve_ms or report.timings.get('resolve', 0))}, "
            f"download {_secs(report.apply.download_ms)}, "
            f"unpack {_secs(report.apply.unpack_ms)})",
            fg="green",
        )
    elif resolution is not None:
        click.echo(f"🙅 No build cache available ({resolution.reason or resolution.status})")

    for warning in report.warnings:
        click.secho(f"⚠️  {warning}", fg="yellow")

    if report.compile is not None:
        if report.compile.status == "noop":
            click.echo(f"😎 Nothing to compile ({_secs(report.compile.duration_ms)})")
        elif report.compile.ok:
            click.echo(f"🏁 Compilation finished ({_secs(report.compile.duration_ms)})")

    if not report.ok:
        click.secho(f"❌ {report.error}", fg="red")
        sys.exit(1)

    if report.upload is not None and report.upload.ok:
        click.secho(f"🚀 Build cache uploaded: {report.upload.remote_path}", fg="green")


@cli.command()
@_profile_option
@_branch_option
@_json_option
@click.pass_context
def check(ctx: click.Context, profile: str | None, remote_branch: str | None, as_json: bool) -> None:
    """Check whether a cached build exists (exit 0 if so, 1 otherwise)."""
    orchestrator = _orchestrator(ctx)

    try:
        resolution = orchestrator.resolve_cached_build(profile, remote_branch)
    except CompCacheError as e:
        _fail(e)
        return

    if as_json:
        click.echo(json.dumps(resolution.to_dict(), indent=2))
    elif resolution.ok:
        click.secho(f"🍏 Cached build available: {resolution.descriptor}", fg="green")
        click.echo(f"   {resolution.remote_path} ({resolution.lookups} lookup(s))")
    else:
        color = "yellow" if resolution.status == "unavailable" else "white"
        click.secho(f"🙅 No cached build: {resolution.reason or resolution.status}", fg=color)

    sys.exit(0 if resolution.ok else 1)


@cli.command()
@_profile_option
@_branch_option
@_password_option
@click.pass_context
def create(
    ctx: click.Context,
    profile: str | None,
    remote_branch: str | None,
    password: str | None,
) -> None:
    """Pack the current build directory and upload it."""
    orchestrator = _orchestrator(ctx)

    try:
        receipt = orchestrator.create_and_upload(
            profile, remote_branch, _password(orchestrator, password)
        )
    except CompCacheError as e:
        _fail(e)
        return

    if not receipt.ok:
        click.secho(f"❌ Not uploaded: {receipt.error}", fg="red")
        sys.exit(1)

    click.secho(f"✅ Build cache uploaded: {receipt.remote_path}", fg="green")
    if receipt.descriptor is not None:
        click.echo(f"   {receipt.descriptor}")


@cli.command()
@_profile_option
@_branch_option
@_password_option
@click.pass_context
def restore(
    ctx: click.Context,
    profile: str | None,
    remote_branch: str | None,
    password: str | None,
) -> None:
    """Download the nearest cached build and unpack it into the build root."""
    orchestrator = _orchestrator(ctx)

    try:
        report = orchestrator.download_and_apply(
            profile, remote_branch, _password(orchestrator, password)
        )
    except CompCacheError as e:
        _fail(e)
        return

    if not report.ok:
        click.secho(f"❌ Not restored: {report.receipt.error}", fg="red")
        sys.exit(1)

    click.secho(
        f"✅ Restored {report.descriptor} "
        f"(find {_secs(report.resolve_ms)}, download {_secs(report.download_ms)}, "
        f"unpack {_secs(report.unpack_ms)})",
        fg="green",
    )


@cli.command("list")
@_profile_option
@_json_option
@click.pass_context
def list_artifacts(ctx: click.Context, profile: str | None, as_json: bool) -> None:
    """List cached builds of a profile for this platform, newest first."""
    orchestrator = _orchestrator(ctx)
    profile = profile or orchestrator.config.default_profile

    orchestrator.backend.setup()
    receipt = orchestrator.backend.list(
        profile,
        architecture=orchestrator.architecture,
        operating_system=orchestrator.operating_system,
    )

    if as_json:
        click.echo(json.dumps(receipt.model_dump(mode="json"), indent=2))
        sys.exit(0 if receipt.ok else 1)
        return

    if not receipt.ok:
        click.secho(f"❌ {receipt.error}", fg="red")
        sys.exit(1)

    click.secho(f"\n📦 Cached {profile} builds ({len(receipt.descriptors)})", fg="cyan", bold=True)
    for descriptor in receipt.descriptors:
        click.echo(f"   • {descriptor.commit_hash}  {descriptor.timestamp:%Y-%m-%d %H:%M:%S}")
    click.echo()


@cli.command()
@_branch_option
@click.option("--depth", type=int, default=None, help="Maximum commits to list.")
@_json_option
@click.pass_context
def lineage(ctx: click.Context, remote_branch: str | None, depth: int | None, as_json: bool) -> None:
    """Show the nearest upstream commit and the order commits are searched in."""
    orchestrator = _orchestrator(ctx)
    config = orchestrator.config
    branch = remote_branch or config.remote_branch

    try:
        match = orchestrator.lineage.nearest_common_commit(branch, config.upstream_depth)
        commits = (
            orchestrator.lineage.linearize(match.commit, depth or config.lineage_depth)
            if match
            else []
        )
    except CompCacheError as e:
        _fail(e)
        return

    if as_json:
        click.echo(json.dumps({
            "remote_branch": branch,
            "upstream_commit": match.commit if match else None,
            "lineage": commits,
        }, indent=2))
        return

    if match is None:
        click.secho(
            f"🙅 None of the last {config.upstream_depth} commits is on '{branch}'", fg="yellow"
        )
        sys.exit(1)

    click.secho(f"\n🌳 Nearest commit on {branch}: {match.commit}", fg="cyan", bold=True)
    for position, commit in enumerate(commits, start=1):
        click.echo(f"   {position:>3}. {commit}")
    click.echo()


@cli.command()
@_json_option
@click.pass_context
def changes(ctx: click.Context, as_json: bool) -> None:
    """Show untracked, modified and deleted paths of the working copy."""
    orchestrator = _orchestrator(ctx)

    try:
        entries = orchestrator.lineage.current_changes()
    except CompCacheError as e:
        _fail(e)
        return

    grouped: dict[str, list[str]] = defaultdict(list)
    for entry in entries:
        grouped[entry.status].append(entry.path)

    if as_json:
        click.echo(json.dumps(grouped, indent=2))
        return

    if not entries:
        click.secho("✨ Working copy is clean", fg="green")
        return

    for status, paths in sorted(grouped.items()):
        click.secho(f"   [{status}] {len(paths)}", fg="white", bold=True)
        for path in paths:
            click.echo(f"     • {path}")


# ── Config ──────────────────────────────────────────────────────


@cli.group()
def config() -> None:
    """Cache configuration commands."""


@config.command("check")
@_json_option
@click.pass_context
def config_check(ctx: click.Context, as_json: bool) -> None:
    """Validate compcache.yml configuration."""
    from compcache.core.use_cases.config_check import check_config

    result = check_config(config_path=ctx.obj.get("config_path"))

    if as_json:
        click.echo(json.dumps(result.to_dict(), indent=2))
        sys.exit(0 if result.valid else 1)
        return

    if result.valid:
        assert result.config is not None  # guaranteed when valid
        click.secho("✅ Configuration is valid", fg="green", bold=True)
        click.echo(f"   Project root: {result.config.project_root}")
        click.echo(f"   Backend: {result.config.backend.kind}")
        click.echo(f"   Archive: {result.config.archive.format}")
    else:
        click.secho("❌ Configuration errors:", fg="red", bold=True)
        for err in result.errors:
            click.echo(f"   • {err}")

    if result.warnings:
        click.echo()
        click.secho("⚠️  Warnings:", fg="yellow")
        for warn in result.warnings:
            click.echo(f"   • {warn}")

    if not result.valid:
        click.echo()
        sys.exit(1)

    click.echo()


if __name__ == "__main__":
    cli()
