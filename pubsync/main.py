"""
pubsync — CLI entrypoint.

Usage:
    python -m pubsync.main --help
    python -m pubsync.main stale
    python -m pubsync.main status --json
    python -m pubsync.main add my_pkg --url https://github.com/org/my_pkg.git
    python -m pubsync.main sync --spec a=https://host/a.git@dev --spec b=https://host/b.git
"""

from __future__ import annotations

import json
import os
import sys
from pathlib import Path

import click

from pubsync import __version__
from pubsync.core.observability.logging_config import (
    ENV_FILE,
    ENV_FILE_LEVEL,
    resolve_level,
    setup_logging,
)

_STATUS_COLORS = {"ok": "green", "partial": "yellow", "failed": "red", "cancelled": "yellow"}


@click.group()
@click.version_option(version=__version__, prog_name="pubsync")
@click.option("--verbose", "-v", is_flag=True, help="Enable verbose output.")
@click.option("--quiet", "-q", is_flag=True, help="Suppress non-essential output.")
@click.option("--debug", is_flag=True, help="Enable debug logging (very verbose).")
@click.option(
    "--path",
    "-p",
    "start_dir",
    type=click.Path(file_okay=False, exists=True),
    default=None,
    help="Directory inside the project (default: cwd).",
)
@click.option(
    "--config",
    "-c",
    "config_path",
    type=click.Path(dir_okay=False),
    default=None,
    help="Path to .pubsync.yml (default: beside pubspec.yaml).",
)
@click.option("--dry-run", is_flag=True, help="Show what would run without changing anything.")
@click.option("--mock", is_flag=True, help="Use mock adapters (no real git or pub execution).")
@click.pass_context
def cli(
    ctx: click.Context,
    verbose: bool,
    quiet: bool,
    debug: bool,
    start_dir: str | None,
    config_path: str | None,
    dry_run: bool,
    mock: bool,
) -> None:
    """pubsync — keep git-sourced pub dependencies in sync."""
    ctx.ensure_object(dict)
    ctx.obj["quiet"] = quiet
    ctx.obj["start_dir"] = Path(start_dir) if start_dir else None
    ctx.obj["config_path"] = Path(config_path) if config_path else None
    ctx.obj["dry_run"] = dry_run
    ctx.obj["mock"] = mock

    # ── Logging setup (once, at process start) ──────────────────
    setup_logging(
        level=resolve_level(debug=debug, verbose=verbose, quiet=quiet),
        log_file=os.environ.get(ENV_FILE),
        log_file_level=os.environ.get(ENV_FILE_LEVEL),
    )


def _locate(ctx: click.Context):
    """Project and settings for this invocation, or exit 1."""
    from pubsync.core.config.loader import locate
    from pubsync.core.errors import PubSyncError

    try:
        project, settings = locate(ctx.obj.get("start_dir"), ctx.obj.get("config_path"))
    except PubSyncError as e:
        _fail(str(e))
    if ctx.obj.get("dry_run"):
        settings = settings.model_copy(update={"dry_run": True})
    if ctx.obj.get("mock"):
        settings = settings.model_copy(update={"mock_mode": True})
    return project, settings


def _fail(message: str, hint: str | None = None) -> None:
    click.secho(f"❌ {message}", fg="red", err=True)
    if hint:
        click.echo(f"   💡 {hint}", err=True)
    sys.exit(1)


# ── stale ───────────────────────────────────────────────────────


@cli.command()
@click.option("--json-output", "--json", "as_json", is_flag=True, help="Output as JSON.")
@click.pass_context
def stale(ctx: click.Context, as_json: bool) -> None:
    """List git dependencies whose remote ref has moved."""
    from pubsync.core.errors import PubSyncError
    from pubsync.core.use_cases import check_staleness

    project, settings = _locate(ctx)
    try:
        report = check_staleness(project, settings)
    except PubSyncError as e:
        _fail(str(e))

    if as_json:
        click.echo(json.dumps(report.to_dict(), indent=2))
        return

    if not report.results and not report.skipped:
        click.echo("No git dependencies in the lock file.")
        return

    for result in report.results:
        if result.stale:
            click.secho(f"  ⚠ {result.name}", fg="yellow", nl=False)
            click.echo(
                f"  {result.dependency.ref}: "
                f"{result.dependency.resolved_revision[:12]} → {result.remote_revision[:12]}"
            )
        elif not ctx.obj.get("quiet"):
            click.secho(f"  ✓ {result.name}", fg="green")

    for name, reason in report.skipped.items():
        click.secho(f"  ⊘ {name}: {reason}", fg="white", dim=True)

    if report.possibly_stale:
        click.secho(
            f"⚠️  {project.lock_name} is older than {settings.stale_after_hours:g}h "
            "and could not be checked remotely; it may be stale.",
            fg="yellow",
        )

    click.echo()
    click.echo(f"{len(report.stale)} stale of {len(report.results)} checked")


# ── status ──────────────────────────────────────────────────────


@cli.command()
@click.option("--json-output", "--json", "as_json", is_flag=True, help="Output as JSON.")
@click.pass_context
def status(ctx: click.Context, as_json: bool) -> None:
    """Show declared git dependencies, pinning advice and lock freshness."""
    from pubsync.core.errors import PubSyncError
    from pubsync.core.use_cases import project_status

    project, settings = _locate(ctx)
    try:
        result = project_status(project, settings)
    except PubSyncError as e:
        _fail(str(e))

    if as_json:
        click.echo(json.dumps(result.to_dict(), indent=2))
        return

    click.secho(f"\n📦 {project.name}", fg="cyan", bold=True)

    tools = ", ".join(
        f"{name} {'✓' if info['available'] else '✗'}" for name, info in result.tools.items()
    )
    click.echo(f"   Tools: {tools}")

    if not result.declared:
        click.echo("   No git dependencies declared.")
    for dep in result.declared:
        where = f" #{dep.subdirectory}" if dep.subdirectory else ""
        click.echo(f"   • {dep.name}  {dep.url}@{dep.ref}{where}")

    stale_names = set(result.staleness.stale_names) if result.staleness else set()
    if result.lock_error:
        click.secho(f"   ⊘ {result.lock_error}", dim=True)
    elif stale_names:
        click.secho(f"   ⚠ Stale: {', '.join(sorted(stale_names))}", fg="yellow")
    elif result.staleness and result.staleness.skipped:
        click.secho(f"   ⊘ Unchecked: {', '.join(result.staleness.skipped)}", dim=True)
    elif not ctx.obj.get("quiet"):
        click.secho("   ✓ Lock is current", fg="green")

    if result.recommendations:
        click.echo()
        for reco in result.recommendations:
            color = "yellow" if reco.severity == "warn" else "white"
            click.secho(f"   💡 {reco.message}", fg=color)
            if not ctx.obj.get("quiet"):
                click.echo(f"      {reco.rationale}")


# ── add ─────────────────────────────────────────────────────────


@cli.command()
@click.argument("name")
@click.option("--url", required=True, help="Git repository URL.")
@click.option("--ref", default=None, help="Branch, tag or commit (default: main).")
@click.option("--git-path", "subdirectory", default=None, help="Package directory inside the repository.")
@click.option("--auto-resolve", is_flag=True, help="Retry once with an override on conflict.")
@click.pass_context
def add(
    ctx: click.Context,
    name: str,
    url: str,
    ref: str | None,
    subdirectory: str | None,
    auto_resolve: bool,
) -> None:
    """Add a git dependency (backs up pubspec.yaml first)."""
    from pubsync.core.errors import ConflictDetectedError, PubSyncError, ToolMissingError
    from pubsync.core.models import PackageSpec
    from pubsync.core.services.installer import raise_for_failure
    from pubsync.core.use_cases import add_dependency

    project, settings = _locate(ctx)
    spec = PackageSpec(name=name, url=url, ref=ref or settings.default_ref, subdirectory=subdirectory)
    auto_resolve = auto_resolve or settings.auto_resolve

    try:
        result = raise_for_failure(add_dependency(project, spec, auto_resolve=auto_resolve, settings=settings))
    except ToolMissingError as e:
        _fail(str(e))
    except ConflictDetectedError as e:
        culprit = e.analysis.conflicting_package
        blame = f" (conflicts with {culprit})" if culprit and culprit != name else ""
        _fail(f"{name}: {e.analysis.user_message}{blame}", hint=e.analysis.suggested_fix)
    except PubSyncError as e:
        _fail(str(e))

    click.secho(f"✅ {result.message}", fg="green")
    if result.data.get("backup"):
        click.echo(f"   Backup: {result.data['backup']}")


# ── sync ────────────────────────────────────────────────────────


@cli.command()
@click.option(
    "--spec",
    "specs",
    multiple=True,
    required=True,
    help="Package as NAME=URL[@REF][#PATH]. Repeatable.",
)
@click.option("--clone", "clone_spec", default=None, help="Clone URL[@REF] into DEST first, as DEST=URL[@REF].")
@click.option("--auto-resolve", is_flag=True, help="Apply an override to every conflict.")
@click.option("--interactive", "-i", is_flag=True, help="Ask how to resolve each conflict.")
@click.option("--timeout", type=float, default=None, help="Cancel the run after this many seconds.")
@click.option("--json-output", "--json", "as_json", is_flag=True, help="Output the final report as JSON.")
@click.pass_context
def sync(
    ctx: click.Context,
    specs: tuple[str, ...],
    clone_spec: str | None,
    auto_resolve: bool,
    interactive: bool,
    timeout: float | None,
    as_json: bool,
) -> None:
    """Install several git packages, continuing past failures."""
    from pubsync.core.engine.executor import CancelToken
    from pubsync.core.errors import PubSyncError
    from pubsync.core.models import CloneSource, PackageSpec
    from pubsync.core.use_cases import synchronize

    project, settings = _locate(ctx)
    try:
        package_specs = [PackageSpec.parse(s, default_ref=settings.default_ref) for s in specs]
        clone_source = None
        if clone_spec:
            parsed = PackageSpec.parse(clone_spec, default_ref=settings.default_ref)
            clone_source = CloneSource(url=parsed.url, ref=parsed.ref, destination=parsed.name)
    except ValueError as e:
        raise click.BadParameter(str(e)) from e

    try:
        engine = synchronize(
            project,
            package_specs,
            settings,
            auto_resolve=auto_resolve or settings.auto_resolve,
            interactive=interactive,
            clone_source=clone_source,
            cancel_token=CancelToken(timeout=timeout),
        )
    except PubSyncError as e:
        raise click.BadParameter(str(e), param_hint="--spec") from e

    if not as_json:
        mode_label = "[dry-run] " if settings.dry_run else "[mock] " if settings.mock_mode else ""
        click.secho(f"⚡ {mode_label}sync — {len(package_specs)} package(s)", fg="cyan", bold=True)

    for event in engine:
        if not as_json:
            _print_event(event)
        if event.kind == "awaiting_resolution":
            _prompt_resolutions(engine, event)

    report = engine.report
    if as_json:
        click.echo(json.dumps(report.to_dict(), indent=2))
    else:
        click.echo()
        for line in report.summary():
            click.echo(f"  {line}")
        click.secho(f"\nStatus: {report.status}", fg=_STATUS_COLORS.get(report.status, "white"), bold=True)
        if report.backup:
            click.echo(f"Backup: {report.backup.backup_path}")

    if report.error:
        if not as_json:
            _fail(report.error)
        sys.exit(1)


def _print_event(event) -> None:
    if event.terminal:
        if event.kind == "failed":
            return
        click.secho(f"■ {event.message}", fg="cyan")
        return
    ok = event.result is None or event.result.ok
    marker = "✓" if ok else "✗"
    color = "green" if ok else "red"
    if event.kind in ("awaiting_resolution", "conflicts_reported", "finalize_skipped"):
        marker, color = "⚠", "yellow"
    click.secho(f"{marker} [{event.phase.value}] {event.message}", fg=color)


def _prompt_resolutions(engine, event) -> None:
    """Ask for a decision on each pending conflict."""
    for conflict in event.data.get("conflicts", []):
        name = conflict["package"]
        if name not in engine.pending_conflicts:
            continue
        click.echo(
            f"\n{name}: {conflict.get('conflict_type')} conflict"
            + (f" with {conflict['conflicting_pkg']}" if conflict.get("conflicting_pkg") else "")
        )
        if conflict.get("suggested_fix"):
            click.echo(f"   💡 {conflict['suggested_fix']}")
        choice = click.prompt(
            "   Resolve with",
            type=click.Choice(["override", "retry", "skip", "defer"]),
            default="override",
        )
        if choice == "defer":
            _print_event(engine.defer_conflicts())
            return
        _print_event(engine.resolve(name, choice))


# ── update ──────────────────────────────────────────────────────


@cli.command()
@click.pass_context
def update(ctx: click.Context) -> None:
    """Upgrade every stale git dependency, then run pub get."""
    from pubsync.core.errors import PubSyncError
    from pubsync.core.use_cases import express_update

    project, settings = _locate(ctx)
    try:
        result = express_update(project, settings)
    except PubSyncError as e:
        _fail(str(e), hint=getattr(e, "install_hint", None))

    if result.ok:
        click.secho(f"✅ {result.message}", fg="green")
    else:
        _fail(f"{result.message or 'Update failed'}: {result.error}", hint=result.data.get("suggested_fix"))


# ── backups ─────────────────────────────────────────────────────


@cli.command()
@click.pass_context
def backups(ctx: click.Context) -> None:
    """List manifest backups, newest first."""
    from pubsync.core.services.backup import list_backups

    project, _ = _locate(ctx)
    records = list_backups(project)
    if not records:
        click.echo("No backups found.")
        return
    for record in records:
        click.echo(f"  {record.backup_path.name}  {record.timestamp:%Y-%m-%d %H:%M:%S}  {record.size} bytes")


@cli.command()
@click.argument("backup")
@click.option("--yes", "-y", is_flag=True, help="Do not ask for confirmation.")
@click.pass_context
def restore(ctx: click.Context, backup: str, yes: bool) -> None:
    """Restore pubspec.yaml from BACKUP (a name from `backups`)."""
    from pubsync.core.errors import PubSyncError
    from pubsync.core.services.backup import find_backup, restore_backup

    project, _ = _locate(ctx)
    try:
        record = find_backup(project, backup)
        if not yes:
            click.confirm(f"Overwrite {project.manifest_path.name} with {record.backup_path.name}?", abort=True)
        restore_backup(record)
    except PubSyncError as e:
        _fail(str(e))

    click.secho(f"✅ Restored {project.manifest_path.name} from {record.backup_path.name}", fg="green")


def main() -> None:
    """Entry point for the pubsync console script."""
    cli(obj={})


if __name__ == "__main__":
    main()
