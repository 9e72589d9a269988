"""
Provisioner — CLI entrypoint.

Usage:
    provisioner --help
    provisioner list
    provisioner run --dry-run
    provisioner run --profile base --skip snap-steam
"""

from __future__ import annotations

import json
import sys
from pathlib import Path

import click

from provisioner import __version__
from provisioner.core.observability.logging_config import resolve_level, setup_logging

_STATUS_COLORS = {"ok": "green", "partial": "yellow", "failed": "red", "cancelled": "yellow"}


@click.group()
@click.version_option(version=__version__, prog_name="provisioner")
@click.option("--verbose", "-v", is_flag=True, help="Enable verbose output.")
@click.option("--quiet", "-q", is_flag=True, help="Suppress non-essential output.")
@click.option("--debug", is_flag=True, help="Enable debug logging (very verbose).")
@click.option(
    "--manifest",
    "-m",
    "manifest_path",
    type=click.Path(exists=False, dir_okay=False),
    default=None,
    help="Path to provision.yml (default: $PROVISION_MANIFEST, auto-detect, or built-in).",
)
@click.pass_context
def cli(
    ctx: click.Context,
    verbose: bool,
    quiet: bool,
    debug: bool,
    manifest_path: str | None,
) -> None:
    """Provisioner — idempotent, ordered machine setup."""
    ctx.ensure_object(dict)
    ctx.obj["verbose"] = verbose
    ctx.obj["quiet"] = quiet
    ctx.obj["debug"] = debug
    ctx.obj["manifest_path"] = Path(manifest_path) if manifest_path else None

    # ── Logging setup (once, at process start) ──────────────────
    setup_logging(resolve_level(debug=debug, verbose=verbose, quiet=quiet))


@cli.command()
@click.option("--profile", "-p", default=None, help="Profile to run (default: manifest default).")
@click.option("--only", "only", multiple=True, help="Run only this step (repeatable).")
@click.option("--skip", "skip", multiple=True, help="Leave out this step (repeatable).")
@click.option("--set", "assignments", multiple=True, metavar="NAME=VALUE", help="Override a manifest variable.")
@click.option("--dry-run", is_flag=True, help="Check guards but run no commands.")
@click.option("--mock", is_flag=True, help="Use mock runner (no real execution).")
@click.option("--json-output", "--json", "as_json", is_flag=True, help="Output as JSON.")
@click.option(
    "--audit-file",
    type=click.Path(dir_okay=False),
    default=None,
    help="Append the run to this ledger (default: $PROVISION_AUDIT_FILE).",
)
@click.pass_context
def run(
    ctx: click.Context,
    profile: str | None,
    only: tuple[str, ...],
    skip: tuple[str, ...],
    assignments: tuple[str, ...],
    dry_run: bool,
    mock: bool,
    as_json: bool,
    audit_file: str | None,
) -> None:
    """Run the provisioning steps in order.

    Examples:

        provisioner run

        provisioner run --profile base --dry-run

        provisioner run --only ssh-key --only docker-group
    """
    from provisioner.core.engine.pipeline import CancelToken
    from provisioner.core.persistence.audit import default_audit_path
    from provisioner.core.use_cases.run import cancel_on_signals, run_provision

    audit_path = Path(audit_file).expanduser() if audit_file else default_audit_path()

    with cancel_on_signals(CancelToken()) as token:
        result = run_provision(
            manifest_path=ctx.obj.get("manifest_path"),
            profile=profile,
            only=only,
            skip=skip,
            assignments=assignments,
            dry_run=dry_run,
            mock_mode=mock,
            cancel_token=token,
            audit_path=audit_path,
        )

    if as_json:
        click.echo(json.dumps(result.to_dict(), indent=2))
        sys.exit(result.exit_code)

    if result.error:
        click.secho(f"❌ {result.error}", fg="red")
        sys.exit(1)

    report = result.report
    assert report is not None

    mode_label = "[dry-run] " if dry_run else "[mock] " if mock else ""
    profile_label = f" ({report.profile})" if report.profile else ""
    click.secho(f"\n⚡ {mode_label}{report.name}{profile_label}", fg="cyan", bold=True)
    click.echo(f"   Steps: {report.total}")
    click.echo()

    verbose = ctx.obj.get("verbose", False)
    for outcome in report.outcomes:
        timing = f" ({outcome.duration_ms}ms)" if outcome.duration_ms else ""
        if outcome.succeeded:
            click.secho(f"   ✓ {outcome.step}", fg="green", nl=False)
            click.echo(timing)
            if verbose:
                for command in outcome.commands:
                    click.echo(f"     │ $ {command}")
        elif outcome.failed:
            color = "yellow" if outcome.advisory else "red"
            tag = " [advisory]" if outcome.advisory else ""
            click.secho(f"   ✗ {outcome.step}{tag}", fg=color, nl=False)
            click.echo(timing)
            kind = outcome.error_kind.value if outcome.error_kind else "error"
            click.echo(f"     │ {kind}: {outcome.error}")
            if outcome.result is not None:
                click.echo(f"     │ $ {outcome.result.command}")
                for line in outcome.result.tail().splitlines():
                    click.echo(f"     │ {line}")
        else:
            click.secho(f"   ⊘ {outcome.step} ", fg="yellow" if outcome.reason == "upstream failure" else "white", nl=False)
            click.echo(f"({outcome.reason})")
            if dry_run and outcome.commands:
                for command in outcome.commands:
                    click.echo(f"     │ $ {command}")

    # Summary
    click.echo()
    click.secho(
        f"   Result: {report.succeeded} succeeded, {report.skipped} skipped, "
        f"{report.failed} failed",
        fg=_STATUS_COLORS.get(report.status, "white"),
        bold=True,
    )
    if report.cancelled:
        click.secho("   Run cancelled before completion.", fg="yellow")

    if report.follow_ups and not ctx.obj.get("quiet"):
        click.echo()
        click.secho("   Important follow-ups:", fg="white", bold=True)
        for i, note in enumerate(report.follow_ups, start=1):
            click.echo(f"   {i}. {note}")

    if result.audit_path is not None and ctx.obj.get("verbose"):
        click.echo()
        click.secho(f"   💾 Run recorded in {result.audit_path}", fg="cyan")

    click.echo()
    if report.exit_code != 0:
        sys.exit(report.exit_code)


@cli.command("list")
@click.option("--profile", "-p", default=None, help="Profile to list (default: manifest default).")
@click.option("--json-output", "--json", "as_json", is_flag=True, help="Output as JSON.")
@click.pass_context
def list_cmd(ctx: click.Context, profile: str | None, as_json: bool) -> None:
    """List the steps a run would execute, in order."""
    from provisioner.core.use_cases.steps import list_steps

    listing = list_steps(manifest_path=ctx.obj.get("manifest_path"), profile=profile)

    if as_json:
        click.echo(json.dumps(listing.to_dict(), indent=2))
        sys.exit(1 if listing.error else 0)

    if listing.error:
        click.secho(f"❌ {listing.error}", fg="red")
        sys.exit(1)

    manifest = listing.manifest
    assert manifest is not None

    profile_label = f" ({listing.profile})" if listing.profile else ""
    click.secho(f"\n📋 {manifest.name}{profile_label}", fg="cyan", bold=True)
    if manifest.description:
        click.echo(f"   {manifest.description}")
    click.echo(f"   {listing.manifest_path}")
    click.echo()

    for i, step in enumerate(listing.steps, start=1):
        advisory = " [advisory]" if step.continue_on_failure else ""
        click.secho(f"   {i:>2}. {step.name}", fg="white", bold=True, nl=False)
        click.echo(f"{advisory}  {step.description}")
        if step.guard is not None:
            click.echo(f"       skip if {step.guard.describe()}")
        if ctx.obj.get("verbose"):
            for cmd in step.commands:
                click.echo(f"       $ {cmd.label}")

    if manifest.profiles:
        click.echo()
        click.secho("   Profiles:", fg="white", bold=True)
        for name, description in manifest.profiles.items():
            marker = " ← selected" if name == listing.profile else ""
            click.echo(f"     • {name}{marker}  {description}")

    click.echo()


@cli.command()
@click.option("--json-output", "--json", "as_json", is_flag=True, help="Output as JSON.")
@click.pass_context
def check(ctx: click.Context, as_json: bool) -> None:
    """Validate the provisioning manifest."""
    from provisioner.core.use_cases.config_check import check_manifest

    result = check_manifest(manifest_path=ctx.obj.get("manifest_path"))

    if as_json:
        click.echo(json.dumps(result.to_dict(), indent=2))
        sys.exit(0 if result.valid else 1)

    if result.valid:
        assert result.manifest is not None  # guaranteed when valid
        click.secho("✅ Manifest is valid", fg="green", bold=True)
        click.echo(f"   Manifest: {result.manifest.name}")
        click.echo(f"   Steps: {len(result.manifest.steps)}")
        click.echo(f"   Profiles: {len(result.manifest.profiles)}")
    else:
        click.secho("❌ Manifest errors:", fg="red", bold=True)
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


@cli.command()
@click.option("-n", "count", default=10, type=int, help="Number of runs to show.")
@click.option(
    "--audit-file",
    type=click.Path(dir_okay=False),
    default=None,
    help="Ledger to read (default: $PROVISION_AUDIT_FILE).",
)
@click.option("--json-output", "--json", "as_json", is_flag=True, help="Output as JSON.")
def history(count: int, audit_file: str | None, as_json: bool) -> None:
    """Show recent provisioning runs from the ledger."""
    from provisioner.core.persistence.audit import AuditWriter, default_audit_path

    path = Path(audit_file).expanduser() if audit_file else default_audit_path()
    if path is None:
        click.secho("❌ No ledger configured. Use --audit-file or set PROVISION_AUDIT_FILE.", fg="red")
        sys.exit(1)

    entries = AuditWriter(path).read_recent(count)

    if as_json:
        click.echo(json.dumps([e.model_dump(mode="json") for e in entries], indent=2))
        return

    if not entries:
        click.echo(f"No runs recorded in {path}")
        return

    for entry in entries:
        color = _STATUS_COLORS.get(entry.status, "white")
        dry = " [dry-run]" if entry.dry_run else ""
        profile = f" ({entry.profile})" if entry.profile else ""
        click.echo(f"   {entry.timestamp}  {entry.run_id}{profile}{dry}  ", nl=False)
        click.secho(entry.status, fg=color)
        click.echo(
            f"      {entry.steps_succeeded} succeeded, {entry.steps_skipped} skipped, "
            f"{entry.steps_failed} failed"
        )
        if entry.failed_steps:
            click.echo(f"      failed: {', '.join(entry.failed_steps)}")


@cli.command("latest-release")
@click.argument("repo")
@click.option("--mock", is_flag=True, help="Use mock runner (no network).")
def latest_release(repo: str, mock: bool) -> None:
    """Print the latest release tag of a GitHub REPO (owner/name).

    Handy when bumping a pinned version in the manifest.
    """
    from provisioner.core.services.releases import ReleaseLookupError, latest_release_tag

    if mock:
        from provisioner.adapters.mock import MockRunner

        runner = MockRunner(default_output='{"tag_name": "v0.0.0-mock"}')
    else:
        from provisioner.adapters.shell.command import SubprocessRunner

        runner = SubprocessRunner()

    try:
        tag = latest_release_tag(runner, repo)
    except ReleaseLookupError as e:
        click.secho(f"❌ {e}", fg="red")
        sys.exit(1)

    click.echo(tag)


if __name__ == "__main__":
    cli()
