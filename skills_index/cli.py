"""CLI entry point for skills-index"""

import asyncio
from pathlib import Path
from typing import List, Optional

import click
import yaml
from rich.console import Console
from rich.table import Table

from skills_index import __version__
from skills_index.config import Settings
from skills_index.exporters import JSONExporter
from skills_index.installer import (
    InstallError,
    Installer,
    install_command,
    uninstall_command,
    update_commands,
)
from skills_index.lock_file import GlobalLockStore, LocalLockStore
from skills_index.logging import setup_logging
from skills_index.manifest import (
    ManifestError,
    add_skill,
    missing_skills,
    read_manifest,
    remove_skill,
)
from skills_index.models import InstalledSkill, OperationOutcome, ScanResult
from skills_index.reconciler import Reconciler
from skills_index.scanners import SkillScanner
from skills_index.terminal import SubprocessTerminal
from skills_index.updates import UpdateCheckError, UpdateState


class ClickNotifier:
    """Shows installer messages on the console."""

    def info(self, message: str) -> None:
        click.echo(f"⏳ {message}")

    def warning(self, message: str) -> None:
        click.echo(f"⚠️  {message}", err=True)


def _prompt_scope(skill_name: str, agent: str) -> Optional[str]:
    return click.prompt(
        f'Install "{skill_name}" for {agent}',
        type=click.Choice(["global", "project"]),
        default="global",
    )


def _settings(ctx: click.Context) -> Settings:
    try:
        return Settings.load(
            config_path=ctx.obj.get("config_path"),
            project_root=ctx.obj.get("project_root"),
        )
    except (ValueError, OSError, yaml.YAMLError) as e:
        click.echo(f"❌ Error: invalid configuration: {e}", err=True)
        raise click.Abort()


def _installer(settings: Settings, state: UpdateState) -> Installer:
    return Installer(
        settings,
        SubprocessTerminal(cwd=settings.project_root),
        update_state=state,
        notifier=ClickNotifier(),
        scope_chooser=_prompt_scope,
    )


def _skill_table(title: str, skills: List[InstalledSkill]) -> Table:
    table = Table(title=title)
    table.add_column("Folder", style="cyan")
    table.add_column("Name")
    table.add_column("Class")
    table.add_column("Source")
    table.add_column("Hash")

    for skill in skills:
        table.add_row(
            skill.folder_name,
            skill.name,
            skill.classification,
            skill.source or "-",
            (skill.hash or "-")[:12],
        )
    return table


def _echo_outcome(outcome: Optional[OperationOutcome]) -> None:
    if outcome is None:
        click.echo("Cancelled.")
        return
    if outcome.timed_out:
        click.echo(f"⌛ {outcome.operation.capitalize()} not confirmed yet.")
    else:
        click.echo(f"✅ {outcome.operation.capitalize()} finished ({outcome.signal}).")


def _echo_scan_summary(result: ScanResult) -> None:
    click.echo(f"   Global skills: {len(result.global_skills)}")
    click.echo(f"   Project skills: {len(result.project_skills)}")


@click.group()
@click.version_option(version=__version__)
@click.option(
    "--project-root",
    type=click.Path(path_type=Path, file_okay=False),
    help="Project whose skills to include",
)
@click.option(
    "--config",
    "config_path",
    type=click.Path(path_type=Path, dir_okay=False),
    help="Config file (default: ~/.agents/skills-index.yaml)",
)
@click.option(
    "--log-level",
    type=click.Choice(["DEBUG", "INFO", "WARNING", "ERROR"], case_sensitive=False),
    default="WARNING",
    show_default=True,
)
@click.pass_context
def cli(ctx, project_root, config_path, log_level):
    """Skills Index - Track installed agent skills and their updates"""
    setup_logging(log_level)
    ctx.ensure_object(dict)
    ctx.obj["project_root"] = project_root.absolute() if project_root else None
    ctx.obj["config_path"] = config_path


@cli.command()
@click.option("--json", "output_json", is_flag=True, help="Output as JSON")
@click.option("--verbose", "-v", is_flag=True, help="Show every skill")
@click.pass_context
def scan(ctx, output_json, verbose):
    """Scan skill directories and display results"""
    settings = _settings(ctx)
    result = SkillScanner(settings).scan()

    if output_json:
        click.echo(JSONExporter(include_metadata=verbose).export_scan_result(result))
        return

    click.echo("🔍 Scanning skills...")
    click.echo("\n✅ Scan complete!")
    click.echo(f"   Total skills: {result.total_count}")
    _echo_scan_summary(result)

    if result.errors:
        click.echo("\n⚠️  Errors encountered:")
        for error in result.errors:
            click.echo(f"   - {error}")

    if verbose:
        console = Console()
        console.print(_skill_table("Global", result.global_skills))
        if settings.project_root is not None:
            console.print(_skill_table("Project", result.project_skills))


@cli.command()
@click.option("--json", "output_json", is_flag=True, help="Output as JSON")
@click.pass_context
def doctor(ctx, output_json):
    """Explain which directories are scanned and what they contain"""
    settings = _settings(ctx)
    diagnostic = SkillScanner(settings).diagnose()

    if output_json:
        click.echo(JSONExporter().export_diagnostic(diagnostic))
        return

    table = Table(title="Skill directories")
    table.add_column("Location")
    table.add_column("Path")
    table.add_column("Exists")
    table.add_column("Folders", justify="right")
    table.add_column("Valid skills", justify="right")
    for item in diagnostic.directories:
        table.add_row(
            item.label,
            str(item.path),
            "yes" if item.exists else "no",
            str(item.subdir_count),
            str(item.valid_skill_count),
        )
    Console().print(table)

    if diagnostic.issues:
        click.echo("\n⚠️  Issues:")
        for issue in diagnostic.issues:
            click.echo(f"   - {issue}")
    else:
        click.echo("\n✅ No issues found")


@cli.command("check-updates")
@click.option("--json", "output_json", is_flag=True, help="Output as JSON")
@click.option("--refresh", is_flag=True, help="Ignore cached repository trees")
@click.pass_context
def check_updates(ctx, output_json, refresh):
    """Compare tracked skills against their source repositories"""
    settings = _settings(ctx)
    reconciler = Reconciler(settings)

    try:
        response = asyncio.run(reconciler.check_updates(force_refresh=refresh))
    except UpdateCheckError as e:
        click.echo(f"❌ Error: {e}", err=True)
        raise click.Abort()

    if output_json:
        click.echo(JSONExporter().export_update_response(response))
        return

    if not response.updates:
        click.echo("✅ All skills are up to date")
        return

    click.echo(f"📦 {len(response.updates)} update(s) available:")
    for record in response.updates:
        click.echo(f"  - {record.name} ({record.source}) -> {record.new_hash[:12]}")


@cli.group()
def lock():
    """Inspect and edit lock file entries"""
    pass


def _lock_store(settings: Settings, project: bool):
    if project:
        if settings.local_lock_path is None:
            click.echo("❌ Error: --project requires --project-root", err=True)
            raise click.Abort()
        return LocalLockStore(settings.local_lock_path)
    return GlobalLockStore(settings.global_lock_path)


@lock.command("show")
@click.argument("folder")
@click.option("--project", is_flag=True, help="Use the project lock file")
@click.pass_context
def lock_show(ctx, folder, project):
    """Show the lock entry that resolves for FOLDER"""
    store = _lock_store(_settings(ctx), project)
    entry = store.find_entry(folder)
    if entry is None:
        click.echo(f'No lock entry for "{folder}"')
        return

    click.echo(f"🔒 {entry.key} ({entry.origin})")
    click.echo(f"   Source: {entry.source}")
    if entry.source_type:
        click.echo(f"   Type: {entry.source_type}")
    if entry.skill_path:
        click.echo(f"   Path: {entry.skill_path}")
    if entry.hash:
        click.echo(f"   Hash: {entry.hash}")


@lock.command("remove")
@click.argument("folder")
@click.option("--project", is_flag=True, help="Use the project lock file")
@click.pass_context
def lock_remove(ctx, folder, project):
    """Remove the lock entry that resolves for FOLDER"""
    store = _lock_store(_settings(ctx), project)
    if store.remove_entry(folder):
        click.echo(f'🗑️  Removed lock entry for "{folder}"')
    else:
        click.echo(f'❌ Error: no lock entry removed for "{folder}"', err=True)
        raise click.Abort()


@cli.group()
def manifest():
    """Edit the project skills.json"""
    pass


def _manifest_path(settings: Settings) -> Path:
    if settings.manifest_path is None:
        click.echo("❌ Error: no project open (use --project-root)", err=True)
        raise click.Abort()
    return settings.manifest_path


@manifest.command("add")
@click.argument("source")
@click.argument("skill")
@click.pass_context
def manifest_add(ctx, source, skill):
    """Add SKILL from SOURCE to skills.json"""
    path = _manifest_path(_settings(ctx))
    try:
        add_skill(path, source, skill)
    except ManifestError as e:
        click.echo(f"❌ Error: {e}", err=True)
        raise click.Abort()
    click.echo(f'✅ Added "{skill}" ({source}) to {path.name}')


@manifest.command("remove")
@click.argument("skill")
@click.pass_context
def manifest_remove(ctx, skill):
    """Remove SKILL from skills.json"""
    path = _manifest_path(_settings(ctx))
    try:
        result = remove_skill(path, skill)
    except ManifestError as e:
        click.echo(f"❌ Error: {e}", err=True)
        raise click.Abort()
    if result is None:
        click.echo(f"No {path.name} found")
        return
    click.echo(f'✅ Removed "{skill}" from {path.name}')


@manifest.command("missing")
@click.pass_context
def manifest_missing(ctx):
    """List skills in skills.json that are not installed"""
    settings = _settings(ctx)
    path = _manifest_path(settings)
    project_manifest = read_manifest(path)
    if project_manifest is None:
        click.echo(f"No {path.name} found")
        return

    result = SkillScanner(settings).scan()
    missing = missing_skills(project_manifest, result.all_skills)
    if not missing:
        click.echo("✅ All manifest skills are installed")
        return

    click.echo(f"📋 Missing skills ({len(missing)}):")
    for item in missing:
        click.echo(f"  - {item.skill_name} ({item.source})")


async def _run_operation(reconciler: Reconciler, title: str, operation) -> Optional[OperationOutcome]:
    await reconciler.start()
    try:
        with Console().status(title):
            return await operation()
    finally:
        await reconciler.stop()


@cli.command()
@click.argument("source")
@click.option("--skill", "-s", help="Install only this skill from SOURCE")
@click.option("--global", "scope", flag_value="global", help="Install for the user")
@click.option("--project", "scope", flag_value="project", help="Install into the project")
@click.option("--agent", "-a", help="Target agent (default from settings)")
@click.option("--dry-run", is_flag=True, help="Print the command without running it")
@click.option("--yes", "-y", is_flag=True, help="Do not ask for confirmation")
@click.pass_context
def install(ctx, source, skill, scope, agent, dry_run, yes):
    """Install skills from SOURCE (owner/repo or URL)"""
    settings = _settings(ctx)
    state = UpdateState()
    installer = _installer(settings, state)
    name = skill or source
    agent = agent or settings.default_agent

    try:
        is_global = installer.resolve_scope(name, scope)
    except InstallError as e:
        click.echo(f"❌ Error: {e}", err=True)
        raise click.Abort()
    if is_global is None:
        click.echo("Cancelled.")
        return

    resolved = "global" if is_global else "project"
    if dry_run:
        click.echo(install_command(source, agent, skill=skill, is_global=is_global))
        return
    if not yes:
        click.confirm(f'Install "{name}" ({resolved}) for {agent}?', abort=True)

    reconciler = Reconciler(settings, update_state=state, installer=installer)
    outcome = asyncio.run(
        _run_operation(
            reconciler,
            f'Installing "{name}"...',
            lambda: installer.install(source, skill=skill, scope=resolved, agent=agent),
        )
    )
    _echo_outcome(outcome)
    if reconciler.last_scan is not None:
        _echo_scan_summary(reconciler.last_scan)


@cli.command()
@click.argument("names", nargs=-1)
@click.option("--agent", "-a", help="Target agent (default from settings)")
@click.option("--dry-run", is_flag=True, help="Print the commands without running them")
@click.option("--yes", "-y", is_flag=True, help="Do not ask for confirmation")
@click.pass_context
def update(ctx, names, agent, dry_run, yes):
    """Update outdated skills (all, or only NAMES)"""
    settings = _settings(ctx)
    state = UpdateState()
    installer = _installer(settings, state)
    reconciler = Reconciler(settings, update_state=state, installer=installer)
    agent = agent or settings.default_agent

    try:
        response = asyncio.run(reconciler.check_updates())
    except UpdateCheckError as e:
        click.echo(f"❌ Error: {e}", err=True)
        raise click.Abort()

    records = [u for u in response.updates if not names or u.name in names]
    if not records:
        click.echo("✅ All skills are up to date")
        return

    if dry_run:
        for record in records:
            for cmd in update_commands(record.name, record.source, agent):
                click.echo(cmd)
        return

    listing = ", ".join(r.name for r in records)
    if not yes:
        click.confirm(f"Update {len(records)} skill(s): {listing}?", abort=True)

    outcome = asyncio.run(
        _run_operation(
            reconciler,
            f"Updating {len(records)} skill(s)...",
            lambda: installer.update(records, agent=agent),
        )
    )
    _echo_outcome(outcome)


@cli.command()
@click.argument("name")
@click.option("--global", "scope", flag_value="global", help="Remove the user install")
@click.option("--project", "scope", flag_value="project", help="Remove the project install")
@click.option("--agent", "-a", help="Target agent (default from settings)")
@click.option("--dry-run", is_flag=True, help="Print the command without running it")
@click.option("--yes", "-y", is_flag=True, help="Do not ask for confirmation")
@click.pass_context
def uninstall(ctx, name, scope, agent, dry_run, yes):
    """Uninstall skill NAME"""
    settings = _settings(ctx)
    agent = agent or settings.default_agent

    if dry_run:
        is_global = scope == "global" if scope else settings.install_scope == "global"
        click.echo(uninstall_command(name, agent, is_global=is_global))
        return
    if not yes:
        click.confirm(f'Uninstall "{name}"?', abort=True)

    state = UpdateState()
    installer = _installer(settings, state)
    reconciler = Reconciler(settings, update_state=state, installer=installer)
    try:
        outcome = asyncio.run(
            _run_operation(
                reconciler,
                f'Uninstalling "{name}"...',
                lambda: installer.uninstall(name, scope=scope, agent=agent),
            )
        )
    except InstallError as e:
        click.echo(f"❌ Error: {e}", err=True)
        raise click.Abort()
    _echo_outcome(outcome)


@cli.command()
@click.pass_context
def watch(ctx):
    """Watch skill directories and report changes until interrupted"""
    settings = _settings(ctx)
    reconciler = Reconciler(settings)

    def on_changed(result: ScanResult) -> None:
        click.echo(
            f"🔄 {result.total_count} skill(s): "
            f"{len(result.global_skills)} global, {len(result.project_skills)} project"
        )

    def on_notice(message: str) -> None:
        click.echo(f"📦 {message}")

    reconciler.changed.subscribe(on_changed)
    reconciler.notices.subscribe(on_notice)

    async def run() -> None:
        await reconciler.start()
        click.echo("👀 Watching for changes (Ctrl+C to stop)")
        try:
            await asyncio.Event().wait()
        finally:
            await reconciler.stop()

    try:
        asyncio.run(run())
    except KeyboardInterrupt:
        click.echo("\n👋 Stopped")


if __name__ == "__main__":
    cli()
