"""Prompt registry CLI.

Thin click layer over the registry and hub managers. Every command builds the
managers from the loaded configuration, runs one operation, and prints the
result.
"""

import asyncio
import json
import logging
import sys
from collections.abc import Coroutine
from dataclasses import dataclass
from pathlib import Path
from typing import Any

import click

from .config import RegistrySettings
from .config import load_config
from .errors import PromptRegistryError
from .models import ALL_SCOPES
from .models import COMMIT_MODES
from .models import SOURCE_TYPES
from .models import RegistrySource
from .models import SearchQuery
from .services import AutoUpdateService
from .services import HubManager
from .services import LockfileManager
from .services import RegistryManager
from .storage import HubStorage
from .storage import RegistryStorage
from .storage import get_hubs_dir
from .storage import get_state_dir

logger = logging.getLogger(__name__)


@dataclass
class AppContext:
    settings: RegistrySettings
    registry: RegistryManager
    hubs: HubManager


def build_context(config_path: Path | None = None) -> AppContext:
    settings = load_config(config_path)
    registry = RegistryManager(RegistryStorage(get_state_dir()), settings)
    hubs = HubManager(HubStorage(get_hubs_dir()), registry)
    return AppContext(settings=settings, registry=registry, hubs=hubs)


def run(coro: Coroutine[Any, Any, Any]) -> Any:
    """Run one coroutine, turning registry errors into a clean exit."""
    try:
        return asyncio.run(coro)
    except PromptRegistryError as e:
        click.echo(f"Error: {e}", err=True)
        sys.exit(1)


def echo_json(data: Any) -> None:
    click.echo(json.dumps(data, indent=2))


@click.group()
@click.option("-v", "--verbose", is_flag=True, help="Enable debug logging")
@click.option("--config", "config_path", type=click.Path(path_type=Path), help="Path to registry.yaml")
@click.pass_context
def cli(ctx: click.Context, verbose: bool, config_path: Path | None):
    """Prompt Registry - install and track prompt bundles."""
    app = build_context(config_path)
    level = logging.DEBUG if verbose else getattr(logging, app.settings.log_level.upper(), logging.INFO)
    logging.basicConfig(
        level=level,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )
    ctx.obj = app


# --- Sources ---


@cli.group()
def source():
    """Manage bundle sources."""


@source.command("add")
@click.argument("source_id")
@click.argument("url")
@click.option("--type", "source_type", type=click.Choice(SOURCE_TYPES), required=True)
@click.option("--name", default="", help="Display name")
@click.option("--priority", default=0, help="Higher priority wins bundle id collisions")
@click.option("--branch", help="Branch for GitHub-backed catalogs")
@click.option("--path", "sub_path", help="Catalog sub-path (collections, skills or packages directory)")
@click.pass_obj
def source_add(app: AppContext, source_id, url, source_type, name, priority, branch, sub_path):
    """Add a source after validating it."""
    config: dict[str, Any] = {}
    if branch:
        config["branch"] = branch
    if sub_path:
        key = {"skills": "skillsPath", "local-skills": "skillsPath", "apm": "packagesPath", "local-apm": "packagesPath"}
        config[key.get(source_type, "collectionsPath")] = sub_path
    new_source = RegistrySource(
        id=source_id, name=name or source_id, type=source_type, url=url, priority=priority, config=config
    )
    run(app.registry.add_source(new_source))
    click.echo(f"Added source '{source_id}'")


@source.command("remove")
@click.argument("source_id")
@click.pass_obj
def source_remove(app: AppContext, source_id):
    run(app.registry.remove_source(source_id))
    click.echo(f"Removed source '{source_id}'")


@source.command("list")
@click.pass_obj
def source_list(app: AppContext):
    for item in run(app.registry.list_sources()):
        state = "enabled" if item.enabled else "disabled"
        click.echo(f"{item.id}\t{item.type}\t{item.url}\t(priority {item.priority}, {state})")


@source.command("sync")
@click.argument("source_id", required=False)
@click.pass_obj
def source_sync(app: AppContext, source_id):
    """Refresh one source, or every enabled source."""
    if source_id:
        bundles = run(app.registry.sync_source(source_id))
        click.echo(f"Source '{source_id}' synced: {len(bundles)} bundles")
        return
    for synced_id, count in run(app.registry.sync_all_sources()).items():
        click.echo(f"Source '{synced_id}' synced: {count} bundles")


# --- Bundles ---


@cli.group()
def bundle():
    """Search, install and remove bundles."""


@bundle.command("search")
@click.argument("text", required=False)
@click.option("--tag", "tags", multiple=True)
@click.option("--author")
@click.option("--environment")
@click.option("--source", "source_id")
@click.option("--sort", "sort_by", type=click.Choice(["name", "version", "relevance", "recent"]))
@click.option("--limit", type=int)
@click.pass_obj
def bundle_search(app: AppContext, text, tags, author, environment, source_id, sort_by, limit):
    query = SearchQuery(
        text=text,
        tags=list(tags),
        author=author,
        environment=environment,
        source_id=source_id,
        sort_by=sort_by,
        limit=limit,
    )
    for item in run(app.registry.search_bundles(query)):
        click.echo(f"{item.id}\t{item.version}\t{item.name}\t[{item.source_id}]")


@bundle.command("install")
@click.argument("bundle_id")
@click.option("--scope", type=click.Choice(ALL_SCOPES))
@click.option("--version")
@click.option("--commit-mode", type=click.Choice(COMMIT_MODES))
@click.option("--migrate", is_flag=True, help="Move the bundle if another scope holds it")
@click.pass_obj
def bundle_install(app: AppContext, bundle_id, scope, version, commit_mode, migrate):
    installed = run(
        app.registry.install_bundle(bundle_id, scope=scope, version=version, commit_mode=commit_mode, migrate=migrate)
    )
    click.echo(f"Installed {installed.bundle_id}@{installed.version} at {installed.scope} scope")


@bundle.command("uninstall")
@click.argument("bundle_id")
@click.option("--scope", type=click.Choice(ALL_SCOPES))
@click.pass_obj
def bundle_uninstall(app: AppContext, bundle_id, scope):
    run(app.registry.uninstall_bundle(bundle_id, scope))
    click.echo(f"Uninstalled {bundle_id}")


@bundle.command("list")
@click.option("--scope", type=click.Choice(ALL_SCOPES))
@click.pass_obj
def bundle_list(app: AppContext, scope):
    for item in run(app.registry.list_installed_bundles(scope)):
        click.echo(f"{item.bundle_id}\t{item.version}\t{item.scope}\t{item.source_id}")


@bundle.command("updates")
@click.option("--apply", is_flag=True, help="Install the available updates")
@click.option("--force", is_flag=True, help="Overwrite locally modified repository files")
@click.pass_obj
def bundle_updates(app: AppContext, apply: bool, force: bool):
    updates = run(app.registry.check_updates())
    if not updates:
        click.echo("All bundles are up to date")
        return
    for update in updates:
        auto = "\tauto" if update.auto_update_enabled else ""
        click.echo(f"{update.bundle_id}\t{update.current_version} -> {update.latest_version}\t({update.scope}){auto}")
        if apply:
            run(app.registry.update_bundle(update.bundle_id, update.latest_version, force=force))


@bundle.command("auto-update")
@click.argument("bundle_id")
@click.option("--enable/--disable", default=True, help="Opt the bundle in or out of auto-update")
@click.pass_obj
def bundle_auto_update(app: AppContext, bundle_id, enable):
    run(AutoUpdateService(app.registry).set_auto_update(bundle_id, enable))
    click.echo(f"Auto-update {'enabled' if enable else 'disabled'} for {bundle_id}")


@bundle.command("auto-update-run")
@click.pass_obj
def bundle_auto_update_run(app: AppContext):
    """Apply available updates to bundles opted into auto-update."""
    summary = run(AutoUpdateService(app.registry).run())
    for bundle_id in summary.updated:
        click.echo(f"updated\t{bundle_id}")
    for bundle_id, error in summary.failed.items():
        click.echo(f"failed\t{bundle_id}\t{error}", err=True)
    if not summary.updated and not summary.failed:
        click.echo("No auto-updates to apply")
    if summary.failed:
        sys.exit(1)


# --- Lockfile ---


@cli.group()
def lockfile():
    """Inspect the repository lockfile."""


def _lockfile_manager(app: AppContext) -> LockfileManager:
    try:
        return app.registry.lockfile_manager
    except PromptRegistryError as e:
        click.echo(f"Error: {e}", err=True)
        sys.exit(1)


@lockfile.command("show")
@click.pass_obj
def lockfile_show(app: AppContext):
    data = run(_lockfile_manager(app).read())
    if data is None:
        click.echo("No lockfile")
        return
    echo_json(data.to_dict())


@lockfile.command("validate")
@click.pass_obj
def lockfile_validate(app: AppContext):
    result = run(_lockfile_manager(app).validate())
    for warning in result.warnings:
        click.echo(f"warning: {warning}")
    for error in result.errors:
        click.echo(f"error: {error}", err=True)
    if not result.valid:
        sys.exit(1)
    click.echo(f"Lockfile is valid (version {result.schema_version})")


@lockfile.command("drift")
@click.argument("bundle_id", required=False)
@click.pass_obj
def lockfile_drift(app: AppContext, bundle_id):
    """Report files whose checksum no longer matches the lockfile."""
    manager = _lockfile_manager(app)
    bundle_ids = [bundle_id] if bundle_id else list(run(manager.get_bundles()))
    drifted = False
    for current in bundle_ids:
        for modified in run(manager.detect_modified_files(current)):
            drifted = True
            click.echo(f"{current}\t{modified.modification_type}\t{modified.path}")
    if not drifted:
        click.echo("No drift detected")


# --- Hubs ---


@cli.group()
def hub():
    """Import and manage hubs."""


@hub.command("import")
@click.argument("location")
@click.option("--type", "ref_type", type=click.Choice(["github", "url", "local"]), required=True)
@click.option("--ref", help="Branch or tag for github hubs")
@click.option("--id", "hub_id", help="Hub id (default: derived from the hub name)")
@click.pass_obj
def hub_import(app: AppContext, location, ref_type, ref, hub_id):
    reference = {"type": ref_type, "location": location, "ref": ref}
    imported = run(app.hubs.import_hub(reference, hub_id))
    click.echo(f"Imported hub '{imported}'")


@hub.command("sync")
@click.argument("hub_id")
@click.pass_obj
def hub_sync(app: AppContext, hub_id):
    run(app.hubs.sync_hub(hub_id))
    click.echo(f"Synced hub '{hub_id}'")


@hub.command("list")
@click.pass_obj
def hub_list(app: AppContext):
    for item in run(app.hubs.list_hubs()):
        click.echo(f"{item.id}\t{item.name}\t{item.reference.type}:{item.reference.location}")


@hub.command("delete")
@click.argument("hub_id")
@click.pass_obj
def hub_delete(app: AppContext, hub_id):
    run(app.hubs.delete_hub(hub_id))
    click.echo(f"Deleted hub '{hub_id}'")


@hub.command("profiles")
@click.argument("hub_id", required=False)
@click.pass_obj
def hub_profiles(app: AppContext, hub_id):
    """List profiles of one hub, or of every hub."""
    if hub_id:
        for item in run(app.hubs.list_profiles_from_hub(hub_id)):
            marker = "*" if item.active else " "
            click.echo(f"{marker} {item.id}\t{item.name}\t{len(item.bundles)} bundles")
        return
    for entry in run(app.hubs.list_all_hub_profiles()):
        marker = "*" if entry.profile.active else " "
        click.echo(f"{marker} {entry.hub_id}/{entry.profile.id}\t{entry.profile.name}")


# --- Profiles ---


@cli.group()
def profile():
    """Activate and deactivate hub profiles."""


@profile.command("activate")
@click.argument("hub_id")
@click.argument("profile_id")
@click.option("--no-install", is_flag=True, help="Track the profile without installing its bundles")
@click.pass_obj
def profile_activate(app: AppContext, hub_id, profile_id, no_install):
    result = run(app.hubs.activate_profile(hub_id, profile_id, install_bundles=not no_install))
    if result.failed_bundles:
        click.echo(f"Failed bundles: {', '.join(result.failed_bundles)}", err=True)
    if not result.success:
        click.echo(f"Error: {result.error}", err=True)
        sys.exit(1)
    click.echo(f"Activated {hub_id}/{profile_id} ({len(result.resolved_bundles)} bundles)")


@profile.command("deactivate")
@click.argument("hub_id")
@click.argument("profile_id")
@click.pass_obj
def profile_deactivate(app: AppContext, hub_id, profile_id):
    result = run(app.hubs.deactivate_profile(hub_id, profile_id))
    if not result.success:
        click.echo(f"Error: {result.error}", err=True)
        sys.exit(1)
    click.echo(f"Deactivated {hub_id}/{profile_id} (removed {len(result.removed_bundles)} bundles)")


@profile.command("active")
@click.pass_obj
def profile_active(app: AppContext):
    for state in run(app.hubs.list_all_active_profiles()):
        count = len(state.synced_bundles)
        click.echo(f"{state.hub_id}/{state.profile_id}\tsince {state.activated_at}\t{count} bundles")


@profile.command("sync")
@click.argument("hub_id")
@click.argument("profile_id")
@click.pass_obj
def profile_sync(app: AppContext, hub_id, profile_id):
    """Apply the profile's pending changes now."""
    changes = run(app.hubs.sync_profile_now(hub_id, profile_id))
    click.echo(
        f"{len(changes.added)} added, {len(changes.updated)} updated, {len(changes.removed)} removed"
    )


# --- History ---


@cli.group()
def history():
    """Profile sync history and rollback."""


@history.command("show")
@click.argument("hub_id")
@click.argument("profile_id")
@click.option("-n", "--limit", type=int, help="Number of entries to show")
@click.pass_obj
def history_show(app: AppContext, hub_id, profile_id, limit):
    entries = run(app.hubs.history.get_history(hub_id, profile_id, limit))
    if not entries:
        click.echo("No history")
        return
    for index, entry in enumerate(entries):
        click.echo(f"[{index}]")
        click.echo(app.hubs.history.format_history_entry(entry))
        click.echo("")


@history.command("rollback")
@click.argument("hub_id")
@click.argument("profile_id")
@click.argument("index", type=int)
@click.option("--install", is_flag=True, help="Install and remove bundles to match")
@click.pass_obj
def history_rollback(app: AppContext, hub_id, profile_id, index, install):
    """Roll back to the state before entry INDEX (0 is the newest)."""
    entries = run(app.hubs.history.get_history(hub_id, profile_id))
    if index < 0 or index >= len(entries):
        click.echo(f"Error: no history entry {index}", err=True)
        sys.exit(1)
    run(app.hubs.history.rollback_to_entry(hub_id, profile_id, entries[index], install_bundles=install))
    click.echo(f"Rolled back {hub_id}/{profile_id}")


@history.command("clear")
@click.argument("hub_id", required=False)
@click.argument("profile_id", required=False)
@click.pass_obj
def history_clear(app: AppContext, hub_id, profile_id):
    if hub_id and profile_id:
        run(app.hubs.history.clear_history(hub_id, profile_id))
    elif not hub_id:
        run(app.hubs.history.clear_all_history())
    else:
        click.echo("Error: give both HUB_ID and PROFILE_ID, or neither", err=True)
        sys.exit(1)
    click.echo("History cleared")


# --- Settings ---


@cli.group()
def settings():
    """Export and import sources and preferences."""


@settings.command("export")
@click.argument("output", type=click.Path(path_type=Path), required=False)
@click.pass_obj
def settings_export(app: AppContext, output: Path | None):
    document = run(app.registry.export_settings())
    if output:
        output.write_text(document + "\n", encoding="utf-8")
        click.echo(f"Exported settings to {output}")
    else:
        click.echo(document)


@settings.command("import")
@click.argument("input_file", type=click.Path(exists=True, path_type=Path))
@click.option("--strategy", type=click.Choice(["merge", "replace"]), default="merge")
@click.pass_obj
def settings_import(app: AppContext, input_file: Path, strategy: str):
    config = run(app.registry.import_settings(input_file.read_text(encoding="utf-8"), strategy))
    click.echo(f"Imported settings: {len(config.sources)} sources")


def main():
    """Entry point for prompt-registry CLI."""
    try:
        cli()
    except KeyboardInterrupt:
        click.echo("\nInterrupted")
        sys.exit(0)


if __name__ == "__main__":
    main()
