"""Mission Toolkit CLI - thin command surface over the mission engines."""

import sys
from pathlib import Path
from typing import NoReturn

import click
from rich.console import Console
from rich.markup import escape

from mission_toolkit import __version__
from mission_toolkit.backlog import COMPLETED, ITEM_TYPES, BacklogManager
from mission_toolkit.checkpoint import CheckpointService
from mission_toolkit.config import detect_project_root, load_config
from mission_toolkit.diagnosis import VALID_CONFIDENCE, VALID_STATUSES, DiagnosisManager
from mission_toolkit.errors import ErrorKind, MissionError, format_error, invalid_argument
from mission_toolkit.logging import configure_logging
from mission_toolkit.mission import MissionPaths, get_current_mission_id, get_or_create_mission_id
from mission_toolkit.validation import validate

console = Console()
err_console = Console(stderr=True)

LIST_TAGS = (*ITEM_TYPES, COMPLETED)


def _fail(error: MissionError) -> NoReturn:
    err_console.print(f"[red]{escape(format_error(error))}[/red]")
    sys.exit(1)


def _paths(ctx: click.Context) -> MissionPaths:
    return ctx.obj


def _resolve_mission_id(paths: MissionPaths, mission_id: str | None, create: bool) -> str:
    if mission_id:
        return mission_id

    result = get_current_mission_id(paths)
    if result.ok:
        return result.value
    if create and result.error.code == ErrorKind.NOT_FOUND:
        result = get_or_create_mission_id(paths)
        if result.ok:
            return result.value
    _fail(result.error)


@click.group()
@click.version_option(version=__version__)
@click.option(
    "--log-level",
    type=click.Choice(["DEBUG", "INFO", "WARNING", "ERROR"], case_sensitive=False),
    help="Override log level (default from config)",
)
@click.option(
    "--root",
    type=click.Path(file_okay=False, path_type=Path),
    help="Project root (default: nearest directory with .mission/ or .git)",
)
@click.pass_context
def main(ctx, log_level, root):
    """Mission Toolkit: plan, checkpoint and debug AI-assisted coding missions."""
    project_root = root or detect_project_root() or Path.cwd()
    loaded = load_config(project_root)
    if not loaded.ok:
        _fail(loaded.error)
    config = loaded.value
    configure_logging(log_level or config.log_level, config.log_file)
    ctx.obj = MissionPaths(root=project_root, config=config)


@main.command()
@click.argument("intent", required=False, default="")
@click.pass_context
def check(ctx, intent):
    """Check whether INTENT may proceed (prints a JSON envelope).

    Examples:
        m check "add rate limiting to the API"
    """
    click.echo(validate(intent, _paths(ctx).mission_dir).to_json())


@main.command("id")
@click.pass_context
def mission_id_cmd(ctx):
    """Print the current mission ID, creating one if needed."""
    click.echo(_resolve_mission_id(_paths(ctx), None, create=True))


# =============================================================================
# Backlog
# =============================================================================


@main.group()
def backlog():
    """Manage the mission backlog (.mission/backlog.md)."""
    pass


def _backlog(ctx: click.Context) -> BacklogManager:
    paths = _paths(ctx)
    return BacklogManager(paths.mission_dir, paths.config)


@backlog.command("add")
@click.argument("descriptions", nargs=-1, required=True)
@click.option("--type", "-t", "item_type", required=True, type=click.Choice(ITEM_TYPES), help="Item type")
@click.option("--pattern-id", "-p", default="", help="Pattern ID for recurring refactor candidates")
@click.pass_context
def backlog_add(ctx, descriptions, item_type, pattern_id):
    """Add one or more items.

    Examples:
        m backlog add "Ship v1" --type feature
        m backlog add "Extract retry helper" -t refactor -p retry
    """
    if pattern_id and len(descriptions) > 1:
        _fail(invalid_argument("--pattern-id can only be used with a single item"))

    manager = _backlog(ctx)
    if len(descriptions) == 1:
        result = manager.add_with_pattern(descriptions[0], item_type, pattern_id)
    else:
        result = manager.add_multiple(list(descriptions), item_type)

    if not result.ok:
        _fail(result.error)
    console.print(f"[green]✓[/green] {escape(result.value)}")


@backlog.command("list")
@click.option("--include", "-i", multiple=True, type=click.Choice(LIST_TAGS), help="Only these types")
@click.option("--exclude", "-e", multiple=True, type=click.Choice(LIST_TAGS), help="Skip these types")
@click.option("--all", "show_all", is_flag=True, help="Include completed items")
@click.pass_context
def backlog_list(ctx, include, exclude, show_all):
    """List backlog items."""
    if include and exclude:
        _fail(invalid_argument("--include and --exclude are mutually exclusive"))

    include = set(include)
    if show_all:
        include |= set(LIST_TAGS)

    result = _backlog(ctx).list(include=include, exclude=set(exclude))
    if not result.ok:
        _fail(result.error)

    if not result.value:
        console.print("[dim]No backlog items[/dim]")
        return
    for line in result.value:
        click.echo(line)


@backlog.command("complete")
@click.argument("item")
@click.pass_context
def backlog_complete(ctx, item):
    """Mark the first open item containing ITEM as completed."""
    result = _backlog(ctx).complete(item)
    if not result.ok:
        _fail(result.error)
    console.print(f"[green]✓[/green] {escape(result.value)}")


@backlog.command("cleanup")
@click.option("--type", "-t", "item_type", type=click.Choice(ITEM_TYPES), help="Only this type")
@click.pass_context
def backlog_cleanup(ctx, item_type):
    """Remove completed items."""
    result = _backlog(ctx).cleanup(item_type or "")
    if not result.ok:
        _fail(result.error)
    console.print(f"Removed {result.value} completed item(s)")


@backlog.command("pattern-count")
@click.argument("pattern_id")
@click.pass_context
def backlog_pattern_count(ctx, pattern_id):
    """Print how often a refactor pattern has been seen."""
    result = _backlog(ctx).get_pattern_count(pattern_id)
    if not result.ok:
        _fail(result.error)
    click.echo(str(result.value))


# =============================================================================
# Diagnosis
# =============================================================================


@main.group()
def diagnosis():
    """Drive a debug investigation (.mission/diagnosis.md)."""
    pass


def _diagnosis(ctx: click.Context) -> DiagnosisManager:
    paths = _paths(ctx)
    return DiagnosisManager(paths.mission_dir, paths.config)


@diagnosis.command("create")
@click.argument("symptom")
@click.pass_context
def diagnosis_create(ctx, symptom):
    """Start a new diagnosis for SYMPTOM."""
    result = _diagnosis(ctx).create(symptom)
    if not result.ok:
        _fail(result.error)
    console.print(f"[green]✓[/green] Created diagnosis: {result.value.id}")


@diagnosis.command("update")
@click.option("--section", "-s", help="Section to update (e.g. ROOT-CAUSE)")
@click.option("--content", "-c", help="Text for the section (appended for list sections)")
@click.option("--item", "items", multiple=True, help="List item; repeat for several")
@click.option("--append", "append_mode", is_flag=True, help="Append --item values instead of replacing")
@click.option("--status", type=click.Choice(VALID_STATUSES), help="New status")
@click.option("--confidence", type=click.Choice(VALID_CONFIDENCE), help="New confidence")
@click.pass_context
def diagnosis_update(ctx, section, content, items, append_mode, status, confidence):
    """Update a section, a list, or the status/confidence.

    Examples:
        m diagnosis update -s "ROOT CAUSE" -c "session not initialised"
        m diagnosis update -s affected-files --item auth.go --item session.go
        m diagnosis update --status confirmed --confidence high
    """
    manager = _diagnosis(ctx)

    if status or confidence:
        if section or content or items:
            _fail(invalid_argument("--status/--confidence cannot be combined with section updates"))
        result = manager.update_frontmatter(status, confidence)
    elif items:
        if content:
            _fail(invalid_argument("use either --content or --item, not both"))
        result = manager.update_list(section or "", list(items), append_mode=append_mode)
    elif section or content:
        result = manager.update_section(section or "", content or "")
    else:
        _fail(invalid_argument("nothing to update: pass --section/--content, --item, --status or --confidence"))

    if not result.ok:
        _fail(result.error)
    console.print(f"[green]✓[/green] Updated diagnosis: {result.value.id}")


@diagnosis.command("finalize")
@click.pass_context
def diagnosis_finalize(ctx):
    """Check required sections (prints a JSON report)."""
    result = _diagnosis(ctx).finalize_json()
    if not result.ok:
        _fail(result.error)
    click.echo(result.value)


# =============================================================================
# Checkpoints
# =============================================================================


@main.group()
def checkpoint():
    """Snapshot and restore the working tree."""
    pass


def _checkpoints(ctx: click.Context) -> CheckpointService:
    paths = _paths(ctx)
    return CheckpointService(paths.root, paths.config)


@checkpoint.command("create")
@click.option("--mission-id", "-m", help="Mission ID (default: current mission)")
@click.pass_context
def checkpoint_create(ctx, mission_id):
    """Snapshot the working tree without moving the branch."""
    mission_id = _resolve_mission_id(_paths(ctx), mission_id, create=True)
    result = _checkpoints(ctx).create(mission_id)
    if not result.ok:
        _fail(result.error)
    click.echo(result.value)


@checkpoint.command("revert")
@click.argument("name")
@click.pass_context
def checkpoint_revert(ctx, name):
    """Restore the working tree from checkpoint NAME and delete it."""
    result = _checkpoints(ctx).revert(name)
    if not result.ok:
        _fail(result.error)
    console.print(f"[green]✓[/green] Reverted to {escape(result.value)}")


@checkpoint.command("clear")
@click.option("--mission-id", "-m", help="Mission ID (default: current mission)")
@click.pass_context
def checkpoint_clear(ctx, mission_id):
    """Delete all checkpoints of a mission."""
    mission_id = _resolve_mission_id(_paths(ctx), mission_id, create=False)
    result = _checkpoints(ctx).clear(mission_id)
    if not result.ok:
        _fail(result.error)
    console.print(f"Deleted {result.value} checkpoint(s)")


@checkpoint.command("restore-all")
@click.option("--mission-id", "-m", help="Mission ID (default: current mission)")
@click.pass_context
def checkpoint_restore_all(ctx, mission_id):
    """Return to the mission baseline and delete all its checkpoints."""
    mission_id = _resolve_mission_id(_paths(ctx), mission_id, create=False)
    result = _checkpoints(ctx).restore_all(mission_id)
    if not result.ok:
        _fail(result.error)
    console.print(f"[green]✓[/green] Restored baseline, deleted {result.value} checkpoint(s)")


@checkpoint.command("consolidate")
@click.option("--message", "-M", "message", required=True, help="Commit message for the final commit")
@click.option("--mission-id", "-m", help="Mission ID (default: current mission)")
@click.pass_context
def checkpoint_consolidate(ctx, message, mission_id):
    """Squash the mission's changes into one commit and delete its checkpoints."""
    mission_id = _resolve_mission_id(_paths(ctx), mission_id, create=False)
    result = _checkpoints(ctx).consolidate(mission_id, message)
    if not result.ok:
        _fail(result.error)
    click.echo(result.value)


@checkpoint.command("list")
@click.option("--mission-id", "-m", help="Mission ID (default: current mission)")
@click.pass_context
def checkpoint_list(ctx, mission_id):
    """List checkpoints of a mission, oldest first."""
    mission_id = _resolve_mission_id(_paths(ctx), mission_id, create=False)
    result = _checkpoints(ctx).list(mission_id)
    if not result.ok:
        _fail(result.error)

    if not result.value:
        console.print("[dim]No checkpoints[/dim]")
        return
    for name in result.value:
        click.echo(name)


if __name__ == "__main__":
    main()
