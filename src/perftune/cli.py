"""
Click-based CLI for perftune.

IMPORTANT: This module only ORCHESTRATES. It never decides outcomes.
- Loads settings and host profiles
- Resolves action lists
- Invokes the applier and revert planner
- Formats output and maps run states to exit codes
"""

import sys
from contextlib import contextmanager
from pathlib import Path
from typing import Callable, Iterator

import click
from rich.console import Console
from rich.table import Table

from perftune import __version__
from perftune.config import ConfigManager, Settings
from perftune.connector import Host, LocalHost, SSHConfig, SSHHost
from perftune.engine import Applier, RevertPlanner, preview
from perftune.errors import ActionListError, PerftuneError
from perftune.logs import run_log, setup_logging
from perftune.model.schema import bundled_profiles, resolve_action_list
from perftune.report import EXIT_FATAL, build_report
from perftune.reporters import get_reporter
from perftune.storage import RunRegistry, load_manifest

console = Console()
FORMATS = ["rich", "plain", "json"]


@click.group()
@click.version_option(version=__version__, prog_name="perftune")
@click.option("--config", "-c", type=click.Path(file_okay=False), help="Path to config directory")
@click.option("--verbose", "-v", count=True, help="Show log output (-v info, -vv debug)")
@click.pass_context
def main(ctx: click.Context, config: str | None, verbose: int) -> None:
    """perftune: declarative, reversible system tuning.

    Apply an action list with a snapshot taken before every change, and
    revert any recorded run to the state it found.
    """
    ctx.ensure_object(dict)
    config_mgr = ConfigManager(Path(config) if config else None)
    try:
        settings = config_mgr.load_settings()
    except PerftuneError as e:
        console.print(f"[bold red]Error:[/] {e}")
        sys.exit(EXIT_FATAL)

    level = {0: settings.log_level, 1: "INFO"}.get(verbose, "DEBUG")
    setup_logging(level, Console(stderr=True))
    ctx.obj["config_mgr"] = config_mgr
    ctx.obj["settings"] = settings


def _settings(ctx: click.Context) -> Settings:
    return ctx.obj["settings"]


def _registry(ctx: click.Context, state_dir: str | None) -> RunRegistry:
    return RunRegistry(Path(state_dir) if state_dir else _settings(ctx).state_dir)


def state_dir_option(func: Callable) -> Callable:
    return click.option(
        "--state-dir", type=click.Path(file_okay=False), help="Directory holding run records"
    )(func)


def target_options(func: Callable) -> Callable:
    """Options shared by commands that change a host."""
    options = [
        click.option("--host", "host_profile", help="SSH profile name or hostname to tune instead of this machine"),
        click.option("--root", type=click.Path(file_okay=False),
                     help="Change files under an alternate root; actions that need commands are skipped"),
        state_dir_option,
        click.option("--timeout", type=click.FloatRange(min=0, min_open=True), help="Seconds per external command"),
        click.option("--allow-non-root", is_flag=True, help="Do not refuse to run without root privileges"),
        click.option("--yes", "-y", is_flag=True, help="Skip confirmation prompts"),
        click.option("--dry-run", is_flag=True, help="Show what would happen without changing anything"),
        click.option("--format", "fmt", type=click.Choice(FORMATS), default=None, help="Output format"),
    ]
    for option in reversed(options):
        func = option(func)
    return func


@contextmanager
def _host_session(ctx: click.Context, host_profile: str | None, root: str | None) -> Iterator[Host]:
    """Open the target host (local, alternate root, or SSH)."""
    if host_profile and root:
        raise PerftuneError("--host and --root cannot be combined")
    if not host_profile:
        yield LocalHost(root=root)
        return

    cfg = ctx.obj["config_mgr"].get_profile(host_profile)
    if cfg is None:
        # Otherwise treat as hostname/IP with default root user
        cfg = SSHConfig(host=host_profile, user="root")
    with SSHHost(cfg) as ssh:
        yield ssh


def _require_privileges(host: Host, allowed: bool) -> None:
    if allowed or host.is_root():
        return
    console.print(
        f"[bold red]Error:[/] perftune needs root privileges on {host.name}. "
        "Run with sudo, or pass --allow-non-root or --root DIR."
    )
    sys.exit(EXIT_FATAL)


def _confirm(message: str, yes: bool) -> None:
    if yes:
        return
    if not click.confirm(message):
        console.print("[yellow]Aborted. Nothing was changed.[/]")
        sys.exit(EXIT_FATAL)


@main.command()
@click.argument("action_list")
@target_options
@click.pass_context
def apply(
    ctx: click.Context,
    action_list: str,
    host_profile: str | None,
    root: str | None,
    state_dir: str | None,
    timeout: float | None,
    allow_non_root: bool,
    yes: bool,
    dry_run: bool,
    fmt: str | None,
) -> None:
    """Apply an action list file or bundled profile.

    Exits 0 when every action succeeded, 2 when best-effort actions failed,
    and 1 when a fatal action failed or the run could not start.
    """
    settings = _settings(ctx)
    reporter = get_reporter(fmt, console)
    timeout = timeout or settings.default_timeout

    try:
        actions = resolve_action_list(action_list)
        with _host_session(ctx, host_profile, root) as host:
            if dry_run:
                reporter.report_preview(preview(host, actions, timeout))
                return

            _require_privileges(host, allow_non_root or root is not None)
            _confirm(
                f"Apply {len(actions.actions)} actions from {actions.source} to {host.name}?",
                yes,
            )

            registry = _registry(ctx, state_dir)
            run = registry.create_run()
            if fmt != "json":
                console.print(f"[bold]Run {run.run_id}[/] [dim]{run.run_dir}[/]")

            applier = Applier(host, run, timeout, on_entry=reporter.report_entry)
            with run_log(run.log):
                manifest = applier.run(actions)
            exit_code = reporter.report_run(build_report(manifest, run))

            if settings.keep_runs:
                registry.prune(settings.keep_runs)
    except ActionListError as e:
        console.print(f"[bold red]Invalid action list:[/] {e}")
        sys.exit(EXIT_FATAL)
    except PerftuneError as e:
        console.print(f"[bold red]Error:[/] {e}")
        sys.exit(EXIT_FATAL)

    sys.exit(exit_code)


@main.command()
@click.argument("run_id")
@target_options
@click.pass_context
def revert(
    ctx: click.Context,
    run_id: str,
    host_profile: str | None,
    root: str | None,
    state_dir: str | None,
    timeout: float | None,
    allow_non_root: bool,
    yes: bool,
    dry_run: bool,
    fmt: str | None,
) -> None:
    """Restore everything a run changed, last change first.

    Exits 0 when every inverse step succeeded, 2 when some failed, and 1 when
    the run's manifest or backup store is missing.
    """
    reporter = get_reporter(fmt, console)
    timeout = timeout or _settings(ctx).default_timeout

    try:
        run = _registry(ctx, state_dir).open_run(run_id)
        manifest = load_manifest(run.manifest)

        # Revert where the run was applied unless told otherwise
        if not host_profile and root is None:
            if manifest.host.startswith("local:"):
                root = manifest.host[len("local:"):]
            elif manifest.host.startswith("ssh:"):
                raise PerftuneError(f"Run {run_id} was applied to {manifest.host}; pass --host")

        with _host_session(ctx, host_profile, root) as host:
            planner = RevertPlanner(host, run.store, timeout)
            plan = planner.plan(manifest)
            if dry_run:
                reporter.report_plan(plan)
                return

            _require_privileges(host, allow_non_root or root is not None)
            if not manifest.is_complete:
                console.print(f"[yellow]Run {run_id} did not finish; reverting what it recorded.[/]")
            _confirm(f"Revert {len(plan.restores)} changes of run {run_id} on {host.name}?", yes)

            record_path = run.new_revert_record()
            with run_log(run.log):
                record = planner.execute(plan, record_path, on_entry=reporter.report_entry)
            exit_code = reporter.report_run(build_report(record, run, record=record_path))
    except PerftuneError as e:
        console.print(f"[bold red]Error:[/] {e}")
        sys.exit(EXIT_FATAL)

    sys.exit(exit_code)


@main.command()
@click.argument("run_id")
@state_dir_option
@click.option("--format", "fmt", type=click.Choice(FORMATS), default=None, help="Output format")
@click.pass_context
def plan(ctx: click.Context, run_id: str, state_dir: str | None, fmt: str | None) -> None:
    """Show the inverse steps a revert of RUN_ID would take."""
    reporter = get_reporter(fmt, console)
    try:
        run = _registry(ctx, state_dir).open_run(run_id)
        manifest = load_manifest(run.manifest)
        # Describing inverse steps never touches the host
        reporter.report_plan(RevertPlanner(LocalHost(), run.store).plan(manifest))
    except PerftuneError as e:
        console.print(f"[bold red]Error:[/] {e}")
        sys.exit(EXIT_FATAL)


@main.command()
@click.argument("run_id")
@state_dir_option
@click.option("--format", "fmt", type=click.Choice(FORMATS), default=None, help="Output format")
@click.pass_context
def show(ctx: click.Context, run_id: str, state_dir: str | None, fmt: str | None) -> None:
    """Show the report of a recorded run and of its reverts."""
    reporter = get_reporter(fmt, console)
    try:
        run = _registry(ctx, state_dir).open_run(run_id)
        reporter.report_run(build_report(load_manifest(run.manifest), run))
        for record_path in run.revert_records():
            reporter.report_run(build_report(load_manifest(record_path), record=record_path))
    except PerftuneError as e:
        console.print(f"[bold red]Error:[/] {e}")
        sys.exit(EXIT_FATAL)


@main.command()
@state_dir_option
@click.option("--format", "fmt", type=click.Choice(FORMATS), default=None, help="Output format")
@click.pass_context
def runs(ctx: click.Context, state_dir: str | None, fmt: str | None) -> None:
    """List recorded runs, newest first."""
    get_reporter(fmt, console).report_runs(_registry(ctx, state_dir).list_runs())


@main.command()
@state_dir_option
@click.option("--keep", type=click.IntRange(min=0), default=None, help="Runs to keep (default: keep_runs setting)")
@click.option("--older-than", type=click.IntRange(min=0), default=None, help="Only delete runs older than DAYS")
@click.option("--yes", "-y", is_flag=True, help="Skip confirmation prompt")
@click.pass_context
def prune(ctx: click.Context, state_dir: str | None, keep: int | None, older_than: int | None, yes: bool) -> None:
    """Delete old runs and their backups. Pruned runs can no longer be reverted."""
    registry = _registry(ctx, state_dir)
    keep = _settings(ctx).keep_runs if keep is None else keep
    _confirm(f"Delete runs in {registry.state_dir} beyond the newest {keep}?", yes)

    removed = registry.prune(keep, older_than)
    if not removed:
        console.print("[dim]Nothing to prune.[/]")
    for run_id in removed:
        console.print(f"[bold green]✓ Removed run:[/] {run_id}")


@main.command()
def profiles() -> None:
    """List the action lists bundled with perftune."""
    table = Table(title="Bundled profiles")
    table.add_column("Name", style="bold")
    table.add_column("Actions", justify="right")
    table.add_column("Description")
    for name in bundled_profiles():
        try:
            action_list = resolve_action_list(name)
        except ActionListError as e:
            table.add_row(name, "-", f"[red]{e}[/]")
            continue
        table.add_row(name, str(len(action_list.actions)), action_list.description)
    console.print(table)
    console.print("[dim]Apply one with:[/] perftune apply <name>")


@main.group()
def config() -> None:
    """Manage SSH host profiles."""
    pass


@config.command("add")
@click.argument("name")
@click.option("--host", "-h", required=True, help="Server hostname or IP")
@click.option("--user", "-u", default="root", help="SSH username")
@click.option("--port", "-p", default=22, help="SSH port")
@click.option("--password", "-pass", help="SSH password")
@click.option("--key", "-k", type=click.Path(), help="Path to SSH private key")
@click.option("--sudo/--no-sudo", default=True, help="Use sudo for commands")
@click.pass_context
def config_add(
    ctx: click.Context, name: str, host: str, user: str, port: int, password: str | None, key: str | None, sudo: bool
) -> None:
    """Add a new host profile."""
    config_mgr = ctx.obj["config_mgr"]
    cfg = SSHConfig(host=host, user=user, port=port, password=password, key_path=key, use_sudo=sudo)
    config_mgr.add_profile(name, cfg)
    console.print(f"[bold green]✓ Added host profile:[/] {name}")


@config.command("list")
@click.pass_context
def config_list(ctx: click.Context) -> None:
    """List all host profiles."""
    config_mgr = ctx.obj["config_mgr"]
    try:
        host_profiles = config_mgr.list_profiles()
    except PerftuneError as e:
        console.print(f"[bold red]Error:[/] {e}")
        sys.exit(EXIT_FATAL)
    if not host_profiles:
        console.print("[dim]No profiles configured yet.[/]")
        return

    for name, data in host_profiles.items():
        console.print(f"[bold green]{name}[/]: {data['user']}@{data['host']}:{data['port']}")


@config.command("remove")
@click.argument("name")
@click.pass_context
def config_remove(ctx: click.Context, name: str) -> None:
    """Remove a host profile."""
    config_mgr = ctx.obj["config_mgr"]
    if config_mgr.remove_profile(name):
        console.print(f"[bold green]✓ Removed profile:[/] {name}")
    else:
        console.print(f"[bold red]Error:[/] Profile {name} not found.")
        sys.exit(EXIT_FATAL)


if __name__ == "__main__":
    main()
