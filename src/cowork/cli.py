"""Cowork CLI - isolated development sessions using devcontainers and full clones."""

import functools
from pathlib import Path
from typing import Annotated, Optional

import typer
from rich.console import Console
from rich.table import Table

from cowork import __version__
from cowork.config import SESSION_COUNT_WARNING, CoworkPaths, default_paths, ensure_dirs
from cowork.errors import CoworkError, SessionNotFound
from cowork.logger import logger
from cowork.settings.models import Multiplexer
from cowork.settings.store import ConfigLayers, load_layers, read_config, save_config
from cowork.sessions.models import ProjectIdentity, SessionStatus
from cowork.sessions.registry import SessionRegistry, resolve_identity
from cowork.tools.git import Git
from cowork.tools.runtime import ContainerRuntime

app = typer.Typer(
    name="cowork",
    help="Isolated development sessions using devcontainers and full clones.",
    no_args_is_help=True,
)

console = Console()

STATUS_STYLES = {
    SessionStatus.RUNNING: "green",
    SessionStatus.STOPPED: "yellow",
    SessionStatus.MISSING: "red",
}


def _paths() -> CoworkPaths:
    return default_paths()


def _git() -> Git:
    return Git()


def _runtime() -> ContainerRuntime:
    return ContainerRuntime()


def _report_error(exc: CoworkError) -> None:
    console.print(f"[red]Error:[/red] {exc.message}", highlight=False)
    if exc.hint:
        console.print(f"  Tip: {exc.hint}", highlight=False)


def handle_errors(func):
    """Turn CoworkError into a reported message and a non-zero exit."""

    @functools.wraps(func)
    def wrapper(*args, **kwargs):
        try:
            return func(*args, **kwargs)
        except CoworkError as exc:
            logger.debug("Command failed", error=type(exc).__name__, message=exc.message)
            _report_error(exc)
            raise typer.Exit(1)
        except KeyboardInterrupt:
            console.print("\n[red]Interrupted[/red]")
            raise typer.Exit(130)

    return wrapper


def version_callback(value: bool) -> None:
    if value:
        console.print(f"cowork {__version__}")
        raise typer.Exit()


@handle_errors
def _first_run(paths: CoworkPaths) -> None:
    """Ask for a multiplexer preference once and store it in the user config."""
    from cowork.prompts import ask_multiplexer

    user = read_config(paths.user_config)
    if user.multiplexer_preference is not None:
        return

    console.print("[blue]Welcome to Cowork! Let's set up your preferences.[/blue]")
    choice = ask_multiplexer(console)
    save_config(paths.user_config, user.model_copy(update={"multiplexer_preference": choice}))
    console.print(f"[green]Set preference to {choice.value}[/green]")


@app.callback()
def main(
    ctx: typer.Context,
    version: Annotated[
        Optional[bool],
        typer.Option("--version", "-v", callback=version_callback, is_eager=True),
    ] = None,
) -> None:
    """Cowork - isolated, resumable development sessions."""
    paths = _paths()
    ensure_dirs(paths)
    if ctx.invoked_subcommand not in (None, "help"):
        _first_run(paths)


def _load_project(paths: CoworkPaths) -> tuple[ProjectIdentity, ConfigLayers]:
    identity = resolve_identity(Path.cwd(), _git())
    layers = load_layers(paths.user_config, identity.config_path)
    return identity, layers


def _registry(paths: CoworkPaths, identity: ProjectIdentity) -> SessionRegistry:
    return SessionRegistry(paths, identity, _git(), _runtime())


def _print_sessions(identity: ProjectIdentity, registry: SessionRegistry, layers: ConfigLayers) -> None:
    sessions = registry.list_sessions(layers.project)
    if not sessions:
        console.print("No sessions configured. Run 'cowork init <session_name>' to create one.")
        return

    table = Table(title=f"Sessions for {identity.name}")
    table.add_column("Session", style="cyan")
    table.add_column("Status")
    table.add_column("Branch")
    table.add_column("Last Modified")

    for session in sessions:
        style = STATUS_STYLES[session.status]
        modified = session.last_modified.strftime("%Y-%m-%d %H:%M") if session.last_modified else "-"
        table.add_row(
            session.name,
            f"[{style}]{session.status.value}[/{style}]",
            session.branch or "-",
            modified,
        )

    console.print(table)
    preference = layers.merged.multiplexer_preference
    console.print(f"Multiplexer preference: {preference.value if preference else 'not set'}")


# ── Authentication ───────────────────────────────────────────────


@app.command()
@handle_errors
def auth() -> None:
    """Authenticate once and share the credentials with every session."""
    from cowork.auth.broker import CredentialState, authenticate

    paths = _paths()
    console.print("[blue]Setting up Claude authentication[/blue]")
    outcome = authenticate(paths, _runtime())

    if outcome.bootstrapped:
        console.print("[green]Authentication completed successfully[/green]")
    else:
        console.print(f"[green]Valid authentication already exists at:[/green] {outcome.source}")
        if outcome.centralized:
            console.print(f"  Copied to {paths.auth_dir}")
    if outcome.state is CredentialState.STALE:
        console.print("[yellow]Authentication may be expired (older than 30 days)[/yellow]")


# ── Sessions ─────────────────────────────────────────────────────


@app.command()
@handle_errors
def init(
    names: Annotated[list[str], typer.Argument(help="Session names to create")],
) -> None:
    """Initialize development sessions for this project."""
    from cowork.devcontainer.reconciler import reconcile
    from cowork.prompts import ConsolePrompter

    paths = _paths()
    identity, layers = _load_project(paths)
    registry = _registry(paths, identity)
    registry.runtime.require()

    console.print(f"[blue]Initializing sessions for project:[/blue] {identity.name}")
    total = len(layers.project.sessions) + len(names)
    if total > SESSION_COUNT_WARNING:
        console.print(
            f"[yellow]Creating {total} total sessions. This may consume significant disk space.[/yellow]"
        )

    prompter = ConsolePrompter(console)
    report, _ = registry.init_sessions(
        names, layers.project, lambda directory: reconcile(directory, prompter)
    )

    for name in report.skipped:
        console.print(f"[yellow]Session '{name}' already exists, skipping[/yellow]")
    for name in report.created:
        console.print(f"[green]Session '{name}' created[/green]")
    for name, reason in report.failed.items():
        console.print(f"[red]Session '{name}' failed:[/red] {reason}", highlight=False)

    if not report.ok:
        raise typer.Exit(1)
    console.print("[green]All sessions initialized[/green]")


@app.command("list")
@handle_errors
def list_sessions() -> None:
    """List all configured sessions and their status."""
    paths = _paths()
    identity, layers = _load_project(paths)
    _print_sessions(identity, _registry(paths, identity), layers)


@app.command()
@handle_errors
def connect(
    name: Annotated[str, typer.Argument(help="Session to connect to")],
    tmux: Annotated[bool, typer.Option("--tmux", help="Use tmux for this connection")] = False,
    zellij: Annotated[bool, typer.Option("--zellij", help="Use zellij for this connection")] = False,
    none: Annotated[bool, typer.Option("--none", help="Plain shell, no multiplexer")] = False,
) -> None:
    """Connect to a session, starting its container if needed."""
    from cowork.auth.broker import ensure_credentials
    from cowork.multiplexer import controller

    flags = [
        multiplexer
        for multiplexer, chosen in (
            (Multiplexer.TMUX, tmux),
            (Multiplexer.ZELLIJ, zellij),
            (Multiplexer.NONE, none),
        )
        if chosen
    ]
    if len(flags) > 1:
        raise CoworkError("Use only one of --tmux, --zellij or --none")
    override = flags[0] if flags else None

    paths = _paths()
    identity, layers = _load_project(paths)
    registry = _registry(paths, identity)
    runtime = registry.runtime

    directory = registry.session_dir(name)
    if not directory.is_dir():
        raise SessionNotFound(name)
    runtime.require()

    console.print(f"[blue]Connecting to session:[/blue] {name}")
    outcome = ensure_credentials(paths, runtime)
    if outcome is not None:
        console.print("[green]Authentication completed[/green]")

    running = {folder.resolve() for folder in runtime.running_containers()}
    if directory.resolve() not in running:
        console.print("Starting container...")
        runtime.up(directory)

    code = controller.connect(
        runtime,
        directory,
        name,
        override=override,
        configured=layers.merged.multiplexer_preference,
    )
    if code != 0:
        raise typer.Exit(code)


@app.command()
@handle_errors
def status() -> None:
    """Show detailed status of the project, credentials and sessions."""
    from cowork.auth.broker import CredentialState, validate

    paths = _paths()
    identity, layers = _load_project(paths)
    registry = _registry(paths, identity)
    runtime = registry.runtime

    console.rule("Cowork Status Report")
    console.print("\n[bold]Project Information:[/bold]")
    console.print(f"  Name:        {identity.name}")
    console.print(f"  Safe name:   {identity.slug}")
    console.print(f"  Hash:        {identity.hash}")
    console.print(f"  Origin:      {identity.origin_url}", highlight=False)

    console.print("\n[bold]System Configuration:[/bold]")
    console.print(f"  Cowork dir:  {paths.root}")
    console.print(f"  Sessions:    {paths.sessions_dir}")
    console.print(f"  Config:      {identity.config_path}")

    console.print("\n[bold]Authentication Status:[/bold]")
    state = validate(paths.auth_dir)
    if state is CredentialState.INVALID:
        console.print("  Status:      [red]Not configured[/red]")
        console.print("  Age:         N/A")
    else:
        console.print("  Status:      [green]Configured[/green]")
        if state is CredentialState.STALE:
            console.print("  Age:         [yellow]May be expired (>30 days)[/yellow]")
        else:
            console.print("  Age:         [green]Valid[/green]")

    console.print("\n[bold]Docker Status:[/bold]")
    if runtime.docker_available():
        sessions = registry.list_sessions(layers.project)
        running = sum(1 for s in sessions if s.status is SessionStatus.RUNNING)
        console.print("  Docker:      [green]Running[/green]")
        console.print(f"  Containers:  {running} running")
    else:
        console.print("  Docker:      [red]Not running[/red]")

    console.print("\n[bold]DevContainer CLI:[/bold]")
    cli_version = runtime.cli_version()
    if cli_version:
        console.print("  Status:      [green]Installed[/green]")
        console.print(f"  Version:     {cli_version}")
    else:
        console.print("  Status:      [red]Not installed[/red]")
        console.print("  Install:     npm install -g @devcontainers/cli")

    console.print()
    _print_sessions(identity, registry, layers)


@app.command()
@handle_errors
def stop() -> None:
    """Stop all running session containers for this project."""
    paths = _paths()
    identity, layers = _load_project(paths)
    console.print(f"[blue]Stopping all running containers for project:[/blue] {identity.name}")

    stopped = _registry(paths, identity).stop_all(layers.project)
    for name in stopped:
        console.print(f"  Stopped container for session: {name}")
    console.print("[green]All containers stopped[/green]")


@app.command()
@handle_errors
def clean() -> None:
    """Remove all session containers, directories and the session list."""
    from cowork.prompts import confirm_clean

    paths = _paths()
    identity, layers = _load_project(paths)

    console.print(
        f"[yellow]This will remove ALL containers and session data for project: {identity.name}[/yellow]"
    )
    console.print("This action will:")
    console.print("  - Stop all running containers")
    console.print("  - Remove all session directories")
    console.print("  - Clear session configuration")
    console.print("[yellow]This action cannot be undone![/yellow]")

    if not confirm_clean(console):
        console.print("Clean cancelled - no changes made")
        return

    removed = list(layers.project.sessions)
    _registry(paths, identity).remove_all(layers.project)
    for name in removed:
        console.print(f"  Removed session: {name}")
    console.print("[green]All sessions cleaned[/green]")


@app.command("help")
def help_command(ctx: typer.Context) -> None:
    """Show this help message."""
    console.print(ctx.parent.get_help() if ctx.parent else ctx.get_help(), markup=False, highlight=False)
