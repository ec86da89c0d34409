"""MarkMuse CLI commands."""

import logging
from contextlib import contextmanager
from pathlib import Path

import typer
from muse_core import (
    DirectoryLocalStore,
    JsonBaselineStore,
    SyncConfig,
    SyncResult,
    WorkspaceConfig,
    load_workspace_config,
    parse_repo,
    resolve_token,
    save_workspace_config,
    to_sync_config,
)
from muse_core.config import baseline_path, config_path, event_log_path
from muse_core.filelock import sync_lock
from muse_sync import GitHubContentsClient, SyncDecision, SyncEngine, SyncError
from rich.console import Console
from rich.prompt import Confirm
from rich.table import Table

app = typer.Typer(
    help=(
        "MarkMuse Sync - mirror a local document workspace to a GitHub repository.\n\n"
        "Known limitation: when a file changed on both sides since the last sync, "
        "the local version wins and the remote edit is overwritten."
    )
)
console = Console()

# Configure logging (default to WARNING, can be lowered to INFO in debug mode)
logging.basicConfig(
    level=logging.WARNING,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    datefmt="%Y-%m-%d %H:%M",
)
logger = logging.getLogger(__name__)


def build_client(cfg: SyncConfig) -> GitHubContentsClient:
    """Client factory (tests swap this for one backed by a mock transport)."""
    return GitHubContentsClient(cfg)


def get_current_root() -> Path:
    """Find the workspace root by looking for .markmuse/config.yaml."""
    current = Path.cwd()
    for candidate in (current, *current.parents):
        if config_path(candidate).exists():
            return candidate

    console.print("[red]Error: Not in a MarkMuse workspace (no .markmuse/config.yaml found)[/red]")
    raise typer.Exit(2)


def _set_debug(debug: bool) -> None:
    level = logging.INFO if debug else logging.WARNING
    logging.getLogger().setLevel(level)
    logging.getLogger("muse_sync").setLevel(level)


def _load_sync_config(root: Path) -> SyncConfig:
    ws = load_workspace_config(root)
    return to_sync_config(ws, resolve_token(ws, root))


@contextmanager
def _engine(root: Path):
    """Engine over the workspace's local store and baseline, holding the lock file."""
    cfg = _load_sync_config(root)
    with (
        sync_lock(root),
        build_client(cfg) as client,
        JsonBaselineStore(baseline_path(root)) as baseline,
    ):
        yield SyncEngine(
            cfg,
            DirectoryLocalStore(root),
            baseline,
            client,
            event_log=event_log_path(root),
        )


def _render_result(title: str, result: SyncResult) -> None:
    console.rule(f"[bold]{title}[/bold]")
    console.print(
        f"Totals: pushed: [bold]{result.pushed}[/bold]   pulled: [bold]{result.pulled}[/bold]   "
        f"deleted: [bold]{result.deleted}[/bold]   skipped: [bold]{result.skipped}[/bold]   "
        f"errors: [bold]{len(result.errors)}[/bold]"
    )
    changes = [it for it in result.items if it.action != "skip"]
    if changes:
        table = Table(show_header=True, header_style="bold")
        table.add_column("Action")
        table.add_column("File")
        table.add_column("Details")
        for it in changes:
            style = "red" if it.action == "error" else ""
            table.add_row(it.action, it.path, it.detail, style=style)
        console.print(table)
    else:
        console.print("[dim]No changes.[/dim]")


def _finish(result: SyncResult) -> None:
    if result.errors:
        console.print(f"[yellow][WARN] Completed with {len(result.errors)} error(s)[/yellow]")
        raise typer.Exit(1)
    console.print("[green][OK] Completed successfully[/green]")


@app.command()
def init(
    repo: str = typer.Option(..., "--repo", help="GitHub repository as owner/repo"),
    branch: str | None = typer.Option(
        None, "--branch", help="Branch to sync (default: the repository's default branch)"
    ),
    base_path: str = typer.Option("", "--base-path", help="Folder inside the repository"),
    token_env: str = typer.Option(
        "MARKMUSE_GITHUB_TOKEN", "--token-env", help="Environment variable holding the token"
    ),
    verify: bool = typer.Option(
        True, "--verify/--no-verify", help="Check token permissions and resolve the branch"
    ),
):
    """Initialize a MarkMuse workspace in the current directory."""
    root = Path.cwd()
    if config_path(root).exists():
        console.print("[yellow]Workspace already initialized in this directory[/yellow]")
        raise typer.Exit(1)

    try:
        owner, name = parse_repo(repo)
        ws = WorkspaceConfig(
            repo=f"{owner}/{name}",
            branch=branch or "main",
            base_path=base_path,
            token_env=token_env,
        )
        remote_has_data = False
        if verify:
            cfg = to_sync_config(ws, resolve_token(ws, root))
            with build_client(cfg) as client:
                info = client.verify_access()
            if branch is None:
                # The engine never guesses the branch; pin the default one now.
                ws.branch = info.default_branch
                cfg = cfg.model_copy(update={"branch": ws.branch})
            with build_client(cfg) as client:
                remote_has_data = client.remote_has_data()

        save_workspace_config(root, ws)
        JsonBaselineStore(baseline_path(root)).open().clear()
    except typer.Exit:
        raise
    except Exception as e:
        console.print(f"[red]Init failed:[/red] {e}")
        raise typer.Exit(2) from e

    console.print("[green][OK] Workspace initialized[/green]")
    console.print(f"  Root: {root}")
    console.print(f"  Remote: {ws.repo}@{ws.branch} /{ws.base_path}")
    if remote_has_data:
        console.print(
            "[yellow]The remote already holds MarkMuse data. Run 'markmuse pull' to adopt it, "
            "or 'markmuse sync' to merge.[/yellow]"
        )


@app.command()
def verify():
    """Check that the token can read and write the configured repository."""
    try:
        root = get_current_root()
        cfg = _load_sync_config(root)
        with build_client(cfg) as client:
            info = client.verify_access()
        table = Table(show_header=False)
        table.add_row("Repository", info.full_name)
        table.add_row("Default branch", info.default_branch)
        table.add_row("Configured branch", cfg.branch)
        table.add_row("Read", "yes" if info.can_pull else "no")
        table.add_row("Write", "yes" if info.can_push else "no")
        console.print(table)
        if info.default_branch != cfg.branch:
            console.print(
                f"[yellow]Note: syncing to '{cfg.branch}', not the default branch "
                f"'{info.default_branch}'.[/yellow]"
            )
        console.print("[green][OK] Access verified[/green]")
    except typer.Exit:
        raise
    except Exception as e:
        console.print(f"[red]Verification failed:[/red] {e}")
        raise typer.Exit(2) from e


@app.command()
def status(
    show_all: bool = typer.Option(False, "--all", help="Include files that would be skipped"),
):
    """Show what an incremental sync would do (no changes are made)."""
    try:
        root = get_current_root()
        with _engine(root) as engine:
            plans = engine.plan()
    except typer.Exit:
        raise
    except Exception as e:
        console.print(f"[red]Error:[/red] {e}")
        raise typer.Exit(2) from e

    rows = [p for p in plans if show_all or p.decision != SyncDecision.SKIP]
    if not rows:
        console.print("[green]Everything is in sync.[/green]")
        return
    table = Table(show_header=True, header_style="bold")
    table.add_column("Decision")
    table.add_column("File")
    table.add_column("Local", style="dim")
    table.add_column("Remote", style="dim")
    table.add_column("Baseline", style="dim")
    for p in rows:
        table.add_row(
            p.decision.value,
            p.logical_path,
            (p.local_sha or "-")[:7],
            (p.remote_sha or "-")[:7],
            (p.baseline_sha or "-")[:7],
        )
    console.print(table)


@app.command()
def sync(
    dry_run: bool = typer.Option(
        False, "--dry-run", help="Show what would be done without doing it"
    ),
    debug: bool = typer.Option(False, "--debug", help="Verbose logging"),
):
    """Push local changes and pull remote changes (never deletes)."""
    _set_debug(debug)
    if dry_run:
        status(show_all=False)
        return
    try:
        root = get_current_root()
        console.print(f"[cyan]Syncing workspace: {root}[/cyan]")
        with _engine(root) as engine:
            result = engine.incremental_sync()
    except typer.Exit:
        raise
    except SyncError as e:
        console.print(f"[red]Sync failed:[/red] {e}")
        raise typer.Exit(2) from e
    except Exception as e:
        console.print(f"[red]Error: {e}[/red]")
        logger.exception("Sync failed")
        raise typer.Exit(2) from e

    _render_result("Sync Summary", result)
    _finish(result)


@app.command()
def pull(
    yes: bool = typer.Option(False, "--yes", "-y", help="Do not ask for confirmation"),
    debug: bool = typer.Option(False, "--debug", help="Verbose logging"),
):
    """Overwrite the local workspace with the remote (discards unpushed local edits)."""
    _set_debug(debug)
    if not yes and not Confirm.ask(
        "[red]Delete ALL local documents and themes and replace them with the remote copy?[/red]",
        default=False,
    ):
        console.print("Aborted.")
        raise typer.Exit(1)
    try:
        root = get_current_root()
        with _engine(root) as engine:
            result = engine.force_pull_all()
    except typer.Exit:
        raise
    except Exception as e:
        console.print(f"[red]Force pull failed:[/red] {e}")
        raise typer.Exit(2) from e

    _render_result("Force Pull Summary", result)
    _finish(result)


@app.command()
def push(
    yes: bool = typer.Option(False, "--yes", "-y", help="Do not ask for confirmation"),
    debug: bool = typer.Option(False, "--debug", help="Verbose logging"),
):
    """Overwrite the remote with the local workspace (deletes remote-only files)."""
    _set_debug(debug)
    if not yes and not Confirm.ask(
        "[red]Delete ALL remote MarkMuse files and upload the local workspace instead?[/red]",
        default=False,
    ):
        console.print("Aborted.")
        raise typer.Exit(1)
    try:
        root = get_current_root()
        with _engine(root) as engine:
            result = engine.force_push_all()
    except typer.Exit:
        raise
    except Exception as e:
        console.print(f"[red]Force push failed:[/red] {e}")
        raise typer.Exit(2) from e

    _render_result("Force Push Summary", result)
    _finish(result)


@app.command()
def prune(
    yes: bool = typer.Option(False, "--yes", "-y", help="Do not ask for confirmation"),
):
    """Delete remote files that no longer exist locally."""
    try:
        root = get_current_root()
        with _engine(root) as engine:
            orphans = engine.find_remote_orphans()
            if not orphans:
                console.print("[green]No remote-only files.[/green]")
                return
            table = Table(show_header=True, header_style="bold")
            table.add_column("Remote-only file")
            table.add_column("Repository path", style="dim")
            for rec in orphans:
                table.add_row(rec.logical_path, rec.repo_path)
            console.print(table)
            if not yes and not Confirm.ask(
                f"Delete these {len(orphans)} file(s) from the remote?", default=False
            ):
                console.print("Aborted.")
                raise typer.Exit(1)
            result = engine.delete_remote(orphans)
    except typer.Exit:
        raise
    except Exception as e:
        console.print(f"[red]Prune failed:[/red] {e}")
        raise typer.Exit(2) from e

    _render_result("Prune Summary", result)
    _finish(result)


if __name__ == "__main__":
    app()
