"""Command-line interface for photo-triage."""

import json
import logging
import sys
import threading
from concurrent.futures import ThreadPoolExecutor
from pathlib import Path
from typing import List, Optional, Tuple

import click
from rich.console import Console
from rich.table import Table
from tqdm import tqdm

from photo_triage import __version__
from photo_triage.core.detector import DuplicateDetector, DuplicateGroup
from photo_triage.core.errors import AuthorizationInsufficient, IndexLoadError
from photo_triage.core.estimator import StorageEstimator
from photo_triage.core.index import FingerprintStore
from photo_triage.core.scanner import PhotoScanner
from photo_triage.core.triage import Decision, TriageState
from photo_triage.core.workflow import (
    DetectionController,
    DetectionStatus,
    ScanController,
    ScanStatus,
    TriageWorkspace,
    can_scan,
    ensure_authorized,
)
from photo_triage.platforms.local import LocalAuthorizer, LocalDeleter, LocalPhotoLibrary
from photo_triage.ui.review import ReviewUI
from photo_triage.utils.config import Config
from photo_triage.utils.logger import setup_logger

console = Console()
logger = logging.getLogger(__name__)


def _library(config: Config) -> LocalPhotoLibrary:
    return LocalPhotoLibrary(
        config.library_roots(), recursive=bool(config.get("library.recursive", True))
    )


def _store(config: Config) -> FingerprintStore:
    return FingerprintStore(config.get_index_path())


def _deleter(config: Config) -> LocalDeleter:
    return LocalDeleter(
        config.get_staging_dir(),
        use_recycle_bin=bool(config.get("safety.use_recycle_bin", True)),
        config=config,
    )


def _require_access(config: Config) -> None:
    try:
        ensure_authorized(LocalAuthorizer(config).current_state())
    except AuthorizationInsufficient as e:
        console.print(
            f"[red]✗ {e}.[/red] Run 'photo-triage authorize --library PATH' first."
        )
        sys.exit(1)


@click.group()
@click.version_option(version=__version__, prog_name="photo-triage")
@click.option("--verbose", "-v", is_flag=True, help="Enable verbose logging")
@click.option(
    "--log-file",
    type=click.Path(dir_okay=False, path_type=Path),
    help="Also write a debug log to this file",
)
@click.option(
    "--config",
    "config_file",
    type=click.Path(dir_okay=False, path_type=Path),
    help="Configuration file (default: ~/.photo-triage/config.json)",
)
@click.pass_context
def cli(
    ctx: click.Context,
    verbose: bool,
    log_file: Optional[Path],
    config_file: Optional[Path],
) -> None:
    """
    Photo Triage - find duplicate photos and review your library month by month.

    Scan a photo folder once, then detect exact duplicates or swipe through
    each month deciding what to keep before anything is deleted.
    """
    setup_logger(level=logging.DEBUG if verbose else logging.WARNING, log_file=log_file)
    ctx.ensure_object(dict)
    ctx.obj["config"] = Config(config_file)


@cli.command()
@click.option(
    "--library",
    "-l",
    "libraries",
    multiple=True,
    type=click.Path(exists=True, file_okay=False, dir_okay=True, path_type=Path),
    help="Photo folder(s) to manage (replaces the configured folders)",
)
@click.option("--deny", is_flag=True, help="Revoke access instead of granting it")
@click.option("--yes", "-y", is_flag=True, help="Grant access without prompting")
@click.pass_context
def authorize(ctx: click.Context, libraries: tuple, deny: bool, yes: bool) -> None:
    """
    Grant or revoke access to the photo library folders.

    Example:
        photo-triage authorize --library ~/Pictures
    """
    config: Config = ctx.obj["config"]
    if libraries:
        config.set("library.roots", [str(p.resolve()) for p in libraries])

    roots = config.library_roots()
    if not roots:
        console.print("[red]✗ No library folder configured. Use --library PATH.[/red]")
        sys.exit(1)

    grant = not deny
    if grant and not yes:
        console.print("[cyan]Library folders:[/cyan]")
        for root in roots:
            console.print(f"  • {root}")
        grant = click.confirm(
            "\nAllow photo-triage to read these folders and delete photos you confirm?",
            default=True,
        )

    state = LocalAuthorizer(config).request_authorization(grant)
    style = "green" if can_scan(state) else "red"
    console.print(f"[{style}]Authorization: {state.value}[/{style}]")


@cli.command()
@click.pass_context
def status(ctx: click.Context) -> None:
    """Show library access and fingerprint index state."""
    config: Config = ctx.obj["config"]
    store = _store(config)

    table = Table(show_header=False, box=None)
    table.add_column("Key", style="cyan")
    table.add_column("Value")

    table.add_row("Authorization", LocalAuthorizer(config).current_state().value)
    table.add_row("Library", ", ".join(str(r) for r in config.library_roots()) or "-")
    table.add_row("Index", str(store.path))

    try:
        index = store.load()
        table.add_row("Index format", str(index.format_version))
        table.add_row("Fingerprints", str(len(index.fingerprints)))
    except IndexLoadError as e:
        table.add_row("Index state", f"[yellow]{e}[/yellow]")

    console.print(table)


@cli.command()
@click.option("--resume", is_flag=True, help="Reuse fingerprints from the existing index")
@click.option(
    "--show-progress/--no-progress",
    default=True,
    help="Show progress bar",
)
@click.pass_context
def scan(ctx: click.Context, resume: bool, show_progress: bool) -> None:
    """
    Fingerprint every photo in the library.

    Press Ctrl+C to stop; completed fingerprints are kept and a later
    'scan --resume' continues from them.
    """
    config: Config = ctx.obj["config"]
    scanner = PhotoScanner(
        _library(config),
        _store(config),
        target_size=tuple(config.get("scan.thumbnail_size", [18, 18])),
        allow_network=bool(config.get("scan.allow_network", False)),
    )
    controller = ScanController(scanner)
    authorization = LocalAuthorizer(config).current_state()

    console.print(f"\n[bold cyan]Photo Triage v{__version__}[/bold cyan] - Scan\n")

    bar = tqdm(desc="Fingerprinting", unit="photo", disable=not show_progress)

    def progress(done: int, total: int) -> None:
        bar.total = total
        bar.n = done
        bar.refresh()

    cancel = threading.Event()
    with ThreadPoolExecutor(max_workers=1) as executor:
        future = executor.submit(
            controller.start_scan,
            authorization,
            progress=progress,
            cancel_event=cancel,
            resume=resume,
        )
        try:
            outcome = future.result()
        except KeyboardInterrupt:
            cancel.set()
            logger.info("Scan interrupted by user")
            console.print("\n[yellow]Cancelling scan…[/yellow]")
            outcome = future.result()
    bar.close()

    if outcome.status is ScanStatus.COMPLETED:
        console.print(f"[green]✓ {outcome.message}[/green]")
        if outcome.result and outcome.result.skipped:
            console.print(f"[dim]{outcome.result.skipped} photos could not be read and were skipped.[/dim]")
    elif outcome.status is ScanStatus.CANCELLED:
        console.print(f"[yellow]{outcome.message}[/yellow]")
    else:
        console.print(f"[red]✗ {outcome.message}[/red]")
        sys.exit(1)


@cli.command()
@click.option("--window", "-w", type=float, help="Creation time window in seconds")
@click.option(
    "--any-dimensions",
    is_flag=True,
    help="Group equal hashes even when pixel dimensions differ",
)
@click.option(
    "--output",
    "-o",
    type=click.Path(dir_okay=False, path_type=Path),
    help="Output file for duplicate report (JSON)",
)
@click.option("--delete-all", is_flag=True, help="Delete every duplicate found")
@click.option(
    "--delete",
    "delete_ids",
    multiple=True,
    metavar="PATH",
    help="Delete one duplicate from the report (repeatable)",
)
@click.option("--yes", "-y", is_flag=True, help="Skip confirmation prompt (use with caution!)")
@click.pass_context
def detect(
    ctx: click.Context,
    window: Optional[float],
    any_dimensions: bool,
    output: Optional[Path],
    delete_all: bool,
    delete_ids: Tuple[str, ...],
    yes: bool,
) -> None:
    """
    Find exact duplicates in the fingerprint index.

    Example:
        photo-triage detect --output duplicates.json
        photo-triage detect --delete ~/Pictures/copy.jpg
    """
    config: Config = ctx.obj["config"]
    library = _library(config)
    if window is None:
        window = float(config.get("detection.creation_window_seconds", 300))
    require_same_dimensions = not any_dimensions and bool(
        config.get("detection.require_same_dimensions", True)
    )

    controller = DetectionController(
        _store(config),
        repository=library,
        detector=DuplicateDetector(creation_window=window),
        estimator=StorageEstimator(jpeg_factor=float(config.get("estimation.jpeg_factor", 0.25))),
        deleter=_deleter(config),
    )

    report = controller.load_duplicates(require_same_dimensions)
    if report.status is not DetectionStatus.OK:
        console.print(f"[yellow]{report.message}[/yellow]")
        sys.exit(1)

    if not report.groups:
        console.print(f"[green]✓ {report.message}[/green]")
        return

    ui = ReviewUI(console)
    ui.show_detection_report(report)

    if output:
        _save_groups_json(report.groups, output)
        console.print(f"[green]✓ Results saved to:[/green] {output}")

    if not delete_all and not delete_ids:
        return

    duplicates: List[str] = [i for g in report.groups for i in g.duplicate_ids]
    if delete_all:
        ids = duplicates
    else:
        # Representatives are never offered for deletion.
        ids = list(dict.fromkeys(str(Path(p).expanduser().resolve()) for p in delete_ids))
        unknown = [i for i in ids if i not in duplicates]
        if unknown:
            console.print(f"[red]✗ Not a duplicate in this report: {', '.join(unknown)}[/red]")
            sys.exit(1)

    ui.show_final_confirmation(ids, sum(report.estimated_bytes_for(i) or 0 for i in ids))
    if not yes and not click.confirm("\nDelete these files?", default=False):
        console.print("[yellow]Deletion cancelled.[/yellow]")
        return

    outcome = controller.delete_assets(ids, require_same_dimensions)
    if not outcome.result.success:
        console.print(f"[red]✗ {outcome.message}[/red]")
        sys.exit(1)
    console.print(f"[bold green]✓ {outcome.message}[/bold green]")


@cli.command()
@click.pass_context
def months(ctx: click.Context) -> None:
    """List photos per month, newest first."""
    config: Config = ctx.obj["config"]
    _require_access(config)

    summaries = TriageWorkspace(_library(config)).load_months()
    if not summaries:
        console.print("[yellow]No photos available.[/yellow]")
        return
    ReviewUI(console).show_months(summaries)


@cli.command()
@click.argument("month_id")
@click.pass_context
def triage(ctx: click.Context, month_id: str) -> None:
    """
    Review one month photo by photo.

    MONTH_ID: Month to review, e.g. 2024-03 (see 'months')
    """
    config: Config = ctx.obj["config"]
    _require_access(config)

    library = _library(config)
    workspace = TriageWorkspace(library)
    workspace.load_months()
    session = workspace.session(month_id)
    if session is None:
        console.print(f"[red]✗ Month '{month_id}' not found.[/red]")
        sys.exit(1)

    ui = ReviewUI(console)
    deleter = _deleter(config)
    actions = {"k": "keep", "d": "delete", "u": "undo", "c": "commit", "q": "quit"}

    while True:
        console.print()
        ui.show_session(session)
        choice = click.prompt(
            "[k]eep, [d]elete, [u]ndo, [c]ommit deletions, [q]uit",
            type=click.Choice(list(actions), case_sensitive=False),
            show_choices=False,
        ).lower()

        if choice == "k":
            session.decide(Decision.KEEP)
        elif choice == "d":
            session.decide(Decision.DELETE)
        elif choice == "u":
            session.undo()
        elif choice == "c":
            ids = session.pending_deletion_ids
            if ids:
                reclaimable = sum(library.resource_size(i) or 0 for i in ids)
                ui.show_final_confirmation(ids, reclaimable)
                if not click.confirm("\nDelete these files?", default=False):
                    continue
            result = session.commit(deleter)
            style = "green" if result.success else "red"
            console.print(f"[{style}]{result.message}[/{style}]")
        elif choice == "q":
            if session.pending_deletion_count:
                console.print(
                    f"[yellow]{session.pending_deletion_count} photos were marked "
                    "but not deleted.[/yellow]"
                )
            break

        if session.state is TriageState.EXHAUSTED and not session.total_count:
            console.print("[green]✓ This month is now empty.[/green]")
            break


@cli.command()
@click.option(
    "--folder", "-f", required=True, help="Folder name to protect"
)
@click.pass_context
def protect(ctx: click.Context, folder: str) -> None:
    """
    Add a folder to the protected folders list.

    Photos inside protected folders are never deleted.
    """
    config: Config = ctx.obj["config"]
    config.add_protected_folder(folder)

    console.print(f"[green]✓ Protected folder added:[/green] {folder}")
    console.print("\n[cyan]Current protected folders:[/cyan]")
    for pf in config.get("protected_folders", []):
        console.print(f"  • {pf}")


@cli.command()
@click.option(
    "--folder", "-f", required=True, help="Folder name to unprotect"
)
@click.pass_context
def unprotect(ctx: click.Context, folder: str) -> None:
    """Remove a folder from the protected folders list."""
    config: Config = ctx.obj["config"]
    config.remove_protected_folder(folder)

    console.print(f"[green]✓ Protected folder removed:[/green] {folder}")


def _group_to_dict(group: DuplicateGroup) -> dict:
    return {
        "id": group.id,
        "representative": group.representative.to_dict(),
        "duplicates": [dup.to_dict() for dup in group.duplicates],
        "estimatedBytes": group.estimated_bytes,
        "perAssetEstimates": dict(group.per_asset_estimates),
    }


def _save_groups_json(groups: List[DuplicateGroup], output_path: Path) -> None:
    """Save duplicate groups to a JSON file."""
    output_path.parent.mkdir(parents=True, exist_ok=True)

    with open(output_path, "w", encoding="utf-8") as f:
        json.dump([_group_to_dict(g) for g in groups], f, indent=2, sort_keys=True)


def main() -> None:
    """Main entry point for the CLI."""
    cli(obj={})


if __name__ == "__main__":
    main()
