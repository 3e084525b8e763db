"""
Main sweep engine.

Orchestrates:
- Checkpoint loading
- Surface id resolution
- Surface scans
- Change classification and the report
- Checkpoint commit
"""

import json
import sys
from concurrent.futures import ThreadPoolExecutor
from datetime import datetime, timedelta
from typing import Optional, TextIO

from rich.console import Console
from rich.progress import Progress, SpinnerColumn, TextColumn
from rich.table import Table

from .bootstrap import resolve_config_surfaces
from .checkpoint import Checkpoint, CheckpointStore
from .committer import commit
from .config import Config, Surface
from .notion_api import NotionAPI
from .report import Report, build_report, render_summary
from .scanner import Gateway, SurfaceScan, SurfaceScanner
from .timestamps import format_timestamp, utcnow

# stdout carries the report only
console = Console(stderr=True)


class Sweeper:
    """
    Main orchestrator for one sweep.

    Coordinates all components:
    1. Load the checkpoint
    2. Scan every surface for items edited since the watermark
    3. Classify items and build the report
    4. Emit the report as JSON
    5. Commit the new checkpoint, only if every scan succeeded
    """

    def __init__(
        self,
        config: Config,
        gateway: Optional[Gateway] = None,
        store: Optional[CheckpointStore] = None,
        stdout: Optional[TextIO] = None,
        surfaces: Optional[list[Surface]] = None,
    ):
        """
        Initialize sweep engine.

        Args:
            config: Configuration instance.
            gateway: Notion gateway; built from config if omitted.
            store: Checkpoint store; a file store at config.state_file if omitted.
            stdout: Stream the report is written to.
            surfaces: Surfaces to scan; resolved from config if omitted.
        """
        self.config = config
        self.gateway = gateway if gateway is not None else NotionAPI(config)
        self.store = store if store is not None else CheckpointStore(config.state_file)
        self.stdout = stdout
        self._surfaces = surfaces
        self.scanner = SurfaceScanner(
            self.gateway,
            page_size=config.page_size,
            max_pages=config.max_pages,
            debug=config.debug,
        )

    @property
    def surfaces(self) -> list[Surface]:
        """Configured surfaces, resolving missing ids on first use."""
        if self._surfaces is None:
            self._surfaces = resolve_config_surfaces(self.config, self.gateway)
        return self._surfaces

    def since(self, checkpoint: Checkpoint, now: Optional[datetime] = None) -> Optional[datetime]:
        """
        Lower bound for this run.

        The watermark, or on a first run the configured lookback window.
        None means a full sweep.
        """
        if checkpoint.last_run_timestamp is not None:
            return checkpoint.last_run_timestamp
        if self.config.lookback_hours is not None:
            return (now or utcnow()) - timedelta(hours=self.config.lookback_hours)
        return None

    def run(self, now: Optional[datetime] = None) -> Report:
        """
        Perform one sweep.

        Args:
            now: Run timestamp, for tests. Defaults to the current time.

        Returns:
            The emitted Report.

        Raises:
            ConfigError: Bad checkpoint or missing surface ids; nothing scanned.
            GatewayError: A Notion call failed; the checkpoint is untouched.
            CheckpointIOError: The report was emitted but the checkpoint
                could not be saved.
        """
        previous = self.store.load()
        # Taken before scanning so edits made during the scan fall after the next watermark
        ran_at = now or utcnow()
        since = self.since(previous, ran_at)
        surfaces = self.surfaces

        console.print("\n[bold blue]🔎 Starting Notion sweep[/bold blue]\n")
        if since is None:
            console.print("[dim]No watermark; sweeping everything[/dim]")
        else:
            console.print(f"[dim]Changes since {format_timestamp(since)}[/dim]")

        scans = self._scan_all(surfaces, since)

        report = build_report(scans, previous, now=ran_at)
        self._emit(report)
        render_summary(report, console)

        if self.config.dry_run:
            console.print("[yellow]Dry run: checkpoint not updated[/yellow]")
            return report

        self.store.save(commit(report, previous, retention_cap=self.config.retention_cap))
        console.print(f"[green]Checkpoint advanced to {format_timestamp(report.ran_at)}[/green]")

        return report

    def _scan_all(self, surfaces: list[Surface], since: Optional[datetime]) -> list[SurfaceScan]:
        """Scan every surface; the first failure propagates."""
        with Progress(
            SpinnerColumn(),
            TextColumn("[progress.description]{task.description}"),
            console=console,
            transient=True,
        ) as progress:
            task = progress.add_task("Scanning surfaces...", total=None)

            if self.config.max_workers > 1 and len(surfaces) > 1:
                with ThreadPoolExecutor(max_workers=self.config.max_workers) as pool:
                    futures = [pool.submit(self.scanner.scan, surface, since) for surface in surfaces]
                    scans = [future.result() for future in futures]
            else:
                scans = []
                for surface in surfaces:
                    progress.update(task, description=f"Scanning {surface.name}...")
                    scans.append(self.scanner.scan(surface, since))

            progress.update(task, description=f"Scanned {len(scans)} surfaces")

        return scans

    def _emit(self, report: Report) -> None:
        """Write the report to stdout as a single JSON document."""
        stream = self.stdout or sys.stdout
        stream.write(json.dumps(report.to_dict(), indent=2, ensure_ascii=False) + "\n")
        stream.flush()

    def status(self) -> None:
        """Print current checkpoint status."""
        console.print("\n[bold]Sweep Status[/bold]\n")

        checkpoint = self.store.load()
        if checkpoint.is_first_run and not checkpoint.seen_ids:
            console.print("[yellow]No sweep has completed yet.[/yellow]")
            console.print("Run 'notion-sweeper' to perform the first sweep.")
            return

        table = Table(title="Seen Items")
        table.add_column("Surface", style="cyan")
        table.add_column("Seen ids", style="green", justify="right")
        table.add_column("Newest edit", style="yellow")

        for key in sorted(checkpoint.seen_ids):
            ids = checkpoint.seen_ids[key]
            newest = max(ids.values()) if ids else "-"
            table.add_row(key, str(len(ids)), newest)

        console.print(table)

        if checkpoint.last_run_timestamp:
            last_run = checkpoint.last_run_timestamp
            console.print(f"\nLast sweep: {last_run.strftime('%Y-%m-%d %H:%M UTC')}")
