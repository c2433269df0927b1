"""Dart dead code analyzer CLI."""
import time
from pathlib import Path
from typing import Dict, List, Optional

import typer
from rich.markup import escape
from rich.progress import (
    BarColumn,
    Progress,
    SpinnerColumn,
    TaskProgressColumn,
    TextColumn,
    TimeElapsedColumn,
)
from rich.table import Table

from dead_code_analyzer.analyzer.categorize import categorize_classes, categorize_functions
from dead_code_analyzer.analyzer.errors import PreconditionError
from dead_code_analyzer.analyzer.orchestrator import Orchestrator
from dead_code_analyzer.config import get_config
from dead_code_analyzer.utils.logger import configure_logging
from dead_code_analyzer.utils.safe_console import SafeConsole

app = typer.Typer(
    name="dead-code-analyzer",
    help="Find unused classes and functions in Dart and Flutter projects",
    add_completion=False
)
console = SafeConsole()

PHASE_LABELS = {
    "scan": "[cyan]Phase 1/2: Scanning declarations...",
    "count": "[yellow]Phase 2/2: Counting usages...",
}


def _display_path(path: str, root: Path) -> str:
    try:
        return str(Path(path).relative_to(root))
    except ValueError:
        return path


def _summary_table(title: str, buckets: Dict[str, list]) -> Table:
    table = Table(title=title, show_header=True, header_style="bold cyan")
    table.add_column("Bucket", style="cyan")
    table.add_column("Count", justify="right", style="green")
    for name, members in buckets.items():
        table.add_row(name.replace("_", " "), str(len(members)))
    return table


def _unused_table(title: str, entities: List, root: Path, limit: int) -> Table:
    table = Table(title=title)
    table.add_column("Symbol", style="cyan")
    table.add_column("Kind", style="yellow")
    table.add_column("File", style="magenta", no_wrap=False)
    table.add_column("Line", style="green", justify="right")

    for entity in entities[:limit]:
        owner = getattr(entity, "owner_class_name", "")
        kind = getattr(entity, "kind", "method" if owner else "function")
        table.add_row(
            f"{owner}.{entity.name}" if owner else entity.name,
            kind,
            _display_path(entity.defined_in_file, root),
            str(entity.declaration_line),
        )
    return table


@app.command()
def audit(
    project_path: str = typer.Argument(".", help="Project root path to analyze"),
    functions: bool = typer.Option(True, "--functions/--no-functions", help="Also analyze functions and methods"),
    workers: Optional[int] = typer.Option(None, "--workers", "-w", min=1, help="Maximum parallel workers (default: DCA_MAX_WORKERS or CPU count)"),
    threads: bool = typer.Option(False, "--threads", help="Use a thread pool instead of worker processes"),
    sequential: bool = typer.Option(False, "--sequential", help="Analyze in a single process"),
    limit: int = typer.Option(25, "--limit", "-n", min=0, help="Maximum unused symbols listed per table"),
    json_path: Optional[Path] = typer.Option(None, "--json", help="Write the full analysis result as JSON"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Show INFO/DEBUG logs"),
):
    """Report unused, internal-only and externally used symbols."""
    try:
        config = get_config()
    except ValueError as e:
        console.print(f"[bold red]Configuration error:[/bold red] {escape(str(e))}")
        raise typer.Exit(2)

    configure_logging("DEBUG" if verbose else config.log_level)

    overrides = {
        "analyze_functions": functions,
        "max_workers": 1 if sequential else workers,
        "use_processes": False if threads else None,
    }
    options = config.analysis_options(**overrides)

    root = Path(project_path).resolve()
    console.print(f"[bold blue]Analyzing project:[/bold blue] {escape(str(root))}\n")
    start_time = time.time()

    with Progress(
        SpinnerColumn(),
        TextColumn("[bold blue]{task.description}"),
        BarColumn(),
        TaskProgressColumn(),
        TimeElapsedColumn(),
        console=console,
        transient=True
    ) as progress:
        task = progress.add_task("[cyan]Discovering files...", total=None)

        def on_phase(name: str, total: int) -> None:
            progress.update(task, description=PHASE_LABELS.get(name, name), total=total, completed=0)

        orchestrator = Orchestrator(
            options,
            progress=lambda amount: progress.advance(task, amount),
            on_phase=on_phase,
        )
        try:
            result = orchestrator.run(root)
        except PreconditionError as e:
            progress.stop()
            console.print(f"[bold red]Error:[/bold red] {escape(str(e))}")
            raise typer.Exit(1)

    elapsed = time.time() - start_time
    console.print(f"[dim]Analyzed {len(result.files)} files in {elapsed:.2f}s[/dim]\n")

    class_buckets = categorize_classes(result.classes)
    console.print(_summary_table("Classes", class_buckets))
    if class_buckets["unused"] and limit:
        console.print(_unused_table("Unused Classes", class_buckets["unused"], root, limit))

    if options.analyze_functions:
        function_buckets = categorize_functions(result.functions)
        console.print(_summary_table("Functions", function_buckets))
        if function_buckets["unused"] and limit:
            console.print(_unused_table("Unused Functions", function_buckets["unused"], root, limit))

    if result.warnings:
        console.print(f"\n[bold yellow]Warnings ({len(result.warnings)}):[/bold yellow]")
        for warning in result.warnings:
            console.print(f"  [yellow]⚠[/yellow] {escape(warning)}")

    if json_path is not None:
        json_path.write_text(result.to_json(), encoding="utf-8")
        console.print(f"\n[green]✓[/green] JSON written to {escape(str(json_path))}")


@app.callback()
def main():
    """Dart dead code analyzer - static usage analysis for Dart/Flutter codebases."""
    pass


if __name__ == "__main__":
    app()
