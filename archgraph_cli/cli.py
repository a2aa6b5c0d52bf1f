"""Typer-based CLI for archgraph dependency analysis."""

from __future__ import annotations

import logging
from dataclasses import replace
from pathlib import Path
from typing import Optional

import typer
from rich.console import Console
from rich.logging import RichHandler
from rich.panel import Panel
from rich.progress import BarColumn, Progress, SpinnerColumn, TaskProgressColumn, TextColumn
from rich.table import Table

from . import __version__
from .config_manager import load_scan_config
from .errors import ScanFailure
from .graph_export import result_payload, to_dot, to_json
from .models import SEVERITY_ERROR, ScanResult
from .scanner import Scanner

console = Console()

app = typer.Typer(
    help="🧭 archgraph — dependency graph analysis for source trees.",
    no_args_is_help=True,
    rich_markup_mode="rich",
)

_SEVERITY_STYLE = {"error": "red", "warning": "yellow"}
_BUCKET_STYLE = {"low": "green", "medium": "yellow", "high": "red", "critical": "bold red"}


def version_callback(value: bool):
    """Print version and exit."""
    if value:
        typer.echo(f"archgraph v{__version__}")
        raise typer.Exit()


@app.callback()
def main(
    version: Optional[bool] = typer.Option(
        None,
        "--version",
        "-v",
        help="Show version and exit.",
        callback=version_callback,
        is_eager=True,
    )
):
    """archgraph: find circular imports, isolated modules and coupling hubs."""
    pass


def _setup_logging(verbose: bool) -> None:
    level = logging.DEBUG if verbose else logging.WARNING
    root = logging.getLogger("archgraph_cli")
    root.handlers = [RichHandler(console=Console(stderr=True), show_path=False)]
    root.setLevel(level)


def _run_scan(
    project_path: Path,
    config_file: Optional[Path],
    workers: Optional[int],
    show_progress: bool = True,
) -> ScanResult:
    scan_config = load_scan_config(root=project_path.resolve(), path=config_file)
    if workers is not None:
        scan_config = replace(scan_config, max_workers=workers)

    try:
        if not show_progress:
            return Scanner(config=scan_config).scan(project_path)
        with Progress(
            SpinnerColumn(),
            TextColumn("[progress.description]{task.description}"),
            BarColumn(),
            TaskProgressColumn(),
            console=console,
            transient=True,
        ) as progress:
            task = progress.add_task("[cyan]Extracting facts...", total=None)

            def on_file(done: int, total: int) -> None:
                progress.update(task, completed=done, total=total)

            return Scanner(config=scan_config, progress=on_file).scan(project_path)
    except ScanFailure as exc:
        console.print(f"[red]✗[/red] Scan failed: {exc}")
        raise typer.Exit(code=1)


def _summary(result: ScanResult) -> str:
    metrics = result.metrics
    return (
        f"Files: {metrics.total_files} | Dependencies: {metrics.total_dependencies} | "
        f"Issues: {len(result.issues)}"
    )


@app.command("scan")
def scan_project(
    project_path: Path = typer.Argument(..., exists=True, file_okay=False, help="Path to source project."),
    config_file: Optional[Path] = typer.Option(None, "--config", "-c", help="TOML config file (default: <path>/.archgraph.toml)."),
    output: Optional[Path] = typer.Option(None, "--output", "-o", help="Write the graph to this file."),
    fmt: str = typer.Option("json", "--format", "-f", help="Output format: json or dot."),
    workers: Optional[int] = typer.Option(None, "--workers", "-w", min=1, help="Extraction worker threads."),
    verbose: bool = typer.Option(False, "--verbose", "-V", help="Enable debug logging."),
):
    """Scan a project and emit its dependency graph."""
    fmt = fmt.lower()
    if fmt not in {"json", "dot"}:
        raise typer.BadParameter("Format must be one of: json, dot")
    _setup_logging(verbose)

    result = _run_scan(project_path, config_file, workers, show_progress=output is not None)
    if result.cancelled:
        console.print("[yellow]Scan cancelled.[/yellow]")
        raise typer.Exit(code=1)

    if fmt == "json":
        text = to_json(result_payload(result))
    else:
        text = to_dot(result.graph, result.metrics)

    if output is None:
        typer.echo(text)
        return

    output.write_text(text, encoding="utf-8")
    console.print(f"[green]✓[/green] Wrote {fmt} graph to {output}")
    console.print(_summary(result))


@app.command("issues")
def list_issues(
    project_path: Path = typer.Argument(..., exists=True, file_okay=False, help="Path to source project."),
    config_file: Optional[Path] = typer.Option(None, "--config", "-c", help="TOML config file (default: <path>/.archgraph.toml)."),
    verbose: bool = typer.Option(False, "--verbose", "-V", help="Enable debug logging."),
):
    """Show detected architecture issues. Exits with 1 when any error-level issue exists."""
    _setup_logging(verbose)
    result = _run_scan(project_path, config_file, None)
    if result.cancelled:
        raise typer.Exit(code=1)

    if not result.issues:
        console.print("[green]✓[/green] No issues found.")
        console.print(_summary(result))
        raise typer.Exit(code=0)

    table = Table(title="Issues", show_header=True, show_lines=False)
    table.add_column("Severity", width=9)
    table.add_column("Type", style="cyan")
    table.add_column("Message", min_width=40)
    for issue in result.issues:
        style = _SEVERITY_STYLE.get(issue.severity, "white")
        table.add_row(f"[{style}]{issue.severity}[/{style}]", issue.type, issue.message)
    console.print(table)
    console.print(_summary(result))

    if any(issue.severity == SEVERITY_ERROR for issue in result.issues):
        raise typer.Exit(code=1)


@app.command("cycles")
def list_cycles(
    project_path: Path = typer.Argument(..., exists=True, file_okay=False, help="Path to source project."),
    config_file: Optional[Path] = typer.Option(None, "--config", "-c", help="TOML config file (default: <path>/.archgraph.toml)."),
    verbose: bool = typer.Option(False, "--verbose", "-V", help="Enable debug logging."),
):
    """List circular dependency chains."""
    _setup_logging(verbose)
    result = _run_scan(project_path, config_file, None)
    if result.cancelled:
        raise typer.Exit(code=1)

    report = result.cycles
    if not report.cycles:
        console.print("[green]✓[/green] No circular dependencies.")
        return

    graph = result.graph
    for number, cycle in enumerate(report.cycles, 1):
        chain = " → ".join(graph.display(n) for n in cycle.nodes + (cycle.nodes[0],))
        console.print(f"[red]{number}.[/red] {chain}")
    if report.truncated:
        console.print(f"[yellow]Search stopped after {report.steps} steps; results may be incomplete.[/yellow]")


@app.command("metrics")
def show_metrics(
    project_path: Path = typer.Argument(..., exists=True, file_okay=False, help="Path to source project."),
    config_file: Optional[Path] = typer.Option(None, "--config", "-c", help="TOML config file (default: <path>/.archgraph.toml)."),
    top: int = typer.Option(10, "--top", "-n", min=1, max=200, help="Rows per table."),
    verbose: bool = typer.Option(False, "--verbose", "-V", help="Enable debug logging."),
):
    """Show coupling hubs, complexity hotspots and the layer distribution."""
    _setup_logging(verbose)
    result = _run_scan(project_path, config_file, None)
    if result.cancelled:
        raise typer.Exit(code=1)

    graph, metrics = result.graph, result.metrics
    console.print(Panel.fit(_summary(result), title="[bold]archgraph[/bold]", border_style="cyan"))

    coupling = Table(title="Most coupled files", show_header=True)
    coupling.add_column("File", style="cyan")
    coupling.add_column("Fan-out", justify="right")
    coupling.add_column("Fan-in", justify="right")
    coupling.add_column("Level")
    internal = [m for m in metrics.nodes.values() if graph.node(m.node_id).scanned]
    for m in sorted(internal, key=lambda m: (-m.fan_out, m.node_id))[:top]:
        coupling.add_row(graph.display(m.node_id), str(m.fan_out), str(m.fan_in), m.coupling_level)
    console.print(coupling)

    hotspots = Table(title="Complexity hotspots", show_header=True)
    hotspots.add_column("File", style="cyan")
    hotspots.add_column("Complexity", justify="right")
    hotspots.add_column("Bucket")
    for node_id in metrics.hotspots[:top]:
        m = metrics.get(node_id)
        style = _BUCKET_STYLE.get(m.complexity_bucket, "white")
        hotspots.add_row(graph.display(node_id), str(m.complexity), f"[{style}]{m.complexity_bucket}[/{style}]")
    console.print(hotspots)

    layers = Table(title="Architecture layers", show_header=True)
    layers.add_column("Layer", style="cyan")
    layers.add_column("Files", justify="right")
    layers.add_column("Avg complexity", justify="right")
    for layer, stats in metrics.layer_distribution.items():
        layers.add_row(layer, str(stats["files"]), f"{stats['avg_complexity']:.2f}")
    console.print(layers)


if __name__ == "__main__":
    app()
