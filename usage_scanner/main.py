"""Usage Scanner CLI - find where consumer projects use target projects."""
import os
from pathlib import Path
from typing import Optional

import click
import typer
from rich.markup import escape
from rich.progress import (
    Progress,
    SpinnerColumn,
    TextColumn,
    BarColumn,
    TaskProgressColumn,
    TimeElapsedColumn
)
from rich.table import Table

from usage_scanner.analyzer.component_index import ComponentIndex
from usage_scanner.analyzer.python_model import PythonProgramModel
from usage_scanner.analyzer.reference_resolver import ReferenceResolver
from usage_scanner.analyzer.target_matcher import TargetMatcher
from usage_scanner.analyzer.workspace import Workspace, WorkspaceError
from usage_scanner.config import AMBIGUITY_POLICIES, ConfigurationError, __version__, get_config
from usage_scanner.inputs import load_names
from usage_scanner.report.csv_writer import CsvReportWriter, LAYOUTS
from usage_scanner.report.summary import render_summary
from usage_scanner.utils.logger import log_error, log_warning
from usage_scanner.utils.safe_console import SafeConsole

# Fatal input problems exit with this code
EXIT_USAGE = 2

app = typer.Typer(
    name="usage-scanner",
    help="Report where consumer projects of a workspace use declarations of target projects",
    add_completion=False
)
console = SafeConsole()


def fail(message: str):
    """Print a fatal error and exit with the usage error code."""
    log_error(message)
    raise typer.Exit(EXIT_USAGE)


def display_path(path: Path) -> str:
    """Path relative to the working directory when possible."""
    try:
        return os.path.relpath(path)
    except ValueError:
        return str(path)


@app.callback()
def main():
    """Usage Scanner."""


@app.command()
def scan(
    workspace: str = typer.Option(".", "--workspace", "-w", help="Workspace root to load"),
    projects: str = typer.Option("source-projects.txt", "--projects", "-p",
                                 help="File listing consumer project names, one per line"),
    target: Optional[str] = typer.Option(None, "--target", "-t",
                                         help="Target project name, pyproject.toml path or folder"),
    targets_file: Optional[str] = typer.Option(None, "--targets-file",
                                               help="File of target tokens, one per line"),
    output: Optional[str] = typer.Option(None, "--output", "-o",
                                         help="CSV file (flat) or directory (sections)"),
    layout: str = typer.Option("flat", "--layout", click_type=click.Choice(LAYOUTS),
                               help="One flat table or one table per consumer"),
    workers: Optional[int] = typer.Option(None, "--workers", min=1, help="Scanning threads"),
    ambiguity: Optional[str] = typer.Option(None, "--ambiguity", click_type=click.Choice(AMBIGUITY_POLICIES),
                                            help="first: keep the first candidate; drop: skip the reference"),
):
    """Scan consumer projects for references into target projects."""
    try:
        config = get_config()
        workers = workers or config.workers
        ambiguity = ambiguity or config.ambiguity_policy
        if output is None:
            # Sections are written into a directory named after the default report
            output = config.output_path if layout == "flat" else str(Path(config.output_path).with_suffix(''))
    except ConfigurationError as e:
        fail(str(e))

    consumer_names = load_names(projects)
    if not consumer_names:
        fail(f"No consumer projects listed in {projects}")

    matcher = TargetMatcher.from_sources(target, targets_file)
    if matcher.is_empty:
        fail("No targets given. Use --target and/or --targets-file")

    try:
        ws = Workspace(workspace)
    except WorkspaceError as e:
        fail(str(e))

    consumers = ws.find_components(consumer_names)
    if not consumers:
        available = "\n".join(f"  - {name}" for name in ws.component_names())
        fail(f"None of the listed consumer projects were found in the workspace. Available:\n{available}")

    found = {c.name.casefold() for c in consumers}
    for name in consumer_names:
        if name.casefold() not in found:
            log_warning("Scan", f"Consumer project not found: {name}")

    index = ComponentIndex(ws.components)
    resolver = ReferenceResolver(PythonProgramModel(ws), index, matcher, ambiguity=ambiguity, workers=workers)

    console.print(f"[bold blue]Scanning {len(consumers)} consumer project(s)[/bold blue] "
                  f"in {escape(str(ws.root_path))}")

    with Progress(
        SpinnerColumn(),
        TextColumn("[bold blue]{task.description}"),
        BarColumn(),
        TaskProgressColumn(),
        TimeElapsedColumn(),
        console=console,
        transient=True
    ) as progress:
        task = progress.add_task("[cyan]Resolving references...", total=None)

        def on_document(total: int):
            if total:
                progress.update(task, total=total)
            else:
                progress.advance(task)

        records = resolver.scan(consumers, on_document=on_document)

    CsvReportWriter(layout).write(records, output)

    if records:
        console.print(render_summary(records))
    else:
        console.print("[dim]No usages found.[/dim]")
    console.print(f"[bold green]Wrote {len(records)} rows to {escape(display_path(Path(output)))}[/bold green]")


@app.command()
def components(
    workspace: str = typer.Argument(".", help="Workspace root to load"),
):
    """List the components of a workspace."""
    try:
        ws = Workspace(workspace)
    except WorkspaceError as e:
        fail(str(e))

    table = Table(title=f"Components: {escape(str(ws.root_path))}", show_header=True, header_style="bold cyan")
    table.add_column("Name", style="cyan")
    table.add_column("Import Names", style="green")
    table.add_column("Project File", style="dim")
    for component in sorted(ws.components, key=lambda c: c.name.casefold()):
        table.add_row(
            escape(component.name),
            escape(", ".join(component.identities)),
            escape(display_path(Path(component.path))),
        )
    console.print(table)


@app.command()
def version():
    """Show the version."""
    console.print(f"usage-scanner {__version__}")


if __name__ == "__main__":
    app()
