"""Command-line interface for the caseload ingestion pipeline."""

from pathlib import Path
from typing import TYPE_CHECKING, Annotated

import typer
from rich.console import Console
from rich.markup import escape
from rich.table import Table

if TYPE_CHECKING:
    from caseload.config.settings import PipelineConfig

app = typer.Typer(
    name="caseload",
    help="Load case-management exports (CSV/XLSX) into the warehouse.",
    no_args_is_help=True,
)

console = Console()

ConfigOption = Annotated[
    Path,
    typer.Option(
        "--config",
        "-c",
        help="Path to configuration YAML file.",
        exists=True,
        dir_okay=False,
    ),
]


def _load_config(config: Path, log_level: str | None = None) -> "PipelineConfig":
    """Load configuration and set up logging, exiting on invalid config."""
    from caseload.config.loader import load_config
    from caseload.utils.logging import configure_logging

    try:
        pipeline_config = load_config(config)
    except (ValueError, OSError) as e:
        console.print(f"[red]Invalid configuration: {e}[/red]")
        raise typer.Exit(code=1) from e

    configure_logging(
        level=log_level or pipeline_config.logging.level,
        json_output=pipeline_config.logging.json_output,
    )
    return pipeline_config


@app.command()
def ingest(
    config: ConfigOption,
    files: Annotated[
        list[str],
        typer.Argument(
            help="Files to load as LOCATOR:TABLE, e.g. exports/ccm.xlsx:table_ccm.",
        ),
    ],
    log_level: Annotated[
        str | None,
        typer.Option("--log-level", help="Override the configured log level."),
    ] = None,
) -> None:
    """Load files into their tables, then convert date columns."""
    from caseload.etl import FileRequest, run_ingestion
    from caseload.etl.reporter import ConsoleReporter

    try:
        requests = [FileRequest.parse(value) for value in files]
    except ValueError as e:
        console.print(f"[red]Error: {e}[/red]")
        raise typer.Exit(code=1) from e

    console.print(f"[blue]Loading configuration from {config}[/blue]")
    pipeline_config = _load_config(config, log_level)

    console.print(f"[blue]Ingesting {len(requests)} files[/blue]")
    try:
        result = run_ingestion(pipeline_config, requests)
    except Exception as e:
        console.print(f"[red]Ingestion failed to start: {e}[/red]")
        raise typer.Exit(code=1) from e

    console.print()
    ConsoleReporter(console).print_result(result)

    if result.n_failed:
        raise typer.Exit(code=1)


@app.command()
def coerce(
    config: ConfigOption,
    tables: Annotated[
        list[str] | None,
        typer.Option(
            "--table",
            "-t",
            help="Table to process (repeatable). Defaults to every configured table.",
        ),
    ] = None,
) -> None:
    """Run only the date coercion pass."""
    from caseload.errors import UnknownTableError
    from caseload.etl.reporter import ConsoleReporter
    from caseload.schemas.canonical import SchemaRegistry
    from caseload.warehouse import TypeCoercionPass, create_warehouse_engine

    pipeline_config = _load_config(config)
    registry = SchemaRegistry.from_config(pipeline_config)

    try:
        engine = create_warehouse_engine(pipeline_config.database)
        outcomes = TypeCoercionPass(engine, registry).run(tables or None)
    except (UnknownTableError, ValueError) as e:
        console.print(f"[red]Error: {e}[/red]")
        raise typer.Exit(code=1) from e

    ConsoleReporter(console).print_coercions(outcomes)
    converted = sum(1 for o in outcomes if o.ok)
    console.print(f"\n[bold]{converted}/{len(outcomes)} columns are DATE[/bold]")


@app.command()
def check(
    config: ConfigOption,
    file: Annotated[
        str,
        typer.Argument(help="File to inspect as LOCATOR:TABLE."),
    ],
) -> None:
    """Show how a file's header maps onto its table, without loading it."""
    from caseload.etl import FileRequest
    from caseload.ingestion import LocalFileOpener, detect_format, open_row_source
    from caseload.normalization import build_projection, normalize_headers
    from caseload.schemas.canonical import SchemaRegistry

    pipeline_config = _load_config(config)
    registry = SchemaRegistry.from_config(pipeline_config)
    opener = LocalFileOpener(pipeline_config.ingestion.data_root)

    try:
        request = FileRequest.parse(file)
        canonical = registry.get(request.table)
        opened = opener.open(request.locator)
        with opened.stream:
            source = open_row_source(
                detect_format(opened.filename), opened.stream, pipeline_config.ingestion
            )
            header = next(iter(source), None)
            if header is None:
                console.print(f"[red]No header row in {opened.filename}[/red]")
                raise typer.Exit(code=1)
            projection = build_projection(normalize_headers(header), canonical)
    except typer.Exit:
        raise
    except Exception as e:
        console.print(f"[red]Error: {e}[/red]")
        raise typer.Exit(code=1) from e

    table = Table(title=f"Header Projection: {opened.filename} -> {canonical.table}")
    table.add_column("Column", style="cyan")
    table.add_column("Kind", style="blue")
    table.add_column("Source", justify="right")

    for column, idx in zip(canonical.columns, projection.indices):
        if idx is None:
            source_label = "[yellow]absent[/yellow]"
        else:
            source_label = f"#{idx + 1} {escape(str(header[idx]))}"
        table.add_row(column.name, column.kind.value, source_label)

    console.print(table)
    console.print(
        f"\n[green]Matched: {len(projection.present_columns)}[/green]  "
        f"[yellow]Absent: {len(projection.absent_columns)}[/yellow]  "
        f"[dim]Ignored: {len(projection.ignored)}[/dim]"
    )
    if projection.ignored:
        console.print(f"[dim]Ignored headers: {escape(', '.join(projection.ignored))}[/dim]")


@app.command()
def schema(config: ConfigOption) -> None:
    """List configured tables and their canonical columns."""
    from caseload.schemas.canonical import SchemaRegistry

    pipeline_config = _load_config(config)
    registry = SchemaRegistry.from_config(pipeline_config)

    for canonical in registry:
        table = Table(title=f"{canonical.table} ({len(canonical)} columns)")
        table.add_column("#", justify="right", style="dim")
        table.add_column("Column", style="cyan")
        table.add_column("Kind", style="blue")
        table.add_column("Aliases", style="dim")

        aliases: dict[str, list[str]] = {}
        for source, target in canonical.aliases.items():
            aliases.setdefault(target, []).append(source)

        for i, column in enumerate(canonical.columns, start=1):
            table.add_row(
                str(i), column.name, column.kind.value, ", ".join(aliases.get(column.name, []))
            )

        console.print(table)


@app.command()
def version() -> None:
    """Show version information."""
    from caseload import __version__

    console.print(f"caseload version {__version__}")


if __name__ == "__main__":
    app()
