"""LAIKA — Command-Line Interface.

Usage:
    laika fetch TENANT DATE      - Compute and store all metrics for DATE's month
    laika report TENANT DATE     - Print the values stored for DATE's month
    laika release TENANT DATE    - Drop a run claim left behind by a killed run

DATE is an ISO date such as 2016-04-01; only its month is used.
"""

import asyncio
import sys
from typing import List

import click
from rich.console import Console
from rich.table import Table
from rich import box

from laika import __version__
from laika.core.errors import LaikaError
from laika.engine.coordinator import list_month_values, release_month, run_for_tenant
from laika.models.value_models import ReportRow

console = Console()


def _fail(error: LaikaError) -> None:
    console.print(f"[bold red]LAIKA: ERROR,[/bold red] {error.message}", highlight=False)
    sys.exit(1)


def _report_table(rows: List[ReportRow]) -> Table:
    table = Table(box=box.SIMPLE, show_edge=False)
    for column in ("id", "date", "site", "data_id", "value"):
        table.add_column(column, justify="right" if column != "date" else "left")
    for row in rows:
        table.add_row(
            str(row.id), row.month.isoformat(), str(row.site), str(row.metric), f"{row.value:g}"
        )
    return table


@click.group()
@click.version_option(__version__, prog_name="LAIKA")
def cli():
    """LAIKA: monthly site metrics from the analytics provider."""


@cli.command()
@click.argument("tenant")
@click.argument("date")
def fetch(tenant: str, date: str):
    """Fetch and store every metric of every site for DATE's month."""
    console.print(f"[bold]LAIKA v{__version__}[/bold]\n")
    try:
        report = asyncio.run(run_for_tenant(tenant, date))
    except LaikaError as e:
        _fail(e)
        return

    console.print(
        f"Finished at {report.finished_at:%Y-%m-%d %H:%M:%S} "
        f"in {report.elapsed} ({report.values_written} values, "
        f"{report.metrics_skipped} skipped, {report.fetch_calls} requests)\n"
    )
    console.print("[bold]Final report[/bold]")
    console.print(_report_table(report.rows))


@cli.command()
@click.argument("tenant")
@click.argument("date")
@click.option("--csv", "as_csv", is_flag=True, help="Print comma-separated values")
def report(tenant: str, date: str, as_csv: bool):
    """Print the values stored for DATE's month."""
    try:
        rows = list_month_values(tenant, date)
    except LaikaError as e:
        _fail(e)
        return

    if as_csv:
        click.echo("id,date,site,data_id,value")
        for row in rows:
            click.echo(f"{row.id},{row.month.isoformat()},{row.site},{row.metric},{row.value:g}")
    elif rows:
        console.print(_report_table(rows))
    else:
        console.print("No values stored for this month.")


@cli.command()
@click.argument("tenant")
@click.argument("date")
def release(tenant: str, date: str):
    """Drop the run claim of DATE's month."""
    try:
        released = release_month(tenant, date)
    except LaikaError as e:
        _fail(e)
        return
    console.print("Run claim released." if released else "No run claim to release.")


def main():
    cli()


if __name__ == "__main__":
    main()
