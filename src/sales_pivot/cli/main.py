import asyncio
import datetime
import json
import logging
from pathlib import Path
from typing import List, Optional

import typer
from pydantic import ValidationError
from tortoise import Tortoise

from ..core.config import DATABASE_URL, FETCH_CONCURRENCY, FETCH_PAGE_SIZE
from ..core.logging_config import configure_logging
from ..features.pivot.errors import FetchError
from ..features.pivot.schemas import PivotQuery, PivotReport
from ..features.pivot.service import generate_pivot_report
from ..features.transactions.models import SalesTransaction, UnitCost
from ..features.transactions.schemas import TransactionImportFile, UnitCostImportFile
from ..features.transactions.service import (TortoiseCostStore, TortoiseTransactionStore,
                                             load_transactions, load_unit_costs)

logger = logging.getLogger(__name__)

TORTOISE_ORM_CONFIG = {
    "connections": {
        "default": DATABASE_URL
    },
    "apps": {
        "models": {
            "models": ["sales_pivot.features.transactions.models"],
            "default_connection": "default",
        }
    },
    "use_tz": False,
    "timezone": "UTC"
}

app = typer.Typer(name="sales-pivot", help="CLI for loading sales data and printing pivot reports.")


# Shared async context manager for database connection
class DBConnection:
    async def __aenter__(self):
        await Tortoise.init(config=TORTOISE_ORM_CONFIG)
        await Tortoise.generate_schemas(safe=True) # Generate schema if it doesn't exist
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await Tortoise.close_connections()


def _format_number(value: Optional[float]) -> str:
    return "-" if value is None else f"{value:,.2f}"


def render_report_table(report: PivotReport) -> str:
    """Renders the visible rows of a report as a fixed-width text table."""
    headers = ["Entity", "Name"] + [p.period for p in report.periods] + ["Total", "Margin %"]
    lines: List[List[str]] = [headers]
    for row in report.rows:
        lines.append(
            [row.entity, row.name or ""]
            + [_format_number(cell.amount) for cell in row.cells]
            + [_format_number(row.total_amount), _format_number(row.margin_percent)]
        )
    lines.append(
        ["TOTAL", ""]
        + [_format_number(p.total_amount) for p in report.periods]
        + [_format_number(report.grand_total), _format_number(report.grand_margin_percent)]
    )
    widths = [max(len(line[i]) for line in lines) for i in range(len(headers))]
    rendered = ["  ".join(cell.ljust(widths[i]) if i < 2 else cell.rjust(widths[i])
                          for i, cell in enumerate(line)) for line in lines]
    rendered.insert(1, "  ".join("-" * w for w in widths))
    footer = f"{report.entity_count} entities, {report.hidden_zero_entity_count} hidden with zero totals"
    if report.skipped_row_count:
        footer += f", {report.skipped_row_count} rows skipped"
    rendered.append(footer)
    return "\n".join(rendered)


@app.command("report")
def report_command(
    from_date: datetime.datetime = typer.Option(..., "--from", formats=["%Y-%m-%d"], help="First day of the report."),
    to_date: datetime.datetime = typer.Option(..., "--to", formats=["%Y-%m-%d"], help="Last day of the report."),
    dimension: str = typer.Option("customer", help="customer, salesperson, category or item."),
    granularity: str = typer.Option("month", help="month or week."),
    sort_by: str = typer.Option("total_amount", help="name, total_amount, total_quantity or period."),
    sort_period: Optional[str] = typer.Option(None, help="Period key to sort by when --sort-by=period."),
    direction: str = typer.Option("desc", help="asc or desc."),
    salesperson: Optional[str] = typer.Option(None, help="Only include this salesperson's sales."),
    include_zero: bool = typer.Option(False, help="Show entities whose totals are zero."),
    costs: bool = typer.Option(True, help="Join unit costs and show margins."),
    limit: Optional[int] = typer.Option(None, help="Only show the top N entities."),
    page_size: int = typer.Option(FETCH_PAGE_SIZE, help="Rows per page query."),
    concurrency: int = typer.Option(FETCH_CONCURRENCY, help="Page queries in flight at once."),
):
    """Prints a pivot report as a text table."""
    configure_logging()
    try:
        query = PivotQuery(
            dimension=dimension, from_date=from_date.date(), to_date=to_date.date(),
            granularity=granularity, filters={"salesperson_code": salesperson} if salesperson else {},
            sort_by=sort_by, sort_period=sort_period, sort_direction=direction,
            include_zero=include_zero, include_costs=costs, limit=limit,
        )
    except ValidationError as e:
        typer.secho(f"Invalid report options: {e}", fg=typer.colors.RED)
        raise typer.Exit(code=2)
    asyncio.run(_report(query, page_size, concurrency))


async def _report(query: PivotQuery, page_size: int, concurrency: int):
    async with DBConnection():
        try:
            report = await generate_pivot_report(
                query, TortoiseTransactionStore(), TortoiseCostStore(),
                page_size=page_size, concurrency=concurrency,
            )
        except FetchError as e:
            typer.secho(f"Could not fetch transactions: {e}", fg=typer.colors.RED)
            raise typer.Exit(code=1)
        except ValueError as e:
            typer.secho(f"Invalid report options: {e}", fg=typer.colors.RED)
            raise typer.Exit(code=2)
    typer.echo(render_report_table(report))


def _read_json(path: Path):
    try:
        return json.loads(path.read_text(encoding="utf-8"))
    except (OSError, json.JSONDecodeError) as e:
        typer.secho(f"Could not read {path}: {e}", fg=typer.colors.RED)
        raise typer.Exit(code=1)


@app.command("load-transactions")
def load_transactions_command(
    path: Path = typer.Argument(..., exists=True, dir_okay=False, help='JSON file: {"transactions": [...]}')
):
    """Imports sales transactions from a JSON file."""
    try:
        payload = TransactionImportFile.model_validate(_read_json(path))
    except ValidationError as e:
        typer.secho(f"Invalid transaction file: {e}", fg=typer.colors.RED)
        raise typer.Exit(code=1)
    asyncio.run(_load_transactions(payload))


async def _load_transactions(payload: TransactionImportFile):
    async with DBConnection():
        count = await load_transactions(payload.transactions)
    typer.secho(f"Loaded {count} transaction(s).", fg=typer.colors.GREEN)


@app.command("load-costs")
def load_costs_command(
    path: Path = typer.Argument(..., exists=True, dir_okay=False, help='JSON file: {"unit_costs": [...]}')
):
    """Imports or updates item unit costs from a JSON file."""
    try:
        payload = UnitCostImportFile.model_validate(_read_json(path))
    except ValidationError as e:
        typer.secho(f"Invalid unit cost file: {e}", fg=typer.colors.RED)
        raise typer.Exit(code=1)
    asyncio.run(_load_costs(payload))


async def _load_costs(payload: UnitCostImportFile):
    async with DBConnection():
        created, updated = await load_unit_costs(payload.unit_costs)
    typer.secho(f"Unit costs: {created} created, {updated} updated.", fg=typer.colors.GREEN)


@app.command("test-db-connection")
def test_db_connection_command_sync():
    """Tests the database connection and counts stored rows."""
    asyncio.run(test_db_connection_command())


async def test_db_connection_command():
    async with DBConnection():
        typer.echo("Successfully connected to the database.")
        transaction_count = await SalesTransaction.all().count()
        cost_count = await UnitCost.all().count()
        typer.echo(f"Found {transaction_count} transaction(s) and {cost_count} unit cost(s).")


if __name__ == "__main__":
    app()
