"""CLI commands for calculating and reviewing group settlements."""

import logging
import sys
from decimal import Decimal
from pathlib import Path
from typing import Optional

import typer
from rich.console import Console
from rich.table import Table

from ..config import load_settings
from ..db import Database
from ..exceptions import DarubuddyError
from ..models import (
    CalculationRecord,
    Expense,
    NetBalance,
    StoredCalculation,
    Transfer,
)
from .engine import SETTLE_EPSILON, round_currency
from .service import CalculationService, load_session_file
from .ui import default_participant_names, prompt_expenses, prompt_participants

app = typer.Typer(
    name="settle",
    help="Split shared expenses and work out who pays whom",
)

console = Console()


def setup_logging(verbose: bool = False):
    """Setup logging configuration."""
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(
        level=level, format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
    )


# ============================================================================
# Formatting
# ============================================================================


def format_money(amount: Decimal, symbol: str = "₹") -> str:
    """Format a non-negative amount with two decimals: ₹85.02"""
    return f"{symbol}{round_currency(amount):.2f}"


def describe_net(balance: NetBalance, symbol: str = "₹") -> str:
    """One summary line per participant."""
    if abs(balance.net) < SETTLE_EPSILON:
        return f"{balance.name}: Settled"
    if balance.net > 0:
        return f"{balance.name} should receive {format_money(balance.net, symbol)}"
    return f"{balance.name} owes {format_money(-balance.net, symbol)}"


def describe_transfer(transfer: Transfer, symbol: str = "₹") -> str:
    return f"{transfer.from_} → {transfer.to}: {format_money(transfer.amount, symbol)}"


def describe_expense(expense: Expense, symbol: str = "₹") -> str:
    return (
        f"{expense.description} – {format_money(expense.amount, symbol)} "
        f"(paid by {expense.payer}; shared by {', '.join(expense.shared_by)})"
    )


def summarize_cost(record: StoredCalculation, symbol: str = "₹") -> str:
    """Total for advanced records, per-person share for legacy ones."""
    if isinstance(record, CalculationRecord):
        return f"{format_money(record.total_spent, symbol)} total"
    return f"{format_money(record.per_person, symbol)}/person"


def format_timestamp(record: StoredCalculation) -> str:
    return record.timestamp.astimezone().strftime("%d %b %Y, %H:%M")


def display_result(record: CalculationRecord, symbol: str = "₹"):
    """Display balances and recommended payments."""
    console.print("\n[bold]Summary[/bold]")
    for balance in record.totals:
        line = describe_net(balance, symbol)
        if abs(balance.net) < SETTLE_EPSILON:
            console.print(f"  [dim]{line}[/dim]")
        elif balance.net > 0:
            console.print(f"  [green]{line}[/green]")
        else:
            console.print(f"  [red]{line}[/red]")

    if record.settlement:
        console.print("\n[bold]Recommended payments[/bold]")
        for transfer in record.settlement:
            console.print(f"  [cyan]{describe_transfer(transfer, symbol)}[/cyan]")

    console.print(
        f"\n[dim]{len(record.expenses)} expenses, "
        f"{summarize_cost(record, symbol)}[/dim]"
    )


def display_details(record: StoredCalculation, symbol: str = "₹"):
    """Display the stored details of a saved calculation."""
    if isinstance(record, CalculationRecord):
        console.print("  [bold]Expenses:[/bold]")
        for expense in record.expenses:
            console.print(f"    {describe_expense(expense, symbol)}")

        console.print("  [bold]Balances:[/bold]")
        for balance in record.totals:
            console.print(f"    {describe_net(balance, symbol)}")

        if record.settlement:
            console.print("  [bold]Recommended payments:[/bold]")
            for transfer in record.settlement:
                console.print(f"    {describe_transfer(transfer, symbol)}")
    else:
        # Legacy equal split
        for name in record.names:
            console.print(f"    {name}: {format_money(record.per_person, symbol)}")


# ============================================================================
# Commands
# ============================================================================


@app.command()
def calculate(
    file: Optional[Path] = typer.Option(
        None,
        "--file",
        "-f",
        help="JSON file with participants and expenses (prompts if omitted)",
        exists=True,
        dir_okay=False,
    ),
    save: bool = typer.Option(
        False, "--save", "-s", help="Save the calculation without asking"
    ),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Verbose output"),
):
    """
    Calculate balances and recommended payments.

    Reads participants and expenses from --file, or asks for them
    interactively. Each expense is split equally among the people who
    shared it; the payer only pays a share when listed as a sharer.
    """
    setup_logging(verbose)

    try:
        settings = load_settings()
        symbol = settings.currency_symbol

        if file is not None:
            session = load_session_file(file)
            participants = session.participants
            expenses = session.expenses
        else:
            entered = prompt_participants(
                default_participant_names(
                    settings.default_participant_count, settings.participant_prefix
                )
            )
            if entered is None:
                return
            participants = entered
            expenses = prompt_expenses(entered, symbol)
            if expenses is None:
                return

        db = Database(settings.database_path)
        service = CalculationService(settings, db)

        record = service.calculate(participants, expenses)
        display_result(record, symbol)

        if not save and file is None:
            confirm = input("\nSave this calculation? [y/N] ").strip().lower()
            save = confirm in ("y", "yes")

        if save:
            record_id = service.save(record)
            console.print(f"\n[bold green]✓ Saved as calculation #{record_id}[/bold green]")

    except DarubuddyError as e:
        console.print(f"\n[bold yellow]⚠️  {e}[/bold yellow]\n")
        sys.exit(1)
    except Exception as e:
        console.print(f"\n[bold red]Error:[/bold red] {e}")
        if verbose:
            raise
        sys.exit(1)
    finally:
        if "db" in locals():
            db.close()


@app.command()
def history(
    details: bool = typer.Option(
        False, "--details", "-d", help="Show expenses, balances and payments"
    ),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Verbose output"),
):
    """
    List saved calculations, newest first.

    Older equal-split calculations are shown with their per-person share.
    """
    setup_logging(verbose)

    try:
        settings = load_settings()
        symbol = settings.currency_symbol
        db = Database(settings.database_path)
        service = CalculationService(settings, db)

        saved = service.history()
        if not saved:
            console.print("[yellow]No saved calculations.[/yellow]")
            return

        if not details:
            table = Table(
                title="Saved Calculations", show_header=True, header_style="bold magenta"
            )
            table.add_column("ID", style="dim", width=6)
            table.add_column("Date", style="cyan")
            table.add_column("People", justify="right")
            table.add_column("Cost", justify="right", style="green")

            for record_id, record in saved:
                table.add_row(
                    str(record_id),
                    format_timestamp(record),
                    str(record.participant_count),
                    summarize_cost(record, symbol),
                )

            console.print(table)
            return

        for record_id, record in saved:
            console.print(
                f"\n[bold]#{record_id}[/bold] {format_timestamp(record)} – "
                f"{record.participant_count} people – "
                f"[green]{summarize_cost(record, symbol)}[/green]"
            )
            display_details(record, symbol)

    except DarubuddyError as e:
        console.print(f"\n[bold yellow]⚠️  {e}[/bold yellow]\n")
        sys.exit(1)
    except Exception as e:
        console.print(f"\n[bold red]Error:[/bold red] {e}")
        if verbose:
            raise
        sys.exit(1)
    finally:
        if "db" in locals():
            db.close()


@app.command("import-history")
def import_history(
    path: Path = typer.Argument(
        ..., help="JSON array exported from the browser's saved calculations",
        exists=True,
        dir_okay=False,
    ),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Verbose output"),
):
    """Import saved calculations from a JSON export."""
    setup_logging(verbose)

    try:
        settings = load_settings()
        db = Database(settings.database_path)
        service = CalculationService(settings, db)

        count = service.import_history(path)
        console.print(f"[bold green]✓ Imported {count} calculations[/bold green]")

    except DarubuddyError as e:
        console.print(f"\n[bold yellow]⚠️  {e}[/bold yellow]\n")
        sys.exit(1)
    except Exception as e:
        console.print(f"\n[bold red]Error:[/bold red] {e}")
        if verbose:
            raise
        sys.exit(1)
    finally:
        if "db" in locals():
            db.close()


if __name__ == "__main__":
    app()
