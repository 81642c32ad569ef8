"""CLI for Darubuddy."""

import typer

from .settle.cli import app as settle_app

app = typer.Typer(
    name="darubuddy",
    help="Split shared group expenses and settle up",
)

app.add_typer(settle_app, name="settle", help="Calculate and review settlements")


if __name__ == "__main__":
    app()
