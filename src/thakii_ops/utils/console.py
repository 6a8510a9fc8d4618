"""Coloured status output shared by every command."""

import datetime

import click

RULE_WIDTH = 40


def print_header(title: str, *details: str) -> None:
    click.echo()
    click.secho("=" * RULE_WIDTH, fg="cyan")
    click.secho(title, fg="cyan")
    click.secho("=" * RULE_WIDTH, fg="cyan")
    for line in details:
        click.secho(line, fg="blue")
    click.secho(f"Timestamp: {datetime.datetime.now():%a %b %d %H:%M:%S %Y}", fg="blue")
    click.echo()


def print_step(title: str, width: int = RULE_WIDTH) -> None:
    click.echo()
    click.secho(title, fg="magenta")
    click.secho("-" * width, fg="magenta")


def print_success(message: str) -> None:
    click.secho(f"✅ {message}", fg="green")


def print_warning(message: str) -> None:
    click.secho(f"⚠️  {message}", fg="yellow")


def print_error(message: str) -> None:
    click.secho(f"❌ {message}", fg="red")


def print_info(message: str) -> None:
    click.secho(f"ℹ️  {message}", fg="blue")


def print_field(label: str, value: object) -> None:
    """Print a `Label: value` line with the label highlighted."""
    click.echo(click.style(f"{label}:", fg="cyan") + f" {value}")
