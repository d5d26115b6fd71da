"""CLI commands for TaxPilot."""

import logging
from datetime import datetime, timedelta
from typing import Annotated, Optional

import typer
from rich import print as rprint
from rich.console import Console
from rich.markdown import Markdown
from rich.panel import Panel
from rich.prompt import Confirm, Prompt
from rich.table import Table

from taxpilot import __version__
from taxpilot.config import LOG_LEVELS, get_config
from taxpilot.models.appointment import AppointmentType
from taxpilot.models.intake import INTAKE_STEPS
from taxpilot.registry import get_registry
from taxpilot.reports import taxpro_rows

app = typer.Typer(
    name="taxpilot",
    help="Tax client intake, document checklists and tax professional routing.",
    invoke_without_command=True,
)
config_app = typer.Typer(help="Manage configuration")
app.add_typer(config_app, name="config")
console = Console()

CONFIG_KEYS = {
    "roster_path": str,
    "max_alternates": int,
    "default_appointment_type": str,
    "document_reminder_lead_days": int,
    "log_level": str,
}


@app.callback()
def main(
    ctx: typer.Context,
    version: Annotated[bool, typer.Option("--version", "-v", help="Show version")] = False,
    verbose: Annotated[bool, typer.Option("--verbose", help="Log debug output")] = False,
) -> None:
    """
    TaxPilot - guided tax intake and tax professional matching.
    """
    if version:
        rprint(f"taxpilot version {__version__}")
        raise typer.Exit()

    level = "DEBUG" if verbose else get_config().log_level
    logging.basicConfig(
        level=getattr(logging, level, logging.WARNING),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    if ctx.invoked_subcommand is None:
        rprint(ctx.get_help())


@app.command()
def taxpros() -> None:
    """List the tax professionals available for routing."""
    pros = get_registry().store.list_taxpros()
    if not pros:
        rprint("[yellow]No tax professionals on the roster.[/yellow]")
        return

    table = Table(title="Tax Professionals")
    table.add_column("ID", style="dim")
    table.add_column("Name", style="cyan")
    table.add_column("Specializations", style="white")
    table.add_column("Max Complexity", style="magenta")
    table.add_column("Load", style="yellow")
    table.add_column("Rating", style="green")
    for row in taxpro_rows(pros):
        table.add_row(*row)
    console.print(table)


def _show(markdown: str) -> None:
    console.print(Markdown(markdown))


def _fail(message: str) -> None:
    rprint(f"[red]{message}[/red]")
    raise typer.Exit(1)


@app.command()
def interview(
    client_id: Annotated[Optional[str], typer.Option("--client-id", help="Resume an existing client")] = None,
) -> None:
    """Walk a client through the whole conversation, from intake to reminders."""
    coordinator = get_registry().coordinator

    started = coordinator.start_intake(client_id)
    client_id = started.data["client_id"]
    session_id = started.data["session_id"]
    rprint(Panel.fit(
        "[bold]Welcome to TaxPilot![/bold]\n\n"
        "I'll ask a few questions so your tax professional has everything\n"
        "they need before your appointment.",
        title="Intake",
    ))

    # Intake questions
    question = started.data["next_question"]
    while question:
        answer = Prompt.ask(f"\n[cyan]{question}[/cyan]")
        result = coordinator.process_intake_response(session_id, answer)
        if not result.success:
            rprint(f"[yellow]{result.message}[/yellow]")
        question = result.data.get("next_question")
        if result.data.get("intake_completed"):
            break

    # Summary review and confirmation
    while True:
        _show(coordinator.get_client_summary(client_id).message)
        if Confirm.ask("\nIs everything correct?", default=True):
            break
        step = Prompt.ask("Which section should change?", choices=[s.value for s in INTAKE_STEPS])
        answer = Prompt.ask("New answer")
        result = coordinator.update_intake_step(session_id, step, answer)
        rprint(f"[{'green' if result.success else 'yellow'}]{result.message}[/]")
    coordinator.confirm_summary(client_id)

    # Documents
    _show(coordinator.generate_document_checklist(client_id).message)

    # Availability
    rprint(f"\n[dim]{coordinator.get_appointment_estimate(client_id).message}[/dim]")
    dates = Prompt.ask("Which dates work for you? (comma-separated)", default="any weekday")
    times = Prompt.ask("What times work best?", default="morning")
    appointment_type = Prompt.ask(
        "Virtual or in-person?",
        choices=[t.value for t in AppointmentType],
        default=get_config().default_appointment_type,
    )
    coordinator.set_scheduling_preferences(
        client_id,
        [d.strip() for d in dates.split(",")],
        [t.strip() for t in times.split(",")],
        appointment_type,
    )

    # Routing
    coordinator.calculate_complexity(client_id)
    routed = coordinator.route_client_to_tax_pro(client_id)
    if not routed.success:
        _fail(routed.message)
    _show(coordinator.get_tax_pro_recommendations(client_id).message)

    # Appointment
    default_time = (datetime.now() + timedelta(days=2)).replace(
        hour=10, minute=0, second=0, microsecond=0
    )
    when = Prompt.ask(
        "Appointment time (YYYY-MM-DD HH:MM)", default=default_time.strftime("%Y-%m-%d %H:%M")
    )
    booked = coordinator.create_appointment(
        client_id, routed.data["tax_pro"]["id"], when, appointment_type
    )
    if not booked.success:
        _fail(booked.message)
    rprint(f"\n[green]{booked.message}[/green]")

    # Reminders
    _show(coordinator.create_document_reminders(client_id).message)
    _show(coordinator.get_flow_progress(client_id).message)
    rprint(f"\n[dim]Client ID: {client_id}[/dim]")


@config_app.command("show")
def config_show() -> None:
    """Show all configuration values."""
    config = get_config()
    table = Table(title="Configuration")
    table.add_column("Key", style="cyan")
    table.add_column("Value", style="green")

    for k, v in config.to_dict().items():
        table.add_row(k, str(v) if v is not None else "[dim]Not set[/dim]")
    console.print(table)
    rprint(f"\n[dim]Config file: {config.config_file}[/dim]")


@config_app.command("set")
def config_set(
    key: Annotated[str, typer.Argument(help="Configuration key")],
    value: Annotated[str, typer.Argument(help="Configuration value")],
) -> None:
    """Set a configuration value."""
    config = get_config()
    key_lower = key.lower()

    if key_lower not in CONFIG_KEYS:
        rprint(f"[red]Unknown configuration key: {key}[/red]")
        rprint(f"Valid keys: {', '.join(CONFIG_KEYS)}")
        raise typer.Exit(1)

    try:
        if key_lower == "log_level":
            config.log_level = value
        elif key_lower == "max_alternates":
            config.max_alternates = int(value)
        elif key_lower == "default_appointment_type":
            config.set(key_lower, AppointmentType(value.lower()).value)
        else:
            config.set(key_lower, CONFIG_KEYS[key_lower](value))
    except ValueError:
        hint = f" (one of {', '.join(LOG_LEVELS)})" if key_lower == "log_level" else ""
        _fail(f"Invalid value for {key_lower}: {value}{hint}")

    rprint(f"[green]Set {key_lower} = {config.get(key_lower)}[/green]")


if __name__ == "__main__":
    app()
