# Overview: Flask CLI command groups for database bootstrap, machines and counters.

# backend/coinop/cli.py
# Commands Legend (run from the backend directory):
# Prereqs:
# - Activate your virtualenv.
# - Set FLASK_APP to wsgi.py (PowerShell: $env:FLASK_APP="wsgi.py").
# - Use: python -m flask <group> <command> [options]
#
# System bootstrap/repair:
# - python -m flask system init-db
#   Create all tables (development; use `flask db upgrade` for migrations).
# - python -m flask system reset-db --yes
#   DEV/TEST only: drop and recreate all tables (deletes all data).
#
# Machines:
# - python -m flask machines list [--status installed]
# - python -m flask machines register --serial SN-001 --type "Claw" [--initial-counter 1000] [--split 50]
#
# Counters:
# - python -m flask counters show MACHINE_ID
# - python -m flask counters history MACHINE_ID
# - python -m flask counters record MACHINE_ID 1500 [--source manual] [--note "..."] [--actor ...]

import click
from flask.cli import with_appcontext

from .extensions import db, get_ledger
from .models.counters import OBSERVATION_SOURCES, SOURCE_MANUAL
from .models.machines import MACHINE_STATUSES
from .services import machine_service
from .services.counter_service import CounterLedgerError
from .validation import ConflictError, ValidationError, enforce_rules_machine


@click.group('system')
def system_group():
    """Database bootstrap and repair commands."""


@system_group.command('init-db')
@with_appcontext
def init_db():
    """Create all tables that do not exist yet."""
    db.create_all()
    click.echo("PASS Database tables created.")


@system_group.command('reset-db')
@click.option('--yes', is_flag=True, help='Skip confirmation')
@with_appcontext
def reset_db(yes):
    """
    DANGER: Drop all tables and recreate schema.

    This will DELETE ALL DATA, counter history included!
    """
    if not yes:
        click.confirm("WARN This will DELETE ALL DATA. Are you sure?", abort=True)

    click.echo("DELETE  Dropping all tables...")
    db.drop_all()

    click.echo("BUILD  Creating all tables...")
    db.create_all()

    click.echo("PASS Database reset complete.")


@click.group('machines')
def machines_group():
    """Machine inspection and registration commands."""


@machines_group.command('list')
@click.option('--status', type=click.Choice(MACHINE_STATUSES), help='Filter by status')
@click.option('--client-id', type=int, help='Filter by client ID')
@with_appcontext
def list_machines_cli(status, client_id):
    """
    List machines with their current counters.

    Example:
        flask machines list
        flask machines list --status installed
    """
    machines = machine_service.list_machines(get_ledger(), status=status, client_id=client_id)

    if not machines:
        click.echo("No machines found.")
        return

    click.echo("\n" + "="*100)
    click.echo(f"{'ID':<38} {'Serial':<16} {'Type':<16} {'Status':<10} {'Client':<8} {'Counter'}")
    click.echo("="*100)

    for m in machines:
        client = m.client_id if m.client_id is not None else "-"
        click.echo(f"{m.id:<38} {m.serial_number:<16} {m.machine_type:<16} {m.status:<10} {client!s:<8} {m.current_counter}")

    click.echo("="*100 + "\n")


@machines_group.command('register')
@click.option('--serial', 'serial_number', required=True, help='Serial number (unique)')
@click.option('--type', 'machine_type', required=True, help='Machine type (e.g. claw, pinball)')
@click.option('--brand', help='Brand')
@click.option('--model', help='Model')
@click.option('--initial-counter', type=int, default=0, show_default=True, help='Counter at registration')
@click.option('--split', 'split_percentage', type=float, help='Revenue split percentage (0-100)')
@with_appcontext
def register_machine_cli(serial_number, machine_type, brand, model, initial_counter, split_percentage):
    """
    Register a machine in storage.

    Example:
        flask machines register --serial SN-001 --type claw --initial-counter 1000
    """
    patch = {
        "serial_number": serial_number,
        "machine_type": machine_type,
        "brand": brand,
        "model": model,
        "initial_counter": initial_counter,
        "split_percentage": split_percentage,
    }
    try:
        enforce_rules_machine(patch)
        machine = machine_service.register_machine(get_ledger(), patch)
    except (ValidationError, ConflictError) as e:
        click.echo(f"FAIL Error: {e}")
        raise SystemExit(1)

    click.echo(f"PASS Registered machine: {machine.serial_number}")
    click.echo(f"   Machine ID: {machine.id}")
    click.echo(f"   Counter: {machine.current_counter}")


@click.group('counters')
def counters_group():
    """Counter ledger inspection and manual readings."""


@counters_group.command('show')
@click.argument('machine_id')
@with_appcontext
def show_counter_cli(machine_id):
    """Show the current counter of a machine."""
    try:
        counter = get_ledger().latest_counter(machine_id)
    except CounterLedgerError as e:
        click.echo(f"FAIL Error: {e}")
        raise SystemExit(1)
    click.echo(f"{machine_id}: {counter}")


@counters_group.command('history')
@click.argument('machine_id')
@click.option('--limit', type=int, default=20, help='Max observations to show')
@with_appcontext
def counter_history_cli(machine_id, limit):
    """Show counter observations, newest first."""
    try:
        observations = get_ledger().history_for(machine_id)
    except CounterLedgerError as e:
        click.echo(f"FAIL Error: {e}")
        raise SystemExit(1)

    if not observations:
        click.echo("No counter observations recorded.")
        return

    click.echo("\n" + "="*100)
    click.echo(f"{'Occurred at':<22} {'Source':<14} {'Previous':>10} {'New':>10} {'Diff':>8}  {'Note'}")
    click.echo("="*100)

    for o in observations[:limit]:
        occurred = o.occurred_at.strftime("%Y-%m-%d %H:%M:%S")
        click.echo(
            f"{occurred:<22} {o.source:<14} {o.previous_counter:>10} {o.new_counter:>10} {o.difference:>8}  {o.note or '-'}"
        )

    click.echo("="*100 + "\n")


@counters_group.command('record')
@click.argument('machine_id')
@click.argument('value', type=int)
@click.option('--source', type=click.Choice(OBSERVATION_SOURCES), default=SOURCE_MANUAL, show_default=True)
@click.option('--note', help='Free text stored with the reading')
@click.option('--actor', help='Who read the counter')
@with_appcontext
def record_counter_cli(machine_id, value, source, note, actor):
    """
    Record a counter reading.

    Example:
        flask counters record 6f1c... 1500 --note "Board replaced, counter reset"
    """
    try:
        observation = get_ledger().record_observation(machine_id, value, source, note=note, actor=actor)
    except CounterLedgerError as e:
        click.echo(f"FAIL Error: {e}")
        raise SystemExit(1)

    click.echo(
        f"PASS Counter {observation.previous_counter} -> {observation.new_counter} "
        f"(difference {observation.difference})"
    )


def register_commands(app):
    """Register all CLI commands with Flask app."""
    app.cli.add_command(system_group)
    app.cli.add_command(machines_group)
    app.cli.add_command(counters_group)
