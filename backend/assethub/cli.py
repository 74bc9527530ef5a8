# Overview: Flask CLI command groups for schema bootstrap, outbox delivery, and approval inspection.

# backend/assethub/cli.py
# Commands Legend (run from the backend directory):
# Prereqs:
# - Activate your virtualenv.
# - Set FLASK_APP to wsgi.py (PowerShell: $env:FLASK_APP="wsgi.py").
# - Use: python -m flask <group> <command> [options]
#
# System bootstrap:
# - python -m flask system init-db
#   Create all tables that do not exist yet.
# - python -m flask system reset-db --yes
#   DEV/TEST only: drop and recreate all tables (deletes all data).
#
# Task tracker outbox:
# - python -m flask outbox flush --limit 100
#   Deliver pending events whose backoff has elapsed.
# - python -m flask outbox list --status failed
#   List recent events (optionally by status).
#
# Approvals:
# - python -m flask approvals list --status pending --limit 20
#   List recent approval requests.

import click
from flask.cli import with_appcontext

from .extensions import db
from .services import approval_service, outbox_service


@click.group('system')
def system_group():
    """System bootstrap commands."""


@system_group.command('init-db')
@with_appcontext
def init_db():
    """Create missing tables. Existing tables and data are left alone."""
    from . import models  # noqa: F401

    db.create_all()
    click.echo("OK  Schema is up to date.")


@system_group.command('reset-db')
@click.option('--yes', is_flag=True, help='Skip confirmation')
@with_appcontext
def reset_db(yes):
    """
    DANGER: Drop all tables and recreate schema.

    This will DELETE ALL DATA!
    """
    if not yes:
        click.confirm("WARN This will DELETE ALL DATA. Are you sure?", abort=True)

    click.echo("DELETE  Dropping all tables...")
    db.drop_all()

    click.echo("BUILD  Creating all tables...")
    db.create_all()

    click.echo("OK  Database reset complete.")


@click.group('outbox')
def outbox_group():
    """Task tracker notification outbox."""


@outbox_group.command('flush')
@click.option('--limit', type=int, default=100, show_default=True, help='Max events to deliver')
@with_appcontext
def flush_outbox_cli(limit):
    """
    Deliver due events.

    Failed deliveries are rescheduled with exponential backoff and parked as
    'failed' after OUTBOX_MAX_ATTEMPTS.
    """
    stats = outbox_service.flush_due(limit=limit)
    click.echo(f"Due: {stats['due']}  Delivered: {stats['delivered']}  Failed: {stats['failed']}")


@outbox_group.command('list')
@click.option('--status', type=click.Choice(['pending', 'delivered', 'failed']), help='Filter by status')
@click.option('--limit', type=int, default=50, help='Max events to show')
@with_appcontext
def list_outbox_cli(status, limit):
    """
    List outbox events, newest first.

    Example:
        flask outbox list
        flask outbox list --status failed
    """
    events = outbox_service.list_events(status=status, limit=limit)

    if not events:
        click.echo("No events found.")
        return

    click.echo("\n" + "="*110)
    click.echo(f"{'ID':<6} {'Kind':<18} {'Aggregate':<16} {'Status':<10} {'Tries':<6} {'Next attempt':<20} {'Last error'}")
    click.echo("="*110)

    for event in events:
        next_attempt = str(event.next_attempt_at)[:19] if event.next_attempt_at else "-"
        last_error = event.last_error[:40] if event.last_error else "-"
        aggregate = event.aggregate_id or "-"

        click.echo(f"{event.id:<6} {event.kind:<18} {aggregate:<16} {event.status:<10} {event.attempts:<6} "
                   f"{next_attempt:<20} {last_error}")

    click.echo("="*110 + "\n")


@click.group('approvals')
def approvals_group():
    """Approval request inspection."""


@approvals_group.command('list')
@click.option('--status', type=click.Choice(['pending', 'approved', 'rejected', 'cancelled']), help='Filter by status')
@click.option('--limit', type=int, default=20, help='Max approvals to show')
@with_appcontext
def list_approvals_cli(status, limit):
    """
    List recent approval requests.

    Example:
        flask approvals list
        flask approvals list --status pending
    """
    result = approval_service.list_approval_requests({
        "status": [status] if status else [],
        "page": 1,
        "page_size": limit,
    })
    approvals = result["data"]

    if not approvals:
        click.echo("No approvals found.")
        return

    click.echo("\n" + "="*110)
    click.echo(f"{'ID':<14} {'Type':<12} {'Status':<10} {'Applicant':<15} {'Approver':<15} {'Created':<20} {'Title'}")
    click.echo("="*110)

    for approval in approvals:
        applicant = approval.applicant_name or approval.applicant_id
        approver = approval.approver_name or approval.approver_id or "-"
        title = approval.title[:30] if approval.title else "-"

        click.echo(f"{approval.id:<14} {approval.type:<12} {approval.status:<10} {applicant:<15} {approver:<15} "
                   f"{str(approval.created_at)[:19]:<20} {title}")

    click.echo("="*110 + f"\nShowing {len(approvals)} of {result['meta']['total']}\n")


def register_commands(app):
    """Register all CLI commands with Flask app."""
    app.cli.add_command(system_group)
    app.cli.add_command(outbox_group)
    app.cli.add_command(approvals_group)
