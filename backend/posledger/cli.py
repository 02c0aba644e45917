# Overview: Flask CLI command groups for register, shift and gift card inspection and bootstrap.

# backend/posledger/cli.py
# Commands Legend (run from the backend directory):
# Prereqs:
# - Activate your virtualenv.
# - Set FLASK_APP to "posledger:create_app".
# - Use: python -m flask <group> <command> [options]
#
# Register inspection/bootstrap:
# - python -m flask registers create --tenant acme --code REG-01 --name "Front Counter 1"
#   Create a new POS register.
# - python -m flask registers list --tenant acme [--all]
#   List registers (use --all to include inactive).
# - python -m flask registers sessions --tenant acme --status active --limit 20
#   List recent register sessions with optional filters.
#
# Shift inspection:
# - python -m flask shifts list --tenant acme [--register-id 1] [--status open]
#   List shifts with totals and variance.
# - python -m flask shifts summary --tenant acme 7
#   Print the expected balance and variance breakdown of one shift.
#
# Gift cards:
# - python -m flask giftcards issue --tenant acme --number GC-0001 --amount-cents 5000 [--pin 1234]
#   Issue a gift card with its opening ledger row.
# - python -m flask giftcards balance --tenant acme GC-0001
#   Print the balance and ledger history of a gift card.

import click
from flask.cli import with_appcontext

from .extensions import db
from .context import OperationContext
from .errors import POSError


def _cents(value) -> str:
    if value is None:
        return "-"
    return f"${value / 100:,.2f}"


tenant_option = click.option("--tenant", "tenant_id", required=True, help="Tenant ID")


# =============================================================================
# REGISTERS
# =============================================================================

@click.group('registers')
def registers_group():
    """Register inspection and bootstrap commands."""


@registers_group.command('create')
@tenant_option
@click.option('--code', required=True, help='Register code (unique per tenant)')
@click.option('--name', required=True, help='Register name')
@click.option('--type', 'register_type', default='main', show_default=True,
              type=click.Choice(['main', 'express', 'self_checkout', 'mobile']))
@with_appcontext
def create_register_cli(tenant_id, code, name, register_type):
    """
    Create a new POS register.

    Example:
        flask registers create --tenant acme --code REG-01 --name "Front Counter 1"
    """
    from .services import register_service

    try:
        register = register_service.create_register(OperationContext(tenant_id), code, name, register_type)
    except POSError as e:
        click.echo(f"FAIL Error: {e.message}")
        return

    click.echo(f"PASS Created register: {register.code} - {register.name}")
    click.echo(f"   Type: {register.register_type}")
    click.echo(f"   Register ID: {register.id}")


@registers_group.command('list')
@tenant_option
@click.option('--all', 'show_all', is_flag=True, help='Show inactive registers too')
@with_appcontext
def list_registers_cli(tenant_id, show_all):
    """
    List all registers.

    Example:
        flask registers list --tenant acme
        flask registers list --tenant acme --all
    """
    from .services import register_service

    ctx = OperationContext(tenant_id)
    registers = register_service.list_registers(ctx, active_only=not show_all)

    if not registers:
        click.echo("No registers found.")
        return

    click.echo("\n" + "="*90)
    click.echo(f"{'ID':<5} {'Code':<12} {'Name':<25} {'Type':<14} {'Active':<8} {'Status'}")
    click.echo("="*90)

    for register in registers:
        active_str = "Yes" if register.is_active else "No"
        click.echo(f"{register.id:<5} {register.code:<12} {register.name:<25} "
                   f"{register.register_type:<14} {active_str:<8} {register.status}")

    click.echo("="*90 + "\n")


@registers_group.command('sessions')
@tenant_option
@click.option('--register-id', type=int, help='Filter by register ID')
@click.option('--status', type=click.Choice(['active', 'closed']), help='Filter by status')
@click.option('--limit', type=int, default=20, help='Max sessions to show')
@with_appcontext
def list_sessions_cli(tenant_id, register_id, status, limit):
    """
    List register sessions.

    Example:
        flask registers sessions --tenant acme
        flask registers sessions --tenant acme --register-id 1 --status active
    """
    from .models import PosSession

    query = db.session.query(PosSession).filter_by(tenant_id=tenant_id)

    if register_id:
        query = query.filter_by(register_id=register_id)

    if status:
        query = query.filter_by(status=status)

    sessions = query.order_by(PosSession.session_start.desc()).limit(limit).all()

    if not sessions:
        click.echo("No sessions found.")
        return

    click.echo("\n" + "="*110)
    click.echo(f"{'ID':<5} {'Number':<14} {'Register':<10} {'Status':<8} {'Opened':<20} {'Sales':<12} {'Txns':<6} {'Notes'}")
    click.echo("="*110)

    for session in sessions:
        notes = session.notes[:30] if session.notes else "-"
        click.echo(f"{session.id:<5} {session.session_number:<14} {session.register_id:<10} {session.status:<8} "
                   f"{str(session.session_start)[:19]:<20} {_cents(session.total_sales_cents):<12} "
                   f"{session.total_transactions:<6} {notes}")

    click.echo("="*110 + "\n")


# =============================================================================
# SHIFTS
# =============================================================================

@click.group('shifts')
def shifts_group():
    """Shift inspection commands."""


@shifts_group.command('list')
@tenant_option
@click.option('--register-id', type=int, help='Filter by register ID')
@click.option('--status', type=click.Choice(['open', 'closed', 'reconciled']), help='Filter by status')
@click.option('--limit', type=int, default=20, help='Max shifts to show')
@with_appcontext
def list_shifts_cli(tenant_id, register_id, status, limit):
    """
    List shifts with totals and variance.

    Example:
        flask shifts list --tenant acme --status closed
    """
    from .models import Shift

    query = db.session.query(Shift).filter_by(tenant_id=tenant_id)
    if register_id:
        query = query.filter_by(register_id=register_id)
    if status:
        query = query.filter_by(status=status)

    shifts = query.order_by(Shift.opened_at.desc()).limit(limit).all()

    if not shifts:
        click.echo("No shifts found.")
        return

    click.echo("\n" + "="*100)
    click.echo(f"{'ID':<5} {'Number':<14} {'Register':<10} {'Status':<12} {'Opening':<12} {'Expected':<12} {'Variance'}")
    click.echo("="*100)

    for shift in shifts:
        variance_str = "-"
        if shift.variance_cents is not None:
            variance_str = f"${shift.variance_cents / 100:+.2f}"
        click.echo(f"{shift.id:<5} {shift.shift_number:<14} {shift.register_id:<10} {shift.status:<12} "
                   f"{_cents(shift.opening_balance_cents):<12} {_cents(shift.expected_balance_cents):<12} {variance_str}")

    click.echo("="*100 + "\n")


@shifts_group.command('summary')
@tenant_option
@click.argument('shift_id', type=int)
@with_appcontext
def shift_summary_cli(tenant_id, shift_id):
    """
    Print the cash breakdown of one shift.

    Example:
        flask shifts summary --tenant acme 7
    """
    from .services import register_service

    try:
        summary = register_service.get_shift_summary(OperationContext(tenant_id), shift_id)
    except POSError as e:
        click.echo(f"FAIL Error: {e.message}")
        return

    shift = summary["shift"]
    click.echo(f"Shift {shift['shift_number']} ({shift['status']})")
    click.echo(f"   Opening balance:   {_cents(shift['opening_balance_cents'])}")
    click.echo(f"   Cash sales:        {_cents(summary['total_cash_sales_cents'])}")
    click.echo(f"   Card sales:        {_cents(summary['total_card_sales_cents'])}")
    click.echo(f"   Returns:           {_cents(summary['total_returns_cents'])}")
    click.echo(f"   Expected balance:  {_cents(summary['expected_balance_cents'])}")
    click.echo(f"   Counted balance:   {_cents(shift['closing_balance_cents'])}")
    click.echo(f"   Variance:          {_cents(summary['variance_cents'])}")
    click.echo(f"   Sessions:          {len(summary['sessions'])}")


# =============================================================================
# GIFT CARDS
# =============================================================================

@click.group('giftcards')
def giftcards_group():
    """Gift card issue and inspection commands."""


@giftcards_group.command('issue')
@tenant_option
@click.option('--number', 'card_number', required=True, help='Gift card number')
@click.option('--amount-cents', type=int, required=True, help='Initial value in cents')
@click.option('--pin', help='Optional PIN (stored hashed)')
@click.option('--customer-id', type=int, help='Issue to customer')
@with_appcontext
def issue_gift_card_cli(tenant_id, card_number, amount_cents, pin, customer_id):
    """
    Issue a gift card.

    Example:
        flask giftcards issue --tenant acme --number GC-0001 --amount-cents 5000
    """
    from .services import ledger_service

    try:
        card = ledger_service.issue_gift_card(
            OperationContext(tenant_id),
            card_number,
            amount_cents,
            pin=pin,
            customer_id=customer_id,
        )
    except POSError as e:
        click.echo(f"FAIL Error: {e.message}")
        return

    click.echo(f"PASS Issued gift card {card.card_number} with {_cents(card.current_balance_cents)}")


@giftcards_group.command('balance')
@tenant_option
@click.argument('card_number')
@with_appcontext
def gift_card_balance_cli(tenant_id, card_number):
    """
    Print a gift card's balance and ledger history.

    Example:
        flask giftcards balance --tenant acme GC-0001
    """
    from .services import ledger_service
    from .services.ledger_service import AccountRef, KIND_GIFT_CARD

    ctx = OperationContext(tenant_id)
    try:
        card = ledger_service.get_gift_card_by_number(ctx, card_number)
    except POSError as e:
        click.echo(f"FAIL Error: {e.message}")
        return

    click.echo(f"{card.card_number}: {_cents(card.current_balance_cents)} ({card.status})")
    for entry in ledger_service.get_entries(ctx, AccountRef(KIND_GIFT_CARD, card.id)):
        click.echo(f"   {str(entry.created_at)[:19]:<20} {entry.transaction_type:<8} "
                   f"{_cents(entry.amount):>10} -> {_cents(entry.balance_after)}")


def register_commands(app):
    """Register all CLI commands with Flask app."""
    app.cli.add_command(registers_group)
    app.cli.add_command(shifts_group)
    app.cli.add_command(giftcards_group)
