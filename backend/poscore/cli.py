# Overview: Flask CLI command groups for bootstrap, inspection, and maintenance.

# backend/poscore/cli.py
# Commands Legend (run from the backend directory):
# Prereqs:
# - Activate your virtualenv.
# - Set FLASK_APP to wsgi.py (PowerShell: $env:FLASK_APP="wsgi.py").
# - Use: python -m flask <group> <command> [options]
#
# System bootstrap/repair:
# - python -m flask system init-db
#   Create all tables that do not exist yet (idempotent).
# - python -m flask system reset-db --yes
#   DEV/TEST only: drop and recreate all tables (deletes all data).
# - python -m flask system seed-demo
#   Create a demo tenant with one branch, two cashiers, products with stock and a customer.
#
# Cash ledger inspection:
# - python -m flask ledger verify --branch-id 1
#   Walk the branch cash chain and report sequence or balance breaks.
#
# Shift inspection:
# - python -m flask shifts list [--branch-id 1] [--open-only]
#   List recent shifts with their balances.

import click
from flask.cli import with_appcontext

from .context import RequestContext
from .extensions import db
from .models import Branch, Customer, Product, Shift, Tenant, User
from .services import cash_ledger_service, stock_service


@click.group('system')
def system_group():
    """System bootstrap and repair commands."""


@system_group.command('init-db')
@with_appcontext
def init_db():
    """Create all tables that are missing. Existing data is left alone."""
    db.create_all()
    click.echo("PASS Database schema ready.")


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

    click.echo("PASS Database reset complete. Run 'python -m flask system seed-demo' to add demo data.")


@system_group.command('seed-demo')
@click.option('--tenant', 'tenant_name', default='Demo Tenant', help='Tenant name')
@with_appcontext
def seed_demo(tenant_name):
    """
    Create a demo tenant ready for selling.

    Creates:
    - Tenant with 14% tax
    - Branch MAIN
    - Users: cashier, manager
    - Three products with 50 units each at MAIN
    - One customer with a 500.00 credit limit

    Idempotent on the tenant name: an existing tenant is reported and left alone.
    """
    existing = db.session.query(Tenant).filter_by(name=tenant_name).first()
    if existing:
        click.echo(f"PASS Tenant already exists: {existing.name} (ID: {existing.id})")
        return

    click.echo("START Seeding demo data...")

    tenant = Tenant(name=tenant_name, tax_rate_bps=1400, is_tax_enabled=True)
    db.session.add(tenant)
    db.session.flush()

    branch = Branch(tenant_id=tenant.id, name="Main Branch", code="MAIN")
    db.session.add(branch)
    db.session.flush()

    cashier = User(tenant_id=tenant.id, branch_id=branch.id, name="Cashier", email="cashier@poscore.local")
    manager = User(tenant_id=tenant.id, branch_id=branch.id, name="Manager", email="manager@poscore.local")
    db.session.add_all([cashier, manager])

    products = [
        Product(tenant_id=tenant.id, sku="COF-001", name="Coffee Beans 250g", price_cents=12000, cost_cents=8000),
        Product(tenant_id=tenant.id, sku="TEA-001", name="Green Tea 100g", price_cents=4500, cost_cents=2500),
        Product(tenant_id=tenant.id, sku="MUG-001", name="Ceramic Mug", price_cents=9000, cost_cents=4000),
    ]
    db.session.add_all(products)

    db.session.add(Customer(tenant_id=tenant.id, phone="01000000000", name="Walk-in Regular", credit_limit_cents=50000))
    db.session.commit()

    ctx = RequestContext(tenant.id, branch.id, manager.id, manager.name)
    for product in products:
        stock_service.increment(ctx, product.id, 50, reference_type="SEED", reason="Demo opening stock")

    click.echo(f"PASS Created tenant {tenant.name} (ID: {tenant.id})")
    click.echo(f"PASS Created branch {branch.name} (ID: {branch.id})")
    click.echo(f"PASS Created users: cashier (ID: {cashier.id}), manager (ID: {manager.id})")
    click.echo(f"PASS Created {len(products)} products with 50 units each")


@click.group('ledger')
def ledger_group():
    """Cash ledger inspection commands."""


@ledger_group.command('verify')
@click.option('--branch-id', type=int, required=True, help='Branch whose chain to verify')
@with_appcontext
def verify_ledger(branch_id):
    """
    Walk a branch's cash chain and report every break.

    Example:
        flask ledger verify --branch-id 1
    """
    branch = db.session.get(Branch, branch_id)
    if not branch:
        raise click.ClickException(f"Branch {branch_id} not found")

    ctx = RequestContext(tenant_id=branch.tenant_id, branch_id=branch.id, user_id=None)
    problems = cash_ledger_service.verify_chain(ctx)

    if not problems:
        balance = cash_ledger_service.get_current_balance(ctx)
        click.echo(f"PASS Cash chain intact for branch {branch.name} (balance: {balance} cents)")
        return

    for problem in problems:
        click.echo(
            f"FAIL entry={problem['entry_id']} {problem['problem']}: "
            f"expected {problem['expected']}, got {problem['actual']}"
        )
    raise click.ClickException(f"{len(problems)} problem(s) found in branch {branch_id} cash chain")


@click.group('shifts')
def shifts_group():
    """Shift inspection commands."""


@shifts_group.command('list')
@click.option('--branch-id', type=int, help='Filter by branch ID')
@click.option('--open-only', is_flag=True, help='Only show open shifts')
@click.option('--limit', default=20, help='Maximum number of shifts to show')
@with_appcontext
def list_shifts(branch_id, open_only, limit):
    """
    List recent shifts.

    Example:
        flask shifts list
        flask shifts list --branch-id 1 --open-only
    """
    query = db.session.query(Shift)

    if branch_id:
        query = query.filter_by(branch_id=branch_id)

    if open_only:
        query = query.filter_by(is_closed=False)

    shifts = query.order_by(Shift.opened_at.desc()).limit(limit).all()

    if not shifts:
        click.echo("No shifts found.")
        return

    click.echo("\n" + "="*100)
    click.echo(f"{'ID':<5} {'Branch':<8} {'User':<20} {'Opened':<22} {'Status':<8} {'Opening':>10} {'Closing':>10} {'Diff':>8}")
    click.echo("="*100)

    for shift in shifts:
        status = "CLOSED" if shift.is_closed else "OPEN"
        user = shift.user.name if shift.user else "-"
        closing = shift.closing_balance_cents if shift.closing_balance_cents is not None else "-"
        diff = shift.difference_cents if shift.difference_cents is not None else "-"
        opened = shift.opened_at.strftime("%Y-%m-%d %H:%M:%S")

        click.echo(
            f"{shift.id:<5} {shift.branch_id:<8} {user:<20} {opened:<22} {status:<8} "
            f"{shift.opening_balance_cents:>10} {closing:>10} {diff:>8}"
        )

    click.echo("="*100 + "\n")


def register_commands(app):
    """Register all CLI commands with Flask app."""
    app.cli.add_command(system_group)
    app.cli.add_command(ledger_group)
    app.cli.add_command(shifts_group)
