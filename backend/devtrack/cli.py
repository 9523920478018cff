# Overview: Flask CLI command groups for bootstrap, inspection, and maintenance.

# backend/devtrack/cli.py
# Commands Legend (run from the backend directory):
# Prereqs:
# - Activate your virtualenv.
# - Set FLASK_APP to wsgi.py (PowerShell: $env:FLASK_APP="wsgi.py").
# - Use: python -m flask <group> <command> [options]
#
# System bootstrap/repair:
# - python -m flask system reset-db --yes
#   DEV/TEST only: drop and recreate all tables (deletes all data).
# - python -m flask system seed-demo
#   Create a small demo hierarchy, supplier and items (idempotent).
#
# Location inspection:
# - python -m flask locations tree
#   Print the location hierarchy with item counts.
#
# Barcodes:
# - python -m flask barcodes check 4006381333931 --format EAN_13
#   Validate a barcode (AUTO detection when --format is omitted).
# - python -m flask barcodes suggest ABC-123 --format EAN_13
#   Suggest a barcode for a part number.
#
# Transactions:
# - python -m flask transactions process-approved
#   Process every APPROVED transaction, oldest first.

import click
from flask.cli import with_appcontext

from .errors import RuleViolation
from .extensions import db
from .models import InventoryItem, InventoryTransaction, Location, LocationType, Supplier, TransactionStatus
from .services import barcode_service, lifecycle_service, location_service
from .services.concurrency import run_with_retry


@click.group('system')
def system_group():
    """System bootstrap and repair commands."""


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

    click.echo("PASS Database reset complete. Run 'python -m flask system seed-demo' to load demo data.")


DEMO_LOCATIONS = [
    # (code, name, type, parent code)
    ("WH-MAIN", "Main Warehouse", LocationType.WAREHOUSE, None),
    ("PF-1", "Production Floor 1", LocationType.PRODUCTION_FLOOR, "WH-MAIN"),
    ("PF-1-STORE", "Line-side Store", LocationType.WAREHOUSE, "PF-1"),
    ("CS-ALPHA", "Alpha Customer Site", LocationType.CUSTOMER_SITE, "WH-MAIN"),
    ("QA-HOLD", "Quarantine Hold", LocationType.QUARANTINE, None),
    ("TRANSIT-1", "Inbound Truck", LocationType.TRANSIT, None),
]

DEMO_ITEMS = [
    # (part number, description, location code, stock, min, max, cost cents)
    ("CBL-USB-C-1M", "USB-C cable 1m", "WH-MAIN", 250, 50, 1000, 299),
    ("SNS-TEMP-01", "Temperature sensor", "PF-1-STORE", 40, 20, 200, 1850),
    ("CTL-PLC-200", "PLC controller", "PF-1", 6, 2, 20, 45900),
]


@system_group.command('seed-demo')
@with_appcontext
def seed_demo():
    """Create demo locations, a supplier and items. Safe to run twice."""
    created = 0

    for code, name, loc_type, parent_code in DEMO_LOCATIONS:
        if Location.query.filter_by(code=code).first():
            continue
        parent_id = location_service.get_location_by_code(parent_code).id if parent_code else None
        location_service.create_location(
            code=code, name=name, location_type=loc_type, parent_location_id=parent_id, actor="seed"
        )
        created += 1

    supplier = Supplier.query.filter_by(code="ACME").first()
    if supplier is None:
        supplier = Supplier(code="ACME", company_name="Acme Components", lead_time_days=10, is_active=True)
        db.session.add(supplier)
        db.session.commit()

    for part_number, description, loc_code, stock, minimum, maximum, cost in DEMO_ITEMS:
        if InventoryItem.query.filter_by(part_number=part_number).first():
            continue
        db.session.add(InventoryItem(
            part_number=part_number,
            barcode=barcode_service.generate_suggested(part_number, "EAN_13"),
            description=description,
            location_id=location_service.get_location_by_code(loc_code).id,
            supplier_id=supplier.id,
            current_stock=stock,
            minimum_stock=minimum,
            maximum_stock=maximum,
            standard_cost_cents=cost,
            created_by="seed",
        ))
        created += 1
    db.session.commit()

    click.echo(f"PASS Seeded {created} new record(s).")


@click.group('locations')
def locations_group():
    """Location hierarchy inspection."""


def _echo_nodes(nodes, indent=0):
    for node in nodes:
        inactive = "" if node["is_active"] else " [inactive]"
        click.echo(
            f"{'  ' * indent}{node['code']:<12} {node['name']:<28} "
            f"{node['location_type']:<18} items={node['item_count']}{inactive}"
        )
        _echo_nodes(node["children"], indent + 1)


@locations_group.command('tree')
@with_appcontext
def location_tree():
    """Print the location hierarchy."""
    tree = location_service.build_hierarchy()
    if not tree:
        click.echo("No locations found.")
        return
    _echo_nodes(tree)


@click.group('barcodes')
def barcodes_group():
    """Barcode validation and generation."""


@barcodes_group.command('check')
@click.argument('barcode')
@click.option('--format', 'fmt', default=barcode_service.AUTO, show_default=True, help='Format key or AUTO')
@with_appcontext
def check_barcode(barcode, fmt):
    """Validate BARCODE against a format."""
    try:
        matched = barcode_service.validate_format(barcode, fmt)
    except RuleViolation as e:
        raise click.ClickException(f"{e.kind.value}: {e.message}")
    click.echo(f"PASS {barcode} is a valid {matched} barcode")


@barcodes_group.command('suggest')
@click.argument('part_number')
@click.option('--format', 'fmt', default="CODE_128", show_default=True, help='CODE_128 or EAN_13')
@with_appcontext
def suggest_barcode(part_number, fmt):
    """Suggest a barcode for PART_NUMBER."""
    try:
        click.echo(barcode_service.generate_suggested(part_number, fmt))
    except RuleViolation as e:
        raise click.ClickException(e.message)


@click.group('transactions')
def transactions_group():
    """Transaction lifecycle maintenance."""


@transactions_group.command('process-approved')
@click.option('--actor', default='cli', show_default=True, help='Recorded as processed_by')
@with_appcontext
def process_approved(actor):
    """Process every APPROVED transaction; failures are reported and skipped."""
    ids = [
        tx_id for (tx_id,) in (
            db.session.query(InventoryTransaction.id)
            .filter(InventoryTransaction.status == TransactionStatus.APPROVED)
            .order_by(InventoryTransaction.initiated_at.asc(), InventoryTransaction.id.asc())
            .all()
        )
    ]
    if not ids:
        click.echo("No approved transactions.")
        return

    done, failed = 0, 0
    for tx_id in ids:
        try:
            tx = run_with_retry(lambda: lifecycle_service.process(tx_id, actor))
        except RuleViolation as e:
            failed += 1
            click.echo(f"FAIL {tx_id}: {e.message}")
            continue
        done += 1
        click.echo(f"PASS {tx.transaction_number}")

    click.echo(f"Processed {done}, failed {failed}.")


def register_commands(app):
    """Register all CLI commands with Flask app."""
    app.cli.add_command(system_group)
    app.cli.add_command(locations_group)
    app.cli.add_command(barcodes_group)
    app.cli.add_command(transactions_group)
